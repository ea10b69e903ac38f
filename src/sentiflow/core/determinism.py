"""
Configuration fingerprinting for audit and health reporting.
"""

import hashlib
import json
from typing import Any

from ..observability.logging import get_logger

logger = get_logger(__name__)

# Hash of the configuration the process started with
CONFIG_SHA256: str = ""


def _reset_config_hash_for_tests():
    global CONFIG_SHA256
    CONFIG_SHA256 = ""


def freeze_config_and_hash(config: Any) -> str:
    """
    Generate a deterministic SHA256 of the configuration and remember it.

    Args:
        config: Settings object (pydantic model) or any JSON-serialisable value

    Returns:
        SHA256 hex digest of the configuration
    """
    global CONFIG_SHA256

    data = config.model_dump(mode="json") if hasattr(config, "model_dump") else config
    blob = json.dumps(data, default=str, sort_keys=True, separators=(",", ":")).encode("utf-8")

    CONFIG_SHA256 = hashlib.sha256(blob).hexdigest()
    logger.info(f"CONFIG_SHA256 {CONFIG_SHA256}")
    return CONFIG_SHA256


def get_config_hash() -> str:
    """Get the current config hash."""
    return CONFIG_SHA256
