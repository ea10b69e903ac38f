"""
Global pytest configuration and fixtures for test isolation.

Resets module-level state (API globals, config hash, metrics collector) before
each test and provides in-memory capabilities for the triage workflow.
"""

import sys

import pytest

from sentiflow.capabilities import (
    CallableCapability,
    InMemoryNotificationChannel,
    InMemoryRecordStore,
)
from sentiflow.core.orchestrator import Orchestrator
from sentiflow.core.workflow import build_triage_workflow

RECORDS = [
    {"age": "34", "text": "I hate this"},
    {"age": "50", "text": "What a lovely day"},
    {"age": "61", "text": "It is fine, I guess"},
]

# Canned classifier answers keyed by record text
EMOTIONS = {
    "I hate this": "NEGATIVE",
    "What a lovely day": "POSITIVE",
}


def reset_all_global_state():
    """Reset global state held by sentiflow modules."""
    try:
        from sentiflow.api.server import _reset_globals_for_tests

        _reset_globals_for_tests()
    except ImportError:
        pass

    try:
        from sentiflow.core.determinism import _reset_config_hash_for_tests

        _reset_config_hash_for_tests()
    except ImportError:
        pass

    metrics = sys.modules.get("sentiflow.observability.metrics")
    if metrics is not None:
        metrics._metrics_collector = None


@pytest.fixture(autouse=True)
def test_isolation():
    """Per-test isolation to ensure clean state for each test."""
    reset_all_global_state()
    yield


class RecordingCapability(CallableCapability):
    """Callable capability that remembers every payload it was invoked with."""

    def __init__(self, name, func):
        super().__init__(name, func)
        self.calls: list[dict] = []

    async def invoke(self, payload):
        self.calls.append(dict(payload))
        return await super().invoke(payload)


def classify(payload: dict) -> dict:
    emotion = EMOTIONS.get(payload.get("text"))
    return {**payload, "emotion": emotion} if emotion else dict(payload)


@pytest.fixture
def record_store():
    return InMemoryRecordStore("record_store", key_field="age", records=RECORDS)


@pytest.fixture
def classifier():
    return RecordingCapability("classifier", classify)


@pytest.fixture
def notifier():
    return InMemoryNotificationChannel("notifier", destination="oncall@example.com")


@pytest.fixture
def workflow(record_store, classifier, notifier):
    return build_triage_workflow(record_store, classifier, notifier)


@pytest.fixture
def orchestrator(workflow):
    return Orchestrator(workflow, timeout=5.0)
