"""
Uniform call contract for the external operations a workflow depends on.

A capability takes the step's input payload and either returns an output
payload or raises `CapabilityError`. Capability handles keep no
per-execution state, so one handle is shared by every concurrent execution.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Protocol


class FailureReason(Enum):
    """Why a capability could not produce output."""

    TIMEOUT = "timeout"
    INVOCATION_ERROR = "invocation_error"
    MALFORMED_RESPONSE = "malformed_response"
    NOT_FOUND = "not_found"


class CapabilityError(Exception):
    """Raised by a capability that cannot complete an invocation."""

    def __init__(
        self,
        message: str,
        reason: FailureReason = FailureReason.INVOCATION_ERROR,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"reason": self.reason.value, "message": self.message, **self.details}


class CapabilityProtocol(Protocol):
    """Structural interface accepted by task steps."""

    name: str

    async def invoke(self, payload: dict[str, Any]) -> dict[str, Any]: ...


class Capability(ABC):
    """Base class for capability adapters."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Perform the call and return the output payload."""
        ...

    async def health_check(self) -> bool:
        """Whether the capability looks usable; adapters override when they can tell."""
        return True

    async def aclose(self) -> None:
        """Release resources held by the adapter."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"


def ensure_payload(value: Any, capability: str) -> dict[str, Any]:
    """Reject outputs that are not key/value payloads."""
    if not isinstance(value, dict):
        raise CapabilityError(
            f"{capability} returned {type(value).__name__}, expected an object",
            FailureReason.MALFORMED_RESPONSE,
        )
    return value
