"""Capability adapters consumed by workflow task steps."""

from .base import Capability, CapabilityError, CapabilityProtocol, FailureReason
from .http import HttpCapability
from .local import (
    CallableCapability,
    InMemoryNotificationChannel,
    InMemoryRecordStore,
    PublishedMessage,
)

__all__ = [
    "Capability",
    "CapabilityError",
    "CapabilityProtocol",
    "FailureReason",
    "HttpCapability",
    "CallableCapability",
    "InMemoryRecordStore",
    "InMemoryNotificationChannel",
    "PublishedMessage",
]
