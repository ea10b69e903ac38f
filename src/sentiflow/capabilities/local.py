"""
In-process capabilities: wrapped callables, a keyed record store and a
notification channel that keeps published messages in memory.
"""

import asyncio
import json
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..observability.logging import get_logger
from .base import Capability, CapabilityError, FailureReason, ensure_payload

logger = get_logger(__name__)

PayloadFn = Callable[[dict[str, Any]], dict[str, Any] | Awaitable[dict[str, Any]]]


class CallableCapability(Capability):
    """
    Adapts a plain or async function to the capability contract.

    Plain functions run in a worker thread so a blocking call neither stalls
    other executions nor outlives the deadline; a result that arrives after
    cancellation is dropped.
    """

    def __init__(self, name: str, func: PayloadFn):
        super().__init__(name)
        self.func = func

    async def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        if asyncio.iscoroutinefunction(self.func):
            result = await self.func(payload)
        else:
            result = await asyncio.to_thread(self.func, payload)
            if asyncio.iscoroutine(result):
                result = await result
        return ensure_payload(result, self.name)


class InMemoryRecordStore(Capability):
    """
    Records keyed by a single partition key field.

    Invoking the store reads the record whose key matches the payload's key
    field and merges its fields over the payload.
    """

    def __init__(
        self,
        name: str = "record_store",
        key_field: str = "age",
        records: list[dict[str, Any]] | None = None,
    ):
        super().__init__(name)
        self.key_field = key_field
        self._records: dict[str, dict[str, Any]] = {}
        for record in records or []:
            self.put(record)

    def put(self, record: dict[str, Any]) -> None:
        """Insert or replace a record by its key."""
        if self.key_field not in record:
            raise ValueError(f"Record is missing partition key '{self.key_field}'")
        self._records[str(record[self.key_field])] = dict(record)

    def get(self, key: Any) -> dict[str, Any] | None:
        record = self._records.get(str(key))
        return dict(record) if record is not None else None

    def __len__(self) -> int:
        return len(self._records)

    async def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.key_field not in payload:
            raise CapabilityError(
                f"Payload has no '{self.key_field}' lookup key", FailureReason.INVOCATION_ERROR
            )

        key = payload[self.key_field]
        record = self.get(key)
        if record is None:
            raise CapabilityError(
                f"No record with {self.key_field}={key!r}",
                FailureReason.NOT_FOUND,
                {"key": str(key)},
            )

        logger.debug("Record fetched", key=str(key), fields=len(record))
        return {**payload, **record}


@dataclass
class PublishedMessage:
    """A notification accepted by the channel."""

    message_id: str
    topic: str
    subject: str
    body: str
    destination: str | None = None
    timestamp: float = field(default_factory=time.time)


class InMemoryNotificationChannel(Capability):
    """Publishes the payload to a fixed topic and returns it unchanged."""

    def __init__(
        self,
        name: str = "notifier",
        topic_name: str = "MyTopic",
        display_name: str = "My Sample SNS Topic",
        destination: str | None = None,
    ):
        super().__init__(name)
        self.topic_name = topic_name
        self.display_name = display_name
        self.destination = destination
        self.messages: list[PublishedMessage] = []

    async def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        message = PublishedMessage(
            message_id=str(uuid.uuid4()),
            topic=self.topic_name,
            subject=self.display_name,
            body=json.dumps(payload, sort_keys=True, default=str),
            destination=self.destination,
        )
        self.messages.append(message)
        logger.info(
            "Notification published",
            topic=self.topic_name,
            message_id=message.message_id,
            destination=self.destination or "-",
        )
        return payload
