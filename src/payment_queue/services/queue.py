"""
Message queue transport.

The consumer only needs three operations from a queue:

  - `receive(max_messages, wait_seconds)`: long-poll for a batch.
  - `delete(message)`: acknowledge one delivery by its receipt handle.
  - `dead_letter(message, reason)`: move a poison message out of the way.

`SqsMessageQueue` implements them on Amazon SQS via boto3. boto3 is
synchronous, so every call runs in a worker thread (`asyncio.to_thread`) to
keep the event loop responsive during the 20s long poll.

`InMemoryMessageQueue` mimics SQS delivery semantics (receive counts,
in-flight messages, redelivery) for tests.
"""

import asyncio
import itertools
import logging
from collections import deque
from functools import partial
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from payment_queue.domain.exceptions import TransportError
from payment_queue.domain.models import QueueMessage

logger = logging.getLogger(__name__)


class MessageQueue(Protocol):
    async def receive(self, max_messages: int, wait_seconds: int) -> list[QueueMessage]: ...

    async def delete(self, message: QueueMessage) -> None: ...

    async def dead_letter(self, message: QueueMessage, reason: str) -> None: ...


class SqsMessageQueue:
    """Amazon SQS transport.

    Dead-lettering sends the body to `dead_letter_queue_url` (with the failure
    reason as a message attribute) and then deletes the original delivery. With
    no dead-letter URL configured, dead_letter() raises TransportError and the
    message is left to the queue's own redrive policy.
    """

    def __init__(self, client: Any, queue_url: str, dead_letter_queue_url: str | None = None) -> None:
        self._client = client
        self._queue_url = queue_url
        self._dead_letter_queue_url = dead_letter_queue_url

    @classmethod
    def connect(
        cls,
        queue_url: str,
        *,
        region: str,
        endpoint_url: str | None = None,
        dead_letter_queue_url: str | None = None,
    ) -> "SqsMessageQueue":
        client = boto3.client("sqs", region_name=region, endpoint_url=endpoint_url)
        return cls(client, queue_url, dead_letter_queue_url)

    async def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(partial(getattr(self._client, operation), **params))
        except (BotoCoreError, ClientError) as e:
            raise TransportError(f"SQS {operation} failed: {e}") from e

    async def receive(self, max_messages: int, wait_seconds: int) -> list[QueueMessage]:
        response = await self._call(
            "receive_message",
            QueueUrl=self._queue_url,
            MaxNumberOfMessages=max_messages,
            WaitTimeSeconds=wait_seconds,
            MessageSystemAttributeNames=["ApproximateReceiveCount"],
            MessageAttributeNames=["All"],
        )
        try:
            return [_to_queue_message(raw) for raw in response.get("Messages", [])]
        except (KeyError, ValueError) as e:
            raise TransportError(f"SQS receive_message returned an unexpected message: {e!r}") from e

    async def delete(self, message: QueueMessage) -> None:
        await self._call("delete_message", QueueUrl=self._queue_url, ReceiptHandle=message.receipt_handle)

    async def dead_letter(self, message: QueueMessage, reason: str) -> None:
        if not self._dead_letter_queue_url:
            raise TransportError("No dead-letter queue configured")
        await self._call(
            "send_message",
            QueueUrl=self._dead_letter_queue_url,
            MessageBody=message.body,
            MessageAttributes={
                "failure_reason": {"DataType": "String", "StringValue": reason[:1024] or "unknown"},
                "source_message_id": {"DataType": "String", "StringValue": message.message_id},
            },
        )
        await self.delete(message)


def _to_queue_message(raw: dict[str, Any]) -> QueueMessage:
    attributes = {
        name: value["StringValue"]
        for name, value in raw.get("MessageAttributes", {}).items()
        if "StringValue" in value
    }
    return QueueMessage(
        message_id=raw["MessageId"],
        body=raw.get("Body", ""),
        receipt_handle=raw["ReceiptHandle"],
        receive_count=int(raw.get("Attributes", {}).get("ApproximateReceiveCount", 1)),
        attributes=attributes,
    )


class InMemoryMessageQueue:
    """In-process queue with SQS-like at-least-once semantics.

    Received messages stay in flight until deleted. `redeliver()` plays the
    part of the visibility timeout and puts every in-flight message back.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._pending: deque[tuple[str, str, dict[str, str], int]] = deque()
        self._in_flight: dict[str, tuple[str, str, dict[str, str], int]] = {}
        self.deleted: list[str] = []  # message ids, in deletion order
        self.dead_letters: list[tuple[QueueMessage, str]] = []

    def send(self, body: str, attributes: dict[str, str] | None = None) -> str:
        message_id = f"msg-{next(self._ids)}"
        self._pending.append((message_id, body, attributes or {}, 0))
        return message_id

    def redeliver(self) -> None:
        self._pending.extend(self._in_flight.values())
        self._in_flight.clear()

    @property
    def in_flight(self) -> list[str]:
        return [entry[0] for entry in self._in_flight.values()]

    async def receive(self, max_messages: int, wait_seconds: int) -> list[QueueMessage]:
        batch = []
        while self._pending and len(batch) < max_messages:
            message_id, body, attributes, count = self._pending.popleft()
            count += 1
            handle = f"{message_id}#{count}"
            self._in_flight[handle] = (message_id, body, attributes, count)
            batch.append(
                QueueMessage(
                    message_id=message_id,
                    body=body,
                    receipt_handle=handle,
                    receive_count=count,
                    attributes=attributes,
                )
            )
        return batch

    async def delete(self, message: QueueMessage) -> None:
        if self._in_flight.pop(message.receipt_handle, None) is None:
            raise TransportError(f"Unknown receipt handle {message.receipt_handle!r}")
        self.deleted.append(message.message_id)

    async def dead_letter(self, message: QueueMessage, reason: str) -> None:
        if self._in_flight.pop(message.receipt_handle, None) is None:
            raise TransportError(f"Unknown receipt handle {message.receipt_handle!r}")
        self.dead_letters.append((message, reason))
