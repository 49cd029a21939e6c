"""SQSGateway — QueueGateway implementation backed by boto3."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from typing import Any

import structlog
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
)

from eventbridge_cli.errors import (
    AcknowledgeError,
    CreationError,
    PollFatalError,
    PollTransportError,
    TeardownError,
)
from eventbridge_cli.gateways.base import DeliveredMessage, QueueHandle
from eventbridge_cli.gateways.eventbridge import error_code

logger = structlog.get_logger()

# Failures that happen before a request reaches SQS; safe to retry as-is.
TRANSIENT_ERRORS = (EndpointConnectionError, ConnectTimeoutError, ConnectionClosedError)

_QUEUE_MISSING = (
    "AWS.SimpleQueueService.NonExistentQueue",
    "QueueDoesNotExist",
)


def build_queue_policy(policy_id: str, queue_arn: str, rule_arn: str) -> str:
    """Access policy letting only *rule_arn* deliver to the queue."""
    policy = {
        "Version": "2012-10-17",
        "Id": policy_id,
        "Statement": [
            {
                "Sid": "AllowEventBridgeRule",
                "Effect": "Allow",
                "Principal": {"Service": "events.amazonaws.com"},
                "Action": "SQS:SendMessage",
                "Resource": queue_arn,
                "Condition": {"ArnEquals": {"aws:SourceArn": rule_arn}},
            }
        ],
    }
    return json.dumps(policy)


class SQSGateway:
    """Queue lifecycle plus long-poll receive and batch acknowledge."""

    def __init__(
        self,
        *,
        session: Any | None = None,
        client: Any | None = None,
    ) -> None:
        self._session = session
        self._client = client

    def _get_client(self):  # noqa: ANN202
        if self._client is None:
            if self._session is not None:
                self._client = self._session.client("sqs")
            else:
                import boto3

                self._client = boto3.client("sqs")
        return self._client

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        client = self._get_client()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: getattr(client, operation)(**kwargs)
        )

    async def create_queue(self, name: str, policy_json: str) -> QueueHandle:
        try:
            resp = await self._call(
                "create_queue",
                QueueName=name,
                Attributes={"Policy": policy_json},
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("queue.create_failed", queue=name, error=str(exc))
            raise CreationError(f"Failed to create queue {name}: {exc}") from exc

        url = resp["QueueUrl"]
        try:
            attrs = await self._call(
                "get_queue_attributes",
                QueueUrl=url,
                AttributeNames=["QueueArn"],
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("queue.lookup_failed", queue=name, error=str(exc))
            # caller gets no handle to tear down
            await self._discard_queue(url)
            raise CreationError(f"Failed to create queue {name}: {exc}") from exc

        arn = attrs["Attributes"]["QueueArn"]
        logger.info("queue.created", queue=name, url=url)
        return QueueHandle(name=name, url=url, arn=arn)

    async def delete_queue(self, url: str) -> None:
        try:
            await self._call("delete_queue", QueueUrl=url)
        except (ClientError, BotoCoreError) as exc:
            if error_code(exc) in _QUEUE_MISSING:
                logger.info("queue.already_removed", url=url)
                return
            logger.error("queue.delete_failed", url=url, error=str(exc))
            raise TeardownError(f"Failed to delete queue {url}: {exc}") from exc
        logger.info("queue.deleted", url=url)

    async def _discard_queue(self, url: str) -> None:
        try:
            await self.delete_queue(url)
        except TeardownError:
            logger.warning("queue.orphaned", url=url)

    async def receive_batch(
        self, url: str, max_messages: int = 10, wait_seconds: int = 5
    ) -> list[DeliveredMessage]:
        try:
            resp = await self._call(
                "receive_message",
                QueueUrl=url,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_seconds,
                MessageAttributeNames=["All"],
            )
        except TRANSIENT_ERRORS as exc:
            raise PollTransportError(str(exc)) from exc
        except (ClientError, BotoCoreError) as exc:
            raise PollFatalError(f"Failed to receive from {url}: {exc}") from exc

        return [
            DeliveredMessage(
                message_id=m["MessageId"],
                body=m.get("Body", ""),
                receipt_handle=m["ReceiptHandle"],
                attributes=m.get("MessageAttributes", {}),
            )
            for m in resp.get("Messages", [])
        ]

    async def acknowledge_batch(
        self, url: str, messages: Sequence[DeliveredMessage]
    ) -> None:
        if not messages:
            return
        entries = [
            {"Id": m.message_id, "ReceiptHandle": m.receipt_handle} for m in messages
        ]
        try:
            resp = await self._call(
                "delete_message_batch", QueueUrl=url, Entries=entries
            )
        except (ClientError, BotoCoreError) as exc:
            raise AcknowledgeError(f"Failed to delete messages: {exc}") from exc

        failed = resp.get("Failed", [])
        if failed:
            raise AcknowledgeError(
                f"Failed to delete {len(failed)} of {len(entries)} messages",
                failed_ids=[f["Id"] for f in failed],
            )
