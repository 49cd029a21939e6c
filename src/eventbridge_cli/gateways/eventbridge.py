"""EventBridgeGateway — BusGateway implementation backed by boto3."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from eventbridge_cli.errors import (
    CreationError,
    LinkError,
    PatternTestError,
    PublishError,
    TeardownError,
)
from eventbridge_cli.gateways.base import PatternTestResult, ProbeEvent, RuleHandle

logger = structlog.get_logger()

_NOT_FOUND = "ResourceNotFoundException"


def error_code(exc: Exception) -> str | None:
    """Return the AWS error code of a ClientError, if any."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


class EventBridgeGateway:
    """Rule, target and event operations on a single EventBridge bus.

    boto3 is synchronous; every call runs in the default executor so the
    poller task keeps running while the coordinator talks to the bus.
    """

    def __init__(
        self,
        bus_name: str,
        *,
        session: Any | None = None,
        client: Any | None = None,
    ) -> None:
        self._bus_name = bus_name
        self._session = session
        self._client = client

    @property
    def bus_name(self) -> str:
        return self._bus_name

    def _get_client(self):  # noqa: ANN202
        if self._client is None:
            if self._session is not None:
                self._client = self._session.client("events")
            else:
                import boto3

                self._client = boto3.client("events")
        return self._client

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        client = self._get_client()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: getattr(client, operation)(**kwargs)
        )

    # -- Rules -----------------------------------------------------------------

    async def create_rule(
        self, name: str, description: str, pattern: str
    ) -> RuleHandle:
        try:
            resp = await self._call(
                "put_rule",
                Name=name,
                Description=description,
                EventBusName=self._bus_name,
                EventPattern=pattern,
                State="ENABLED",
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("rule.create_failed", rule=name, error=str(exc))
            raise CreationError(f"Failed to create rule {name}: {exc}") from exc

        logger.info("rule.created", rule=name, bus=self._bus_name, arn=resp["RuleArn"])
        return RuleHandle(
            bus_name=self._bus_name,
            name=name,
            pattern=pattern,
            arn=resp["RuleArn"],
        )

    async def delete_rule(self, name: str) -> None:
        try:
            await self._call(
                "delete_rule",
                EventBusName=self._bus_name,
                Name=name,
                Force=True,
            )
        except (ClientError, BotoCoreError) as exc:
            if error_code(exc) == _NOT_FOUND:
                logger.info("rule.already_removed", rule=name)
                return
            logger.error("rule.delete_failed", rule=name, error=str(exc))
            raise TeardownError(f"Failed to delete rule {name}: {exc}") from exc
        logger.info("rule.deleted", rule=name, bus=self._bus_name)

    # -- Targets ---------------------------------------------------------------

    async def put_target(self, rule_name: str, target_id: str, target_arn: str) -> None:
        try:
            resp = await self._call(
                "put_targets",
                Rule=rule_name,
                EventBusName=self._bus_name,
                Targets=[{"Id": target_id, "Arn": target_arn}],
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("target.put_failed", rule=rule_name, error=str(exc))
            raise LinkError(f"Failed to link {rule_name} to {target_arn}: {exc}") from exc

        if resp.get("FailedEntryCount", 0) > 0:
            entry = resp["FailedEntries"][0]
            msg = (
                f"Failed to link {rule_name} to {target_arn}: "
                f"{entry.get('ErrorCode')}: {entry.get('ErrorMessage')}"
            )
            logger.error("target.put_failed", rule=rule_name, error=msg)
            raise LinkError(msg)
        logger.info("target.linked", rule=rule_name, target=target_arn)

    async def remove_target(self, rule_name: str, target_id: str) -> None:
        try:
            resp = await self._call(
                "remove_targets",
                Rule=rule_name,
                EventBusName=self._bus_name,
                Ids=[target_id],
            )
        except (ClientError, BotoCoreError) as exc:
            if error_code(exc) == _NOT_FOUND:
                logger.info("target.already_removed", rule=rule_name, target=target_id)
                return
            raise LinkError(f"Failed to remove target {target_id}: {exc}") from exc

        if resp.get("FailedEntryCount", 0) > 0:
            entry = resp["FailedEntries"][0]
            msg = (
                f"Failed to remove target {target_id}: "
                f"{entry.get('ErrorCode')}: {entry.get('ErrorMessage')}"
            )
            raise LinkError(msg)
        logger.info("target.removed", rule=rule_name, target=target_id)

    # -- Events ----------------------------------------------------------------

    async def publish_event(self, event: ProbeEvent) -> None:
        entry: dict[str, Any] = {
            "Source": event.source,
            "DetailType": event.detail_type,
            "Detail": event.detail,
            "EventBusName": self._bus_name,
        }
        if event.resources:
            entry["Resources"] = list(event.resources)

        logger.info(
            "event.publishing",
            bus=self._bus_name,
            source=event.source,
            detail_type=event.detail_type,
        )
        try:
            resp = await self._call("put_events", Entries=[entry])
        except (ClientError, BotoCoreError) as exc:
            raise PublishError(f"Failed to publish event: {exc}") from exc

        if resp.get("FailedEntryCount", 0) > 0:
            failed = resp["Entries"][0]
            raise PublishError(
                failed.get("ErrorMessage") or "event rejected by the bus",
                error_code=failed.get("ErrorCode"),
            )
        logger.info("event.published", event_id=resp["Entries"][0].get("EventId"))

    async def test_pattern(
        self, name_prefix: str, event_json: str
    ) -> AsyncIterator[PatternTestResult]:
        params: dict[str, Any] = {"EventBusName": self._bus_name}
        if name_prefix:
            params["NamePrefix"] = name_prefix

        while True:
            try:
                resp = await self._call("list_rules", **params)
            except (ClientError, BotoCoreError) as exc:
                raise PatternTestError(f"Failed to list rules: {exc}") from exc

            for rule in resp.get("Rules", []):
                pattern = rule.get("EventPattern")
                # schedule rules have no pattern
                if not pattern:
                    logger.debug("rule.skipped_without_pattern", rule=rule["Name"])
                    continue
                try:
                    result = await self._call(
                        "test_event_pattern",
                        Event=event_json,
                        EventPattern=pattern,
                    )
                except (ClientError, BotoCoreError) as exc:
                    raise PatternTestError(
                        f"Failed to test event against {rule['Name']}: {exc}"
                    ) from exc
                yield PatternTestResult(rule["Name"], bool(result.get("Result")))

            next_token = resp.get("NextToken")
            if not next_token:
                return
            params["NextToken"] = next_token
