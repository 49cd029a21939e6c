"""Capability protocols over the remote event bus and message queue.

The coordinator and poller only talk to these protocols, so tests can swap
in deterministic in-memory doubles for the boto3-backed implementations.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from eventbridge_cli.errors import ResolutionError


@dataclass(frozen=True, slots=True)
class RuleHandle:
    """A rule created on an event bus."""

    bus_name: str
    name: str
    pattern: str
    arn: str
    enabled: bool = True


@dataclass(frozen=True, slots=True)
class QueueHandle:
    """A queue created as the rule's delivery target."""

    name: str
    url: str
    arn: str


@dataclass(slots=True)
class DeliveredMessage:
    """One message received from the queue; lives for a single poll cycle."""

    message_id: str
    body: str
    receipt_handle: str
    attributes: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True, slots=True)
class PatternTestResult:
    rule_name: str
    matched: bool


@dataclass(frozen=True, slots=True)
class ProbeEvent:
    """A test event to publish on the bus.

    ``detail`` is kept as a JSON string since that is what PutEvents takes.
    """

    source: str
    detail_type: str
    detail: str = "{}"
    resources: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> ProbeEvent:
        """Parse ``{"source": ..., "detail-type": ..., "detail": ...}``.

        An object ``detail`` is serialised; a string one is used as-is.
        """
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ResolutionError(f"Input event is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise ResolutionError("Input event must be a JSON object")

        source = raw.get("source")
        detail_type = raw.get("detail-type", raw.get("detailType"))
        if not isinstance(source, str) or not source:
            raise ResolutionError("Input event requires a non-empty 'source'")
        if not isinstance(detail_type, str) or not detail_type:
            raise ResolutionError("Input event requires a non-empty 'detail-type'")

        detail = raw.get("detail", "{}")
        if not isinstance(detail, str):
            detail = json.dumps(detail)
        resources = raw.get("resources") or []
        if not isinstance(resources, list):
            raise ResolutionError("Input event 'resources' must be a list")
        return cls(
            source=source,
            detail_type=detail_type,
            detail=detail,
            resources=tuple(str(r) for r in resources),
        )


@runtime_checkable
class BusGateway(Protocol):
    """Rule, target and event operations on one event bus."""

    @property
    def bus_name(self) -> str: ...

    async def create_rule(
        self, name: str, description: str, pattern: str
    ) -> RuleHandle:
        """Create an enabled rule; raises CreationError."""
        ...

    async def delete_rule(self, name: str) -> None:
        """Delete the rule; "already removed" is success.  Raises TeardownError."""
        ...

    async def put_target(self, rule_name: str, target_id: str, target_arn: str) -> None:
        """Attach a target to the rule; raises LinkError."""
        ...

    async def remove_target(self, rule_name: str, target_id: str) -> None:
        """Detach the target; raises LinkError."""
        ...

    async def publish_event(self, event: ProbeEvent) -> None:
        """Publish one event; per-entry failures raise PublishError too."""
        ...

    def test_pattern(
        self, name_prefix: str, event_json: str
    ) -> AsyncIterator[PatternTestResult]:
        """Lazily test *event_json* against every patterned rule with the prefix."""
        ...


@runtime_checkable
class QueueGateway(Protocol):
    """Queue lifecycle and message operations."""

    async def create_queue(self, name: str, policy_json: str) -> QueueHandle:
        """Create a queue with the given access policy; raises CreationError."""
        ...

    async def delete_queue(self, url: str) -> None:
        """Delete the queue; "already removed" is success.  Raises TeardownError."""
        ...

    async def receive_batch(
        self, url: str, max_messages: int = 10, wait_seconds: int = 5
    ) -> list[DeliveredMessage]:
        """Long-poll once; raises PollTransportError or PollFatalError."""
        ...

    async def acknowledge_batch(
        self, url: str, messages: Sequence[DeliveredMessage]
    ) -> None:
        """Delete received messages; raises AcknowledgeError."""
        ...
