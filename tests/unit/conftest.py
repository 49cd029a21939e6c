"""In-memory bus/queue doubles shared by the lifecycle unit tests."""

from __future__ import annotations

import asyncio
import io
import json
import uuid
from collections.abc import AsyncIterator, Sequence
from typing import Any

import pytest
from rich.console import Console

from eventbridge_cli.config.models import CIConfig, PollerConfig, ProbeConfig
from eventbridge_cli.gateways.base import (
    DeliveredMessage,
    PatternTestResult,
    ProbeEvent,
    QueueHandle,
    RuleHandle,
)
from eventbridge_cli.naming import RunIdentity
from eventbridge_cli.rendering import MessageRenderer

REGION = "eu-north-1"
ACCOUNT = "123456789012"


def pattern_matches(pattern: dict[str, Any], event: dict[str, Any]) -> bool:
    """Exact-value subset of EventBridge matching; enough for the fakes."""
    for key, allowed in pattern.items():
        value = event.get(key)
        if isinstance(allowed, dict):
            if not isinstance(value, dict) or not pattern_matches(allowed, value):
                return False
        elif value not in allowed:
            return False
    return True


def event_as_dict(event: ProbeEvent) -> dict[str, Any]:
    return {
        "source": event.source,
        "detail-type": event.detail_type,
        "detail": json.loads(event.detail),
        "resources": list(event.resources),
    }


class FakeQueue:
    """QueueGateway double.

    ``script`` entries are returned (or raised) by successive receives before
    the inbox is consulted; an empty receive sleeps briefly like a long poll.
    """

    def __init__(self, journal: list[str], *, idle_wait: float = 0.01) -> None:
        self.journal = journal
        self.idle_wait = idle_wait
        self.failures: dict[str, Exception] = {}
        self.script: list[list[DeliveredMessage] | Exception] = []
        self.queues: dict[str, str] = {}
        self.policies: dict[str, dict[str, Any]] = {}
        self.inbox: list[tuple[float, DeliveredMessage]] = []
        self.acknowledged: list[str] = []
        self.receive_calls = 0

    def _fail(self, operation: str) -> None:
        exc = self.failures.get(operation)
        if exc is not None:
            raise exc

    def deliver(self, body: str, *, delay: float = 0.0) -> DeliveredMessage:
        message_id = str(uuid.uuid4())
        message = DeliveredMessage(message_id, body, f"rh-{message_id}")
        due = asyncio.get_running_loop().time() + delay if delay else 0.0
        self.inbox.append((due, message))
        return message

    def deliver_to_arn(self, arn: str, body: str) -> None:
        if arn in self.queues.values():
            self.deliver(body)

    async def create_queue(self, name: str, policy_json: str) -> QueueHandle:
        self.journal.append("create_queue")
        self._fail("create_queue")
        policy = json.loads(policy_json)
        arn = policy["Statement"][0]["Resource"]
        url = f"https://sqs.{REGION}.amazonaws.com/{ACCOUNT}/{name}"
        self.queues[url] = arn
        self.policies[url] = policy
        return QueueHandle(name=name, url=url, arn=arn)

    async def delete_queue(self, url: str) -> None:
        self.journal.append("delete_queue")
        self._fail("delete_queue")
        self.queues.pop(url, None)

    async def receive_batch(
        self, url: str, max_messages: int = 10, wait_seconds: int = 5
    ) -> list[DeliveredMessage]:
        self.receive_calls += 1
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        now = asyncio.get_running_loop().time()
        ready = [m for due, m in self.inbox if due <= now][:max_messages]
        if ready:
            ids = {m.message_id for m in ready}
            self.inbox = [(d, m) for d, m in self.inbox if m.message_id not in ids]
            return ready
        await asyncio.sleep(self.idle_wait)
        return []

    async def acknowledge_batch(
        self, url: str, messages: Sequence[DeliveredMessage]
    ) -> None:
        self._fail("acknowledge_batch")
        self.acknowledged.extend(m.message_id for m in messages)


class FakeBus:
    """BusGateway double routing published events to linked fake queues."""

    def __init__(
        self, journal: list[str], queue: FakeQueue, *, bus_name: str = "default"
    ) -> None:
        self.journal = journal
        self.queue = queue
        self._bus_name = bus_name
        self.failures: dict[str, Exception] = {}
        self.rules: dict[str, str] = {}
        self.targets: dict[str, dict[str, str]] = {}
        self.published: list[ProbeEvent] = []

    @property
    def bus_name(self) -> str:
        return self._bus_name

    def _fail(self, operation: str) -> None:
        exc = self.failures.get(operation)
        if exc is not None:
            raise exc

    async def create_rule(
        self, name: str, description: str, pattern: str
    ) -> RuleHandle:
        self.journal.append("create_rule")
        self._fail("create_rule")
        self.rules[name] = pattern
        arn = f"arn:aws:events:{REGION}:{ACCOUNT}:rule/{self._bus_name}/{name}"
        return RuleHandle(bus_name=self._bus_name, name=name, pattern=pattern, arn=arn)

    async def delete_rule(self, name: str) -> None:
        self.journal.append("delete_rule")
        self._fail("delete_rule")
        self.rules.pop(name, None)

    async def put_target(self, rule_name: str, target_id: str, target_arn: str) -> None:
        self.journal.append("put_target")
        self._fail("put_target")
        self.targets.setdefault(rule_name, {})[target_id] = target_arn

    async def remove_target(self, rule_name: str, target_id: str) -> None:
        self.journal.append("remove_target")
        self._fail("remove_target")
        self.targets.get(rule_name, {}).pop(target_id, None)

    async def publish_event(self, event: ProbeEvent) -> None:
        self.journal.append("publish_event")
        self._fail("publish_event")
        self.published.append(event)
        body = event_as_dict(event)
        for rule_name, pattern in self.rules.items():
            if not pattern_matches(json.loads(pattern), body):
                continue
            for arn in self.targets.get(rule_name, {}).values():
                self.queue.deliver_to_arn(arn, json.dumps(body))

    async def test_pattern(
        self, name_prefix: str, event_json: str
    ) -> AsyncIterator[PatternTestResult]:
        event = json.loads(event_json)
        for name, pattern in sorted(self.rules.items()):
            if name.startswith(name_prefix) and pattern:
                yield PatternTestResult(name, pattern_matches(json.loads(pattern), event))


@pytest.fixture
def journal() -> list[str]:
    return []


@pytest.fixture
def fake_queue(journal: list[str]) -> FakeQueue:
    return FakeQueue(journal)


@pytest.fixture
def fake_bus(journal: list[str], fake_queue: FakeQueue) -> FakeBus:
    return FakeBus(journal, fake_queue)


@pytest.fixture
def identity() -> RunIdentity:
    return RunIdentity(run_id="00000000-0000-4000-8000-000000000001")


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def renderer(output: io.StringIO) -> MessageRenderer:
    return MessageRenderer(Console(file=output, width=200))


def make_config(**overrides: Any) -> ProbeConfig:
    """Fast-polling config with a short CI timeout."""
    ci = overrides.pop("ci", {})
    poller = overrides.pop("poller", {})
    return ProbeConfig(
        event_pattern=overrides.pop("event_pattern", '{"source": ["svc.a"]}'),
        poller=PollerConfig(**{"wait_seconds": 0, "backoff_seconds": 0.01, **poller}),
        ci=CIConfig(**{"timeout_seconds": 0.5, **ci}),
        **overrides,
    )


@pytest.fixture
def config_factory():
    return make_config
