"""Coordinator — provision → observe → teardown lifecycle for one probe run.

Sequence::

    resolving → creating_rule → creating_queue → linking → (publishing)
              → observing → tearing_down → done

Each successful creation pushes its undo onto an ``AsyncExitStack``.  Any
exit from the sequence (failure, timeout, operator interrupt, success)
unwinds that stack, so rollback and teardown are the same code and always
run in reverse dependency order: target, queue, rule.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from dataclasses import dataclass
from enum import StrEnum

import structlog

from eventbridge_cli.config.models import ProbeConfig, RunMode
from eventbridge_cli.errors import ProbeTimeoutError, RunInterrupted
from eventbridge_cli.gateways.base import (
    BusGateway,
    ProbeEvent,
    QueueGateway,
    QueueHandle,
    RuleHandle,
)
from eventbridge_cli.gateways.sqs import build_queue_policy
from eventbridge_cli.lifecycle.poller import Poller, PollerMode
from eventbridge_cli.lifecycle.signals import OneShotSignal, forward_os_signals
from eventbridge_cli.naming import RunIdentity, queue_arn_for_rule
from eventbridge_cli.patterns.resolver import resolve_pattern
from eventbridge_cli.rendering import MessageRenderer

logger = structlog.get_logger()


class CoordinatorState(StrEnum):
    IDLE = "idle"
    RESOLVING = "resolving"
    CREATING_RULE = "creating_rule"
    CREATING_QUEUE = "creating_queue"
    LINKING = "linking"
    PUBLISHING = "publishing"
    OBSERVING = "observing"
    TEARING_DOWN = "tearing_down"
    DONE = "done"


class OutcomeStatus(StrEnum):
    RECEIVED = "received"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True, slots=True)
class RunOutcome:
    status: OutcomeStatus
    messages_received: int
    resource_name: str


class Coordinator:
    """Runs one probe end to end against the given gateways.

    The run identity is passed in rather than generated here so that tests
    (or a caller running several probes) control every resource name.
    """

    def __init__(
        self,
        identity: RunIdentity,
        bus: BusGateway,
        queue: QueueGateway,
        config: ProbeConfig,
        *,
        renderer: MessageRenderer | None = None,
        interrupt: OneShotSignal | None = None,
        handle_os_signals: bool = True,
    ) -> None:
        self._identity = identity
        self._bus = bus
        self._queue = queue
        self._config = config
        self._renderer = renderer or MessageRenderer(pretty=config.pretty_json)
        self._interrupt = interrupt or OneShotSignal("interrupt")
        self._stop = OneShotSignal("poller-stop")
        self._handle_os_signals = handle_os_signals
        self._state = CoordinatorState.IDLE
        self.history: list[CoordinatorState] = []
        self.rule: RuleHandle | None = None
        self.queue: QueueHandle | None = None
        self._poller: Poller | None = None

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def identity(self) -> RunIdentity:
        return self._identity

    @property
    def interrupt(self) -> OneShotSignal:
        return self._interrupt

    def _enter(self, state: CoordinatorState) -> None:
        self._state = state
        self.history.append(state)
        logger.info(
            "coordinator.state",
            state=state,
            run_id=self._identity.run_id,
        )

    def _check_interrupt(self) -> None:
        if self._interrupt.is_set():
            logger.warning("coordinator.interrupted_during_setup", state=self._state)
            raise RunInterrupted(
                f"Interrupted ({self._interrupt.reason}) while {self._state}"
            )

    # -- Entry point -----------------------------------------------------------

    async def run(self, mode: RunMode = RunMode.INTERACTIVE) -> RunOutcome:
        """Execute the whole lifecycle; raise the run's failure, if any."""
        if self._state is not CoordinatorState.IDLE:
            msg = "A Coordinator runs exactly once; create a new one per run"
            raise RuntimeError(msg)

        try:
            async with AsyncExitStack() as stack:
                if self._handle_os_signals:
                    stack.enter_context(forward_os_signals(self._interrupt))
                return await self._run(mode, stack)
        finally:
            self._enter(CoordinatorState.DONE)

    async def _run(self, mode: RunMode, stack: AsyncExitStack) -> RunOutcome:
        self._enter(CoordinatorState.RESOLVING)
        pattern = resolve_pattern(self._config.event_pattern)
        probe_event: ProbeEvent | None = None
        if mode is RunMode.CI and self._config.ci.input_event:
            probe_event = ProbeEvent.parse(resolve_pattern(self._config.ci.input_event))
        self._check_interrupt()

        self._enter(CoordinatorState.CREATING_RULE)
        logger.info(
            "coordinator.creating_rule", bus=self._bus.bus_name, pattern=pattern
        )
        rule = await self._bus.create_rule(
            self._identity.rule_name, self._identity.rule_description, pattern
        )
        self.rule = rule
        stack.push_async_callback(
            self._undo, "delete_rule", self._bus.delete_rule, rule.name
        )
        self._check_interrupt()

        self._enter(CoordinatorState.CREATING_QUEUE)
        queue_arn = queue_arn_for_rule(rule.arn, self._identity.queue_name)
        policy = build_queue_policy(self._identity.run_id, queue_arn, rule.arn)
        queue = await self._queue.create_queue(self._identity.queue_name, policy)
        self.queue = queue
        stack.push_async_callback(
            self._undo, "delete_queue", self._queue.delete_queue, queue.url
        )
        self._check_interrupt()

        self._enter(CoordinatorState.LINKING)
        await self._bus.put_target(rule.name, self._identity.target_id, queue.arn)
        stack.push_async_callback(
            self._undo,
            "remove_target",
            self._bus.remove_target,
            rule.name,
            self._identity.target_id,
        )
        logger.info("coordinator.linked", rule=rule.name, queue=queue.url)
        self._check_interrupt()

        if probe_event is not None:
            self._enter(CoordinatorState.PUBLISHING)
            await self._bus.publish_event(probe_event)

        self._enter(CoordinatorState.OBSERVING)
        self._poller = Poller(
            self._queue,
            queue.url,
            self._renderer,
            self._stop,
            mode=PollerMode.CI if mode is RunMode.CI else PollerMode.INTERACTIVE,
            config=self._config.poller,
        )
        poller_task = asyncio.create_task(
            self._poller.run(), name=f"poller-{self._identity.run_id}"
        )
        stack.push_async_callback(self._drain_poller, poller_task)

        if mode is RunMode.CI:
            return await self._observe_ci(poller_task)
        return await self._observe_interactive(poller_task)

    # -- Observation -----------------------------------------------------------

    async def _race(
        self, poller_task: asyncio.Task[int], timeout: float | None
    ) -> tuple[bool, bool]:
        """Wait for the poller or an interrupt; return (poller_done, interrupted)."""
        interrupt_task = asyncio.create_task(self._interrupt.wait())
        try:
            done, _ = await asyncio.wait(
                {poller_task, interrupt_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            interrupt_task.cancel()
        return poller_task in done, interrupt_task in done

    async def _observe_ci(self, poller_task: asyncio.Task[int]) -> RunOutcome:
        timeout = self._config.ci.timeout_seconds
        logger.info("coordinator.ci_waiting", timeout_seconds=timeout)
        poller_done, interrupted = await self._race(poller_task, timeout)

        if poller_done:
            # raises PollFatalError if the poller died
            received = poller_task.result()
            logger.info("coordinator.ci_succeeded", messages=received)
            return RunOutcome(
                OutcomeStatus.RECEIVED, received, self._identity.resource_name
            )

        if interrupted:
            self._stop.fire("interrupt")
            raise RunInterrupted(
                f"Interrupted ({self._interrupt.reason}) before any event arrived"
            )

        self._stop.fire("timeout")
        logger.warning("coordinator.ci_timeout", timeout_seconds=timeout)
        raise ProbeTimeoutError(
            f"CI failed - no event received within {timeout:g} seconds"
        )

    async def _observe_interactive(self, poller_task: asyncio.Task[int]) -> RunOutcome:
        logger.info("coordinator.waiting_for_interrupt", hint="press ctrl+c to stop")
        poller_done, _ = await self._race(poller_task, None)

        if poller_done:
            received = poller_task.result()
        else:
            logger.info("coordinator.interrupt_received", reason=self._interrupt.reason)
            self._stop.fire("interrupt")
            received = self._poller.processed if self._poller else 0
        return RunOutcome(
            OutcomeStatus.INTERRUPTED, received, self._identity.resource_name
        )

    # -- Unwinding -------------------------------------------------------------

    def _begin_teardown(self) -> None:
        if self._state is not CoordinatorState.TEARING_DOWN:
            self._enter(CoordinatorState.TEARING_DOWN)

    async def _drain_poller(self, task: asyncio.Task[int]) -> None:
        """Stop the poller and give its in-flight receive time to finish."""
        self._begin_teardown()
        self._stop.fire("teardown")
        if not task.done():
            grace = self._config.poller.wait_seconds + 1
            await asyncio.wait({task}, timeout=grace)
        if not task.done():
            logger.warning("poller.cancelled_after_grace")
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            return
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("poller.exit_error", error=str(exc))

    async def _undo(
        self,
        step: str,
        action: Callable[..., Awaitable[None]],
        *args: str,
    ) -> None:
        """Run one teardown step; failures are logged and never propagate."""
        self._begin_teardown()
        logger.info("teardown.step", step=step, resource=args[-1])
        try:
            await action(*args)
        except Exception as exc:
            logger.warning("teardown.step_failed", step=step, error=str(exc))
