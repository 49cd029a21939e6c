"""Poller — drains the probe queue as an independent asyncio task."""

from __future__ import annotations

import asyncio
from enum import StrEnum

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_when_event_set,
    wait_fixed,
)

from eventbridge_cli.config.models import PollerConfig
from eventbridge_cli.errors import AcknowledgeError, PollTransportError
from eventbridge_cli.gateways.base import DeliveredMessage, QueueGateway
from eventbridge_cli.lifecycle.signals import OneShotSignal
from eventbridge_cli.rendering import MessageRenderer

logger = structlog.get_logger()


class PollerMode(StrEnum):
    INTERACTIVE = "interactive"  # until stopped
    CI = "ci"  # first non-empty batch


class PollerState(StrEnum):
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Poller:
    """Receive → render → acknowledge loop over one queue.

    The only inbound channel is the ``stop`` signal, checked at the top of
    every iteration; an in-flight receive or acknowledge always completes
    first.  Completion is reported by ``run()`` returning (CI mode) and
    fatal failures by it raising ``PollFatalError``.
    """

    def __init__(
        self,
        queue: QueueGateway,
        queue_url: str,
        renderer: MessageRenderer,
        stop: OneShotSignal,
        *,
        mode: PollerMode = PollerMode.INTERACTIVE,
        config: PollerConfig | None = None,
    ) -> None:
        self._queue = queue
        self._queue_url = queue_url
        self._renderer = renderer
        self._stop = stop
        self._mode = mode
        self._config = config or PollerConfig()
        self._state = PollerState.RUNNING
        self._processed = 0
        self._batches = 0

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def processed(self) -> int:
        return self._processed

    async def run(self) -> int:
        """Poll until stopped (or, in CI mode, the first batch); return count."""
        self._state = PollerState.RUNNING
        logger.info("poller.started", queue_url=self._queue_url, mode=self._mode)
        try:
            while True:
                if self._stop.is_set():
                    self._state = PollerState.STOPPING
                    logger.info("poller.stopping", reason=self._stop.reason)
                    break

                try:
                    messages = await self._receive()
                except PollTransportError:
                    # retries were abandoned because stop fired
                    continue

                if not messages:
                    continue

                self._handle_batch(messages)
                await self._acknowledge(messages)
                self._processed += len(messages)
                self._batches += 1

                if self._mode is PollerMode.CI:
                    break
        except Exception as exc:
            logger.error("poller.failed", queue_url=self._queue_url, error=str(exc))
            raise
        finally:
            self._state = PollerState.STOPPED
            logger.info(
                "poller.stopped",
                messages=self._processed,
                batches=self._batches,
            )
        return self._processed

    async def _receive(self) -> list[DeliveredMessage]:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(PollTransportError),
            wait=wait_fixed(self._config.backoff_seconds),
            stop=stop_when_event_set(self._stop),  # type: ignore[arg-type]
            sleep=self._backoff,
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                if self._stop.is_set():
                    return []
                return await self._queue.receive_batch(
                    self._queue_url,
                    max_messages=self._config.max_messages,
                    wait_seconds=self._config.wait_seconds,
                )
        raise AssertionError("unreachable")  # pragma: no cover

    async def _backoff(self, seconds: float) -> None:
        """Sleep between retries, waking early once stop fires."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except TimeoutError:
            pass

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        logger.warning(
            "poller.receive_retry",
            attempt=retry_state.attempt_number,
            backoff_seconds=self._config.backoff_seconds,
            error=str(outcome.exception()) if outcome else None,
        )

    def _handle_batch(self, messages: list[DeliveredMessage]) -> None:
        for message in messages:
            logger.debug("poller.message_received", message_id=message.message_id)
            self._renderer.render(message)

    async def _acknowledge(self, messages: list[DeliveredMessage]) -> None:
        try:
            await self._queue.acknowledge_batch(self._queue_url, messages)
        except AcknowledgeError as exc:
            # redelivery is acceptable; the batch has already been shown
            logger.warning(
                "poller.acknowledge_failed",
                error=str(exc),
                failed_ids=exc.failed_ids,
            )
