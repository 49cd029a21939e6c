"""Single-use stop/interrupt signals shared between coordinator and poller."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

logger = structlog.get_logger()


class OneShotSignal:
    """An event that can be fired exactly once.

    Firing again is a logged no-op rather than an error, so the timeout path,
    the interrupt path and teardown can all request a stop without
    coordinating who goes first.  ``reason`` records the first firer.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def reason(self) -> str | None:
        return self._reason

    def is_set(self) -> bool:
        return self._event.is_set()

    def fire(self, reason: str) -> bool:
        """Fire the signal; returns False if it had already been fired."""
        if self._event.is_set():
            logger.debug(
                "signal.already_fired",
                signal=self._name,
                reason=reason,
                first_reason=self._reason,
            )
            return False
        self._reason = reason
        self._event.set()
        logger.debug("signal.fired", signal=self._name, reason=reason)
        return True

    async def wait(self) -> str | None:
        await self._event.wait()
        return self._reason


INTERRUPT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@contextmanager
def forward_os_signals(
    target: OneShotSignal,
    signals: tuple[signal.Signals, ...] = INTERRUPT_SIGNALS,
) -> Iterator[None]:
    """Fire *target* on SIGINT/SIGTERM while the block runs.

    Must be entered from inside the running event loop.  Handlers are
    removed on exit, restoring the default behaviour.
    """
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in signals:
        try:
            loop.add_signal_handler(sig, target.fire, sig.name)
        except (NotImplementedError, RuntimeError):
            # not on the main thread, or a loop without signal support
            logger.warning("signals.handler_unavailable", signal=sig.name)
            continue
        installed.append(sig)
    try:
        yield
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
