"""Operator-facing rendering of delivered messages."""

from __future__ import annotations

import json

from rich.console import Console
from rich.json import JSON

from eventbridge_cli.errors import PollFatalError
from eventbridge_cli.gateways.base import DeliveredMessage


class MessageRenderer:
    """Prints message bodies verbatim or as indented, highlighted JSON."""

    def __init__(
        self,
        console: Console | None = None,
        *,
        pretty: bool = False,
        indent: int = 2,
    ) -> None:
        self._console = console or Console()
        self._pretty = pretty
        self._indent = indent

    @property
    def pretty(self) -> bool:
        return self._pretty

    def render(self, message: DeliveredMessage) -> None:
        """Print one message; a non-JSON body in pretty mode is fatal."""
        if not self._pretty:
            self._console.print(
                message.body, markup=False, highlight=False, soft_wrap=True
            )
            return

        try:
            data = json.loads(message.body)
        except json.JSONDecodeError as exc:
            msg = f"Message {message.message_id} body is not valid JSON: {exc}"
            raise PollFatalError(msg) from exc
        self._console.print(JSON.from_data(data, indent=self._indent))
