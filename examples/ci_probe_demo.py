#!/usr/bin/env python3
"""Runnable demo: probe a pattern end to end from Python.

Prerequisites:
    AWS credentials with EventBridge + SQS permissions
    uv run python examples/ci_probe_demo.py
"""

from __future__ import annotations

import asyncio
import sys

from rich.console import Console

from eventbridge_cli.aws import create_session
from eventbridge_cli.config.loader import load_probe_config
from eventbridge_cli.config.models import RunMode
from eventbridge_cli.errors import ProbeError
from eventbridge_cli.gateways.eventbridge import EventBridgeGateway
from eventbridge_cli.gateways.sqs import SQSGateway
from eventbridge_cli.lifecycle.coordinator import Coordinator
from eventbridge_cli.naming import RunIdentity
from eventbridge_cli.rendering import MessageRenderer

console = Console()


def main() -> None:
    # 1. Config from built-in defaults + a few overrides
    config = load_probe_config(
        overrides={
            "event_pattern": '{"source": ["demo.probe"]}',
            "pretty_json": True,
            "ci": {
                "timeout_seconds": 10,
                "input_event": (
                    '{"source": "demo.probe", "detail-type": "Demo", '
                    '"detail": {"hello": "world"}}'
                ),
            },
        }
    )

    # 2. One identity per run; every resource name derives from it
    identity = RunIdentity.generate()
    session = create_session(config.aws)
    coordinator = Coordinator(
        identity,
        EventBridgeGateway(config.event_bus_name, session=session),
        SQSGateway(session=session),
        config,
        renderer=MessageRenderer(console, pretty=True),
    )

    # 3. Provision, publish, wait, tear down
    try:
        outcome = asyncio.run(coordinator.run(RunMode.CI))
    except ProbeError as exc:
        console.print(f"[red]Probe failed:[/red] {exc}")
        console.print(f"  states: {[s.value for s in coordinator.history]}")
        sys.exit(exc.exit_code)

    console.print(
        f"[green]Delivered[/green] {outcome.messages_received} message(s) "
        f"via {outcome.resource_name}"
    )


if __name__ == "__main__":
    main()
