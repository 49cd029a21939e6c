"""Typer CLI for eventbridge-cli."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from eventbridge_cli import __version__
from eventbridge_cli.aws import create_session
from eventbridge_cli.config.loader import load_probe_config
from eventbridge_cli.config.models import ProbeConfig, RunMode
from eventbridge_cli.errors import ProbeError, ProbeTimeoutError
from eventbridge_cli.gateways.base import PatternTestResult
from eventbridge_cli.gateways.eventbridge import EventBridgeGateway
from eventbridge_cli.gateways.sqs import SQSGateway
from eventbridge_cli.lifecycle.coordinator import Coordinator, OutcomeStatus
from eventbridge_cli.naming import RunIdentity
from eventbridge_cli.patterns.resolver import resolve_pattern
from eventbridge_cli.rendering import MessageRenderer

logger = structlog.get_logger()
console = Console()
app = typer.Typer(
    name="eventbridge-cli",
    help="AWS EventBridge cli: route a temporary rule to a temporary SQS queue",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"eventbridge-cli {__version__}")
        raise typer.Exit()


def _load(ctx: typer.Context, extra: dict[str, Any] | None = None) -> ProbeConfig:
    options: dict[str, Any] = ctx.obj or {}
    overrides = dict(options.get("overrides", {}))
    if extra:
        overrides.update(extra)
    return load_probe_config(options.get("config_path"), overrides)


def _fail(exc: ProbeError, label: str = "Error") -> typer.Exit:
    console.print(f"[red]{label}:[/red] {escape(str(exc))}")
    return typer.Exit(exc.exit_code)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    profile: str | None = typer.Option(
        None, "--profile", "-p", envvar="AWS_PROFILE", help="AWS profile"
    ),
    region: str | None = typer.Option(
        None, "--region", "-r", envvar="AWS_DEFAULT_REGION", help="AWS region"
    ),
    event_bus_name: str | None = typer.Option(
        None, "--eventbusname", "-b", help="EventBridge bus name [default: default]"
    ),
    event_pattern: str | None = typer.Option(
        None,
        "--eventpattern",
        "-e",
        help=(
            "EventBridge event pattern. Prefix with 'file://' to read a file or "
            "'template://<template.yaml>/<Function>' to read it from a SAM template"
        ),
    ),
    pretty_json: bool = typer.Option(
        False, "--prettyjson", "-j", help="Pretty JSON output"
    ),
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="YAML config file"
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """Create a temporary rule + queue and print every matching event.

    Without a sub-command, runs until interrupted (ctrl+c) and then removes
    everything it created.
    """
    ctx.obj = {
        "config_path": config_path,
        "overrides": {
            "event_bus_name": event_bus_name,
            "event_pattern": event_pattern,
            "pretty_json": pretty_json or None,
            "aws": {"profile": profile, "region": region},
        },
    }
    if ctx.invoked_subcommand is None:
        _run_probe(ctx, RunMode.INTERACTIVE)


@app.command()
def ci(
    ctx: typer.Context,
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for an event [default: 12]"
    ),
    input_event: str | None = typer.Option(
        None,
        "--inputevent",
        "-i",
        help="Event to publish once linked. Prefix with 'file://' to read a file",
    ),
) -> None:
    """CI mode: succeed on the first delivered event, fail on timeout."""
    _run_probe(
        ctx,
        RunMode.CI,
        {"ci": {"timeout_seconds": timeout, "input_event": input_event}},
    )


@app.command("test-event")
def test_event(
    ctx: typer.Context,
    input_event: str = typer.Option(
        ...,
        "--inputevent",
        "-i",
        help="Full event JSON to test. Prefix with 'file://' to read a file",
    ),
    event_rule: str = typer.Option(
        "", "--eventrule", "-r", help="Only test rules whose name has this prefix"
    ),
) -> None:
    """Test an event against the patterns of deployed rules."""
    try:
        config = _load(ctx)
        event_json = resolve_pattern(input_event)
        session = create_session(config.aws)
        bus = EventBridgeGateway(config.event_bus_name, session=session)
        results = asyncio.run(_collect_pattern_results(bus, event_rule, event_json))
    except ProbeError as exc:
        raise _fail(exc) from exc

    if not results:
        console.print(f"[yellow]No event rule with prefix: {event_rule!r}[/yellow]")
        return

    table = Table(title=f"Event rules on bus '{config.event_bus_name}'")
    table.add_column("Rule", style="cyan")
    table.add_column("Match")
    for result in results:
        mark = "[green]✔[/green]" if result.matched else "[red]✘[/red]"
        table.add_row(result.rule_name, mark)
    console.print(table)


async def _collect_pattern_results(
    bus: EventBridgeGateway, prefix: str, event_json: str
) -> list[PatternTestResult]:
    return [result async for result in bus.test_pattern(prefix, event_json)]


def _run_probe(
    ctx: typer.Context,
    mode: RunMode,
    extra: dict[str, Any] | None = None,
) -> None:
    try:
        config = _load(ctx, extra)
        session = create_session(config.aws)
    except ProbeError as exc:
        raise _fail(exc) from exc

    identity = RunIdentity.generate(config.namespace)
    coordinator = Coordinator(
        identity,
        EventBridgeGateway(config.event_bus_name, session=session),
        SQSGateway(session=session),
        config,
        renderer=MessageRenderer(console, pretty=config.pretty_json),
    )

    console.print(
        f"[yellow]Probing bus[/yellow] {config.event_bus_name} "
        f"[dim]({identity.resource_name})[/dim]"
    )
    if mode is RunMode.INTERACTIVE:
        console.print("[dim]press ctrl+c to stop[/dim]")

    try:
        outcome = asyncio.run(coordinator.run(mode))
    except ProbeTimeoutError as exc:
        raise _fail(exc, "CI failed") from exc
    except ProbeError as exc:
        raise _fail(exc) from exc

    if outcome.status is OutcomeStatus.RECEIVED:
        console.print(
            f"[green]CI successful:[/green] {outcome.messages_received} message(s) received"
        )
    else:
        console.print(
            f"[green]Stopped:[/green] {outcome.messages_received} message(s) received, "
            "temporary resources removed"
        )
