"""Unit tests for the Typer CLI."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from eventbridge_cli import __version__
from eventbridge_cli.cli import app
from eventbridge_cli.config.models import ProbeConfig, RunMode
from eventbridge_cli.errors import (
    ConfigurationError,
    PatternTestError,
    ProbeTimeoutError,
    RunInterrupted,
)
from eventbridge_cli.gateways.base import PatternTestResult
from eventbridge_cli.lifecycle.coordinator import OutcomeStatus, RunOutcome

TESTDATA = Path(__file__).resolve().parents[1] / "testdata"

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_aws_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("AWS_DEFAULT_REGION", raising=False)


@pytest.fixture
def session():
    with patch("eventbridge_cli.cli.create_session") as create_session:
        yield create_session


@pytest.fixture
def coordinator_cls():
    with patch("eventbridge_cli.cli.Coordinator") as cls:
        cls.return_value.run = AsyncMock(
            return_value=RunOutcome(OutcomeStatus.RECEIVED, 1, "eventbridge-cli-x")
        )
        yield cls


def _config(coordinator_cls: MagicMock) -> ProbeConfig:
    return coordinator_cls.call_args.args[3]


def _mode(coordinator_cls: MagicMock) -> RunMode:
    return coordinator_cls.return_value.run.call_args.args[0]


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestCICommand:
    def test_success(self, session, coordinator_cls):
        event = f"file://{TESTDATA / 'event_ci_success.json'}"
        result = runner.invoke(
            app,
            ["-e", f"file://{TESTDATA / 'eventpattern.json'}", "ci", "-t", "3", "-i", event],
        )

        assert result.exit_code == 0, result.output
        assert "CI successful" in result.output
        config = _config(coordinator_cls)
        assert config.event_pattern.startswith("file://")
        assert config.ci.timeout_seconds == 3
        assert config.ci.input_event == event
        assert _mode(coordinator_cls) is RunMode.CI

    def test_default_timeout(self, session, coordinator_cls):
        result = runner.invoke(app, ["ci"])
        assert result.exit_code == 0, result.output
        assert _config(coordinator_cls).ci.timeout_seconds == 12

    def test_timeout_exit_code(self, session, coordinator_cls):
        coordinator_cls.return_value.run.side_effect = ProbeTimeoutError(
            "CI failed - no event received within 3 seconds"
        )
        result = runner.invoke(app, ["ci", "-t", "3"])
        assert result.exit_code == 2
        assert "CI failed" in result.output

    def test_interrupted_exit_code(self, session, coordinator_cls):
        coordinator_cls.return_value.run.side_effect = RunInterrupted("Interrupted")
        result = runner.invoke(app, ["ci"])
        assert result.exit_code == 130

    def test_credentials_error_before_any_resource(self, session, coordinator_cls):
        session.side_effect = ConfigurationError("No AWS credentials found")
        result = runner.invoke(app, ["-p", "missing", "ci"])
        assert result.exit_code == 1
        assert "No AWS credentials found" in result.output
        coordinator_cls.assert_not_called()


class TestInteractive:
    def test_no_subcommand_runs_until_interrupted(self, session, coordinator_cls):
        coordinator_cls.return_value.run.return_value = RunOutcome(
            OutcomeStatus.INTERRUPTED, 4, "eventbridge-cli-x"
        )
        result = runner.invoke(app, ["-b", "orders", "-j"])

        assert result.exit_code == 0, result.output
        assert "Stopped" in result.output
        assert _mode(coordinator_cls) is RunMode.INTERACTIVE
        config = _config(coordinator_cls)
        assert config.event_bus_name == "orders"
        assert config.pretty_json is True

    def test_aws_options_reach_session(self, session, coordinator_cls):
        runner.invoke(app, ["-p", "dev", "-r", "eu-west-1"])
        aws = session.call_args.args[0]
        assert aws.profile == "dev"
        assert aws.region == "eu-west-1"

    def test_config_file_with_cli_override(
        self, session, coordinator_cls, tmp_path: Path
    ):
        path = tmp_path / "probe.yaml"
        path.write_text("event_bus_name: orders\npretty_json: true\n")

        result = runner.invoke(app, ["-c", str(path), "-b", "payments"])

        assert result.exit_code == 0, result.output
        config = _config(coordinator_cls)
        assert config.event_bus_name == "payments"
        assert config.pretty_json is True

    def test_invalid_config_file(self, session, coordinator_cls, tmp_path: Path):
        path = tmp_path / "probe.yaml"
        path.write_text("poller:\n  max_messages: 99\n")
        result = runner.invoke(app, ["-c", str(path)])
        assert result.exit_code == 1
        assert "Invalid probe config" in result.output


class TestTestEvent:
    @staticmethod
    def _gateway(results: list[PatternTestResult]) -> MagicMock:
        gateway = MagicMock()

        async def _test_pattern(prefix: str, event_json: str):
            for result in results:
                yield result

        gateway.test_pattern = MagicMock(side_effect=_test_pattern)
        return gateway

    def test_table_of_results(self, session):
        gateway = self._gateway(
            [PatternTestResult("svc-a", True), PatternTestResult("svc-b", False)]
        )
        with patch("eventbridge_cli.cli.EventBridgeGateway", return_value=gateway):
            result = runner.invoke(
                app,
                [
                    "test-event",
                    "-r",
                    "svc-",
                    "-i",
                    f"file://{TESTDATA / 'full_event.json'}",
                ],
            )

        assert result.exit_code == 0, result.output
        assert "svc-a" in result.output
        assert "svc-b" in result.output
        assert "✔" in result.output
        assert "✘" in result.output
        prefix, event_json = gateway.test_pattern.call_args.args
        assert prefix == "svc-"
        assert '"source": "svc.a"' in event_json

    def test_no_rules_with_prefix(self, session):
        gateway = self._gateway([])
        with patch("eventbridge_cli.cli.EventBridgeGateway", return_value=gateway):
            result = runner.invoke(app, ["test-event", "-r", "nope-", "-i", "{}"])
        assert result.exit_code == 0
        assert "No event rule with prefix" in result.output

    def test_remote_failure(self, session):
        gateway = MagicMock()

        async def _failing(prefix: str, event_json: str):
            raise PatternTestError("Failed to list rules: AccessDenied")
            yield  # pragma: no cover

        gateway.test_pattern = MagicMock(side_effect=_failing)
        with patch("eventbridge_cli.cli.EventBridgeGateway", return_value=gateway):
            result = runner.invoke(app, ["test-event", "-i", "{}"])
        assert result.exit_code == 1
        assert "AccessDenied" in result.output

    def test_input_event_required(self, session):
        result = runner.invoke(app, ["test-event"])
        assert result.exit_code == 2
