"""Exception hierarchy for the probe lifecycle.

Every error carries the process exit code the CLI reports for it.  Gateway
implementations translate boto3/botocore failures into these types so the
coordinator can apply its rollback policy without knowing about AWS.
"""

from __future__ import annotations


class ProbeError(Exception):
    """Base class for all eventbridge-cli failures."""

    exit_code: int = 1


class ConfigurationError(ProbeError):
    """Invalid configuration or unusable AWS credentials."""


class ResolutionError(ProbeError):
    """A pattern or event specifier could not be read or interpreted."""


class PatternNotFoundError(ResolutionError):
    """The template has no such function or no event-rule binding under it."""


class TemplateFormatError(ResolutionError):
    """The deployment template is not valid YAML or not a mapping."""


class CreationError(ProbeError):
    """A remote create call (rule or queue) failed."""


class LinkError(ProbeError):
    """Attaching or detaching the rule target failed."""


class PublishError(ProbeError):
    """The probe event was rejected, outright or per entry."""

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code


class PollTransportError(ProbeError):
    """Connection-level receive failure; retried with a fixed backoff."""


class PollFatalError(ProbeError):
    """Unrecoverable receive or rendering failure; stops the poller."""


class AcknowledgeError(ProbeError):
    """Deleting received messages from the queue failed."""

    def __init__(self, message: str, *, failed_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.failed_ids = failed_ids or []


class ProbeTimeoutError(ProbeError):
    """CI mode timer fired before any message arrived."""

    exit_code = 2


class RunInterrupted(ProbeError):
    """The operator interrupted a run that had not produced its verdict."""

    exit_code = 130


class TeardownError(ProbeError):
    """A rollback or teardown step failed.  Logged, never the run outcome."""


class PatternTestError(ProbeError):
    """Listing rules or testing a pattern remotely failed."""
