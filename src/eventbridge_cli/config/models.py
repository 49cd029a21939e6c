"""Pydantic configuration models for probe runs."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from eventbridge_cli.naming import DEFAULT_NAMESPACE, MAX_RESOURCE_NAME_LENGTH

DEFAULT_EVENT_PATTERN = f'{{"source": [{{"anything-but": ["{DEFAULT_NAMESPACE}"]}}]}}'

# len("-") + len(str(uuid4()))
_RUN_SUFFIX_LENGTH = 37


class RunMode(StrEnum):
    """How the coordinator observes the probe queue."""

    INTERACTIVE = "interactive"
    CI = "ci"


class AWSConfig(BaseModel):
    """Credential profile and region override for the boto3 session."""

    profile: str | None = None
    region: str | None = None


class PollerConfig(BaseModel):
    """SQS long-poll tuning."""

    max_messages: int = Field(default=10, ge=1, le=10)
    wait_seconds: int = Field(default=5, ge=0, le=20)
    # Fixed wait before retrying a receive that failed at connection level
    backoff_seconds: float = Field(default=10.0, ge=0.0)


class CIConfig(BaseModel):
    """Bounded single-shot mode settings."""

    timeout_seconds: float = Field(default=12.0, gt=0)
    input_event: str | None = None


class ProbeConfig(BaseModel, extra="forbid"):
    """Everything a probe run needs besides the run identity."""

    namespace: str = DEFAULT_NAMESPACE
    event_bus_name: str = Field(default="default", min_length=1)
    event_pattern: str = DEFAULT_EVENT_PATTERN
    pretty_json: bool = False
    aws: AWSConfig = AWSConfig()
    poller: PollerConfig = PollerConfig()
    ci: CIConfig = CIConfig()

    @field_validator("namespace")
    @classmethod
    def validate_namespace_length(cls, v: str) -> str:
        """Leave room for the run id within the rule-name limit."""
        if not v:
            msg = "namespace must not be empty"
            raise ValueError(msg)
        if len(v) + _RUN_SUFFIX_LENGTH > MAX_RESOURCE_NAME_LENGTH:
            msg = (
                f"namespace '{v}' is too long: at most "
                f"{MAX_RESOURCE_NAME_LENGTH - _RUN_SUFFIX_LENGTH} characters"
            )
            raise ValueError(msg)
        return v
