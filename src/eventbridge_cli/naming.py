"""Run identity and temporary resource naming conventions."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

DEFAULT_NAMESPACE = "eventbridge-cli"

# EventBridge rule names and target ids share this limit; SQS allows 80.
MAX_RESOURCE_NAME_LENGTH = 64


def resource_name(namespace: str, run_id: str) -> str:
    """Build the ``<namespace>-<runID>`` name shared by all run resources."""
    name = f"{namespace}-{run_id}"
    if len(name) > MAX_RESOURCE_NAME_LENGTH:
        msg = (
            f"Resource name '{name}' exceeds {MAX_RESOURCE_NAME_LENGTH} characters; "
            "use a shorter namespace"
        )
        raise ValueError(msg)
    return name


@dataclass(frozen=True, slots=True)
class RunIdentity:
    """Process-scoped token from which every temporary resource name derives.

    Create one per run with :meth:`generate` and pass it to the coordinator
    explicitly; nothing in the package reads it from module state.
    """

    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    namespace: str = DEFAULT_NAMESPACE

    def __post_init__(self) -> None:
        # fail fast on names the remote services would reject
        resource_name(self.namespace, self.run_id)

    @classmethod
    def generate(cls, namespace: str = DEFAULT_NAMESPACE) -> RunIdentity:
        return cls(run_id=str(uuid.uuid4()), namespace=namespace)

    @property
    def resource_name(self) -> str:
        return resource_name(self.namespace, self.run_id)

    @property
    def rule_name(self) -> str:
        return self.resource_name

    @property
    def queue_name(self) -> str:
        return self.resource_name

    @property
    def target_id(self) -> str:
        return self.resource_name

    @property
    def rule_description(self) -> str:
        return f"[{self.namespace}] temp rule"


@dataclass(frozen=True, slots=True)
class ArnParts:
    partition: str
    service: str
    region: str
    account_id: str
    resource: str


def parse_arn(arn: str) -> ArnParts:
    """Split an ARN into its components.

    >>> parse_arn("arn:aws:events:eu-north-1:123456789012:rule/x").account_id
    '123456789012'
    """
    parts = arn.split(":", 5)
    if len(parts) != 6 or parts[0] != "arn":
        msg = f"Not a valid ARN: '{arn}'"
        raise ValueError(msg)
    _, partition, service, region, account_id, resource = parts
    return ArnParts(partition, service, region, account_id, resource)


def queue_arn_for_rule(rule_arn: str, queue_name: str) -> str:
    """Derive the ARN a queue will have in the rule's partition/region/account."""
    rule = parse_arn(rule_arn)
    return f"arn:{rule.partition}:sqs:{rule.region}:{rule.account_id}:{queue_name}"
