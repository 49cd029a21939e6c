"""boto3 session construction and credential validation."""

from __future__ import annotations

from typing import Any

import structlog
from botocore.exceptions import BotoCoreError

from eventbridge_cli.config.models import AWSConfig
from eventbridge_cli.errors import ConfigurationError

logger = structlog.get_logger()


def create_session(config: AWSConfig) -> Any:
    """Return a boto3 Session for the configured profile and region.

    Credentials are resolved eagerly so a missing or expired profile fails
    before any temporary resource is created.
    """
    import boto3

    try:
        session = boto3.Session(
            profile_name=config.profile or None,
            region_name=config.region or None,
        )
        credentials = session.get_credentials()
        if credentials is None:
            msg = "No AWS credentials found"
            if config.profile:
                msg += f" for profile '{config.profile}'"
            raise ConfigurationError(msg)
        # forces a refresh for assume-role / SSO credential providers
        credentials.get_frozen_credentials()
    except BotoCoreError as exc:
        raise ConfigurationError(f"Unable to load AWS configuration: {exc}") from exc

    if session.region_name is None:
        msg = "No AWS region configured; pass --region or set AWS_DEFAULT_REGION"
        raise ConfigurationError(msg)

    logger.info(
        "aws.session_ready",
        profile=config.profile or "default",
        region=session.region_name,
    )
    return session
