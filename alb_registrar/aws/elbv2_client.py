"""AWS boto3 client for registering targets with an ELBv2 target group."""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import AWSConfig
from ..exceptions import ConfigError, RegistrationError, TargetGroupLookupError
from ..models import HealthCheckSpec

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_CHECK_PATH = "/"


class ELBv2Client:
    """Registers, deregisters and inspects a single target in an ALB target group."""

    def __init__(self, aws_config: AWSConfig):
        self._config = aws_config

        session_kwargs: dict[str, Any] = {}
        if aws_config.region:
            session_kwargs["region_name"] = aws_config.region
        if aws_config.credential_profile:
            session_kwargs["profile_name"] = aws_config.credential_profile

        try:
            session = boto3.Session(**session_kwargs)
            self._elbv2 = session.client("elbv2")
        except BotoCoreError as exc:
            raise ConfigError(f"Cannot create ELBv2 client: {exc}") from exc

    # ── Registration ────────────────────────────────────────────────

    def register_target(self, target_group_arn: str, instance_id: str, port: int) -> None:
        try:
            self._elbv2.register_targets(
                TargetGroupArn=target_group_arn,
                Targets=[{"Id": instance_id, "Port": port}],
            )
        except (ClientError, BotoCoreError) as exc:
            raise _registration_error("register", exc) from exc
        logger.debug("RegisterTargets %s %s:%d", target_group_arn, instance_id, port)

    def deregister_target(self, target_group_arn: str, instance_id: str, port: int) -> None:
        try:
            self._elbv2.deregister_targets(
                TargetGroupArn=target_group_arn,
                Targets=[{"Id": instance_id, "Port": port}],
            )
        except (ClientError, BotoCoreError) as exc:
            raise _registration_error("deregister", exc) from exc
        logger.debug("DeregisterTargets %s %s:%d", target_group_arn, instance_id, port)

    # ── Health check configuration ──────────────────────────────────

    def describe_health_check(self, target_group_arn: str) -> HealthCheckSpec:
        """Read the health check path and matcher code configured on the target group."""
        try:
            response = self._elbv2.describe_target_groups(TargetGroupArns=[target_group_arn])
        except (ClientError, BotoCoreError) as exc:
            raise TargetGroupLookupError(f"DescribeTargetGroups failed for {target_group_arn}: {exc}") from exc

        groups = response.get("TargetGroups", [])
        if not groups:
            raise TargetGroupLookupError(f"Target group not found: {target_group_arn}")

        return _parse_health_check(groups[0])


def _parse_health_check(group: dict[str, Any]) -> HealthCheckSpec:
    """Build a HealthCheckSpec from a DescribeTargetGroups entry.

    Only a single matcher code is supported; lists ("200,302") and ranges
    ("200-299") are rejected.
    """
    arn = group.get("TargetGroupArn", "<unknown>")
    path = group.get("HealthCheckPath") or DEFAULT_HEALTH_CHECK_PATH

    http_code = group.get("Matcher", {}).get("HttpCode")
    if not http_code:
        raise TargetGroupLookupError(f"Target group {arn} has no HTTP matcher configured")

    try:
        status_code = int(http_code)
    except ValueError:
        raise TargetGroupLookupError(
            f"Target group {arn} matcher {http_code!r} is not a single HTTP status code"
        ) from None

    return HealthCheckSpec(path=path, expected_status_code=status_code)


def _registration_error(operation: str, exc: Exception) -> RegistrationError:
    error_code = None
    if isinstance(exc, ClientError):
        error_code = exc.response.get("Error", {}).get("Code")
    return RegistrationError(f"{operation} failed: {exc}", operation=operation, error_code=error_code)
