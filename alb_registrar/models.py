"""Data models for the instance identity, health check and registration state."""

from __future__ import annotations

import enum
from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    """Who this process registers, and where."""

    instance_id: str
    local_address: str
    target_group_arn: str
    port: int

    def health_url(self, path: str) -> str:
        """URL of the local health endpoint, e.g. 'http://10.0.0.5:8080/health'."""
        if not path.startswith("/"):
            path = f"/{path}"
        return f"http://{self.local_address}:{self.port}{path}"


@dataclass(frozen=True)
class HealthCheckSpec:
    """The path and status code the target group uses to judge a target healthy."""

    path: str
    expected_status_code: int


class RegistrationState(enum.Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    DRAINING = "draining"
