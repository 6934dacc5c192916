"""AWS collaborators: Protocols for the control plane and the instance metadata service."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..models import HealthCheckSpec


@runtime_checkable
class ControlPlane(Protocol):
    """Load balancer operations the lifecycle controller depends on."""

    def register_target(self, target_group_arn: str, instance_id: str, port: int) -> None:
        ...

    def deregister_target(self, target_group_arn: str, instance_id: str, port: int) -> None:
        ...

    def describe_health_check(self, target_group_arn: str) -> HealthCheckSpec:
        """Return the health check path and expected status code of the target group."""
        ...


@runtime_checkable
class InstanceMetadata(Protocol):
    """Identity lookups answered by the host the process runs on."""

    def get_instance_id(self) -> str:
        ...

    def get_local_address(self) -> str:
        ...
