"""Instance lifecycle: health-gated registration with a target group and deregistration for drain."""

from __future__ import annotations

import logging
import time

import requests

from .aws import ControlPlane, InstanceMetadata
from .exceptions import HealthCheckError, MetadataUnavailable
from .models import Identity, RegistrationState

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_REQUEST_TIMEOUT = 2.0


class LifecycleController:
    """Owns one instance's membership in one target group.

    register() is forwarded to the API on every call, even when the
    controller is already REGISTERED; the load balancer treats a repeated
    registration as a no-op. deregister() is likewise safe to repeat.
    """

    def __init__(
        self,
        identity: Identity,
        control_plane: ControlPlane,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        http: requests.Session | None = None,
    ):
        self._identity = identity
        self._control_plane = control_plane
        self._poll_interval = poll_interval
        self._request_timeout = request_timeout
        self._http = http or requests.Session()
        self._state = RegistrationState.UNREGISTERED

    @classmethod
    def from_metadata(
        cls,
        target_group_arn: str,
        port: int,
        metadata: InstanceMetadata,
        control_plane: ControlPlane,
        **kwargs,
    ) -> LifecycleController:
        """Build a controller for this host, looking up its instance id and private address."""
        instance_id = metadata.get_instance_id()
        local_address = metadata.get_local_address()
        if not instance_id or not local_address:
            raise MetadataUnavailable("Instance metadata did not return an instance id and local address")

        identity = Identity(
            instance_id=instance_id,
            local_address=local_address,
            target_group_arn=target_group_arn,
            port=port,
        )
        logger.info(
            "Resolved instance %s at %s", instance_id, local_address,
            extra={"instance_id": instance_id, "target_group": target_group_arn, "port": port},
        )
        return cls(identity, control_plane, **kwargs)

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def state(self) -> RegistrationState:
        return self._state

    # ── Health gate ─────────────────────────────────────────────────

    def check_health(self, max_wait: float) -> bool:
        """Poll the local health endpoint until it answers with the target group's expected code.

        Returns True as soon as a poll matches, False once more than max_wait
        seconds have passed since the first poll. Raises TargetGroupLookupError
        if the health check configuration cannot be read and HealthCheckError
        on the first transport failure.
        """
        spec = self._control_plane.describe_health_check(self._identity.target_group_arn)
        url = self._identity.health_url(spec.path)
        logger.info("Waiting up to %.1fs for %s to return %d", max_wait, url, spec.expected_status_code)

        start = time.monotonic()
        attempts = 0
        while True:
            attempts += 1
            status_code = self._probe(url)

            if status_code == spec.expected_status_code:
                logger.info(
                    "Health check passed",
                    extra={
                        "attempts": attempts,
                        "status_code": status_code,
                        "elapsed_seconds": round(time.monotonic() - start, 2),
                    },
                )
                return True

            if time.monotonic() - start > max_wait:
                logger.warning(
                    "Health check timed out after %d attempts, last status %d",
                    attempts, status_code,
                    extra={"attempts": attempts, "status_code": status_code},
                )
                return False

            logger.debug("Health check attempt %d returned %d", attempts, status_code)
            time.sleep(self._poll_interval)

    def _probe(self, url: str) -> int:
        try:
            with self._http.get(url, timeout=self._request_timeout) as resp:
                return resp.status_code
        except requests.RequestException as exc:
            raise HealthCheckError(f"Health check request to {url} failed: {exc}") from exc

    # ── Registration ────────────────────────────────────────────────

    def register(self) -> None:
        ident = self._identity
        self._control_plane.register_target(ident.target_group_arn, ident.instance_id, ident.port)
        self._state = RegistrationState.REGISTERED

    def deregister(self) -> None:
        ident = self._identity
        self._control_plane.deregister_target(ident.target_group_arn, ident.instance_id, ident.port)
        self._state = RegistrationState.DRAINING
