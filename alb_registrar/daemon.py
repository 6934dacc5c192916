"""Lifecycle orchestration: health gate, register, wait for a termination signal, drain."""

from __future__ import annotations

import dataclasses
import logging
import signal
import threading
from types import FrameType
from typing import Any

from .aws.elbv2_client import ELBv2Client
from .aws.metadata import InstanceMetadataClient
from .config import AppConfig
from .exceptions import RegistrarError
from .lifecycle import LifecycleController

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class Daemon:
    """Runs one instance through health gate -> register -> wait -> deregister."""

    def __init__(self, config: AppConfig, controller: LifecycleController | None = None):
        self._config = config
        self._controller = controller if controller is not None else self._build_controller(config)
        self._shutdown = threading.Event()
        self._original_handlers: dict[signal.Signals, Any] = {}

    @staticmethod
    def _build_controller(config: AppConfig) -> LifecycleController:
        """Resolve this host's identity and wire the AWS clients into a controller."""
        metadata = InstanceMetadataClient(config.metadata)

        aws_config = config.aws
        if not aws_config.region:
            region = metadata.get_region()
            logger.info("No region configured, using instance region %s", region)
            aws_config = dataclasses.replace(aws_config, region=region)

        return LifecycleController.from_metadata(
            config.target.target_group_arn,
            config.target.port,
            metadata,
            ELBv2Client(aws_config),
            poll_interval=config.health_check.poll_interval_seconds,
            request_timeout=config.health_check.request_timeout_seconds,
        )

    @property
    def controller(self) -> LifecycleController:
        return self._controller

    def run(self, shutdown: threading.Event | None = None) -> bool:
        """Run the full lifecycle. Returns False if the health gate failed and nothing was registered.

        With no shutdown event given, SIGINT and SIGTERM handlers are installed
        from just before registration until the instance has drained, so a
        signal that arrives mid-registration still leads to a deregister.
        """
        if self._config.health_check.enabled and not self.check_health():
            return False

        if shutdown is not None:
            self.register()
            self.wait_and_drain(shutdown)
            return True

        self._install_signal_handlers()
        try:
            self.register()
            self.wait_and_drain(self._shutdown)
        finally:
            self._restore_signal_handlers()
        return True

    def check_health(self) -> bool:
        port = self._controller.identity.port
        instance_id = self._controller.identity.instance_id
        healthy = self._controller.check_health(self._config.health_check.max_wait_seconds)
        if healthy:
            logger.info("Instance %s healthy on port %d", instance_id, port)
        else:
            logger.error("Instance %s unhealthy on port %d", instance_id, port)
        return healthy

    def register(self) -> None:
        """Register the instance; on failure deregister once to clean up and re-raise the original error."""
        ident = self._controller.identity
        try:
            self._controller.register()
        except RegistrarError:
            logger.error("Registration of %s failed, deregistering to clean up", ident.instance_id)
            try:
                self._controller.deregister()
            except RegistrarError as cleanup_exc:
                logger.warning("Cleanup deregistration failed: %s", cleanup_exc)
            raise

        logger.info(
            "Instance %s registered on port %d", ident.instance_id, ident.port,
            extra={"instance_id": ident.instance_id, "target_group": ident.target_group_arn, "port": ident.port},
        )

    def wait_and_drain(self, shutdown: threading.Event) -> None:
        """Block until shutdown is set, then deregister exactly once."""
        logger.info("Waiting for termination signal")
        shutdown.wait()
        self.deregister()

    def deregister(self) -> None:
        ident = self._controller.identity
        self._controller.deregister()
        logger.info(
            "Instance %s draining", ident.instance_id,
            extra={"instance_id": ident.instance_id, "target_group": ident.target_group_arn, "port": ident.port},
        )

    # ── Signals ─────────────────────────────────────────────────────

    def _install_signal_handlers(self) -> None:
        for sig in SHUTDOWN_SIGNALS:
            self._original_handlers[sig] = signal.signal(sig, self._handle_shutdown)

    def _restore_signal_handlers(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def _handle_shutdown(self, signum: int, frame: FrameType | None) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, draining", sig_name, extra={"signal": sig_name})
        self._shutdown.set()
