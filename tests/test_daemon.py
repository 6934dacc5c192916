"""Tests for lifecycle orchestration: health gate, compensation and drain on signal."""

from __future__ import annotations

import os
import signal
import sys
import threading
from unittest.mock import MagicMock, patch

import pytest

from alb_registrar.config import AWSConfig, AppConfig, HealthCheckConfig, TargetConfig
from alb_registrar.daemon import Daemon
from alb_registrar.exceptions import HealthCheckError, RegistrationError
from alb_registrar.lifecycle import LifecycleController
from alb_registrar.models import Identity, RegistrationState

ARN = "arn:aws:elasticloadbalancing:us-east-1:123456789012:targetgroup/web/abc"

IDENTITY = Identity(
    instance_id="i-abc123",
    local_address="10.0.0.5",
    target_group_arn=ARN,
    port=8080,
)


def _config(check_health=False, max_wait=1.0, region="us-east-1") -> AppConfig:
    return AppConfig(
        aws=AWSConfig(region=region),
        target=TargetConfig(target_group_arn=ARN, port=8080),
        health_check=HealthCheckConfig(enabled=check_health, max_wait_seconds=max_wait),
    )


def _controller() -> MagicMock:
    controller = MagicMock(spec=LifecycleController)
    controller.identity = IDENTITY
    return controller


def _set_event() -> threading.Event:
    event = threading.Event()
    event.set()
    return event


class TestHealthGate:
    def test_unhealthy_skips_registration(self):
        controller = _controller()
        controller.check_health.return_value = False
        daemon = Daemon(_config(check_health=True, max_wait=0.5), controller)

        assert daemon.run(_set_event()) is False
        controller.check_health.assert_called_once_with(0.5)
        controller.register.assert_not_called()
        controller.deregister.assert_not_called()

    def test_healthy_proceeds_to_register(self):
        controller = _controller()
        controller.check_health.return_value = True
        daemon = Daemon(_config(check_health=True), controller)

        assert daemon.run(_set_event()) is True
        controller.register.assert_called_once()
        controller.deregister.assert_called_once()

    def test_gate_disabled_skips_health_check(self):
        controller = _controller()
        Daemon(_config(check_health=False), controller).run(_set_event())
        controller.check_health.assert_not_called()
        controller.register.assert_called_once()

    def test_health_error_propagates(self):
        controller = _controller()
        controller.check_health.side_effect = HealthCheckError("refused")
        with pytest.raises(HealthCheckError):
            Daemon(_config(check_health=True), controller).run(_set_event())
        controller.register.assert_not_called()


class TestCompensatingRegister:
    def test_register_failure_deregisters_once(self):
        controller = _controller()
        original = RegistrationError("register failed", operation="register")
        controller.register.side_effect = original
        daemon = Daemon(_config(), controller)

        with pytest.raises(RegistrationError) as exc_info:
            daemon.register()

        assert exc_info.value is original
        controller.deregister.assert_called_once()

    def test_deregister_error_does_not_mask_register_error(self):
        controller = _controller()
        original = RegistrationError("register failed", operation="register")
        controller.register.side_effect = original
        controller.deregister.side_effect = RegistrationError("deregister failed", operation="deregister")
        daemon = Daemon(_config(), controller)

        with pytest.raises(RegistrationError) as exc_info:
            daemon.register()

        assert exc_info.value is original
        controller.deregister.assert_called_once()

    def test_run_does_not_wait_after_failed_register(self):
        controller = _controller()
        controller.register.side_effect = RegistrationError("register failed", operation="register")
        never_set = threading.Event()

        with pytest.raises(RegistrationError):
            Daemon(_config(), controller).run(never_set)
        controller.deregister.assert_called_once()


class TestDrain:
    def test_signal_event_triggers_single_deregister(self):
        controller = _controller()
        shutdown = threading.Event()
        daemon = Daemon(_config(), controller)

        timer = threading.Timer(0.1, shutdown.set)
        timer.start()
        try:
            assert daemon.run(shutdown) is True
        finally:
            timer.cancel()

        controller.register.assert_called_once()
        controller.deregister.assert_called_once()

    def test_blocks_until_signalled(self):
        controller = _controller()
        shutdown = threading.Event()
        daemon = Daemon(_config(), controller)

        worker = threading.Thread(target=daemon.run, args=(shutdown,))
        worker.start()
        worker.join(timeout=0.3)
        assert worker.is_alive()
        controller.deregister.assert_not_called()

        shutdown.set()
        worker.join(timeout=2)
        assert not worker.is_alive()
        controller.deregister.assert_called_once()

    def test_deregister_error_surfaces(self):
        controller = _controller()
        controller.deregister.side_effect = RegistrationError("denied", operation="deregister")
        with pytest.raises(RegistrationError):
            Daemon(_config(), controller).run(_set_event())

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    @pytest.mark.parametrize("signum", [signal.SIGTERM, signal.SIGINT])
    def test_process_signal_drains(self, signum):
        control_plane = MagicMock()
        controller = LifecycleController(IDENTITY, control_plane)
        daemon = Daemon(_config(), controller)
        previous = signal.getsignal(signum)

        timer = threading.Timer(0.2, os.kill, args=(os.getpid(), signum))
        timer.start()
        try:
            assert daemon.run() is True
        finally:
            timer.cancel()

        control_plane.register_target.assert_called_once_with(ARN, "i-abc123", 8080)
        control_plane.deregister_target.assert_called_once_with(ARN, "i-abc123", 8080)
        assert controller.state is RegistrationState.DRAINING
        assert signal.getsignal(signum) is previous


class TestBuildController:
    @patch("alb_registrar.daemon.ELBv2Client")
    @patch("alb_registrar.daemon.InstanceMetadataClient")
    def test_wires_metadata_and_control_plane(self, MockMetadata, MockELB):
        metadata = MockMetadata.return_value
        metadata.get_instance_id.return_value = "i-abc123"
        metadata.get_local_address.return_value = "10.0.0.5"

        daemon = Daemon(_config())

        assert daemon.controller.identity == IDENTITY
        MockELB.assert_called_once_with(AWSConfig(region="us-east-1"))
        metadata.get_region.assert_not_called()

    @patch("alb_registrar.daemon.ELBv2Client")
    @patch("alb_registrar.daemon.InstanceMetadataClient")
    def test_region_from_metadata_when_unset(self, MockMetadata, MockELB):
        metadata = MockMetadata.return_value
        metadata.get_instance_id.return_value = "i-abc123"
        metadata.get_local_address.return_value = "10.0.0.5"
        metadata.get_region.return_value = "eu-west-1"

        Daemon(_config(region=""))

        MockELB.assert_called_once_with(AWSConfig(region="eu-west-1"))


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
class TestSignalDuringRegistration:
    def test_handlers_installed_before_register(self):
        control_plane = MagicMock()
        controller = LifecycleController(IDENTITY, control_plane)
        daemon = Daemon(_config(), controller)
        installed = {}

        def _register(*args):
            installed["handler"] = signal.getsignal(signal.SIGTERM)
            os.kill(os.getpid(), signal.SIGTERM)

        control_plane.register_target.side_effect = _register
        previous = signal.getsignal(signal.SIGTERM)

        assert daemon.run() is True

        assert installed["handler"] == daemon._handle_shutdown
        control_plane.deregister_target.assert_called_once_with(ARN, "i-abc123", 8080)
        assert controller.state is RegistrationState.DRAINING
        assert signal.getsignal(signal.SIGTERM) is previous

    def test_handlers_restored_after_failed_register(self):
        controller = _controller()
        controller.register.side_effect = RegistrationError("register failed", operation="register")
        previous = signal.getsignal(signal.SIGTERM)

        with pytest.raises(RegistrationError):
            Daemon(_config(), controller).run()

        assert signal.getsignal(signal.SIGTERM) is previous
