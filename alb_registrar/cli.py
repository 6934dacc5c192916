"""Argument parsing, configuration loading, and lifecycle bootstrap."""

from __future__ import annotations

import argparse
import logging
import sys

from .config import apply_overrides, load_config, validate_config
from .daemon import Daemon
from .exceptions import ConfigError, RegistrarError
from .logging_config import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNHEALTHY = 1
EXIT_CONFIG_ERROR = 1
EXIT_FATAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="alb-registrar",
        description="Register this instance with an ALB target group and deregister it on shutdown",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to an optional YAML configuration file",
    )
    parser.add_argument(
        "--target-group-arn", "--arn",
        dest="target_group_arn",
        help="ARN of the target group to register with",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port to register with the target group",
    )
    parser.add_argument(
        "--region",
        help="AWS region (defaults to the instance's own region)",
    )
    parser.add_argument(
        "--max-wait",
        type=float,
        help="Seconds to wait for the service to become healthy (default 30)",
    )
    parser.add_argument(
        "--check-health",
        action="store_true",
        help="Check local health before registering with the target group",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--health-only",
        action="store_true",
        help="Check local health and exit without registering",
    )
    mode.add_argument(
        "--deregister",
        action="store_true",
        help="Deregister the instance and exit",
    )
    mode.add_argument(
        "--once",
        action="store_true",
        help="Register the instance and exit without waiting for a signal",
    )
    mode.add_argument(
        "--validate",
        action="store_true",
        help="Validate the configuration and exit",
    )

    parser.add_argument("--log-level", help="Logging level, e.g. DEBUG or INFO")
    parser.add_argument("--log-format", choices=("json", "text"), help="Log output format")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Load config (minimal logging until config is loaded)
    try:
        config = apply_overrides(
            load_config(args.config),
            target_group_arn=args.target_group_arn,
            port=args.port,
            region=args.region,
            check_health=args.check_health,
            max_wait=args.max_wait,
            log_level=args.log_level,
            log_format=args.log_format,
        )
        validate_config(config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_logging(
        config.logging,
        target_group=config.target.target_group_arn,
        port=config.target.port,
    )

    if args.validate:
        logger.info("Configuration is valid")
        return EXIT_OK

    try:
        daemon = Daemon(config)

        if args.health_only:
            return EXIT_OK if daemon.check_health() else EXIT_UNHEALTHY

        if args.deregister:
            daemon.deregister()
            return EXIT_OK

        if args.once:
            if config.health_check.enabled and not daemon.check_health():
                return EXIT_UNHEALTHY
            daemon.register()
            return EXIT_OK

        if not daemon.run():
            return EXIT_UNHEALTHY
    except RegistrarError as exc:
        logger.error("Fatal error: %s", exc)
        return EXIT_FATAL
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_OK

    return EXIT_OK
