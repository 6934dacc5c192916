"""Frozen dataclasses for configuration, YAML loader with env-var interpolation and CLI overrides."""

from __future__ import annotations

import dataclasses
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _interpolate_env(value: str) -> str:
    """Replace ${ENV_VAR} placeholders with environment variable values."""

    def _replace(match: re.Match) -> str:
        env_key = match.group(1)
        env_val = os.environ.get(env_key)
        if env_val is None:
            raise ConfigError(f"Environment variable '{env_key}' is not set")
        return env_val

    return _ENV_PATTERN.sub(_replace, value)


def _walk_and_interpolate(obj: Any) -> Any:
    """Recursively interpolate env vars in strings throughout a nested structure."""
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(v) for v in obj]
    return obj


@dataclass(frozen=True)
class AWSConfig:
    region: str = ""  # empty = ask the instance metadata service
    credential_profile: str = ""  # empty = use default boto3 credential chain


@dataclass(frozen=True)
class TargetConfig:
    target_group_arn: str = ""
    port: int = 0


@dataclass(frozen=True)
class HealthCheckConfig:
    enabled: bool = False
    max_wait_seconds: float = 30
    poll_interval_seconds: float = 0.1
    request_timeout_seconds: float = 2


@dataclass(frozen=True)
class MetadataConfig:
    endpoint: str = "http://169.254.169.254"
    timeout_seconds: float = 2
    token_ttl_seconds: int = 21600
    imds_v1: bool = False  # skip the IMDSv2 session token


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "text"  # "json" or "text"


@dataclass(frozen=True)
class AppConfig:
    aws: AWSConfig = field(default_factory=AWSConfig)
    target: TargetConfig = field(default_factory=TargetConfig)
    health_check: HealthCheckConfig = field(default_factory=HealthCheckConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SCALAR_TYPES = {"int": int, "float": float, "bool": bool}
_TRUE_STRINGS = ("true", "yes", "on", "1")
_FALSE_STRINGS = ("false", "no", "off", "0")


def _coerce_scalar(section: str, key: str, type_name: str, value: Any) -> Any:
    """Convert a string (e.g. an interpolated ${ENV} value) to the field's scalar type."""
    target = _SCALAR_TYPES.get(type_name)
    if target is None or not isinstance(value, str):
        return value

    text = value.strip()
    if target is bool:
        if text.lower() in _TRUE_STRINGS:
            return True
        if text.lower() in _FALSE_STRINGS:
            return False
        raise ConfigError(f"{section}.{key} must be a boolean, got {value!r}")

    try:
        return target(text)
    except ValueError:
        kind = "an integer" if target is int else "a number"
        raise ConfigError(f"{section}.{key} must be {kind}, got {value!r}") from None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _build_nested(cls: type, data: dict[str, Any], section: str = "") -> Any:
    """Construct a frozen dataclass, recursively building nested dataclass fields."""
    if not isinstance(data, dict):
        return data
    field_types = {f.name: f.type for f in cls.__dataclass_fields__.values()}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in field_types:
            continue
        ft = field_types[key]
        if isinstance(ft, str) and ft in _SCALAR_TYPES:
            kwargs[key] = _coerce_scalar(section, key, ft, value)
            continue
        # Resolve string annotations to actual types in the module scope
        if isinstance(ft, str):
            ft = eval(ft, globals(), {cls.__name__: cls})  # noqa: S307
        if isinstance(ft, type) and hasattr(ft, "__dataclass_fields__") and isinstance(value, dict):
            kwargs[key] = _build_nested(ft, value, section=key)
        else:
            kwargs[key] = value
    return cls(**kwargs)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a YAML file, or return defaults when no path is given.

    Validation is deferred to validate_config() so CLI overrides can fill in
    required values first.
    """
    if path is None:
        return AppConfig()

    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        return AppConfig()
    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must be a YAML mapping")

    raw = _walk_and_interpolate(raw)
    return _build_nested(AppConfig, raw)


def apply_overrides(
    config: AppConfig,
    *,
    target_group_arn: str | None = None,
    port: int | None = None,
    region: str | None = None,
    check_health: bool | None = None,
    max_wait: float | None = None,
    log_level: str | None = None,
    log_format: str | None = None,
) -> AppConfig:
    """Return a copy of config with every non-None override applied."""
    target = config.target
    if target_group_arn is not None:
        target = dataclasses.replace(target, target_group_arn=target_group_arn)
    if port is not None:
        target = dataclasses.replace(target, port=port)

    aws = config.aws
    if region is not None:
        aws = dataclasses.replace(aws, region=region)

    health = config.health_check
    if check_health:
        health = dataclasses.replace(health, enabled=True)
    if max_wait is not None:
        health = dataclasses.replace(health, max_wait_seconds=max_wait)

    log = config.logging
    if log_level is not None:
        log = dataclasses.replace(log, level=log_level)
    if log_format is not None:
        log = dataclasses.replace(log, format=log_format)

    return dataclasses.replace(config, aws=aws, target=target, health_check=health, logging=log)


def validate_config(config: AppConfig) -> None:
    """Validate configuration values."""
    arn = config.target.target_group_arn
    if not arn:
        raise ConfigError("target.target_group_arn is required (or pass --target-group-arn)")
    if not arn.startswith("arn:"):
        raise ConfigError(f"target.target_group_arn does not look like an ARN: {arn!r}")

    port = config.target.port
    if isinstance(port, bool) or not isinstance(port, int):
        raise ConfigError("target.port must be an integer")
    if not 1 <= port <= 65535:
        raise ConfigError("target.port must be between 1 and 65535")

    health = config.health_check
    for name in ("max_wait_seconds", "poll_interval_seconds", "request_timeout_seconds"):
        if not _is_number(getattr(health, name)):
            raise ConfigError(f"health_check.{name} must be a number")

    if health.max_wait_seconds < 0:
        raise ConfigError("health_check.max_wait_seconds must be >= 0")

    if health.poll_interval_seconds <= 0:
        raise ConfigError("health_check.poll_interval_seconds must be > 0")

    if health.request_timeout_seconds <= 0:
        raise ConfigError("health_check.request_timeout_seconds must be > 0")

    if config.logging.format not in ("json", "text"):
        raise ConfigError("logging.format must be 'json' or 'text'")
