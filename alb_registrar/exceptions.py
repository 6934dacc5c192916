"""Custom exception hierarchy for the ALB registrar."""


class RegistrarError(Exception):
    """Base exception for all registrar errors."""


class ConfigError(RegistrarError):
    """Invalid or missing configuration."""


class MetadataUnavailable(RegistrarError):
    """The instance metadata service could not supply the instance identity."""


class TargetGroupLookupError(RegistrarError):
    """The target group or its health check configuration could not be read."""


class HealthCheckError(RegistrarError):
    """Transport failure while polling the local health endpoint."""


class RegistrationError(RegistrarError):
    """A RegisterTargets or DeregisterTargets call failed."""

    def __init__(self, message: str, operation: str, error_code: str | None = None):
        super().__init__(message)
        self.operation = operation
        self.error_code = error_code
