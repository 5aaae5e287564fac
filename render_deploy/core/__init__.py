"""Core deployment functionality."""

from render_deploy.core.exceptions import (
    ConfigurationError,
    CredentialError,
    DeploymentError,
    DeploymentExecutionError,
    ErrorKind,
    ExitCode,
    HealthCheckError,
    HistoryError,
    NetworkError,
    RollbackError,
    TargetEnvironmentError,
    ValidationError,
    create_error,
    exit_code_for,
    wrap_error,
)

__all__ = [
    "ConfigurationError",
    "CredentialError",
    "DeploymentError",
    "DeploymentExecutionError",
    "ErrorKind",
    "ExitCode",
    "HealthCheckError",
    "HistoryError",
    "NetworkError",
    "RollbackError",
    "TargetEnvironmentError",
    "ValidationError",
    "create_error",
    "exit_code_for",
    "wrap_error",
]
