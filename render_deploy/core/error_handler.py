"""Central error handling for CLI commands.

Validation, configuration and health check errors are reported and the
caller decides what to do next. Deployment errors and unexpected
exceptions are fatal: the session summary is written and the process exits.
"""

from typing import Any

from render_deploy.core.exceptions import (
    ConfigurationError,
    CredentialError,
    DeploymentError,
    ExitCode,
    HealthCheckError,
    NetworkError,
    TargetEnvironmentError,
    ValidationError,
    exit_code_for,
    wrap_error,
)
from render_deploy.utils.display import Display
from render_deploy.utils.logging import get_logger
from render_deploy.utils.session_log import DeploymentLogger, EventType


class ErrorHandler:
    """Logs, displays and maps errors onto exit codes."""

    def __init__(
        self,
        session_log: DeploymentLogger | None = None,
        display: Display | None = None,
    ):
        self.session_log = session_log or DeploymentLogger()
        self.display = display or Display()
        self.logger = get_logger("error_handler")
        self.error_count = 0
        self.warning_count = 0

    def handle(
        self,
        error: BaseException,
        fatal: bool = False,
        error_code: str = "DEPLOYMENT_FAILED",
        **context: Any,
    ) -> ExitCode:
        """Report an error and return its exit code, exiting if fatal."""
        wrapped = wrap_error(error, error_code)
        self.error_count += 1
        exit_code = exit_code_for(wrapped)

        self.logger.error(
            "error_handler.error",
            code=wrapped.code,
            kind=wrapped.kind.value,
            error=wrapped.message,
            fatal=fatal,
            **context,
        )
        self.session_log.log_event(
            EventType.ERROR_OCCURRED,
            error=wrapped.to_dict(),
            context=context,
            fatal=fatal,
        )
        self.session_log.error(wrapped.message, error=wrapped, code=wrapped.code)
        self.display.error(wrapped)

        if fatal:
            self.session_log.write_session_summary()
            raise SystemExit(int(exit_code))
        return exit_code

    def handle_validation_error(self, error: BaseException, **context: Any) -> ExitCode:
        return self.handle(error, error_code="VALIDATION_FAILED", phase="validation", **context)

    def handle_configuration_error(self, error: BaseException, **context: Any) -> ExitCode:
        return self.handle(error, error_code="CONFIG_READ_ERROR", phase="configuration", **context)

    def handle_health_check_error(self, error: BaseException, **context: Any) -> ExitCode:
        return self.handle(error, error_code="HEALTH_CHECK_FAILED", phase="health_check", **context)

    def handle_deployment_error(
        self,
        error: BaseException,
        fatal: bool = True,
        **context: Any,
    ) -> ExitCode:
        return self.handle(error, fatal=fatal, error_code="DEPLOYMENT_FAILED", phase="deployment", **context)

    def dispatch(self, error: BaseException, **context: Any) -> ExitCode:
        """Route an error to the handler for its kind."""
        if isinstance(error, (ValidationError, CredentialError, TargetEnvironmentError)):
            return self.handle_validation_error(error, **context)
        if isinstance(error, ConfigurationError):
            return self.handle_configuration_error(error, **context)
        if isinstance(error, (HealthCheckError, NetworkError)):
            return self.handle_health_check_error(error, **context)
        return self.handle_deployment_error(error, fatal=is_fatal(error), **context)

    def handle_warning(self, message: str, **context: Any) -> None:
        self.warning_count += 1
        self.logger.warning("error_handler.warning", message=message, **context)
        self.session_log.warning(message, **context)
        self.display.warning(message)

    def summary(self) -> dict[str, Any]:
        return {
            "errors": self.error_count,
            "warnings": self.warning_count,
            "hasErrors": self.error_count > 0,
            "hasWarnings": self.warning_count > 0,
        }

    def display_summary(self) -> None:
        """Show error and warning counts, if there were any."""
        summary = self.summary()
        if summary["hasErrors"] or summary["hasWarnings"]:
            self.display.error_summary(summary["errors"], summary["warnings"])


def is_fatal(error: BaseException) -> bool:
    """Deployment errors and anything outside the taxonomy are fatal."""
    if not isinstance(error, DeploymentError):
        return True
    return exit_code_for(error) in (ExitCode.DEPLOYMENT_ERROR, ExitCode.UNKNOWN_ERROR)
