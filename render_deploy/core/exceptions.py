"""Error taxonomy for deployment tooling.

Every error carries a stable code (``E1001`` ...), a human message and a list
of remediation steps. The code prefix decides the error kind and the process
exit code:

* ``E1xxx`` validation
* ``E2xxx`` configuration
* ``E3xxx`` deployment
* ``E4xxx`` health check
* ``E5xxx`` history / rollback
"""

from enum import Enum, IntEnum
from typing import Any, NamedTuple


class ErrorKind(str, Enum):
    """Functional area an error belongs to."""

    GENERIC = "generic"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    CREDENTIAL = "credential"
    DEPLOYMENT = "deployment"
    HEALTH_CHECK = "health_check"
    NETWORK = "network"
    HISTORY = "history"
    ROLLBACK = "rollback"
    ENVIRONMENT = "environment"


class ExitCode(IntEnum):
    """Process exit codes."""

    SUCCESS = 0
    VALIDATION_ERROR = 1
    CONFIG_ERROR = 2
    DEPLOYMENT_ERROR = 3
    HEALTH_CHECK_ERROR = 4
    UNKNOWN_ERROR = 99


class ErrorSpec(NamedTuple):
    """Registry entry for an error code."""

    code: str
    message: str
    remediation: tuple[str, ...]


UNKNOWN_ERROR_CODE = "E9999"

ERROR_CODES: dict[str, ErrorSpec] = {
    # Validation errors (1xxx)
    "MISSING_CREDENTIALS": ErrorSpec(
        "E1001",
        "Firebase service account file not found",
        (
            "Go to Firebase Console → Project Settings → Service Accounts",
            'Click "Generate new private key"',
            "Save as backend/serviceAccountKey.json",
            "",
            "Or run: render-deploy validate --env development",
        ),
    ),
    "INVALID_CREDENTIALS": ErrorSpec(
        "E1002",
        "Firebase service account file is invalid",
        (
            "Verify the serviceAccountKey.json file contains valid JSON",
            "Ensure all required fields are present:",
            "  - project_id",
            "  - private_key",
            "  - client_email",
            "",
            "Download a fresh copy from Firebase Console if needed",
        ),
    ),
    "MISSING_DEPENDENCIES": ErrorSpec(
        "E1003",
        "Required npm dependencies are not installed",
        (
            "Run: npm install",
            "",
            "If issues persist, try:",
            "  npm clean-install",
        ),
    ),
    "INVALID_ENVIRONMENT": ErrorSpec(
        "E1004",
        "Invalid environment specified",
        (
            "Valid environments are:",
            "  - development",
            "  - staging",
            "  - production",
            "",
            "Example: render-deploy deploy --env development",
        ),
    ),
    "MISSING_ENV_CONFIG": ErrorSpec(
        "E1005",
        "Environment configuration not found",
        (
            "Create deployment configuration file:",
            "  backend/config/deployment-config.json",
            "",
            "Or run: render-deploy env list to see available environments",
        ),
    ),
    "MISSING_SERVER_FILE": ErrorSpec(
        "E1006",
        "Server file (server.js) not found",
        (
            "Ensure backend/server.js exists",
            "Verify you are in the correct directory",
        ),
    ),
    "VALIDATION_FAILED": ErrorSpec(
        "E1007",
        "Pre-deployment validation failed",
        (
            "Fix the validation errors listed above",
            "Run validation again: render-deploy validate",
        ),
    ),
    # Configuration errors (2xxx)
    "CONFIG_READ_ERROR": ErrorSpec(
        "E2001",
        "Failed to read configuration file",
        (
            "Check that the configuration file exists and is readable",
            "Verify JSON syntax is valid",
        ),
    ),
    "CONFIG_WRITE_ERROR": ErrorSpec(
        "E2002",
        "Failed to write configuration file",
        (
            "Check file permissions",
            "Ensure directory exists",
        ),
    ),
    "INVALID_CONFIG_STRUCTURE": ErrorSpec(
        "E2003",
        "Configuration file has invalid structure",
        (
            "Verify configuration follows the expected schema",
            "Check documentation for correct format",
        ),
    ),
    "ENVIRONMENT_EXISTS": ErrorSpec(
        "E2004",
        "Environment already exists",
        (
            "Use render-deploy env update to change its variables",
            "Or remove the entry from deployment-config.json first",
        ),
    ),
    # Deployment errors (3xxx)
    "DEPLOYMENT_FAILED": ErrorSpec(
        "E3001",
        "Deployment process failed",
        (
            "Check the error details above",
            "Verify all prerequisites are met",
            "Try running with --verbose for more details",
        ),
    ),
    "RENDER_API_ERROR": ErrorSpec(
        "E3002",
        "Render API request failed",
        (
            "Check your Render API key is valid",
            "Verify network connectivity",
            "Check Render status: https://status.render.com",
        ),
    ),
    "TIMEOUT_ERROR": ErrorSpec(
        "E3003",
        "Operation timed out",
        (
            "Check network connectivity",
            "Try again in a few moments",
            "Increase timeout with --timeout flag",
        ),
    ),
    # Health check errors (4xxx)
    "HEALTH_CHECK_FAILED": ErrorSpec(
        "E4001",
        "Backend health check failed",
        (
            "Check Render logs for errors",
            "Verify service is running on Render dashboard",
            "Check environment variables are set correctly",
            "",
            "View logs: https://dashboard.render.com",
        ),
    ),
    "SERVICE_UNREACHABLE": ErrorSpec(
        "E4002",
        "Backend service is unreachable",
        (
            "Verify the service URL is correct",
            "Check if service is deployed on Render",
            "Verify network connectivity",
            "Check Render service status",
        ),
    ),
    # History/Rollback errors (5xxx)
    "HISTORY_READ_ERROR": ErrorSpec(
        "E5001",
        "Failed to read deployment history",
        (
            "Check that deployment-history.json exists",
            "Verify file permissions",
        ),
    ),
    "NO_DEPLOYMENT_HISTORY": ErrorSpec(
        "E5002",
        "No deployment history found",
        (
            "Deploy at least once to create history",
            "History is stored in: backend/config/deployment-history.json",
        ),
    ),
    "ROLLBACK_NOT_AVAILABLE": ErrorSpec(
        "E5003",
        "Rollback not available for this deployment",
        (
            "Ensure deployment history exists",
            "Verify deployment ID is valid",
        ),
    ),
    "DEPLOYMENT_NOT_FOUND": ErrorSpec(
        "E5004",
        "Deployment not found in history",
        (
            "List recorded deployments: render-deploy history --all",
            "Verify deployment ID is valid",
        ),
    ),
}


class DeploymentError(Exception):
    """Base exception for deployment tooling.

    ``details`` always contains every key named in ``detail_fields`` so
    consumers can rely on a fixed payload shape per kind.
    """

    kind: ErrorKind = ErrorKind.GENERIC
    detail_fields: tuple[str, ...] = ()
    default_code: str = "DEPLOYMENT_FAILED"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        remediation: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code or ERROR_CODES[self.default_code].code
        self.remediation = list(remediation or [])
        self.details = {field: None for field in self.detail_fields}
        self.details.update(details or {})
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and JSON output."""
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "remediation": self.remediation,
            "details": self.details,
        }


class ValidationError(DeploymentError):
    """Pre-deployment validation failed."""

    kind = ErrorKind.VALIDATION
    detail_fields = ("check",)
    default_code = "VALIDATION_FAILED"


class ConfigurationError(DeploymentError):
    """A configuration file could not be read, written or parsed."""

    kind = ErrorKind.CONFIGURATION
    detail_fields = ("config_path",)
    default_code = "CONFIG_READ_ERROR"


class CredentialError(DeploymentError):
    """Service account credentials are missing or invalid."""

    kind = ErrorKind.CREDENTIAL
    detail_fields = ("credentials_path",)
    default_code = "INVALID_CREDENTIALS"


class DeploymentExecutionError(DeploymentError):
    """A deployment step failed."""

    kind = ErrorKind.DEPLOYMENT
    detail_fields = ("step",)
    default_code = "DEPLOYMENT_FAILED"


class HealthCheckError(DeploymentError):
    """The deployed service did not pass its health check."""

    kind = ErrorKind.HEALTH_CHECK
    detail_fields = ("url",)
    default_code = "HEALTH_CHECK_FAILED"


class NetworkError(DeploymentError):
    """A request could not be completed."""

    kind = ErrorKind.NETWORK
    detail_fields = ("url",)
    default_code = "SERVICE_UNREACHABLE"


class HistoryError(DeploymentError):
    """Deployment history could not be read or written."""

    kind = ErrorKind.HISTORY
    detail_fields = ("history_path",)
    default_code = "HISTORY_READ_ERROR"


class RollbackError(DeploymentError):
    """A rollback plan could not be prepared."""

    kind = ErrorKind.ROLLBACK
    detail_fields = ("deployment_id",)
    default_code = "ROLLBACK_NOT_AVAILABLE"


class TargetEnvironmentError(DeploymentError):
    """The requested deployment environment is unknown or not configured."""

    kind = ErrorKind.ENVIRONMENT
    detail_fields = ("environment",)
    default_code = "INVALID_ENVIRONMENT"


def _error_class_for(key: str, code: str) -> type[DeploymentError]:
    """Pick the error class for a registry key, mostly by code prefix."""
    if "CREDENTIALS" in key:
        return CredentialError
    if key in ("INVALID_ENVIRONMENT", "MISSING_ENV_CONFIG"):
        return TargetEnvironmentError
    if key == "TIMEOUT_ERROR":
        return NetworkError
    if code.startswith("E5") and ("ROLLBACK" in key or key == "DEPLOYMENT_NOT_FOUND"):
        return RollbackError

    prefixes: dict[str, type[DeploymentError]] = {
        "E1": ValidationError,
        "E2": ConfigurationError,
        "E3": DeploymentExecutionError,
        "E4": HealthCheckError,
        "E5": HistoryError,
    }
    return prefixes.get(code[:2], DeploymentError)


def create_error(
    error_code: str,
    message: str | None = None,
    **details: Any,
) -> DeploymentError:
    """Create an error from a registry key such as ``"MISSING_CREDENTIALS"``.

    Unknown keys produce a plain ``DeploymentError`` with code ``E9999``.
    """
    spec = ERROR_CODES.get(error_code)
    if spec is None:
        return DeploymentError(
            message or "Unknown error occurred",
            code=UNKNOWN_ERROR_CODE,
            details=details,
        )

    error_class = _error_class_for(error_code, spec.code)
    return error_class(
        message or spec.message,
        code=spec.code,
        remediation=list(spec.remediation),
        details=details,
    )


def wrap_error(
    error: BaseException,
    error_code: str = "DEPLOYMENT_FAILED",
    **details: Any,
) -> DeploymentError:
    """Wrap an arbitrary exception, passing taxonomy errors through."""
    if isinstance(error, DeploymentError):
        return error

    wrapped = create_error(error_code, str(error) or type(error).__name__, **details)
    wrapped.details["original_error"] = type(error).__name__
    wrapped.__cause__ = error
    return wrapped


def exit_code_for(error: BaseException) -> ExitCode:
    """Map an error onto a process exit code by its code prefix."""
    code = getattr(error, "code", None)
    if not isinstance(code, str):
        return ExitCode.UNKNOWN_ERROR

    return {
        "E1": ExitCode.VALIDATION_ERROR,
        "E2": ExitCode.CONFIG_ERROR,
        "E3": ExitCode.DEPLOYMENT_ERROR,
        "E4": ExitCode.HEALTH_CHECK_ERROR,
    }.get(code[:2], ExitCode.UNKNOWN_ERROR)
