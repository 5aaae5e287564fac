"""Pre-deployment validation.

Checks are independent of each other, so ``validate_all`` runs them
concurrently and merges the results in a fixed order.
"""

import asyncio
import json
import re
from pathlib import Path
from typing import Any, Awaitable, Callable

from render_deploy.config import settings
from render_deploy.core.environments import mask_value
from render_deploy.core.exceptions import ERROR_CODES
from render_deploy.models.environment import KNOWN_ENVIRONMENTS
from render_deploy.models.validation import CheckResult, ValidationIssue, ValidationResult
from render_deploy.utils.logging import get_logger

CREDENTIAL_FIELDS: tuple[str, ...] = (
    "type",
    "project_id",
    "private_key_id",
    "private_key",
    "client_email",
    "client_id",
    "auth_uri",
    "token_uri",
)

CRITICAL_DEPENDENCIES: tuple[str, ...] = ("express", "firebase-admin", "cors", "dotenv")

SERVER_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"require.*express"), "Express import"),
    (re.compile(r"require.*firebase-admin"), "Firebase Admin import"),
    (re.compile(r"app\.listen"), "Server listen call"),
)

ENVIRONMENT_FIELDS: tuple[str, ...] = ("name", "renderServiceName", "envVars")

# Merge order for results, independent of completion order
CHECK_ORDER: tuple[str, ...] = ("credentials", "dependencies", "server_config", "environment")


def _fail(message: str, *remediation: str, **details: Any) -> CheckResult:
    return CheckResult(
        passed=False,
        message=message,
        remediation=list(remediation) or None,
        details=details or None,
    )


class Validator:
    """Runs prerequisite checks against the backend directory."""

    def __init__(
        self,
        backend_root: Path | None = None,
        config_path: Path | None = None,
        credentials_path: Path | None = None,
    ):
        self.backend_root = Path(backend_root or settings.backend_root)
        self.config_path = Path(config_path or self.backend_root / "config" / "deployment-config.json")
        self.credentials_path = Path(credentials_path or self.backend_root / "serviceAccountKey.json")
        self.logger = get_logger("validator")

    # Individual checks (blocking, run in worker threads)

    def _check_credentials(self) -> CheckResult:
        if not self.credentials_path.exists():
            return _fail(
                "Firebase service account file not found",
                *ERROR_CODES["MISSING_CREDENTIALS"].remediation,
            )

        try:
            credentials = json.loads(self.credentials_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return _fail(
                "Firebase service account file contains invalid JSON",
                "Ensure serviceAccountKey.json is valid JSON. "
                "Download a new file from Firebase Console if needed.",
            )

        if not isinstance(credentials, dict):
            return _fail(
                "Firebase service account file must contain a JSON object",
                "Download a new service account key from Firebase Console",
            )

        missing = [field for field in CREDENTIAL_FIELDS if not credentials.get(field)]
        if missing:
            return _fail(
                f"Firebase credentials missing required fields: {', '.join(missing)}",
                "Download a new service account key from Firebase Console → "
                "Project Settings → Service Accounts",
                missing_fields=missing,
            )

        if credentials["type"] != "service_account":
            return _fail(
                'Invalid credential type. Expected "service_account"',
                "Ensure you downloaded a service account key, not an API key or OAuth client",
            )

        if "BEGIN PRIVATE KEY" not in str(credentials["private_key"]):
            return _fail(
                "Invalid private key format",
                "The private_key field should contain a PEM-formatted private key",
            )

        client_email = str(credentials["client_email"])
        if "@" not in client_email or ".iam.gserviceaccount.com" not in client_email:
            return _fail(
                "Invalid client_email format",
                "The client_email should be a service account email ending "
                "with .iam.gserviceaccount.com",
            )

        return CheckResult(
            passed=True,
            message="Firebase credentials are valid",
            details={
                "project_id": mask_value(str(credentials["project_id"])),
                "client_email": mask_value(client_email),
            },
        )

    def _check_dependencies(self) -> CheckResult:
        package_json = self.backend_root / "package.json"
        node_modules = self.backend_root / "node_modules"

        if not package_json.exists():
            return _fail(
                "package.json not found",
                "Ensure you are in the backend directory",
            )
        if not node_modules.is_dir():
            return _fail("node_modules directory not found", "Run: npm install")

        missing = [dep for dep in CRITICAL_DEPENDENCIES if not (node_modules / dep).is_dir()]
        if missing:
            return _fail(
                f"Missing critical dependencies: {', '.join(missing)}",
                "Run: npm install",
                missing_dependencies=missing,
            )

        return CheckResult(
            passed=True,
            message="All dependencies are installed",
            details={"dependencies": list(CRITICAL_DEPENDENCIES)},
        )

    def _check_server_config(self) -> CheckResult:
        server_js = self.backend_root / "server.js"
        package_json = self.backend_root / "package.json"

        missing_files = [p.name for p in (server_js, package_json) if not p.exists()]
        if missing_files:
            return _fail(
                f"Missing critical files: {', '.join(missing_files)}",
                "Ensure you are in the correct backend directory with all required files",
                missing_files=missing_files,
            )

        source = server_js.read_text(encoding="utf-8")
        missing_code = [label for pattern, label in SERVER_PATTERNS if not pattern.search(source)]
        if missing_code:
            return _fail(
                f"server.js missing required code: {', '.join(missing_code)}",
                "Ensure server.js is properly configured with Express and Firebase Admin",
            )

        try:
            manifest = json.loads(package_json.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return _fail("package.json contains invalid JSON", "Fix the syntax of package.json")

        scripts = manifest.get("scripts") if isinstance(manifest, dict) else None
        if not isinstance(scripts, dict) or not scripts.get("start"):
            return _fail(
                'package.json missing "start" script',
                'Add "start": "node server.js" to package.json scripts',
            )

        return CheckResult(passed=True, message="Server configuration is valid")

    def _check_environment(self, environment: str) -> CheckResult:
        if environment not in KNOWN_ENVIRONMENTS:
            return _fail(
                f"Invalid environment: {environment}",
                f"Valid environments are: {', '.join(KNOWN_ENVIRONMENTS)}",
            )

        if not self.config_path.exists():
            # Not created yet; the first deployment writes it
            return CheckResult(
                passed=True,
                message=f'Environment "{environment}" is valid',
                warning="Deployment config file not found. Will be created during deployment.",
            )

        try:
            config = json.loads(self.config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            return _fail(
                f"Error validating environment: {e}",
                "Check environment configuration and try again",
            )

        entry = config.get(environment) if isinstance(config, dict) else None
        if not isinstance(entry, dict):
            return _fail(
                f'Environment "{environment}" not found in deployment config',
                f'Add configuration for "{environment}" in config/deployment-config.json',
            )

        missing = [field for field in ENVIRONMENT_FIELDS if not entry.get(field)]
        if missing:
            return _fail(
                f"Environment config missing fields: {', '.join(missing)}",
                f"Update config/deployment-config.json to include: {', '.join(missing)}",
                missing_fields=missing,
            )

        return CheckResult(
            passed=True,
            message=f'Environment "{environment}" is properly configured',
        )

    # Async wrappers

    async def _run(self, name: str, check: Callable[..., CheckResult], *args: Any) -> CheckResult:
        self.logger.debug("validator.check.started", check=name)
        result = await asyncio.to_thread(check, *args)
        self.logger.debug("validator.check.completed", check=name, passed=result.passed)
        return result

    async def check_credentials(self) -> CheckResult:
        return await self._run("credentials", self._check_credentials)

    async def check_dependencies(self) -> CheckResult:
        return await self._run("dependencies", self._check_dependencies)

    async def check_server_config(self) -> CheckResult:
        return await self._run("server_config", self._check_server_config)

    async def check_environment(self, environment: str) -> CheckResult:
        return await self._run("environment", self._check_environment, environment)

    async def validate_all(
        self,
        environment: str | None = None,
        skip_credentials: bool = False,
    ) -> ValidationResult:
        """Run every applicable check concurrently and aggregate the results."""
        self.logger.info(
            "validator.started",
            environment=environment,
            skip_credentials=skip_credentials,
        )

        pending: dict[str, Awaitable[CheckResult]] = {}
        if not skip_credentials:
            pending["credentials"] = self.check_credentials()
        pending["dependencies"] = self.check_dependencies()
        pending["server_config"] = self.check_server_config()
        if environment:
            pending["environment"] = self.check_environment(environment)

        outcomes = await asyncio.gather(*pending.values(), return_exceptions=True)
        completed = dict(zip(pending.keys(), outcomes))

        checks: dict[str, CheckResult] = {}
        if skip_credentials:
            checks["credentials"] = CheckResult(passed=True, message="Skipped", skipped=True)

        for name in CHECK_ORDER:
            if name not in completed:
                continue
            outcome = completed[name]
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self.logger.error("validator.check.crashed", check=name, error=str(outcome))
                outcome = _fail(
                    f"Error running {name} check: {outcome}",
                    "Check the error message and try again",
                )
            checks[name] = outcome

        errors = [
            ValidationIssue(check=name, message=result.message, remediation=result.remediation)
            for name, result in checks.items()
            if not result.passed and not result.skipped
        ]
        warnings = [
            ValidationIssue(check=name, message=result.warning)
            for name, result in checks.items()
            if result.warning
        ]
        result = ValidationResult(
            success=not errors,
            checks=checks,
            errors=errors,
            warnings=warnings,
        )

        self.logger.info(
            "validator.completed",
            success=result.success,
            errors=len(errors),
            warnings=len(warnings),
        )
        return result
