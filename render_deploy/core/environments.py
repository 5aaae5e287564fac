"""Deployment environment registry backed by ``deployment-config.json``."""

from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from render_deploy.config import settings
from render_deploy.core.exceptions import create_error
from render_deploy.core.store import ConfigStore
from render_deploy.models.environment import (
    KNOWN_ENVIRONMENTS,
    REQUIRED_ENV_VARS,
    Environment,
    EnvironmentSummary,
)
from render_deploy.utils.logging import get_logger

STRUCTURAL_FIELDS: tuple[str, ...] = (
    "name",
    "renderServiceName",
    "region",
    "plan",
    "envVars",
    "healthCheckPath",
)

SENSITIVE_KEY_PATTERNS: tuple[str, ...] = (
    "SECRET",
    "KEY",
    "PASSWORD",
    "TOKEN",
    "API_KEY",
    "PRIVATE_KEY",
    "ADMIN_SETUP_CODE",
    "FIREBASE_SERVICE_ACCOUNT",
)


def is_sensitive_key(key: str) -> bool:
    upper = key.upper()
    return any(pattern in upper for pattern in SENSITIVE_KEY_PATTERNS)


def mask_value(value: str) -> str:
    if len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return "***"


def mask_sensitive(env_vars: dict[str, str]) -> dict[str, str]:
    """Mask values whose key looks like a secret."""
    return {
        key: mask_value(value) if value and is_sensitive_key(key) else value
        for key, value in env_vars.items()
    }


def missing_structure(config: Any) -> list[str]:
    """List structural fields and required env vars absent from an entry."""
    if not isinstance(config, dict):
        return list(STRUCTURAL_FIELDS)

    missing = [field for field in STRUCTURAL_FIELDS if not config.get(field)]
    env_vars = config.get("envVars")
    if isinstance(env_vars, dict):
        missing.extend(f"envVars.{key}" for key in REQUIRED_ENV_VARS if not env_vars.get(key))
    return missing


def _describe(error: PydanticValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in item['loc']) or 'entry'}: {item['msg']}"
        for item in error.errors()
    ]


class EnvironmentRegistry:
    """Loads, lists and edits named deployment environments.

    The registry keeps no loaded state: ``load`` returns an ``Environment``
    and callers pass it along.
    """

    def __init__(self, config_path: Path | None = None):
        self.store = ConfigStore(config_path or settings.environments_file)
        self.logger = get_logger("environments")

    @property
    def config_path(self) -> Path:
        return self.store.path

    def _check_name(self, name: str) -> None:
        if name not in KNOWN_ENVIRONMENTS:
            raise create_error(
                "INVALID_ENVIRONMENT",
                f"Invalid environment: {name}. Must be one of: {', '.join(KNOWN_ENVIRONMENTS)}",
                environment=name,
            )

    def _read_required(self, name: str) -> dict[str, Any]:
        data = self.store.read()
        if data is None:
            raise create_error(
                "MISSING_ENV_CONFIG",
                f"Configuration file not found: {self.config_path}",
                environment=name,
                config_path=str(self.config_path),
            )
        if not isinstance(data, dict):
            raise create_error(
                "CONFIG_READ_ERROR",
                "Configuration file must contain an object keyed by environment name",
                config_path=str(self.config_path),
            )
        return data

    def _entry(self, data: dict[str, Any], name: str) -> dict[str, Any]:
        entry = data.get(name)
        if entry is None:
            raise create_error(
                "CONFIG_READ_ERROR",
                f"Environment '{name}' not found in configuration",
                config_path=str(self.config_path),
                environment=name,
                reason="missing",
            )
        return entry

    def load(self, name: str) -> Environment:
        """Load and validate a named environment."""
        self._check_name(name)
        data = self._read_required(name)
        entry = self._entry(data, name)

        missing = missing_structure(entry)
        if missing:
            raise create_error(
                "CONFIG_READ_ERROR",
                f"Environment '{name}' is missing required fields: {', '.join(missing)}",
                config_path=str(self.config_path),
                environment=name,
                reason="invalid_structure",
                missing_fields=missing,
            )

        try:
            environment = Environment.model_validate(entry)
        except PydanticValidationError as e:
            raise create_error(
                "CONFIG_READ_ERROR",
                f"Environment '{name}' has an invalid structure",
                config_path=str(self.config_path),
                environment=name,
                reason="invalid_structure",
                problems=_describe(e),
            ) from e

        self.logger.info(
            "environments.loaded",
            environment=name,
            service=environment.render_service_name,
        )
        return environment

    def list(self) -> list[EnvironmentSummary]:
        """Summaries of configured environments. Empty if no config file."""
        data = self.store.read()
        if not isinstance(data, dict):
            return []

        summaries = []
        for name, entry in data.items():
            if not isinstance(entry, dict):
                continue
            summaries.append(
                EnvironmentSummary(
                    name=name,
                    display_name=entry.get("displayName") or name,
                    service_name=entry.get("renderServiceName", ""),
                    region=entry.get("region", ""),
                    plan=entry.get("plan", ""),
                    branch=entry.get("autoDeployBranch") or entry.get("branch"),
                    requires_confirmation=bool(entry.get("requiresConfirmation", False)),
                )
            )
        return summaries

    def create(self, name: str, config: dict[str, Any]) -> Environment:
        """Add a new environment to the config file."""
        self._check_name(name)
        data = self.store.read() or {}
        if not isinstance(data, dict):
            raise create_error(
                "INVALID_CONFIG_STRUCTURE",
                "Configuration file must contain an object keyed by environment name",
                config_path=str(self.config_path),
            )
        if name in data:
            raise create_error(
                "ENVIRONMENT_EXISTS",
                f"Environment '{name}' already exists",
                config_path=str(self.config_path),
                environment=name,
            )

        entry = {
            "name": name,
            "region": settings.default_region,
            "plan": settings.default_plan,
            "healthCheckPath": settings.default_health_check_path,
            **config,
        }
        missing = missing_structure(entry)
        if missing:
            raise create_error(
                "INVALID_CONFIG_STRUCTURE",
                f"Missing required fields: {', '.join(missing)}",
                config_path=str(self.config_path),
                environment=name,
                missing_fields=missing,
            )

        try:
            environment = Environment.model_validate(entry)
        except PydanticValidationError as e:
            raise create_error(
                "INVALID_CONFIG_STRUCTURE",
                f"Environment '{name}' has an invalid structure",
                config_path=str(self.config_path),
                environment=name,
                problems=_describe(e),
            ) from e

        data[name] = environment.to_config()
        self.store.write(data)
        self.logger.info("environments.created", environment=name)
        return environment

    def update_variables(self, name: str, variables: dict[str, str]) -> Environment:
        """Merge variables into an environment's ``envVars``."""
        self._check_name(name)
        data = self._read_required(name)
        entry = dict(self._entry(data, name))

        env_vars = dict(entry.get("envVars") or {})
        env_vars.update({key: str(value) for key, value in variables.items()})
        entry["envVars"] = env_vars

        try:
            environment = Environment.model_validate(entry)
        except PydanticValidationError as e:
            raise create_error(
                "INVALID_CONFIG_STRUCTURE",
                f"Environment '{name}' would be invalid after update",
                config_path=str(self.config_path),
                environment=name,
                problems=_describe(e),
            ) from e

        data[name] = entry
        self.store.write(data)
        self.logger.info(
            "environments.variables_updated",
            environment=name,
            keys=sorted(variables),
        )
        return environment

    def mask_sensitive(self, env_vars: dict[str, str]) -> dict[str, str]:
        return mask_sensitive(env_vars)

    def service_url(self, environment: Environment) -> str:
        return environment.service_url
