"""Deployment environment models."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

KNOWN_ENVIRONMENTS: tuple[str, ...] = ("development", "staging", "production")

REQUIRED_ENV_VARS: tuple[str, ...] = ("NODE_ENV", "PORT", "ADMIN_SETUP_CODE")


class Environment(BaseModel):
    """A named Render deployment target.

    Stored in ``deployment-config.json`` with camelCase keys.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    display_name: str | None = Field(default=None, alias="displayName")
    render_service_name: str = Field(alias="renderServiceName", min_length=1)
    region: str = Field(min_length=1)
    plan: str = Field(min_length=1)
    branch: str | None = Field(
        default=None,
        validation_alias=AliasChoices("autoDeployBranch", "branch"),
        serialization_alias="autoDeployBranch",
    )
    health_check_path: str = Field(alias="healthCheckPath", min_length=1)
    build_command: str | None = Field(default=None, alias="buildCommand")
    start_command: str | None = Field(default=None, alias="startCommand")
    env_vars: dict[str, str] = Field(alias="envVars")
    requires_confirmation: bool = Field(default=False, alias="requiresConfirmation")

    @field_validator("env_vars", mode="before")
    @classmethod
    def _stringify_values(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value

        coerced = {}
        for key, item in value.items():
            if item is None:
                raise ValueError(f"envVars.{key} must not be null")
            if isinstance(item, bool):
                item = "true" if item else "false"
            coerced[str(key)] = item if isinstance(item, str) else str(item)
        return coerced

    @field_validator("env_vars")
    @classmethod
    def _require_env_vars(cls, value: dict[str, str]) -> dict[str, str]:
        missing = [key for key in REQUIRED_ENV_VARS if not value.get(key)]
        if missing:
            raise ValueError(f"missing required env vars: {', '.join(missing)}")
        return value

    @property
    def service_url(self) -> str:
        """Public URL Render assigns to the service."""
        return f"https://{self.render_service_name}.onrender.com"

    def to_config(self) -> dict[str, Any]:
        """Serialize in the config file's camelCase shape."""
        return self.model_dump(by_alias=True, exclude_none=True)


class EnvironmentSummary(BaseModel):
    """Listing view of an environment."""

    name: str
    display_name: str
    service_name: str
    region: str
    plan: str
    branch: str | None = None
    requires_confirmation: bool = False
