"""Data models for render-deploy."""

from render_deploy.models.credentials import PreparedCredentials
from render_deploy.models.deployment import (
    DeploymentEntry,
    DeploymentHistory,
    DeploymentOutcome,
    DeploymentRecord,
    DeploymentStatus,
    GeneratedPipeline,
    RollbackPlan,
)
from render_deploy.models.environment import (
    KNOWN_ENVIRONMENTS,
    REQUIRED_ENV_VARS,
    Environment,
    EnvironmentSummary,
)
from render_deploy.models.health import EndpointResult, HealthResult, HealthStatus
from render_deploy.models.validation import CheckResult, ValidationIssue, ValidationResult

__all__ = [
    "CheckResult",
    "DeploymentEntry",
    "DeploymentHistory",
    "DeploymentOutcome",
    "DeploymentRecord",
    "DeploymentStatus",
    "EndpointResult",
    "Environment",
    "EnvironmentSummary",
    "GeneratedPipeline",
    "HealthResult",
    "HealthStatus",
    "KNOWN_ENVIRONMENTS",
    "PreparedCredentials",
    "REQUIRED_ENV_VARS",
    "RollbackPlan",
    "ValidationIssue",
    "ValidationResult",
]
