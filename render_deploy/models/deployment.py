"""Deployment history models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentStatus(str, Enum):
    """Status of a recorded deployment."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class DeploymentRecord(BaseModel):
    """One entry of the deployment ledger. Immutable once recorded."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    timestamp: datetime
    environment: str
    version: str
    git_commit: str | None = Field(default=None, alias="gitCommit")
    git_branch: str | None = Field(default=None, alias="gitBranch")
    deployed_by: str | None = Field(default=None, alias="deployedBy")
    configuration: dict[str, Any] = Field(default_factory=dict)
    status: DeploymentStatus
    deployment_url: str | None = Field(default=None, alias="deploymentUrl")
    duration: int | None = None
    notes: str | None = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class DeploymentEntry(BaseModel):
    """What a caller supplies when recording a deployment."""

    environment: str
    status: DeploymentStatus
    version: str | None = None
    deployed_by: str | None = None
    configuration: dict[str, Any] = Field(default_factory=dict)
    deployment_url: str | None = None
    duration: int | None = None
    notes: str | None = None


class DeploymentHistory(BaseModel):
    """On-disk shape of ``deployment-history.json``, most recent first."""

    version: str = "1.0.0"
    deployments: list[DeploymentRecord] = Field(default_factory=list)


class RollbackPlan(BaseModel):
    """Steps and warnings for returning to an earlier deployment."""

    target_deployment: DeploymentRecord
    current_deployment: DeploymentRecord | None = None
    steps: list[str]
    warnings: list[str]
    created_at: datetime = Field(default_factory=utc_now)


class DeploymentOutcome(BaseModel):
    """Result of one orchestrated deployment run."""

    success: bool
    environment: str
    timestamp: datetime = Field(default_factory=utc_now)
    deployment_id: str | None = None
    deployment_url: str | None = None
    dry_run: bool = False
    cancelled: bool = False
    exit_code: int = 0
    error: str | None = None
    error_code: str | None = None
    validation_errors: list[dict[str, Any]] = Field(default_factory=list)


class GeneratedPipeline(BaseModel):
    """Files written by the CI/CD configuration generator."""

    platform: str
    workflow_path: str
    docs_path: str
