"""Deployment history ledger and rollback planning."""

import json
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from render_deploy.config import settings
from render_deploy.core.exceptions import ConfigurationError, create_error
from render_deploy.core.store import ConfigStore
from render_deploy.core.vcs import GitMetadata
from render_deploy.models.deployment import (
    DeploymentEntry,
    DeploymentHistory,
    DeploymentRecord,
    DeploymentStatus,
    RollbackPlan,
)
from render_deploy.utils.logging import get_logger

DEFAULT_VERSION = "1.0.0"
STALE_AFTER_DAYS = 7


class HistoryLedger:
    """Append-only record of deployments, most recent first.

    Every ``record`` call evicts entries beyond ``max_records`` and entries
    older than ``retention_days``.
    """

    def __init__(
        self,
        history_path: Path | None = None,
        backend_root: Path | None = None,
        vcs: GitMetadata | None = None,
        max_records: int | None = None,
        retention_days: int | None = None,
    ):
        self.store = ConfigStore(history_path or settings.history_file)
        self.backend_root = Path(backend_root or settings.backend_root)
        self.vcs = vcs or GitMetadata(cwd=self.backend_root if self.backend_root.exists() else None)
        self.max_records = settings.history_max_records if max_records is None else max_records
        self.retention_days = (
            settings.history_retention_days if retention_days is None else retention_days
        )
        self.logger = get_logger("history")

    @property
    def history_path(self) -> Path:
        return self.store.path

    def _load(self) -> DeploymentHistory:
        try:
            data = self.store.read()
        except ConfigurationError as e:
            raise create_error(
                "HISTORY_READ_ERROR",
                e.message,
                history_path=str(self.history_path),
            ) from e

        if data is None:
            return DeploymentHistory()
        try:
            return DeploymentHistory.model_validate(data)
        except PydanticValidationError as e:
            raise create_error(
                "HISTORY_READ_ERROR",
                f"Deployment history has an invalid structure: {e.error_count()} problem(s)",
                history_path=str(self.history_path),
            ) from e

    def _save(self, history: DeploymentHistory) -> None:
        self.store.write(history.model_dump(mode="json", by_alias=True))

    def _package_version(self) -> str:
        package_json = self.backend_root / "package.json"
        try:
            manifest = json.loads(package_json.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return DEFAULT_VERSION
        version = manifest.get("version") if isinstance(manifest, dict) else None
        return version or DEFAULT_VERSION

    def _evict(self, deployments: list[DeploymentRecord]) -> list[DeploymentRecord]:
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.retention_days)
        kept = deployments[: self.max_records]
        return [d for d in kept if d.timestamp >= cutoff]

    async def record(self, entry: DeploymentEntry) -> str:
        """Append a deployment record and return its id."""
        deployment_id = f"deploy_{int(time.time() * 1000)}_{uuid4().hex[:6]}"

        record = DeploymentRecord(
            id=deployment_id,
            timestamp=datetime.now(timezone.utc),
            environment=entry.environment,
            version=entry.version or self._package_version(),
            git_commit=await self.vcs.commit(),
            git_branch=await self.vcs.branch(),
            deployed_by=entry.deployed_by or await self.vcs.user_email() or "unknown",
            configuration=entry.configuration,
            status=entry.status,
            deployment_url=entry.deployment_url,
            duration=entry.duration,
            notes=entry.notes,
        )

        history = self._load()
        before = len(history.deployments) + 1
        history.deployments = self._evict([record, *history.deployments])
        self._save(history)

        self.logger.info(
            "history.recorded",
            deployment_id=deployment_id,
            environment=entry.environment,
            status=entry.status.value,
            evicted=before - len(history.deployments),
        )
        return deployment_id

    def query(
        self,
        environment: str | None = None,
        status: DeploymentStatus | str | None = None,
        limit: int | None = None,
    ) -> list[DeploymentRecord]:
        """Filter by environment and status, then truncate to ``limit``."""
        deployments = self._load().deployments

        if environment:
            deployments = [d for d in deployments if d.environment == environment]
        if status:
            try:
                status = DeploymentStatus(status)
            except ValueError:
                # No record can carry an unknown status
                return []
            deployments = [d for d in deployments if d.status == status]
        if limit is not None:
            deployments = deployments[: max(limit, 0)]

        return deployments

    def get(self, deployment_id: str) -> DeploymentRecord | None:
        for deployment in self._load().deployments:
            if deployment.id == deployment_id:
                return deployment
        return None

    def latest(self, environment: str | None = None) -> DeploymentRecord | None:
        deployments = self.query(environment=environment, limit=1)
        return deployments[0] if deployments else None

    def prepare_rollback(self, deployment_id: str) -> RollbackPlan:
        """Build the steps and warnings for rolling back to a deployment."""
        target = self.get(deployment_id)
        if target is None:
            raise create_error(
                "DEPLOYMENT_NOT_FOUND",
                f"Deployment not found: {deployment_id}",
                deployment_id=deployment_id,
            )

        current = self.latest(environment=target.environment)
        plan = RollbackPlan(
            target_deployment=target,
            current_deployment=current,
            steps=rollback_steps(target),
            warnings=rollback_warnings(target, current),
        )
        self.logger.info(
            "history.rollback_prepared",
            deployment_id=deployment_id,
            environment=target.environment,
            warnings=len(plan.warnings),
        )
        return plan


def rollback_steps(target: DeploymentRecord) -> list[str]:
    steps = []
    if target.git_commit:
        steps.append(f"Checkout git commit: git checkout {target.git_commit}")
    if target.git_branch:
        steps.append(f"Or checkout branch: git checkout {target.git_branch}")
    steps.append("Install dependencies: npm install")
    steps.append(f"Deploy to {target.environment}: render-deploy deploy --env {target.environment}")
    steps.append(f"Verify deployment: render-deploy health --env {target.environment}")
    return steps


def rollback_warnings(
    target: DeploymentRecord,
    current: DeploymentRecord | None,
    now: datetime | None = None,
) -> list[str]:
    warnings = []
    if target.environment == "production":
        warnings.append("Rolling back production - ensure you have approval")

    if current is not None and current.version != target.version:
        warnings.append(f"Version will change from {current.version} to {target.version}")

    now = now or datetime.now(timezone.utc)
    days_old = (now - target.timestamp).days
    if days_old > STALE_AFTER_DAYS:
        warnings.append(f"Target deployment is {days_old} days old - verify compatibility")

    warnings.append("Database migrations may need to be reversed manually")
    warnings.append("Environment variables may have changed since this deployment")
    return warnings
