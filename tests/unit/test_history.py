"""Unit tests for the deployment history ledger."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from render_deploy.core.exceptions import HistoryError, RollbackError
from render_deploy.core.history import HistoryLedger
from render_deploy.models.deployment import DeploymentEntry, DeploymentStatus


def _stored_record(
    record_id: str,
    environment: str,
    days_ago: float,
    version: str = "1.0.0",
    status: str = "success",
    commit: str | None = "0ld5ha",
) -> dict:
    timestamp = datetime.now(timezone.utc) - timedelta(days=days_ago)
    return {
        "id": record_id,
        "timestamp": timestamp.isoformat(),
        "environment": environment,
        "version": version,
        "gitCommit": commit,
        "gitBranch": "main",
        "deployedBy": "ops@example.com",
        "configuration": {},
        "status": status,
        "deploymentUrl": None,
        "duration": 1200,
        "notes": None,
    }


def _write_history(path: Path, records: list[dict]) -> None:
    path.write_text(json.dumps({"version": "1.0.0", "deployments": records}))


class TestRecord:
    """Tests for HistoryLedger.record."""

    @pytest.mark.asyncio
    async def test_record_creates_file(self, ledger: HistoryLedger, history_path: Path):
        """Test the first record creates the history file."""
        deployment_id = await ledger.record(
            DeploymentEntry(environment="staging", status=DeploymentStatus.SUCCESS, duration=900)
        )

        assert deployment_id.startswith("deploy_")
        data = json.loads(history_path.read_text())
        assert data["version"] == "1.0.0"
        record = data["deployments"][0]
        assert record["id"] == deployment_id
        assert record["gitCommit"] == "abc1234def5678"
        assert record["gitBranch"] == "main"
        assert record["deployedBy"] == "dev@example.com"
        assert record["version"] == "2.1.0"
        assert record["status"] == "success"

    @pytest.mark.asyncio
    async def test_git_unavailable(self, history_path: Path, backend_root: Path, fake_git):
        """Test missing git metadata is recorded as empty values."""
        ledger = HistoryLedger(
            history_path=history_path,
            backend_root=backend_root,
            vcs=fake_git(commit=None, branch=None, email=None),
        )
        deployment_id = await ledger.record(
            DeploymentEntry(environment="development", status=DeploymentStatus.FAILED, notes="boom")
        )

        record = ledger.get(deployment_id)
        assert record.git_commit is None
        assert record.git_branch is None
        assert record.deployed_by == "unknown"
        assert record.notes == "boom"

    @pytest.mark.asyncio
    async def test_most_recent_first(self, ledger: HistoryLedger):
        """Test new records are prepended."""
        first = await ledger.record(DeploymentEntry(environment="staging", status=DeploymentStatus.SUCCESS))
        second = await ledger.record(DeploymentEntry(environment="staging", status=DeploymentStatus.SUCCESS))

        assert [r.id for r in ledger.query()] == [second, first]

    @pytest.mark.asyncio
    async def test_eviction_by_count(self, history_path: Path, backend_root: Path, fake_git):
        """Test N+1 records leave exactly N, newest first."""
        ledger = HistoryLedger(
            history_path=history_path,
            backend_root=backend_root,
            vcs=fake_git(),
            max_records=3,
        )
        ids = []
        for _ in range(4):
            ids.append(await ledger.record(DeploymentEntry(environment="staging", status=DeploymentStatus.SUCCESS)))

        stored = [r.id for r in ledger.query()]
        assert len(stored) == 3
        assert stored == list(reversed(ids))[:3]

    @pytest.mark.asyncio
    async def test_eviction_by_age(self, ledger: HistoryLedger, history_path: Path):
        """Test records outside the retention window are dropped."""
        _write_history(
            history_path,
            [
                _stored_record("deploy_recent", "staging", days_ago=10),
                _stored_record("deploy_ancient", "staging", days_ago=120),
            ],
        )
        new_id = await ledger.record(DeploymentEntry(environment="staging", status=DeploymentStatus.SUCCESS))

        assert [r.id for r in ledger.query()] == [new_id, "deploy_recent"]

    @pytest.mark.asyncio
    async def test_explicit_version(self, ledger: HistoryLedger):
        """Test a supplied version wins over package.json."""
        deployment_id = await ledger.record(
            DeploymentEntry(environment="staging", status=DeploymentStatus.SUCCESS, version="9.9.9")
        )
        assert ledger.get(deployment_id).version == "9.9.9"


class TestQuery:
    """Tests for HistoryLedger.query and get."""

    @pytest.fixture
    def seeded(self, ledger: HistoryLedger, history_path: Path) -> HistoryLedger:
        _write_history(
            history_path,
            [
                _stored_record("d6", "production", 1, status="success"),
                _stored_record("d5", "staging", 2, status="failed"),
                _stored_record("d4", "production", 3, status="failed"),
                _stored_record("d3", "production", 4, status="success"),
                _stored_record("d2", "staging", 5, status="success"),
                _stored_record("d1", "production", 6, status="success"),
            ],
        )
        return ledger

    def test_no_file(self, ledger: HistoryLedger):
        """Test a missing history file is an empty history."""
        assert ledger.query() == []
        assert ledger.get("deploy_nope") is None

    def test_filter_then_limit(self, seeded: HistoryLedger):
        """Test filters apply before the limit."""
        records = seeded.query(environment="production", status="success", limit=2)
        assert [r.id for r in records] == ["d6", "d3"]

    def test_filter_by_status(self, seeded: HistoryLedger):
        records = seeded.query(status=DeploymentStatus.FAILED)
        assert [r.id for r in records] == ["d5", "d4"]

    def test_unknown_status_matches_nothing(self, seeded: HistoryLedger):
        """Test an unrecognized status filter yields no records instead of raising."""
        assert seeded.query(status="exploded") == []
        assert seeded.query(environment="production", status="SUCCESS", limit=5) == []

    def test_limit_only(self, seeded: HistoryLedger):
        assert [r.id for r in seeded.query(limit=3)] == ["d6", "d5", "d4"]

    def test_get(self, seeded: HistoryLedger):
        record = seeded.get("d3")
        assert record.environment == "production"
        assert record.timestamp.tzinfo is not None

    def test_corrupt_file(self, ledger: HistoryLedger, history_path: Path):
        """Test unreadable history raises HISTORY_READ_ERROR."""
        history_path.write_text("not json")
        with pytest.raises(HistoryError) as exc_info:
            ledger.query()
        assert exc_info.value.code == "E5001"


class TestRollback:
    """Tests for HistoryLedger.prepare_rollback."""

    def test_unknown_deployment(self, ledger: HistoryLedger):
        """Test unknown ids raise a rollback error."""
        with pytest.raises(RollbackError) as exc_info:
            ledger.prepare_rollback("deploy_missing")
        assert exc_info.value.details["deployment_id"] == "deploy_missing"

    def test_stale_production_rollback(self, ledger: HistoryLedger, history_path: Path):
        """Test an old production target with a newer version yields five warnings."""
        _write_history(
            history_path,
            [
                _stored_record("deploy_new", "production", days_ago=1, version="2.0.0"),
                _stored_record("deploy_old", "production", days_ago=10, version="1.4.0"),
            ],
        )

        plan = ledger.prepare_rollback("deploy_old")

        assert plan.target_deployment.id == "deploy_old"
        assert plan.current_deployment.id == "deploy_new"
        assert plan.warnings == [
            "Rolling back production - ensure you have approval",
            "Version will change from 2.0.0 to 1.4.0",
            "Target deployment is 10 days old - verify compatibility",
            "Database migrations may need to be reversed manually",
            "Environment variables may have changed since this deployment",
        ]
        assert plan.steps[0] == "Checkout git commit: git checkout 0ld5ha"
        assert plan.steps[1] == "Or checkout branch: git checkout main"
        assert plan.steps[2] == "Install dependencies: npm install"
        assert "deploy --env production" in plan.steps[3]
        assert "health --env production" in plan.steps[4]

    def test_recent_staging_rollback(self, ledger: HistoryLedger, history_path: Path):
        """Test only the unconditional warnings apply to a fresh same-version target."""
        _write_history(
            history_path,
            [
                _stored_record("deploy_b", "staging", days_ago=1),
                _stored_record("deploy_a", "staging", days_ago=2, commit=None),
            ],
        )

        plan = ledger.prepare_rollback("deploy_a")

        assert len(plan.warnings) == 2
        assert len(plan.steps) == 4
        assert plan.steps[0].startswith("Or checkout branch")

    def test_current_is_per_environment(self, ledger: HistoryLedger, history_path: Path):
        """Test the current deployment comes from the target's environment."""
        _write_history(
            history_path,
            [
                _stored_record("deploy_dev", "development", days_ago=0.5, version="3.0.0"),
                _stored_record("deploy_stg", "staging", days_ago=1, version="1.0.0"),
            ],
        )

        plan = ledger.prepare_rollback("deploy_stg")

        assert plan.current_deployment.id == "deploy_stg"
        assert not any("Version will change" in w for w in plan.warnings)
