"""Unit tests for the deployment session log."""

import json
import os
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

from render_deploy.utils.session_log import SEPARATOR_LINE, DeploymentLogger, EventType


class TestWriting:
    """Tests for session log entries."""

    def test_event_line_format(self, session_log: DeploymentLogger):
        """Test an event is written as one JSON line with the fixed head fields."""
        session_log.log_event(EventType.DEPLOYMENT_START, environment="staging", dryRun=False)

        lines = session_log.log_path.read_text().splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert list(entry)[:4] == ["timestamp", "sessionId", "level", "message"]
        assert entry["sessionId"] == session_log.session_id
        assert entry["level"] == "INFO"
        assert entry["message"] == "deployment_start"
        assert entry["eventType"] == "deployment_start"
        assert entry["environment"] == "staging"
        assert entry["dryRun"] is False

    def test_session_id_shape(self, session_log: DeploymentLogger):
        prefix, millis, suffix = session_log.session_id.split("_")
        assert prefix == "session"
        assert millis.isdigit()
        assert len(suffix) == 6

    def test_log_file_per_day(self, session_log: DeploymentLogger):
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        assert session_log.log_file == f"deployment-{today}.log"

    def test_error_payload(self, session_log: DeploymentLogger):
        try:
            raise ValueError("bad value")
        except ValueError as e:
            entry = session_log.error("Something broke", error=e, environment="production")

        assert entry["level"] == "ERROR"
        assert entry["error"]["name"] == "ValueError"
        assert entry["error"]["message"] == "bad value"
        assert "Traceback" in entry["error"]["stack"]

    def test_debug_requires_verbose(self, tmp_path: Path):
        """Test debug entries are only written in verbose mode."""
        quiet = DeploymentLogger(log_dir=tmp_path / "quiet", enable_file_logging=True)
        loud = DeploymentLogger(log_dir=tmp_path / "loud", enable_file_logging=True, verbose=True)

        assert quiet.debug("details") is None
        assert loud.debug("details")["level"] == "DEBUG"
        assert not quiet.log_path.exists()
        assert len(loud.read_log_file()) == 1

    def test_file_logging_disabled(self, tmp_path: Path):
        log = DeploymentLogger(log_dir=tmp_path / "logs", enable_file_logging=False)
        log.info("hello")
        assert not (tmp_path / "logs").exists()
        assert len(log.events()) == 1

    def test_step_and_success(self, session_log: DeploymentLogger):
        assert session_log.step("credentials")["message"] == "Step: credentials"
        assert session_log.success("done")["success"] is True


class TestSession:
    """Tests for session summaries."""

    def test_summary_counts(self, session_log: DeploymentLogger):
        session_log.log_event(EventType.DEPLOYMENT_START, environment="staging")
        session_log.log_event(EventType.VALIDATION_START, environment="staging")
        session_log.log_event(EventType.DEPLOYMENT_START, environment="staging")
        session_log.warning("careful")
        session_log.error("broken")

        summary = session_log.session_summary()

        assert summary["sessionId"] == session_log.session_id
        assert summary["totalEvents"] == 5
        assert summary["errors"] == 1
        assert summary["warnings"] == 1
        assert summary["eventTypes"] == ["deployment_start", "validation_start"]
        assert len(session_log.events_by_type(EventType.DEPLOYMENT_START)) == 2

    def test_summary_followed_by_separator(self, session_log: DeploymentLogger):
        """Test the session ends with a summary entry and a separator line."""
        session_log.info("work")
        session_log.write_session_summary()

        lines = session_log.log_path.read_text().splitlines()
        assert lines[-1] == SEPARATOR_LINE
        summary_entry = json.loads(lines[-2])
        assert summary_entry["message"] == "Session summary"
        assert summary_entry["summary"]["totalEvents"] == 1


class TestReading:
    """Tests for reading and searching logs."""

    def test_read_skips_separator_and_garbage(self, session_log: DeploymentLogger):
        session_log.info("first")
        session_log.write_session_summary()
        with session_log.log_path.open("a") as fh:
            fh.write("not json\n\n")
        session_log.info("second")

        entries = session_log.read_log_file()

        assert [e["message"] for e in entries] == ["first", "Session summary", "second"]

    def test_read_missing_file(self, session_log: DeploymentLogger):
        assert session_log.read_log_file("deployment-1999-01-01.log") == []

    def test_search_filters(self, session_log: DeploymentLogger):
        session_log.log_event(EventType.DEPLOYMENT_START, environment="staging")
        session_log.log_event(EventType.DEPLOYMENT_START, environment="production")
        session_log.log_event(EventType.DEPLOYMENT_FAILED, environment="production")
        session_log.error("boom", environment="production")

        assert len(session_log.search(event_type=EventType.DEPLOYMENT_START)) == 2
        assert len(session_log.search(environment="production")) == 3
        assert len(session_log.search(level="error")) == 1
        assert (
            len(session_log.search(event_type="deployment_start", environment="production")) == 1
        )

    def test_search_by_date_reads_all_files(self, session_log: DeploymentLogger):
        """Test date bounds search every log file."""
        old_entry = {
            "timestamp": "2024-01-15T10:00:00+00:00",
            "sessionId": "session_1_abcdef",
            "level": "INFO",
            "message": "deployment_start",
            "eventType": "deployment_start",
        }
        session_log.log_dir.mkdir(parents=True, exist_ok=True)
        (session_log.log_dir / "deployment-2024-01-15.log").write_text(json.dumps(old_entry) + "\n")
        session_log.log_event(EventType.DEPLOYMENT_START)

        january = session_log.search(
            start=datetime(2024, 1, 1, tzinfo=timezone.utc),
            end=datetime(2024, 2, 1, tzinfo=timezone.utc),
        )
        recent = session_log.search(start=datetime.now(timezone.utc) - timedelta(hours=1))

        assert [e["sessionId"] for e in january] == ["session_1_abcdef"]
        assert [e["sessionId"] for e in recent] == [session_log.session_id]

    def test_log_files_most_recent_first(self, session_log: DeploymentLogger):
        session_log.log_dir.mkdir(parents=True)
        for name in ("deployment-2024-01-01.log", "deployment-2024-03-01.log", "notes.txt"):
            (session_log.log_dir / name).write_text("")

        assert session_log.log_files() == ["deployment-2024-03-01.log", "deployment-2024-01-01.log"]


class TestCleanup:
    """Tests for log retention."""

    def test_removes_stale_files(self, session_log: DeploymentLogger):
        session_log.log_dir.mkdir(parents=True)
        stale = session_log.log_dir / "deployment-2020-01-01.log"
        fresh = session_log.log_dir / "deployment-2020-01-02.log"
        stale.write_text("")
        fresh.write_text("")
        old = time.time() - 40 * 86400
        os.utime(stale, (old, old))

        removed = session_log.cleanup_old_logs(retention_days=30)

        assert removed == ["deployment-2020-01-01.log"]
        assert not stale.exists()
        assert fresh.exists()

    def test_missing_directory(self, session_log: DeploymentLogger):
        assert session_log.cleanup_old_logs() == []
