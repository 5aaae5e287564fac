"""Per-session deployment log written as JSON lines.

Each CLI run gets a session id. Entries are appended to one file per
calendar day (``deployment-YYYY-MM-DD.log``) and a session ends with a
summary entry followed by a separator line, which readers skip.
"""

import json
import secrets
import time
import traceback
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from render_deploy.config import settings
from render_deploy.utils.logging import get_logger

SEPARATOR_LINE = '{"separator":"---"}'

LOG_FILE_PREFIX = "deployment-"
LOG_FILE_SUFFIX = ".log"


class EventType(str, Enum):
    """Deployment events recorded in the session log."""

    DEPLOYMENT_START = "deployment_start"
    DEPLOYMENT_COMPLETE = "deployment_complete"
    DEPLOYMENT_FAILED = "deployment_failed"
    VALIDATION_START = "validation_start"
    VALIDATION_COMPLETE = "validation_complete"
    VALIDATION_FAILED = "validation_failed"
    HEALTH_CHECK_START = "health_check_start"
    HEALTH_CHECK_COMPLETE = "health_check_complete"
    HEALTH_CHECK_FAILED = "health_check_failed"
    CREDENTIAL_PREPARED = "credential_prepared"
    ENVIRONMENT_LOADED = "environment_loaded"
    CONFIG_UPDATED = "config_updated"
    HISTORY_RECORDED = "history_recorded"
    ROLLBACK_INITIATED = "rollback_initiated"
    ROLLBACK_COMPLETE = "rollback_complete"
    ERROR_OCCURRED = "error_occurred"


def _log_file_name(day: datetime | None = None) -> str:
    day = day or datetime.now(timezone.utc)
    return f"{LOG_FILE_PREFIX}{day.strftime('%Y-%m-%d')}{LOG_FILE_SUFFIX}"


def _error_payload(error: BaseException | None) -> dict[str, Any] | None:
    if error is None:
        return None
    return {
        "name": type(error).__name__,
        "message": str(error),
        "code": getattr(error, "code", None),
        "stack": "".join(traceback.format_exception(error)),
    }


class DeploymentLogger:
    """Structured session log for one deployment tool run."""

    def __init__(
        self,
        log_dir: Path | None = None,
        log_file: str | None = None,
        enable_file_logging: bool | None = None,
        verbose: bool = False,
    ):
        self.session_id = f"session_{int(time.time() * 1000)}_{secrets.token_hex(3)}"
        self.log_dir = Path(log_dir) if log_dir is not None else settings.log_directory
        self.log_file = log_file or _log_file_name()
        self.enable_file_logging = (
            settings.session_logging if enable_file_logging is None else enable_file_logging
        )
        self.verbose = verbose
        self.start_time = datetime.now(timezone.utc)
        self._events: list[dict[str, Any]] = []
        self._last_entry: dict[str, Any] = {}
        self.logger = get_logger("session_log")

        self._renderer = structlog.wrap_logger(
            structlog.ReturnLogger(),
            processors=[
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
                self._add_session,
                structlog.processors.EventRenamer("message"),
                self._order_fields,
                structlog.processors.JSONRenderer(separators=(",", ":")),
            ],
            wrapper_class=structlog.BoundLogger,
            cache_logger_on_first_use=False,
        )

    @property
    def log_path(self) -> Path:
        return self.log_dir / self.log_file

    def _add_session(self, _logger: Any, _method: str, event_dict: dict) -> dict:
        event_dict["sessionId"] = self.session_id
        event_dict["level"] = event_dict["level"].upper()
        return event_dict

    def _order_fields(self, _logger: Any, _method: str, event_dict: dict) -> dict:
        head = {
            key: event_dict.pop(key)
            for key in ("timestamp", "sessionId", "level", "message")
            if key in event_dict
        }
        entry = {**head, **event_dict}
        self._last_entry = dict(entry)
        return entry

    def _write_line(self, line: str) -> None:
        if not self.enable_file_logging:
            return
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with self.log_path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError as e:
            # A broken log file must not break a deployment
            self.logger.warning("session_log.write_failed", path=str(self.log_path), error=str(e))

    def _emit(self, level: str, message: str, **data: Any) -> dict[str, Any]:
        line = getattr(self._renderer, level)(message, **data)
        self._write_line(line)
        entry = self._last_entry
        self._events.append(entry)
        return entry

    # Writing

    def log_event(self, event_type: EventType | str, **data: Any) -> dict[str, Any]:
        """Record a deployment event."""
        event = EventType(event_type).value
        self.logger.info(f"session_log.{event}", **data)
        return self._emit("info", event, eventType=event, **data)

    def debug(self, message: str, **data: Any) -> dict[str, Any] | None:
        if not self.verbose:
            return None
        return self._emit("debug", message, **data)

    def info(self, message: str, **data: Any) -> dict[str, Any]:
        return self._emit("info", message, **data)

    def warning(self, message: str, **data: Any) -> dict[str, Any]:
        return self._emit("warning", message, **data)

    def error(
        self,
        message: str,
        error: BaseException | None = None,
        **data: Any,
    ) -> dict[str, Any]:
        return self._emit("error", message, error=_error_payload(error), **data)

    def critical(
        self,
        message: str,
        error: BaseException | None = None,
        **data: Any,
    ) -> dict[str, Any]:
        return self._emit("critical", message, error=_error_payload(error), **data)

    def step(self, step: str, **data: Any) -> dict[str, Any]:
        return self._emit("info", f"Step: {step}", step=step, **data)

    def success(self, message: str, **data: Any) -> dict[str, Any]:
        return self._emit("info", message, success=True, **data)

    # Session state

    def events(self) -> list[dict[str, Any]]:
        return list(self._events)

    def events_by_type(self, event_type: EventType | str) -> list[dict[str, Any]]:
        event = EventType(event_type).value
        return [e for e in self._events if e.get("eventType") == event]

    def session_duration_ms(self) -> int:
        return int((datetime.now(timezone.utc) - self.start_time).total_seconds() * 1000)

    def session_summary(self) -> dict[str, Any]:
        errors = [e for e in self._events if e.get("level") in ("ERROR", "CRITICAL")]
        warnings = [e for e in self._events if e.get("level") == "WARNING"]
        event_types: list[str] = []
        for entry in self._events:
            event_type = entry.get("eventType")
            if event_type and event_type not in event_types:
                event_types.append(event_type)

        return {
            "sessionId": self.session_id,
            "startTime": self.start_time.isoformat(),
            "duration": self.session_duration_ms(),
            "totalEvents": len(self._events),
            "errors": len(errors),
            "warnings": len(warnings),
            "eventTypes": event_types,
        }

    def write_session_summary(self) -> dict[str, Any]:
        """Append the session summary and the session separator."""
        summary = self.session_summary()
        self._emit("info", "Session summary", summary=summary)
        self._write_line(SEPARATOR_LINE)
        return summary

    # Reading

    def read_log_file(self, log_file: str | None = None) -> list[dict[str, Any]]:
        """Read entries from a log file, skipping separators and bad lines."""
        path = self.log_dir / (log_file or self.log_file)
        if not path.exists():
            return []

        entries = []
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line == SEPARATOR_LINE:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(entry, dict) and "separator" not in entry:
                entries.append(entry)
        return entries

    def log_files(self) -> list[str]:
        """Available log file names, most recent first."""
        if not self.log_dir.exists():
            return []
        names = [
            p.name
            for p in self.log_dir.iterdir()
            if p.name.startswith(LOG_FILE_PREFIX) and p.name.endswith(LOG_FILE_SUFFIX)
        ]
        return sorted(names, reverse=True)

    def search(
        self,
        event_type: EventType | str | None = None,
        level: str | None = None,
        environment: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Search log entries. Date bounds widen the search to every log file."""
        files = self.log_files() if (start or end) else [self.log_file]
        event = EventType(event_type).value if event_type else None

        matches = []
        for name in files:
            for entry in self.read_log_file(name):
                if event and entry.get("eventType") != event:
                    continue
                if level and entry.get("level") != level.upper():
                    continue
                if environment and entry.get("environment") != environment:
                    continue
                if start or end:
                    stamp = _parse_timestamp(entry.get("timestamp"))
                    if stamp is None:
                        continue
                    if start and stamp < _as_utc(start):
                        continue
                    if end and stamp > _as_utc(end):
                        continue
                matches.append(entry)
        return matches

    def cleanup_old_logs(self, retention_days: int | None = None) -> list[str]:
        """Delete log files not modified within the retention window."""
        if not self.enable_file_logging or not self.log_dir.exists():
            return []

        retention_days = settings.log_retention_days if retention_days is None else retention_days
        cutoff = time.time() - timedelta(days=retention_days).total_seconds()
        removed = []
        for name in self.log_files():
            path = self.log_dir / name
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed.append(name)
            except OSError as e:
                self.warning(f"Failed to cleanup old logs: {e}")
        if removed:
            self.debug("Deleted old log files", files=removed)
        return removed


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None
