"""JSON file store for deployment configuration and history."""

import json
from pathlib import Path
from typing import Any

from render_deploy.core.exceptions import create_error
from render_deploy.utils.logging import get_logger

logger = get_logger("store")


class ConfigStore:
    """Reads and writes a single JSON document on disk.

    There is no file locking: concurrent CLI runs are last-writer-wins.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> Any | None:
        """Return the parsed document, or None if the file does not exist."""
        if not self.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("store.read_failed", path=str(self.path), error=str(e))
            raise create_error(
                "CONFIG_READ_ERROR",
                f"Failed to read {self.path.name}: {e}",
                config_path=str(self.path),
            ) from e

    def write(self, data: Any) -> None:
        """Write the document as pretty JSON, creating parent directories."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            logger.error("store.write_failed", path=str(self.path), error=str(e))
            raise create_error(
                "CONFIG_WRITE_ERROR",
                f"Failed to write {self.path.name}: {e}",
                config_path=str(self.path),
            ) from e
        logger.debug("store.written", path=str(self.path))
