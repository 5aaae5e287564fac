"""Firebase service account preparation for Render.

Render takes the service account as a single environment variable, so the
JSON file is flattened onto one line and written beside the backend for the
operator to paste into the dashboard.
"""

import json
from pathlib import Path
from typing import Any

from render_deploy.config import settings
from render_deploy.core.exceptions import create_error
from render_deploy.models.credentials import PreparedCredentials
from render_deploy.utils.logging import get_logger

REQUIRED_FIREBASE_FIELDS: tuple[str, ...] = (
    "type",
    "project_id",
    "private_key_id",
    "private_key",
    "client_email",
    "client_id",
    "auth_uri",
    "token_uri",
    "auth_provider_x509_cert_url",
    "client_x509_cert_url",
)


def format_credentials(credentials: dict[str, Any]) -> str:
    """Compact single-line JSON. Newlines inside strings stay escaped."""
    return json.dumps(credentials, separators=(",", ":"), ensure_ascii=False)


def validate_structure(credentials: Any) -> bool:
    """Quick gate: every required field is present and non-empty."""
    if not isinstance(credentials, dict):
        return False
    return all(credentials.get(field) for field in REQUIRED_FIREBASE_FIELDS)


def mask_credentials(credentials: dict[str, Any]) -> dict[str, Any]:
    """Copy of the credentials safe to print."""
    masked = dict(credentials)

    private_key = masked.get("private_key")
    if isinstance(private_key, str) and private_key:
        masked["private_key"] = f"{private_key[:30]}...[REDACTED]...{private_key[-30:]}"

    for field in ("private_key_id", "client_id"):
        value = masked.get(field)
        if isinstance(value, str) and value:
            masked[field] = f"{value[:8]}...[REDACTED]"

    return masked


class CredentialPreparer:
    """Validates and flattens the service account file."""

    def __init__(
        self,
        credentials_path: Path | None = None,
        output_path: Path | None = None,
    ):
        self.credentials_path = Path(credentials_path or settings.credentials_file)
        self.output_path = Path(output_path or settings.credentials_output_file)
        self.logger = get_logger("credentials")

    format = staticmethod(format_credentials)
    validate_structure = staticmethod(validate_structure)
    mask_sensitive = staticmethod(mask_credentials)

    def read(self) -> dict[str, Any]:
        """Read the service account file."""
        if not self.credentials_path.exists():
            raise create_error(
                "MISSING_CREDENTIALS",
                f"Service account file not found: {self.credentials_path}",
                credentials_path=str(self.credentials_path),
            )
        try:
            credentials = json.loads(self.credentials_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise create_error(
                "INVALID_CREDENTIALS",
                f"Failed to parse service account file: {e}",
                credentials_path=str(self.credentials_path),
            ) from e

        if not validate_structure(credentials):
            missing = (
                [f for f in REQUIRED_FIREBASE_FIELDS if not credentials.get(f)]
                if isinstance(credentials, dict)
                else list(REQUIRED_FIREBASE_FIELDS)
            )
            raise create_error(
                "INVALID_CREDENTIALS",
                f"Service account file is missing required fields: {', '.join(missing)}",
                credentials_path=str(self.credentials_path),
                missing_fields=missing,
            )
        return credentials

    def prepare(self) -> PreparedCredentials:
        """Read, flatten and write the credentials for Render."""
        credentials = self.read()
        formatted = format_credentials(credentials)

        try:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self.output_path.write_text(formatted, encoding="utf-8")
        except OSError as e:
            raise create_error(
                "CONFIG_WRITE_ERROR",
                f"Failed to write formatted credentials: {e}",
                config_path=str(self.output_path),
            ) from e

        self.logger.info(
            "credentials.prepared",
            project_id=credentials.get("project_id"),
            output_path=str(self.output_path),
        )
        return PreparedCredentials(
            formatted_credentials=formatted,
            output_path=self.output_path,
            masked_credentials=mask_credentials(credentials),
        )
