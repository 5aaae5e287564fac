"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file and override existing env vars
load_dotenv(override=True)


class Settings(BaseSettings):
    """Deployment tool settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend layout
    backend_root: Path = Field(default=Path("backend"))

    # Deployment defaults
    default_environment: Literal["development", "staging", "production"] = "development"
    default_region: str = "oregon"
    default_plan: str = "free"
    default_build_command: str = "cd backend && npm install"
    default_start_command: str = "cd backend && npm start"
    default_health_check_path: str = "/"

    # History ledger
    history_max_records: int = 50
    history_retention_days: int = 90

    # Health checks
    health_check_timeout_ms: int = 30000

    # Running under a CI system (most set CI=true)
    ci: bool = False

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_retention_days: int = 30
    session_logging: bool = True

    @property
    def config_dir(self) -> Path:
        """Directory holding deployment config and history."""
        return self.backend_root / "config"

    @property
    def environments_file(self) -> Path:
        return self.config_dir / "deployment-config.json"

    @property
    def history_file(self) -> Path:
        return self.config_dir / "deployment-history.json"

    @property
    def credentials_file(self) -> Path:
        return self.backend_root / "serviceAccountKey.json"

    @property
    def credentials_output_file(self) -> Path:
        return self.backend_root / "firebase-credentials-for-render.txt"

    @property
    def log_directory(self) -> Path:
        return self.backend_root / "logs"

    @property
    def render_config_file(self) -> Path:
        """The Render blueprint sits at the repository root, beside the backend."""
        return self.backend_root.parent / "render.yaml"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
