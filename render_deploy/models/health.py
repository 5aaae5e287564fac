"""Health check models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from render_deploy.models.deployment import utc_now


class HealthStatus(str, Enum):
    """Overall health classification."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNREACHABLE = "unreachable"
    ERROR = "error"


class EndpointResult(BaseModel):
    """Result of probing one endpoint. A status code of 0 means no response."""

    success: bool
    status_code: int = 0
    response_time: int = 0
    data: Any = None
    error: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)


class HealthResult(BaseModel):
    """Result of a health check against a deployed service."""

    status: HealthStatus
    url: str | None = None
    environment: str | None = None
    endpoints: dict[str, EndpointResult] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    response_time: int | None = None
    total_time: int | None = None
    version: str | None = None
    server_info: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY
