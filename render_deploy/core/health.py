"""Health probe for a deployed backend.

The probe never raises: every failure resolves to a ``HealthResult`` or an
``EndpointResult`` with ``status_code=0``.
"""

import time
from typing import Any

import httpx

from render_deploy.config import settings
from render_deploy.core.environments import EnvironmentRegistry
from render_deploy.models.health import EndpointResult, HealthResult, HealthStatus
from render_deploy.utils.logging import get_logger

ROOT_PATH = "/"
# Answers 400/401 to a bogus code when routing and validation are up
API_PROBE_PATH = "/validate-admin-code"
API_PROBE_STATUSES = (400, 401)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class HealthProbe:
    """Probes the root and a known API route of a deployed service."""

    def __init__(
        self,
        registry: EnvironmentRegistry | None = None,
        timeout_ms: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.registry = registry or EnvironmentRegistry()
        self.timeout_ms = timeout_ms or settings.health_check_timeout_ms
        self.transport = transport
        self.logger = get_logger("health")

    async def check(
        self,
        environment: str | None = None,
        url: str | None = None,
        timeout_ms: int | None = None,
    ) -> HealthResult:
        """Check a service by explicit URL or by environment name."""
        started = time.monotonic()
        label = environment or "custom"

        try:
            if url:
                target = url
            elif environment:
                target = self.registry.load(environment).service_url
            else:
                raise ValueError("Either environment or url must be specified")

            timeout_ms = timeout_ms or self.timeout_ms
            self.logger.info("health.check.started", url=target, timeout_ms=timeout_ms)

            result = await self.detailed_check(target, timeout_ms)
            result.total_time = _elapsed_ms(started)
            result.environment = label
        except Exception as e:
            self.logger.warning("health.check.error", environment=label, error=str(e))
            return HealthResult(
                status=HealthStatus.ERROR,
                environment=label,
                errors=[str(e)],
                total_time=_elapsed_ms(started),
            )

        self.logger.info(
            "health.check.completed",
            url=result.url,
            status=result.status.value,
            total_time=result.total_time,
        )
        return result

    async def detailed_check(self, url: str, timeout_ms: int | None = None) -> HealthResult:
        """Probe the root path, then the API route if the root is healthy."""
        timeout_ms = timeout_ms or self.timeout_ms
        base = url.rstrip("/")
        result = HealthResult(status=HealthStatus.UNHEALTHY, url=base)

        root = await self.test_endpoint(base + ROOT_PATH, timeout_ms=timeout_ms)
        result.endpoints[ROOT_PATH] = root

        if root.success:
            result.status = HealthStatus.HEALTHY
            result.response_time = root.response_time
            if isinstance(root.data, dict):
                version = root.data.get("version")
                result.version = str(version) if version is not None else None
                result.server_info = root.data
        else:
            result.status = HealthStatus.UNREACHABLE if root.status_code == 0 else HealthStatus.UNHEALTHY
            result.errors.append(f"{ROOT_PATH}: {root.error}")
            return result

        api = await self.test_endpoint(
            base + API_PROBE_PATH,
            method="POST",
            json_body={"code": "test"},
            expected_statuses=API_PROBE_STATUSES,
            timeout_ms=timeout_ms,
        )
        result.endpoints[API_PROBE_PATH] = api
        if not api.success and api.status_code == 0:
            result.errors.append(f"{API_PROBE_PATH}: {api.error}")

        return result

    async def test_endpoint(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        expected_statuses: tuple[int, ...] = (200,),
        timeout_ms: int | None = None,
    ) -> EndpointResult:
        """Request one endpoint. Failures come back as ``status_code=0``."""
        timeout_ms = timeout_ms or self.timeout_ms
        started = time.monotonic()

        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                timeout=timeout_ms / 1000,
            ) as client:
                response = await client.request(method, url, headers=headers, json=json_body)
        except httpx.TimeoutException:
            return EndpointResult(
                success=False,
                response_time=_elapsed_ms(started),
                error=f"Request timed out after {timeout_ms}ms",
            )
        except httpx.TransportError as e:
            return EndpointResult(
                success=False,
                response_time=_elapsed_ms(started),
                error=f"Connection failed: {e or type(e).__name__}",
            )
        except Exception as e:
            return EndpointResult(
                success=False,
                response_time=_elapsed_ms(started),
                error=f"Request failed: {e or type(e).__name__}",
            )

        try:
            data: Any = response.json()
        except ValueError:
            data = response.text

        success = response.status_code in expected_statuses
        return EndpointResult(
            success=success,
            status_code=response.status_code,
            response_time=_elapsed_ms(started),
            data=data,
            error=None if success else f"Unexpected status code: {response.status_code}",
            headers=dict(response.headers),
        )
