"""Unit tests for pre-deployment validation."""

import asyncio
import json
import shutil
from pathlib import Path
from typing import Any

import pytest

from render_deploy.core.validator import CHECK_ORDER, Validator


class TestValidateAll:
    """Tests for Validator.validate_all."""

    @pytest.mark.asyncio
    async def test_all_pass(self, validator: Validator):
        """Test a complete backend passes every check."""
        result = await validator.validate_all(environment="development")

        assert result.success
        assert list(result.checks) == list(CHECK_ORDER)
        assert result.errors == []
        assert result.checks["credentials"].details["project_id"] == "live...erts"

    @pytest.mark.asyncio
    async def test_missing_credentials(self, validator: Validator, backend_root: Path):
        """Test a missing credential file yields exactly one credentials error."""
        (backend_root / "serviceAccountKey.json").unlink()

        result = await validator.validate_all(environment="development")

        assert not result.success
        assert len(result.errors) == 1
        assert result.errors[0].check == "credentials"
        assert result.errors[0].remediation

    @pytest.mark.asyncio
    async def test_skip_credentials(self, validator: Validator, backend_root: Path):
        """Test skipped credentials are recorded but not failed."""
        (backend_root / "serviceAccountKey.json").unlink()

        result = await validator.validate_all(skip_credentials=True)

        assert result.success
        assert result.checks["credentials"].skipped
        assert "environment" not in result.checks

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "delays",
        [
            {"_check_credentials": 0.0, "_check_dependencies": 0.03, "_check_server_config": 0.0, "_check_environment": 0.02},
            {"_check_credentials": 0.03, "_check_dependencies": 0.0, "_check_server_config": 0.02, "_check_environment": 0.0},
        ],
    )
    async def test_deterministic(
        self,
        validator: Validator,
        backend_root: Path,
        monkeypatch: pytest.MonkeyPatch,
        delays: dict[str, float],
    ):
        """Test the merged result does not depend on which check finishes first."""
        shutil.rmtree(backend_root / "node_modules" / "cors")
        (backend_root / "server.js").unlink()
        finished: list[str] = []

        async def delayed_to_thread(func, *args):
            await asyncio.sleep(delays[func.__name__])
            finished.append(func.__name__)
            return func(*args)

        monkeypatch.setattr(asyncio, "to_thread", delayed_to_thread)

        result = await validator.validate_all(environment="staging")

        assert finished[0] in {name for name, delay in delays.items() if delay == 0.0}
        assert result.success is False
        assert list(result.checks) == list(CHECK_ORDER)
        assert [e.check for e in result.errors] == ["dependencies", "server_config"]

    @pytest.mark.asyncio
    async def test_missing_config_file_is_a_warning(self, validator: Validator, backend_root: Path):
        """Test a not-yet-created config file only warns."""
        (backend_root / "config" / "deployment-config.json").unlink()

        result = await validator.validate_all(environment="production")

        assert result.success
        assert result.warnings[0].check == "environment"
        assert "Will be created during deployment" in result.warnings[0].message


class TestCredentialCheck:
    """Tests for the credentials check."""

    def _write(self, backend_root: Path, data: Any) -> None:
        (backend_root / "serviceAccountKey.json").write_text(json.dumps(data))

    @pytest.mark.asyncio
    async def test_invalid_json(self, validator: Validator, backend_root: Path):
        (backend_root / "serviceAccountKey.json").write_text("{oops")
        result = await validator.check_credentials()
        assert not result.passed
        assert "invalid JSON" in result.message

    @pytest.mark.asyncio
    async def test_wrong_type(self, validator: Validator, backend_root: Path, service_account: dict):
        self._write(backend_root, dict(service_account, type="authorized_user"))
        result = await validator.check_credentials()
        assert not result.passed
        assert "service_account" in result.message

    @pytest.mark.asyncio
    async def test_bad_private_key(self, validator: Validator, backend_root: Path, service_account: dict):
        self._write(backend_root, dict(service_account, private_key="not-a-pem"))
        result = await validator.check_credentials()
        assert result.message == "Invalid private key format"

    @pytest.mark.asyncio
    async def test_bad_client_email(self, validator: Validator, backend_root: Path, service_account: dict):
        self._write(backend_root, dict(service_account, client_email="someone@gmail.com"))
        result = await validator.check_credentials()
        assert result.message == "Invalid client_email format"

    @pytest.mark.asyncio
    async def test_missing_fields(self, validator: Validator, backend_root: Path, service_account: dict):
        del service_account["token_uri"]
        self._write(backend_root, service_account)
        result = await validator.check_credentials()
        assert not result.passed
        assert result.details["missing_fields"] == ["token_uri"]


class TestProjectChecks:
    """Tests for dependency, server and environment checks."""

    @pytest.mark.asyncio
    async def test_no_node_modules(self, validator: Validator, backend_root: Path):
        shutil.rmtree(backend_root / "node_modules")
        result = await validator.check_dependencies()
        assert result.message == "node_modules directory not found"
        assert result.remediation == ["Run: npm install"]

    @pytest.mark.asyncio
    async def test_missing_dependency(self, validator: Validator, backend_root: Path):
        shutil.rmtree(backend_root / "node_modules" / "firebase-admin")
        result = await validator.check_dependencies()
        assert result.details["missing_dependencies"] == ["firebase-admin"]

    @pytest.mark.asyncio
    async def test_server_missing_listen(self, validator: Validator, backend_root: Path):
        (backend_root / "server.js").write_text(
            "const express = require('express');\nconst admin = require('firebase-admin');\n"
        )
        result = await validator.check_server_config()
        assert not result.passed
        assert "Server listen call" in result.message

    @pytest.mark.asyncio
    async def test_missing_start_script(self, validator: Validator, backend_root: Path):
        (backend_root / "package.json").write_text(json.dumps({"name": "x", "scripts": {}}))
        result = await validator.check_server_config()
        assert result.message == 'package.json missing "start" script'

    @pytest.mark.asyncio
    async def test_missing_server_file(self, validator: Validator, backend_root: Path):
        (backend_root / "server.js").unlink()
        result = await validator.check_server_config()
        assert result.details["missing_files"] == ["server.js"]

    @pytest.mark.asyncio
    async def test_unknown_environment(self, validator: Validator):
        result = await validator.check_environment("qa")
        assert not result.passed
        assert result.message == "Invalid environment: qa"

    @pytest.mark.asyncio
    async def test_environment_missing_fields(
        self,
        validator: Validator,
        backend_root: Path,
        environments_config: dict,
    ):
        del environments_config["staging"]["renderServiceName"]
        (backend_root / "config" / "deployment-config.json").write_text(json.dumps(environments_config))
        result = await validator.check_environment("staging")
        assert result.details["missing_fields"] == ["renderServiceName"]
