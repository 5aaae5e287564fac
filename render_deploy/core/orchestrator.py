"""Deployment Orchestrator.

Sequences one deployment run:

1. load the environment
2. confirm production deployments
3. validate prerequisites
4. confirm the deployment summary
5. prepare Firebase credentials
6. generate ``render.yaml``
7. record the outcome in the history ledger

Every run that is not a dry run and not declined at a confirmation prompt
leaves exactly one history record, success or failure.
"""

import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import yaml
from pydantic import BaseModel

from render_deploy.config import settings
from render_deploy.core.credentials import CredentialPreparer
from render_deploy.core.environments import EnvironmentRegistry, mask_sensitive
from render_deploy.core.exceptions import (
    DeploymentError,
    ExitCode,
    create_error,
    exit_code_for,
    wrap_error,
)
from render_deploy.core.history import HistoryLedger
from render_deploy.core.validator import Validator
from render_deploy.models.deployment import DeploymentEntry, DeploymentOutcome, DeploymentStatus
from render_deploy.models.environment import Environment
from render_deploy.utils.display import ConsolePrompter, Display
from render_deploy.utils.logging import get_logger
from render_deploy.utils.session_log import DeploymentLogger, EventType

PRODUCTION_CONFIRMATION = "yes"
SUMMARY_CONFIRMATIONS = ("yes", "y")


class DeployOptions(BaseModel):
    """Options for one deployment run."""

    environment: str = settings.default_environment
    dry_run: bool = False
    skip_validation: bool = False
    ci: bool = False
    verbose: bool = False


def render_service_descriptor(environment: Environment) -> dict[str, Any]:
    """Build the Render blueprint for an environment.

    ``FIREBASE_SERVICE_ACCOUNT`` is declared with ``sync: false`` so Render
    expects it to be set by hand in the dashboard.
    """
    env_vars: list[dict[str, Any]] = [
        {"key": key, "value": value} for key, value in environment.env_vars.items()
    ]
    env_vars.append({"key": "FIREBASE_SERVICE_ACCOUNT", "sync": False})

    service: dict[str, Any] = {
        "type": "web",
        "name": environment.render_service_name,
        "env": "node",
        "region": environment.region,
        "plan": environment.plan,
        "buildCommand": environment.build_command or settings.default_build_command,
        "startCommand": environment.start_command or settings.default_start_command,
        "envVars": env_vars,
        "healthCheckPath": environment.health_check_path,
    }
    if environment.branch:
        service["branch"] = environment.branch

    return {"services": [service]}


class DeploymentOrchestrator:
    """Runs the deployment state machine."""

    def __init__(
        self,
        registry: EnvironmentRegistry | None = None,
        validator: Validator | None = None,
        credentials: CredentialPreparer | None = None,
        history: HistoryLedger | None = None,
        session_log: DeploymentLogger | None = None,
        display: Display | None = None,
        prompt: Callable[[str], str] | None = None,
        render_config_path: Path | None = None,
    ):
        self.registry = registry or EnvironmentRegistry()
        self.validator = validator or Validator()
        self.credentials = credentials or CredentialPreparer()
        self.history = history or HistoryLedger()
        self.session_log = session_log or DeploymentLogger()
        self.display = display or Display()
        self.prompt = prompt or ConsolePrompter(self.display.console)
        self.render_config_path = Path(render_config_path or settings.render_config_file)
        self.logger = get_logger("orchestrator")

    async def deploy(self, options: DeployOptions) -> DeploymentOutcome:
        """Run a deployment. Never raises for deployment failures."""
        started = time.monotonic()
        name = options.environment
        self.logger.info(
            "orchestrator.deploy.started",
            environment=name,
            dry_run=options.dry_run,
            ci=options.ci,
        )
        self.session_log.log_event(
            EventType.DEPLOYMENT_START,
            environment=name,
            dryRun=options.dry_run,
            ci=options.ci,
        )
        self.display.header(f"Deploying to {name.upper()}")

        environment: Environment | None = None
        try:
            # Loading environment
            environment = self.registry.load(name)
            self.session_log.log_event(EventType.ENVIRONMENT_LOADED, environment=name)
            self.display.success(f'Loaded configuration for "{name}"')

            # Production confirmation
            if environment.requires_confirmation and not options.dry_run:
                if options.ci:
                    self.logger.info("orchestrator.confirmation.skipped", reason="ci")
                    self.display.info("Running in CI mode - skipping production confirmation")
                elif not self._confirm_production(environment):
                    return self._cancelled(name, "Deployment cancelled")

            # Validation
            if options.skip_validation:
                self.logger.warning("orchestrator.validation.skipped", environment=name)
                self.display.warning("Skipping validation checks")
            else:
                failure = await self._validate(name, options, started)
                if failure is not None:
                    return failure

            # Summary confirmation
            if not options.dry_run and not options.ci:
                self.display.deployment_summary(environment, mask_sensitive(environment.env_vars))
                answer = self.prompt("Proceed with deployment? (yes/no)").strip().lower()
                if answer not in SUMMARY_CONFIRMATIONS:
                    return self._cancelled(name, "Deployment cancelled after reviewing summary")

            # Preparing credentials
            self.logger.info("orchestrator.phase.started", phase="credentials")
            prepared = self.credentials.prepare()
            self.session_log.log_event(
                EventType.CREDENTIAL_PREPARED,
                environment=name,
                outputPath=str(prepared.output_path),
            )
            self.display.success("Credentials prepared")

            # Generating config
            self.logger.info("orchestrator.phase.started", phase="render_config")
            self._write_render_config(environment, options)

            # Recording
            deployment_id = await self._record_success(environment, options, started)

        except Exception as e:
            return await self._fail(name, environment, options, started, e)

        self.display.next_steps(
            environment,
            deployment_id=deployment_id,
            credentials_path=prepared.output_path,
            render_config_path=self.render_config_path,
            dry_run=options.dry_run,
        )

        duration = int((time.monotonic() - started) * 1000)
        self.session_log.log_event(
            EventType.DEPLOYMENT_COMPLETE,
            environment=name,
            deploymentId=deployment_id,
            duration=duration,
            dryRun=options.dry_run,
        )
        self.logger.info(
            "orchestrator.deploy.completed",
            environment=name,
            deployment_id=deployment_id,
            duration_ms=duration,
        )
        return DeploymentOutcome(
            success=True,
            environment=name,
            deployment_id=deployment_id,
            deployment_url=environment.service_url,
            dry_run=options.dry_run,
            exit_code=ExitCode.SUCCESS,
        )

    def _confirm_production(self, environment: Environment) -> bool:
        self.display.warning(f"You are about to deploy to {environment.name.upper()}")
        self.display.warning(f"Service: {environment.render_service_name}")
        answer = self.prompt(f'Type "{PRODUCTION_CONFIRMATION}" to continue').strip()
        return answer == PRODUCTION_CONFIRMATION

    def _cancelled(self, name: str, message: str) -> DeploymentOutcome:
        self.logger.info("orchestrator.deploy.cancelled", environment=name, reason=message)
        self.display.warning(message)
        return DeploymentOutcome(
            success=False,
            cancelled=True,
            environment=name,
            error=message,
            exit_code=ExitCode.SUCCESS,
        )

    async def _validate(
        self,
        name: str,
        options: DeployOptions,
        started: float,
    ) -> DeploymentOutcome | None:
        self.logger.info("orchestrator.phase.started", phase="validation")
        self.session_log.log_event(EventType.VALIDATION_START, environment=name)

        result = await self.validator.validate_all(environment=name)
        self.display.validation_result(result)

        if result.success:
            self.session_log.log_event(EventType.VALIDATION_COMPLETE, environment=name)
            return None

        issues = [issue.model_dump() for issue in result.errors]
        self.session_log.log_event(
            EventType.VALIDATION_FAILED,
            environment=name,
            errors=issues,
        )
        error = create_error(
            "VALIDATION_FAILED",
            f"Validation failed: {', '.join(issue.check for issue in result.errors)}",
            check=[issue.check for issue in result.errors],
        )
        if not options.dry_run:
            await self._record_failure(name, None, started, error.message)

        self.logger.warning(
            "orchestrator.validation.failed",
            environment=name,
            checks=[issue.check for issue in result.errors],
        )
        return DeploymentOutcome(
            success=False,
            environment=name,
            dry_run=options.dry_run,
            error=error.message,
            error_code=error.code,
            exit_code=ExitCode.VALIDATION_ERROR,
            validation_errors=issues,
        )

    def _write_render_config(self, environment: Environment, options: DeployOptions) -> None:
        descriptor = render_service_descriptor(environment)
        content = yaml.dump(descriptor, default_flow_style=False, sort_keys=False)

        if options.dry_run:
            self.logger.info("orchestrator.render_config.dry_run", path=str(self.render_config_path))
            if options.verbose:
                self.display.info(f"Dry run - render.yaml not written:\n{content}")
            return

        try:
            self.render_config_path.parent.mkdir(parents=True, exist_ok=True)
            self.render_config_path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise create_error(
                "CONFIG_WRITE_ERROR",
                f"Failed to write render.yaml: {e}",
                config_path=str(self.render_config_path),
            ) from e

        self.session_log.log_event(
            EventType.CONFIG_UPDATED,
            environment=environment.name,
            path=str(self.render_config_path),
        )
        self.display.success(f"Render configuration saved to: {self.render_config_path}")

    async def _record_success(
        self,
        environment: Environment,
        options: DeployOptions,
        started: float,
    ) -> str:
        if options.dry_run:
            if options.verbose:
                self.display.info("Dry run - deployment not recorded")
            return f"deploy_dryrun_{int(datetime.now(timezone.utc).timestamp() * 1000)}"

        deployment_id = await self.history.record(
            DeploymentEntry(
                environment=environment.name,
                status=DeploymentStatus.SUCCESS,
                configuration=environment.to_config(),
                deployment_url=environment.service_url,
                duration=int((time.monotonic() - started) * 1000),
            )
        )
        self.session_log.log_event(
            EventType.HISTORY_RECORDED,
            environment=environment.name,
            deploymentId=deployment_id,
        )
        return deployment_id

    async def _record_failure(
        self,
        name: str,
        environment: Environment | None,
        started: float,
        notes: str,
    ) -> str | None:
        try:
            deployment_id = await self.history.record(
                DeploymentEntry(
                    environment=name,
                    status=DeploymentStatus.FAILED,
                    configuration=environment.to_config() if environment else {},
                    duration=int((time.monotonic() - started) * 1000),
                    notes=notes,
                )
            )
        except DeploymentError as e:
            # The original failure is what the operator needs to see
            self.logger.warning("orchestrator.record_failure.failed", error=e.message)
            return None

        self.session_log.log_event(
            EventType.HISTORY_RECORDED,
            environment=name,
            deploymentId=deployment_id,
            status=DeploymentStatus.FAILED.value,
        )
        return deployment_id

    async def _fail(
        self,
        name: str,
        environment: Environment | None,
        options: DeployOptions,
        started: float,
        exc: Exception,
    ) -> DeploymentOutcome:
        error = wrap_error(exc, step="deploy")
        self.logger.error(
            "orchestrator.deploy.failed",
            environment=name,
            code=error.code,
            error=error.message,
        )
        self.session_log.log_event(
            EventType.DEPLOYMENT_FAILED,
            environment=name,
            error=error.message,
            code=error.code,
        )
        self.display.failure(f"Deployment failed: {error.message}")
        self.display.error(error)

        deployment_id = None
        if not options.dry_run:
            deployment_id = await self._record_failure(name, environment, started, error.message)

        return DeploymentOutcome(
            success=False,
            environment=name,
            deployment_id=deployment_id,
            dry_run=options.dry_run,
            error=error.message,
            error_code=error.code,
            exit_code=exit_code_for(error),
        )
