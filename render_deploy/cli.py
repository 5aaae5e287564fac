"""Command-line interface for Render deployments."""

import asyncio
import functools
import json
import platform
from pathlib import Path
from typing import Annotated, Any, Callable

import typer

from render_deploy import __version__
from render_deploy.config import settings
from render_deploy.core.cicd import CICDConfigGenerator, CICDPlatform
from render_deploy.core.environments import EnvironmentRegistry, mask_sensitive
from render_deploy.core.error_handler import ErrorHandler
from render_deploy.core.exceptions import ExitCode, create_error
from render_deploy.core.health import HealthProbe
from render_deploy.core.history import HistoryLedger
from render_deploy.core.orchestrator import DeploymentOrchestrator, DeployOptions
from render_deploy.core.validator import Validator
from render_deploy.models.deployment import DeploymentStatus
from render_deploy.models.health import HealthStatus
from render_deploy.utils.display import ConsolePrompter, Display
from render_deploy.utils.logging import configure_logging
from render_deploy.utils.session_log import DeploymentLogger, EventType

app = typer.Typer(add_completion=False, no_args_is_help=True, help="Deploy the backend to Render.")
env_app = typer.Typer(no_args_is_help=True, help="Manage deployment environments.")
app.add_typer(env_app, name="env")

RECENT_LIMIT = 10


class CliState:
    """Per-invocation collaborators shared by commands."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.display = Display(verbose=verbose)
        self.session_log = DeploymentLogger(verbose=verbose)
        self.errors = ErrorHandler(self.session_log, self.display)


def _state(ctx: typer.Context) -> CliState:
    if not isinstance(ctx.obj, CliState):
        ctx.obj = CliState()
    return ctx.obj


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Route failures through the error handler and exit with its code."""

    @functools.wraps(func)
    def wrapper(ctx: typer.Context, *args: Any, **kwargs: Any) -> Any:
        errors = _state(ctx).errors
        try:
            return func(ctx, *args, **kwargs)
        except (typer.Exit, typer.Abort, typer.BadParameter):
            raise
        except Exception as e:
            code = errors.dispatch(e, command=ctx.command_path)
            raise typer.Exit(int(code)) from e
        finally:
            errors.display_summary()

    return wrapper


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug output.")] = False,
) -> None:
    configure_logging(level="DEBUG" if verbose else None)
    ctx.obj = CliState(verbose=verbose)


@app.command()
@handle_errors
def deploy(
    ctx: typer.Context,
    env: Annotated[str, typer.Option("--env", "-e", help="Target environment.")] = settings.default_environment,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Simulate without writing files or history.")] = False,
    skip_validation: Annotated[bool, typer.Option("--skip-validation", help="Skip prerequisite checks.")] = False,
    validate_only: Annotated[bool, typer.Option("--validate-only", help="Only run validation.")] = False,
    ci: Annotated[bool, typer.Option("--ci", help="Non-interactive mode.")] = settings.ci,
) -> None:
    """Prepare a deployment of the backend to Render."""
    state = _state(ctx)
    if validate_only:
        _run_validation(state, env, skip_credentials=False)
        return

    state.session_log.cleanup_old_logs()
    orchestrator = DeploymentOrchestrator(
        session_log=state.session_log,
        display=state.display,
        prompt=ConsolePrompter(state.display.console),
    )
    outcome = asyncio.run(
        orchestrator.deploy(
            DeployOptions(
                environment=env,
                dry_run=dry_run,
                skip_validation=skip_validation,
                ci=ci,
                verbose=state.verbose,
            )
        )
    )
    state.session_log.write_session_summary()
    if outcome.exit_code != ExitCode.SUCCESS:
        raise typer.Exit(outcome.exit_code)


@app.command()
@handle_errors
def validate(
    ctx: typer.Context,
    env: Annotated[str | None, typer.Option("--env", "-e", help="Also validate this environment.")] = None,
    skip_credentials: Annotated[bool, typer.Option("--skip-credentials", help="Skip the credentials check.")] = False,
) -> None:
    """Run pre-deployment validation checks."""
    _run_validation(_state(ctx), env, skip_credentials)


def _run_validation(state: CliState, env: str | None, skip_credentials: bool) -> None:
    state.session_log.log_event(EventType.VALIDATION_START, environment=env)
    result = asyncio.run(Validator().validate_all(environment=env, skip_credentials=skip_credentials))
    state.display.validation_result(result, show_warnings=False)
    for issue in result.warnings:
        state.errors.handle_warning(f"{issue.check}: {issue.message}", check=issue.check)

    if not result.success:
        state.session_log.log_event(
            EventType.VALIDATION_FAILED,
            environment=env,
            errors=[issue.model_dump() for issue in result.errors],
        )
        error = create_error(
            "VALIDATION_FAILED",
            f"Validation failed: {', '.join(issue.check for issue in result.errors)}",
            check=[issue.check for issue in result.errors],
        )
        raise typer.Exit(state.errors.handle_validation_error(error, environment=env))
    state.session_log.log_event(EventType.VALIDATION_COMPLETE, environment=env)


@app.command()
@handle_errors
def history(
    ctx: typer.Context,
    env: Annotated[str | None, typer.Option("--env", "-e", help="Filter by environment.")] = None,
    status: Annotated[DeploymentStatus | None, typer.Option("--status", "-s", help="Filter by status.")] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of records to show.")] = RECENT_LIMIT,
    show_all: Annotated[bool, typer.Option("--all", "-a", help="Show every record.")] = False,
) -> None:
    """Show deployment history."""
    state = _state(ctx)
    records = HistoryLedger().query(
        environment=env,
        status=status,
        limit=None if show_all else limit,
    )
    state.display.history(records)


@app.command()
@handle_errors
def rollback(
    ctx: typer.Context,
    deployment: Annotated[str | None, typer.Option("--deployment", "-d", help="Deployment ID to roll back to.")] = None,
    recent: Annotated[bool, typer.Option("--recent", "-r", help="Show recent deployments to choose from.")] = False,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompts.")] = False,
) -> None:
    """Prepare a rollback plan for an earlier deployment."""
    state = _state(ctx)
    ledger = HistoryLedger()

    if recent:
        state.display.header("Recent Deployments")
        records = ledger.query(limit=RECENT_LIMIT)
        state.display.history(records)
        if records:
            state.display.info("To prepare rollback for a deployment, use:")
            state.display.bullet("render-deploy rollback --deployment <deployment-id>")
        return

    if not deployment:
        raise create_error(
            "ROLLBACK_NOT_AVAILABLE",
            "Deployment ID is required. Use --recent to list deployments.",
        )

    state.display.step(f"Looking up deployment: {deployment}")
    plan = ledger.prepare_rollback(deployment)
    state.display.rollback_plan(plan)

    target = plan.target_deployment
    if target.environment == "production" and not yes:
        state.display.warning("This rollback targets PRODUCTION environment")
        answer = ConsolePrompter(state.display.console)(
            "Do you want to proceed with the rollback steps? (yes/no)"
        )
        if answer.strip().lower() not in ("yes", "y"):
            state.display.info("Rollback cancelled")
            return

    state.session_log.log_event(
        EventType.ROLLBACK_INITIATED,
        environment=target.environment,
        deploymentId=target.id,
        warnings=plan.warnings,
    )
    state.display.header("Next Steps")
    state.display.info("Follow the rollback steps above to restore the previous deployment")
    state.display.bullet("Review all warnings before proceeding")
    state.display.bullet(f"Verify afterwards: render-deploy health --env {target.environment}")


@app.command()
@handle_errors
def health(
    ctx: typer.Context,
    env: Annotated[str | None, typer.Option("--env", "-e", help="Environment to check.")] = None,
    url: Annotated[str | None, typer.Option("--url", "-u", help="Custom URL to check.")] = None,
    timeout: Annotated[int | None, typer.Option("--timeout", "-t", help="Request timeout in ms.")] = None,
) -> None:
    """Check the health of a deployed backend."""
    state = _state(ctx)
    if not env and not url:
        env = settings.default_environment

    state.session_log.log_event(EventType.HEALTH_CHECK_START, environment=env, url=url)
    result = asyncio.run(HealthProbe().check(environment=env, url=url, timeout_ms=timeout))
    state.display.health_result(result)

    if result.status == HealthStatus.HEALTHY:
        state.session_log.log_event(EventType.HEALTH_CHECK_COMPLETE, environment=env, url=result.url)
        return

    state.session_log.log_event(
        EventType.HEALTH_CHECK_FAILED,
        environment=env,
        url=result.url,
        status=result.status.value,
        errors=result.errors,
    )
    code = "SERVICE_UNREACHABLE" if result.status == HealthStatus.UNREACHABLE else "HEALTH_CHECK_FAILED"
    error = create_error(code, "; ".join(result.errors) or None, url=result.url)
    raise typer.Exit(state.errors.handle_health_check_error(error))


@env_app.command("list")
@handle_errors
def env_list(ctx: typer.Context) -> None:
    """List configured environments."""
    _state(ctx).display.environments(EnvironmentRegistry().list())


@env_app.command("show")
@handle_errors
def env_show(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Environment name.")],
) -> None:
    """Show an environment with sensitive values masked."""
    environment = EnvironmentRegistry().load(name)
    _state(ctx).display.environment_detail(environment, mask_sensitive(environment.env_vars))


@env_app.command("update")
@handle_errors
def env_update(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Environment name.")],
    assignments: Annotated[list[str], typer.Argument(help="KEY=VALUE pairs.")],
) -> None:
    """Set environment variables for an environment."""
    state = _state(ctx)
    variables = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected KEY=VALUE, got: {assignment}")
        variables[key] = value

    environment = EnvironmentRegistry().update_variables(name, variables)
    state.session_log.log_event(EventType.CONFIG_UPDATED, environment=name, keys=sorted(variables))
    state.display.success(f"Updated {len(variables)} variable(s) for {name}")
    state.display.env_vars(mask_sensitive(environment.env_vars))


@env_app.command("create")
@handle_errors
def env_create(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Environment name.")],
    from_file: Annotated[Path, typer.Option("--from-file", "-f", help="JSON file with the environment definition.")],
) -> None:
    """Create an environment from a JSON definition."""
    state = _state(ctx)
    try:
        config = json.loads(from_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise create_error("CONFIG_READ_ERROR", f"Failed to read {from_file}: {e}", config_path=str(from_file)) from e

    environment = EnvironmentRegistry().create(name, config)
    state.session_log.log_event(EventType.CONFIG_UPDATED, environment=name, created=True)
    state.display.success(f"Created environment {name}")
    state.display.environment_detail(environment, mask_sensitive(environment.env_vars))


@app.command()
@handle_errors
def logs(
    ctx: typer.Context,
    list_files: Annotated[bool, typer.Option("--list", help="List available log files.")] = False,
    latest: Annotated[bool, typer.Option("--latest", help="Read the most recent log file.")] = False,
    file: Annotated[str | None, typer.Option("--file", help="Log file to read.")] = None,
    event_type: Annotated[EventType | None, typer.Option("--event-type", help="Filter by event type.")] = None,
    level: Annotated[str | None, typer.Option("--level", help="Filter by level.")] = None,
    environment: Annotated[str | None, typer.Option("--environment", help="Filter by environment.")] = None,
) -> None:
    """Inspect deployment session logs."""
    state = _state(ctx)
    session_log = state.session_log

    if list_files:
        state.display.log_files(session_log.log_files())
        return

    if latest and not file:
        files = session_log.log_files()
        file = files[0] if files else None
        if file is None:
            state.display.log_entries([])
            return

    if file:
        if file not in session_log.log_files():
            raise create_error(
                "CONFIG_READ_ERROR",
                f"Unknown log file: {file}. Use --list to see available files.",
                config_path=file,
            )
        entries = session_log.read_log_file(file)
        if event_type or level or environment:
            entries = [
                e
                for e in entries
                if (not event_type or e.get("eventType") == event_type.value)
                and (not level or e.get("level") == level.upper())
                and (not environment or e.get("environment") == environment)
            ]
    else:
        entries = session_log.search(event_type=event_type, level=level, environment=environment)
    state.display.log_entries(entries)


@app.command()
@handle_errors
def cicd(
    ctx: typer.Context,
    target: Annotated[
        CICDPlatform, typer.Option("--platform", "-p", help="CI/CD system to generate for.")
    ] = CICDPlatform.GITHUB,
) -> None:
    """Generate a CI/CD workflow and its secrets documentation."""
    state = _state(ctx)
    generated = CICDConfigGenerator().generate(target)
    state.session_log.log_event(
        EventType.CONFIG_UPDATED,
        platform=generated.platform,
        path=generated.workflow_path,
    )
    state.display.pipeline_summary(generated)


@app.command()
def version() -> None:
    """Show version information."""
    display = Display()
    try:
        manifest = json.loads((settings.backend_root / "package.json").read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        manifest = {}
    package_version = manifest.get("version") if isinstance(manifest, dict) else None
    display.console.print(f"render-deploy: v{__version__}")
    display.console.print(f"Backend: v{package_version or 'unknown'}")
    display.console.print(f"Python: {platform.python_version()}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
