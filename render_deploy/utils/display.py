"""Console output for the deployment CLI, rendered with rich.

Data (env var values, error messages, file contents) is escaped before it
reaches rich, so brackets in user values are printed literally instead of
being parsed as markup.
"""

import traceback
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from render_deploy.core.exceptions import DeploymentError
from render_deploy.models.deployment import DeploymentRecord, DeploymentStatus, GeneratedPipeline, RollbackPlan
from render_deploy.models.environment import Environment, EnvironmentSummary
from render_deploy.models.health import HealthResult, HealthStatus
from render_deploy.models.validation import ValidationResult

STATUS_STYLES = {
    DeploymentStatus.SUCCESS: "green",
    DeploymentStatus.FAILED: "red",
    DeploymentStatus.PENDING: "yellow",
    DeploymentStatus.IN_PROGRESS: "cyan",
    DeploymentStatus.ROLLED_BACK: "magenta",
}

HEALTH_STYLES = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.UNHEALTHY: "red",
    HealthStatus.UNREACHABLE: "red",
    HealthStatus.ERROR: "yellow",
}


def _cell(value: Any) -> Text:
    """A table cell that is never parsed as markup."""
    return Text(str(value))


class Display:
    """Human-facing output. Core components return models; this renders them."""

    def __init__(self, console: Console | None = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose

    # Primitives

    def header(self, text: str) -> None:
        self.console.rule(f"[bold]{escape(text)}[/bold]")

    def step(self, text: str) -> None:
        self.console.print(f"[bold cyan]→[/bold cyan] {escape(text)}")

    def info(self, text: str) -> None:
        self.console.print(f"[blue]ℹ[/blue] {escape(text)}")

    def success(self, text: str) -> None:
        self.console.print(f"[green]✓[/green] {escape(text)}")

    def warning(self, text: str) -> None:
        self.console.print(f"[yellow]⚠[/yellow] {escape(text)}")

    def failure(self, text: str) -> None:
        self.console.print(f"[red]✗[/red] {escape(text)}")

    def bullet(self, text: str) -> None:
        self.console.print(f"   • {escape(text)}")

    def text(self, text: str, indent: int = 0) -> None:
        self.console.print(" " * indent + text, markup=False, highlight=False)

    def newline(self) -> None:
        self.console.print()

    # Validation

    def validation_result(self, result: ValidationResult, show_warnings: bool = True) -> None:
        table = Table(title="Validation checks")
        table.add_column("Check")
        table.add_column("Result")
        table.add_column("Message")
        for name, check in result.checks.items():
            if check.skipped:
                outcome = "[dim]skipped[/dim]"
            elif check.passed:
                outcome = "[green]passed[/green]"
            else:
                outcome = "[red]failed[/red]"
            table.add_row(_cell(name), outcome, _cell(check.message))
        self.console.print(table)

        for issue in result.errors:
            self.failure(f"{issue.check}: {issue.message}")
            for line in issue.remediation or []:
                self.text(line, indent=5)
        if show_warnings:
            for issue in result.warnings:
                self.warning(f"{issue.check}: {issue.message}")

        if result.success:
            self.success("All validation checks passed")
        else:
            self.failure("Validation failed. Fix errors before deploying.")

    # Environments

    def environments(self, summaries: list[EnvironmentSummary]) -> None:
        if not summaries:
            self.warning("No environments configured")
            return
        table = Table(title="Environments")
        for column in ("Name", "Display name", "Service", "Region", "Plan", "Branch", "Confirm"):
            table.add_column(column)
        for env in summaries:
            table.add_row(
                _cell(env.name),
                _cell(env.display_name),
                _cell(env.service_name),
                _cell(env.region),
                _cell(env.plan),
                _cell(env.branch or "-"),
                "yes" if env.requires_confirmation else "no",
            )
        self.console.print(table)

    def environment_detail(self, environment: Environment, masked_vars: dict[str, str]) -> None:
        self.header(environment.display_name or environment.name)
        self.bullet(f"Service: {environment.render_service_name}")
        self.bullet(f"Region: {environment.region}")
        self.bullet(f"Plan: {environment.plan}")
        self.bullet(f"Branch: {environment.branch or 'manual deploy'}")
        self.bullet(f"Health check path: {environment.health_check_path}")
        self.bullet(f"URL: {environment.service_url}")
        self.newline()
        self.env_vars(masked_vars)

    def env_vars(self, masked_vars: dict[str, str]) -> None:
        table = Table(title="Environment variables")
        table.add_column("Key")
        table.add_column("Value")
        for key, value in masked_vars.items():
            table.add_row(_cell(key), _cell(value))
        self.console.print(table)

    def deployment_summary(
        self,
        environment: Environment,
        masked_vars: dict[str, str],
    ) -> None:
        self.header("Deployment Summary")
        self.bullet(f"Environment: {environment.name}")
        self.bullet(f"Service: {environment.render_service_name}")
        self.bullet(f"Region: {environment.region}")
        self.bullet(f"Plan: {environment.plan}")
        self.bullet(f"URL: {environment.service_url}")
        self.newline()
        self.env_vars(masked_vars)
        self.newline()
        self.info("Planned actions:")
        self.bullet("Prepare Firebase credentials for Render")
        self.bullet("Generate render.yaml service descriptor")
        self.bullet("Record deployment in history")

    def next_steps(
        self,
        environment: Environment,
        deployment_id: str,
        credentials_path: Path,
        render_config_path: Path,
        dry_run: bool,
    ) -> None:
        self.header("Next Steps")
        if dry_run:
            self.warning("This was a DRY RUN - no changes were made")
            self.info("Remove --dry-run flag to perform actual deployment")
            self.newline()

        self.success(f"Deployment prepared successfully! (ID: {deployment_id})")
        self.newline()

        self.step("1. Copy Firebase credentials to Render")
        self.bullet(f"Credentials file: {credentials_path}")
        self.bullet("Go to: https://dashboard.render.com")
        self.bullet(f"Select service: {environment.render_service_name}")
        self.bullet("Navigate to: Environment → Environment Variables")
        self.bullet("Add/Update variable: FIREBASE_SERVICE_ACCOUNT")
        self.bullet("Paste the contents from the credentials file")
        self.newline()

        self.step("2. Deploy to Render")
        if not dry_run:
            self.bullet(f"Render blueprint: {render_config_path}")
        if environment.branch:
            self.bullet(f"Push to branch: {environment.branch}")
            self.bullet("Render will automatically deploy")
        else:
            self.bullet("Go to Render dashboard")
            self.bullet('Click "Manual Deploy" → "Deploy latest commit"')
        self.newline()

        self.step("3. Verify deployment")
        self.bullet(f"Run: render-deploy health --env {environment.name}")
        self.bullet(f"Or visit: {environment.service_url}")
        self.newline()

        self.info("Useful commands:")
        self.bullet(f"View history: render-deploy history --env {environment.name}")
        self.bullet("Rollback: render-deploy rollback --recent")

    # History

    def history(self, records: list[DeploymentRecord]) -> None:
        if not records:
            self.warning("No deployments found")
            return
        table = Table(title="Deployment history")
        for column in ("ID", "Timestamp", "Environment", "Status", "Version", "Commit", "By"):
            table.add_column(column)
        for record in records:
            style = STATUS_STYLES.get(record.status, "white")
            table.add_row(
                _cell(record.id),
                record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                _cell(record.environment),
                Text(record.status.value, style=style),
                _cell(record.version),
                _cell((record.git_commit or "-")[:8]),
                _cell(record.deployed_by or "-"),
            )
        self.console.print(table)

    def rollback_plan(self, plan: RollbackPlan) -> None:
        target = plan.target_deployment
        self.header("Rollback Plan")
        self.info("Target deployment:")
        self.bullet(f"ID: {target.id}")
        self.bullet(f"Environment: {target.environment}")
        self.bullet(f"Version: {target.version}")
        self.bullet(f"Deployed: {target.timestamp.isoformat()}")
        if target.git_commit:
            self.bullet(f"Commit: {target.git_commit}")

        if plan.current_deployment:
            current = plan.current_deployment
            self.newline()
            self.info("Current deployment:")
            self.bullet(f"ID: {current.id}")
            self.bullet(f"Version: {current.version}")

        self.newline()
        self.info("Steps:")
        for number, step in enumerate(plan.steps, start=1):
            self.text(f"{number}. {step}", indent=3)

        self.newline()
        for warning in plan.warnings:
            self.warning(warning)

    # Health

    def health_result(self, result: HealthResult) -> None:
        style = HEALTH_STYLES.get(result.status, "white")
        self.header("Health Check")
        self.console.print(Text("Status: ").append(result.status.value.upper(), style=style))
        if result.url:
            self.bullet(f"URL: {result.url}")
        if result.response_time is not None:
            self.bullet(f"Response time: {result.response_time}ms")
        if result.version:
            self.bullet(f"Version: {result.version}")
        if result.total_time is not None:
            self.bullet(f"Total time: {result.total_time}ms")

        if result.endpoints:
            table = Table(title="Endpoints")
            table.add_column("Path")
            table.add_column("Status")
            table.add_column("Time")
            table.add_column("Result")
            for path, endpoint in result.endpoints.items():
                table.add_row(
                    _cell(path),
                    str(endpoint.status_code),
                    f"{endpoint.response_time}ms",
                    Text("ok", style="green") if endpoint.success else Text(str(endpoint.error), style="red"),
                )
            self.console.print(table)

        for error in result.errors:
            self.failure(error)

    # Session logs

    def log_files(self, names: list[str]) -> None:
        if not names:
            self.warning("No log files found")
            return
        for name in names:
            self.bullet(name)

    def log_entries(self, entries: list[dict[str, Any]]) -> None:
        if not entries:
            self.warning("No log entries found")
            return
        table = Table(title="Log entries")
        for column in ("Timestamp", "Level", "Event", "Message"):
            table.add_column(column)
        for entry in entries:
            table.add_row(
                _cell(entry.get("timestamp", "")),
                _cell(entry.get("level", "")),
                _cell(entry.get("eventType") or "-"),
                _cell(entry.get("message", "")),
            )
        self.console.print(table)

    # CI/CD

    def pipeline_summary(self, generated: GeneratedPipeline) -> None:
        self.header("CI/CD Configuration Generated")
        self.success(f"Workflow: {generated.workflow_path}")
        self.success(f"Secrets documentation: {generated.docs_path}")
        self.newline()

        self.step("1. Review the generated workflow file")
        self.step("2. Set up the required secrets in your repository")
        self.bullet(f"See: {generated.docs_path}")
        self.step("3. Commit and push the workflow file")
        self.bullet(f"git add {generated.workflow_path}")
        self.step("4. Trigger a deployment")
        self.bullet("Push to main, staging or develop")
        if generated.platform == "github":
            self.bullet("Or run the workflow manually from GitHub Actions")

    # Errors

    def error(self, error: DeploymentError) -> None:
        body = Text(error.message, style="bold")
        if error.remediation:
            body.append("\n\nTo fix this:")
            for step in error.remediation:
                body.append(f"\n   {step}")
        self.console.print(Panel(body, title=f"Error {escape(str(error.code))}", border_style="red"))
        if self.verbose:
            cause = error.__cause__ or error
            self.console.print(
                "".join(traceback.format_exception(cause)),
                style="dim",
                markup=False,
                highlight=False,
            )

    def error_summary(self, errors: int, warnings: int) -> None:
        self.header("Error Summary")
        if errors:
            self.failure(f"Errors: {errors}")
        if warnings:
            self.warning(f"Warnings: {warnings}")


class ConsolePrompter:
    """Asks the operator for confirmation on the console."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def __call__(self, question: str) -> str:
        return Prompt.ask(escape(question), console=self.console, default="no")
