"""CI/CD configuration for automated deployments.

Generates a GitHub Actions workflow or a GitLab CI pipeline that drives the
``render-deploy`` commands, and a markdown page listing the secrets those
pipelines expect.
"""

from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from render_deploy.config import settings
from render_deploy.core.environments import EnvironmentRegistry
from render_deploy.core.exceptions import create_error
from render_deploy.models.deployment import GeneratedPipeline
from render_deploy.models.environment import KNOWN_ENVIRONMENTS
from render_deploy.utils.logging import get_logger

PYTHON_VERSION = "3.11"
NODE_VERSION = "18"
ARTIFACT_RETENTION_DAYS = 30
STABILIZE_SECONDS = 30

# Pushing to a branch deploys its environment
BRANCH_ENVIRONMENTS: dict[str, str] = {
    "main": "production",
    "staging": "staging",
    "develop": "development",
}

FIREBASE_SECRET = "${{ secrets.FIREBASE_SERVICE_ACCOUNT }}"
ENVIRONMENT_OUTPUT = "${{ needs.determine-environment.outputs.environment }}"


class CICDPlatform(str, Enum):
    """Supported CI/CD systems."""

    GITHUB = "github"
    GITLAB = "gitlab"


class _PipelineDumper(yaml.SafeDumper):
    """Writes multi-line strings as literal blocks so scripts stay readable."""


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    style = "|" if "\n" in data else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", data, style=style)


_PipelineDumper.add_representer(str, _represent_str)


def dump_pipeline(data: dict[str, Any]) -> str:
    return yaml.dump(data, Dumper=_PipelineDumper, default_flow_style=False, sort_keys=False)


SECRETS_DOCUMENTATION = """# Required CI/CD Secrets

## GitHub Actions Secrets

Add the following secrets under
Repository Settings → Secrets and variables → Actions → New repository secret.

1. **FIREBASE_SERVICE_ACCOUNT**
   - Description: Firebase service account JSON (single-line format)
   - How to get:
     1. Go to Firebase Console → Project Settings → Service Accounts
     2. Click "Generate new private key" and save it as `{backend}/serviceAccountKey.json`
     3. Run: `render-deploy deploy --env development`
     4. Copy the single-line JSON from `{backend}/firebase-credentials-for-render.txt`
   - Format: Single-line JSON string

2. **RENDER_API_KEY** (Optional)
   - Description: Render API key for programmatic deployments
   - How to get: Render Dashboard → Account Settings → API Keys → Create API Key
   - Note: Not used by the generated workflow. Reserved for Render API integration.

### Environment-Specific Secrets

1. Go to Repository Settings → Environments
2. Create environments: {environments}
3. Add environment-specific secrets if needed

### Branch Protection Rules

Recommended protection for the production branch:

1. Go to Repository Settings → Branches → Add rule
2. Branch name pattern: `main`
3. Enable:
   - Require pull request reviews before merging
   - Require status checks to pass before merging
   - Require branches to be up to date before merging

## GitLab CI/CD Variables

Add the following variables under Settings → CI/CD → Variables → Add variable.

1. **FIREBASE_SERVICE_ACCOUNT**
   - Type: Variable
   - Protected: Yes
   - Masked: Yes
   - Environment scope: All
   - Value: Single-line Firebase service account JSON

2. **SKIP_VALIDATION** (Optional)
   - Type: Variable
   - Protected: No
   - Masked: No
   - Value: `true` or `false`

### Environment-Specific Variables

Add variables scoped to each deployment target: {environments}.

## Security Best Practices

1. **Never commit secrets to version control**
   - Keep `serviceAccountKey.json` in `.gitignore`
   - Always pass credentials through CI/CD secrets or variables

2. **Rotate secrets regularly**
   - Generate new Firebase service account keys periodically
   - Update CI/CD secrets after rotation

3. **Use environment-specific credentials**
   - Separate Firebase projects or service accounts per environment

4. **Limit secret access**
   - Use environment protection rules for production

5. **Monitor secret usage**
   - Review CI/CD logs and enable audit logging in Firebase Console

## Troubleshooting

### Secret not found

1. Verify the secret name matches exactly (names are case-sensitive)
2. Check the secret is available in the right scope (repository or environment)

### Invalid Firebase credentials

1. Verify the JSON is on a single line
2. Check all required fields are present
3. Run `render-deploy validate` locally with the same file

### Permission denied

1. Check the service account has the required Firebase roles
2. Ensure environment protection rules allow the deployment

## Additional Resources

- [GitHub Actions Secrets](https://docs.github.com/en/actions/security-guides/encrypted-secrets)
- [GitLab CI/CD Variables](https://docs.gitlab.com/ee/ci/variables/)
- [Firebase Admin Setup](https://firebase.google.com/docs/admin/setup)
- [Render Documentation](https://render.com/docs)
"""


class CICDConfigGenerator:
    """Builds CI/CD pipeline definitions for the backend deployment."""

    def __init__(
        self,
        backend_root: Path | None = None,
        project_root: Path | None = None,
        registry: EnvironmentRegistry | None = None,
    ):
        self.backend_root = Path(backend_root) if backend_root is not None else settings.backend_root
        self.project_root = Path(project_root) if project_root is not None else self.backend_root.parent
        self.registry = registry or EnvironmentRegistry(
            config_path=self.backend_root / "config" / "deployment-config.json"
        )
        self.logger = get_logger("cicd")

    @property
    def backend_dir(self) -> str:
        """Backend location relative to the repository root."""
        try:
            return self.backend_root.resolve().relative_to(self.project_root.resolve()).as_posix()
        except ValueError:
            return self.backend_root.name

    def workflow_path(self, platform: CICDPlatform) -> Path:
        if platform == CICDPlatform.GITHUB:
            return self.project_root / ".github" / "workflows" / "deploy.yml"
        return self.project_root / ".gitlab-ci.yml"

    @property
    def docs_path(self) -> Path:
        return self.backend_root / "docs" / "CICD_SECRETS.md"

    def service_urls(self) -> dict[str, str]:
        """Public URL per configured environment."""
        return {
            summary.name: f"https://{summary.service_name}.onrender.com"
            for summary in self.registry.list()
            if summary.service_name
        }

    # GitHub Actions

    def _setup_steps(self, with_node: bool = True) -> list[dict[str, Any]]:
        steps: list[dict[str, Any]] = [
            {"name": "Checkout code", "uses": "actions/checkout@v4"},
            {
                "name": "Set up Python",
                "uses": "actions/setup-python@v5",
                "with": {"python-version": "${{ env.PYTHON_VERSION }}"},
            },
        ]
        install = "pip install render-deploy"
        if with_node:
            steps.append(
                {
                    "name": "Set up Node.js",
                    "uses": "actions/setup-node@v4",
                    "with": {
                        "node-version": "${{ env.NODE_VERSION }}",
                        "cache": "npm",
                        "cache-dependency-path": f"{self.backend_dir}/package-lock.json",
                    },
                }
            )
            install = f"{install}\ncd {self.backend_dir} && npm ci\n"
        steps.append({"name": "Install dependencies", "run": install})
        return steps

    def _credential_steps(self) -> tuple[dict[str, Any], dict[str, Any]]:
        key_file = f"{self.backend_dir}/serviceAccountKey.json"
        create = {
            "name": "Create Firebase credentials file",
            "run": f"echo '{FIREBASE_SECRET}' > {key_file}",
        }
        cleanup = {
            "name": "Clean up credentials",
            "if": "always()",
            "run": f"rm -f {key_file}",
        }
        return create, cleanup

    def _determine_environment_script(self) -> str:
        lines = [
            'if [ "${{ github.event_name }}" = "workflow_dispatch" ]; then',
            '  echo "environment=${{ github.event.inputs.environment }}" >> "$GITHUB_OUTPUT"',
        ]
        for branch, environment in BRANCH_ENVIRONMENTS.items():
            lines.append(f'elif [ "${{{{ github.ref }}}}" = "refs/heads/{branch}" ]; then')
            lines.append(f'  echo "environment={environment}" >> "$GITHUB_OUTPUT"')
        lines += [
            "else",
            f'  echo "environment={settings.default_environment}" >> "$GITHUB_OUTPUT"',
            "fi",
        ]
        return "\n".join(lines) + "\n"

    def _deploy_script(self) -> str:
        lines = [
            'FLAGS="--env $ENVIRONMENT --ci"',
            'if [ "${{ github.event.inputs.skip_validation }}" = "true" ]; then',
            '  FLAGS="$FLAGS --skip-validation"',
            "fi",
            'if [ "${{ github.event.inputs.dry_run }}" = "true" ]; then',
            '  FLAGS="$FLAGS --dry-run"',
            "fi",
            "render-deploy deploy $FLAGS",
        ]
        urls = self.service_urls()
        if urls:
            lines.append('case "$ENVIRONMENT" in')
            for environment, url in urls.items():
                lines.append(f'  {environment}) echo "deployment_url={url}" >> "$GITHUB_OUTPUT" ;;')
            lines.append("esac")
        return "\n".join(lines) + "\n"

    def github_workflow(self) -> dict[str, Any]:
        """GitHub Actions workflow that validates, deploys and health-checks."""
        backend = self.backend_dir
        create_credentials, cleanup_credentials = self._credential_steps()
        step_env = {"ENVIRONMENT": ENVIRONMENT_OUTPUT}

        summary = "\n".join(
            [
                'echo "## Deployment Summary" >> "$GITHUB_STEP_SUMMARY"',
                f'echo "- **Environment**: {ENVIRONMENT_OUTPUT}" >> "$GITHUB_STEP_SUMMARY"',
                'echo "- **Branch**: ${{ github.ref_name }}" >> "$GITHUB_STEP_SUMMARY"',
                'echo "- **Commit**: ${{ github.sha }}" >> "$GITHUB_STEP_SUMMARY"',
                'echo "- **Triggered by**: ${{ github.actor }}" >> "$GITHUB_STEP_SUMMARY"',
                'echo "### Job Status" >> "$GITHUB_STEP_SUMMARY"',
                'echo "- Validation: ${{ needs.validate.result }}" >> "$GITHUB_STEP_SUMMARY"',
                'echo "- Deployment: ${{ needs.deploy.result }}" >> "$GITHUB_STEP_SUMMARY"',
                'echo "- Health Check: ${{ needs.health-check.result }}" >> "$GITHUB_STEP_SUMMARY"',
            ]
        ) + "\n"

        return {
            "name": "Deploy Backend to Render",
            "on": {
                "push": {
                    "branches": list(BRANCH_ENVIRONMENTS),
                    "paths": [f"{backend}/**", ".github/workflows/deploy.yml"],
                },
                "workflow_dispatch": {
                    "inputs": {
                        "environment": {
                            "description": "Deployment environment",
                            "required": True,
                            "type": "choice",
                            "options": list(KNOWN_ENVIRONMENTS),
                        },
                        "skip_validation": {
                            "description": "Skip validation checks",
                            "required": False,
                            "type": "boolean",
                            "default": False,
                        },
                        "dry_run": {
                            "description": "Dry run (simulate deployment)",
                            "required": False,
                            "type": "boolean",
                            "default": False,
                        },
                    }
                },
            },
            "env": {
                "PYTHON_VERSION": PYTHON_VERSION,
                "NODE_VERSION": NODE_VERSION,
                "BACKEND_ROOT": backend,
            },
            "jobs": {
                "determine-environment": {
                    "name": "Determine Environment",
                    "runs-on": "ubuntu-latest",
                    "outputs": {"environment": "${{ steps.set-env.outputs.environment }}"},
                    "steps": [
                        {
                            "name": "Set environment based on branch",
                            "id": "set-env",
                            "run": self._determine_environment_script(),
                        }
                    ],
                },
                "validate": {
                    "name": "Validate Deployment Setup",
                    "runs-on": "ubuntu-latest",
                    "needs": "determine-environment",
                    "if": "github.event.inputs.skip_validation != 'true'",
                    "steps": [
                        *self._setup_steps(),
                        create_credentials,
                        {
                            "name": "Run validation checks",
                            "env": step_env,
                            "run": 'render-deploy validate --env "$ENVIRONMENT"',
                        },
                        cleanup_credentials,
                    ],
                },
                "deploy": {
                    "name": f"Deploy to {ENVIRONMENT_OUTPUT}",
                    "runs-on": "ubuntu-latest",
                    "needs": ["determine-environment", "validate"],
                    "if": "always() && (needs.validate.result == 'success' || needs.validate.result == 'skipped')",
                    "environment": {
                        "name": ENVIRONMENT_OUTPUT,
                        "url": "${{ steps.deploy.outputs.deployment_url }}",
                    },
                    "steps": [
                        *self._setup_steps(),
                        create_credentials,
                        {
                            "name": "Prepare deployment",
                            "id": "deploy",
                            "env": step_env,
                            "run": self._deploy_script(),
                        },
                        cleanup_credentials,
                        {
                            "name": "Upload deployment artifacts",
                            "if": "success()",
                            "uses": "actions/upload-artifact@v4",
                            "with": {
                                "name": f"deployment-config-{ENVIRONMENT_OUTPUT}",
                                "path": "\n".join(
                                    [
                                        f"{backend}/config/deployment-history.json",
                                        f"{backend}/firebase-credentials-for-render.txt",
                                        f"{backend}/logs/",
                                    ]
                                )
                                + "\n",
                                "retention-days": ARTIFACT_RETENTION_DAYS,
                            },
                        },
                    ],
                },
                "health-check": {
                    "name": "Health Check",
                    "runs-on": "ubuntu-latest",
                    "needs": ["determine-environment", "deploy"],
                    "if": "success() && github.event.inputs.dry_run != 'true'",
                    "steps": [
                        *self._setup_steps(with_node=False),
                        {"name": "Wait for deployment to stabilize", "run": f"sleep {STABILIZE_SECONDS}"},
                        {
                            "name": "Run health check",
                            "env": step_env,
                            "run": 'render-deploy health --env "$ENVIRONMENT"',
                        },
                    ],
                },
                "notify": {
                    "name": "Notify Deployment Status",
                    "runs-on": "ubuntu-latest",
                    "needs": ["determine-environment", "validate", "deploy", "health-check"],
                    "if": "always()",
                    "steps": [{"name": "Deployment Summary", "run": summary}],
                },
            },
        }

    # GitLab CI

    def gitlab_config(self) -> dict[str, Any]:
        """GitLab pipeline with one deploy job per environment."""
        backend = self.backend_dir
        key_file = f"{backend}/serviceAccountKey.json"
        urls = self.service_urls()

        config: dict[str, Any] = {
            "workflow": {
                "rules": [
                    {
                        "if": f'$CI_COMMIT_BRANCH == "{branch}"',
                        "variables": {"DEPLOY_ENVIRONMENT": environment},
                    }
                    for branch, environment in BRANCH_ENVIRONMENTS.items()
                ]
            },
            "stages": ["validate", "deploy", "health-check"],
            "variables": {"PYTHON_VERSION": PYTHON_VERSION, "BACKEND_ROOT": backend},
            ".python": {
                "image": "python:${PYTHON_VERSION}",
                "before_script": ["pip install render-deploy"],
            },
            ".backend": {
                "extends": ".python",
                "before_script": [
                    "apt-get update && apt-get install -y nodejs npm",
                    "pip install render-deploy",
                    f"cd {backend} && npm ci && cd -",
                    f'echo "$FIREBASE_SERVICE_ACCOUNT" > {key_file}',
                ],
                "after_script": [f"rm -f {key_file}"],
            },
            "validate": {
                "extends": ".backend",
                "stage": "validate",
                "script": ['render-deploy validate --env "$DEPLOY_ENVIRONMENT"'],
                "rules": [
                    {"if": '$SKIP_VALIDATION == "true"', "when": "never"},
                    {"when": "on_success"},
                ],
            },
        }

        for environment in KNOWN_ENVIRONMENTS:
            rule: dict[str, Any] = {"if": f'$DEPLOY_ENVIRONMENT == "{environment}"'}
            job: dict[str, Any] = {
                "extends": ".backend",
                "stage": "deploy",
                "environment": {"name": environment},
                "script": [f"render-deploy deploy --env {environment} --ci"],
                "artifacts": {
                    "paths": [
                        f"{backend}/config/deployment-history.json",
                        f"{backend}/firebase-credentials-for-render.txt",
                        f"{backend}/logs/",
                    ],
                    "expire_in": f"{ARTIFACT_RETENTION_DAYS} days",
                },
                "rules": [rule],
            }
            if environment in urls:
                job["environment"]["url"] = urls[environment]
            if environment == "production":
                rule["when"] = "manual"
                job["allow_failure"] = False
            config[f"deploy:{environment}"] = job

        config["health-check"] = {
            "extends": ".python",
            "stage": "health-check",
            "script": [f"sleep {STABILIZE_SECONDS}", 'render-deploy health --env "$DEPLOY_ENVIRONMENT"'],
        }
        return config

    # Documentation

    def secrets_documentation(self) -> str:
        environments = ", ".join(f"`{name}`" for name in KNOWN_ENVIRONMENTS)
        return SECRETS_DOCUMENTATION.format(backend=self.backend_dir, environments=environments)

    # Writing

    def _write(self, path: Path, content: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise create_error(
                "CONFIG_WRITE_ERROR",
                f"Failed to write {path.name}: {e}",
                config_path=str(path),
            ) from e

    def generate(self, platform: CICDPlatform | str = CICDPlatform.GITHUB) -> GeneratedPipeline:
        """Write the pipeline definition and the secrets documentation."""
        try:
            platform = CICDPlatform(platform)
        except ValueError:
            raise create_error(
                "INVALID_CONFIG_STRUCTURE",
                f"Unsupported CI/CD platform: {platform}. Must be one of: "
                + ", ".join(p.value for p in CICDPlatform),
            ) from None

        self.logger.info("cicd.generate.started", platform=platform.value)
        if platform == CICDPlatform.GITHUB:
            definition = self.github_workflow()
        else:
            definition = self.gitlab_config()

        workflow_path = self.workflow_path(platform)
        self._write(workflow_path, dump_pipeline(definition))
        self._write(self.docs_path, self.secrets_documentation())

        self.logger.info(
            "cicd.generate.completed",
            platform=platform.value,
            workflow_path=str(workflow_path),
            docs_path=str(self.docs_path),
        )
        return GeneratedPipeline(
            platform=platform.value,
            workflow_path=str(workflow_path),
            docs_path=str(self.docs_path),
        )
