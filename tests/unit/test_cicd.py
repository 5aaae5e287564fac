"""Unit tests for CI/CD configuration generation."""

from pathlib import Path

import pytest
import yaml

from render_deploy.core.cicd import CICDConfigGenerator, CICDPlatform, dump_pipeline
from render_deploy.core.environments import EnvironmentRegistry
from render_deploy.core.exceptions import ConfigurationError


@pytest.fixture
def generator(backend_root: Path, registry: EnvironmentRegistry) -> CICDConfigGenerator:
    return CICDConfigGenerator(backend_root=backend_root, project_root=backend_root.parent, registry=registry)


class TestGitHubWorkflow:
    """Tests for the GitHub Actions workflow."""

    def test_triggers(self, generator: CICDConfigGenerator):
        """Test pushes to deploy branches and manual dispatch both trigger the workflow."""
        workflow = yaml.safe_load(dump_pipeline(generator.github_workflow()))

        triggers = workflow["on"]
        assert triggers["push"]["branches"] == ["main", "staging", "develop"]
        assert "backend/**" in triggers["push"]["paths"]
        inputs = triggers["workflow_dispatch"]["inputs"]
        assert inputs["environment"]["options"] == ["development", "staging", "production"]
        assert inputs["skip_validation"]["default"] is False
        assert inputs["dry_run"]["type"] == "boolean"

    def test_job_graph(self, generator: CICDConfigGenerator):
        jobs = generator.github_workflow()["jobs"]

        assert list(jobs) == ["determine-environment", "validate", "deploy", "health-check", "notify"]
        assert jobs["deploy"]["needs"] == ["determine-environment", "validate"]
        assert "dry_run != 'true'" in jobs["health-check"]["if"]

    def test_branch_mapping(self, generator: CICDConfigGenerator):
        script = generator.github_workflow()["jobs"]["determine-environment"]["steps"][0]["run"]

        assert '"refs/heads/main" ]; then\n  echo "environment=production"' in script
        assert '"refs/heads/develop" ]; then\n  echo "environment=development"' in script

    def test_deploy_runs_in_ci_mode(self, generator: CICDConfigGenerator):
        """Test the deploy step is non-interactive and forwards the dispatch flags."""
        steps = generator.github_workflow()["jobs"]["deploy"]["steps"]
        deploy = next(step for step in steps if step.get("id") == "deploy")

        assert 'FLAGS="--env $ENVIRONMENT --ci"' in deploy["run"]
        assert "--skip-validation" in deploy["run"]
        assert "--dry-run" in deploy["run"]
        assert "render-deploy deploy $FLAGS" in deploy["run"]
        assert "deployment_url=https://livestock-backend-staging.onrender.com" in deploy["run"]

    def test_credentials_cleaned_up(self, generator: CICDConfigGenerator):
        for job in ("validate", "deploy"):
            steps = generator.github_workflow()["jobs"][job]["steps"]
            cleanup = next(step for step in steps if step["name"] == "Clean up credentials")
            assert cleanup["if"] == "always()"
            assert cleanup["run"] == "rm -f backend/serviceAccountKey.json"

    def test_scripts_dumped_as_literal_blocks(self, generator: CICDConfigGenerator):
        content = dump_pipeline(generator.github_workflow())

        assert "run: |" in content
        assert "render-deploy deploy $FLAGS\n" in content


class TestGitLabConfig:
    """Tests for the GitLab CI pipeline."""

    def test_stages_and_jobs(self, generator: CICDConfigGenerator):
        config = yaml.safe_load(dump_pipeline(generator.gitlab_config()))

        assert config["stages"] == ["validate", "deploy", "health-check"]
        for name in ("development", "staging", "production"):
            job = config[f"deploy:{name}"]
            assert job["script"] == [f"render-deploy deploy --env {name} --ci"]
            assert job["environment"]["url"] == f"https://livestock-backend-{name}.onrender.com"

    def test_production_is_manual(self, generator: CICDConfigGenerator):
        config = generator.gitlab_config()

        assert config["deploy:production"]["rules"][0]["when"] == "manual"
        assert config["deploy:production"]["allow_failure"] is False
        assert "when" not in config["deploy:staging"]["rules"][0]

    def test_skip_validation_variable(self, generator: CICDConfigGenerator):
        rules = generator.gitlab_config()["validate"]["rules"]
        assert rules[0] == {"if": '$SKIP_VALIDATION == "true"', "when": "never"}

    def test_branch_rules(self, generator: CICDConfigGenerator):
        rules = generator.gitlab_config()["workflow"]["rules"]
        assert rules[0] == {
            "if": '$CI_COMMIT_BRANCH == "main"',
            "variables": {"DEPLOY_ENVIRONMENT": "production"},
        }


class TestGenerate:
    """Tests for writing the generated files."""

    def test_github(self, generator: CICDConfigGenerator, backend_root: Path):
        generated = generator.generate("github")

        workflow_path = backend_root.parent / ".github" / "workflows" / "deploy.yml"
        assert generated.workflow_path == str(workflow_path)
        assert yaml.safe_load(workflow_path.read_text())["name"] == "Deploy Backend to Render"
        docs = (backend_root / "docs" / "CICD_SECRETS.md").read_text()
        assert "FIREBASE_SERVICE_ACCOUNT" in docs
        assert "`backend/firebase-credentials-for-render.txt`" in docs

    def test_gitlab(self, generator: CICDConfigGenerator, backend_root: Path):
        generated = generator.generate(CICDPlatform.GITLAB)

        assert generated.platform == "gitlab"
        assert (backend_root.parent / ".gitlab-ci.yml").exists()

    def test_unsupported_platform(self, generator: CICDConfigGenerator, backend_root: Path):
        with pytest.raises(ConfigurationError) as exc_info:
            generator.generate("jenkins")

        assert exc_info.value.code == "E2003"
        assert "jenkins" in exc_info.value.message
        assert not (backend_root / "docs").exists()

    def test_unwritable_target(self, generator: CICDConfigGenerator, backend_root: Path):
        (backend_root.parent / ".github").write_text("not a directory")

        with pytest.raises(ConfigurationError) as exc_info:
            generator.generate()

        assert exc_info.value.code == "E2002"
        assert exc_info.value.details["config_path"].endswith("deploy.yml")

    def test_without_environment_config(self, tmp_path: Path):
        """Test generation works before any environment is configured."""
        backend = tmp_path / "service" / "backend"
        backend.mkdir(parents=True)

        generated = CICDConfigGenerator(backend_root=backend).generate()

        deploy_steps = yaml.safe_load(Path(generated.workflow_path).read_text())["jobs"]["deploy"]["steps"]
        deploy = next(step for step in deploy_steps if step.get("id") == "deploy")
        assert "case" not in deploy["run"]
