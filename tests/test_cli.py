"""
Tests for the command-line interface.
"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from cli.__main__ import cli
from cloudformation.reconciler import ReconciliationOutcome
from errors import CreateError, ParameterBindingError, UploadError


class TestCLICommands:
    """Test CLI commands."""

    @pytest.fixture
    def runner(self):
        """Create a CLI test runner."""
        return CliRunner()

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch, tmp_path):
        for var in ("AWS_REGION", "AWS_DEFAULT_REGION", "AWS_PROFILE"):
            monkeypatch.delenv(var, raising=False)
        monkeypatch.chdir(tmp_path)

    @pytest.fixture
    def mock_deployer(self):
        """Mock the StackDeployer used by both commands."""
        with patch("cli.cloudformation.StackDeployer") as cf_mock, patch(
            "cli.lambda_cmd.StackDeployer"
        ) as lambda_mock:
            lambda_mock.return_value = cf_mock.return_value
            yield cf_mock

    def test_help(self, runner) -> None:
        """Test the command group lists both commands."""
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "cloudformation" in result.output
        assert "lambda" in result.output

    def test_cloudformation_command(self, runner, mock_deployer) -> None:
        """Test the deploy command wiring."""
        mock_deployer.return_value.deploy.return_value = ReconciliationOutcome.CREATED

        result = runner.invoke(
            cli,
            [
                "cloudformation",
                "--path", "template.yaml",
                "--stack-name", "test-stack",
                "--lambdas-bucket", "artifacts",
                "--region", "us-west-2",
            ],
        )

        assert result.exit_code == 0
        config = mock_deployer.call_args.args[0]
        assert config.region == "us-west-2"
        mock_deployer.return_value.deploy.assert_called_once_with(
            "template.yaml", "test-stack", "artifacts", max_attempts=2
        )

    def test_cloudformation_requires_stack_name(self, runner, mock_deployer) -> None:
        """Test required options."""
        result = runner.invoke(cli, ["cloudformation", "--path", "template.yaml"])

        assert result.exit_code != 0
        mock_deployer.return_value.deploy.assert_not_called()

    def test_fatal_error_exit_code(self, runner, mock_deployer) -> None:
        """Test fatal errors exit non-zero with context."""
        mock_deployer.return_value.deploy.side_effect = CreateError(
            "create stack", "test-stack", "denied"
        )

        result = runner.invoke(
            cli, ["cloudformation", "--path", "t.yaml", "--stack-name", "test-stack"]
        )

        assert result.exit_code == 1
        assert "unable to create stack test-stack: denied" in result.output

    def test_binding_defect_exit_code(self, runner, mock_deployer) -> None:
        """Test invariant violations are reported as internal errors."""
        mock_deployer.return_value.deploy.side_effect = ParameterBindingError(
            "illegal attempt to set template parameter, Fn, with blank value"
        )

        result = runner.invoke(
            cli, ["cloudformation", "--path", "t.yaml", "--stack-name", "test-stack"]
        )

        assert result.exit_code == 70
        assert "Internal error" in result.output

    def test_retry_hint_when_stack_deleted(self, runner, mock_deployer) -> None:
        """Test the operator is told to rerun when attempts ran out after a delete."""
        mock_deployer.return_value.deploy.return_value = (
            ReconciliationOutcome.DELETED_FOR_RETRY
        )

        result = runner.invoke(
            cli,
            [
                "cloudformation",
                "--path", "t.yaml",
                "--stack-name", "test-stack",
                "--max-attempts", "1",
            ],
        )

        assert result.exit_code == 0
        assert "Stack test-stack was deleted; run the deployment again" in result.output

    def test_no_retry_hint_after_create(self, runner, mock_deployer) -> None:
        """Test a completed deployment prints no retry hint."""
        mock_deployer.return_value.deploy.return_value = ReconciliationOutcome.CREATED

        result = runner.invoke(
            cli, ["cloudformation", "--path", "t.yaml", "--stack-name", "test-stack"]
        )

        assert result.exit_code == 0
        assert "run the deployment again" not in result.output

    def test_lambda_command(self, runner, mock_deployer) -> None:
        """Test the upload command wiring."""
        mock_deployer.return_value.upload_artifacts.return_value = []

        result = runner.invoke(
            cli, ["lambda", "--bucket", "artifacts", "--target-path", "dist/"]
        )

        assert result.exit_code == 0
        mock_deployer.return_value.upload_artifacts.assert_called_once_with(
            "dist/", "artifacts"
        )

    def test_lambda_upload_error(self, runner, mock_deployer) -> None:
        """Test upload failures exit non-zero."""
        mock_deployer.return_value.upload_artifacts.side_effect = UploadError(
            "create bucket", "artifacts", "denied"
        )

        result = runner.invoke(
            cli, ["lambda", "--bucket", "artifacts", "--target-path", "dist/"]
        )

        assert result.exit_code == 1
        assert "unable to upload lambdas" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
