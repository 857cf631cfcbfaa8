"""Unit tests for the stagewise run CLI command."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from stagewise import __version__
from stagewise.cli.main import cli
from stagewise.core.research.models.deep_research import ResearchSession
from stagewise.core.research.workflows.base import WorkflowResult

RUN_MODULE = "stagewise.cli.commands.run"


def _result(success=True, content="# Battery Recycling\n\nReport body [1]."):
    session = ResearchSession(topic="battery recycling")
    if not success:
        session.mark_failed("Research configuration is missing")
    return WorkflowResult(success=success, content=content, session=session)


@pytest.fixture
def mock_providers():
    with patch(f"{RUN_MODULE}.create_search_provider") as mock_search, patch(
        f"{RUN_MODULE}.OpenAIGenerationProvider"
    ) as mock_generation:
        yield mock_search, mock_generation


@pytest.fixture
def mock_run():
    with patch(f"{RUN_MODULE}.DeepResearchWorkflow.run", new_callable=AsyncMock) as mock:
        mock.return_value = _result()
        yield mock


def _error_event(output: str) -> dict:
    return json.loads(output.strip().splitlines()[0])


class TestRunSuccess:
    def test_report_printed_without_output(self, cli_runner, mock_providers, mock_run):
        result = cli_runner.invoke(cli, ["run", "battery recycling"])

        assert result.exit_code == 0, result.output
        assert "Report body [1]." in result.output

    def test_report_written_to_file(self, cli_runner, mock_providers, mock_run, tmp_path):
        target = tmp_path / "report.md"
        result = cli_runner.invoke(cli, ["run", "battery recycling", "--output", str(target)])

        assert result.exit_code == 0, result.output
        assert target.read_text(encoding="utf-8").startswith("# Battery Recycling")
        assert "Report body" not in result.output

    def test_request_carries_options(self, cli_runner, mock_providers, mock_run):
        result = cli_runner.invoke(
            cli,
            [
                "run",
                "battery recycling",
                "--context",
                "EU policy",
                "--max-depth",
                "1",
                "--stage-count",
                "2",
            ],
        )

        assert result.exit_code == 0, result.output
        request = mock_run.await_args.args[0]
        assert request.topic == "battery recycling"
        assert request.context == "EU policy"
        assert request.configuration.max_depth == 1
        assert request.configuration.stage_count == 2
        assert request.configuration.max_breadth == 3

    def test_provider_option_selects_search_backend(self, cli_runner, mock_providers, mock_run):
        mock_search, _ = mock_providers
        result = cli_runner.invoke(cli, ["run", "battery recycling", "--provider", "EXA"])

        assert result.exit_code == 0, result.output
        assert mock_search.call_args.args[0] == "exa"

    def test_config_file_applies(self, cli_runner, mock_providers, mock_run, tmp_path):
        config_path = tmp_path / "custom.toml"
        config_path.write_text('[research]\nmodel = "gpt-4o"\ndefault_stage_count = 4\n')

        result = cli_runner.invoke(cli, ["--config", str(config_path), "run", "battery recycling"])

        assert result.exit_code == 0, result.output
        _, mock_generation = mock_providers
        assert mock_generation.call_args.kwargs["default_model"] == "gpt-4o"
        assert mock_run.await_args.args[0].configuration.stage_count == 4


class TestRunFailures:
    def test_invalid_configuration(self, cli_runner, mock_providers, mock_run):
        result = cli_runner.invoke(cli, ["run", "battery recycling", "--max-depth", "9"])

        assert result.exit_code == 1
        event = _error_event(result.output)
        assert event["eventType"] == "error"
        assert "Invalid research configuration" in event["message"]
        mock_run.assert_not_awaited()

    def test_missing_provider_key(self, cli_runner, mock_providers, mock_run):
        mock_search, _ = mock_providers
        mock_search.side_effect = ValueError("Tavily API key required.")

        result = cli_runner.invoke(cli, ["run", "battery recycling"])

        assert result.exit_code == 1
        assert _error_event(result.output)["message"] == "Tavily API key required."

    def test_failed_session_exits_nonzero(self, cli_runner, mock_providers, mock_run):
        mock_run.return_value = _result(success=False, content="")

        result = cli_runner.invoke(cli, ["run", "battery recycling"])

        assert result.exit_code == 1

    def test_interrupt(self, cli_runner, mock_providers, mock_run):
        mock_run.side_effect = KeyboardInterrupt

        result = cli_runner.invoke(cli, ["run", "battery recycling"])

        assert result.exit_code == 130
        assert _error_event(result.output)["message"] == "Research interrupted"


def test_version(cli_runner):
    result = cli_runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_lists_run(cli_runner):
    result = cli_runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "run" in result.output
