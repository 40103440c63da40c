"""Tests for main.py CLI interface."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from autoheal import main as cli
from autoheal.config.settings import Settings
from autoheal.core.types import ExecutionResult, HealingOutcome, HealingStatus, Story
from autoheal.error_handling.exceptions import JiraError


def outcome(status):
    return HealingOutcome(
        success=status == HealingStatus.PASSED,
        status=status,
        attempts=1,
        result=ExecutionResult(passed=1),
        message="done",
    )


@pytest.fixture
def settings():
    return Settings(_env_file=None, ai_provider="disabled")


@pytest.fixture
def coordinator(settings):
    mock = MagicMock()
    mock.settings = settings
    mock.execute_tests = AsyncMock(return_value=outcome(HealingStatus.PASSED))
    mock.run_story = AsyncMock(return_value=outcome(HealingStatus.PASSED))
    mock.fetch_story = AsyncMock(return_value=Story(id="ED-42", title="Banner"))
    mock.aclose = AsyncMock()
    mock.jira.configured = True
    mock.jira.test_connection = AsyncMock(return_value={"connected": True})
    mock.testrail.configured = False
    return mock


@pytest.fixture
def patched(settings, coordinator):
    with patch.object(cli, "get_settings", return_value=settings), \
            patch.object(cli, "setup_logging"), \
            patch.object(cli, "WorkflowCoordinator", return_value=coordinator):
        yield coordinator


class TestCLIParser:
    """Test command line parser."""

    def test_heal_arguments(self):
        args = cli.create_parser().parse_args(
            ["heal", "ed-42-automated.spec.js", "--story-id", "ED-42", "--max-attempts", "2", "--no-post"]
        )

        assert args.command == "heal"
        assert args.filename == "ed-42-automated.spec.js"
        assert args.story_id == "ED-42"
        assert args.max_attempts == 2
        assert args.no_post is True

    def test_run_and_serve(self):
        parser = cli.create_parser()

        assert parser.parse_args(["run", "ED-42", "--push-testrail"]).push_testrail is True
        assert parser.parse_args(["serve", "--port", "8080"]).port == 8080

    def test_heal_requires_filename(self):
        with pytest.raises(SystemExit):
            cli.create_parser().parse_args(["heal"])


class TestExitCodes:
    """Test outcome to exit code mapping."""

    @pytest.mark.parametrize(
        "status,code",
        [
            (HealingStatus.PASSED, cli.EXIT_SUCCESS),
            (HealingStatus.FAILED, cli.EXIT_FAILURE),
            (HealingStatus.CANNOT_HEAL, cli.EXIT_CANNOT_HEAL),
        ],
    )
    def test_exit_code_for(self, status, code):
        assert cli.exit_code_for(outcome(status)) == code


class TestAsyncMain:
    """Test command dispatch."""

    @pytest.mark.asyncio
    async def test_version(self):
        assert await cli.async_main(["--version"]) == cli.EXIT_SUCCESS

    @pytest.mark.asyncio
    async def test_no_command(self):
        assert await cli.async_main([]) == cli.EXIT_FAILURE

    @pytest.mark.asyncio
    async def test_heal(self, patched):
        patched.execute_tests.return_value = outcome(HealingStatus.CANNOT_HEAL)

        code = await cli.async_main(["heal", "ed-42-automated.spec.js", "--no-post"])

        assert code == cli.EXIT_CANNOT_HEAL
        patched.execute_tests.assert_awaited_once_with(
            "ed-42-automated.spec.js", story_id=None, max_attempts=None, post_results=False
        )
        patched.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run(self, patched):
        assert await cli.async_main(["run", "ED-42"]) == cli.EXIT_SUCCESS

        patched.run_story.assert_awaited_once_with("ED-42", push_to_testrail=False)

    @pytest.mark.asyncio
    async def test_resolve_url(self, patched):
        assert await cli.async_main(["resolve-url", "ED-42"]) == cli.EXIT_SUCCESS

    @pytest.mark.asyncio
    async def test_stage_error(self, patched):
        patched.fetch_story.side_effect = JiraError("Jira API error: 404", status_code=404)

        assert await cli.async_main(["fetch-story", "ED-404"]) == cli.EXIT_FAILURE
        patched.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_serve(self, settings):
        with patch.object(cli, "get_settings", return_value=settings), \
                patch.object(cli, "setup_logging"), \
                patch("uvicorn.run") as run:
            assert await cli.async_main(["serve", "--port", "8080"]) == cli.EXIT_SUCCESS

        assert run.call_args.args[0] == "autoheal.api.server:create_app"
        assert run.call_args.kwargs["factory"] is True
        assert run.call_args.kwargs["port"] == 8080
        assert run.call_args.kwargs["host"] == "0.0.0.0"


class TestConnections:
    """Test the connection check command."""

    @pytest.mark.asyncio
    async def test_all_configured_services_pass(self, coordinator):
        assert await cli.test_connections(coordinator) == cli.EXIT_SUCCESS

        coordinator.jira.test_connection.assert_awaited_once()
        coordinator.generator.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_counts(self, coordinator):
        coordinator.jira.test_connection.side_effect = JiraError("Jira API error: 401", status_code=401)

        assert await cli.test_connections(coordinator) == cli.EXIT_FAILURE


class TestMain:
    """Test the synchronous entry point."""

    def test_keyboard_interrupt(self):
        with patch.object(cli, "async_main", MagicMock(side_effect=KeyboardInterrupt)):
            assert cli.main(["heal", "x.spec.js"]) == cli.EXIT_INTERRUPTED

    def test_unexpected_error(self):
        with patch.object(cli, "async_main", MagicMock(side_effect=RuntimeError("boom"))):
            assert cli.main(["heal", "x.spec.js"]) == cli.EXIT_FAILURE
