"""
autoheal - self-healing Playwright tests from Jira stories.
Main entry point for the application.
"""

import argparse
import asyncio
import sys
from typing import Optional

from rich.console import Console
from rich.table import Table

from autoheal import __version__
from autoheal.config.settings import get_settings
from autoheal.core.types import HealingOutcome, HealingStatus, Story
from autoheal.error_handling.exceptions import AutoHealError
from autoheal.healing.target_resolution import resolve_target_url
from autoheal.monitoring.logger import get_logger, setup_logging
from autoheal.orchestration.coordinator import WorkflowCoordinator

console = Console()
logger = get_logger("main")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CANNOT_HEAL = 2
EXIT_INTERRUPTED = 130


def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="autoheal",
        description=f"autoheal - self-healing Playwright tests v{__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve the workflow API
  autoheal serve --port 3001

  # Execute and heal an existing test file
  autoheal heal ed-42-automated.spec.js --story-id ED-42

  # Full pipeline for one story
  autoheal run ED-42 --push-testrail

  # Check Jira, TestRail and AI configuration
  autoheal test-connections
        """,
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version information",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable structured logging output (JSON)",
    )

    commands = parser.add_subparsers(dest="command")

    serve = commands.add_parser("serve", help="Run the workflow HTTP API")
    serve.add_argument("--host", help="Bind host (default: API_HOST)")
    serve.add_argument("--port", type=int, help="Bind port (default: API_PORT)")

    heal = commands.add_parser("heal", help="Execute a test file with self-healing")
    heal.add_argument("filename", help="Test file name inside the tests directory")
    heal.add_argument("--story-id", help="Story the test belongs to")
    heal.add_argument(
        "--max-attempts",
        type=int,
        help="Total executions allowed (default: HEALING_MAX_ATTEMPTS)",
    )
    heal.add_argument(
        "--no-post",
        action="store_true",
        help="Do not post the outcome to Jira",
    )

    run = commands.add_parser("run", help="Fetch, plan, generate and heal one story")
    run.add_argument("story_id", help="Jira story key")
    run.add_argument(
        "--push-testrail",
        action="store_true",
        help="Push generated test cases to TestRail",
    )

    fetch = commands.add_parser("fetch-story", help="Fetch and show a Jira story")
    fetch.add_argument("story_id", help="Jira story key")

    resolve = commands.add_parser("resolve-url", help="Show the target URL for a story")
    resolve.add_argument("story_id", help="Jira story key")

    commands.add_parser("test-connections", help="Check configured services")

    return parser


def show_version() -> int:
    """Show version information."""
    console.print("\n[bold cyan]autoheal - self-healing Playwright tests[/bold cyan]")
    console.print(f"Version: [green]{__version__}[/green]")
    return EXIT_SUCCESS


def exit_code_for(outcome: HealingOutcome) -> int:
    if outcome.status == HealingStatus.PASSED:
        return EXIT_SUCCESS
    if outcome.status == HealingStatus.CANNOT_HEAL:
        return EXIT_CANNOT_HEAL
    return EXIT_FAILURE


def print_outcome(outcome: HealingOutcome) -> None:
    """Render a healing outcome as a summary table."""
    color = {
        HealingStatus.PASSED: "green",
        HealingStatus.CANNOT_HEAL: "yellow",
    }.get(outcome.status, "red")

    table = Table(title="Test Execution", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Status", f"[{color}]{outcome.status.value}[/{color}]")
    table.add_row("Passed", str(outcome.result.passed))
    table.add_row("Failed", str(outcome.result.failed))
    table.add_row("Skipped", str(outcome.result.skipped))
    table.add_row("Duration", f"{outcome.result.duration_seconds:.2f}s")
    table.add_row("Attempts", str(outcome.attempts))
    table.add_row("Healing applied", "yes" if outcome.healing_applied else "no")
    if outcome.target_url:
        table.add_row("Target URL", outcome.target_url)
    if outcome.fixes_applied:
        table.add_row("Fixes", "\n".join(outcome.fixes_applied))
    if outcome.videos:
        table.add_row("Videos", "\n".join(outcome.videos))
    console.print(table)
    console.print(f"[{color}]{outcome.message}[/{color}]")


def print_story(story: Story) -> None:
    console.print(f"\n[bold cyan]{story.id}[/bold cyan] {story.title}")
    console.print(f"[dim]{story.issue_type} | {story.status} | {story.priority}[/dim]")
    if story.url:
        console.print(f"[dim]{story.url}[/dim]")
    if story.description:
        console.print(f"\n{story.description}")
    if story.acceptance_criteria:
        console.print("\n[bold]Acceptance Criteria[/bold]")
        for item in story.acceptance_criteria:
            console.print(f"  - {item}")
    if story.extracted_urls:
        console.print("\n[bold]Links[/bold]")
        for url in story.extracted_urls:
            console.print(f"  - {url}")


def serve(host: Optional[str], port: Optional[int]) -> int:
    """Run the API under uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "autoheal.api.server:create_app",
        factory=True,
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_config=None,
    )
    return EXIT_SUCCESS


async def heal(
    coordinator: WorkflowCoordinator,
    filename: str,
    story_id: Optional[str],
    max_attempts: Optional[int],
    post_results: bool,
) -> int:
    console.print(f"\n[cyan]Executing[/cyan] {filename}")
    outcome = await coordinator.execute_tests(
        filename,
        story_id=story_id,
        max_attempts=max_attempts,
        post_results=post_results,
    )
    print_outcome(outcome)
    return exit_code_for(outcome)


async def run_story(coordinator: WorkflowCoordinator, story_id: str, push_testrail: bool) -> int:
    console.print(f"\n[cyan]Running pipeline for[/cyan] {story_id}")
    outcome = await coordinator.run_story(story_id, push_to_testrail=push_testrail)
    print_outcome(outcome)
    return exit_code_for(outcome)


async def fetch_story(coordinator: WorkflowCoordinator, story_id: str) -> int:
    story = await coordinator.fetch_story(story_id)
    print_story(story)
    return EXIT_SUCCESS


async def resolve_url(coordinator: WorkflowCoordinator, story_id: str) -> int:
    story = await coordinator.fetch_story(story_id)
    resolution = resolve_target_url(story, settings=coordinator.settings)

    table = Table(title=f"Target URL candidates for {story_id}")
    table.add_column("Source", style="cyan")
    table.add_column("URL")
    for candidate in resolution.candidates:
        table.add_row(candidate.source, candidate.value)
    console.print(table)

    color = "yellow" if resolution.is_placeholder else "green"
    console.print(f"Chosen: [{color}]{resolution.chosen}[/{color}] ({resolution.chosen_source})")
    return EXIT_SUCCESS


async def test_connections(coordinator: WorkflowCoordinator) -> int:
    """Check each configured integration and report."""
    console.print("\n[bold cyan]Testing service connections[/bold cyan]")
    failures = 0

    checks = [
        ("Jira", coordinator.jira.configured, coordinator.jira.test_connection),
        ("TestRail", coordinator.testrail.configured, coordinator.testrail.test_connection),
    ]
    for name, configured, check in checks:
        if not configured:
            console.print(f"[yellow]- {name}: not configured[/yellow]")
            continue
        try:
            await check()
            console.print(f"[green]✓ {name} connection successful[/green]")
        except AutoHealError as e:
            failures += 1
            console.print(f"[red]✗ {name} connection failed: {e.message}[/red]")

    if not coordinator.settings.ai_configured:
        console.print("[yellow]- AI generation: not configured[/yellow]")
    else:
        try:
            await coordinator.generator.generate("Say 'OK' and nothing else.", max_tokens=10)
            console.print("[green]✓ AI generation connection successful[/green]")
        except AutoHealError as e:
            failures += 1
            console.print(f"[red]✗ AI generation failed: {e.message}[/red]")

    return EXIT_FAILURE if failures else EXIT_SUCCESS


async def async_main(args: Optional[list] = None) -> int:
    """Async main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if parsed_args.version:
        return show_version()

    if not parsed_args.command:
        parser.print_help()
        return EXIT_FAILURE

    settings = get_settings()
    if parsed_args.debug:
        settings.log_level = "DEBUG"
    if parsed_args.verbose:
        settings.log_format = "json"

    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
    )

    if parsed_args.command == "serve":
        return serve(parsed_args.host, parsed_args.port)

    coordinator = WorkflowCoordinator(settings)
    try:
        if parsed_args.command == "heal":
            return await heal(
                coordinator,
                parsed_args.filename,
                parsed_args.story_id,
                parsed_args.max_attempts,
                not parsed_args.no_post,
            )
        if parsed_args.command == "run":
            return await run_story(coordinator, parsed_args.story_id, parsed_args.push_testrail)
        if parsed_args.command == "fetch-story":
            return await fetch_story(coordinator, parsed_args.story_id)
        if parsed_args.command == "resolve-url":
            return await resolve_url(coordinator, parsed_args.story_id)
        return await test_connections(coordinator)
    except AutoHealError as e:
        logger.error(f"{parsed_args.command} failed: {e.message}", extra={"error": e.to_dict()})
        console.print(f"[red]Error: {e.message}[/red]")
        return EXIT_FAILURE
    finally:
        await coordinator.aclose()


def main(args: Optional[list] = None) -> int:
    """
    Main entry point for autoheal.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 success, 1 failure, 2 cannot heal, 130 interrupted)
    """
    try:
        return asyncio.run(async_main(args))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return EXIT_INTERRUPTED
    except Exception as e:
        console.print(f"[red]Fatal error: {e}[/red]")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
