"""
Workflow coordinator for the story-to-healed-test pipeline.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from autoheal.browser.inspector import PageInspector
from autoheal.config.settings import Settings, get_settings
from autoheal.core.interfaces import ArtifactRunner, TextGenerator
from autoheal.core.types import (
    Artifact,
    ExecutionResult,
    HealingOutcome,
    Story,
    StoryTestCase,
    TargetResolution,
)
from autoheal.error_handling.exceptions import AutoHealError, ValidationError
from autoheal.generation.planner import (
    TestCaseGenerator,
    artifact_filename,
    story_id_from_filename,
)
from autoheal.healing.orchestrator import RetryOrchestrator
from autoheal.healing.regenerator import ArtifactRegenerator
from autoheal.healing.runner import PlaywrightRunner
from autoheal.healing.strategy import analyze_story
from autoheal.healing.target_resolution import extract_credentials, resolve_target_url
from autoheal.integrations.jira import JiraClient
from autoheal.integrations.testrail import TestRailClient
from autoheal.models.generation_client import GenerationClient
from autoheal.monitoring.logger import get_logger
from autoheal.monitoring.reporter import ResultReporter

logger = get_logger(__name__)


class WorkflowStage(str, Enum):
    """Stages of the pipeline, one per API route."""

    CREATE_STORY = "create-story"
    FETCH_STORY = "fetch-jira"
    GENERATE_TESTS = "generate-tests"
    PUSH_TESTRAIL = "push-testrail"
    GENERATE_SCRIPTS = "generate-scripts"
    EXECUTE_TESTS = "execute-tests"
    UPDATE_RESULTS = "update-results"


class WorkflowCoordinator:
    """
    Runs each pipeline stage against the configured collaborators.

    Stages are independent so the HTTP API and CLI can call them one at a
    time; fetched stories are remembered so later stages keep the story
    context without another tracker round-trip.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        generator: Optional[TextGenerator] = None,
        jira: Optional[JiraClient] = None,
        testrail: Optional[TestRailClient] = None,
        runner: Optional[ArtifactRunner] = None,
        inspector: Optional[PageInspector] = None,
        reporter: Optional[ResultReporter] = None,
    ):
        self.settings = settings or get_settings()
        self.generator = generator or GenerationClient(self.settings)
        self.jira = jira or JiraClient(self.settings)
        self.testrail = testrail or TestRailClient(self.settings)
        self.runner = runner or PlaywrightRunner(self.settings)
        self.inspector = inspector or PageInspector(self.settings)
        self.reporter = reporter or ResultReporter()

        self.planner = TestCaseGenerator(self.generator, self.settings.placeholder_domain)
        self.orchestrator = RetryOrchestrator(
            self.runner, ArtifactRegenerator(self.generator), self.settings
        )
        self._stories: Dict[str, Story] = {}

        logger.info("Workflow coordinator initialized")

    async def aclose(self) -> None:
        await self.jira.aclose()
        await self.testrail.aclose()

    def remember(self, story: Story) -> Story:
        self._stories[story.id.upper()] = story
        return story

    def artifact_path(self, filename: str) -> Path:
        if not filename or Path(filename).name != filename:
            raise ValidationError(
                f"Invalid artifact filename: {filename!r}",
                validation_type="filename",
                failed_rules=["plain file name inside the tests directory"],
            )
        return self.settings.tests_dir / filename

    async def _story_for(self, story_id: str) -> Story:
        cached = self._stories.get(story_id.upper())
        if cached:
            return cached

        if self.jira.configured:
            try:
                return self.remember(await self.jira.fetch_story(story_id))
            except AutoHealError as e:
                logger.warning(f"Could not fetch {story_id}; continuing without story details: {e.message}")

        return Story(id=story_id)

    def health(self) -> Dict[str, Any]:
        return {
            "ai": self.settings.ai_configured,
            "jira": self.jira.configured,
            "testrail": self.testrail.configured,
            "runner": bool(self.settings.runner_command.strip()),
        }

    async def create_story(self, requirements: str) -> Story:
        logger.info(f"Creating story from requirements ({len(requirements)} chars)")
        draft = await self.planner.draft_story(requirements)
        return self.remember(await self.jira.create_story(draft))

    async def fetch_story(self, story_id: str) -> Story:
        logger.info(f"Fetching story {story_id}")
        return self.remember(await self.jira.fetch_story(story_id))

    async def generate_tests(self, story: Story) -> List[StoryTestCase]:
        self.remember(story)
        return await self.planner.generate_test_cases(story)

    async def push_testrail(self, test_cases: List[StoryTestCase], story_id: str) -> Dict[str, Any]:
        logger.info(f"Pushing {len(test_cases)} test case(s) to TestRail for {story_id}")
        return await self.testrail.push_cases(test_cases, story_id)

    async def generate_scripts(
        self,
        test_cases: List[StoryTestCase],
        story_id: str,
        story: Optional[Story] = None,
    ) -> Tuple[Artifact, TargetResolution]:
        """
        Generate and save the story's test artifact.

        Returns:
            The saved artifact and the target resolution it navigates to
        """
        path = self.artifact_path(artifact_filename(story_id))
        story = self.remember(story) if story else await self._story_for(story_id)
        analysis = analyze_story(story)
        resolution = resolve_target_url(story, test_cases=test_cases, settings=self.settings)
        credentials = extract_credentials(story)

        page_summary = None
        if self.settings.page_inspection_enabled and not resolution.is_placeholder:
            inspection = await self.inspector.inspect(resolution.chosen, credentials)
            page_summary = inspection.summary

        source = await self.planner.generate_script(
            story,
            test_cases,
            resolution.chosen,
            analysis=analysis,
            page_summary=page_summary,
            credentials=credentials,
        )
        artifact = Artifact(filename=path.name, path=path, source_text=source)
        artifact.save()

        logger.info(
            f"Generated test script: {artifact.filename}",
            extra={"story_id": story_id, "target_url": resolution.chosen, "source": resolution.chosen_source},
        )
        return artifact, resolution

    async def execute_tests(
        self,
        filename: str,
        story_id: Optional[str] = None,
        test_cases: Optional[List[StoryTestCase]] = None,
        max_attempts: Optional[int] = None,
        post_results: bool = True,
    ) -> HealingOutcome:
        """
        Run an artifact through the self-healing loop.

        The outcome comment is posted to the story when Jira is configured;
        a failed post never changes the outcome.
        """
        path = self.artifact_path(filename)
        if not path.is_file():
            raise ValidationError(
                f"Test file not found: {filename}",
                validation_type="filename",
                failed_rules=["artifact must exist in the tests directory"],
            )

        artifact = Artifact.load(path)
        story_id = story_id or story_id_from_filename(filename) or Path(filename).stem
        story = await self._story_for(story_id)
        resolution = resolve_target_url(
            story, artifact_text=artifact.source_text, test_cases=test_cases, settings=self.settings
        )

        outcome = await self.orchestrator.execute(
            artifact,
            story,
            resolution.chosen,
            test_cases=test_cases,
            max_attempts=max_attempts,
        )

        if post_results and self.jira.configured:
            await self.reporter.post_to_jira(self.jira, story_id, outcome)

        return outcome

    async def update_results(
        self,
        story_id: str,
        result: ExecutionResult,
        error: Optional[str] = None,
    ) -> Dict[str, Any]:
        logger.info(f"Updating results in Jira for {story_id}")
        return await self.jira.update_test_results(story_id, result, error=error)

    async def run_story(self, story_id: str, push_to_testrail: bool = False) -> HealingOutcome:
        """Fetch, plan, generate and execute one story end to end."""
        self._enter(WorkflowStage.FETCH_STORY, story_id)
        story = await self.fetch_story(story_id)
        self._enter(WorkflowStage.GENERATE_TESTS, story_id)
        test_cases = await self.generate_tests(story)

        if push_to_testrail and self.testrail.configured:
            self._enter(WorkflowStage.PUSH_TESTRAIL, story_id)
            await self.push_testrail(test_cases, story_id)

        self._enter(WorkflowStage.GENERATE_SCRIPTS, story_id)
        artifact, _ = await self.generate_scripts(test_cases, story_id, story)
        self._enter(WorkflowStage.EXECUTE_TESTS, story_id)
        return await self.execute_tests(artifact.filename, story_id=story_id, test_cases=test_cases)

    @staticmethod
    def _enter(stage: WorkflowStage, story_id: str) -> None:
        logger.info(f"[{story_id}] stage {stage.value}", extra={"stage": stage.value, "story_id": story_id})
