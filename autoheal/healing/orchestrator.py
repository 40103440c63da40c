"""Bounded run-classify-regenerate-rerun loop."""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional

from autoheal.config.settings import Settings, get_settings
from autoheal.core.interfaces import ArtifactRunner
from autoheal.core.types import (
    Artifact,
    ExecutionResult,
    FailureClassification,
    HealingAttempt,
    HealingOutcome,
    HealingStatus,
    OrchestratorState,
    Story,
    StoryAnalysis,
    StoryTestCase,
)
from autoheal.error_handling.exceptions import (
    CannotHealError,
    GenerationError,
    RunnerError,
    ValidationError,
)
from autoheal.healing.classifier import classify_failure
from autoheal.healing.output_parser import OutputGrammar, default_grammar
from autoheal.healing.regenerator import ArtifactRegenerator, RegenerationRequest
from autoheal.healing.strategy import analyze_story
from autoheal.monitoring.logger import log_healing_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealingLedger:
    """What the loop has done so far; each step returns a new ledger."""

    attempts: int = 0
    healing_applied: bool = False
    fixes_applied: List[str] = field(default_factory=list)
    result: ExecutionResult = field(default_factory=ExecutionResult)
    output: str = ""
    classification: Optional[FailureClassification] = None
    latest_healing: Optional[HealingAttempt] = None

    def after_execution(
        self,
        attempt: int,
        result: ExecutionResult,
        output: str,
        classification: Optional[FailureClassification] = None,
    ) -> "HealingLedger":
        return replace(
            self,
            attempts=attempt,
            result=result,
            output=output,
            classification=classification,
        )

    def after_healing(self, healing: HealingAttempt) -> "HealingLedger":
        return replace(
            self,
            healing_applied=self.healing_applied or healing.success,
            fixes_applied=self.fixes_applied + healing.fixes_applied,
            latest_healing=healing,
        )


def collect_videos(results_dir: Path, video_filename: str) -> List[str]:
    """Video files found one level below the results directory."""
    try:
        if not results_dir.is_dir():
            return []
        return [
            str(sub / video_filename)
            for sub in sorted(results_dir.iterdir())
            if sub.is_dir() and (sub / video_filename).is_file()
        ]
    except OSError as e:
        logger.warning(f"Could not scan {results_dir} for videos: {e}")
        return []


class RetryOrchestrator:
    """Runs an artifact until it passes or the attempt ceiling is reached.

    States: running -> passed | failed; failed -> healing -> running while
    attempts remain, otherwise terminal failed. The ceiling counts
    executions, so a ceiling of 3 allows two healing cycles.
    """

    def __init__(
        self,
        runner: ArtifactRunner,
        regenerator: ArtifactRegenerator,
        settings: Optional[Settings] = None,
        grammar: Optional[OutputGrammar] = None,
    ) -> None:
        self.runner = runner
        self.regenerator = regenerator
        self.settings = settings or get_settings()
        self.grammar = grammar or default_grammar

    async def execute(
        self,
        artifact: Artifact,
        story: Story,
        target_url: str,
        test_cases: Optional[List[StoryTestCase]] = None,
        analysis: Optional[StoryAnalysis] = None,
        max_attempts: Optional[int] = None,
    ) -> HealingOutcome:
        """
        Execute with self-healing.

        Args:
            artifact: Test file to run; overwritten by each healing cycle
            story: Story the artifact verifies
            target_url: Resolved system-under-test URL
            test_cases: Manual test cases the artifact implements
            analysis: Precomputed story analysis
            max_attempts: Execution ceiling (defaults to settings)

        Returns:
            HealingOutcome; never raises for test failures
        """
        if max_attempts is not None and max_attempts < 1:
            raise ValidationError(
                f"max_attempts must be at least 1, got {max_attempts}",
                validation_type="max_attempts",
                failed_rules=["at least one execution"],
            )
        ceiling = max_attempts if max_attempts is not None else self.settings.healing_max_attempts
        analysis = analysis or analyze_story(story)
        ledger = HealingLedger()

        for attempt in range(1, ceiling + 1):
            log_healing_event(
                story.id, attempt, OrchestratorState.RUNNING.value,
                f"executing {artifact.filename} ({attempt}/{ceiling})",
            )
            try:
                run_output = await self.runner.run(artifact.path)
            except RunnerError as e:
                log_healing_event(
                    story.id, attempt, OrchestratorState.TERMINAL_FAILED.value,
                    f"runner could not start: {e.message}", level=logging.ERROR,
                )
                return self._finish(
                    ledger, HealingStatus.FAILED, target_url,
                    message="Test runner could not be started",
                    error=e.message,
                )

            output = run_output.combined
            result = self.grammar.parse(output)

            if result.success and not run_output.timed_out:
                ledger = ledger.after_execution(attempt, result, output)
                log_healing_event(
                    story.id, attempt, OrchestratorState.TERMINAL_PASSED.value,
                    f"{result.passed}/{result.total} passed",
                )
                return self._finish(
                    ledger, HealingStatus.PASSED, target_url,
                    message=f"Tests executed: {result.passed}/{result.total} passed",
                )

            classification = classify_failure(output, analysis)
            ledger = ledger.after_execution(attempt, result, output, classification)
            log_healing_event(
                story.id, attempt, OrchestratorState.FAILED.value,
                self._failure_reason(result, run_output.timed_out, classification),
                level=logging.WARNING,
            )

            if attempt >= ceiling:
                break

            log_healing_event(
                story.id, attempt, OrchestratorState.HEALING.value,
                f"regenerating artifact ({classification.error_type})",
            )
            try:
                healing = await self.regenerator.regenerate(
                    RegenerationRequest(
                        artifact=artifact,
                        raw_failure_text=output,
                        classification=classification,
                        story=story,
                        analysis=analysis,
                        target_url=target_url,
                        attempt_number=attempt,
                        test_cases=test_cases or [],
                        placeholder_domain=self.settings.placeholder_domain,
                    )
                )
            except CannotHealError as e:
                log_healing_event(
                    story.id, attempt, OrchestratorState.TERMINAL_FAILED.value,
                    f"cannot auto-heal: {e.message}", level=logging.ERROR,
                )
                return self._finish(
                    ledger, HealingStatus.CANNOT_HEAL, target_url,
                    message=f"Cannot auto-heal after {attempt} attempts",
                    error=e.message,
                )
            except GenerationError as e:
                log_healing_event(
                    story.id, attempt, OrchestratorState.TERMINAL_FAILED.value,
                    f"generation failed: {e.message}", level=logging.ERROR,
                )
                return self._finish(
                    ledger, HealingStatus.FAILED, target_url,
                    message="Self-healing failed",
                    error=e.message,
                )

            ledger = ledger.after_healing(healing)

        log_healing_event(
            story.id, ledger.attempts, OrchestratorState.TERMINAL_FAILED.value,
            "attempt ceiling reached", level=logging.WARNING,
        )
        return self._finish(
            ledger, HealingStatus.FAILED, target_url,
            message=f"Tests failed after {ledger.attempts} attempts",
            error=f"{ledger.result.failed} test(s) failed" if ledger.result.failed else None,
        )

    @staticmethod
    def _failure_reason(
        result: ExecutionResult,
        timed_out: bool,
        classification: FailureClassification,
    ) -> str:
        if timed_out:
            return f"runner timed out ({classification.error_type})"
        if result.total == 0:
            return f"unclassifiable output ({classification.error_type})"
        return f"{result.failed}/{result.total} failed ({classification.error_type})"

    def _finish(
        self,
        ledger: HealingLedger,
        status: HealingStatus,
        target_url: str,
        message: str,
        error: Optional[str] = None,
    ) -> HealingOutcome:
        videos = collect_videos(self.settings.results_dir, self.settings.video_filename)
        if videos:
            logger.info(f"Collected {len(videos)} video(s)", extra={"videos": videos})
        return HealingOutcome(
            success=status == HealingStatus.PASSED,
            status=status,
            attempts=ledger.attempts,
            healing_applied=ledger.healing_applied,
            result=ledger.result,
            output=ledger.output,
            classification=ledger.classification,
            fixes_applied=list(ledger.fixes_applied),
            videos=videos,
            target_url=target_url,
            message=message,
            error=error,
        )
