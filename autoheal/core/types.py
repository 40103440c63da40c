"""
Core data models and types for the autoheal toolkit.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


class StoryType(str, Enum):
    """What a story asks for, inferred from its wording."""

    ADD = "ADD"
    MODIFY = "MODIFY"
    VERIFY = "VERIFY"
    REMOVE = "REMOVE"


class VerificationApproach(str, Enum):
    """How a generated test should assert on the page."""

    STRUCTURAL = "STRUCTURAL"  # element exists and is visible
    CONTENT = "CONTENT"  # element contains expected text
    ABSENCE = "ABSENCE"  # element is gone


class CaseStatus(str, Enum):
    """Status of a single test reported by the runner."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMED_OUT = "timedout"


class HealingStatus(str, Enum):
    """Terminal verdict of a healing run."""

    PASSED = "passed"
    FAILED = "failed"
    CANNOT_HEAL = "cannot_heal"


class OrchestratorState(str, Enum):
    """States of the retry loop."""

    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    HEALING = "healing"
    TERMINAL_PASSED = "terminal_passed"
    TERMINAL_FAILED = "terminal_failed"


class ApiModel(BaseModel):
    """Base model serialized with camelCase keys for the HTTP surface."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Story(ApiModel):
    """A requirement record from the story tracker."""

    id: str = Field(..., description="Story key, e.g. ED-42")
    title: str = ""
    description: str = ""
    acceptance_criteria: List[str] = Field(default_factory=list)
    test_scenarios: List[str] = Field(default_factory=list)
    extracted_urls: List[str] = Field(default_factory=list)
    status: Optional[str] = None
    issue_type: Optional[str] = None
    priority: Optional[str] = None
    labels: List[str] = Field(default_factory=list)
    assignee: Optional[str] = None
    url: Optional[str] = None

    @property
    def full_text(self) -> str:
        """Title, description and criteria joined for keyword scans."""
        parts = [self.title, self.description, *self.acceptance_criteria]
        return " ".join(part for part in parts if part)


class StoryDraft(ApiModel):
    """Structured story produced from plain-English requirements."""

    title: str
    description: str
    acceptance_criteria: List[str] = Field(default_factory=list)


class StoryTestCase(ApiModel):
    """A manual test case derived from a story."""

    id: Union[int, str] = 1
    title: str
    steps: str = ""
    expected_result: str = "Test passes successfully"
    description: str = ""
    preconditions: str = ""
    priority: Optional[str] = None


class Artifact(ApiModel):
    """A generated runnable test script for one story."""

    filename: str
    path: Path
    source_text: str = ""

    @classmethod
    def load(cls, path: Path) -> "Artifact":
        return cls(
            filename=path.name,
            path=path,
            source_text=path.read_text(encoding="utf-8"),
        )

    def save(self) -> None:
        """Overwrite the artifact file with the current source."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self.source_text, encoding="utf-8")


class PerTestResult(ApiModel):
    """One line of the runner's per-test report."""

    title: str
    status: CaseStatus
    duration_ms: int = 0


class ExecutionResult(ApiModel):
    """Counts and timings parsed from one runner execution.

    Skipped tests are tracked but never counted in ``total``.
    """

    passed: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)
    skipped: int = Field(0, ge=0)
    duration_seconds: float = Field(0.0, ge=0.0)
    per_test_results: List[PerTestResult] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return self.passed + self.failed

    @property
    def success(self) -> bool:
        return self.failed == 0 and self.passed > 0

    @property
    def is_empty(self) -> bool:
        return self.passed == 0 and self.failed == 0 and self.skipped == 0


class FailureClassification(ApiModel):
    """Failure kinds found in one attempt's output.

    Built fresh from the latest failure text; never merged across attempts.
    """

    selector_issues: List[str] = Field(default_factory=list)
    text_mismatches: List[str] = Field(default_factory=list)
    navigation_timeout: bool = False
    strict_mode_violations: List[str] = Field(default_factory=list)
    css_issues: List[str] = Field(default_factory=list)
    url_issues: List[str] = Field(default_factory=list)
    consent_dialog_detected: bool = False
    is_logic_error: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def error_type(self) -> str:
        """Single label for the dominant failure kind."""
        if self.strict_mode_violations:
            return "strict-mode-violation"
        if self.is_logic_error:
            return "logic-error"
        if self.selector_issues:
            return "selector-not-found"
        if self.navigation_timeout:
            return "navigation-timeout"
        if self.text_mismatches:
            return "text-mismatch"
        if self.css_issues:
            return "css-assertion"
        if self.url_issues:
            return "url-assertion"
        if self.consent_dialog_detected:
            return "consent-dialog"
        return "unclassified"

    @property
    def is_empty(self) -> bool:
        return self.error_type == "unclassified"


class HealingAttempt(ApiModel):
    """Record of one regenerate cycle."""

    attempt_number: int = Field(..., ge=1)
    classification: FailureClassification
    regenerated_artifact: Optional[str] = None
    success: bool = False
    fixes_applied: List[str] = Field(default_factory=list)
    bypassed_generation: bool = False


class HealingOutcome(ApiModel):
    """Final verdict returned by the retry loop."""

    success: bool
    status: HealingStatus
    attempts: int = Field(..., ge=0)
    healing_applied: bool = False
    result: ExecutionResult = Field(default_factory=ExecutionResult)
    output: str = ""
    classification: Optional[FailureClassification] = None
    fixes_applied: List[str] = Field(default_factory=list)
    videos: List[str] = Field(default_factory=list)
    target_url: Optional[str] = None
    message: str = ""
    error: Optional[str] = None
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TargetCandidate(ApiModel):
    """A value proposed by one resolution strategy."""

    source: str
    value: str


class TargetResolution(ApiModel):
    """Ordered candidates and the chosen URL."""

    candidates: List[TargetCandidate] = Field(default_factory=list)
    chosen: str
    chosen_source: str
    is_placeholder: bool = False


class Credentials(ApiModel):
    """Login pair mined from story text."""

    username: str
    password: str


class UiElement(ApiModel):
    """A page region a story talks about, with candidate selectors."""

    type: str
    selectors: List[str]


class StoryAnalysis(ApiModel):
    """Story type and assertion strategy, computed once per story."""

    story_type: StoryType
    verification_approach: VerificationApproach
    ui_elements: List[UiElement] = Field(default_factory=list)
    target_texts: List[str] = Field(default_factory=list)
    content_area: str = "main"
    approach: str = ""
    planned_tests: List[str] = Field(default_factory=list)


class RunOutput(BaseModel):
    """Raw capture of one runner process."""

    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    timed_out: bool = False
    duration_seconds: float = 0.0

    @property
    def combined(self) -> str:
        if self.stderr and self.stderr not in self.stdout:
            return f"{self.stdout}\n{self.stderr}" if self.stdout else self.stderr
        return self.stdout
