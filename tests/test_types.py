"""
Tests for core data models.
"""

import pytest
from pydantic import ValidationError

from autoheal.core.types import (
    Artifact,
    ExecutionResult,
    FailureClassification,
    RunOutput,
    Story,
    StoryTestCase,
)


class TestExecutionResult:
    """Test counts and verdicts."""

    def test_total_excludes_skipped(self):
        result = ExecutionResult(passed=2, failed=1, skipped=4)

        assert result.total == 3
        assert result.to_api()["total"] == 3

    @pytest.mark.parametrize(
        "passed,failed,success",
        [(2, 0, True), (2, 1, False), (0, 0, False)],
    )
    def test_success(self, passed, failed, success):
        assert ExecutionResult(passed=passed, failed=failed).success is success

    def test_negative_counts_rejected(self):
        with pytest.raises(ValidationError):
            ExecutionResult(passed=-1)


class TestFailureClassification:
    """Test the dominant error label."""

    def test_precedence(self):
        classification = FailureClassification(
            selector_issues=["locator('.a')"],
            text_mismatches=["Expected substring"],
            navigation_timeout=True,
            strict_mode_violations=["strict mode violation"],
        )

        assert classification.error_type == "strict-mode-violation"
        classification.strict_mode_violations = []
        assert classification.error_type == "selector-not-found"
        classification.selector_issues = []
        assert classification.error_type == "navigation-timeout"

    def test_logic_error_before_selectors(self):
        classification = FailureClassification(selector_issues=["x"], is_logic_error=True)

        assert classification.error_type == "logic-error"

    def test_empty(self):
        assert FailureClassification().is_empty
        assert FailureClassification(consent_dialog_detected=True).error_type == "consent-dialog"


class TestModels:
    """Test serialization and helpers."""

    def test_story_accepts_camel_and_snake(self):
        camel = Story.model_validate({"id": "QA-1", "acceptanceCriteria": ["A"]})
        snake = Story(id="QA-1", acceptance_criteria=["A"])

        assert camel == snake
        assert "acceptanceCriteria" in snake.to_api()

    def test_test_case_defaults(self):
        case = StoryTestCase(title="T")

        assert case.to_api()["expectedResult"] == "Test passes successfully"

    def test_artifact_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "qa-1-automated.spec.js"
        Artifact(filename=path.name, path=path, source_text="test('a', () => {});").save()

        loaded = Artifact.load(path)

        assert loaded.filename == "qa-1-automated.spec.js"
        assert loaded.source_text == "test('a', () => {});"

    def test_run_output_combined(self):
        assert RunOutput(stdout="out", stderr="err").combined == "out\nerr"
        assert RunOutput(stderr="err").combined == "err"
        assert RunOutput(stdout="out err", stderr="err").combined == "out err"
