"""
Result reporting for autoheal.

Formats execution results and healing metadata into the JSON response
shape of the HTTP API, the status comment posted back to the story
tracker, and a Markdown summary for the CLI.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jinja2 import Template

from autoheal.core.types import ExecutionResult, HealingOutcome, HealingStatus
from autoheal.error_handling.exceptions import AutoHealError

logger = logging.getLogger(__name__)

FRAMEWORK_NAME = "autoheal Playwright self-healing"

COMMENT_TEMPLATE = Template(
    """{{ mark }} Automated Test Execution Result

Test: {{ test_name }}
Status: {{ status | upper }}
Duration: {{ duration_ms }}ms
Tests: {{ result.passed }}/{{ result.total }} passed{% if result.skipped %}, {{ result.skipped }} skipped{% endif %}
{%- if attempts %}
Attempts: {{ attempts }}{% if healing_applied %} (self-healing applied){% endif %}
{%- endif %}
Timestamp: {{ timestamp }}

{{ error if error else "All assertions passed" }}

Framework: {{ framework }}"""
)

MARKDOWN_TEMPLATE = Template(
    """# Test Execution: {{ test_name }}

- **Status:** {{ status | upper }}
- **Passed:** {{ result.passed }} ✓
- **Failed:** {{ result.failed }} ✗
- **Skipped:** {{ result.skipped }}
- **Duration:** {{ "%.2f" | format(result.duration_seconds) }}s
- **Attempts:** {{ outcome.attempts }}
- **Healing applied:** {{ "yes" if outcome.healing_applied else "no" }}
{%- if outcome.target_url %}
- **Target:** {{ outcome.target_url }}
{%- endif %}

{{ outcome.message }}
{% if outcome.classification and not outcome.success %}
## Failure classification

Dominant error: `{{ outcome.classification.error_type }}`
{% for line in outcome.classification.strict_mode_violations + outcome.classification.selector_issues + outcome.classification.text_mismatches %}
- {{ line }}
{%- endfor %}
{% endif %}
{%- if outcome.fixes_applied %}
## Fixes applied
{% for fix in outcome.fixes_applied %}
- {{ fix }}
{%- endfor %}
{% endif %}
{%- if outcome.videos %}
## Videos
{% for video in outcome.videos %}
- {{ video }}
{%- endfor %}
{% endif %}"""
)


def result_status(result: ExecutionResult) -> str:
    """'passed' when nothing failed and something ran, else 'failed'."""
    return "passed" if result.success else "failed"


class ResultReporter:
    """Formats healing outcomes for API responses and story comments."""

    def __init__(self, framework: str = FRAMEWORK_NAME):
        self.framework = framework

    def to_api_response(self, outcome: HealingOutcome) -> Dict[str, Any]:
        """JSON body of the execute-tests route."""
        result = outcome.result
        response: Dict[str, Any] = {
            "success": outcome.success,
            "status": outcome.status.value,
            "passed": result.passed,
            "failed": result.failed,
            "skipped": result.skipped,
            "total": result.total,
            "duration": round(result.duration_seconds, 2),
            "output": outcome.output,
            "message": outcome.message,
            "healingApplied": outcome.healing_applied,
            "attempts": outcome.attempts,
            "fixesApplied": list(outcome.fixes_applied),
            "videos": list(outcome.videos),
            "targetUrl": outcome.target_url,
            "classification": (
                outcome.classification.to_api() if outcome.classification else None
            ),
        }

        if outcome.status == HealingStatus.CANNOT_HEAL:
            response["cannotHeal"] = True

        if outcome.error:
            response["error"] = outcome.error

        return response

    def format_comment(
        self,
        test_name: str,
        result: ExecutionResult,
        error: Optional[str] = None,
        attempts: Optional[int] = None,
        healing_applied: bool = False,
        timestamp: Optional[datetime] = None,
    ) -> str:
        """Plain-text status comment for the story tracker."""
        status = result_status(result)
        if error is None and result.failed:
            error = f"{result.failed} test(s) failed"

        return COMMENT_TEMPLATE.render(
            mark="✅" if status == "passed" else "❌",
            test_name=test_name,
            status=status,
            duration_ms=int(round(result.duration_seconds * 1000)),
            result=result,
            attempts=attempts,
            healing_applied=healing_applied,
            timestamp=(timestamp or datetime.now(timezone.utc)).isoformat(),
            error=error,
            framework=self.framework,
        ).strip()

    def format_outcome_comment(self, story_id: str, outcome: HealingOutcome) -> str:
        error = outcome.error
        if outcome.status == HealingStatus.CANNOT_HEAL:
            error = f"Cannot auto-heal: {outcome.error or outcome.message}"
        return self.format_comment(
            test_name=f"Automated Test Suite - {story_id}",
            result=outcome.result,
            error=error,
            attempts=outcome.attempts,
            healing_applied=outcome.healing_applied,
        )

    def to_markdown(self, outcome: HealingOutcome, test_name: str = "") -> str:
        return MARKDOWN_TEMPLATE.render(
            test_name=test_name or "autoheal run",
            status=outcome.status.value,
            result=outcome.result,
            outcome=outcome,
        ).strip() + "\n"

    async def post_to_jira(self, jira: Any, story_id: str, outcome: HealingOutcome) -> bool:
        """
        Post the outcome comment to the story.

        Best effort: integration failures are logged and reported as
        False so they never change the execution verdict.

        Args:
            jira: Client exposing ``async post_comment(key, text)``
            story_id: Story key
            outcome: Healing outcome to report

        Returns:
            True when the comment was posted
        """
        try:
            await jira.post_comment(story_id, self.format_outcome_comment(story_id, outcome))
        except AutoHealError as e:
            logger.warning(
                f"Could not post results to {story_id}: {e.message}",
                extra={"story_id": story_id, "error_code": e.error_code},
            )
            return False

        logger.info(f"Posted results to {story_id}", extra={"story_id": story_id})
        return True
