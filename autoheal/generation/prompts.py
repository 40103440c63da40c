"""
Prompts and templates for text generation.
"""

from typing import List, Optional

from autoheal.core.types import Credentials, Story, StoryAnalysis, StoryTestCase, StoryType

# Story creation
CREATE_STORY_PROMPT = """Convert the following requirements into a structured Jira user story format.

Requirements:
{requirements}

Generate a JSON object with this exact structure:
{{
  "title": "[Short, clear title for the user story - max 80 chars]",
  "description": "[Detailed description in user story format: As a [user], I want [feature] so that [benefit]]",
  "acceptanceCriteria": [
    "Criterion 1 - should be testable and specific",
    "Criterion 2 - should be testable and specific",
    "Criterion 3 - should be testable and specific"
  ]
}}

Rules:
- Title should be concise and descriptive (prefix with [UI], [API], [Backend] if applicable)
- Description should follow user story format
- Generate 3-5 clear, testable acceptance criteria
- Each criterion should start with an action verb
- Make criteria specific and measurable
- Keep any URL mentioned in the requirements verbatim

Return ONLY the JSON object, no additional text."""

# Test plan
TEST_PLAN_PROMPT = """Generate a comprehensive test plan for this user story:

**Story Title:** {title}

**Description:** {description}

**Acceptance Criteria:**
- {criteria}

**Instructions:**
1. Generate 1-5 detailed test cases
2. Cover all acceptance criteria
3. Include positive and negative test scenarios
4. Format each test case as follows:

Test Case 1: [Clear descriptive title]
Steps: [Detailed steps to execute]
Expected: [Expected outcome]

Test Case 2: [Clear descriptive title]
Steps: [Detailed steps to execute]
Expected: [Expected outcome]

... and so on.

Generate the test cases now:"""

DEFAULT_CRITERION = "Verify the feature works as described"

# Script generation
SCRIPT_PROMPT = """Generate a Playwright test file for user story {story_id}: {title}

**Target URL:** {target_url}
Navigate ONLY to this URL. Never use example.com or any placeholder domain.

**Acceptance Criteria:**
{criteria}

**Test Cases To Implement:**
{test_cases}

**Story Analysis:**
- Story type: {story_type}
- Verification approach: {approach}
- Main content area: {content_area}
{story_type_rule}
{page_block}{login_block}
**Requirements:**
1. Import: `import {{ test, expect }} from '@playwright/test';`
2. One `test(...)` per test case inside a `test.describe` block
3. Use `page.goto(url, {{ waitUntil: 'domcontentloaded', timeout: 30000 }})`
4. Dismiss cookie or consent dialogs after navigation when present
5. Prefer role, label and text locators; call `.first()` when a locator can match several elements
6. Use partial text matching (`toContainText`) instead of exact strings
7. Never assert exact CSS values or pixel positions; use `toBeVisible()` and `toBeInViewport()`

Return ONLY the complete test file code, no explanations."""

ADD_STORY_RULE = (
    "- The feature does not exist yet: assert only that the target "
    "elements exist and are visible. Do NOT assert on the new text content."
)
REMOVE_STORY_RULE = "- Assert that the described element is no longer present."
CONTENT_STORY_RULE = "- Assert on visible text using partial, case-insensitive matching."

LOGIN_BLOCK = """
**Login:**
The page requires signing in first. Username: {username}  Password: {password}
Fill the login form with these values before running the assertions.
"""


def build_create_story_prompt(requirements: str) -> str:
    return CREATE_STORY_PROMPT.format(requirements=requirements.strip())


def build_test_plan_prompt(story: Story) -> str:
    criteria = story.acceptance_criteria or [DEFAULT_CRITERION]
    return TEST_PLAN_PROMPT.format(
        title=story.title,
        description=story.description,
        criteria="\n- ".join(criteria),
    )


def _story_type_rule(analysis: StoryAnalysis) -> str:
    if analysis.story_type == StoryType.ADD:
        return ADD_STORY_RULE
    if analysis.story_type == StoryType.REMOVE:
        return REMOVE_STORY_RULE
    return CONTENT_STORY_RULE


def _format_cases(test_cases: List[StoryTestCase]) -> str:
    blocks = []
    for index, case in enumerate(test_cases, 1):
        blocks.append(
            f"Test Case {index}: {case.title}\n"
            f"Steps: {case.steps or 'Execute the test as described'}\n"
            f"Expected: {case.expected_result}"
        )
    return "\n\n".join(blocks) or "Derive test cases from the acceptance criteria."


def build_script_prompt(
    story: Story,
    test_cases: List[StoryTestCase],
    target_url: str,
    analysis: StoryAnalysis,
    page_summary: Optional[str] = None,
    credentials: Optional[Credentials] = None,
) -> str:
    """Prompt for the initial test artifact of a story."""
    criteria = story.acceptance_criteria or [DEFAULT_CRITERION]
    page_block = ""
    if page_summary:
        page_block = f"\n**Live Page Structure (inspected):**\n{page_summary}\n"

    login_block = ""
    if credentials:
        login_block = LOGIN_BLOCK.format(
            username=credentials.username, password=credentials.password
        )

    return SCRIPT_PROMPT.format(
        story_id=story.id,
        title=story.title,
        target_url=target_url,
        criteria="\n".join(f"{i}. {c}" for i, c in enumerate(criteria, 1)),
        test_cases=_format_cases(test_cases),
        story_type=analysis.story_type.value,
        approach=analysis.verification_approach.value,
        content_area=analysis.content_area,
        story_type_rule=_story_type_rule(analysis),
        page_block=page_block,
        login_block=login_block,
    )
