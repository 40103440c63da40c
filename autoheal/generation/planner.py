"""
Test-case and artifact generation from stories.

Generated replies are loosely structured, so parsing is layered: JSON
first, then ``Test Case N:`` / ``Steps:`` / ``Expected:`` text, then a
plain numbered list, and finally a single default case.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from autoheal.core.interfaces import TextGenerator
from autoheal.core.types import (
    Credentials,
    Story,
    StoryAnalysis,
    StoryDraft,
    StoryTestCase,
)
from autoheal.error_handling.exceptions import GenerationError, ValidationError
from autoheal.generation.prompts import (
    build_create_story_prompt,
    build_script_prompt,
    build_test_plan_prompt,
)
from autoheal.healing.regenerator import is_runnable_test, replace_placeholder_url
from autoheal.healing.strategy import analyze_story, build_test_for_approach
from autoheal.models.generation_client import strip_code_fences, strip_thinking

logger = logging.getLogger(__name__)

DEFAULT_EXPECTED = "Test passes successfully"
DEFAULT_STEPS = "Execute the test as described"

STORY_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
ARTIFACT_NAME = re.compile(r"^([A-Za-z0-9_-]+?)-automated\.spec\.[jt]s$")

CASE_HEADING = re.compile(
    r"^(?:test case|tc|scenario)\s*#?\s*(\d+)\s*[:.)\-]?\s*(.*)$", re.IGNORECASE
)
MARKDOWN_HEADING = re.compile(r"^#{1,3}\s*((?:test|scenario)\b.*)$", re.IGNORECASE)
NUMBERED_ITEM = re.compile(r"^\d+[.)]\s+(\S.*)$")
STEPS_LABEL = re.compile(r"^steps?\s*:\s*(.*)$", re.IGNORECASE)
EXPECTED_LABEL = re.compile(r"^(?:expected(?:\s+results?)?|expect|result)\s*:\s*(.*)$", re.IGNORECASE)
PRECONDITION_LABEL = re.compile(r"^pre-?conditions?\s*:\s*(.*)$", re.IGNORECASE)
JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def artifact_filename(story_id: str) -> str:
    """Fixed per-story artifact name, e.g. ``ed-42-automated.spec.js``."""
    story_id = (story_id or "").strip()
    if not STORY_ID_PATTERN.match(story_id):
        raise ValidationError(
            f"Invalid story id: {story_id!r}",
            validation_type="story_id",
            failed_rules=["alphanumeric, dash or underscore only"],
        )
    return f"{story_id.lower()}-automated.spec.js"


def story_id_from_filename(filename: str) -> Optional[str]:
    """Inverse of artifact_filename: ``ed-42-automated.spec.js`` -> ``ED-42``."""
    match = ARTIFACT_NAME.match(filename or "")
    return match.group(1).upper() if match else None


def _clean_line(line: str) -> str:
    return line.replace("**", "").replace("__", "").strip()


def case_from_dict(data: Dict[str, Any], index: int = 1) -> StoryTestCase:
    """Build a case from a loosely keyed dict (camelCase, snake_case or short keys)."""
    steps = data.get("steps") or ""
    if isinstance(steps, list):
        steps = "\n".join(str(step) for step in steps)

    return StoryTestCase(
        id=data.get("id") or data.get("testCaseId") or index,
        title=data.get("title") or data.get("name") or f"Test Case {index}",
        steps=steps,
        expected_result=(
            data.get("expectedResult")
            or data.get("expected_result")
            or data.get("expected")
            or DEFAULT_EXPECTED
        ),
        description=data.get("description") or "",
        preconditions=data.get("preconditions") or data.get("precondition") or "",
        priority=data.get("priority"),
    )


def _parse_json_cases(text: str) -> Optional[List[StoryTestCase]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None

    if isinstance(data, dict):
        data = data.get("testCases") or data.get("test_cases")
    if not isinstance(data, list):
        return None

    return [
        case_from_dict(item, index)
        for index, item in enumerate(data, 1)
        if isinstance(item, dict)
    ]


def _parse_text_cases(text: str) -> List[StoryTestCase]:
    lines = [_clean_line(line) for line in text.splitlines()]
    explicit = any(CASE_HEADING.match(line) or MARKDOWN_HEADING.match(line) for line in lines)

    cases: List[Dict[str, List[str]]] = []
    current: Optional[Dict[str, List[str]]] = None
    section: Optional[str] = None

    for line in lines:
        if not line:
            continue

        title = None
        heading = CASE_HEADING.match(line)
        if heading:
            title = heading.group(2).strip() or f"Test Case {len(cases) + 1}"
        elif MARKDOWN_HEADING.match(line):
            title = (
                CASE_HEADING.sub(r"\2", MARKDOWN_HEADING.match(line).group(1)).strip()
                or f"Test Case {len(cases) + 1}"
            )
        elif not explicit and section != "steps" and NUMBERED_ITEM.match(line):
            title = NUMBERED_ITEM.match(line).group(1).strip()

        if title is not None:
            current = {"title": [title], "steps": [], "expected": [], "preconditions": [], "description": []}
            cases.append(current)
            section = None
            continue

        if current is None:
            continue

        for key, label in (
            ("expected", EXPECTED_LABEL),
            ("steps", STEPS_LABEL),
            ("preconditions", PRECONDITION_LABEL),
        ):
            match = label.match(line)
            if match:
                section = key
                if match.group(1).strip():
                    current[key].append(match.group(1).strip())
                break
        else:
            if section:
                current[section].append(line)
            elif not current["steps"]:
                current["steps"].append(line)
            else:
                current["description"].append(line)

    return [
        StoryTestCase(
            id=index,
            title=case["title"][0],
            steps="\n".join(case["steps"]) or DEFAULT_STEPS,
            expected_result=" ".join(case["expected"]) or DEFAULT_EXPECTED,
            preconditions="\n".join(case["preconditions"]),
            description="\n".join(case["description"]),
        )
        for index, case in enumerate(cases, 1)
    ]


def parse_test_cases(text: Optional[str]) -> List[StoryTestCase]:
    """
    Parse a generated test plan into test cases.

    Args:
        text: Generated reply (JSON or prose)

    Returns:
        At least one test case
    """
    cleaned = strip_code_fences(strip_thinking(text))

    cases = _parse_json_cases(cleaned)
    if cases:
        return cases

    cases = _parse_text_cases(cleaned)
    if cases:
        return cases

    logger.warning("No test cases found in generated plan; using default case")
    return [
        StoryTestCase(
            id=1,
            title="Verify functionality works as expected",
            steps="Execute the feature according to acceptance criteria",
            expected_result="Feature works as described",
            description=cleaned[:500],
        )
    ]


def parse_story_draft(text: Optional[str]) -> StoryDraft:
    """
    Parse a generated story draft.

    Raises:
        GenerationError: the reply holds no usable JSON object with a title
    """
    cleaned = strip_code_fences(strip_thinking(text))
    candidates = [cleaned]
    match = JSON_OBJECT.search(cleaned)
    if match and match.group(0) != cleaned:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict) or not data.get("title"):
            continue

        criteria = data.get("acceptanceCriteria") or data.get("acceptance_criteria") or []
        if isinstance(criteria, str):
            criteria = [criteria]
        return StoryDraft(
            title=str(data["title"]).strip(),
            description=str(data.get("description") or "").strip(),
            acceptance_criteria=[str(c).strip() for c in criteria if str(c).strip()],
        )

    raise GenerationError("AI generated invalid response format", details={"response": cleaned[:500]})


class TestCaseGenerator:
    """Drafts stories, test cases and initial artifacts with a text generator."""

    __test__ = False

    def __init__(self, generator: TextGenerator, placeholder_domain: Optional[str] = None):
        self.generator = generator
        self.placeholder_domain = placeholder_domain

    async def draft_story(self, requirements: str) -> StoryDraft:
        reply = await self.generator.generate(build_create_story_prompt(requirements), max_tokens=1500)
        draft = parse_story_draft(reply)
        logger.info(f"Drafted story: {draft.title}", extra={"criteria": len(draft.acceptance_criteria)})
        return draft

    async def generate_test_cases(self, story: Story) -> List[StoryTestCase]:
        reply = await self.generator.generate(build_test_plan_prompt(story), max_tokens=3000)
        cases = parse_test_cases(reply)
        logger.info(f"Generated {len(cases)} test case(s) for {story.id}", extra={"story_id": story.id})
        return cases

    async def generate_script(
        self,
        story: Story,
        test_cases: List[StoryTestCase],
        target_url: str,
        analysis: Optional[StoryAnalysis] = None,
        page_summary: Optional[str] = None,
        credentials: Optional[Credentials] = None,
    ) -> str:
        """
        Generate the initial test file for a story.

        A reply that is not a runnable test is replaced with the
        deterministic template for the story's verification approach.
        """
        analysis = analysis or analyze_story(story)
        prompt = build_script_prompt(
            story, test_cases, target_url, analysis,
            page_summary=page_summary, credentials=credentials,
        )
        source = strip_code_fences(await self.generator.generate_test_script(prompt))

        if not is_runnable_test(source):
            logger.warning(
                f"Generated script for {story.id} is not runnable; using "
                f"{analysis.verification_approach.value.lower()} template",
                extra={"story_id": story.id},
            )
            return build_test_for_approach(story, target_url, analysis)

        if self.placeholder_domain:
            source = replace_placeholder_url(source, self.placeholder_domain, target_url)

        return source
