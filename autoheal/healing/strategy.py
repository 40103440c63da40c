"""Story analysis and deterministic Playwright test templates.

The story type is inferred once per story into a StoryAnalysis and passed
down; nothing downstream re-derives it from keywords.
"""

import json
import logging
import re
from typing import Dict, List, Optional

from jinja2 import Environment

from autoheal.core.types import (
    Story,
    StoryAnalysis,
    StoryType,
    UiElement,
    VerificationApproach,
)

logger = logging.getLogger(__name__)

VERIFY_KEYWORDS = (
    "verify",
    "check",
    "ensure",
    "confirm",
    "test ",
    "validate",
    "functionality",
    "should",
    "assert",
    "expect",
)
ADD_PATTERNS = (
    re.compile(r"\badd\b"),
    re.compile(r"\bcreate\b"),
    re.compile(r"implement"),
    re.compile(r"\bnew\s"),
)
MODIFY_KEYWORDS = ("modify", "change", "update", "edit")
REMOVE_KEYWORDS = ("remove", "delete", "hide")

APPROACH_BY_TYPE: Dict[StoryType, VerificationApproach] = {
    StoryType.ADD: VerificationApproach.STRUCTURAL,
    StoryType.MODIFY: VerificationApproach.CONTENT,
    StoryType.VERIFY: VerificationApproach.CONTENT,
    StoryType.REMOVE: VerificationApproach.ABSENCE,
}

PLANS: Dict[StoryType, Dict[str, object]] = {
    StoryType.ADD: {
        "approach": "Test page structure and areas where new content should be added",
        "tests": [
            "Verify target page loads successfully",
            "Verify content area exists and is accessible",
            "Verify page structure supports new content",
            "Test responsive behavior of target area",
        ],
    },
    StoryType.MODIFY: {
        "approach": "Test that content has been updated correctly",
        "tests": [
            "Verify page loads successfully",
            "Check for updated content",
            "Verify old content is replaced",
            "Test content formatting and positioning",
        ],
    },
    StoryType.VERIFY: {
        "approach": "Test that existing content is present and correct",
        "tests": [
            "Verify page loads successfully",
            "Check content exists",
            "Verify content is visible",
            "Test content positioning and formatting",
        ],
    },
    StoryType.REMOVE: {
        "approach": "Test that content has been removed",
        "tests": [
            "Verify page loads successfully",
            "Confirm content is not present",
            "Verify page layout is intact",
            "Test no broken elements remain",
        ],
    },
}

ELEMENT_KEYWORDS = (
    (("headline", "title"), UiElement(type="heading", selectors=["h1", "h2", ".headline", ".title"])),
    (("button",), UiElement(type="button", selectors=["button", '[type="button"]', ".btn"])),
    (("hero", "main section"), UiElement(type="hero", selectors=[".hero", "main", ".main-content", "section"])),
    (("navigation", "menu"), UiElement(type="navigation", selectors=["nav", ".navigation", ".menu"])),
)

DEFAULT_ELEMENTS = [
    UiElement(type="heading", selectors=["h1", "h2", ".headline", ".title"]),
    UiElement(type="content", selectors=["main", ".main-content", ".hero"]),
]

QUOTED_TEXT = re.compile(r'"([^"]+)"')


def detect_story_type(text: str) -> StoryType:
    """Classify lower-cased story text; VERIFY wins ties and is the default."""
    text = text.lower()
    if any(keyword in text for keyword in VERIFY_KEYWORDS):
        return StoryType.VERIFY
    if any(pattern.search(text) for pattern in ADD_PATTERNS):
        return StoryType.ADD
    if any(keyword in text for keyword in MODIFY_KEYWORDS):
        return StoryType.MODIFY
    if any(keyword in text for keyword in REMOVE_KEYWORDS):
        return StoryType.REMOVE
    return StoryType.VERIFY


def detect_content_area(text: str) -> str:
    text = text.lower()
    if "homepage" in text or "home page" in text:
        return "homepage"
    for area in ("hero", "header", "footer", "sidebar"):
        if area in text:
            return area
    return "main"


def detect_ui_elements(text: str) -> List[UiElement]:
    text = text.lower()
    return [
        element.model_copy(deep=True)
        for keywords, element in ELEMENT_KEYWORDS
        if any(keyword in text for keyword in keywords)
    ]


def extract_target_texts(story: Story) -> List[str]:
    """Quoted phrases from the title and description, in order."""
    return QUOTED_TEXT.findall(story.title or "") + QUOTED_TEXT.findall(
        story.description or ""
    )


def analyze_story(story: Optional[Story]) -> StoryAnalysis:
    """
    Infer story type and assertion strategy.

    Args:
        story: Story to analyze; None yields the default VERIFY strategy

    Returns:
        StoryAnalysis to pass to classification and regeneration
    """
    if story is None or not story.title:
        logger.warning("Story missing or untitled; using default strategy")
        plan = PLANS[StoryType.VERIFY]
        return StoryAnalysis(
            story_type=StoryType.VERIFY,
            verification_approach=VerificationApproach.STRUCTURAL,
            ui_elements=[element.model_copy() for element in DEFAULT_ELEMENTS],
            approach="Test basic page structure and functionality",
            planned_tests=list(plan["tests"]),
        )

    text = f"{story.title} {story.description or ''}"
    story_type = detect_story_type(text)
    plan = PLANS[story_type]
    analysis = StoryAnalysis(
        story_type=story_type,
        verification_approach=APPROACH_BY_TYPE[story_type],
        ui_elements=detect_ui_elements(text),
        target_texts=extract_target_texts(story),
        content_area=detect_content_area(text),
        approach=str(plan["approach"]),
        planned_tests=list(plan["tests"]),
    )
    logger.debug(
        "Story analyzed",
        extra={
            "story_id": story.id,
            "story_type": analysis.story_type.value,
            "verification_approach": analysis.verification_approach.value,
        },
    )
    return analysis


def _js_string(value: str) -> str:
    """Render a Python string as a single-quoted JavaScript literal."""
    body = json.dumps(value)[1:-1].replace("\\\"", "\"").replace("'", "\\'")
    return f"'{body}'"


_env = Environment(autoescape=False, keep_trailing_newline=True)
_env.filters["js"] = _js_string

STRUCTURAL_TEST_TEMPLATE = """import { test, expect } from '@playwright/test';

test.describe({{ (title ~ ' - Page Structure Verification') | js }}, () => {
  test('Verify page structure supports new content', async ({ page }) => {
    await page.goto({{ url | js }}, { waitUntil: 'domcontentloaded', timeout: 30000 });

    // Dismiss a consent dialog if one is shown
    const consent = page.getByRole('button', { name: /accept|agree|consent|got it|I agree/i }).first();
    if (await consent.isVisible({ timeout: 3000 }).catch(() => false)) {
      await consent.click().catch(() => {});
    }

    await expect(page).toHaveTitle(/.+/);
{% for element in elements %}
    const {{ element.type }}Area = page.locator({{ element.selectors[0] | js }}).first();
    await expect({{ element.type }}Area).toBeVisible({ timeout: 10000 });
{% endfor %}
    const mainContent = page.locator('main, .main-content, .hero, body').first();
    await expect(mainContent).toBeVisible();
  });

  test('Test responsive behavior for new content area', async ({ page }) => {
    await page.goto({{ url | js }}, { waitUntil: 'domcontentloaded', timeout: 30000 });

    const viewports = [
      { width: 1920, height: 1080 },
      { width: 768, height: 1024 },
      { width: 375, height: 667 },
    ];

    for (const viewport of viewports) {
      await page.setViewportSize(viewport);
      const contentArea = page.locator('main, .hero, .main-content, body').first();
      await expect(contentArea).toBeVisible();
    }
  });
});
"""

CONTENT_TEST_TEMPLATE = """import { test, expect } from '@playwright/test';

test.describe({{ (title ~ ' - Content Verification') | js }}, () => {
{% for text in texts %}
  test({{ ('Verify "' ~ text ~ '" content is displayed') | js }}, async ({ page }) => {
    await page.goto({{ url | js }}, { waitUntil: 'domcontentloaded', timeout: 30000 });
    await page.waitForLoadState('networkidle', { timeout: 10000 }).catch(() => {});

    const bodyText = (await page.locator('body').textContent()) || '';
    expect(bodyText.toLowerCase()).toContain({{ text | lower | js }});
  });
{% endfor %}
});
"""

ABSENCE_TEST_TEMPLATE = """import { test, expect } from '@playwright/test';

test.describe({{ (title ~ ' - Removal Verification') | js }}, () => {
  test('Verify page layout is intact', async ({ page }) => {
    await page.goto({{ url | js }}, { waitUntil: 'domcontentloaded', timeout: 30000 });
    await expect(page.locator('body')).toBeVisible();
  });
{% for text in texts %}
  test({{ ('Confirm "' ~ text ~ '" is not present') | js }}, async ({ page }) => {
    await page.goto({{ url | js }}, { waitUntil: 'domcontentloaded', timeout: 30000 });
    await expect(page.getByText({{ text | js }}, { exact: false })).toHaveCount(0);
  });
{% endfor %}
});
"""


def build_structural_test(story: Story, url: str, analysis: StoryAnalysis) -> str:
    """Existence and visibility checks only; never asserts on new content."""
    elements = analysis.ui_elements or DEFAULT_ELEMENTS
    return _env.from_string(STRUCTURAL_TEST_TEMPLATE).render(
        title=story.title or "Page Structure Test",
        url=url,
        elements=elements,
    )


def build_content_test(story: Story, url: str, analysis: StoryAnalysis) -> str:
    texts = analysis.target_texts or [story.title]
    return _env.from_string(CONTENT_TEST_TEMPLATE).render(
        title=story.title or "Content Verification Test",
        url=url,
        texts=texts,
    )


def build_absence_test(story: Story, url: str, analysis: StoryAnalysis) -> str:
    return _env.from_string(ABSENCE_TEST_TEMPLATE).render(
        title=story.title or "Removal Verification Test",
        url=url,
        texts=analysis.target_texts,
    )


def build_test_for_approach(story: Story, url: str, analysis: StoryAnalysis) -> str:
    """Render the template matching the story's verification approach."""
    if analysis.verification_approach == VerificationApproach.ABSENCE:
        return build_absence_test(story, url, analysis)
    if analysis.verification_approach == VerificationApproach.CONTENT and analysis.target_texts:
        return build_content_test(story, url, analysis)
    return build_structural_test(story, url, analysis)
