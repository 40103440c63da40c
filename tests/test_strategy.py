"""
Tests for story analysis and the deterministic test templates.
"""

import pytest

from autoheal.core.types import Story, StoryType, VerificationApproach
from autoheal.healing.strategy import (
    analyze_story,
    build_absence_test,
    build_content_test,
    build_structural_test,
    build_test_for_approach,
    detect_content_area,
    detect_story_type,
    extract_target_texts,
)
from autoheal.healing.regenerator import is_runnable_test


class TestStoryType:
    """Test story type detection."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Add a banner to the homepage", StoryType.ADD),
            ("Create new promo tile", StoryType.ADD),
            ("Update footer links", StoryType.MODIFY),
            ("Remove the legacy sidebar", StoryType.REMOVE),
            ("Verify the checkout button", StoryType.VERIFY),
            ("Homepage banner", StoryType.VERIFY),
        ],
    )
    def test_detects_type(self, text, expected):
        assert detect_story_type(text) == expected

    def test_verify_keywords_win_over_add(self):
        assert detect_story_type("Add a banner and ensure it renders") == StoryType.VERIFY

    def test_add_requires_whole_word(self):
        assert detect_story_type("Address details on the profile page") == StoryType.VERIFY

    def test_content_area(self):
        assert detect_content_area("Banner on the Home Page") == "homepage"
        assert detect_content_area("Links in the footer") == "footer"
        assert detect_content_area("Something else") == "main"


class TestAnalyzeStory:
    """Test the analysis computed once per story."""

    def test_add_story_is_structural(self):
        story = Story(id="ED-1", title='Add "Summer Sale" banner to hero', description="")

        analysis = analyze_story(story)

        assert analysis.story_type == StoryType.ADD
        assert analysis.verification_approach == VerificationApproach.STRUCTURAL
        assert analysis.target_texts == ["Summer Sale"]
        assert analysis.content_area == "hero"
        assert [e.type for e in analysis.ui_elements] == ["hero"]
        assert len(analysis.planned_tests) == 4

    def test_remove_story_is_absence(self):
        story = Story(id="ED-2", title='Remove "Old Offer" text')

        analysis = analyze_story(story)

        assert analysis.story_type == StoryType.REMOVE
        assert analysis.verification_approach == VerificationApproach.ABSENCE

    def test_missing_story_uses_default(self):
        analysis = analyze_story(None)

        assert analysis.story_type == StoryType.VERIFY
        assert analysis.verification_approach == VerificationApproach.STRUCTURAL
        assert analysis.ui_elements

    def test_untitled_story_uses_default(self):
        analysis = analyze_story(Story(id="ED-3"))

        assert analysis.verification_approach == VerificationApproach.STRUCTURAL

    def test_target_texts_from_title_and_description(self):
        story = Story(id="ED-4", title='Show "Deals"', description='Also "Free shipping" copy')

        assert extract_target_texts(story) == ["Deals", "Free shipping"]


class TestTemplates:
    """Test the rendered Playwright templates."""

    def test_structural_template_never_asserts_target_text(self):
        story = Story(id="ED-1", title='Add "Summer Sale" banner to hero')
        analysis = analyze_story(story)

        source = build_structural_test(story, "https://shop.example.org", analysis)

        assert is_runnable_test(source)
        assert "page.goto('https://shop.example.org'" in source
        body = source.split("test.describe", 1)[1].split("\n", 1)[1]
        assert "Summer Sale" not in body
        assert "toContain" not in source
        assert "page.locator('.hero').first()" in source

    def test_content_template_checks_each_text(self):
        story = Story(id="ED-5", title='Update "Deals" and "Free Shipping" labels')
        analysis = analyze_story(story)

        source = build_content_test(story, "https://shop.example.org", analysis)

        assert is_runnable_test(source)
        assert "toContain('deals')" in source
        assert "toContain('free shipping')" in source

    def test_absence_template_counts_zero(self):
        story = Story(id="ED-6", title='Remove "Old Offer" text')
        analysis = analyze_story(story)

        source = build_absence_test(story, "https://shop.example.org", analysis)

        assert "getByText('Old Offer', { exact: false })).toHaveCount(0)" in source

    def test_quotes_escaped_in_js_strings(self):
        story = Story(id="ED-7", title="Add O'Brien's banner")
        analysis = analyze_story(story)

        source = build_structural_test(story, "https://shop.example.org", analysis)

        assert "O\\'Brien\\'s banner - Page Structure Verification" in source

    def test_dispatch_by_approach(self):
        url = "https://shop.example.org"
        remove = Story(id="ED-8", title='Remove "Promo" strip')
        modify_without_texts = Story(id="ED-9", title="Update header layout")

        assert "toHaveCount(0)" in build_test_for_approach(remove, url, analyze_story(remove))
        assert "Page Structure Verification" in build_test_for_approach(
            modify_without_texts, url, analyze_story(modify_without_texts)
        )
