"""
Tests for target URL and credential resolution.
"""

import pytest

from autoheal.config.settings import Settings
from autoheal.core.types import Story, StoryTestCase
from autoheal.healing.target_resolution import (
    RankedResolver,
    RankedStrategy,
    clean_url,
    extract_best_url,
    extract_credentials,
    extract_domains,
    extract_urls,
    is_placeholder,
    resolve_target_url,
)


@pytest.fixture
def settings():
    return Settings(_env_file=None)


class TestUrlCleaning:
    """Test URL cleanup helpers."""

    def test_trailing_punctuation(self):
        assert clean_url("https://shop.example.org/page).") == "https://shop.example.org/page"

    def test_trailing_slash_stripped(self):
        assert clean_url("https://shop.example.org/") == "https://shop.example.org"

    def test_concatenated_words(self):
        assert clean_url("https://shop.example.org/deals/I") == "https://shop.example.org/deals"
        assert clean_url("https://shop.example.org/Checkout") == "https://shop.example.org"

    def test_extract_urls_from_prose(self):
        text = "Visit https://shop.example.org/deals, then pay at https://pay.example.org."

        assert extract_urls(text) == [
            "https://shop.example.org/deals",
            "https://pay.example.org",
        ]

    def test_extract_bare_domains(self):
        assert extract_domains("Open www.amazon.com and github.com") == [
            "https://www.amazon.com",
            "https://www.github.com",
        ]

    def test_subdomains_keep_their_host(self):
        assert extract_domains("Open app.saucedemo.com or shop.example.org/cart") == [
            "https://app.saucedemo.com",
            "https://shop.example.org/cart",
        ]

    def test_email_is_not_a_domain(self):
        assert extract_domains("Contact qa@shop.example.org") == []

    def test_placeholder_ignores_www(self):
        assert is_placeholder("https://www.example.com/x", "https://example.com")
        assert not is_placeholder("https://shop.example.org", "https://example.com")
        assert not is_placeholder("", "https://example.com")


class TestResolveTargetUrl:
    """Test strategy precedence."""

    def test_extracted_urls_win(self, settings):
        story = Story(
            id="QA-1",
            extracted_urls=["https://shop.example.org/deals."],
            description="Compare with www.amazon.com",
        )

        resolution = resolve_target_url(story, settings=settings)

        assert resolution.chosen == "https://shop.example.org/deals"
        assert resolution.chosen_source == "extracted_urls"
        assert not resolution.is_placeholder
        sources = [c.source for c in resolution.candidates]
        assert sources == ["extracted_urls", "story_text", "brand_keyword"]

    def test_story_text_subdomain(self, settings):
        story = Story(id="QA-9", description="Open app.saucedemo.com and log in")

        resolution = resolve_target_url(story, settings=settings)

        assert resolution.chosen == "https://app.saucedemo.com"
        assert resolution.chosen_source == "story_text"

    def test_id_prefix_convention(self, settings):
        resolution = resolve_target_url(Story(id="ED-42", title="Update banner"), settings=settings)

        assert resolution.chosen == "https://www.endpointclinical.com"
        assert resolution.chosen_source == "id_prefix"

    def test_artifact_navigation(self, settings):
        artifact = "await page.goto('https://shop.example.org/', { timeout: 30000 });"

        resolution = resolve_target_url(Story(id="QA-3"), artifact_text=artifact, settings=settings)

        assert resolution.chosen == "https://shop.example.org"
        assert resolution.chosen_source == "artifact_navigation"

    def test_test_case_text(self, settings):
        cases = [StoryTestCase(title="Open site", steps="Navigate to shop.example.org")]

        resolution = resolve_target_url(Story(id="QA-4"), test_cases=cases, settings=settings)

        assert resolution.chosen == "https://shop.example.org"
        assert resolution.chosen_source == "test_case_text"

    def test_brand_keyword(self, settings):
        resolution = resolve_target_url(
            Story(id="QA-5", title="Checkout on saucedemo"), settings=settings
        )

        assert resolution.chosen == "https://www.saucedemo.com"
        assert resolution.chosen_source == "brand_keyword"

    def test_placeholder_rejected_then_fallback(self, settings, caplog):
        story = Story(id="QA-6", description="Go to https://example.com/page first")

        resolution = resolve_target_url(story, settings=settings)

        assert resolution.is_placeholder
        assert resolution.chosen == "https://example.com"
        assert resolution.chosen_source == "placeholder"
        assert resolution.candidates == []
        assert "falling back to placeholder" in caplog.text

    def test_custom_prefix_table(self):
        settings = Settings(_env_file=None, id_prefix_domains={"shop": "https://shop.example.org"})

        resolution = resolve_target_url(Story(id="SHOP-7"), settings=settings)

        assert resolution.chosen == "https://shop.example.org"

    def test_extract_best_url(self):
        story = Story(id="QA-8", title="See https://a.example.org", description="or https://b.example.org")

        assert extract_best_url(story) == "https://b.example.org"
        assert extract_best_url(Story(id="QA-9")) is None


class TestRankedResolver:
    """Test the generic resolver."""

    def test_first_accepted_wins_and_all_candidates_kept(self):
        resolver = RankedResolver(
            "numbers",
            [
                RankedStrategy("low", lambda ctx: [1, 2]),
                RankedStrategy("high", lambda ctx: [10]),
            ],
            accept=lambda value: value != 1,
        )

        ranked = resolver.resolve(None)

        assert ranked.chosen == 2
        assert ranked.source == "low"
        assert ranked.candidates == [("low", 2), ("high", 10)]


class TestCredentials:
    """Test login pair extraction."""

    def test_username_and_password(self):
        story = Story(
            id="QA-10",
            title="Login flow",
            description="Use username: standard_user and password: secret_sauce",
        )

        credentials = extract_credentials(story)

        assert credentials.username == "standard_user"
        assert credentials.password == "secret_sauce"

    def test_quoted_values(self):
        story = Story(id="QA-11", title="Login", acceptance_criteria=["user 'alice', pass 'wonder1'"])

        credentials = extract_credentials(story)

        assert credentials.username == "alice"
        assert credentials.password == "wonder1"

    def test_missing_password(self):
        assert extract_credentials(Story(id="QA-12", title="username: bob")) is None

    def test_no_story(self):
        assert extract_credentials(None) is None
