"""
Tests for the Jira client.
"""

import json

import httpx
import pytest

from autoheal.config.settings import Settings
from autoheal.core.types import ExecutionResult, StoryDraft
from autoheal.error_handling.exceptions import ConfigurationError, JiraError
from autoheal.integrations.jira import (
    ACCEPTANCE_HEADING,
    SCENARIO_HEADING,
    JiraClient,
    adf_to_text,
    adf_urls,
    draft_to_adf,
    extract_list_section,
)


def text(value, marks=None):
    node = {"type": "text", "text": value}
    if marks:
        node["marks"] = marks
    return node


def paragraph(*nodes):
    return {"type": "paragraph", "content": list(nodes)}


def list_block(kind, *items):
    return {
        "type": kind,
        "content": [{"type": "listItem", "content": [paragraph(text(item))]} for item in items],
    }


DESCRIPTION_BLOCKS = [
    paragraph(
        text("Add a banner on "),
        {"type": "inlineCard", "attrs": {"url": "https://shop.example.org/home"}},
    ),
    {"type": "heading", "attrs": {"level": 3}, "content": [text("Acceptance Criteria")]},
    {
        "type": "bulletList",
        "content": [
            {"type": "listItem", "content": [paragraph(text("Banner is visible"))]},
            {
                "type": "listItem",
                "content": [
                    paragraph(
                        text("Link "),
                        text("opens deals", marks=[{"type": "link", "attrs": {"href": "https://shop.example.org/deals"}}]),
                    )
                ],
            },
        ],
    },
    {"type": "heading", "attrs": {"level": 3}, "content": [text("Test Scenarios")]},
    list_block("orderedList", "Open homepage"),
]

ISSUE = {
    "key": "QA-1",
    "fields": {
        "summary": "Add promo banner",
        "description": {"type": "doc", "version": 1, "content": DESCRIPTION_BLOCKS},
        "issuetype": {"name": "Story"},
        "status": {"name": "In Progress"},
        "priority": None,
        "assignee": None,
        "labels": ["web"],
    },
}


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        jira_host="https://acme.atlassian.net/",
        jira_email="qa@acme.test",
        jira_api_token="token",
        jira_project_key="QA",
    )


def client_for(settings, handler):
    return JiraClient(settings, transport=httpx.MockTransport(handler))


class TestAdf:
    """Test Atlassian Document Format helpers."""

    def test_adf_to_text(self):
        flattened = adf_to_text(DESCRIPTION_BLOCKS)

        assert flattened.startswith("Add a banner on https://shop.example.org/home Acceptance Criteria")
        assert "• Banner is visible • Link opens deals" in flattened
        assert "  " not in flattened

    def test_adf_to_text_rejects_non_list(self):
        assert adf_to_text(None) == ""
        assert adf_to_text("plain") == ""

    def test_adf_urls_in_order_without_duplicates(self):
        blocks = DESCRIPTION_BLOCKS + [
            paragraph({"type": "inlineCard", "attrs": {"url": "https://shop.example.org/home"}})
        ]

        assert adf_urls(blocks) == [
            "https://shop.example.org/home",
            "https://shop.example.org/deals",
        ]

    def test_sections(self):
        assert extract_list_section(DESCRIPTION_BLOCKS, ACCEPTANCE_HEADING, SCENARIO_HEADING) == [
            "Banner is visible",
            "Link opens deals",
        ]
        assert extract_list_section(DESCRIPTION_BLOCKS, SCENARIO_HEADING, ACCEPTANCE_HEADING) == [
            "Open homepage"
        ]

    def test_draft_to_adf(self):
        doc = draft_to_adf(StoryDraft(title="T", description="Desc", acceptance_criteria=["One", "Two"]))

        assert doc["type"] == "doc"
        assert extract_list_section(doc["content"], ACCEPTANCE_HEADING) == ["One", "Two"]
        assert adf_to_text(doc["content"][:1]) == "Desc"


class TestJiraClient:
    """Test REST calls against a mock transport."""

    @pytest.mark.asyncio
    async def test_fetch_story(self, settings):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["fields"] = request.url.params["fields"]
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=ISSUE)

        async with client_for(settings, handler) as jira:
            story = await jira.fetch_story("QA-1")

        assert seen["path"] == "/rest/api/3/issue/QA-1"
        assert "summary" in seen["fields"]
        assert seen["auth"].startswith("Basic ")
        assert story.id == "QA-1"
        assert story.title == "Add promo banner"
        assert story.acceptance_criteria == ["Banner is visible", "Link opens deals"]
        assert story.test_scenarios == ["Open homepage"]
        assert story.extracted_urls == ["https://shop.example.org/home", "https://shop.example.org/deals"]
        assert story.status == "In Progress"
        assert story.issue_type == "Story"
        assert story.priority == "Medium"
        assert story.assignee == "Unassigned"
        assert story.labels == ["web"]
        assert story.url == "https://acme.atlassian.net/browse/QA-1"

    @pytest.mark.asyncio
    async def test_plain_text_description(self, settings):
        issue = {"key": "QA-2", "fields": {"summary": "S", "description": "Legacy text"}}

        async with client_for(settings, lambda request: httpx.Response(200, json=issue)) as jira:
            story = await jira.fetch_story("QA-2")

        assert story.description == "Legacy text"
        assert story.acceptance_criteria == []

    @pytest.mark.asyncio
    async def test_http_error_maps_to_jira_error(self, settings):
        def handler(request):
            return httpx.Response(404, text="Issue does not exist")

        async with client_for(settings, handler) as jira:
            with pytest.raises(JiraError) as exc_info:
                await jira.fetch_story("QA-404")

        error = exc_info.value
        assert error.status_code == 404
        assert error.endpoint == "/issue/QA-404"
        assert error.details["response"] == "Issue does not exist"
        assert error.details["service"] == "jira"

    @pytest.mark.asyncio
    async def test_network_error_maps_to_jira_error(self, settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with client_for(settings, handler) as jira:
            with pytest.raises(JiraError) as exc_info:
                await jira.test_connection()

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_create_story(self, settings):
        captured = {}

        def handler(request):
            captured["method"] = request.method
            captured["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "10001", "key": "QA-9"})

        draft = StoryDraft(title="Promo banner", description="Show a banner", acceptance_criteria=["Visible"])
        async with client_for(settings, handler) as jira:
            story = await jira.create_story(draft)

        fields = captured["body"]["fields"]
        assert captured["method"] == "POST"
        assert fields["project"] == {"key": "QA"}
        assert fields["summary"] == "Promo banner"
        assert fields["issuetype"] == {"name": "Story"}
        assert fields["description"]["type"] == "doc"
        assert story.id == "QA-9"
        assert story.status == "To Do"
        assert story.acceptance_criteria == ["Visible"]

    @pytest.mark.asyncio
    async def test_update_test_results_posts_comment(self, settings):
        captured = {}

        def handler(request):
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "5"})

        async with client_for(settings, handler) as jira:
            await jira.update_test_results("QA-1", ExecutionResult(passed=2, duration_seconds=1.5))

        assert captured["path"] == "/rest/api/3/issue/QA-1/comment"
        paragraph_text = captured["body"]["body"]["content"][0]["content"][0]["text"]
        assert "Test: Automated Test Suite - QA-1" in paragraph_text
        assert "Status: PASSED" in paragraph_text

    @pytest.mark.asyncio
    async def test_search_and_connection(self, settings):
        def handler(request):
            if request.url.path.endswith("/search"):
                assert json.loads(request.content)["maxResults"] == 10
                return httpx.Response(200, json={"issues": [{"key": "QA-1"}]})
            return httpx.Response(200, json={"displayName": "QA Bot", "emailAddress": "qa@acme.test"})

        async with client_for(settings, handler) as jira:
            issues = await jira.search_stories("project = QA", max_results=10)
            me = await jira.test_connection()

        assert issues == [{"key": "QA-1"}]
        assert me == {"connected": True, "displayName": "QA Bot", "emailAddress": "qa@acme.test"}

    def test_unconfigured_client(self):
        jira = JiraClient(Settings(_env_file=None, jira_host="", jira_email="", jira_api_token=""))

        assert not jira.configured
        with pytest.raises(ConfigurationError):
            jira.client
