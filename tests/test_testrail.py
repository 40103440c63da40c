"""
Tests for the TestRail client.
"""

import json

import httpx
import pytest

from autoheal.config.settings import Settings
from autoheal.core.types import StoryTestCase
from autoheal.error_handling.exceptions import ConfigurationError, TestRailError
from autoheal.integrations.testrail import (
    TestRailClient,
    case_payload,
    map_priority,
    map_status,
)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        testrail_host="https://tr.example.org/",
        testrail_username="qa@example.org",
        testrail_api_key="key",
        testrail_project_id=7,
        testrail_suite_id=14,
        testrail_section_id=45,
    )


def route(request: httpx.Request) -> str:
    return str(request.url).split("index.php?", 1)[1]


class FakeTestRail:
    """Records calls and answers from a route table."""

    def __init__(self, cases=None, failing=()):
        self.cases = cases if cases is not None else []
        self.failing = set(failing)
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = route(request)
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))

        if path.startswith("/api/v2/get_cases/"):
            return httpx.Response(200, json={"offset": 0, "cases": self.cases})
        if body and body.get("title") in self.failing:
            return httpx.Response(400, json={"error": "Field :custom_steps is invalid"})
        if path.startswith("/api/v2/add_case/"):
            return httpx.Response(200, json={"id": 100 + len(self.calls), **body})
        if path.startswith("/api/v2/update_case/"):
            return httpx.Response(200, json={"id": int(path.rsplit("/", 1)[1]), **body})
        return httpx.Response(404, text="unknown route")


class TestMappings:
    """Test status and priority tables."""

    def test_status(self):
        assert map_status("passed") == 1
        assert map_status("skipped") == 2
        assert map_status("timedout") == 4
        assert map_status("FAILED") == 5
        assert map_status("broken") == 5
        assert map_status("weird") == 3
        assert map_status(None) == 3

    def test_priority(self):
        assert map_priority("Highest") == 4
        assert map_priority("critical") == 4
        assert map_priority("High") == 3
        assert map_priority("medium") == 2
        assert map_priority("Low") == 1
        assert map_priority(None) == 2

    def test_case_payload(self):
        case = StoryTestCase(
            title="Banner visible",
            steps="1. Open homepage",
            expected_result="Banner shows",
            preconditions="Logged out",
            priority="High",
        )

        payload = case_payload(case, refs="QA-1")

        assert payload == {
            "title": "Banner visible",
            "type_id": 1,
            "priority_id": 3,
            "estimate": "5m",
            "custom_automation_type": 1,
            "custom_steps": "1. Open homepage",
            "custom_expected": "Banner shows",
            "custom_preconds": "Logged out",
            "refs": "QA-1",
        }

    def test_case_payload_falls_back_to_description(self):
        payload = case_payload(StoryTestCase(title="T", description="Do the thing"))

        assert payload["custom_steps"] == "Do the thing"


class TestTestRailClient:
    """Test REST calls against a mock transport."""

    def test_api_url_keeps_query_routing(self, settings):
        client = TestRailClient(settings)

        assert client.api_url("get_cases/7&suite_id=14") == (
            "https://tr.example.org/index.php?/api/v2/get_cases/7&suite_id=14"
        )
        assert client.suite_url() == (
            "https://tr.example.org/index.php?/suites/view/14&group_by=cases:section_id&group_id=45"
        )

    @pytest.mark.asyncio
    async def test_push_cases_upserts_by_title(self, settings):
        fake = FakeTestRail(cases=[{"id": 11, "title": "Existing", "section_id": 45}])
        cases = [StoryTestCase(id=1, title="Existing"), StoryTestCase(id=2, title="New")]

        async with TestRailClient(settings, transport=httpx.MockTransport(fake)) as testrail:
            summary = await testrail.push_cases(cases, "QA-1")

        assert summary["created"] == 1
        assert summary["updated"] == 1
        assert summary["errors"] == []
        assert summary["testrailUrl"].endswith("/suites/view/14&group_by=cases:section_id&group_id=45")

        writes = [(method, path) for method, path, _ in fake.calls if "get_cases" not in path]
        assert writes == [("POST", "/api/v2/update_case/11"), ("POST", "/api/v2/add_case/45")]
        assert all(body["refs"] == "QA-1" for _, path, body in fake.calls if body)

    @pytest.mark.asyncio
    async def test_case_in_other_section_is_not_matched(self, settings):
        fake = FakeTestRail(cases=[{"id": 11, "title": "Existing", "section_id": 99}])

        async with TestRailClient(settings, transport=httpx.MockTransport(fake)) as testrail:
            _, created = await testrail.upsert_case(StoryTestCase(title="Existing"), refs="QA-1")

        assert created

    @pytest.mark.asyncio
    async def test_partial_failure_collected(self, settings):
        fake = FakeTestRail(failing={"Bad"})
        cases = [StoryTestCase(title="Good"), StoryTestCase(title="Bad")]

        async with TestRailClient(settings, transport=httpx.MockTransport(fake)) as testrail:
            summary = await testrail.push_cases(cases, "QA-1")

        assert summary["created"] == 1
        assert summary["errors"] == [
            {"title": "Bad", "error": "TestRail add_case/45 failed with HTTP 400"}
        ]

    @pytest.mark.asyncio
    async def test_total_failure_raises(self, settings):
        fake = FakeTestRail(failing={"Bad"})

        async with TestRailClient(settings, transport=httpx.MockTransport(fake)) as testrail:
            with pytest.raises(TestRailError) as exc_info:
                await testrail.push_cases([StoryTestCase(title="Bad")], "QA-1")

        assert len(exc_info.value.details["errors"]) == 1

    @pytest.mark.asyncio
    async def test_get_cases_accepts_plain_list(self, settings):
        def handler(request):
            assert route(request) == "/api/v2/get_cases/7&suite_id=14"
            return httpx.Response(200, json=[{"id": 1, "title": "A"}])

        async with TestRailClient(settings, transport=httpx.MockTransport(handler)) as testrail:
            cases = await testrail.get_cases()

        assert cases == [{"id": 1, "title": "A"}]

    @pytest.mark.asyncio
    async def test_add_result_maps_status(self, settings):
        captured = {}

        def handler(request):
            captured["path"] = route(request)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": 1})

        async with TestRailClient(settings, transport=httpx.MockTransport(handler)) as testrail:
            await testrail.add_result_for_case(3, 11, "failed", comment="selector timed out", elapsed="12s")

        assert captured["path"] == "/api/v2/add_result_for_case/3/11"
        assert captured["body"]["status_id"] == 5
        assert captured["body"]["elapsed"] == "12s"

    @pytest.mark.asyncio
    async def test_runs_and_sections(self, settings):
        calls = []

        def handler(request):
            body = json.loads(request.content) if request.content else None
            calls.append((route(request), body))
            return httpx.Response(200, json={"id": 9, "name": "x"})

        async with TestRailClient(settings, transport=httpx.MockTransport(handler)) as testrail:
            await testrail.add_section("QA-1", description="Generated")
            await testrail.add_run("QA-1 run", case_ids=[11, 12])
            await testrail.close_run(9)

        assert calls[0] == ("/api/v2/add_section/7", {"name": "QA-1", "description": "Generated", "suite_id": 14})
        assert calls[1][1]["include_all"] is False
        assert calls[1][1]["case_ids"] == [11, 12]
        assert calls[2] == ("/api/v2/close_run/9", None)

    @pytest.mark.asyncio
    async def test_connection(self, settings):
        def handler(request):
            return httpx.Response(200, json={"id": 7, "name": "Web"})

        async with TestRailClient(settings, transport=httpx.MockTransport(handler)) as testrail:
            result = await testrail.test_connection()

        assert result == {"connected": True, "project": "Web", "projectId": 7}

    def test_unconfigured_client(self):
        testrail = TestRailClient(
            Settings(_env_file=None, testrail_host="", testrail_username="", testrail_api_key="")
        )

        assert not testrail.configured
        with pytest.raises(ConfigurationError):
            testrail.client
