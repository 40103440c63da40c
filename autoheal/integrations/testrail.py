"""
TestRail REST client.

Cases are scoped to the configured project, suite and section and are
synchronized by exact title match: an existing case with the same title
is updated, otherwise a new one is created.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from autoheal.config.settings import Settings, get_settings
from autoheal.core.types import StoryTestCase
from autoheal.error_handling.exceptions import ConfigurationError, TestRailError

logger = logging.getLogger(__name__)

# TestRail status ids
STATUS_IDS = {
    "passed": 1,
    "skipped": 2,  # blocked
    "timedout": 4,  # retest
    "failed": 5,
    "broken": 5,
}
UNTESTED = 3

PRIORITY_IDS = {
    "highest": 4,
    "critical": 4,
    "high": 3,
    "medium": 2,
    "low": 1,
    "lowest": 1,
}
DEFAULT_PRIORITY = 2

TYPE_AUTOMATED = 1
DEFAULT_ESTIMATE = "5m"


def map_status(status: Optional[str]) -> int:
    """Runner status to TestRail status id; unknown is Untested."""
    return STATUS_IDS.get((status or "").lower(), UNTESTED)


def map_priority(priority: Optional[str]) -> int:
    return PRIORITY_IDS.get((priority or "").lower(), DEFAULT_PRIORITY)


def case_payload(case: StoryTestCase, refs: str = "") -> Dict[str, Any]:
    return {
        "title": case.title,
        "type_id": TYPE_AUTOMATED,
        "priority_id": map_priority(case.priority),
        "estimate": DEFAULT_ESTIMATE,
        "custom_automation_type": 1,
        "custom_steps": case.steps or case.description or "",
        "custom_expected": case.expected_result or "Test passes successfully",
        "custom_preconds": case.preconditions or "",
        "refs": refs,
    }


class TestRailClient:
    """Async client for the TestRail v2 API."""

    __test__ = False

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def host(self) -> str:
        return (self.settings.testrail_host or "").rstrip("/")

    @property
    def configured(self) -> bool:
        return self.settings.testrail_configured

    @property
    def client(self) -> httpx.AsyncClient:
        if not self.configured:
            raise ConfigurationError(
                "TestRail credentials not configured. "
                "Set TESTRAIL_HOST, TESTRAIL_USERNAME, TESTRAIL_API_KEY",
                setting="testrail_host",
            )
        if self._client is None:
            self._client = httpx.AsyncClient(
                auth=(self.settings.testrail_username, self.settings.testrail_api_key),
                headers={"Content-Type": "application/json"},
                timeout=self.settings.testrail_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "TestRailClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def api_url(self, endpoint: str) -> str:
        # TestRail routes live in the query string: index.php?/api/v2/<endpoint>
        return f"{self.host}/index.php?/api/v2/{endpoint.lstrip('/')}"

    async def _request(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self.client.request(method, self.api_url(endpoint), json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TestRailError(
                f"TestRail {endpoint} failed with HTTP {status}",
                status_code=status,
                endpoint=endpoint,
                details={"response": e.response.text[:500]},
                cause=e,
            )
        except httpx.HTTPError as e:
            raise TestRailError(f"TestRail {endpoint} failed: {e}", endpoint=endpoint, cause=e)

        if not response.content:
            return {}
        return response.json()

    def suite_url(self, suite_id: Optional[int] = None, section_id: Optional[int] = None) -> str:
        suite_id = suite_id or self.settings.testrail_suite_id
        section_id = section_id or self.settings.testrail_section_id
        return (
            f"{self.host}/index.php?/suites/view/{suite_id}"
            f"&group_by=cases:section_id&group_id={section_id}"
        )

    async def add_case(self, case: StoryTestCase, refs: str = "", section_id: Optional[int] = None) -> Dict[str, Any]:
        section_id = section_id or self.settings.testrail_section_id
        created = await self._request("POST", f"add_case/{section_id}", case_payload(case, refs))
        logger.info(f"TestRail case created: {created.get('id')} - {case.title}")
        return created

    async def update_case(self, case_id: int, case: StoryTestCase, refs: str = "") -> Dict[str, Any]:
        updated = await self._request("POST", f"update_case/{case_id}", case_payload(case, refs))
        logger.info(f"TestRail case updated: {case_id} - {case.title}")
        return updated

    async def get_cases(self, project_id: Optional[int] = None, suite_id: Optional[int] = None) -> List[Dict[str, Any]]:
        project_id = project_id or self.settings.testrail_project_id
        suite_id = suite_id or self.settings.testrail_suite_id
        data = await self._request("GET", f"get_cases/{project_id}&suite_id={suite_id}")
        # Newer TestRail versions paginate as {"cases": [...]}
        if isinstance(data, dict):
            return list(data.get("cases") or [])
        return list(data or [])

    async def find_case_by_title(
        self,
        title: str,
        section_id: Optional[int] = None,
        project_id: Optional[int] = None,
        suite_id: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """First case whose title matches exactly, optionally within a section."""
        for case in await self.get_cases(project_id, suite_id):
            if case.get("title") != title:
                continue
            if section_id is not None and case.get("section_id") not in (None, section_id):
                continue
            return case
        return None

    async def upsert_case(self, case: StoryTestCase, refs: str = "") -> Tuple[Dict[str, Any], bool]:
        """
        Update the case with the same title or create it.

        Returns:
            The stored case and whether it was newly created
        """
        section_id = self.settings.testrail_section_id
        existing = await self.find_case_by_title(case.title, section_id=section_id)
        if existing:
            return await self.update_case(existing["id"], case, refs), False
        return await self.add_case(case, refs, section_id=section_id), True

    async def push_cases(self, cases: List[StoryTestCase], story_id: str) -> Dict[str, Any]:
        """
        Upsert a batch of cases linked to a story.

        Per-case failures are collected; the batch fails only when no
        case could be stored.
        """
        created = 0
        updated = 0
        errors: List[Dict[str, Any]] = []

        for case in cases:
            try:
                _, is_new = await self.upsert_case(case, refs=story_id)
            except TestRailError as e:
                logger.warning(f"Failed to push '{case.title}': {e.message}")
                errors.append({"title": case.title, "error": e.message})
                continue
            if is_new:
                created += 1
            else:
                updated += 1

        if cases and not created and not updated:
            raise TestRailError(
                f"None of {len(cases)} test case(s) could be pushed",
                details={"errors": errors},
            )

        logger.info(
            f"TestRail sync complete: {created} created, {updated} updated",
            extra={"story_id": story_id, "created": created, "updated": updated},
        )
        return {
            "created": created,
            "updated": updated,
            "errors": errors,
            "testrailUrl": self.suite_url(),
        }

    async def get_sections(self, project_id: Optional[int] = None, suite_id: Optional[int] = None) -> List[Dict[str, Any]]:
        project_id = project_id or self.settings.testrail_project_id
        suite_id = suite_id or self.settings.testrail_suite_id
        data = await self._request("GET", f"get_sections/{project_id}&suite_id={suite_id}")
        if isinstance(data, dict):
            return list(data.get("sections") or [])
        return list(data or [])

    async def add_section(
        self,
        name: str,
        description: str = "",
        parent_id: Optional[int] = None,
        project_id: Optional[int] = None,
        suite_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        project_id = project_id or self.settings.testrail_project_id
        payload: Dict[str, Any] = {
            "name": name,
            "description": description,
            "suite_id": suite_id or self.settings.testrail_suite_id,
        }
        if parent_id is not None:
            payload["parent_id"] = parent_id
        return await self._request("POST", f"add_section/{project_id}", payload)

    async def add_run(
        self,
        name: str,
        case_ids: Optional[List[int]] = None,
        project_id: Optional[int] = None,
        suite_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        project_id = project_id or self.settings.testrail_project_id
        case_ids = case_ids or []
        run = await self._request(
            "POST",
            f"add_run/{project_id}",
            {
                "suite_id": suite_id or self.settings.testrail_suite_id,
                "name": name,
                "include_all": not case_ids,
                "case_ids": case_ids,
            },
        )
        logger.info(f"TestRail run created: {run.get('id')} - {name}")
        return run

    async def add_result_for_case(
        self,
        run_id: int,
        case_id: int,
        status: str,
        comment: str = "",
        elapsed: str = "",
        defects: str = "",
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"add_result_for_case/{run_id}/{case_id}",
            {
                "status_id": map_status(status),
                "comment": comment,
                "elapsed": elapsed,
                "defects": defects,
            },
        )

    async def close_run(self, run_id: int) -> Dict[str, Any]:
        closed = await self._request("POST", f"close_run/{run_id}")
        logger.info(f"TestRail run closed: {run_id}")
        return closed

    async def test_connection(self) -> Dict[str, Any]:
        project_id = self.settings.testrail_project_id
        project = await self._request("GET", f"get_project/{project_id}")
        return {"connected": True, "project": project.get("name"), "projectId": project_id}
