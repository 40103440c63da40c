"""
Jira Cloud REST client.

Fetches stories (walking the Atlassian Document Format description into
plain text, acceptance criteria, test scenarios and linked URLs), creates
stories from drafts and posts execution results as comments.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

import httpx

from autoheal.config.settings import Settings, get_settings
from autoheal.core.types import ExecutionResult, Story, StoryDraft
from autoheal.error_handling.exceptions import ConfigurationError, JiraError
from autoheal.monitoring.reporter import ResultReporter

logger = logging.getLogger(__name__)

ISSUE_FIELDS = "summary,description,issuetype,status,priority,assignee,labels"

ACCEPTANCE_HEADING = re.compile(r"acceptance criteria", re.IGNORECASE)
SCENARIO_HEADING = re.compile(r"test scenarios|test cases", re.IGNORECASE)

LIST_BLOCKS = ("bulletList", "orderedList")
HEADING_BLOCKS = ("paragraph", "heading")


def _render(nodes: Iterable[Dict[str, Any]]) -> str:
    parts: List[str] = []
    for node in nodes:
        node_type = node.get("type")
        if node_type == "text":
            parts.append(node.get("text", ""))
        elif node_type == "hardBreak":
            parts.append("\n")
        elif node_type in ("inlineCard", "blockCard"):
            url = (node.get("attrs") or {}).get("url")
            if url:
                parts.append(f" {url} ")
        elif node_type == "listItem":
            parts.append("• " + _render(node.get("content") or []) + "\n")
        elif node_type in ("paragraph", "heading") or node_type in LIST_BLOCKS:
            parts.append("\n" + _render(node.get("content") or []) + "\n")
        else:
            parts.append(_render(node.get("content") or []))
    return "".join(parts)


def adf_to_text(content: Optional[List[Dict[str, Any]]]) -> str:
    """Flatten ADF nodes to single-spaced plain text."""
    if not isinstance(content, list):
        return ""
    return re.sub(r"\s+", " ", _render(content)).strip()


def adf_urls(content: Optional[List[Dict[str, Any]]]) -> List[str]:
    """URLs from inline cards and link marks, in document order."""
    urls: List[str] = []

    def walk(nodes: Iterable[Dict[str, Any]]) -> None:
        for node in nodes:
            attrs = node.get("attrs") or {}
            if node.get("type") in ("inlineCard", "blockCard") and attrs.get("url"):
                urls.append(attrs["url"])
            for mark in node.get("marks") or []:
                href = (mark.get("attrs") or {}).get("href")
                if mark.get("type") == "link" and href:
                    urls.append(href)
            walk(node.get("content") or [])

    if isinstance(content, list):
        walk(content)
    return list(dict.fromkeys(urls))


def extract_list_section(
    blocks: Optional[List[Dict[str, Any]]],
    start: "re.Pattern[str]",
    stop: Optional["re.Pattern[str]"] = None,
) -> List[str]:
    """
    Collect list items that follow a heading matching ``start``.

    The section opens at a paragraph or heading whose text matches
    ``start`` and closes at one matching ``stop``.
    """
    items: List[str] = []
    inside = False

    for block in blocks or []:
        block_type = block.get("type")

        if block_type in HEADING_BLOCKS:
            text = adf_to_text([block])
            if start.search(text):
                inside = True
                continue
            if stop is not None and stop.search(text):
                inside = False

        if inside and block_type in LIST_BLOCKS:
            for item in block.get("content") or []:
                text = adf_to_text(item.get("content") or [])
                if text:
                    items.append(text)

    return items


def adf_paragraph(text: str) -> Dict[str, Any]:
    return {"type": "paragraph", "content": [{"type": "text", "text": text}]}


def adf_document(*blocks: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "doc", "version": 1, "content": list(blocks)}


def draft_to_adf(draft: StoryDraft) -> Dict[str, Any]:
    """Description paragraph, criteria heading and bullet list."""
    return adf_document(
        adf_paragraph(draft.description),
        {
            "type": "heading",
            "attrs": {"level": 3},
            "content": [{"type": "text", "text": "Acceptance Criteria"}],
        },
        {
            "type": "bulletList",
            "content": [
                {"type": "listItem", "content": [adf_paragraph(criterion)]}
                for criterion in draft.acceptance_criteria
            ],
        },
    )


class JiraClient:
    """Async client for the Jira Cloud v3 REST API."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.reporter = ResultReporter()

    @property
    def host(self) -> str:
        return (self.settings.jira_host or "").rstrip("/")

    @property
    def configured(self) -> bool:
        return self.settings.jira_configured

    @property
    def client(self) -> httpx.AsyncClient:
        if not self.configured:
            raise ConfigurationError(
                "Jira credentials not configured. Set JIRA_HOST, JIRA_EMAIL, JIRA_API_TOKEN",
                setting="jira_host",
            )
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.host}/rest/api/3",
                auth=(self.settings.jira_email, self.settings.jira_api_token),
                headers={"Accept": "application/json", "Content-Type": "application/json"},
                timeout=self.settings.jira_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "JiraClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise JiraError(
                f"Jira {method} {path} failed with HTTP {status}",
                status_code=status,
                endpoint=path,
                details={"response": e.response.text[:500]},
                cause=e,
            )
        except httpx.HTTPError as e:
            raise JiraError(
                f"Jira {method} {path} failed: {e}",
                endpoint=path,
                cause=e,
            )

        if not response.content:
            return {}
        return response.json()

    def browse_url(self, key: str) -> str:
        return f"{self.host}/browse/{key}"

    def parse_issue(self, issue: Dict[str, Any]) -> Story:
        """Map a raw issue payload to a Story."""
        fields = issue.get("fields") or {}
        description = fields.get("description")

        if isinstance(description, dict):
            blocks = description.get("content") or []
            text = adf_to_text(blocks)
        else:
            blocks = []
            text = description or ""

        key = issue.get("key", "")
        return Story(
            id=key,
            title=fields.get("summary") or "",
            description=text,
            acceptance_criteria=extract_list_section(blocks, ACCEPTANCE_HEADING, SCENARIO_HEADING),
            test_scenarios=extract_list_section(blocks, SCENARIO_HEADING, ACCEPTANCE_HEADING),
            extracted_urls=adf_urls(blocks),
            status=(fields.get("status") or {}).get("name"),
            issue_type=(fields.get("issuetype") or {}).get("name"),
            priority=(fields.get("priority") or {}).get("name") or "Medium",
            labels=list(fields.get("labels") or []),
            assignee=(fields.get("assignee") or {}).get("displayName") or "Unassigned",
            url=self.browse_url(key) if key else None,
        )

    async def fetch_story(self, key: str) -> Story:
        """
        Fetch a story by key.

        Args:
            key: Issue key, e.g. ED-42

        Returns:
            Parsed story
        """
        issue = await self._request("GET", f"/issue/{key}", params={"fields": ISSUE_FIELDS})
        story = self.parse_issue(issue)
        logger.info(
            f"Fetched Jira story {key}: {story.title}",
            extra={
                "story_id": key,
                "status": story.status,
                "criteria": len(story.acceptance_criteria),
                "urls": len(story.extracted_urls),
            },
        )
        return story

    async def create_story(self, draft: StoryDraft, project_key: Optional[str] = None) -> Story:
        payload = {
            "fields": {
                "project": {"key": project_key or self.settings.jira_project_key},
                "summary": draft.title,
                "description": draft_to_adf(draft),
                "issuetype": {"name": "Story"},
            }
        }
        created = await self._request("POST", "/issue", json=payload)
        key = created["key"]
        logger.info(f"Created Jira story {key}", extra={"story_id": key})

        return Story(
            id=key,
            title=draft.title,
            description=draft.description,
            acceptance_criteria=list(draft.acceptance_criteria),
            status="To Do",
            issue_type="Story",
            url=self.browse_url(key),
        )

    async def post_comment(self, key: str, text: str) -> Dict[str, Any]:
        """Post a plain-text comment as a single ADF paragraph."""
        result = await self._request(
            "POST", f"/issue/{key}/comment", json={"body": adf_document(adf_paragraph(text))}
        )
        logger.info(f"Comment posted to {key}", extra={"story_id": key})
        return result

    async def update_test_results(
        self,
        key: str,
        result: ExecutionResult,
        error: Optional[str] = None,
        attempts: Optional[int] = None,
        healing_applied: bool = False,
    ) -> Dict[str, Any]:
        comment = self.reporter.format_comment(
            test_name=f"Automated Test Suite - {key}",
            result=result,
            error=error,
            attempts=attempts,
            healing_applied=healing_applied,
        )
        return await self.post_comment(key, comment)

    async def search_stories(self, jql: str, max_results: int = 50) -> List[Dict[str, Any]]:
        data = await self._request(
            "POST",
            "/search",
            json={
                "jql": jql,
                "fields": ["key", "summary", "status", "issuetype"],
                "maxResults": max_results,
            },
        )
        issues = data.get("issues", [])
        logger.info(f"Jira search returned {len(issues)} issue(s)", extra={"jql": jql})
        return issues

    async def test_connection(self) -> Dict[str, Any]:
        """Authenticated user, proving credentials work."""
        me = await self._request("GET", "/myself")
        return {
            "connected": True,
            "displayName": me.get("displayName"),
            "emailAddress": me.get("emailAddress"),
        }
