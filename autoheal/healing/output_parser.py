"""Parsing of Playwright runner output into ExecutionResult.

The list reporter's prose output is treated as a versioned grammar. When the
runner changes its summary format the grammar tests fail instead of the
orchestrator silently reading zero counts.
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Union

from autoheal.core.types import CaseStatus, ExecutionResult, PerTestResult

logger = logging.getLogger(__name__)

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")

_UNIT_TO_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0}

_STATUS_MARKS = {
    "✓": CaseStatus.PASSED,
    "✔": CaseStatus.PASSED,
    "ok": CaseStatus.PASSED,
    "✘": CaseStatus.FAILED,
    "✗": CaseStatus.FAILED,
    "x": CaseStatus.FAILED,
    "-": CaseStatus.SKIPPED,
}

_JSON_STATUS = {
    "passed": CaseStatus.PASSED,
    "failed": CaseStatus.FAILED,
    "skipped": CaseStatus.SKIPPED,
    "timedOut": CaseStatus.TIMED_OUT,
    "interrupted": CaseStatus.FAILED,
}


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE.sub("", text)


def _to_seconds(value: str, unit: str) -> float:
    return float(value) * _UNIT_TO_SECONDS[unit]


class OutputGrammar:
    """Grammar for the Playwright ``list`` reporter.

    Recognised pieces:

    - count lines such as ``3 passed``, ``1 failed``, ``2 skipped``
    - the run duration, preferably from a summary count line
      (``1 passed (5.2s)``), else the first parenthesised ``(<n>s)``
    - per-test lines: ``✓  1 [chromium] › a.spec.js:3:5 › title (1.2s)``
    """

    version = "list-reporter/1"

    PASSED = re.compile(r"(\d+) passed")
    FAILED = re.compile(r"(\d+) failed")
    SKIPPED = re.compile(r"(\d+) skipped")
    SUMMARY_DURATION = re.compile(
        r"^\s*\d+ (?:passed|failed|skipped|flaky|interrupted)\s*"
        r"\((\d+(?:\.\d+)?)(ms|s|m)\)",
        re.MULTILINE,
    )
    ANY_DURATION = re.compile(r"\((\d+(?:\.\d+)?)s\)")
    TEST_LINE = re.compile(
        r"^\s*(✓|✔|ok|✘|✗|x|-)\s+(\d+)\s+(.+?)"
        r"(?:\s+\((\d+(?:\.\d+)?)(ms|s|m)\))?\s*$"
    )
    NO_TESTS = re.compile(r"no tests found", re.IGNORECASE)

    def parse(self, output: Optional[str]) -> ExecutionResult:
        """
        Parse raw runner output.

        Args:
            output: Combined stdout/stderr text

        Returns:
            ExecutionResult with ``total = passed + failed``
        """
        if not output:
            logger.warning("Empty runner output received")
            return ExecutionResult()

        text = strip_ansi(output)
        passed = self._first_int(self.PASSED, text)
        failed = self._first_int(self.FAILED, text)
        skipped = self._first_int(self.SKIPPED, text)

        result = ExecutionResult(
            passed=passed,
            failed=failed,
            skipped=skipped,
            duration_seconds=self.parse_duration(text),
            per_test_results=self.parse_test_lines(text.splitlines()),
        )

        if result.total == 0:
            if self.NO_TESTS.search(text):
                logger.warning("Runner reported no tests found")
            else:
                logger.warning(
                    "Unclassifiable runner output: no pass/fail counts found",
                    extra={"grammar": self.version, "output_length": len(text)},
                )

        logger.debug(
            "Parsed runner output",
            extra={
                "grammar": self.version,
                "passed": result.passed,
                "failed": result.failed,
                "skipped": result.skipped,
                "total": result.total,
                "duration_seconds": result.duration_seconds,
            },
        )
        return result

    @staticmethod
    def _first_int(pattern: re.Pattern, text: str) -> int:
        match = pattern.search(text)
        return int(match.group(1)) if match else 0

    def parse_duration(self, text: str) -> float:
        summary = self.SUMMARY_DURATION.search(text)
        if summary:
            return _to_seconds(summary.group(1), summary.group(2))
        match = self.ANY_DURATION.search(text)
        return float(match.group(1)) if match else 0.0

    def parse_test_lines(self, lines: Iterable[str]) -> List[PerTestResult]:
        results: List[PerTestResult] = []
        for line in lines:
            match = self.TEST_LINE.match(line)
            if not match:
                continue
            mark, _, body, value, unit = match.groups()
            title = self._clean_title(body)
            if not title:
                continue
            duration_ms = int(round(_to_seconds(value, unit) * 1000)) if value else 0
            results.append(
                PerTestResult(
                    title=title,
                    status=_STATUS_MARKS[mark],
                    duration_ms=duration_ms,
                )
            )
        return results

    @staticmethod
    def _clean_title(body: str) -> str:
        """Drop the ``[project]`` and ``file:line:col`` segments."""
        parts = [part.strip() for part in body.split("›")]
        kept = [
            part
            for part in parts
            if part
            and not (part.startswith("[") and part.endswith("]"))
            and not re.search(r"\.(?:spec|test)\.[cm]?[jt]sx?:\d+:\d+$", part)
        ]
        return " › ".join(kept)


def parse_json_report(payload: Union[str, Dict[str, Any]]) -> ExecutionResult:
    """
    Build an ExecutionResult from Playwright's JSON reporter.

    Flaky tests (passed on retry) count as passed.
    """
    data = json.loads(payload) if isinstance(payload, str) else payload

    stats = data.get("stats", {})
    per_test: List[PerTestResult] = []

    def walk(suite: Dict[str, Any], prefix: List[str]) -> None:
        title = suite.get("title", "")
        # File-level suites are titled with the spec path
        path = prefix + ([title] if title and "." not in title else [])
        for spec in suite.get("specs", []):
            tests = spec.get("tests", [])
            if not tests:
                continue
            runs = tests[-1].get("results", [])
            last_run = runs[-1] if runs else {}
            status = _JSON_STATUS.get(
                last_run.get("status") or tests[-1].get("status", "skipped"),
                CaseStatus.FAILED,
            )
            per_test.append(
                PerTestResult(
                    title=" › ".join(path + [spec.get("title", "")]),
                    status=status,
                    duration_ms=int(last_run.get("duration", 0)),
                )
            )
        for child in suite.get("suites", []):
            walk(child, path)

    for suite in data.get("suites", []):
        walk(suite, [])

    if stats:
        passed = int(stats.get("expected", 0)) + int(stats.get("flaky", 0))
        failed = int(stats.get("unexpected", 0))
        skipped = int(stats.get("skipped", 0))
        duration = float(stats.get("duration", 0)) / 1000.0
    else:
        passed = sum(1 for t in per_test if t.status == CaseStatus.PASSED)
        failed = sum(
            1 for t in per_test if t.status in (CaseStatus.FAILED, CaseStatus.TIMED_OUT)
        )
        skipped = sum(1 for t in per_test if t.status == CaseStatus.SKIPPED)
        duration = sum(t.duration_ms for t in per_test) / 1000.0

    return ExecutionResult(
        passed=passed,
        failed=failed,
        skipped=skipped,
        duration_seconds=duration,
        per_test_results=per_test,
    )


default_grammar = OutputGrammar()


def parse_output(output: Optional[str]) -> ExecutionResult:
    """Parse list-reporter output with the current grammar."""
    return default_grammar.parse(output)
