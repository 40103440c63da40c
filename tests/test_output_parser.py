"""
Tests for the runner output grammar.
"""

import json

from autoheal.core.types import CaseStatus
from autoheal.healing.output_parser import (
    OutputGrammar,
    parse_json_report,
    parse_output,
    strip_ansi,
)

LIST_REPORTER_FAILURE = """
Running 3 tests using 1 worker

  ✓  1 [chromium] › ed-42-automated.spec.js:4:3 › Homepage › loads hero banner (1.2s)
  ✘  2 [chromium] › ed-42-automated.spec.js:12:3 › Homepage › shows promo tile (30.0s)
  -  3 [chromium] › ed-42-automated.spec.js:20:3 › Homepage › optional carousel

  1) [chromium] › ed-42-automated.spec.js:12:3 › Homepage › shows promo tile

    Error: Timed out 10000ms waiting for expect(locator).toBeVisible()

  1 failed
    [chromium] › ed-42-automated.spec.js:12:3 › Homepage › shows promo tile
  1 skipped
  1 passed (31.4s)
"""


class TestOutputGrammar:
    """Test list-reporter parsing."""

    def test_counts_and_total_exclude_skipped(self):
        result = parse_output(LIST_REPORTER_FAILURE)

        assert result.passed == 1
        assert result.failed == 1
        assert result.skipped == 1
        assert result.total == 2
        assert not result.success

    def test_summary_duration_preferred(self):
        result = parse_output(LIST_REPORTER_FAILURE)

        assert result.duration_seconds == 31.4

    def test_duration_units(self):
        grammar = OutputGrammar()

        assert grammar.parse_duration("  2 passed (850ms)") == 0.85
        assert grammar.parse_duration("  2 passed (1.5m)") == 90.0
        assert grammar.parse_duration("something (4.0s) happened") == 4.0
        assert grammar.parse_duration("no timing here") == 0.0

    def test_per_test_lines(self):
        result = parse_output(LIST_REPORTER_FAILURE)

        assert [t.status for t in result.per_test_results] == [
            CaseStatus.PASSED,
            CaseStatus.FAILED,
            CaseStatus.SKIPPED,
        ]
        first = result.per_test_results[0]
        assert first.title == "Homepage › loads hero banner"
        assert first.duration_ms == 1200
        assert result.per_test_results[2].duration_ms == 0

    def test_all_passed(self):
        result = parse_output("Running 2 tests\n\n  2 passed (5.2s)\n")

        assert result.passed == 2
        assert result.failed == 0
        assert result.success

    def test_ansi_codes_ignored(self):
        text = "\x1b[32m  3 passed\x1b[39m \x1b[2m(2.0s)\x1b[22m"

        assert strip_ansi(text) == "  3 passed (2.0s)"
        result = parse_output(text)
        assert result.passed == 3
        assert result.duration_seconds == 2.0

    def test_empty_output(self):
        result = parse_output("")

        assert result.is_empty
        assert result.total == 0

    def test_unclassifiable_output_is_not_success(self, caplog):
        result = parse_output("Error: Cannot find module '@playwright/test'")

        assert result.total == 0
        assert not result.success
        assert "Unclassifiable runner output" in caplog.text

    def test_grammar_version(self):
        assert OutputGrammar.version == "list-reporter/1"


class TestJsonReport:
    """Test JSON reporter parsing."""

    def test_stats_counts_flaky_as_passed(self):
        report = {
            "stats": {"expected": 2, "flaky": 1, "unexpected": 1, "skipped": 1, "duration": 4500},
            "suites": [],
        }

        result = parse_json_report(report)

        assert result.passed == 3
        assert result.failed == 1
        assert result.skipped == 1
        assert result.total == 4
        assert result.duration_seconds == 4.5

    def test_walks_nested_suites(self):
        report = {
            "suites": [
                {
                    "title": "ed-42-automated.spec.js",
                    "specs": [],
                    "suites": [
                        {
                            "title": "Homepage",
                            "specs": [
                                {
                                    "title": "loads",
                                    "tests": [{"results": [{"status": "passed", "duration": 900}]}],
                                },
                                {
                                    "title": "times out",
                                    "tests": [{"results": [{"status": "timedOut", "duration": 30000}]}],
                                },
                            ],
                        }
                    ],
                }
            ]
        }

        result = parse_json_report(json.dumps(report))

        assert [t.title for t in result.per_test_results] == [
            "Homepage › loads",
            "Homepage › times out",
        ]
        assert result.per_test_results[1].status == CaseStatus.TIMED_OUT
        assert result.passed == 1
        assert result.failed == 1
        assert result.duration_seconds == 30.9
