"""
Story, test-case and artifact generation.
"""

from autoheal.generation.planner import (
    TestCaseGenerator,
    artifact_filename,
    case_from_dict,
    parse_story_draft,
    parse_test_cases,
    story_id_from_filename,
)

__all__ = [
    "TestCaseGenerator",
    "artifact_filename",
    "case_from_dict",
    "parse_story_draft",
    "parse_test_cases",
    "story_id_from_filename",
]
