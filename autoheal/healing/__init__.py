"""
Self-healing execution loop exports.
"""

from autoheal.healing.classifier import classify_failure, is_logic_error
from autoheal.healing.orchestrator import HealingLedger, RetryOrchestrator, collect_videos
from autoheal.healing.output_parser import OutputGrammar, parse_json_report, parse_output
from autoheal.healing.regenerator import ArtifactRegenerator, RegenerationRequest
from autoheal.healing.runner import PlaywrightRunner
from autoheal.healing.strategy import analyze_story, build_test_for_approach
from autoheal.healing.target_resolution import (
    extract_credentials,
    resolve_target_url,
)

__all__ = [
    # Parsing and classification
    "OutputGrammar",
    "parse_output",
    "parse_json_report",
    "classify_failure",
    "is_logic_error",

    # Strategy and resolution
    "analyze_story",
    "build_test_for_approach",
    "resolve_target_url",
    "extract_credentials",

    # Loop
    "PlaywrightRunner",
    "ArtifactRegenerator",
    "RegenerationRequest",
    "RetryOrchestrator",
    "HealingLedger",
    "collect_videos",
]
