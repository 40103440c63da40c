"""
Core module exports.
"""

from autoheal.core.interfaces import ArtifactRunner, TextGenerator
from autoheal.core.types import (
    Artifact,
    CaseStatus,
    Credentials,
    ExecutionResult,
    FailureClassification,
    HealingAttempt,
    HealingOutcome,
    HealingStatus,
    OrchestratorState,
    PerTestResult,
    RunOutput,
    Story,
    StoryAnalysis,
    StoryDraft,
    StoryTestCase,
    StoryType,
    TargetCandidate,
    TargetResolution,
    UiElement,
    VerificationApproach,
)

__all__ = [
    # Interfaces
    "TextGenerator",
    "ArtifactRunner",

    # Types
    "Artifact",
    "CaseStatus",
    "Credentials",
    "ExecutionResult",
    "FailureClassification",
    "HealingAttempt",
    "HealingOutcome",
    "HealingStatus",
    "OrchestratorState",
    "PerTestResult",
    "RunOutput",
    "Story",
    "StoryAnalysis",
    "StoryDraft",
    "StoryTestCase",
    "StoryType",
    "TargetCandidate",
    "TargetResolution",
    "UiElement",
    "VerificationApproach",
]
