"""
Orchestration module exports.
"""

from autoheal.orchestration.coordinator import WorkflowCoordinator, WorkflowStage

__all__ = ["WorkflowCoordinator", "WorkflowStage"]
