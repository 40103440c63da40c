"""
External tracker integrations.
"""

from autoheal.integrations.jira import JiraClient, adf_to_text, adf_urls
from autoheal.integrations.testrail import TestRailClient, map_priority, map_status

__all__ = [
    "JiraClient",
    "adf_to_text",
    "adf_urls",
    "TestRailClient",
    "map_status",
    "map_priority",
]
