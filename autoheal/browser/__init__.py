"""
Browser inspection exports.
"""

from autoheal.browser.inspector import (
    InspectionResult,
    PageInfo,
    PageInspector,
    format_summary,
)

__all__ = ["PageInspector", "PageInfo", "InspectionResult", "format_summary"]
