"""
autoheal: self-healing Playwright test generation and execution.
"""

__version__ = "0.1.0"
