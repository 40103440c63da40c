"""
Error handling for autoheal.

Exceptions are split into retryable infrastructure failures and
non-retryable terminal conditions.
"""

from .exceptions import (
    AutoHealError,
    CannotHealError,
    ConfigurationError,
    GenerationError,
    IntegrationError,
    JiraError,
    NonRetryableError,
    RetryableError,
    RunnerError,
    TestRailError,
    ValidationError,
)

__all__ = [
    "AutoHealError",
    "RetryableError",
    "NonRetryableError",
    "ConfigurationError",
    "ValidationError",
    "IntegrationError",
    "JiraError",
    "TestRailError",
    "GenerationError",
    "RunnerError",
    "CannotHealError",
]
