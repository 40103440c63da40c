"""
Custom exception hierarchy for autoheal error handling.

Separates infrastructure failures (network, subprocess) from the terminal
"cannot auto-heal" verdict so callers can tell a broken feature from an
automation that gave up.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class AutoHealError(Exception):
    """Base exception for all autoheal errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None
        }


class RetryableError(AutoHealError):
    """Base class for errors that can be retried."""

    def __init__(
        self,
        message: str,
        max_retries: int = 3,
        retry_delay_ms: int = 1000,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self.retry_count = 0

    def increment_retry(self) -> None:
        """Increment retry counter."""
        self.retry_count += 1

    def can_retry(self) -> bool:
        """Check if error can be retried."""
        return self.retry_count < self.max_retries


class NonRetryableError(AutoHealError):
    """Base class for errors that should not be retried."""
    pass


class ConfigurationError(NonRetryableError):
    """Raised when a required setting is missing or unusable."""

    def __init__(self, message: str, setting: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.setting = setting
        self.details.update({"setting": setting})


class ValidationError(NonRetryableError):
    """Error raised when request or artifact validation fails."""

    def __init__(
        self,
        message: str,
        validation_type: str,
        failed_rules: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.validation_type = validation_type
        self.failed_rules = failed_rules or []
        self.details.update({
            "validation_type": validation_type,
            "failed_rules": failed_rules
        })


class IntegrationError(RetryableError):
    """Error talking to an external REST service."""

    def __init__(
        self,
        message: str,
        service: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.service = service
        self.status_code = status_code
        self.endpoint = endpoint
        self.details.update({
            "service": service,
            "status_code": status_code,
            "endpoint": endpoint
        })


class JiraError(IntegrationError):
    """Jira request failed."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, service="jira", **kwargs)


class TestRailError(IntegrationError):
    """TestRail request failed."""

    __test__ = False

    def __init__(self, message: str, **kwargs):
        super().__init__(message, service="testrail", **kwargs)


class GenerationError(RetryableError):
    """Text generation failed or returned something unusable."""

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.model = model
        self.provider = provider
        self.details.update({"model": model, "provider": provider})


class RunnerError(NonRetryableError):
    """The test runner process could not be started."""

    def __init__(self, message: str, command: Optional[List[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.command = command or []
        self.details.update({"command": " ".join(self.command)})


class CannotHealError(NonRetryableError):
    """Terminal verdict: regeneration could not produce a runnable test."""

    def __init__(
        self,
        message: str,
        attempt: Optional[int] = None,
        rejected_responses: int = 0,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.attempt = attempt
        self.rejected_responses = rejected_responses
        self.details.update({
            "attempt": attempt,
            "rejected_responses": rejected_responses
        })
