"""
Unit tests for error handling exceptions.
"""

from datetime import datetime

import pytest

from autoheal.error_handling.exceptions import (
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


class TestAutoHealError:
    """Test base exception class."""

    def test_basic_creation(self):
        error = AutoHealError("Test error")

        assert str(error) == "Test error"
        assert error.message == "Test error"
        assert error.error_code == "AutoHealError"
        assert error.details == {}
        assert error.cause is None
        assert isinstance(error.timestamp, datetime)

    def test_to_dict(self):
        cause = ValueError("bad value")
        error = AutoHealError("Wrapped", error_code="E1", details={"k": 1}, cause=cause)

        data = error.to_dict()

        assert data["error_type"] == "AutoHealError"
        assert data["error_code"] == "E1"
        assert data["details"] == {"k": 1}
        assert data["cause"] == "bad value"


class TestRetryableError:
    """Test retry bookkeeping."""

    def test_retry_counter(self):
        error = GenerationError("rate limited", max_retries=2)

        assert error.can_retry()
        error.increment_retry()
        error.increment_retry()
        assert not error.can_retry()


class TestSpecificErrors:
    """Test details carried by each error type."""

    def test_hierarchy(self):
        assert issubclass(JiraError, IntegrationError)
        assert issubclass(TestRailError, RetryableError)
        assert issubclass(CannotHealError, NonRetryableError)
        assert issubclass(RunnerError, NonRetryableError)
        assert not issubclass(CannotHealError, RetryableError)

    def test_integration_details(self):
        error = JiraError("Jira API error: 401", status_code=401, endpoint="/myself")

        assert error.service == "jira"
        assert error.details == {"service": "jira", "status_code": 401, "endpoint": "/myself"}

    def test_testrail_service(self):
        assert TestRailError("x").details["service"] == "testrail"

    def test_validation_details(self):
        error = ValidationError("bad id", validation_type="story_id", failed_rules=["alnum"])

        assert error.details == {"validation_type": "story_id", "failed_rules": ["alnum"]}

    def test_configuration_setting(self):
        error = ConfigurationError("missing key", setting="openrouter_api_key")

        assert error.setting == "openrouter_api_key"
        assert error.details["setting"] == "openrouter_api_key"

    def test_runner_command(self):
        error = RunnerError("not found", command=["npx", "playwright", "test"])

        assert error.details["command"] == "npx playwright test"

    def test_generation_details(self):
        error = GenerationError("402", model="free/one", provider="openrouter")

        assert error.details == {"model": "free/one", "provider": "openrouter"}

    def test_cannot_heal(self):
        error = CannotHealError("not a test", attempt=2, rejected_responses=2)

        assert error.details == {"attempt": 2, "rejected_responses": 2}
        with pytest.raises(AutoHealError):
            raise error
