"""
Monitoring module exports.
"""

from autoheal.monitoring.logger import (
    ContextLogAdapter,
    JSONFormatter,
    SanitizingHandler,
    get_logger,
    log_healing_event,
    log_performance_metric,
    setup_logging,
)

from autoheal.monitoring.reporter import (
    ResultReporter,
    result_status,
)

__all__ = [
    # Logger
    "setup_logging",
    "get_logger",
    "log_healing_event",
    "log_performance_metric",
    "JSONFormatter",
    "SanitizingHandler",
    "ContextLogAdapter",

    # Reporter
    "ResultReporter",
    "result_status",
]
