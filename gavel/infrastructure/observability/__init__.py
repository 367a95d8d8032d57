"""Logging and metrics facades."""

from .logging import (configure_logging, current_log_context, get_logger,
                      log_context, log_exception)
from .metrics import (format_prometheus, get_metrics_summary,
                      increment_counter, observe_histogram, record_api_request,
                      record_bid, record_settlement, record_status_transition,
                      record_sweep, record_write_retry, reset_metrics)

__all__ = [
    # Logging
    "configure_logging",
    "current_log_context",
    "get_logger",
    "log_context",
    "log_exception",
    # Metrics
    "format_prometheus",
    "get_metrics_summary",
    "increment_counter",
    "observe_histogram",
    "record_api_request",
    "record_bid",
    "record_settlement",
    "record_status_transition",
    "record_sweep",
    "record_write_retry",
    "reset_metrics",
]
