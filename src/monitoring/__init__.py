"""
Monitoring infrastructure for CertChain.

This package provides:
- Application metrics collection (counters, gauges, histograms)
- Structured logging with JSON output and per-connection context

Usage:
    from monitoring import metrics, get_logger

    metrics.increment("certificates_issued_total")
    metrics.timing("http_request_duration_ms", 42.5, {"method": "POST"})

    logger = get_logger(__name__)
    logger.info("Certificate issued", extra={"certificate_id": 3})
"""

from monitoring.logging import (
    ConsoleFormatter,
    JSONFormatter,
    LoggingContext,
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)
from monitoring.metrics import MetricsCollector, metrics

__all__ = [
    "ConsoleFormatter",
    "JSONFormatter",
    "LoggingContext",
    "MetricsCollector",
    "clear_request_context",
    "configure_logging",
    "get_logger",
    "metrics",
    "set_request_context",
]
