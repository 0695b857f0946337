"""
Observability Module for Counterparty Resolution

Provides:
- Structured logging with correlation IDs (tenant, company, document, workflow)
- Metrics collection (resolutions by strategy, conflicts, store errors, timings)
"""

from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_resolution,
    record_conflict,
    record_store_error,
)

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "record_resolution",
    "record_conflict",
    "record_store_error",
    # Logging
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
]
