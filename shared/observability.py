"""
Observability module for the Access Layer federation service.
Integrates logging, metrics, and span events.
"""

from typing import Optional

from .logging import configure_logging, get_logger
from .metrics import get_metrics_collector, MetricsCollector
from .tracing import add_span_event


class ObservabilityManager:
    """Centralized observability manager for services."""

    def __init__(self, service_name: str, log_level: str = "info",
                 metrics: Optional[MetricsCollector] = None):
        self.service_name = service_name
        self.log_level = log_level

        self._setup_logging()
        self.metrics = metrics or get_metrics_collector(service_name)

        self.logger = get_logger(f"{service_name}.observability")

        self.logger.info("Observability initialized",
                         service=service_name,
                         log_level=log_level)

    def _setup_logging(self):
        """Set up structured logging."""
        configure_logging(self.service_name, self.log_level)

    def log_error(self, error_type: str, error_message: str, **kwargs):
        """Log error with full context."""
        self.logger.error(
            "Error occurred",
            error_type=error_type,
            error_message=error_message,
            **kwargs
        )

        self.metrics.record_error(error_type)
        add_span_event("error",
                       error_type=error_type,
                       error_message=error_message)

    def log_business_event(self, event_type: str, **kwargs):
        """Log business event with full context."""
        self.logger.info(
            "Business event",
            event_type=event_type,
            **kwargs
        )

        self.metrics.record_business_event(event_type)
        add_span_event("business_event", event_type=event_type, **kwargs)


def get_observability_manager(service_name: str, **kwargs) -> ObservabilityManager:
    """Get an observability manager for a service."""
    return ObservabilityManager(service_name, **kwargs)
