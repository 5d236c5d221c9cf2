"""
Observability package for Synexa.

Provides Prometheus metrics and structured JSON logging for routine
execution, device commands, recurrence evaluation and the HTTP API.
"""

from .metrics import SynexaMetrics, metrics_registry, synexa_metrics
from .logging import StructuredLogger, set_request_context, generate_request_id

__all__ = [
    "SynexaMetrics",
    "metrics_registry",
    "synexa_metrics",
    "StructuredLogger",
    "set_request_context",
    "generate_request_id",
]
