"""consent-gate – Instrumentation.

Structured logging with PII masking and Prometheus metrics for the
consent state machine and event buffer.
"""

import logging

import structlog
from fastapi import APIRouter, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    generate_latest,
)

from consent_gate.integrations.pii_filter import filter_log_record

router = APIRouter(tags=["monitoring"])

CONSENT_TRANSITIONS = Counter(
    "consent_gate_transitions_total",
    "Consent state machine transitions by target state",
    ["state"],
)

EVENTS_BUFFERED = Counter(
    "consent_gate_events_buffered_total",
    "Analytics events held back in the buffer",
)

EVENTS_DELIVERED = Counter(
    "consent_gate_events_delivered_total",
    "Analytics events forwarded to the transport",
    ["path"],  # direct | flush
)

FLUSH_HALTS = Counter(
    "consent_gate_flush_halts_total",
    "Buffer flushes stopped at a failed delivery",
)

BRIDGE_FAILURES = Counter(
    "consent_gate_bridge_failures_total",
    "Native privacy toggle failures by operation",
    ["operation"],
)

BUFFER_SIZE = Gauge(
    "consent_gate_buffer_size",
    "Events currently waiting in the buffer",
)


@router.get("/metrics")
def metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def setup_logging(log_level: str = "info") -> None:
    """Configure structlog with PII masking."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            filter_log_record,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
