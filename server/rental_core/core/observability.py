"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging
from typing import Any

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry
import structlog

from .config import settings

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Business metrics
HOLDS_CREATED = Counter(
    'reservation_holds_created_total',
    'Total reservation holds created',
    registry=REGISTRY
)

HOLDS_EXPIRED = Counter(
    'reservation_holds_expired_total',
    'Total reservation holds flipped to expired',
    registry=REGISTRY
)

HOLD_CONFLICTS = Counter(
    'reservation_conflicts_total',
    'Reservation attempts rejected because of overlapping dates',
    ['operation'],
    registry=REGISTRY
)

BOOKING_TRANSITIONS = Counter(
    'booking_transitions_total',
    'Booking status transitions committed',
    ['from_status', 'to_status'],
    registry=REGISTRY
)

DEPOSIT_LEDGER_ENTRIES = Counter(
    'deposit_ledger_entries_total',
    'Deposit ledger entries appended',
    ['action', 'category'],
    registry=REGISTRY
)

NOTIFICATION_FAILURES = Counter(
    'notification_failures_total',
    'Notification dispatch attempts that failed',
    ['event_type'],
    registry=REGISTRY
)

OPEN_ALERTS = Gauge(
    'alerts_open',
    'Alerts waiting for staff action',
    registry=REGISTRY
)


def setup_structured_logging():
    """
    Configure structured logging with structlog.

    Request IDs arrive through structlog contextvars, bound by the request
    middleware.
    """

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict
    
    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_tracing(app_name: str = "rental-core-api"):
    """Setup OpenTelemetry tracing."""
    
    # Create resource
    resource = Resource.create({
        "service.name": app_name,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })
    
    # Setup tracer provider
    trace.set_tracer_provider(TracerProvider(resource=resource))
    
    # Setup OTLP exporter (if OTLP endpoint is configured)
    if settings.otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        span_processor = BatchSpanProcessor(otlp_exporter)
        trace.get_tracer_provider().add_span_processor(span_processor)
    
    # Get tracer
    tracer = trace.get_tracer(__name__)
    return tracer


def setup_metrics(app_name: str = "rental-core-api"):
    """Setup OpenTelemetry metrics."""
    
    # Create resource
    resource = Resource.create({
        "service.name": app_name,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })
    
    # Setup OTLP metric exporter (if configured)
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))
    
    # Get meter
    meter = metrics.get_meter(__name__)
    return meter


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)
    

def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_hold_created():
        """Record a hold creation."""
        HOLDS_CREATED.inc()

    @staticmethod
    def record_holds_expired(count: int = 1):
        """Record holds flipped to expired."""
        HOLDS_EXPIRED.inc(count)

    @staticmethod
    def record_conflict(operation: str):
        """Record a reservation rejected for overlapping dates."""
        HOLD_CONFLICTS.labels(operation=operation).inc()

    @staticmethod
    def record_transition(from_status: str, to_status: str):
        """Record a committed booking status change."""
        BOOKING_TRANSITIONS.labels(from_status=from_status, to_status=to_status).inc()

    @staticmethod
    def record_ledger_entry(action: str, category: str):
        """Record a deposit ledger append."""
        DEPOSIT_LEDGER_ENTRIES.labels(action=action, category=category).inc()

    @staticmethod
    def record_notification_failure(event_type: str):
        """Record a failed notification dispatch."""
        NOTIFICATION_FAILURES.labels(event_type=event_type).inc()

    @staticmethod
    def set_open_alerts(count: int):
        """Set the number of alerts awaiting staff."""
        OPEN_ALERTS.set(count)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


class StructuredLogger:
    """Structured logger with business context."""
    
    def __init__(self, name: str, logger: Any = None):
        self.name = name
        self.logger = logger if logger is not None else structlog.get_logger(name)
    
    def info(self, message: str, **kwargs):
        """Log info message with context."""
        self.logger.info(message, **kwargs)
    
    def warning(self, message: str, **kwargs):
        """Log warning message with context."""
        self.logger.warning(message, **kwargs)
    
    def error(self, message: str, **kwargs):
        """Log error message with context."""
        self.logger.error(message, **kwargs)
    
    def debug(self, message: str, **kwargs):
        """Log debug message with context."""
        self.logger.debug(message, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
