"""Monitoring and observability setup.

When ``OTEL_ENABLED`` is set, traces and metrics are exported over OTLP/gRPC
to the collector at ``OTEL_EXPORTER_OTLP_ENDPOINT``. Otherwise the
OpenTelemetry API falls back to its no-op providers, so every counter and span
below is still safe to call (this is what the test suite runs with).

Exemplars are attached automatically to the histograms when they are
recorded inside an active span, linking order amounts to placement traces.
"""
import logging

import pyroscope
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from storefront.config import (
    DEPLOYMENT_ENVIRONMENT,
    OTEL_ENABLED,
    OTEL_EXPORTER_OTLP_ENDPOINT,
    PYROSCOPE_ENABLED,
    PYROSCOPE_SERVER,
    SERVICE_NAME,
)

logger = logging.getLogger(__name__)


def service_resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "deployment.environment": DEPLOYMENT_ENVIRONMENT,
    })


def init_tracing() -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing.

    Returns:
        Tracer instance
    """
    if OTEL_ENABLED:
        tracer_provider = TracerProvider(resource=service_resource())
        otlp_span_exporter = OTLPSpanExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(otlp_span_exporter))
        trace.set_tracer_provider(tracer_provider)
        logger.info(f"Tracing initialized with endpoint: {OTEL_EXPORTER_OTLP_ENDPOINT}")

    return trace.get_tracer(__name__)


def init_metrics() -> metrics.Meter:
    """
    Initialize OpenTelemetry metrics.

    Returns:
        Meter instance
    """
    if OTEL_ENABLED:
        otlp_metric_exporter = OTLPMetricExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        otlp_metric_reader = PeriodicExportingMetricReader(
            otlp_metric_exporter,
            export_interval_millis=5000
        )
        meter_provider = MeterProvider(
            resource=service_resource(),
            metric_readers=[otlp_metric_reader]
        )
        metrics.set_meter_provider(meter_provider)
        logger.info("Metrics initialized with OTLP exporter")

    return metrics.get_meter(__name__)


def init_profiling() -> None:
    """Initialize Pyroscope profiling."""
    if not PYROSCOPE_ENABLED:
        return
    try:
        pyroscope.configure(
            application_name=SERVICE_NAME,
            server_address=PYROSCOPE_SERVER,
            tags={"env": DEPLOYMENT_ENVIRONMENT}
        )
        logger.info(f"Profiling initialized with server: {PYROSCOPE_SERVER}")
    except Exception as e:
        logger.warning(f"Failed to initialize profiling: {e}")


tracer = init_tracing()
meter = init_metrics()

# Catalog metrics
product_views_counter = meter.create_counter(
    "storefront.products.views",
    description="Total number of product catalog listings served",
    unit="1"
)

product_detail_views_counter = meter.create_counter(
    "storefront.products.detail_views",
    description="Total number of individual product detail views",
    unit="1"
)

# Order metrics
orders_placed_counter = meter.create_counter(
    "storefront.orders.placed",
    description="Total number of orders placed",
    unit="1"
)

order_amount_histogram = meter.create_histogram(
    "storefront.orders.amount",
    description="Order total amount",
    unit="USD"
)

order_placement_failures_counter = meter.create_counter(
    "storefront.orders.placement_failures",
    description="Order placements rejected or rolled back, by reason",
    unit="1"
)

orders_cancelled_counter = meter.create_counter(
    "storefront.orders.cancelled",
    description="Total number of cancelled orders",
    unit="1"
)

stock_restored_counter = meter.create_counter(
    "storefront.inventory.units_restored",
    description="Units returned to stock by order cancellations",
    unit="1"
)

order_status_changes_counter = meter.create_counter(
    "storefront.orders.status_changes",
    description="Admin-driven order status transitions",
    unit="1"
)

# Security monitoring metrics
auth_failures_counter = meter.create_counter(
    "storefront.auth.failures",
    description="Total number of authentication failures",
    unit="1"
)

auth_attempts_counter = meter.create_counter(
    "storefront.auth.attempts",
    description="Total number of authentication attempts",
    unit="1"
)

registrations_counter = meter.create_counter(
    "storefront.users.registrations",
    description="Total number of user registrations",
    unit="1"
)

rate_limit_exceeded_counter = meter.create_counter(
    "storefront.rate_limit.exceeded",
    description="Total number of rate limit violations",
    unit="1"
)

suspicious_activity_counter = meter.create_counter(
    "storefront.security.suspicious_activity",
    description="Total number of suspicious activity detections",
    unit="1"
)
