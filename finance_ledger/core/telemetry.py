"""OpenTelemetry setup for the ledger service.

Spans wrap provider fetches, scheduled refreshes and transfer writes. The
counters below record how rate lookups were satisfied so that a provider
outage shows up as a rise in stale and not_found resolutions.

Nothing is exported until configure_telemetry() installs the SDK providers;
before that the API's no-op tracer and meter absorb every call.
"""
import logging
import socket
from typing import Any, Optional

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from finance_ledger.core.config import settings

logger = logging.getLogger(__name__)

_tracer: Optional[trace.Tracer] = None
_instruments: Optional["LedgerInstruments"] = None


class LedgerInstruments:
    """Counters shared by the rate and transfer services."""

    def __init__(self, meter: metrics.Meter):
        self.rate_resolutions = meter.create_counter(
            "ledger.rate.resolutions",
            description="Exchange rate lookups by resolution source",
            unit="1"
        )
        self.provider_failures = meter.create_counter(
            "ledger.rate.provider_failures",
            description="Failed calls to the external rate provider",
            unit="1"
        )
        self.transfers_created = meter.create_counter(
            "ledger.transfers.created",
            description="Transfers committed as linked transaction pairs",
            unit="1"
        )

    def record_resolution(self, source: str) -> None:
        self.rate_resolutions.add(1, {"rate.source": source})

    def record_provider_failure(self, base_currency: str) -> None:
        self.provider_failures.add(1, {"rate.base_currency": base_currency})

    def record_transfer(self, same_currency: bool) -> None:
        self.transfers_created.add(1, {"transfer.same_currency": same_currency})


def get_tracer() -> trace.Tracer:
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(settings.otel_service_name, settings.otel_service_version)
    return _tracer


def get_instruments() -> LedgerInstruments:
    """Return the process-wide ledger counters, creating them on first use."""
    global _instruments
    if _instruments is None:
        meter = metrics.get_meter(settings.otel_service_name, settings.otel_service_version)
        _instruments = LedgerInstruments(meter)
    return _instruments


def _build_resource() -> Resource:
    return Resource.create({
        SERVICE_NAME: settings.otel_service_name,
        SERVICE_VERSION: settings.otel_service_version,
        "deployment.environment": "development" if settings.debug else "production",
        "service.instance.id": socket.gethostname(),
        "ledger.rate_provider": settings.exchange_rate_api_provider,
    })


def configure_telemetry() -> None:
    """Install SDK trace and metric providers exporting to settings.otlp_endpoint."""
    global _tracer, _instruments
    resource = _build_resource()
    endpoint = settings.otlp_endpoint

    logger.info(
        f"Configuring OpenTelemetry for {settings.otel_service_name} "
        f"v{settings.otel_service_version} at {endpoint}"
    )

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=settings.otlp_insecure))
    )
    trace.set_tracer_provider(tracer_provider)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint, insecure=settings.otlp_insecure),
        export_interval_millis=settings.otel_metric_export_interval_ms
    )
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))

    # Rebind to the SDK providers on next use
    _tracer = None
    _instruments = None

    logger.info("OpenTelemetry tracing and metrics configured")


def instrument_app(app: Any) -> None:
    """Auto-instrument incoming requests, provider HTTP calls and log records."""
    FastAPIInstrumentor.instrument_app(app)
    HTTPXClientInstrumentor().instrument()
    LoggingInstrumentor().instrument(set_logging_format=True)
    logger.info("FastAPI, HTTPX and logging instrumentation enabled")
