"""OpenTelemetry setup shared by the API process and the analytics worker.

Both processes report under the same service name and are told apart by the
``snaplink.component`` resource attribute. With OTEL_ENABLED off nothing is
configured and every meter or tracer handed out here is a no-op.
"""

import logging
from functools import lru_cache
from typing import Dict, NamedTuple, Optional

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as OTLPGrpcSpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as OTLPHttpSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter as OTLPGrpcMetricExporter
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter as OTLPHttpMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricExporter, PeriodicExportingMetricReader
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import (
    ParentBasedTraceIdRatio,
    Sampler,
    TraceIdRatioBased,
)

from snaplink.core.config import settings

logger = logging.getLogger(__name__)

SAMPLERS = {
    "parentbased_traceidratio": ParentBasedTraceIdRatio,
    "traceidratio": TraceIdRatioBased,
}


class TelemetryProviders(NamedTuple):
    tracer_provider: Optional[TracerProvider]
    meter_provider: Optional[MeterProvider]


@lru_cache
def setup_telemetry(component: str = "api") -> TelemetryProviders:
    """
    Install global tracer and meter providers exporting over OTLP.

    Args:
        component: "api" or "worker", recorded on every span and metric

    Returns:
        The installed providers, both None when telemetry is disabled or fails
    """
    if not settings.OTEL_ENABLED:
        logger.info("OpenTelemetry instrumentation is disabled")
        return TelemetryProviders(None, None)

    try:
        resource = Resource.create({
            "service.name": settings.OTEL_SERVICE_NAME,
            "service.version": settings.APP_VERSION,
            "deployment.environment": settings.ENVIRONMENT.value,
            "snaplink.component": component,
            **parse_resource_attributes(settings.OTEL_RESOURCE_ATTRIBUTES),
        })
        span_exporter, metric_exporter = _build_exporters(settings.OTEL_EXPORTER_OTLP_PROTOCOL)

        tracer_provider = TracerProvider(resource=resource, sampler=_create_sampler())
        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
        trace.set_tracer_provider(tracer_provider)

        reader = PeriodicExportingMetricReader(
            metric_exporter,
            export_interval_millis=settings.OTEL_METRICS_EXPORT_INTERVAL_MILLIS,
        )
        meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
        metrics.set_meter_provider(meter_provider)
    except Exception as e:
        logger.error(f"Failed to initialize OpenTelemetry for {component}: {e}")
        return TelemetryProviders(None, None)

    logger.info(f"OpenTelemetry exporting {component} telemetry over {settings.OTEL_EXPORTER_OTLP_PROTOCOL}")
    return TelemetryProviders(tracer_provider, meter_provider)


def instrument_clients(db_engine=None, redis_client=None) -> None:
    """Trace database and Redis calls, and stamp trace ids on log records."""
    if not settings.OTEL_ENABLED:
        return

    try:
        LoggingInstrumentor().instrument(tracer_provider=trace.get_tracer_provider())
        if db_engine is not None:
            SQLAlchemyInstrumentor().instrument(
                engine=db_engine.sync_engine,
                tracer_provider=trace.get_tracer_provider(),
                meter_provider=metrics.get_meter_provider(),
            )
        if redis_client is not None:
            # Covers cache reads and queue traffic alike
            RedisInstrumentor().instrument(tracer_provider=trace.get_tracer_provider())
    except Exception as e:
        logger.error(f"Failed to instrument clients: {e}")


def _build_exporters(protocol: str):
    if protocol.lower() == "grpc":
        span_exporter: SpanExporter = OTLPGrpcSpanExporter(
            endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True
        )
        metric_exporter: MetricExporter = OTLPGrpcMetricExporter(
            endpoint=settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT, insecure=True
        )
    else:
        span_exporter = OTLPHttpSpanExporter(endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT)
        metric_exporter = OTLPHttpMetricExporter(endpoint=settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT)
    return span_exporter, metric_exporter


def _create_sampler() -> Sampler:
    sampler_cls = SAMPLERS.get(settings.OTEL_TRACES_SAMPLER.lower(), TraceIdRatioBased)
    return sampler_cls(float(settings.OTEL_TRACES_SAMPLER_ARG))


def parse_resource_attributes(attributes: str) -> Dict[str, str]:
    """Parse "k1=v1,k2=v2"; malformed pairs are skipped."""
    pairs = (item.split("=", 1) for item in (attributes or "").split(",") if "=" in item)
    return {key.strip(): value.strip() for key, value in pairs if key.strip()}


def get_tracer(name: Optional[str] = None) -> trace.Tracer:
    return trace.get_tracer(name or settings.OTEL_SERVICE_NAME)


def get_meter(name: Optional[str] = None) -> metrics.Meter:
    """Meter for module-level counters; safe to call before setup_telemetry."""
    return metrics.get_meter(name or settings.OTEL_SERVICE_NAME)
