import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)


def setup_telemetry():
    """
    Configure OpenTelemetry tracing for model calls.

    Reads OPENTELEMETRY_ENABLED and OTEL_EXPORTER_OTLP_ENDPOINT. Tracing is on
    by default; without an endpoint spans are recorded but not exported.
    """
    telemetry_enabled = os.getenv("OPENTELEMETRY_ENABLED", "True").lower() != "false"

    if not telemetry_enabled:
        logger.info("OpenTelemetry is disabled via OPENTELEMETRY_ENABLED.")
        return

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        logger.warning(
            "OTEL_EXPORTER_OTLP_ENDPOINT is not set. Spans will not be exported."
        )
        trace.set_tracer_provider(TracerProvider())
        return

    try:
        provider = TracerProvider()
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)
        logger.info(f"OpenTelemetry configured with OTLP exporter endpoint: {endpoint}")
    except Exception as e:
        logger.error(f"Failed to initialize OpenTelemetry: {e}", exc_info=True)


def get_tracer(name: str):
    return trace.get_tracer(name)
