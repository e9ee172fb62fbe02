"""OpenTelemetry helpers: exporter setup, FastAPI instrumentation, provider spans.

Spans are always created through the global tracer; without `setup_tracing`
they are no-ops, so library users pay nothing unless tracing is enabled.
"""

from contextlib import contextmanager
from typing import Any, Iterator

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from pixpay.common.config import settings

tracer = trace.get_tracer("pixpay")


def setup_tracing(service_name: str, endpoint: str | None = None) -> None:
    """Register a tracer provider exporting over OTLP HTTP."""

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(endpoint=endpoint or settings.otel_exporter_otlp_endpoint)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)


def instrument_app(app: FastAPI) -> None:
    FastAPIInstrumentor.instrument_app(app)


@contextmanager
def provider_span(name: str, **attributes: Any) -> Iterator[trace.Span]:
    """Wrap one provider interaction (auth, create, fallback, status) in a span.

    `None` attributes are dropped; everything else is stored under `pixpay.<key>`.
    """

    with tracer.start_as_current_span(name) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(f"pixpay.{key}", value)
        yield span
