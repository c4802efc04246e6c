import logging
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import httpx
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from fragment_gateway.proxy.middleware import FragmentCompositionMiddleware
from fragment_gateway.rewrites import build_router
from fragment_gateway.settings import GatewaySettings, load_settings
from fragment_gateway.vars import OTLP_ENDPOINT, OTLP_HEADERS

logger = logging.getLogger("uvicorn.error")


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that filters out noisy ASGI body spans from streaming responses.
    Streamed assets would otherwise produce one tiny span per chunk.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") == "http.response.body"
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def create_app(
    settings: Optional[GatewaySettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    instrument: bool = False,
) -> FastAPI:
    """
    Build the composing application.

    ``transport`` replaces the network transport of the shared upstream client
    (tests use ``httpx.MockTransport`` to fake fragment origins).
    """
    settings = settings or load_settings()
    client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.timeout),
        follow_redirects=True,
        transport=transport,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await client.aclose()

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.http_client = client

    if instrument:
        # /metrics must be registered before the catch-all rewrite route
        Instrumentator().instrument(app).expose(app)

    app.add_middleware(FragmentCompositionMiddleware, settings=settings, client=client)
    app.include_router(build_router(settings, client))

    if settings.enabled:
        logger.info(
            "[Server] Composing fragments: "
            + ", ".join(
                f"{b.path_prefix} -> {b.name}" for b in settings.route_table
            )
        )
    else:
        logger.info("[Server] Fragment composition disabled")
    return app


def configure_tracing(app: FastAPI, service_name: str) -> None:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": service_name}))
    )
    tracer_provider = trace.get_tracer_provider()
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=OTLP_HEADERS or None,
        )
        tracer_provider.add_span_processor(
            BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
        )

    FastAPIInstrumentor.instrument_app(app)


_settings = load_settings()
app = create_app(_settings, instrument=True)
configure_tracing(app, _settings.service_name)

app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": _settings.service_name})
