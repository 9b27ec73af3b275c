import logging
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
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
from prometheus_client import CollectorRegistry, Info
from prometheus_fastapi_instrumentator import Instrumentator

from proxy_gateway.client import build_client
from proxy_gateway.config import AppConfig
from proxy_gateway.forwarding import router
from proxy_gateway.vars import METRICS_PATH, OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME

logger = logging.getLogger("uvicorn.error")


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that drops the per-chunk ASGI body spans, which would
    otherwise outnumber the proxy spans for large responses.
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


def configure_tracing(app: FastAPI) -> None:
    """Export spans over OTLP when an endpoint is configured."""
    if not OTLP_ENDPOINT:
        return
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        # "k1=v1,k2=v2", parsed by the exporter itself
        headers=OTLP_HEADERS or None,
    )
    trace.get_tracer_provider().add_span_processor(
        BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
    )
    FastAPIInstrumentor.instrument_app(app)


def configure_metrics(app: FastAPI) -> None:
    if not METRICS_PATH:
        return
    # Own registry per app, several apps may live in one process (tests)
    registry = CollectorRegistry()
    Instrumentator(registry=registry).instrument(app).expose(
        app, endpoint=METRICS_PATH, include_in_schema=False
    )
    app_info = Info(
        "proxy_gateway_app_info", "Application Info", registry=registry
    )
    app_info.info({"app_name": SERVICE_NAME})


def create_app(
    config: AppConfig, client: Optional[httpx.AsyncClient] = None
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        config: The immutable configuration record
        client: Outbound client to use instead of building one; the caller
            keeps ownership and closes it

    Returns:
        The FastAPI application forwarding under config.proxy.path_prefix
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for line in config.describe():
            logger.info(line)
        owns_client = client is None
        app.state.client = build_client(config) if owns_client else client
        try:
            yield
        finally:
            if owns_client:
                await app.state.client.aclose()

    # No docs routes, every path belongs to the upstream
    app = FastAPI(
        title=SERVICE_NAME,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    configure_metrics(app)
    configure_tracing(app)

    app.include_router(router)
    return app
