import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import make_asgi_app

from coderelay.api.chat import router as chat_router
from coderelay.api.enhancer import router as enhancer_router
from coderelay.api.health import router as health_router
from coderelay.api.models import router as models_router
from coderelay.config import settings
from coderelay.providers import LiteLLMGateway, ModelCatalog

# ---------------------------------------------------------------------------
# Structured logging
# ---------------------------------------------------------------------------
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        structlog.stdlib.NAME_TO_LEVEL.get(settings.log_level.lower(), 20)
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger()

# ---------------------------------------------------------------------------
# OpenTelemetry
# ---------------------------------------------------------------------------
resource = Resource.create({"service.name": settings.otel_service_name})
tracer_provider = TracerProvider(resource=resource)
otlp_exporter = OTLPSpanExporter(
    endpoint=f"{settings.otel_exporter_otlp_endpoint}/v1/traces",
)
tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
trace.set_tracer_provider(tracer_provider)

# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------
app = FastAPI(
    title="CodeRelay",
    version=settings.app_version,
    description=(
        "Streaming relay between a browser coding assistant and many LLM "
        "providers, with transparent continuation of truncated answers."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Prometheus metrics endpoint mounted as a sub-application
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Routers
app.include_router(health_router)
app.include_router(chat_router)
app.include_router(enhancer_router)
app.include_router(models_router)


@app.exception_handler(RequestValidationError)
async def _invalid_request(request: Request, exc: RequestValidationError) -> PlainTextResponse:
    log.warning("request_validation_failed", path=request.url.path, errors=len(exc.errors()))
    return PlainTextResponse("Invalid request body", status_code=400)


# Instrument *after* routes are registered
FastAPIInstrumentor.instrument_app(app, tracer_provider=tracer_provider)


# ---------------------------------------------------------------------------
# Lifecycle events
# ---------------------------------------------------------------------------
@app.on_event("startup")
async def _startup() -> None:
    # Shared collaborators live on app.state; the dependencies in
    # coderelay.api.dependencies hand them to every request handler.
    app.state.settings = settings
    app.state.gateway = LiteLLMGateway(
        timeout=settings.llm_timeout,
        max_retries=settings.llm_max_retries,
    )
    app.state.catalog = ModelCatalog(settings)

    models = await app.state.catalog.refresh()

    log.info(
        "coderelay ready",
        host=settings.host,
        port=settings.port,
        llm_timeout=settings.llm_timeout,
        llm_max_retries=settings.llm_max_retries,
        models=len(models),
        running_in_docker=settings.running_in_docker,
        otel_endpoint=settings.otel_exporter_otlp_endpoint,
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    log.info("coderelay shutting down")
    tracer_provider.shutdown()
