from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from insightsync.api.routes import router as api_router
from insightsync.context import get_correlation_id
from insightsync.core.config import get_settings
from insightsync.core.events import InternalEvent, event_bus
from insightsync.crm.repositories import build_store
from insightsync.crm.seed import crm_seed_helper
from insightsync.logging import configure_logging
from insightsync.middleware.correlation_id import CorrelationIdMiddleware
from insightsync.middleware.request_logging import RequestLoggingMiddleware
from insightsync.otel import setup_otel, tag_correlation_id


configure_logging()
logger = logging.getLogger("insightsync.lifecycle")
_subscriptions_registered = False


def _on_system_started(event: InternalEvent) -> None:
    logger.info(
        "system_event",
        extra={"event_name": event.name, "storage_backend": event.payload.get("storage_backend")},
    )


def _on_crm_domain_event(event: InternalEvent) -> None:
    logger.debug("domain_event", extra={"event_name": event.name})


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        event_bus.subscribe_prefix("crm.", _on_crm_domain_event)
        _subscriptions_registered = True

    settings = get_settings()
    store = build_store(settings)
    app.state.store = store
    if settings.seed_demo_data:
        crm_seed_helper.seed_if_empty(store)

    event_bus.publish("system.started", {"service": "api", "storage_backend": store.backend})
    yield


app = FastAPI(title="InsightSync API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    logger.exception("unhandled_exception", extra={"path": request.url.path, "error": str(exc)})
    headers = {"x-correlation-id": correlation_id} if correlation_id else None
    return JSONResponse(
        status_code=500,
        content={
            "code": "INTERNAL_ERROR",
            "message": "Internal server error",
            "details": None,
            "correlation_id": correlation_id,
        },
        headers=headers,
    )


settings = get_settings()
if settings.otel_enabled:
    setup_otel()

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=tag_correlation_id)
