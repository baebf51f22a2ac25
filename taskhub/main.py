from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from .api.routes import router as api_router
from .core.audit import RequestLoggingMiddleware
from .core.config import get_settings
from .core.errors import ValidationFailed, classify_failure
from .core.logging import configure_logging, get_logger
from .dependencies import close_document_store, get_document_store_singleton

settings = get_settings()
configure_logging(settings.observability.log_level)
logger = get_logger(name=__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    store = get_document_store_singleton(settings)
    logger.info("taskhub_started", environment=settings.environment, store=store.name)
    try:
        yield
    finally:
        await close_document_store()
        logger.info("taskhub_stopped")


app = FastAPI(title="Taskhub API", version="0.1.0", lifespan=app_lifespan)
if settings.observability.request_logging:
    app.add_middleware(RequestLoggingMiddleware, include_prefixes=(settings.api_prefix,))
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix=settings.api_prefix)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed JSON bodies never reach the route handlers.
    failure = ValidationFailed(data={"errors": jsonable_errors(exc)})
    outcome = classify_failure(failure, fallback="Validation error")
    return JSONResponse(status_code=outcome.status_code, content={"message": outcome.message, "data": outcome.data})


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    return [
        {"loc": list(error.get("loc", ())), "msg": str(error.get("msg", "")), "type": str(error.get("type", ""))}
        for error in exc.errors()
    ]


@app.get("/", tags=["health"])
async def root() -> dict[str, str]:
    return {"message": "Taskhub API running"}


if settings.observability.prometheus_enabled:

    @app.get("/metrics", tags=["observability"])
    async def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
