from contextlib import asynccontextmanager

import sentry_sdk
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.middleware.cors import CORSMiddleware

from gateway.api.main import api_router
from gateway.api.routes import health
from gateway.core.config import settings
from gateway.core.logging import configure_logging
from gateway.middleware.request_id import RequestIdMiddleware
from gateway.observability import MetricsMiddleware, metrics_router
from gateway.providers.bailian import BailianForwarder
from gateway.schemas import ErrorDetail, ErrorEnvelope
from gateway.services.router import resolve_upstream

logger = structlog.get_logger()


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL, settings.ENVIRONMENT)
    settings.check_credentials()
    upstream = resolve_upstream(settings)
    logger.info(
        "gateway_starting",
        port=settings.PORT,
        app_id=settings.ALIYUN_APP_ID,
        endpoint=upstream.endpoint,
        mode="native" if upstream.native else "compatible",
    )
    app.state.forwarder = BailianForwarder.from_settings(settings)
    try:
        yield
    finally:
        await app.state.forwarder.aclose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)

app.add_middleware(RequestIdMiddleware)
app.add_middleware(MetricsMiddleware)

if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _error_response(status_code: int, message: str, error_type: str) -> JSONResponse:
    envelope = ErrorEnvelope(error=ErrorDetail(message=message, type=error_type))
    return JSONResponse(status_code=status_code, content=envelope.model_dump(exclude_none=True))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    message = "Invalid request: " + "; ".join(problems)
    logger.info("request_rejected", reason=message)
    return _error_response(400, message, "invalid_request_error")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return _error_response(500, "Internal server error", "server_error")


app.include_router(api_router, prefix=settings.API_V1_STR)
app.include_router(health.router)
app.include_router(metrics_router)
