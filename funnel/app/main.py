"""
Lead Funnel API Main Application
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response
import structlog

from .core.config import settings
from .core.database import init_db, close_db
from .core.exceptions import FunnelError
from .core.logging_config import configure_logging
from .middleware.observability import access_log_middleware, metrics_middleware
from .services.ai_service import AIService
from .services.calendar_service import CalendarService
from .services.email_provider import EmailProvider
from .services.notification_service import NotificationService
from .api import analytics, booking, chatbot, email, health, leads

configure_logging(settings.log_level, debug=settings.debug)
logger = structlog.get_logger()

# app.state attribute -> client class; one instance each for the process
SHARED_CLIENTS = {
    "ai_service": AIService,
    "email_provider": EmailProvider,
    "calendar_service": CalendarService,
    "notification_service": NotificationService,
}

API_ROUTERS = (leads.router, chatbot.router, email.router, booking.router, analytics.router)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Lead Funnel API", version=settings.version, environment=settings.environment)
    await init_db()

    for name, client_class in SHARED_CLIENTS.items():
        setattr(app.state, name, client_class.from_settings())

    configured = {name: getattr(getattr(app.state, name), "enabled", True) for name in SHARED_CLIENTS}
    logger.info("External clients ready", **configured)

    yield

    logger.info("Shutting down Lead Funnel API")
    for name in SHARED_CLIENTS:
        client = getattr(app.state, name, None)
        if client is not None:
            await client.close()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Lead capture, chatbot, email nurture, call booking and funnel analytics",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.middleware("http")(metrics_middleware)
app.middleware("http")(access_log_middleware)


def _error(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


@app.exception_handler(FunnelError)
async def funnel_error_handler(request: Request, exc: FunnelError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log("Request failed", path=request.url.path, error=exc.message, status_code=exc.status_code)
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report the first failing field as a 400"""
    errors = exc.errors()
    if not errors:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request")

    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(location) or "request"
    return _error(status.HTTP_400_BAD_REQUEST, f"Invalid {field}: {first.get('msg', 'invalid value')}")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", path=request.url.path, method=request.method, error=str(exc), exc_info=exc)
    message = "Internal server error" if settings.environment == "production" else str(exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, message)


app.include_router(health.router)
for router in API_ROUTERS:
    app.include_router(router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {
        "service": settings.app_name,
        "version": settings.version,
        "status": "operational",
        "environment": settings.environment,
        "api": settings.api_prefix,
    }


@app.get("/metrics")
async def metrics():
    """Prometheus exposition"""
    if not settings.prometheus_enabled:
        return _error(status.HTTP_404_NOT_FOUND, "Metrics not enabled")
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "funnel.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
