from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from drivegate.api.v1.endpoints import health
from drivegate.api.v1.endpoints.uploads import ALL_METHODS, initiate_upload
from drivegate.api.v1.router import api_router
from drivegate.core.config import Settings, get_settings
from drivegate.core.errors import ConfigurationError
from drivegate.core.logging import configure_logging
from drivegate.core.origins import pattern_allow_list
from drivegate.core.ratelimit import SlidingWindowLimiter
from drivegate.services.session_broker import UploadSessionBroker

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    configure_logging(debug=settings.debug)
    owned_http: httpx.AsyncClient | None = None
    if app.state.broker is None:
        owned_http = httpx.AsyncClient(timeout=settings.request_timeout_seconds)
        try:
            app.state.broker = UploadSessionBroker(
                settings, owned_http, is_origin_allowed=app.state.is_origin_allowed
            )
        except ConfigurationError as exc:
            app.state.config_error = exc.message
            logger.error("broker_misconfigured", error=exc.message)
    logger.info("startup", env=settings.app_env, configured=app.state.broker is not None)
    yield
    if owned_http is not None:
        await owned_http.aclose()
    logger.info("shutdown")


def create_app(settings: Settings | None = None, broker: UploadSessionBroker | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
    app.state.settings = settings
    app.state.broker = broker
    app.state.config_error = None
    app.state.is_origin_allowed = (
        broker.is_origin_allowed if broker is not None else pattern_allow_list(settings.allowed_origin_pattern)
    )
    app.state.limiter = SlidingWindowLimiter(settings.rate_limit_per_minute, window_seconds=60)
    app.add_middleware(GZipMiddleware, minimum_size=500)

    @app.middleware("http")
    async def request_log_middleware(request: Request, call_next):
        response = await call_next(request)
        logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
        )
        return response

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_: Request, exc: Exception):
        logger.exception("unhandled_exception", error=str(exc))
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})

    # Apps Script callers post to the bare host
    app.add_api_route("/", initiate_upload, methods=ALL_METHODS, include_in_schema=False)
    app.include_router(api_router, prefix=settings.api_prefix)
    app.include_router(health.router)
    return app
