from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

from drivegate.api.deps import get_app_settings
from drivegate.core.config import Settings

router = APIRouter(tags=["health"])
REQUEST_COUNTER = Counter("drivegate_health_requests_total", "Health probe requests", ["path"])


@router.get("/health/live")
async def health_live():
    REQUEST_COUNTER.labels(path="/health/live").inc()
    return {"status": "ok"}


@router.get("/health/ready")
async def health_ready(request: Request, settings: Settings = Depends(get_app_settings)):
    REQUEST_COUNTER.labels(path="/health/ready").inc()
    if getattr(request.app.state, "broker", None) is None:
        return JSONResponse(
            status_code=503,
            content={"status": "unconfigured", "missing": settings.missing_broker_settings()},
        )
    return {"status": "ready"}


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    return PlainTextResponse(generate_latest().decode("utf-8"), media_type=CONTENT_TYPE_LATEST)
