from fastapi import Request

from drivegate.core.config import Settings
from drivegate.core.errors import ConfigurationError
from drivegate.core.origins import OriginPredicate
from drivegate.core.ratelimit import SlidingWindowLimiter
from drivegate.services.session_broker import UploadSessionBroker


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_origin_predicate(request: Request) -> OriginPredicate:
    return request.app.state.is_origin_allowed


def get_limiter(request: Request) -> SlidingWindowLimiter:
    return request.app.state.limiter


def get_broker(request: Request) -> UploadSessionBroker:
    broker = getattr(request.app.state, "broker", None)
    if broker is None:
        reason = getattr(request.app.state, "config_error", None) or "Upload broker is not configured"
        raise ConfigurationError(reason)
    return broker


def get_origin(request: Request) -> str | None:
    return request.headers.get("Origin")
