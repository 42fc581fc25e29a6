import json

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import Counter
from pydantic import ValidationError

from drivegate.api.cors import cors_headers
from drivegate.api.deps import get_broker, get_limiter, get_origin, get_origin_predicate
from drivegate.core.constants import InitiationOutcome
from drivegate.core.errors import DriveGateError, InvalidRequestError
from drivegate.core.origins import OriginPredicate
from drivegate.core.ratelimit import SlidingWindowLimiter
from drivegate.schemas.uploads import ErrorResponse, InitiateUploadRequest, InitiateUploadResponse

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["uploads"])
INITIATIONS = Counter("drivegate_initiations_total", "Upload session initiations", ["outcome"])

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


async def _read_payload(request: Request) -> InitiateUploadRequest:
    try:
        return InitiateUploadRequest.model_validate(await request.json())
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequestError("Request body must be JSON") from exc
    except ValidationError as exc:
        raise InvalidRequestError("fileName and mimeType are required") from exc


async def initiate_upload(
    request: Request,
    origin: str | None = Depends(get_origin),
    is_origin_allowed: OriginPredicate = Depends(get_origin_predicate),
    limiter: SlidingWindowLimiter = Depends(get_limiter),
) -> Response:
    if not is_origin_allowed(origin):
        INITIATIONS.labels(outcome=InitiationOutcome.REJECTED).inc()
        logger.warning("origin_rejected", origin=origin, method=request.method)
        return PlainTextResponse("Origin not allowed", status_code=403)

    headers = cors_headers(origin)
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=headers)
    if request.method != "POST":
        return PlainTextResponse("Method Not Allowed", status_code=405, headers=headers)

    try:
        limiter.hit(f"initiate:{request.client.host if request.client else origin}")
    except HTTPException as exc:
        INITIATIONS.labels(outcome=InitiationOutcome.THROTTLED).inc()
        logger.warning("initiation_throttled", origin=origin)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.detail).model_dump(),
            headers=headers,
        )

    try:
        payload = await _read_payload(request)
        broker = get_broker(request)
        session = await broker.initiate(origin, payload.file_name, payload.mime_type)
    except DriveGateError as exc:
        INITIATIONS.labels(outcome=InitiationOutcome.FAILED).inc()
        logger.warning("initiation_failed", origin=origin, error_type=type(exc).__name__, error=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message).model_dump(),
            headers=headers,
        )

    INITIATIONS.labels(outcome=InitiationOutcome.SUCCESS).inc()
    body = InitiateUploadResponse(upload_url=session.upload_url)
    return JSONResponse(status_code=200, content=body.model_dump(by_alias=True), headers=headers)


router.add_api_route("/uploads/initiate", initiate_upload, methods=ALL_METHODS, include_in_schema=False)
