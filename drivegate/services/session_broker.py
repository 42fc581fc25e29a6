from dataclasses import dataclass

import httpx
import structlog

from drivegate.core.config import Settings
from drivegate.core.errors import AuthorizationError, InvalidRequestError, UpstreamError
from drivegate.core.origins import OriginPredicate, pattern_allow_list
from drivegate.core.security import JwtSigner, ServiceCredential
from drivegate.integrations.storage.base import SessionProvider
from drivegate.integrations.storage.drive import DriveSessionProvider
from drivegate.services.token_service import AccessToken, AccessTokenCache, TokenService

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class InitiatedSession:
    upload_url: str


class UploadSessionBroker:
    """Opens Drive resumable sessions on behalf of allow-listed origins.

    The caller only ever receives the session URL; the service credential and
    the bearer token stay inside the broker.
    """

    def __init__(
        self,
        settings: Settings,
        http: httpx.AsyncClient,
        is_origin_allowed: OriginPredicate | None = None,
        signer: JwtSigner | None = None,
        provider: SessionProvider | None = None,
    ):
        settings.validate_broker()
        self.settings = settings
        self.credential = ServiceCredential.from_settings(settings)
        self.is_origin_allowed = is_origin_allowed or pattern_allow_list(settings.allowed_origin_pattern)
        self.tokens = TokenService(
            http=http,
            credential=self.credential,
            token_uri=settings.token_uri,
            scope=settings.drive_scope,
            signer=signer,
            ttl_seconds=settings.token_ttl_seconds,
        )
        self.token_cache = AccessTokenCache(self.tokens.fetch) if settings.token_cache_enabled else None
        self.provider = provider or DriveSessionProvider(
            http=http,
            upload_url=settings.drive_upload_url,
            folder_id=settings.drive_folder_id,
        )

    def check_origin(self, origin: str | None) -> str:
        if not self.is_origin_allowed(origin):
            logger.warning("origin_rejected", origin=origin)
            raise AuthorizationError("Origin not allowed")
        return origin

    async def _access_token(self) -> AccessToken:
        if self.token_cache is not None:
            return await self.token_cache.get()
        return await self.tokens.fetch()

    async def initiate(self, origin: str | None, file_name: str, mime_type: str) -> InitiatedSession:
        origin = self.check_origin(origin)
        if not file_name or not file_name.strip():
            raise InvalidRequestError("fileName is required")
        mime_type = mime_type or "application/octet-stream"

        token = await self._access_token()
        try:
            session = await self.provider.create_session(
                access_token=token.value,
                file_name=file_name,
                mime_type=mime_type,
                origin=origin,
            )
        except UpstreamError as exc:
            if exc.status == 401 and self.token_cache is not None:
                self.token_cache.invalidate()
            raise
        logger.info("session_initiated", origin=origin, file_name=file_name, mime_type=mime_type)
        return InitiatedSession(upload_url=session.upload_url)
