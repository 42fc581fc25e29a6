import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
import structlog

from drivegate.core.constants import JWT_BEARER_GRANT_TYPE
from drivegate.core.errors import NetworkError, UpstreamError
from drivegate.core.security import JwtSigner, ServiceCredential

logger = structlog.get_logger(__name__)

REFRESH_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: float

    def is_fresh(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now < self.expires_at - REFRESH_MARGIN_SECONDS

    def __repr__(self) -> str:
        return f"AccessToken(expires_at={self.expires_at})"


class TokenService:
    """Trades a signed service-account assertion for a bearer token."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        credential: ServiceCredential,
        token_uri: str,
        scope: str,
        signer: JwtSigner | None = None,
        ttl_seconds: int = 3600,
    ):
        self.http = http
        self.credential = credential
        self.token_uri = token_uri
        self.scope = scope
        self.signer = signer or JwtSigner()
        self.ttl_seconds = ttl_seconds

    async def fetch(self) -> AccessToken:
        assertion = self.signer.assertion(
            self.credential, scope=self.scope, audience=self.token_uri, expires_in=self.ttl_seconds
        )
        try:
            response = await self.http.post(
                self.token_uri,
                data={"grant_type": JWT_BEARER_GRANT_TYPE, "assertion": assertion},
            )
        except httpx.RequestError as exc:
            raise NetworkError(f"Token endpoint unreachable: {exc}") from exc

        if not response.is_success:
            logger.warning("token_exchange_failed", status=response.status_code)
            raise UpstreamError(
                f"Token exchange failed: {response.status_code} {response.text}",
                status=response.status_code,
                body=response.text,
            )
        try:
            payload = response.json()
            value = payload["access_token"]
            expires_in = int(payload.get("expires_in", self.ttl_seconds))
        except (ValueError, KeyError, TypeError) as exc:
            raise UpstreamError(
                "Token endpoint returned a malformed response", status=response.status_code, body=response.text
            ) from exc

        logger.info("token_exchanged", expires_in=expires_in)
        return AccessToken(value=value, expires_at=time.time() + expires_in)


class AccessTokenCache:
    """Keeps one token alive for all initiations; refresh is single-flight."""

    def __init__(self, fetch: Callable[[], Awaitable[AccessToken]]):
        self._fetch = fetch
        self._token: AccessToken | None = None
        self._lock = asyncio.Lock()

    async def get(self) -> AccessToken:
        token = self._token
        if token is not None and token.is_fresh():
            return token
        async with self._lock:
            token = self._token
            if token is not None and token.is_fresh():
                return token
            self._token = await self._fetch()
            return self._token

    def invalidate(self) -> None:
        self._token = None
