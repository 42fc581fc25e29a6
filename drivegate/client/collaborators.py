from dataclasses import dataclass
from typing import Protocol

import httpx

from drivegate.core.config import is_placeholder
from drivegate.core.errors import ConfigurationError, NetworkError, UpstreamError
from drivegate.services.session_broker import UploadSessionBroker


class SessionInitiator(Protocol):
    async def initiate(self, file_name: str, mime_type: str) -> str: ...


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    error: str | None = None


class Notifier(Protocol):
    async def notify(self, file_name: str) -> NotificationResult: ...


class BrokerClient:
    """Calls a remote broker over HTTP the way a browser page would."""

    def __init__(self, http: httpx.AsyncClient, broker_url: str, origin: str) -> None:
        if is_placeholder(broker_url):
            raise ConfigurationError("broker_url is not configured")
        self.http = http
        self.broker_url = broker_url
        self.origin = origin

    async def initiate(self, file_name: str, mime_type: str) -> str:
        try:
            response = await self.http.post(
                self.broker_url,
                json={"fileName": file_name, "mimeType": mime_type},
                headers={"Origin": self.origin},
            )
        except httpx.RequestError as exc:
            raise NetworkError(f"Broker unreachable: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            raise UpstreamError(
                f"Broker error: {response.status_code} {response.text}",
                status=response.status_code,
                body=response.text,
            ) from None
        if not isinstance(payload, dict) or not payload.get("success") or not payload.get("uploadUrl"):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise UpstreamError(
                error or f"Broker error: {response.status_code}",
                status=response.status_code,
                body=response.text,
            )
        return payload["uploadUrl"]


class InProcessInitiator:
    """Drives an UploadSessionBroker directly, for uploads that start server-side."""

    def __init__(self, broker: UploadSessionBroker, origin: str) -> None:
        self.broker = broker
        self.origin = origin

    async def initiate(self, file_name: str, mime_type: str) -> str:
        session = await self.broker.initiate(self.origin, file_name, mime_type)
        return session.upload_url


class HttpNotifier:
    def __init__(self, http: httpx.AsyncClient, notify_url: str) -> None:
        self.http = http
        self.notify_url = notify_url

    async def notify(self, file_name: str) -> NotificationResult:
        response = await self.http.post(self.notify_url, json={"fileName": file_name})
        try:
            payload = response.json()
        except ValueError:
            return NotificationResult(success=False, error=f"Notifier returned {response.status_code}")
        if not response.is_success or not payload.get("success"):
            return NotificationResult(
                success=False, error=payload.get("error") or f"Notifier returned {response.status_code}"
            )
        return NotificationResult(success=True)
