import httpx
import structlog

from drivegate.core.errors import NetworkError, UpstreamError
from drivegate.integrations.storage.base import ResumableSession, SessionProvider

logger = structlog.get_logger(__name__)


class DriveSessionProvider(SessionProvider):
    name = "drive"

    def __init__(self, http: httpx.AsyncClient, upload_url: str, folder_id: str) -> None:
        self.http = http
        self.upload_url = upload_url
        self.folder_id = folder_id

    async def create_session(
        self, access_token: str, file_name: str, mime_type: str, origin: str
    ) -> ResumableSession:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json; charset=UTF-8",
            "X-Upload-Content-Type": mime_type,
            # Drive binds CORS for the session URL to this origin
            "Origin": origin,
        }
        try:
            response = await self.http.post(
                self.upload_url,
                params={"uploadType": "resumable"},
                headers=headers,
                json={"name": file_name, "parents": [self.folder_id]},
            )
        except httpx.RequestError as exc:
            raise NetworkError(f"Drive API unreachable: {exc}") from exc

        if not response.is_success:
            logger.warning("drive_session_rejected", status=response.status_code)
            raise UpstreamError(
                f"Google API Error: {response.status_code} {response.text}",
                status=response.status_code,
                body=response.text,
            )
        location = response.headers.get("Location")
        if not location:
            raise UpstreamError(
                "Google API Error: session created without a Location header", status=response.status_code
            )
        return ResumableSession(
            upload_url=location,
            file_name=file_name,
            mime_type=mime_type,
            folder_id=self.folder_id,
        )
