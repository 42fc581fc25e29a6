from dataclasses import dataclass


@dataclass
class ResumableSession:
    upload_url: str
    file_name: str
    mime_type: str
    folder_id: str


class SessionProvider:
    name: str = "base"

    async def create_session(
        self, access_token: str, file_name: str, mime_type: str, origin: str
    ) -> ResumableSession:
        raise NotImplementedError
