from collections.abc import Callable
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from drivegate.core.config import Settings

ALLOWED_ORIGIN = "https://n-" + "a1b2c3d4" * 5 + "-0lu-script.googleusercontent.com"
TOKEN_URI = "https://oauth2.example.test/token"
DRIVE_UPLOAD_URL = "https://drive.example.test/upload/drive/v3/files"
SESSION_URL = "https://drive.example.test/upload/drive/v3/files?uploadType=resumable&upload_id=abc123"


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_pem(rsa_key) -> str:
    return rsa_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


@pytest.fixture
def settings(private_pem) -> Settings:
    return Settings(
        _env_file=None,
        client_email="uploader@project.iam.gserviceaccount.com",
        private_key=private_pem,
        drive_folder_id="folder-123",
        token_uri=TOKEN_URI,
        drive_upload_url=DRIVE_UPLOAD_URL,
        rate_limit_per_minute=0,
    )


class FakeGoogle:
    """Token endpoint plus Drive session-create endpoint behind one MockTransport."""

    def __init__(self, session_url: str = SESSION_URL) -> None:
        self.session_url = session_url
        self.token_requests: list[httpx.Request] = []
        self.drive_requests: list[httpx.Request] = []
        self.token_response = httpx.Response(200, json={"access_token": "ya29.token", "expires_in": 3599})
        self.drive_response: httpx.Response | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith(TOKEN_URI):
            self.token_requests.append(request)
            return self.token_response
        if url.startswith(DRIVE_UPLOAD_URL):
            self.drive_requests.append(request)
            if self.drive_response is not None:
                return self.drive_response
            return httpx.Response(200, headers={"Location": self.session_url})
        return httpx.Response(404)

    def token_form(self, index: int = 0) -> dict[str, list[str]]:
        return parse_qs(self.token_requests[index].content.decode())


@pytest.fixture
def google() -> FakeGoogle:
    return FakeGoogle()


ChunkHook = Callable[[str, int, int], httpx.Response | None]


class FakeUploadServer:
    """In-memory stand-in for Drive's resumable session endpoint."""

    def __init__(self) -> None:
        self.sessions: dict[str, bytearray] = {}
        self.dead: set[str] = set()
        self.requests: list[tuple[str, str]] = []
        self.on_chunk: ChunkHook | None = None
        self.on_status: Callable[[str], httpx.Response | None] | None = None

    def open(self) -> str:
        url = f"https://upload.example.test/session/{len(self.sessions) + 1}"
        self.sessions[url] = bytearray()
        return url

    def chunk_ranges(self, url: str | None = None) -> list[tuple[int, int]]:
        ranges = []
        for session_url, header in self.requests:
            if url is not None and session_url != url:
                continue
            span = header.split(" ")[1].split("/")[0]
            if span == "*":
                continue
            start, last = span.split("-")
            ranges.append((int(start), int(last) + 1))
        return ranges

    def status_queries(self) -> int:
        return sum(1 for _, header in self.requests if header.startswith("bytes */"))

    @staticmethod
    def _incomplete(data: bytearray) -> httpx.Response:
        headers = {"Range": f"bytes=0-{len(data) - 1}"} if data else {}
        return httpx.Response(308, headers=headers)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        header = request.headers["Content-Range"]
        self.requests.append((url, header))
        data = self.sessions.get(url)
        if data is None or url in self.dead:
            return httpx.Response(404, text="Not Found")

        span, total = header.split(" ")[1].split("/")
        total = int(total)
        if span == "*":
            if self.on_status is not None:
                override = self.on_status(url)
                if override is not None:
                    return override
            if len(data) >= total:
                return httpx.Response(200, json={"id": "file-1"})
            return self._incomplete(data)

        start, last = (int(part) for part in span.split("-"))
        if self.on_chunk is not None:
            override = self.on_chunk(url, start, last + 1)
            if override is not None:
                return override
        if start != len(data):
            return self._incomplete(data)
        data.extend(request.content)
        if len(data) >= total:
            return httpx.Response(200, json={"id": "file-1", "name": "upload.bin"})
        return self._incomplete(data)


@pytest.fixture
def upload_server() -> FakeUploadServer:
    return FakeUploadServer()
