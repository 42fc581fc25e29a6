from enum import StrEnum

# Apps Script web apps are served from per-deployment googleusercontent.com hosts.
APPS_SCRIPT_ORIGIN_PATTERN = r"^https://n-([a-z0-9-]{32,})-0lu-script\.googleusercontent\.com$"

JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"

DEFAULT_CHUNK_SIZE = 10 * 1024 * 1024
DEFAULT_MAX_RETRIES = 5
DEFAULT_REQUEST_TIMEOUT = 60.0

RESUME_INCOMPLETE = 308
FINAL_SUCCESS_CODES = frozenset({200, 201})

CORS_ALLOW_METHODS = "POST, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type"


class UploadStatus(StrEnum):
    PENDING = "pending"
    INITIATING = "initiating"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadStatus.SUCCESS, UploadStatus.ERROR)


class InitiationOutcome(StrEnum):
    SUCCESS = "success"
    REJECTED = "rejected"
    FAILED = "failed"
    THROTTLED = "throttled"
