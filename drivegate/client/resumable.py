"""Client side of the resumable upload protocol.

An upload moves ``pending -> initiating -> uploading -> success | error``.
Chunks go straight to the session URL handed out by the broker, one at a
time, each PUT carrying ``Content-Range: bytes <start>-<end-1>/<total>``.
A failed chunk is followed by a status query on the same session; when the
session itself is gone a fresh one is requested and the file starts over
from byte 0.
"""

import asyncio
from dataclasses import dataclass

import httpx
import structlog

from drivegate.client.collaborators import Notifier, SessionInitiator
from drivegate.client.task import UploadSession, UploadTask
from drivegate.core.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    FINAL_SUCCESS_CODES,
    RESUME_INCOMPLETE,
    UploadStatus,
)
from drivegate.core.errors import (
    ConfigurationError,
    DriveGateError,
    RecoveryError,
    RetryExhaustedError,
)

logger = structlog.get_logger(__name__)


class UploadCancelled(Exception):
    pass


@dataclass(frozen=True)
class ClientConfig:
    """Tuning for ResumableUploadClient.

    ``max_retries`` is the number of retries allowed after a chunk's first
    failure: a chunk is given up on at its ``max_retries + 1``-th consecutive
    failed attempt, and ``max_retries=0`` fails on the first error. A status
    query runs between attempts; any advance of the confirmed offset resets
    the count.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    retry_backoff: float = 0.0
    max_backoff: float = 30.0

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be positive")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must not be negative")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")
        if self.retry_backoff < 0 or self.max_backoff < 0:
            raise ConfigurationError("backoff must not be negative")


def content_range(start: int, end: int, total: int) -> str:
    """Wire form of the half-open chunk ``[start, end)``."""
    return f"bytes {start}-{end - 1}/{total}"


def parse_range_upper_bound(value: str | None) -> int | None:
    """``Range: bytes=0-<n>`` -> ``n + 1``, the count of bytes the server holds."""
    if not value:
        return None
    _, _, span = value.partition("=")
    _, sep, last = span.partition("-")
    if not sep:
        return None
    try:
        return int(last.strip()) + 1
    except ValueError:
        return None


class ResumableUploadClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        initiator: SessionInitiator,
        notifier: Notifier | None = None,
        config: ClientConfig | None = None,
    ):
        self.http = http
        self.initiator = initiator
        self.notifier = notifier
        self.config = config or ClientConfig()
        self._timeout = httpx.Timeout(self.config.request_timeout)
        self._notifications: set[asyncio.Task] = set()

    async def upload(self, task: UploadTask) -> UploadTask:
        log = logger.bind(task_id=task.id, file_name=task.file_name)
        if task.total_size == 0:
            task.transition(UploadStatus.ERROR, "Empty files are not supported")
            log.info("upload_rejected_empty")
            return task

        try:
            await self._initiate(task)
            await self._transfer(task)
        except UploadCancelled:
            task.transition(UploadStatus.ERROR, "Upload cancelled")
            log.info("upload_cancelled", bytes_confirmed=task.bytes_confirmed)
            return task
        except DriveGateError as exc:
            task.transition(UploadStatus.ERROR, exc.message)
            log.warning("upload_failed", error_type=type(exc).__name__, error=exc.message)
            return task
        except OSError as exc:
            task.transition(UploadStatus.ERROR, f"Could not read {task.file_name}: {exc}")
            log.warning("upload_source_unreadable", error=str(exc))
            return task

        task.bytes_confirmed = task.total_size
        task.transition(UploadStatus.SUCCESS)
        log.info("upload_complete", total=task.total_size)
        self._dispatch_notification(task)
        return task

    async def drain_notifications(self) -> None:
        if self._notifications:
            await asyncio.gather(*self._notifications, return_exceptions=True)

    @staticmethod
    def _check_cancelled(task: UploadTask) -> None:
        if task.cancelled:
            raise UploadCancelled()

    async def _open_session(self, task: UploadTask) -> None:
        session_url = await self.initiator.initiate(task.file_name, task.mime_type)
        self._check_cancelled(task)
        task.session = UploadSession(session_url=session_url, task_id=task.id)
        task.bytes_confirmed = 0

    async def _initiate(self, task: UploadTask) -> None:
        self._check_cancelled(task)
        task.transition(UploadStatus.INITIATING)
        await self._open_session(task)
        task.transition(UploadStatus.UPLOADING)

    async def _transfer(self, task: UploadTask) -> None:
        total = task.total_size
        while task.bytes_confirmed < total:
            start = task.bytes_confirmed
            end = min(start + self.config.chunk_size, total)
            chunk = await task.source.read(start, end)
            self._check_cancelled(task)

            try:
                response = await self.http.put(
                    task.session.session_url,
                    content=chunk,
                    headers={"Content-Range": content_range(start, end, total)},
                    timeout=self._timeout,
                )
            except httpx.RequestError as exc:
                self._check_cancelled(task)
                failure = f"{type(exc).__name__}: {exc}"
            else:
                self._check_cancelled(task)
                if response.status_code in FINAL_SUCCESS_CODES:
                    task.retry_count = 0
                    task.bytes_confirmed = total
                    return
                upper = parse_range_upper_bound(response.headers.get("Range"))
                if response.status_code == RESUME_INCOMPLETE and upper is not None and task.confirm(upper):
                    task.retry_count = 0
                    task.publish()
                    logger.debug("chunk_confirmed", task_id=task.id, confirmed=task.bytes_confirmed, total=total)
                    continue
                failure = f"HTTP {response.status_code}"

            task.retry_count += 1
            logger.warning(
                "chunk_failed",
                task_id=task.id,
                range=content_range(start, end, total),
                attempt=task.retry_count,
                failure=failure,
            )
            if task.retry_count > self.config.max_retries:
                raise RetryExhaustedError(
                    f"Upload of {task.file_name} failed after {self.config.max_retries} retries ({failure})"
                )
            await self._backoff(task)
            await self._recover(task)

    async def _backoff(self, task: UploadTask) -> None:
        if self.config.retry_backoff <= 0:
            return
        delay = min(self.config.retry_backoff * 2 ** (task.retry_count - 1), self.config.max_backoff)
        await asyncio.sleep(delay)
        self._check_cancelled(task)

    async def _recover(self, task: UploadTask) -> None:
        total = task.total_size
        self._check_cancelled(task)
        try:
            response = await self.http.put(
                task.session.session_url,
                content=b"",
                headers={"Content-Range": f"bytes */{total}"},
                timeout=self._timeout,
            )
        except httpx.RequestError as exc:
            raise RecoveryError(f"Status query for {task.file_name} failed: {exc}") from exc
        self._check_cancelled(task)

        if response.status_code in FINAL_SUCCESS_CODES:
            task.bytes_confirmed = total
            return
        if response.status_code == RESUME_INCOMPLETE:
            upper = parse_range_upper_bound(response.headers.get("Range"))
            if upper is not None and task.confirm(upper):
                task.publish()
            logger.info("upload_resumed", task_id=task.id, confirmed=task.bytes_confirmed, total=total)
            return

        # The session is gone; bytes already sent to it cannot be carried over.
        logger.warning("session_lost_restarting", task_id=task.id, status=response.status_code)
        await self._open_session(task)
        task.publish()

    def _dispatch_notification(self, task: UploadTask) -> None:
        if self.notifier is None:
            return
        job = asyncio.create_task(self._notify(task))
        self._notifications.add(job)
        job.add_done_callback(self._notifications.discard)

    async def _notify(self, task: UploadTask) -> None:
        try:
            result = await self.notifier.notify(task.file_name)
        except Exception as exc:
            task.notification_error = str(exc) or type(exc).__name__
            logger.warning("notification_failed", task_id=task.id, error=task.notification_error)
            return
        if not result.success:
            task.notification_error = result.error or "Notification failed"
            logger.warning("notification_failed", task_id=task.id, error=task.notification_error)
