from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import uuid4

from pyee.base import EventEmitter

from drivegate.client.byte_source import SequentialByteSource
from drivegate.core.constants import UploadStatus

STATE_EVENT = "state"


@dataclass(frozen=True)
class UploadEvent:
    task_id: str
    status: UploadStatus
    progress: int
    error: str | None = None


@dataclass
class UploadSession:
    session_url: str
    task_id: str


@dataclass(eq=False)
class UploadTask:
    source: SequentialByteSource
    file_name: str
    mime_type: str
    id: str = field(default_factory=lambda: uuid4().hex)
    status: UploadStatus = UploadStatus.PENDING
    bytes_confirmed: int = 0
    retry_count: int = 0
    error: str | None = None
    session: UploadSession | None = None
    notification_error: str | None = None
    _cancelled: bool = field(default=False, init=False, repr=False)
    _events: EventEmitter = field(default_factory=EventEmitter, init=False, repr=False)

    @property
    def total_size(self) -> int:
        return self.source.size

    @property
    def progress(self) -> int:
        if self.total_size <= 0:
            return 0
        return self.bytes_confirmed * 100 // self.total_size

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def subscribe(self, handler: Callable[[UploadEvent], None]) -> None:
        self._events.on(STATE_EVENT, handler)

    def unsubscribe(self, handler: Callable[[UploadEvent], None]) -> None:
        self._events.remove_listener(STATE_EVENT, handler)

    def publish(self) -> None:
        self._events.emit(
            STATE_EVENT,
            UploadEvent(task_id=self.id, status=self.status, progress=self.progress, error=self.error),
        )

    def transition(self, status: UploadStatus, error: str | None = None) -> None:
        self.status = status
        self.error = error
        self.publish()

    def confirm(self, upper_bound: int) -> bool:
        """Advance the confirmed offset; returns False when nothing moved."""
        confirmed = min(upper_bound, self.total_size)
        if confirmed <= self.bytes_confirmed:
            return False
        self.bytes_confirmed = confirmed
        return True
