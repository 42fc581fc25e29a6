import asyncio

import structlog

from drivegate.client.byte_source import SequentialByteSource
from drivegate.client.resumable import ResumableUploadClient
from drivegate.client.task import UploadTask

logger = structlog.get_logger(__name__)


class UploadQueue:
    """Runs every enqueued upload as its own asyncio task."""

    def __init__(self, client: ResumableUploadClient) -> None:
        self.client = client
        self.tasks: dict[str, UploadTask] = {}
        self._running: dict[str, asyncio.Task] = {}

    def enqueue(
        self, source: SequentialByteSource, file_name: str, mime_type: str = "application/octet-stream"
    ) -> UploadTask:
        task = UploadTask(source=source, file_name=file_name, mime_type=mime_type)
        self.tasks[task.id] = task
        self._running[task.id] = asyncio.create_task(self.client.upload(task))
        logger.info("upload_enqueued", task_id=task.id, file_name=file_name, size=task.total_size)
        return task

    def remove(self, task_id: str) -> UploadTask | None:
        task = self.tasks.pop(task_id, None)
        if task is not None and not task.status.is_terminal:
            task.cancel()
        return task

    async def wait(self) -> list[UploadTask]:
        running = list(self._running.values())
        await asyncio.gather(*running)
        self._running.clear()
        await self.client.drain_notifications()
        return list(self.tasks.values())
