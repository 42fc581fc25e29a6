import asyncio
from pathlib import Path
from typing import Protocol


class SequentialByteSource(Protocol):
    """Yields arbitrary ``[start, end)`` slices of an upload's bytes."""

    @property
    def size(self) -> int: ...

    async def read(self, start: int, end: int) -> bytes: ...


class BytesSource:
    def __init__(self, data: bytes) -> None:
        self._data = data

    @property
    def size(self) -> int:
        return len(self._data)

    async def read(self, start: int, end: int) -> bytes:
        return self._data[start:end]


class FileSource:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._size = self.path.stat().st_size

    @property
    def size(self) -> int:
        return self._size

    def _read_range(self, start: int, end: int) -> bytes:
        with open(self.path, "rb") as f:
            f.seek(start)
            return f.read(end - start)

    async def read(self, start: int, end: int) -> bytes:
        return await asyncio.to_thread(self._read_range, start, end)
