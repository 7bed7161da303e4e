"""
Streaming uploader.

Moves a byte stream into a blob sink with bounded memory. A reader task
fills a bounded asyncio.Queue while the caller drains it into the sink; the
reader blocks on a full queue, so at most ``queue_size`` chunks are held in
memory whatever the payload size.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterable, AsyncIterator, Callable
from pathlib import Path

import aiofiles

from mdloader.store.base import BlobSink
from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.load.uploader")

DEFAULT_READ_CHUNK_SIZE = 1024 * 1024

_END = object()


class _ReadFailure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


async def read_file_chunks(path: Path, chunk_size: int = DEFAULT_READ_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield the content of a file in chunks, reading off the event loop."""
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            yield chunk


async def _pump(source: AsyncIterable[bytes], queue: asyncio.Queue) -> None:
    try:
        async for chunk in source:
            if chunk:
                await queue.put(chunk)
    except Exception as e:
        await queue.put(_ReadFailure(e))
    else:
        await queue.put(_END)


class StreamingUploader:
    """
    Transfers byte streams into blob sinks.

    Args:
        queue_size: Chunks buffered between the reader and the sink
    """

    def __init__(self, queue_size: int = 4) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self.queue_size = queue_size

    async def upload(
        self,
        source: AsyncIterable[bytes],
        sink: BlobSink,
        on_progress: Callable[[int], None] | None = None,
    ) -> int:
        """
        Stream source into sink and finalize it.

        The sink is closed only once the source is fully drained. On any read
        or write error the sink is aborted and the original exception is
        re-raised.

        Returns:
            Number of bytes committed to the sink
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        reader = asyncio.create_task(_pump(source, queue))
        written = 0
        try:
            while True:
                item = await queue.get()
                if item is _END:
                    break
                if isinstance(item, _ReadFailure):
                    raise item.error
                await sink.write(item)
                written += len(item)
                if on_progress is not None:
                    on_progress(len(item))
            await sink.close()
        except BaseException:
            logger.error(f"Transfer of '{sink.filename}' failed after {written} bytes, discarding partial blob")
            await sink.abort()
            raise
        finally:
            if not reader.done():
                reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        logger.debug(f"Transferred {written} bytes into '{sink.filename}' -> {sink.blob_id}")
        return written
