"""
Chunked streaming of a completed response.

An ``ExecutionStream`` is registered as soon as it is opened, so it can be
cancelled before the consumer starts iterating. Iteration is lazy, finite
and not restartable. Used as an async context manager, a stream that is
left before it finished is cancelled, which releases its registry entry.
"""

import time
import uuid
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

from arena_core import CancellationToken

from .models import StreamChunk

STREAM_CANCEL_REASON = "stream_cancelled"


def chunk_text(text: str, size: int) -> list[str]:
    return [text[i:i + size] for i in range(0, len(text), size)]


@dataclass
class StreamHandle:
    task_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: float = field(default_factory=time.monotonic)
    chunks_sent: int = 0


class StreamRegistry:
    """Open streams of one executor."""

    def __init__(self) -> None:
        self._streams: dict[str, StreamHandle] = {}

    def register(self, handle: StreamHandle) -> None:
        self._streams[handle.id] = handle

    def remove(self, stream_id: str) -> StreamHandle | None:
        return self._streams.pop(stream_id, None)

    def get(self, stream_id: str) -> StreamHandle | None:
        return self._streams.get(stream_id)

    def ids(self) -> list[str]:
        return list(self._streams)

    def __contains__(self, stream_id: object) -> bool:
        return stream_id in self._streams

    def __len__(self) -> int:
        return len(self._streams)


class ExecutionStream:
    """Async iterator over the chunks of one streamed execution."""

    def __init__(
        self,
        handle: StreamHandle,
        chunks: AsyncIterator[StreamChunk],
        on_cancel: Callable[[str], bool],
    ) -> None:
        self._handle = handle
        self._chunks = chunks
        self._on_cancel = on_cancel

    @property
    def id(self) -> str:
        return self._handle.id

    @property
    def cancelled(self) -> bool:
        return self._handle.token.cancelled

    def cancel(self) -> bool:
        return self._on_cancel(self._handle.id)

    async def __aenter__(self) -> "ExecutionStream":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.cancel()
        await self.aclose()

    def __aiter__(self) -> "ExecutionStream":
        return self

    async def __anext__(self) -> StreamChunk:
        return await self._chunks.__anext__()

    async def aclose(self) -> None:
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            await aclose()
