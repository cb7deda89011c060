"""A single output byte stream whose upstream source can be swapped mid-flight.

:class:`SwitchableStream` owns at most one active source.  Consumers iterate
the stream itself; each iteration step pulls exactly one chunk from the active
source, so a slow consumer throttles the upstream.  When the active source
drains, the ``on_source_done`` hook decides whether to :meth:`attach` a
follow-up source or let the stream close.

:meth:`close` and :meth:`attach` may be called from another task while a read
is in flight; the pending read is cancelled before its source is closed.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum

import structlog

_log = structlog.get_logger(__name__)

ByteSource = AsyncIterator[bytes]
SourceDoneHook = Callable[[ByteSource], Awaitable[None]]


class StreamState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    CLOSED = "closed"
    ERRORED = "errored"


async def _read(source: ByteSource) -> bytes:
    return await source.__anext__()


async def _cancel(source: ByteSource) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        await aclose()


def _cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class SwitchableStream:
    """State machine relaying bytes from a replaceable upstream source.

    States move ``IDLE -> STREAMING -> CLOSED | ERRORED``; both terminal
    states are final.  Bytes of one source are relayed completely, in arrival
    order, before the next source is read.

    Args:
        on_source_done: Awaited with the drained source whenever the active
            source is exhausted.  It may call :meth:`attach` to continue the
            stream or :meth:`close` to end it; if it does neither, the stream
            closes.  An exception raised by the hook errors the stream.
    """

    def __init__(self, on_source_done: SourceDoneHook | None = None) -> None:
        self._on_source_done = on_source_done
        self._source: ByteSource | None = None
        self._switches = 0
        self._state = StreamState.IDLE
        self._error: BaseException | None = None
        self._pending: asyncio.Future[bytes] | None = None

    @property
    def switches(self) -> int:
        """Number of times an attached source replaced a previous one."""
        return self._switches

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def is_terminal(self) -> bool:
        return self._state in (StreamState.CLOSED, StreamState.ERRORED)

    async def attach(self, source: ByteSource) -> None:
        """Make *source* the active source, cancelling the previous one first."""
        if self.is_terminal:
            raise RuntimeError(f"cannot attach a source to a {self._state.value} stream")

        previous = self._source
        if previous is not None:
            await self._cancel_pending_read()
            await _cancel(previous)
            self._switches += 1
        self._source = source
        self._state = StreamState.STREAMING

    async def close(self) -> None:
        """End the stream and cancel the active source.  Safe to call repeatedly."""
        if self.is_terminal:
            return
        self._state = StreamState.CLOSED
        await self._release()

    async def fail(self, error: BaseException) -> None:
        """Put the stream into the terminal error state."""
        if self.is_terminal:
            return
        self._state = StreamState.ERRORED
        self._error = error
        _log.warning("switchable_stream_error", error_type=type(error).__name__, error=str(error))
        await self._release()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._pump()

    async def _cancel_pending_read(self) -> None:
        # A source cannot be closed while one of its reads is running.
        read, self._pending = self._pending, None
        if read is not None and not read.done():
            read.cancel()
            await asyncio.wait({read})

    async def _release(self) -> None:
        await self._cancel_pending_read()
        source, self._source = self._source, None
        if source is not None:
            await _cancel(source)

    async def _pump(self) -> AsyncIterator[bytes]:
        try:
            while self._state is StreamState.STREAMING:
                source = self._source
                if source is None:
                    raise RuntimeError("streaming state without an active source")

                read = asyncio.ensure_future(_read(source))
                self._pending = read
                try:
                    chunk = await read
                except StopAsyncIteration:
                    self._pending = None
                    await self._source_done(source)
                    continue
                except asyncio.CancelledError:
                    if _cancelling():
                        raise
                    # The read was cancelled by close() or attach() in another task.
                    continue
                except Exception as exc:
                    self._pending = None
                    await self.fail(exc)
                    raise
                self._pending = None

                if self.is_terminal or self._source is not source:
                    continue
                yield chunk
        finally:
            # Consumer closed the iterator early, or the stream ended.
            await self.close()

        if self._error is not None:
            raise self._error

    async def _source_done(self, source: ByteSource) -> None:
        if self._on_source_done is not None:
            try:
                await self._on_source_done(source)
            except Exception as exc:
                await self.fail(exc)
                raise

        if self._state is StreamState.STREAMING and self._source is source:
            await self.close()
