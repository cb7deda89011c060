"""Continue truncated responses across several upstream calls.

A :class:`ChatSession` feeds one :class:`~coderelay.chat.switchable_stream.SwitchableStream`.
Whenever an upstream segment stops because it hit its token limit, the partial
answer and :data:`~coderelay.chat.prompts.CONTINUE_PROMPT` are appended to the
history and a new segment is attached, until :data:`MAX_RESPONSE_SEGMENTS`
continuations have been used.
"""

from collections.abc import Awaitable, Callable, Mapping, Sequence

import structlog

from coderelay.chat.prompts import CONTINUE_PROMPT
from coderelay.chat.segments import Segment
from coderelay.chat.switchable_stream import ByteSource, SwitchableStream
from coderelay.providers.errors import SegmentLimitError

MAX_RESPONSE_SEGMENTS = 2

SegmentOpener = Callable[[list[dict[str, str]]], Awaitable[Segment]]

_log = structlog.get_logger(__name__)


class ChatSession:
    """Drives the continuation loop for one chat request.

    Args:
        messages: Conversation history from the client.  The session keeps
            its own copy and extends it with each continuation.
        open_segment: Coroutine function starting an upstream call for a
            message history; usually :func:`~coderelay.chat.segments.stream_text`
            with the request's settings, catalog, gateway and keys bound.
        max_segments: Maximum number of continuations after the first segment.
    """

    def __init__(
        self,
        messages: Sequence[Mapping[str, str]],
        open_segment: SegmentOpener,
        max_segments: int = MAX_RESPONSE_SEGMENTS,
    ) -> None:
        self.messages: list[dict[str, str]] = [dict(m) for m in messages]
        self.stream = SwitchableStream(on_source_done=self._on_segment_done)
        self._open_segment = open_segment
        self._max_segments = max_segments

    async def start(self) -> SwitchableStream:
        """Open the first upstream call and attach it.

        Upstream failures while connecting propagate to the caller before any
        byte has been produced.
        """
        segment = await self._open_segment(list(self.messages))
        await self.stream.attach(segment)
        return self.stream

    async def _on_segment_done(self, source: ByteSource) -> None:
        segment: Segment = source  # type: ignore[assignment]

        if segment.finish_reason != "length":
            await self.stream.close()
            return

        switches = self.stream.switches
        if switches >= self._max_segments:
            raise SegmentLimitError(self._max_segments, provider=segment.provider or None)

        _log.info(
            "stream_continuation",
            model=segment.model,
            provider=segment.provider,
            switches_left=self._max_segments - switches,
        )

        self.messages.append({"role": "assistant", "content": segment.text})
        self.messages.append({"role": "user", "content": CONTINUE_PROMPT})

        next_segment = await self._open_segment(list(self.messages))
        await self.stream.attach(next_segment)
