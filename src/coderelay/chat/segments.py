"""One upstream generation call, exposed as a source of data-stream bytes."""

from collections.abc import AsyncIterator, Mapping, Sequence

import structlog

from coderelay.chat.prompts import build_system_prompt
from coderelay.chat.routing import prepare_conversation
from coderelay.chat.stream_parts import format_stream_part
from coderelay.config import Settings
from coderelay.providers.catalog import ModelCatalog
from coderelay.providers.factory import bind
from coderelay.providers.litellm_wrapper import LiteLLMGateway
from coderelay.providers.models import CompletionChunk, CompletionRequest

_log = structlog.get_logger(__name__)


class Segment:
    """Relays one upstream call as text parts and remembers how it ended.

    After the segment is drained, :attr:`text` holds everything it produced
    and :attr:`finish_reason` the upstream stop reason (``"stop"``,
    ``"length"``, ...; ``None`` if the upstream never reported one).
    """

    def __init__(
        self,
        chunks: AsyncIterator[CompletionChunk],
        *,
        model: str = "",
        provider: str = "",
    ) -> None:
        self.model = model
        self.provider = provider
        self.finish_reason: str | None = None
        self._chunks = chunks
        self._parts: list[str] = []
        self._closed = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def __aiter__(self) -> "Segment":
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        while True:
            chunk = await self._chunks.__anext__()
            if chunk.finish_reason:
                self.finish_reason = chunk.finish_reason
            if chunk.content:
                self._parts.append(chunk.content)
                return format_stream_part("text", chunk.content)

    async def aclose(self) -> None:
        if self._closed:
            return
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            await aclose()
        self._closed = True


async def stream_text(
    messages: Sequence[Mapping[str, str]],
    *,
    settings: Settings,
    catalog: ModelCatalog,
    gateway: LiteLLMGateway,
    user_keys: Mapping[str, str] | None = None,
) -> Segment:
    """Route *messages*, bind the selected model and open its upstream stream."""
    conversation = prepare_conversation(messages, catalog)
    handle = bind(conversation.provider, conversation.model, settings, user_keys)

    _log.debug(
        "segment_open",
        provider=handle.provider.value,
        model=handle.model,
        max_tokens=conversation.max_tokens,
        messages=len(conversation.messages),
    )

    chunks = await gateway.open_stream(
        CompletionRequest(
            handle=handle,
            messages=conversation.messages,
            system=build_system_prompt(settings.work_dir),
            max_tokens=conversation.max_tokens,
        )
    )
    return Segment(chunks, model=handle.model, provider=handle.provider.value)
