"""POST /api/chat: the conversational endpoint.

Streams the assistant's answer as data-stream parts.  Truncated answers are
continued transparently by a :class:`~coderelay.chat.continuation.ChatSession`;
the client sees one uninterrupted body.
"""

import functools
import json
import time
import uuid
from collections.abc import AsyncGenerator
from typing import Any, Literal
from urllib.parse import unquote

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace
from opentelemetry.trace import StatusCode
from pydantic import BaseModel, Field

from coderelay.api.dependencies import get_catalog, get_gateway, get_settings
from coderelay.api.errors import upstream_error_response
from coderelay.chat.continuation import ChatSession
from coderelay.chat.segments import stream_text
from coderelay.chat.stream_parts import format_stream_part
from coderelay.chat.switchable_stream import SwitchableStream
from coderelay.config import Settings
from coderelay.providers import LiteLLMGateway, ModelCatalog, ProviderError

router = APIRouter(prefix="/api", tags=["chat"])

_log = structlog.get_logger(__name__)
_tracer = trace.get_tracer(__name__)

API_KEYS_COOKIE = "apiKeys"


class _Message(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: list[_Message] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Cookie handling
# ---------------------------------------------------------------------------


def parse_cookies(cookie_header: str | None) -> dict[str, str]:
    """Split a ``Cookie`` header into URL-decoded name/value pairs."""
    cookies: dict[str, str] = {}
    if not cookie_header:
        return cookies

    for item in cookie_header.split(";"):
        name, sep, value = item.strip().partition("=")
        if not sep or not name.strip():
            continue
        cookies[unquote(name.strip())] = unquote(value.strip())
    return cookies


def read_api_keys(cookie_header: str | None) -> dict[str, str]:
    """Return the client's provider keys from the ``apiKeys`` cookie, or ``{}``."""
    raw = parse_cookies(cookie_header).get(API_KEYS_COOKIE)
    if not raw:
        return {}

    try:
        keys = json.loads(raw)
    except ValueError:
        _log.warning("api_keys_cookie_invalid")
        return {}

    if not isinstance(keys, dict):
        return {}
    return {str(name): key for name, key in keys.items() if isinstance(key, str)}


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------


@router.post("/chat", response_model=None)
async def chat(
    body: ChatRequest,
    request: Request,
    settings: Settings = Depends(get_settings),
    catalog: ModelCatalog = Depends(get_catalog),
    gateway: LiteLLMGateway = Depends(get_gateway),
) -> Response:
    """Stream an assistant reply to the conversation in *body*.

    The first upstream call is opened before the response starts, so a
    rejected API key is reported as HTTP 401 and any other setup failure as
    an empty HTTP 500.  Failures after streaming has begun are sent as a
    final error part.
    """
    request_id = str(uuid.uuid4())
    start_time = time.monotonic()
    api_keys = read_api_keys(request.headers.get("cookie"))

    log = _log.bind(request_id=request_id, messages=len(body.messages))
    log.info("chat_request_start", user_key_providers=sorted(api_keys))

    open_segment = functools.partial(
        stream_text,
        settings=settings,
        catalog=catalog,
        gateway=gateway,
        user_keys=api_keys,
    )
    session = ChatSession([m.model_dump() for m in body.messages], open_segment)

    with _tracer.start_as_current_span("relay.chat") as span:
        try:
            stream = await session.start()
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(StatusCode.ERROR, str(exc))
            return upstream_error_response(exc, log)

    return StreamingResponse(
        _relay(stream, log, start_time),
        media_type="text/plain; charset=utf-8",
        headers={"X-Request-ID": request_id, "Cache-Control": "no-cache"},
    )


async def _relay(
    stream: SwitchableStream,
    log: Any,
    start_time: float,
) -> AsyncGenerator[bytes, None]:
    """Yield the composite stream, turning a late failure into an error part.

    The HTTP 200 header has already been sent by the time these errors occur,
    so the client detects them from the final ``3:`` part.
    """
    try:
        async for chunk in stream:
            yield chunk

    except ProviderError as exc:
        log.error("chat_stream_error", error_type=type(exc).__name__, error=exc.message)
        yield format_stream_part("error", exc.message)

    finally:
        await stream.close()
        duration_ms = round((time.monotonic() - start_time) * 1000, 2)
        log.info("chat_request_complete", duration_ms=duration_ms, switches=stream.switches)
