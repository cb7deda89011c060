"""POST /api/enhancer: rewrite a user prompt into a better one.

Runs a single generation call, with no continuation, against the model and
provider the client names, and returns the rewritten prompt as plain text.
"""

import time
import uuid
from collections.abc import AsyncGenerator
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse

from coderelay.api.dependencies import get_catalog, get_gateway, get_settings
from coderelay.api.errors import upstream_error_response
from coderelay.chat.prompts import build_enhancer_prompt
from coderelay.chat.segments import Segment, stream_text
from coderelay.chat.stream_parts import parse_stream_part
from coderelay.config import Settings
from coderelay.providers import LiteLLMGateway, ModelCatalog, ProviderError

router = APIRouter(prefix="/api", tags=["enhancer"])

_log = structlog.get_logger(__name__)


def _user_keys(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {str(name): key for name, key in raw.items() if isinstance(key, str)}


@router.post("/enhancer", response_model=None)
async def enhance_prompt(
    request: Request,
    settings: Settings = Depends(get_settings),
    catalog: ModelCatalog = Depends(get_catalog),
    gateway: LiteLLMGateway = Depends(get_gateway),
) -> Response:
    """Stream an improved version of ``message`` as plain text.

    Body: ``{"message": str, "model": str, "provider": {"name": str},
    "apiKeys": {provider: key}}``.
    """
    try:
        body = await request.json()
    except ValueError:
        return PlainTextResponse("Invalid request body", status_code=400)
    if not isinstance(body, dict):
        return PlainTextResponse("Invalid request body", status_code=400)

    model = body.get("model")
    provider = body.get("provider")
    provider_name = provider.get("name") if isinstance(provider, dict) else None

    if not model or not isinstance(model, str):
        return PlainTextResponse("Invalid or missing model", status_code=400)
    if not provider_name or not isinstance(provider_name, str):
        return PlainTextResponse("Invalid or missing provider", status_code=400)

    message = body.get("message")
    request_id = str(uuid.uuid4())
    log = _log.bind(request_id=request_id, model=model, provider=provider_name)
    log.info("enhancer_request_start")

    content = (
        f"[Model: {model}]\n\n[Provider: {provider_name}]\n\n"
        + build_enhancer_prompt("" if message is None else str(message))
    )

    try:
        segment = await stream_text(
            [{"role": "user", "content": content}],
            settings=settings,
            catalog=catalog,
            gateway=gateway,
            user_keys=_user_keys(body.get("apiKeys")),
        )
    except Exception as exc:
        return upstream_error_response(exc, log)

    return StreamingResponse(
        _text_only(segment, log, time.monotonic()),
        media_type="text/plain; charset=utf-8",
        headers={"X-Request-ID": request_id},
    )


async def _text_only(
    segment: Segment,
    log: Any,
    start_time: float,
) -> AsyncGenerator[str, None]:
    """Reduce the segment's data-stream parts to their text payloads."""
    try:
        async for raw in segment:
            for line in raw.decode().splitlines():
                if not line:
                    continue
                try:
                    part = parse_stream_part(line)
                except ValueError as exc:
                    log.warning("stream_part_parse_failed", line=line, error=str(exc))
                    continue
                if part.type == "text":
                    yield part.value

    except ProviderError as exc:
        log.error("enhancer_stream_error", error_type=type(exc).__name__, error=exc.message)

    finally:
        await segment.aclose()
        duration_ms = round((time.monotonic() - start_time) * 1000, 2)
        log.info("enhancer_request_complete", duration_ms=duration_ms)
