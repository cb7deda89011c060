"""LiteLLM gateway with structured error handling and observability.

LiteLLM already speaks every upstream wire protocol, so this module focuses
on what the relay needs on top of it:

* Typed exception hierarchy (:mod:`coderelay.providers.errors`)
* OpenTelemetry spans using GenAI semantic conventions
* Structured logging via structlog with a per-call correlation ID
* An optional tenacity retry budget for opening the upstream stream
"""

import asyncio
import logging
import time
import uuid
from collections.abc import AsyncGenerator
from typing import Any

import litellm
import structlog
from opentelemetry import trace
from opentelemetry.trace import StatusCode
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from coderelay.providers.errors import (
    AuthError,
    InvalidRequestError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    TimeoutError,
)
from coderelay.providers.models import CompletionChunk, CompletionRequest

# ---------------------------------------------------------------------------
# Module-level setup
# ---------------------------------------------------------------------------

# Suppress LiteLLM's own verbose logging; we emit our own structured logs.
logging.getLogger("LiteLLM").setLevel(logging.WARNING)
logging.getLogger("LiteLLM Router").setLevel(logging.WARNING)
logging.getLogger("LiteLLM Proxy").setLevel(logging.WARNING)

_log = structlog.get_logger(__name__)
_tracer = trace.get_tracer(__name__)


def _before_sleep(retry_state: RetryCallState) -> None:
    """Tenacity ``before_sleep`` hook that emits a structured warning."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    next_action = retry_state.next_action
    wait_seconds = next_action.sleep if next_action is not None else 0.0
    _log.warning(
        "llm_request_retry",
        attempt=retry_state.attempt_number,
        wait_seconds=round(wait_seconds, 2),
        error_type=type(exc).__name__ if exc else None,
        error=str(exc) if exc else None,
    )


# ---------------------------------------------------------------------------
# Chunk stream
# ---------------------------------------------------------------------------


class ChunkStream:
    """Parsed chunks of one open upstream response.

    Owns the LiteLLM response: it is released when iteration ends, fails or
    is cancelled, and by :meth:`aclose` even if no chunk was ever read.
    """

    def __init__(self, response: Any, chunks: AsyncGenerator[CompletionChunk, None]) -> None:
        self._response = response
        self._chunks = chunks
        self._released = False

    def __aiter__(self) -> "ChunkStream":
        return self

    async def __anext__(self) -> CompletionChunk:
        try:
            return await self._chunks.__anext__()
        except (Exception, asyncio.CancelledError):
            await self.aclose()
            raise

    async def aclose(self) -> None:
        if self._released:
            return
        self._released = True
        await self._chunks.aclose()
        aclose = getattr(self._response, "aclose", None)
        if aclose is not None:
            await aclose()


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class LiteLLMGateway:
    """Opens streaming generation calls against any bound model.

    Example::

        gateway = LiteLLMGateway()
        handle = bind("Anthropic", "claude-3-5-sonnet-latest", settings)
        chunks = await gateway.open_stream(
            CompletionRequest(handle=handle, messages=[{"role": "user", "content": "Hi"}])
        )
        async for chunk in chunks:
            print(chunk.content, end="", flush=True)

    Args:
        timeout: Per-request timeout in seconds passed to LiteLLM.
        max_retries: Maximum number of attempts at opening the stream.  Only
            :class:`~coderelay.providers.errors.RateLimitError`,
            :class:`~coderelay.providers.errors.TimeoutError`, and
            :class:`~coderelay.providers.errors.ProviderUnavailableError`
            are retried.  The default of ``1`` disables retries.
    """

    def __init__(self, timeout: int = 600, max_retries: int = 1) -> None:
        self._timeout = timeout
        self._max_retries = max_retries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def open_stream(
        self,
        request: CompletionRequest,
    ) -> ChunkStream:
        """Start a streaming upstream call and return its chunk stream.

        The upstream connection is made before this coroutine returns, so
        credential and connectivity failures surface here rather than on the
        first read.  Errors raised while iterating are mapped to the same
        typed exceptions but are never retried.

        Raises:
            RateLimitError: Provider returned HTTP 429.
            AuthError: API key missing or invalid (HTTP 401 / 403).
            TimeoutError: Request exceeded the configured timeout.
            InvalidRequestError: Request rejected as malformed (HTTP 400 / 422).
            ProviderUnavailableError: Provider down or unreachable (5xx / network).
        """
        handle = request.handle
        provider = handle.provider.value
        start_time = time.monotonic()

        log = _log.bind(
            request_id=str(uuid.uuid4()),
            provider=provider,
            model=handle.model,
        )
        log.info("llm_request_start", max_tokens=request.max_tokens, wire=handle.wire.value)

        params = self._to_litellm_format(request)

        with _tracer.start_as_current_span("llm.api_call") as span:
            span.set_attribute("gen_ai.system", provider)
            span.set_attribute("gen_ai.request.model", handle.model)
            span.set_attribute("call_type", "streaming")
            if request.max_tokens is not None:
                span.set_attribute("gen_ai.request.max_tokens", request.max_tokens)

            try:
                response = await self._call_litellm(params, provider)
            except ProviderError as exc:
                span.record_exception(exc)
                span.set_status(StatusCode.ERROR, exc.message)
                log.error(
                    "llm_request_error",
                    error_type=type(exc).__name__,
                    error=exc.message,
                )
                raise

        return ChunkStream(response, self._iter_chunks(response, provider, log, start_time))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _iter_chunks(
        self,
        response: Any,
        provider: str,
        log: Any,
        start_time: float,
    ) -> AsyncGenerator[CompletionChunk, None]:
        """Yield parsed chunks from an open LiteLLM stream.

        Resuming a partial stream is unsafe, so mid-stream errors are mapped
        and re-raised without retry.
        """
        finish_reason: str | None = None
        try:
            async for raw_chunk in response:
                chunk = self._parse_chunk(raw_chunk)
                if chunk.finish_reason:
                    finish_reason = chunk.finish_reason
                if chunk.content or chunk.finish_reason:
                    yield chunk
        except ProviderError as exc:
            log.error("llm_stream_error", error_type=type(exc).__name__, error=exc.message)
            raise
        except Exception as exc:
            mapped = self._map_error(exc, provider)
            log.error("llm_stream_error", error_type=type(mapped).__name__, error=str(exc))
            raise mapped from exc
        finally:
            duration_ms = round((time.monotonic() - start_time) * 1000, 2)
            log.info("llm_request_complete", duration_ms=duration_ms, finish_reason=finish_reason)

    async def _call_litellm(self, params: dict[str, Any], provider: str) -> Any:
        """Call ``litellm.acompletion`` within the configured retry budget.

        Errors are mapped to gateway types *before* tenacity evaluates them so
        that the retry predicate matches on :class:`RateLimitError`,
        :class:`TimeoutError`, and :class:`ProviderUnavailableError`.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            retry=retry_if_exception_type((RateLimitError, TimeoutError, ProviderUnavailableError)),
            wait=wait_exponential(multiplier=1, min=2, max=30),
            before_sleep=_before_sleep,
            reraise=True,
        ):
            with attempt:
                try:
                    return await litellm.acompletion(timeout=self._timeout, **params)
                except Exception as exc:
                    raise self._map_error(exc, provider) from exc

    # ------------------------------------------------------------------
    # Format conversion
    # ------------------------------------------------------------------

    def _to_litellm_format(self, request: CompletionRequest) -> dict[str, Any]:
        """Convert a :class:`CompletionRequest` to ``litellm.acompletion`` kwargs."""
        messages = list(request.messages)
        if request.system:
            messages.insert(0, {"role": "system", "content": request.system})

        params: dict[str, Any] = {
            **request.handle.to_litellm_params(),
            "messages": messages,
            "stream": True,
        }
        if request.max_tokens is not None:
            params["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            params["temperature"] = request.temperature
        return params

    def _parse_chunk(self, raw: Any) -> CompletionChunk:
        """Convert a LiteLLM streaming chunk to :class:`CompletionChunk`."""
        content = ""
        finish_reason: str | None = None
        usage: dict[str, int] | None = None

        if hasattr(raw, "choices") and raw.choices:
            choice = raw.choices[0]
            delta = getattr(choice, "delta", None)
            if delta is not None:
                content = getattr(delta, "content", None) or ""
            finish_reason = getattr(choice, "finish_reason", None)

        raw_usage = getattr(raw, "usage", None)
        if raw_usage is not None:
            usage = {
                "input_tokens": getattr(raw_usage, "prompt_tokens", 0),
                "output_tokens": getattr(raw_usage, "completion_tokens", 0),
            }

        return CompletionChunk(
            content=content,
            finish_reason=finish_reason,
            usage=usage,
            model=getattr(raw, "model", None),
        )

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    def _map_error(self, error: Exception, provider: str) -> ProviderError:
        """Map a LiteLLM exception to a typed :class:`ProviderError`.

        Mapping table:

        ===================================  ==============================
        LiteLLM exception                    Relay exception
        ===================================  ==============================
        ``litellm.RateLimitError``           :class:`RateLimitError`
        ``litellm.AuthenticationError``      :class:`AuthError`
        ``litellm.Timeout``                  :class:`TimeoutError`
        ``litellm.BadRequestError``          :class:`InvalidRequestError`
        ``litellm.ServiceUnavailableError``  :class:`ProviderUnavailableError`
        ``litellm.APIConnectionError``       :class:`ProviderUnavailableError`
        ``litellm.APIError`` (catch-all)     :class:`ProviderUnavailableError`
        ===================================  ==============================

        ``litellm.ContextWindowExceededError`` is a subclass of
        ``litellm.BadRequestError`` and is therefore also mapped to
        :class:`InvalidRequestError`.
        """
        # Already mapped; avoid double-wrapping.
        if isinstance(error, ProviderError):
            return error

        if isinstance(error, litellm.RateLimitError):
            return RateLimitError(
                message=str(error),
                provider=provider,
                retry_after=getattr(error, "retry_after", None),
                original_error=error,
            )

        if isinstance(error, litellm.AuthenticationError):
            return AuthError(
                message=f"Invalid or missing API key for {provider}: {error}",
                provider=provider,
                original_error=error,
            )

        if isinstance(error, litellm.Timeout):
            return TimeoutError(
                message=f"Request to {provider} timed out: {error}",
                provider=provider,
                original_error=error,
            )

        # BadRequestError is the parent of ContextWindowExceededError in LiteLLM.
        if isinstance(error, litellm.BadRequestError):
            return InvalidRequestError(
                message=f"Invalid request to {provider}: {error}",
                provider=provider,
                original_error=error,
            )

        if isinstance(
            error,
            litellm.ServiceUnavailableError | litellm.APIConnectionError | litellm.APIError,
        ):
            return ProviderUnavailableError(
                message=f"{provider} is unavailable: {error}",
                provider=provider,
                original_error=error,
            )

        return ProviderError(
            message=f"Unexpected error from {provider}: {error}",
            provider=provider,
            original_error=error,
        )
