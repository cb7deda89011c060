"""Unit tests for LiteLLMGateway (litellm_wrapper.py).

Mocking strategy
----------------
* ``litellm.acompletion`` is patched at
  ``coderelay.providers.litellm_wrapper.litellm.acompletion`` to intercept
  every upstream call without hitting a real API.
* ``tenacity.asyncio._portable_async_sleep`` is replaced with an AsyncMock to
  prevent real backoff delays during retry tests.
* The module-level ``_tracer`` in ``litellm_wrapper`` is replaced with a
  MagicMock to capture OpenTelemetry span operations.

No real API calls are made in this test suite.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import litellm
import pytest

from coderelay.providers.errors import (
    AuthError,
    InvalidRequestError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    TimeoutError,
)
from coderelay.providers.litellm_wrapper import LiteLLMGateway
from coderelay.providers.models import (
    CompletionRequest,
    ModelHandle,
    ProviderId,
    WireProtocol,
)

_ACOMPLETION = "coderelay.providers.litellm_wrapper.litellm.acompletion"

# ---------------------------------------------------------------------------
# Mock helpers: lightweight stand-ins for LiteLLM response objects
# ---------------------------------------------------------------------------


class _Delta:
    def __init__(self, content: str | None = None) -> None:
        self.content = content


class _StreamChoice:
    def __init__(self, content: str | None, finish_reason: str | None) -> None:
        self.delta = _Delta(content)
        self.finish_reason = finish_reason


class _StreamUsage:
    def __init__(self, prompt_tokens: int = 10, completion_tokens: int = 5) -> None:
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens


class _StreamChunk:
    """Mimics one chunk emitted by a LiteLLM streaming response."""

    def __init__(
        self,
        content: str | None = None,
        finish_reason: str | None = None,
        usage: _StreamUsage | None = None,
        model: str = "claude-3-5-sonnet-latest",
    ) -> None:
        self.model = model
        self.choices = [_StreamChoice(content, finish_reason)]
        self.usage = usage


class _AsyncStreamResponse:
    """Async-iterable wrapper around a list of _StreamChunk objects."""

    def __init__(self, chunks: list[_StreamChunk]) -> None:
        self._chunks = chunks
        self.closed = False

    def __aiter__(self) -> "_AsyncStreamResponse":
        self._iter = iter(self._chunks)
        return self

    async def __anext__(self) -> _StreamChunk:
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration

    async def aclose(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# LiteLLM exception factories
# Uses real constructors so ``isinstance`` checks in ``_map_error`` pass.
# ---------------------------------------------------------------------------

_DUMMY_REQ = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
_DUMMY_RESP_401 = httpx.Response(401, request=_DUMMY_REQ)
_DUMMY_RESP_429 = httpx.Response(429, request=_DUMMY_REQ)
_DUMMY_RESP_400 = httpx.Response(400, request=_DUMMY_REQ)
_DUMMY_RESP_503 = httpx.Response(503, request=_DUMMY_REQ)


def _auth_error() -> litellm.AuthenticationError:
    return litellm.AuthenticationError(
        message="Missing or invalid API key",
        llm_provider="anthropic",
        model="claude-3-5-sonnet-latest",
        response=_DUMMY_RESP_401,
    )


def _rate_limit_error(retry_after: float | None = None) -> litellm.RateLimitError:
    exc = litellm.RateLimitError(
        message="Rate limit exceeded",
        llm_provider="anthropic",
        model="claude-3-5-sonnet-latest",
        response=_DUMMY_RESP_429,
    )
    exc.retry_after = retry_after
    return exc


def _timeout_error() -> litellm.Timeout:
    return litellm.Timeout(
        message="Request timed out",
        model="claude-3-5-sonnet-latest",
        llm_provider="anthropic",
    )


def _bad_request_error() -> litellm.BadRequestError:
    return litellm.BadRequestError(
        message="Invalid request",
        llm_provider="anthropic",
        model="claude-3-5-sonnet-latest",
        response=_DUMMY_RESP_400,
    )


def _service_unavailable_error() -> litellm.ServiceUnavailableError:
    return litellm.ServiceUnavailableError(
        message="Service unavailable",
        llm_provider="anthropic",
        model="claude-3-5-sonnet-latest",
        response=_DUMMY_RESP_503,
    )


def _handle(**overrides: Any) -> ModelHandle:
    fields: dict[str, Any] = {
        "provider": ProviderId.ANTHROPIC,
        "model": "claude-3-5-sonnet-latest",
        "wire": WireProtocol.NATIVE,
        "litellm_model": "anthropic/claude-3-5-sonnet-latest",
        "api_key": "sk-test",
    }
    fields.update(overrides)
    return ModelHandle(**fields)


def _request(**overrides: Any) -> CompletionRequest:
    fields: dict[str, Any] = {
        "handle": _handle(),
        "messages": [{"role": "user", "content": "Hello"}],
    }
    fields.update(overrides)
    return CompletionRequest(**fields)


async def _drain(gateway: LiteLLMGateway, request: CompletionRequest) -> list[Any]:
    chunks = await gateway.open_stream(request)
    return [chunk async for chunk in chunks]


# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def gateway() -> LiteLLMGateway:
    return LiteLLMGateway(timeout=5, max_retries=1)


@pytest.fixture
def mock_span() -> MagicMock:
    """A MagicMock that behaves as an OTel span context manager."""
    span = MagicMock()
    span.__enter__ = MagicMock(return_value=span)
    span.__exit__ = MagicMock(return_value=False)
    return span


@pytest.fixture
def mock_tracer(mock_span: MagicMock) -> MagicMock:
    tracer = MagicMock()
    tracer.start_as_current_span.return_value = mock_span
    return tracer


# ---------------------------------------------------------------------------
# 1. CompletionRequest validation
# ---------------------------------------------------------------------------


class TestCompletionRequestValidation:
    def test_valid_request_accepted(self) -> None:
        req = _request(temperature=1.0, max_tokens=100, system="be brief")
        assert req.max_tokens == 100
        assert req.system == "be brief"

    def test_temperature_out_of_range_raises(self) -> None:
        with pytest.raises(InvalidRequestError, match="temperature"):
            _request(temperature=2.01)

    def test_empty_messages_list_raises(self) -> None:
        with pytest.raises(InvalidRequestError, match="messages"):
            _request(messages=[])

    def test_invalid_message_role_raises(self) -> None:
        with pytest.raises(InvalidRequestError, match="robot"):
            _request(messages=[{"role": "robot", "content": "Hi"}])

    def test_message_missing_content_key_raises(self) -> None:
        with pytest.raises(InvalidRequestError, match="content"):
            _request(messages=[{"role": "user"}])

    def test_zero_max_tokens_raises(self) -> None:
        with pytest.raises(InvalidRequestError, match="max_tokens"):
            _request(max_tokens=0)

    def test_whitespace_only_model_raises(self) -> None:
        with pytest.raises(InvalidRequestError, match="model"):
            _request(handle=_handle(model="   "))

    def test_multiple_messages_all_validated(self) -> None:
        with pytest.raises(InvalidRequestError, match="messages\\[1\\]"):
            _request(
                messages=[
                    {"role": "user", "content": "ok"},
                    {"role": "bot", "content": "bad role"},
                ]
            )


# ---------------------------------------------------------------------------
# 2. Streaming
# ---------------------------------------------------------------------------


class TestOpenStream:
    async def test_chunks_yielded_in_order(self, gateway: LiteLLMGateway, mocker: Any) -> None:
        raw_chunks = [
            _StreamChunk(content="Hello"),
            _StreamChunk(content=" world"),
            _StreamChunk(content=None, finish_reason="stop"),
        ]
        mocker.patch(_ACOMPLETION, new=AsyncMock(return_value=_AsyncStreamResponse(raw_chunks)))

        chunks = await _drain(gateway, _request())

        assert [c.content for c in chunks] == ["Hello", " world", ""]
        assert chunks[-1].finish_reason == "stop"

    async def test_length_finish_reason_forwarded(
        self, gateway: LiteLLMGateway, mocker: Any
    ) -> None:
        raw_chunks = [_StreamChunk(content="part"), _StreamChunk(finish_reason="length")]
        mocker.patch(_ACOMPLETION, new=AsyncMock(return_value=_AsyncStreamResponse(raw_chunks)))

        chunks = await _drain(gateway, _request())

        assert chunks[-1].finish_reason == "length"

    async def test_empty_chunks_filtered(self, gateway: LiteLLMGateway, mocker: Any) -> None:
        raw_chunks = [
            _StreamChunk(content=None),
            _StreamChunk(content="Hi"),
            _StreamChunk(content=None, finish_reason="stop"),
        ]
        mocker.patch(_ACOMPLETION, new=AsyncMock(return_value=_AsyncStreamResponse(raw_chunks)))

        chunks = await _drain(gateway, _request())

        assert len(chunks) == 2

    async def test_usage_extracted_from_final_chunk(
        self, gateway: LiteLLMGateway, mocker: Any
    ) -> None:
        raw_chunks = [
            _StreamChunk(content="Hi"),
            _StreamChunk(finish_reason="stop", usage=_StreamUsage(15, 8)),
        ]
        mocker.patch(_ACOMPLETION, new=AsyncMock(return_value=_AsyncStreamResponse(raw_chunks)))

        chunks = await _drain(gateway, _request())

        assert chunks[-1].usage == {"input_tokens": 15, "output_tokens": 8}

    async def test_handle_params_forwarded(self, gateway: LiteLLMGateway, mocker: Any) -> None:
        mock_acompletion = mocker.patch(
            _ACOMPLETION,
            new=AsyncMock(return_value=_AsyncStreamResponse([_StreamChunk(finish_reason="stop")])),
        )
        request = _request(
            handle=_handle(
                provider=ProviderId.OLLAMA,
                model="llama3",
                litellm_model="ollama_chat/llama3",
                api_key=None,
                api_base="http://localhost:11434",
                extra={"num_ctx": 32768},
            ),
            system="You are helpful",
            max_tokens=8000,
        )

        await _drain(gateway, request)

        kw = mock_acompletion.call_args.kwargs
        assert kw["model"] == "ollama_chat/llama3"
        assert kw["api_base"] == "http://localhost:11434"
        assert kw["num_ctx"] == 32768
        assert kw["max_tokens"] == 8000
        assert kw["stream"] is True
        assert kw["timeout"] == 5
        assert "api_key" not in kw
        assert kw["messages"][0] == {"role": "system", "content": "You are helpful"}
        assert kw["messages"][1] == {"role": "user", "content": "Hello"}

    async def test_optional_params_omitted_when_none(
        self, gateway: LiteLLMGateway, mocker: Any
    ) -> None:
        mock_acompletion = mocker.patch(
            _ACOMPLETION,
            new=AsyncMock(return_value=_AsyncStreamResponse([_StreamChunk(finish_reason="stop")])),
        )

        await _drain(gateway, _request())

        kw = mock_acompletion.call_args.kwargs
        assert "max_tokens" not in kw
        assert "temperature" not in kw
        assert kw["messages"] == [{"role": "user", "content": "Hello"}]

    async def test_upstream_closed_when_consumer_stops_early(
        self, gateway: LiteLLMGateway, mocker: Any
    ) -> None:
        response = _AsyncStreamResponse([_StreamChunk(content="a"), _StreamChunk(content="b")])
        mocker.patch(_ACOMPLETION, new=AsyncMock(return_value=response))

        chunks = await gateway.open_stream(_request())
        await chunks.__anext__()
        await chunks.aclose()

        assert response.closed

    async def test_upstream_closed_when_stream_closed_before_first_read(
        self, gateway: LiteLLMGateway, mocker: Any
    ) -> None:
        response = _AsyncStreamResponse([_StreamChunk(content="a")])
        mocker.patch(_ACOMPLETION, new=AsyncMock(return_value=response))

        chunks = await gateway.open_stream(_request())
        await chunks.aclose()

        assert response.closed
        with pytest.raises(StopAsyncIteration):
            await chunks.__anext__()

    async def test_upstream_closed_when_stream_drains(
        self, gateway: LiteLLMGateway, mocker: Any
    ) -> None:
        response = _AsyncStreamResponse([_StreamChunk(content="a", finish_reason="stop")])
        mocker.patch(_ACOMPLETION, new=AsyncMock(return_value=response))

        await _drain(gateway, _request())

        assert response.closed


# ---------------------------------------------------------------------------
# 3. Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    async def _assert_maps_to(
        self,
        gateway: LiteLLMGateway,
        mocker: Any,
        litellm_exc: Exception,
        expected_type: type,
    ) -> ProviderError:
        mocker.patch(_ACOMPLETION, new=AsyncMock(side_effect=litellm_exc))
        with pytest.raises(expected_type) as exc_info:
            await gateway.open_stream(_request())
        return exc_info.value

    async def test_authentication_error_maps_to_auth_error(
        self, gateway: LiteLLMGateway, mocker: Any
    ) -> None:
        err = await self._assert_maps_to(gateway, mocker, _auth_error(), AuthError)
        assert err.provider == "Anthropic"
        assert "API key" in err.message
        assert isinstance(err.original_error, litellm.AuthenticationError)

    async def test_rate_limit_error_maps_with_retry_after(
        self, gateway: LiteLLMGateway, mocker: Any
    ) -> None:
        err = await self._assert_maps_to(
            gateway, mocker, _rate_limit_error(retry_after=30.0), RateLimitError
        )
        assert err.retry_after == 30.0

    async def test_timeout_maps_to_timeout_error(
        self, gateway: LiteLLMGateway, mocker: Any
    ) -> None:
        await self._assert_maps_to(gateway, mocker, _timeout_error(), TimeoutError)

    async def test_bad_request_maps_to_invalid_request_error(
        self, gateway: LiteLLMGateway, mocker: Any
    ) -> None:
        await self._assert_maps_to(gateway, mocker, _bad_request_error(), InvalidRequestError)

    async def test_service_unavailable_maps_to_provider_unavailable(
        self, gateway: LiteLLMGateway, mocker: Any
    ) -> None:
        await self._assert_maps_to(
            gateway, mocker, _service_unavailable_error(), ProviderUnavailableError
        )

    async def test_unknown_exception_maps_to_base_provider_error(
        self, gateway: LiteLLMGateway, mocker: Any
    ) -> None:
        err = await self._assert_maps_to(
            gateway, mocker, RuntimeError("something strange"), ProviderError
        )
        assert type(err) is ProviderError

    async def test_mid_stream_error_mapped(self, gateway: LiteLLMGateway, mocker: Any) -> None:
        class _FailAfterFirstChunk:
            def __aiter__(self) -> "_FailAfterFirstChunk":
                self._count = 0
                return self

            async def __anext__(self) -> _StreamChunk:
                if self._count == 0:
                    self._count += 1
                    return _StreamChunk(content="partial")
                raise _service_unavailable_error()

        mock_acompletion = mocker.patch(
            _ACOMPLETION, new=AsyncMock(return_value=_FailAfterFirstChunk())
        )
        chunks = await gateway.open_stream(_request())

        received = []
        with pytest.raises(ProviderUnavailableError):
            async for chunk in chunks:
                received.append(chunk.content)

        assert received == ["partial"]
        assert mock_acompletion.call_count == 1


# ---------------------------------------------------------------------------
# 4. Retry budget
# ---------------------------------------------------------------------------


class TestRetryLogic:
    @pytest.fixture(autouse=True)
    def suppress_backoff(self, mocker: Any) -> None:
        """Patch tenacity's async sleep so retries complete instantly in tests."""
        mocker.patch(
            "tenacity.asyncio._portable_async_sleep",
            new=AsyncMock(return_value=None),
        )

    async def test_default_budget_makes_a_single_attempt(self, mocker: Any) -> None:
        mock_acompletion = mocker.patch(
            _ACOMPLETION, new=AsyncMock(side_effect=_rate_limit_error())
        )

        with pytest.raises(RateLimitError):
            await LiteLLMGateway().open_stream(_request())

        assert mock_acompletion.call_count == 1

    async def test_transient_errors_retried_within_budget(self, mocker: Any) -> None:
        response = _AsyncStreamResponse([_StreamChunk(content="ok", finish_reason="stop")])
        mock_acompletion = mocker.patch(
            _ACOMPLETION,
            new=AsyncMock(side_effect=[_rate_limit_error(), _timeout_error(), response]),
        )

        chunks = await _drain(LiteLLMGateway(timeout=5, max_retries=3), _request())

        assert mock_acompletion.call_count == 3
        assert chunks[0].content == "ok"

    async def test_auth_error_is_not_retried(self, mocker: Any) -> None:
        mock_acompletion = mocker.patch(_ACOMPLETION, new=AsyncMock(side_effect=_auth_error()))

        with pytest.raises(AuthError):
            await LiteLLMGateway(timeout=5, max_retries=3).open_stream(_request())

        assert mock_acompletion.call_count == 1


# ---------------------------------------------------------------------------
# 5. OpenTelemetry
# ---------------------------------------------------------------------------


class TestOpenTelemetry:
    async def test_api_call_span_attributes(
        self,
        gateway: LiteLLMGateway,
        mock_tracer: MagicMock,
        mock_span: MagicMock,
        mocker: Any,
    ) -> None:
        mocker.patch(
            _ACOMPLETION,
            new=AsyncMock(return_value=_AsyncStreamResponse([_StreamChunk(finish_reason="stop")])),
        )
        mocker.patch("coderelay.providers.litellm_wrapper._tracer", mock_tracer)

        await _drain(gateway, _request(max_tokens=4096))

        span_names = [c[0][0] for c in mock_tracer.start_as_current_span.call_args_list]
        assert "llm.api_call" in span_names
        attrs = {c[0][0]: c[0][1] for c in mock_span.set_attribute.call_args_list}
        assert attrs["gen_ai.system"] == "Anthropic"
        assert attrs["gen_ai.request.model"] == "claude-3-5-sonnet-latest"
        assert attrs["gen_ai.request.max_tokens"] == 4096

    async def test_error_recorded_on_span(
        self,
        gateway: LiteLLMGateway,
        mock_tracer: MagicMock,
        mock_span: MagicMock,
        mocker: Any,
    ) -> None:
        mocker.patch(_ACOMPLETION, new=AsyncMock(side_effect=_auth_error()))
        mocker.patch("coderelay.providers.litellm_wrapper._tracer", mock_tracer)

        with pytest.raises(AuthError):
            await gateway.open_stream(_request())

        mock_span.record_exception.assert_called_once()
        mock_span.set_status.assert_called_once()
