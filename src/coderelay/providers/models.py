"""Value types shared by the provider layer.

These types form the public contract between the chat engine, the model
factory and the LiteLLM wrapper.  All of them are immutable (``frozen=True``);
:class:`CompletionRequest` is validated at construction time so callers get a
fast, explicit error rather than a cryptic downstream failure.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from coderelay.providers.errors import InvalidRequestError

MAX_TOKENS = 8000

_VALID_ROLES: frozenset[str] = frozenset({"system", "user", "assistant"})


class ProviderId(str, Enum):
    """Every upstream provider the relay knows how to bind."""

    ANTHROPIC = "Anthropic"
    OPENAI = "OpenAI"
    GOOGLE = "Google"
    GROQ = "Groq"
    HUGGINGFACE = "HuggingFace"
    OPENROUTER = "OpenRouter"
    DEEPSEEK = "Deepseek"
    MISTRAL = "Mistral"
    OPENAI_LIKE = "OpenAILike"
    XAI = "xAI"
    COHERE = "Cohere"
    LMSTUDIO = "LMStudio"
    OLLAMA = "Ollama"

    @classmethod
    def parse(cls, name: str | None) -> "ProviderId | None":
        """Return the member whose value is *name*, or ``None`` if unknown."""
        if not name:
            return None
        try:
            return cls(name)
        except ValueError:
            return None


class WireProtocol(str, Enum):
    """How a bound model talks to its upstream."""

    OPENAI_COMPATIBLE = "openai-compatible"
    NATIVE = "native"


@dataclass(frozen=True)
class ModelInfo:
    """A model entry in the catalog.

    Attributes:
        name: Upstream model id, unique within its provider; used as the
            routing key in ``[Model: ...]`` tags.
        label: Display name for the model picker.
        provider: Name of the provider that serves the model.
        max_token_allowed: Output token budget for one upstream call.
    """

    name: str
    label: str
    provider: str
    max_token_allowed: int = MAX_TOKENS

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "provider": self.provider,
            "maxTokenAllowed": self.max_token_allowed,
        }


@dataclass(frozen=True)
class ModelHandle:
    """A model bound to its upstream endpoint and credentials.

    Building a handle performs no I/O; :meth:`to_litellm_params` renders the
    keyword arguments ``litellm.acompletion`` needs to reach the model.

    Attributes:
        provider: Provider the handle was bound for.
        model: Model id as the client requested it.
        wire: Wire convention used to reach the upstream.
        litellm_model: Provider-prefixed model string understood by LiteLLM,
            e.g. ``"anthropic/claude-3-5-sonnet-latest"`` or ``"openai/grok-beta"``.
        api_key: Resolved key.  ``None`` means the upstream takes no key.
        api_base: Endpoint override; ``None`` uses the provider default.
        extra: Additional provider-specific parameters (e.g. Ollama ``num_ctx``).
    """

    provider: ProviderId
    model: str
    wire: WireProtocol
    litellm_model: str
    api_key: str | None = field(default=None, repr=False)
    api_base: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_litellm_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"model": self.litellm_model, **self.extra}
        if self.api_key is not None:
            params["api_key"] = self.api_key
        if self.api_base:
            params["api_base"] = self.api_base
        return params


@dataclass(frozen=True)
class CompletionRequest:
    """Parameters for a single upstream generation call.

    Args:
        handle: Bound model to call.
        messages: Conversation history.  Each dict must contain ``"role"`` and
            ``"content"`` keys.  Role must be one of: system, user, assistant.
        system: System prompt prepended to *messages*.  ``None`` sends none.
        max_tokens: Maximum tokens to generate.  ``None`` defers to the provider
            default.
        temperature: Sampling temperature in ``[0.0, 2.0]``.  ``None`` defers to
            the provider default.

    Raises:
        InvalidRequestError: If any field fails validation.
    """

    handle: ModelHandle
    messages: list[dict[str, str]]
    system: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None

    def __post_init__(self) -> None:
        if not self.handle.model.strip():
            raise InvalidRequestError("model must be a non-empty string")

        if not self.messages:
            raise InvalidRequestError("messages must not be empty")

        for i, msg in enumerate(self.messages):
            if "role" not in msg or "content" not in msg:
                raise InvalidRequestError(
                    f"messages[{i}] must contain both 'role' and 'content' keys"
                )
            if msg["role"] not in _VALID_ROLES:
                raise InvalidRequestError(
                    f"messages[{i}] has invalid role '{msg['role']}'; "
                    f"must be one of {sorted(_VALID_ROLES)}"
                )

        if self.temperature is not None and not 0.0 <= self.temperature <= 2.0:
            raise InvalidRequestError(f"temperature must be in [0.0, 2.0], got {self.temperature}")

        if self.max_tokens is not None and self.max_tokens <= 0:
            raise InvalidRequestError(
                f"max_tokens must be a positive integer, got {self.max_tokens}"
            )


@dataclass(frozen=True)
class CompletionChunk:
    """A single unit of output from a streaming upstream call.

    The final chunk in a stream has ``finish_reason`` set.

    Attributes:
        content: Text content for this chunk (may be empty for the final chunk).
        finish_reason: Stop reason reported by the provider (``"stop"``,
            ``"length"``, ...).  ``None`` for intermediate chunks.
        usage: Token counts ``{"input_tokens": N, "output_tokens": M}`` when
            the provider reports them on the final chunk.
        model: Resolved model name as reported by the provider.
    """

    content: str
    finish_reason: str | None = None
    usage: dict[str, int] | None = None
    model: str | None = None
