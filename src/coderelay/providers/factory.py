"""Bind a provider/model pair to the LiteLLM call that reaches it.

Every :class:`ProviderId` has exactly one binder.  Binders are pure: they turn
a model id, the resolved key and base URL into a :class:`ModelHandle` without
touching the network.
"""

from collections.abc import Callable, Mapping

from coderelay.config import Settings
from coderelay.providers.credentials import resolve_api_key, resolve_base_url
from coderelay.providers.errors import AuthError, InvalidRequestError
from coderelay.providers.models import ModelHandle, ProviderId, WireProtocol

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
HUGGINGFACE_BASE_URL = "https://api-inference.huggingface.co/v1/"
DEEPSEEK_BASE_URL = "https://api.deepseek.com/beta"
XAI_BASE_URL = "https://api.x.ai/v1"

# Sent to keyless OpenAI-compatible servers.  LiteLLM replaces an empty key with
# OPENAI_API_KEY from the environment, which must never leave for another host.
LMSTUDIO_PLACEHOLDER_KEY = "lm-studio"
NO_KEY_PLACEHOLDER = "no-key"

Binder = Callable[[str, str, str, Settings], ModelHandle]


def _openai_compatible(
    provider: ProviderId, model: str, api_key: str | None, api_base: str | None
) -> ModelHandle:
    return ModelHandle(
        provider=provider,
        model=model,
        wire=WireProtocol.OPENAI_COMPATIBLE,
        litellm_model=f"openai/{model}",
        api_key=api_key,
        api_base=api_base,
    )


def _hosted_openai_compatible(
    provider: ProviderId, model: str, api_key: str, api_base: str
) -> ModelHandle:
    if not api_key:
        raise AuthError(f"Missing API key for {provider.value}", provider=provider.value)
    return _openai_compatible(provider, model, api_key, api_base)


def _native(provider: ProviderId, prefix: str, model: str, api_key: str) -> ModelHandle:
    return ModelHandle(
        provider=provider,
        model=model,
        wire=WireProtocol.NATIVE,
        litellm_model=f"{prefix}/{model}",
        api_key=api_key,
    )


def _bind_anthropic(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    return _native(ProviderId.ANTHROPIC, "anthropic", model, api_key)


def _bind_openai(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    return _openai_compatible(ProviderId.OPENAI, model, api_key, None)


def _bind_google(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    return _native(ProviderId.GOOGLE, "gemini", model, api_key)


def _bind_groq(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    return _hosted_openai_compatible(ProviderId.GROQ, model, api_key, GROQ_BASE_URL)


def _bind_huggingface(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    return _hosted_openai_compatible(
        ProviderId.HUGGINGFACE, model, api_key, HUGGINGFACE_BASE_URL
    )


def _bind_openrouter(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    return _native(ProviderId.OPENROUTER, "openrouter", model, api_key)


def _bind_deepseek(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    return _hosted_openai_compatible(ProviderId.DEEPSEEK, model, api_key, DEEPSEEK_BASE_URL)


def _bind_mistral(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    return _native(ProviderId.MISTRAL, "mistral", model, api_key)


def _bind_openai_like(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    if not base_url:
        raise InvalidRequestError(
            "OPENAI_LIKE_API_BASE_URL is not configured",
            provider=ProviderId.OPENAI_LIKE.value,
        )
    return _openai_compatible(
        ProviderId.OPENAI_LIKE, model, api_key or NO_KEY_PLACEHOLDER, base_url
    )


def _bind_xai(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    return _hosted_openai_compatible(ProviderId.XAI, model, api_key, XAI_BASE_URL)


def _bind_cohere(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    return _native(ProviderId.COHERE, "cohere_chat", model, api_key)


def _bind_lmstudio(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    return _openai_compatible(
        ProviderId.LMSTUDIO, model, LMSTUDIO_PLACEHOLDER_KEY, f"{base_url}/v1"
    )


def _bind_ollama(model: str, api_key: str, base_url: str, settings: Settings) -> ModelHandle:
    return ModelHandle(
        provider=ProviderId.OLLAMA,
        model=model,
        wire=WireProtocol.NATIVE,
        litellm_model=f"ollama_chat/{model}",
        api_base=base_url,
        extra={"num_ctx": settings.default_num_ctx},
    )


BINDERS: dict[ProviderId, Binder] = {
    ProviderId.ANTHROPIC: _bind_anthropic,
    ProviderId.OPENAI: _bind_openai,
    ProviderId.GOOGLE: _bind_google,
    ProviderId.GROQ: _bind_groq,
    ProviderId.HUGGINGFACE: _bind_huggingface,
    ProviderId.OPENROUTER: _bind_openrouter,
    ProviderId.DEEPSEEK: _bind_deepseek,
    ProviderId.MISTRAL: _bind_mistral,
    ProviderId.OPENAI_LIKE: _bind_openai_like,
    ProviderId.XAI: _bind_xai,
    ProviderId.COHERE: _bind_cohere,
    ProviderId.LMSTUDIO: _bind_lmstudio,
    ProviderId.OLLAMA: _bind_ollama,
}


def bind(
    provider_name: str,
    model_name: str,
    settings: Settings,
    user_keys: Mapping[str, str] | None = None,
) -> ModelHandle:
    """Return a :class:`ModelHandle` for *model_name* served by *provider_name*.

    Unknown provider names are served by the local Ollama runtime.

    Raises:
        AuthError: A hosted OpenAI-compatible provider has no key.
        InvalidRequestError: The provider needs an endpoint that is not configured.
    """
    provider = ProviderId.parse(provider_name) or ProviderId.OLLAMA
    api_key = resolve_api_key(settings, provider.value, user_keys)
    base_url = resolve_base_url(settings, provider.value)
    return BINDERS[provider](model_name, api_key, base_url, settings)
