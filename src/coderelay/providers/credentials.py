"""API key and base URL resolution for upstream providers.

Keys supplied by the client win over keys from the environment; both are
looked up by provider name.  Nothing here raises for a missing key: the
upstream call fails instead and the handler reports it as a credential error.
"""

from collections.abc import Mapping

from coderelay.config import Settings
from coderelay.providers.models import ProviderId

# Provider -> Settings attribute holding its key (named after the env var).
API_KEY_SETTINGS: dict[ProviderId, str] = {
    ProviderId.ANTHROPIC: "anthropic_api_key",
    ProviderId.OPENAI: "openai_api_key",
    ProviderId.GOOGLE: "google_generative_ai_api_key",
    ProviderId.GROQ: "groq_api_key",
    ProviderId.HUGGINGFACE: "huggingface_api_key",
    ProviderId.OPENROUTER: "open_router_api_key",
    ProviderId.DEEPSEEK: "deepseek_api_key",
    ProviderId.MISTRAL: "mistral_api_key",
    ProviderId.OPENAI_LIKE: "openai_like_api_key",
    ProviderId.XAI: "xai_api_key",
    ProviderId.COHERE: "cohere_api_key",
}

# Provider -> (Settings attribute, default) for self-hosted endpoints.
BASE_URL_SETTINGS: dict[ProviderId, tuple[str, str]] = {
    ProviderId.OPENAI_LIKE: ("openai_like_api_base_url", ""),
    ProviderId.LMSTUDIO: ("lmstudio_api_base_url", "http://localhost:1234"),
    ProviderId.OLLAMA: ("ollama_api_base_url", "http://localhost:11434"),
}

LOCAL_INFERENCE_PROVIDERS: frozenset[ProviderId] = frozenset(
    {ProviderId.LMSTUDIO, ProviderId.OLLAMA}
)

DOCKER_HOST = "host.docker.internal"


def resolve_api_key(
    settings: Settings,
    provider_name: str,
    user_keys: Mapping[str, str] | None = None,
) -> str:
    """Return the API key for *provider_name*, or ``""`` when none is configured."""
    if user_keys:
        user_key = user_keys.get(provider_name)
        if isinstance(user_key, str) and user_key:
            return user_key

    provider = ProviderId.parse(provider_name)
    attr = API_KEY_SETTINGS.get(provider) if provider else None
    if attr is None:
        return ""

    secret = getattr(settings, attr)
    return secret.get_secret_value() if secret is not None else ""


def resolve_base_url(settings: Settings, provider_name: str) -> str:
    """Return the endpoint of a self-hosted provider, or ``""`` for everything else."""
    provider = ProviderId.parse(provider_name)
    if provider not in BASE_URL_SETTINGS:
        return ""

    attr, default = BASE_URL_SETTINGS[provider]
    base_url = getattr(settings, attr) or default

    if settings.running_in_docker and provider in LOCAL_INFERENCE_PROVIDERS:
        base_url = base_url.replace("localhost", DOCKER_HOST)

    return base_url
