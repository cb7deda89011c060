"""Static provider registry and the dynamic model fetchers.

``PROVIDER_LIST`` is defined once at import and never mutated.  Providers that
can enumerate their own models (self-hosted runtimes, OpenRouter) carry a
``fetch_models`` coroutine function; :class:`~coderelay.providers.catalog.ModelCatalog`
invokes those concurrently and contains their failures.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx

from coderelay.config import Settings
from coderelay.providers.credentials import resolve_api_key, resolve_base_url
from coderelay.providers.models import ModelInfo, ProviderId

ModelFetcher = Callable[[Settings], Awaitable[list[ModelInfo]]]

OPENROUTER_MODELS_URL = "https://openrouter.ai/api/v1/models"


@dataclass(frozen=True)
class Provider:
    """An upstream LLM service as listed to the client.

    Attributes:
        name: Unique provider name; matches a :class:`ProviderId` value.
        static_models: Models known without asking the upstream.
        fetch_models: Optional coroutine function returning the models the
            upstream currently offers.
        api_key_link: Where a user obtains a key (or the runtime download page).
        label_for_api_key: Link text override for ``api_key_link``.
        icon: Icon class name shown next to the provider.
    """

    name: str
    static_models: tuple[ModelInfo, ...] = ()
    fetch_models: ModelFetcher | None = None
    api_key_link: str | None = None
    label_for_api_key: str | None = None
    icon: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "staticModels": [m.to_dict() for m in self.static_models],
            "hasDynamicModels": self.fetch_models is not None,
            "getApiKeyLink": self.api_key_link,
            "labelForGetApiKey": self.label_for_api_key,
            "icon": self.icon,
        }


def _models(provider: ProviderId, *entries: tuple) -> tuple[ModelInfo, ...]:
    return tuple(ModelInfo(*entry[:2], provider.value, *entry[2:]) for entry in entries)


def _client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.catalog_fetch_timeout)


# ---------------------------------------------------------------------------
# Dynamic model fetchers
# ---------------------------------------------------------------------------


async def fetch_ollama_models(settings: Settings) -> list[ModelInfo]:
    base_url = resolve_base_url(settings, ProviderId.OLLAMA.value)
    async with _client(settings) as client:
        response = await client.get(f"{base_url}/api/tags")
        response.raise_for_status()
        data = response.json()

    return [
        ModelInfo(
            name=model["name"],
            label=f"{model['name']} ({model['details']['parameter_size']})",
            provider=ProviderId.OLLAMA.value,
        )
        for model in data["models"]
    ]


async def fetch_openai_like_models(settings: Settings) -> list[ModelInfo]:
    base_url = resolve_base_url(settings, ProviderId.OPENAI_LIKE.value)
    if not base_url:
        return []

    api_key = resolve_api_key(settings, ProviderId.OPENAI_LIKE.value)
    async with _client(settings) as client:
        response = await client.get(
            f"{base_url}/models",
            headers={"Authorization": f"Bearer {api_key}"},
        )
        response.raise_for_status()
        data = response.json()

    return [
        ModelInfo(name=model["id"], label=model["id"], provider=ProviderId.OPENAI_LIKE.value)
        for model in data["data"]
    ]


async def fetch_openrouter_models(settings: Settings) -> list[ModelInfo]:
    async with _client(settings) as client:
        response = await client.get(
            OPENROUTER_MODELS_URL,
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()
        data = response.json()

    models = sorted(data["data"], key=lambda m: m["name"])
    return [
        ModelInfo(
            name=m["id"],
            label=(
                f"{m['name']} - in:${float(m['pricing']['prompt']) * 1_000_000:.2f}"
                f" out:${float(m['pricing']['completion']) * 1_000_000:.2f}"
                f" - context {int(m['context_length']) // 1000}k"
            ),
            provider=ProviderId.OPENROUTER.value,
        )
        for m in models
    ]


async def fetch_lmstudio_models(settings: Settings) -> list[ModelInfo]:
    base_url = resolve_base_url(settings, ProviderId.LMSTUDIO.value)
    async with _client(settings) as client:
        response = await client.get(f"{base_url}/v1/models")
        response.raise_for_status()
        data = response.json()

    return [
        ModelInfo(name=model["id"], label=model["id"], provider=ProviderId.LMSTUDIO.value)
        for model in data["data"]
    ]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

PROVIDER_LIST: tuple[Provider, ...] = (
    Provider(
        name=ProviderId.ANTHROPIC.value,
        static_models=_models(
            ProviderId.ANTHROPIC,
            ("claude-3-5-sonnet-latest", "Claude 3.5 Sonnet (new)"),
            ("claude-3-5-sonnet-20240620", "Claude 3.5 Sonnet (old)"),
            ("claude-3-5-haiku-latest", "Claude 3.5 Haiku (new)"),
            ("claude-3-opus-latest", "Claude 3 Opus"),
            ("claude-3-sonnet-20240229", "Claude 3 Sonnet"),
            ("claude-3-haiku-20240307", "Claude 3 Haiku"),
        ),
        api_key_link="https://console.anthropic.com/settings/keys",
    ),
    Provider(
        name=ProviderId.OLLAMA.value,
        fetch_models=fetch_ollama_models,
        api_key_link="https://ollama.com/download",
        label_for_api_key="Download Ollama",
        icon="i-ph:cloud-arrow-down",
    ),
    Provider(
        name=ProviderId.OPENAI_LIKE.value,
        fetch_models=fetch_openai_like_models,
    ),
    Provider(
        name=ProviderId.COHERE.value,
        static_models=_models(
            ProviderId.COHERE,
            ("command-r-plus-08-2024", "Command R plus Latest", 4096),
            ("command-r-08-2024", "Command R Latest", 4096),
            ("command-r-plus", "Command R plus", 4096),
            ("command-r", "Command R", 4096),
            ("command", "Command", 4096),
            ("command-nightly", "Command Nightly", 4096),
            ("command-light", "Command Light", 4096),
            ("command-light-nightly", "Command Light Nightly", 4096),
            ("c4ai-aya-expanse-8b", "c4AI Aya Expanse 8b", 4096),
            ("c4ai-aya-expanse-32b", "c4AI Aya Expanse 32b", 4096),
        ),
        api_key_link="https://dashboard.cohere.com/api-keys",
    ),
    Provider(
        name=ProviderId.OPENROUTER.value,
        static_models=(
            ModelInfo("gpt-4o", "GPT-4o", ProviderId.OPENAI.value),
            *_models(
                ProviderId.OPENROUTER,
                ("anthropic/claude-3.5-sonnet", "Anthropic: Claude 3.5 Sonnet (OpenRouter)"),
                ("anthropic/claude-3-haiku", "Anthropic: Claude 3 Haiku (OpenRouter)"),
                ("deepseek/deepseek-coder", "Deepseek-Coder V2 236B (OpenRouter)"),
                ("google/gemini-flash-1.5", "Google Gemini Flash 1.5 (OpenRouter)"),
                ("google/gemini-pro-1.5", "Google Gemini Pro 1.5 (OpenRouter)"),
                ("x-ai/grok-beta", "xAI Grok Beta (OpenRouter)"),
                ("mistralai/mistral-nemo", "OpenRouter Mistral Nemo (OpenRouter)"),
                ("qwen/qwen-110b-chat", "OpenRouter Qwen 110b Chat (OpenRouter)"),
                ("cohere/command", "Cohere Command (OpenRouter)", 4096),
            ),
        ),
        fetch_models=fetch_openrouter_models,
        api_key_link="https://openrouter.ai/settings/keys",
    ),
    Provider(
        name=ProviderId.GOOGLE.value,
        static_models=_models(
            ProviderId.GOOGLE,
            ("gemini-1.5-flash-latest", "Gemini 1.5 Flash", 8192),
            ("gemini-1.5-flash-002", "Gemini 1.5 Flash-002", 8192),
            ("gemini-1.5-flash-8b", "Gemini 1.5 Flash-8b", 8192),
            ("gemini-1.5-pro-latest", "Gemini 1.5 Pro", 8192),
            ("gemini-1.5-pro-002", "Gemini 1.5 Pro-002", 8192),
            ("gemini-exp-1121", "Gemini exp-1121", 8192),
        ),
        api_key_link="https://aistudio.google.com/app/apikey",
    ),
    Provider(
        name=ProviderId.GROQ.value,
        static_models=_models(
            ProviderId.GROQ,
            ("llama-3.1-70b-versatile", "Llama 3.1 70b (Groq)"),
            ("llama-3.1-8b-instant", "Llama 3.1 8b (Groq)"),
            ("llama-3.2-11b-vision-preview", "Llama 3.2 11b (Groq)"),
            ("llama-3.2-3b-preview", "Llama 3.2 3b (Groq)"),
            ("llama-3.2-1b-preview", "Llama 3.2 1b (Groq)"),
        ),
        api_key_link="https://console.groq.com/keys",
    ),
    Provider(
        name=ProviderId.HUGGINGFACE.value,
        static_models=_models(
            ProviderId.HUGGINGFACE,
            ("Qwen/Qwen2.5-Coder-32B-Instruct", "Qwen2.5-Coder-32B-Instruct (HuggingFace)"),
            ("01-ai/Yi-1.5-34B-Chat", "Yi-1.5-34B-Chat (HuggingFace)"),
            ("codellama/CodeLlama-34b-Instruct-hf", "CodeLlama-34b-Instruct (HuggingFace)"),
            ("NousResearch/Hermes-3-Llama-3.1-8B", "Hermes-3-Llama-3.1-8B (HuggingFace)"),
            ("Qwen/Qwen2.5-72B-Instruct", "Qwen2.5-72B-Instruct (HuggingFace)"),
            ("meta-llama/Llama-3.1-70B-Instruct", "Llama-3.1-70B-Instruct (HuggingFace)"),
            ("meta-llama/Llama-3.1-405B", "Llama-3.1-405B (HuggingFace)"),
        ),
        api_key_link="https://huggingface.co/settings/tokens",
    ),
    Provider(
        name=ProviderId.OPENAI.value,
        static_models=_models(
            ProviderId.OPENAI,
            ("gpt-4o-mini", "GPT-4o Mini"),
            ("gpt-4-turbo", "GPT-4 Turbo"),
            ("gpt-4", "GPT-4"),
            ("gpt-3.5-turbo", "GPT-3.5 Turbo"),
        ),
        api_key_link="https://platform.openai.com/api-keys",
    ),
    Provider(
        name=ProviderId.XAI.value,
        static_models=_models(ProviderId.XAI, ("grok-beta", "xAI Grok Beta")),
        api_key_link="https://docs.x.ai/docs/quickstart#creating-an-api-key",
    ),
    Provider(
        name=ProviderId.DEEPSEEK.value,
        static_models=_models(
            ProviderId.DEEPSEEK,
            ("deepseek-coder", "Deepseek-Coder"),
            ("deepseek-chat", "Deepseek-Chat"),
        ),
        api_key_link="https://platform.deepseek.com/apiKeys",
    ),
    Provider(
        name=ProviderId.MISTRAL.value,
        static_models=_models(
            ProviderId.MISTRAL,
            ("open-mistral-7b", "Mistral 7B"),
            ("open-mixtral-8x7b", "Mistral 8x7B"),
            ("open-mixtral-8x22b", "Mistral 8x22B"),
            ("open-codestral-mamba", "Codestral Mamba"),
            ("open-mistral-nemo", "Mistral Nemo"),
            ("ministral-8b-latest", "Mistral 8B"),
            ("mistral-small-latest", "Mistral Small"),
            ("codestral-latest", "Codestral"),
            ("mistral-large-latest", "Mistral Large Latest"),
        ),
        api_key_link="https://console.mistral.ai/api-keys/",
    ),
    Provider(
        name=ProviderId.LMSTUDIO.value,
        fetch_models=fetch_lmstudio_models,
        api_key_link="https://lmstudio.ai/",
        label_for_api_key="Get LMStudio",
        icon="i-ph:cloud-arrow-down",
    ),
)

DEFAULT_PROVIDER: Provider = PROVIDER_LIST[0]
DEFAULT_MODEL = "claude-3-5-sonnet-latest"


def list_providers() -> list[Provider]:
    """Return the registered providers in their fixed display order."""
    return list(PROVIDER_LIST)
