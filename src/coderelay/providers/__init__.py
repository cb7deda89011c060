"""LLM provider abstraction layer.

Public surface area for the providers package.  Import from here rather than
from the individual submodules so internal structure can change freely.

Example::

    from coderelay.config import settings
    from coderelay.providers import CompletionRequest, LiteLLMGateway, bind

    handle = bind("Anthropic", "claude-3-5-sonnet-latest", settings, {"Anthropic": "sk-..."})
    gateway = LiteLLMGateway()
    chunks = await gateway.open_stream(
        CompletionRequest(handle=handle, messages=[{"role": "user", "content": "Hello"}])
    )
    async for chunk in chunks:
        print(chunk.content, end="")
"""

from coderelay.providers.catalog import ModelCatalog
from coderelay.providers.credentials import resolve_api_key, resolve_base_url
from coderelay.providers.errors import (
    AuthError,
    InvalidRequestError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
    SegmentLimitError,
    TimeoutError,
)
from coderelay.providers.factory import bind
from coderelay.providers.litellm_wrapper import ChunkStream, LiteLLMGateway
from coderelay.providers.models import (
    MAX_TOKENS,
    CompletionChunk,
    CompletionRequest,
    ModelHandle,
    ModelInfo,
    ProviderId,
    WireProtocol,
)
from coderelay.providers.registry import (
    DEFAULT_MODEL,
    DEFAULT_PROVIDER,
    PROVIDER_LIST,
    Provider,
    list_providers,
)

__all__ = [
    # Models
    "CompletionRequest",
    "CompletionChunk",
    "ModelHandle",
    "ModelInfo",
    "ProviderId",
    "WireProtocol",
    "MAX_TOKENS",
    # Registry / catalog
    "Provider",
    "PROVIDER_LIST",
    "DEFAULT_PROVIDER",
    "DEFAULT_MODEL",
    "list_providers",
    "ModelCatalog",
    # Credentials / binding
    "resolve_api_key",
    "resolve_base_url",
    "bind",
    # Gateway
    "ChunkStream",
    "LiteLLMGateway",
    # Errors
    "ProviderError",
    "RateLimitError",
    "AuthError",
    "TimeoutError",
    "InvalidRequestError",
    "ProviderUnavailableError",
    "SegmentLimitError",
]
