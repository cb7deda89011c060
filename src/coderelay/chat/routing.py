"""Per-message model/provider routing embedded in message text.

A user message may start with ``[Model: <name>]`` and/or ``[Provider: <name>]``
tags, each usually followed by a blank line.  The tags select the model for
that turn onward and are removed before the message is sent upstream.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from coderelay.providers.catalog import ModelCatalog
from coderelay.providers.models import MAX_TOKENS
from coderelay.providers.registry import DEFAULT_MODEL, DEFAULT_PROVIDER

_ROUTING_TAG = re.compile(r"\A\[(Model|Provider): (.*?)\]\s*")


@dataclass(frozen=True)
class RoutedMessage:
    model: str
    provider: str
    content: str


@dataclass(frozen=True)
class Conversation:
    """Messages ready to send upstream plus the routing they resolved to."""

    model: str
    provider: str
    max_tokens: int
    messages: list[dict[str, str]]


def match_routing_tags(content: str) -> tuple[str | None, str | None, str]:
    """Split leading routing tags off *content*.

    Returns ``(model, provider, remaining_content)`` where a tag that is not
    present is ``None``.  Content without tags is returned unchanged.
    """
    model: str | None = None
    provider: str | None = None
    rest = content

    while match := _ROUTING_TAG.match(rest):
        kind, value = match.groups()
        if kind == "Model":
            model = value
        else:
            provider = value
        rest = rest[match.end() :]

    if model is None and provider is None:
        return None, None, content
    return model, provider, rest.strip()


def extract_routing(content: str) -> RoutedMessage:
    """Return the routing requested by *content*, falling back to the defaults."""
    model, provider, stripped = match_routing_tags(content)
    return RoutedMessage(
        model=model or DEFAULT_MODEL,
        provider=provider or DEFAULT_PROVIDER.name,
        content=stripped,
    )


def prepare_conversation(
    messages: Iterable[Mapping[str, str]],
    catalog: ModelCatalog,
) -> Conversation:
    """Strip routing tags from user messages and resolve the active model.

    Tags stay in effect for later turns until another tag replaces them.  A
    model tag naming a model the catalog does not list is ignored.
    """
    model = DEFAULT_MODEL
    provider = DEFAULT_PROVIDER.name
    processed: list[dict[str, str]] = []

    for message in messages:
        if message["role"] != "user":
            processed.append(dict(message))
            continue

        tagged_model, tagged_provider, content = match_routing_tags(message["content"])
        if tagged_model and catalog.find_model(tagged_model) is not None:
            model = tagged_model
        if tagged_provider:
            provider = tagged_provider
        processed.append({**message, "content": content})

    details = catalog.find_model(model)
    max_tokens = details.max_token_allowed if details and details.max_token_allowed else MAX_TOKENS

    return Conversation(model=model, provider=provider, max_tokens=max_tokens, messages=processed)
