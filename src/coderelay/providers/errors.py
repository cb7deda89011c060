"""Failures raised while binding, calling or continuing an upstream model.

The gateway translates LiteLLM exceptions into these types once, so the chat
and enhancer handlers only ever see :class:`ProviderError` subclasses.  The
``credential_failure`` flag is what turns a failure into HTTP 401.
"""


class ProviderError(Exception):
    """Base class for upstream and continuation failures.

    Attributes:
        message: Text shown to the client in a ``3:`` error part.
        provider: Provider name such as ``"Anthropic"``, or ``None``.
        original_error: The LiteLLM or httpx exception behind this one.
    """

    credential_failure = False

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        self.message = message
        self.provider = provider
        self.original_error = original_error
        super().__init__(message)


class AuthError(ProviderError):
    """The provider refused the key, or no key was configured for it."""

    credential_failure = True


class RateLimitError(ProviderError):
    """HTTP 429 from the provider.

    ``retry_after`` carries the provider's ``Retry-After`` hint in seconds.
    """

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        provider: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, provider=provider, original_error=original_error)
        self.retry_after = retry_after


class TimeoutError(ProviderError):  # noqa: A001
    """The upstream call exceeded ``llm_timeout``."""


class InvalidRequestError(ProviderError):
    """Rejected input: bad parameters, context overflow, or a provider missing its base URL."""


class ProviderUnavailableError(ProviderError):
    """Upstream 5xx or a network failure."""


class SegmentLimitError(ProviderError):
    """A truncated answer would need more continuation segments than allowed."""

    def __init__(self, max_segments: int, provider: str | None = None) -> None:
        super().__init__(
            "Cannot continue message: Maximum segments reached",
            provider=provider,
        )
        self.max_segments = max_segments
