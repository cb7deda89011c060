"""Map upstream failures to the HTTP responses the browser client understands."""

from typing import Any

from fastapi.responses import PlainTextResponse, Response

from coderelay.providers import ProviderError

CREDENTIAL_ERROR_MESSAGE = "Invalid or missing API key"


def is_credential_error(exc: BaseException) -> bool:
    """Return ``True`` if *exc* means the upstream rejected or lacked an API key."""
    return bool(getattr(exc, "credential_failure", False)) or "API key" in str(exc)


def upstream_error_response(exc: Exception, log: Any) -> Response:
    """Log *exc* and return 401 for credential problems, otherwise an empty 500."""
    message = exc.message if isinstance(exc, ProviderError) else str(exc)

    if is_credential_error(exc):
        log.warning("upstream_credential_error", error_type=type(exc).__name__, error=message)
        return PlainTextResponse(CREDENTIAL_ERROR_MESSAGE, status_code=401)

    log.error(
        "upstream_request_error",
        error_type=type(exc).__name__,
        error=message,
        exc_info=not isinstance(exc, ProviderError),
    )
    return Response(status_code=500)
