"""Request-scoped access to the collaborators created at startup."""

from fastapi import HTTPException, Request

from coderelay.config import Settings, settings
from coderelay.providers import LiteLLMGateway, ModelCatalog


def get_settings(request: Request) -> Settings:
    """Return the :class:`Settings` on ``app.state``, or the process-wide instance."""
    return getattr(request.app.state, "settings", None) or settings


def get_gateway(request: Request) -> LiteLLMGateway:
    """Return the shared :class:`LiteLLMGateway` from ``app.state``."""
    gateway: LiteLLMGateway | None = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Gateway not initialised")
    return gateway


def get_catalog(request: Request) -> ModelCatalog:
    """Return the shared :class:`ModelCatalog` from ``app.state``."""
    catalog: ModelCatalog | None = getattr(request.app.state, "catalog", None)
    if catalog is None:
        raise HTTPException(status_code=503, detail="Model catalog not initialised")
    return catalog
