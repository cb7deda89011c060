from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from coderelay.api.dependencies import get_catalog, get_settings
from coderelay.config import Settings
from coderelay.providers import ModelCatalog

router = APIRouter(prefix="/api", tags=["models"])


@router.get("/models")
async def list_models(
    settings: Settings = Depends(get_settings),
    catalog: ModelCatalog = Depends(get_catalog),
) -> JSONResponse:
    """Return every known model, refreshing dynamic providers when the list is stale."""
    if catalog.is_stale(settings.catalog_ttl):
        await catalog.refresh()
    return JSONResponse(content=[model.to_dict() for model in catalog.models])


@router.get("/providers")
async def list_providers(catalog: ModelCatalog = Depends(get_catalog)) -> JSONResponse:
    """Return provider metadata for the model picker and API-key settings."""
    return JSONResponse(content=[provider.to_dict() for provider in catalog.list_providers()])
