"""Process-wide model catalog: static models plus dynamically discovered ones.

The catalog is owned by the application (``app.state.catalog``) and handed to
request handlers through a dependency.  A refresh swaps the whole model list
in one assignment, so concurrent readers see either the old or the new list.
"""

import asyncio
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

import structlog

from coderelay.config import Settings
from coderelay.providers.models import ModelInfo
from coderelay.providers.registry import PROVIDER_LIST, ModelFetcher, Provider

_log = structlog.get_logger(__name__)


class ModelCatalog:
    """Merged listing of every provider's static and dynamic models.

    Static models are always present.  Dynamic models come first, in provider
    order, followed by all static models; entries are not deduplicated, so a
    lookup by name resolves to the first match.

    Args:
        settings: Configuration passed to each provider's fetcher.
        providers: Registry to list; defaults to :data:`PROVIDER_LIST`.
    """

    def __init__(
        self,
        settings: Settings,
        providers: Iterable[Provider] = PROVIDER_LIST,
    ) -> None:
        self._settings = settings
        self._providers = tuple(providers)
        self._static_models = [m for p in self._providers for m in p.static_models]
        self._models: list[ModelInfo] = list(self._static_models)
        self.refreshed_at: datetime | None = None

    @property
    def models(self) -> list[ModelInfo]:
        return list(self._models)

    def list_providers(self) -> list[Provider]:
        return list(self._providers)

    def find_model(self, name: str) -> ModelInfo | None:
        for model in self._models:
            if model.name == name:
                return model
        return None

    def is_stale(self, ttl_seconds: float) -> bool:
        """Return ``True`` if the catalog was never refreshed or is older than *ttl_seconds*."""
        if self.refreshed_at is None:
            return True
        return datetime.now(UTC) - self.refreshed_at > timedelta(seconds=ttl_seconds)

    async def refresh(self) -> list[ModelInfo]:
        """Re-run every provider's fetcher concurrently and rebuild the listing.

        A fetcher that raises or exceeds ``catalog_fetch_timeout`` contributes
        no models; it never aborts the refresh or delays the other providers
        beyond that timeout.
        """
        results = await asyncio.gather(
            *(
                self._fetch(p.name, p.fetch_models)
                for p in self._providers
                if p.fetch_models is not None
            )
        )

        dynamic_models = [m for models in results for m in models]
        self._models = dynamic_models + self._static_models
        self.refreshed_at = datetime.now(UTC)

        _log.info(
            "model_catalog_refreshed",
            dynamic_models=len(dynamic_models),
            static_models=len(self._static_models),
        )
        return self.models

    async def _fetch(self, provider_name: str, fetch_models: ModelFetcher) -> list[ModelInfo]:
        try:
            models = await asyncio.wait_for(
                fetch_models(self._settings),
                timeout=self._settings.catalog_fetch_timeout,
            )
        except Exception as exc:
            _log.warning(
                "dynamic_model_fetch_failed",
                provider=provider_name,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return []
        return list(models)
