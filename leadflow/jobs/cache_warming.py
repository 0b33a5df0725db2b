from __future__ import annotations

import logging
from typing import Any

from leadflow.cache.middleware import ResponseCache
from leadflow.services.app_config import AppConfigService
from leadflow.services.products import ProductCatalogService

logger = logging.getLogger(__name__)

PRODUCTS_PATH = "/api/products"
CONFIG_PATH = "/api/config"


class CacheWarmingJob:
    """Pre-populates the response cache for the anonymous product list and the config endpoint.

    Entries are rendered through the same services the routes use, so a
    request that follows is served the identical body from cache.
    """

    name = "cache_warming"

    def __init__(
        self,
        response_cache: ResponseCache,
        product_service: ProductCatalogService,
        config_service: AppConfigService,
        *,
        default_limit: int = 50,
    ) -> None:
        self.response_cache = response_cache
        self.product_service = product_service
        self.config_service = config_service
        self.default_limit = default_limit

    async def __call__(self) -> dict[str, Any]:
        if not self.response_cache.enabled:
            logger.info("response cache disabled, skipping cache warming")
            return {"warmed": [], "failed": [], "skipped": True}

        warmed: list[str] = []
        failed: list[str] = []
        for path, build in (
            (PRODUCTS_PATH, self._products_payload),
            (CONFIG_PATH, self.config_service.payload),
        ):
            try:
                if await self.response_cache.store_payload(path, await build()):
                    warmed.append(path)
                else:
                    failed.append(path)
            except Exception as exc:
                failed.append(path)
                logger.warning("failed to warm %s: %s", path, exc)
        return {"warmed": warmed, "failed": failed}

    async def _products_payload(self) -> dict[str, Any]:
        return await self.product_service.list_products(limit=self.default_limit)
