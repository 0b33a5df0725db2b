from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request

from leadflow import __version__
from leadflow.archive import ArchiveService
from leadflow.cache import (
    AIResponseCache,
    CacheClient,
    CacheRule,
    CacheTagIndex,
    PeriodicTask,
    ProductCatalogCache,
    ResponseCache,
    ResponseCacheMiddleware,
    TemplateCache,
    build_cache_backend,
)
from leadflow.cache.backends import CacheBackend
from leadflow.config import AppConfig, Settings, get_settings, load_app_config, resolve_pagination, resolve_schedules
from leadflow.db import Datastore, InMemoryDatastore, ParseRestClient, QueryResultCache
from leadflow.jobs import (
    AnalyticsAggregationJob,
    ArchiveJob,
    CacheWarmingJob,
    LeadScoringJob,
    TokenRefreshJob,
    build_scheduler,
)
from leadflow.middleware import attach_identity, register_exception_handlers
from leadflow.routers import (
    analytics_router,
    archive_router,
    cache_router,
    config_router,
    health_router,
    jobs_router,
    leads_router,
    messages_router,
    metrics_router,
    products_router,
    templates_router,
)
from leadflow.services import (
    AppConfigService,
    LLMLeadScorer,
    OAuthTokenRefresher,
    ProductCatalogService,
    build_oauth_providers,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_datastore(settings: Settings, http_client: httpx.AsyncClient) -> Datastore:
    if settings.parse_configured:
        logger.info("datastore: parse server at %s", settings.parse_server_url)
        return ParseRestClient(
            settings.parse_server_url,
            settings.parse_application_id,
            rest_api_key=settings.parse_rest_api_key,
            master_key=settings.parse_master_key,
            http_client=http_client,
            query_cache=QueryResultCache(),
        )
    logger.warning("parse credentials not configured, using an in-process datastore")
    return InMemoryDatastore()


def configure_components(
    app: FastAPI,
    settings: Settings,
    cfg: AppConfig,
    *,
    datastore: Datastore,
    cache_backend: CacheBackend,
    http_client: httpx.AsyncClient,
) -> None:
    """Build every collaborator once and publish it on ``app.state``.

    Nothing is started here; the lifespan starts the sweepers and the
    scheduler.
    """
    cache_cfg = cfg.cache
    app.state.settings = settings
    app.state.app_config = cfg
    app.state.http_client = http_client
    app.state.identity_header = settings.identity_header
    app.state.pagination_limits = resolve_pagination(settings, cfg.pagination)
    app.state.datastore = datastore

    cache_client = CacheClient(cache_backend, timeout=cache_cfg.operation_timeout)
    tag_index = CacheTagIndex(cache_client, tag_ttl=cache_cfg.tag_ttl)
    app.state.cache_client = cache_client
    app.state.tag_index = tag_index
    app.state.response_cache = ResponseCache(
        cache_client,
        tag_index,
        [CacheRule.from_config(rule) for rule in cache_cfg.rules],
    )
    app.state.ai_cache = AIResponseCache(cache_client, ttl=cache_cfg.ai_response_ttl)

    product_catalog_cache = ProductCatalogCache(ttl=cache_cfg.product_catalog_ttl)
    template_cache = TemplateCache(ttl=cache_cfg.template_ttl)
    app.state.product_catalog_cache = product_catalog_cache
    app.state.template_cache = template_cache
    app.state.sweepers = [
        PeriodicTask("product-catalog-sweep", product_catalog_cache.cleanup, cache_cfg.product_sweep_interval),
        PeriodicTask("template-sweep", template_cache.cleanup, cache_cfg.template_sweep_interval),
    ]

    app.state.product_service = ProductCatalogService(
        datastore,
        product_catalog_cache,
        max_cache_age=cache_cfg.query_cache_max_age,
    )
    app.state.config_service = AppConfigService(datastore, max_cache_age=cache_cfg.query_cache_max_age)
    app.state.archive_service = ArchiveService(datastore)

    scorer = None
    if settings.llm_api_key:
        scorer = LLMLeadScorer(
            http_client,
            api_base=settings.llm_base_url,
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            ai_cache=app.state.ai_cache,
        )
    providers = build_oauth_providers(settings)
    refresher = OAuthTokenRefresher(http_client, providers) if providers else None

    jobs_cfg = cfg.jobs
    default_limit, _ = app.state.pagination_limits
    handlers: dict[str, Any] = {
        "analytics": AnalyticsAggregationJob(datastore, app.state.response_cache),
        "lead_scoring": LeadScoringJob(
            datastore,
            scorer,
            app.state.response_cache,
            batch_size=jobs_cfg.lead_scoring_batch_size,
        ),
        "token_refresh": TokenRefreshJob(
            datastore,
            refresher,
            window_seconds=jobs_cfg.token_refresh_window_seconds,
        ),
        "cache_warming": CacheWarmingJob(
            app.state.response_cache,
            app.state.product_service,
            app.state.config_service,
            default_limit=default_limit,
        ),
        "archive": ArchiveJob(
            app.state.archive_service,
            app.state.response_cache,
            message_limit=jobs_cfg.message_archive_limit,
            campaign_limit=jobs_cfg.campaign_archive_limit,
        ),
    }
    app.state.scheduler = build_scheduler(
        resolve_schedules(settings, jobs_cfg),
        handlers,
        timezone=jobs_cfg.timezone,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    cfg = load_app_config(settings.config_path)

    http_client = httpx.AsyncClient(timeout=60)
    cache_backend = build_cache_backend(
        settings,
        timeout=cfg.cache.operation_timeout,
        memory_max_size=cfg.cache.memory_max_size,
    )
    datastore = build_datastore(settings, http_client)
    configure_components(
        app,
        settings,
        cfg,
        datastore=datastore,
        cache_backend=cache_backend,
        http_client=http_client,
    )

    for sweeper in app.state.sweepers:
        sweeper.start()
    scheduler = app.state.scheduler
    if settings.scheduled_jobs_enabled and cfg.jobs.enabled:
        scheduler.start()
    else:
        logger.info("scheduled jobs disabled")

    logger.info("application startup complete (cache backend: %s)", app.state.cache_client.backend_name)
    try:
        yield
    finally:
        await scheduler.stop()
        await scheduler.wait_closed(timeout=30)
        for sweeper in app.state.sweepers:
            await sweeper.stop()
        await app.state.cache_client.close()
        await datastore.close()
        await http_client.aclose()


def create_app() -> FastAPI:
    app = FastAPI(title="Leadflow Core API", version=__version__, lifespan=lifespan)
    register_exception_handlers(app)
    app.add_middleware(ResponseCacheMiddleware)

    @app.middleware("http")
    async def _identity_middleware(request: Request, call_next):
        await attach_identity(request)
        return await call_next(request)

    app.include_router(products_router)
    app.include_router(messages_router)
    app.include_router(leads_router)
    app.include_router(config_router)
    app.include_router(analytics_router)
    app.include_router(templates_router)
    app.include_router(archive_router)
    app.include_router(cache_router)
    app.include_router(jobs_router)
    app.include_router(health_router)
    app.include_router(metrics_router)
    return app


app = create_app()
