from .analytics import router as analytics_router
from .archive import router as archive_router
from .cache import router as cache_router
from .config import router as config_router
from .health import router as health_router
from .jobs import router as jobs_router
from .leads import router as leads_router
from .messages import router as messages_router
from .metrics import router as metrics_router
from .products import router as products_router
from .templates import router as templates_router

__all__ = [
    "analytics_router",
    "archive_router",
    "cache_router",
    "config_router",
    "health_router",
    "jobs_router",
    "leads_router",
    "messages_router",
    "metrics_router",
    "products_router",
    "templates_router",
]
