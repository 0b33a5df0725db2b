from .app_config import AppConfigService
from .lead_scoring import LeadScorer, LeadScoreResult, LLMLeadScorer
from .oauth import OAuthProvider, OAuthTokenRefresher, build_oauth_providers
from .products import ProductCatalogService

__all__ = [
    "AppConfigService",
    "LLMLeadScorer",
    "LeadScoreResult",
    "LeadScorer",
    "OAuthProvider",
    "OAuthTokenRefresher",
    "ProductCatalogService",
    "build_oauth_providers",
]
