from .base import Datastore
from .memory import InMemoryDatastore
from .parse_client import ParseRestClient
from .query import Query
from .query_result_cache import CachePolicy, QueryResultCache

__all__ = [
    "CachePolicy",
    "Datastore",
    "InMemoryDatastore",
    "ParseRestClient",
    "Query",
    "QueryResultCache",
]
