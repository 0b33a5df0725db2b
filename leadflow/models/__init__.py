from .errors import (
    CacheMissError,
    DatastoreUnavailableError,
    InvalidCursorError,
    InvalidRequestError,
    LeadflowError,
    NotFoundError,
    ServiceUnavailableError,
)

__all__ = [
    "CacheMissError",
    "DatastoreUnavailableError",
    "InvalidCursorError",
    "InvalidRequestError",
    "LeadflowError",
    "NotFoundError",
    "ServiceUnavailableError",
]
