from __future__ import annotations


class LeadflowError(Exception):
    status_code: int = 500
    error_type: str = "server_error"
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, param: str | None = None, code: str | None = None):
        self.message = message or self.message
        self.param = param
        self.code = code
        super().__init__(self.message)


class InvalidRequestError(LeadflowError):
    status_code = 400
    error_type = "invalid_request_error"
    message = "Invalid request"


class InvalidCursorError(InvalidRequestError):
    message = "Invalid cursor format"

    def __init__(self, message: str | None = None, param: str | None = "cursor", code: str | None = "invalid_cursor"):
        super().__init__(message=message, param=param, code=code)


class NotFoundError(LeadflowError):
    status_code = 404
    error_type = "not_found"
    message = "Object not found"


class CacheMissError(NotFoundError):
    error_type = "cache_miss"
    message = "No cached results for query"


class ServiceUnavailableError(LeadflowError):
    status_code = 503
    error_type = "service_unavailable"
    message = "Service unavailable"


class DatastoreUnavailableError(ServiceUnavailableError):
    error_type = "datastore_unavailable"
    message = "Datastore unavailable"
