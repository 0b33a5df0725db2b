from .errors import register_exception_handlers
from .identity import attach_identity, get_identity

__all__ = ["attach_identity", "get_identity", "register_exception_handlers"]
