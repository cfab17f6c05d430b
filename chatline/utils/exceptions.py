import functools
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChatlineException(Exception):
    """Base exception for the application"""
    pass


class AuthenticationError(ChatlineException):
    """Authentication related errors"""
    pass


class AuthorizationError(ChatlineException):
    """Authorization related errors"""
    pass


class ValidationError(ChatlineException):
    """Validation related errors"""
    pass


class NotFoundError(ChatlineException):
    """Resource not found errors"""
    pass


class ConflictError(ChatlineException):
    """Resource conflict errors"""
    pass


class GatewayError(ChatlineException):
    """An external provider call failed.

    The message always reads ``Failed to <action>: <provider message>``.
    """

    def __init__(self, action: str, cause: object):
        self.action = action
        self.cause = cause
        super().__init__(f"Failed to {action}: {cause}")


class StorageError(GatewayError):
    """Media upload related errors"""
    pass


def gateway_call(action: str, error_class: type = GatewayError):
    """Re-signal unexpected provider failures as a single ``GatewayError``.

    Domain errors (subclasses of ``ChatlineException``) pass through untouched.
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except ChatlineException:
                raise
            except Exception as e:
                logger.error(f"Failed to {action}: {e}")
                raise error_class(action, e) from e
        return wrapper
    return decorator
