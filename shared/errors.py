"""
Shared error handling for the order cache service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class OrderServiceException(Exception):
    """Base exception for the order cache service."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(OrderServiceException):
    """Invalid configuration detected at startup."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class CacheError(OrderServiceException):
    """Cache backend errors."""

    def __init__(self, message: str = "Cache backend error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_BACKEND_ERROR", message, details)


class PersistenceError(OrderServiceException):
    """Durable store errors."""

    def __init__(self, message: str = "Persistence error", details: Optional[Dict[str, Any]] = None,
                 code: str = "PERSISTENCE_ERROR"):
        super().__init__(code, message, details)


class DuplicateOrderError(PersistenceError):
    """The order identifier is already present in the durable store."""

    def __init__(self, order_uid: str):
        super().__init__(
            f"order with order_uid {order_uid} already exists",
            {"order_uid": order_uid},
            code="DUPLICATE_ORDER",
        )
        self.order_uid = order_uid


class OrderDecodeError(OrderServiceException):
    """A raw payload could not be decoded into an order."""

    def __init__(self, message: str = "Order payload could not be decoded", details: Optional[Dict[str, Any]] = None):
        super().__init__("ORDER_DECODE_ERROR", message, details)


class TransportError(OrderServiceException):
    """Stream or dead-letter connectivity errors."""

    def __init__(self, service: str, message: str = "Transport error", details: Optional[Dict[str, Any]] = None):
        super().__init__("TRANSPORT_ERROR", f"{service}: {message}", details)
