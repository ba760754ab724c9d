"""
Custom exceptions for the ordering service.
"""
from typing import List, Optional

class OrderingException(Exception):
    """Base exception for ordering operations"""
    pass

class ValidationError(OrderingException):
    """Raised when a request cannot be accepted as given"""
    def __init__(self, message: str, messages: Optional[List[str]] = None):
        self.message = message
        self.messages = messages or []
        super().__init__(message)

class LimitExceededError(OrderingException):
    """Raised when cart limits are exceeded"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

class ItemNotFoundError(OrderingException):
    """Raised when a catalog item does not exist or is unavailable"""
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Catalog item not found: {item_id}")

class LineNotFoundError(OrderingException):
    """Raised when a cart line does not exist"""
    def __init__(self, ref):
        self.ref = ref
        super().__init__(f"Cart line not found: {ref}")

class OrderNotFoundError(OrderingException):
    """Raised when an order does not exist"""
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")

class SelectionClosedError(OrderingException):
    """Raised when a confirmed or cancelled selection is modified"""
    pass

class PersistenceFailure(OrderingException):
    """Raised when an order could not be written"""
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)

class RedisConnectionError(OrderingException):
    """Raised when Redis connection fails"""
    pass
