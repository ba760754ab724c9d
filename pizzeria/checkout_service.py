"""
Checkout service for turning a cart into an order.
"""
import logging
from typing import Optional

from pizzeria.cart_service import CartService
from pizzeria.exceptions import RedisConnectionError, ValidationError
from pizzeria.models import CheckoutRequest, OrderRecord
from pizzeria.order_service import OrderService

logger = logging.getLogger(__name__)


class CheckoutService:
    """Service for checkout operations"""

    def __init__(self, cart_service: Optional[CartService] = None, order_service: Optional[OrderService] = None):
        self.cart_service = cart_service or CartService()
        self.order_service = order_service or OrderService()

    def start_checkout(self, cart_id: str, request: CheckoutRequest, is_guest: bool = False) -> OrderRecord:
        """
        Checkout process:
        1. Rehydrate the cart against the current catalog
        2. Re-price every line and persist the order
        3. Clear the cart only once the order is saved

        A persistence failure leaves the cart untouched so the whole
        submission can be retried. Once the order is saved the record is
        returned even if the cart cannot be cleared.
        """
        record = None
        try:
            with self.cart_service.session(cart_id, is_guest) as store:
                if not store.lines:
                    raise ValidationError("Cannot checkout empty cart")

                record = self.order_service.finalize(
                    store.lines,
                    customer_name=request.customer_name,
                    customer_phone=request.customer_phone,
                    address=request.address,
                    payment_method=request.payment_method,
                    coupon=store.coupon,
                    observations=request.observations,
                    status=request.status,
                    catalog=store.catalog,
                )

                store.clear()
        except RedisConnectionError:
            if record is None:
                raise
            logger.error(
                f"Order {record.id} saved but cart {self.cart_service._hash_cart_id(cart_id)} was not cleared",
                exc_info=True
            )
        return record
