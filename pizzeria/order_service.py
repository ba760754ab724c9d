"""
Order finalization: re-prices cart lines from catalog data, persists an
immutable order record, then notifies collaborators.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from pizzeria import pricing
from pizzeria.catalog import VariationCatalog
from pizzeria.collaborators import (
    FlatFreightService,
    FreightService,
    LoggingNotifier,
    LoyaltyService,
    Notifier,
    OrderRepository,
    RedisLoyaltyTracker,
    RedisOrderRepository,
    hash_identifier,
)
from pizzeria.exceptions import OrderNotFoundError, PersistenceFailure, ValidationError
from pizzeria.models import (
    Coupon,
    OrderBorder,
    OrderLine,
    OrderRecord,
    OrderStatus,
    OrderVariation,
    OrderVariationGroup,
    PaymentMethod,
    PaymentStatus,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """Service for order creation and follow-up"""

    def __init__(
        self,
        repository: Optional[OrderRepository] = None,
        freight: Optional[FreightService] = None,
        notifier: Optional[Notifier] = None,
        loyalty: Optional[LoyaltyService] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.repository = repository or RedisOrderRepository()
        self.freight = freight or FlatFreightService()
        self.notifier = notifier or LoggingNotifier()
        self.loyalty = loyalty or RedisLoyaltyTracker()
        self.clock = clock

    @staticmethod
    def resolve_line(line, catalog: Optional[VariationCatalog] = None) -> OrderLine:
        """Snapshot a cart line with every price resolved"""
        groups = []
        for group in line.selected_variations:
            variations = [
                OrderVariation(
                    variation_id=v.variation_id,
                    quantity=v.quantity,
                    name=v.name or (catalog.name_of(v.variation_id) if catalog else ""),
                    additional_price=pricing.variation_price(v, catalog),
                    half_selection=v.half_selection,
                )
                for v in group.variations
                if v.quantity > 0
            ]
            if variations:
                groups.append(OrderVariationGroup(
                    group_id=group.group_id,
                    group_name=group.group_name or group.group_id,
                    variations=variations,
                ))

        border = line.selected_border
        return OrderLine(
            menu_item_id=line.id,
            name=line.item.name,
            price=pricing.unit_price(line),
            quantity=line.quantity,
            selected_variations=groups,
            selected_border=(
                OrderBorder(id=border.id, name=border.name, additional_price=border.additional_price)
                if border else None
            ),
            price_from=line.item.price_from,
            is_half_pizza=line.is_half_pizza,
            is_pizza=line.item.is_pizza,
            combination=line.combination if line.is_half_pizza else None,
            free_shipping=line.free_shipping,
            subtotal=pricing.to_money(pricing.line_total(line, catalog)),
        )

    def finalize(
        self,
        lines: Sequence,
        customer_name: str,
        customer_phone: str,
        address: str,
        payment_method: PaymentMethod,
        coupon: Optional[Coupon] = None,
        observations: str = "",
        status: OrderStatus = OrderStatus.PENDING,
        catalog: Optional[VariationCatalog] = None,
    ) -> OrderRecord:
        """
        Create an order from cart lines.

        Subtotals are recomputed here from the lines; nothing the caller
        declares about totals is used. Freight is zero when any line has free
        shipping. A failed write raises PersistenceFailure and nothing is
        notified. Not idempotent: callers must not submit the same action twice.
        """
        if not lines:
            raise ValidationError("Cannot checkout empty cart")

        items = [self.resolve_line(line, catalog) for line in lines]
        subtotal = sum((item.subtotal for item in items), Decimal("0"))
        discount = min(pricing.to_money(pricing.discount_amount(subtotal, coupon)), subtotal)

        if any(item.free_shipping for item in items):
            freight = Decimal("0.00")
        else:
            freight = pricing.to_money(self.freight.freight_for(address))

        now = self.clock()
        record = OrderRecord(
            customer_name=customer_name,
            customer_phone=customer_phone,
            address=address,
            payment_method=payment_method,
            observations=observations,
            items=items,
            status=status,
            subtotal=subtotal,
            freight=freight,
            discount=discount,
            total=subtotal - discount + freight,
            coupon_code=coupon.code if coupon else None,
            created_at=now,
            updated_at=now,
        )

        try:
            order_id = self.repository.create(record)
        except Exception as e:
            logger.error(f"Order persistence failed: {type(e).__name__}: {e}", exc_info=True)
            raise PersistenceFailure(f"Could not save order: {e}", cause=e) from e

        record = record.model_copy(update={"id": order_id})
        logger.info(
            f"Order created: {order_id}, Total: {record.total}",
            extra={"order_id": order_id, "hashed_phone": hash_identifier(customer_phone)},
        )

        self._notify(record)
        try:
            self.loyalty.accrue(record)
        except Exception:
            logger.error(f"Loyalty accrual failed for order {order_id}", exc_info=True)

        return record

    def _notify(self, record: OrderRecord) -> None:
        try:
            self.notifier.notify(record)
        except Exception:
            logger.error(f"Notification failed for order {record.id}", exc_info=True)

    def get_order(self, order_id: str) -> OrderRecord:
        record = self.repository.get(order_id)
        if record is None:
            raise OrderNotFoundError(order_id)
        return record

    def orders_for_phone(self, phone: str) -> List[OrderRecord]:
        return self.repository.list_by_phone(phone)

    def update_status(
        self,
        order_id: str,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
    ) -> OrderRecord:
        """Move an order to a new status and/or payment status"""
        record = self.get_order(order_id)
        update = {"updated_at": self.clock()}
        if status is not None:
            update["status"] = status
        if payment_status is not None:
            update["payment_status"] = payment_status
        updated = record.model_copy(update=update)

        try:
            self.repository.update(updated)
        except Exception as e:
            raise PersistenceFailure(f"Could not update order {order_id}: {e}", cause=e) from e

        if updated.status != record.status:
            self._notify(updated)
        return updated
