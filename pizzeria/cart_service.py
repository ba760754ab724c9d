"""
Cart service: opens a cart store per cart id and drives item configuration
(half-and-half combination, variation selection) from request payloads.
"""
import hashlib
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from pizzeria import pricing
from pizzeria.cart import CartStore, RedisCartStorage, line_key
from pizzeria.catalog import CatalogStore, VariationCatalog
from pizzeria.combiner import HalfAndHalfCombiner
from pizzeria.config import Config
from pizzeria.exceptions import (
    ItemNotFoundError,
    LimitExceededError,
    LineNotFoundError,
    ValidationError,
)
from pizzeria.models import (
    AddLineRequest,
    CartLineView,
    CartResponse,
    CatalogItem,
    Coupon,
    EditLineRequest,
    SelectionRequest,
)
from pizzeria.redis_client import RedisClient, get_redis_client
from pizzeria.selection import ConfiguredLine, SelectionState, VariationSelection

logger = logging.getLogger(__name__)


def apply_selections(selection: VariationSelection, requests: List[SelectionRequest]) -> None:
    """
    Drive a selection to the requested quantities.

    Rows not mentioned go to zero. Decreases run before increases so a group
    at its maximum can swap one variation for another. A row whose half tag
    changes is cleared and selected again. Raises ValidationError when a
    request names an unknown variation, omits a required half, or asks for
    more than a group allows.
    """
    wanted = {}
    for request in requests:
        if selection.row(request.group_id, request.variation_id) is None:
            raise ValidationError(
                f"Variation {request.variation_id} is not available in group {request.group_id}"
            )
        wanted[(request.group_id, request.variation_id)] = request

    for group in selection.groups:
        for row in group.variations:
            request = wanted.get((group.group_id, row.variation_id))
            target = request.quantity if request else 0
            if request and request.half_selection and row.quantity and row.half_selection != request.half_selection:
                target = 0
            while row.quantity > target:
                selection.decrease(group.group_id, row.variation_id)

    for (group_id, variation_id), request in wanted.items():
        row = selection.row(group_id, variation_id)
        while row.quantity < request.quantity:
            changed = selection.increase(group_id, variation_id)
            if not changed and selection.state == SelectionState.CHOOSING_HALF:
                if request.half_selection is None:
                    selection.cancel_half()
                    raise ValidationError(f"Choose half1, half2 or whole for {row.name}")
                changed = selection.choose_half(request.half_selection)
            if not changed:
                raise ValidationError(
                    f"Too many selections for {row.name}",
                    messages=[selection.message(group_id)],
                )


class CartService:
    """Service for cart operations"""

    def __init__(self, redis: Optional[RedisClient] = None, catalog_store: Optional[CatalogStore] = None):
        self.redis = redis or get_redis_client()
        self.catalog_store = catalog_store or CatalogStore(self.redis)

    def _hash_cart_id(self, cart_id: str) -> str:
        """Hash cart ID for logging (no PII)"""
        return hashlib.sha256(cart_id.encode()).hexdigest()[:8]

    def _get_ttl(self, is_guest: bool = False) -> int:
        """Get TTL for cart based on type"""
        if is_guest:
            return Config.GUEST_CART_TTL_SECONDS
        return Config.CART_TTL_SECONDS

    @contextmanager
    def session(self, cart_id: str, is_guest: bool = False) -> Iterator[CartStore]:
        """Open, rehydrate and finally tear down the store for one cart"""
        storage = RedisCartStorage(cart_id, self.redis, ttl=self._get_ttl(is_guest))
        store = CartStore(storage).init()
        dropped = store.rehydrate(self.catalog_store.load())
        if dropped:
            logger.info(f"Cart {self._hash_cart_id(cart_id)} lost {dropped} stale line(s)")
        try:
            yield store
        finally:
            store.teardown()

    @staticmethod
    def view(cart_id: str, store: CartStore) -> CartResponse:
        return CartResponse(
            cart_id=cart_id,
            lines=[
                CartLineView(index=index, line=line, line_total=pricing.to_money(store.line_total(line)))
                for index, line in enumerate(store.lines)
            ],
            item_count=store.item_count,
            subtotal=pricing.to_money(store.subtotal),
            coupon=store.coupon,
            discount_amount=pricing.to_money(store.discount_amount),
            final_total=pricing.to_money(store.final_total),
        )

    def get_cart(self, cart_id: str, is_guest: bool = False) -> CartResponse:
        with self.session(cart_id, is_guest) as store:
            return self.view(cart_id, store)

    # -- configuration -----------------------------------------------------

    @staticmethod
    def _select(
        item: CatalogItem,
        catalog: VariationCatalog,
        selections: List[SelectionRequest],
        border_id: Optional[str],
        current=None,
    ) -> ConfiguredLine:
        if not item.variation_groups:
            if selections:
                raise ValidationError(f"{item.name} has no variations to select")
            border = None
            if border_id:
                border = item.border(border_id) if item.is_pizza else None
                if border is None or not border.available:
                    raise ValidationError(f"Border {border_id} is not available for {item.name}")
            return ConfiguredLine(item=item, border=border)

        if current is not None:
            selection = VariationSelection(
                item, catalog,
                initial_selections=current.selected_variations,
                initial_border=current.selected_border,
            )
        else:
            selection = VariationSelection(item, catalog)

        apply_selections(selection, selections)
        if not selection.select_border(border_id):
            raise ValidationError(f"Border {border_id} is not available for {item.name}")

        configured = selection.confirm()
        if configured is None:
            raise ValidationError(
                f"Selection for {item.name} is incomplete",
                messages=selection.invalid_messages(),
            )
        return configured

    def configure(self, catalog: VariationCatalog, request: AddLineRequest) -> ConfiguredLine:
        """Resolve the item (combining flavors when asked) and run the selection"""
        item = catalog.available_item(request.item_id)
        if item is None:
            raise ItemNotFoundError(request.item_id)
        if request.flavor2_id:
            item = HalfAndHalfCombiner(catalog).combine(item, request.flavor2_id)
        return self._select(item, catalog, request.selections, request.border_id)

    # -- operations --------------------------------------------------------

    def add_line(self, cart_id: str, request: AddLineRequest, is_guest: bool = False) -> CartResponse:
        if request.quantity > Config.MAX_QUANTITY_PER_LINE:
            raise LimitExceededError(
                f"Quantity {request.quantity} exceeds maximum {Config.MAX_QUANTITY_PER_LINE}"
            )

        with self.session(cart_id, is_guest) as store:
            configured = self.configure(store.catalog, request)

            key = line_key(configured.item.id, store.enrich(configured.selections), configured.border)
            existing = next(
                (line for line in store.lines
                 if line_key(line.id, line.selected_variations, line.selected_border) == key),
                None,
            )
            if existing is None and len(store.lines) >= Config.MAX_LINES_PER_CART:
                raise LimitExceededError(f"Cart exceeds maximum lines {Config.MAX_LINES_PER_CART}")
            if existing is not None and existing.quantity + request.quantity > Config.MAX_QUANTITY_PER_LINE:
                raise LimitExceededError(f"Quantity exceeds maximum {Config.MAX_QUANTITY_PER_LINE}")

            store.add_line(configured.item, configured.selections, configured.border, request.quantity)
            logger.info(f"Added {request.quantity}x {configured.item.id} to cart {self._hash_cart_id(cart_id)}")
            return self.view(cart_id, store)

    def edit_line(self, cart_id: str, index: int, request: EditLineRequest, is_guest: bool = False) -> CartResponse:
        with self.session(cart_id, is_guest) as store:
            if not 0 <= index < len(store.lines):
                raise LineNotFoundError(index)
            line = store.lines[index]
            if not line.item.variation_groups:
                raise ValidationError(f"{line.item.name} has no variations to edit")
            configured = self._select(line.item, store.catalog, request.selections, request.border_id, current=line)
            store.update_line_by_index(index, selections=configured.selections, border=configured.border)
            return self.view(cart_id, store)

    def increment(self, cart_id: str, item_id: str, is_guest: bool = False) -> CartResponse:
        with self.session(cart_id, is_guest) as store:
            matching = [line for line in store.lines if line.id == item_id]
            if not matching:
                raise LineNotFoundError(item_id)
            if any(line.quantity >= Config.MAX_QUANTITY_PER_LINE for line in matching):
                raise LimitExceededError(f"Quantity exceeds maximum {Config.MAX_QUANTITY_PER_LINE}")
            store.increment(item_id)
            return self.view(cart_id, store)

    def decrement(self, cart_id: str, item_id: str, is_guest: bool = False) -> CartResponse:
        with self.session(cart_id, is_guest) as store:
            if not store.decrement(item_id):
                raise LineNotFoundError(item_id)
            return self.view(cart_id, store)

    def remove_line(self, cart_id: str, item_id: str, is_guest: bool = False) -> CartResponse:
        with self.session(cart_id, is_guest) as store:
            if not store.remove_line(item_id):
                raise LineNotFoundError(item_id)
            return self.view(cart_id, store)

    def apply_coupon(self, cart_id: str, coupon: Optional[Coupon], is_guest: bool = False) -> CartResponse:
        with self.session(cart_id, is_guest) as store:
            store.apply_coupon(coupon)
            return self.view(cart_id, store)

    def clear_cart(self, cart_id: str, is_guest: bool = False) -> CartResponse:
        with self.session(cart_id, is_guest) as store:
            store.clear()
            return self.view(cart_id, store)
