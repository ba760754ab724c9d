"""
Cart composition store and its persisted snapshot.

The store owns the lines of one cart. Every mutation recomputes the derived
totals and writes a minimal snapshot (ids, quantities, half tags, flavors;
no names or prices). On start the host calls rehydrate() once with a fresh
catalog, which re-attaches the saved lines to live catalog data.
"""
import json
import logging
from decimal import Decimal
from typing import List, Optional, Protocol

from pydantic import ValidationError as ModelValidationError

from pizzeria import pricing
from pizzeria.catalog import VariationCatalog
from pizzeria.combiner import HalfAndHalfCombiner
from pizzeria.config import Config
from pizzeria.exceptions import ItemNotFoundError, LineNotFoundError
from pizzeria.models import (
    Border,
    CatalogItem,
    Coupon,
    HalfPizzaLine,
    SavedLine,
    SavedVariation,
    SavedVariationGroup,
    SelectedVariation,
    SelectedVariationGroup,
    StandardLine,
)
from pizzeria.redis_client import RedisClient, get_redis_client

logger = logging.getLogger(__name__)


class CartStorage(Protocol):
    def load(self) -> List[SavedLine]: ...
    def save(self, lines: List[SavedLine]) -> None: ...
    def reset(self) -> None: ...
    def load_coupon(self) -> Optional[Coupon]: ...
    def save_coupon(self, coupon: Optional[Coupon]) -> None: ...


class RedisCartStorage:
    """Cart snapshot stored as one JSON list per cart, refreshed TTL on write"""

    def __init__(self, cart_id: str, redis: Optional[RedisClient] = None, ttl: Optional[int] = None):
        self.cart_id = cart_id
        self.redis = redis or get_redis_client()
        self.ttl = ttl or Config.CART_TTL_SECONDS

    @property
    def key(self) -> str:
        return f"cart:{self.cart_id}"

    @property
    def coupon_key(self) -> str:
        return f"cart:{self.cart_id}:coupon"

    def load(self) -> List[SavedLine]:
        lines = []
        for raw in self.redis.get_json(self.key) or []:
            try:
                lines.append(SavedLine.model_validate(raw))
            except ModelValidationError as e:
                # Skip invalid entries
                logger.warning(f"Failed to parse saved cart line: {e}")
        return lines

    def save(self, lines: List[SavedLine]) -> None:
        self.redis.set_json(self.key, [line.model_dump(mode="json", exclude_none=True) for line in lines], ex=self.ttl)

    def reset(self) -> None:
        self.redis.set_json(self.key, [], ex=self.ttl)

    def load_coupon(self) -> Optional[Coupon]:
        raw = self.redis.get_json(self.coupon_key)
        if not raw:
            return None
        try:
            return Coupon.model_validate(raw)
        except ModelValidationError as e:
            logger.warning(f"Dropping unreadable coupon: {e}")
            return None

    def save_coupon(self, coupon: Optional[Coupon]) -> None:
        if coupon is None:
            self.redis.delete(self.coupon_key)
        else:
            self.redis.set_json(self.coupon_key, coupon.model_dump(mode="json"), ex=self.ttl)


def make_line(
    item: CatalogItem,
    selections: List[SelectedVariationGroup],
    border: Optional[Border] = None,
    quantity: int = 1,
):
    if item.is_half_pizza:
        return HalfPizzaLine(
            item=item,
            quantity=quantity,
            selected_variations=selections,
            selected_border=border,
            combination=item.combination,
        )
    return StandardLine(item=item, quantity=quantity, selected_variations=selections, selected_border=border)


def line_key(item_id: str, selections: List[SelectedVariationGroup], border: Optional[Border]) -> str:
    """Merge identity: item id, serialized selections, border id"""
    serialized = json.dumps([group.model_dump(mode="json") for group in selections], sort_keys=True)
    return f"{item_id}|{serialized}|{border.id if border else ''}"


def to_saved(line) -> SavedLine:
    return SavedLine(
        id=line.id,
        quantity=line.quantity,
        selections=[
            SavedVariationGroup(
                group_id=group.group_id,
                variations=[
                    SavedVariation(
                        variation_id=v.variation_id,
                        quantity=v.quantity,
                        half_selection=v.half_selection,
                    )
                    for v in group.variations
                ],
            )
            for group in line.selected_variations
        ],
        border_id=line.selected_border.id if line.selected_border else None,
        is_half_pizza=line.is_half_pizza,
        combination=line.combination if line.is_half_pizza else None,
    )


class CartStore:
    """Lines of one cart plus derived totals"""

    def __init__(self, storage: CartStorage):
        self.storage = storage
        self.catalog = VariationCatalog()
        self.lines: list = []
        self.coupon: Optional[Coupon] = None
        self.subtotal = Decimal("0")
        self.item_count = 0
        self.discount_amount = Decimal("0")
        self.final_total = Decimal("0")
        self._active = False
        self._rehydrated = False

    # -- lifecycle ---------------------------------------------------------

    def init(self) -> "CartStore":
        self._active = True
        return self

    def teardown(self) -> None:
        if self._active:
            self._persist()
        self._active = False

    def rehydrate(self, catalog: VariationCatalog) -> int:
        """
        Restore saved lines against a fresh catalog. Returns how many were dropped.

        A line is dropped when its item (or either flavor of a half-and-half)
        is gone or unavailable. If anything was dropped the stored snapshot is
        reset and rewritten from the surviving lines only.
        """
        self._ensure_active()
        if self._rehydrated:
            raise RuntimeError("Cart already rehydrated")
        self._rehydrated = True
        self.catalog = catalog

        saved = self.storage.load()
        restored = []
        for entry in saved:
            line = self._restore(entry)
            if line is not None:
                restored.append(line)

        self.lines = restored
        self.coupon = self.storage.load_coupon()
        dropped = len(saved) - len(restored)
        if dropped:
            logger.info(f"Dropped {dropped} stale cart line(s) during rehydration")
            self.storage.reset()
            if restored:
                self._persist()
        self._recompute()
        return dropped

    def _restore(self, entry: SavedLine):
        if entry.is_half_pizza and entry.combination is not None:
            flavor1 = self.catalog.available_item(entry.combination.flavor1.id)
            if flavor1 is None:
                return None
            try:
                item = HalfAndHalfCombiner(self.catalog).combine(flavor1, entry.combination.flavor2.id)
            except ItemNotFoundError:
                return None
        else:
            item = self.catalog.available_item(entry.id)
            if item is None:
                return None

        selections = []
        for group in entry.selections:
            definition = item.group(group.group_id)
            variations = [
                SelectedVariation(
                    variation_id=v.variation_id,
                    quantity=v.quantity,
                    name=self.catalog.name_of(v.variation_id),
                    additional_price=self.catalog.price_of(v.variation_id),
                    half_selection=v.half_selection,
                )
                for v in group.variations
                if v.quantity > 0
            ]
            if variations:
                selections.append(SelectedVariationGroup(
                    group_id=group.group_id,
                    group_name=definition.name if definition else "",
                    variations=variations,
                ))

        border = item.border(entry.border_id) if entry.border_id else None
        if border is not None and not border.available:
            logger.info(f"Dropping withdrawn border {border.id} from {item.id}")
            border = None
        return make_line(item, selections, border, entry.quantity)

    def _ensure_active(self) -> None:
        if not self._active:
            raise RuntimeError("Cart store is not initialized")

    # -- derived values ----------------------------------------------------

    def _recompute(self) -> None:
        self.subtotal = pricing.subtotal(self.lines, self.catalog)
        self.item_count = sum(line.quantity for line in self.lines)
        self.discount_amount = pricing.discount_amount(self.subtotal, self.coupon)
        self.final_total = pricing.final_total(self.subtotal, self.coupon)

    def _persist(self) -> None:
        self.storage.save([to_saved(line) for line in self.lines])

    def _changed(self) -> None:
        self._recompute()
        self._persist()

    def line_total(self, line) -> Decimal:
        return pricing.line_total(line, self.catalog)

    # -- operations --------------------------------------------------------

    def enrich(self, selections: List[SelectedVariationGroup]) -> List[SelectedVariationGroup]:
        """Fill missing names and prices from the catalog"""
        return [
            group.model_copy(update={
                "variations": [
                    v.model_copy(update={
                        "name": v.name or self.catalog.name_of(v.variation_id),
                        "additional_price": (
                            v.additional_price if v.additional_price is not None
                            else self.catalog.price_of(v.variation_id)
                        ),
                    })
                    for v in group.variations
                ]
            })
            for group in selections
        ]

    def add_line(
        self,
        item: CatalogItem,
        selections: Optional[List[SelectedVariationGroup]] = None,
        border: Optional[Border] = None,
        quantity: int = 1,
    ) -> int:
        """Merge into a matching line or append a new one. Returns the line index."""
        self._ensure_active()
        enriched = self.enrich(selections or [])
        key = line_key(item.id, enriched, border)

        for index, line in enumerate(self.lines):
            if line_key(line.id, line.selected_variations, line.selected_border) == key:
                self.lines[index] = line.model_copy(update={"quantity": line.quantity + quantity})
                self._changed()
                return index

        self.lines.append(make_line(item, enriched, border, quantity))
        self._changed()
        return len(self.lines) - 1

    def remove_line(self, item_id: str) -> bool:
        self._ensure_active()
        kept = [line for line in self.lines if line.id != item_id]
        if len(kept) == len(self.lines):
            return False
        self.lines = kept
        self._changed()
        return True

    def increment(self, item_id: str) -> bool:
        self._ensure_active()
        found = False
        for index, line in enumerate(self.lines):
            if line.id == item_id:
                self.lines[index] = line.model_copy(update={"quantity": line.quantity + 1})
                found = True
        if found:
            self._changed()
        return found

    def decrement(self, item_id: str) -> bool:
        """Decrease by one; a line at quantity 1 is removed"""
        self._ensure_active()
        found = False
        lines = []
        for line in self.lines:
            if line.id != item_id:
                lines.append(line)
                continue
            found = True
            if line.quantity > 1:
                lines.append(line.model_copy(update={"quantity": line.quantity - 1}))
        if found:
            self.lines = lines
            self._changed()
        return found

    def update_line_by_index(
        self,
        index: int,
        selections: Optional[List[SelectedVariationGroup]] = None,
        border: Optional[Border] = None,
        replace_border: bool = True,
    ) -> None:
        """Replace selections and/or border in place; lines are not re-merged"""
        self._ensure_active()
        if not 0 <= index < len(self.lines):
            raise LineNotFoundError(index)
        update = {}
        if selections is not None:
            update["selected_variations"] = self.enrich(selections)
        if replace_border:
            update["selected_border"] = border
        self.lines[index] = self.lines[index].model_copy(update=update)
        self._changed()

    def apply_coupon(self, coupon: Optional[Coupon]) -> None:
        self._ensure_active()
        self.coupon = coupon
        self.storage.save_coupon(coupon)
        self._recompute()

    def clear(self) -> None:
        """Empty the cart and drop the coupon"""
        self._ensure_active()
        self.lines = []
        self.coupon = None
        self.storage.save_coupon(None)
        self._changed()
