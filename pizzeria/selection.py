"""
Variation selection state machine.

One instance backs one "configure this item" interaction. It holds a row per
available variation of every group, enforces each group's maximum while
increasing, pauses in CHOOSING_HALF when a per-half group on a half-and-half
item needs to know which half an increment applies to, and on confirm hands
back a configuration priced from the catalog.
"""
import logging
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from pizzeria.catalog import VariationCatalog
from pizzeria.exceptions import SelectionClosedError
from pizzeria.models import (
    Border,
    CatalogItem,
    GroupStatus,
    HalfSelection,
    SelectedVariation,
    SelectedVariationGroup,
)

logger = logging.getLogger(__name__)


class SelectionState(str, Enum):
    EMPTY = "empty"
    VALID = "valid"
    INVALID = "invalid"
    CHOOSING_HALF = "choosing_half"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class ConfiguredLine(BaseModel):
    """Result of a confirmed selection, ready for the cart"""
    item: CatalogItem
    selections: List[SelectedVariationGroup] = Field(default_factory=list)
    border: Optional[Border] = None


class VariationSelection:

    def __init__(
        self,
        item: CatalogItem,
        catalog: VariationCatalog,
        initial_selections: Optional[List[SelectedVariationGroup]] = None,
        initial_border: Optional[Border] = None,
    ):
        if not item.variation_groups:
            raise ValueError(f"Item {item.id} has no variation groups to select")

        self.item = item
        self.catalog = catalog
        self.groups: List[SelectedVariationGroup] = self._build_rows(initial_selections or [])
        self.border: Optional[Border] = initial_border
        self.pending_half: Optional[Tuple[str, str]] = None
        self._closed: Optional[SelectionState] = None

    def _build_rows(self, seeds: List[SelectedVariationGroup]) -> List[SelectedVariationGroup]:
        seeded: Dict[Tuple[str, str], SelectedVariation] = {
            (group.group_id, variation.variation_id): variation
            for group in seeds
            for variation in group.variations
        }
        rows = []
        for group in self.item.variation_groups:
            variations = []
            for variation in self.catalog.variations_for_group(group, self.item):
                existing = seeded.get((group.id, variation.id))
                variations.append(SelectedVariation(
                    variation_id=variation.id,
                    quantity=existing.quantity if existing else 0,
                    name=variation.name,
                    additional_price=variation.additional_price,
                    half_selection=existing.half_selection if existing and existing.quantity > 0 else None,
                ))
            rows.append(SelectedVariationGroup(group_id=group.id, group_name=group.name, variations=variations))
        return rows

    # -- lookups -----------------------------------------------------------

    def _rows(self, group_id: str) -> Optional[SelectedVariationGroup]:
        for group in self.groups:
            if group.group_id == group_id:
                return group
        return None

    def row(self, group_id: str, variation_id: str) -> Optional[SelectedVariation]:
        group = self._rows(group_id)
        if group is None:
            return None
        for variation in group.variations:
            if variation.variation_id == variation_id:
                return variation
        return None

    def group_status(self, group_id: str) -> GroupStatus:
        group = self.item.group(group_id)
        if group is None:
            return GroupStatus(total=0, min=0, max=0, valid=False)
        return self.catalog.group_status(group, self._rows(group_id))

    def message(self, group_id: str) -> str:
        group = self.item.group(group_id)
        if group is None:
            return ""
        return self.catalog.message(group, self._rows(group_id))

    def invalid_messages(self) -> List[str]:
        return [
            self.message(group.id)
            for group in self.item.variation_groups
            if not self.group_status(group.id).valid
        ]

    # -- state -------------------------------------------------------------

    @property
    def is_valid(self) -> bool:
        return all(self.group_status(group.id).valid for group in self.item.variation_groups)

    @property
    def has_selections(self) -> bool:
        return any(group.total > 0 for group in self.groups)

    @property
    def state(self) -> SelectionState:
        if self._closed is not None:
            return self._closed
        if self.pending_half is not None:
            return SelectionState.CHOOSING_HALF
        if not self.has_selections:
            return SelectionState.EMPTY
        return SelectionState.VALID if self.is_valid else SelectionState.INVALID

    @property
    def can_confirm(self) -> bool:
        return self._closed is None and self.pending_half is None and self.is_valid

    def _ensure_open(self) -> None:
        if self._closed is not None:
            raise SelectionClosedError(f"Selection for {self.item.id} is {self._closed.value}")

    # -- transitions -------------------------------------------------------

    def increase(self, group_id: str, variation_id: str, half: Optional[HalfSelection] = None) -> bool:
        """
        Add one unit of a variation. Returns True when the quantity changed.

        Blocked once the group reaches its maximum. On a half-and-half item
        whose group allows per-half selection, an increase without a half
        moves to CHOOSING_HALF and waits for choose_half().
        """
        self._ensure_open()
        group = self.item.group(group_id)
        row = self.row(group_id, variation_id)
        if group is None or row is None:
            return False

        if self._rows(group_id).total >= group.max_allowed:
            return False

        per_half = self.item.is_half_pizza and group.allow_per_half
        if per_half and half is None:
            self.pending_half = (group_id, variation_id)
            return False

        details = self.catalog.variation(variation_id)
        row.quantity += 1
        if details is not None:
            row.name = details.name
            row.additional_price = details.additional_price
        row.half_selection = half if per_half else None
        self.pending_half = None
        return True

    def choose_half(self, half: HalfSelection) -> bool:
        """Commit the increment that is waiting for a half"""
        self._ensure_open()
        if self.pending_half is None:
            return False
        group_id, variation_id = self.pending_half
        self.pending_half = None
        return self.increase(group_id, variation_id, half)

    def cancel_half(self) -> None:
        self._ensure_open()
        self.pending_half = None

    def decrease(self, group_id: str, variation_id: str) -> bool:
        self._ensure_open()
        row = self.row(group_id, variation_id)
        if row is None or row.quantity <= 0:
            return False
        row.quantity -= 1
        if row.quantity == 0:
            row.half_selection = None
        return True

    def select_border(self, border_id: Optional[str]) -> bool:
        """Replace the border (None clears it). Only pizzas take borders."""
        self._ensure_open()
        if border_id is None:
            self.border = None
            return True
        if not self.item.is_pizza:
            return False
        border = self.item.border(border_id)
        if border is None or not border.available:
            return False
        self.border = border
        return True

    def confirm(self) -> Optional[ConfiguredLine]:
        """
        Finish the selection. Returns None while the selection is not valid.

        Zero-quantity rows are dropped and every remaining row takes its name
        and price from the catalog.
        """
        self._ensure_open()
        if not self.can_confirm:
            return None

        selections = []
        for group in self.groups:
            chosen = []
            for row in group.variations:
                if row.quantity <= 0:
                    continue
                details = self.catalog.variation(row.variation_id)
                chosen.append(row.model_copy(update={
                    "name": details.name if details else (row.name or ""),
                    "additional_price": details.additional_price if details else (row.additional_price or Decimal("0")),
                }))
            if chosen:
                selections.append(SelectedVariationGroup(
                    group_id=group.group_id, group_name=group.group_name, variations=chosen
                ))

        self._closed = SelectionState.CONFIRMED
        logger.debug(f"Selection confirmed for {self.item.id}: {len(selections)} groups")
        return ConfiguredLine(item=self.item, selections=selections, border=self.border)

    def cancel(self) -> None:
        self._ensure_open()
        self._closed = SelectionState.CANCELLED
