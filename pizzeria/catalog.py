"""
Read-only catalog view and the Redis-backed catalog store.
"""
import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pizzeria.models import (
    CatalogItem,
    CatalogSnapshot,
    GroupStatus,
    SelectedVariationGroup,
    Variation,
    VariationGroup,
)
from pizzeria.redis_client import RedisClient, get_redis_client

logger = logging.getLogger(__name__)

ITEMS_KEY = "catalog:items"
VARIATIONS_KEY = "catalog:variations"


class VariationCatalog:
    """In-memory view over one catalog snapshot. Pure lookups, no I/O."""

    def __init__(self, items: Iterable[CatalogItem] = (), variations: Iterable[Variation] = ()):
        self._items: Dict[str, CatalogItem] = {item.id: item for item in items}
        self._variations: Dict[str, Variation] = {v.id: v for v in variations}

    @classmethod
    def from_snapshot(cls, snapshot: CatalogSnapshot) -> "VariationCatalog":
        return cls(snapshot.items, snapshot.variations)

    @property
    def items(self) -> List[CatalogItem]:
        return list(self._items.values())

    def item(self, item_id: str) -> Optional[CatalogItem]:
        return self._items.get(item_id)

    def available_item(self, item_id: str) -> Optional[CatalogItem]:
        item = self._items.get(item_id)
        if item is None or not item.available:
            return None
        return item

    def variation(self, variation_id: str) -> Optional[Variation]:
        return self._variations.get(variation_id)

    def variations_for_group(self, group: VariationGroup, item: CatalogItem) -> List[Variation]:
        """Available variations of a group that apply to the item's category, in group order"""
        result = []
        for variation_id in group.variation_ids:
            variation = self._variations.get(variation_id)
            if variation is None or not variation.available:
                continue
            if variation.category_ids and item.category not in variation.category_ids:
                continue
            result.append(variation)
        return result

    def price_of(self, variation_id: str) -> Decimal:
        """Additional price of a variation; unknown ids price at zero"""
        variation = self._variations.get(variation_id)
        if variation is None:
            logger.warning(f"Unknown variation {variation_id} priced at 0")
            return Decimal("0")
        return variation.additional_price

    def name_of(self, variation_id: str) -> str:
        variation = self._variations.get(variation_id)
        return variation.name if variation else ""

    @staticmethod
    def group_status(group: VariationGroup, selection: Optional[SelectedVariationGroup]) -> GroupStatus:
        total = selection.total if selection else 0
        return GroupStatus(
            total=total,
            min=group.min_required,
            max=group.max_allowed,
            valid=group.min_required <= total <= group.max_allowed,
        )

    @classmethod
    def message(cls, group: VariationGroup, selection: Optional[SelectedVariationGroup]) -> str:
        """Human-readable requirement for a group, from its template when it has one"""
        status = cls.group_status(group, selection)

        if group.custom_message:
            message = group.custom_message
            message = message.replace("{min}", str(status.min), 1)
            message = message.replace("{max}", str(status.max), 1)
            message = message.replace("{count}", str(status.total), 1)
            return message

        label = group.name.lower()
        if status.min == status.max:
            return f"Select exactly {status.min} of {label} ({status.total}/{status.min} selected)"
        if status.min > 0:
            return f"Select {status.min} to {status.max} of {label} ({status.total}/{status.max} selected)"
        return f"Select up to {status.max} of {label} (optional) ({status.total}/{status.max} selected)"


class CatalogStore:
    """Catalog snapshots kept in Redis as JSON documents"""

    def __init__(self, redis: Optional[RedisClient] = None):
        self.redis = redis or get_redis_client()

    def get_all_items(self) -> List[CatalogItem]:
        data = self.redis.get_json(ITEMS_KEY) or []
        return [CatalogItem.model_validate(raw) for raw in data]

    def get_all_variations(self) -> List[Variation]:
        data = self.redis.get_json(VARIATIONS_KEY) or []
        return [Variation.model_validate(raw) for raw in data]

    def get_item(self, item_id: str) -> Optional[CatalogItem]:
        for item in self.get_all_items():
            if item.id == item_id:
                return item
        return None

    def snapshot(self) -> CatalogSnapshot:
        return CatalogSnapshot(items=self.get_all_items(), variations=self.get_all_variations())

    def load(self) -> VariationCatalog:
        """Fetch the current catalog and wrap it in a lookup view"""
        return VariationCatalog.from_snapshot(self.snapshot())

    def seed(self, snapshot: CatalogSnapshot) -> None:
        """Replace the stored catalog"""
        self.redis.set_json(ITEMS_KEY, [i.model_dump(mode="json") for i in snapshot.items])
        self.redis.set_json(VARIATIONS_KEY, [v.model_dump(mode="json") for v in snapshot.variations])
        logger.info(f"Catalog seeded: {len(snapshot.items)} items, {len(snapshot.variations)} variations")

    def seed_from_file(self, path: str) -> None:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        self.seed(CatalogSnapshot.model_validate(raw))
