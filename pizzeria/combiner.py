"""
Half-and-half pizza combination.
"""
import logging
from decimal import Decimal
from typing import List, Optional, Sequence

from pizzeria.catalog import VariationCatalog
from pizzeria.config import Config
from pizzeria.exceptions import ItemNotFoundError
from pizzeria.models import CatalogItem, Combination, FlavorOption, FlavorRef

logger = logging.getLogger(__name__)


def combined_item_id(flavor1_id: str, flavor2_id: str) -> str:
    return f"half:{flavor1_id}:{flavor2_id}"


class HalfAndHalfCombiner:
    """Builds a single priced item out of two combination-eligible flavors"""

    def __init__(
        self,
        catalog: VariationCatalog,
        large_keywords: Optional[Sequence[str]] = None,
        size_label: Optional[str] = None,
    ):
        self.catalog = catalog
        self.large_keywords = [k.lower() for k in (large_keywords or Config.LARGE_SIZE_KEYWORDS)]
        self.size_label = size_label or Config.HALF_PIZZA_SIZE_LABEL

    def eligible(self) -> List[CatalogItem]:
        return [
            item for item in self.catalog.items
            if item.available and item.is_pizza and item.allows_combination and not item.is_half_pizza
        ]

    def large_price(self, item: CatalogItem) -> Decimal:
        """
        Price of the large size tier.

        The first variation (in group order) whose name contains a large-size
        keyword supplies the price; items without such a variation use their
        base price.
        """
        for group in item.variation_groups:
            for variation_id in group.variation_ids:
                variation = self.catalog.variation(variation_id)
                if variation is None:
                    continue
                name = variation.name.lower()
                if any(keyword in name for keyword in self.large_keywords):
                    return variation.additional_price
        return item.price

    def options(self) -> List[FlavorOption]:
        """Eligible flavors sorted by name"""
        options = [
            FlavorOption(
                id=item.id,
                name=item.name,
                large_price=self.large_price(item),
                free_shipping=item.free_shipping,
            )
            for item in self.eligible()
        ]
        options.sort(key=lambda option: option.name.casefold())
        return options

    def flavor(self, item_id: str) -> CatalogItem:
        for item in self.eligible():
            if item.id == item_id:
                return item
        raise ItemNotFoundError(item_id)

    def preview_price(self, item: CatalogItem, flavor2_id: Optional[str] = None) -> Decimal:
        """Price shown while the second flavor is still being chosen"""
        if not flavor2_id:
            return item.price
        return max(self.large_price(self.flavor(item.id)), self.large_price(self.flavor(flavor2_id)))

    def combine(self, item: CatalogItem, flavor2_id: str) -> CatalogItem:
        """
        Synthesize the half-and-half item.

        The triggering item is flavor 1. Price is the larger of the two
        large-tier prices, free shipping only when both flavors have it, and
        only the variation groups marked for half pizzas are kept. Choosing the
        same flavor twice is allowed.
        """
        flavor1 = self.flavor(item.id)
        flavor2 = self.flavor(flavor2_id)
        if flavor1.id == flavor2.id:
            logger.info(f"Degenerate half-and-half combination of {flavor1.id} with itself")

        price = max(self.large_price(flavor1), self.large_price(flavor2))
        groups = [group for group in flavor1.variation_groups if group.apply_to_half_pizza]
        size = self.size_label.lower()

        return flavor1.model_copy(update={
            "id": combined_item_id(flavor1.id, flavor2.id),
            "name": f"Half-and-Half ({self.size_label}) — ½ {flavor1.name} + ½ {flavor2.name}",
            "price": price,
            "price_from": False,
            "free_shipping": flavor1.free_shipping and flavor2.free_shipping,
            "variation_groups": groups,
            "combination": Combination(
                flavor1=FlavorRef(id=flavor1.id, name=flavor1.name),
                flavor2=FlavorRef(id=flavor2.id, name=flavor2.name),
                size=size,
            ),
        })
