"""
Pytest configuration and fixtures for tests.

Redis is replaced by fakeredis injected into the RedisClient wrapper; the
catalog below is seeded into it for tests that go through the stores.
"""
from decimal import Decimal

import fakeredis
import pytest

from pizzeria.catalog import CatalogStore, VariationCatalog
from pizzeria.models import Border, CatalogItem, CatalogSnapshot, Variation, VariationGroup
from pizzeria.redis_client import RedisClient


@pytest.fixture
def fake_redis():
    """Raw fakeredis connection (decoded responses, like production)"""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def redis_client(fake_redis):
    return RedisClient(client=fake_redis)


def _borders():
    return [
        Border(id="b-cheddar", name="Cheddar", additional_price=Decimal("8")),
        Border(id="b-catupiry", name="Catupiry", additional_price=Decimal("10")),
        Border(id="b-retired", name="Chocolate", additional_price=Decimal("12"), available=False),
    ]


@pytest.fixture
def variations():
    return [
        Variation(id="v-marg-m", name="Margherita Medium", additional_price=Decimal("30")),
        Variation(id="v-marg-l", name="Margherita Large", additional_price=Decimal("40")),
        Variation(id="v-pep-l", name="Pepperoni LARGE", additional_price=Decimal("35")),
        Variation(id="v-bacon", name="Bacon", additional_price=Decimal("4")),
        Variation(id="v-cheese", name="Extra cheese", additional_price=Decimal("3")),
        Variation(id="v-olive", name="Olives", additional_price=Decimal("2"), available=False),
        Variation(id="v-sauce", name="Garlic sauce", additional_price=Decimal("5"), category_ids=["burgers"]),
        Variation(id="v-bbq", name="BBQ sauce", additional_price=Decimal("2.5"), category_ids=["pizzas"]),
    ]


@pytest.fixture
def groups():
    return {
        "size-marg": VariationGroup(
            id="g-size-marg", name="Size", min_required=1, max_allowed=1,
            variation_ids=["v-marg-m", "v-marg-l"],
        ),
        "size-pep": VariationGroup(
            id="g-size-pep", name="Size", min_required=1, max_allowed=1,
            variation_ids=["v-pep-l"],
        ),
        "extras": VariationGroup(
            id="g-extras", name="Extras", internal_name="pizza-extras", min_required=0, max_allowed=3,
            variation_ids=["v-bacon", "v-cheese", "v-olive"],
            apply_to_half_pizza=True, allow_per_half=True,
        ),
        "sauce": VariationGroup(
            id="g-sauce", name="Sauce", min_required=1, max_allowed=1,
            variation_ids=["v-sauce", "v-bbq"],
            custom_message="Pick {min} sauce ({count}/{max})",
        ),
    }


@pytest.fixture
def items(groups):
    return [
        CatalogItem(
            id="margherita", name="Margherita", price=Decimal("0"), price_from=True, category="pizzas",
            is_pizza=True, allows_combination=True, free_shipping=True,
            variation_groups=[groups["size-marg"], groups["extras"]], borders=_borders(),
        ),
        CatalogItem(
            id="pepperoni", name="Pepperoni", price=Decimal("0"), price_from=True, category="pizzas",
            is_pizza=True, allows_combination=True, free_shipping=False,
            variation_groups=[groups["size-pep"], groups["extras"]], borders=_borders(),
        ),
        CatalogItem(
            id="calabresa", name="Calabresa", price=Decimal("45"), category="pizzas",
            is_pizza=True, allows_combination=True, free_shipping=True, borders=_borders(),
        ),
        CatalogItem(
            id="burger", name="Burger", price=Decimal("30"), category="burgers",
            variation_groups=[groups["sauce"]],
        ),
        CatalogItem(id="soda", name="Soda", price=Decimal("6"), category="drinks"),
        CatalogItem(id="retired", name="Retired", price=Decimal("20"), category="drinks", available=False),
    ]


@pytest.fixture
def snapshot(items, variations):
    return CatalogSnapshot(items=items, variations=variations)


@pytest.fixture
def catalog(snapshot):
    return VariationCatalog.from_snapshot(snapshot)


@pytest.fixture
def catalog_store(redis_client, snapshot):
    store = CatalogStore(redis_client)
    store.seed(snapshot)
    return store
