"""
Unit Tests: VariationCatalog and CatalogStore
"""
from decimal import Decimal

from pizzeria.catalog import CatalogStore, VariationCatalog
from pizzeria.models import SelectedVariation, SelectedVariationGroup, VariationGroup


def _selection(group_id, *quantities):
    return SelectedVariationGroup(
        group_id=group_id,
        variations=[SelectedVariation(variation_id=f"v{i}", quantity=q) for i, q in enumerate(quantities)],
    )


class TestVariationsForGroup:

    def test_filters_unavailable(self, catalog, groups):
        margherita = catalog.item("margherita")
        variations = catalog.variations_for_group(groups["extras"], margherita)
        assert [v.id for v in variations] == ["v-bacon", "v-cheese"]

    def test_filters_by_category(self, catalog, groups):
        burger = catalog.item("burger")
        variations = catalog.variations_for_group(groups["sauce"], burger)
        assert [v.id for v in variations] == ["v-sauce"]

    def test_empty_category_list_applies_everywhere(self, catalog, groups):
        burger = catalog.item("burger")
        variations = catalog.variations_for_group(groups["extras"], burger)
        assert [v.id for v in variations] == ["v-bacon", "v-cheese"]

    def test_unknown_variation_ids_are_skipped(self, catalog):
        group = VariationGroup(id="g", name="G", variation_ids=["missing", "v-bacon"])
        variations = catalog.variations_for_group(group, catalog.item("soda"))
        assert [v.id for v in variations] == ["v-bacon"]


class TestPriceOf:

    def test_known_variation(self, catalog):
        assert catalog.price_of("v-marg-l") == Decimal("40")

    def test_unknown_variation_is_free(self, catalog):
        assert catalog.price_of("gone") == Decimal("0")
        assert catalog.name_of("gone") == ""


class TestGroupStatusAndMessage:

    def test_status_bounds(self, groups):
        status = VariationCatalog.group_status(groups["extras"], _selection("g-extras", 1, 2))
        assert (status.total, status.min, status.max, status.valid) == (3, 0, 3, True)

        status = VariationCatalog.group_status(groups["extras"], _selection("g-extras", 2, 2))
        assert status.valid is False

    def test_status_without_selection(self, groups):
        status = VariationCatalog.group_status(groups["size-marg"], None)
        assert status.total == 0
        assert status.valid is False

    def test_custom_template(self, groups):
        message = VariationCatalog.message(groups["sauce"], _selection("g-sauce", 1))
        assert message == "Pick 1 sauce (1/1)"

    def test_template_replaces_first_occurrence_only(self):
        group = VariationGroup(id="g", name="G", min_required=1, max_allowed=2, custom_message="{min} {min} {max}")
        assert VariationCatalog.message(group, None) == "1 {min} 2"

    def test_default_messages(self, groups):
        exact = VariationCatalog.message(groups["size-marg"], None)
        assert exact == "Select exactly 1 of size (0/1 selected)"

        optional = VariationCatalog.message(groups["extras"], _selection("g-extras", 1))
        assert optional == "Select up to 3 of extras (optional) (1/3 selected)"

        ranged_group = VariationGroup(id="g", name="Toppings", min_required=2, max_allowed=4)
        assert VariationCatalog.message(ranged_group, None) == "Select 2 to 4 of toppings (0/4 selected)"


class TestCatalogStore:

    def test_seed_and_read_back(self, catalog_store, items, variations):
        assert [i.id for i in catalog_store.get_all_items()] == [i.id for i in items]
        assert len(catalog_store.get_all_variations()) == len(variations)
        assert catalog_store.get_item("burger").price == Decimal("30")
        assert catalog_store.get_item("nope") is None

    def test_empty_store(self, redis_client):
        store = CatalogStore(redis_client)
        assert store.get_all_items() == []
        assert store.load().items == []

    def test_available_item(self, catalog_store):
        catalog = catalog_store.load()
        assert catalog.available_item("retired") is None
        assert catalog.item("retired") is not None
