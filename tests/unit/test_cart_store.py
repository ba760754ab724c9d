"""
Unit Tests: cart store, merge identity, persistence and rehydration
"""
import json
from decimal import Decimal

import pytest

from pizzeria.cart import CartStore, RedisCartStorage
from pizzeria.catalog import VariationCatalog
from pizzeria.combiner import HalfAndHalfCombiner
from pizzeria.exceptions import LineNotFoundError
from pizzeria.models import (
    Coupon,
    CouponType,
    HalfSelection,
    SelectedVariation,
    SelectedVariationGroup,
)


def _size(variation_id="v-marg-l"):
    return SelectedVariationGroup(group_id="g-size-marg", group_name="Size", variations=[
        SelectedVariation(variation_id=variation_id, quantity=1),
    ])


@pytest.fixture
def storage(redis_client):
    return RedisCartStorage("cart-1", redis_client, ttl=60)


@pytest.fixture
def store(storage, catalog):
    store = CartStore(storage).init()
    store.rehydrate(catalog)
    return store


def _reopen(storage, catalog):
    store = CartStore(storage).init()
    dropped = store.rehydrate(catalog)
    return store, dropped


class TestLifecycle:

    def test_operations_require_init(self, storage, catalog):
        store = CartStore(storage)
        with pytest.raises(RuntimeError):
            store.add_line(catalog.item("soda"))

    def test_rehydrate_only_once(self, store, catalog):
        with pytest.raises(RuntimeError):
            store.rehydrate(catalog)

    def test_teardown_persists(self, store, storage, catalog):
        store.add_line(catalog.item("soda"))
        storage.reset()
        store.teardown()
        assert [line.id for line in storage.load()] == ["soda"]


class TestMergeIdentity:

    def test_same_configuration_merges(self, store, catalog):
        item = catalog.item("margherita")
        first = store.add_line(item, [_size()], item.border("b-cheddar"))
        second = store.add_line(item, [_size()], item.border("b-cheddar"))
        assert first == second == 0
        assert len(store.lines) == 1
        assert store.lines[0].quantity == 2

    def test_different_border_is_a_new_line(self, store, catalog):
        item = catalog.item("margherita")
        store.add_line(item, [_size()], item.border("b-cheddar"))
        store.add_line(item, [_size()], item.border("b-catupiry"))
        store.add_line(item, [_size()], None)
        assert len(store.lines) == 3

    def test_different_selection_is_a_new_line(self, store, catalog):
        item = catalog.item("margherita")
        store.add_line(item, [_size("v-marg-l")])
        store.add_line(item, [_size("v-marg-m")])
        assert len(store.lines) == 2

    def test_different_flavor_order_is_a_new_line(self, store, catalog):
        combiner = HalfAndHalfCombiner(catalog, large_keywords=["large"])
        store.add_line(combiner.combine(catalog.item("margherita"), "pepperoni"))
        store.add_line(combiner.combine(catalog.item("pepperoni"), "margherita"))
        assert len(store.lines) == 2


class TestDerivedValues:

    def test_totals_follow_every_mutation(self, store, catalog):
        store.add_line(catalog.item("soda"), quantity=2)
        store.add_line(catalog.item("calabresa"))
        assert store.subtotal == Decimal("57")
        assert store.item_count == 3

        store.apply_coupon(Coupon(code="TEN", type=CouponType.PERCENT, value=Decimal("10")))
        assert store.discount_amount == Decimal("5.7")
        assert store.final_total == Decimal("51.3")

        store.remove_line("calabresa")
        assert store.subtotal == Decimal("12")
        assert store.final_total == Decimal("10.8")

    def test_enrich_fills_names_and_prices(self, store, catalog):
        store.add_line(catalog.item("margherita"), [_size()])
        variation = store.lines[0].selected_variations[0].variations[0]
        assert variation.name == "Margherita Large"
        assert variation.additional_price == Decimal("40")
        assert store.subtotal == Decimal("40")


class TestQuantityOperations:

    def test_increment_and_decrement(self, store, catalog):
        store.add_line(catalog.item("soda"))
        assert store.increment("soda") is True
        assert store.lines[0].quantity == 2
        assert store.decrement("soda") is True
        assert store.lines[0].quantity == 1

    def test_decrement_at_one_removes(self, store, catalog):
        store.add_line(catalog.item("soda"))
        assert store.decrement("soda") is True
        assert store.lines == []
        assert store.item_count == 0

    def test_unknown_id(self, store):
        assert store.increment("nope") is False
        assert store.decrement("nope") is False
        assert store.remove_line("nope") is False

    def test_operations_apply_to_every_line_with_the_id(self, store, catalog):
        item = catalog.item("margherita")
        store.add_line(item, [_size("v-marg-l")])
        store.add_line(item, [_size("v-marg-m")])
        store.increment("margherita")
        assert [line.quantity for line in store.lines] == [2, 2]
        store.remove_line("margherita")
        assert store.lines == []


class TestUpdateByIndex:

    def test_replaces_selections_and_border(self, store, catalog):
        item = catalog.item("margherita")
        store.add_line(item, [_size("v-marg-l")], item.border("b-cheddar"), quantity=2)
        store.update_line_by_index(0, selections=[_size("v-marg-m")], border=None)

        line = store.lines[0]
        assert line.quantity == 2
        assert line.selected_border is None
        assert line.selected_variations[0].variations[0].variation_id == "v-marg-m"
        assert store.subtotal == Decimal("60")

    def test_keeps_border_when_not_replaced(self, store, catalog):
        item = catalog.item("margherita")
        store.add_line(item, [_size()], item.border("b-cheddar"))
        store.update_line_by_index(0, selections=[_size("v-marg-m")], replace_border=False)
        assert store.lines[0].selected_border.id == "b-cheddar"

    def test_out_of_range(self, store):
        with pytest.raises(LineNotFoundError):
            store.update_line_by_index(3, selections=[])


class TestPersistence:

    def test_snapshot_has_no_prices_or_names(self, store, catalog, fake_redis):
        item = catalog.item("margherita")
        store.add_line(item, [_size()], item.border("b-cheddar"))

        raw = fake_redis.get("cart:cart-1")
        assert "additional_price" not in raw
        assert "Margherita Large" not in raw
        saved = json.loads(raw)
        assert saved == [{
            "id": "margherita",
            "quantity": 1,
            "selections": [{"group_id": "g-size-marg", "variations": [
                {"variation_id": "v-marg-l", "quantity": 1},
            ]}],
            "border_id": "b-cheddar",
            "is_half_pizza": False,
        }]
        assert 0 < fake_redis.ttl("cart:cart-1") <= 60

    def test_rehydration_uses_live_prices(self, store, storage, catalog, snapshot):
        store.add_line(catalog.item("margherita"), [_size()])

        variations = [
            v.model_copy(update={"additional_price": Decimal("44")}) if v.id == "v-marg-l" else v
            for v in snapshot.variations
        ]
        repriced = VariationCatalog(snapshot.items, variations)
        reopened, dropped = _reopen(storage, repriced)
        assert dropped == 0
        assert reopened.subtotal == Decimal("44")

    def test_deleted_item_is_dropped_others_kept(self, store, storage, catalog, snapshot, fake_redis):
        store.add_line(catalog.item("soda"))
        store.add_line(catalog.item("burger"), [SelectedVariationGroup(group_id="g-sauce", variations=[
            SelectedVariation(variation_id="v-sauce", quantity=1),
        ])])
        store.add_line(catalog.item("calabresa"), quantity=2)

        without_soda = VariationCatalog([i for i in snapshot.items if i.id != "soda"], snapshot.variations)
        reopened, dropped = _reopen(storage, without_soda)

        assert dropped == 1
        assert [line.id for line in reopened.lines] == ["burger", "calabresa"]
        assert reopened.lines[1].quantity == 2
        assert [entry["id"] for entry in json.loads(fake_redis.get("cart:cart-1"))] == ["burger", "calabresa"]

    def test_everything_dropped_resets_snapshot(self, store, storage, catalog, fake_redis):
        store.add_line(catalog.item("soda"))
        reopened, dropped = _reopen(storage, VariationCatalog())
        assert dropped == 1
        assert reopened.lines == []
        assert json.loads(fake_redis.get("cart:cart-1")) == []

    def test_half_pizza_round_trip(self, store, storage, catalog):
        item = HalfAndHalfCombiner(catalog, large_keywords=["large"]).combine(catalog.item("margherita"), "calabresa")
        store.add_line(item, [SelectedVariationGroup(group_id="g-extras", variations=[
            SelectedVariation(variation_id="v-bacon", quantity=1, half_selection=HalfSelection.WHOLE),
        ])])
        assert store.subtotal == Decimal("53")

        reopened, dropped = _reopen(storage, catalog)
        assert dropped == 0
        line = reopened.lines[0]
        assert line.is_half_pizza
        assert line.combination.flavor2.id == "calabresa"
        assert line.selected_variations[0].variations[0].half_selection == HalfSelection.WHOLE
        assert reopened.subtotal == Decimal("53")

    def test_half_pizza_with_missing_flavor_is_dropped(self, store, storage, catalog, snapshot):
        item = HalfAndHalfCombiner(catalog, large_keywords=["large"]).combine(catalog.item("margherita"), "calabresa")
        store.add_line(item)
        store.add_line(catalog.item("soda"))

        without_calabresa = VariationCatalog([i for i in snapshot.items if i.id != "calabresa"], snapshot.variations)
        reopened, dropped = _reopen(storage, without_calabresa)
        assert dropped == 1
        assert [line.id for line in reopened.lines] == ["soda"]

    def test_corrupt_entries_are_skipped(self, storage, catalog, fake_redis):
        fake_redis.set("cart:cart-1", json.dumps([{"id": "soda", "quantity": 0}, {"id": "soda", "quantity": 1}]))
        reopened, _ = _reopen(storage, catalog)
        assert [line.quantity for line in reopened.lines] == [1]


class TestCouponAndClear:

    def test_coupon_survives_reopen(self, store, storage, catalog):
        store.add_line(catalog.item("soda"))
        store.apply_coupon(Coupon(code="FIX", type=CouponType.FIXED, value=Decimal("2")))
        reopened, _ = _reopen(storage, catalog)
        assert reopened.coupon.code == "FIX"
        assert reopened.final_total == Decimal("4")

    def test_clear_removes_lines_and_coupon(self, store, storage, catalog, fake_redis):
        store.add_line(catalog.item("soda"))
        store.apply_coupon(Coupon(code="FIX", type=CouponType.FIXED, value=Decimal("2")))
        store.clear()
        assert store.lines == []
        assert store.coupon is None
        assert store.final_total == Decimal("0")
        assert fake_redis.get("cart:cart-1:coupon") is None


class TestWithdrawnBorder:

    def test_unavailable_border_is_dropped_on_rehydration(self, store, storage, catalog, snapshot):
        item = catalog.item("margherita")
        store.add_line(item, [_size()], item.border("b-cheddar"))
        assert store.subtotal == Decimal("48")

        withdrawn = item.model_copy(update={"borders": [
            b.model_copy(update={"available": False}) if b.id == "b-cheddar" else b
            for b in item.borders
        ]})
        items = [withdrawn if i.id == "margherita" else i for i in snapshot.items]
        reopened, dropped = _reopen(storage, VariationCatalog(items, snapshot.variations))

        assert dropped == 0
        assert reopened.lines[0].selected_border is None
        assert reopened.subtotal == Decimal("40")


class TestDiscountCap:

    def test_fixed_coupon_larger_than_subtotal(self, store, catalog):
        store.add_line(catalog.item("soda"))
        store.apply_coupon(Coupon(code="BIG", type=CouponType.FIXED, value=Decimal("15")))
        assert store.subtotal == Decimal("6")
        assert store.discount_amount == Decimal("6")
        assert store.final_total == Decimal("0")
