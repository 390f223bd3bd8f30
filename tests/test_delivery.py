"""Tests for the delivery state machine and delivery cost estimate."""

import pytest

from conftest import make_order
from leorit.delivery import (
    DeliveryState,
    buyer_visible_tracking,
    can_actor_perform_transition,
    can_admin_mark_delivered,
    can_admin_mark_in_transit,
    can_admin_schedule_pickup,
    can_manufacturer_mark_packed,
    can_transition_delivery,
    delivery_label,
    get_next_delivery_state,
    validate_packaging_video_uploaded,
)
from leorit.delivery_cost import calculate_delivery_cost, format_weight, product_weight
from leorit.payment import Actor


class TestDeliveryTransitions:
    def test_linear(self):
        assert can_transition_delivery("NOT_STARTED", "PACKED")
        assert can_transition_delivery("IN_TRANSIT", "DELIVERED")
        assert not can_transition_delivery("NOT_STARTED", "IN_TRANSIT")
        assert not can_transition_delivery("DELIVERED", "PACKED")

    def test_only_manufacturer_packs(self):
        assert can_actor_perform_transition("NOT_STARTED", "PACKED", "manufacturer")
        result = can_actor_perform_transition("NOT_STARTED", "PACKED", "admin")
        assert result.gate == "actor"

    def test_system_can_move_transit(self):
        assert can_actor_perform_transition("PICKUP_SCHEDULED", "IN_TRANSIT", Actor.SYSTEM)
        assert can_actor_perform_transition("IN_TRANSIT", "DELIVERED", Actor.SYSTEM)

    def test_buyer_cannot_schedule_pickup(self):
        assert not can_actor_perform_transition("PACKED", "PICKUP_SCHEDULED", "buyer")

    def test_next_state_for_actor(self):
        assert get_next_delivery_state("NOT_STARTED", "manufacturer") == DeliveryState.PACKED
        assert get_next_delivery_state("NOT_STARTED", "admin") is None
        assert get_next_delivery_state("DELIVERED", "admin") is None


class TestDeliveryGuards:
    @pytest.mark.parametrize("state", ["READY_FOR_DISPATCH", "BULK_QC_UPLOADED"])
    def test_pack_from_dispatchable_state(self, state):
        assert can_manufacturer_mark_packed(make_order(order_state=state))

    def test_pack_blocked_before_qc(self):
        result = can_manufacturer_mark_packed(make_order(order_state="BULK_IN_PRODUCTION"))
        assert result.gate == "order_state"

    def test_pack_twice_blocked(self):
        order = make_order(order_state="READY_FOR_DISPATCH", delivery_status="PACKED")
        assert can_manufacturer_mark_packed(order).gate == "delivery_status"

    def test_packaging_video(self):
        assert not validate_packaging_video_uploaded(make_order())
        assert validate_packaging_video_uploaded(make_order(), "pack.mp4")

    def test_schedule_pickup_needs_courier_and_tracking(self):
        order = make_order(delivery_status="PACKED")
        assert can_admin_schedule_pickup(order).gate == "courier"
        assert can_admin_schedule_pickup(order, "BlueDart").gate == "tracking_id"
        assert can_admin_schedule_pickup(order, "BlueDart", "BD1")

    def test_schedule_pickup_uses_stored_details(self):
        order = make_order(delivery_status="PACKED", courier_name="DTDC", tracking_id="D1")
        assert can_admin_schedule_pickup(order)

    def test_schedule_pickup_needs_packed(self):
        result = can_admin_schedule_pickup(make_order(), "BlueDart", "BD1")
        assert result.gate == "delivery_status"

    def test_in_transit(self):
        assert not can_admin_mark_in_transit(make_order(delivery_status="PACKED"))
        assert not can_admin_mark_in_transit(make_order(delivery_status="PICKUP_SCHEDULED"))
        assert can_admin_mark_in_transit(
            make_order(delivery_status="PICKUP_SCHEDULED", tracking_id="BD1")
        )

    def test_delivered(self):
        assert not can_admin_mark_delivered(make_order(delivery_status="PICKUP_SCHEDULED"))
        assert can_admin_mark_delivered(make_order(delivery_status="IN_TRANSIT"))


class TestBuyerTracking:
    def test_hidden_before_packing(self):
        info = buyer_visible_tracking(make_order(tracking_id="BD1"))
        assert info["can_see_tracking"] is False
        assert info["tracking_id"] is None

    def test_tracking_hidden_while_only_packed(self):
        info = buyer_visible_tracking(make_order(delivery_status="PACKED", tracking_id="BD1"))
        assert info["can_see_tracking"] is True
        assert info["tracking_id"] is None

    def test_tracking_shown_after_pickup(self):
        order = make_order(
            delivery_status="IN_TRANSIT", tracking_id="BD1", courier_name="BlueDart"
        )
        info = buyer_visible_tracking(order)
        assert info["tracking_id"] == "BD1"
        assert info["courier_name"] == "BlueDart"
        assert info["status_label"] == "In Transit"

    def test_labels(self):
        assert delivery_label("NOT_STARTED") == "Awaiting Packaging"
        assert delivery_label("LOST") == "LOST"


class TestDeliveryCost:
    def test_single_tshirt_is_one_slab(self):
        cost = calculate_delivery_cost("t-shirt", 1)
        assert cost.weight == 0.25
        assert cost.cost == 35
        assert cost.slabs == 1

    def test_heavy_single_piece_adds_slabs(self):
        cost = calculate_delivery_cost("Jacket", 1)
        assert cost.slabs == 2
        assert cost.cost == 55

    def test_bulk_is_flat(self):
        cost = calculate_delivery_cost("hoodie", 10)
        assert cost.cost == 1500
        assert cost.slabs == 0
        assert cost.weight == 6.0

    def test_unknown_product_weighs_as_custom(self):
        assert product_weight("scarf") == 0.25
        assert product_weight(None) == 0.25

    def test_format_weight(self):
        assert format_weight(0.25) == "0.25 kg"
