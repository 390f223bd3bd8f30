"""Tests for order mode resolution and buyer purpose validation."""

import pytest

from conftest import MERCH_ORDER, make_order
from leorit.buyer_purpose import (
    BuyerPurpose,
    format_validation_errors,
    get_required_fields,
    is_csv_required_for_bulk,
    parse_buyer_purpose,
    validate_order_submission,
)
from leorit.order_mode import (
    OrderMode,
    can_bulk_production_start,
    does_sample_block_bulk,
    get_order_mode,
    is_bulk_qc_required,
    is_sample_qc_required,
    order_mode_message,
)

NOW = "2026-01-01T00:00:00Z"


class TestOrderMode:
    def test_explicit_mode_wins(self):
        order = make_order(order_mode="direct_bulk", order_intent="sample_only", quantity=1)
        assert get_order_mode(order) == OrderMode.DIRECT_BULK

    def test_falls_back_to_intent(self):
        assert get_order_mode(make_order(order_intent="sample_only")) == OrderMode.SAMPLE_ONLY

    def test_invalid_mode_falls_through(self):
        order = make_order(order_mode="express", order_intent="direct_bulk")
        assert get_order_mode(order) == OrderMode.DIRECT_BULK

    def test_single_piece_defaults_to_sample_only(self):
        assert get_order_mode(make_order(quantity=1)) == OrderMode.SAMPLE_ONLY
        assert get_order_mode(make_order(quantity=20)) == OrderMode.SAMPLE_THEN_BULK

    def test_qc_requirements(self):
        assert is_sample_qc_required(OrderMode.SAMPLE_ONLY)
        assert not is_sample_qc_required(OrderMode.DIRECT_BULK)
        assert not is_bulk_qc_required(OrderMode.SAMPLE_ONLY)
        assert is_bulk_qc_required(OrderMode.DIRECT_BULK)
        assert does_sample_block_bulk(OrderMode.SAMPLE_THEN_BULK)
        assert not does_sample_block_bulk(OrderMode.DIRECT_BULK)

    def test_messages(self):
        assert "sample-only" in order_mode_message(OrderMode.SAMPLE_ONLY)


class TestBulkProductionStart:
    def test_sample_only_never_starts_bulk(self):
        order = make_order(order_mode="sample_only", sample_approved_at=NOW)
        assert can_bulk_production_start(order).gate == "order_mode"

    def test_direct_bulk_always_allowed(self):
        assert can_bulk_production_start(make_order(order_mode="direct_bulk"))

    def test_sample_then_bulk_needs_approval(self):
        order = make_order(order_mode="sample_then_bulk")
        assert can_bulk_production_start(order).gate == "sample_approved"

    def test_sample_then_bulk_needs_qc_upload(self):
        order = make_order(order_mode="sample_then_bulk", sample_approved_at=NOW)
        assert can_bulk_production_start(order).gate == "sample_qc_uploaded"

        order.sample_qc_uploaded_at = NOW
        assert can_bulk_production_start(order)


class TestBuyerPurpose:
    def test_parse(self):
        assert parse_buyer_purpose("fabric_only") == BuyerPurpose.FABRIC_ONLY
        assert parse_buyer_purpose("gifts") is None
        assert parse_buyer_purpose(None) is None

    def test_missing_purpose(self):
        errors = validate_order_submission(make_order())
        assert [e.field for e in errors] == ["buyer_purpose"]

    def test_complete_merch_order_is_valid(self):
        assert validate_order_submission(make_order(**MERCH_ORDER)) == []

    def test_back_design_is_enough(self):
        order = make_order(
            buyer_purpose="merch_bulk", fabric_type="cotton", back_design_url="back.png"
        )
        assert validate_order_submission(order) == []

    def test_merch_needs_design(self):
        order = make_order(buyer_purpose="merch_bulk", fabric_type="cotton")
        errors = validate_order_submission(order)
        assert [e.field for e in errors] == ["design_file"]

    def test_csv_not_required_at_submission(self):
        attrs = dict(MERCH_ORDER, csv_file_url=None)
        assert validate_order_submission(make_order(**attrs)) == []

    def test_blank_apparel_needs_color(self):
        order = make_order(buyer_purpose="blank_apparel", fabric_type="cotton")
        errors = validate_order_submission(order)
        assert [e.field for e in errors] == ["color"]

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_quantity_minimum(self, quantity):
        order = make_order(buyer_purpose="fabric_only", fabric_type="linen", quantity=quantity)
        errors = validate_order_submission(order)
        assert errors[0].field == "quantity"

    def test_required_fields(self):
        assert get_required_fields(BuyerPurpose.FABRIC_ONLY) == ["fabric", "quantity"]

    def test_csv_required_only_for_merch(self):
        assert is_csv_required_for_bulk("merch_bulk")
        assert not is_csv_required_for_bulk(BuyerPurpose.BLANK_APPAREL)

    def test_format_errors(self):
        order = make_order(buyer_purpose="blank_apparel")
        errors = validate_order_submission(order)
        assert format_validation_errors([]) == ""
        assert format_validation_errors(errors[:1]) == errors[0].message
        text = format_validation_errors(errors)
        assert text.startswith("Please fix the following:")
        assert text.count("\n- ") == 2
