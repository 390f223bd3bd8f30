"""Order mode rules: which QC stages apply and whether a sample gates bulk production."""

from enum import Enum
from typing import TYPE_CHECKING

from .guard import GuardResult

if TYPE_CHECKING:
    from .models import Order


class OrderMode(str, Enum):
    SAMPLE_ONLY = "sample_only"
    SAMPLE_THEN_BULK = "sample_then_bulk"
    DIRECT_BULK = "direct_bulk"


MODE_MESSAGES = {
    OrderMode.SAMPLE_ONLY: "This is a sample-only order. Bulk production will not start.",
    OrderMode.SAMPLE_THEN_BULK: "Bulk production will start after sample approval.",
    OrderMode.DIRECT_BULK: (
        "Bulk production has already started. Sample will be delivered for reference only."
    ),
}


def get_order_mode(order: "Order") -> OrderMode:
    """
    Resolve the effective order mode.

    Prefers the explicit mode, falls back to the legacy intent field, and for
    orders carrying neither treats a single piece as a sample-only order.
    """
    for value in (order.order_mode, order.order_intent):
        if value:
            try:
                return OrderMode(value)
            except ValueError:
                continue
    if order.quantity == 1:
        return OrderMode.SAMPLE_ONLY
    return OrderMode.SAMPLE_THEN_BULK


def order_mode_message(mode: OrderMode) -> str:
    return MODE_MESSAGES.get(mode, "")


def is_sample_qc_required(mode: OrderMode) -> bool:
    # Direct bulk orders get a reference sample; its QC is informational
    return mode != OrderMode.DIRECT_BULK


def is_bulk_qc_required(mode: OrderMode) -> bool:
    return mode != OrderMode.SAMPLE_ONLY


def does_sample_block_bulk(mode: OrderMode) -> bool:
    return mode != OrderMode.DIRECT_BULK


def can_bulk_production_start(order: "Order") -> GuardResult:
    mode = get_order_mode(order)

    if mode == OrderMode.SAMPLE_ONLY:
        return GuardResult.deny(
            "This is a sample-only order. Bulk production is not available.",
            gate="order_mode",
        )
    if mode == OrderMode.DIRECT_BULK:
        return GuardResult.ok()

    if not order.sample_approved_at:
        return GuardResult.deny(
            "Buyer must approve the sample before bulk production can start.",
            gate="sample_approved",
        )
    if not (order.sample_qc_uploaded_at or order.qc_files):
        return GuardResult.deny(
            "Sample QC must be uploaded before bulk production can start.",
            gate="sample_qc_uploaded",
        )
    return GuardResult.ok()
