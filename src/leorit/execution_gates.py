"""
Execution gates.

- No production without specs locked by admin.
- No delivery without QC uploaded and admin-approved.
- No payment release without admin QC approval and a deliverable state.
"""

from typing import TYPE_CHECKING

from .guard import GuardResult
from .order_state import OrderState

if TYPE_CHECKING:
    from .models import Order

BULK_STAGE_STATES = frozenset({
    OrderState.BULK_IN_PRODUCTION,
    OrderState.BULK_QC_UPLOADED,
    OrderState.READY_FOR_DISPATCH,
})

DELIVERABLE_STATES = frozenset({
    OrderState.READY_FOR_DISPATCH,
    OrderState.DISPATCHED,
    OrderState.DELIVERED,
    OrderState.COMPLETED,
})

GATE_LABELS = {
    "specs_locked": ("Specs Locked", "Specs Not Locked"),
    "sample_qc_uploaded": ("Sample QC Uploaded", "Sample QC Not Uploaded"),
    "bulk_qc_uploaded": ("Bulk QC Uploaded", "Bulk QC Not Uploaded"),
    "admin_qc_approved": ("Admin QC Approved", "Admin QC Pending"),
    "order_state": ("Order State Valid", "Order State Invalid"),
}


def can_start_production(order: "Order") -> GuardResult:
    if not order.specs_locked:
        return GuardResult.deny(
            "Specs must be locked by admin before production can start.",
            gate="specs_locked",
        )
    return GuardResult.ok()


def can_proceed_to_delivery(order: "Order") -> GuardResult:
    if order.order_state in BULK_STAGE_STATES:
        if not order.bulk_qc_uploaded_at:
            return GuardResult.deny(
                "Bulk QC must be uploaded before delivery can proceed.",
                gate="bulk_qc_uploaded",
            )
    elif not order.sample_qc_uploaded_at:
        return GuardResult.deny(
            "Sample QC must be uploaded before delivery can proceed.",
            gate="sample_qc_uploaded",
        )

    if not order.admin_qc_approved:
        return GuardResult.deny(
            "Admin must approve QC before delivery can proceed.",
            gate="admin_qc_approved",
        )
    return GuardResult.ok()


def can_release_payment(order: "Order") -> GuardResult:
    if not order.admin_qc_approved:
        return GuardResult.deny(
            "Admin must approve QC before payment can be released.",
            gate="admin_qc_approved",
        )
    if order.order_state not in DELIVERABLE_STATES:
        return GuardResult.deny(
            "Order must be in a deliverable state before payment can be released.",
            gate="order_state",
        )
    return GuardResult.ok()


def check_all_gates(order: "Order") -> dict[str, GuardResult]:
    return {
        "production": can_start_production(order),
        "delivery": can_proceed_to_delivery(order),
        "payment": can_release_payment(order),
    }


def gate_status_label(gate: str, passed: bool) -> str:
    labels = GATE_LABELS.get(gate)
    if labels is None:
        return gate
    return labels[0] if passed else labels[1]
