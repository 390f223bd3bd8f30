"""
Bulk QC workflow guards.

A bulk QC video must be uploaded before the order can be readied for
dispatch, and the buyer approves or rejects it (rejection needs a reason).
"""

from typing import TYPE_CHECKING, Any

from .guard import GuardResult, check_reason
from .models import _utc_now
from .order_state import OrderState, can_transition

if TYPE_CHECKING:
    from .models import Order


# What the bulk QC video has to show
BULK_QC_REQUIREMENTS = (
    "Randomly sampled units from the batch",
    "Front and back views of products",
    "Print quality close-up",
    "Stitching quality close-up",
    "Packaging proof (sealed cartons with quantity visible)",
)


def can_upload_bulk_qc(order: "Order") -> GuardResult:
    state = order.order_state
    if state and not can_transition(state, OrderState.BULK_QC_UPLOADED):
        return GuardResult.deny(
            f"Cannot upload bulk QC from current state: {state}. Must be in BULK_IN_PRODUCTION.",
            gate="order_state",
        )
    return GuardResult.ok()


def validate_bulk_qc_video_uploaded(
    order: "Order", new_video_url: str | None = None
) -> GuardResult:
    if not order.bulk_qc_video_url and not new_video_url:
        return GuardResult.deny(
            "Bulk QC video is mandatory. Please upload a bulk QC video showing: "
            "randomly sampled units, front+back views, print+stitching quality, "
            "and packaging proof.",
            gate="qc_video",
        )
    return GuardResult.ok()


def _require_uploaded(order: "Order", verb: str) -> GuardResult:
    if not order.bulk_qc_video_url:
        return GuardResult.deny(
            f"Cannot {verb}: No bulk QC video has been uploaded yet.", gate="qc_video"
        )
    if order.order_state != OrderState.BULK_QC_UPLOADED:
        return GuardResult.deny(
            f"Cannot {verb} bulk QC from current state: {order.order_state}. "
            "Must be in BULK_QC_UPLOADED.",
            gate="order_state",
        )
    return GuardResult.ok()


def can_transition_to_ready_for_dispatch(order: "Order") -> GuardResult:
    if not order.bulk_qc_video_url:
        return GuardResult.deny(
            "Cannot proceed to dispatch: Bulk QC video must be uploaded first.",
            gate="qc_video",
        )
    if order.order_state != OrderState.BULK_QC_UPLOADED:
        return GuardResult.deny(
            f"Cannot proceed to dispatch from current state: {order.order_state}. "
            "Must be in BULK_QC_UPLOADED.",
            gate="order_state",
        )
    return GuardResult.ok()


def can_approve_bulk_qc(order: "Order") -> GuardResult:
    return _require_uploaded(order, "approve")


def can_reject_bulk_qc(order: "Order", reason: str | None = None) -> GuardResult:
    result = _require_uploaded(order, "reject")
    if not result:
        return result
    return check_reason(
        reason,
        "Rejection reason is mandatory. Please provide a reason for rejecting the bulk QC.",
        "Please provide a more detailed rejection reason (minimum 10 characters).",
    )


def bulk_qc_action_metadata(action: str, order: "Order", **extra: Any) -> dict[str, Any]:
    metadata = {
        "action": action,
        "order_mode": order.order_mode,
        "order_intent": order.order_intent,
        "quantity": order.quantity,
        "timestamp": _utc_now(),
    }
    metadata.update(extra)
    return metadata
