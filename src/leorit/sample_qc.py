"""
Sample QC workflow guards.

The manufacturer uploads a QC video for the sample; the buyer then approves,
rejects, or asks for a revision. Reject and revision need a written reason.
Bulk production is unlocked only once a sample approval has actually been
recorded.
"""

from typing import TYPE_CHECKING, Any

from .guard import GuardResult, check_reason
from .models import _utc_now
from .order_state import OrderState, can_transition

if TYPE_CHECKING:
    from .models import Order


def has_sample_qc_video(order: "Order") -> bool:
    return bool(order.sample_qc_video_url or order.qc_files)


def can_upload_sample_qc(order: "Order") -> GuardResult:
    state = order.order_state
    if state and not can_transition(state, OrderState.SAMPLE_QC_UPLOADED):
        return GuardResult.deny(
            f"Cannot upload QC from current state: {state}. Must be in SAMPLE_IN_PROGRESS.",
            gate="order_state",
        )
    return GuardResult.ok()


def validate_qc_video_uploaded(order: "Order", new_video_url: str | None = None) -> GuardResult:
    if not has_sample_qc_video(order) and not new_video_url:
        return GuardResult.deny(
            "QC video is mandatory. Please upload a sample QC video before proceeding.",
            gate="qc_video",
        )
    return GuardResult.ok()


def can_approve_sample(order: "Order") -> GuardResult:
    if not has_sample_qc_video(order):
        return GuardResult.deny(
            "Cannot approve: No QC video has been uploaded yet.", gate="qc_video"
        )
    state = order.order_state
    if state and not can_transition(state, OrderState.SAMPLE_APPROVED):
        return GuardResult.deny(
            f"Cannot approve from current state: {state}. Must be in SAMPLE_QC_UPLOADED.",
            gate="order_state",
        )
    return GuardResult.ok()


def can_reject_sample(order: "Order", reason: str | None = None) -> GuardResult:
    if not has_sample_qc_video(order):
        return GuardResult.deny(
            "Cannot reject: No QC video has been uploaded yet.", gate="qc_video"
        )
    return check_reason(
        reason,
        "Rejection reason is mandatory. Please provide a reason for rejecting the sample.",
        "Please provide a more detailed rejection reason (minimum 10 characters).",
    )


def can_request_revision(order: "Order", reason: str | None = None) -> GuardResult:
    if not has_sample_qc_video(order):
        return GuardResult.deny(
            "Cannot request revision: No QC video has been uploaded yet.", gate="qc_video"
        )
    return check_reason(
        reason,
        "Revision reason is mandatory. Please specify what needs to be revised.",
        "Please provide more details about the revision needed (minimum 10 characters).",
    )


def can_unlock_bulk(order: "Order") -> GuardResult:
    # The timestamp is checked as well as the state label, so a stale
    # order_state alone cannot unlock bulk production.
    if not order.sample_approved_at:
        return GuardResult.deny(
            "Bulk production cannot be unlocked: Sample must be approved first.",
            gate="sample_approved",
        )
    state = order.order_state
    if state and not can_transition(state, OrderState.BULK_UNLOCKED):
        return GuardResult.deny(
            f"Cannot unlock bulk from current state: {state}. Must be in SAMPLE_APPROVED.",
            gate="order_state",
        )
    return GuardResult.ok()


def qc_action_metadata(action: str, order: "Order", **extra: Any) -> dict[str, Any]:
    metadata = {
        "action": action,
        "order_mode": order.order_mode,
        "order_intent": order.order_intent,
        "timestamp": _utc_now(),
    }
    metadata.update(extra)
    return metadata
