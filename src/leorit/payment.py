"""
Payment (escrow) state machine.

Escrow is simulated: there is no payment gateway. A payment is initiated with
the order, captured into escrow (HELD), becomes RELEASABLE once QC and
delivery conditions hold, and is finally RELEASED to the manufacturer.
REFUNDED is an admin-only side exit that is closed once the money has been
released.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from .guard import GuardResult
from .models import _utc_now
from .order_mode import OrderMode

if TYPE_CHECKING:
    from .models import Order


class PaymentState(str, Enum):
    PAYMENT_INITIATED = "PAYMENT_INITIATED"
    PAYMENT_HELD = "PAYMENT_HELD"
    PAYMENT_RELEASABLE = "PAYMENT_RELEASABLE"
    PAYMENT_RELEASED = "PAYMENT_RELEASED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"


class Actor(str, Enum):
    SYSTEM = "system"
    ADMIN = "admin"
    BUYER = "buyer"
    MANUFACTURER = "manufacturer"


VALID_PAYMENT_TRANSITIONS: dict[PaymentState, tuple[PaymentState, ...]] = {
    PaymentState.PAYMENT_INITIATED: (PaymentState.PAYMENT_HELD, PaymentState.PAYMENT_REFUNDED),
    PaymentState.PAYMENT_HELD: (PaymentState.PAYMENT_RELEASABLE, PaymentState.PAYMENT_REFUNDED),
    PaymentState.PAYMENT_RELEASABLE: (PaymentState.PAYMENT_RELEASED, PaymentState.PAYMENT_REFUNDED),
    PaymentState.PAYMENT_RELEASED: (),
    PaymentState.PAYMENT_REFUNDED: (),
}

PAYMENT_TRANSITION_PERMISSIONS: dict[tuple[PaymentState, PaymentState], tuple[Actor, ...]] = {
    (PaymentState.PAYMENT_INITIATED, PaymentState.PAYMENT_HELD): (Actor.SYSTEM, Actor.BUYER),
    (PaymentState.PAYMENT_HELD, PaymentState.PAYMENT_RELEASABLE): (Actor.SYSTEM,),
    (PaymentState.PAYMENT_RELEASABLE, PaymentState.PAYMENT_RELEASED): (Actor.SYSTEM, Actor.ADMIN),
    # Refunds are admin only
    (PaymentState.PAYMENT_INITIATED, PaymentState.PAYMENT_REFUNDED): (Actor.ADMIN,),
    (PaymentState.PAYMENT_HELD, PaymentState.PAYMENT_REFUNDED): (Actor.ADMIN,),
    (PaymentState.PAYMENT_RELEASABLE, PaymentState.PAYMENT_REFUNDED): (Actor.ADMIN,),
}

PAYMENT_LABELS: dict[PaymentState, str] = {
    PaymentState.PAYMENT_INITIATED: "Payment Pending",
    PaymentState.PAYMENT_HELD: "In Escrow",
    PaymentState.PAYMENT_RELEASABLE: "Ready for Release",
    PaymentState.PAYMENT_RELEASED: "Released",
    PaymentState.PAYMENT_REFUNDED: "Refunded",
}

UPFRONT_PERCENTAGE = 55
REMAINING_PERCENTAGE = 45


def _current(order: "Order") -> PaymentState:
    try:
        return PaymentState(order.payment_state or PaymentState.PAYMENT_INITIATED)
    except ValueError:
        return PaymentState.PAYMENT_INITIATED


def _mode_is(order: "Order", mode: OrderMode) -> bool:
    return order.order_mode == mode or order.order_intent == mode


def can_transition_payment(current: PaymentState | str, target: PaymentState | str) -> bool:
    return target in VALID_PAYMENT_TRANSITIONS.get(current, ())


def can_actor_perform_payment_transition(
    current: PaymentState | str, target: PaymentState | str, actor: Actor | str
) -> GuardResult:
    """Check both state validity and actor authorization."""
    if not can_transition_payment(current, target):
        allowed = ", ".join(s.value for s in VALID_PAYMENT_TRANSITIONS.get(current, ())) or "none"
        return GuardResult.deny(
            f"Invalid payment transition: {_name(current)} -> {_name(target)}. Allowed: {allowed}",
            gate="payment_state",
        )

    actors = PAYMENT_TRANSITION_PERMISSIONS.get((PaymentState(current), PaymentState(target)), ())
    if actor not in actors:
        names = ", ".join(a.value for a in actors)
        return GuardResult.deny(
            f"{_name(actor)} cannot perform payment transition "
            f"{_name(current)} -> {_name(target)}. Only {names} can.",
            gate="actor",
        )
    return GuardResult.ok()


def _name(value: Enum | str) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def can_start_sample_production(order: "Order") -> GuardResult:
    """Sample production needs the payment captured into escrow."""
    state = _current(order)
    if state == PaymentState.PAYMENT_INITIATED:
        return GuardResult.deny(
            "Sample payment must be completed before production can start. "
            "Payment is still in INITIATED state.",
            gate="payment_state",
        )
    if state == PaymentState.PAYMENT_REFUNDED:
        return GuardResult.deny(
            "Cannot start production: Payment has been refunded.", gate="payment_state"
        )
    if not order.escrow_locked_timestamp:
        return GuardResult.deny(
            "Payment must be held in escrow before sample production can start.",
            gate="escrow_locked",
        )
    return GuardResult.ok()


def can_start_bulk_production_payment(order: "Order") -> GuardResult:
    state = _current(order)
    if state == PaymentState.PAYMENT_INITIATED:
        return GuardResult.deny(
            "Bulk payment must be completed before bulk production can start.",
            gate="payment_state",
        )
    if state == PaymentState.PAYMENT_REFUNDED:
        return GuardResult.deny(
            "Cannot start bulk production: Payment has been refunded.", gate="payment_state"
        )
    if _mode_is(order, OrderMode.SAMPLE_THEN_BULK) and not order.sample_approved_at:
        return GuardResult.deny(
            "Sample must be approved before bulk production payment can proceed.",
            gate="sample_approved",
        )
    return GuardResult.ok()


def can_mark_payment_releasable(order: "Order") -> GuardResult:
    """
    Check whether escrow may become releasable.

    Sample-only orders only need the sample approved. Every other order needs
    bulk QC approved and a confirmed delivery (status and timestamp).
    """
    state = _current(order)
    if state != PaymentState.PAYMENT_HELD:
        return GuardResult.deny(
            f"Payment must be in HELD state to become releasable. Current: {state.value}",
            gate="payment_state",
        )

    if _mode_is(order, OrderMode.SAMPLE_ONLY):
        if not order.sample_approved_at:
            return GuardResult.deny(
                "Sample must be approved before payment can be released.",
                gate="sample_approved",
            )
        return GuardResult.ok()

    if not order.bulk_qc_approved_at:
        return GuardResult.deny(
            "Bulk QC must be approved before payment can be released.",
            gate="bulk_qc_approved",
        )
    if (order.delivery_status or "").upper() != "DELIVERED":
        return GuardResult.deny(
            "Order must be delivered before payment can be released.", gate="delivered"
        )
    if not order.delivered_at:
        return GuardResult.deny(
            "Delivery confirmation timestamp is required before payment release.",
            gate="delivered",
        )
    return GuardResult.ok()


def can_release_payment(order: "Order") -> GuardResult:
    state = _current(order)
    if state == PaymentState.PAYMENT_RELEASABLE:
        return GuardResult.ok()
    if state == PaymentState.PAYMENT_HELD:
        # HELD may go straight through when the releasable conditions already hold
        return can_mark_payment_releasable(order)
    return GuardResult.deny(
        f"Payment must be in RELEASABLE state before release. Current: {state.value}",
        gate="payment_state",
    )


def can_admin_refund(order: "Order") -> GuardResult:
    state = _current(order)
    if state == PaymentState.PAYMENT_RELEASED:
        return GuardResult.deny(
            "Cannot refund: Payment has already been released to manufacturer.",
            gate="payment_state",
        )
    if state == PaymentState.PAYMENT_REFUNDED:
        return GuardResult.deny("Payment has already been refunded.", gate="payment_state")
    return GuardResult.ok()


def payment_label(state: PaymentState | str) -> str:
    try:
        return PAYMENT_LABELS[PaymentState(state)]
    except ValueError:
        return str(state)


def calculate_payment_split(total_order_value: int | float) -> dict[str, Any]:
    """Split an order value into the 55% upfront and 45% remaining amounts."""
    upfront = int(
        (Decimal(str(total_order_value)) * UPFRONT_PERCENTAGE / 100).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )
    return {
        "upfront_amount": upfront,
        "remaining_amount": total_order_value - upfront,
        "upfront_percentage": UPFRONT_PERCENTAGE,
        "remaining_percentage": REMAINING_PERCENTAGE,
    }


def get_payment_release_conditions(order: "Order") -> dict[str, Any]:
    """List the release conditions for display, with whether each is met."""
    conditions = [
        {"label": "Sample QC Approved", "met": bool(order.sample_approved_at), "required": True},
    ]
    if not _mode_is(order, OrderMode.SAMPLE_ONLY):
        conditions.append(
            {"label": "Bulk QC Approved", "met": bool(order.bulk_qc_approved_at), "required": True}
        )
        conditions.append(
            {
                "label": "Order Delivered",
                "met": bool(order.delivered_at) or order.delivery_status == "DELIVERED",
                "required": True,
            }
        )
    return {
        "all_conditions_met": all(c["met"] for c in conditions if c["required"]),
        "conditions": conditions,
    }


def determine_next_payment_state(order: "Order") -> PaymentState | None:
    state = _current(order)
    if state == PaymentState.PAYMENT_INITIATED:
        return PaymentState.PAYMENT_HELD if order.escrow_locked_timestamp else None
    if state == PaymentState.PAYMENT_HELD:
        return PaymentState.PAYMENT_RELEASABLE if can_mark_payment_releasable(order) else None
    if state == PaymentState.PAYMENT_RELEASABLE:
        return PaymentState.PAYMENT_RELEASED
    return None


def payment_action_metadata(
    action: str, order: "Order", actor: Actor | str, **extra: Any
) -> dict[str, Any]:
    metadata = {
        "action": action,
        "actor": _name(actor),
        "payment_state": order.payment_state,
        "escrow_amount": order.escrow_amount,
        "total_amount": order.total_order_value,
        "upfront_amount": order.upfront_payable_amount,
        "timestamp": _utc_now(),
    }
    metadata.update(extra)
    return metadata
