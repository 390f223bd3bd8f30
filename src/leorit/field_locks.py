"""
Order field locking.

Each lockable field has a threshold state; from that state onward the field
is read-only. Since the comparison is on the state index, a field that is
locked at one state stays locked at every later state.
"""

from typing import Any

from .guard import GuardResult
from .order_state import OrderState, get_state_index

FIELD_LOCK_THRESHOLDS: dict[str, OrderState] = {
    "buyer_notes": OrderState.SUBMITTED,
    "quantity": OrderState.SUBMITTED,
    "product_type": OrderState.SUBMITTED,
    "fabric_type": OrderState.SAMPLE_APPROVED,
    "selected_color": OrderState.SAMPLE_APPROVED,
    "design_size": OrderState.SAMPLE_APPROVED,
    "shipping_address": OrderState.DISPATCHED,
}

FIELD_LABELS = {
    "buyer_notes": "Buyer Notes",
    "quantity": "Quantity",
    "product_type": "Product Type",
    "fabric_type": "Fabric Type",
    "selected_color": "Color",
    "design_size": "Design Size",
    "shipping_address": "Shipping Address",
}

LOCKABLE_FIELDS = tuple(FIELD_LOCK_THRESHOLDS)


def is_field_locked(field: str, state: OrderState | str | None) -> bool:
    """True when the field is read-only at the given state."""
    if not state:
        return False
    threshold = FIELD_LOCK_THRESHOLDS.get(field)
    if threshold is None:
        return False
    index = get_state_index(state)
    return index >= 0 and index >= get_state_index(threshold)


def get_field_lock_status(state: OrderState | str | None) -> dict[str, bool]:
    return {field: is_field_locked(field, state) for field in LOCKABLE_FIELDS}


def get_field_lock_reason(field: str) -> str:
    threshold = FIELD_LOCK_THRESHOLDS.get(field)
    label = FIELD_LABELS.get(field, field)

    if threshold == OrderState.SUBMITTED:
        return f"{label} cannot be changed after order submission."
    if threshold == OrderState.SAMPLE_APPROVED:
        return f"{label} is locked after sample approval to maintain manufacturing consistency."
    if threshold == OrderState.DISPATCHED:
        return f"{label} cannot be changed after order is dispatched."
    return f"{label} is locked at this stage."


def get_locked_fields(state: OrderState | str | None) -> list[dict[str, Any]]:
    return [
        {"field": field, "label": FIELD_LABELS[field], "reason": get_field_lock_reason(field)}
        for field in LOCKABLE_FIELDS
        if is_field_locked(field, state)
    ]


def validate_field_update(field: str, state: OrderState | str | None) -> GuardResult:
    if is_field_locked(field, state):
        return GuardResult.deny(get_field_lock_reason(field), gate=field)
    return GuardResult.ok()


def are_specs_locked(state: OrderState | str | None) -> bool:
    return is_field_locked("fabric_type", state) and is_field_locked("selected_color", state)


def is_order_editable(state: OrderState | str | None) -> bool:
    return not state or state == OrderState.DRAFT


def get_edit_restriction_message(state: OrderState | str | None) -> str | None:
    if not state or state == OrderState.DRAFT:
        return None
    index = get_state_index(state)
    if index >= get_state_index(OrderState.SAMPLE_APPROVED):
        return (
            "This order has been approved. Specifications are locked for "
            "manufacturing consistency."
        )
    if index >= get_state_index(OrderState.SUBMITTED):
        return "This order has been submitted. Some fields are now read-only."
    return None
