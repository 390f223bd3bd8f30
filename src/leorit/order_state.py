"""
Order state machine.

Orders move through a strictly linear sequence of states. The only branch is
at SAMPLE_APPROVED, where a sample-only order may complete directly instead of
unlocking bulk production. All functions here are pure lookups over the
static transition table.
"""

from enum import Enum
from typing import TYPE_CHECKING

from .buyer_purpose import is_csv_required_for_bulk
from .guard import GuardResult

if TYPE_CHECKING:
    from .models import Order


class OrderState(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    MANUFACTURER_ASSIGNED = "MANUFACTURER_ASSIGNED"
    SAMPLE_IN_PROGRESS = "SAMPLE_IN_PROGRESS"
    SAMPLE_QC_UPLOADED = "SAMPLE_QC_UPLOADED"
    SAMPLE_APPROVED = "SAMPLE_APPROVED"
    BULK_UNLOCKED = "BULK_UNLOCKED"
    BULK_IN_PRODUCTION = "BULK_IN_PRODUCTION"
    BULK_QC_UPLOADED = "BULK_QC_UPLOADED"
    READY_FOR_DISPATCH = "READY_FOR_DISPATCH"
    DISPATCHED = "DISPATCHED"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"


# Progression order (enum definition order)
ORDER_STATES: list[OrderState] = list(OrderState)

VALID_TRANSITIONS: dict[OrderState, tuple[OrderState, ...]] = {
    OrderState.DRAFT: (OrderState.SUBMITTED,),
    OrderState.SUBMITTED: (OrderState.MANUFACTURER_ASSIGNED,),
    OrderState.MANUFACTURER_ASSIGNED: (OrderState.SAMPLE_IN_PROGRESS,),
    OrderState.SAMPLE_IN_PROGRESS: (OrderState.SAMPLE_QC_UPLOADED,),
    OrderState.SAMPLE_QC_UPLOADED: (OrderState.SAMPLE_APPROVED,),
    OrderState.SAMPLE_APPROVED: (OrderState.BULK_UNLOCKED, OrderState.COMPLETED),
    OrderState.BULK_UNLOCKED: (OrderState.BULK_IN_PRODUCTION,),
    OrderState.BULK_IN_PRODUCTION: (OrderState.BULK_QC_UPLOADED,),
    OrderState.BULK_QC_UPLOADED: (OrderState.READY_FOR_DISPATCH,),
    OrderState.READY_FOR_DISPATCH: (OrderState.DISPATCHED,),
    OrderState.DISPATCHED: (OrderState.DELIVERED,),
    OrderState.DELIVERED: (OrderState.COMPLETED,),
    OrderState.COMPLETED: (),
}

STATE_LABELS: dict[OrderState, str] = {
    OrderState.DRAFT: "Draft",
    OrderState.SUBMITTED: "Submitted",
    OrderState.MANUFACTURER_ASSIGNED: "Manufacturer Assigned",
    OrderState.SAMPLE_IN_PROGRESS: "Sample In Progress",
    OrderState.SAMPLE_QC_UPLOADED: "Sample QC Uploaded",
    OrderState.SAMPLE_APPROVED: "Sample Approved",
    OrderState.BULK_UNLOCKED: "Bulk Unlocked",
    OrderState.BULK_IN_PRODUCTION: "Bulk In Production",
    OrderState.BULK_QC_UPLOADED: "Bulk QC Uploaded",
    OrderState.READY_FOR_DISPATCH: "Ready for Dispatch",
    OrderState.DISPATCHED: "Dispatched",
    OrderState.DELIVERED: "Delivered",
    OrderState.COMPLETED: "Completed",
}

# Targets that need an approved sample first
SAMPLE_GATED_STATES = frozenset({
    OrderState.BULK_UNLOCKED,
    OrderState.BULK_IN_PRODUCTION,
    OrderState.BULK_QC_UPLOADED,
    OrderState.READY_FOR_DISPATCH,
})

# Targets that need bulk QC uploaded first
BULK_QC_GATED_STATES = frozenset({
    OrderState.READY_FOR_DISPATCH,
    OrderState.DISPATCHED,
    OrderState.DELIVERED,
})

# Targets at which a merch_bulk order must have its CSV
CSV_GATED_STATES = frozenset({OrderState.BULK_UNLOCKED, OrderState.BULK_IN_PRODUCTION})


def parse_state(value: "OrderState | str | None") -> OrderState | None:
    """Return the OrderState for a raw value, or None if unset/unknown."""
    if value is None or value == "":
        return None
    try:
        return OrderState(value)
    except ValueError:
        return None


def state_label(state: OrderState | str) -> str:
    parsed = parse_state(state)
    return STATE_LABELS[parsed] if parsed else str(state)


def can_transition(from_state: OrderState | str | None, to_state: OrderState | str) -> bool:
    """
    Check if a state transition is allowed.

    A missing current state stands for an order that does not exist yet;
    the only legal target is then DRAFT.
    """
    if not from_state:
        return to_state == OrderState.DRAFT
    return to_state in VALID_TRANSITIONS.get(from_state, ())


def get_valid_next_states(state: OrderState | str | None) -> list[OrderState]:
    if not state:
        return [OrderState.DRAFT]
    return list(VALID_TRANSITIONS.get(state, ()))


def is_terminal_state(state: OrderState | str) -> bool:
    return state in VALID_TRANSITIONS and not VALID_TRANSITIONS[state]


def get_state_index(state: OrderState | str | None) -> int:
    """Index in the progression, or -1 for a missing/unknown state."""
    parsed = parse_state(state)
    if parsed is None:
        return -1
    return ORDER_STATES.index(parsed)


def is_state_before(state_a: OrderState | str, state_b: OrderState | str) -> bool:
    return get_state_index(state_a) < get_state_index(state_b)


def is_state_after(state_a: OrderState | str, state_b: OrderState | str) -> bool:
    return get_state_index(state_a) > get_state_index(state_b)


def get_state_progress(state: OrderState | str | None) -> int:
    """Progress through the lifecycle as a whole percentage."""
    index = get_state_index(state)
    if index < 0:
        return 0
    return round(index / (len(ORDER_STATES) - 1) * 100)


def can_buyer_edit(state: OrderState | str | None) -> bool:
    return not state or state == OrderState.DRAFT


def is_order_locked(state: OrderState | str | None) -> bool:
    return not can_buyer_edit(state)


def requires_sample_approval(target: OrderState | str) -> bool:
    return target in SAMPLE_GATED_STATES


def requires_bulk_qc(target: OrderState | str) -> bool:
    return target in BULK_QC_GATED_STATES


def validate_transition(
    from_state: OrderState | str | None, to_state: OrderState | str
) -> str | None:
    """Return an error message if the transition is invalid, None if valid."""
    if can_transition(from_state, to_state):
        return None

    if not from_state:
        return (
            f"Orders must start in DRAFT state. Cannot create order in {to_state} state."
        )

    if parse_state(from_state) is None:
        return f"Unknown current state: {from_state}"

    if is_terminal_state(from_state):
        return (
            f"Order is in terminal state ({state_label(from_state)}). "
            "No further transitions allowed."
        )

    valid_next = ", ".join(state_label(s) for s in get_valid_next_states(from_state))
    return (
        f"Invalid transition: {state_label(from_state)} -> {state_label(to_state)}. "
        f"Valid next states: {valid_next}."
    )


def check_transition(
    from_state: OrderState | str | None, to_state: OrderState | str
) -> GuardResult:
    """GuardResult form of validate_transition."""
    error = validate_transition(from_state, to_state)
    if error:
        return GuardResult.deny(error, gate="order_state")
    return GuardResult.ok()


# --- CSV guard for bulk transitions ---


def requires_csv_for_bulk(buyer_purpose: str | None) -> bool:
    if not buyer_purpose:
        return False
    return is_csv_required_for_bulk(buyer_purpose)


def has_csv_uploaded(order: "Order") -> bool:
    return bool(order.csv_file_url or order.corrected_csv_url)


def validate_csv_for_bulk_transition(target: OrderState | str, order: "Order") -> GuardResult:
    """Require a CSV of sizes/names before a merch_bulk order enters bulk production."""
    if target not in CSV_GATED_STATES:
        return GuardResult.ok()
    if not requires_csv_for_bulk(order.buyer_purpose):
        return GuardResult.ok()
    if not has_csv_uploaded(order):
        return GuardResult.deny(
            "CSV required before bulk production. Please upload CSV with sizes and names.",
            gate="csv_uploaded",
        )
    return GuardResult.ok()


def validate_bulk_transition_with_csv(order: "Order", to_state: OrderState | str) -> GuardResult:
    """Standard transition check followed by the CSV guard."""
    result = check_transition(order.order_state, to_state)
    if not result:
        return result
    return validate_csv_for_bulk_transition(to_state, order)
