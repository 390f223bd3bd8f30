"""
Delivery state machine.

The manufacturer may only mark an order packed (with a packaging video). The
admin assigns the courier and tracking ID, and moves the shipment through
transit to delivery. Buyers see tracking details only once pickup has been
scheduled.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any

from .guard import GuardResult
from .models import _utc_now
from .payment import Actor

if TYPE_CHECKING:
    from .models import Order


class DeliveryState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    PACKED = "PACKED"
    PICKUP_SCHEDULED = "PICKUP_SCHEDULED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"


VALID_DELIVERY_TRANSITIONS: dict[DeliveryState, tuple[DeliveryState, ...]] = {
    DeliveryState.NOT_STARTED: (DeliveryState.PACKED,),
    DeliveryState.PACKED: (DeliveryState.PICKUP_SCHEDULED,),
    DeliveryState.PICKUP_SCHEDULED: (DeliveryState.IN_TRANSIT,),
    DeliveryState.IN_TRANSIT: (DeliveryState.DELIVERED,),
    DeliveryState.DELIVERED: (),
}

DELIVERY_TRANSITION_PERMISSIONS: dict[tuple[DeliveryState, DeliveryState], tuple[Actor, ...]] = {
    (DeliveryState.NOT_STARTED, DeliveryState.PACKED): (Actor.MANUFACTURER,),
    (DeliveryState.PACKED, DeliveryState.PICKUP_SCHEDULED): (Actor.ADMIN,),
    (DeliveryState.PICKUP_SCHEDULED, DeliveryState.IN_TRANSIT): (Actor.ADMIN, Actor.SYSTEM),
    (DeliveryState.IN_TRANSIT, DeliveryState.DELIVERED): (Actor.ADMIN, Actor.SYSTEM),
}

DELIVERY_LABELS: dict[DeliveryState, str] = {
    DeliveryState.NOT_STARTED: "Awaiting Packaging",
    DeliveryState.PACKED: "Packed & Ready",
    DeliveryState.PICKUP_SCHEDULED: "Pickup Scheduled",
    DeliveryState.IN_TRANSIT: "In Transit",
    DeliveryState.DELIVERED: "Delivered",
}

# Order states from which the manufacturer may pack
PACKABLE_ORDER_STATES = ("READY_FOR_DISPATCH", "BULK_QC_UPLOADED")

# Delivery states at which the buyer sees courier and tracking ID
TRACKING_VISIBLE_STATES = frozenset({
    DeliveryState.PICKUP_SCHEDULED,
    DeliveryState.IN_TRANSIT,
    DeliveryState.DELIVERED,
})


def _current(order: "Order") -> DeliveryState:
    try:
        return DeliveryState(order.delivery_status or DeliveryState.NOT_STARTED)
    except ValueError:
        return DeliveryState.NOT_STARTED


def _name(value: Enum | str) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def can_transition_delivery(current: DeliveryState | str, target: DeliveryState | str) -> bool:
    return target in VALID_DELIVERY_TRANSITIONS.get(current, ())


def can_actor_perform_transition(
    current: DeliveryState | str, target: DeliveryState | str, actor: Actor | str
) -> GuardResult:
    if not can_transition_delivery(current, target):
        allowed = ", ".join(s.value for s in VALID_DELIVERY_TRANSITIONS.get(current, ())) or "none"
        return GuardResult.deny(
            f"Invalid transition: {_name(current)} -> {_name(target)}. Allowed: {allowed}",
            gate="delivery_status",
        )

    actors = DELIVERY_TRANSITION_PERMISSIONS.get((DeliveryState(current), DeliveryState(target)), ())
    if actor not in actors:
        names = ", ".join(a.value for a in actors)
        return GuardResult.deny(
            f"{_name(actor)} cannot perform transition {_name(current)} -> {_name(target)}. "
            f"Only {names} can.",
            gate="actor",
        )
    return GuardResult.ok()


def can_manufacturer_mark_packed(order: "Order") -> GuardResult:
    if order.order_state and order.order_state not in PACKABLE_ORDER_STATES:
        return GuardResult.deny(
            "Order must be in READY_FOR_DISPATCH state to mark as packed. "
            f"Current: {order.order_state}",
            gate="order_state",
        )
    return can_actor_perform_transition(_current(order), DeliveryState.PACKED, Actor.MANUFACTURER)


def validate_packaging_video_uploaded(
    order: "Order", new_video_url: str | None = None
) -> GuardResult:
    if not order.packaging_video_url and not new_video_url:
        return GuardResult.deny(
            "Packaging video is required. Please upload a video showing sealed "
            "cartons with quantity visible.",
            gate="packaging_video",
        )
    return GuardResult.ok()


def can_admin_schedule_pickup(
    order: "Order", courier_name: str | None = None, tracking_id: str | None = None
) -> GuardResult:
    """Pickup needs a packed order plus a courier and tracking ID (given or on file)."""
    current = _current(order)
    if current != DeliveryState.PACKED:
        return GuardResult.deny(
            f"Order must be PACKED before scheduling pickup. Current: {current.value}",
            gate="delivery_status",
        )
    if not courier_name and not order.courier_name:
        return GuardResult.deny("Courier name is required to schedule pickup.", gate="courier")
    if not tracking_id and not order.tracking_id:
        return GuardResult.deny(
            "Tracking ID is required to schedule pickup.", gate="tracking_id"
        )
    return can_actor_perform_transition(current, DeliveryState.PICKUP_SCHEDULED, Actor.ADMIN)


def can_admin_mark_in_transit(order: "Order") -> GuardResult:
    current = _current(order)
    if current != DeliveryState.PICKUP_SCHEDULED:
        return GuardResult.deny(
            "Order must have pickup scheduled before marking in transit. "
            f"Current: {current.value}",
            gate="delivery_status",
        )
    if not order.tracking_id:
        return GuardResult.deny(
            "Tracking ID is required before marking in transit.", gate="tracking_id"
        )
    return can_actor_perform_transition(current, DeliveryState.IN_TRANSIT, Actor.ADMIN)


def can_admin_mark_delivered(order: "Order") -> GuardResult:
    current = _current(order)
    if current != DeliveryState.IN_TRANSIT:
        return GuardResult.deny(
            f"Order must be in transit before marking delivered. Current: {current.value}",
            gate="delivery_status",
        )
    return can_actor_perform_transition(current, DeliveryState.DELIVERED, Actor.ADMIN)


def delivery_label(state: DeliveryState | str) -> str:
    try:
        return DELIVERY_LABELS[DeliveryState(state)]
    except ValueError:
        return str(state)


def get_next_delivery_state(
    current: DeliveryState | str, actor: Actor | str
) -> DeliveryState | None:
    """First state the actor may move the delivery to, or None."""
    for target in VALID_DELIVERY_TRANSITIONS.get(current, ()):
        if actor in DELIVERY_TRANSITION_PERMISSIONS.get((DeliveryState(current), target), ()):
            return target
    return None


def buyer_visible_tracking(order: "Order") -> dict[str, Any]:
    status = _current(order)
    visible = status in TRACKING_VISIBLE_STATES
    return {
        "can_see_tracking": status != DeliveryState.NOT_STARTED,
        "status": status.value,
        "status_label": delivery_label(status),
        "tracking_id": (order.tracking_id or None) if visible else None,
        "courier_name": (order.courier_name or None) if visible else None,
        "timestamps": {
            "packed": order.packed_at,
            "pickup_scheduled": order.pickup_scheduled_at,
            "in_transit": order.in_transit_at,
            "delivered": order.delivered_at,
        },
    }


def delivery_action_metadata(
    action: str, order: "Order", actor: Actor | str, **extra: Any
) -> dict[str, Any]:
    metadata = {
        "action": action,
        "actor": _name(actor),
        "delivery_status": order.delivery_status,
        "tracking_id": order.tracking_id,
        "timestamp": _utc_now(),
    }
    metadata.update(extra)
    return metadata
