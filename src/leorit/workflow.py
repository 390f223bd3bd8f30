"""
Order workflow service.

Every action re-reads the stored order, runs the relevant guards and only
then persists. A denied action raises TransitionBlockedError (or
FieldLockedError) and leaves the stored order untouched. Each applied action
appends an entry to the order event log.
"""

import inspect
import logging
from typing import Any, Callable

from . import bulk_qc, delivery, execution_gates, payment, sample_qc
from .buyer_purpose import format_validation_errors, parse_buyer_purpose, validate_order_submission
from .errors import FieldLockedError, InvalidOrderDataError, TransitionBlockedError
from .field_locks import LOCKABLE_FIELDS, validate_field_update
from .guard import GuardResult, check_reason
from .models import Order, OrderEvent, QCRecord, StoreData, _utc_now
from .order_mode import OrderMode, can_bulk_production_start, get_order_mode
from .order_state import (
    OrderState,
    check_transition,
    get_state_index,
    validate_bulk_transition_with_csv,
    validate_csv_for_bulk_transition,
)
from .order_store import (
    OrderStore,
    apply_admin_decision,
    apply_buyer_decision,
    find_latest_qc_record,
)
from .payment import Actor, PaymentState, calculate_payment_split

logger = logging.getLogger(__name__)

QC_STAGES = ("sample", "bulk")
ADMIN_DECISIONS = ("approved", "rejected")

# Buyer decisions after which the manufacturer may upload fresh evidence
RESUBMITTABLE_DECISIONS = ("rejected", "revision_requested")

# Editable only while the order is a draft
DRAFT_ONLY_FIELDS = (
    "buyer_purpose",
    "order_mode",
    "design_file_url",
    "back_design_url",
    "total_order_value",
)
# Editable at any stage
OPEN_FIELDS = ("csv_file_url", "corrected_csv_url")
EDITABLE_FIELDS = frozenset(LOCKABLE_FIELDS + DRAFT_ONLY_FIELDS + OPEN_FIELDS)

# Fields frozen once an admin locks the specs
SPEC_FIELDS = frozenset({"quantity", "product_type", "fabric_type", "selected_color", "design_size"})

# Fields that may be given when creating an order
CREATE_FIELDS = EDITABLE_FIELDS | {"order_intent", "shipping_address"}


def first_denied(*results: GuardResult) -> GuardResult:
    """Return the first denied result, or an allowed one."""
    for result in results:
        if not result:
            return result
    return GuardResult.ok()


def _require_new_video(video_url: str | None) -> GuardResult:
    if not video_url:
        return GuardResult.deny(
            "A new QC video is required when re-uploading QC evidence.", gate="qc_video"
        )
    return GuardResult.ok()


def _require_state(order: Order, state: OrderState, verb: str) -> GuardResult:
    if order.order_state != state:
        return GuardResult.deny(
            f"Cannot {verb} from current state: {order.order_state}. Must be in {state.value}.",
            gate="order_state",
        )
    return GuardResult.ok()


# --- Composite checks, one per action ---
#
# These take only the order snapshot (plus the action's own inputs) so they
# can also be evaluated as a preview of what an actor may do next.


def check_submit(order: Order) -> GuardResult:
    result = check_transition(order.order_state, OrderState.SUBMITTED)
    if not result:
        return result
    errors = validate_order_submission(order)
    if errors:
        gate = errors[0].field if len(errors) == 1 else "submission"
        return GuardResult.deny(format_validation_errors(errors), gate=gate)
    return GuardResult.ok()


def check_assign_manufacturer(order: Order) -> GuardResult:
    return check_transition(order.order_state, OrderState.MANUFACTURER_ASSIGNED)


def check_hold_payment(order: Order, actor: Actor | str = Actor.BUYER) -> GuardResult:
    return payment.can_actor_perform_payment_transition(
        order.payment_state, PaymentState.PAYMENT_HELD, actor
    )


def check_lock_specs(order: Order) -> GuardResult:
    if order.specs_locked:
        return GuardResult.deny("Specs are already locked.", gate="specs_locked")
    if not order.order_state or order.order_state == OrderState.DRAFT:
        return GuardResult.deny(
            "Specs can only be locked after the order is submitted.", gate="order_state"
        )
    return GuardResult.ok()


def check_start_sample(order: Order) -> GuardResult:
    return first_denied(
        check_transition(order.order_state, OrderState.SAMPLE_IN_PROGRESS),
        execution_gates.can_start_production(order),
        payment.can_start_sample_production(order),
    )


def check_unlock_bulk(order: Order) -> GuardResult:
    return first_denied(
        sample_qc.can_unlock_bulk(order),
        can_bulk_production_start(order),
        validate_csv_for_bulk_transition(OrderState.BULK_UNLOCKED, order),
    )


def check_start_bulk(order: Order) -> GuardResult:
    return first_denied(
        validate_bulk_transition_with_csv(order, OrderState.BULK_IN_PRODUCTION),
        execution_gates.can_start_production(order),
        payment.can_start_bulk_production_payment(order),
    )


def check_approve_bulk_qc(order: Order) -> GuardResult:
    return first_denied(
        bulk_qc.can_approve_bulk_qc(order),
        bulk_qc.can_transition_to_ready_for_dispatch(order),
    )


def check_mark_packed(order: Order, packaging_video_url: str | None = None) -> GuardResult:
    return first_denied(
        delivery.can_manufacturer_mark_packed(order),
        execution_gates.can_proceed_to_delivery(order),
        delivery.validate_packaging_video_uploaded(order, packaging_video_url),
    )


def check_mark_in_transit(order: Order) -> GuardResult:
    return first_denied(
        delivery.can_admin_mark_in_transit(order),
        check_transition(order.order_state, OrderState.DISPATCHED),
    )


def check_mark_delivered(order: Order) -> GuardResult:
    return first_denied(
        delivery.can_admin_mark_delivered(order),
        check_transition(order.order_state, OrderState.DELIVERED),
    )


def check_complete(order: Order) -> GuardResult:
    result = check_transition(order.order_state, OrderState.COMPLETED)
    if not result:
        return result
    if order.order_state == OrderState.SAMPLE_APPROVED and (
        get_order_mode(order) != OrderMode.SAMPLE_ONLY
    ):
        return GuardResult.deny(
            "Only sample-only orders can be completed after sample approval.",
            gate="order_mode",
        )
    return GuardResult.ok()


def check_mark_payment_releasable(order: Order, actor: Actor | str = Actor.SYSTEM) -> GuardResult:
    return first_denied(
        payment.can_mark_payment_releasable(order),
        payment.can_actor_perform_payment_transition(
            order.payment_state, PaymentState.PAYMENT_RELEASABLE, actor
        ),
    )


def check_release_payment(order: Order, actor: Actor | str = Actor.ADMIN) -> GuardResult:
    result = first_denied(
        payment.can_release_payment(order),
        execution_gates.can_release_payment(order),
    )
    if not result:
        return result
    # From HELD the system marks the escrow releasable on the way through
    return payment.can_actor_perform_payment_transition(
        PaymentState.PAYMENT_RELEASABLE, PaymentState.PAYMENT_RELEASED, actor
    )


def check_refund(order: Order, actor: Actor | str = Actor.ADMIN) -> GuardResult:
    result = payment.can_admin_refund(order)
    if not result:
        return result
    return payment.can_actor_perform_payment_transition(
        order.payment_state, PaymentState.PAYMENT_REFUNDED, actor
    )


def current_qc_stage(order: Order) -> str:
    """QC stage under admin review: bulk once bulk production has started, sample before."""
    if get_state_index(order.order_state) >= get_state_index(OrderState.BULK_IN_PRODUCTION):
        return "bulk"
    return "sample"


def check_qc_stage(order: Order, stage: str) -> GuardResult:
    current = current_qc_stage(order)
    if stage != current:
        return GuardResult.deny(
            f"Order is in the {current} stage; {stage} QC can no longer be reviewed.",
            gate="qc_stage",
        )
    return GuardResult.ok()


PREVIEW_CHECKS: dict[str, Callable[[Order], GuardResult]] = {
    "submit": check_submit,
    "assign_manufacturer": check_assign_manufacturer,
    "hold_payment": check_hold_payment,
    "lock_specs": check_lock_specs,
    "start_sample": check_start_sample,
    "upload_sample_qc": sample_qc.can_upload_sample_qc,
    "approve_sample": sample_qc.can_approve_sample,
    "unlock_bulk": check_unlock_bulk,
    "start_bulk": check_start_bulk,
    "upload_bulk_qc": bulk_qc.can_upload_bulk_qc,
    "approve_bulk_qc": check_approve_bulk_qc,
    "mark_packed": check_mark_packed,
    "schedule_pickup": delivery.can_admin_schedule_pickup,
    "mark_in_transit": check_mark_in_transit,
    "mark_delivered": check_mark_delivered,
    "complete": check_complete,
    "mark_payment_releasable": check_mark_payment_releasable,
    "release_payment": check_release_payment,
    "refund": check_refund,
}


class OrderWorkflow:
    """
    Applies lifecycle actions to stored orders.

    Each action runs inside one store transaction: the order is re-read, the
    guards run and every resulting write (order, QC record, events) is saved
    together under the store lock.
    """

    ACTIONS = (
        "submit",
        "assign_manufacturer",
        "hold_payment",
        "lock_specs",
        "start_sample",
        "upload_sample_qc",
        "approve_sample",
        "reject_sample",
        "request_sample_revision",
        "unlock_bulk",
        "start_bulk",
        "upload_bulk_qc",
        "approve_bulk_qc",
        "reject_bulk_qc",
        "admin_qc_decision",
        "mark_packed",
        "schedule_pickup",
        "mark_in_transit",
        "mark_delivered",
        "complete",
        "mark_payment_releasable",
        "release_payment",
        "refund",
    )

    def __init__(self, store: OrderStore):
        self.store = store

    # --- Helpers ---

    def _require(self, order: Order, action: str, result: GuardResult) -> None:
        if not result:
            logger.warning(
                "Blocked %s on order %s (%s): %s", action, order.id, result.gate, result.reason
            )
            raise TransitionBlockedError(action.replace("_", " "), result.reason or "", result.gate)

    def _commit(
        self,
        data: StoreData,
        order: Order,
        event_type: str,
        from_state: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Order:
        event_metadata = dict(metadata or {})
        moved = from_state is not None and from_state != order.order_state
        if moved:
            event_metadata.update({"from_state": from_state, "to_state": order.order_state})
        data.events.append(OrderEvent.create(order.id, event_type, event_metadata or None))
        if moved:
            logger.info("Order %s: %s -> %s", order.id, from_state, order.order_state)
        else:
            logger.info("Order %s: %s", order.id, event_type)
        return order

    def _pending_qc_record(
        self, data: StoreData, order: Order, stage: str, action: str
    ) -> QCRecord:
        record = find_latest_qc_record(data, order.id, stage)
        if record is None:
            self._require(
                order,
                action,
                GuardResult.deny(f"No {stage} QC submission found for this order.", gate="qc_record"),
            )
        return record

    def _check_resubmission(self, data: StoreData, order: Order, stage: str) -> GuardResult:
        record = find_latest_qc_record(data, order.id, stage)
        if record is not None and record.decision in RESUBMITTABLE_DECISIONS:
            return GuardResult.ok()
        return GuardResult.deny(
            f"{stage.capitalize()} QC is already uploaded and awaiting review.", gate="qc_record"
        )

    # --- Draft ---

    def create_order(self, buyer_id: str, **attrs: Any) -> Order:
        """
        Create a DRAFT order.

        Raises:
            InvalidOrderDataError: If a field is unknown or has an invalid value.
        """
        if not buyer_id:
            raise InvalidOrderDataError("buyer_id is required")
        unknown = sorted(set(attrs) - CREATE_FIELDS)
        if unknown:
            raise InvalidOrderDataError(f"Unknown or read-only fields: {', '.join(unknown)}")
        attrs = {k: v for k, v in attrs.items() if v is not None}
        for name, value in attrs.items():
            _validate_value(name, value)

        order = Order.create(buyer_id, **attrs)
        if order.total_order_value is not None:
            order.upfront_payable_amount = calculate_payment_split(order.total_order_value)[
                "upfront_amount"
            ]

        self.store.add_order(
            order,
            OrderEvent.create(
                order.id,
                "order_created",
                {"buyer_id": buyer_id, "buyer_purpose": order.buyer_purpose},
            ),
        )
        logger.info("Order %s created for buyer %s", order.id, buyer_id)
        return order

    def update_fields(self, order_id: str, changes: dict[str, Any]) -> Order:
        """
        Update editable order fields.

        Raises:
            InvalidOrderDataError: If a field is not editable or a value is invalid.
            FieldLockedError: If a field is read-only at the order's state.
        """
        unknown = sorted(set(changes) - EDITABLE_FIELDS)
        if unknown:
            raise InvalidOrderDataError(f"Fields cannot be edited: {', '.join(unknown)}")

        with self.store.transaction(order_id) as (data, order):
            for name, value in changes.items():
                result = validate_field_update(name, order.order_state)
                if not result:
                    raise FieldLockedError(name, result.reason or "")
                if name in DRAFT_ONLY_FIELDS and order.order_state != OrderState.DRAFT:
                    raise FieldLockedError(
                        name, f"{name} can only be changed while the order is a draft."
                    )
                if name in SPEC_FIELDS and order.specs_locked:
                    raise FieldLockedError(name, "Specifications have been locked by admin.")
                if value is not None:
                    _validate_value(name, value)

            for name, value in changes.items():
                setattr(order, name, value)
            if "total_order_value" in changes:
                total = order.total_order_value
                order.upfront_payable_amount = (
                    calculate_payment_split(total)["upfront_amount"] if total is not None else None
                )
            return self._commit(data, order, "order_updated", metadata={"fields": sorted(changes)})

    def submit(self, order_id: str) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "submit", check_submit(order))

            from_state = order.order_state
            order.order_state = OrderState.SUBMITTED.value
            order.submitted_at = _utc_now()
            # The mode is fixed at submission, when quantity locks
            order.order_mode = get_order_mode(order).value
            return self._commit(data, order, "order_submitted", from_state)

    def assign_manufacturer(self, order_id: str, manufacturer_id: str | None = None) -> Order:
        if not manufacturer_id:
            raise InvalidOrderDataError("manufacturer_id is required")
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "assign_manufacturer", check_assign_manufacturer(order))

            from_state = order.order_state
            order.order_state = OrderState.MANUFACTURER_ASSIGNED.value
            order.manufacturer_id = manufacturer_id
            order.assigned_at = _utc_now()
            return self._commit(
                data, order, "manufacturer_assigned", from_state, {"manufacturer_id": manufacturer_id}
            )

    # --- Payment ---

    def hold_payment(
        self, order_id: str, amount: float | None = None, actor: str = Actor.BUYER.value
    ) -> Order:
        """
        Capture the payment into (simulated) escrow.

        Without an explicit amount the upfront payable amount is held, or the
        full order value when no split has been computed.
        """
        if amount is not None and (isinstance(amount, bool) or amount < 0):
            raise InvalidOrderDataError("amount must be a non-negative number")
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "hold_payment", check_hold_payment(order, actor))

            if amount is None:
                amount = (
                    order.upfront_payable_amount
                    if order.upfront_payable_amount is not None
                    else order.total_order_value
                )
            order.payment_state = PaymentState.PAYMENT_HELD.value
            order.escrow_amount = amount
            order.escrow_locked_timestamp = _utc_now()
            return self._commit(
                data,
                order,
                "payment_held",
                metadata=payment.payment_action_metadata("payment_held", order, actor),
            )

    def mark_payment_releasable(self, order_id: str, actor: str = Actor.SYSTEM.value) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(
                order, "mark_payment_releasable", check_mark_payment_releasable(order, actor)
            )

            order.payment_state = PaymentState.PAYMENT_RELEASABLE.value
            return self._commit(
                data,
                order,
                "payment_releasable",
                metadata=payment.payment_action_metadata("payment_releasable", order, actor),
            )

    def release_payment(self, order_id: str, actor: str = Actor.ADMIN.value) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "release_payment", check_release_payment(order, actor))

            if order.payment_state == PaymentState.PAYMENT_HELD:
                order.payment_state = PaymentState.PAYMENT_RELEASABLE.value
                data.events.append(
                    OrderEvent.create(
                        order.id,
                        "payment_releasable",
                        payment.payment_action_metadata("payment_releasable", order, Actor.SYSTEM),
                    )
                )
            order.payment_state = PaymentState.PAYMENT_RELEASED.value
            order.escrow_released_timestamp = _utc_now()
            return self._commit(
                data,
                order,
                "payment_released",
                metadata=payment.payment_action_metadata("payment_released", order, actor),
            )

    def refund(
        self, order_id: str, reason: str | None = None, actor: str = Actor.ADMIN.value
    ) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(
                order,
                "refund",
                first_denied(
                    check_refund(order, actor),
                    check_reason(
                        reason,
                        "Refund reason is mandatory.",
                        "Please provide a more detailed refund reason (minimum 10 characters).",
                    ),
                ),
            )

            previous = order.payment_state
            order.payment_state = PaymentState.PAYMENT_REFUNDED.value
            order.refunded_at = _utc_now()
            return self._commit(
                data,
                order,
                "payment_refunded",
                metadata=payment.payment_action_metadata(
                    "payment_refunded", order, actor, reason=reason.strip(), previous_state=previous
                ),
            )

    # --- Sample stage ---

    def lock_specs(self, order_id: str) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "lock_specs", check_lock_specs(order))

            order.specs_locked = True
            return self._commit(data, order, "specs_locked")

    def start_sample(self, order_id: str) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "start_sample", check_start_sample(order))

            from_state = order.order_state
            order.order_state = OrderState.SAMPLE_IN_PROGRESS.value
            order.sample_production_started_at = _utc_now()
            return self._commit(data, order, "sample_production_started", from_state)

    def upload_sample_qc(
        self,
        order_id: str,
        video_url: str | None = None,
        file_urls: list[str] | None = None,
        notes: str | None = None,
    ) -> Order:
        """
        Upload sample QC evidence.

        After a rejection or revision request the manufacturer uploads again
        while the order stays at SAMPLE_QC_UPLOADED.
        """
        with self.store.transaction(order_id) as (data, order):
            resubmission = order.order_state == OrderState.SAMPLE_QC_UPLOADED
            if resubmission:
                result = first_denied(
                    self._check_resubmission(data, order, "sample"), _require_new_video(video_url)
                )
            else:
                result = first_denied(
                    sample_qc.can_upload_sample_qc(order),
                    sample_qc.validate_qc_video_uploaded(order, video_url),
                )
            self._require(order, "upload_sample_qc", result)

            from_state = order.order_state
            order.order_state = OrderState.SAMPLE_QC_UPLOADED.value
            order.sample_qc_video_url = video_url
            order.qc_files = list(file_urls or [])
            order.sample_qc_uploaded_at = _utc_now()
            order.admin_qc_approved = False
            record = QCRecord.create(order.id, "sample", [video_url, *order.qc_files], notes)
            data.qc_records.append(record)
            action = "sample_qc_reuploaded" if resubmission else "sample_qc_uploaded"
            return self._commit(
                data,
                order,
                action,
                from_state,
                sample_qc.qc_action_metadata(action, order, qc_record_id=record.id),
            )

    def approve_sample(self, order_id: str, reviewer_id: str | None = None) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "approve_sample", sample_qc.can_approve_sample(order))
            record = self._pending_qc_record(data, order, "sample", "approve_sample")
            apply_buyer_decision(record, "approved", reviewer_id=reviewer_id)

            from_state = order.order_state
            order.order_state = OrderState.SAMPLE_APPROVED.value
            order.sample_approved_at = _utc_now()
            return self._commit(
                data,
                order,
                "sample_approved",
                from_state,
                sample_qc.qc_action_metadata("sample_approved", order, qc_record_id=record.id),
            )

    def reject_sample(
        self,
        order_id: str,
        reason: str | None = None,
        defect_type: str | None = None,
        defect_severity: str | None = None,
        reviewer_id: str | None = None,
    ) -> Order:
        return self._decide_sample(
            order_id, "rejected", reason, defect_type, defect_severity, reviewer_id
        )

    def request_sample_revision(
        self,
        order_id: str,
        reason: str | None = None,
        defect_type: str | None = None,
        defect_severity: str | None = None,
        reviewer_id: str | None = None,
    ) -> Order:
        return self._decide_sample(
            order_id, "revision_requested", reason, defect_type, defect_severity, reviewer_id
        )

    def _decide_sample(
        self,
        order_id: str,
        decision: str,
        reason: str | None,
        defect_type: str | None,
        defect_severity: str | None,
        reviewer_id: str | None,
    ) -> Order:
        with self.store.transaction(order_id) as (data, order):
            if decision == "rejected":
                action, guard = "reject_sample", sample_qc.can_reject_sample(order, reason)
            else:
                action, guard = "request_sample_revision", sample_qc.can_request_revision(
                    order, reason
                )
            self._require(
                order,
                action,
                first_denied(
                    _require_state(order, OrderState.SAMPLE_QC_UPLOADED, action.replace("_", " ")),
                    guard,
                ),
            )
            record = self._pending_qc_record(data, order, "sample", action)
            apply_buyer_decision(
                record,
                decision,
                reason=reason.strip(),
                defect_type=defect_type,
                defect_severity=defect_severity,
                reviewer_id=reviewer_id,
            )

            event_type = "sample_rejected" if decision == "rejected" else "sample_revision_requested"
            return self._commit(
                data,
                order,
                event_type,
                metadata=sample_qc.qc_action_metadata(
                    event_type, order, qc_record_id=record.id, reason=reason.strip()
                ),
            )

    # --- Bulk stage ---

    def unlock_bulk(self, order_id: str) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "unlock_bulk", check_unlock_bulk(order))

            from_state = order.order_state
            order.order_state = OrderState.BULK_UNLOCKED.value
            return self._commit(data, order, "bulk_unlocked", from_state)

    def start_bulk(self, order_id: str) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "start_bulk", check_start_bulk(order))

            from_state = order.order_state
            order.order_state = OrderState.BULK_IN_PRODUCTION.value
            order.bulk_production_started_at = _utc_now()
            return self._commit(data, order, "bulk_production_started", from_state)

    def upload_bulk_qc(
        self,
        order_id: str,
        video_url: str | None = None,
        file_urls: list[str] | None = None,
        notes: str | None = None,
    ) -> Order:
        with self.store.transaction(order_id) as (data, order):
            resubmission = order.order_state == OrderState.BULK_QC_UPLOADED
            if resubmission:
                result = first_denied(
                    self._check_resubmission(data, order, "bulk"), _require_new_video(video_url)
                )
            else:
                result = first_denied(
                    bulk_qc.can_upload_bulk_qc(order),
                    bulk_qc.validate_bulk_qc_video_uploaded(order, video_url),
                )
            self._require(order, "upload_bulk_qc", result)

            from_state = order.order_state
            order.order_state = OrderState.BULK_QC_UPLOADED.value
            order.bulk_qc_video_url = video_url
            order.bulk_qc_uploaded_at = _utc_now()
            # Sample-stage admin approval does not carry over to the bulk evidence
            order.admin_qc_approved = False
            order.admin_qc_approved_at = None
            record = QCRecord.create(order.id, "bulk", [video_url, *(file_urls or [])], notes)
            data.qc_records.append(record)
            action = "bulk_qc_reuploaded" if resubmission else "bulk_qc_uploaded"
            return self._commit(
                data,
                order,
                action,
                from_state,
                bulk_qc.bulk_qc_action_metadata(action, order, qc_record_id=record.id),
            )

    def approve_bulk_qc(self, order_id: str, reviewer_id: str | None = None) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "approve_bulk_qc", check_approve_bulk_qc(order))
            record = self._pending_qc_record(data, order, "bulk", "approve_bulk_qc")
            apply_buyer_decision(record, "approved", reviewer_id=reviewer_id)

            from_state = order.order_state
            order.order_state = OrderState.READY_FOR_DISPATCH.value
            order.bulk_qc_approved_at = _utc_now()
            return self._commit(
                data,
                order,
                "bulk_qc_approved",
                from_state,
                bulk_qc.bulk_qc_action_metadata("bulk_qc_approved", order, qc_record_id=record.id),
            )

    def reject_bulk_qc(
        self,
        order_id: str,
        reason: str | None = None,
        defect_type: str | None = None,
        defect_severity: str | None = None,
        reviewer_id: str | None = None,
    ) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "reject_bulk_qc", bulk_qc.can_reject_bulk_qc(order, reason))
            record = self._pending_qc_record(data, order, "bulk", "reject_bulk_qc")
            apply_buyer_decision(
                record,
                "rejected",
                reason=reason.strip(),
                defect_type=defect_type,
                defect_severity=defect_severity,
                reviewer_id=reviewer_id,
            )
            return self._commit(
                data,
                order,
                "bulk_qc_rejected",
                metadata=bulk_qc.bulk_qc_action_metadata(
                    "bulk_qc_rejected", order, qc_record_id=record.id, reason=reason.strip()
                ),
            )

    def admin_qc_decision(
        self,
        order_id: str,
        stage: str | None = None,
        decision: str | None = None,
        notes: str | None = None,
    ) -> Order:
        """
        Record the admin review of the latest QC submission for the order's current stage.

        The stage follows the order state (bulk from BULK_IN_PRODUCTION
        onwards); an explicit stage must match it. Approval sets the order's
        admin QC flag used by the delivery and payment gates; rejection clears
        it and needs notes.
        """
        if stage is not None and stage not in QC_STAGES:
            raise InvalidOrderDataError(f"stage must be one of: {', '.join(QC_STAGES)}")
        if decision not in ADMIN_DECISIONS:
            raise InvalidOrderDataError(f"decision must be one of: {', '.join(ADMIN_DECISIONS)}")

        with self.store.transaction(order_id) as (data, order):
            stage = stage or current_qc_stage(order)
            self._require(order, "admin_qc_decision", check_qc_stage(order, stage))
            if decision == "rejected":
                self._require(
                    order,
                    "admin_qc_decision",
                    check_reason(
                        notes,
                        "Notes are mandatory when rejecting QC.",
                        "Please provide more detailed notes (minimum 10 characters).",
                    ),
                )
            record = self._pending_qc_record(data, order, stage, "admin_qc_decision")
            apply_admin_decision(record, decision, notes)

            order.admin_qc_approved = decision == "approved"
            order.admin_qc_approved_at = _utc_now() if order.admin_qc_approved else None
            return self._commit(
                data,
                order,
                f"admin_qc_{decision}",
                metadata={"stage": stage, "qc_record_id": record.id, "notes": notes},
            )

    # --- Delivery ---

    def mark_packed(self, order_id: str, packaging_video_url: str | None = None) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "mark_packed", check_mark_packed(order, packaging_video_url))

            order.delivery_status = delivery.DeliveryState.PACKED.value
            order.packaging_video_url = packaging_video_url or order.packaging_video_url
            order.packed_at = _utc_now()
            return self._commit(
                data,
                order,
                "order_packed",
                metadata=delivery.delivery_action_metadata("order_packed", order, Actor.MANUFACTURER),
            )

    def schedule_pickup(
        self, order_id: str, courier_name: str | None = None, tracking_id: str | None = None
    ) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(
                order,
                "schedule_pickup",
                delivery.can_admin_schedule_pickup(order, courier_name, tracking_id),
            )

            order.delivery_status = delivery.DeliveryState.PICKUP_SCHEDULED.value
            order.courier_name = courier_name or order.courier_name
            order.tracking_id = tracking_id or order.tracking_id
            order.pickup_scheduled_at = _utc_now()
            return self._commit(
                data,
                order,
                "pickup_scheduled",
                metadata=delivery.delivery_action_metadata(
                    "pickup_scheduled", order, Actor.ADMIN, courier_name=order.courier_name
                ),
            )

    def mark_in_transit(self, order_id: str) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "mark_in_transit", check_mark_in_transit(order))

            from_state = order.order_state
            now = _utc_now()
            order.delivery_status = delivery.DeliveryState.IN_TRANSIT.value
            order.in_transit_at = now
            order.order_state = OrderState.DISPATCHED.value
            order.dispatched_at = now
            return self._commit(
                data,
                order,
                "in_transit",
                from_state,
                delivery.delivery_action_metadata("in_transit", order, Actor.ADMIN),
            )

    def mark_delivered(self, order_id: str) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "mark_delivered", check_mark_delivered(order))

            from_state = order.order_state
            order.delivery_status = delivery.DeliveryState.DELIVERED.value
            order.delivered_at = _utc_now()
            order.order_state = OrderState.DELIVERED.value
            return self._commit(
                data,
                order,
                "delivered",
                from_state,
                delivery.delivery_action_metadata("delivered", order, Actor.ADMIN),
            )

    def complete(self, order_id: str) -> Order:
        with self.store.transaction(order_id) as (data, order):
            self._require(order, "complete", check_complete(order))

            from_state = order.order_state
            order.order_state = OrderState.COMPLETED.value
            order.completed_at = _utc_now()
            return self._commit(data, order, "order_completed", from_state)

    # --- Dispatch by name ---

    def perform(self, order_id: str, action: str, **params: Any) -> Order:
        """
        Run an action by name, passing only the parameters it accepts.

        Raises:
            InvalidOrderDataError: If the action is unknown.
        """
        if action not in self.ACTIONS:
            raise InvalidOrderDataError(f"Unknown action: {action}")
        method = getattr(self, action)
        accepted = inspect.signature(method).parameters
        kwargs = {k: v for k, v in params.items() if k in accepted and v is not None}
        return method(order_id, **kwargs)

    def preview(self, order_id: str) -> dict[str, GuardResult]:
        """Evaluate each action's guards against the stored order without applying anything."""
        order = self.store.get_order(order_id)
        return {name: check(order) for name, check in PREVIEW_CHECKS.items()}


def _validate_value(name: str, value: Any) -> None:
    if name == "quantity":
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidOrderDataError("quantity must be a positive integer")
    elif name == "total_order_value":
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise InvalidOrderDataError("total_order_value must be a non-negative number")
    elif name == "buyer_purpose":
        if parse_buyer_purpose(value) is None:
            raise InvalidOrderDataError(f"Unknown buyer purpose: {value}")
    elif name in ("order_mode", "order_intent"):
        try:
            OrderMode(value)
        except ValueError:
            raise InvalidOrderDataError(f"Unknown order mode: {value}") from None
