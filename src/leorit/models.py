"""Data models for leorit."""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any
import uuid


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _generate_id() -> str:
    """Generate a new record ID."""
    return str(uuid.uuid4())


def _known(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class Order:
    """
    Snapshot of an order row.

    State fields hold the raw string values of OrderState, PaymentState and
    DeliveryState so that snapshots round-trip through JSON unchanged.
    """

    id: str
    buyer_id: str | None = None
    manufacturer_id: str | None = None

    order_state: str | None = "DRAFT"
    payment_state: str | None = "PAYMENT_INITIATED"
    delivery_status: str | None = "NOT_STARTED"

    order_mode: str | None = None
    order_intent: str | None = None
    buyer_purpose: str | None = None

    # Specs
    quantity: int = 1
    product_type: str | None = None
    fabric_type: str | None = None
    selected_color: str | None = None
    design_size: str | None = None
    buyer_notes: str | None = None
    shipping_address: str | None = None
    design_file_url: str | None = None
    back_design_url: str | None = None
    csv_file_url: str | None = None
    corrected_csv_url: str | None = None
    specs_locked: bool = False

    # Money
    total_order_value: int | None = None
    upfront_payable_amount: int | None = None
    escrow_amount: int | None = None

    # QC evidence
    sample_qc_video_url: str | None = None
    qc_files: list[str] = field(default_factory=list)
    bulk_qc_video_url: str | None = None
    admin_qc_approved: bool = False

    # Delivery
    packaging_video_url: str | None = None
    courier_name: str | None = None
    tracking_id: str | None = None

    # Lifecycle timestamps
    submitted_at: str | None = None
    assigned_at: str | None = None
    sample_production_started_at: str | None = None
    sample_qc_uploaded_at: str | None = None
    sample_approved_at: str | None = None
    bulk_production_started_at: str | None = None
    bulk_qc_uploaded_at: str | None = None
    bulk_qc_approved_at: str | None = None
    admin_qc_approved_at: str | None = None
    escrow_locked_timestamp: str | None = None
    escrow_released_timestamp: str | None = None
    refunded_at: str | None = None
    packed_at: str | None = None
    pickup_scheduled_at: str | None = None
    in_transit_at: str | None = None
    dispatched_at: str | None = None
    delivered_at: str | None = None
    completed_at: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(**_known(cls, data))

    @classmethod
    def create(cls, buyer_id: str, **attrs: Any) -> "Order":
        """Create a new DRAFT order with generated ID and timestamps."""
        now = _utc_now()
        reserved = {"id", "buyer_id", "created_at", "updated_at"}
        extra = {k: v for k, v in _known(cls, attrs).items() if k not in reserved}
        return cls(
            id=_generate_id(),
            buyer_id=buyer_id,
            created_at=now,
            updated_at=now,
            **extra,
        )


@dataclass
class QCRecord:
    """A QC submission for one stage of an order, and the decision on it."""

    id: str
    order_id: str
    stage: str  # "sample" | "bulk"
    file_urls: list[str] = field(default_factory=list)
    notes: str | None = None
    decision: str = "pending"  # pending|approved|rejected|revision_requested
    reason: str | None = None
    defect_type: str | None = None
    defect_severity: str | None = None
    reviewer_id: str | None = None
    admin_decision: str = "pending"  # pending|approved|rejected
    admin_notes: str | None = None
    created_at: str = field(default_factory=_utc_now)
    resolved_at: str | None = None

    @property
    def resolved(self) -> bool:
        return self.resolved_at is not None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QCRecord":
        return cls(**_known(cls, data))

    @classmethod
    def create(
        cls,
        order_id: str,
        stage: str,
        file_urls: list[str],
        notes: str | None = None,
        reviewer_id: str | None = None,
    ) -> "QCRecord":
        return cls(
            id=_generate_id(),
            order_id=order_id,
            stage=stage,
            file_urls=list(file_urls),
            notes=notes,
            reviewer_id=reviewer_id,
        )


@dataclass
class OrderEvent:
    """An entry in the append-only order audit log."""

    id: str
    order_id: str
    event_type: str
    event_timestamp: str
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "order_id": self.order_id,
            "event_type": self.event_type,
            "event_timestamp": self.event_timestamp,
        }
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderEvent":
        return cls(
            id=data["id"],
            order_id=data["order_id"],
            event_type=data["event_type"],
            event_timestamp=data.get("event_timestamp", ""),
            metadata=data.get("metadata"),
        )

    @classmethod
    def create(
        cls, order_id: str, event_type: str, metadata: dict[str, Any] | None = None
    ) -> "OrderEvent":
        return cls(
            id=_generate_id(),
            order_id=order_id,
            event_type=event_type,
            event_timestamp=_utc_now(),
            metadata=metadata,
        )


@dataclass
class StoreData:
    """Complete on-disk contents of an order store."""

    schema_version: int
    created_at: str
    orders: list[Order] = field(default_factory=list)
    qc_records: list[QCRecord] = field(default_factory=list)
    events: list[OrderEvent] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "created_at": self.created_at,
            "orders": [o.to_dict() for o in self.orders],
            "qc_records": [q.to_dict() for q in self.qc_records],
            "events": [e.to_dict() for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoreData":
        return cls(
            schema_version=data.get("schema_version", 0),
            created_at=data.get("created_at", ""),
            orders=[Order.from_dict(o) for o in data.get("orders", [])],
            qc_records=[QCRecord.from_dict(q) for q in data.get("qc_records", [])],
            events=[OrderEvent.from_dict(e) for e in data.get("events", [])],
        )

    @classmethod
    def create(cls, schema_version: int) -> "StoreData":
        return cls(schema_version=schema_version, created_at=_utc_now())
