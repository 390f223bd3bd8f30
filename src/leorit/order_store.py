"""JSON-file storage for orders, QC records and order events."""

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .errors import (
    InvalidSchemaVersionError,
    OrderNotFoundError,
    QCRecordNotFoundError,
    QCRecordResolvedError,
    StoreExistsError,
    StoreNotInitializedError,
)
from .models import Order, OrderEvent, QCRecord, StoreData, _utc_now

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Can be overridden via LEORIT_DATA_DIR environment variable
_default_data_dir = Path(__file__).parent.parent.parent / "data"
DATA_DIR = Path(os.environ.get("LEORIT_DATA_DIR", _default_data_dir))
ORDERS_FILE = "orders.json"
LOCK_FILE = ".orders.lock"


class OrderStore:
    """Manages reading and writing the order store file."""

    def __init__(self, data_dir: Path | None = None):
        """
        Initialize OrderStore.

        Args:
            data_dir: Override data directory (for testing).
        """
        self.data_dir = Path(data_dir) if data_dir else DATA_DIR
        self.path = self.data_dir / ORDERS_FILE

    def exists(self) -> bool:
        """Check if the store file exists."""
        return self.path.exists()

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Acquire exclusive lock on the store for read-modify-write operations."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        with open(self.data_dir / LOCK_FILE, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    @contextmanager
    def _mutate(self) -> Iterator[StoreData]:
        """Load under lock, yield for modification, then save."""
        with self._lock():
            data = self.load()
            yield data
            self.save(data)

    @contextmanager
    def transaction(self, order_id: str) -> Iterator[tuple[StoreData, Order]]:
        """
        Lock the store and yield its data together with one of its orders.

        Changes made to either are saved in a single write when the block
        exits cleanly; an exception discards them.

        Raises:
            OrderNotFoundError: If the order doesn't exist or the prefix is ambiguous.
        """
        with self._mutate() as data:
            order = _match(data.orders, order_id, OrderNotFoundError, "orders")
            yield data, order
            order.updated_at = _utc_now()

    def load(self) -> StoreData:
        """
        Load the store from disk.

        Raises:
            StoreNotInitializedError: If the store doesn't exist.
            InvalidSchemaVersionError: If schema version is unsupported.
        """
        if not self.exists():
            raise StoreNotInitializedError(str(self.path))

        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)

        version = raw.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise InvalidSchemaVersionError(version, SCHEMA_VERSION)

        return StoreData.from_dict(raw)

    def save(self, data: StoreData) -> None:
        """
        Save the store to disk atomically.

        Uses write-to-temp-then-rename for atomicity.
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(dir=self.data_dir, prefix=".orders_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data.to_dict(), f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def init(self, force: bool = False) -> StoreData:
        """
        Initialize an empty store.

        Raises:
            StoreExistsError: If the store exists and force=False.
        """
        if self.exists() and not force:
            raise StoreExistsError(str(self.path))

        data = StoreData.create(SCHEMA_VERSION)
        with self._lock():
            self.save(data)
        logger.info("Initialized order store at %s", self.path)
        return data

    # --- Orders ---

    def add_order(self, order: Order, *events: OrderEvent) -> Order:
        """Store a new order, along with any events describing its creation."""
        with self._mutate() as data:
            data.orders.append(order)
            data.events.extend(events)
        return order

    def list_orders(
        self, state: str | None = None, buyer_id: str | None = None
    ) -> list[Order]:
        """List orders, optionally filtered by order state and buyer."""
        orders = self.load().orders
        if state:
            orders = [o for o in orders if o.order_state == state]
        if buyer_id:
            orders = [o for o in orders if o.buyer_id == buyer_id]
        return orders

    def get_order(self, order_id: str) -> Order:
        """
        Get an order by ID (supports partial ID matching).

        Raises:
            OrderNotFoundError: If the order doesn't exist or the prefix is ambiguous.
        """
        return _match(self.load().orders, order_id, OrderNotFoundError, "orders")

    # --- QC records ---

    def list_qc_records(self, order_id: str, stage: str | None = None) -> list[QCRecord]:
        """QC records of an order, oldest first."""
        return qc_records_for(self.load(), order_id, stage)

    def latest_qc_record(self, order_id: str, stage: str) -> QCRecord | None:
        return find_latest_qc_record(self.load(), order_id, stage)

    def get_qc_record(self, record_id: str) -> QCRecord:
        return _match(self.load().qc_records, record_id, QCRecordNotFoundError, "QC records")

    # --- Events ---

    def list_events(self, order_id: str, event_type: str | None = None) -> list[OrderEvent]:
        events = [e for e in self.load().events if e.order_id == order_id]
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events


# --- Operations on loaded store data ---


def qc_records_for(data: StoreData, order_id: str, stage: str | None = None) -> list[QCRecord]:
    records = [r for r in data.qc_records if r.order_id == order_id]
    if stage:
        records = [r for r in records if r.stage == stage]
    return records


def find_latest_qc_record(data: StoreData, order_id: str, stage: str) -> QCRecord | None:
    records = qc_records_for(data, order_id, stage)
    return records[-1] if records else None


def apply_buyer_decision(
    record: QCRecord,
    decision: str,
    reason: str | None = None,
    defect_type: str | None = None,
    defect_severity: str | None = None,
    reviewer_id: str | None = None,
) -> QCRecord:
    if record.resolved:
        raise QCRecordResolvedError(record.id, record.decision)
    record.decision = decision
    record.reason = reason
    record.defect_type = defect_type
    record.defect_severity = defect_severity
    record.reviewer_id = reviewer_id or record.reviewer_id
    record.resolved_at = _utc_now()
    return record


def apply_admin_decision(record: QCRecord, decision: str, notes: str | None = None) -> QCRecord:
    if record.admin_decision != "pending":
        raise QCRecordResolvedError(record.id, f"admin {record.admin_decision}")
    record.admin_decision = decision
    record.admin_notes = notes
    return record


def _match(items, item_id, not_found, kind):
    matches = [item for item in items if item.id.startswith(item_id)]
    if not matches:
        raise not_found(item_id)
    if len(matches) > 1:
        raise not_found(f"{item_id} (ambiguous, matches {len(matches)} {kind})")
    return matches[0]
