"""Pytest fixtures for leorit tests."""

import tempfile
from pathlib import Path

import pytest

from leorit.models import Order
from leorit.order_store import OrderStore
from leorit.workflow import OrderWorkflow


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_dir):
    """An initialized order store in a temporary directory."""
    store = OrderStore(temp_dir / "data")
    store.init()
    return store


@pytest.fixture
def workflow(store):
    return OrderWorkflow(store)


def make_order(**attrs) -> Order:
    """Build an in-memory order snapshot for guard tests."""
    attrs.setdefault("id", "order-1")
    return Order(**attrs)


@pytest.fixture
def order_factory():
    """Factory for in-memory order snapshots."""
    return make_order


MERCH_ORDER = {
    "buyer_purpose": "merch_bulk",
    "quantity": 50,
    "product_type": "t-shirt",
    "fabric_type": "cotton 180 GSM",
    "selected_color": "black",
    "design_size": "A4",
    "design_file_url": "https://files.example/design.png",
    "csv_file_url": "https://files.example/sizes.csv",
    "shipping_address": "12 Mill Road, Tiruppur",
    "total_order_value": 10000,
}


def advance(workflow: OrderWorkflow, order_id: str, until: str) -> Order:
    """
    Drive a sample-then-bulk merch order forward through the workflow.

    Stops after the named step has been applied.
    """
    steps = [
        ("submit", {}),
        ("assign_manufacturer", {"manufacturer_id": "mfr-1"}),
        ("hold_payment", {}),
        ("lock_specs", {}),
        ("start_sample", {}),
        ("upload_sample_qc", {"video_url": "https://files.example/sample.mp4"}),
        ("approve_sample", {}),
        ("unlock_bulk", {}),
        ("start_bulk", {}),
        ("upload_bulk_qc", {"video_url": "https://files.example/bulk.mp4"}),
        ("approve_bulk_qc", {}),
        ("admin_qc_decision", {"stage": "bulk", "decision": "approved"}),
        ("mark_packed", {"packaging_video_url": "https://files.example/pack.mp4"}),
        ("schedule_pickup", {"courier_name": "BlueDart", "tracking_id": "BD123456"}),
        ("mark_in_transit", {}),
        ("mark_delivered", {}),
        ("mark_payment_releasable", {}),
        ("release_payment", {}),
        ("complete", {}),
    ]
    names = [name for name, _ in steps]
    if until not in names:
        raise ValueError(f"unknown step: {until}")

    order = None
    for name, params in steps:
        order = workflow.perform(order_id, name, **params)
        if name == until:
            break
    return order


@pytest.fixture
def merch_order(workflow):
    """A stored DRAFT merch_bulk order with every submission field filled in."""
    return workflow.create_order("buyer-1", **MERCH_ORDER)
