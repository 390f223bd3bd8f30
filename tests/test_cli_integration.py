"""Integration tests for CLI."""

import json
import subprocess
import sys
from pathlib import Path

import pytest


def run_leorit(args: list[str], data_dir: Path) -> subprocess.CompletedProcess:
    """Run leorit CLI command against the given data directory."""
    return subprocess.run(
        [sys.executable, "-m", "leorit.cli", "--data-dir", str(data_dir)] + args,
        capture_output=True,
        text=True,
    )


@pytest.fixture
def data_dir(temp_dir):
    return temp_dir / "data"


@pytest.fixture
def initialized(data_dir):
    result = run_leorit(["init"], data_dir)
    assert result.returncode == 0
    return data_dir


def create_merch_order(data_dir: Path) -> str:
    result = run_leorit(
        [
            "create",
            "--buyer", "buyer-1",
            "--purpose", "merch_bulk",
            "--quantity", "40",
            "--product", "hoodie",
            "--fabric", "fleece 320 GSM",
            "--design", "https://files.example/design.png",
            "--csv", "https://files.example/sizes.csv",
            "--total", "20000",
            "--json",
        ],
        data_dir,
    )
    assert result.returncode == 0, result.stderr
    return json.loads(result.stdout)["id"]


class TestCLIIntegration:
    """Integration tests for CLI commands."""

    def test_init_creates_store(self, data_dir):
        result = run_leorit(["init"], data_dir)

        assert result.returncode == 0
        assert "Initialized" in result.stdout
        assert (data_dir / "orders.json").exists()

    def test_init_force_overwrites(self, initialized):
        result = run_leorit(["init"], initialized)
        assert result.returncode == 1
        assert "already exists" in result.stderr

        result = run_leorit(["init", "--force"], initialized)
        assert result.returncode == 0

    def test_commands_require_init(self, data_dir):
        result = run_leorit(["list"], data_dir)
        assert result.returncode == 1
        assert "leorit init" in result.stderr

    def test_create_and_list(self, initialized):
        result = run_leorit(["create", "--buyer", "buyer-1", "--quantity", "5"], initialized)
        assert result.returncode == 0
        assert "Created order:" in result.stdout
        assert "Full ID:" in result.stdout

        result = run_leorit(["list"], initialized)
        assert result.returncode == 0
        assert "Orders (1):" in result.stdout
        assert "Draft" in result.stdout

    def test_list_empty(self, initialized):
        result = run_leorit(["list"], initialized)
        assert "No orders found." in result.stdout

    def test_create_rejects_bad_quantity(self, initialized):
        result = run_leorit(["create", "--buyer", "b1", "--quantity", "0"], initialized)
        assert result.returncode == 1
        assert "quantity" in result.stderr

    def test_show(self, initialized):
        order_id = create_merch_order(initialized)
        result = run_leorit(["show", order_id[:8]], initialized)
        assert result.returncode == 0
        assert "Next states: SUBMITTED" in result.stdout

    def test_show_not_found(self, initialized):
        result = run_leorit(["show", "nonexistent"], initialized)
        assert result.returncode == 1
        assert "not found" in result.stderr

    def test_act_and_events(self, initialized):
        order_id = create_merch_order(initialized)

        result = run_leorit(["act", order_id, "submit"], initialized)
        assert result.returncode == 0
        assert "State: Submitted" in result.stdout

        result = run_leorit(
            ["act", order_id, "assign_manufacturer", "--manufacturer", "mfr-7", "--json"],
            initialized,
        )
        assert result.returncode == 0
        assert json.loads(result.stdout)["manufacturer_id"] == "mfr-7"

        result = run_leorit(["events", order_id, "--json"], initialized)
        events = [e["event_type"] for e in json.loads(result.stdout)]
        assert events == ["order_created", "order_submitted", "manufacturer_assigned"]

    def test_blocked_action(self, initialized):
        order_id = create_merch_order(initialized)
        result = run_leorit(["act", order_id, "start_bulk"], initialized)
        assert result.returncode == 1
        assert "Cannot start bulk" in result.stderr

        result = run_leorit(["show", order_id, "--json"], initialized)
        assert json.loads(result.stdout)["order_state"] == "DRAFT"

    def test_refund_with_reason(self, initialized):
        order_id = create_merch_order(initialized)
        run_leorit(["act", order_id, "hold_payment"], initialized)

        result = run_leorit(
            ["act", order_id, "refund", "--reason", "Buyer cancelled the order", "--json"],
            initialized,
        )
        assert result.returncode == 0
        assert json.loads(result.stdout)["payment_state"] == "PAYMENT_REFUNDED"

    def test_guards(self, initialized):
        order_id = create_merch_order(initialized)
        result = run_leorit(["guards", order_id, "--json"], initialized)
        assert result.returncode == 0
        data = json.loads(result.stdout)
        assert data["submit"]["allowed"] is True
        assert data["start_sample"]["gate"] == "order_state"

    def test_states(self, data_dir):
        result = run_leorit(["states"], data_dir)
        assert result.returncode == 0
        assert "SAMPLE_APPROVED" in result.stdout
        assert "(terminal)" in result.stdout
