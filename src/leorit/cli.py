"""Command-line interface for leorit."""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from . import __version__, order_store
from .delivery import delivery_label
from .errors import LeoritError
from .field_locks import get_locked_fields
from .models import Order
from .order_state import ORDER_STATES, get_state_progress, get_valid_next_states, state_label
from .order_store import OrderStore
from .payment import payment_label
from .workflow import OrderWorkflow


def get_store(args: argparse.Namespace) -> OrderStore:
    """Get the OrderStore for the data directory given on the command line (if any)."""
    data_dir = getattr(args, "data_dir", None)
    return OrderStore(Path(data_dir) if data_dir else None)


def format_order(order: Order, verbose: bool = False) -> str:
    """Format an order for display."""
    label = f" [{order.buyer_purpose}]" if order.buyer_purpose else ""
    result = (
        f"{order.id[:8]}  {state_label(order.order_state)}{label}  "
        f"qty={order.quantity}  payment={payment_label(order.payment_state)}"
    )
    if verbose:
        result += f"\n         Buyer: {order.buyer_id}"
        if order.manufacturer_id:
            result += f"\n         Manufacturer: {order.manufacturer_id}"
        result += f"\n         Delivery: {delivery_label(order.delivery_status)}"
        result += f"\n         Progress: {get_state_progress(order.order_state)}%"
    return result


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize the order store."""
    try:
        store = get_store(args)
        store.init(force=args.force)
        print(f"Initialized order store at {store.path}")
        return 0

    except LeoritError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_create(args: argparse.Namespace) -> int:
    """Create a draft order."""
    try:
        workflow = OrderWorkflow(get_store(args))
        attrs = {
            "buyer_purpose": args.purpose,
            "order_mode": args.mode,
            "quantity": args.quantity,
            "product_type": args.product,
            "fabric_type": args.fabric,
            "selected_color": args.color,
            "design_size": args.size,
            "design_file_url": args.design,
            "csv_file_url": args.csv,
            "shipping_address": args.address,
            "buyer_notes": args.notes,
            "total_order_value": args.total,
        }
        order = workflow.create_order(args.buyer, **attrs)

        if args.json:
            print(json.dumps(order.to_dict(), indent=2))
        else:
            print(f"Created order: {order.id[:8]}")
            print(f"  Full ID: {order.id}")
            print(f"  State: {state_label(order.order_state)}")
        return 0

    except LeoritError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_list(args: argparse.Namespace) -> int:
    """List orders."""
    try:
        orders = get_store(args).list_orders(state=args.state, buyer_id=args.buyer)

        if not orders:
            print("No orders found.")
            return 0

        if args.json:
            print(json.dumps([o.to_dict() for o in orders], indent=2))
        else:
            print(f"Orders ({len(orders)}):")
            print()
            for order in orders:
                print(format_order(order, verbose=args.verbose))
        return 0

    except LeoritError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_show(args: argparse.Namespace) -> int:
    """Show a single order."""
    try:
        order = get_store(args).get_order(args.order_id)

        if args.json:
            print(json.dumps(order.to_dict(), indent=2))
            return 0

        print(format_order(order, verbose=True))
        next_states = ", ".join(s.value for s in get_valid_next_states(order.order_state))
        print(f"         Next states: {next_states or 'none'}")
        locked = get_locked_fields(order.order_state)
        if locked:
            print("         Locked fields:")
            for field in locked:
                print(f"           - {field['label']}")
        return 0

    except LeoritError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_act(args: argparse.Namespace) -> int:
    """Apply a lifecycle action to an order."""
    try:
        workflow = OrderWorkflow(get_store(args))
        params = {
            "manufacturer_id": args.manufacturer,
            "amount": args.amount,
            "actor": args.actor,
            "video_url": args.video,
            "file_urls": args.file,
            "notes": args.notes,
            "reason": args.reason,
            "defect_type": args.defect_type,
            "defect_severity": args.defect_severity,
            "reviewer_id": args.reviewer,
            "stage": args.stage,
            "decision": args.decision,
            "packaging_video_url": args.packaging_video,
            "courier_name": args.courier,
            "tracking_id": args.tracking,
        }
        order = workflow.perform(args.order_id, args.action, **params)

        if args.json:
            print(json.dumps(order.to_dict(), indent=2))
        else:
            print(f"Applied {args.action} to order {order.id[:8]}")
            print(f"  State: {state_label(order.order_state)}")
            print(f"  Payment: {payment_label(order.payment_state)}")
            print(f"  Delivery: {delivery_label(order.delivery_status)}")
        return 0

    except LeoritError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_guards(args: argparse.Namespace) -> int:
    """Show which actions are currently allowed for an order."""
    try:
        workflow = OrderWorkflow(get_store(args))
        results = workflow.preview(args.order_id)

        if args.json:
            print(json.dumps({name: r.to_dict() for name, r in results.items()}, indent=2))
            return 0

        for name, result in results.items():
            mark = "ok " if result.allowed else "-- "
            line = f"{mark} {name}"
            if not result.allowed:
                line += f": {result.reason}"
            print(line)
        return 0

    except LeoritError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_events(args: argparse.Namespace) -> int:
    """Show the event log of an order."""
    try:
        store = get_store(args)
        order = store.get_order(args.order_id)
        events = store.list_events(order.id)

        if args.json:
            print(json.dumps([e.to_dict() for e in events], indent=2))
            return 0

        if not events:
            print("No events found.")
            return 0
        for event in events:
            print(f"{event.event_timestamp}  {event.event_type}")
        return 0

    except LeoritError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_states(args: argparse.Namespace) -> int:
    """List the order states and their allowed successors."""
    if args.json:
        data = [
            {"state": s.value, "next": [n.value for n in get_valid_next_states(s)]}
            for s in ORDER_STATES
        ]
        print(json.dumps(data, indent=2))
        return 0

    for state in ORDER_STATES:
        next_states = ", ".join(n.value for n in get_valid_next_states(state)) or "(terminal)"
        print(f"{state.value:<22} -> {next_states}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        # API stores read the module default
        if args.data_dir:
            os.environ["LEORIT_DATA_DIR"] = args.data_dir
            order_store.DATA_DIR = Path(args.data_dir)

        store = get_store(args)
        if not store.exists():
            print("Warning: order store not initialized. Run 'leorit init' first.", file=sys.stderr)
            print("Starting server anyway...", file=sys.stderr)

        print("Starting leorit API server...")
        print(f"Data: {store.path}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "leorit.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,  # Single worker to avoid concurrent write issues
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="leorit",
        description="Manage custom-apparel orders through sample, QC, bulk, delivery and escrow.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--data-dir", help="Order store directory (default: $LEORIT_DATA_DIR or ./data)"
    )
    parser.add_argument(
        "--log-level", default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init
    init_parser = subparsers.add_parser("init", help="Initialize the order store")
    init_parser.add_argument(
        "--force", "-f", action="store_true", help="Overwrite existing store"
    )

    # create
    create_cmd = subparsers.add_parser("create", help="Create a draft order")
    create_cmd.add_argument("--buyer", required=True, help="Buyer ID")
    create_cmd.add_argument(
        "--purpose", choices=["merch_bulk", "blank_apparel", "fabric_only"], help="Buyer purpose"
    )
    create_cmd.add_argument(
        "--mode", choices=["sample_only", "sample_then_bulk", "direct_bulk"], help="Order mode"
    )
    create_cmd.add_argument("--quantity", "-q", type=int, default=1, help="Quantity (default: 1)")
    create_cmd.add_argument("--product", help="Product type (e.g. t-shirt, hoodie)")
    create_cmd.add_argument("--fabric", help="Fabric/GSM")
    create_cmd.add_argument("--color", help="Color")
    create_cmd.add_argument("--size", help="Design size")
    create_cmd.add_argument("--design", help="Design file URL")
    create_cmd.add_argument("--csv", help="CSV file URL with sizes/names")
    create_cmd.add_argument("--address", help="Shipping address")
    create_cmd.add_argument("--notes", help="Buyer notes")
    create_cmd.add_argument("--total", type=int, help="Total order value")
    create_cmd.add_argument("--json", action="store_true", help="Output as JSON")

    # list
    list_parser = subparsers.add_parser("list", help="List orders")
    list_parser.add_argument("--state", help="Filter by order state")
    list_parser.add_argument("--buyer", help="Filter by buyer ID")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    list_parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show buyer, manufacturer and delivery"
    )

    # show
    show_parser = subparsers.add_parser("show", help="Show an order")
    show_parser.add_argument("order_id", help="Order ID (or prefix)")
    show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # act
    act_parser = subparsers.add_parser("act", help="Apply a lifecycle action to an order")
    act_parser.add_argument("order_id", help="Order ID (or prefix)")
    act_parser.add_argument("action", choices=OrderWorkflow.ACTIONS, help="Action to apply")
    act_parser.add_argument("--manufacturer", help="Manufacturer ID (assign_manufacturer)")
    act_parser.add_argument("--amount", type=int, help="Escrow amount (hold_payment)")
    act_parser.add_argument(
        "--actor", choices=["system", "admin", "buyer", "manufacturer"],
        help="Acting role for payment actions",
    )
    act_parser.add_argument("--video", help="QC video URL (upload_*_qc)")
    act_parser.add_argument(
        "--file", action="append", help="Additional QC file URL (repeatable)"
    )
    act_parser.add_argument("--notes", help="Notes (QC upload, admin QC decision)")
    act_parser.add_argument("--reason", help="Reason (reject, revision, refund)")
    act_parser.add_argument("--defect-type", help="Defect type for QC rejection")
    act_parser.add_argument("--defect-severity", help="Defect severity for QC rejection")
    act_parser.add_argument("--reviewer", help="Reviewer ID")
    act_parser.add_argument("--stage", choices=["sample", "bulk"], help="QC stage (admin_qc_decision)")
    act_parser.add_argument(
        "--decision", choices=["approved", "rejected"], help="Decision (admin_qc_decision)"
    )
    act_parser.add_argument("--packaging-video", help="Packaging video URL (mark_packed)")
    act_parser.add_argument("--courier", help="Courier name (schedule_pickup)")
    act_parser.add_argument("--tracking", help="Tracking ID (schedule_pickup)")
    act_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # guards
    guards_parser = subparsers.add_parser("guards", help="Show which actions are allowed")
    guards_parser.add_argument("order_id", help="Order ID (or prefix)")
    guards_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # events
    events_parser = subparsers.add_parser("events", help="Show the order event log")
    events_parser.add_argument("order_id", help="Order ID (or prefix)")
    events_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # states
    states_parser = subparsers.add_parser("states", help="List order states and transitions")
    states_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "init": cmd_init,
        "create": cmd_create,
        "list": cmd_list,
        "show": cmd_show,
        "act": cmd_act,
        "guards": cmd_guards,
        "events": cmd_events,
        "states": cmd_states,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
