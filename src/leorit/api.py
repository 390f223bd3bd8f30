"""FastAPI REST API for leorit order management."""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .delivery import DELIVERY_LABELS, VALID_DELIVERY_TRANSITIONS, buyer_visible_tracking
from .delivery_cost import calculate_delivery_cost
from .errors import (
    FieldLockedError,
    InvalidOrderDataError,
    InvalidSchemaVersionError,
    LeoritError,
    OrderNotFoundError,
    QCRecordNotFoundError,
    QCRecordResolvedError,
    StoreExistsError,
    StoreNotInitializedError,
    TransitionBlockedError,
)
from .execution_gates import check_all_gates
from .field_locks import FIELD_LOCK_THRESHOLDS, get_locked_fields
from .models import Order
from .order_mode import get_order_mode, order_mode_message
from .order_state import (
    ORDER_STATES,
    STATE_LABELS,
    get_state_progress,
    get_valid_next_states,
    state_label,
)
from .order_store import OrderStore
from .payment import (
    PAYMENT_LABELS,
    VALID_PAYMENT_TRANSITIONS,
    calculate_payment_split,
    get_payment_release_conditions,
    payment_label,
)
from .workflow import OrderWorkflow


# --- Pydantic Schemas ---


class OrderSchema(BaseModel):
    id: str
    buyer_id: Optional[str] = None
    manufacturer_id: Optional[str] = None
    order_state: Optional[str] = None
    payment_state: Optional[str] = None
    delivery_status: Optional[str] = None
    order_mode: Optional[str] = None
    order_intent: Optional[str] = None
    buyer_purpose: Optional[str] = None
    quantity: int
    product_type: Optional[str] = None
    fabric_type: Optional[str] = None
    selected_color: Optional[str] = None
    design_size: Optional[str] = None
    buyer_notes: Optional[str] = None
    shipping_address: Optional[str] = None
    design_file_url: Optional[str] = None
    back_design_url: Optional[str] = None
    csv_file_url: Optional[str] = None
    corrected_csv_url: Optional[str] = None
    specs_locked: bool = False
    total_order_value: Optional[float] = None
    upfront_payable_amount: Optional[float] = None
    escrow_amount: Optional[float] = None
    sample_qc_video_url: Optional[str] = None
    qc_files: list[str] = []
    bulk_qc_video_url: Optional[str] = None
    admin_qc_approved: bool = False
    packaging_video_url: Optional[str] = None
    courier_name: Optional[str] = None
    tracking_id: Optional[str] = None
    submitted_at: Optional[str] = None
    assigned_at: Optional[str] = None
    sample_production_started_at: Optional[str] = None
    sample_qc_uploaded_at: Optional[str] = None
    sample_approved_at: Optional[str] = None
    bulk_production_started_at: Optional[str] = None
    bulk_qc_uploaded_at: Optional[str] = None
    bulk_qc_approved_at: Optional[str] = None
    admin_qc_approved_at: Optional[str] = None
    escrow_locked_timestamp: Optional[str] = None
    escrow_released_timestamp: Optional[str] = None
    refunded_at: Optional[str] = None
    packed_at: Optional[str] = None
    pickup_scheduled_at: Optional[str] = None
    in_transit_at: Optional[str] = None
    dispatched_at: Optional[str] = None
    delivered_at: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: str
    updated_at: str


class OrderCreateRequest(BaseModel):
    """Request body for creating a draft order."""

    buyer_id: str = Field(..., min_length=1)
    buyer_purpose: Optional[str] = Field(
        None, description="merch_bulk | blank_apparel | fabric_only"
    )
    order_mode: Optional[str] = Field(
        None, description="sample_only | sample_then_bulk | direct_bulk"
    )
    order_intent: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    product_type: Optional[str] = None
    fabric_type: Optional[str] = None
    selected_color: Optional[str] = None
    design_size: Optional[str] = None
    buyer_notes: Optional[str] = None
    shipping_address: Optional[str] = None
    design_file_url: Optional[str] = None
    back_design_url: Optional[str] = None
    csv_file_url: Optional[str] = None
    total_order_value: Optional[float] = Field(None, ge=0)


class OrderUpdateRequest(BaseModel):
    """Request body for editing order fields. Only the fields sent are changed."""

    buyer_purpose: Optional[str] = None
    order_mode: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=1)
    product_type: Optional[str] = None
    fabric_type: Optional[str] = None
    selected_color: Optional[str] = None
    design_size: Optional[str] = None
    buyer_notes: Optional[str] = None
    shipping_address: Optional[str] = None
    design_file_url: Optional[str] = None
    back_design_url: Optional[str] = None
    csv_file_url: Optional[str] = None
    corrected_csv_url: Optional[str] = None
    total_order_value: Optional[float] = Field(None, ge=0)


class ActionRequest(BaseModel):
    """Parameters for an order action. Each action reads the ones it needs."""

    manufacturer_id: Optional[str] = None
    amount: Optional[float] = Field(None, ge=0)
    actor: Optional[str] = None
    video_url: Optional[str] = None
    file_urls: Optional[list[str]] = None
    notes: Optional[str] = None
    reason: Optional[str] = None
    defect_type: Optional[str] = None
    defect_severity: Optional[str] = None
    reviewer_id: Optional[str] = None
    stage: Optional[str] = Field(
        None, description="sample | bulk (admin QC decision, defaults to the order's stage)"
    )
    decision: Optional[str] = Field(None, description="approved | rejected (admin QC decision)")
    packaging_video_url: Optional[str] = None
    courier_name: Optional[str] = None
    tracking_id: Optional[str] = None


class OrderListResponse(BaseModel):
    orders: list[OrderSchema]
    count: int


class GuardSchema(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    gate: Optional[str] = None


class LockedFieldSchema(BaseModel):
    field: str
    label: str
    reason: str


class OrderDetailResponse(BaseModel):
    order: OrderSchema
    state_label: str
    progress: int
    valid_next_states: list[str]
    payment_label: str
    order_mode: str
    order_mode_message: str
    locked_fields: list[LockedFieldSchema]
    payment_split: Optional[dict] = None
    release_conditions: dict
    tracking: dict
    delivery_cost: dict


class GuardsResponse(BaseModel):
    order_id: str
    actions: dict[str, GuardSchema]
    gates: dict[str, GuardSchema]


class QCRecordSchema(BaseModel):
    id: str
    order_id: str
    stage: str
    file_urls: list[str]
    notes: Optional[str] = None
    decision: str
    reason: Optional[str] = None
    defect_type: Optional[str] = None
    defect_severity: Optional[str] = None
    reviewer_id: Optional[str] = None
    admin_decision: str
    admin_notes: Optional[str] = None
    created_at: str
    resolved_at: Optional[str] = None


class QCRecordListResponse(BaseModel):
    qc_records: list[QCRecordSchema]
    count: int


class EventSchema(BaseModel):
    id: str
    order_id: str
    event_type: str
    event_timestamp: str
    metadata: Optional[dict] = None


class EventListResponse(BaseModel):
    events: list[EventSchema]
    count: int


class ErrorResponse(BaseModel):
    detail: str
    error_type: str


# --- Helper Functions ---


def get_order_store() -> OrderStore:
    """Get the global OrderStore."""
    return OrderStore()


def get_workflow() -> OrderWorkflow:
    return OrderWorkflow(get_order_store())


def order_to_schema(order: Order) -> OrderSchema:
    return OrderSchema(**order.to_dict())


def order_to_detail(order: Order) -> OrderDetailResponse:
    mode = get_order_mode(order)
    split = None
    if order.total_order_value is not None:
        split = calculate_payment_split(order.total_order_value)
    return OrderDetailResponse(
        order=order_to_schema(order),
        state_label=state_label(order.order_state),
        progress=get_state_progress(order.order_state),
        valid_next_states=[s.value for s in get_valid_next_states(order.order_state)],
        payment_label=payment_label(order.payment_state),
        order_mode=mode.value,
        order_mode_message=order_mode_message(mode),
        locked_fields=[LockedFieldSchema(**f) for f in get_locked_fields(order.order_state)],
        payment_split=split,
        release_conditions=get_payment_release_conditions(order),
        tracking=buyer_visible_tracking(order),
        delivery_cost=calculate_delivery_cost(order.product_type, order.quantity).to_dict(),
    )


# --- App ---


app = FastAPI(
    title="leorit API",
    description="REST API for the custom-apparel order lifecycle",
    version=__version__,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    StoreNotInitializedError: 409,
    StoreExistsError: 409,
    InvalidSchemaVersionError: 500,
    OrderNotFoundError: 404,
    QCRecordNotFoundError: 404,
    QCRecordResolvedError: 409,
    InvalidOrderDataError: 400,
    TransitionBlockedError: 409,
    FieldLockedError: 409,
}


@app.exception_handler(LeoritError)
async def leorit_error_handler(request: Request, exc: LeoritError) -> JSONResponse:
    """Map LeoritError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    content = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, TransitionBlockedError):
        content["gate"] = exc.gate
        content["reason"] = exc.reason
    elif isinstance(exc, FieldLockedError):
        content["field"] = exc.field
    elif isinstance(exc, InvalidOrderDataError) and exc.errors:
        content["errors"] = exc.errors
    return JSONResponse(status_code=status_code, content=content)


# --- Endpoints ---


@app.get("/api/health")
def health_check():
    """
    Health check endpoint.

    Reports whether the order store is initialized.
    """
    store = get_order_store()
    if not store.exists():
        return {"status": "ok", "store_initialized": False, "version": __version__}
    try:
        orders = store.list_orders()
        return {
            "status": "ok",
            "store_initialized": True,
            "order_count": len(orders),
            "version": __version__,
        }
    except LeoritError as e:
        return {"status": "error", "store_initialized": True, "detail": str(e)}


@app.get("/api/states")
def list_states():
    """Reference data: lifecycle states, their labels and allowed transitions."""
    return {
        "order_states": [
            {
                "value": s.value,
                "label": STATE_LABELS[s],
                "next": [n.value for n in get_valid_next_states(s)],
            }
            for s in ORDER_STATES
        ],
        "payment_states": [
            {
                "value": s.value,
                "label": PAYMENT_LABELS[s],
                "next": [n.value for n in VALID_PAYMENT_TRANSITIONS[s]],
            }
            for s in PAYMENT_LABELS
        ],
        "delivery_states": [
            {
                "value": s.value,
                "label": DELIVERY_LABELS[s],
                "next": [n.value for n in VALID_DELIVERY_TRANSITIONS[s]],
            }
            for s in DELIVERY_LABELS
        ],
        "field_locks": {field: state.value for field, state in FIELD_LOCK_THRESHOLDS.items()},
        "actions": list(OrderWorkflow.ACTIONS),
    }


# --- Order Endpoints ---


@app.get("/api/orders", response_model=OrderListResponse)
def list_orders(state: Optional[str] = None, buyer_id: Optional[str] = None):
    """List orders, optionally filtered by state and buyer."""
    orders = get_order_store().list_orders(state=state, buyer_id=buyer_id)
    return OrderListResponse(orders=[order_to_schema(o) for o in orders], count=len(orders))


@app.post("/api/orders", response_model=OrderSchema, status_code=201)
def create_order(request: OrderCreateRequest):
    """Create a new draft order."""
    data = request.model_dump(exclude_none=True)
    buyer_id = data.pop("buyer_id")
    order = get_workflow().create_order(buyer_id, **data)
    return order_to_schema(order)


@app.get("/api/orders/{order_id}", response_model=OrderDetailResponse)
def get_order(order_id: str):
    """Get an order with its derived lifecycle details."""
    order = get_order_store().get_order(order_id)
    return order_to_detail(order)


@app.patch("/api/orders/{order_id}", response_model=OrderSchema)
def update_order(order_id: str, request: OrderUpdateRequest):
    """Edit order fields that are not locked at the order's current state."""
    changes = request.model_dump(exclude_unset=True)
    if not changes:
        raise InvalidOrderDataError("No fields to update")
    order = get_workflow().update_fields(order_id, changes)
    return order_to_schema(order)


@app.post("/api/orders/{order_id}/actions/{action}", response_model=OrderSchema)
def perform_action(order_id: str, action: str, request: Optional[ActionRequest] = None):
    """Apply a lifecycle action; a blocked action returns 409 with the failing gate."""
    params = request.model_dump(exclude_none=True) if request else {}
    order = get_workflow().perform(order_id, action, **params)
    return order_to_schema(order)


@app.get("/api/orders/{order_id}/guards", response_model=GuardsResponse)
def get_guards(order_id: str):
    """Preview which actions are currently allowed for an order."""
    workflow = get_workflow()
    order = workflow.store.get_order(order_id)
    actions = workflow.preview(order.id)
    return GuardsResponse(
        order_id=order.id,
        actions={name: GuardSchema(**r.to_dict()) for name, r in actions.items()},
        gates={name: GuardSchema(**r.to_dict()) for name, r in check_all_gates(order).items()},
    )


@app.get("/api/orders/{order_id}/qc-records", response_model=QCRecordListResponse)
def list_qc_records(order_id: str, stage: Optional[str] = None):
    """List QC submissions for an order, oldest first."""
    store = get_order_store()
    order = store.get_order(order_id)
    records = store.list_qc_records(order.id, stage)
    return QCRecordListResponse(
        qc_records=[QCRecordSchema(**r.to_dict()) for r in records], count=len(records)
    )


@app.get("/api/qc-records/{record_id}", response_model=QCRecordSchema)
def get_qc_record(record_id: str):
    """Get a single QC submission (supports partial ID matching)."""
    record = get_order_store().get_qc_record(record_id)
    return QCRecordSchema(**record.to_dict())


@app.get("/api/orders/{order_id}/events", response_model=EventListResponse)
def list_events(order_id: str, event_type: Optional[str] = None):
    """List the audit log of an order."""
    store = get_order_store()
    order = store.get_order(order_id)
    events = store.list_events(order.id, event_type)
    return EventListResponse(
        events=[EventSchema(**e.to_dict()) for e in events], count=len(events)
    )
