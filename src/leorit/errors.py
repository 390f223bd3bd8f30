"""Custom exceptions for leorit."""


class LeoritError(Exception):
    """Base exception for all leorit errors."""

    pass


class StoreNotInitializedError(LeoritError):
    """Raised when the orders file doesn't exist."""

    def __init__(self, path: str | None = None):
        self.path = path
        msg = "Order store not initialized. Run 'leorit init' first."
        if path:
            msg = f"Order store not found at {path}. Run 'leorit init' first."
        super().__init__(msg)


class StoreExistsError(LeoritError):
    """Raised when trying to init but the store already exists."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Order store already exists at {path}. Use --force to overwrite.")


class InvalidSchemaVersionError(LeoritError):
    """Raised when the store has an unsupported schema version."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found}. This tool supports version {supported}."
        )


class OrderNotFoundError(LeoritError):
    """Raised when an order ID doesn't exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class QCRecordNotFoundError(LeoritError):
    """Raised when a QC record ID doesn't exist."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"QC record not found: {record_id}")


class QCRecordResolvedError(LeoritError):
    """Raised when deciding on a QC record that already has a decision."""

    def __init__(self, record_id: str, decision: str):
        self.record_id = record_id
        self.decision = decision
        super().__init__(f"QC record {record_id} is already resolved ({decision})")


class InvalidOrderDataError(LeoritError):
    """Raised when order input is malformed or incomplete."""

    def __init__(self, message: str, errors: list[dict[str, str]] | None = None):
        self.errors = errors or []
        super().__init__(message)


class TransitionBlockedError(LeoritError):
    """Raised when a guard denies a lifecycle action."""

    def __init__(self, action: str, reason: str, gate: str | None = None):
        self.action = action
        self.reason = reason
        self.gate = gate
        super().__init__(f"Cannot {action}: {reason}")


class FieldLockedError(LeoritError):
    """Raised when updating a field that is read-only at the order's state."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(reason)
