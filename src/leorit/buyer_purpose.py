"""Buyer purpose validation for order submission."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Order


class BuyerPurpose(str, Enum):
    MERCH_BULK = "merch_bulk"
    BLANK_APPAREL = "blank_apparel"
    FABRIC_ONLY = "fabric_only"


# Fields required at submission time. The CSV of sizes/names is not among
# them: it is checked when the order moves into bulk production.
REQUIRED_FIELDS: dict[BuyerPurpose, list[str]] = {
    BuyerPurpose.MERCH_BULK: ["design_file", "fabric", "quantity"],
    BuyerPurpose.BLANK_APPAREL: ["fabric", "color", "quantity"],
    BuyerPurpose.FABRIC_ONLY: ["fabric", "quantity"],
}

FIELD_LABELS = {
    "design_file": "Design file",
    "csv": "CSV file with sizes/names",
    "fabric": "Fabric/GSM selection",
    "color": "Color selection",
    "quantity": "Quantity",
}


@dataclass(frozen=True)
class SubmissionError:
    """A single missing or invalid field."""

    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


def parse_buyer_purpose(value: str | None) -> BuyerPurpose | None:
    """Return the BuyerPurpose for a raw value, or None if unset/unknown."""
    if not value:
        return None
    try:
        return BuyerPurpose(value)
    except ValueError:
        return None


def validate_order_submission(order: "Order") -> list[SubmissionError]:
    """
    Validate an order before it may be submitted.

    Returns:
        List of errors; empty when the order can be submitted.
    """
    purpose = parse_buyer_purpose(order.buyer_purpose)
    if purpose is None:
        return [SubmissionError("buyer_purpose", "Please select what you are buying for")]

    errors = []
    for field in REQUIRED_FIELDS[purpose]:
        error = _validate_field(field, order)
        if error is not None:
            errors.append(error)
    return errors


def _validate_field(field: str, order: "Order") -> SubmissionError | None:
    label = FIELD_LABELS.get(field, field)

    if field == "design_file":
        # Front or back design is enough
        if not (order.design_file_url or order.back_design_url):
            return SubmissionError(
                field, f"{label} is required for merchandise/bulk orders (front or back)"
            )
    elif field == "fabric":
        if not order.fabric_type:
            return SubmissionError(field, f"{label} is required")
    elif field == "color":
        if not order.selected_color:
            return SubmissionError(field, f"{label} is required for blank apparel orders")
    elif field == "quantity":
        if not order.quantity or order.quantity < 1:
            return SubmissionError(field, "Please enter a valid quantity (minimum 1)")
    return None


def get_required_fields(purpose: BuyerPurpose) -> list[str]:
    return list(REQUIRED_FIELDS.get(purpose, []))


def is_csv_required_for_bulk(purpose: BuyerPurpose | str | None) -> bool:
    """Only printed merchandise needs a CSV of sizes/names before bulk production."""
    return purpose == BuyerPurpose.MERCH_BULK


def format_validation_errors(errors: list[SubmissionError]) -> str:
    if not errors:
        return ""
    if len(errors) == 1:
        return errors[0].message
    return "Please fix the following:\n" + "\n".join(f"- {e.message}" for e in errors)
