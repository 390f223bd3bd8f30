"""Delivery cost estimate based on weight slabs."""

import math
from dataclasses import dataclass

# Per-piece weight in kg
PRODUCT_WEIGHTS = {
    "t-shirt": 0.25,
    "t-shirts": 0.25,
    "hoodie": 0.60,
    "hoodies": 0.60,
    "cap": 0.15,
    "caps": 0.15,
    "bag": 0.30,
    "bags": 0.30,
    "jacket": 0.70,
    "jackets": 0.70,
    "custom": 0.25,
}

BULK_DELIVERY_COST = 1500
BASE_SLAB_COST = 35
EXTRA_SLAB_COST = 20
SLAB_KG = 0.5


@dataclass(frozen=True)
class DeliveryCost:
    weight: float
    cost: int
    slabs: int

    def to_dict(self) -> dict:
        return {"weight": self.weight, "cost": self.cost, "slabs": self.slabs}


def product_weight(product_type: str | None) -> float:
    """Per-piece weight; unknown products weigh as a custom piece."""
    return PRODUCT_WEIGHTS.get((product_type or "").lower(), PRODUCT_WEIGHTS["custom"])


def calculate_delivery_cost(product_type: str | None, quantity: int) -> DeliveryCost:
    """
    Estimate the delivery cost of an order.

    Bulk orders (more than one piece) ship at a flat rate. A single piece pays
    the base rate for the first 0.5 kg slab and a fixed amount for each
    further slab.
    """
    weight = round(product_weight(product_type) * quantity, 3)

    if quantity > 1:
        return DeliveryCost(weight=weight, cost=BULK_DELIVERY_COST, slabs=0)

    if weight <= SLAB_KG:
        return DeliveryCost(weight=weight, cost=BASE_SLAB_COST, slabs=1)

    slabs = math.ceil(weight / SLAB_KG)
    return DeliveryCost(
        weight=weight, cost=BASE_SLAB_COST + (slabs - 1) * EXTRA_SLAB_COST, slabs=slabs
    )


def format_weight(weight: float) -> str:
    return f"{weight:.2f} kg"
