"""Financial derivation: line-item totals, discounts and aggregate summaries.

Money is handled as ``Decimal`` throughout. Stored product data is parsed
leniently: anything malformed degrades to an empty product list instead of
surfacing an error to the user.
"""
import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional

from inward.core.exceptions import PreconditionError
from inward.core.logging import get_logger


logger = get_logger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class ProductLineItem:
    product: str
    brand: str = ""
    department: str = ""
    price: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "product": self.product,
            "brand": self.brand,
            "department": self.department,
            "price": str(self.price),
        }


@dataclass(frozen=True)
class DerivedAmounts:
    gross_total: Decimal
    discount_amount: Decimal
    discount_percentage: Decimal
    final_amount: Decimal


@dataclass(frozen=True)
class FinancialSummary:
    count: int = 0
    gross_total: Decimal = ZERO
    final_total: Decimal = ZERO
    discount_total: Decimal = ZERO
    average_order_value: Decimal = ZERO
    average_discount: Decimal = ZERO
    average_discount_percentage: Decimal = ZERO
    discount_adoption_ratio: Decimal = ZERO
    entries_with_discount: int = 0


def to_money(value: Any) -> Decimal:
    """Parse a price-like value; raises ValueError on garbage."""
    if isinstance(value, Decimal):
        amount = value
    elif value is None or value == "":
        amount = ZERO
    else:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"not a number: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_products(raw: Any) -> List[ProductLineItem]:
    """Parse stored product data (list or JSON string) into line items.

    Returns an empty list on any malformed input.
    """
    if raw is None:
        return []
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if not isinstance(data, list):
            raise ValueError("product data is not a list")
        items = []
        for entry in data:
            if not isinstance(entry, dict):
                raise ValueError("product entry is not an object")
            price = to_money(entry.get("price"))
            if price < ZERO:
                raise ValueError("negative price")
            items.append(ProductLineItem(
                product=str(entry.get("product") or ""),
                brand=str(entry.get("brand") or ""),
                department=str(entry.get("department") or ""),
                price=price,
            ))
        return items
    except (ValueError, TypeError) as e:
        logger.warning(f"Discarding malformed product data: {e}")
        return []


def compute_totals(items: Iterable[ProductLineItem]) -> Decimal:
    """Gross total: sum of all non-negative line-item prices."""
    return sum((item.price for item in items if item.price >= ZERO), ZERO)


def discount_percentage(gross_total: Decimal, discount_amount: Decimal) -> Decimal:
    if gross_total <= ZERO:
        return ZERO
    return (discount_amount / gross_total * 100).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_discount(gross_total: Decimal, discount_amount: Decimal) -> Decimal:
    """Return the normalised discount or raise PreconditionError.

    Over-discounts are rejected outright rather than clamped.
    """
    if discount_amount < ZERO:
        raise PreconditionError("Discount amount cannot be negative", code="negative_discount")
    if discount_amount > gross_total:
        raise PreconditionError(
            f"Discount {discount_amount} exceeds the gross total {gross_total}",
            code="discount_exceeds_total",
        )
    return discount_amount


def apply_discount(gross_total: Decimal, discount_amount: Optional[Decimal]) -> DerivedAmounts:
    """Final payable amount for a gross total and a recorded discount."""
    discount = discount_amount or ZERO
    return DerivedAmounts(
        gross_total=gross_total,
        discount_amount=discount,
        discount_percentage=discount_percentage(gross_total, discount),
        final_amount=gross_total - discount,
    )


def derive_for_vehicle(vehicle) -> DerivedAmounts:
    items = parse_products(vehicle.products)
    return apply_discount(compute_totals(items), vehicle.discount_amount)


def summarize(entries: Iterable[DerivedAmounts]) -> FinancialSummary:
    """Fold per-vehicle amounts into dashboard/accounts figures.

    An empty input yields an all-zero summary.
    """
    entries = list(entries)
    count = len(entries)
    if count == 0:
        return FinancialSummary()

    gross_total = sum((e.gross_total for e in entries), ZERO)
    final_total = sum((e.final_amount for e in entries), ZERO)
    discount_total = sum((e.discount_amount for e in entries), ZERO)
    with_discount = sum(1 for e in entries if e.discount_amount > ZERO)

    return FinancialSummary(
        count=count,
        gross_total=gross_total,
        final_total=final_total,
        discount_total=discount_total,
        average_order_value=(final_total / count).quantize(CENT, rounding=ROUND_HALF_UP),
        average_discount=(discount_total / count).quantize(CENT, rounding=ROUND_HALF_UP),
        average_discount_percentage=discount_percentage(gross_total, discount_total),
        discount_adoption_ratio=(Decimal(with_discount) / count).quantize(
            Decimal("0.0001"), rounding=ROUND_HALF_UP
        ),
        entries_with_discount=with_discount,
    )
