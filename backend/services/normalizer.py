"""
Normalizer: turns the raw line items reported by the receipt scanner into
clean {description, price, quantity} items and derives the bill totals.

Scanner output for restaurant receipts is noisy in predictable ways: the
quantity column gets glued onto the first digit of the description
("1" + "6 Wings" → qty 16), quantities go missing while the line total is
still right, and unit prices end up at the tail of the description.  Each
item runs through a fixed cascade of repairs; nothing here ever raises for
a bad line, the worst case is quantity 1.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger("dinesplit.normalizer")

# Tunable heuristics.
MAX_LINE_QUANTITY = 20          # above this a quantity is treated as OCR noise
ROUND_TRIP_TOLERANCE = 0.01     # inferred_qty × unit must land this close to line total
MISMATCH_TOLERANCE = 0.05       # relative subtotal mismatch that triggers a warning
DEFAULT_CURRENCY = "USD"
LOW_CONFIDENCE_WARNING = "Total doesn't match items. Try a clearer photo."

#   "6 Wings"          → leading token 6, rest "Wings"
LEADING_NUMBER_RE = re.compile(r"^(\d+)\s+(.+)\Z")
#   "Pale Ale 25.00"   → rest "Pale Ale", trailing 25.00
TRAILING_NUMBER_RE = re.compile(r"^(.+?)\s+(\d+\.?\d*)\Z")


@dataclass
class RawScanItem:
    description: str = ""
    unit_price: float = 0.0
    line_total: float = 0.0
    quantity: int = 0


@dataclass
class NormalizedItem:
    description: str
    price: float        # line total for the whole quantity, not the unit price
    quantity: int


@dataclass
class ReceiptTotals:
    items_subtotal: float
    declared_subtotal: Optional[float]
    declared_total: Optional[float]
    service_charge: float
    tip: float
    currency: str

    @property
    def total(self) -> float:
        """The splittable base: only the items are redistributed between people."""
        return self.items_subtotal

    @property
    def sub_total(self) -> float:
        return self.declared_subtotal or self.items_subtotal


@dataclass
class NormalizationResult:
    items: list[NormalizedItem]
    totals: ReceiptTotals
    low_confidence: bool = False
    warning: Optional[str] = None
    corrections: list[str] = field(default_factory=list)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def _is_unset_quantity(quantity: int) -> bool:
    return quantity <= 0 or quantity == 1


def _infer_quantity(line_total: float, unit_price: float) -> Optional[int]:
    """
    Infer how many units make up line_total at unit_price.
    Only accepted when the division lands (almost) exactly on a whole number
    inside (1, MAX_LINE_QUANTITY]; coincidental ratios are rejected.
    """
    if unit_price <= 0 or line_total <= unit_price:
        return None
    inferred = round_half_up(line_total / unit_price)
    if not (1 < inferred <= MAX_LINE_QUANTITY):
        return None
    if abs(inferred * unit_price - line_total) >= ROUND_TRIP_TOLERANCE:
        return None
    return inferred


def normalize_item(raw: RawScanItem, index: int) -> tuple[NormalizedItem, list[str]]:
    """
    Run the repair cascade over one scanner line.
    `index` is 0-based; it only feeds the "Item N" fallback name.
    Returns the cleaned item plus a list of human-readable notes on what changed.
    """
    notes: list[str] = []
    description = raw.description or ""
    quantity = raw.quantity

    # 1. Leading digits merged into the quantity column
    m = LEADING_NUMBER_RE.match(description)
    if m:
        leading = str(int(m.group(1)))
        qty_str = str(quantity)
        if quantity > 9 and qty_str.endswith(leading):
            remainder = qty_str[:-len(leading)]
            corrected = int(remainder) if remainder else 1
            notes.append(f"quantity {quantity} → {corrected} (merged digit {leading!r})")
            quantity = corrected
        description = m.group(2)

    # 2. Quantity from line total / unit price
    if _is_unset_quantity(quantity):
        inferred = _infer_quantity(raw.line_total, raw.unit_price)
        if inferred is not None:
            notes.append(f"quantity {quantity} → {inferred} (line total / unit price)")
            quantity = inferred

    # 3. Unit price left at the end of the description
    m = TRAILING_NUMBER_RE.match(description)
    if m and _is_unset_quantity(quantity):
        price_from_desc = float(m.group(2))
        if price_from_desc > 0:
            inferred = _infer_quantity(raw.line_total, price_from_desc)
            if inferred is not None:
                notes.append(f"quantity {quantity} → {inferred} (price {m.group(2)} in description)")
                quantity = inferred
                description = m.group(1)

    # 4. Anything outside the plausible range is unreliable
    if quantity <= 0 or quantity > MAX_LINE_QUANTITY:
        if quantity != 0:
            notes.append(f"quantity {quantity} out of range, using 1")
        quantity = 1

    # 5. Line total wins over unit price
    price = raw.line_total or raw.unit_price or 0.0

    # 6. Never hand back an empty name
    description = description.strip()
    if not description:
        description = f"Item {index + 1}"

    return NormalizedItem(description=description, price=float(price), quantity=quantity), notes


def derive_service_charge(
    items_subtotal: float,
    declared_subtotal: Optional[float],
    declared_total: Optional[float],
) -> float:
    """
    Whatever the declared total carries on top of the food is service charge.
    Prefer the printed subtotal as the base; fall back to the items sum.
    """
    total = declared_total or 0.0
    if declared_subtotal and declared_subtotal > 0 and total > declared_subtotal:
        return total - declared_subtotal
    if total > items_subtotal:
        return max(0.0, total - items_subtotal)
    return 0.0


def check_reconciliation(
    items_subtotal: float,
    declared_subtotal: Optional[float],
    declared_total: Optional[float],
) -> tuple[bool, Optional[str]]:
    """
    Compare the printed subtotal (or total, when there is no subtotal) with the
    sum of the extracted items.  Returns (low_confidence, warning).
    """
    reference = declared_subtotal or declared_total
    if not reference:
        return False, None
    if abs(reference - items_subtotal) / reference > MISMATCH_TOLERANCE:
        return True, LOW_CONFIDENCE_WARNING
    return False, None


def normalize(
    raw_items: list[RawScanItem],
    declared_subtotal: Optional[float] = None,
    declared_total: Optional[float] = None,
    tip: float = 0.0,
    currency_hint: Optional[str] = None,
    fallback_currency: Optional[str] = None,
) -> NormalizationResult:
    """
    Clean every raw item and derive the receipt totals.

    `currency_hint` is what the scanner detected; `fallback_currency` is the
    caller's default (e.g. from the device region).  USD when neither is known.
    """
    items: list[NormalizedItem] = []
    corrections: list[str] = []
    for index, raw in enumerate(raw_items):
        item, notes = normalize_item(raw, index)
        for note in notes:
            logger.debug("Item %d (%s): %s", index + 1, item.description, note)
            corrections.append(f"{item.description}: {note}")
        items.append(item)

    items_subtotal = sum(item.price for item in items)
    service_charge = derive_service_charge(items_subtotal, declared_subtotal, declared_total)
    low_confidence, warning = check_reconciliation(items_subtotal, declared_subtotal, declared_total)
    if low_confidence:
        logger.info(
            "Items sum %.2f does not reconcile with receipt (subtotal=%s total=%s)",
            items_subtotal, declared_subtotal, declared_total,
        )

    resolved_currency = (currency_hint or fallback_currency or DEFAULT_CURRENCY).strip().upper() or DEFAULT_CURRENCY

    totals = ReceiptTotals(
        items_subtotal=items_subtotal,
        declared_subtotal=declared_subtotal,
        declared_total=declared_total,
        service_charge=service_charge,
        tip=max(0.0, tip or 0.0),
        currency=resolved_currency,
    )
    return NormalizationResult(
        items=items,
        totals=totals,
        low_confidence=low_confidence,
        warning=warning,
        corrections=corrections,
    )
