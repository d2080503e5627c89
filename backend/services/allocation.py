"""
Allocation Engine

Items are split by units, not by money: a line of 3 beers at 30.00 is three
10.00 units that can go to different people.  The allocation map is
item_id → {person_id → units}.  Every mutator here returns a fresh map and
leaves its input alone, so a session can swap the map in one assignment and
summaries are always recomputed from scratch.

Invariant kept by every mutator: per item, Σ units ≤ item.quantity.
"""
from dataclasses import dataclass, field
from typing import Optional

Allocation = dict[str, dict[str, int]]

COMPLETE_EPSILON = 0.01     # absorbs float drift from repeated price / quantity
PERSON_COLOR_COUNT = 8      # size of the client's person colour palette


class AllocationError(Exception):
    """Raised when a requested allocation would break the per-item unit limit."""
    pass


@dataclass
class SplitItem:
    id: str
    description: str
    price: float
    quantity: int

    @property
    def unit_price(self) -> float:
        return self.price / self.quantity


@dataclass
class Person:
    id: str
    name: str
    color_index: int = 0


@dataclass
class PersonLine:
    item_id: str
    description: str
    quantity: int
    amount: float


@dataclass
class PersonSummary:
    person: Person
    items: list[PersonLine] = field(default_factory=list)
    subtotal: float = 0.0
    tip: float = 0.0
    total: float = 0.0


@dataclass
class SplitSummary:
    person_summaries: list[PersonSummary]
    bill_total: float
    allocated_total: float
    outstanding: float
    is_complete: bool


def next_color_index(people: list[Person]) -> int:
    return len(people) % PERSON_COLOR_COUNT


def allocated_units(allocations: Allocation, item_id: str) -> int:
    """Units of an item already handed out, to anyone."""
    return sum(allocations.get(item_id, {}).values())


def remaining_units(item: SplitItem, allocations: Allocation) -> int:
    """Upper bound for the unit selector: what nobody has claimed yet."""
    return max(0, item.quantity - allocated_units(allocations, item.id))


def is_fully_allocated(item: SplitItem, allocations: Allocation) -> bool:
    return allocated_units(allocations, item.id) >= item.quantity


def _copy(allocations: Allocation) -> Allocation:
    return {item_id: dict(shares) for item_id, shares in allocations.items()}


def _check_units(item: SplitItem, allocations: Allocation, units: int) -> None:
    if units < 1:
        raise AllocationError(f"Must assign at least one unit of '{item.description}'")
    available = remaining_units(item, allocations)
    if units > available:
        if available == 0:
            raise AllocationError(f"'{item.description}' is already fully allocated")
        raise AllocationError(
            f"Only {available} of {item.quantity} units of '{item.description}' are unallocated"
        )


def assign_units(allocations: Allocation, item: SplitItem, person_id: str, units: int) -> Allocation:
    """
    Give `units` more units of `item` to a person.  Additive: assigning twice
    accumulates rather than replacing the person's existing share.
    """
    _check_units(item, allocations, units)
    updated = _copy(allocations)
    shares = updated.setdefault(item.id, {})
    shares[person_id] = shares.get(person_id, 0) + units
    return updated


def assign_selection(
    allocations: Allocation,
    items: list[SplitItem],
    person_id: str,
    selections: dict[str, int],
) -> Allocation:
    """
    Apply a multi-item selection (item_id → units) to one person.
    All-or-nothing: one bad entry rejects the whole selection.
    Zero-unit entries are skipped; unknown item ids raise KeyError.
    """
    by_id = {item.id: item for item in items}
    updated = allocations
    for item_id, units in selections.items():
        if units == 0:
            continue
        item = by_id[item_id]
        updated = assign_units(updated, item, person_id, units)
    return updated if updated is not allocations else _copy(allocations)


def clear_units(allocations: Allocation, item_id: str, person_id: Optional[str] = None) -> Allocation:
    """
    Free units for reallocation.  With a person, drop only that person's share
    of the item; without one, drop every share of the item.
    """
    updated = _copy(allocations)
    if person_id is None:
        updated.pop(item_id, None)
        return updated
    shares = updated.get(item_id)
    if shares is not None:
        shares.pop(person_id, None)
        if not shares:
            del updated[item_id]
    return updated


def reassign_units(
    allocations: Allocation,
    item: SplitItem,
    to_person_id: str,
    from_person_id: Optional[str] = None,
) -> Allocation:
    """
    Move units that are already allocated.  This is the only way to shift
    units of a fully allocated item between people.

    With `from_person_id`, that person's units move to `to_person_id`;
    otherwise every allocated unit of the item ends up with `to_person_id`.
    """
    shares = allocations.get(item.id, {})
    if from_person_id is None:
        moving = sum(shares.values())
        if moving == 0:
            raise AllocationError(f"'{item.description}' has no allocated units to reassign")
        updated = _copy(allocations)
        updated[item.id] = {to_person_id: moving}
        return updated

    moving = shares.get(from_person_id, 0)
    if moving == 0:
        raise AllocationError(f"Nothing of '{item.description}' is allocated to that person")
    if from_person_id == to_person_id:
        return _copy(allocations)
    updated = _copy(allocations)
    new_shares = updated[item.id]
    del new_shares[from_person_id]
    new_shares[to_person_id] = new_shares.get(to_person_id, 0) + moving
    return updated


def items_for_person(items: list[SplitItem], allocations: Allocation, person_id: str) -> list[SplitItem]:
    """Items the person holds at least one unit of, in receipt order."""
    return [item for item in items if allocations.get(item.id, {}).get(person_id, 0) > 0]


def summarize(
    items: list[SplitItem],
    people: list[Person],
    allocations: Allocation,
    tip_percentage: float,
    bill_total: Optional[float] = None,
) -> SplitSummary:
    """
    Per-person subtotal / tip / total plus bill-level reconciliation.

    The tip is proportional to each person's own subtotal and is not part of
    the reconciliation basis; `bill_total` defaults to the items sum.
    """
    if bill_total is None:
        bill_total = sum(item.price for item in items)

    summaries = []
    for person in people:
        summary = PersonSummary(person=person)
        for item in items:
            units = allocations.get(item.id, {}).get(person.id, 0)
            if units > 0:
                amount = (item.price / item.quantity) * units
                summary.items.append(PersonLine(
                    item_id=item.id,
                    description=item.description,
                    quantity=units,
                    amount=amount,
                ))
                summary.subtotal += amount
        summary.tip = summary.subtotal * tip_percentage / 100
        summary.total = summary.subtotal + summary.tip
        summaries.append(summary)

    allocated_total = sum(s.subtotal for s in summaries)
    outstanding = bill_total - allocated_total
    return SplitSummary(
        person_summaries=summaries,
        bill_total=bill_total,
        allocated_total=allocated_total,
        outstanding=outstanding,
        is_complete=outstanding <= COMPLETE_EPSILON,
    )
