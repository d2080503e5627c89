"""
In-memory split sessions.

A session owns one receipt's items, the people at the table, the tip and the
allocation map.  Sessions live for the life of the process only.  Each one is
mutated by a single request at a time on the event loop, and every mutation
swaps in a new allocation map built by services.allocation.
"""
import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import Optional

from services.allocation import (
    Allocation,
    Person,
    SplitItem,
    SplitSummary,
    assign_selection,
    clear_units,
    items_for_person,
    next_color_index,
    reassign_units,
    summarize,
)
from services.normalizer import NormalizedItem

logger = logging.getLogger("dinesplit.splits")

DEFAULT_TIP_PERCENTAGE = float(os.environ.get("DEFAULT_TIP_PERCENTAGE", "15"))


class SessionNotFound(Exception):
    """Raised when a session, item or person id is unknown."""
    pass


def build_items(items: list[NormalizedItem]) -> list[SplitItem]:
    """Give scanned items stable ids in receipt order."""
    return [
        SplitItem(id=f"item-{i}", description=item.description,
                  price=item.price, quantity=item.quantity)
        for i, item in enumerate(items)
    ]


@dataclass
class SplitSession:
    id: str
    currency: str
    items: list[SplitItem] = field(default_factory=list)
    people: list[Person] = field(default_factory=list)
    allocations: Allocation = field(default_factory=dict)
    tip_percentage: float = DEFAULT_TIP_PERCENTAGE

    def item(self, item_id: str) -> SplitItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise SessionNotFound(f"Item {item_id} not found")

    def person(self, person_id: str) -> Person:
        for person in self.people:
            if person.id == person_id:
                return person
        raise SessionNotFound(f"Person {person_id} not found")

    def add_person(self, name: str) -> Person:
        name = name.strip()
        if not name:
            raise ValueError("Name must not be empty")
        person = Person(id=f"person-{uuid.uuid4().hex[:12]}", name=name,
                        color_index=next_color_index(self.people))
        self.people.append(person)
        return person

    def replace_items(self, items: list[NormalizedItem], currency: Optional[str] = None) -> None:
        """Retake: a new receipt invalidates every allocation; people stay."""
        self.items = build_items(items)
        self.allocations = {}
        if currency:
            self.currency = currency

    def set_tip(self, tip_percentage: float) -> None:
        if not 0 <= tip_percentage <= 100:
            raise ValueError("Tip must be between 0 and 100 percent")
        self.tip_percentage = tip_percentage

    def assign(self, person_id: str, selections: dict[str, int]) -> None:
        self.person(person_id)
        for item_id in selections:
            self.item(item_id)
        self.allocations = assign_selection(self.allocations, self.items, person_id, selections)

    def reassign(self, item_id: str, to_person_id: str, from_person_id: Optional[str] = None) -> None:
        item = self.item(item_id)
        self.person(to_person_id)
        if from_person_id is not None:
            self.person(from_person_id)
        self.allocations = reassign_units(self.allocations, item, to_person_id, from_person_id)

    def clear(self, item_id: str, person_id: Optional[str] = None) -> None:
        self.item(item_id)
        if person_id is not None:
            self.person(person_id)
        self.allocations = clear_units(self.allocations, item_id, person_id)

    def items_for(self, person_id: Optional[str]) -> list[SplitItem]:
        if person_id is None:
            return list(self.items)
        self.person(person_id)
        return items_for_person(self.items, self.allocations, person_id)

    def summary(self) -> SplitSummary:
        return summarize(self.items, self.people, self.allocations, self.tip_percentage)


class SplitStore:
    def __init__(self):
        self._sessions: dict[str, SplitSession] = {}

    def create(self, items: list[NormalizedItem], currency: str,
               tip_percentage: Optional[float] = None) -> SplitSession:
        session = SplitSession(id=uuid.uuid4().hex, currency=currency, items=build_items(items))
        if tip_percentage is not None:
            session.set_tip(tip_percentage)
        self._sessions[session.id] = session
        logger.info("Opened split %s with %d items", session.id, len(session.items))
        return session

    def get(self, session_id: str) -> SplitSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(f"Split {session_id} not found") from None

    def delete(self, session_id: str) -> None:
        self.get(session_id)
        del self._sessions[session_id]
        logger.info("Discarded split %s", session_id)

    def __len__(self) -> int:
        return len(self._sessions)


_store = SplitStore()


def get_split_store() -> SplitStore:
    """Dependency: the process-wide session store."""
    return _store

