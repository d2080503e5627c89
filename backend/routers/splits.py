"""
Splits Router

POST   /api/splits                                   - open a split from scanned items
GET    /api/splits/{id}                              - items, people, tip, live summary
DELETE /api/splits/{id}                              - discard
PUT    /api/splits/{id}/receipt                      - retake: new items, allocations reset
POST   /api/splits/{id}/people                       - add a person
PUT    /api/splits/{id}/tip                          - set tip percentage
POST   /api/splits/{id}/assign                       - add selected units to one person
POST   /api/splits/{id}/items/{item_id}/reassign     - move allocated units
DELETE /api/splits/{id}/items/{item_id}/allocations[/{person_id}]  - free units
GET    /api/splits/{id}/items                        - items, optionally filtered by person
GET    /api/splits/{id}/summary                      - per-person totals + reconciliation
GET    /api/splits/{id}/summary/text                 - shareable plain text
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import PlainTextResponse

from models.schemas import (
    AssignRequest,
    Person,
    PersonCreate,
    PersonLine,
    PersonSummary,
    ReassignRequest,
    ReceiptReplace,
    ScannedItem,
    SplitCreate,
    SplitItem,
    SplitSession,
    SplitSummary,
    TipUpdate,
)
from services import allocation
from services.allocation import AllocationError
from services.currency import get_currency_symbol
from services.normalizer import NormalizedItem
from services.split_store import SessionNotFound, SplitStore, get_split_store
from services.summary_service import render_summary_text

logger = logging.getLogger("dinesplit.splits")
router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────────────────────

def _normalized(items: list[ScannedItem]) -> list[NormalizedItem]:
    return [NormalizedItem(description=i.description, price=i.price, quantity=i.quantity)
            for i in items]


def _load(store: SplitStore, split_id: str):
    try:
        return store.get(split_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


def _item_out(item: allocation.SplitItem, allocations: allocation.Allocation) -> SplitItem:
    return SplitItem(
        id=item.id,
        description=item.description,
        price=item.price,
        quantity=item.quantity,
        allocations=dict(allocations.get(item.id, {})),
        allocated=allocation.allocated_units(allocations, item.id),
        remaining=allocation.remaining_units(item, allocations),
        fully_allocated=allocation.is_fully_allocated(item, allocations),
    )


def _person_out(person: allocation.Person) -> Person:
    return Person(id=person.id, name=person.name, color_index=person.color_index)


def _summary_out(summary: allocation.SplitSummary) -> SplitSummary:
    return SplitSummary(
        person_summaries=[
            PersonSummary(
                person=_person_out(ps.person),
                items=[PersonLine(item_id=l.item_id, description=l.description,
                                  quantity=l.quantity, amount=l.amount) for l in ps.items],
                subtotal=ps.subtotal,
                tip=ps.tip,
                total=ps.total,
            )
            for ps in summary.person_summaries
        ],
        bill_total=summary.bill_total,
        allocated_total=summary.allocated_total,
        outstanding=summary.outstanding,
        is_complete=summary.is_complete,
    )


def _session_out(session) -> SplitSession:
    return SplitSession(
        id=session.id,
        currency=session.currency,
        currency_symbol=get_currency_symbol(session.currency),
        tip_percentage=session.tip_percentage,
        people=[_person_out(p) for p in session.people],
        items=[_item_out(i, session.allocations) for i in session.items],
        summary=_summary_out(session.summary()),
    )


def _mutate(session, action, *args):
    """Run a session mutation, translating domain errors into HTTP errors."""
    try:
        action(*args)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AllocationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _session_out(session)


# ── Session lifecycle ────────────────────────────────────────────────────────

@router.post("", response_model=SplitSession, status_code=201)
async def create_split(body: SplitCreate, store: SplitStore = Depends(get_split_store)):
    session = store.create(_normalized(body.items), body.currency.strip().upper() or "USD",
                           body.tip_percentage)
    return _session_out(session)


@router.get("/{split_id}", response_model=SplitSession)
async def get_split(split_id: str, store: SplitStore = Depends(get_split_store)):
    return _session_out(_load(store, split_id))


@router.delete("/{split_id}", status_code=204)
async def delete_split(split_id: str, store: SplitStore = Depends(get_split_store)):
    _load(store, split_id)
    store.delete(split_id)
    return Response(status_code=204)


@router.put("/{split_id}/receipt", response_model=SplitSession)
async def replace_receipt(
    split_id: str,
    body: ReceiptReplace,
    store: SplitStore = Depends(get_split_store),
):
    session = _load(store, split_id)
    currency = body.currency.strip().upper() if body.currency else None
    logger.info("Retake on split %s: %d items, allocations cleared", split_id, len(body.items))
    return _mutate(session, session.replace_items, _normalized(body.items), currency)


# ── People & tip ─────────────────────────────────────────────────────────────

@router.post("/{split_id}/people", response_model=Person, status_code=201)
async def add_person(split_id: str, body: PersonCreate, store: SplitStore = Depends(get_split_store)):
    session = _load(store, split_id)
    try:
        person = session.add_person(body.name)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _person_out(person)


@router.put("/{split_id}/tip", response_model=SplitSession)
async def set_tip(split_id: str, body: TipUpdate, store: SplitStore = Depends(get_split_store)):
    session = _load(store, split_id)
    return _mutate(session, session.set_tip, body.tip_percentage)


# ── Allocation ───────────────────────────────────────────────────────────────

@router.post("/{split_id}/assign", response_model=SplitSession)
async def assign_units(split_id: str, body: AssignRequest, store: SplitStore = Depends(get_split_store)):
    """Additive: units already held by the person are kept and the selection is added."""
    session = _load(store, split_id)
    return _mutate(session, session.assign, body.person_id, body.selections)


@router.post("/{split_id}/items/{item_id}/reassign", response_model=SplitSession)
async def reassign_units(
    split_id: str,
    item_id: str,
    body: ReassignRequest,
    store: SplitStore = Depends(get_split_store),
):
    session = _load(store, split_id)
    return _mutate(session, session.reassign, item_id, body.to_person_id, body.from_person_id)


@router.delete("/{split_id}/items/{item_id}/allocations", response_model=SplitSession)
async def clear_item(split_id: str, item_id: str, store: SplitStore = Depends(get_split_store)):
    session = _load(store, split_id)
    return _mutate(session, session.clear, item_id)


@router.delete("/{split_id}/items/{item_id}/allocations/{person_id}", response_model=SplitSession)
async def clear_item_for_person(
    split_id: str,
    item_id: str,
    person_id: str,
    store: SplitStore = Depends(get_split_store),
):
    session = _load(store, split_id)
    return _mutate(session, session.clear, item_id, person_id)


@router.get("/{split_id}/items", response_model=list[SplitItem])
async def list_items(
    split_id: str,
    person_id: Optional[str] = None,
    store: SplitStore = Depends(get_split_store),
):
    session = _load(store, split_id)
    try:
        items = session.items_for(person_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [_item_out(i, session.allocations) for i in items]


# ── Summary ──────────────────────────────────────────────────────────────────

@router.get("/{split_id}/summary", response_model=SplitSummary)
async def get_summary(split_id: str, store: SplitStore = Depends(get_split_store)):
    return _summary_out(_load(store, split_id).summary())


@router.get("/{split_id}/summary/text", response_class=PlainTextResponse)
async def get_summary_text(split_id: str, store: SplitStore = Depends(get_split_store)):
    session = _load(store, split_id)
    return render_summary_text(
        session.summary(), session.tip_percentage, get_currency_symbol(session.currency),
    )
