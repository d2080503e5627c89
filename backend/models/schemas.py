from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict


class CamelModel(BaseModel):
    """Wire models speak camelCase to the mobile client; Python code uses snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ── Scan ───────────────────────────────────────────────
class ScannedItem(CamelModel):
    description: str = Field(min_length=1)
    price: float = Field(ge=0)          # line total for the whole quantity
    quantity: int = Field(ge=1, le=20)

class ScanResponse(CamelModel):
    items: List[ScannedItem]
    total: float                        # splittable base (items only)
    sub_total: float
    service_charge: float
    tip: float
    currency: str
    low_confidence: bool = False
    warning: Optional[str] = None


# ── People ─────────────────────────────────────────────
class PersonCreate(CamelModel):
    name: str

class Person(CamelModel):
    id: str
    name: str
    color_index: int


# ── Split session ──────────────────────────────────────
class SplitCreate(CamelModel):
    items: List[ScannedItem] = Field(min_length=1)
    currency: str = "USD"
    tip_percentage: Optional[float] = Field(None, ge=0, le=100)

class ReceiptReplace(CamelModel):
    """Retake: new items, allocations reset, people kept."""
    items: List[ScannedItem] = Field(min_length=1)
    currency: Optional[str] = None

class TipUpdate(CamelModel):
    tip_percentage: float = Field(ge=0, le=100)

class AssignRequest(CamelModel):
    person_id: str
    selections: Dict[str, int]          # item_id → units to add

class ReassignRequest(CamelModel):
    to_person_id: str
    from_person_id: Optional[str] = None

class SplitItem(CamelModel):
    id: str
    description: str
    price: float
    quantity: int
    allocations: Dict[str, int] = {}
    allocated: int = 0
    remaining: int = 0
    fully_allocated: bool = False


# ── Summary ────────────────────────────────────────────
class PersonLine(CamelModel):
    item_id: str
    description: str
    quantity: int
    amount: float

class PersonSummary(CamelModel):
    person: Person
    items: List[PersonLine] = []
    subtotal: float
    tip: float
    total: float

class SplitSummary(CamelModel):
    person_summaries: List[PersonSummary]
    bill_total: float
    allocated_total: float
    outstanding: float
    is_complete: bool

class SplitSession(CamelModel):
    id: str
    currency: str
    currency_symbol: str
    tip_percentage: float
    people: List[Person]
    items: List[SplitItem]
    summary: SplitSummary


# ── Currency ───────────────────────────────────────────
class CurrencyInfo(CamelModel):
    currency: str
    symbol: str
