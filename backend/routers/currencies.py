"""
Currencies Router

GET /api/currencies                       - code → symbol table
GET /api/currencies/region/{region_code}  - default currency for a device region
"""
from fastapi import APIRouter

from models.schemas import CurrencyInfo
from services.currency import CURRENCY_SYMBOLS, get_currency_from_region, get_currency_symbol

router = APIRouter()


@router.get("", response_model=dict[str, str])
async def list_currencies():
    return CURRENCY_SYMBOLS


@router.get("/region/{region_code}", response_model=CurrencyInfo)
async def currency_for_region(region_code: str):
    """Unknown regions fall back to USD."""
    currency = get_currency_from_region(region_code)
    return CurrencyInfo(currency=currency, symbol=get_currency_symbol(currency))
