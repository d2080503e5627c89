"""
Currency lookup tables used to render amounts: ISO code → display symbol and
region (ISO 3166 alpha-2) → default currency.
"""
import re
from typing import Optional

DEFAULT_CURRENCY = "USD"

CURRENCY_SYMBOLS: dict[str, str] = {
    "ZAR": "R",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "¥",
    "INR": "₹",
    "AUD": "A$",
    "CAD": "C$",
    "CHF": "CHF",
    "NZD": "NZ$",
    "SGD": "S$",
    "HKD": "HK$",
    "KRW": "₩",
    "MXN": "MX$",
    "BRL": "R$",
    "RUB": "₽",
    "TRY": "₺",
    "PLN": "zł",
    "SEK": "kr",
    "NOK": "kr",
    "DKK": "kr",
    "THB": "฿",
    "MYR": "RM",
    "PHP": "₱",
    "IDR": "Rp",
    "VND": "₫",
    "AED": "د.إ",
    "SAR": "﷼",
    "EGP": "E£",
    "NGN": "₦",
    "KES": "KSh",
}

REGION_CURRENCIES: dict[str, str] = {
    "ZA": "ZAR", "US": "USD", "GB": "GBP",
    # Eurozone
    "DE": "EUR", "FR": "EUR", "IT": "EUR", "ES": "EUR", "NL": "EUR",
    "BE": "EUR", "AT": "EUR", "IE": "EUR", "PT": "EUR", "FI": "EUR", "GR": "EUR",
    "JP": "JPY", "CN": "CNY", "IN": "INR", "AU": "AUD", "CA": "CAD",
    "CH": "CHF", "NZ": "NZD", "SG": "SGD", "HK": "HKD", "KR": "KRW",
    "MX": "MXN", "BR": "BRL", "RU": "RUB", "TR": "TRY", "PL": "PLN",
    "SE": "SEK", "NO": "NOK", "DK": "DKK", "TH": "THB", "MY": "MYR",
    "PH": "PHP", "ID": "IDR", "VN": "VND", "AE": "AED", "SA": "SAR",
    "EG": "EGP", "NG": "NGN", "KE": "KES",
}

# Checked in order; the first pattern found anywhere in the text wins.
_DETECT_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r'R\s*\d+[,.]?\d*', re.IGNORECASE), "ZAR"),
    (re.compile(r'ZAR\s*\d+', re.IGNORECASE),       "ZAR"),
    (re.compile(r'\$\s*\d+[,.]?\d*'),               "USD"),
    (re.compile(r'USD\s*\d+', re.IGNORECASE),       "USD"),
    (re.compile(r'€\s*\d+[,.]?\d*'),                "EUR"),
    (re.compile(r'EUR\s*\d+', re.IGNORECASE),       "EUR"),
    (re.compile(r'£\s*\d+[,.]?\d*'),                "GBP"),
    (re.compile(r'GBP\s*\d+', re.IGNORECASE),       "GBP"),
    (re.compile(r'¥\s*\d+[,.]?\d*'),                "JPY"),
]


def get_currency_from_region(region_code: Optional[str]) -> str:
    """Default currency for a device region; USD when unknown or missing."""
    if not region_code:
        return DEFAULT_CURRENCY
    return REGION_CURRENCIES.get(region_code.upper(), DEFAULT_CURRENCY)


def get_currency_symbol(currency: str) -> str:
    """Display symbol for a currency code.  Unknown codes render as themselves."""
    return CURRENCY_SYMBOLS.get(currency.upper(), currency)


def format_currency(amount: float, currency_symbol: str) -> str:
    return f"{currency_symbol}{amount:.2f}"


def detect_currency(text: str) -> tuple[str, str]:
    """Guess (code, symbol) from amounts written in free text.  Falls back to USD."""
    for pattern, currency in _DETECT_PATTERNS:
        if pattern.search(text):
            return currency, get_currency_symbol(currency)
    return DEFAULT_CURRENCY, CURRENCY_SYMBOLS[DEFAULT_CURRENCY]
