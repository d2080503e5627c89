"""
Scanner Service: the receipt image goes to Tabscanner, which answers either
with a finished result or with a token to poll.  Every JSON body is decoded
into one of three variants (ScanSuccess / ScanPending / ScanFailed) before
anything reads it, then the line items run through
`normalize()` exactly once regardless of which path produced them.

Without TABSCANNER_API_KEY the service runs in demo mode and returns a fixed
mock receipt instead of calling out.
"""
import asyncio
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import httpx

from services.image_service import prepare_image
from services.normalizer import NormalizationResult, RawScanItem, normalize

logger = logging.getLogger("dinesplit.scanner")

SCANNER_BASE_URL = os.environ.get("TABSCANNER_BASE_URL", "https://api.tabscanner.com")
SCANNER_POLL_INTERVAL = float(os.environ.get("SCANNER_POLL_INTERVAL", "1.0"))   # seconds
SCANNER_MAX_ATTEMPTS = int(os.environ.get("SCANNER_MAX_ATTEMPTS", "30"))
SCANNER_TIMEOUT = float(os.environ.get("SCANNER_TIMEOUT", "60.0"))


class ScannerError(Exception):
    """Raised when the scanner cannot produce a result (network, failed status, bad body)."""
    pass


class ScannerTimeout(ScannerError):
    """Raised when the result is still pending after the last poll attempt."""
    pass


class EmptyReceiptError(ScannerError):
    """Raised when the scan finished but found no line items."""
    pass


# ── Result variants ───────────────────────────────────────────────────────────

@dataclass
class ScanSuccess:
    line_items: list[RawScanItem] = field(default_factory=list)
    total: Optional[float] = None
    sub_total: Optional[float] = None
    currency: Optional[str] = None
    tip: float = 0.0
    service_charges: list[float] = field(default_factory=list)


@dataclass
class ScanPending:
    token: Optional[str] = None


@dataclass
class ScanFailed:
    message: Optional[str] = None


ScanResult = Union[ScanSuccess, ScanPending, ScanFailed]


def _to_float(value: Any) -> Optional[float]:
    """Numbers arrive as numbers, numeric strings, or garbage."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _to_int(value: Any) -> int:
    number = _to_float(value)
    return int(number) if number is not None else 0


def _to_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _decode_line_item(raw: dict) -> RawScanItem:
    return RawScanItem(
        description=_to_str(raw.get("desc")) or _to_str(raw.get("description")),
        unit_price=max(0.0, _to_float(raw.get("price")) or 0.0),
        line_total=max(0.0, _to_float(raw.get("lineTotal")) or 0.0),
        quantity=_to_int(raw.get("qty")) or _to_int(raw.get("quantity")),
    )


def _decode_success(result: Any) -> ScanSuccess:
    if not isinstance(result, dict):
        return ScanSuccess()

    line_items = []
    raw_items = result.get("lineItems")
    for raw in raw_items if isinstance(raw_items, list) else []:
        if not isinstance(raw, dict):
            logger.debug("Skipping non-object line item: %r", raw)
            continue
        line_items.append(_decode_line_item(raw))

    service_charges = []
    raw_charges = result.get("serviceCharges")
    for charge in raw_charges if isinstance(raw_charges, list) else []:
        amount = _to_float(charge.get("amount")) if isinstance(charge, dict) else None
        if amount is not None:
            service_charges.append(amount)

    currency = _to_str(result.get("currencyCode")) or _to_str(result.get("currency"))
    return ScanSuccess(
        line_items=line_items,
        total=_to_float(result.get("total")) or None,
        sub_total=_to_float(result.get("subTotal")) or None,
        currency=currency.upper() or None,
        tip=max(0.0, _to_float(result.get("tip")) or 0.0),
        service_charges=service_charges,
    )


def decode_scanner_response(payload: Any, token_first: bool = False) -> ScanResult:
    """
    Classify an untrusted scanner JSON body.

    - explicit "failed" status or code 400  → ScanFailed
    - status "done"                         → ScanSuccess (empty if result is missing)
    - anything else                         → ScanPending, with the token when present

    With `token_first` (the initial upload response) a token outranks "done":
    the result is fetched by polling.
    """
    if not isinstance(payload, dict):
        return ScanFailed("Unexpected response from receipt processing service")

    status = _to_str(payload.get("status")).lower()
    message = _to_str(payload.get("message")) or None
    if status == "failed" or _to_int(payload.get("code")) == 400:
        return ScanFailed(message)
    token = _to_str(payload.get("token")) or None
    if token_first and token:
        return ScanPending(token)
    if status == "done":
        return _decode_success(payload.get("result"))
    return ScanPending(token)


# ── Transport ─────────────────────────────────────────────────────────────────

class ScannerClient:
    """Submits an image and polls for the result.  All retry logic lives here."""

    def __init__(
        self,
        api_key: str,
        base_url: str = SCANNER_BASE_URL,
        poll_interval: float = SCANNER_POLL_INTERVAL,
        max_attempts: int = SCANNER_MAX_ATTEMPTS,
        timeout: float = SCANNER_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"apikey": self.api_key},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(self, client: httpx.AsyncClient, method: str, url: str,
                       token_first: bool = False, **kwargs) -> ScanResult:
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.error("Scanner request failed: %s", e)
            raise ScannerError("Failed to connect to receipt processing service") from e

        try:
            decoded = decode_scanner_response(response.json(), token_first=token_first)
        except ValueError as e:
            logger.error("Scanner returned non-JSON body (HTTP %s): %.200s",
                         response.status_code, response.text)
            raise ScannerError("Failed to parse receipt data") from e

        if response.status_code >= 400 and not isinstance(decoded, ScanFailed):
            logger.error("Scanner HTTP %s: %.200s", response.status_code, response.text)
            raise ScannerError(f"Receipt processing service error (HTTP {response.status_code})")
        return decoded

    async def process(self, image: bytes, filename: str, mime_type: str) -> ScanSuccess:
        """Submit one image and return the finished result."""
        async with self._client() as client:
            initial = await self._request(
                client, "POST", "/api/2/process", token_first=True,
                files={"file": (filename, image, mime_type)},
            )
            if isinstance(initial, ScanFailed):
                raise ScannerError(initial.message or "Failed to process receipt")
            if isinstance(initial, ScanSuccess):
                return initial
            if not initial.token:
                raise ScannerError("Unexpected response from receipt processing service")

            logger.info("Scanner accepted %s, polling token %s", filename, initial.token)
            return await self._poll(client, initial.token)

    async def _poll(self, client: httpx.AsyncClient, token: str) -> ScanSuccess:
        for attempt in range(self.max_attempts):
            await asyncio.sleep(self.poll_interval)
            result = await self._request(client, "GET", f"/api/result/{token}")
            logger.debug("Poll attempt %d/%d: %s", attempt + 1, self.max_attempts,
                         type(result).__name__)
            if isinstance(result, ScanSuccess):
                return result
            if isinstance(result, ScanFailed):
                raise ScannerError(result.message or "Receipt processing failed")
        raise ScannerTimeout("Receipt processing timed out")


def get_scanner() -> Optional[ScannerClient]:
    """Dependency: a configured client, or None when running in demo mode."""
    api_key = os.environ.get("TABSCANNER_API_KEY", "")
    if not api_key:
        return None
    return ScannerClient(api_key)


# ── Demo receipt ──────────────────────────────────────────────────────────────

MOCK_ITEMS: list[tuple[str, float, int]] = [
    # description        unit price  qty
    ("Grilled Salmon",   24.99,      1),
    ("Caesar Salad",     12.50,      2),
    ("Margherita Pizza", 18.00,      1),
    ("Sparkling Water",   4.50,      3),
    ("Tiramisu",          8.99,      2),
    ("Espresso",          3.50,      4),
]


def mock_receipt() -> NormalizationResult:
    raw_items = [
        RawScanItem(description=name, unit_price=price, line_total=price * qty, quantity=qty)
        for name, price, qty in MOCK_ITEMS
    ]
    return normalize(raw_items, currency_hint="USD")


async def scan_receipt(
    image: bytes,
    filename: str,
    mime_type: Optional[str],
    fallback_currency: Optional[str] = None,
    scanner: Optional[ScannerClient] = None,
) -> NormalizationResult:
    """
    Full scan: prepare image → scanner → normalize.
    Raises ScannerError (or a subclass) when the scan cannot be used.
    """
    if scanner is None:
        logger.info("TABSCANNER_API_KEY not configured, returning mock receipt")
        return mock_receipt()

    image, filename, mime_type = prepare_image(image, filename, mime_type)
    result = await scanner.process(image, filename, mime_type)
    logger.info("Scanner returned %d line items", len(result.line_items))
    if not result.line_items:
        raise EmptyReceiptError("No items found in receipt")

    if result.service_charges:
        logger.debug("Scanner listed service charges %s (derived from totals instead)",
                     result.service_charges)

    return normalize(
        result.line_items,
        declared_subtotal=result.sub_total,
        declared_total=result.total,
        tip=result.tip,
        currency_hint=result.currency,
        fallback_currency=fallback_currency,
    )
