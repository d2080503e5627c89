"""
Scan Router

POST /api/scan-receipt  - receipt photo → normalized items + totals

Nothing is stored: the response is everything the client needs to open a
split.  Scanner problems come back as HTTP 500 with a short {message} the
client can show next to a "retake" button.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from models.schemas import ScanResponse, ScannedItem
from services.normalizer import NormalizationResult
from services.scanner_service import ScannerClient, ScannerError, get_scanner, scan_receipt

logger = logging.getLogger("dinesplit.scan")
router = APIRouter()

GENERIC_FAILURE = "Failed to process receipt. Try a clearer photo."


def to_scan_response(result: NormalizationResult) -> ScanResponse:
    totals = result.totals
    return ScanResponse(
        items=[ScannedItem(description=i.description, price=i.price, quantity=i.quantity)
               for i in result.items],
        total=totals.total,
        sub_total=totals.sub_total,
        service_charge=totals.service_charge,
        tip=totals.tip,
        currency=totals.currency,
        low_confidence=result.low_confidence,
        warning=result.warning,
    )


@router.post("/scan-receipt", response_model=ScanResponse)
async def scan_receipt_endpoint(
    receipt: Optional[UploadFile] = File(None),
    fallback_currency: Optional[str] = Form(None, alias="fallbackCurrency"),
    scanner: Optional[ScannerClient] = Depends(get_scanner),
):
    """
    Accept a receipt image (multipart field `receipt`) and return the cleaned
    line items.  `fallbackCurrency` is used when the scanner cannot tell.
    """
    if receipt is None:
        return JSONResponse(status_code=400, content={"message": "No receipt image provided"})

    contents = await receipt.read()
    if not contents:
        return JSONResponse(status_code=400, content={"message": "No receipt image provided"})

    try:
        result = await scan_receipt(
            contents,
            receipt.filename or "receipt.jpg",
            receipt.content_type,
            fallback_currency=fallback_currency,
            scanner=scanner,
        )
    except ScannerError as e:
        logger.warning("Scan failed for %s: %s", receipt.filename, e)
        return JSONResponse(status_code=500, content={"message": str(e) or GENERIC_FAILURE})
    except Exception:
        logger.exception("Unexpected error scanning %s", receipt.filename)
        return JSONResponse(status_code=500, content={"message": GENERIC_FAILURE})

    logger.info("Scanned %s: %d items, %s %.2f%s",
                receipt.filename, len(result.items), result.totals.currency,
                result.totals.items_subtotal, " (low confidence)" if result.low_confidence else "")
    return to_scan_response(result)
