"""Receipt extraction endpoint."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from nota_ocr.core.config import get_settings
from nota_ocr.services.ocr.errors import UnsupportedFormatError
from nota_ocr.services.receipt.service import ReceiptExtractionService

logger = logging.getLogger(__name__)

router = APIRouter()


class AttemptOut(BaseModel):
    provider_id: str
    confidence: float
    elapsed_ms: int
    outcome: str
    error: str | None = None


class ReceiptExtractResponse(BaseModel):
    amount: int | None
    merchant_name: str | None
    date: str | None
    category: str
    confidence_score: float
    ocr_provider_id: str
    ocr_confidence: float
    needs_review: bool
    notes: str
    attempts: list[AttemptOut]


@lru_cache
def get_receipt_service() -> ReceiptExtractionService:
    return ReceiptExtractionService.from_settings(get_settings())


@router.post(
    "/receipts/extract",
    response_model=ReceiptExtractResponse,
    summary="Extract amount, merchant, date and category from a receipt photo",
)
async def extract_receipt_endpoint(
    file: UploadFile = File(...),
    service: ReceiptExtractionService = Depends(get_receipt_service),
):
    settings = get_settings()

    # One byte past the limit is enough to tell the upload is too large.
    content = await file.read(settings.receipt_max_upload_bytes + 1)
    if not content:
        raise HTTPException(400, "Empty file")
    if len(content) > settings.receipt_max_upload_bytes:
        raise HTTPException(413, "File too large")

    try:
        result = await service.extract_receipt(content, file.content_type)
    except UnsupportedFormatError as exc:
        raise HTTPException(415, f"Unsupported image format: {file.content_type}") from exc

    record = result.record
    return ReceiptExtractResponse(
        **record.model_dump(),
        ocr_confidence=result.provider_result.confidence,
        needs_review=result.needs_review,
        notes=result.notes,
        attempts=[AttemptOut(**a.as_dict()) for a in result.attempts],
    )
