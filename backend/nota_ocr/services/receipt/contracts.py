"""Receipt extraction contracts: the record handed to the ledger."""

from __future__ import annotations

from datetime import date as date_type

from pydantic import BaseModel, ConfigDict, field_validator

from nota_ocr.core.config import DEFAULT_CATEGORY


class ReceiptRecord(BaseModel):
    """Structured receipt data plus extraction completeness.

    ``confidence_score`` measures how many fields were found; it is unrelated
    to the OCR provider's own confidence.  ``ocr_provider_id`` is ``"manual"``
    when no provider was trusted and the record must be checked by a person.
    """

    model_config = ConfigDict(frozen=True)

    amount: int | None = None
    merchant_name: str | None = None
    date: str | None = None
    category: str = DEFAULT_CATEGORY
    confidence_score: float = 0.0
    ocr_provider_id: str

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            msg = f"Amount must be positive, got {v}"
            raise ValueError(msg)
        return v

    @field_validator("date")
    @classmethod
    def date_iso(cls, v: str | None) -> str | None:
        if v is not None:
            date_type.fromisoformat(v)
        return v

    @field_validator("confidence_score")
    @classmethod
    def confidence_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            msg = f"Confidence must be 0.0–1.0, got {v}"
            raise ValueError(msg)
        return v
