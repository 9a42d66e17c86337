"""Receipt extraction pipeline: image in, ledger-ready record out.

The result is a *proposal*: anything below the review threshold, or read
without a trusted provider, is flagged for a person to verify before it is
booked.  Only an unsupported input format raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from nota_ocr.core.config import Settings, get_settings
from nota_ocr.core.image_processing import PreprocessedImage, RawImage, preprocess

from ..ocr.audit import AttemptRecord, AttemptRecorder, AttemptSink, log_attempt
from ..ocr.errors import UnsupportedFormatError
from ..ocr.orchestrator import ProviderPolicy, recognize
from ..ocr.providers import MANUAL_PROVIDER_ID, BaseProvider, ProviderResult, build_providers
from .contracts import ReceiptRecord
from .extractor import ExtractedFields, ExtractionConfig, extract
from .scoring import DEFAULT_WEIGHTS, ExtractionFactors, ScoreWeights, score

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES = frozenset({"image/jpeg", "image/jpg", "image/pjpeg", "image/png"})
# Providers only understand the registered names.
CANONICAL_MIME_TYPES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}


@dataclass(frozen=True)
class PipelineConfig:
    """Every tunable of one pipeline run, fixed at construction time."""

    policy: ProviderPolicy
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    weights: ScoreWeights = DEFAULT_WEIGHTS
    resize_max_px: int = 1200
    binarize_threshold: int = 180
    review_threshold: float = 0.4

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelineConfig:
        return cls(
            policy=ProviderPolicy.from_settings(settings),
            extraction=ExtractionConfig.from_settings(settings),
            resize_max_px=settings.ocr_resize_max_px,
            binarize_threshold=settings.ocr_binarize_threshold,
            review_threshold=settings.ocr_review_threshold,
        )


@dataclass(frozen=True)
class ReceiptExtraction:
    """Pipeline output: the record plus diagnostics for the caller."""

    record: ReceiptRecord
    provider_result: ProviderResult
    fields: ExtractedFields
    factors: ExtractionFactors
    attempts: tuple[AttemptRecord, ...] = ()
    needs_review: bool = False
    notes: str = ""
    preprocessing_degraded: bool = False


def normalize_mime_type(mime_type: str | None) -> str:
    return (mime_type or "").split(";", 1)[0].strip().lower()


def ensure_supported(image_bytes: bytes, mime_type: str | None) -> RawImage:
    """Fail fast on anything that is not a JPEG or PNG upload."""
    normalized = normalize_mime_type(mime_type)
    if normalized not in SUPPORTED_MIME_TYPES:
        raise UnsupportedFormatError(mime_type)
    return RawImage(content=image_bytes, mime_type=CANONICAL_MIME_TYPES.get(normalized, normalized))


def review_decision(
    provider_result: ProviderResult,
    record: ReceiptRecord,
    review_threshold: float,
) -> tuple[bool, str]:
    """Decide whether a person must check *record*, with a note saying why.

    The first matching cause wins. A record that needs no review still gets an
    informational note.
    """
    source = provider_result.source_provider
    if source is not None:
        return True, (
            f"Image quality too low for automatic OCR ({source}, confidence "
            f"{round(provider_result.confidence * 100)}%). Please verify the data manually."
        )
    if provider_result.needs_review or record.ocr_provider_id == MANUAL_PROVIDER_ID:
        return True, "No automated text available. Please enter the data manually."
    if record.confidence_score < review_threshold:
        return True, (
            f"Extraction confidence low ({record.confidence_score * 100:.1f}%). "
            "Please verify the data manually."
        )
    return False, (
        f"Data extracted with {provider_result.provider_id} OCR "
        f"(confidence {round(provider_result.confidence * 100)}%)."
    )


def build_record(
    fields: ExtractedFields,
    factors: ExtractionFactors,
    provider_result: ProviderResult,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> ReceiptRecord:
    return ReceiptRecord(
        amount=fields.amount,
        merchant_name=fields.merchant_name,
        date=fields.date,
        category=fields.category,
        confidence_score=score(factors, weights),
        ocr_provider_id=provider_result.provider_id,
    )


class ReceiptExtractionService:
    """Stateless pipeline; one instance can serve any number of concurrent runs."""

    def __init__(
        self,
        config: PipelineConfig,
        providers: Mapping[str, BaseProvider],
        *,
        sink: AttemptSink | None = None,
    ) -> None:
        self.config = config
        self.providers = dict(providers)
        self.sink = sink or log_attempt

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ReceiptExtractionService:
        settings = settings or get_settings()
        config = PipelineConfig.from_settings(settings)
        return cls(config, build_providers(config.policy.provider_ids, settings))

    async def extract_receipt(self, image_bytes: bytes, mime_type: str | None) -> ReceiptExtraction:
        raw = ensure_supported(image_bytes, mime_type)

        image: PreprocessedImage = await asyncio.to_thread(
            preprocess,
            raw,
            max_dimension=self.config.resize_max_px,
            threshold=self.config.binarize_threshold,
        )

        recorder = AttemptRecorder(forward_to=self.sink)
        provider_result = await recognize(
            image.content,
            self.config.policy,
            providers=self.providers,
            mime_type=image.mime_type,
            sink=recorder,
        )

        fields, factors = extract(provider_result.raw_text, self.config.extraction)
        record = build_record(fields, factors, provider_result, self.config.weights)

        needs_review, notes = review_decision(provider_result, record, self.config.review_threshold)

        logger.info(
            "Receipt extracted via %s: amount=%s merchant=%r date=%s category=%s score=%.2f review=%s",
            record.ocr_provider_id,
            record.amount,
            record.merchant_name,
            record.date,
            record.category,
            record.confidence_score,
            needs_review,
        )

        return ReceiptExtraction(
            record=record,
            provider_result=provider_result,
            fields=fields,
            factors=factors,
            attempts=tuple(recorder.records),
            needs_review=needs_review,
            notes=notes,
            preprocessing_degraded=image.degraded,
        )


async def extract_receipt(
    image_bytes: bytes,
    mime_type: str | None,
    *,
    settings: Settings | None = None,
    providers: Mapping[str, BaseProvider] | None = None,
    sink: AttemptSink | None = None,
) -> ReceiptRecord:
    """``ExtractReceipt(imageBytes, mimeType) -> ReceiptRecord``."""
    settings = settings or get_settings()
    config = PipelineConfig.from_settings(settings)
    if providers is None:
        providers = build_providers(config.policy.provider_ids, settings)
    service = ReceiptExtractionService(config, providers, sink=sink)
    result = await service.extract_receipt(image_bytes, mime_type)
    return result.record
