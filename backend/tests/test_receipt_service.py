from __future__ import annotations

import warnings

import pytest

from nota_ocr.core.config import Settings
from nota_ocr.services.ocr.audit import OUTCOME_ACCEPTED, OUTCOME_TIMEOUT, AttemptRecorder
from nota_ocr.services.ocr.errors import AllProvidersExhaustedWarning, UnsupportedFormatError
from nota_ocr.services.ocr.orchestrator import ProviderPolicy
from nota_ocr.services.ocr.providers.base import ProviderResult
from nota_ocr.services.ocr.providers.manual import ManualProvider
from nota_ocr.services.receipt.contracts import ReceiptRecord
from nota_ocr.services.receipt.service import (
    PipelineConfig,
    ReceiptExtractionService,
    ensure_supported,
    extract_receipt,
    normalize_mime_type,
    review_decision,
)
from tests.conftest import SAMPLE_RECEIPT, StubProvider, make_image_bytes


def _service(*providers, threshold=0.3, timeout=1.0, sink=None):
    policy = ProviderPolicy(
        tuple(p.name for p in providers),
        accept_threshold=threshold,
        timeout_seconds=timeout,
    )
    return ReceiptExtractionService(PipelineConfig(policy), {p.name: p for p in providers}, sink=sink)


class TestMimeTypes:
    def test_normalize_strips_parameters(self):
        assert normalize_mime_type("Image/JPEG; charset=binary") == "image/jpeg"
        assert normalize_mime_type(None) == ""

    @pytest.mark.parametrize(
        ("mime", "expected"),
        [
            ("image/jpeg", "image/jpeg"),
            ("image/jpg", "image/jpeg"),
            ("image/pjpeg", "image/jpeg"),
            ("image/png", "image/png"),
            ("IMAGE/PNG", "image/png"),
        ],
    )
    def test_supported_mime_is_canonical(self, mime, expected):
        raw = ensure_supported(b"bytes", mime)
        assert raw.mime_type == expected

    @pytest.mark.parametrize("mime", ["application/pdf", "image/gif", "image/webp", "", None])
    def test_unsupported(self, mime):
        with pytest.raises(UnsupportedFormatError):
            ensure_supported(b"bytes", mime)

    def test_empty_bytes_are_not_a_format_error(self):
        raw = ensure_supported(b"", "image/png")
        assert raw.content == b""


@pytest.mark.asyncio
async def test_full_pipeline_with_trusted_provider():
    gemini = StubProvider("gemini", SAMPLE_RECEIPT, 0.85)
    service = _service(gemini, StubProvider("tesseract", "x", 0.9))

    result = await service.extract_receipt(make_image_bytes(), "image/png")

    record = result.record
    assert record.amount == 71500
    assert record.merchant_name == "WARUNG MAKAN SEDERHANA"
    assert record.date == "2026-01-20"
    assert record.category == "Konsumsi"
    assert record.confidence_score == 1.0
    assert record.ocr_provider_id == "gemini"
    assert not result.needs_review
    assert not result.preprocessing_degraded
    assert [a.outcome for a in result.attempts] == [OUTCOME_ACCEPTED]


@pytest.mark.asyncio
async def test_pdf_is_rejected_before_any_provider_runs():
    gemini = StubProvider("gemini", SAMPLE_RECEIPT, 0.85)
    with pytest.raises(UnsupportedFormatError):
        await _service(gemini).extract_receipt(b"%PDF-1.7", "application/pdf")
    assert gemini.calls == 0


@pytest.mark.asyncio
async def test_exhausted_providers_yield_manual_record_for_review():
    slow = StubProvider("gemini", "never", 0.9, delay=1.0)
    weak = StubProvider("tesseract", "TOTAL Rp 12.000\nnasi", 0.1)
    recorder = AttemptRecorder()
    service = _service(slow, weak, timeout=0.05, sink=recorder)

    with pytest.warns(AllProvidersExhaustedWarning):
        result = await service.extract_receipt(make_image_bytes(), "image/jpeg")

    assert result.record.ocr_provider_id == "manual"
    assert result.record.amount == 12000
    assert result.provider_result.source_provider == "tesseract"
    assert result.needs_review
    assert recorder.records[0].outcome == OUTCOME_TIMEOUT
    assert recorder.records == list(result.attempts)


@pytest.mark.asyncio
async def test_low_score_needs_review_even_when_accepted():
    stub = StubProvider("gemini", "20/01/2026\n12345", 0.9)
    result = await _service(stub).extract_receipt(make_image_bytes(), "image/png")
    assert result.record.ocr_provider_id == "gemini"
    assert result.record.confidence_score < 0.4
    assert result.needs_review


@pytest.mark.asyncio
async def test_corrupt_image_still_reaches_providers():
    stub = StubProvider("gemini", SAMPLE_RECEIPT, 0.85)
    result = await _service(stub).extract_receipt(b"not really a png", "image/png")
    assert result.preprocessing_degraded
    assert stub.calls == 1
    assert result.record.amount == 71500


@pytest.mark.asyncio
async def test_module_level_extract_receipt_uses_settings():
    settings = Settings(ocr_provider_order_raw="tesseract,manual", ocr_accept_threshold=0.5)
    providers = {"tesseract": StubProvider("tesseract", SAMPLE_RECEIPT, 0.6), "manual": ManualProvider()}

    record = await extract_receipt(make_image_bytes(), "image/png", settings=settings, providers=providers)

    assert record.ocr_provider_id == "tesseract"
    assert record.amount == 71500


@pytest.mark.asyncio
async def test_manual_only_policy_returns_empty_record():
    settings = Settings(ocr_provider_order_raw="manual")
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", AllProvidersExhaustedWarning)
        record = await extract_receipt(make_image_bytes(), "image/png", settings=settings)
    assert record.ocr_provider_id == "manual"
    assert record.amount is None
    assert record.merchant_name is None
    assert record.category == "Other"
    assert record.confidence_score == 0.0


def test_pipeline_config_from_settings():
    settings = Settings(
        ocr_provider_order_raw="Tesseract, gemini",
        ocr_accept_threshold=0.5,
        ocr_resize_max_px=800,
        ocr_merchant_scan_lines=5,
    )
    config = PipelineConfig.from_settings(settings)
    assert config.policy.provider_ids == ("tesseract", "gemini")
    assert config.policy.accept_threshold == 0.5
    assert config.resize_max_px == 800
    assert config.extraction.merchant_scan_lines == 5


@pytest.mark.asyncio
async def test_empty_bytes_yield_manual_record():
    settings = Settings(ocr_provider_order_raw="manual")
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", AllProvidersExhaustedWarning)
        service = ReceiptExtractionService.from_settings(settings)
        result = await service.extract_receipt(b"", "image/png")
    assert result.record.ocr_provider_id == "manual"
    assert result.record.amount is None
    assert result.needs_review
    assert result.preprocessing_degraded


@pytest.mark.asyncio
async def test_degraded_jpeg_alias_reaches_providers_as_image_jpeg():
    stub = StubProvider("gemini", SAMPLE_RECEIPT, 0.85)
    result = await _service(stub).extract_receipt(b"not really a jpeg", "image/jpg")
    assert result.preprocessing_degraded
    assert stub.mime_types == ["image/jpeg"]


@pytest.mark.asyncio
async def test_accepted_record_has_informational_note():
    stub = StubProvider("gemini", SAMPLE_RECEIPT, 0.85)
    result = await _service(stub).extract_receipt(make_image_bytes(), "image/png")
    assert not result.needs_review
    assert result.notes == "Data extracted with gemini OCR (confidence 85%)."


@pytest.mark.asyncio
async def test_exhausted_note_names_source_provider():
    weak = StubProvider("tesseract", "TOTAL Rp 12.000\nnasi", 0.12)
    with pytest.warns(AllProvidersExhaustedWarning):
        result = await _service(weak).extract_receipt(make_image_bytes(), "image/png")
    assert result.needs_review
    assert "Image quality too low" in result.notes
    assert "tesseract" in result.notes
    assert "12%" in result.notes


@pytest.mark.asyncio
async def test_no_text_note_asks_for_manual_entry():
    broken = StubProvider("gemini", error=RuntimeError("HTTP 500"))
    with pytest.warns(AllProvidersExhaustedWarning):
        result = await _service(broken).extract_receipt(make_image_bytes(), "image/png")
    assert result.needs_review
    assert result.notes == "No automated text available. Please enter the data manually."


@pytest.mark.asyncio
async def test_low_score_note_reports_extraction_confidence():
    stub = StubProvider("gemini", "20/01/2026\n12345", 0.9)
    result = await _service(stub).extract_receipt(make_image_bytes(), "image/png")
    assert result.needs_review
    assert result.notes == "Extraction confidence low (20.0%). Please verify the data manually."


class TestReviewDecision:
    def _record(self, provider_id="gemini", score=1.0):
        return ReceiptRecord(confidence_score=score, ocr_provider_id=provider_id)

    def test_score_at_bar_needs_no_review(self):
        result = ProviderResult(provider_id="gemini", raw_text="x", confidence=0.85)
        needs_review, _ = review_decision(result, self._record(score=0.4), 0.4)
        assert not needs_review

    def test_exhaustion_wins_over_low_score(self):
        result = ProviderResult(
            provider_id="manual",
            raw_text="x",
            confidence=0.1,
            needs_review=True,
            source_provider="tesseract",
        )
        needs_review, notes = review_decision(result, self._record("manual", 0.0), 0.4)
        assert needs_review
        assert notes.startswith("Image quality too low for automatic OCR (tesseract, confidence 10%)")
