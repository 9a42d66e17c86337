"""Error taxonomy for the receipt OCR pipeline.

Only ``UnsupportedFormatError`` ever reaches the caller.  Everything else is
recovered inside the pipeline and shows up as a degraded image, a fallback
provider, or a low confidence score.
"""

from __future__ import annotations


class ReceiptOcrError(Exception):
    """Base class for pipeline errors."""


class UnsupportedFormatError(ReceiptOcrError):
    """Input mime type is not JPEG or PNG; raised before preprocessing."""

    def __init__(self, mime_type: str | None) -> None:
        self.mime_type = mime_type
        super().__init__(f"Unsupported image format: {mime_type!r}")


class PreprocessingError(ReceiptOcrError):
    """Image normalization failed; the original bytes are used instead."""


class ProviderError(ReceiptOcrError):
    """A recognition provider attempt did not produce a result."""

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"{provider_id}: {message}")


class ProviderTimeoutError(ProviderError):
    def __init__(self, provider_id: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(provider_id, f"timed out after {timeout_seconds:.1f}s")


class ProviderInvocationError(ProviderError):
    """Any provider-specific failure (HTTP error, missing binary, bad payload)."""


class AllProvidersExhaustedWarning(UserWarning):
    """No provider cleared the acceptance threshold; the record needs review."""
