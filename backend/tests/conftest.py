import asyncio
import io

import pytest
from PIL import Image

from nota_ocr.core.config import get_settings
from nota_ocr.services.ocr.providers.base import BaseProvider, ProviderResult


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Some tests mutate env vars and clear the settings cache. Ensure we don't leak
    # a cached Settings instance (e.g. with a different provider order) across tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class StubProvider(BaseProvider):
    """Deterministic provider for orchestration tests.

    ``delay`` makes the call slow enough to hit a timeout; ``error`` makes it raise.
    """

    def __init__(self, name, text="", confidence=0.0, *, delay=0.0, error=None):
        self.name = name
        self.text = text
        self.confidence = confidence
        self.delay = delay
        self.error = error
        self.calls = 0
        self.mime_types = []
        self.cancelled = False

    async def recognize(self, image, *, mime_type="image/png"):
        self.calls += 1
        self.mime_types.append(mime_type)
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self.error is not None:
            raise self.error
        return ProviderResult(
            provider_id=self.name,
            raw_text=self.text,
            confidence=self.confidence,
            elapsed_ms=5,
        )


def make_image_bytes(size=(200, 300), color=(230, 220, 120), fmt="PNG") -> bytes:
    """Solid-color image with a dark band, encoded in memory."""
    img = Image.new("RGB", size, color)
    band_height = max(1, size[1] // 10)
    img.paste((20, 20, 20), (0, 0, size[0], band_height))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


SAMPLE_RECEIPT = """WARUNG MAKAN SEDERHANA
Jl. Merdeka No. 123
Jakarta Pusat
Tanggal: 20/01/2026
Nasi Goreng        Rp 25.000
Es Teh Manis       Rp 5.000
Subtotal: Rp 65.000
Pajak (10%): Rp 6.500
TOTAL: Rp 71.500
Terima kasih
"""
