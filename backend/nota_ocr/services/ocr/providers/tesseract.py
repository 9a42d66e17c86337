"""Local Tesseract provider (pytesseract)."""

from __future__ import annotations

import asyncio
import io
import logging
import time
from typing import Any

from .base import BaseProvider, ProviderResult

logger = logging.getLogger(__name__)


def _normalize_confidence(raw_conf: Any) -> float | None:
    try:
        value = float(raw_conf)
    except (TypeError, ValueError):
        return None
    if value < 0:
        return None
    # Tesseract reports 0..100
    return max(0.0, min(1.0, value / 100.0))


def assemble_text(data: dict[str, list[Any]]) -> tuple[str, float]:
    """Rebuild line-ordered text and mean word confidence from ``image_to_data`` output."""
    lines: dict[tuple[int, int, int], list[str]] = {}
    confidences: list[float] = []

    words = data.get("text", [])
    for idx, word in enumerate(words):
        word = (word or "").strip()
        if not word:
            continue
        key = (
            int(data["block_num"][idx]),
            int(data["par_num"][idx]),
            int(data["line_num"][idx]),
        )
        lines.setdefault(key, []).append(word)
        conf = _normalize_confidence(data["conf"][idx])
        if conf is not None:
            confidences.append(conf)

    text = "\n".join(" ".join(lines[key]) for key in sorted(lines))
    confidence = sum(confidences) / len(confidences) if confidences else 0.0
    return text, round(confidence, 4)


class TesseractProvider(BaseProvider):
    name = "tesseract"

    def __init__(self, *, lang: str = "ind+eng", tesseract_cmd: str = "") -> None:
        self._lang = lang
        if tesseract_cmd:
            import pytesseract

            # Process-wide in pytesseract; set once here, never per call.
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def _run(self, image: bytes) -> dict[str, list[Any]]:
        import pytesseract
        from PIL import Image

        with Image.open(io.BytesIO(image)) as img:
            return pytesseract.image_to_data(
                img,
                lang=self._lang,
                config="--oem 3 --psm 6",
                output_type=pytesseract.Output.DICT,
            )

    async def recognize(self, image: bytes, *, mime_type: str = "image/png") -> ProviderResult:
        t0 = time.monotonic()
        data = await asyncio.to_thread(self._run, image)
        text, confidence = assemble_text(data)
        elapsed = (time.monotonic() - t0) * 1000

        logger.debug("Tesseract read %d chars (confidence %.2f)", len(text), confidence)

        return ProviderResult(
            provider_id=self.name,
            raw_text=text,
            confidence=confidence,
            elapsed_ms=round(elapsed),
        )
