"""Image normalization for receipt OCR.

Turns an uploaded photo into a single-channel, bounded-size, binarized PNG
using Pillow.  Any failure degrades to passing the original bytes through,
so the rest of the pipeline always has something to read.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, ImageFilter, ImageOps

from nota_ocr.services.ocr.errors import PreprocessingError

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------

DEFAULT_MAX_DIMENSION = 1200
# Tuned for low-contrast yellow/colored paper stock.
DEFAULT_BINARIZE_THRESHOLD = 180

OUTPUT_CONTENT_TYPE = "image/png"


@dataclass(frozen=True)
class RawImage:
    """Uploaded bytes plus the mime type the caller declared."""

    content: bytes
    mime_type: str


@dataclass(frozen=True)
class PreprocessedImage:
    """Bytes ready for a recognition engine."""

    content: bytes
    mime_type: str
    width: Optional[int] = None
    height: Optional[int] = None
    degraded: bool = False


def _bounded_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Scale (*width*, *height*) so the longer side is at most *max_dimension*."""
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height
    ratio = max_dimension / longest
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def normalize_image(
    content: bytes,
    *,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    threshold: int = DEFAULT_BINARIZE_THRESHOLD,
) -> tuple[bytes, int, int]:
    """Grayscale, autocontrast, sharpen, bound, binarize; return PNG bytes and size.

    Raises ``PreprocessingError`` on anything Pillow cannot handle.
    """
    try:
        with Image.open(io.BytesIO(content)) as opened:
            img = ImageOps.exif_transpose(opened)  # auto-orient
            img = img.convert("L")
            img = ImageOps.autocontrast(img)
            img = img.filter(ImageFilter.SHARPEN)

            new_size = _bounded_size(img.width, img.height, max_dimension)
            if new_size != img.size:
                logger.debug("Resizing %sx%s -> %sx%s", img.width, img.height, *new_size)
                img = img.resize(new_size, Image.LANCZOS)

            img = img.point(lambda px: 255 if px >= threshold else 0)

            buf = io.BytesIO()
            img.save(buf, format="PNG", optimize=True)
            return buf.getvalue(), img.width, img.height
    except Exception as exc:
        raise PreprocessingError(f"{type(exc).__name__}: {exc}") from exc


def preprocess(
    image: RawImage,
    *,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    threshold: int = DEFAULT_BINARIZE_THRESHOLD,
) -> PreprocessedImage:
    """Normalize *image* for text recognition; never raises."""
    try:
        content, width, height = normalize_image(
            image.content,
            max_dimension=max_dimension,
            threshold=threshold,
        )
    except PreprocessingError:
        logger.warning("Failed to preprocess receipt image, using original", exc_info=True)
        return PreprocessedImage(
            content=image.content,
            mime_type=image.mime_type,
            degraded=True,
        )

    logger.info(
        "Preprocessed receipt image: %d -> %d bytes (%dx%d, threshold %d)",
        len(image.content),
        len(content),
        width,
        height,
        threshold,
    )
    return PreprocessedImage(
        content=content,
        mime_type=OUTPUT_CONTENT_TYPE,
        width=width,
        height=height,
    )
