#!/usr/bin/env python3
"""
Run the receipt extraction pipeline on a local image and print the record as JSON.

Usage (from backend/):
  PYTHONPATH=. python scripts/extract_receipt.py nota.jpg
  PYTHONPATH=. python scripts/extract_receipt.py nota.png --providers tesseract,manual
  PYTHONPATH=. python scripts/extract_receipt.py nota.jpg --verbose

Provider credentials come from the environment (GEMINI_API_KEY, TESSERACT_CMD, ...).
Exit code 2 means the file type is not supported.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import os
import sys

# Run from repo root or backend; ensure backend is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nota_ocr.core.config import Settings
from nota_ocr.services.ocr.errors import UnsupportedFormatError
from nota_ocr.services.receipt.service import ReceiptExtractionService


def main() -> int:
    parser = argparse.ArgumentParser(description="Extract structured data from a receipt image.")
    parser.add_argument("image", help="Path to a JPEG or PNG receipt photo.")
    parser.add_argument(
        "--providers",
        default=None,
        help="Comma-separated provider order, e.g. 'gemini,tesseract,manual'.",
    )
    parser.add_argument("--threshold", type=float, default=None, help="Provider acceptance threshold.")
    parser.add_argument("--verbose", action="store_true", help="Log every provider attempt.")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, object] = {}
    if args.providers:
        overrides["ocr_provider_order_raw"] = args.providers
    if args.threshold is not None:
        overrides["ocr_accept_threshold"] = args.threshold
    settings = Settings(**overrides)

    mime_type, _ = mimetypes.guess_type(args.image)
    with open(args.image, "rb") as fh:
        content = fh.read()

    service = ReceiptExtractionService.from_settings(settings)
    try:
        result = asyncio.run(service.extract_receipt(content, mime_type))
    except UnsupportedFormatError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    output = result.record.model_dump()
    output["needs_review"] = result.needs_review
    output["notes"] = result.notes
    output["attempts"] = [a.as_dict() for a in result.attempts]
    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
