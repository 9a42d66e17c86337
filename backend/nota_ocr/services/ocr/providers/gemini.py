"""Google Gemini vision provider."""

from __future__ import annotations

import base64
import logging
import time

from .base import BaseProvider, ProviderResult

logger = logging.getLogger(__name__)

TRANSCRIBE_PROMPT = (
    "Extract ALL text from this receipt/invoice image. "
    "Return ONLY the raw text content, preserving line breaks and structure. "
    "Do not add any commentary or analysis."
)

# The API reports no confidence for plain transcription.
GEMINI_CONFIDENCE = 0.85


class GeminiProvider(BaseProvider):
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-2.0-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")

    async def recognize(self, image: bytes, *, mime_type: str = "image/png") -> ProviderResult:
        import httpx

        t0 = time.monotonic()

        async with httpx.AsyncClient() as client:
            resp = await client.post(
                f"{self._base_url}/models/{self._model}:generateContent",
                headers={
                    "x-goog-api-key": self._api_key,
                    "Content-Type": "application/json",
                },
                json={
                    "contents": [
                        {
                            "parts": [
                                {"text": TRANSCRIBE_PROMPT},
                                {
                                    "inline_data": {
                                        "mime_type": mime_type,
                                        "data": base64.b64encode(image).decode("ascii"),
                                    }
                                },
                            ]
                        }
                    ],
                    "generationConfig": {"temperature": 0.0},
                },
            )
            resp.raise_for_status()
            data = resp.json()

        elapsed = (time.monotonic() - t0) * 1000
        text = _candidate_text(data)
        if not text.strip():
            raise ValueError("Gemini returned empty result")

        return ProviderResult(
            provider_id=self.name,
            raw_text=text,
            confidence=GEMINI_CONFIDENCE,
            elapsed_ms=round(elapsed),
        )


def _candidate_text(data: dict) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts)
