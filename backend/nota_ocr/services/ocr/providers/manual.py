"""Manual provider: signals that no automated text is available."""

from __future__ import annotations

from .base import MANUAL_PROVIDER_ID, BaseProvider, ProviderResult


class ManualProvider(BaseProvider):
    name = MANUAL_PROVIDER_ID

    async def recognize(self, image: bytes, *, mime_type: str = "image/png") -> ProviderResult:
        return ProviderResult(
            provider_id=self.name,
            raw_text="",
            confidence=0.0,
            elapsed_ms=0,
            succeeded=True,
        )
