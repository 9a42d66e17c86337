"""Abstract base for all text-recognition providers."""

from __future__ import annotations

import abc
from dataclasses import dataclass

MANUAL_PROVIDER_ID = "manual"


@dataclass(frozen=True)
class ProviderResult:
    """Immutable result of one recognition attempt."""

    provider_id: str
    raw_text: str
    confidence: float
    elapsed_ms: int = 0
    succeeded: bool = True
    error: str | None = None
    needs_review: bool = False
    source_provider: str | None = None

    @property
    def has_text(self) -> bool:
        return bool(self.raw_text and self.raw_text.strip())


def manual_sentinel() -> ProviderResult:
    """Result telling the caller that no automated text is available."""
    return ProviderResult(
        provider_id=MANUAL_PROVIDER_ID,
        raw_text="",
        confidence=0.0,
        elapsed_ms=0,
        succeeded=False,
        needs_review=True,
    )


class BaseProvider(abc.ABC):
    """Contract that every recognition provider must implement."""

    name: str = "base"

    @abc.abstractmethod
    async def recognize(self, image: bytes, *, mime_type: str = "image/png") -> ProviderResult:
        """Read *image* and return a ``ProviderResult``.

        Implementations raise on failure; the orchestrator normalizes the
        error and applies the timeout.
        """
