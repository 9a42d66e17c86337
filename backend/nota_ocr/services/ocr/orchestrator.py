"""Provider orchestration: early accept, best-effort fallback.

Providers are tried in policy order.  The first successful attempt whose
confidence clears the acceptance threshold wins.  Failures, timeouts and
low-confidence reads fall through to the next provider.  When the list is
exhausted the highest-confidence read is returned re-tagged as ``manual``
so the caller routes it to human review; if nothing produced text at all the
empty manual sentinel is returned.  This function never raises for provider
problems; cancellation of the caller still propagates.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
import warnings
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from nota_ocr.core.config import Settings

from .audit import (
    OUTCOME_ACCEPTED,
    OUTCOME_BELOW_THRESHOLD,
    OUTCOME_FAILED,
    OUTCOME_TIMEOUT,
    AttemptRecord,
    AttemptSink,
    log_attempt,
)
from .errors import (
    AllProvidersExhaustedWarning,
    ProviderError,
    ProviderInvocationError,
    ProviderTimeoutError,
)
from .providers.base import MANUAL_PROVIDER_ID, BaseProvider, ProviderResult, manual_sentinel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderPolicy:
    """Ordered provider ids plus the per-run acceptance rules."""

    provider_ids: tuple[str, ...]
    accept_threshold: float = 0.3
    timeout_seconds: float = 20.0

    @classmethod
    def from_settings(cls, settings: Settings) -> ProviderPolicy:
        return cls(
            provider_ids=tuple(settings.ocr_provider_order),
            accept_threshold=settings.ocr_accept_threshold,
            timeout_seconds=settings.ocr_provider_timeout_seconds,
        )


async def invoke_provider(
    provider_id: str,
    provider: BaseProvider,
    image: bytes,
    *,
    mime_type: str,
    timeout_seconds: float,
) -> ProviderResult:
    """Run one provider under *timeout_seconds*, normalizing every failure to ``ProviderError``."""
    try:
        result = await asyncio.wait_for(
            provider.recognize(image, mime_type=mime_type),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        raise ProviderTimeoutError(provider_id, timeout_seconds) from exc
    except ProviderError:
        raise
    except Exception as exc:
        raise ProviderInvocationError(provider_id, f"{type(exc).__name__}: {exc}") from exc

    confidence = max(0.0, min(1.0, float(result.confidence)))
    return dataclasses.replace(result, provider_id=provider_id, confidence=confidence)


async def recognize(
    image: bytes,
    policy: ProviderPolicy,
    *,
    providers: Mapping[str, BaseProvider],
    mime_type: str = "image/png",
    sink: AttemptSink | None = None,
) -> ProviderResult:
    """Return the first good-enough recognition result, or the best fallback."""
    sink = sink or log_attempt
    attempts: list[ProviderResult] = []

    for provider_id in _unique(policy.provider_ids):
        provider = providers.get(provider_id)
        if provider is None:
            logger.warning("Provider %r is not configured – skipping", provider_id)
            continue

        t0 = time.monotonic()
        try:
            result = await invoke_provider(
                provider_id,
                provider,
                image,
                mime_type=mime_type,
                timeout_seconds=policy.timeout_seconds,
            )
        except ProviderError as exc:
            elapsed = round((time.monotonic() - t0) * 1000)
            outcome = OUTCOME_TIMEOUT if isinstance(exc, ProviderTimeoutError) else OUTCOME_FAILED
            failed = ProviderResult(
                provider_id=provider_id,
                raw_text="",
                confidence=0.0,
                elapsed_ms=elapsed,
                succeeded=False,
                error=str(exc),
            )
            attempts.append(failed)
            sink(AttemptRecord(provider_id, 0.0, elapsed, outcome, error=str(exc)))
            continue

        attempts.append(result)
        if result.confidence >= policy.accept_threshold:
            sink(AttemptRecord(provider_id, result.confidence, result.elapsed_ms, OUTCOME_ACCEPTED))
            return result

        sink(AttemptRecord(provider_id, result.confidence, result.elapsed_ms, OUTCOME_BELOW_THRESHOLD))

    return _exhausted(attempts, policy)


def _unique(provider_ids: Sequence[str]) -> list[str]:
    ordered: list[str] = []
    for provider_id in provider_ids:
        key = provider_id.lower().strip()
        if key and key not in ordered:
            ordered.append(key)
    return ordered


def _exhausted(attempts: list[ProviderResult], policy: ProviderPolicy) -> ProviderResult:
    with_text = [a for a in attempts if a.succeeded and a.has_text]
    warnings.warn(
        AllProvidersExhaustedWarning(
            f"No provider reached confidence {policy.accept_threshold:.2f} "
            f"after {len(attempts)} attempt(s)"
        ),
        stacklevel=3,
    )

    if not with_text:
        logger.warning("All %d OCR attempts produced no text – manual entry required", len(attempts))
        return manual_sentinel()

    # max() keeps the earliest attempt on ties
    best = max(with_text, key=lambda a: a.confidence)
    logger.warning(
        "All OCR providers below threshold – using %s text (confidence %.2f) for review",
        best.provider_id,
        best.confidence,
    )
    return dataclasses.replace(
        best,
        provider_id=MANUAL_PROVIDER_ID,
        needs_review=True,
        source_provider=best.provider_id,
    )
