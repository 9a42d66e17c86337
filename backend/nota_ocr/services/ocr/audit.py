"""OCR attempt audit: structured records of every provider attempt."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

logger = logging.getLogger(__name__)

OUTCOME_ACCEPTED = "accepted"
OUTCOME_BELOW_THRESHOLD = "below_threshold"
OUTCOME_FAILED = "failed"
OUTCOME_TIMEOUT = "timeout"


@dataclass(frozen=True)
class AttemptRecord:
    provider_id: str
    confidence: float
    elapsed_ms: int
    outcome: str
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


AttemptSink = Callable[[AttemptRecord], None]


def log_attempt(record: AttemptRecord) -> None:
    """Default sink: one log line per attempt, fields also passed via ``extra``."""
    level = logging.INFO if record.outcome == OUTCOME_ACCEPTED else logging.WARNING
    logger.log(
        level,
        "OCR attempt provider=%s outcome=%s confidence=%.2f elapsed_ms=%d error=%s",
        record.provider_id,
        record.outcome,
        record.confidence,
        record.elapsed_ms,
        record.error or "-",
        extra={"ocr_attempt": record.as_dict()},
    )


class AttemptRecorder:
    """In-memory sink, also forwards to another sink when given one."""

    def __init__(self, forward_to: AttemptSink | None = None) -> None:
        self.records: list[AttemptRecord] = []
        self._forward_to = forward_to

    def __call__(self, record: AttemptRecord) -> None:
        self.records.append(record)
        if self._forward_to is not None:
            self._forward_to(record)

    @property
    def provider_ids(self) -> list[str]:
        return [r.provider_id for r in self.records]
