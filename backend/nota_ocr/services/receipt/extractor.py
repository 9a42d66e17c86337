"""Heuristic receipt text → structured fields.

Pure and deterministic: no I/O, no provider calls.  Amount and date are
read with ordered, tagged rule lists where every rule carries its own
parser; merchant comes from the first lines of the receipt; category from an
ordered keyword table (first match wins).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date

from nota_ocr.core.config import (
    DEFAULT_CATEGORY,
    DEFAULT_CATEGORY_KEYWORDS,
    DEFAULT_MONTH_NAMES,
    Settings,
)

from .scoring import ExtractionFactors

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionConfig:
    merchant_scan_lines: int = 3
    category_keywords: Mapping[str, Sequence[str]] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_KEYWORDS)
    )
    month_names: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_MONTH_NAMES))
    default_category: str = DEFAULT_CATEGORY

    @classmethod
    def from_settings(cls, settings: Settings) -> ExtractionConfig:
        return cls(
            merchant_scan_lines=settings.ocr_merchant_scan_lines,
            category_keywords=settings.ocr_category_keywords,
            month_names=settings.ocr_month_names,
        )


@dataclass(frozen=True)
class AmountCandidate:
    value: int
    source_pattern_id: str
    matched_span: tuple[int, int]


@dataclass(frozen=True)
class ExtractedFields:
    amount: int | None = None
    merchant_name: str | None = None
    date: str | None = None
    category: str = DEFAULT_CATEGORY
    amount_candidates: tuple[AmountCandidate, ...] = ()


# ---------------------------------------------------------------------------
# Text cleaning
# ---------------------------------------------------------------------------

_NOISE_RE = re.compile(r"[|_~`]")
# Keep printable ASCII and Latin-1; OCR output outside that is noise.
_NON_LATIN_RE = re.compile(r"[^\x20-\x7E\u00A0-\u00FF\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(raw_text: str) -> str:
    """Strip OCR noise and collapse all whitespace to single spaces."""
    text = _NOISE_RE.sub(" ", raw_text)
    text = _NON_LATIN_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


# ---------------------------------------------------------------------------
# Amount
# ---------------------------------------------------------------------------

_NUMBER = r"(\d[\d.,]*)"
_CURRENCY = r"(?:rp\.?|idr)?"
_MAGNITUDES = {"ribu": 1_000, "rb": 1_000, "juta": 1_000_000, "jt": 1_000_000}


def parse_amount(raw: str, multiplier: int = 1) -> int | None:
    """``"71.500"`` → 71500.  Thousands and decimal separators are both dropped."""
    digits = raw.replace(".", "").replace(",", "")
    if not digits.isdigit():
        return None
    value = int(digits) * multiplier
    return value if value > 0 else None


def _parse_number_group(match: re.Match[str]) -> int | None:
    return parse_amount(match.group(1))


def _parse_number_with_unit(match: re.Match[str]) -> int | None:
    unit = match.group(2).lower()
    return parse_amount(match.group(1), _MAGNITUDES.get(unit, 1))


@dataclass(frozen=True)
class AmountRule:
    rule_id: str
    pattern: re.Pattern[str]
    parse: Callable[[re.Match[str]], int | None] = _parse_number_group

    def candidates(self, text: str) -> list[AmountCandidate]:
        found: list[AmountCandidate] = []
        for match in self.pattern.finditer(text):
            value = self.parse(match)
            if value is not None:
                found.append(AmountCandidate(value, self.rule_id, match.span()))
        return found


AMOUNT_RULES: tuple[AmountRule, ...] = (
    AmountRule(
        "grand_total",
        re.compile(rf"(?:grand\s*)?total\s*(?:bayar|belanja)?\s*[:=]?\s*{_CURRENCY}\s*{_NUMBER}", re.I),
    ),
    AmountRule(
        "jumlah",
        re.compile(
            rf"(?:jumlah\s*(?:akhir|bayar)?|netto|total\s*akhir)\s*[:=]?\s*{_CURRENCY}\s*{_NUMBER}", re.I
        ),
    ),
    AmountRule(
        "down_payment",
        re.compile(rf"(?:\bdp\b|uang\s*muka|panjar)\s*[:=]?\s*{_CURRENCY}\s*{_NUMBER}", re.I),
    ),
    AmountRule("currency_prefix", re.compile(rf"(?:\brp\.?|\bidr)\s*{_NUMBER}", re.I)),
    AmountRule(
        "currency_suffix",
        re.compile(rf"{_NUMBER}\s*(rupiah|idr|ribu|rb|juta|jt)\b", re.I),
        _parse_number_with_unit,
    ),
)


def find_amount_candidates(
    text: str, rules: Sequence[AmountRule] = AMOUNT_RULES
) -> list[AmountCandidate]:
    candidates: list[AmountCandidate] = []
    for rule in rules:
        candidates.extend(rule.candidates(text))
    return candidates


def select_amount(candidates: Sequence[AmountCandidate]) -> int | None:
    """Grand-total heuristic: the largest figure on the receipt is the total."""
    if not candidates:
        return None
    return max(c.value for c in candidates)


# ---------------------------------------------------------------------------
# Merchant
# ---------------------------------------------------------------------------

MERCHANT_PATTERNS: tuple[re.Pattern[str], ...] = (
    # Legal-entity / shop-type prefix; the prefix stays part of the name.
    re.compile(
        r"^((?:pt|cv|ud|toko|warung|rm|rumah\s+makan|kedai|apotek|koperasi)\.?\s+\S.{0,58})$",
        re.I,
    ),
    re.compile(r"^([A-Z][A-Za-z0-9&'.,\- ]{2,})$"),
    re.compile(r"^(.{3,30})$"),
)

MERCHANT_EXCLUDE_RE = re.compile(
    r"\b(?:receipt|invoice|date|total|cashier|thank\s*you|struk|nota|kwitansi|faktur"
    r"|tanggal|tgl|kasir|terima\s*kasih|jl|jalan|alamat|telp|telepon)\b",
    re.I,
)
_LETTER_RE = re.compile(r"[A-Za-z]")


def _is_merchant_like(name: str) -> bool:
    return (
        len(name) >= 3
        and _LETTER_RE.search(name) is not None
        and MERCHANT_EXCLUDE_RE.search(name) is None
    )


def find_merchant(raw_text: str, scan_lines: int = 3) -> str | None:
    lines = [_WHITESPACE_RE.sub(" ", _NOISE_RE.sub(" ", line)).strip() for line in raw_text.splitlines()]
    lines = [line for line in lines if line]
    for line in lines[:scan_lines]:
        for pattern in MERCHANT_PATTERNS:
            match = pattern.match(line)
            if match and _is_merchant_like(match.group(1).strip()):
                return match.group(1).strip()
    return None


# ---------------------------------------------------------------------------
# Date
# ---------------------------------------------------------------------------


def _safe_date(year: int, month: int, day: int) -> str | None:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _expand_year(raw: str) -> int:
    return 2000 + int(raw) if len(raw) == 2 else int(raw)


def _parse_dmy(match: re.Match[str]) -> str | None:
    return _safe_date(_expand_year(match.group(3)), int(match.group(2)), int(match.group(1)))


def _parse_ymd(match: re.Match[str]) -> str | None:
    return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))


@dataclass(frozen=True)
class DateRule:
    rule_id: str
    pattern: re.Pattern[str]
    parse: Callable[[re.Match[str]], str | None]

    def first(self, text: str) -> str | None:
        for match in self.pattern.finditer(text):
            parsed = self.parse(match)
            if parsed is not None:
                return parsed
        return None


def build_date_rules(month_names: Mapping[str, str]) -> tuple[DateRule, ...]:
    names = sorted(month_names, key=len, reverse=True)
    month_alt = "|".join(re.escape(name) for name in names)

    def _parse_month_name(match: re.Match[str]) -> str | None:
        month = month_names.get(match.group(2).lower())
        if month is None:
            return None
        return _safe_date(int(match.group(3)), int(month), int(match.group(1)))

    rules = [
        DateRule("dmy", re.compile(r"(?<!\d)(\d{1,2})[/\-](\d{1,2})[/\-](\d{4}|\d{2})(?!\d)"), _parse_dmy),
        DateRule("ymd", re.compile(r"(?<!\d)(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})(?!\d)"), _parse_ymd),
    ]
    if month_alt:
        rules.append(
            DateRule(
                "day_month_name",
                re.compile(rf"(?<!\d)(\d{{1,2}})\s+({month_alt})\.?\s+(\d{{4}})(?!\d)", re.I),
                _parse_month_name,
            )
        )
    return tuple(rules)


def find_date(text: str, rules: Sequence[DateRule]) -> str | None:
    for rule in rules:
        found = rule.first(text)
        if found is not None:
            return found
    return None


# ---------------------------------------------------------------------------
# Category
# ---------------------------------------------------------------------------


def find_category(
    text: str,
    table: Mapping[str, Sequence[str]],
    default: str = DEFAULT_CATEGORY,
) -> str:
    lower = text.lower()
    for category, keywords in table.items():
        if any(keyword and keyword in lower for keyword in keywords):
            return category
    return default


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def extract(
    text: str, config: ExtractionConfig | None = None
) -> tuple[ExtractedFields, ExtractionFactors]:
    """Map recognized *text* to receipt fields and the factors that score them."""
    config = config or ExtractionConfig()
    cleaned = clean_text(text or "")

    candidates = find_amount_candidates(cleaned)
    amount = select_amount(candidates)
    merchant = find_merchant(text or "", config.merchant_scan_lines)
    found_date = find_date(cleaned, build_date_rules(config.month_names))
    category = find_category(cleaned, config.category_keywords, config.default_category)

    fields = ExtractedFields(
        amount=amount,
        merchant_name=merchant,
        date=found_date,
        category=category,
        amount_candidates=tuple(candidates),
    )
    factors = ExtractionFactors(
        has_amount=amount is not None,
        has_merchant=merchant is not None,
        has_date=found_date is not None,
        has_category=category != config.default_category,
    )
    logger.debug(
        "Extracted amount=%s merchant=%r date=%s category=%s from %d candidate(s)",
        amount,
        merchant,
        found_date,
        category,
        len(candidates),
    )
    return fields, factors
