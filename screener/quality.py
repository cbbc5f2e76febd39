"""Extraction quality gate.

Decides whether a document extraction carries enough real content to be
passed to later stages, and computes the stats shown to the user.
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any

NO_DOCUMENT = "No pitch deck provided."
EXTRACTION_FAILED = "Pitch deck extraction failed. Analysis based on founder-provided information."
NO_MEANINGFUL_CONTENT = (
    "Pitch deck extraction returned no meaningful content. "
    "Analysis is based exclusively on founder-provided information."
)

EXTRACTION_SENTINELS = (NO_DOCUMENT, "Pitch deck extraction failed.")
PLACEHOLDER_VALUES = frozenset({
    "not provided", "n/a", "na", "none", "unknown", "null", "-", "—", "",
})
MIN_MEANINGFUL_FIELDS = 3
MIN_RAW_LENGTH = 100


@dataclass(frozen=True)
class ExtractionStats:
    fields_total: int
    fields_populated: int
    word_count: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def _is_populated(value: Any) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() not in PLACEHOLDER_VALUES


def _as_object(data: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(data)
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _count_words(text: str) -> int:
    return len(text.split())


def is_meaningful_extraction(data: str) -> bool:
    trimmed = (data or "").strip()
    if trimmed.startswith(EXTRACTION_SENTINELS):
        return False
    obj = _as_object(trimmed)
    if obj is None:
        return len(trimmed) >= MIN_RAW_LENGTH
    return sum(1 for v in obj.values() if _is_populated(v)) >= MIN_MEANINGFUL_FIELDS


def compute_extraction_stats(data: str) -> ExtractionStats:
    """Field counts for structured extractions, word count for everything."""
    obj = _as_object(data)
    if obj is None:
        return ExtractionStats(fields_total=0, fields_populated=0, word_count=_count_words(data or ""))
    values = list(obj.values())
    return ExtractionStats(
        fields_total=len(values),
        fields_populated=sum(1 for v in values if _is_populated(v)),
        word_count=sum(_count_words(str(v)) for v in values if v is not None),
    )
