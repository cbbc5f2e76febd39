"""Recover structured JSON from free-form model output.

Strategies run in order and the first success wins:

1. ``direct``   — the whole text is JSON
2. ``fenced``   — the first ```json fenced block
3. ``embedded`` — the first object/array literal surrounded by prose

No strategy touches the network, so the chain is testable on plain strings.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_decoder = json.JSONDecoder()


class StructuredParseError(ValueError):
    """Model output contained no recoverable structured content."""


@dataclass(frozen=True)
class ParseResult:
    ok: bool
    value: Any = None
    strategy: str | None = None
    error: str | None = None


def _parse_direct(text: str) -> Any:
    return json.loads(text)


def _parse_fenced(text: str) -> Any:
    m = _FENCE_RE.search(text)
    if not m:
        raise ValueError("no fenced block")
    return json.loads(m.group(1).strip())


def _parse_embedded(text: str) -> Any:
    for m in re.finditer(r"[{\[]", text):
        try:
            value, _ = _decoder.raw_decode(text, m.start())
        except json.JSONDecodeError:
            continue
        return value
    raise ValueError("no embedded object or array literal")


STRATEGIES: tuple[tuple[str, Callable[[str], Any]], ...] = (
    ("direct", _parse_direct),
    ("fenced", _parse_fenced),
    ("embedded", _parse_embedded),
)


def parse_structured(text: str | None) -> ParseResult:
    """Run the strategy chain over *text* and return a tagged result."""
    stripped = (text or "").strip()
    if not stripped:
        return ParseResult(ok=False, error="empty response")
    for name, strategy in STRATEGIES:
        try:
            return ParseResult(ok=True, value=strategy(stripped), strategy=name)
        except ValueError:
            continue
    return ParseResult(ok=False, error="Could not extract structured content from model response")


def require_structured(text: str | None) -> Any:
    """Like :func:`parse_structured` but raises :class:`StructuredParseError` on failure."""
    result = parse_structured(text)
    if not result.ok:
        raise StructuredParseError(f"{result.error}: {(text or '')[:200]}")
    return result.value
