"""Stage executors for the analysis pipeline.

Every executor returns a :class:`StageOutcome` and never raises for a
gateway or parse failure: it logs, substitutes a labelled neutral fallback
and marks the outcome ``degraded``.  Cancellation is not caught.
"""
from __future__ import annotations

import asyncio
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from screener.chunking import analyze_document
from screener.config import Settings
from screener.criteria import compute_weighted_score, fallback_criteria_scores, normalize_criteria_scores
from screener.flags import normalize_flags
from screener.gateway import InferenceGateway, ServiceOverloadedError
from screener.parsing import parse_structured, require_structured
from screener.progress import ProgressPublisher
from screener.prompts import (
    EXTRACTION_SYSTEM,
    EXTRACTION_USER,
    FLAGS_SYSTEM,
    RECOMMENDATION_SYSTEM,
    RESEARCH_SYSTEM,
    SCORING_SYSTEM,
    build_flags_user,
    build_recommendation_user,
    build_research_user,
    build_scoring_user,
)
from screener.quality import (
    EXTRACTION_FAILED,
    NO_DOCUMENT,
    NO_MEANINGFUL_CONTENT,
    compute_extraction_stats,
    is_meaningful_extraction,
)

log = logging.getLogger(__name__)

RESEARCH_UNAVAILABLE = "Market research unavailable — re-analyze to generate this section."
PARTIAL_RECOMMENDATION = "Analysis partially completed. Review available criteria scores."
PARTIAL_SUMMARY = "Some analysis steps were unavailable. Re-analyze for a complete report."


@dataclass
class StageOutcome:
    name: str
    value: Any
    raw: str = ""
    degraded: bool = False
    error: str | None = None
    notice: str | None = None  # user-facing reason, set only for overload exhaustion


@dataclass
class StageContext:
    submission_id: int
    model: str
    startup_name: str
    sector: str
    description: str
    founder_inputs: str
    gateway: InferenceGateway
    settings: Settings
    progress: ProgressPublisher
    load_document: Callable[[], Awaitable[bytes]] | None = None
    outcomes: dict[str, StageOutcome] = field(default_factory=dict)

    def value(self, name: str) -> Any:
        return self.outcomes[name].value


def _degrade(ctx: StageContext, name: str, fallback: Any, exc: Exception, raw: str = "") -> StageOutcome:
    log.warning(
        "Stage %s degraded for submission %s: %s | response snippet: %r",
        name, ctx.submission_id, exc, raw[:500],
    )
    return StageOutcome(
        name=name, value=fallback, raw=raw, degraded=True, error=str(exc),
        notice=str(exc) if isinstance(exc, ServiceOverloadedError) else None,
    )


# ---------------------------------------------------------------------------
# Stage 1: document extraction
# ---------------------------------------------------------------------------


async def run_extraction(ctx: StageContext) -> StageOutcome:
    if ctx.load_document is None:
        return StageOutcome(name="extraction", value=NO_DOCUMENT)

    raw = ""
    try:
        pdf_bytes = await ctx.load_document()

        def chunk_progress(done: int, total: int) -> None:
            ctx.progress.step(1, f"Extracting pitch deck... (part {done} of {total})")

        raw = await asyncio.wait_for(
            analyze_document(
                ctx.gateway, EXTRACTION_SYSTEM, EXTRACTION_USER, pdf_bytes,
                model=ctx.model, max_tokens=4096, on_chunk_progress=chunk_progress,
            ),
            ctx.settings.extraction_timeout_seconds,
        )
    except Exception as exc:
        return _degrade(ctx, "extraction", EXTRACTION_FAILED, exc, raw)

    parsed = parse_structured(raw)
    value = json.dumps(parsed.value, indent=2) if parsed.ok else raw
    return StageOutcome(name="extraction", value=value, raw=raw)


def apply_quality_gate(ctx: StageContext, outcome: StageOutcome) -> StageOutcome:
    """Replace an extraction too thin to trust with the explicit no-content marker."""
    if outcome.value == NO_DOCUMENT or is_meaningful_extraction(outcome.value):
        return outcome
    log.warning(
        "Extraction quality gate failed for submission %s. Content snippet: %r",
        ctx.submission_id, str(outcome.value)[:200],
    )
    if not outcome.degraded:
        ctx.progress.step(
            1,
            "Pitch deck extraction returned insufficient content — "
            "proceeding with founder-provided data only.",
        )
    return StageOutcome(
        name=outcome.name, value=NO_MEANINGFUL_CONTENT, raw=outcome.raw,
        degraded=outcome.degraded, error=outcome.error, notice=outcome.notice,
    )


def extraction_stats(outcome: StageOutcome) -> dict[str, int]:
    return compute_extraction_stats(outcome.value).to_dict()


# ---------------------------------------------------------------------------
# Stage 2: market research
# ---------------------------------------------------------------------------


def fallback_research() -> dict[str, Any]:
    return {
        "market_size": "Unable to determine",
        "competitors": [],
        "trends": [],
        "sources": [],
        "summary": RESEARCH_UNAVAILABLE,
    }


async def run_research(ctx: StageContext) -> StageOutcome:
    raw = ""
    try:
        raw = await ctx.gateway.complete(
            RESEARCH_SYSTEM,
            build_research_user(ctx.startup_name, ctx.sector or "Technology", ctx.description),
            model=ctx.model, max_tokens=3000,
        )
    except Exception as exc:
        return _degrade(ctx, "research", fallback_research(), exc)

    parsed = parse_structured(raw)
    if not parsed.ok or not isinstance(parsed.value, dict):
        fallback = {**fallback_research(), "summary": raw}
        return _degrade(ctx, "research", fallback, ValueError(parsed.error or "research is not an object"), raw)
    return StageOutcome(name="research", value={**fallback_research(), **parsed.value}, raw=raw)


# ---------------------------------------------------------------------------
# Stage 3: criteria scoring
# ---------------------------------------------------------------------------


def research_text(ctx: StageContext) -> str:
    return json.dumps(ctx.value("research"), indent=2)


async def run_scoring(ctx: StageContext) -> StageOutcome:
    raw = ""
    try:
        raw = await ctx.gateway.complete(
            SCORING_SYSTEM,
            build_scoring_user(ctx.founder_inputs, ctx.value("extraction"), research_text(ctx)),
            model=ctx.model, max_tokens=4096,
        )
        scores = normalize_criteria_scores(require_structured(raw))
    except Exception as exc:
        return _degrade(ctx, "scoring", fallback_criteria_scores(), exc, raw)
    return StageOutcome(name="scoring", value=scores, raw=raw)


# ---------------------------------------------------------------------------
# Stage 4: flag detection
# ---------------------------------------------------------------------------


async def run_flag_detection(ctx: StageContext) -> StageOutcome:
    raw = ""
    try:
        raw = await ctx.gateway.complete(
            FLAGS_SYSTEM,
            build_flags_user(ctx.founder_inputs, ctx.value("extraction"), research_text(ctx)),
            model=ctx.model, max_tokens=4096,
        )
        flags = normalize_flags(require_structured(raw))
    except Exception as exc:
        return _degrade(ctx, "flags", {"green_flags": [], "red_flags": []}, exc, raw)
    return StageOutcome(name="flags", value=flags, raw=raw)


# ---------------------------------------------------------------------------
# Stage 5: recommendation
# ---------------------------------------------------------------------------


def _coerce_overall(val: Any, fallback: int) -> float:
    if isinstance(val, bool):
        return fallback
    try:
        score = float(val)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(score):
        return fallback
    return max(0.0, min(100.0, score))


async def run_recommendation(ctx: StageContext) -> StageOutcome:
    weighted = compute_weighted_score(ctx.value("scoring"))
    fallback = {
        "overall_score": weighted,
        "recommendation": PARTIAL_RECOMMENDATION,
        "executive_summary": PARTIAL_SUMMARY,
        "detailed_rationale": "",
    }
    raw = ""
    try:
        raw = await ctx.gateway.complete(
            RECOMMENDATION_SYSTEM,
            build_recommendation_user(
                ctx.founder_inputs,
                json.dumps(ctx.value("scoring"), indent=2),
                json.dumps(ctx.value("flags"), indent=2),
                research_text(ctx),
            ),
            model=ctx.model, max_tokens=4096,
        )
    except Exception as exc:
        return _degrade(ctx, "recommendation", fallback, exc)

    parsed = parse_structured(raw)
    if not parsed.ok or not isinstance(parsed.value, dict):
        partial = {**fallback, "detailed_rationale": raw}
        return _degrade(ctx, "recommendation", partial, ValueError(parsed.error or "not an object"), raw)

    data = parsed.value
    return StageOutcome(
        name="recommendation",
        value={
            "overall_score": _coerce_overall(data.get("overall_score"), weighted),
            "recommendation": str(data.get("recommendation") or PARTIAL_RECOMMENDATION),
            "executive_summary": str(data.get("executive_summary") or PARTIAL_SUMMARY),
            "detailed_rationale": str(data.get("detailed_rationale") or ""),
        },
        raw=raw,
    )


StageExecutor = Callable[[StageContext], Awaitable[StageOutcome]]
