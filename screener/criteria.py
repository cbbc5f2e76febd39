"""Screening criteria catalog and deterministic score aggregation.

Seven weighted criteria, each scored 1-5 by the scoring stage.  The overall
0-100 score falls back to :func:`compute_weighted_score` whenever the
recommendation stage cannot supply one.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

log = logging.getLogger(__name__)

NEUTRAL_SCORE = 3
FALLBACK_RATIONALE = "Automated scoring unavailable — re-analyze to generate accurate scores."
MISSING_RATIONALE = "No score returned for this criterion — neutral midpoint applied."


@dataclass(frozen=True)
class Criterion:
    key: str
    name: str
    weight: float
    description: str
    scoring_guide: dict[int, str]


SCREENING_CRITERIA: tuple[Criterion, ...] = (
    Criterion(
        key="market_opportunity",
        name="Market Opportunity",
        weight=1.5,
        description="Total addressable market size, growth rate, timing, and market dynamics",
        scoring_guide={
            1: "Tiny or shrinking market (<$100M TAM), no clear growth trajectory",
            2: "Small market ($100M-$500M TAM) with limited growth potential",
            3: "Moderate market ($500M-$1B TAM) with steady growth",
            4: "Large market ($1B-$10B TAM) with strong growth trends",
            5: "Massive market (>$10B TAM) with explosive growth and perfect timing",
        },
    ),
    Criterion(
        key="team_quality",
        name="Team Quality",
        weight=1.5,
        description="Founder experience, domain expertise, team complementarity, and execution capability",
        scoring_guide={
            1: "No relevant experience, solo founder with gaps, no domain expertise",
            2: "Limited experience, incomplete team, some domain knowledge",
            3: "Decent experience, reasonable team composition, adequate expertise",
            4: "Strong experience, complementary team, deep domain expertise",
            5: "Exceptional founders with proven track records, world-class team, unfair advantage",
        },
    ),
    Criterion(
        key="traction",
        name="Traction",
        weight=1.3,
        description="User growth, revenue, engagement metrics, and product-market fit indicators",
        scoring_guide={
            1: "No product, no users, just an idea",
            2: "MVP built, <100 users, no revenue",
            3: "Working product, growing user base, early revenue or strong engagement",
            4: "Strong growth metrics (>20% MoM), meaningful revenue, clear PMF signals",
            5: "Exceptional growth (>50% MoM), significant revenue, undeniable PMF",
        },
    ),
    Criterion(
        key="business_model",
        name="Business Model",
        weight=1.2,
        description="Revenue model, unit economics, margins, scalability, and path to profitability",
        scoring_guide={
            1: "No clear revenue model, unsustainable economics",
            2: "Revenue model identified but unproven, unclear unit economics",
            3: "Reasonable revenue model, acceptable unit economics, path to profitability visible",
            4: "Strong revenue model, good unit economics (LTV/CAC > 3x), scalable",
            5: "Exceptional unit economics, multiple revenue streams, highly scalable with clear profitability",
        },
    ),
    Criterion(
        key="defensibility",
        name="Defensibility",
        weight=1.0,
        description="Intellectual property, network effects, switching costs, and competitive moat",
        scoring_guide={
            1: "No defensibility, easily replicated, no barriers to entry",
            2: "Minor first-mover advantage, limited IP or differentiation",
            3: "Some defensibility through technology, brand, or early network effects",
            4: "Strong moat via patents, network effects, data advantage, or high switching costs",
            5: "Exceptional defensibility with multiple compounding moats",
        },
    ),
    Criterion(
        key="execution_risk",
        name="Execution Risk",
        weight=1.0,
        description="Technical complexity, go-to-market risk, regulatory exposure, and operational challenges",
        scoring_guide={
            1: "Extremely high risk: unproven tech, regulatory minefield, impossible GTM",
            2: "High risk: significant technical or market uncertainties",
            3: "Moderate risk: manageable challenges with clear mitigation strategies",
            4: "Low risk: proven tech stack, clear GTM, manageable regulatory environment",
            5: "Very low risk: straightforward execution with proven playbook",
        },
    ),
    Criterion(
        key="valuation_fairness",
        name="Valuation Fairness",
        weight=0.8,
        description="Valuation relative to stage, traction, market, and comparable deals",
        scoring_guide={
            1: "Extremely overvalued relative to stage and traction (>5x above comps)",
            2: "Somewhat overvalued, aggressive terms for the stage",
            3: "Fair valuation aligned with stage and market conditions",
            4: "Attractive valuation with favorable terms for investors",
            5: "Exceptional value - significantly undervalued relative to opportunity",
        },
    ),
)

CRITERIA_BY_KEY = {c.key: c for c in SCREENING_CRITERIA}


def compute_weighted_score(
    scores: list[dict[str, Any]],
    criteria: tuple[Criterion, ...] = SCREENING_CRITERIA,
) -> int:
    """Weighted average of 1-5 criterion scores, scaled to 0-100.

    Criteria with no matching ``key`` in *scores* count as the neutral 3.
    """
    by_key = {s.get("key"): s.get("score") for s in scores if isinstance(s, dict)}
    num = den = 0.0
    for criterion in criteria:
        score = _coerce_score(by_key.get(criterion.key))
        num += criterion.weight * (score if score is not None else NEUTRAL_SCORE)
        den += criterion.weight
    avg = num / den if den > 0 else NEUTRAL_SCORE
    return round(avg / 5 * 100)


def fallback_criteria_scores(rationale: str = FALLBACK_RATIONALE) -> list[dict[str, Any]]:
    """Neutral score set used when the scoring stage is unavailable."""
    return [_neutral_entry(c, rationale) for c in SCREENING_CRITERIA]


def normalize_criteria_scores(raw: Any) -> list[dict[str, Any]]:
    """Coerce model output into exactly one entry per catalog criterion.

    Accepts ``{"scores": [...]}`` or a bare list.  Catalog name and weight
    are authoritative; scores are clamped to integers in [1, 5].
    """
    if isinstance(raw, dict):
        raw = raw.get("scores", [])
    if not isinstance(raw, list):
        raise ValueError(f"Expected a list of criterion scores, got {type(raw).__name__}")

    by_key: dict[str, dict[str, Any]] = {}
    for entry in raw:
        if isinstance(entry, dict) and entry.get("key") in CRITERIA_BY_KEY:
            by_key.setdefault(entry["key"], entry)

    result: list[dict[str, Any]] = []
    for criterion in SCREENING_CRITERIA:
        entry = by_key.get(criterion.key)
        score = _coerce_score(entry.get("score")) if entry else None
        if score is None:
            if entry is not None:
                log.warning("Invalid score %r for %s, using neutral midpoint", entry.get("score"), criterion.key)
            result.append(_neutral_entry(criterion, MISSING_RATIONALE))
            continue
        result.append({
            "criterion": criterion.name,
            "key": criterion.key,
            "weight": criterion.weight,
            "score": max(1, min(5, round(score))),
            "rationale": str(entry.get("rationale") or ""),
        })
    return result


def _neutral_entry(criterion: Criterion, rationale: str) -> dict[str, Any]:
    return {
        "criterion": criterion.name,
        "key": criterion.key,
        "weight": criterion.weight,
        "score": NEUTRAL_SCORE,
        "rationale": rationale,
    }


def _coerce_score(val: Any) -> float | None:
    if isinstance(val, bool) or val is None:
        return None
    try:
        score = float(val)
    except (TypeError, ValueError):
        return None
    return score if math.isfinite(score) else None
