"""Green/red flag catalog.

The catalog is prompt context only; detected flags are never filtered
against it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FLAG_CATEGORIES = ("Team", "Traction", "Market", "Product", "Business Model", "Deal Terms")


@dataclass(frozen=True)
class FlagTemplate:
    flag: str
    category: str
    polarity: str  # "green" | "red"
    description: str


def _g(flag: str, category: str, description: str) -> FlagTemplate:
    return FlagTemplate(flag, category, "green", description)


def _r(flag: str, category: str, description: str) -> FlagTemplate:
    return FlagTemplate(flag, category, "red", description)


FLAG_CATALOG: tuple[FlagTemplate, ...] = (
    _g("Exceptional founding team", "Team", "Founders have deep domain expertise, prior startup experience, or exceptional credentials"),
    _g("Strong co-founder dynamics", "Team", "Complementary skills, long working history, clear role division"),
    _g("Technical founder", "Team", "At least one founder can build the core product"),
    _g("Domain expert founder", "Team", "Founder has lived the problem and understands it deeply"),
    _g("Repeat founder", "Team", "Founder has previous startup experience (especially successful exits)"),
    _g("Strong product-market fit", "Traction", "Users love the product, high retention, organic growth"),
    _g("Impressive growth metrics", "Traction", "Week-over-week or month-over-month growth exceeding 15-20%"),
    _g("Revenue generating", "Traction", "Already making money, even if small amounts"),
    _g("High user engagement", "Traction", "Users are active, returning frequently, and spending time on product"),
    _g("Organic growth", "Traction", "Growth driven by word-of-mouth rather than paid acquisition"),
    _g("Large addressable market", "Market", "TAM exceeds $1B with clear path to capture meaningful share"),
    _g("Market timing is right", "Market", "Structural changes make this the right time for this solution"),
    _g("Underserved market segment", "Market", "Clear gap in existing solutions for target customers"),
    _g("Defensible technology", "Product", "Patent-worthy innovation, proprietary algorithms, or unique data"),
    _g("Strong network effects", "Product", "Product gets more valuable as more users join"),
    _g("10x better than alternatives", "Product", "Dramatically better experience than existing solutions"),
    _g("Strong unit economics", "Business Model", "LTV/CAC ratio above 3x, healthy margins"),
    _g("Recurring revenue model", "Business Model", "SaaS, subscription, or other predictable revenue streams"),
    _g("Capital efficient", "Business Model", "Achieving significant milestones with minimal capital"),
    _g("Reasonable valuation", "Deal Terms", "Valuation aligned with stage, traction, and market"),
    _g("Investor-friendly terms", "Deal Terms", "Standard terms without unusual protections or restrictions"),
    _r("Solo non-technical founder", "Team", "Single founder without technical skills building a tech product"),
    _r("Founder-market mismatch", "Team", "Founders lack relevant domain experience or understanding"),
    _r("Co-founder conflict signs", "Team", "Evidence of disagreement, unclear roles, or recent team changes"),
    _r("Part-time founders", "Team", "Founders not fully committed to the venture"),
    _r("No traction after launch", "Traction", "Product launched but failed to gain meaningful users or revenue"),
    _r("Vanity metrics", "Traction", "Reporting downloads/signups without retention or engagement data"),
    _r("Declining metrics", "Traction", "Key metrics trending downward"),
    _r("Small or shrinking market", "Market", "TAM below $500M or market is declining"),
    _r("Winner-take-all market with incumbent", "Market", "Dominant player exists with strong network effects"),
    _r("Heavy regulatory risk", "Market", "Significant regulatory uncertainty that could kill the business"),
    _r("No clear differentiation", "Product", "Product is easily replicated with no meaningful moat"),
    _r("Technology risk", "Product", "Core technology is unproven or faces fundamental challenges"),
    _r("Poor unit economics", "Business Model", "CAC exceeds LTV, negative margins with no clear path to improvement"),
    _r("No clear revenue model", "Business Model", "No plan for monetization or unrealistic revenue assumptions"),
    _r("High burn rate", "Business Model", "Spending significantly exceeds revenue with long runway to profitability"),
    _r("Overvalued for stage", "Deal Terms", "Valuation significantly above comparable deals for the stage"),
    _r("Unfavorable cap table", "Deal Terms", "Too many investors, excessive dilution, or complicated structure"),
    _r("Non-standard terms", "Deal Terms", "Unusual provisions that could harm investor interests"),
)


def flags_by_polarity(polarity: str) -> list[FlagTemplate]:
    return [f for f in FLAG_CATALOG if f.polarity == polarity]


def normalize_flags(raw: Any) -> dict[str, list[dict[str, str]]]:
    """Keep well-formed ``{flag, category, evidence}`` entries from model output."""
    if not isinstance(raw, dict):
        raise ValueError(f"Expected an object with green_flags/red_flags, got {type(raw).__name__}")
    return {
        "green_flags": _clean_flag_list(raw.get("green_flags")),
        "red_flags": _clean_flag_list(raw.get("red_flags")),
    }


def _clean_flag_list(items: Any) -> list[dict[str, str]]:
    if not isinstance(items, list):
        return []
    cleaned = []
    for item in items:
        if not isinstance(item, dict) or not str(item.get("flag") or "").strip():
            continue
        cleaned.append({
            "flag": str(item["flag"]).strip(),
            "category": str(item.get("category") or ""),
            "evidence": str(item.get("evidence") or ""),
        })
    return cleaned
