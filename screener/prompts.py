"""Prompt text for every pipeline stage."""
from __future__ import annotations

from screener.criteria import SCREENING_CRITERIA
from screener.flags import FLAG_CATEGORIES, flags_by_polarity

_CATEGORY_CHOICES = "|".join(FLAG_CATEGORIES)


def _criteria_text() -> str:
    blocks = []
    for i, c in enumerate(SCREENING_CRITERIA, start=1):
        guide = "\n".join(f"     {k}/5: {v}" for k, v in sorted(c.scoring_guide.items()))
        blocks.append(f"{i}. {c.name} (weight: {c.weight})\n   Description: {c.description}\n   Scoring:\n{guide}")
    return "\n\n".join(blocks)


def _flags_text(polarity: str) -> str:
    return "\n".join(f"- [{f.category}] {f.flag}: {f.description}" for f in flags_by_polarity(polarity))


# ---------------------------------------------------------------------------
# Stage 1: document extraction
# ---------------------------------------------------------------------------

EXTRACTION_FIELDS = (
    "startup_name", "problem", "solution", "team", "traction", "market",
    "business_model", "competition", "financials", "funding_ask",
    "use_of_funds", "notable_claims",
)

EXTRACTION_SYSTEM = """\
You are an expert startup analyst. Your job is to extract structured information \
from pitch decks and startup documents.
Extract as much relevant information as possible. Be thorough and precise. \
If information is not present, note it as "Not provided"."""

EXTRACTION_USER = """\
Analyze this pitch deck and extract the following information in JSON format:

{
  "startup_name": "name of the startup",
  "problem": "what problem they're solving",
  "solution": "their proposed solution",
  "team": "founder backgrounds, team size, key hires",
  "traction": "users, revenue, growth rates, key metrics",
  "market": "target market, TAM/SAM/SOM estimates, market trends",
  "business_model": "how they make money, pricing, unit economics",
  "competition": "competitors mentioned, differentiation claimed",
  "financials": "revenue, burn rate, projections if mentioned",
  "funding_ask": "amount raising, valuation, instrument type",
  "use_of_funds": "how they plan to use the investment",
  "notable_claims": "any notable claims or achievements mentioned"
}

Return ONLY valid JSON. No markdown formatting."""


def build_chunk_user(user_message: str, chunk_text: str, index: int, total: int) -> str:
    return (
        f"{user_message}\n\n"
        f"[Part {index} of {total} — extract what you can from this portion.]\n\n"
        f"PITCH DECK TEXT:\n{chunk_text}"
    )


def build_merge_user(partials: list[str]) -> str:
    parts = "\n\n".join(f"--- PART {i} ---\n{r}" for i, r in enumerate(partials, start=1))
    return (
        f"Merge the following {len(partials)} partial pitch deck extractions into a single JSON object. "
        "For each field, use the most complete and accurate value found across all parts.\n\n"
        f"{parts}\n\n"
        "Return a single merged JSON with the same schema. Return ONLY valid JSON. No markdown formatting."
    )


# ---------------------------------------------------------------------------
# Stage 2: market research
# ---------------------------------------------------------------------------

RESEARCH_SYSTEM = """\
You are a market research analyst. Based on the startup information provided, \
generate a comprehensive market research summary.
Focus on verifiable facts and reasonable estimates. If you are unsure about \
specific data, note it as an estimate."""


def build_research_user(startup_name: str, sector: str, description: str) -> str:
    return f"""\
Research the following startup's market and competitive landscape:

Startup: {startup_name}
Sector: {sector}
Description: {description}

Provide a comprehensive market research analysis as JSON:
{{
  "market_size": "<TAM estimate with reasoning>",
  "competitors": ["<competitor 1 with brief description>", "<competitor 2>", ...],
  "trends": ["<relevant market trend 1>", "<trend 2>", ...],
  "sources": ["<data source or reference 1>", "<source 2>", ...],
  "summary": "<2-3 paragraph market research summary covering market dynamics, \
competitive landscape, and growth potential>"
}}

Return ONLY valid JSON. No markdown formatting."""


# ---------------------------------------------------------------------------
# Stage 3: criteria scoring
# ---------------------------------------------------------------------------

SCORING_SYSTEM = f"""\
You are a senior angel investor analyst with 20+ years of experience evaluating \
early-stage startups.
You must score this startup on exactly {len(SCREENING_CRITERIA)} criteria, each on a scale of 1-5.
Be rigorous, evidence-based, and honest in your assessment. Do not inflate scores.
Every score must be justified with specific evidence from the provided data.

THE {len(SCREENING_CRITERIA)} SCREENING CRITERIA:

{_criteria_text()}"""


def _context_sections(founder_inputs: str, extracted_data: str, research_data: str) -> str:
    return (
        f"## Founder-Provided Information:\n{founder_inputs}\n\n"
        f"## Extracted from Pitch Deck:\n{extracted_data}\n\n"
        f"## Market Research Findings:\n{research_data}"
    )


def build_scoring_user(founder_inputs: str, extracted_data: str, research_data: str) -> str:
    entries = ",\n".join(
        f'    {{"criterion": "{c.name}", "key": "{c.key}", "weight": {c.weight}, '
        f'"score": <1-5>, "rationale": "<detailed 2-3 sentence rationale with specific evidence>"}}'
        for c in SCREENING_CRITERIA
    )
    return (
        f"Based on ALL the data below, score this startup on each of the "
        f"{len(SCREENING_CRITERIA)} criteria (1-5).\n\n"
        f"{_context_sections(founder_inputs, extracted_data, research_data)}\n\n"
        "Return your analysis as JSON with this exact structure:\n"
        f'{{\n  "scores": [\n{entries}\n  ]\n}}\n\n'
        "Return ONLY valid JSON. No markdown formatting."
    )


# ---------------------------------------------------------------------------
# Stage 4: flag detection
# ---------------------------------------------------------------------------

FLAGS_SYSTEM = f"""\
You are a YC-trained startup evaluator. Your job is to identify green flags \
(strengths/positive signals) and red flags (warnings/concerns) for this startup.

Use the following YC investment framework categories: {", ".join(FLAG_CATEGORIES)}.

Reference flags to look for:

GREEN FLAGS:
{_flags_text("green")}

RED FLAGS:
{_flags_text("red")}

Be specific and evidence-based. Only flag items where you have evidence. \
Each flag must include the supporting evidence."""


def build_flags_user(founder_inputs: str, extracted_data: str, research_data: str) -> str:
    return (
        "Analyze this startup and identify all green flags and red flags.\n\n"
        f"{_context_sections(founder_inputs, extracted_data, research_data)}\n\n"
        "Return as JSON:\n"
        "{\n"
        '  "green_flags": [\n'
        f'    {{"flag": "<flag name>", "category": "<{_CATEGORY_CHOICES}>", '
        '"evidence": "<specific evidence>"}\n'
        "  ],\n"
        '  "red_flags": [\n'
        f'    {{"flag": "<flag name>", "category": "<{_CATEGORY_CHOICES}>", '
        '"evidence": "<specific evidence>"}\n'
        "  ]\n"
        "}\n\n"
        "Return ONLY valid JSON. No markdown formatting."
    )


# ---------------------------------------------------------------------------
# Stage 5: recommendation
# ---------------------------------------------------------------------------

RECOMMENDATION_SYSTEM = """\
You are a senior angel investor making a final investment recommendation.
You have access to the complete analysis including criteria scores, YC-style \
flags, and market research.

Score scale (0-100):
- 0-39: Strong Reject - Critical issues, not investment-ready
- 40-59: Reject or Request More Information - Significant concerns
- 60-79: Deep Dive Required - Promising but needs validation
- 80-100: Recommend to IC - Strong opportunity, ready for investment

Be calibrated. Most startups should score 40-70. Scores above 80 are rare and \
reserved for exceptional opportunities."""


def build_recommendation_user(
    founder_inputs: str, criteria_scores: str, flags: str, research_data: str,
) -> str:
    return f"""\
Generate a final investment recommendation based on all analysis data.

## Founder Information:
{founder_inputs}

## Criteria Scores:
{criteria_scores}

## Green & Red Flags:
{flags}

## Market Research:
{research_data}

Return as JSON:
{{
  "overall_score": <0-100>,
  "recommendation": "<1-2 sentence investment recommendation>",
  "executive_summary": "<3-5 sentence executive summary of the opportunity>",
  "detailed_rationale": "<500-800 word detailed analysis covering strengths, weaknesses, \
key risks, potential upside, and final reasoning for the score>"
}}

Return ONLY valid JSON. No markdown formatting."""
