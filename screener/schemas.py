"""Pydantic request/response schemas for the Screener API."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class SubmissionCreate(BaseModel):
    startup_name: str = Field(min_length=1)
    founder_email: str = ""
    website: str = ""
    sector: str = ""
    hq_location: str = ""
    description: str = ""
    founding_date: str = ""
    team_info: str = ""
    traction_info: str = ""
    business_model: str = ""
    funding_ask: str = ""
    use_of_funds: str = ""


class SubmissionUpdate(BaseModel):
    startup_name: str | None = None
    website: str | None = None
    sector: str | None = None
    hq_location: str | None = None
    description: str | None = None
    founding_date: str | None = None
    team_info: str | None = None
    traction_info: str | None = None
    business_model: str | None = None
    funding_ask: str | None = None
    use_of_funds: str | None = None


class StatusUpdate(BaseModel):
    status: str


class DocumentOut(BaseModel):
    id: int
    submission_id: int
    file_name: str
    file_type: str
    storage_path: str
    file_size: int | None = None
    uploaded_at: str | None = None


class SubmissionOut(BaseModel):
    id: int
    startup_name: str
    founder_email: str
    website: str
    sector: str
    hq_location: str
    description: str
    founding_date: str
    team_info: str
    traction_info: str
    business_model: str
    funding_ask: str
    use_of_funds: str
    status: str
    created_at: str | None = None
    updated_at: str | None = None
    has_report: bool = False
    overall_score: float | None = None


class SubmissionDetail(SubmissionOut):
    documents: list[DocumentOut] = []


class CriterionScoreOut(BaseModel):
    criterion: str
    key: str
    weight: float
    score: int
    rationale: str


class FlagOut(BaseModel):
    flag: str
    category: str
    evidence: str


class ReportOut(BaseModel):
    id: int
    submission_id: int
    overall_score: float
    recommendation: str
    executive_summary: str
    criteria_scores: list[CriterionScoreOut]
    green_flags: list[FlagOut]
    red_flags: list[FlagOut]
    market_research: dict[str, Any]
    detailed_rationale: str
    raw_responses: dict[str, Any] = {}
    llm_model: str = ""
    generated_at: str | None = None


class AnalyzeRequest(BaseModel):
    submission_id: int
    model: str | None = None


class CriterionOut(BaseModel):
    key: str
    name: str
    weight: float
    description: str
    scoring_guide: dict[int, str]


class FlagTemplateOut(BaseModel):
    flag: str
    category: str
    polarity: str
    description: str
