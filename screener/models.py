from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

SUBMISSION_STATUSES = ("submitted", "in_review", "analyzing", "completed", "rejected")
DOCUMENT_TYPES = ("pitch_deck", "financials", "other")


class Base(DeclarativeBase):
    pass


class Submission(Base):
    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    founder_email: Mapped[str] = mapped_column(String(300), default="")
    startup_name: Mapped[str] = mapped_column(String(300), nullable=False)
    website: Mapped[str] = mapped_column(String(500), default="")
    sector: Mapped[str] = mapped_column(String(200), default="")
    hq_location: Mapped[str] = mapped_column(String(200), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    founding_date: Mapped[str] = mapped_column(String(50), default="")
    team_info: Mapped[str] = mapped_column(Text, default="")
    traction_info: Mapped[str] = mapped_column(Text, default="")
    business_model: Mapped[str] = mapped_column(Text, default="")
    funding_ask: Mapped[str] = mapped_column(Text, default="")
    use_of_funds: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(30), default="submitted")  # see SUBMISSION_STATUSES
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    documents: Mapped[list[Document]] = relationship(
        "Document", back_populates="submission", cascade="all, delete-orphan",
    )
    reports: Mapped[list[AnalysisReport]] = relationship(
        "AnalysisReport", back_populates="submission", cascade="all, delete-orphan",
    )


class Document(Base):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(Integer, ForeignKey("submissions.id"), nullable=False)
    file_name: Mapped[str] = mapped_column(String(300), nullable=False)
    file_type: Mapped[str] = mapped_column(String(30), default="pitch_deck")  # see DOCUMENT_TYPES
    storage_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    submission: Mapped[Submission] = relationship("Submission", back_populates="documents")


class AnalysisReport(Base):
    __tablename__ = "analysis_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(Integer, ForeignKey("submissions.id"), nullable=False)
    overall_score: Mapped[float] = mapped_column(Float, default=60.0)
    recommendation: Mapped[str] = mapped_column(Text, default="")
    executive_summary: Mapped[str] = mapped_column(Text, default="")
    criteria_scores_json: Mapped[str] = mapped_column(Text, default="[]")
    green_flags_json: Mapped[str] = mapped_column(Text, default="[]")
    red_flags_json: Mapped[str] = mapped_column(Text, default="[]")
    market_research_json: Mapped[str] = mapped_column(Text, default="{}")
    detailed_rationale: Mapped[str] = mapped_column(Text, default="")
    raw_responses_json: Mapped[str] = mapped_column(Text, default="{}")
    llm_model: Mapped[str] = mapped_column(String(100), default="")
    generated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    submission: Mapped[Submission] = relationship("Submission", back_populates="reports")
