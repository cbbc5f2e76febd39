"""Shared business logic for the Screener API and MCP server."""
from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from screener.models import DOCUMENT_TYPES, AnalysisReport, Document, Submission
from screener.storage import DocumentStore

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared field tuples
# ---------------------------------------------------------------------------

SUBMISSION_FIELDS = (
    "founder_email", "startup_name", "website", "sector", "hq_location",
    "description", "founding_date", "team_info", "traction_info",
    "business_model", "funding_ask", "use_of_funds",
)

# Statuses a reviewer may set by hand; the pipeline owns the rest
REVIEW_STATUSES = ("submitted", "in_review", "rejected")


# ---------------------------------------------------------------------------
# Run registry
# ---------------------------------------------------------------------------


class RunRegistry:
    """Tracks submissions with an analysis in flight so reruns are serialized."""

    def __init__(self) -> None:
        self._active: set[int] = set()

    def acquire(self, submission_id: int) -> bool:
        if submission_id in self._active:
            return False
        self._active.add(submission_id)
        return True

    def release(self, submission_id: int) -> None:
        self._active.discard(submission_id)

    def is_running(self, submission_id: int) -> bool:
        return submission_id in self._active


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def load_json(value: str | None, default: Any) -> Any:
    """Decode a ``*_json`` text column, falling back to *default* when empty or corrupt."""
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        log.warning("Corrupt JSON column value: %r", value[:200])
        return default


def get_entity(session: Session, model, entity_id: int):
    return session.execute(select(model).where(model.id == entity_id)).scalars().first()


def latest_report(session: Session, submission_id: int) -> AnalysisReport | None:
    return session.execute(
        select(AnalysisReport)
        .where(AnalysisReport.submission_id == submission_id)
        .order_by(AnalysisReport.generated_at.desc(), AnalysisReport.id.desc())
    ).scalars().first()


def document_summary(doc: Document) -> dict:
    return {
        "id": doc.id, "submission_id": doc.submission_id, "file_name": doc.file_name,
        "file_type": doc.file_type, "storage_path": doc.storage_path,
        "file_size": doc.file_size,
        "uploaded_at": doc.uploaded_at.isoformat() if doc.uploaded_at else None,
    }


def submission_summary(sub: Submission) -> dict:
    report = max(sub.reports, key=lambda r: r.generated_at, default=None)
    return {
        "id": sub.id,
        **{f: getattr(sub, f) for f in SUBMISSION_FIELDS},
        "status": sub.status,
        "created_at": sub.created_at.isoformat() if sub.created_at else None,
        "updated_at": sub.updated_at.isoformat() if sub.updated_at else None,
        "has_report": report is not None,
        "overall_score": report.overall_score if report else None,
    }


def submission_detail(sub: Submission) -> dict:
    base = submission_summary(sub)
    base["documents"] = [document_summary(d) for d in sub.documents]
    return base


def report_dict(report: AnalysisReport) -> dict:
    return {
        "id": report.id,
        "submission_id": report.submission_id,
        "overall_score": report.overall_score,
        "recommendation": report.recommendation,
        "executive_summary": report.executive_summary,
        "criteria_scores": load_json(report.criteria_scores_json, []),
        "green_flags": load_json(report.green_flags_json, []),
        "red_flags": load_json(report.red_flags_json, []),
        "market_research": load_json(report.market_research_json, {}),
        "detailed_rationale": report.detailed_rationale,
        "raw_responses": load_json(report.raw_responses_json, {}),
        "llm_model": report.llm_model,
        "generated_at": report.generated_at.isoformat() if report.generated_at else None,
    }


# ---------------------------------------------------------------------------
# Mutation helpers
# ---------------------------------------------------------------------------


def apply_updates(obj, updates: dict[str, Any], fields: tuple[str, ...]) -> None:
    """Apply non-None values from updates dict to an ORM object."""
    for field in fields:
        val = updates.get(field)
        if val is not None:
            setattr(obj, field, val)


def create_submission(session: Session, data: dict[str, Any]) -> Submission:
    """Create a submission from founder fields (caller must commit)."""
    sub = Submission(**{f: (data.get(f) or "") for f in SUBMISSION_FIELDS})
    sub.status = "submitted"
    session.add(sub)
    session.flush()
    return sub


def set_review_status(sub: Submission, status: str) -> None:
    if status not in REVIEW_STATUSES:
        raise ValueError(f"Status must be one of {', '.join(REVIEW_STATUSES)}")
    sub.status = status


def add_document(
    session: Session, store: DocumentStore, sub: Submission,
    file_name: str, file_type: str, content: bytes,
) -> Document:
    """Store a document binary and record it (caller must commit)."""
    if file_type not in DOCUMENT_TYPES:
        raise ValueError(f"file_type must be one of {', '.join(DOCUMENT_TYPES)}")
    storage_path = store.save(sub.id, file_name, content)
    doc = Document(
        submission_id=sub.id, file_name=file_name, file_type=file_type,
        storage_path=storage_path, file_size=len(content),
    )
    session.add(doc)
    session.flush()
    return doc


def delete_submission(session: Session, store: DocumentStore, sub: Submission) -> None:
    """Remove stored files, then documents, report and the submission (caller must commit).

    Storage cleanup failures are logged and do not block the row deletion.
    """
    paths = [d.storage_path for d in sub.documents]
    if paths:
        failed = store.remove(paths)
        if failed:
            log.warning("Storage cleanup left %d file(s) for submission %s", len(failed), sub.id)
    session.execute(delete(Document).where(Document.submission_id == sub.id))
    session.execute(delete(AnalysisReport).where(AnalysisReport.submission_id == sub.id))
    session.execute(delete(Submission).where(Submission.id == sub.id))
