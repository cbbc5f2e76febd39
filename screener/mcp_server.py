from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP
from sqlalchemy import select

from screener import services
from screener.config import get_settings
from screener.criteria import SCREENING_CRITERIA
from screener.db import init_db, session_factory, session_scope
from screener.gateway import InferenceGateway
from screener.models import Submission
from screener.pipeline import AnalysisPipeline
from screener.storage import DocumentStore

log = logging.getLogger(__name__)

_runs = services.RunRegistry()
_gateway: InferenceGateway | None = None


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def screener_lifespan(server: FastMCP) -> AsyncIterator[None]:
    global _gateway
    init_db()
    _gateway = InferenceGateway()
    yield


mcp = FastMCP(
    "Screener",
    instructions=(
        "Screener evaluates founder submissions for angel investment. "
        "Use list_submissions() to browse, get_submission(id) for details, "
        "analyze_submission(id) to run the six-stage analysis, and get_report(id) "
        "to read the scored report."
    ),
    lifespan=screener_lifespan,
    json_response=True,
)


def _not_found(submission_id: int) -> dict:
    return {"error": f"Submission {submission_id} not found"}


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("screener://overview")
def screener_overview() -> str:
    """Overview of Screener: data model, pipeline stages, and score scale."""
    return json.dumps({
        "system": "Screener — startup submission analysis",
        "data_model": {
            "submission": "Founder-provided record: startup name, sector, team, traction, funding ask, status.",
            "document": "Uploaded binary (pitch_deck, financials, other). Only the latest pitch deck is analysed.",
            "report": "One live report per submission: overall score 0-100, criteria scores, flags, research.",
        },
        "pipeline": [
            "1. Pitch deck extraction (chunked for large decks)",
            "2. Market research",
            f"3. {len(SCREENING_CRITERIA)}-criteria scoring (1-5 each, weighted)",
            "4. Green/red flag detection",
            "5. Overall recommendation",
            "6. Save report",
        ],
        "score_scale": {
            "0-39": "Strong Reject", "40-59": "Reject or Request More Information",
            "60-79": "Deep Dive Required", "80-100": "Recommend to IC",
        },
        "criteria": {c.key: c.weight for c in SCREENING_CRITERIA},
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools: Submissions
# ---------------------------------------------------------------------------


@mcp.tool()
def list_submissions(status: str | None = None, limit: int = 50) -> list[dict]:
    """List submissions, newest first.

    Args:
        status: Comma-separated filter from submitted, in_review, analyzing, completed, rejected.
        limit: Max results (default 50, max 500).
    """
    with session_scope() as session:
        query = select(Submission).order_by(Submission.created_at.desc(), Submission.id.desc())
        if status:
            query = query.where(Submission.status.in_([s.strip() for s in status.split(",")]))
        rows = session.execute(query.limit(max(1, min(limit, 500)))).scalars().all()
        return [services.submission_summary(s) for s in rows]


@mcp.tool()
def get_submission(submission_id: int) -> dict:
    """Get a submission with its documents."""
    with session_scope() as session:
        sub = services.get_entity(session, Submission, submission_id)
        return services.submission_detail(sub) if sub else _not_found(submission_id)


@mcp.tool()
def get_report(submission_id: int) -> dict:
    """Get the current analysis report for a submission."""
    with session_scope() as session:
        if services.get_entity(session, Submission, submission_id) is None:
            return _not_found(submission_id)
        report = services.latest_report(session, submission_id)
        return services.report_dict(report) if report else {"error": "No report yet — run analyze_submission first"}


# ---------------------------------------------------------------------------
# Tools: Analysis
# ---------------------------------------------------------------------------


@mcp.tool()
async def analyze_submission(submission_id: int, model: str | None = None) -> dict:
    """Run the full analysis pipeline and return its progress log and final result.

    Args:
        submission_id: Submission to analyse. Any existing report is replaced.
        model: claude-haiku-4-5-20251001 (default), claude-sonnet-4-6, or claude-opus-4-6.
    """
    if not _runs.acquire(submission_id):
        return {"error": "Analysis already running for this submission"}
    try:
        gateway = _gateway or InferenceGateway()
        pipeline = AnalysisPipeline(gateway, session_factory(), DocumentStore(get_settings().uploads_dir))
        run = pipeline.start(submission_id, model)
    except Exception:
        _runs.release(submission_id)
        raise
    # Held until the task itself finishes, not until this call returns
    run.task.add_done_callback(lambda _: _runs.release(submission_id))
    events = await run.collect()
    await run.task

    terminal = events[-1]
    result = {"events": [e.model_dump(exclude_none=True) for e in events]}
    if terminal.error is not None:
        log.warning("MCP analysis of submission %s failed: %s", submission_id, terminal.error)
        result["error"] = terminal.error
    else:
        result["overall_score"] = terminal.final_score
        result["recommendation"] = terminal.final_recommendation
    return result


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the Screener MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
