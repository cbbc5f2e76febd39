from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Generator

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from screener import services
from screener.config import get_settings
from screener.criteria import SCREENING_CRITERIA
from screener.db import get_session, init_db, session_factory
from screener.flags import FLAG_CATALOG
from screener.gateway import InferenceGateway
from screener.models import Submission
from screener.pipeline import AnalysisPipeline
from screener.progress import encode_sse
from screener.schemas import (
    AnalyzeRequest,
    CriterionOut,
    DocumentOut,
    FlagTemplateOut,
    ReportOut,
    StatusUpdate,
    SubmissionCreate,
    SubmissionDetail,
    SubmissionOut,
    SubmissionUpdate,
)
from screener.storage import DocumentStore

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    app.state.runs = services.RunRegistry()
    yield


app = FastAPI(
    title="Screener",
    version="0.1.0",
    description=(
        "Startup submission screening API. Founders submit a record and an optional "
        "pitch deck; analysts run a six-stage LLM analysis that produces a scored "
        "evaluation report. Analysis progress is streamed as server-sent events."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Submissions", "description": "Create, browse, and manage founder submissions."},
        {"name": "Documents", "description": "Upload pitch decks and supporting documents."},
        {"name": "Analysis", "description": "Run the analysis pipeline. Requires ANTHROPIC_API_KEY."},
        {"name": "Reports", "description": "Read generated analysis reports."},
        {"name": "Catalogs", "description": "Screening criteria and flag reference data."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_store() -> DocumentStore:
    return DocumentStore(get_settings().uploads_dir)


def get_gateway(request: Request) -> InferenceGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        gateway = InferenceGateway()
        request.app.state.gateway = gateway
    return gateway


def get_pipeline(
    gateway: InferenceGateway = Depends(get_gateway),
    store: DocumentStore = Depends(get_store),
) -> AnalysisPipeline:
    return AnalysisPipeline(gateway, session_factory(), store)


def get_runs(request: Request) -> services.RunRegistry:
    runs = getattr(request.app.state, "runs", None)
    if runs is None:
        runs = request.app.state.runs = services.RunRegistry()
    return runs


def _get_or_404(session: Session, model, entity_id: int, label: str = "Entity"):
    obj = services.get_entity(session, model, entity_id)
    if not obj:
        raise HTTPException(404, f"{label} not found")
    return obj


# ---------------------------------------------------------------------------
# Routes: Submissions
# ---------------------------------------------------------------------------


@app.post("/api/submissions", response_model=SubmissionDetail, status_code=201,
          tags=["Submissions"], summary="Create a founder submission")
async def create_submission(body: SubmissionCreate, session: Session = Depends(db_session)):
    sub = services.create_submission(session, body.model_dump())
    session.commit()
    session.refresh(sub)
    return services.submission_detail(sub)


@app.get("/api/submissions", response_model=list[SubmissionOut],
         tags=["Submissions"], summary="List submissions, newest first")
async def list_submissions(status: str | None = None, session: Session = Depends(db_session)):
    query = select(Submission).order_by(Submission.created_at.desc(), Submission.id.desc())
    if status:
        query = query.where(Submission.status.in_([s.strip() for s in status.split(",")]))
    return [services.submission_summary(s) for s in session.execute(query).scalars().all()]


@app.get("/api/submissions/{submission_id}", response_model=SubmissionDetail,
         tags=["Submissions"], summary="Get a submission with its documents")
async def get_submission(submission_id: int, session: Session = Depends(db_session)):
    return services.submission_detail(_get_or_404(session, Submission, submission_id, "Submission"))


@app.put("/api/submissions/{submission_id}", response_model=SubmissionDetail,
         tags=["Submissions"], summary="Update founder fields (partial update, null fields ignored)")
async def update_submission(submission_id: int, body: SubmissionUpdate, session: Session = Depends(db_session)):
    sub = _get_or_404(session, Submission, submission_id, "Submission")
    services.apply_updates(sub, body.model_dump(), services.SUBMISSION_FIELDS)
    session.commit()
    return services.submission_detail(sub)


@app.put("/api/submissions/{submission_id}/status", response_model=SubmissionDetail,
         tags=["Submissions"], summary="Set review status (submitted, in_review, rejected)")
async def update_status(
    submission_id: int, body: StatusUpdate,
    session: Session = Depends(db_session), runs: services.RunRegistry = Depends(get_runs),
):
    sub = _get_or_404(session, Submission, submission_id, "Submission")
    if runs.is_running(submission_id):
        raise HTTPException(409, "Analysis in progress")
    try:
        services.set_review_status(sub, body.status)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    session.commit()
    return services.submission_detail(sub)


@app.delete("/api/submissions/{submission_id}", tags=["Submissions"],
            summary="Delete a submission, its documents, and its report")
async def delete_submission(
    submission_id: int,
    session: Session = Depends(db_session),
    store: DocumentStore = Depends(get_store),
    runs: services.RunRegistry = Depends(get_runs),
):
    sub = _get_or_404(session, Submission, submission_id, "Submission")
    if runs.is_running(submission_id):
        raise HTTPException(409, "Analysis in progress")
    services.delete_submission(session, store, sub)
    session.commit()
    return {"ok": True}


# ---------------------------------------------------------------------------
# Routes: Documents
# ---------------------------------------------------------------------------


@app.post("/api/submissions/{submission_id}/documents", response_model=DocumentOut, status_code=201,
          tags=["Documents"], summary="Upload a document (pitch_deck, financials, other)")
async def upload_document(
    submission_id: int,
    file: UploadFile = File(...),
    file_type: str = Form("pitch_deck"),
    session: Session = Depends(db_session),
    store: DocumentStore = Depends(get_store),
):
    sub = _get_or_404(session, Submission, submission_id, "Submission")
    if not file.filename or not file.filename.lower().endswith(".pdf"):
        raise HTTPException(400, "Only .pdf files are supported")
    content = await file.read()
    try:
        doc = services.add_document(session, store, sub, file.filename, file_type, content)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    session.commit()
    session.refresh(doc)
    return services.document_summary(doc)


# ---------------------------------------------------------------------------
# Routes: Analysis
# ---------------------------------------------------------------------------


@app.post("/api/analyze", tags=["Analysis"], summary="Run the analysis pipeline (SSE progress stream)")
async def analyze(
    body: AnalyzeRequest,
    pipeline: AnalysisPipeline = Depends(get_pipeline),
    runs: services.RunRegistry = Depends(get_runs),
):
    if not runs.acquire(body.submission_id):
        raise HTTPException(409, "Analysis already running for this submission")
    run = pipeline.start(body.submission_id, body.model)
    run.task.add_done_callback(lambda _: runs.release(body.submission_id))

    async def stream():
        try:
            async for event in run.events():
                yield encode_sse(event)
        finally:
            # No-op once the run has finished; cancels it if the client disconnected
            run.cancel()

    return StreamingResponse(
        stream(), media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


# ---------------------------------------------------------------------------
# Routes: Reports
# ---------------------------------------------------------------------------


@app.get("/api/submissions/{submission_id}/report", response_model=ReportOut,
         tags=["Reports"], summary="Get the current analysis report for a submission")
async def get_report(submission_id: int, session: Session = Depends(db_session)):
    _get_or_404(session, Submission, submission_id, "Submission")
    report = services.latest_report(session, submission_id)
    if report is None:
        raise HTTPException(404, "Report not found")
    return services.report_dict(report)


# ---------------------------------------------------------------------------
# Routes: Catalogs
# ---------------------------------------------------------------------------


@app.get("/api/criteria", response_model=list[CriterionOut], tags=["Catalogs"],
         summary="List the weighted screening criteria")
async def list_criteria():
    return [
        {"key": c.key, "name": c.name, "weight": c.weight,
         "description": c.description, "scoring_guide": c.scoring_guide}
        for c in SCREENING_CRITERIA
    ]


@app.get("/api/flags", response_model=list[FlagTemplateOut], tags=["Catalogs"],
         summary="List the green/red flag reference catalog")
async def list_flags(polarity: str | None = None):
    return [
        {"flag": f.flag, "category": f.category, "polarity": f.polarity, "description": f.description}
        for f in FLAG_CATALOG if polarity is None or f.polarity == polarity
    ]


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("screener.app:app", host="127.0.0.1", port=8001, reload=True)


if __name__ == "__main__":
    main()
