"""Analysis pipeline orchestrator.

Architecture
------------
One fixed sequence per submission::

    Extraction -> Research -> Scoring -> FlagDetection -> Recommendation -> Persist

Stages 1-5 never abort the run: each returns a :class:`StageOutcome`, with a
labelled neutral fallback when its call or parse failed.  Only
infrastructure failures abort (submission lookup, persisting the report);
those revert the submission to its pre-run status and end the progress
stream with one ``error`` event.  Cancellation (client disconnect) also
reverts status before propagating.

The gateway, session factory and document store are injected; nothing here
reaches for process-wide state.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Callable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from screener.config import Settings
from screener.gateway import InferenceGateway
from screener.models import AnalysisReport, Document, Submission
from screener.progress import TOTAL_STEPS, ProgressEvent, ProgressPublisher
from screener.stages import (
    StageContext,
    StageExecutor,
    StageOutcome,
    apply_quality_gate,
    extraction_stats,
    run_extraction,
    run_flag_detection,
    run_recommendation,
    run_research,
    run_scoring,
)
from screener.storage import DocumentStore

log = logging.getLogger(__name__)


class SubmissionNotFoundError(LookupError):
    pass


class PersistenceError(RuntimeError):
    pass


@dataclass(frozen=True)
class Stage:
    step: int
    name: str
    message: str
    degraded_message: str
    run: StageExecutor


STAGES: tuple[Stage, ...] = (
    Stage(1, "extraction", "Extracting pitch deck data...",
          "Pitch deck extraction skipped — continuing...", run_extraction),
    Stage(2, "research", "Conducting market research...",
          "Market research unavailable — continuing...", run_research),
    Stage(3, "scoring", "Scoring 7 investment criteria...",
          "Criteria scoring unavailable — using defaults...", run_scoring),
    Stage(4, "flags", "Detecting YC-style green & red flags...",
          "Flag detection unavailable — continuing...", run_flag_detection),
    Stage(5, "recommendation", "Generating investment recommendation...",
          "Recommendation unavailable — saving partial results...", run_recommendation),
)

_FOUNDER_FIELDS: list[tuple[str, str]] = [
    ("Sector", "sector"),
    ("Location", "hq_location"),
    ("Website", "website"),
    ("Founded", "founding_date"),
    ("Description", "description"),
    ("Team", "team_info"),
    ("Traction", "traction_info"),
    ("Business Model", "business_model"),
    ("Funding Ask", "funding_ask"),
    ("Use of Funds", "use_of_funds"),
]


def build_founder_inputs(sub: Submission) -> str:
    """Render founder-supplied fields as ``Label: value`` lines, skipping blanks."""
    lines = [f"Startup: {sub.startup_name}"]
    for label, attr in _FOUNDER_FIELDS:
        val = (getattr(sub, attr, None) or "").strip()
        if val:
            lines.append(f"{label}: {val}")
    return "\n".join(lines)


def _pre_run_status(status: str) -> str:
    # "analyzing" would pin the submission mid-run; "completed" would point at
    # the prior report, which is deleted before the stages start.
    return "in_review" if status in ("analyzing", "completed") else status


class AnalysisRun:
    """Handle on a pipeline task and the event channel it publishes to."""

    def __init__(self, task: asyncio.Task, publisher: ProgressPublisher):
        self.task = task
        self.publisher = publisher

    def events(self):
        return self.publisher.events()

    def cancel(self) -> None:
        if not self.task.done():
            self.task.cancel()

    async def collect(self) -> list[ProgressEvent]:
        """Drain every event; the task is cancelled if the caller is."""
        try:
            return [event async for event in self.events()]
        except BaseException:
            self.cancel()
            raise


class AnalysisPipeline:
    def __init__(
        self,
        gateway: InferenceGateway,
        session_factory: Callable[[], Session],
        store: DocumentStore,
        settings: Settings | None = None,
    ):
        self.gateway = gateway
        self.session_factory = session_factory
        self.store = store
        self.settings = settings or gateway.settings

    # -- entry points -------------------------------------------------------

    def start(self, submission_id: int, model: str | None = None) -> AnalysisRun:
        """Schedule a run on the current loop and return its handle."""
        publisher = ProgressPublisher()
        task = asyncio.ensure_future(self.run(submission_id, model, publisher))

        def _ensure_terminal(t: asyncio.Task) -> None:
            if t.cancelled() or publisher.finished:
                return
            exc = t.exception()
            log.error("Pipeline task for submission %s ended without a terminal event: %s", submission_id, exc)
            publisher.fail("Analysis failed")

        task.add_done_callback(_ensure_terminal)
        return AnalysisRun(task, publisher)

    async def collect(self, submission_id: int, model: str | None = None) -> list[ProgressEvent]:
        """Batch caller: run to completion and return every event."""
        return await self.start(submission_id, model).collect()

    async def run(
        self,
        submission_id: int,
        model: str | None = None,
        progress: ProgressPublisher | None = None,
    ) -> AnalysisReport | None:
        progress = progress or ProgressPublisher()
        session = self.session_factory()
        revert_to: str | None = None
        try:
            sub = session.execute(select(Submission).where(Submission.id == submission_id)).scalars().first()
            if sub is None:
                raise SubmissionNotFoundError("Submission not found")
            revert_to = _pre_run_status(sub.status)
            pitch_deck = session.execute(
                select(Document).where(
                    Document.submission_id == submission_id, Document.file_type == "pitch_deck",
                ).order_by(Document.uploaded_at.desc(), Document.id.desc())
            ).scalars().first()

            # Rerun starts clean: exactly one live report per submission
            session.execute(delete(AnalysisReport).where(AnalysisReport.submission_id == submission_id))
            _set_status(sub, "analyzing")
            session.commit()

            ctx = self._build_context(sub, pitch_deck, model, progress)
            await self._run_stages(ctx)

            progress.step(TOTAL_STEPS, "Saving analysis report...")
            report = self._persist(session, sub, ctx)
            overall = ctx.value("recommendation")
        except asyncio.CancelledError:
            log.warning("Analysis cancelled for submission %s", submission_id)
            self._revert(session, submission_id, revert_to)
            raise
        except Exception as exc:
            log.exception("Analysis aborted for submission %s", submission_id)
            self._revert(session, submission_id, revert_to)
            progress.fail(str(exc) or "Analysis failed")
            return None
        finally:
            session.close()

        progress.done(overall["overall_score"], overall["recommendation"])
        return report

    # -- internals ----------------------------------------------------------

    def _build_context(
        self, sub: Submission, pitch_deck: Document | None, model: str | None, progress: ProgressPublisher,
    ) -> StageContext:
        load_document = None
        if pitch_deck is not None:
            storage_path = pitch_deck.storage_path

            async def load_document() -> bytes:
                return await asyncio.to_thread(self.store.read, storage_path)

        return StageContext(
            submission_id=sub.id,
            model=self.gateway.resolve_model(model),
            startup_name=sub.startup_name,
            sector=sub.sector or "",
            description=sub.description or "",
            founder_inputs=build_founder_inputs(sub),
            gateway=self.gateway,
            settings=self.settings,
            progress=progress,
            load_document=load_document,
        )

    async def _run_stages(self, ctx: StageContext) -> None:
        for stage in STAGES:
            ctx.progress.step(stage.step, stage.message)
            outcome: StageOutcome = await stage.run(ctx)
            if outcome.degraded:
                note = f" ({outcome.notice})" if outcome.notice else ""
                ctx.progress.step(stage.step, stage.degraded_message + note)
            if stage.name == "extraction":
                outcome = apply_quality_gate(ctx, outcome)
                ctx.progress.step(stage.step, stats=extraction_stats(outcome))
            ctx.outcomes[stage.name] = outcome

    def _persist(self, session: Session, sub: Submission, ctx: StageContext) -> AnalysisReport:
        overall = ctx.value("recommendation")
        flags = ctx.value("flags")
        report = AnalysisReport(
            submission_id=sub.id,
            overall_score=overall["overall_score"],
            recommendation=overall["recommendation"],
            executive_summary=overall["executive_summary"],
            criteria_scores_json=json.dumps(ctx.value("scoring")),
            green_flags_json=json.dumps(flags.get("green_flags", [])),
            red_flags_json=json.dumps(flags.get("red_flags", [])),
            market_research_json=json.dumps(ctx.value("research")),
            detailed_rationale=overall["detailed_rationale"],
            raw_responses_json=json.dumps({
                "extraction": ctx.value("extraction"),
                "research": ctx.outcomes["research"].raw,
                "criteria": ctx.outcomes["scoring"].raw,
                "flags": ctx.outcomes["flags"].raw,
                "overall": ctx.outcomes["recommendation"].raw,
            }),
            llm_model=ctx.model,
            generated_at=datetime.now(UTC),
        )
        try:
            session.add(report)
            _set_status(sub, "completed")
            session.commit()
        except Exception as exc:
            session.rollback()
            raise PersistenceError(f"Failed to save report: {exc}") from exc
        return report

    def _revert(self, session: Session, submission_id: int, status: str | None) -> None:
        if status is None:
            return
        try:
            session.rollback()
            sub = session.get(Submission, submission_id)
            if sub is not None:
                _set_status(sub, status)
                session.commit()
        except Exception:
            session.rollback()
            log.exception("Could not revert status for submission %s", submission_id)


def _set_status(sub: Submission, status: str) -> None:
    sub.status = status
    sub.updated_at = datetime.now(UTC)
