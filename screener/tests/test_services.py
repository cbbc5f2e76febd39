from __future__ import annotations

import json

import pytest
from sqlalchemy import select

from screener import services
from screener.models import AnalysisReport, Document, Submission
from screener.storage import DocumentStore


@pytest.fixture()
def session(test_db):
    _, TestSession = test_db
    sess = TestSession()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture()
def store(tmp_path) -> DocumentStore:
    return DocumentStore(tmp_path / "uploads")


class TestDocumentStore:
    def test_save_and_read(self, store):
        path = store.save(7, "My Deck (final).pdf", b"%PDF")
        assert path.startswith("7/")
        assert path.endswith("-My_Deck_final_.pdf")
        assert store.read(path) == b"%PDF"

    def test_rejects_path_traversal(self, store):
        with pytest.raises(ValueError):
            store.read("../../etc/passwd")

    def test_remove_reports_failures(self, store):
        path = store.save(1, "deck.pdf", b"x")
        assert store.remove([path, "1/already-gone.pdf"]) == []
        assert store.remove(["../outside.pdf"]) == ["../outside.pdf"]


class TestSubmissionServices:
    def test_create_blanks_missing_fields(self, session):
        sub = services.create_submission(session, {"startup_name": "Orbit", "website": None})
        session.commit()
        assert sub.status == "submitted"
        assert sub.website == ""

    def test_review_status_rejects_pipeline_states(self, session):
        sub = services.create_submission(session, {"startup_name": "Orbit"})
        services.set_review_status(sub, "in_review")
        assert sub.status == "in_review"
        with pytest.raises(ValueError):
            services.set_review_status(sub, "analyzing")

    def test_add_document_validates_type(self, session, store):
        sub = services.create_submission(session, {"startup_name": "Orbit"})
        with pytest.raises(ValueError):
            services.add_document(session, store, sub, "deck.pdf", "slides", b"%PDF")
        doc = services.add_document(session, store, sub, "deck.pdf", "pitch_deck", b"%PDF")
        assert doc.file_size == 4
        assert store.read(doc.storage_path) == b"%PDF"

    def test_delete_cascades(self, session, store):
        sub = services.create_submission(session, {"startup_name": "Orbit"})
        doc = services.add_document(session, store, sub, "deck.pdf", "pitch_deck", b"%PDF")
        session.add(AnalysisReport(submission_id=sub.id, overall_score=70))
        session.commit()
        session.refresh(sub)

        services.delete_submission(session, store, sub)
        session.commit()

        assert session.execute(select(Submission)).scalars().all() == []
        assert session.execute(select(Document)).scalars().all() == []
        assert session.execute(select(AnalysisReport)).scalars().all() == []
        assert not (store.root / doc.storage_path).exists()

    def test_report_dict_tolerates_corrupt_json(self, session):
        sub = services.create_submission(session, {"startup_name": "Orbit"})
        report = AnalysisReport(
            submission_id=sub.id, overall_score=55, criteria_scores_json="{not json",
            green_flags_json=json.dumps([{"flag": "Repeat founder", "category": "Team", "evidence": ""}]),
        )
        session.add(report)
        session.commit()

        data = services.report_dict(report)
        assert data["criteria_scores"] == []
        assert data["green_flags"][0]["flag"] == "Repeat founder"
        assert data["market_research"] == {}


class TestRunRegistry:
    def test_acquire_is_exclusive(self):
        runs = services.RunRegistry()
        assert runs.acquire(1)
        assert not runs.acquire(1)
        assert runs.is_running(1)
        runs.release(1)
        assert runs.acquire(1)
