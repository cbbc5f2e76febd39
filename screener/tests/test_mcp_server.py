from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from fakes import good_responses, scripted_client, text_response
from screener import mcp_server, services
from screener.db import init_db, session_scope
from screener.gateway import InferenceGateway
from screener.prompts import RECOMMENDATION_SYSTEM, RESEARCH_SYSTEM


@pytest.fixture()
def submission_id(tmp_path) -> int:
    init_db(tmp_path / "mcp.db")
    with session_scope() as session:
        sub = services.create_submission(session, {"startup_name": "Ledgerly", "sector": "Fintech"})
        session.commit()
        return sub.id


@pytest.fixture()
def scripted_gateway(monkeypatch, settings):
    gateway = InferenceGateway(scripted_client(good_responses()), settings=settings, sleep=AsyncMock())
    monkeypatch.setattr(mcp_server, "_gateway", gateway)
    return gateway


class TestReadTools:
    def test_list_and_get(self, submission_id):
        listed = mcp_server.list_submissions()
        assert [s["startup_name"] for s in listed] == ["Ledgerly"]
        assert mcp_server.list_submissions(status="rejected") == []
        assert mcp_server.get_submission(submission_id)["documents"] == []

    def test_missing_entities_return_errors(self, submission_id):
        assert "not found" in mcp_server.get_submission(999)["error"]
        assert "No report yet" in mcp_server.get_report(submission_id)["error"]

    def test_overview_lists_criteria(self):
        overview = json.loads(mcp_server.screener_overview())
        assert len(overview["criteria"]) == 7


class TestAnalyzeTool:
    @pytest.mark.asyncio
    async def test_runs_pipeline_and_saves_report(self, submission_id, scripted_gateway):
        result = await mcp_server.analyze_submission(submission_id)

        assert result["overall_score"] == 78
        assert result["recommendation"] == "Deep Dive Required"
        assert result["events"][-1]["done"] is True
        assert mcp_server.get_report(submission_id)["overall_score"] == 78
        assert not mcp_server._runs.is_running(submission_id)

    @pytest.mark.asyncio
    async def test_unknown_submission(self, submission_id, scripted_gateway):
        result = await mcp_server.analyze_submission(submission_id + 100)
        assert result["error"] == "Submission not found"

    @pytest.mark.asyncio
    async def test_rejects_concurrent_run(self, submission_id, scripted_gateway):
        mcp_server._runs.acquire(submission_id)
        try:
            result = await mcp_server.analyze_submission(submission_id)
        finally:
            mcp_server._runs.release(submission_id)
        assert result == {"error": "Analysis already running for this submission"}

    @pytest.mark.asyncio
    async def test_cancelled_call_stops_pipeline_and_holds_lock_until_reverted(
        self, submission_id, monkeypatch, settings,
    ):
        responses = good_responses()
        research_started = asyncio.Event()

        async def create(**kwargs):
            if kwargs["system"] == RESEARCH_SYSTEM:
                research_started.set()
                await asyncio.sleep(3600)
            return text_response(responses[kwargs["system"]])

        client = scripted_client(responses)
        client.messages.create.side_effect = create
        monkeypatch.setattr(mcp_server, "_gateway", InferenceGateway(client, settings=settings, sleep=AsyncMock()))
        call = asyncio.ensure_future(mcp_server.analyze_submission(submission_id))
        await asyncio.wait_for(research_started.wait(), timeout=5)
        assert mcp_server._runs.is_running(submission_id)

        call.cancel()
        with pytest.raises(asyncio.CancelledError):
            await call
        for _ in range(50):
            if not mcp_server._runs.is_running(submission_id):
                break
            await asyncio.sleep(0.01)

        assert not mcp_server._runs.is_running(submission_id)
        systems = [c.kwargs["system"] for c in client.messages.create.await_args_list]
        assert RECOMMENDATION_SYSTEM not in systems
        assert mcp_server.get_submission(submission_id)["status"] == "submitted"
        assert "No report yet" in mcp_server.get_report(submission_id)["error"]
