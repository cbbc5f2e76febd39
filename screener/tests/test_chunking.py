"""Tests for page text extraction and the chunked document path."""
from __future__ import annotations

import asyncio
import io
import json
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pypdf import PdfWriter

from screener.chunking import analyze_document, split_pages
from screener.config import Settings
from screener.extractor import (
    DocumentExtractionError,
    DocumentExtractionTimeout,
    extract_pages,
    has_usable_text,
)
from screener.parsing import require_structured
from screener.prompts import EXTRACTION_FIELDS, EXTRACTION_SYSTEM, EXTRACTION_USER

PAGE_TEXT = "Revenue grew 40% quarter over quarter with 12 enterprise pilots. "


def _fake_gateway(settings: Settings) -> MagicMock:
    gateway = MagicMock()
    gateway.settings = settings
    gateway.complete = AsyncMock()
    gateway.complete_with_document = AsyncMock(return_value='{"startup_name": "Native"}')
    return gateway


def _blank_pdf(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Page splitting
# ---------------------------------------------------------------------------


class TestSplitPages:
    def test_groups_consecutive_pages(self):
        pages = [f"p{i}" for i in range(1, 26)]
        chunks = split_pages(pages, 12)
        assert len(chunks) == 3
        assert chunks[0].startswith("p1\n\np2")
        assert chunks[2] == "p25"

    def test_exact_multiple(self):
        assert len(split_pages(["x"] * 24, 12)) == 2

    def test_rejects_zero(self):
        with pytest.raises(ValueError):
            split_pages(["x"], 0)


# ---------------------------------------------------------------------------
# Text extraction
# ---------------------------------------------------------------------------


class TestExtractPages:
    @pytest.mark.asyncio
    async def test_blank_pdf_has_no_usable_text(self):
        pages = await extract_pages(_blank_pdf(3))
        assert pages == ["", "", ""]
        assert has_usable_text(pages) is False

    @pytest.mark.asyncio
    async def test_unreadable_bytes(self):
        with pytest.raises(DocumentExtractionError):
            await extract_pages(b"definitely not a pdf")

    @pytest.mark.asyncio
    async def test_stuck_parser_times_out(self):
        def slow_read(data):
            time.sleep(0.5)
            return ["late"]

        with patch("screener.extractor._read_pages", side_effect=slow_read):
            with pytest.raises(DocumentExtractionTimeout):
                await extract_pages(b"%PDF", timeout=0.05)

    def test_usable_text_threshold(self):
        assert has_usable_text(["a" * 100, "b" * 99]) is False
        assert has_usable_text(["a" * 100, "b" * 100]) is True


# ---------------------------------------------------------------------------
# analyze_document
# ---------------------------------------------------------------------------


class TestAnalyzeDocument:
    @pytest.mark.asyncio
    async def test_small_document_sent_natively(self, settings):
        gateway = _fake_gateway(settings)
        with patch("screener.chunking.extract_pages", new=AsyncMock()) as pages:
            result = await analyze_document(gateway, EXTRACTION_SYSTEM, EXTRACTION_USER, b"%PDF-1.4 small")
        assert result == '{"startup_name": "Native"}'
        gateway.complete_with_document.assert_awaited_once()
        gateway.complete.assert_not_awaited()
        pages.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_text_falls_back_to_native(self, settings):
        gateway = _fake_gateway(settings)
        with patch("screener.chunking.extract_pages", new=AsyncMock(return_value=[""] * 40)):
            result = await analyze_document(
                gateway, EXTRACTION_SYSTEM, EXTRACTION_USER, b"%PDF-1.4 scanned", size_threshold=0,
            )
        assert result == '{"startup_name": "Native"}'
        gateway.complete_with_document.assert_awaited_once()
        gateway.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_multiple_chunks_are_merged(self, settings):
        gateway = _fake_gateway(settings)
        merged = {f: f"merged {f}" for f in EXTRACTION_FIELDS}

        async def complete(system, user, *, model=None, max_tokens=4096):
            if user.startswith("Merge the following"):
                return json.dumps(merged)
            return json.dumps({"startup_name": "Acme", "traction": "partial"})

        gateway.complete.side_effect = complete
        progress: list[tuple[int, int]] = []

        with patch("screener.chunking.extract_pages", new=AsyncMock(return_value=[PAGE_TEXT] * 30)):
            result = await analyze_document(
                gateway, EXTRACTION_SYSTEM, EXTRACTION_USER, b"%PDF-1.4 large",
                model="claude-haiku-4-5-20251001", size_threshold=0, pages_per_chunk=12,
                on_chunk_progress=lambda done, total: progress.append((done, total)),
            )

        assert gateway.complete.await_count == 4
        chunk_users = [c.args[1] for c in gateway.complete.await_args_list[:3]]
        for i, user in enumerate(chunk_users, start=1):
            assert f"[Part {i} of 3" in user
        merge_user = gateway.complete.await_args_list[3].args[1]
        assert "--- PART 3 ---" in merge_user
        assert progress == [(1, 3), (2, 3), (3, 3)]
        gateway.complete_with_document.assert_not_awaited()

        parsed = require_structured(result)
        assert set(parsed) == set(EXTRACTION_FIELDS)

    @pytest.mark.asyncio
    async def test_chunk_calls_keep_requested_model(self, settings):
        gateway = _fake_gateway(settings)
        gateway.complete.return_value = '{"startup_name": "Acme"}'
        with patch("screener.chunking.extract_pages", new=AsyncMock(return_value=[PAGE_TEXT] * 30)):
            await analyze_document(
                gateway, EXTRACTION_SYSTEM, EXTRACTION_USER, b"%PDF", model="claude-haiku-4-5-20251001",
                size_threshold=0,
            )
        assert {c.kwargs["model"] for c in gateway.complete.await_args_list} == {"claude-haiku-4-5-20251001"}

    @pytest.mark.asyncio
    async def test_single_chunk_skips_merge(self, settings):
        gateway = _fake_gateway(settings)
        gateway.complete.return_value = '{"startup_name": "Acme"}'
        with patch("screener.chunking.extract_pages", new=AsyncMock(return_value=[PAGE_TEXT] * 5)):
            result = await analyze_document(gateway, EXTRACTION_SYSTEM, EXTRACTION_USER, b"%PDF", size_threshold=0)
        assert result == '{"startup_name": "Acme"}'
        assert gateway.complete.await_count == 1

    @pytest.mark.asyncio
    async def test_chunk_failure_cancels_siblings(self, settings):
        gateway = _fake_gateway(settings)
        started = asyncio.Event()
        cancelled: list[bool] = []

        async def complete(system, user, *, model=None, max_tokens=4096):
            if "[Part 1 of" in user:
                await started.wait()
                raise RuntimeError("chunk failed")
            started.set()
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise
            return "{}"

        gateway.complete.side_effect = complete
        with patch("screener.chunking.extract_pages", new=AsyncMock(return_value=[PAGE_TEXT] * 24)):
            with pytest.raises(RuntimeError, match="chunk failed"):
                await analyze_document(gateway, EXTRACTION_SYSTEM, EXTRACTION_USER, b"%PDF", size_threshold=0)
        await asyncio.sleep(0.01)
        assert cancelled == [True]
