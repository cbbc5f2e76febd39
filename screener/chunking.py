"""Bound how much document content reaches the gateway per call.

Small documents go to the model natively in one call.  Large ones are
reduced to page text, split into fixed-size page groups, analysed
concurrently and merged by one final call.
"""
from __future__ import annotations

import asyncio
import base64
import logging
from typing import Callable

from screener.extractor import extract_pages, has_usable_text
from screener.gateway import InferenceGateway
from screener.prompts import build_chunk_user, build_merge_user

log = logging.getLogger(__name__)

ChunkProgress = Callable[[int, int], None]


def split_pages(pages: list[str], pages_per_chunk: int = 12) -> list[str]:
    """Group consecutive pages, joining each group with blank lines."""
    if pages_per_chunk < 1:
        raise ValueError("pages_per_chunk must be >= 1")
    return [
        "\n\n".join(pages[i:i + pages_per_chunk])
        for i in range(0, len(pages), pages_per_chunk)
    ]


async def analyze_document(
    gateway: InferenceGateway,
    system: str,
    user: str,
    pdf_bytes: bytes,
    *,
    model: str | None = None,
    max_tokens: int = 4096,
    on_chunk_progress: ChunkProgress | None = None,
    size_threshold: int | None = None,
    pages_per_chunk: int | None = None,
    text_timeout: float | None = None,
) -> str:
    """Run *system*/*user* over a PDF and return the raw model text."""
    settings = gateway.settings
    threshold = size_threshold if size_threshold is not None else settings.pdf_size_threshold
    pdf_base64 = base64.b64encode(pdf_bytes).decode("ascii")

    if len(pdf_base64) <= threshold:
        return await gateway.complete_with_document(
            system, user, pdf_base64, model=model, max_tokens=max_tokens,
        )

    pages = await extract_pages(
        pdf_bytes, timeout=text_timeout if text_timeout is not None else settings.pdf_text_timeout_seconds,
    )
    if not has_usable_text(pages):
        log.info("No usable text layer in %d-page document, sending natively", len(pages))
        return await gateway.complete_with_document(
            system, user, pdf_base64, model=model, max_tokens=max_tokens,
        )

    chunks = split_pages(pages, pages_per_chunk or settings.pages_per_chunk)
    log.info("Splitting %d pages into %d chunks", len(pages), len(chunks))
    partials = await _run_chunks(
        gateway, system, user, chunks,
        model=model, max_tokens=max_tokens, on_chunk_progress=on_chunk_progress,
    )
    if len(partials) == 1:
        return partials[0]
    return await gateway.complete(
        system, build_merge_user(partials), model=model, max_tokens=max_tokens,
    )


async def _run_chunks(
    gateway: InferenceGateway,
    system: str,
    user: str,
    chunks: list[str],
    *,
    model: str | None,
    max_tokens: int,
    on_chunk_progress: ChunkProgress | None,
) -> list[str]:
    total = len(chunks)
    completed = 0

    async def run_one(index: int, chunk: str) -> str:
        nonlocal completed
        result = await gateway.complete(
            system, build_chunk_user(user, chunk, index, total),
            model=model, max_tokens=max_tokens,
        )
        completed += 1
        if on_chunk_progress is not None:
            on_chunk_progress(completed, total)
        return result

    tasks = [asyncio.ensure_future(run_one(i, chunk)) for i, chunk in enumerate(chunks, start=1)]
    try:
        # gather keeps results in chunk order regardless of completion order
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
