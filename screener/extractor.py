from __future__ import annotations

import asyncio
import io
import logging

from pypdf import PdfReader

log = logging.getLogger(__name__)

# Below this many characters of aggregate text the document is treated as
# image-only (scanned slides, text baked into pictures).
MIN_TEXT_CHARS = 200


class DocumentExtractionError(Exception):
    """The document could not be parsed at all."""


class DocumentExtractionTimeout(DocumentExtractionError):
    """Parsing did not finish within the allotted time."""


def _read_pages(data: bytes) -> list[str]:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = list(reader.pages)
    except Exception as exc:
        raise DocumentExtractionError(f"Unreadable PDF: {exc}") from exc

    texts: list[str] = []
    for number, page in enumerate(pages, start=1):
        try:
            text = page.extract_text() or ""
        except Exception as exc:
            log.debug("Text extraction failed on page %d: %s", number, exc)
            text = ""
        texts.append(" ".join(text.split()))
    return texts


async def extract_pages(data: bytes, timeout: float = 30.0) -> list[str]:
    """Return one whitespace-normalised string per page, in page order.

    Parsing runs in a worker thread; on timeout the caller gets
    :class:`DocumentExtractionTimeout` instead of waiting on a stuck parser.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(_read_pages, data), timeout)
    except asyncio.TimeoutError as exc:
        raise DocumentExtractionTimeout(f"PDF text extraction timed out ({timeout:.0f} s)") from exc


def has_usable_text(pages: list[str], min_chars: int = MIN_TEXT_CHARS) -> bool:
    return len("".join(pages).strip()) >= min_chars
