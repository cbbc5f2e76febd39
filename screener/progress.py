"""One-way progress event stream for a pipeline run.

The orchestrator publishes into an ``asyncio.Queue``; consumers either
forward events as server-sent events or collect them in one list.  Exactly
one terminal event (``done`` or ``error``) ends every stream.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Iterable, Iterator

from pydantic import BaseModel, ValidationError

log = logging.getLogger(__name__)

TOTAL_STEPS = 6


class ProgressEvent(BaseModel):
    step: int
    total: int = TOTAL_STEPS
    message: str | None = None
    error: str | None = None
    stats: dict[str, int] | None = None
    done: bool | None = None
    final_score: float | None = None
    final_recommendation: str | None = None

    @property
    def is_terminal(self) -> bool:
        return bool(self.done) or self.error is not None


class ProgressPublisher:
    """Append-only event channel that refuses anything after a terminal event."""

    def __init__(self, total: int = TOTAL_STEPS):
        self.total = total
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        self._step = 0
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def step(self, step: int, message: str | None = None, *, stats: dict[str, int] | None = None) -> None:
        self._put(ProgressEvent(step=step, total=self.total, message=message, stats=stats))

    def done(self, final_score: float, final_recommendation: str, message: str = "Analysis complete!") -> None:
        self._put(ProgressEvent(
            step=self.total, total=self.total, message=message, done=True,
            final_score=final_score, final_recommendation=final_recommendation,
        ))

    def fail(self, error: str) -> None:
        self._put(ProgressEvent(step=self._step, total=self.total, error=error))

    def _put(self, event: ProgressEvent) -> None:
        if self._finished:
            raise RuntimeError("Progress stream already terminated")
        if event.step < self._step:
            raise ValueError(f"Progress step went backwards ({self._step} -> {event.step})")
        self._step = event.step
        self._finished = event.is_terminal
        self._queue.put_nowait(event)

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """Yield events in publish order, stopping after the terminal one."""
        while True:
            event = await self._queue.get()
            yield event
            if event.is_terminal:
                return


def encode_sse(event: ProgressEvent) -> str:
    return f"data: {json.dumps(event.model_dump(exclude_none=True))}\n\n"


def decode_stream(lines: Iterable[str]) -> Iterator[ProgressEvent]:
    """Parse ``data:`` lines back into events, discarding malformed entries."""
    for line in lines:
        line = line.strip()
        if not line.startswith("data:"):
            continue
        payload: Any
        try:
            payload = json.loads(line[len("data:"):].strip())
            yield ProgressEvent.model_validate(payload)
        except (json.JSONDecodeError, ValidationError) as exc:
            log.debug("Discarding malformed progress entry %r: %s", line[:200], exc)
