from __future__ import annotations

import pytest

from screener.progress import ProgressEvent, ProgressPublisher, decode_stream, encode_sse


async def _drain(publisher: ProgressPublisher) -> list[ProgressEvent]:
    return [event async for event in publisher.events()]


class TestProgressPublisher:
    @pytest.mark.asyncio
    async def test_stream_ends_after_done(self):
        pub = ProgressPublisher()
        pub.step(1, "Extracting pitch deck data...")
        pub.step(1, stats={"fields_total": 12, "fields_populated": 9, "word_count": 240})
        pub.step(2, "Conducting market research...")
        pub.done(72.0, "Deep Dive Required")

        events = await _drain(pub)
        assert [e.step for e in events] == [1, 1, 2, 6]
        assert events[-1].done is True
        assert events[-1].final_score == 72.0
        assert events[1].stats["fields_populated"] == 9
        assert pub.finished

    @pytest.mark.asyncio
    async def test_stream_ends_after_error(self):
        pub = ProgressPublisher()
        pub.step(3, "Scoring 7 investment criteria...")
        pub.fail("Failed to save report")

        events = await _drain(pub)
        assert len(events) == 2
        assert events[-1].error == "Failed to save report"
        assert events[-1].step == 3
        assert not events[-1].done

    def test_nothing_after_terminal(self):
        pub = ProgressPublisher()
        pub.done(60, "Reject")
        with pytest.raises(RuntimeError):
            pub.fail("late error")
        with pytest.raises(RuntimeError):
            pub.step(6, "late step")

    def test_steps_never_go_backwards(self):
        pub = ProgressPublisher()
        pub.step(3)
        with pytest.raises(ValueError):
            pub.step(2)


class TestSseCodec:
    def test_encode_omits_empty_fields(self):
        line = encode_sse(ProgressEvent(step=2, message="Conducting market research..."))
        assert line == 'data: {"step": 2, "total": 6, "message": "Conducting market research..."}\n\n'

    def test_decode_discards_malformed_entries(self):
        lines = [
            encode_sse(ProgressEvent(step=1, message="Extracting pitch deck data...")).strip(),
            "",
            ": keep-alive",
            'data: {"step": 2, "total": 6, "mess',
            'data: {"total": 6}',
            "data: not json",
            encode_sse(ProgressEvent(step=6, done=True, final_score=81, final_recommendation="Recommend")).strip(),
        ]
        events = list(decode_stream(lines))
        assert [e.step for e in events] == [1, 6]
        assert events[-1].is_terminal
