"""Tests for event-stream framing on both ends of the wire."""

from __future__ import annotations

import asyncio
import json
from datetime import date

import pytest

from workflows.errors import DeadlineExceededError, FramingError, GenerationError
from workflows.state import Itinerary, PipelineEvent, TripPreferences
from workflows.streaming import (
    EventChannel,
    FrameDecoder,
    decode_frame,
    encode_frame,
    read_stream,
    sanitize_error,
    stream_generation,
)


def _prefs() -> TripPreferences:
    return TripPreferences(origin="Paris", destination="Barcelona", start_date=date(2025, 6, 10))


class _StubPipeline:
    def __init__(self, result=None, error=None, events=("fetch", "dedup")):
        self.result = result
        self.error = error
        self.events = events

    async def run(self, preferences, on_progress, on_heartbeat=None):
        for stage in self.events:
            on_progress(PipelineEvent(stage=stage))
        if on_heartbeat is not None:
            on_heartbeat()
        if self.error is not None:
            raise self.error
        return self.result


async def _collect(pipeline):
    return [frame async for frame in stream_generation(pipeline, _prefs())]


def test_sanitize_error_is_single_line_and_bounded():
    text = sanitize_error('Bad "thing"\n  happened\tagain', max_length=300)
    assert text == "Bad 'thing' happened again"
    assert sanitize_error("") == "Unknown error"
    long = sanitize_error("x" * 500, max_length=20)
    assert len(long) == 20 and long.endswith("...")


def test_frame_roundtrip_preserves_newlines_in_strings():
    message = {"status": "error", "error": "line one\n\nline two"}
    frame = encode_frame(message)
    assert frame.count("\n\n") == 1 and frame.endswith("\n\n")
    assert decode_frame(frame[:-2]) == message


@pytest.mark.parametrize("raw", ["event: ping", "data: {not json", 'data: {"status": "weird"}', "data: []"])
def test_decode_frame_rejects_malformed(raw):
    with pytest.raises(FramingError):
        decode_frame(raw)


def test_decoder_handles_every_split_point():
    stream = (
        encode_frame({"status": "generating"})
        + encode_frame({"status": "progress", "event": {"stage": "fetch"}})
        + encode_frame({"status": "done", "trip": {"id": "t1", "city": "Málaga"}})
    ).encode("utf-8")

    for cut in range(1, len(stream)):
        decoder = FrameDecoder()
        messages = decoder.feed(stream[:cut]) + decoder.feed(stream[cut:])
        assert [m["status"] for m in messages] == ["generating", "progress", "done"]
        assert messages[-1]["trip"]["city"] == "Málaga"


def test_decoder_accepts_crlf():
    decoder = FrameDecoder()
    assert decoder.feed('data: {"status": "generating"}\r\n\r\n') == [{"status": "generating"}]


def test_read_stream_returns_trip_and_reports_messages():
    seen = []
    chunks = [encode_frame({"status": "generating"}), encode_frame({"status": "done", "trip": {"id": "t1"}})]
    assert read_stream(chunks, on_message=seen.append) == {"id": "t1"}
    assert [m["status"] for m in seen] == ["generating", "done"]


def test_read_stream_error_terminal_raises():
    with pytest.raises(GenerationError, match="too slow"):
        read_stream([encode_frame({"status": "error", "error": "too slow"})])


def test_read_stream_without_terminal_raises():
    with pytest.raises(GenerationError):
        read_stream([encode_frame({"status": "generating"})])


def test_read_stream_rejects_messages_after_terminal():
    chunks = [encode_frame({"status": "done", "trip": {}}), encode_frame({"status": "generating"})]
    with pytest.raises(FramingError):
        read_stream(chunks)


def test_read_stream_rejects_truncated_frame():
    with pytest.raises(FramingError):
        read_stream([encode_frame({"status": "generating"}), 'data: {"status": "do'])


def test_channel_drops_writes_after_close():
    async def scenario():
        channel = EventChannel()
        channel.write({"status": "generating"})
        channel.close({"status": "error", "error": "boom"})
        channel.write({"status": "generating"})
        channel.close({"status": "done", "trip": {}})
        return [frame async for frame in channel.frames()]

    frames = asyncio.run(scenario())
    assert [json.loads(f[6:])["status"] for f in frames] == ["generating", "error"]


def test_channel_replaces_unserializable_terminal():
    async def scenario():
        channel = EventChannel()
        channel.close({"status": "done", "trip": {"score": float("nan")}})
        return [frame async for frame in channel.frames()]

    frames = asyncio.run(scenario())
    assert len(frames) == 1
    assert json.loads(frames[0][6:])["status"] == "error"


def test_stream_generation_success_ends_with_done():
    itinerary = Itinerary(preferences=_prefs())
    frames = asyncio.run(_collect(_StubPipeline(result=itinerary)))
    statuses = [json.loads(f[6:])["status"] for f in frames]

    assert statuses[0] == "generating"
    assert statuses.count("progress") == 2
    assert statuses[-1] == "done"
    assert statuses.count("done") + statuses.count("error") == 1
    assert read_stream(frames)["id"] == itinerary.id


def test_stream_generation_failure_ends_with_single_error():
    error = DeadlineExceededError('Generation exceeded\n the "limit"', stage="balance")
    frames = asyncio.run(_collect(_StubPipeline(error=error)))
    last = json.loads(frames[-1][6:])

    assert last == {"status": "error", "error": "Generation exceeded the 'limit'"}
    assert all(json.loads(f[6:])["status"] != "done" for f in frames)


def test_stream_generation_wraps_unexpected_errors():
    frames = asyncio.run(_collect(_StubPipeline(error=KeyError("oops"))))
    last = json.loads(frames[-1][6:])
    assert last["status"] == "error"
    assert last["error"].startswith("Internal error")
