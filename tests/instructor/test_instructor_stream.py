"""Streaming extraction: event order, snapshots, retries and cancellation."""

from __future__ import annotations

import json

import pytest

from schemas.parsing import JSON_MALFORMED, ParsingRequest
from schemas.streaming import (
    AttemptFailed,
    AttemptStarted,
    FinalResult,
    RawChunk,
    Snapshot,
    StreamError,
)
from services.instructor.engine import Instructor
from services.instructor.exceptions import LlmClientError
from services.instructor.llm_client import MockLlmClient


def _request(schema_text: str) -> ParsingRequest:
    return ParsingRequest(json_schema=schema_text, user_input="Alice is 25")


async def _collect(instructor: Instructor, request: ParsingRequest) -> list:
    return [event async for event in instructor.parse_stream(request)]


def _chunks(text: str, size: int) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


@pytest.mark.asyncio
async def test_success_event_order(person_schema_text, response_factory):
    client = MockLlmClient(response_factory({"name": "Alice", "age": 25}))
    instructor = Instructor(client, snapshot_threshold=10_000)

    events = await _collect(instructor, _request(person_schema_text))

    assert [e.event for e in events] == [
        "attemptStarted",
        "rawChunk",
        "snapshot",
        "finalResult",
    ]
    assert all(e.attempt == 1 for e in events)
    assert [e.is_terminal for e in events] == [False, False, False, True]
    final = events[-1]
    assert isinstance(final, FinalResult)
    assert final.errors == []
    assert final.result.fields["age"].value == 25


@pytest.mark.asyncio
async def test_raw_chunks_are_forwarded_in_order(person_schema_text, response_factory):
    text = response_factory({"name": "Alice", "age": 25})
    chunks = _chunks(text, 7)
    client = MockLlmClient(stream_chunks=chunks)
    instructor = Instructor(client)

    events = await _collect(instructor, _request(person_schema_text))

    raw = [e for e in events if isinstance(e, RawChunk)]
    assert [e.chunk for e in raw] == chunks
    assert isinstance(events[-1], FinalResult)


@pytest.mark.asyncio
async def test_no_snapshot_before_buffer_parses(person_schema_text, response_factory):
    text = response_factory({"name": "Alice", "age": 25})
    chunks = _chunks(text, 5)
    client = MockLlmClient(stream_chunks=chunks)
    instructor = Instructor(client, snapshot_threshold=1)

    events = await _collect(instructor, _request(person_schema_text))

    last_raw_index = max(i for i, e in enumerate(events) if isinstance(e, RawChunk))
    snapshot_indexes = [i for i, e in enumerate(events) if isinstance(e, Snapshot)]
    assert snapshot_indexes
    assert all(i > last_raw_index for i in snapshot_indexes)


@pytest.mark.asyncio
async def test_opportunistic_snapshot_once_threshold_reached(response_factory):
    schema = json.dumps(
        {"type": "object", "properties": {"note": {"type": "string"}}, "required": ["note"]}
    )
    complete = response_factory({"note": "x" * 300})
    # Valid JSON document followed by trailing whitespace chunks
    chunks = [complete, " ", " "]
    client = MockLlmClient(stream_chunks=chunks)
    instructor = Instructor(client, snapshot_threshold=256)

    events = await _collect(instructor, ParsingRequest(json_schema=schema, user_input="n"))

    kinds = [e.event for e in events]
    # snapshot right after the first chunk, then the final snapshot
    assert kinds == [
        "attemptStarted",
        "rawChunk",
        "snapshot",
        "rawChunk",
        "rawChunk",
        "snapshot",
        "finalResult",
    ]


@pytest.mark.asyncio
async def test_failed_attempt_precedes_next_attempt(person_schema_text, response_factory):
    bad = response_factory({"name": "Alice", "age": "twenty"})
    good = response_factory({"name": "Alice", "age": 25})
    client = MockLlmClient([bad, good])
    instructor = Instructor(client, snapshot_threshold=10_000)

    events = await _collect(instructor, _request(person_schema_text))

    assert [(e.event, e.attempt) for e in events] == [
        ("attemptStarted", 1),
        ("rawChunk", 1),
        ("snapshot", 1),
        ("attemptFailed", 1),
        ("attemptStarted", 2),
        ("rawChunk", 2),
        ("snapshot", 2),
        ("finalResult", 2),
    ]
    failed = events[3]
    assert isinstance(failed, AttemptFailed)
    assert failed.errors[0].kind == "type"
    assert "PREVIOUS ATTEMPT FAILED" in client.prompts[1]


@pytest.mark.asyncio
async def test_malformed_json_attempt_has_no_snapshot(person_schema_text):
    client = MockLlmClient(stream_chunks=['{"fields": {', '"name": '])
    instructor = Instructor(client, max_retries=0, snapshot_threshold=1)

    events = await _collect(instructor, _request(person_schema_text))

    assert [e.event for e in events] == [
        "attemptStarted",
        "rawChunk",
        "rawChunk",
        "attemptFailed",
        "finalResult",
    ]
    assert events[3].errors[0].kind == JSON_MALFORMED
    final = events[-1]
    assert final.result.fields is None
    assert final.errors == events[3].errors


@pytest.mark.asyncio
async def test_exhausted_stream_ends_with_failed_final_result(
    person_schema_text, response_factory
):
    client = MockLlmClient(response_factory({"name": "Alice"}))
    instructor = Instructor(client, max_retries=3)

    events = await _collect(instructor, _request(person_schema_text))

    starts = [e for e in events if isinstance(e, AttemptStarted)]
    assert [e.attempt for e in starts] == [1, 2, 3, 4]
    assert sum(isinstance(e, AttemptFailed) for e in events) == 4
    final = events[-1]
    assert isinstance(final, FinalResult)
    assert final.attempt == 4
    assert final.result.fields is None
    assert final.result.errors == final.errors
    assert final.errors[0].kind == "required"


@pytest.mark.asyncio
async def test_client_error_becomes_terminal_error_event(person_schema_text):
    def responder(prompt: str) -> str:
        raise LlmClientError("quota exceeded")

    instructor = Instructor(MockLlmClient(responder=responder))

    events = await _collect(instructor, _request(person_schema_text))

    assert [e.event for e in events] == ["attemptStarted", "error"]
    error = events[-1]
    assert isinstance(error, StreamError)
    assert error.error_code == "llm_error"
    assert error.message == "quota exceeded"
    assert isinstance(error.cause, LlmClientError)
    assert "cause" not in json.loads(error.model_dump_json())


@pytest.mark.asyncio
async def test_error_on_second_attempt_carries_attempt_number(
    person_schema_text, response_factory
):
    calls = {"n": 0}

    def responder(prompt: str) -> str:
        calls["n"] += 1
        if calls["n"] == 1:
            return response_factory({"name": "Alice"})
        raise RuntimeError("connection reset")

    instructor = Instructor(MockLlmClient(responder=responder))

    events = await _collect(instructor, _request(person_schema_text))

    assert events[-1].event == "error"
    assert events[-1].attempt == 2
    assert events[-1].error_code == "stream_error"
    assert not any(isinstance(e, FinalResult) for e in events)


class _TrackingClient:
    supports_streaming = True

    def __init__(self, chunks: list[str]) -> None:
        self.chunks = chunks
        self.closed = False

    async def complete(self, prompt: str) -> str:
        return "".join(self.chunks)

    async def complete_streaming(self, prompt: str):
        try:
            for chunk in self.chunks:
                yield chunk
        finally:
            self.closed = True


@pytest.mark.asyncio
async def test_closing_stream_closes_client_stream(person_schema_text):
    client = _TrackingClient(['{"fields"', ": {}", "}"])
    instructor = Instructor(client)
    stream = instructor.parse_stream(_request(person_schema_text))

    assert isinstance(await anext(stream), AttemptStarted)
    assert isinstance(await anext(stream), RawChunk)
    await stream.aclose()

    assert client.closed is True
    with pytest.raises(StopAsyncIteration):
        await anext(stream)


@pytest.mark.asyncio
async def test_non_streaming_client_yields_single_chunk(
    person_schema_text, response_factory
):
    text = response_factory({"name": "Alice", "age": 25})
    client = MockLlmClient(text, stream_chunks=["ignored"], supports_streaming=False)
    instructor = Instructor(client, snapshot_threshold=10_000)

    events = await _collect(instructor, _request(person_schema_text))

    raw = [e for e in events if isinstance(e, RawChunk)]
    assert [e.chunk for e in raw] == [text]
    assert isinstance(events[-1], FinalResult)


def test_events_render_as_named_sse():
    event = RawChunk(chunk='{"a"', attempt=2)

    rendered = event.to_sse()

    assert rendered.startswith("event: rawChunk\ndata: ")
    assert rendered.endswith("\n\n")
    payload = json.loads(rendered.split("data: ", 1)[1])
    assert payload == {"attempt": 2, "event": "rawChunk", "chunk": '{"a"'}


@pytest.mark.asyncio
async def test_reasoning_preamble_is_stripped_before_parsing(
    person_schema_text, response_factory
):
    text = response_factory({"name": "Alice", "age": 25})
    chunks = ["<think>The user gave a name", " and an age</think>\n", *_chunks(text, 9)]
    client = MockLlmClient(stream_chunks=chunks)
    instructor = Instructor(client)

    events = await _collect(instructor, _request(person_schema_text))

    assert [e.chunk for e in events if isinstance(e, RawChunk)] == chunks
    assert not any(isinstance(e, AttemptFailed) for e in events)
    final = events[-1]
    assert isinstance(final, FinalResult)
    assert final.attempt == 1
    assert final.result.fields["name"].value == "Alice"
    assert client.call_count == 1
