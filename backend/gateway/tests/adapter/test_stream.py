import json
from typing import AsyncIterator, List

import pytest

from gateway.adapter import StreamTranslator, translate_stream
from gateway.adapter.stream import DONE_SENTINEL, StreamState
from gateway.tests.utils.backend import sse_body, stream_frame


def _decode(events: List[str]) -> List[object]:
    decoded: List[object] = []
    for event in events:
        assert event.startswith("data: ") and event.endswith("\n\n")
        payload = event[len("data: ") : -2]
        decoded.append(payload if payload == "[DONE]" else json.loads(payload))
    return decoded


def _feed_all(translator: StreamTranslator, frames) -> List[str]:
    events: List[str] = []
    for frame in frames:
        events.extend(translator.feed(json.dumps(frame)))
    return events


def test_cumulative_text_becomes_deltas() -> None:
    translator = StreamTranslator("qwen-plus", created=1700000000)
    events = _feed_all(
        translator,
        [
            stream_frame("Hi"),
            stream_frame("Hi there"),
            stream_frame("Hi there!"),
            stream_frame("Hi there!", finish_reason="stop"),
        ],
    )
    chunks = _decode(events)

    assert len(chunks) == 5
    assert [c["choices"][0]["delta"] for c in chunks[:3]] == [
        {"content": "Hi"},
        {"content": " there"},
        {"content": "!"},
    ]
    assert all(c["choices"][0]["finish_reason"] is None for c in chunks[:3])
    assert chunks[3]["choices"] == [{"index": 0, "delta": {}, "finish_reason": "stop"}]
    assert chunks[4] == "[DONE]"
    for chunk in chunks[:4]:
        assert chunk["id"] == "r1"
        assert chunk["object"] == "chat.completion.chunk"
        assert chunk["created"] == 1700000000
        assert chunk["model"] == "qwen-plus"
        assert "usage" not in chunk
    assert translator.state is StreamState.DONE


def test_text_delivered_with_finish_reason_is_not_lost() -> None:
    translator = StreamTranslator("qwen-plus")
    chunks = _decode(
        _feed_all(translator, [stream_frame("Hel"), stream_frame("Hello", finish_reason="stop")])
    )
    assert [c["choices"][0]["delta"] for c in chunks[:3]] == [
        {"content": "Hel"},
        {"content": "lo"},
        {},
    ]
    assert chunks[3] == "[DONE]"


def test_shrinking_or_repeated_text_emits_nothing() -> None:
    translator = StreamTranslator("qwen-plus")
    assert len(translator.feed(json.dumps(stream_frame("Hello")))) == 1
    assert translator.feed(json.dumps(stream_frame("Hello"))) == []
    assert translator.feed(json.dumps(stream_frame("Hel"))) == []
    assert translator.cursor.last_length == 5

    chunks = _decode(translator.feed(json.dumps(stream_frame("Hello world"))))
    assert chunks[0]["choices"][0]["delta"] == {"content": " world"}


def test_first_request_id_is_latched() -> None:
    translator = StreamTranslator("qwen-plus")
    chunks = _decode(
        _feed_all(
            translator,
            [
                {"output": {"text": "a"}},
                stream_frame("ab", request_id="r1"),
                stream_frame("abc", request_id="r2"),
            ],
        )
    )
    assert [c["id"] for c in chunks] == ["", "r1", "r1"]
    assert translator.cursor.request_id == "r1"


def test_session_id_stands_in_for_missing_request_id() -> None:
    translator = StreamTranslator("qwen-plus")
    chunks = _decode(_feed_all(translator, [stream_frame("a", request_id="")]))
    assert chunks[0]["id"] == "s1"


def test_malformed_frames_are_skipped() -> None:
    translator = StreamTranslator("qwen-plus")
    assert translator.feed("{not json") == []
    assert translator.feed('{"output": {"text": 5}}') == []
    chunks = _decode(translator.feed(json.dumps(stream_frame("ok"))))
    assert chunks[0]["choices"][0]["delta"] == {"content": "ok"}
    assert translator.skipped_frames == 2
    assert translator.state is StreamState.STREAMING


@pytest.mark.parametrize("line", ["", "id:1", "event:result", ":HTTP_STATUS/200", "data:", "data: [DONE]"])
def test_non_frame_lines_are_ignored(line: str) -> None:
    translator = StreamTranslator("qwen-plus")
    assert translator.feed_line(line) == []
    assert translator.skipped_frames == 0


def test_terminal_chunk_carries_usage() -> None:
    translator = StreamTranslator("qwen-plus")
    chunks = _decode(
        _feed_all(translator, [stream_frame("four", finish_reason="stop", usage=True)])
    )
    terminal = chunks[1]
    assert terminal["choices"][0]["finish_reason"] == "stop"
    assert terminal["usage"] == {"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7}


def test_input_after_done_is_ignored() -> None:
    translator = StreamTranslator("qwen-plus")
    _feed_all(translator, [stream_frame("done", finish_reason="stop")])
    assert translator.feed(json.dumps(stream_frame("done and more"))) == []
    assert translator.feed_line("data:" + json.dumps(stream_frame("x", finish_reason="stop"))) == []
    assert translator.finish() is True


def test_unicode_deltas() -> None:
    translator = StreamTranslator("qwen-plus")
    chunks = _decode(_feed_all(translator, [stream_frame("你好"), stream_frame("你好，世界")]))
    assert [c["choices"][0]["delta"]["content"] for c in chunks] == ["你好", "，世界"]


async def _lines(body: bytes, pulled: List[str]) -> AsyncIterator[str]:
    for line in body.decode("utf-8").split("\n"):
        pulled.append(line)
        yield line


@pytest.mark.anyio
async def test_translate_stream_stops_after_terminal_frame() -> None:
    body = sse_body(
        [
            stream_frame("Hi"),
            stream_frame("Hi!", finish_reason="stop"),
            stream_frame("Hi! extra"),
        ]
    )
    pulled: List[str] = []
    events = [e async for e in translate_stream(_lines(body, pulled), "qwen-plus")]

    assert events[-1] == DONE_SENTINEL
    assert len(events) == 4
    assert not any("extra" in line for line in pulled)


@pytest.mark.anyio
async def test_translate_stream_eof_without_finish_reason() -> None:
    translator = StreamTranslator("qwen-plus")
    body = sse_body([stream_frame("partial"), stream_frame("partial answer")])
    events = [e async for e in translate_stream(_lines(body, []), "qwen-plus", translator)]

    chunks = _decode(events)
    assert [c["choices"][0]["delta"] for c in chunks] == [
        {"content": "partial"},
        {"content": " answer"},
    ]
    assert DONE_SENTINEL not in events
    assert all(c["choices"][0]["finish_reason"] is None for c in chunks)
    assert translator.state is StreamState.DONE
    assert translator.finish() is False
