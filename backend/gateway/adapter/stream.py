"""
Cumulative-to-delta stream translation.

The native backend streams SSE frames whose `output.text` is the whole text
generated so far. OpenAI-style clients expect each chunk to carry only the
new text, so the translator remembers how much it has already sent and
emits the remainder.
"""

import enum
import json
import time
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional

import structlog
from pydantic import ValidationError

from gateway.adapter.responses import usage_from_native
from gateway.providers.native import NativeResponse
from gateway.schemas import ChatCompletionChunk, ChunkChoice

logger = structlog.get_logger()

DONE_SENTINEL = "data: [DONE]\n\n"


def sse_format(data: Dict[str, Any]) -> str:
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


def sse_chunk(chunk: ChatCompletionChunk) -> str:
    exclude = {"usage"} if chunk.usage is None else None
    return sse_format(chunk.model_dump(exclude=exclude))


def sse_data_payload(line: str) -> Optional[str]:
    """JSON payload of a `data:` line, or None for any other SSE line."""
    if not line.startswith("data:"):
        return None
    payload = line[len("data:") :].strip()
    if not payload.startswith("{"):
        return None
    return payload


class StreamState(enum.Enum):
    STREAMING = "streaming"
    DONE = "done"


@dataclass
class StreamCursor:
    """Per-exchange progress: how much text went out and under which id."""
    last_length: int = 0
    request_id: str = ""


class StreamTranslator:
    """
    Turns native stream frames into chat.completion.chunk SSE events.

    One instance serves exactly one streamed exchange. Feed it the frames in
    arrival order; once it reaches DONE it ignores further input.
    """

    def __init__(self, model: str, created: Optional[int] = None):
        self.model = model
        self.created = created if created is not None else int(time.time())
        self.cursor = StreamCursor()
        self.state = StreamState.STREAMING
        self.finish_reason: Optional[str] = None
        self.skipped_frames = 0

    @property
    def done(self) -> bool:
        return self.state is StreamState.DONE

    def feed_line(self, line: str) -> List[str]:
        if self.done:
            return []
        payload = sse_data_payload(line)
        if payload is None:
            return []
        return self.feed(payload)

    def feed(self, payload: str) -> List[str]:
        """Consume one frame payload and return the SSE events it produces."""
        if self.done:
            return []
        try:
            frame = NativeResponse.model_validate_json(payload)
        except ValidationError as e:
            self.skipped_frames += 1
            logger.warning("stream_frame_skipped", error=str(e), data=payload[:100])
            return []

        if not self.cursor.request_id and frame.response_id:
            self.cursor.request_id = frame.response_id

        events: List[str] = []
        text = frame.text
        if len(text) > self.cursor.last_length:
            delta = text[self.cursor.last_length :]
            self.cursor.last_length = len(text)
            events.append(sse_chunk(self._chunk({"content": delta}, None)))

        finish_reason = frame.finish_reason
        if finish_reason is not None:
            terminal = self._chunk({}, finish_reason)
            terminal.usage = usage_from_native(frame)
            events.append(sse_chunk(terminal))
            events.append(DONE_SENTINEL)
            self.finish_reason = finish_reason
            self.state = StreamState.DONE
        return events

    def finish(self) -> bool:
        """
        Mark the upstream as exhausted. Returns True when the exchange ended
        normally, False when it ended without a finish reason.
        """
        if self.done:
            return self.finish_reason is not None
        self.state = StreamState.DONE
        logger.warning(
            "stream_ended_without_finish_reason",
            request_id=self.cursor.request_id,
            sent_chars=self.cursor.last_length,
            skipped_frames=self.skipped_frames,
        )
        return False

    def _chunk(self, delta: Dict[str, str], finish_reason: Optional[str]) -> ChatCompletionChunk:
        return ChatCompletionChunk(
            id=self.cursor.request_id,
            created=self.created,
            model=self.model,
            choices=[ChunkChoice(index=0, delta=delta, finish_reason=finish_reason)],
        )


async def translate_stream(
    lines: AsyncIterable[str],
    model: str,
    translator: Optional[StreamTranslator] = None,
) -> AsyncIterator[str]:
    """Relay SSE lines from the backend as OpenAI-style chunk events."""
    translator = translator or StreamTranslator(model)
    async for line in lines:
        for event in translator.feed_line(line):
            yield event
        if translator.done:
            return
    translator.finish()
