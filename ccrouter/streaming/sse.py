"""Server-sent events framing and incremental parsing."""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Any

DONE_FRAME = "data: [DONE]\n\n"


def sse_headers() -> dict[str, str]:
    # Centralize the SSE header contract used for every streamed response.
    return {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Headers": "*",
    }


def format_sse_data(payload: Any) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def format_sse_event(event: str, payload: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


@dataclass
class SSEEvent:
    event: str | None = None
    data: str = ""
    id: str | None = None
    retry: int | None = None

    @property
    def is_done(self) -> bool:
        return self.data.strip() == "[DONE]"

    def json(self) -> Any:
        return json.loads(self.data)


class SSEParser:
    """Incremental parser turning text chunks into ``SSEEvent`` objects.

    Events are dispatched on a blank line. Lines may arrive split across
    chunks and may end in ``\\n`` or ``\\r\\n``.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._event: str | None = None
        self._data: list[str] = []
        self._id: str | None = None
        self._retry: int | None = None

    def feed(self, text: str) -> list[SSEEvent]:
        self._buffer += text
        events: list[SSEEvent] = []
        while True:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline].rstrip("\r")
            self._buffer = self._buffer[newline + 1 :]
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[SSEEvent]:
        """Dispatch whatever is buffered at end of input."""
        events: list[SSEEvent] = []
        if self._buffer:
            line, self._buffer = self._buffer.rstrip("\r"), ""
            self._process_line(line)
        event = self._dispatch()
        if event is not None:
            events.append(event)
        return events

    def _process_line(self, line: str) -> SSEEvent | None:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            self._id = value
        elif field == "retry" and value.isdigit():
            self._retry = int(value)
        return None

    def _dispatch(self) -> SSEEvent | None:
        if not self._data and self._event is None:
            return None
        event = SSEEvent(event=self._event, data="\n".join(self._data), id=self._id, retry=self._retry)
        self._event, self._data, self._id, self._retry = None, [], None, None
        return event


async def aclose_quietly(iterable: Any) -> None:
    """Close an async iterator if it supports ``aclose``."""
    aclose = getattr(iterable, "aclose", None)
    if aclose is not None:
        await aclose()


async def iter_text(byte_stream: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Decode a byte stream as UTF-8 without splitting multi-byte characters."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    try:
        async for chunk in byte_stream:
            text = decoder.decode(chunk)
            if text:
                yield text
        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail
    finally:
        await aclose_quietly(byte_stream)


async def iter_lines(byte_stream: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield complete lines (without terminators); the unterminated tail comes last."""
    buffer = ""
    texts = iter_text(byte_stream)
    try:
        async for text in texts:
            buffer += text
            *lines, buffer = buffer.split("\n")
            for line in lines:
                yield line.rstrip("\r")
        if buffer:
            yield buffer
    finally:
        await texts.aclose()


async def iter_sse_events(byte_stream: AsyncIterable[bytes]) -> AsyncIterator[SSEEvent]:
    parser = SSEParser()
    texts = iter_text(byte_stream)
    try:
        async for text in texts:
            for event in parser.feed(text):
                yield event
        for event in parser.flush():
            yield event
    finally:
        await texts.aclose()
