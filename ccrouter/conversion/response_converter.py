"""Unified (Chat Completions shaped) response -> Anthropic Messages response."""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from ccrouter.conversion.tool_arguments import load_tool_arguments, parse_tool_arguments
from ccrouter.core.constants import Constants
from ccrouter.streaming.sse import format_sse_event, iter_sse_events

logger = logging.getLogger(__name__)

STOP_REASONS = {
    "stop": Constants.STOP_END_TURN,
    "length": Constants.STOP_MAX_TOKENS,
    "tool_calls": Constants.STOP_TOOL_USE,
    "function_call": Constants.STOP_TOOL_USE,
}


def map_stop_reason(finish_reason: str | None) -> str:
    return STOP_REASONS.get(finish_reason or "stop", Constants.STOP_END_TURN)


def convert_usage(usage: dict[str, Any] | None) -> dict[str, int]:
    usage = usage or {}
    converted = {
        "input_tokens": usage.get("prompt_tokens") or usage.get("input_tokens") or 0,
        "output_tokens": usage.get("completion_tokens") or usage.get("output_tokens") or 0,
    }
    cached = (usage.get("prompt_tokens_details") or {}).get("cached_tokens")
    if cached:
        converted["cache_read_input_tokens"] = cached
    return converted


def _thinking_of(message: dict[str, Any]) -> dict[str, Any] | None:
    thinking = message.get("thinking")
    if isinstance(thinking, dict) and thinking.get("content"):
        return {
            "type": Constants.CONTENT_THINKING,
            "thinking": thinking["content"],
            "signature": thinking.get("signature") or "",
        }
    if message.get("reasoning_content"):
        return {
            "type": Constants.CONTENT_THINKING,
            "thinking": message["reasoning_content"],
            "signature": "",
        }
    return None


def convert_unified_to_anthropic(response: dict[str, Any], model: str | None = None) -> dict[str, Any]:
    """Convert a chat.completion object into an Anthropic message."""
    choices = response.get("choices") or []
    if not choices:
        raise ValueError("No choices in provider response")
    choice = choices[0]
    message = choice.get("message") or {}

    content_blocks: list[dict[str, Any]] = []
    thinking = _thinking_of(message) or _thinking_of(response)
    if thinking:
        content_blocks.append(thinking)

    text = message.get("content")
    if isinstance(text, list):
        text = "".join(p.get("text") or "" for p in text if isinstance(p, dict))
    if text:
        content_blocks.append({"type": Constants.CONTENT_TEXT, "text": text})

    for tool_call in message.get("tool_calls") or []:
        function_data = tool_call.get(Constants.TOOL_FUNCTION) or {}
        content_blocks.append(
            {
                "type": Constants.CONTENT_TOOL_USE,
                "id": tool_call.get("id") or f"toolu_{uuid.uuid4().hex[:24]}",
                "name": function_data.get("name") or "",
                "input": load_tool_arguments(function_data.get("arguments")),
            }
        )

    if not content_blocks:
        content_blocks.append({"type": Constants.CONTENT_TEXT, "text": ""})

    return {
        "id": response.get("id") or f"msg_{uuid.uuid4().hex[:24]}",
        "type": "message",
        "role": Constants.ROLE_ASSISTANT,
        "model": model or response.get("model"),
        "content": content_blocks,
        "stop_reason": map_stop_reason(choice.get("finish_reason")),
        "stop_sequence": None,
        "usage": convert_usage(response.get("usage")),
    }


@dataclass
class _ToolCall:
    tool_id: str
    name: str
    arguments: list[str] = field(default_factory=list)


@dataclass
class AnthropicStreamConverter:
    """Per-stream state turning chat.completion.chunk objects into Anthropic SSE.

    Thinking and text blocks are opened lazily and streamed as they arrive;
    switching block kind closes the open block first. Tool-call fragments may
    interleave across indices, so each call is collected and emitted as one
    complete tool_use block when the stream finishes.
    """

    model: str | None = None
    message_id: str = field(default_factory=lambda: f"msg_{uuid.uuid4().hex[:24]}")
    started: bool = False
    stopped: bool = False
    block_index: int = -1
    open_block: str | None = None
    tool_calls: dict[int, _ToolCall] = field(default_factory=dict)
    stop_reason: str | None = None
    usage: dict[str, int] = field(default_factory=lambda: {"input_tokens": 0, "output_tokens": 0})

    def _event(self, event: str, payload: dict[str, Any]) -> str:
        return format_sse_event(event, {"type": event, **payload})

    def _start(self, chunk: dict[str, Any]) -> list[str]:
        if self.started:
            return []
        self.started = True
        if chunk.get("id"):
            self.message_id = chunk["id"]
        message = {
            "id": self.message_id,
            "type": "message",
            "role": Constants.ROLE_ASSISTANT,
            "model": self.model or chunk.get("model"),
            "content": [],
            "stop_reason": None,
            "stop_sequence": None,
            "usage": {"input_tokens": 0, "output_tokens": 0},
        }
        return [self._event(Constants.EVENT_MESSAGE_START, {"message": message})]

    def _close_block(self) -> list[str]:
        if self.open_block is None:
            return []
        self.open_block = None
        return [self._event(Constants.EVENT_CONTENT_BLOCK_STOP, {"index": self.block_index})]

    def _open_block(self, kind: str, content_block: dict[str, Any]) -> list[str]:
        events = self._close_block()
        self.block_index += 1
        self.open_block = kind
        events.append(
            self._event(
                Constants.EVENT_CONTENT_BLOCK_START,
                {"index": self.block_index, "content_block": content_block},
            )
        )
        return events

    def _delta(self, delta: dict[str, Any]) -> str:
        return self._event(
            Constants.EVENT_CONTENT_BLOCK_DELTA, {"index": self.block_index, "delta": delta}
        )

    def _thinking_events(self, thinking: dict[str, Any]) -> list[str]:
        events: list[str] = []
        if thinking.get("content"):
            if self.open_block != Constants.CONTENT_THINKING:
                events += self._open_block(
                    Constants.CONTENT_THINKING,
                    {"type": Constants.CONTENT_THINKING, "thinking": ""},
                )
            events.append(
                self._delta({"type": Constants.DELTA_THINKING, "thinking": thinking["content"]})
            )
        if thinking.get("signature"):
            if self.open_block != Constants.CONTENT_THINKING:
                events += self._open_block(
                    Constants.CONTENT_THINKING,
                    {"type": Constants.CONTENT_THINKING, "thinking": ""},
                )
            events.append(
                self._delta({"type": Constants.DELTA_SIGNATURE, "signature": thinking["signature"]})
            )
            events += self._close_block()
        return events

    def _collect_tool_calls(self, tool_calls: list[dict[str, Any]]) -> None:
        for tc_delta in tool_calls:
            tc_index = tc_delta.get("index", 0)
            function_data = tc_delta.get(Constants.TOOL_FUNCTION) or {}
            call = self.tool_calls.get(tc_index)
            if call is None:
                call = _ToolCall(
                    tool_id=tc_delta.get("id") or f"toolu_{uuid.uuid4().hex[:24]}",
                    name=function_data.get("name") or "",
                )
                self.tool_calls[tc_index] = call
            elif function_data.get("name") and not call.name:
                call.name = function_data["name"]
            arguments = function_data.get("arguments")
            if isinstance(arguments, str) and arguments:
                call.arguments.append(arguments)
            elif isinstance(arguments, dict):
                call.arguments.append(parse_tool_arguments(arguments))

    def _tool_use_events(self) -> list[str]:
        events: list[str] = []
        for tc_index in sorted(self.tool_calls):
            call = self.tool_calls[tc_index]
            events += self._open_block(
                f"tool:{tc_index}",
                {
                    "type": Constants.CONTENT_TOOL_USE,
                    "id": call.tool_id,
                    "name": call.name,
                    "input": {},
                },
            )
            events.append(
                self._delta(
                    {
                        "type": Constants.DELTA_INPUT_JSON,
                        "partial_json": parse_tool_arguments("".join(call.arguments)),
                    }
                )
            )
            events += self._close_block()
        self.tool_calls.clear()
        return events

    def feed(self, chunk: dict[str, Any]) -> list[str]:
        if self.stopped:
            return []
        events = self._start(chunk)

        if chunk.get("usage"):
            self.usage = convert_usage(chunk["usage"])

        choices = chunk.get("choices") or []
        if not choices:
            return events
        choice = choices[0]
        delta = choice.get("delta") or {}

        thinking = delta.get("thinking")
        if isinstance(thinking, dict):
            events += self._thinking_events(thinking)
        elif delta.get("reasoning_content"):
            events += self._thinking_events({"content": delta["reasoning_content"]})

        content = delta.get("content")
        if content:
            if self.open_block != Constants.CONTENT_TEXT:
                events += self._open_block(
                    Constants.CONTENT_TEXT, {"type": Constants.CONTENT_TEXT, "text": ""}
                )
            events.append(self._delta({"type": Constants.DELTA_TEXT, "text": content}))

        if delta.get("tool_calls"):
            self._collect_tool_calls(delta["tool_calls"])

        if choice.get("finish_reason"):
            self.stop_reason = map_stop_reason(choice["finish_reason"])
        return events

    def finish(self) -> list[str]:
        if self.stopped:
            return []
        self.stopped = True
        events = self._start({})
        events += self._close_block()
        events += self._tool_use_events()
        events.append(
            self._event(
                Constants.EVENT_MESSAGE_DELTA,
                {
                    "delta": {
                        "stop_reason": self.stop_reason or Constants.STOP_END_TURN,
                        "stop_sequence": None,
                    },
                    "usage": self.usage,
                },
            )
        )
        events.append(self._event(Constants.EVENT_MESSAGE_STOP, {}))
        return events


async def convert_unified_stream_to_anthropic(
    byte_stream: AsyncIterable[bytes], model: str | None = None
) -> AsyncIterator[bytes]:
    """Rewrite a Chat-Completions SSE byte stream into Anthropic SSE bytes."""
    converter = AnthropicStreamConverter(model=model)
    events = iter_sse_events(byte_stream)
    try:
        async for event in events:
            if event.is_done:
                break
            if not event.data:
                continue
            try:
                chunk = event.json()
            except ValueError:
                logger.warning(f"Skipping unparseable stream chunk: {event.data[:200]}")
                continue
            if isinstance(chunk, dict) and chunk.get("error"):
                error = chunk["error"]
                yield format_sse_event("error", {"type": "error", "error": error}).encode("utf-8")
                continue
            if isinstance(chunk, dict):
                for out in converter.feed(chunk):
                    yield out.encode("utf-8")
    finally:
        await events.aclose()
    for out in converter.finish():
        yield out.encode("utf-8")


def anthropic_error_event(message: str, error_type: str = "api_error") -> str:
    return format_sse_event("error", {"type": "error", "error": {"type": error_type, "message": message}})
