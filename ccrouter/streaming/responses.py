"""OpenAI Responses API -> Chat Completions conversion.

``ResponsesStreamConverter`` rewrites a Responses SSE stream line by line
into ``chat.completion.chunk`` frames; ``convert_response_to_chat`` does the
same for a complete, non-streaming ``response`` object.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from ccrouter.core.constants import Constants
from ccrouter.streaming.rewrite import rewrite_stream
from ccrouter.streaming.sse import DONE_FRAME, format_sse_data, iter_lines

logger = logging.getLogger(__name__)

EVENT_OUTPUT_TEXT_DELTA = "response.output_text.delta"
EVENT_OUTPUT_ITEM_ADDED = "response.output_item.added"
EVENT_ANNOTATION_ADDED = "response.output_text.annotation.added"
EVENT_FUNCTION_ARGS_DELTA = "response.function_call_arguments.delta"
EVENT_COMPLETED = "response.completed"
EVENT_REASONING_SUMMARY_DELTA = "response.reasoning_summary_text.delta"
EVENT_REASONING_SUMMARY_PART_DONE = "response.reasoning_summary_part.done"

DEFAULT_MODEL = "gpt-5-codex"


def _fallback_id() -> str:
    return f"chatcmpl-{int(time.time() * 1000)}"


def _url_citation(annotation: dict[str, Any] | None) -> dict[str, Any]:
    annotation = annotation or {}
    return {
        "type": "url_citation",
        "url_citation": {
            "url": annotation.get("url") or "",
            "title": annotation.get("title") or "",
            "content": "",
            "start_index": annotation.get("start_index") or 0,
            "end_index": annotation.get("end_index") or 0,
        },
    }


class ResponsesStreamConverter:
    """Per-stream state for converting Responses events into chat chunks.

    The chunk ``index`` advances only when the event type changes, so a run
    of deltas belonging to the same logical block shares one index.
    """

    def __init__(self) -> None:
        self.current_index = -1
        self.last_event_type = ""
        self.ended = False

    def index_for(self, event_type: str) -> int:
        if event_type != self.last_event_type:
            self.current_index += 1
            self.last_event_type = event_type
        return self.current_index

    def _chunk(
        self,
        chunk_id: str | None,
        model: str | None,
        index: int,
        delta: dict[str, Any],
        finish_reason: str | None = None,
    ) -> dict[str, Any]:
        return {
            "id": chunk_id or _fallback_id(),
            "object": "chat.completion.chunk",
            "created": int(time.time()),
            "model": model,
            "choices": [{"index": index, "delta": delta, "finish_reason": finish_reason}],
        }

    def convert_event(self, data: dict[str, Any]) -> list[dict[str, Any]]:
        """Map one decoded Responses event to zero or more chat chunks."""
        event_type = data.get("type")
        response = data.get("response") or {}
        model = response.get("model")
        item = data.get("item") or {}

        if event_type == EVENT_OUTPUT_TEXT_DELTA:
            return [
                self._chunk(
                    data.get("item_id"),
                    model,
                    self.index_for(event_type),
                    {"content": data.get("delta") or ""},
                )
            ]

        if event_type == EVENT_OUTPUT_ITEM_ADDED and item.get("type") == "function_call":
            call_id = item.get("call_id") or item.get("id")
            tool_call = {
                "index": 0,
                "id": call_id,
                "function": {"name": item.get("name") or "", "arguments": ""},
                "type": Constants.TOOL_FUNCTION,
            }
            return [
                self._chunk(
                    call_id,
                    model or DEFAULT_MODEL,
                    self.index_for(event_type),
                    {"role": Constants.ROLE_ASSISTANT, "tool_calls": [tool_call]},
                )
            ]

        if event_type == EVENT_OUTPUT_ITEM_ADDED and item.get("type") == "message":
            texts = [
                {"type": "text", "text": part.get("text") or ""}
                for part in item.get("content") or []
                if part.get("type") == "output_text"
            ]
            delta: dict[str, Any] = {"role": Constants.ROLE_ASSISTANT}
            if len(texts) == 1:
                delta["content"] = texts[0]["text"]
            elif texts:
                delta["content"] = texts
            if not delta.get("content"):
                return []
            return [self._chunk(item.get("id"), model, self.index_for(event_type), delta)]

        if event_type == EVENT_ANNOTATION_ADDED:
            return [
                self._chunk(
                    data.get("item_id"),
                    model or DEFAULT_MODEL,
                    self.index_for(event_type),
                    {"annotations": [_url_citation(data.get("annotation"))]},
                )
            ]

        if event_type == EVENT_FUNCTION_ARGS_DELTA:
            return [
                self._chunk(
                    data.get("item_id"),
                    model or DEFAULT_MODEL,
                    self.index_for(event_type),
                    {"tool_calls": [{"index": 0, "function": {"arguments": data.get("delta") or ""}}]},
                )
            ]

        if event_type == EVENT_COMPLETED:
            has_call = any(
                out.get("type") == "function_call" for out in response.get("output") or []
            )
            self.ended = True
            return [
                self._chunk(
                    response.get("id"),
                    model or DEFAULT_MODEL,
                    0,
                    {},
                    finish_reason="tool_calls" if has_call else "stop",
                )
            ]

        if event_type == EVENT_REASONING_SUMMARY_DELTA:
            return [
                self._chunk(
                    data.get("item_id"),
                    model,
                    self.index_for(event_type),
                    {"thinking": {"content": data.get("delta") or ""}},
                )
            ]

        if event_type == EVENT_REASONING_SUMMARY_PART_DONE and data.get("part"):
            return [
                self._chunk(
                    data.get("item_id"),
                    model,
                    self.current_index,
                    {"thinking": {"signature": data.get("item_id")}},
                )
            ]

        return []

    def convert_line(self, line: str) -> str | None:
        """Convert one raw SSE line; returns the text to emit, or None."""
        if not line.strip() or line.startswith("event:"):
            return None
        if not line.startswith("data:"):
            return line + "\n"

        payload = line[5:].strip()
        if payload == Constants.SSE_DONE:
            self.ended = True
            return DONE_FRAME
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug(f"Passing through unparseable Responses line: {payload[:200]}")
            return line + "\n"
        if not isinstance(data, dict):
            return line + "\n"
        chunks = self.convert_event(data)
        return "".join(format_sse_data(chunk) for chunk in chunks) or None

    def finish(self) -> str | None:
        return None if self.ended else DONE_FRAME


async def convert_responses_stream(byte_stream: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
    """Rewrite a Responses SSE byte stream into Chat-Completions SSE bytes."""
    converter = ResponsesStreamConverter()

    async def process(line: str) -> bytes | None:
        text = converter.convert_line(line)
        return text.encode("utf-8") if text else None

    rewritten = rewrite_stream(iter_lines(byte_stream), process)
    try:
        async for out in rewritten:
            yield out
    finally:
        await rewritten.aclose()
    tail = converter.finish()
    if tail:
        yield tail.encode("utf-8")


def _build_image_content(
    url: str | None = None, b64_json: str | None = None, mime_type: str | None = None
) -> dict[str, Any] | None:
    if not url and not b64_json:
        return None
    return {
        "type": "image_url",
        "image_url": {"url": url or "", "b64_json": b64_json},
        "media_type": mime_type,
    }


def is_responses_payload(data: Any) -> bool:
    return isinstance(data, dict) and data.get("object") == "response" and "output" in data


def convert_response_to_chat(response: dict[str, Any]) -> dict[str, Any]:
    """Convert a complete Responses API payload into a chat.completion object."""
    outputs = response.get("output") or []
    message_output = next((o for o in outputs if o.get("type") == "message"), None)
    function_calls = [o for o in outputs if o.get("type") == "function_call"]

    annotations = None
    content_parts = (message_output or {}).get("content") or []
    if content_parts and content_parts[0].get("annotations"):
        annotations = [_url_citation(a) for a in content_parts[0]["annotations"]]

    thinking = None
    if message_output and message_output.get("reasoning"):
        thinking = {"content": message_output["reasoning"]}
    else:
        summaries = [
            s.get("text", "")
            for o in outputs
            if o.get("type") == "reasoning"
            for s in o.get("summary") or []
        ]
        if summaries:
            thinking = {"content": "\n".join(summaries)}

    message_content: str | list[dict[str, Any]] | None = None
    if message_output and message_output.get("content") is not None:
        text_parts: list[str] = []
        image_parts: list[dict[str, Any]] = []
        for part in content_parts:
            part_type = part.get("type")
            if part_type == "output_text":
                text_parts.append(part.get("text") or "")
            elif part_type == "output_image":
                image = _build_image_content(url=part.get("image_url"), mime_type=part.get("mime_type"))
                if image:
                    image_parts.append(image)
            elif part_type == "output_image_base64":
                image = _build_image_content(
                    b64_json=part.get("image_base64"), mime_type=part.get("mime_type")
                )
                if image:
                    image_parts.append(image)
        if image_parts:
            combined: list[dict[str, Any]] = []
            if text_parts:
                combined.append({"type": "text", "text": "".join(text_parts)})
            combined.extend(image_parts)
            message_content = combined
        else:
            message_content = "".join(text_parts)

    tool_calls = None
    if function_calls:
        tool_calls = [
            {
                "id": call.get("call_id") or call.get("id"),
                "function": {"name": call.get("name"), "arguments": call.get("arguments")},
                "type": Constants.TOOL_FUNCTION,
            }
            for call in function_calls
        ]

    usage = response.get("usage")
    return {
        "id": response.get("id") or _fallback_id(),
        "object": "chat.completion",
        "created": response.get("created_at"),
        "model": response.get("model"),
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": Constants.ROLE_ASSISTANT,
                    "content": message_content or None,
                    "tool_calls": tool_calls,
                    "thinking": thinking,
                    "annotations": annotations,
                },
                "logprobs": None,
                "finish_reason": "tool_calls" if tool_calls else "stop",
            }
        ],
        "usage": {
            "prompt_tokens": usage.get("input_tokens") or 0,
            "completion_tokens": usage.get("output_tokens") or 0,
            "total_tokens": usage.get("total_tokens") or 0,
        }
        if usage
        else None,
    }
