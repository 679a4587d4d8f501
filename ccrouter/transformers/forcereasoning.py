"""Prompt-driven reasoning for models without native thinking support.

Previous assistant thinking is folded back into the transcript inside
``<reasoning_content>`` tags, the last user turn is told to reason in that
format, and the tagged text in the reply is split back out as thinking.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

import httpx

from ccrouter.core.constants import Constants
from ccrouter.streaming.reasoning import ReasoningTagExtractor
from ccrouter.streaming.rewrite import rewrite_stream
from ccrouter.streaming.sse import format_sse_data, iter_lines
from ccrouter.transformers.base import (
    Transformer,
    is_event_stream,
    iter_body,
    json_response,
    passthrough_headers,
    read_json,
    stream_response,
)

logger = logging.getLogger(__name__)

PROMPT = """Always think before answering. Even if the problem seems simple, always write down your reasoning process explicitly.

Output format:
<reasoning_content>
Your detailed thinking process goes here
</reasoning_content>
Your final answer must follow after the closing tag above."""

MAX_INTERLEAVED_TIMES = 10

REASONING_PATTERN = re.compile(
    re.escape(Constants.REASONING_TAG_OPEN) + r"(.*?)" + re.escape(Constants.REASONING_TAG_CLOSE),
    re.DOTALL,
)


def fold_thinking(messages: list[dict[str, Any]]) -> None:
    """Inline assistant thinking as tagged text, newest first, in place."""
    times = 0
    for message in reversed(messages):
        if message.get("role") != Constants.ROLE_ASSISTANT or "thinking" not in message:
            continue
        thinking = message.pop("thinking") or {}
        if thinking.get("content") and (not message.get("content") or times < MAX_INTERLEAVED_TIMES):
            times += 1
            message["content"] = (
                f"{Constants.REASONING_TAG_OPEN}{thinking['content']}"
                f"{Constants.REASONING_TAG_CLOSE}\n{message.get('content') or ''}"
            )


def append_reasoning_prompt(messages: list[dict[str, Any]]) -> None:
    if not messages:
        return
    last = messages[-1]
    role = last.get("role")
    if role == Constants.ROLE_USER:
        content = last.get("content")
        if isinstance(content, list):
            content.append({"type": "text", "text": PROMPT})
        else:
            last["content"] = [
                {"type": "text", "text": PROMPT},
                {"type": "text", "text": content or ""},
            ]
    elif role == Constants.ROLE_TOOL:
        messages.append({"role": Constants.ROLE_USER, "content": [{"type": "text", "text": PROMPT}]})


async def extract_reasoning_stream(byte_stream: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
    """Rewrite chat SSE so tagged reasoning becomes ``delta.thinking``."""
    extractor = ReasoningTagExtractor()

    async def process(line: str) -> bytes | None:
        stripped = line.strip()
        if not stripped:
            return None
        if stripped == f"data: {Constants.SSE_DONE}":
            tail = "".join(format_sse_data(chunk) for chunk in extractor.finish())
            return (tail + line + "\n\n").encode("utf-8")
        if not line.startswith("data:"):
            return (line + "\n").encode("utf-8")
        try:
            data = json.loads(line[5:])
        except json.JSONDecodeError:
            return (line + "\n").encode("utf-8")
        if not isinstance(data, dict):
            return (line + "\n").encode("utf-8")
        out = "".join(format_sse_data(chunk) for chunk in extractor.feed(data))
        return out.encode("utf-8") if out else None

    rewritten = rewrite_stream(iter_lines(byte_stream), process)
    try:
        async for chunk in rewritten:
            yield chunk
    finally:
        await rewritten.aclose()
    tail = "".join(format_sse_data(chunk) for chunk in extractor.finish())
    if tail:
        yield tail.encode("utf-8")


class ForceReasoningTransformer(Transformer):
    name = "forcereasoning"

    async def transform_request_in(self, request, provider, context) -> dict[str, Any]:
        body = copy.deepcopy(request)
        messages = body.get("messages") or []
        fold_thinking(messages)
        append_reasoning_prompt(messages)
        return body

    async def transform_response_out(self, response: httpx.Response, context) -> httpx.Response:
        headers = passthrough_headers(response)
        if is_event_stream(response):
            return stream_response(
                extract_reasoning_stream(iter_body(response)),
                status_code=response.status_code,
                headers=headers,
            )
        if "application/json" not in response.headers.get("content-type", ""):
            return response

        data = await read_json(response)
        choices = data.get("choices") if isinstance(data, dict) else None
        content = ((choices or [{}])[0].get("message") or {}).get("content")
        if isinstance(content, str):
            match = REASONING_PATTERN.search(content)
            if match and match.group(1):
                logger.debug(f"Extracted {len(match.group(1))} chars of tagged reasoning")
                data["thinking"] = {"content": match.group(1)}
                data["choices"][0]["message"]["content"] = content[match.end() :].lstrip()
        return json_response(data, status_code=response.status_code, headers=headers)
