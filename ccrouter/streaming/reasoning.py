"""Cross-chunk extraction of ``<reasoning_content>`` tags from streamed deltas.

Models prompted to "think out loud" wrap their reasoning in
``<reasoning_content>...</reasoning_content>``. ``ReasoningTagExtractor``
rewrites Chat-Completions chunks so that the tagged text is emitted as
``delta.thinking.content``, followed by a ``delta.thinking.signature`` once
the closing tag is seen, and everything after it as ordinary
``delta.content``. The tags may be split across chunks arbitrarily.
"""

from __future__ import annotations

import copy
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ccrouter.core.constants import Constants


class ReasoningState(str, Enum):
    SEARCHING = "searching"
    REASONING = "reasoning"
    FINAL = "final"


def _partial_tag_suffix(text: str, tag: str) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of ``tag``."""
    for length in range(min(len(tag) - 1, len(text)), 0, -1):
        if text.endswith(tag[:length]):
            return length
    return 0


@dataclass
class TagCarry:
    """Holds a possible partial tag at the end of one chunk for the next."""

    pending: str = ""

    def take(self, text: str) -> str:
        combined, self.pending = self.pending + text, ""
        return combined

    def hold_partial(self, text: str, tag: str) -> str:
        """Move a trailing partial ``tag`` into the carry; return the rest."""
        length = _partial_tag_suffix(text, tag)
        if length:
            self.pending = text[-length:]
            return text[:-length]
        return text


def timestamp_signature() -> str:
    return str(int(time.time() * 1000))


class ReasoningTagExtractor:
    """State machine over parsed Chat-Completions stream chunks.

    One instance per stream. ``feed`` returns the chunks to emit for one
    input chunk; ``finish`` returns the trailing chunks at end of stream.
    """

    def __init__(
        self,
        start_tag: str = Constants.REASONING_TAG_OPEN,
        end_tag: str = Constants.REASONING_TAG_CLOSE,
        signature_factory: Callable[[], str] = timestamp_signature,
    ) -> None:
        self.start_tag = start_tag
        self.end_tag = end_tag
        self.state = ReasoningState.SEARCHING
        self.carry = TagCarry()
        self.final_buffer = ""
        self.content_index = 0
        self._signature_factory = signature_factory

    def feed(self, chunk: dict[str, Any]) -> list[dict[str, Any]]:
        choices = chunk.get("choices") or []
        delta = choices[0].get("delta") if choices else None
        content = delta.get("content") if isinstance(delta, dict) else None

        if not isinstance(content, str):
            # Non-text deltas (tool calls, role, finish) pass through unchanged
            if isinstance(delta, dict) and delta and not delta.get("content"):
                out = copy.deepcopy(chunk)
                out["choices"][0]["index"] = self.content_index
                return [out]
            return []

        emitted: list[dict[str, Any]] = []
        text = self.carry.take(content)

        while text:
            if self.state is ReasoningState.SEARCHING:
                start = text.find(self.start_tag)
                if start == -1:
                    # Text before the opening tag is dropped
                    self.carry.hold_partial(text, self.start_tag)
                    text = ""
                else:
                    text = text[start + len(self.start_tag) :]
                    self.state = ReasoningState.REASONING

            elif self.state is ReasoningState.REASONING:
                end = text.find(self.end_tag)
                if end == -1:
                    reasoning = self.carry.hold_partial(text, self.end_tag)
                    if reasoning:
                        emitted.append(self._thinking_chunk(chunk, {"content": reasoning}))
                    text = ""
                else:
                    if end > 0:
                        emitted.append(self._thinking_chunk(chunk, {"content": text[:end]}))
                    emitted.append(
                        self._thinking_chunk(chunk, {"signature": self._signature_factory()})
                    )
                    self.content_index += 1
                    text = text[end + len(self.end_tag) :]
                    self.state = ReasoningState.FINAL

            else:
                if text.strip():
                    emitted.append(self._content_chunk(chunk, self.final_buffer + text))
                    self.final_buffer = ""
                else:
                    self.final_buffer += text
                self.content_index += 1
                text = ""

        return emitted

    def finish(self) -> list[dict[str, Any]]:
        """Close an unterminated reasoning block with a synthetic signature."""
        if self.state is ReasoningState.REASONING:
            self.state = ReasoningState.FINAL
            return [{"choices": [{"delta": {"thinking": {"signature": self._signature_factory()}}}]}]
        return []

    def _thinking_chunk(self, chunk: dict[str, Any], thinking: dict[str, str]) -> dict[str, Any]:
        choice = chunk["choices"][0]
        delta = {k: v for k, v in choice.get("delta", {}).items() if k != "content"}
        delta["thinking"] = thinking
        return {**chunk, "choices": [{**choice, "delta": delta, "index": self.content_index}]}

    def _content_chunk(self, chunk: dict[str, Any], text: str) -> dict[str, Any]:
        choice = chunk["choices"][0]
        delta = {k: v for k, v in choice.get("delta", {}).items() if k != "thinking"}
        delta["content"] = text
        return {**chunk, "choices": [{**choice, "delta": delta}]}


def extract_reasoning(
    content: str,
    start_tag: str = Constants.REASONING_TAG_OPEN,
    end_tag: str = Constants.REASONING_TAG_CLOSE,
) -> str | None:
    """Return the text of the first complete reasoning block in ``content``."""
    start = content.find(start_tag)
    if start == -1:
        return None
    end = content.find(end_tag, start + len(start_tag))
    if end == -1:
        return None
    return content[start + len(start_tag) : end] or None
