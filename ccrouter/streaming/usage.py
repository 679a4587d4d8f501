"""Capture upstream token usage from a stream as it passes to the client."""

from __future__ import annotations

import codecs
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from typing import Any

from ccrouter.core.constants import Constants
from ccrouter.streaming.sse import SSEParser, aclose_quietly

logger = logging.getLogger(__name__)


def usage_from_event(payload: dict[str, Any]) -> dict[str, Any] | None:
    """Usage carried by an Anthropic or Chat-Completions stream event, if any."""
    if payload.get("type") == Constants.EVENT_MESSAGE_START:
        return (payload.get("message") or {}).get("usage")
    usage = payload.get("usage")
    return usage if isinstance(usage, dict) else None


async def watch_usage(
    byte_stream: AsyncIterable[bytes],
    on_usage: Callable[[dict[str, Any]], None],
) -> AsyncIterator[bytes]:
    """Forward ``byte_stream`` unchanged and report the merged usage at its end.

    Later events overwrite earlier counters, so an Anthropic stream reports
    input tokens from ``message_start`` and output tokens from
    ``message_delta``.
    """
    parser = SSEParser()
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    usage: dict[str, Any] = {}
    try:
        async for chunk in byte_stream:
            yield chunk
            for event in parser.feed(decoder.decode(chunk)):
                if not event.data or event.is_done:
                    continue
                try:
                    payload = event.json()
                except ValueError:
                    continue
                if isinstance(payload, dict):
                    found = usage_from_event(payload)
                    if found:
                        usage.update({k: v for k, v in found.items() if v})
    finally:
        await aclose_quietly(byte_stream)
    if usage:
        logger.debug(f"Stream usage: {usage}")
        on_usage(usage)
