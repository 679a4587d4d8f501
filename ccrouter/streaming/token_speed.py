"""Output token-speed statistics for streamed and buffered responses.

The client stream is teed through ``StreamBroadcast``: the client branch is
forwarded untouched while a background task parses the copy as Anthropic
SSE, counts output tokens, and reports the sliding-window rate on a
periodic timer. Statistics for a request are dropped as soon as its stream
ends, fails or is abandoned by the client.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from ccrouter.core.constants import Constants
from ccrouter.streaming.broadcast import StreamBroadcast
from ccrouter.streaming.sse import iter_sse_events

if TYPE_CHECKING:
    from ccrouter.tokenizer.base import Tokenizer

logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(r"_session_([a-f0-9-]+)", re.IGNORECASE)
CJK_PATTERN = re.compile(r"[一-龥]")

_FIRST_TOKEN_EVENTS = {
    Constants.EVENT_CONTENT_BLOCK_START,
    Constants.EVENT_CONTENT_BLOCK_DELTA,
    "text_block",
    "content_block",
}


@dataclass
class TokenStats:
    request_id: str
    session_id: str | None
    start_time: float
    last_token_time: float
    token_count: int = 0
    tokens_per_second: int = 0
    first_token_time: float | None = None
    time_to_first_token: int | None = None  # ms
    stream: bool = True
    token_timestamps: list[float] = field(default_factory=list)

    def to_report(self) -> dict[str, Any]:
        return {
            "requestId": self.request_id[:8],
            "sessionId": self.session_id,
            "stream": self.stream,
            "tokenCount": self.token_count,
            "tokensPerSecond": self.tokens_per_second,
            "timeToFirstToken": (
                f"{self.time_to_first_token}ms" if self.time_to_first_token is not None else "N/A"
            ),
            "duration": f"{self.last_token_time - self.start_time:.2f}s",
            "timestamp": int(time.time() * 1000),
        }


class OutputHandler(Protocol):
    """Sink for token-speed reports (console, webhook, file...)."""

    async def output(self, data: dict[str, Any], *, prefix: str) -> None: ...


class LoggingOutputHandler:
    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log or logger

    async def output(self, data: dict[str, Any], *, prefix: str) -> None:
        self._logger.info(
            f"{prefix} session={data['sessionId']} tokens={data['tokenCount']} "
            f"tps={data['tokensPerSecond']} ttft={data['timeToFirstToken']} "
            f"duration={data['duration']}"
        )


def estimate_tokens(text: str) -> int:
    """Rough token estimate: ~1.5 chars per CJK character, ~4 for everything else."""
    cjk = len(CJK_PATTERN.findall(text))
    other = len(text) - cjk
    return math.ceil(cjk / 1.5 + other / 4)


def session_id_from_body(body: dict[str, Any] | None) -> str | None:
    user_id = ((body or {}).get("metadata") or {}).get("user_id")
    if not isinstance(user_id, str):
        return None
    match = SESSION_ID_PATTERN.search(user_id)
    return match.group(1) if match else None


def _count(text: str, tokenizer: Tokenizer | None) -> int:
    if tokenizer is not None and tokenizer.supports_encode:
        return len(tokenizer.encode_text(text))
    return estimate_tokens(text)


def _delta_text(delta: dict[str, Any]) -> str:
    delta_type = delta.get("type")
    if delta_type == Constants.DELTA_TEXT:
        return delta.get("text") or ""
    if delta_type == Constants.DELTA_INPUT_JSON:
        return delta.get("partial_json") or ""
    if delta_type == Constants.DELTA_THINKING:
        return delta.get("thinking") or ""
    return ""


class TokenSpeedTracker:
    """Tracks per-request output token rates and publishes them to handlers."""

    def __init__(
        self,
        handlers: list[OutputHandler] | None = None,
        interval: float = 1.0,
        max_buffer: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.handlers: list[OutputHandler] = handlers if handlers is not None else [LoggingOutputHandler()]
        self.interval = interval
        self.max_buffer = max_buffer
        self._clock = clock
        self._stats: dict[str, TokenStats] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def active_requests(self) -> dict[str, TokenStats]:
        return self._stats.copy()

    async def track_stream(
        self,
        request_id: str,
        session_id: str | None,
        byte_stream: AsyncIterable[bytes],
        *,
        start_time: float | None = None,
        tokenizer: Tokenizer | None = None,
    ) -> AsyncIterator[bytes]:
        """Yield the client branch of ``byte_stream`` while a task collects stats.

        Nothing is registered until the first chunk is requested, so a client
        branch that is closed unstarted leaves no stats entry behind.
        """
        broadcast: StreamBroadcast[bytes] = StreamBroadcast(byte_stream, max_buffer=self.max_buffer)
        side = broadcast.subscribe()
        start = start_time if start_time is not None else self._clock()
        self._stats[request_id] = TokenStats(
            request_id=request_id,
            session_id=session_id,
            start_time=start,
            last_token_time=start,
        )
        task = asyncio.create_task(self._consume(request_id, side, tokenizer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        primary = broadcast.primary()
        try:
            async for chunk in primary:
                yield chunk
        finally:
            await primary.aclose()

    async def record_response(
        self,
        request_id: str,
        session_id: str | None,
        body: dict[str, Any],
        *,
        start_time: float,
        tokenizer: Tokenizer | None = None,
    ) -> TokenStats | None:
        """Report stats for a buffered (non-streaming) Anthropic message."""
        end = self._clock()
        usage = body.get("usage") or {}
        token_count = usage.get("output_tokens") or 0
        if not token_count:
            content = body.get("content") or ""
            if isinstance(content, list):
                text = "".join(
                    block.get("text") or ""
                    for block in content
                    if isinstance(block, dict) and block.get("type") == Constants.CONTENT_TEXT
                )
            else:
                text = str(content)
            token_count = _count(text, tokenizer) if text else 0
        if token_count <= 0:
            return None

        duration = end - start_time
        stats = TokenStats(
            request_id=request_id,
            session_id=session_id,
            start_time=start_time,
            last_token_time=end,
            token_count=token_count,
            tokens_per_second=round(token_count / duration) if duration > 0 else 0,
            time_to_first_token=round(duration * 1000),
            stream=False,
        )
        await self._publish(stats, final=True)
        return stats

    async def _consume(
        self, request_id: str, side: AsyncIterator[bytes], tokenizer: Tokenizer | None
    ) -> None:
        timer = asyncio.create_task(self._tick(request_id))
        events = iter_sse_events(side)
        try:
            async for event in events:
                stats = self._stats.get(request_id)
                if stats is None:
                    break
                event_type = event.event
                payload: dict[str, Any] = {}
                if event.data and not event.is_done:
                    try:
                        decoded = event.json()
                    except ValueError:
                        decoded = None
                    if isinstance(decoded, dict):
                        payload = decoded
                        event_type = event_type or decoded.get("type")

                now = self._clock()
                if stats.first_token_time is None and event_type in _FIRST_TOKEN_EVENTS:
                    stats.first_token_time = now
                    stats.time_to_first_token = round((now - stats.start_time) * 1000)

                if event_type == Constants.EVENT_CONTENT_BLOCK_DELTA and isinstance(
                    payload.get("delta"), dict
                ):
                    text = _delta_text(payload["delta"])
                    if text:
                        count = _count(text, tokenizer)
                        stats.token_count += count
                        stats.last_token_time = now
                        stats.token_timestamps.extend([now] * count)

                if event_type == Constants.EVENT_MESSAGE_STOP:
                    timer.cancel()
                    await self._publish(stats, final=True)
                    break
        except Exception as e:
            logger.warning(f"Error processing token stats for {request_id}: {e}")
        finally:
            timer.cancel()
            self._stats.pop(request_id, None)
            await events.aclose()

    async def _tick(self, request_id: str) -> None:
        while True:
            await asyncio.sleep(self.interval)
            stats = self._stats.get(request_id)
            if stats is None:
                return
            await self._publish(stats, final=False)

    async def _publish(self, stats: TokenStats, *, final: bool) -> None:
        now = self._clock()
        if final:
            duration = stats.last_token_time - stats.start_time
            if duration > 0:
                stats.tokens_per_second = round(stats.token_count / duration)
        else:
            window_start = now - 1.0
            stats.token_timestamps = [ts for ts in stats.token_timestamps if ts > window_start]
            stats.tokens_per_second = len(stats.token_timestamps)

        prefix = "[Token Speed Final]" if final else "[Token Speed]"
        report = stats.to_report()
        for handler in self.handlers:
            try:
                await handler.output(report, prefix=prefix)
            except Exception as e:
                logger.warning(f"Failed to output token stats: {e}")

    async def aclose(self) -> None:
        """Cancel outstanding stats tasks (application shutdown)."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._stats.clear()
