"""Generic async stream rewriting."""

from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")
U = TypeVar("U")


async def rewrite_stream(
    source: AsyncIterable[T],
    processor: Callable[[T], Awaitable[U | None]],
) -> AsyncIterator[U]:
    """Apply ``processor`` to each item of ``source``, yielding non-None results.

    Errors from the source or the processor propagate to the consumer. The
    source iterator is closed on every exit path, including when the consumer
    stops iterating early.
    """
    iterator = source.__aiter__()
    try:
        async for item in iterator:
            result = await processor(item)
            if result is not None:
                yield result
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
