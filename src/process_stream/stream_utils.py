"""Async stream primitives used to build process streams.

Everything here operates on async iterables and is written as async generators
so that closing the consumer propagates cleanup to the producers.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator, Callable
from typing import Any, Generic, TypeVar

from process_stream.errors import MaxBufferExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ITEM = "item"
_ERROR = "error"
_DONE = "done"


class ProcessStream(Generic[T]):
    """A re-iterable async stream backed by a factory.

    Every ``async for`` (every subscription) calls the factory again, so a
    stream describing a process spawns a brand-new process each time it is
    iterated. Use ``open()`` to get an iterator that is closed deterministically
    when the ``async with`` block exits.
    """

    def __init__(self, factory: Callable[[], AsyncGenerator[T, None]]) -> None:
        self._factory = factory

    def __aiter__(self) -> AsyncGenerator[T, None]:
        return self._factory()

    def open(self) -> contextlib.aclosing[AsyncGenerator[T, None]]:
        return contextlib.aclosing(self._factory())


async def aclose(iterator: AsyncIterator[Any]) -> None:
    close = getattr(iterator, "aclose", None)
    if close is not None:
        await close()


async def merge(*sources: AsyncIterable[T], maxsize: int = 1) -> AsyncGenerator[T, None]:
    """Interleave several async iterables into one.

    Each source is drained by its own task into a single bounded channel, so a
    slow consumer applies backpressure to every source. Order is preserved per
    source only. The first error raised by any source ends the merged stream;
    the remaining sources are cancelled and closed.
    """
    channel: asyncio.Queue[tuple[str, Any]] = asyncio.Queue(maxsize)

    async def _pump(source: AsyncIterable[T]) -> None:
        iterator = aiter(source)
        try:
            async for item in iterator:
                await channel.put((_ITEM, item))
        except Exception as error:  # noqa: BLE001
            await channel.put((_ERROR, error))
            return
        finally:
            await aclose(iterator)
        await channel.put((_DONE, None))

    tasks = [asyncio.ensure_future(_pump(source)) for source in sources]
    remaining = len(tasks)
    try:
        while remaining:
            tag, value = await channel.get()
            if tag == _DONE:
                remaining -= 1
            elif tag == _ERROR:
                raise value
            else:
                yield value
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def limit_buffer_size(
    source: AsyncIterable[bytes], max_buffer: int | None, stream_name: str
) -> AsyncGenerator[bytes, None]:
    """Pass chunks through, raising once their cumulative size exceeds ``max_buffer``."""
    total_size = 0
    async for data in source:
        if max_buffer is not None:
            total_size += len(data)
            if total_size > max_buffer:
                raise MaxBufferExceededError(stream_name)
        yield data


async def decode_stream(
    source: AsyncIterable[bytes], encoding: str = "utf-8", errors: str = "replace"
) -> AsyncGenerator[str, None]:
    """Decode byte chunks, holding back multi-byte sequences split across chunks."""
    decoder = codecs.getincrementaldecoder(encoding)(errors=errors)
    async for data in source:
        text = decoder.decode(data)
        if text:
            yield text
    tail = decoder.decode(b"", final=True)
    if tail:
        yield tail


async def split_stream(source: AsyncIterable[str]) -> AsyncGenerator[str, None]:
    """Re-chunk text into lines.

    Each emitted line keeps its trailing newline, so concatenating the output
    reproduces the input. A trailing partial line is emitted when the source
    ends, including when it ends with an error.
    """
    current = ""
    try:
        async for value in source:
            lines = (current + value).split("\n")
            current = lines.pop()
            for line in lines:
                yield line + "\n"
    except Exception:
        if current:
            yield current
        raise
    if current:
        yield current


async def ignore_elements(source: AsyncIterable[Any]) -> AsyncGenerator[Any, None]:
    """Drain ``source`` for its side effects; completes or fails along with it."""
    async for _ in source:
        pass
    return
    yield


async def take_while_inclusive(
    source: AsyncIterable[T], predicate: Callable[[T], bool]
) -> AsyncGenerator[T, None]:
    """Like ``itertools.takewhile``, but also emits the first failing item."""
    iterator = aiter(source)
    try:
        async for item in iterator:
            yield item
            if not predicate(item):
                return
    finally:
        await aclose(iterator)
