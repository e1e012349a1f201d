"""Content adapters.

Turns whatever the caller passed as `content` into a single-use async
iterator of byte chunks that the invoker pumps into the process stdin.

Supported shapes:
- str: encoded as UTF-8 and emitted once.
- bytes / bytearray / memoryview: emitted once.
- binary file-like objects with `read(n)`; blocking reads (`read1` when the
  object has it) run on a daemon thread, `async def read` is awaited.
- async iterables of bytes/str chunks (async generators, asyncio.StreamReader).
- sync iterables of bytes/str chunks (lists, generators).
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import threading
from typing import Any, AsyncIterator, Callable

from .errors import InvalidInputError


READ_CHUNK_SIZE = 64 * 1024
_READ_AHEAD = 4
_EOF = object()


def _to_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    if isinstance(chunk, (bytes, bytearray, memoryview)):
        return bytes(chunk)
    raise TypeError(f"content chunk must be bytes or str, got {type(chunk).__name__}")


async def _single_shot(data: bytes) -> AsyncIterator[bytes]:
    yield data


async def _from_async_reader(read: Callable[[int], Any], chunk_size: int) -> AsyncIterator[bytes]:
    while True:
        chunk = await read(chunk_size)
        if not chunk:
            return
        yield _to_bytes(chunk)


async def _from_sync_reader(read: Callable[[int], Any], chunk_size: int) -> AsyncIterator[bytes]:
    # Blocking reads run on a daemon thread, not the loop's default executor:
    # a read that never returns must not hold up asyncio.run() shutdown.
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue(maxsize=_READ_AHEAD)
    stop = threading.Event()

    def _reader() -> None:
        while not stop.is_set():
            try:
                item = read(chunk_size) or _EOF
            except Exception as e:
                item = e
            put = queue.put(item)
            try:
                asyncio.run_coroutine_threadsafe(put, loop).result()
            except RuntimeError:
                # Loop already closed.
                put.close()
                return
            except concurrent.futures.CancelledError:
                return
            if item is _EOF or isinstance(item, Exception):
                return

    threading.Thread(target=_reader, name="smime-sign-reader", daemon=True).start()
    try:
        while True:
            item = await queue.get()
            if item is _EOF:
                return
            if isinstance(item, Exception):
                raise item
            yield _to_bytes(item)
    finally:
        stop.set()
        # Free a slot so a reader blocked in put() can see `stop` and exit.
        while not queue.empty():
            queue.get_nowait()


async def _from_async_iterable(source: Any) -> AsyncIterator[bytes]:
    async for chunk in source:
        yield _to_bytes(chunk)


async def _from_iterable(source: Any) -> AsyncIterator[bytes]:
    for chunk in source:
        yield _to_bytes(chunk)


def iter_content(content: Any, *, chunk_size: int = READ_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Adapt `content` into an async iterator of byte chunks.

    Raises InvalidInputError for unsupported types. Errors raised by the
    underlying source surface later, while the iterator is consumed.
    """
    if isinstance(content, str):
        return _single_shot(content.encode("utf-8"))
    if isinstance(content, (bytes, bytearray, memoryview)):
        return _single_shot(bytes(content))

    read = getattr(content, "read", None)
    if callable(read):
        if inspect.iscoroutinefunction(read):
            return _from_async_reader(read, chunk_size)
        read1 = getattr(content, "read1", None)
        return _from_sync_reader(read1 if callable(read1) else read, chunk_size)

    if hasattr(content, "__aiter__"):
        return _from_async_iterable(content)
    if hasattr(content, "__iter__"):
        return _from_iterable(content)

    raise InvalidInputError("Invalid content", content_type=type(content).__name__)
