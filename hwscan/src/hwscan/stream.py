"""
Cold, cancellable, single-subscriber event stream.

A producer coroutine writes events through an ``emit`` callback; the consumer
iterates the stream with ``async for``. Nothing runs until the first item is
requested. Cancellation is cooperative: ``cancel()`` flips a token the
producer checks before each side effect. Events emitted before the
cancellation are still delivered, then iteration ends; calls already in
flight finish and anything they emit is dropped.

Usage:
    async with scan_accounts(...) as stream:
        async for event in stream:
            ...
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")


class CancellationToken:
    """Flag checked by producers at each checkpoint."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class _End:
    pass


class _Failure:
    def __init__(self, error: BaseException):
        self.error = error


_END = _End()

Producer = Callable[[Callable[[T], None], CancellationToken], Awaitable[None]]


class ScanStream(Generic[T]):
    """
    Event stream fed by one producer task.

    The producer's normal return completes the stream; an exception it raises
    becomes the stream's terminal error, raised from ``__anext__`` after every
    event emitted before it.
    """

    def __init__(self, producer: Producer[T], name: str = "scan"):
        self._producer = producer
        self._name = name
        self._token = CancellationToken()
        self._queue: asyncio.Queue[T | _End | _Failure] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._done = False

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def _emit(self, item: T) -> None:
        if self._token.cancelled:
            return
        self._queue.put_nowait(item)

    async def _run(self) -> None:
        try:
            await self._producer(self._emit, self._token)
        except asyncio.CancelledError:
            self._queue.put_nowait(_END)
            raise
        except Exception as e:
            if self._token.cancelled:
                logger.debug(f"{self._name}: error after cancellation ignored: {e}")
                self._queue.put_nowait(_END)
            else:
                self._queue.put_nowait(_Failure(e))
        else:
            self._queue.put_nowait(_END)

    def _start(self) -> None:
        if self._task is None and not self._token.cancelled:
            self._task = asyncio.create_task(self._run(), name=self._name)

    def __aiter__(self) -> ScanStream[T]:
        return self

    async def __anext__(self) -> T:
        if self._done:
            raise StopAsyncIteration
        self._start()
        item = await self._queue.get()
        if isinstance(item, _End):
            self._done = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._done = True
            raise item.error
        return item

    def cancel(self) -> None:
        """Stop the scan at its next checkpoint; already emitted events are still delivered."""
        if self._token.cancelled:
            return
        self._token.cancel()
        self._queue.put_nowait(_END)
        logger.debug(f"{self._name}: cancelled")

    async def aclose(self) -> None:
        """Cancel and wait for the producer to wind down and release its resources."""
        self.cancel()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                if not self._task.cancelled():
                    raise

    async def collect(self) -> list[T]:
        """Consume the whole stream; raises its terminal error if any."""
        return [item async for item in self]

    async def __aenter__(self) -> ScanStream[T]:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
