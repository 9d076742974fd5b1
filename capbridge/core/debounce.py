"""Debounced, order-preserving dispatch of value updates onto the event loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

LOGGER = logging.getLogger(__name__)

_UNSET = object()


class Debouncer:
    """Coalesce rapid updates before handing them to an async callback.

    An interval of 0 is leading-edge: every call is dispatched at once. Any
    other interval is trailing-edge: the callback runs once with the latest
    value after `interval_ms` without further calls. Dispatched callbacks for
    one debouncer run one at a time in call order.
    """

    def __init__(
        self,
        callback: Callable[[Any], Awaitable[None]],
        interval_ms: int = 0,
        *,
        name: str = "",
    ) -> None:
        if interval_ms < 0:
            raise ValueError("debounce interval must not be negative")
        self._callback = callback
        self._interval_ms = interval_ms
        self._name = name
        self._pending: Any = _UNSET
        self._timer: asyncio.TimerHandle | None = None
        self._tail: asyncio.Future[None] | None = None
        self._tasks: set[asyncio.Future[None]] = set()
        self._cancelled = False

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def immediate(self) -> bool:
        return not self._interval_ms

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending(self) -> bool:
        return self._timer is not None or any(not t.done() for t in self._tasks)

    def __call__(self, value: Any) -> None:
        if self._cancelled:
            return
        if self.immediate:
            self._dispatch(value)
            return
        self._pending = value
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._interval_ms / 1000, self._fire)

    def cancel(self) -> None:
        """Drop the pending value and cancel in-flight callbacks."""
        self._cancelled = True
        self._pending = _UNSET
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._tasks):
            task.cancel()

    def _fire(self) -> None:
        self._timer = None
        value, self._pending = self._pending, _UNSET
        if value is _UNSET or self._cancelled:
            return
        self._dispatch(value)

    def _dispatch(self, value: Any) -> None:
        task = asyncio.ensure_future(self._run(self._tail, value))
        self._tail = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, previous: asyncio.Future[None] | None, value: Any) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        if self._cancelled:
            return
        try:
            await self._callback(value)
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("debounced callback %s failed for value %r", self._name or self._callback, value)


def debounce(
    callback: Callable[[Any], Awaitable[None]],
    interval_ms: int = 0,
    *,
    name: str = "",
) -> Debouncer:
    return Debouncer(callback, interval_ms, name=name)
