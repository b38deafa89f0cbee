"""Cancellation contexts with deadlines.

A Context is cancelled either explicitly, when its parent is cancelled, or
when its deadline elapses. Waiters race their suspension points (receive
next event, sleep until next tick) against the context so that nothing
blocks past the deadline.

Example:
    root = background()
    ctx, release = with_timeout(root, 30.0)
    try:
        await ctx.sleep(5.0)
    finally:
        release()

    # Or scoped:
    with timeout_scope(root, 30.0) as ctx:
        state = await ctx.guard(provider.get(kind, ns, name))
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from enum import StrEnum

from vmharness.core.exceptions import HarnessError

type Release = Callable[[], None]


class CancelReason(StrEnum):
    CANCELLED = "context cancelled"
    DEADLINE_EXCEEDED = "context deadline exceeded"


class ContextDone(HarnessError):
    """Raised by Context.guard when the context ends first."""

    def __init__(self, reason: CancelReason) -> None:
        self.reason = reason
        super().__init__(str(reason))


class Context:
    __slots__ = ("_parent", "_children", "_done", "_reason", "_deadline", "_timer")

    def __init__(self, parent: Context | None = None, deadline: float | None = None) -> None:
        self._parent = parent
        self._children: set[Context] = set()
        self._done = asyncio.Event()
        self._reason: CancelReason | None = None
        self._timer: asyncio.TimerHandle | None = None

        # A child never outlives its parent's deadline.
        if parent is not None and parent._deadline is not None:
            deadline = parent._deadline if deadline is None else min(deadline, parent._deadline)
        self._deadline = deadline

        if parent is not None:
            if parent.done():
                self._finish(parent._reason or CancelReason.CANCELLED)
                return
            parent._children.add(self)

        if deadline is not None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_at(deadline, self._finish, CancelReason.DEADLINE_EXCEEDED)

    @property
    def reason(self) -> CancelReason | None:
        return self._reason

    @property
    def deadline(self) -> float | None:
        """Loop-clock deadline, or None for an unbounded context."""
        return self._deadline

    def done(self) -> bool:
        return self._reason is not None

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - asyncio.get_running_loop().time())

    def cancel(self) -> None:
        self._finish(CancelReason.CANCELLED)

    def _finish(self, reason: CancelReason) -> None:
        if self._reason is not None:
            return
        self._reason = reason
        self._done.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._parent is not None:
            self._parent._children.discard(self)
        for child in list(self._children):
            child._finish(reason)
        self._children.clear()

    async def wait(self) -> CancelReason:
        await self._done.wait()
        assert self._reason is not None
        return self._reason

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return False if the context ended first."""
        if self.done():
            return False
        if seconds <= 0:
            return True
        try:
            await asyncio.wait_for(self._done.wait(), timeout=seconds)
        except TimeoutError:
            return True
        return False

    async def guard[T](self, aw: Awaitable[T]) -> T:
        """Await ``aw`` unless the context ends first.

        A result that is already available when both complete in the same
        loop iteration wins over the cancellation.

        Raises:
            ContextDone: If the context ended before ``aw`` completed.
        """
        task = asyncio.ensure_future(aw)
        if self.done() and not task.done():
            task.cancel()
            await asyncio.wait((task,))
            raise ContextDone(self._reason or CancelReason.CANCELLED)

        waiter = asyncio.ensure_future(self._done.wait())
        try:
            await asyncio.wait((task, waiter), return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.wait((task,))

        if task.cancelled():
            raise ContextDone(self._reason or CancelReason.CANCELLED)
        return task.result()


def background() -> Context:
    """Root context: never cancelled unless ``cancel()`` is called on it."""
    return Context()


def with_timeout(parent: Context, timeout: float) -> tuple[Context, Release]:
    """Derive a context that ends after ``timeout`` seconds or with its parent.

    The returned release function must be called on every exit path; it
    cancels the timer and detaches the child from its parent.
    """
    deadline = asyncio.get_running_loop().time() + max(0.0, timeout)
    ctx = Context(parent, deadline)
    return ctx, ctx.cancel


@contextmanager
def timeout_scope(parent: Context, timeout: float) -> Iterator[Context]:
    ctx, release = with_timeout(parent, timeout)
    try:
        yield ctx
    finally:
        release()
