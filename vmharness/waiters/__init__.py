"""Waiters: the two strategies for blocking until a predicate holds."""

from vmharness.waiters.poll import poll_until
from vmharness.waiters.watch import WatchClosedError, watch_until

__all__ = ["poll_until", "watch_until", "WatchClosedError"]
