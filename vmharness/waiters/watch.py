"""Watch-based waiter: subscribe, evaluate each event, stop on first verdict."""

from __future__ import annotations

import asyncio

from loguru import logger

from vmharness.context import CancelReason, Context, ContextDone, with_timeout
from vmharness.core.exceptions import ProviderError, WatchUnsupportedError
from vmharness.providers.base import EventType, WatchableResourceProvider
from vmharness.types import (
    PermanentFailure,
    PredicateResult,
    ResourceState,
    Satisfied,
    TimedOut,
    TimeoutReason,
    TransientError,
    WaitOutcome,
    WaitSpec,
)


def _timeout_reason(reason: CancelReason | None) -> TimeoutReason:
    if reason is CancelReason.DEADLINE_EXCEEDED:
        return TimeoutReason.DEADLINE_EXCEEDED
    return TimeoutReason.CANCELLED


class WatchClosedError(ProviderError):
    """The change stream ended before the condition was met."""


async def watch_until(
    ctx: Context,
    provider: WatchableResourceProvider,
    spec: WaitSpec,
) -> WaitOutcome:
    """Block until an event for ``spec.ref`` satisfies ``spec.predicate``.

    Events for other objects in the namespace are ignored. A provider
    without a change stream, or a failure to open the subscription, is
    returned as TransientError without entering the receive loop;
    resubscribing is the caller's decision.

    Args:
        ctx: Parent context; cancelling it ends the wait as TimedOut.
        provider: Provider with a change stream.
        spec: What to wait for and for how long.

    Returns:
        A fresh WaitOutcome.
    """
    ref = spec.ref
    log = logger.bind(component="watch", kind=str(ref.kind), namespace=ref.namespace, name=ref.name)
    loop = asyncio.get_running_loop()
    started = loop.time()

    def elapsed() -> float:
        return loop.time() - started

    if not isinstance(provider, WatchableResourceProvider):
        error = WatchUnsupportedError(f"{type(provider).__name__} cannot watch {ref.kind}")
        log.warning("{error}", error=error)
        return TransientError(ref, error, spec.timeout, elapsed())

    scoped, release = with_timeout(ctx, spec.timeout)
    last_state: ResourceState | None = None
    try:
        try:
            stream = provider.watch(
                ref.kind, ref.namespace, selector=ref.name, timeout=scoped.remaining(),
            )
            events = await scoped.guard(stream.__aenter__())
        except ContextDone as e:
            return TimedOut(ref, spec.timeout, elapsed(), reason=_timeout_reason(e.reason))
        except ProviderError as e:
            log.warning("Failed to open watch: {error}", error=e)
            return TransientError(ref, e, spec.timeout, elapsed())

        log.debug("Watch opened, waiting up to {timeout:.1f}s", timeout=spec.timeout)
        try:
            while True:
                try:
                    event = await scoped.guard(anext(events))
                except StopAsyncIteration:
                    log.warning("Watch closed by server")
                    return TransientError(
                        ref, WatchClosedError(f"watch on {ref} closed before condition was met"),
                        spec.timeout, elapsed(),
                    )
                except ContextDone as e:
                    log.info("Stopped waiting for {label}: {reason}", label=spec.label, reason=e.reason)
                    return TimedOut(
                        ref, spec.timeout, elapsed(),
                        reason=_timeout_reason(e.reason),
                        last_state=last_state,
                    )
                except ProviderError as e:
                    log.warning("Watch failed: {error}", error=e)
                    return TransientError(ref, e, spec.timeout, elapsed())

                if event.name != ref.name:
                    continue

                if event.type is EventType.DELETED:
                    log.warning("Resource deleted while waiting")
                    return PermanentFailure(
                        ref, "resource deleted", spec.timeout, elapsed(), state=event.state,
                    )

                last_state = event.state
                verdict = spec.predicate(event.state)
                match verdict.result:
                    case PredicateResult.SATISFIED:
                        log.info("{label} ready after {elapsed:.1f}s", label=spec.label, elapsed=elapsed())
                        return Satisfied(ref, event.state, spec.timeout, elapsed())
                    case PredicateResult.PERMANENT_FAILURE:
                        log.error("{label} failed: {detail}", label=spec.label, detail=verdict.detail)
                        return PermanentFailure(
                            ref, verdict.detail, spec.timeout, elapsed(), state=event.state,
                        )
                    case PredicateResult.NOT_YET:
                        log.debug("{event} not ready: {detail}", event=event.type, detail=verdict.detail)
        finally:
            await stream.__aexit__(None, None, None)
            log.debug("Watch released")
    finally:
        release()
