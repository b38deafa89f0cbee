"""Poll-based waiter for state sources without a change stream.

Each iteration performs one fetch and applies the predicate. Iterations are
bounded twice: by the deadline context (authoritative) and by the retry
budget ``floor(timeout / interval)``. The sleep between polls is the
context's interruptible sleep, so the wait never runs past the deadline.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)
from tenacity.stop import stop_base

from vmharness.context import CancelReason, Context, ContextDone, with_timeout
from vmharness.core.exceptions import ProviderError, TerminalProviderError
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

type Fetch = Callable[[], Awaitable[ResourceState]]


class _NotYet(Exception):
    """Predicate said NotYet - poll again."""

    def __init__(self, state: ResourceState, detail: str) -> None:
        self.state = state
        self.detail = detail
        super().__init__(detail)


class stop_when_done(stop_base):  # noqa: N801
    """Stop retrying once the context has ended."""

    def __init__(self, ctx: Context) -> None:
        self.ctx = ctx

    def __call__(self, retry_state: RetryCallState) -> bool:
        return self.ctx.done()


def _timeout_reason(reason: CancelReason | None) -> TimeoutReason:
    if reason is CancelReason.DEADLINE_EXCEEDED:
        return TimeoutReason.DEADLINE_EXCEEDED
    return TimeoutReason.CANCELLED


async def poll_until(ctx: Context, fetch: Fetch, spec: WaitSpec) -> WaitOutcome:
    """Re-fetch state every ``spec.interval`` seconds until the predicate matches.

    Transient fetch errors (including a missing resource) are logged and
    the loop continues; a TerminalProviderError ends the wait at once as
    TransientError.

    Args:
        ctx: Parent context; cancelling it ends the wait as TimedOut.
        fetch: One synchronous round-trip to the state provider.
        spec: What to wait for; ``spec.interval`` must be set.

    Returns:
        A fresh WaitOutcome.
    """
    ref = spec.ref
    interval = spec.interval
    max_retries = spec.max_retries
    assert interval is not None and max_retries is not None

    log = logger.bind(component="poll", kind=str(ref.kind), namespace=ref.namespace, name=ref.name)
    loop = asyncio.get_running_loop()
    started = loop.time()

    def elapsed() -> float:
        return loop.time() - started

    def before_sleep(retry_state: RetryCallState) -> None:
        nonlocal last_error
        assert retry_state.outcome is not None
        error = retry_state.outcome.exception()
        match error:
            case _NotYet(detail=detail):
                last_error = ""
                log.debug(
                    "Attempt {n}/{max}: {label} not ready ({detail}), next poll in {interval:.1f}s",
                    n=retry_state.attempt_number, max=max_retries, label=spec.label,
                    detail=detail, interval=interval,
                )
            case _:
                last_error = f"{type(error).__name__}: {error}"
                log.warning(
                    "Attempt {n}/{max}: fetching {label} failed: {error}",
                    n=retry_state.attempt_number, max=max_retries, label=spec.label, error=error,
                )

    scoped, release = with_timeout(ctx, spec.timeout)
    attempts = 0
    last_state: ResourceState | None = None
    last_error = ""
    try:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, max_retries)) | stop_when_done(scoped),
            wait=wait_fixed(interval),
            retry=(
                retry_if_exception_type((_NotYet, ProviderError))
                & retry_if_not_exception_type(TerminalProviderError)
            ),
            sleep=scoped.sleep,
            before_sleep=before_sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if scoped.done():
                    raise ContextDone(scoped.reason or CancelReason.CANCELLED)
                attempts += 1
                state = await scoped.guard(fetch())
                last_state = state
                verdict = spec.predicate(state)
                match verdict.result:
                    case PredicateResult.SATISFIED:
                        log.info(
                            "{label} ready after {elapsed:.1f}s ({n} polls)",
                            label=spec.label, elapsed=elapsed(), n=attempts,
                        )
                        return Satisfied(ref, state, spec.timeout, elapsed())
                    case PredicateResult.PERMANENT_FAILURE:
                        log.error("{label} failed: {detail}", label=spec.label, detail=verdict.detail)
                        return PermanentFailure(ref, verdict.detail, spec.timeout, elapsed(), state=state)
                    case PredicateResult.NOT_YET:
                        raise _NotYet(state, verdict.detail)
    except ContextDone as e:
        return TimedOut(
            ref, spec.timeout, elapsed(),
            reason=_timeout_reason(e.reason), last_state=last_state,
            last_error=last_error, attempts=attempts,
        )
    except TerminalProviderError as e:
        log.error("Giving up on {label}: {error}", label=spec.label, error=e)
        return TransientError(ref, e, spec.timeout, elapsed())
    except (_NotYet, ProviderError) as e:
        reason = _timeout_reason(scoped.reason) if scoped.done() else TimeoutReason.RETRIES_EXHAUSTED
        last_error = "" if isinstance(e, _NotYet) else f"{type(e).__name__}: {e}"
        log.info("Stopped waiting for {label}: {reason}", label=spec.label, reason=reason)
        return TimedOut(
            ref, spec.timeout, elapsed(),
            reason=reason, last_state=last_state, last_error=last_error, attempts=attempts,
        )
    finally:
        release()

    raise AssertionError("unreachable")  # pragma: no cover
