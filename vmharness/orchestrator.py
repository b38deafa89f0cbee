"""Sequential stage runner for rollout flows.

A rollout is an ordered list of waits (deployment, then custom resource,
then ingress...). Stages run strictly one after another under the same
parent context; the first non-satisfied outcome stops the rollout and is
reported with the stage that produced it.

Example:
    result = await run_stages(ctx, stages, harness.run)
    result.raise_for_failure()
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from loguru import logger

from vmharness.context import Context
from vmharness.core.exceptions import StageFailedError
from vmharness.types import WaitOutcome, WaitSpec

type StageRunner = Callable[[Context, WaitSpec], Awaitable[WaitOutcome]]
type FailureHook = Callable[[StageFailure], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class Stage:
    spec: WaitSpec
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or self.spec.label


@dataclass(frozen=True, slots=True)
class StageFailure:
    index: int
    stage: Stage
    outcome: WaitOutcome

    def describe(self) -> str:
        return f"stage {self.index + 1} ({self.stage.label}) failed: {self.outcome.describe()}"


@dataclass(frozen=True, slots=True)
class RolloutResult:
    """Outcomes of the stages that ran, in order.

    Stages after a failure never run, so ``outcomes`` may be shorter than
    the stage list.
    """

    outcomes: tuple[WaitOutcome, ...]
    failure: StageFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def raise_for_failure(self) -> None:
        if self.failure is not None:
            raise StageFailedError(self.failure)


async def run_stages(
    ctx: Context,
    stages: Sequence[Stage],
    runner: StageRunner,
    on_failure: FailureHook | None = None,
) -> RolloutResult:
    """Run ``stages`` in order, stopping at the first failure.

    Args:
        ctx: Parent context shared by every stage.
        stages: Ordered stages.
        runner: Executes one wait (usually ``Harness.run``).
        on_failure: Awaited once with the failing stage, e.g. to collect
            diagnostics. Its errors are logged and do not replace the
            stage failure.

    Returns:
        RolloutResult with one outcome per executed stage.
    """
    outcomes: list[WaitOutcome] = []
    for index, stage in enumerate(stages):
        log = logger.bind(component="rollout", stage=stage.label)
        log.info("Stage {n}/{total}: waiting for {label}", n=index + 1, total=len(stages), label=stage.label)

        outcome = await runner(ctx, stage.spec)
        outcomes.append(outcome)
        if outcome.ok:
            continue

        failure = StageFailure(index, stage, outcome)
        log.error("{failure}", failure=failure.describe())
        if on_failure is not None:
            try:
                await on_failure(failure)
            except Exception as e:
                log.opt(exception=e).warning("Failure hook raised: {error}", error=e)
        return RolloutResult(tuple(outcomes), failure)

    logger.bind(component="rollout").info("All {n} stages ready", n=len(stages))
    return RolloutResult(tuple(outcomes))
