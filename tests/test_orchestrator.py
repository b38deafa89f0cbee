from __future__ import annotations

import pytest

from tests.fakes import FakeWatchProvider
from vmharness.context import with_timeout
from vmharness.core.exceptions import StageFailedError
from vmharness.kinds import ResourceKind
from vmharness.orchestrator import RolloutResult, Stage, StageFailure, run_stages
from vmharness.predicates import OPERATIONAL, load_balancer_assigned
from vmharness.providers.base import EventType
from vmharness.types import (
    CustomResourceStatus,
    ResourceRef,
    Satisfied,
    ServiceIngress,
    TimedOut,
    TimeoutReason,
    WaitSpec,
)
from vmharness.waiters.watch import watch_until

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]

VMSINGLE = ResourceRef(ResourceKind.VMSINGLE, "vm", "overwatch")
SERVICE = ResourceRef(ResourceKind.SERVICE, "ingress-nginx", "controller")


def stages(timeout: float = 5.0) -> list[Stage]:
    return [
        Stage(WaitSpec(ref=VMSINGLE, predicate=OPERATIONAL, timeout=timeout), "vmsingle"),
        Stage(WaitSpec(ref=SERVICE, predicate=load_balancer_assigned, timeout=timeout), "ingress address"),
    ]


@pytest.fixture
def cluster() -> FakeWatchProvider:
    provider = FakeWatchProvider()
    provider.emit("VMSingle", "vm", "overwatch", CustomResourceStatus(update_status="Operational"), EventType.ADDED)
    provider.emit("Service", "ingress-nginx", "controller", ServiceIngress(), EventType.ADDED)
    return provider


def runner(provider: FakeWatchProvider):
    async def run(ctx, spec):
        return await watch_until(ctx, provider, spec)

    return run


class TestRunStages:
    @pytest.mark.asyncio
    async def test_all_satisfied(self, ctx):
        provider = FakeWatchProvider()
        provider.emit("VMSingle", "vm", "overwatch", CustomResourceStatus(update_status="Operational"))

        result = await run_stages(ctx, stages()[:1], runner(provider))

        assert result.ok
        assert result.failure is None
        assert len(result.outcomes) == 1
        result.raise_for_failure()

    @pytest.mark.asyncio
    async def test_stops_at_first_failure_under_shared_deadline(self, ctx, cluster):
        parent, release = with_timeout(ctx, 0.3)
        try:
            result = await run_stages(parent, stages(), runner(cluster))
        finally:
            release()

        assert not result.ok
        assert isinstance(result.outcomes[0], Satisfied)
        failure = result.failure
        assert failure is not None
        assert failure.index == 1
        assert failure.stage.label == "ingress address"
        assert isinstance(failure.outcome, TimedOut)
        assert failure.outcome.reason is TimeoutReason.DEADLINE_EXCEEDED
        assert failure.describe().startswith("stage 2 (ingress address) failed: timed out waiting for Service")

    @pytest.mark.asyncio
    async def test_later_stages_do_not_run(self, ctx):
        calls: list[str] = []

        async def run(_ctx, spec):
            calls.append(spec.ref.name)
            return TimedOut(spec.ref, spec.timeout, 0.0)

        result = await run_stages(ctx, stages(), run)

        assert calls == ["overwatch"]
        assert result.failure.index == 0
        assert len(result.outcomes) == 1

    @pytest.mark.asyncio
    async def test_raise_for_failure(self, ctx):
        async def run(_ctx, spec):
            return TimedOut(spec.ref, spec.timeout, 0.0)

        result = await run_stages(ctx, stages(), run)

        with pytest.raises(StageFailedError, match="stage 1 \\(vmsingle\\) failed") as exc_info:
            result.raise_for_failure()
        assert exc_info.value.failure is result.failure

    @pytest.mark.asyncio
    async def test_empty_rollout(self, ctx):
        async def run(_ctx, spec):
            raise AssertionError("no stages to run")

        assert await run_stages(ctx, [], run) == RolloutResult(())


class TestFailureHook:
    @pytest.mark.asyncio
    async def test_called_with_failure(self, ctx):
        seen: list[StageFailure] = []

        async def run(_ctx, spec):
            return TimedOut(spec.ref, spec.timeout, 0.0)

        async def hook(failure):
            seen.append(failure)

        result = await run_stages(ctx, stages(), run, hook)

        assert seen == [result.failure]

    @pytest.mark.asyncio
    async def test_hook_errors_do_not_replace_failure(self, ctx):
        async def run(_ctx, spec):
            return TimedOut(spec.ref, spec.timeout, 0.0)

        async def hook(_failure):
            raise RuntimeError("collector crashed")

        result = await run_stages(ctx, stages(), run, hook)

        assert result.failure is not None
        assert result.failure.index == 0

    @pytest.mark.asyncio
    async def test_not_called_on_success(self, ctx):
        provider = FakeWatchProvider()
        provider.emit("VMSingle", "vm", "overwatch", CustomResourceStatus(update_status="Operational"))

        async def hook(_failure):
            raise AssertionError("should not run")

        assert (await run_stages(ctx, stages()[:1], runner(provider), hook)).ok


class TestStage:
    def test_label_defaults_to_spec(self):
        spec = WaitSpec(ref=VMSINGLE, predicate=OPERATIONAL, timeout=1.0, description="overwatch ready")
        assert Stage(spec).label == "overwatch ready"

    def test_label_falls_back_to_ref(self):
        assert Stage(WaitSpec(ref=VMSINGLE, predicate=OPERATIONAL, timeout=1.0)).label == "VMSingle vm/overwatch"
