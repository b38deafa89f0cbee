"""Harness: the entry points installer and test code call.

A Harness binds a session config, a resource provider and (optionally) a
testing capability. Every ``wait_until_*`` method builds a WaitSpec with
the kind's policy, dispatches it to the watch or poll waiter and returns
the outcome. With a testing capability attached, a non-satisfied outcome
fails the test immediately with the outcome's description.

Example:
    harness = Harness(config, KubernetesProvider.from_config(config), t=t)
    await harness.wait_until_operational("VMSingle", "vm", "overwatch")
    await harness.rollout(rollouts.vmsingle(config.timeouts, "vm", "vmsingle"))
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

from loguru import logger

from vmharness import specs
from vmharness.config import HarnessConfig, Timeouts
from vmharness.context import Context, background
from vmharness.gather import collect_on_failure
from vmharness.kinds import ResourceKind
from vmharness.orchestrator import RolloutResult, Stage, StageFailure, run_stages
from vmharness.providers.base import (
    JobStatusProvider,
    ResourceStateProvider,
    WatchableResourceProvider,
)
from vmharness.providers.exporter import ExporterClient
from vmharness.testing import TestingT
from vmharness.types import Satisfied, ServiceIngress, WaitMode, WaitOutcome, WaitSpec
from vmharness.waiters.poll import poll_until
from vmharness.waiters.watch import watch_until

KIND_INGRESS_HOST = "127.0.0.1"
INGRESS_NAMESPACE = "ingress-nginx"
INGRESS_CONTROLLER = "ingress-nginx-controller"


class Harness:
    """Waits for cluster resources on behalf of one test.

    Args:
        config: Session configuration.
        resources: Provider for resource snapshots; if it has a change
            stream, watch-mode waits use it.
        jobs: Provider for job completion. Defaults to ``resources`` when
            it can report jobs.
        t: Testing capability; failures are reported through it.
        ctx: Parent context, usually the test session's.
        exporter: vmexporter client used when collecting diagnostics. When
            omitted, one is opened per collection from ``config.exporter_url``.
    """

    def __init__(
        self,
        config: HarnessConfig,
        resources: ResourceStateProvider,
        *,
        jobs: JobStatusProvider | None = None,
        t: TestingT | None = None,
        ctx: Context | None = None,
        exporter: ExporterClient | None = None,
    ) -> None:
        self.config = config
        self.resources = resources
        if jobs is None and isinstance(resources, JobStatusProvider):
            jobs = resources
        self.jobs = jobs
        self.t = t
        self.ctx = ctx or background()
        self.exporter = exporter
        self._log = logger.bind(component="harness", **({"test": t.name()} if t else {}))

    @property
    def timeouts(self) -> Timeouts:
        return self.config.timeouts

    # ─── Dispatch ────────────────────────────────────────────────────

    async def run(self, ctx: Context, spec: WaitSpec) -> WaitOutcome:
        """Execute one wait with the strategy its spec and provider allow."""
        ref = spec.ref

        if ref.kind is ResourceKind.JOB and self.jobs is not None:
            jobs = self.jobs
            return await poll_until(ctx, lambda: jobs.job_status(ref.namespace, ref.name), spec)

        if spec.mode is WaitMode.WATCH:
            if isinstance(self.resources, WatchableResourceProvider):
                return await watch_until(ctx, self.resources, spec)
            self._log.debug("No change stream for {ref}, polling instead", ref=ref)
            spec = replace(spec, mode=WaitMode.POLL, interval=spec.interval or self.timeouts.polling_interval)

        resources = self.resources
        return await poll_until(ctx, lambda: resources.get(ref.kind, ref.namespace, ref.name), spec)

    def _report(self, outcome: WaitOutcome) -> WaitOutcome:
        if self.t is None:
            return outcome
        if outcome.ok:
            self.t.logf("%s", outcome.describe())
            return outcome
        self.t.fail_now(outcome.describe())

    async def wait(self, spec: WaitSpec) -> WaitOutcome:
        return self._report(await self.run(self.ctx, spec))

    # ─── Entry points ────────────────────────────────────────────────

    async def wait_until_operational(
        self,
        kind: ResourceKind | str,
        namespace: str,
        name: str,
        timeout: float | None = None,
    ) -> WaitOutcome:
        """Wait for a VictoriaMetrics custom resource to report Operational."""
        return await self.wait(specs.operational_spec(self.timeouts, kind, namespace, name, timeout))

    async def wait_until_load_balancer_assigned(
        self,
        namespace: str,
        service: str,
        timeout: float | None = None,
    ) -> WaitOutcome:
        return await self.wait(specs.load_balancer_spec(self.timeouts, namespace, service, timeout))

    async def wait_until_job_succeeded(
        self,
        namespace: str,
        job: str,
        timeout: float | None = None,
        *,
        long_running: bool = False,
    ) -> WaitOutcome:
        return await self.wait(
            specs.job_spec(self.timeouts, namespace, job, timeout, long_running=long_running)
        )

    async def wait_until_condition_true(
        self,
        kind: ResourceKind | str,
        namespace: str,
        name: str,
        condition_type: str,
        timeout: float | None = None,
    ) -> WaitOutcome:
        return await self.wait(
            specs.condition_spec(self.timeouts, kind, namespace, name, condition_type, timeout)
        )

    async def wait_until_deployment_available(
        self,
        namespace: str,
        name: str,
        timeout: float | None = None,
    ) -> WaitOutcome:
        return await self.wait(specs.deployment_spec(self.timeouts, namespace, name, timeout))

    async def wait_until_ingress_available(
        self,
        namespace: str,
        name: str,
        timeout: float | None = None,
    ) -> WaitOutcome:
        return await self.wait(specs.ingress_spec(self.timeouts, namespace, name, timeout))

    # ─── Rollouts ────────────────────────────────────────────────────

    async def rollout(self, stages: Sequence[Stage], *, gather_on_failure: bool = False) -> RolloutResult:
        """Run stages in order; the first failure stops the rollout.

        With ``gather_on_failure`` the cluster diagnostics (and a metrics
        export, when an exporter is attached) are collected before the
        failure is reported.
        """
        on_failure = self._gather if gather_on_failure else None
        result = await run_stages(self.ctx, stages, self.run, on_failure)
        if result.failure is not None and self.t is not None:
            self.t.fail_now(result.failure.describe())
        return result

    async def _gather(self, failure: StageFailure) -> None:
        test_name = self.t.name() if self.t is not None else failure.stage.label
        if self.exporter is not None:
            archives = await collect_on_failure(self.ctx, self.config, test_name, exporter=self.exporter)
        elif (exporter := ExporterClient.from_config(self.config)) is not None:
            async with exporter:
                archives = await collect_on_failure(self.ctx, self.config, test_name, exporter=exporter)
        else:
            archives = await collect_on_failure(self.ctx, self.config, test_name)
        for archive in archives:

            self._log.info("Diagnostics archive: {archive}", archive=archive)

    async def discover_ingress_host(
        self,
        namespace: str = INGRESS_NAMESPACE,
        controller: str = INGRESS_CONTROLLER,
    ) -> str:
        """Wait for the ingress controller and return the address it is reachable on.

        On ``kind`` the controller never gets a load balancer and is reached
        through a host port, so only the deployment is awaited.

        Raises:
            StageFailedError: If a wait failed and no testing capability is attached.
        """
        stages = [Stage(specs.deployment_spec(self.timeouts, namespace, controller), "ingress controller")]
        if not self.config.is_kind:
            stages.append(Stage(specs.load_balancer_spec(self.timeouts, namespace, controller), "ingress address"))

        result = await self.rollout(stages)
        result.raise_for_failure()

        host = KIND_INGRESS_HOST
        match result.outcomes[-1]:
            case Satisfied(state=ServiceIngress(ingress=entries)):
                host = next(e.ip for e in entries if e.ip)
        self._log.info("Ingress host: {host}", host=host)
        return host
