"""WaitSpec factories carrying the per-kind waiting policy.

Custom resources and load balancers are watched; deployments, ingresses,
jobs and chaos scenarios are polled. Timeouts and intervals come from the
session's Timeouts unless the caller overrides the deadline.
"""

from __future__ import annotations

from vmharness import predicates
from vmharness.config import Timeouts
from vmharness.kinds import ResourceKind, is_chaos_kind, resolve_kind
from vmharness.types import Predicate, ResourceRef, WaitMode, WaitSpec


def operational_predicate(kind: ResourceKind) -> Predicate:
    """VMCluster also reports ``ExpandSuccess`` once a scale-out finished."""
    if kind is ResourceKind.VMCLUSTER:
        return predicates.OPERATIONAL_OR_EXPANDED
    return predicates.OPERATIONAL


def operational_spec(
    timeouts: Timeouts,
    kind: ResourceKind | str,
    namespace: str,
    name: str,
    timeout: float | None = None,
) -> WaitSpec:
    resolved = resolve_kind(kind)
    return WaitSpec(
        ref=ResourceRef(resolved, namespace, name),
        predicate=operational_predicate(resolved),
        timeout=timeouts.resource_wait if timeout is None else timeout,
        mode=WaitMode.WATCH,
        interval=timeouts.polling_interval,
        description=f"{resolved} {namespace}/{name} operational",
    )


def load_balancer_spec(
    timeouts: Timeouts,
    namespace: str,
    service: str,
    timeout: float | None = None,
) -> WaitSpec:
    return WaitSpec(
        ref=ResourceRef(ResourceKind.SERVICE, namespace, service),
        predicate=predicates.load_balancer_assigned,
        timeout=timeouts.resource_wait if timeout is None else timeout,
        mode=WaitMode.WATCH,
        interval=timeouts.polling_interval,
        description=f"Service {namespace}/{service} load balancer",
    )


def deployment_spec(
    timeouts: Timeouts,
    namespace: str,
    name: str,
    timeout: float | None = None,
) -> WaitSpec:
    return WaitSpec(
        ref=ResourceRef(ResourceKind.DEPLOYMENT, namespace, name),
        predicate=predicates.deployment_available,
        timeout=timeouts.polling_timeout if timeout is None else timeout,
        mode=WaitMode.POLL,
        interval=timeouts.polling_interval,
        description=f"Deployment {namespace}/{name} available",
    )


def ingress_spec(
    timeouts: Timeouts,
    namespace: str,
    name: str,
    timeout: float | None = None,
) -> WaitSpec:
    return WaitSpec(
        ref=ResourceRef(ResourceKind.INGRESS, namespace, name),
        predicate=predicates.load_balancer_assigned,
        timeout=timeouts.polling_timeout if timeout is None else timeout,
        mode=WaitMode.POLL,
        interval=timeouts.polling_interval,
        description=f"Ingress {namespace}/{name} available",
    )


def job_spec(
    timeouts: Timeouts,
    namespace: str,
    name: str,
    timeout: float | None = None,
    *,
    long_running: bool = False,
) -> WaitSpec:
    """Job completion; ``long_running`` applies the load-test job timings."""
    if long_running:
        total, interval = timeouts.k6_job_max_duration, timeouts.k6_job_polling_interval
    else:
        total, interval = timeouts.polling_timeout, timeouts.polling_interval
    return WaitSpec(
        ref=ResourceRef(ResourceKind.JOB, namespace, name),
        predicate=predicates.job_succeeded,
        timeout=total if timeout is None else timeout,
        mode=WaitMode.POLL,
        interval=interval,
        description=f"Job {namespace}/{name} succeeded",
    )


def condition_spec(
    timeouts: Timeouts,
    kind: ResourceKind | str,
    namespace: str,
    name: str,
    condition_type: str,
    timeout: float | None = None,
) -> WaitSpec:
    resolved = resolve_kind(kind)
    if timeout is None:
        timeout = timeouts.chaos_test_max_duration if is_chaos_kind(resolved) else timeouts.polling_timeout
    return WaitSpec(
        ref=ResourceRef(resolved, namespace, name),
        predicate=predicates.condition_true(condition_type),
        timeout=timeout,
        mode=WaitMode.POLL,
        interval=timeouts.polling_interval,
        description=f"{resolved} {namespace}/{name} {condition_type}=True",
    )
