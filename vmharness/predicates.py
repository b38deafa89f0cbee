"""Condition predicates: one snapshot in, one verdict out.

Predicates are pure so either waiter can apply them repeatedly. None of the
operator kinds exposes a terminal "failed" update status, so a custom
resource stuck in an error state only ever times out.
"""

from __future__ import annotations

from vmharness.types import (
    ChaosConditionList,
    CustomResourceStatus,
    DeploymentStatus,
    JobCompletion,
    Predicate,
    PredicateResult,
    ResourceState,
    ServiceIngress,
    Verdict,
)

UPDATE_STATUS_OPERATIONAL = "Operational"
UPDATE_STATUS_EXPAND_SUCCESS = "ExpandSuccess"
ALL_RECOVERED = "AllRecovered"


def satisfied(detail: str = "") -> Verdict:
    return Verdict(PredicateResult.SATISFIED, detail)


def not_yet(detail: str = "") -> Verdict:
    return Verdict(PredicateResult.NOT_YET, detail)


def failed(detail: str) -> Verdict:
    return Verdict(PredicateResult.PERMANENT_FAILURE, detail)


def _unexpected(predicate: str, state: ResourceState) -> TypeError:
    return TypeError(f"{predicate} cannot evaluate {type(state).__name__}")


def operational_status(*accepted: str) -> Predicate:
    """Satisfied when ``status.updateStatus`` is one of ``accepted``."""
    terminal = frozenset(accepted or (UPDATE_STATUS_OPERATIONAL,))

    def check(state: ResourceState) -> Verdict:
        match state:
            case CustomResourceStatus(update_status=status, reason=reason):
                if status in terminal:
                    return satisfied(f"updateStatus={status}")
                detail = f"updateStatus={status or '<empty>'}"
                return not_yet(f"{detail} ({reason})" if reason else detail)
            case _:
                raise _unexpected("operational_status", state)

    return check


OPERATIONAL = operational_status(UPDATE_STATUS_OPERATIONAL)
OPERATIONAL_OR_EXPANDED = operational_status(UPDATE_STATUS_OPERATIONAL, UPDATE_STATUS_EXPAND_SUCCESS)


def load_balancer_assigned(state: ResourceState) -> Verdict:
    match state:
        case ServiceIngress(ingress=entries):
            for entry in entries:
                if entry.ip:
                    return satisfied(f"ip={entry.ip}")
            if not entries:
                return not_yet("no load balancer ingress")
            return not_yet("load balancer ingress has no IP")
        case _:
            raise _unexpected("load_balancer_assigned", state)


def job_succeeded(state: ResourceState) -> Verdict:
    match state:
        case JobCompletion(failed=True, message=message):
            return failed(f"job failed: {message or 'no reason reported'}")
        case JobCompletion(succeeded=True):
            return satisfied("job succeeded")
        case JobCompletion():
            return not_yet("job still running")
        case _:
            raise _unexpected("job_succeeded", state)


def condition_true(condition_type: str) -> Predicate:
    """Satisfied when a condition of ``condition_type`` has status ``True``.

    An empty condition list (controller has not written status yet) is
    NotYet, never a failure.
    """

    def check(state: ResourceState) -> Verdict:
        match state:
            case ChaosConditionList(conditions=conditions) | DeploymentStatus(conditions=conditions):
                for c in conditions:
                    if c.type == condition_type and c.status == "True":
                        return satisfied(f"{condition_type}=True")
                current = next((c.status for c in conditions if c.type == condition_type), None)
                if current is None:
                    return not_yet(f"condition {condition_type} not reported")
                return not_yet(f"{condition_type}={current}")
            case _:
                raise _unexpected("condition_true", state)

    return check


chaos_recovered = condition_true(ALL_RECOVERED)


def deployment_available(state: ResourceState) -> Verdict:
    match state:
        case DeploymentStatus(conditions=conditions, replicas=replicas, available_replicas=available):
            for c in conditions:
                if c.type == "Available" and c.status == "True":
                    return satisfied(f"available {available}/{replicas}")
                if c.type == "Progressing" and c.status == "True" and c.reason == "NewReplicaSetAvailable":
                    return satisfied(f"rolled out {available}/{replicas}")
            return not_yet(f"available {available}/{replicas}")
        case _:
            raise _unexpected("deployment_available", state)
