"""Adapters from raw Kubernetes objects to typed state snapshots.

This is the only place that walks nested object maps. Every adapter takes
the JSON form of one object (as returned by the API server or by
``kubectl get -o json``) and tolerates missing blocks: a resource whose
controller has not written a status yet converts to an empty snapshot.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from vmharness.types import (
    ChaosConditionList,
    Condition,
    CustomResourceStatus,
    DeploymentStatus,
    JobCompletion,
    LoadBalancerIngress,
    ResourceRef,
    ServiceIngress,
)

type RawObject = Mapping[str, Any]


def _mapping(obj: Any, *path: str) -> Mapping[str, Any]:
    for key in path:
        if not isinstance(obj, Mapping):
            return {}
        obj = obj.get(key)
    return obj if isinstance(obj, Mapping) else {}


def _items(obj: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    value = obj.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def _conditions(status: Mapping[str, Any]) -> tuple[Condition, ...]:
    return tuple(
        Condition(
            type=str(c.get("type", "")),
            status=str(c.get("status", "")),
            reason=str(c.get("reason") or ""),
            message=str(c.get("message") or ""),
        )
        for c in _items(status, "conditions")
    )


def custom_resource_status(obj: RawObject, ref: ResourceRef | None = None) -> CustomResourceStatus:
    status = _mapping(obj, "status")
    return CustomResourceStatus(
        update_status=str(status.get("updateStatus") or ""),
        reason=str(status.get("reason") or ""),
        ref=ref,
    )


def service_ingress(obj: RawObject, ref: ResourceRef | None = None) -> ServiceIngress:
    """Works for both Services and Ingresses (``status.loadBalancer.ingress``)."""
    lb = _mapping(obj, "status", "loadBalancer")
    return ServiceIngress(
        ingress=tuple(
            LoadBalancerIngress(ip=str(e.get("ip") or ""), hostname=str(e.get("hostname") or ""))
            for e in _items(lb, "ingress")
        ),
        ref=ref,
    )


def job_completion(obj: RawObject, ref: ResourceRef | None = None) -> JobCompletion:
    status = _mapping(obj, "status")
    conditions = _conditions(status)

    for c in conditions:
        if c.type == "Failed" and c.status == "True":
            return JobCompletion(failed=True, message=c.message or c.reason, ref=ref)

    complete = any(c.type == "Complete" and c.status == "True" for c in conditions)
    return JobCompletion(succeeded=complete, ref=ref)


def condition_list(obj: RawObject, ref: ResourceRef | None = None) -> ChaosConditionList:
    return ChaosConditionList(conditions=_conditions(_mapping(obj, "status")), ref=ref)


def deployment_status(obj: RawObject, ref: ResourceRef | None = None) -> DeploymentStatus:
    status = _mapping(obj, "status")
    return DeploymentStatus(
        conditions=_conditions(status),
        replicas=int(status.get("replicas") or 0),
        available_replicas=int(status.get("availableReplicas") or 0),
        ref=ref,
    )
