"""Registry of resource kinds the harness knows how to observe.

Each kind maps to its API coordinates and to the adapter that turns the raw
object into a typed state snapshot. Providers look kinds up here; callers
pass either a ResourceKind or any spelling accepted by ``resolve_kind``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from vmharness import convert
from vmharness.core.exceptions import TerminalProviderError
from vmharness.types import ResourceRef, ResourceState

VM_OPERATOR_GROUP = "operator.victoriametrics.com"
CHAOS_MESH_GROUP = "chaos-mesh.org"


class ResourceKind(StrEnum):
    VMSINGLE = "VMSingle"
    VMAGENT = "VMAgent"
    VMALERT = "VMAlert"
    VMCLUSTER = "VMCluster"
    DEPLOYMENT = "Deployment"
    SERVICE = "Service"
    INGRESS = "Ingress"
    JOB = "Job"
    POD_CHAOS = "PodChaos"
    NETWORK_CHAOS = "NetworkChaos"
    STRESS_CHAOS = "StressChaos"
    IO_CHAOS = "IOChaos"
    TIME_CHAOS = "TimeChaos"
    DNS_CHAOS = "DNSChaos"
    HTTP_CHAOS = "HTTPChaos"


type Converter = Callable[..., ResourceState]


@dataclass(frozen=True, slots=True)
class KindInfo:
    kind: ResourceKind
    group: str
    version: str
    plural: str
    convert: Converter

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def is_custom(self) -> bool:
        return self.group in (VM_OPERATOR_GROUP, CHAOS_MESH_GROUP)

    @property
    def kubectl_name(self) -> str:
        """Fully qualified resource name for ``kubectl get``."""
        return f"{self.plural}.{self.group}" if self.group else self.plural

    def to_state(self, obj: convert.RawObject, ref: ResourceRef | None = None) -> ResourceState:
        return self.convert(obj, ref)


def _vm(kind: ResourceKind, plural: str) -> KindInfo:
    return KindInfo(kind, VM_OPERATOR_GROUP, "v1beta1", plural, convert.custom_resource_status)


def _chaos(kind: ResourceKind) -> KindInfo:
    return KindInfo(kind, CHAOS_MESH_GROUP, "v1alpha1", kind.value.lower(), convert.condition_list)


KINDS: dict[ResourceKind, KindInfo] = {
    info.kind: info
    for info in (
        _vm(ResourceKind.VMSINGLE, "vmsingles"),
        _vm(ResourceKind.VMAGENT, "vmagents"),
        _vm(ResourceKind.VMALERT, "vmalerts"),
        _vm(ResourceKind.VMCLUSTER, "vmclusters"),
        KindInfo(ResourceKind.DEPLOYMENT, "apps", "v1", "deployments", convert.deployment_status),
        KindInfo(ResourceKind.SERVICE, "", "v1", "services", convert.service_ingress),
        KindInfo(ResourceKind.INGRESS, "networking.k8s.io", "v1", "ingresses", convert.service_ingress),
        KindInfo(ResourceKind.JOB, "batch", "v1", "jobs", convert.job_completion),
        _chaos(ResourceKind.POD_CHAOS),
        _chaos(ResourceKind.NETWORK_CHAOS),
        _chaos(ResourceKind.STRESS_CHAOS),
        _chaos(ResourceKind.IO_CHAOS),
        _chaos(ResourceKind.TIME_CHAOS),
        _chaos(ResourceKind.DNS_CHAOS),
        _chaos(ResourceKind.HTTP_CHAOS),
    )
}

_ALIASES: dict[str, ResourceKind] = {}
for _info in KINDS.values():
    _ALIASES[_info.kind.value.lower()] = _info.kind
    _ALIASES[_info.plural] = _info.kind
    _ALIASES[_info.kubectl_name] = _info.kind


def resolve_kind(kind: ResourceKind | str) -> ResourceKind:
    """Accept ``VMSingle``, ``vmsingle``, ``vmsingles`` or ``podchaos``.

    Raises:
        TerminalProviderError: If the kind is not registered.
    """
    if isinstance(kind, ResourceKind):
        return kind
    try:
        return _ALIASES[kind.strip().lower()]
    except KeyError:
        raise TerminalProviderError(
            f"Unknown resource kind '{kind}'. Known: {', '.join(k.value for k in KINDS)}"
        ) from None


def kind_info(kind: ResourceKind | str) -> KindInfo:
    return KINDS[resolve_kind(kind)]


def is_chaos_kind(kind: ResourceKind | str) -> bool:
    return kind_info(kind).group == CHAOS_MESH_GROUP
