"""Stage lists for the standard installation flows.

Each builder returns the ordered readiness checks that follow one install
step. Installing is the caller's job (helm, kubectl apply); these only
describe what has to become ready afterwards and in which order:

    await harness.rollout(rollouts.vm_k8s_stack(harness.timeouts, "vm"))
"""

from __future__ import annotations

from vmharness import specs
from vmharness.config import Timeouts
from vmharness.kinds import ResourceKind
from vmharness.orchestrator import Stage
from vmharness.predicates import ALL_RECOVERED

DEFAULT_RELEASE = "vmks"


def vm_k8s_stack(timeouts: Timeouts, namespace: str, release: str = DEFAULT_RELEASE) -> list[Stage]:
    """victoria-metrics-k8s-stack: operator first, then the components it manages."""
    return [
        Stage(specs.deployment_spec(timeouts, namespace, f"{release}-victoria-metrics-operator"), "operator"),
        Stage(specs.deployment_spec(timeouts, namespace, f"vmagent-{release}"), "vmagent"),
        Stage(specs.deployment_spec(timeouts, namespace, f"vmalert-{release}"), "vmalert"),
        Stage(specs.deployment_spec(timeouts, namespace, f"vminsert-{release}"), "vminsert"),
    ]


def vm_distributed(timeouts: Timeouts, namespace: str, release: str = DEFAULT_RELEASE) -> list[Stage]:
    """victoria-metrics-distributed: read and write vmauth, each deployment then ingress."""
    stages: list[Stage] = []
    for role in ("read", "write"):
        name = f"vmauth-vmauth-global-{role}-{release}-vm-distributed"
        stages.append(Stage(specs.deployment_spec(timeouts, namespace, name), f"vmauth {role}"))
        stages.append(Stage(specs.ingress_spec(timeouts, namespace, name), f"vmauth {role} ingress"))
    return stages


def vmsingle(
    timeouts: Timeouts,
    namespace: str,
    name: str,
    ingress: str | None = "vmsingle-ingress",
) -> list[Stage]:
    stages = [
        Stage(specs.operational_spec(timeouts, ResourceKind.VMSINGLE, namespace, name), "vmsingle"),
        Stage(specs.deployment_spec(timeouts, namespace, f"vmsingle-{name}"), "vmsingle deployment"),
    ]
    if ingress:
        stages.append(Stage(specs.ingress_spec(timeouts, namespace, ingress), "vmsingle ingress"))
    return stages


def vmagent(
    timeouts: Timeouts,
    namespace: str,
    name: str,
    ingress: str | None = "vmagent-ingress",
) -> list[Stage]:
    stages = [Stage(specs.operational_spec(timeouts, ResourceKind.VMAGENT, namespace, name), "vmagent")]
    if ingress:
        stages.append(Stage(specs.ingress_spec(timeouts, namespace, ingress), "vmagent ingress"))
    return stages


def vmcluster(timeouts: Timeouts, namespace: str, name: str) -> list[Stage]:
    return [Stage(specs.operational_spec(timeouts, ResourceKind.VMCLUSTER, namespace, name), "vmcluster")]


def overwatch(
    timeouts: Timeouts,
    namespace: str,
    vmagent_namespace: str,
    vmagent_release: str = DEFAULT_RELEASE,
) -> list[Stage]:
    """Overwatch VMSingle plus the stack's VMAgent and VMAlert reconfigured to write into it."""
    return [
        Stage(specs.deployment_spec(timeouts, namespace, "vmsingle-overwatch"), "overwatch deployment"),
        Stage(specs.ingress_spec(timeouts, namespace, "vmsingle-ingress"), "overwatch ingress"),
        Stage(
            specs.operational_spec(timeouts, ResourceKind.VMAGENT, vmagent_namespace, vmagent_release),
            "vmagent",
        ),
        Stage(
            specs.operational_spec(timeouts, ResourceKind.VMALERT, vmagent_namespace, vmagent_release),
            "vmalert",
        ),
        Stage(specs.operational_spec(timeouts, ResourceKind.VMSINGLE, namespace, "overwatch"), "overwatch"),
    ]


def ingress_controller(timeouts: Timeouts, namespace: str = "ingress-nginx") -> list[Stage]:
    return [Stage(specs.deployment_spec(timeouts, namespace, "ingress-nginx-controller"), "ingress-nginx")]


def chaos_mesh(timeouts: Timeouts, namespace: str) -> list[Stage]:
    return [Stage(specs.deployment_spec(timeouts, namespace, "chaos-controller-manager"), "chaos-mesh")]


def chaos_scenario(
    timeouts: Timeouts,
    namespace: str,
    scenario: str,
    chaos_kind: ResourceKind | str,
) -> list[Stage]:
    """Wait for a chaos experiment to report every target recovered."""
    spec = specs.condition_spec(timeouts, chaos_kind, namespace, scenario, ALL_RECOVERED)
    return [Stage(spec, f"chaos {scenario}")]


def k6_operator(timeouts: Timeouts, namespace: str = "k6-operator-system") -> list[Stage]:
    return [Stage(specs.deployment_spec(timeouts, namespace, "k6-operator-controller-manager"), "k6-operator")]


def k6_scenario(timeouts: Timeouts, namespace: str, scenario: str) -> list[Stage]:
    """The k6 operator's initializer and starter jobs for a test run."""
    return [
        Stage(specs.job_spec(timeouts, namespace, f"{scenario}-initializer"), "k6 initializer"),
        Stage(specs.job_spec(timeouts, namespace, f"{scenario}-starter"), "k6 starter"),
    ]


def k6_jobs(timeouts: Timeouts, namespace: str, scenario: str, parallelism: int) -> list[Stage]:
    """Runner jobs ``<scenario>-1`` .. ``<scenario>-<parallelism>``, with load-test timings."""
    return [
        Stage(specs.job_spec(timeouts, namespace, f"{scenario}-{i}", long_running=True), f"k6 runner {i}")
        for i in range(1, parallelism + 1)
    ]


def vmgather(timeouts: Timeouts, namespace: str = "vmgather") -> list[Stage]:
    return [Stage(specs.deployment_spec(timeouts, namespace, "vmgather"), "vmgather")]
