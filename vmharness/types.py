"""Core value types: resource identity, state snapshots, verdicts and outcomes.

State snapshots are an Algebraic Data Type. Each variant is produced by an
adapter at the provider boundary, so predicates never traverse raw objects:

    match state:
        case CustomResourceStatus(update_status=status):
            ...
        case ServiceIngress(ingress=entries):
            ...

Wait outcomes are also an ADT and are created fresh per wait:

    match outcome:
        case Satisfied(state=state):
            ...
        case TimedOut(reason=reason):
            ...
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, StrEnum
from typing import TYPE_CHECKING, ClassVar

from vmharness.budget import retry_budget
from vmharness.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from vmharness.kinds import ResourceKind


# =============================================================================
# Identity
# =============================================================================


@dataclass(frozen=True, slots=True)
class ResourceRef:
    """Namespace + name + kind of one external resource."""

    kind: ResourceKind
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind} {self.namespace}/{self.name}"


# =============================================================================
# State snapshots
# =============================================================================


class StateKind(StrEnum):
    CUSTOM_RESOURCE_STATUS = "CustomResourceStatus"
    SERVICE_INGRESS = "ServiceIngress"
    JOB_COMPLETION = "JobCompletion"
    CHAOS_CONDITION_LIST = "ChaosConditionList"
    DEPLOYMENT_STATUS = "DeploymentStatus"


@dataclass(frozen=True, slots=True)
class Condition:
    type: str
    status: str
    reason: str = ""
    message: str = ""


@dataclass(frozen=True, slots=True)
class LoadBalancerIngress:
    ip: str = ""
    hostname: str = ""


@dataclass(frozen=True, slots=True)
class CustomResourceStatus:
    """Operator-managed resource status (``status.updateStatus``)."""

    kind: ClassVar[StateKind] = StateKind.CUSTOM_RESOURCE_STATUS

    update_status: str
    reason: str = ""
    ref: ResourceRef | None = None


@dataclass(frozen=True, slots=True)
class ServiceIngress:
    """Load-balancer ingress list of a Service or an Ingress."""

    kind: ClassVar[StateKind] = StateKind.SERVICE_INGRESS

    ingress: tuple[LoadBalancerIngress, ...] = ()
    ref: ResourceRef | None = None


@dataclass(frozen=True, slots=True)
class JobCompletion:
    """Terminal flags of a job; both False while the job is still running.

    ``artifact`` carries whatever the job produced (an archive path for
    exporter jobs), ``message`` the failure explanation.
    """

    kind: ClassVar[StateKind] = StateKind.JOB_COMPLETION

    succeeded: bool = False
    failed: bool = False
    message: str = ""
    artifact: str = ""
    ref: ResourceRef | None = None


@dataclass(frozen=True, slots=True)
class ChaosConditionList:
    kind: ClassVar[StateKind] = StateKind.CHAOS_CONDITION_LIST

    conditions: tuple[Condition, ...] = ()
    ref: ResourceRef | None = None


@dataclass(frozen=True, slots=True)
class DeploymentStatus:
    kind: ClassVar[StateKind] = StateKind.DEPLOYMENT_STATUS

    conditions: tuple[Condition, ...] = ()
    replicas: int = 0
    available_replicas: int = 0
    ref: ResourceRef | None = None


type ResourceState = (
    CustomResourceStatus
    | ServiceIngress
    | JobCompletion
    | ChaosConditionList
    | DeploymentStatus
)


# =============================================================================
# Predicates
# =============================================================================


class PredicateResult(Enum):
    SATISFIED = "satisfied"
    NOT_YET = "not yet"
    PERMANENT_FAILURE = "permanent failure"


@dataclass(frozen=True, slots=True)
class Verdict:
    """Predicate result plus the value that produced it."""

    result: PredicateResult
    detail: str = ""

    @property
    def satisfied(self) -> bool:
        return self.result is PredicateResult.SATISFIED


type Predicate = Callable[[ResourceState], Verdict]


# =============================================================================
# Wait configuration
# =============================================================================


class WaitMode(StrEnum):
    WATCH = "watch"
    POLL = "poll"


@dataclass(frozen=True, slots=True)
class WaitSpec:
    """Configuration for one wait operation.

    Attributes:
        ref: Target resource.
        predicate: Condition applied to every observed snapshot.
        timeout: Total deadline in seconds.
        mode: Watch (change stream) or poll (re-fetch at ``interval``).
        interval: Polling interval in seconds; required for poll mode.
            For watch mode it is the fallback interval used when the
            provider has no change stream.
        description: Human label used in logs and failure messages.
    """

    ref: ResourceRef
    predicate: Predicate
    timeout: float
    mode: WaitMode = WaitMode.WATCH
    interval: float | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if self.timeout < 0:
            raise ConfigurationError(f"Negative timeout for {self.ref}: {self.timeout}")
        if self.mode is WaitMode.POLL and self.interval is None:
            raise ConfigurationError(f"Poll wait for {self.ref} needs an interval")
        if self.interval is not None:
            # Validates the interval as a side effect.
            retry_budget(self.timeout, self.interval)

    @property
    def max_retries(self) -> int | None:
        if self.interval is None:
            return None
        return retry_budget(self.timeout, self.interval)

    @property
    def label(self) -> str:
        return self.description or str(self.ref)


# =============================================================================
# Outcomes
# =============================================================================


class TimeoutReason(StrEnum):
    DEADLINE_EXCEEDED = "deadline exceeded"
    CANCELLED = "cancelled"
    RETRIES_EXHAUSTED = "retry budget exhausted"


def _identity(ref: ResourceRef, timeout: float, elapsed: float) -> str:
    return (
        f"{ref.kind} {ref.namespace}/{ref.name} "
        f"(timeout {timeout:.1f}s, elapsed {elapsed:.1f}s)"
    )


@dataclass(frozen=True, slots=True)
class Satisfied:
    ref: ResourceRef
    state: ResourceState
    timeout: float
    elapsed: float

    ok: ClassVar[bool] = True

    def describe(self) -> str:
        return f"{_identity(self.ref, self.timeout, self.elapsed)} is ready"


@dataclass(frozen=True, slots=True)
class TimedOut:
    ref: ResourceRef
    timeout: float
    elapsed: float
    reason: TimeoutReason = TimeoutReason.DEADLINE_EXCEEDED
    last_state: ResourceState | None = None
    last_error: str = ""
    attempts: int = 0

    ok: ClassVar[bool] = False

    def describe(self) -> str:
        msg = f"timed out waiting for {_identity(self.ref, self.timeout, self.elapsed)}: {self.reason}"
        if self.last_error:
            msg += f"; last error: {self.last_error}"
        elif self.last_state is not None:
            msg += f"; last state: {self.last_state}"
        return msg


@dataclass(frozen=True, slots=True)
class PermanentFailure:
    ref: ResourceRef
    detail: str
    timeout: float
    elapsed: float
    state: ResourceState | None = None

    ok: ClassVar[bool] = False

    def describe(self) -> str:
        return f"{_identity(self.ref, self.timeout, self.elapsed)} failed permanently: {self.detail}"


@dataclass(frozen=True, slots=True)
class TransientError:
    ref: ResourceRef
    error: Exception = field(compare=False)
    timeout: float
    elapsed: float

    ok: ClassVar[bool] = False

    def describe(self) -> str:
        return (
            f"error while waiting for {_identity(self.ref, self.timeout, self.elapsed)}: "
            f"{type(self.error).__name__}: {self.error}"
        )


type WaitOutcome = Satisfied | TimedOut | PermanentFailure | TransientError
