"""vmharness - readiness waits for VictoriaMetrics end-to-end tests on Kubernetes.

Example:

    from vmharness import Harness, KubernetesProvider, PytestT, load_config, rollouts

    config = load_config()
    provider = KubernetesProvider.from_config(config)

    async def test_vmsingle(request):
        t = PytestT.from_request(request)
        harness = Harness(config, provider, t=t)
        await harness.wait_until_operational("VMSingle", "vm", "overwatch")
        await harness.rollout(rollouts.vm_k8s_stack(config.timeouts, "vm"), gather_on_failure=True)
"""

# Submodules used as namespaces
from vmharness import predicates, rollouts, specs

# Retry budget
from vmharness.budget import retry_budget

# Configuration
from vmharness.config import HarnessConfig, Timeouts, load_config

# Deadline contexts
from vmharness.context import (
    CancelReason,
    Context,
    ContextDone,
    background,
    timeout_scope,
    with_timeout,
)

# Exceptions
from vmharness.core.exceptions import (
    ConfigurationError,
    HarnessError,
    ProviderError,
    ResourceNotFoundError,
    StageFailedError,
    TerminalProviderError,
    WaitError,
    WatchUnsupportedError,
)

# Diagnostics
from vmharness.gather import collect_k8s_diagnostics, collect_on_failure, collect_vm_export

# Entry points
from vmharness.harness import Harness

# Kinds
from vmharness.kinds import ResourceKind, kind_info, resolve_kind

# Logging
from vmharness.logging import LogConfig, configure_logging, reset_logging

# Orchestration
from vmharness.orchestrator import RolloutResult, Stage, StageFailure, run_stages

# Providers
from vmharness.providers import (
    ExporterClient,
    ExportRequest,
    JobStatusProvider,
    KubectlProvider,
    KubernetesProvider,
    ResourceStateProvider,
    WatchableResourceProvider,
    WatchEvent,
)

# Testing capability
from vmharness.testing import PytestT, TestingT

# Types (ADTs)
from vmharness.types import (
    ChaosConditionList,
    Condition,
    CustomResourceStatus,
    DeploymentStatus,
    JobCompletion,
    LoadBalancerIngress,
    PermanentFailure,
    PredicateResult,
    ResourceRef,
    ResourceState,
    Satisfied,
    ServiceIngress,
    TimedOut,
    TimeoutReason,
    TransientError,
    Verdict,
    WaitMode,
    WaitOutcome,
    WaitSpec,
)

# Waiters
from vmharness.waiters import poll_until, watch_until

__version__ = "0.1.0"

__all__ = [
    # Submodules
    "predicates",
    "rollouts",
    "specs",
    # Budget
    "retry_budget",
    # Config
    "HarnessConfig",
    "Timeouts",
    "load_config",
    # Context
    "CancelReason",
    "Context",
    "ContextDone",
    "background",
    "timeout_scope",
    "with_timeout",
    # Exceptions
    "ConfigurationError",
    "HarnessError",
    "ProviderError",
    "ResourceNotFoundError",
    "StageFailedError",
    "TerminalProviderError",
    "WaitError",
    "WatchUnsupportedError",
    # Diagnostics
    "collect_k8s_diagnostics",
    "collect_on_failure",
    "collect_vm_export",
    # Entry points
    "Harness",
    # Kinds
    "ResourceKind",
    "kind_info",
    "resolve_kind",
    # Logging
    "LogConfig",
    "configure_logging",
    "reset_logging",
    # Orchestration
    "RolloutResult",
    "Stage",
    "StageFailure",
    "run_stages",
    # Providers
    "ExporterClient",
    "ExportRequest",
    "JobStatusProvider",
    "KubectlProvider",
    "KubernetesProvider",
    "ResourceStateProvider",
    "WatchableResourceProvider",
    "WatchEvent",
    # Testing
    "PytestT",
    "TestingT",
    # Types
    "ChaosConditionList",
    "Condition",
    "CustomResourceStatus",
    "DeploymentStatus",
    "JobCompletion",
    "LoadBalancerIngress",
    "PermanentFailure",
    "PredicateResult",
    "ResourceRef",
    "ResourceState",
    "Satisfied",
    "ServiceIngress",
    "TimedOut",
    "TimeoutReason",
    "TransientError",
    "Verdict",
    "WaitMode",
    "WaitOutcome",
    "WaitSpec",
    # Waiters
    "poll_until",
    "watch_until",
]
