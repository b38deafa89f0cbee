"""Custom exception hierarchy for vmharness.

All harness-specific exceptions inherit from HarnessError, enabling
callers to catch every harness failure with a single except clause.
Wait outcomes are returned, not raised: only configuration mistakes,
provider-boundary failures and failed rollouts surface as exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vmharness.orchestrator import StageFailure


class HarnessError(Exception):
    """Base exception for all harness errors."""


class ConfigurationError(HarnessError):
    """Raised for invalid configuration or missing required settings."""


class WaitError(HarnessError):
    """Raised when a wait could not be completed."""


class StageFailedError(WaitError):
    """Raised when a rollout stage ends in a non-satisfied outcome."""

    def __init__(self, failure: StageFailure) -> None:
        self.failure = failure
        super().__init__(failure.describe())


# =============================================================================
# Provider boundary
# =============================================================================


class ProviderError(HarnessError):
    """A fetch or subscribe call against a state provider failed.

    Plain provider errors are transient: the poll waiter logs them and
    tries again on the next tick.
    """


class ResourceNotFoundError(ProviderError):
    """The requested object does not exist (yet)."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} not found")


class TerminalProviderError(ProviderError):
    """A provider failure that retrying cannot fix (forbidden, unknown type)."""


class WatchUnsupportedError(TerminalProviderError):
    """The provider has no change stream for the requested kind."""
