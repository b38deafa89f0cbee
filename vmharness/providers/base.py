"""Protocols for the external state providers the waiters consume.

Providers translate whatever they talk to (API server, kubectl, HTTP job
endpoints) into typed snapshots and into the provider exceptions from
``vmharness.core.exceptions``:

- ProviderError: transient, the poll waiter retries it
- ResourceNotFoundError: the object is missing, retried as well
- TerminalProviderError: retrying cannot help, the wait ends at once
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from vmharness.kinds import ResourceKind
    from vmharness.types import JobCompletion, ResourceState

__all__ = [
    "EventType",
    "WatchEvent",
    "WatchStream",
    "ResourceStateProvider",
    "WatchableResourceProvider",
    "JobStatusProvider",
    "is_job_succeeded",
]


class EventType(StrEnum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True, slots=True)
class WatchEvent:
    type: EventType
    state: ResourceState
    name: str


type WatchStream = AbstractAsyncContextManager[AsyncIterator[WatchEvent]]


@runtime_checkable
class ResourceStateProvider(Protocol):
    """Fetches the current snapshot of one resource."""

    async def get(self, kind: ResourceKind | str, namespace: str, name: str) -> ResourceState:
        """Fetch the current state.

        Raises:
            ResourceNotFoundError: If the object does not exist.
            TerminalProviderError: If the kind is unknown or access is denied.
            ProviderError: For any other (transient) failure.
        """
        ...


@runtime_checkable
class WatchableResourceProvider(ResourceStateProvider, Protocol):
    """A provider that can also push change events."""

    def watch(
        self,
        kind: ResourceKind | str,
        namespace: str,
        selector: str | None = None,
        *,
        timeout: float | None = None,
    ) -> WatchStream:
        """Open a change-event subscription.

        Used as ``async with provider.watch(...) as events``. Entering the
        context opens the server-side session and raises on failure; leaving
        it always releases the session.

        Args:
            kind: Resource kind to watch.
            namespace: Namespace to watch.
            selector: Optional exact object name to scope the stream.
            timeout: Seconds the server should keep the stream open; None
                leaves the provider default.
        """
        ...


@runtime_checkable
class JobStatusProvider(Protocol):
    """Reports completion of Kubernetes Jobs or external jobs."""

    async def job_status(self, namespace: str, name: str) -> JobCompletion: ...


async def is_job_succeeded(provider: JobStatusProvider, namespace: str, name: str) -> bool:
    status = await provider.job_status(namespace, name)
    return status.succeeded
