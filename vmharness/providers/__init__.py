"""State providers: the boundary between the cluster and the waiters."""

from vmharness.providers.base import (
    EventType,
    JobStatusProvider,
    ResourceStateProvider,
    WatchableResourceProvider,
    WatchEvent,
    is_job_succeeded,
)
from vmharness.providers.exporter import ExporterClient, ExportRequest
from vmharness.providers.kubectl import KubectlProvider
from vmharness.providers.kubernetes import KubernetesProvider

__all__ = [
    "EventType",
    "JobStatusProvider",
    "ResourceStateProvider",
    "WatchableResourceProvider",
    "WatchEvent",
    "is_job_succeeded",
    "ExporterClient",
    "ExportRequest",
    "KubectlProvider",
    "KubernetesProvider",
]
