"""Client for the vmexporter HTTP API.

vmexporter snapshots metrics from a VictoriaMetrics instance into an
archive. An export is an asynchronous job:

    POST /api/export/start          -> {"job_id": "..."}
    GET  /api/export/status?id=...  -> {"state": "running|completed|failed",
                                        "result": {"archive_path": "..."}}
    GET  /api/download?path=...     -> archive bytes

ExporterClient is a JobStatusProvider, so the poll waiter can drive an
export to completion like any Kubernetes Job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from loguru import logger

from vmharness.config import HarnessConfig
from vmharness.core.exceptions import ProviderError, ResourceNotFoundError, TerminalProviderError
from vmharness.infra.http import HttpClient, HttpError
from vmharness.kinds import ResourceKind
from vmharness.types import JobCompletion

DEFAULT_COMPONENTS = ("operator", "victoria", "vmagent", "vmalert", "vminsert", "vmselect", "vmstorage")
DEFAULT_JOBS = (
    "vmks-victoria-metrics-operator",
    "vmsingle-overwatch",
    "vmagent-vmks",
    "vmalert-vmks",
    "vminsert-vmks",
    "vmselect-vmks",
    "vmstorage-vmks",
)


@dataclass(frozen=True, slots=True)
class ExportRequest:
    """What to export and from where.

    Attributes:
        source_url: VictoriaMetrics base URL reachable from vmexporter.
        api_base_path: Prometheus API prefix on ``source_url``.
        start: Start of the exported range; defaults to ``lookback`` before ``end``.
        end: End of the exported range; defaults to now.
        lookback: Range length used when ``start`` is not given.
        components: Component labels to include.
        jobs: Scrape job names to include.
        staging_dir: Scratch directory on the exporter side.
        batch_interval: Batch size in seconds.
    """

    source_url: str
    api_base_path: str = "/prometheus"
    start: datetime | None = None
    end: datetime | None = None
    lookback: timedelta = timedelta(hours=1)
    components: tuple[str, ...] = DEFAULT_COMPONENTS
    jobs: tuple[str, ...] = DEFAULT_JOBS
    staging_dir: str = "/tmp/staging"
    batch_interval: int = 60
    tenant_id: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        end = self.end or datetime.now(UTC)
        start = self.start or end - self.lookback
        base = self.source_url.rstrip("/")
        return {
            "connection": {
                "url": base,
                "api_base_path": self.api_base_path,
                "tenant_id": self.tenant_id,
                "is_multitenant": self.tenant_id is not None,
                "full_api_url": f"{base}{self.api_base_path}",
                "auth": {"type": "none"},
                "skip_tls_verify": False,
            },
            "time_range": {"start": start.isoformat(), "end": end.isoformat()},
            "components": list(self.components),
            "jobs": list(self.jobs),
            "obfuscation": {
                "enabled": False,
                "obfuscate_instance": False,
                "obfuscate_job": False,
                "preserve_structure": True,
                "custom_labels": [],
            },
            "staging_dir": self.staging_dir,
            "metric_step_seconds": 0,
            "batching": {"enabled": True, "strategy": "custom", "custom_interval_secs": self.batch_interval},
            **self.extra,
        }


def _provider_error(e: HttpError, what: str) -> ProviderError:
    if e.status in (401, 403):
        return TerminalProviderError(f"{what}: {e}")
    return ProviderError(f"{what}: {e}")


def _object(data: Any, what: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ProviderError(f"{what}: expected a JSON object, got {type(data).__name__}")
    return data


class ExporterClient:
    def __init__(self, base_url: str, *, timeout: float = 60) -> None:
        self._http = HttpClient(base_url, timeout=timeout)
        self._log = logger.bind(component="exporter")

    @classmethod
    def from_config(cls, config: HarnessConfig) -> ExporterClient | None:
        """Client for ``config.exporter_url``, or None when no exporter is deployed."""
        if not config.exporter_url:
            return None
        return cls(config.exporter_url)

    @property
    def base_url(self) -> str:
        return self._http.base_url

    async def start_export(self, request: ExportRequest) -> str:
        try:
            resp = await self._http.post("/api/export/start", json=request.to_json(), response_type=dict)
        except HttpError as e:
            raise _provider_error(e, "Starting export failed") from e
        job_id = str(_object(resp.data, "Starting export failed").get("job_id") or "")
        if not job_id:
            raise TerminalProviderError(f"vmexporter returned no job_id: {resp.data!r}")
        self._log.info("Export job {job_id} started", job_id=job_id)
        return job_id

    async def job_status(self, namespace: str, name: str) -> JobCompletion:
        """Status of export job ``name``; exporter jobs are not namespaced."""
        try:
            resp = await self._http.get("/api/export/status", params={"id": name}, response_type=dict)
        except HttpError as e:
            if e.status == 404:
                raise ResourceNotFoundError(ResourceKind.JOB, namespace, name) from e
            raise _provider_error(e, f"Export status for {name} failed") from e

        data = _object(resp.data, f"Export status for {name} failed")
        state = str(data.get("state", ""))
        self._log.debug("Export job {job_id} state: {state}", job_id=name, state=state or "<empty>")
        match state:
            case "completed":
                result = data.get("result")
                archive = str(result.get("archive_path") or "") if isinstance(result, dict) else ""
                if not archive:
                    return JobCompletion(failed=True, message="completed without archive_path")
                return JobCompletion(succeeded=True, artifact=archive)
            case "failed":
                return JobCompletion(failed=True, message=str(data.get("error") or f"export job {name} failed"))
            case _:
                return JobCompletion()

    async def download(self, archive_path: str, dest: Path) -> int:
        try:
            size = await self._http.download("/api/download", dest, params={"path": archive_path})
        except HttpError as e:
            raise _provider_error(e, f"Downloading {archive_path} failed") from e
        self._log.info("Downloaded {path} ({size} bytes) to {dest}", path=archive_path, size=size, dest=dest)
        return size

    async def close(self) -> None:
        await self._http.close()

    async def __aenter__(self) -> ExporterClient:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
