"""Diagnostics collected after a failed rollout.

Two collectors, both bounded by ``Timeouts.diagnostics``:

- ``collect_k8s_diagnostics`` dumps the cluster with kubectl-crust-gather and
  packs it into ``<crust_gather_dir>/<hash>.tar.gz``, where the hash is
  derived from the test name so reruns of one test land in one place.
- ``collect_vm_export`` asks vmexporter for a metrics snapshot, polls the
  export job to completion and downloads the archive.

``collect_on_failure`` runs both and never raises: diagnostics must not mask
the failure that triggered them.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from loguru import logger

from vmharness import predicates
from vmharness.config import HarnessConfig
from vmharness.context import Context, ContextDone, timeout_scope
from vmharness.core.exceptions import HarnessError, WaitError
from vmharness.infra.cli import run
from vmharness.infra.http import HttpError
from vmharness.kinds import ResourceKind
from vmharness.providers.exporter import ExporterClient, ExportRequest
from vmharness.types import JobCompletion, ResourceRef, Satisfied, WaitMode, WaitSpec
from vmharness.waiters.poll import poll_until

CRUST_GATHER = "kubectl-crust-gather"
EXPORT_ARCHIVE_NAME = "vmexporter-report.zip"
EXPORT_POLL_INTERVAL = 5.0


def report_hash(test_name: str) -> str:
    """16 hex chars, stable per test name."""
    return hashlib.blake2b(test_name.encode(), digest_size=8).hexdigest()


async def collect_k8s_diagnostics(
    ctx: Context,
    config: HarnessConfig,
    test_name: str,
    *,
    collector: str = CRUST_GATHER,
) -> Path:
    """Dump cluster state for ``test_name`` and return the archive path.

    Raises:
        CommandError: If the collector or tar fails.
        ContextDone: If the diagnostics deadline elapses.
    """
    base = Path(config.crust_gather_dir)
    base.mkdir(parents=True, exist_ok=True)
    digest = report_hash(test_name)
    archive = base / f"{digest}.tar.gz"
    log = logger.bind(component="gather", test=test_name)

    with timeout_scope(ctx, config.timeouts.diagnostics) as scoped:
        log.info("Collecting cluster state into {dir}", dir=base / digest)
        await scoped.guard(run(collector, "collect", "-f", str(base / digest)))
        await scoped.guard(run("tar", "-czf", archive.name, digest, cwd=base))

    log.info("Saved cluster diagnostics to {archive}", archive=archive)
    return archive


async def collect_vm_export(
    ctx: Context,
    config: HarnessConfig,
    exporter: ExporterClient,
    request: ExportRequest,
    dest_dir: Path | None = None,
    *,
    interval: float = EXPORT_POLL_INTERVAL,
) -> Path:
    """Export metrics through vmexporter and download the archive.

    Raises:
        WaitError: If the export job failed or did not finish in time.
        ProviderError: If vmexporter rejected a request.
    """
    log = logger.bind(component="gather")
    timeout = config.timeouts.diagnostics

    with timeout_scope(ctx, timeout) as scoped:
        job_id = await scoped.guard(exporter.start_export(request))
        spec = WaitSpec(
            ref=ResourceRef(ResourceKind.JOB, "vmexporter", job_id),
            predicate=predicates.job_succeeded,
            timeout=scoped.remaining() or timeout,
            mode=WaitMode.POLL,
            interval=interval,
            description=f"export job {job_id}",
        )
        outcome = await poll_until(scoped, lambda: exporter.job_status("", job_id), spec)
        match outcome:
            case Satisfied(state=JobCompletion(artifact=archive_path)) if archive_path:
                pass
            case _:
                raise WaitError(outcome.describe())

        dest = (dest_dir or Path(config.report_location)) / EXPORT_ARCHIVE_NAME
        await scoped.guard(exporter.download(archive_path, dest))

    log.info("Saved metrics export to {dest}", dest=dest)
    return dest


async def collect_on_failure(
    ctx: Context,
    config: HarnessConfig,
    test_name: str,
    *,
    exporter: ExporterClient | None = None,
    export_request: ExportRequest | None = None,
) -> list[Path]:
    """Run every configured collector; returns the archives that were written."""
    log = logger.bind(component="gather", test=test_name)
    archives: list[Path] = []

    if exporter is not None:
        request = export_request or ExportRequest(source_url=config.vmsingle_url)
        try:
            archives.append(await collect_vm_export(ctx, config, exporter, request))
        except (HarnessError, HttpError, OSError) as e:
            log.warning("Metrics export failed: {error}", error=e)

    try:
        archives.append(await collect_k8s_diagnostics(ctx, config, test_name))
    except ContextDone as e:
        log.warning("Cluster diagnostics interrupted: {reason}", reason=e.reason)
    except (HarnessError, OSError) as e:
        log.warning("Cluster diagnostics failed: {error}", error=e)

    return archives
