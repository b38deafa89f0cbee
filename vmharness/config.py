"""TOML-based harness configuration.

Loads ~/.vmharness/defaults.toml (global) and vmharness.toml (project),
merges them, and validates the result into a frozen HarnessConfig. The
config is built once per test session and passed explicitly to the
Harness; nothing here is module-level mutable state.

Example vmharness.toml:

    k8s_distro = "kind"
    vmsingle_url = "http://vmsingle.example:8428"

    [timeouts]
    polling_interval = 15
    resource_wait = 300

    [log]
    level = "DEBUG"
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from vmharness.budget import retry_budget
from vmharness.core.exceptions import ConfigurationError
from vmharness.logging import LogConfig

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".vmharness" / "defaults.toml"
PROJECT_CONFIG_NAME = "vmharness.toml"

KIND_DISTRO = "kind"


@dataclass(frozen=True, slots=True)
class Timeouts:
    """Wait timings in seconds.

    Attributes:
        resource_wait: Deadline for a custom resource to become operational.
        polling_interval: Interval between polls of deployments and ingresses.
        polling_timeout: Deadline for polled waits.
        k6_job_polling_interval: Interval between polls of load-test jobs.
        k6_job_max_duration: Deadline for a load-test job.
        chaos_test_max_duration: Deadline for a chaos scenario to recover.
        diagnostics: Deadline for collecting diagnostics after a failure.
    """

    resource_wait: float = 600.0
    polling_interval: float = 30.0
    polling_timeout: float = 600.0
    k6_job_polling_interval: float = 60.0
    k6_job_max_duration: float = 3600.0
    chaos_test_max_duration: float = 1800.0
    diagnostics: float = 600.0

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, int | float) or isinstance(value, bool):
                raise ConfigurationError(f"timeouts.{f.name} must be a number, got {value!r}")
            if value <= 0:
                raise ConfigurationError(f"timeouts.{f.name} must be positive, got {value}")

    @property
    def retries(self) -> int:
        return retry_budget(self.polling_timeout, self.polling_interval)

    @property
    def k6_retries(self) -> int:
        return retry_budget(self.k6_job_max_duration, self.k6_job_polling_interval)


def _host(url: str) -> str:
    if not url:
        return ""
    return urlsplit(url).hostname or ""


@dataclass(frozen=True, slots=True)
class HarnessConfig:
    """Process-wide settings for one test session.

    Attributes:
        timeouts: Wait timings.
        report_location: Directory for test reports.
        k8s_distro: Kubernetes distribution name (``kind`` has no load balancer).
        vmsingle_url: Base URL of the single-node VictoriaMetrics under test.
        vmselect_url: Base URL of vmselect for cluster tests.
        kubeconfig: Explicit kubeconfig path; empty uses the default lookup.
        kube_context: Explicit kubeconfig context.
        crust_gather_dir: Where cluster diagnostics are written.
        exporter_url: Base URL of the vmexporter service.
        log: Logging configuration.
    """

    timeouts: Timeouts = field(default_factory=Timeouts)
    report_location: str = "/tmp/allure-results"
    k8s_distro: str = ""
    vmsingle_url: str = ""
    vmselect_url: str = ""
    kubeconfig: str = ""
    kube_context: str = ""
    crust_gather_dir: str = "/tmp/crust-gather"
    exporter_url: str = ""
    log: LogConfig = field(default_factory=LogConfig)

    @property
    def vmsingle_host(self) -> str:
        return _host(self.vmsingle_url)

    @property
    def vmselect_host(self) -> str:
        return _host(self.vmselect_url)

    @property
    def is_kind(self) -> bool:
        return self.k8s_distro == KIND_DISTRO

    def with_ingress_host(self, host: str) -> HarnessConfig:
        """Point the VMSingle and vmselect URLs at nip.io names resolving to ``host``."""
        return replace(
            self,
            vmsingle_url=f"http://vmsingle.{host}.nip.io",
            vmselect_url=f"http://vmselect.{host}.nip.io",
        )

    def with_timeouts(self, **overrides: float) -> HarnessConfig:
        return replace(self, timeouts=replace(self.timeouts, **overrides))

    @classmethod
    def from_mapping(cls, raw: RawConfig) -> HarnessConfig:
        """Validate a merged raw config.

        Raises:
            ConfigurationError: On unknown keys, wrong types or non-positive durations.
        """
        raw = dict(raw)
        timeouts = Timeouts(**_section(raw.pop("timeouts", {}), Timeouts, "timeouts"))
        log = LogConfig(**_section(raw.pop("log", {}), LogConfig, "log"))
        top = _section(raw, cls, "")
        for key, value in top.items():
            if not isinstance(value, str):
                raise ConfigurationError(f"{key} must be a string, got {value!r}")
        return cls(timeouts=timeouts, log=log, **top)


def _section(raw: Any, cls: type, name: str) -> RawConfig:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"[{name}] must be a table, got {raw!r}")
    known = {f.name for f in fields(cls)} - {"timeouts", "log"}
    unknown = sorted(set(raw) - known)
    if unknown:
        where = f"[{name}]" if name else "top level"
        raise ConfigurationError(
            f"Unknown config keys at {where}: {', '.join(unknown)}. "
            f"Valid: {', '.join(sorted(known))}"
        )
    return raw


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> HarnessConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    return HarnessConfig.from_mapping(_deep_merge(global_cfg, project_cfg))
