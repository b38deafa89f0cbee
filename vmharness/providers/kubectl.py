"""Resource state provider that shells out to ``kubectl``.

Useful where only a kubeconfig and the CLI are available. It has no change
stream, so watch-mode waits against it fall back to polling.
"""

from __future__ import annotations

import json

from loguru import logger

from vmharness.config import HarnessConfig
from vmharness.core.exceptions import ProviderError, ResourceNotFoundError, TerminalProviderError
from vmharness.infra.cli import CommandError, run_json
from vmharness.kinds import ResourceKind, kind_info
from vmharness.types import JobCompletion, ResourceRef, ResourceState

_TERMINAL_MARKERS = ("Forbidden", "doesn't have a resource type", "Unauthorized")


class KubectlProvider:
    def __init__(self, *, binary: str = "kubectl", kubeconfig: str = "", context: str = "") -> None:
        self._binary = binary
        self._global_args: tuple[str, ...] = (
            *(("--kubeconfig", kubeconfig) if kubeconfig else ()),
            *(("--context", context) if context else ()),
        )
        self._log = logger.bind(component="kubectl")

    @classmethod
    def from_config(cls, config: HarnessConfig) -> KubectlProvider:
        return cls(kubeconfig=config.kubeconfig, context=config.kube_context)

    async def get(self, kind: ResourceKind | str, namespace: str, name: str) -> ResourceState:
        info = kind_info(kind)
        try:
            obj = await run_json(
                self._binary, *self._global_args,
                "get", info.kubectl_name, name, "-n", namespace, "-o", "json",
            )
        except CommandError as e:
            if e.returncode is None:
                raise TerminalProviderError(f"Cannot run {self._binary}: {e.stderr}") from e
            if "NotFound" in e.stderr:
                raise ResourceNotFoundError(info.kind, namespace, name) from e
            if any(marker in e.stderr for marker in _TERMINAL_MARKERS):
                raise TerminalProviderError(e.stderr) from e
            raise ProviderError(str(e)) from e
        except json.JSONDecodeError as e:
            raise ProviderError(f"kubectl returned malformed JSON for {info.kind} {namespace}/{name}") from e

        return info.to_state(obj, ResourceRef(info.kind, namespace, name))

    async def job_status(self, namespace: str, name: str) -> JobCompletion:
        state = await self.get(ResourceKind.JOB, namespace, name)
        assert isinstance(state, JobCompletion)
        return state
