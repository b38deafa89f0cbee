"""Resource state provider backed by the official Kubernetes client.

The client is blocking, so every request runs in a worker thread. Objects
are fetched without model deserialization (``_preload_content=False``) and
handed to the kind's adapter as plain JSON.

Watches open a streaming list request scoped to one object name. A worker
thread reads the chunked response line by line and pushes each line into
an asyncio queue; closing the subscription closes the response, which
unblocks the reader.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import math
from collections.abc import AsyncIterator, Callable
from functools import partial
from typing import Any

import urllib3
from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.watch.watch import iter_resp_lines
from loguru import logger

from vmharness.config import HarnessConfig
from vmharness.core.exceptions import (
    ConfigurationError,
    ProviderError,
    ResourceNotFoundError,
    TerminalProviderError,
)
from vmharness.kinds import KindInfo, ResourceKind, kind_info
from vmharness.providers.base import EventType, WatchEvent
from vmharness.types import JobCompletion, ResourceRef, ResourceState

_EOF = object()

# How long the API server keeps a watch open before closing it.
DEFAULT_WATCH_TIMEOUT = 3600


def _unserved_type(e: ApiException) -> bool:
    """A 404 Status without an object name means the resource type itself is missing.

    Object lookups always answer with a JSON Status naming the object; a
    plain-text body ("404 page not found") comes from an unknown API path.
    """
    if not e.body:
        return False
    try:
        status = json.loads(e.body)
    except ValueError:
        return True
    if not isinstance(status, dict) or status.get("kind") != "Status":
        return False
    details = status.get("details") or {}
    return not details.get("name")


def _translate(e: ApiException, info: KindInfo, namespace: str, name: str) -> ProviderError:
    match e.status:
        case 404 if _unserved_type(e):
            return TerminalProviderError(
                f"{info.kubectl_name} ({info.api_version}) is not served by the API server; is the CRD installed?"
            )
        case 404:
            return ResourceNotFoundError(info.kind, namespace, name)
        case 401 | 403:
            return TerminalProviderError(f"Access to {info.kubectl_name} in {namespace} denied: {e.reason}")
        case _:
            return ProviderError(f"API error {e.status} for {info.kind} {namespace}/{name}: {e.reason}")


def _discard(task: asyncio.Future[Any]) -> None:
    # The caller gave up before the request returned; nobody else owns the response.
    if task.cancelled() or task.exception() is not None:
        return
    resp = task.result()
    resp.close()
    resp.release_conn()


class KubernetesProvider:
    """Watchable provider for every kind in the registry.

    Args:
        api_client: Configured ApiClient; see ``from_config`` for building one.
        watch_timeout: Server-side lifetime of a watch, in seconds.
    """

    def __init__(self, api_client: client.ApiClient, *, watch_timeout: int = DEFAULT_WATCH_TIMEOUT) -> None:
        self._api_client = api_client
        self._core = client.CoreV1Api(api_client)
        self._apps = client.AppsV1Api(api_client)
        self._batch = client.BatchV1Api(api_client)
        self._networking = client.NetworkingV1Api(api_client)
        self._custom = client.CustomObjectsApi(api_client)
        self._watch_timeout = watch_timeout
        self._log = logger.bind(component="kubernetes")

    @classmethod
    def from_config(cls, config: HarnessConfig) -> KubernetesProvider:
        """Build a client from kubeconfig, falling back to in-cluster credentials."""
        try:
            api_client = k8s_config.new_client_from_config(
                config_file=config.kubeconfig or None,
                context=config.kube_context or None,
            )
        except ConfigException as kube_error:
            if config.kubeconfig or config.kube_context:
                raise ConfigurationError(f"Cannot load kubeconfig: {kube_error}") from kube_error
            try:
                k8s_config.load_incluster_config()
            except ConfigException as e:
                raise ConfigurationError(f"No kubeconfig and not running in a cluster: {e}") from e
            api_client = client.ApiClient()
        return cls(api_client, watch_timeout=int(config.timeouts.resource_wait) + 60)

    # ─── Dispatch ────────────────────────────────────────────────────

    def _read_fn(self, info: KindInfo, namespace: str, name: str) -> Callable[..., Any]:
        if info.is_custom:
            return partial(
                self._custom.get_namespaced_custom_object,
                info.group, info.version, namespace, info.plural, name,
            )
        match info.kind:
            case ResourceKind.DEPLOYMENT:
                return partial(self._apps.read_namespaced_deployment, name, namespace)
            case ResourceKind.SERVICE:
                return partial(self._core.read_namespaced_service, name, namespace)
            case ResourceKind.INGRESS:
                return partial(self._networking.read_namespaced_ingress, name, namespace)
            case ResourceKind.JOB:
                return partial(self._batch.read_namespaced_job, name, namespace)
            case _:
                raise TerminalProviderError(f"No read API for {info.kind}")

    def _list_fn(self, info: KindInfo, namespace: str) -> Callable[..., Any]:
        if info.is_custom:
            return partial(
                self._custom.list_namespaced_custom_object,
                info.group, info.version, namespace, info.plural,
            )
        match info.kind:
            case ResourceKind.DEPLOYMENT:
                return partial(self._apps.list_namespaced_deployment, namespace)
            case ResourceKind.SERVICE:
                return partial(self._core.list_namespaced_service, namespace)
            case ResourceKind.INGRESS:
                return partial(self._networking.list_namespaced_ingress, namespace)
            case ResourceKind.JOB:
                return partial(self._batch.list_namespaced_job, namespace)
            case _:
                raise TerminalProviderError(f"No list API for {info.kind}")

    async def _call(self, fn: Callable[..., Any], info: KindInfo, namespace: str, name: str, **kwargs: Any) -> Any:
        # The worker thread cannot be interrupted; shield it so a cancelled
        # caller can hand the late response to _discard instead of leaking it.
        request = asyncio.ensure_future(asyncio.to_thread(fn, _preload_content=False, **kwargs))
        try:
            return await asyncio.shield(request)
        except asyncio.CancelledError:
            request.add_done_callback(_discard)
            raise
        except ApiException as e:
            raise _translate(e, info, namespace, name) from e
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise ProviderError(f"Cannot reach API server: {e}") from e

    # ─── ResourceStateProvider ───────────────────────────────────────

    async def get(self, kind: ResourceKind | str, namespace: str, name: str) -> ResourceState:
        info = kind_info(kind)
        resp = await self._call(self._read_fn(info, namespace, name), info, namespace, name)
        try:
            obj = json.loads(resp.data)
        except ValueError as e:
            raise ProviderError(f"Malformed {info.kind} {namespace}/{name}: {e}") from e
        return info.to_state(obj, ResourceRef(info.kind, namespace, name))

    async def job_status(self, namespace: str, name: str) -> JobCompletion:
        state = await self.get(ResourceKind.JOB, namespace, name)
        assert isinstance(state, JobCompletion)
        return state

    # ─── WatchableResourceProvider ───────────────────────────────────

    @contextlib.asynccontextmanager
    async def watch(
        self,
        kind: ResourceKind | str,
        namespace: str,
        selector: str | None = None,
        *,
        timeout: float | None = None,
    ) -> AsyncIterator[AsyncIterator[WatchEvent]]:
        info = kind_info(kind)
        # Outlive the caller's deadline by a second so the caller, not the server, ends the wait.
        server_timeout = self._watch_timeout if timeout is None else math.ceil(timeout) + 1
        kwargs: dict[str, Any] = {"watch": True, "timeout_seconds": server_timeout}
        if selector:
            kwargs["field_selector"] = f"metadata.name={selector}"
        resp = await self._call(self._list_fn(info, namespace), info, namespace, selector or "*", **kwargs)

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Any] = asyncio.Queue()

        def put(item: Any) -> None:
            with contextlib.suppress(RuntimeError):  # loop already closed
                loop.call_soon_threadsafe(queue.put_nowait, item)

        def pump() -> None:
            try:
                for line in iter_resp_lines(resp):
                    put(line)
            except Exception as e:  # noqa: BLE001
                put(e)
            finally:
                put(_EOF)

        reader = asyncio.ensure_future(asyncio.to_thread(pump))
        self._log.debug("Watching {kind} in {ns}", kind=info.kind, ns=namespace)
        try:
            yield self._events(queue, info, namespace)
        finally:
            resp.close()
            resp.release_conn()
            await asyncio.wait((reader,), timeout=5)
            self._log.debug("Closed watch on {kind} in {ns}", kind=info.kind, ns=namespace)

    async def _events(
        self,
        queue: asyncio.Queue[Any],
        info: KindInfo,
        namespace: str,
    ) -> AsyncIterator[WatchEvent]:
        while True:
            item = await queue.get()
            if item is _EOF:
                return
            if isinstance(item, Exception):
                raise ProviderError(f"Watch stream on {info.kind} failed: {item}") from item

            try:
                event = json.loads(item)
            except ValueError as e:
                raise ProviderError(f"Malformed watch event: {item[:200]}") from e

            obj = event.get("object") or {}
            match event.get("type"):
                case "ERROR":
                    raise ProviderError(f"Watch on {info.kind} ended with error: {obj.get('message', obj)}")
                case "ADDED" | "MODIFIED" | "DELETED" as type_:
                    name = str((obj.get("metadata") or {}).get("name", ""))
                    ref = ResourceRef(info.kind, namespace, name)
                    yield WatchEvent(EventType(type_), info.to_state(obj, ref), name)
                case _:
                    # BOOKMARK and unknown event types carry no state.
                    continue

    async def close(self) -> None:
        await asyncio.to_thread(self._api_client.close)
