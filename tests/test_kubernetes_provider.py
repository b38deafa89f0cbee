from __future__ import annotations

import asyncio
import json
import time
from functools import partial

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from vmharness.core.exceptions import ProviderError, ResourceNotFoundError, TerminalProviderError
from vmharness.kinds import ResourceKind, kind_info
from vmharness.providers.base import EventType, WatchableResourceProvider
from vmharness.providers.kubernetes import _EOF, DEFAULT_WATCH_TIMEOUT, KubernetesProvider, _translate
from vmharness.context import background
from vmharness.predicates import OPERATIONAL
from vmharness.types import (
    CustomResourceStatus,
    DeploymentStatus,
    JobCompletion,
    ResourceRef,
    TimedOut,
    TransientError,
    WaitMode,
    WaitSpec,
)
from vmharness.waiters.poll import poll_until
from vmharness.waiters.watch import watch_until

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


def vmsingle(name: str, update_status: str) -> dict:
    return {
        "kind": "VMSingle",
        "metadata": {"name": name, "namespace": "vm"},
        "status": {"updateStatus": update_status},
    }


def line(event_type: str, obj: dict) -> str:
    return json.dumps({"type": event_type, "object": obj})


def not_found_status(details: dict) -> dict:
    return {
        "kind": "Status",
        "apiVersion": "v1",
        "status": "Failure",
        "message": "the server could not find the requested resource",
        "reason": "NotFound",
        "details": details,
        "code": 404,
    }


class FakeHTTPResponse:
    """Just enough of urllib3's HTTPResponse for reads and streamed watches."""

    def __init__(self, body: bytes = b"", lines: list[str] | None = None) -> None:
        self.data = body
        self._segments = [f"{entry}\n".encode() for entry in lines or []]
        self.closed = False
        self.released = False

    def stream(self, amt=None, decode_content=False):
        yield from self._segments

    def read_chunked(self, amt=None, decode_content=False):
        yield from self._segments

    def close(self) -> None:
        self.closed = True

    def release_conn(self) -> None:
        self.released = True


@pytest.fixture
async def kube():
    provider = KubernetesProvider(client.ApiClient())
    yield provider
    await provider.close()


# ─── Error translation ───────────────────────────────────────────────


class TestTranslate:
    def test_not_found(self):
        err = _translate(ApiException(status=404, reason="Not Found"), kind_info("VMSingle"), "vm", "x")
        assert isinstance(err, ResourceNotFoundError)
        assert str(err) == "VMSingle vm/x not found"

    @pytest.mark.parametrize("status", [401, 403])
    def test_denied_is_terminal(self, status):
        err = _translate(ApiException(status=status, reason="Forbidden"), kind_info("Deployment"), "vm", "x")
        assert isinstance(err, TerminalProviderError)
        assert "deployments.apps" in str(err)

    def test_server_error_is_transient(self):
        err = _translate(ApiException(status=500, reason="Internal"), kind_info("Job"), "k6", "x")
        assert type(err) is ProviderError

    def test_missing_object_status(self):
        e = ApiException(status=404, reason="Not Found")
        e.body = json.dumps(not_found_status({"name": "x", "group": "operator.victoriametrics.com", "kind": "vmsingles"}))

        err = _translate(e, kind_info("VMSingle"), "vm", "x")

        assert isinstance(err, ResourceNotFoundError)

    def test_unserved_type_is_terminal(self):
        e = ApiException(status=404, reason="Not Found")
        e.body = json.dumps(not_found_status({}))

        err = _translate(e, kind_info("PodChaos"), "chaos", "pod-kill")

        assert isinstance(err, TerminalProviderError)
        assert "podchaos.chaos-mesh.org" in str(err)
        assert "chaos-mesh.org/v1alpha1" in str(err)

    def test_unknown_path_is_terminal(self):
        e = ApiException(status=404, reason="Not Found")
        e.body = b"404 page not found"

        assert isinstance(_translate(e, kind_info("VMAlert"), "vm", "x"), TerminalProviderError)



# ─── get ─────────────────────────────────────────────────────────────


class TestGet:
    @pytest.mark.asyncio
    async def test_is_watchable(self, kube):
        assert isinstance(kube, WatchableResourceProvider)

    @pytest.mark.asyncio
    async def test_custom_resource(self, kube, monkeypatch):
        seen: dict = {}

        def read(**kwargs):
            seen.update(kwargs)
            return FakeHTTPResponse(json.dumps(vmsingle("overwatch", "Operational")).encode())

        monkeypatch.setattr(kube, "_read_fn", lambda info, ns, name: read)

        state = await kube.get("VMSingle", "vm", "overwatch")

        assert isinstance(state, CustomResourceStatus)
        assert state.update_status == "Operational"
        assert state.ref.name == "overwatch"
        assert seen == {"_preload_content": False}

    @pytest.mark.asyncio
    async def test_deployment(self, kube, monkeypatch):
        body = {"status": {"replicas": 2, "availableReplicas": 1}}
        monkeypatch.setattr(kube, "_read_fn", lambda *_: lambda **_: FakeHTTPResponse(json.dumps(body).encode()))

        state = await kube.get(ResourceKind.DEPLOYMENT, "vm", "vmsingle-overwatch")

        assert isinstance(state, DeploymentStatus)
        assert state.available_replicas == 1

    @pytest.mark.asyncio
    async def test_job_status(self, kube, monkeypatch):
        body = {"status": {"conditions": [{"type": "Complete", "status": "True"}]}}
        monkeypatch.setattr(kube, "_read_fn", lambda *_: lambda **_: FakeHTTPResponse(json.dumps(body).encode()))

        status = await kube.job_status("k6", "load-starter")

        assert isinstance(status, JobCompletion)
        assert status.succeeded
        assert not status.failed

    @pytest.mark.asyncio
    async def test_api_exception_translated(self, kube, monkeypatch):
        def read(**_):
            raise ApiException(status=404, reason="Not Found")

        monkeypatch.setattr(kube, "_read_fn", lambda *_: read)

        with pytest.raises(ResourceNotFoundError):
            await kube.get("VMAgent", "vm", "vmks")

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, kube, monkeypatch):
        def read(**_):
            raise ConnectionRefusedError("connection refused")

        monkeypatch.setattr(kube, "_read_fn", lambda *_: read)

        with pytest.raises(ProviderError, match="Cannot reach API server"):
            await kube.get("Service", "ingress-nginx", "controller")

    @pytest.mark.asyncio
    async def test_malformed_body(self, kube, monkeypatch):
        monkeypatch.setattr(kube, "_read_fn", lambda *_: lambda **_: FakeHTTPResponse(b"<html>"))

        with pytest.raises(ProviderError, match="Malformed"):
            await kube.get("Ingress", "vm", "vmsingle-ingress")

    @pytest.mark.asyncio
    async def test_unknown_kind_is_terminal(self, kube):
        with pytest.raises(TerminalProviderError):
            await kube.get("Widget", "vm", "x")

    @pytest.mark.asyncio
    async def test_missing_crd_ends_poll_at_once(self, kube, monkeypatch):
        calls = 0

        def read(**_):
            nonlocal calls
            calls += 1
            e = ApiException(status=404, reason="Not Found")
            e.body = json.dumps(not_found_status({}))
            raise e

        monkeypatch.setattr(kube, "_read_fn", lambda *_: read)
        ref = ResourceRef(ResourceKind.VMSINGLE, "vm", "overwatch")
        spec = WaitSpec(ref=ref, predicate=OPERATIONAL, timeout=5.0, mode=WaitMode.POLL, interval=0.05)

        outcome = await poll_until(background(), partial(kube.get, ref.kind, ref.namespace, ref.name), spec)

        assert isinstance(outcome, TransientError)
        assert isinstance(outcome.error, TerminalProviderError)
        assert outcome.elapsed < 1.0
        assert calls == 1

    @pytest.mark.asyncio
    async def test_custom_kinds_use_custom_objects_api(self, kube):
        read = kube._read_fn(kind_info("StressChaos"), "chaos", "cpu")
        listing = kube._list_fn(kind_info("VMCluster"), "vm")

        assert read.func == kube._custom.get_namespaced_custom_object
        assert read.args == ("chaos-mesh.org", "v1alpha1", "chaos", "stresschaos", "cpu")
        assert listing.func == kube._custom.list_namespaced_custom_object
        assert listing.args == ("operator.victoriametrics.com", "v1beta1", "vm", "vmclusters")



# ─── Watch ───────────────────────────────────────────────────────────


async def drain(events) -> list:
    return [event async for event in events]


class TestEvents:
    @pytest.mark.asyncio
    async def test_parses_events_and_skips_bookmarks(self, kube):
        queue: asyncio.Queue = asyncio.Queue()
        for item in (
            line("ADDED", vmsingle("overwatch", "expanding")),
            line("BOOKMARK", {"metadata": {"resourceVersion": "12"}}),
            line("MODIFIED", vmsingle("overwatch", "Operational")),
            line("DELETED", vmsingle("overwatch", "Operational")),
            _EOF,
        ):
            queue.put_nowait(item)

        events = await drain(kube._events(queue, kind_info("VMSingle"), "vm"))

        assert [e.type for e in events] == [EventType.ADDED, EventType.MODIFIED, EventType.DELETED]
        assert events[1].name == "overwatch"
        assert events[1].state.update_status == "Operational"

    @pytest.mark.asyncio
    async def test_error_event(self, kube):
        queue: asyncio.Queue = asyncio.Queue()
        queue.put_nowait(line("ERROR", {"message": "too old resource version"}))

        with pytest.raises(ProviderError, match="too old resource version"):
            await drain(kube._events(queue, kind_info("VMSingle"), "vm"))

    @pytest.mark.asyncio
    async def test_reader_exception(self, kube):
        queue: asyncio.Queue = asyncio.Queue()
        queue.put_nowait(OSError("connection reset"))

        with pytest.raises(ProviderError, match="connection reset"):
            await drain(kube._events(queue, kind_info("Service"), "ingress-nginx"))

    @pytest.mark.asyncio
    async def test_malformed_line(self, kube):
        queue: asyncio.Queue = asyncio.Queue()
        queue.put_nowait("not json")

        with pytest.raises(ProviderError, match="Malformed watch event"):
            await drain(kube._events(queue, kind_info("Service"), "ingress-nginx"))


class TestWatch:
    @pytest.mark.asyncio
    async def test_streams_and_releases(self, kube, monkeypatch):
        resp = FakeHTTPResponse(lines=[
            line("ADDED", vmsingle("overwatch", "expanding")),
            line("MODIFIED", vmsingle("overwatch", "Operational")),
        ])
        seen: dict = {}

        def list_fn(**kwargs):
            seen.update(kwargs)
            return resp

        monkeypatch.setattr(kube, "_list_fn", lambda info, ns: list_fn)

        async with kube.watch("VMSingle", "vm", selector="overwatch") as events:
            received = await drain(events)

        assert [e.state.update_status for e in received] == ["expanding", "Operational"]
        assert seen["field_selector"] == "metadata.name=overwatch"
        assert seen["watch"] is True
        assert resp.closed
        assert resp.released

    @pytest.mark.asyncio
    async def test_open_failure(self, kube, monkeypatch):
        def list_fn(**_):
            raise ApiException(status=403, reason="Forbidden")

        monkeypatch.setattr(kube, "_list_fn", lambda *_: list_fn)

        with pytest.raises(TerminalProviderError):
            async with kube.watch("VMSingle", "vm", selector="overwatch"):
                pass

    @pytest.mark.asyncio
    async def test_server_timeout_follows_caller_deadline(self, kube, monkeypatch):
        seen: dict = {}

        def list_fn(**kwargs):
            seen.update(kwargs)
            return FakeHTTPResponse()

        monkeypatch.setattr(kube, "_list_fn", lambda *_: list_fn)

        async with kube.watch("VMSingle", "vm", selector="overwatch", timeout=1800.2) as events:
            await drain(events)

        assert seen["timeout_seconds"] == 1802

    @pytest.mark.asyncio
    async def test_server_timeout_defaults_without_deadline(self, kube, monkeypatch):
        seen: dict = {}

        def list_fn(**kwargs):
            seen.update(kwargs)
            return FakeHTTPResponse()

        monkeypatch.setattr(kube, "_list_fn", lambda *_: list_fn)

        async with kube.watch("VMSingle", "vm") as events:
            await drain(events)

        assert seen["timeout_seconds"] == DEFAULT_WATCH_TIMEOUT
        assert "field_selector" not in seen

    @pytest.mark.asyncio
    async def test_response_released_when_open_outlives_deadline(self, kube, monkeypatch):
        resp = FakeHTTPResponse(lines=[line("ADDED", vmsingle("overwatch", "Operational"))])

        def list_fn(**_):
            time.sleep(0.3)
            return resp

        monkeypatch.setattr(kube, "_list_fn", lambda *_: list_fn)
        spec = WaitSpec(ref=ResourceRef(ResourceKind.VMSINGLE, "vm", "overwatch"), predicate=OPERATIONAL, timeout=0.05)

        outcome = await watch_until(background(), kube, spec)

        assert isinstance(outcome, TimedOut)
        assert not resp.closed
        await asyncio.sleep(0.5)
        assert resp.closed
        assert resp.released
