from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiohttp
from loguru import logger

# ─── Errors ──────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class HttpError(Exception):
    status: int
    body: str

    def __str__(self) -> str:
        return f"HTTP {self.status}: {self.body}"


# ─── Response ────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Response[T]:
    status: int
    data: T
    headers: dict[str, str]


# ─── Client ──────────────────────────────────────────────────────────


class HttpClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._default_headers = default_headers or {}
        self._session: aiohttp.ClientSession | None = None
        self._log = logger.bind(component="http")

    @property
    def base_url(self) -> str:
        return self._base_url

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | list[Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> tuple[int, Any, dict[str, str]]:
        session = await self._ensure_session()
        self._log.debug("{method} {path}", method=method, path=path)

        try:
            async with session.request(
                method, self._url(path), headers=self._default_headers, json=json, params=params
            ) as resp:
                return await self._parse(resp)
        except aiohttp.ClientResponseError as e:
            raise HttpError(status=e.status, body=e.message) from e
        except TimeoutError as e:
            raise HttpError(status=0, body=f"{method} {path} timed out after {self._timeout.total}s") from e
        except aiohttp.ClientError as e:
            raise HttpError(status=0, body=str(e)) from e

    async def _check(self, resp: aiohttp.ClientResponse) -> None:
        if resp.status >= 400:
            body = await resp.text()
            self._log.warning(
                "HTTP {status} from {url}: {body}",
                status=resp.status, url=str(resp.url), body=body[:500],
            )
            raise HttpError(status=resp.status, body=body)

    async def _parse(self, resp: aiohttp.ClientResponse) -> tuple[int, Any, dict[str, str]]:
        await self._check(resp)
        body = await resp.read()
        try:
            data = await resp.json(content_type=None) if body else None
        except ValueError as e:
            raise HttpError(status=0, body=f"malformed JSON from {resp.url}: {e}") from e
        return resp.status, data, dict(resp.headers)

    # ─── Typed convenience ───────────────────────────────────────────

    async def _typed[T](
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | list[Any] | None = None,
        params: dict[str, Any] | None = None,
        response_type: type[T],
    ) -> Response[T]:
        _ = response_type
        status, data, headers = await self._send(method, path, json=json, params=params)
        return Response(status=status, data=data, headers=headers)

    async def get[T](
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        response_type: type[T],
    ) -> Response[T]:
        return await self._typed("GET", path, params=params, response_type=response_type)

    async def post[T](
        self,
        path: str,
        *,
        json: dict[str, Any] | list[Any] | None = None,
        params: dict[str, Any] | None = None,
        response_type: type[T],
    ) -> Response[T]:
        return await self._typed(
            "POST", path, json=json, params=params,
            response_type=response_type,
        )

    # ─── Streaming download ──────────────────────────────────────────

    async def download(
        self,
        path: str,
        dest: Path,
        *,
        params: dict[str, Any] | None = None,
        chunk_size: int = 1 << 16,
    ) -> int:
        """Stream a response body to ``dest``; returns the number of bytes written."""
        session = await self._ensure_session()
        self._log.debug("GET {path} -> {dest}", path=path, dest=dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        try:
            async with session.get(self._url(path), headers=self._default_headers, params=params) as resp:
                await self._check(resp)
                with dest.open("wb") as f:
                    async for chunk in resp.content.iter_chunked(chunk_size):
                        f.write(chunk)
                        written += len(chunk)
        except TimeoutError as e:
            raise HttpError(status=0, body=f"GET {path} timed out after {self._timeout.total}s") from e
        except aiohttp.ClientError as e:
            raise HttpError(status=0, body=str(e)) from e
        return written

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def close(self) -> None:
        if self._session and not self._session.closed:
            self._log.debug("Closing HTTP session")
            await self._session.close()

    async def __aenter__(self) -> HttpClient:
        await self._ensure_session()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
