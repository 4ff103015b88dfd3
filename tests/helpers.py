"""Shared fixtures: a local stand-in for the Cloudflare speed endpoints."""

import asyncio
import hashlib
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import aiohttp
from aiohttp import web
from aiohttp.test_utils import TestServer


@dataclass
class RecordedRequest:
    method: str
    path: str
    query: Dict[str, str]
    body_length: int = 0
    body_digest: str = ""


@dataclass
class FakeSpeedServer:
    """
    Serves ``/__down``, ``/__up`` and ``/meta`` like speed.cloudflare.com.

    ``fail_plan`` maps a request ordinal (1-based, per path) to an HTTP
    status to return instead of the normal reply.  Requests for a size in
    ``stall_sizes`` hang until ``release`` is set.
    """

    fail_plan: Dict[str, Dict[int, int]] = field(default_factory=dict)
    stall_sizes: Sequence[int] = ()
    meta: Optional[object] = None
    meta_status: int = 200
    meta_raw: Optional[bytes] = None
    requests: List[RecordedRequest] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.release = asyncio.Event()
        self._counts: Dict[str, int] = {}
        self._server: Optional[TestServer] = None

    # -- Lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        app = web.Application(client_max_size=32 * 1024 * 1024)
        app.router.add_get("/__down", self._down)
        app.router.add_post("/__up", self._up)
        app.router.add_get("/meta", self._meta)
        self._server = TestServer(app)
        await self._server.start_server()

    async def close(self) -> None:
        self.release.set()
        if self._server is not None:
            await self._server.close()

    def url(self, path: str) -> str:
        assert self._server is not None
        return str(self._server.make_url(path))

    # -- Inspection ---------------------------------------------------------

    def requests_for(self, path: str, size: Optional[int] = None) -> List[RecordedRequest]:
        return [
            r for r in self.requests
            if r.path == path and (size is None or r.query.get("bytes") == str(size))
        ]

    # -- Handlers -----------------------------------------------------------

    def _planned_failure(self, path: str) -> Optional[int]:
        self._counts[path] = self._counts.get(path, 0) + 1
        return self.fail_plan.get(path, {}).get(self._counts[path])

    async def _down(self, request: web.Request) -> web.Response:
        size = int(request.query.get("bytes", "0"))
        self.requests.append(RecordedRequest("GET", "/__down", dict(request.query)))

        status = self._planned_failure("/__down")
        if status is not None:
            return web.Response(status=status, text="planned failure")

        if size in self.stall_sizes:
            try:
                await asyncio.wait_for(self.release.wait(), timeout=10)
            except asyncio.TimeoutError:
                pass

        return web.Response(body=b"\0" * size, content_type="application/octet-stream")

    async def _up(self, request: web.Request) -> web.Response:
        body = await request.read()
        self.requests.append(RecordedRequest(
            "POST", "/__up", dict(request.query),
            body_length=len(body),
            body_digest=hashlib.sha256(body).hexdigest(),
        ))

        status = self._planned_failure("/__up")
        if status is not None:
            return web.Response(status=status, text="planned failure")
        return web.Response(text="ok")

    async def _meta(self, request: web.Request) -> web.Response:
        self.requests.append(RecordedRequest("GET", "/meta", dict(request.query)))
        if self.meta_raw is not None:
            return web.Response(body=self.meta_raw, status=self.meta_status,
                                content_type="application/json")
        return web.json_response(self.meta or {}, status=self.meta_status)


class ScriptedClock:
    """
    Fake ``perf_counter`` for probes that succeed.

    Each probe reads the clock twice; the first read returns 0 and the
    second returns the next scripted duration, so elapsed times are exact.
    """

    def __init__(self, durations: Sequence[float]) -> None:
        self._durations = list(durations)
        self._started = False

    def __call__(self) -> float:
        if not self._started:
            self._started = True
            return 0.0
        self._started = False
        return self._durations.pop(0)


async def unused_port_url(path: str) -> str:
    """A URL on localhost nothing is listening on."""
    server = TestServer(web.Application())
    await server.start_server()
    url = str(server.make_url(path))
    await server.close()
    return url


def new_session() -> aiohttp.ClientSession:
    return aiohttp.ClientSession()
