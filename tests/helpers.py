"""Local aiohttp server standing in for the public measurement endpoints."""

import asyncio
import unittest

from aiohttp import web
from aiohttp.test_utils import TestServer

from probe.endpoints import Endpoints

_CHUNK = b"\x00" * (64 * 1024)


def _closing(request: web.Request) -> bool:
    transport = request.transport
    return transport is None or transport.is_closing()


class FakeClock:
    """Manually driven clock; advances by *step* on every read."""

    def __init__(self, now: float = 0.0, step: float = 0.0) -> None:
        self.now = now
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


class LocalSpeedServer:
    """
    Routes::

        GET  /ping          204, empty body
        GET  /stall         holds the request until the client goes away
        GET  /down          streams ``?bytes=N`` zero bytes
        GET  /down-forever  never ends the body
        GET  /down-500      server error
        POST /up            reads the body, 200
        POST /up-slow       reads the body, answers after 150 ms
        POST /up-stall      reads the body, never answers
        POST /up-500        server error
    """

    def __init__(self) -> None:
        self.pings = 0
        self.download_queries = []
        self.uploads = []

        self.app = web.Application(client_max_size=16 * 1024 * 1024)
        self.app.router.add_get("/ping", self._ping)
        self.app.router.add_get("/stall", self._stall)
        self.app.router.add_get("/down", self._download)
        self.app.router.add_get("/down-forever", self._download_forever)
        self.app.router.add_get("/down-500", self._error)
        self.app.router.add_post("/up", self._upload)
        self.app.router.add_post("/up-slow", self._upload_slow)
        self.app.router.add_post("/up-stall", self._stall)
        self.app.router.add_post("/up-500", self._error)
        self.server = TestServer(self.app)

    async def start(self) -> None:
        await self.server.start_server()

    async def close(self) -> None:
        await self.server.close()

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    def endpoints(self, ping: str = "/ping", download: str = "/down", upload: str = "/up") -> Endpoints:
        return Endpoints(
            ping_url=self.url(ping),
            download_url=self.url(download),
            upload_url=self.url(upload),
        )

    # -- Handlers -----------------------------------------------------------

    async def _ping(self, request: web.Request) -> web.Response:
        self.pings += 1
        return web.Response(status=204)

    async def _stall(self, request: web.Request) -> web.Response:
        await request.read()
        for _ in range(200):
            if _closing(request):
                break
            await asyncio.sleep(0.05)
        return web.Response(text="late")

    async def _download(self, request: web.Request) -> web.StreamResponse:
        self.download_queries.append(dict(request.query))
        size = int(request.query.get("bytes", "0"))
        resp = web.StreamResponse()
        resp.content_length = size
        await resp.prepare(request)
        sent = 0
        while sent < size:
            n = min(len(_CHUNK), size - sent)
            await resp.write(_CHUNK[:n])
            sent += n
        await resp.write_eof()
        return resp

    async def _download_forever(self, request: web.Request) -> web.StreamResponse:
        self.download_queries.append(dict(request.query))
        resp = web.StreamResponse()
        await resp.prepare(request)
        while not _closing(request):
            try:
                await resp.write(_CHUNK)
            except ConnectionResetError:
                break
            await asyncio.sleep(0.01)
        return resp

    async def _error(self, request: web.Request) -> web.Response:
        await request.read()
        return web.Response(status=500, text="boom")

    async def _upload(self, request: web.Request) -> web.Response:
        body = await request.read()
        self.uploads.append((len(body), request.query.get("cachebust")))
        return web.Response(text="ok")

    async def _upload_slow(self, request: web.Request) -> web.Response:
        body = await request.read()
        await asyncio.sleep(0.15)
        self.uploads.append((len(body), request.query.get("cachebust")))
        return web.Response(text="ok")


class LocalServerTestCase(unittest.IsolatedAsyncioTestCase):
    """Starts a fresh ``LocalSpeedServer`` around every test."""

    async def asyncSetUp(self) -> None:
        self.server = LocalSpeedServer()
        await self.server.start()

    async def asyncTearDown(self) -> None:
        await self.server.close()
