from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from importlib.metadata import PackageNotFoundError, version
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, Query, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from ..loaders.base import Session
from ..service import HistoryService
from .models import InfoResponse, MessageResponse, SessionResponse

logger = logging.getLogger(__name__)

CONNECTED_FRAME = ": connected\n\n"
KEEPALIVE_FRAME = ": keep-alive\n\n"
SESSIONS_FRAME = "event: sessions\ndata: updated\n\n"
DEFAULT_KEEPALIVE_SECONDS = 15.0

_ALLOWED_NETWORKS = tuple(
    ipaddress.ip_network(network)
    for network in (
        "127.0.0.0/8",
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "169.254.0.0/16",
        "::1/128",
        "fe80::/10",
        "fc00::/7",
    )
)


def is_allowed_address(host: str | None) -> bool:
    """True for loopback, RFC1918 private, link-local and IPv6 unique-local hosts."""
    if not host:
        return False
    try:
        address = ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    return any(address in network for network in _ALLOWED_NETWORKS)


class LocalNetworkMiddleware:
    """Rejects requests from outside the local network before routing."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            client = scope.get("client")
            host = client[0] if client else None
            if not is_allowed_address(host):
                logger.warning(f"Rejected request from {host} to {scope.get('path')}")
                response = JSONResponse({"detail": "Forbidden"}, status_code=403)
                await response(scope, receive, send)
                return
        await self.app(scope, receive, send)


class SessionBroadcaster:
    """Fans "sessions changed" markers out to every open event stream."""

    def __init__(self, max_pending: int = 16) -> None:
        self.max_pending = max_pending
        self._queues: set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_pending)
        self._queues.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._queues.discard(queue)

    def publish(self) -> None:
        for queue in list(self._queues):
            try:
                queue.put_nowait(True)
            except asyncio.QueueFull:
                # an undelivered marker already tells the client to re-pull
                pass

    def close(self) -> None:
        for queue in list(self._queues):
            while queue.full():
                queue.get_nowait()
            queue.put_nowait(None)


async def session_events(
    broadcaster: SessionBroadcaster,
    keepalive_interval: float = DEFAULT_KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    queue = broadcaster.subscribe()
    try:
        yield CONNECTED_FRAME
        while True:
            try:
                item = await asyncio.wait_for(queue.get(), timeout=keepalive_interval)
            except asyncio.TimeoutError:
                yield KEEPALIVE_FRAME
                continue
            if item is None:
                break
            yield SESSIONS_FRAME
    finally:
        broadcaster.unsubscribe(queue)


def _parse_epoch(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def filter_sessions(
    service: HistoryService,
    query: str = "",
    project: str = "",
    since: float | None = None,
    until: float | None = None,
) -> list[Session]:
    sessions = service.search(query) if query else service.get_all_sessions()
    project = project.lower()
    results = []
    for session in sessions:
        if project and project not in session.project_path.lower():
            continue
        timestamp = session.timestamp.timestamp()
        if since is not None and timestamp < since:
            continue
        if until is not None and timestamp > until:
            continue
        results.append(session)
    return results


def _package_version() -> str:
    try:
        return version("claude-code-history")
    except PackageNotFoundError:
        return "unknown"


def create_app(
    service: HistoryService,
    broadcaster: SessionBroadcaster | None = None,
    port: int = 8000,
    keepalive_interval: float = DEFAULT_KEEPALIVE_SECONDS,
) -> FastAPI:
    app = FastAPI(title="Claude Code History")
    app.add_middleware(LocalNetworkMiddleware)
    app.state.service = service
    app.state.broadcaster = broadcaster or SessionBroadcaster()
    app.state.port = port
    service.subscribe(app.state.broadcaster.publish)

    @app.get("/api/sessions", response_model=list[SessionResponse])
    async def list_sessions(
        response: Response,
        q: str | None = Query(None),
        project: str | None = Query(None),
        since: str | None = Query(None),
        until: str | None = Query(None),
    ) -> list[SessionResponse]:
        response.headers["Cache-Control"] = "no-store"
        sessions = filter_sessions(
            app.state.service,
            query=(q or "").strip(),
            project=(project or "").strip(),
            since=_parse_epoch(since),
            until=_parse_epoch(until),
        )
        return [SessionResponse.from_session(session) for session in sessions]

    @app.get("/api/sessions/{session_id}/messages", response_model=list[MessageResponse])
    async def get_messages(session_id: str, response: Response) -> list[MessageResponse]:
        response.headers["Cache-Control"] = "no-store"
        messages = app.state.service.get_messages(session_id)
        return [MessageResponse.from_message(message) for message in messages]

    @app.get("/api/stream")
    async def stream() -> StreamingResponse:
        return StreamingResponse(
            session_events(app.state.broadcaster, keepalive_interval),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-store", "Connection": "keep-alive"},
        )

    @app.get("/api/info", response_model=InfoResponse)
    async def info() -> InfoResponse:
        return InfoResponse(
            version=_package_version(),
            hostname=socket.gethostname(),
            port=app.state.port,
        )

    return app


def _bind_socket(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


class GatewayServer:
    """Runs the FastAPI app with uvicorn inside the current event loop.

    Bind failures are recorded rather than raised; the server simply stays
    stopped.
    """

    def __init__(self, app: FastAPI, host: str, port: int) -> None:
        self.app = app
        self.host = host
        self.port = port
        self.last_start_error: Optional[BaseException] = None
        self._server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def status_description(self) -> str:
        if self.last_start_error is not None:
            return f"Failed to start: {self.last_start_error}"
        return f"Running on :{self.port}" if self.is_running else "Stopped"

    async def start(self) -> bool:
        if self.is_running:
            return True
        self.last_start_error = None
        try:
            sock = _bind_socket(self.host, self.port)
        except OSError as e:
            self.last_start_error = e
            logger.error(f"Cannot listen on {self.host}:{self.port}: {e}")
            return False

        config = uvicorn.Config(
            self.app, log_level="warning", lifespan="off", timeout_graceful_shutdown=3
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._serve(self._server, sock))
        logger.info(f"Gateway listening on {self.host}:{self.port}")
        return True

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def stop(self) -> None:
        broadcaster = self.app.state.broadcaster
        self.app.state.service.unsubscribe(broadcaster.publish)
        broadcaster.close()
        if self._server is not None:
            self._server.should_exit = True
        if self._task is not None:
            await self._task
        self._server = None
        self._task = None
        logger.info("Gateway stopped")

    async def _serve(self, server: uvicorn.Server, sock: socket.socket) -> None:
        try:
            await server.serve(sockets=[sock])
        except Exception as e:
            self.last_start_error = e
            logger.error(f"Gateway error: {e}")
        finally:
            sock.close()


async def run_gateway(service: HistoryService, host: str, port: int, watch: bool = True) -> GatewayServer:
    """Start the service and serve HTTP until the server exits."""
    await service.start(watch=watch)
    app = create_app(service, port=port)
    gateway = GatewayServer(app, host, port)
    try:
        if await gateway.start():
            await gateway.wait()
    finally:
        try:
            await gateway.stop()
        finally:
            await service.stop()
    return gateway
