from __future__ import annotations

import asyncio
import logging
import socket
import threading
import time
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

import uvicorn

DEFAULT_HOST = "127.0.0.1"
UPLOAD_PATH = "/upload"
STARTUP_TIMEOUT_S_DEFAULT = 10.0
SHUTDOWN_TIMEOUT_S_DEFAULT = 10.0

LOGGER = logging.getLogger("crossbench.server")


class StartupFailure(Exception):
    """Raised when an upload server cannot bind or become ready."""


class UploadCounters:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages = 0
        self._bytes = 0

    def record(self, nbytes: int) -> None:
        with self._lock:
            self._messages += 1
            self._bytes += nbytes

    def snapshot(self) -> tuple[int, int]:
        with self._lock:
            return self._messages, self._bytes


class _UploadHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], counters: UploadCounters) -> None:
        super().__init__(address, _UploadRequestHandler)
        self.counters = counters


class _UploadRequestHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"
    server: _UploadHTTPServer

    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length") or 0)
        remaining = length
        while remaining > 0:
            chunk = self.rfile.read(min(remaining, 64 * 1024))
            if not chunk:
                break
            remaining -= len(chunk)

        if self.path != UPLOAD_PATH:
            self._reply(HTTPStatus.NOT_FOUND)
            return

        self.server.counters.record(length - remaining)
        self._reply(HTTPStatus.NO_CONTENT)

    def _reply(self, status: HTTPStatus) -> None:
        self.send_response(status)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        LOGGER.debug("%s - %s", self.address_string(), format % args)


class StdlibUploadServer:
    """Upload endpoint served by ``http.server`` on a background thread."""

    def __init__(self, host: str = DEFAULT_HOST) -> None:
        self.host = host
        self.port = 0
        self.counters = UploadCounters()
        self._httpd: _UploadHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self, timeout: float = STARTUP_TIMEOUT_S_DEFAULT) -> None:
        try:
            httpd = _UploadHTTPServer((self.host, 0), self.counters)
        except OSError as exc:
            raise StartupFailure(f"stdlib server failed to bind {self.host}") from exc

        self._httpd = httpd
        self.port = httpd.server_address[1]
        thread = threading.Thread(
            target=httpd.serve_forever,
            kwargs={"poll_interval": 0.05},
            name=f"stdlib-upload-{self.port}",
            daemon=True,
        )
        # TCPServer binds and listens in its constructor; early connects queue in the backlog.
        thread.start()
        self._thread = thread
        LOGGER.debug("stdlib upload server listening on %s:%d", self.host, self.port)

    def stop(self) -> None:
        httpd = self._httpd
        if httpd is None:
            return
        self._httpd = None
        httpd.shutdown()
        httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=SHUTDOWN_TIMEOUT_S_DEFAULT)
            self._thread = None
        LOGGER.debug("stdlib upload server on port %d stopped", self.port)


class _UploadASGIApp:
    def __init__(self, counters: UploadCounters) -> None:
        self._counters = counters

    async def __call__(self, scope: dict[str, Any], receive, send) -> None:
        if scope["type"] != "http":
            return

        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            received += len(message.get("body", b""))
            more_body = message.get("more_body", False)

        if scope["method"] == "POST" and scope["path"] == UPLOAD_PATH:
            self._counters.record(received)
            status = HTTPStatus.NO_CONTENT
        else:
            status = HTTPStatus.NOT_FOUND

        await send(
            {
                "type": "http.response.start",
                "status": int(status),
                "headers": [(b"content-length", b"0")],
            }
        )
        await send({"type": "http.response.body", "body": b""})


class UvicornUploadServer:
    """Upload endpoint served by uvicorn running a bare ASGI app on a background thread."""

    def __init__(self, host: str = DEFAULT_HOST) -> None:
        self.host = host
        self.port = 0
        self.counters = UploadCounters()
        self._server: uvicorn.Server | None = None
        self._socket: socket.socket | None = None
        self._thread: threading.Thread | None = None

    def start(self, timeout: float = STARTUP_TIMEOUT_S_DEFAULT) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, 0))
        except OSError as exc:
            sock.close()
            raise StartupFailure(f"uvicorn server failed to bind {self.host}") from exc

        self._socket = sock
        self.port = sock.getsockname()[1]
        config = uvicorn.Config(
            _UploadASGIApp(self.counters),
            log_level="warning",
            access_log=False,
            lifespan="off",
        )
        server = uvicorn.Server(config)
        self._server = server

        thread = threading.Thread(
            target=self._serve,
            args=(server, sock),
            name=f"uvicorn-upload-{self.port}",
            daemon=True,
        )
        thread.start()
        self._thread = thread

        deadline = time.monotonic() + timeout
        while not server.started:
            if not thread.is_alive():
                self.stop()
                raise StartupFailure("uvicorn server exited during startup")
            if time.monotonic() >= deadline:
                self.stop()
                raise StartupFailure(
                    f"uvicorn server not ready within {timeout:.1f} seconds"
                )
            time.sleep(0.01)
        LOGGER.debug("uvicorn upload server listening on %s:%d", self.host, self.port)

    def stop(self) -> None:
        server = self._server
        if server is None:
            return
        self._server = None
        server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=SHUTDOWN_TIMEOUT_S_DEFAULT)
            self._thread = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        LOGGER.debug("uvicorn upload server on port %d stopped", self.port)

    @staticmethod
    def _serve(server: uvicorn.Server, sock: socket.socket) -> None:
        asyncio.run(server.serve(sockets=[sock]))


__all__ = [
    "DEFAULT_HOST",
    "STARTUP_TIMEOUT_S_DEFAULT",
    "UPLOAD_PATH",
    "StartupFailure",
    "StdlibUploadServer",
    "UploadCounters",
    "UvicornUploadServer",
]
