from __future__ import annotations

import contextlib
import logging
import threading
from typing import Any, Callable, Dict

from ..client import (
    REQUEST_TIMEOUT_S_DEFAULT,
    HttpxThroughputClient,
    StdlibThroughputClient,
    ThroughputClient,
)
from ..server import (
    DEFAULT_HOST,
    STARTUP_TIMEOUT_S_DEFAULT,
    StartupFailure,
    StdlibUploadServer,
    UvicornUploadServer,
)
from .config import Impl

LOGGER = logging.getLogger("crossbench.benchmark.lifecycle")

ServerFactory = Callable[[str], Any]
ClientFactory = Callable[[str, int, "float | None"], ThroughputClient]


class ReleaseFailure(Exception):
    """Raised when a server handle's closer fails.

    ``result`` carries the measurement that was already recorded before the
    release step, if any; a failed release never invalidates it.
    """

    result: Any = None


class ServerHandle(contextlib.AbstractContextManager["ServerHandle"]):
    """A running server bound to its address, released at most once."""

    def __init__(
        self,
        host: str,
        port: int,
        closer: Callable[[], None] | None,
        server: Any = None,
    ) -> None:
        self.host = host
        self.port = port
        self.server = server
        self._closer = closer
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            closer, self._closer = self._closer, None
        if closer is None:
            return
        try:
            closer()
        except Exception as exc:
            raise ReleaseFailure(
                f"failed to release server at {self.host}:{self.port}"
            ) from exc

    def __enter__(self) -> "ServerHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is None:
            self.close()
            return
        # Never let a release error replace the in-flight exception.
        try:
            self.close()
        except ReleaseFailure:
            LOGGER.error(
                "Release of %s:%d failed while handling %s",
                self.host,
                self.port,
                exc_type.__name__,
                exc_info=True,
            )

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"ServerHandle({self.host}:{self.port}, {state})"


SERVER_FACTORIES: Dict[Impl, ServerFactory] = {
    Impl.STDLIB: StdlibUploadServer,
    Impl.ENCODE: UvicornUploadServer,
}

CLIENT_FACTORIES: Dict[Impl, ClientFactory] = {
    Impl.STDLIB: lambda host, port, timeout: StdlibThroughputClient(
        host, port, timeout=timeout
    ),
    Impl.ENCODE: lambda host, port, timeout: HttpxThroughputClient(
        f"http://{host}:{port}", timeout=timeout
    ),
}


def start_server(
    impl: Impl,
    host: str = DEFAULT_HOST,
    startup_timeout: float = STARTUP_TIMEOUT_S_DEFAULT,
) -> ServerHandle:
    factory = SERVER_FACTORIES.get(impl)
    if factory is None:
        raise ValueError(f"no server implementation registered for {impl!r}")

    server = factory(host)
    server.start(timeout=startup_timeout)
    if server.port <= 0:
        server.stop()
        raise StartupFailure(f"{impl} server did not report a bound port")
    LOGGER.debug("Started %s server on %s:%d", impl, server.host, server.port)
    return ServerHandle(server.host, server.port, server.stop, server=server)


def create_client(
    impl: Impl,
    host: str,
    port: int,
    timeout: float | None = REQUEST_TIMEOUT_S_DEFAULT,
) -> ThroughputClient:
    factory = CLIENT_FACTORIES.get(impl)
    if factory is None:
        raise ValueError(f"no client implementation registered for {impl!r}")
    return factory(host, port, timeout)
