from __future__ import annotations

import http.client
import logging
from typing import Protocol, runtime_checkable

import httpx

from .server import UPLOAD_PATH

REQUEST_TIMEOUT_S_DEFAULT = 30.0
CONTENT_TYPE = "application/octet-stream"

LOGGER = logging.getLogger("crossbench.client")

_PATTERN = bytes(range(256))


class TransferFailure(Exception):
    """Raised when a client cannot deliver every message of a workload."""


@runtime_checkable
class ThroughputClient(Protocol):
    def run(self, message_count: int, payload_bytes: int) -> None:
        """Send ``message_count`` messages of ``payload_bytes`` each and block until delivered."""


def build_payload(size: int) -> bytes:
    if size < 0:
        raise ValueError("payload size must be >= 0")
    repeats, remainder = divmod(size, len(_PATTERN))
    return _PATTERN * repeats + _PATTERN[:remainder]


class StdlibThroughputClient:
    """Sequential uploads over one keep-alive ``http.client`` connection."""

    def __init__(
        self,
        host: str,
        port: int,
        timeout: float | None = REQUEST_TIMEOUT_S_DEFAULT,
    ) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout

    def run(self, message_count: int, payload_bytes: int) -> None:
        if message_count <= 0:
            return
        payload = build_payload(payload_bytes)
        headers = {"Content-Type": CONTENT_TYPE}
        connection = http.client.HTTPConnection(
            self._host, self._port, timeout=self._timeout
        )
        sent = 0
        try:
            for _ in range(message_count):
                connection.request("POST", UPLOAD_PATH, body=payload, headers=headers)
                response = connection.getresponse()
                response.read()
                if not 200 <= response.status < 300:
                    raise TransferFailure(
                        f"server replied {response.status} to message {sent + 1}/{message_count}"
                    )
                sent += 1
        except (OSError, http.client.HTTPException) as exc:
            raise TransferFailure(
                f"transfer to {self._host}:{self._port} failed after {sent}/{message_count} messages"
            ) from exc
        finally:
            connection.close()
        LOGGER.debug("stdlib client delivered %d x %d bytes", sent, payload_bytes)


class HttpxThroughputClient:
    """Sequential uploads through a pooled ``httpx.Client``."""

    def __init__(
        self,
        base_url: str,
        timeout: float | None = REQUEST_TIMEOUT_S_DEFAULT,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout

    def run(self, message_count: int, payload_bytes: int) -> None:
        if message_count <= 0:
            return
        payload = build_payload(payload_bytes)
        sent = 0
        try:
            with httpx.Client(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"Content-Type": CONTENT_TYPE},
            ) as client:
                for _ in range(message_count):
                    response = client.post(UPLOAD_PATH, content=payload)
                    if not response.is_success:
                        raise TransferFailure(
                            f"server replied {response.status_code} to message {sent + 1}/{message_count}"
                        )
                    sent += 1
        except httpx.HTTPError as exc:
            raise TransferFailure(
                f"transfer to {self._base_url} failed after {sent}/{message_count} messages"
            ) from exc
        LOGGER.debug("httpx client delivered %d x %d bytes", sent, payload_bytes)


__all__ = [
    "REQUEST_TIMEOUT_S_DEFAULT",
    "HttpxThroughputClient",
    "StdlibThroughputClient",
    "ThroughputClient",
    "TransferFailure",
    "build_payload",
]
