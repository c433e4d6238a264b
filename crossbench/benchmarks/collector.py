from __future__ import annotations

import threading
from dataclasses import asdict, dataclass

import pandas as pd

from .config import Impl

RESULT_COLUMNS = [
    "server",
    "client",
    "messages",
    "payload_bytes",
    "payload_kib",
    "seconds",
    "mib_per_s",
]


@dataclass(frozen=True)
class Result:
    server: Impl
    client: Impl
    messages: int
    payload_bytes: int
    seconds: float
    mib_per_s: float

    @property
    def payload_kib(self) -> float:
        return self.payload_bytes / 1024.0


class ResultStore:
    """Append-only collection of completed measurements shared by concurrent combinations.

    Appends may come from any thread. ``snapshot`` and ``build_dataframe`` are
    meant to be called once every appender has finished; the caller owns that
    ordering.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._results: list[Result] = []

    def append(self, result: Result) -> None:
        with self._lock:
            self._results.append(result)

    def snapshot(self) -> tuple[Result, ...]:
        with self._lock:
            return tuple(self._results)

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def build_dataframe(self) -> pd.DataFrame:
        rows = []
        for result in self.snapshot():
            row = asdict(result)
            row["server"] = result.server.value
            row["client"] = result.client.value
            row["payload_kib"] = result.payload_kib
            rows.append(row)

        if not rows:
            return pd.DataFrame(columns=RESULT_COLUMNS)
        return pd.DataFrame(rows, columns=RESULT_COLUMNS)
