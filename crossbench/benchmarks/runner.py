from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, TextIO

from ..client import REQUEST_TIMEOUT_S_DEFAULT, ThroughputClient
from ..server import STARTUP_TIMEOUT_S_DEFAULT, StartupFailure
from . import lifecycle
from .collector import Result, ResultStore
from .config import Combination, Impl, MatrixPlan, default_matrix_plan
from .lifecycle import ReleaseFailure, ServerHandle
from .report import print_summary

LOGGER = logging.getLogger("crossbench.benchmark")

BYTES_PER_MIB = 1024.0 * 1024.0


def compute_throughput(message_count: int, payload_bytes: int, seconds: float) -> float:
    """MiB/s for ``message_count`` messages of ``payload_bytes``; 0.0 when ``seconds <= 0``."""

    if seconds <= 0:
        return 0.0
    total_bytes = float(message_count) * float(payload_bytes)
    return (total_bytes / BYTES_PER_MIB) / seconds


@dataclass
class TransferStatistics:
    messages: int
    payload_bytes: int
    started_at: float
    finished_at: float

    @property
    def duration_s(self) -> float:
        return self.finished_at - self.started_at

    @property
    def total_bytes(self) -> float:
        return float(self.messages) * float(self.payload_bytes)

    @property
    def throughput_mib_per_s(self) -> float:
        return compute_throughput(self.messages, self.payload_bytes, self.duration_s)


@dataclass(frozen=True)
class CombinationFailure:
    combination: Combination
    error: BaseException

    def describe(self) -> str:
        return f"{self.combination.label}: {type(self.error).__name__}: {self.error}"


@dataclass
class MatrixOutcome:
    results: list[Result] = field(default_factory=list)
    failures: list[CombinationFailure] = field(default_factory=list)
    release_failures: list[CombinationFailure] = field(default_factory=list)
    skipped: int = 0

    @property
    def ok(self) -> bool:
        return not self.failures and self.skipped == 0


class MatrixRunner:
    """Runs every combination of a :class:`MatrixPlan` and records one Result per success.

    Subclasses may override :meth:`start_server`, :meth:`create_client` and
    :meth:`summary_label` to plug in other implementations or naming.
    """

    def __init__(
        self,
        plan: MatrixPlan | None = None,
        store: ResultStore | None = None,
        *,
        client_timeout: float | None = REQUEST_TIMEOUT_S_DEFAULT,
        startup_timeout: float = STARTUP_TIMEOUT_S_DEFAULT,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.plan = (plan if plan is not None else default_matrix_plan()).validate()
        self.store = store if store is not None else ResultStore()
        self._client_timeout = client_timeout
        self._startup_timeout = startup_timeout
        self._clock = clock

    def start_server(self, impl: Impl) -> ServerHandle:
        return lifecycle.start_server(impl, startup_timeout=self._startup_timeout)

    def create_client(self, impl: Impl, host: str, port: int) -> ThroughputClient:
        return lifecycle.create_client(impl, host, port, timeout=self._client_timeout)

    def summary_label(self) -> str:
        return self.plan.label or type(self).__name__

    def run_combination(self, combination: Combination) -> Result:
        message_count = self.plan.message_count
        LOGGER.info("Running %s (messages=%d)", combination.label, message_count)

        result: Result | None = None
        try:
            with self.start_server(combination.server) as handle:
                if handle.port <= 0:
                    raise StartupFailure(
                        f"{combination.server} server port was not assigned"
                    )

                client = self.create_client(combination.client, handle.host, handle.port)
                started_at = self._clock()
                client.run(message_count, combination.payload_bytes)
                finished_at = self._clock()

                stats = TransferStatistics(
                    messages=message_count,
                    payload_bytes=combination.payload_bytes,
                    started_at=started_at,
                    finished_at=finished_at,
                )
                result = Result(
                    server=combination.server,
                    client=combination.client,
                    messages=message_count,
                    payload_bytes=combination.payload_bytes,
                    seconds=stats.duration_s,
                    mib_per_s=stats.throughput_mib_per_s,
                )
                self.store.append(result)
        except ReleaseFailure as exc:
            exc.result = result
            raise

        LOGGER.info(
            "Finished %s in %.3fs (%.2f MiB/s)",
            combination.label,
            result.seconds,
            result.mib_per_s,
        )
        return result

    def run_all(self, workers: int = 1, stop_on_failure: bool = False) -> MatrixOutcome:
        """Run the whole plan and return once every started combination has finished."""

        if workers < 1:
            raise ValueError("workers must be >= 1")

        outcome = MatrixOutcome()
        outcome_lock = threading.Lock()
        stop_event = threading.Event()

        def execute(combination: Combination) -> None:
            if stop_event.is_set():
                with outcome_lock:
                    outcome.skipped += 1
                return
            try:
                result = self.run_combination(combination)
            except ReleaseFailure as exc:
                LOGGER.warning("Server release failed after %s: %s", combination.label, exc)
                with outcome_lock:
                    if exc.result is not None:
                        outcome.results.append(exc.result)
                    outcome.release_failures.append(CombinationFailure(combination, exc))
            except Exception as exc:
                LOGGER.error("Combination %s failed: %s", combination.label, exc, exc_info=True)
                with outcome_lock:
                    outcome.failures.append(CombinationFailure(combination, exc))
                if stop_on_failure:
                    stop_event.set()
            else:
                with outcome_lock:
                    outcome.results.append(result)

        if workers == 1:
            for combination in self.plan.combinations():
                execute(combination)
        else:
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="crossbench-matrix"
            ) as executor:
                futures = [
                    executor.submit(execute, combination)
                    for combination in self.plan.combinations()
                ]
            for future in futures:
                future.result()

        LOGGER.info(
            "Matrix finished: %d results, %d failures, %d release failures, %d skipped",
            len(outcome.results),
            len(outcome.failures),
            len(outcome.release_failures),
            outcome.skipped,
        )
        return outcome

    def print_summary(self, stream: TextIO | None = None) -> None:
        print_summary(self.store.snapshot(), self.summary_label(), stream=stream)
