from __future__ import annotations

import enum
import itertools
from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence


class Impl(enum.Enum):
    """Known server/client implementations. The value doubles as the report label."""

    STDLIB = "stdlib"  # http.server / http.client
    ENCODE = "encode"  # uvicorn / httpx

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, label: str) -> "Impl":
        try:
            return cls(label.strip().lower())
        except ValueError:
            known = ", ".join(impl.value for impl in cls)
            raise ValueError(f"unknown implementation {label!r} (known: {known})") from None


MESSAGE_COUNT = 1_000
SIZE_5KB = 5 * 1024
SIZE_50KB = 50 * 1024
SIZE_500KB = 500 * 1024
SIZE_1MB = 1024 * 1024

IMPLEMENTATIONS: tuple[Impl, ...] = (Impl.STDLIB, Impl.ENCODE)
PAYLOAD_SIZES: tuple[int, ...] = (SIZE_5KB, SIZE_50KB, SIZE_500KB, SIZE_1MB)

DEFAULT_PLAN_LABEL = "crossbench"


@dataclass(frozen=True)
class Combination:
    """One server/client/payload-size cell of the matrix."""

    server: Impl
    client: Impl
    payload_bytes: int

    @property
    def label(self) -> str:
        return f"{self.server} server <-> {self.client} client [{self.payload_bytes} bytes]"


def combinations(
    servers: Iterable[Impl] = IMPLEMENTATIONS,
    clients: Iterable[Impl] = IMPLEMENTATIONS,
    payload_sizes: Iterable[int] = PAYLOAD_SIZES,
) -> Iterator[Combination]:
    """Yield the server-major cartesian product of the three axes."""

    for server, client, size in itertools.product(
        tuple(servers), tuple(clients), tuple(payload_sizes)
    ):
        yield Combination(server=server, client=client, payload_bytes=size)


@dataclass(frozen=True)
class MatrixPlan:
    """The axes and workload shape shared by every combination of a run."""

    label: str | None = None
    servers: Sequence[Impl] = IMPLEMENTATIONS
    clients: Sequence[Impl] = IMPLEMENTATIONS
    payload_sizes: Sequence[int] = PAYLOAD_SIZES
    message_count: int = MESSAGE_COUNT

    def combinations(self) -> Iterator[Combination]:
        return combinations(self.servers, self.clients, self.payload_sizes)

    def __iter__(self) -> Iterator[Combination]:
        return self.combinations()

    def __len__(self) -> int:
        return len(self.servers) * len(self.clients) * len(self.payload_sizes)

    def validate(self) -> "MatrixPlan":
        for name, axis in (
            ("servers", self.servers),
            ("clients", self.clients),
            ("payload_sizes", self.payload_sizes),
        ):
            if not axis:
                raise ValueError(f"MatrixPlan.{name} must not be empty")
            if len(set(axis)) != len(axis):
                raise ValueError(f"MatrixPlan.{name} contains duplicates")
        if any(size <= 0 for size in self.payload_sizes):
            raise ValueError("MatrixPlan payload sizes must be > 0")
        if self.message_count <= 0:
            raise ValueError("MatrixPlan.message_count must be > 0")
        return self


def default_matrix_plan(label: str | None = None) -> MatrixPlan:
    """Return the 2 x 2 x 4 matrix with the default message count."""

    return MatrixPlan(label=label)
