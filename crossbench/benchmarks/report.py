from __future__ import annotations

import sys
from typing import Iterable, TextIO

from .collector import Result

RULE = "═" * 62
DASHES = "-" * 62
HEADER = "   server   client   payloadKB   messages   duration(s)   MB/s"


def sort_results(results: Iterable[Result]) -> list[Result]:
    """Order by server label, then client label, then payload size."""

    return sorted(
        results,
        key=lambda r: (r.server.value, r.client.value, r.payload_bytes),
    )


def format_row(result: Result) -> str:
    return " %7s %8s %10.1f %10d %12.3f %8.2f" % (
        result.server.value,
        result.client.value,
        result.payload_kib,
        result.messages,
        result.seconds,
        result.mib_per_s,
    )


def format_summary(results: Iterable[Result], label: str) -> list[str]:
    lines = [
        RULE,
        f" Integration test throughput summary ({label})",
        HEADER,
        DASHES,
    ]
    lines.extend(format_row(result) for result in sort_results(results))
    lines.append(RULE)
    return lines


def print_summary(
    results: Iterable[Result],
    label: str,
    stream: TextIO | None = None,
) -> None:
    results = list(results)
    if not results:
        return
    out = stream if stream is not None else sys.stdout
    for line in format_summary(results, label):
        out.write(line + "\n")
    out.flush()
