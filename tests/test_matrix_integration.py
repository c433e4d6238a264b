"""Runs the real server x client matrix with a reduced workload."""

import io

import pytest

from crossbench.benchmarks.config import (
    IMPLEMENTATIONS,
    PAYLOAD_SIZES,
    Combination,
    MatrixPlan,
)
from crossbench.benchmarks.runner import MatrixRunner

MESSAGES = 5

PLAN = MatrixPlan(label="ThroughputMatrixIntegration", message_count=MESSAGES)


@pytest.mark.parametrize("combination", list(PLAN), ids=lambda c: c.label)
def test_combination(combination: Combination):
    runner = MatrixRunner(PLAN, client_timeout=10.0)
    result = runner.run_combination(combination)

    assert result.server is combination.server
    assert result.client is combination.client
    assert result.payload_bytes == combination.payload_bytes
    assert result.messages == MESSAGES
    assert result.seconds > 0
    assert result.mib_per_s == pytest.approx(
        (MESSAGES * combination.payload_bytes / 2**20) / result.seconds
    )


@pytest.mark.parametrize("workers", [1, 4])
def test_full_matrix_then_report(workers):
    runner = MatrixRunner(PLAN, client_timeout=10.0)
    outcome = runner.run_all(workers=workers)

    assert outcome.ok, [failure.describe() for failure in outcome.failures]
    assert len(runner.store) == len(IMPLEMENTATIONS) ** 2 * len(PAYLOAD_SIZES)

    stream = io.StringIO()
    runner.print_summary(stream)
    lines = stream.getvalue().splitlines()
    assert lines[1] == " Integration test throughput summary (ThroughputMatrixIntegration)"
    rows = [line.split() for line in lines[4:-1]]
    assert len(rows) == 16
    keys = [(row[0], row[1], float(row[2])) for row in rows]
    assert keys == sorted(keys)
    assert all(float(row[5]) >= 0 for row in rows)
