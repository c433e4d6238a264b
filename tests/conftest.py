import pytest

from crossbench.benchmarks.config import MatrixPlan


@pytest.fixture()
def small_plan():
    return MatrixPlan(label="unit", payload_sizes=(1024, 4096), message_count=10)
