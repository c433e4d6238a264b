"""Tests for the summary reporter."""

import io

from crossbench.benchmarks.collector import Result
from crossbench.benchmarks.config import Impl
from crossbench.benchmarks.report import (
    HEADER,
    RULE,
    format_row,
    format_summary,
    print_summary,
    sort_results,
)


def result(server, client, payload_bytes, seconds=0.25, mib_per_s=12.345):
    return Result(
        server=server,
        client=client,
        messages=1000,
        payload_bytes=payload_bytes,
        seconds=seconds,
        mib_per_s=mib_per_s,
    )


class TestSortResults:
    def test_server_then_payload(self):
        # "encode" sorts before "stdlib".
        b2 = result(Impl.STDLIB, Impl.STDLIB, 2)
        a1 = result(Impl.ENCODE, Impl.STDLIB, 1)
        a2 = result(Impl.ENCODE, Impl.STDLIB, 2)
        assert sort_results([b2, a1, a2]) == [a1, a2, b2]

    def test_client_breaks_ties_before_payload(self):
        s_s_big = result(Impl.STDLIB, Impl.STDLIB, 1024)
        s_e_small = result(Impl.STDLIB, Impl.ENCODE, 1)
        s_s_small = result(Impl.STDLIB, Impl.STDLIB, 1)
        assert sort_results([s_s_big, s_s_small, s_e_small]) == [
            s_e_small,
            s_s_small,
            s_s_big,
        ]

    def test_is_independent_of_input_order(self):
        items = [
            result(server, client, size)
            for server in Impl
            for client in Impl
            for size in (3, 1, 2)
        ]
        assert sort_results(items) == sort_results(reversed(items))


class TestFormat:
    def test_row_precision(self):
        row = format_row(result(Impl.STDLIB, Impl.ENCODE, 5 * 1024, seconds=1.23456, mib_per_s=3.14159))
        assert row == "  stdlib   encode        5.0       1000        1.235     3.14"

    def test_summary_layout(self):
        lines = format_summary(
            [result(Impl.STDLIB, Impl.STDLIB, 2048), result(Impl.ENCODE, Impl.ENCODE, 1024)],
            "ThroughputSuite",
        )
        assert lines[0] == RULE
        assert lines[1] == " Integration test throughput summary (ThroughputSuite)"
        assert lines[2] == HEADER
        assert set(lines[3]) == {"-"}
        assert lines[4].split()[:3] == ["encode", "encode", "1.0"]
        assert lines[5].split()[:3] == ["stdlib", "stdlib", "2.0"]
        assert lines[-1] == RULE
        assert len(lines) == 7

    def test_rows_parse_back(self):
        lines = format_summary([result(Impl.ENCODE, Impl.STDLIB, 1024 * 1024, 2.5, 400.0)], "x")
        server, client, kib, messages, seconds, mbps = lines[4].split()
        assert (server, client) == ("encode", "stdlib")
        assert float(kib) == 1024.0
        assert int(messages) == 1000
        assert float(seconds) == 2.5
        assert float(mbps) == 400.0


class TestPrintSummary:
    def test_empty_results_write_nothing(self):
        stream = io.StringIO()
        print_summary([], "empty", stream=stream)
        assert stream.getvalue() == ""

    def test_empty_results_do_not_touch_stdout(self, capsys):
        print_summary(iter(()), "empty")
        assert capsys.readouterr().out == ""

    def test_writes_to_stdout_by_default(self, capsys):
        print_summary([result(Impl.STDLIB, Impl.STDLIB, 1024)], "suite")
        out = capsys.readouterr().out
        assert "Integration test throughput summary (suite)" in out
        assert out.endswith(RULE + "\n")
