from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from ..client import REQUEST_TIMEOUT_S_DEFAULT
from ..server import STARTUP_TIMEOUT_S_DEFAULT
from .charts import render_throughput_charts
from .config import IMPLEMENTATIONS, MESSAGE_COUNT, PAYLOAD_SIZES, Impl, MatrixPlan
from .runner import MatrixOutcome, MatrixRunner

LOGGER = logging.getLogger("crossbench.benchmark")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cross-implementation throughput matrix")
    parser.add_argument(
        "--servers",
        default=os.environ.get(
            "BENCHMARK_SERVERS", ",".join(impl.value for impl in IMPLEMENTATIONS)
        ),
        help="Comma-separated server implementations",
    )
    parser.add_argument(
        "--clients",
        default=os.environ.get(
            "BENCHMARK_CLIENTS", ",".join(impl.value for impl in IMPLEMENTATIONS)
        ),
        help="Comma-separated client implementations",
    )
    parser.add_argument(
        "--payload-sizes",
        default=os.environ.get(
            "BENCHMARK_PAYLOAD_SIZES", ",".join(str(size) for size in PAYLOAD_SIZES)
        ),
        help="Comma-separated payload sizes in bytes",
    )
    parser.add_argument(
        "--messages",
        type=int,
        default=os.environ.get("BENCHMARK_MESSAGES", str(MESSAGE_COUNT)),
        help="Messages sent per combination",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=os.environ.get("BENCHMARK_WORKERS", "1"),
        help="Combinations run concurrently",
    )
    parser.add_argument(
        "--client-timeout",
        type=float,
        default=REQUEST_TIMEOUT_S_DEFAULT,
        help="Per-request client timeout in seconds",
    )
    parser.add_argument(
        "--startup-timeout",
        type=float,
        default=STARTUP_TIMEOUT_S_DEFAULT,
        help="Seconds a server may take to become ready",
    )
    parser.add_argument("--label", default=None, help="Label shown in the summary title")
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("BENCHMARK_OUTPUT_DIR"),
        help="Directory to store benchmark artefacts (CSV, charts, manifest)",
    )
    parser.add_argument(
        "--stop-on-failure",
        action="store_true",
        help="Do not start new combinations after the first failure",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the planned combinations without executing them",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("BENCHMARK_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    args = parser.parse_args(argv)

    try:
        args.plan = build_plan(args)
    except ValueError as exc:
        parser.error(str(exc))
    if args.workers < 1:
        parser.error("--workers must be >= 1")
    return args


def build_plan(args: argparse.Namespace) -> MatrixPlan:
    sizes = []
    for item in _split(args.payload_sizes):
        try:
            sizes.append(int(item))
        except ValueError:
            raise ValueError(f"invalid payload size {item!r}") from None

    return MatrixPlan(
        label=args.label,
        servers=tuple(Impl.parse(item) for item in _split(args.servers)),
        clients=tuple(Impl.parse(item) for item in _split(args.clients)),
        payload_sizes=tuple(sizes),
        message_count=args.messages,
    ).validate()


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    plan: MatrixPlan = args.plan
    if args.dry_run:
        _print_plan(plan)
        return 0

    runner = MatrixRunner(
        plan,
        client_timeout=args.client_timeout,
        startup_timeout=args.startup_timeout,
    )
    LOGGER.info(
        "Executing %d combinations with %d worker(s)", len(plan), args.workers
    )
    outcome = runner.run_all(workers=args.workers, stop_on_failure=args.stop_on_failure)
    runner.print_summary()

    if args.output_dir:
        _write_artefacts(runner, outcome, Path(args.output_dir))

    for failure in outcome.failures:
        LOGGER.error("FAILED %s", failure.describe())
    if outcome.skipped:
        LOGGER.warning("%d combination(s) skipped after a failure", outcome.skipped)
    return 0 if outcome.ok else 1


def _write_artefacts(runner: MatrixRunner, outcome: MatrixOutcome, output_dir: Path) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    LOGGER.info("Benchmark output directory: %s", output_dir)

    df = runner.store.build_dataframe()
    csv_path = output_dir / "results.csv"
    df.to_csv(csv_path, index=False)
    LOGGER.info("Saved %d results to %s", len(df), csv_path)

    label = runner.summary_label()
    chart_paths = render_throughput_charts(df, output_dir, f"Throughput ({label})")

    manifest = {
        "label": label,
        "message_count": runner.plan.message_count,
        "results": len(df),
        "failures": [failure.describe() for failure in outcome.failures],
        "release_failures": [failure.describe() for failure in outcome.release_failures],
        "skipped": outcome.skipped,
        "charts": [str(path) for path in chart_paths],
    }
    manifest_path = output_dir / "benchmark_manifest.json"
    with open(manifest_path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2)
    LOGGER.info("Benchmark manifest written to %s", manifest_path)


def _print_plan(plan: MatrixPlan) -> None:
    print(f"Matrix: {plan.label or 'default'} ({len(plan)} combinations, {plan.message_count} messages each)")
    for combination in plan:
        print(f"  - {combination.label}")


if __name__ == "__main__":
    sys.exit(main())
