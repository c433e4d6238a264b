from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

LOGGER = logging.getLogger("crossbench.benchmark.charts")

sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 150
plt.rcParams["font.size"] = 10
plt.rcParams["axes.labelsize"] = 11
plt.rcParams["axes.titlesize"] = 13
plt.rcParams["legend.fontsize"] = 9

PAIR_COLORS = ["#2E86AB", "#A23B72", "#F18F01", "#C73E1D", "#6A994E", "#808080"]


def render_throughput_charts(
    df: pd.DataFrame,
    output_dir: Path,
    title: str,
) -> list[Path]:
    """Render per-payload heatmaps and a throughput-vs-payload line chart."""
    if df.empty:
        LOGGER.warning("No results available; skipping charts")
        return []

    output_dir.mkdir(parents=True, exist_ok=True)
    paths: list[Path] = []

    for payload_bytes in sorted(df["payload_bytes"].unique()):
        subset = df[df["payload_bytes"] == payload_bytes]
        chart_path = output_dir / f"throughput_heatmap_{int(payload_bytes)}.png"
        _render_heatmap(subset, chart_path, f"{title} ({payload_bytes / 1024.0:.1f} KiB)")
        paths.append(chart_path)

    line_path = output_dir / "throughput_by_payload.png"
    _render_line_chart(df, line_path, title)
    paths.append(line_path)

    for path in paths:
        LOGGER.info("Rendered chart %s", path)
    return paths


def _render_heatmap(df: pd.DataFrame, chart_path: Path, title: str) -> None:
    """Servers as rows, clients as columns, MiB/s in each cell."""
    pivot = df.pivot_table(
        index="server", columns="client", values="mib_per_s", aggfunc="mean"
    ).sort_index(axis=0).sort_index(axis=1)

    data = pivot.to_numpy(dtype=float)

    # Missing cells are combinations that failed; leave them blank.
    fig, ax = plt.subplots(figsize=(6, 4.5))
    sns.heatmap(
        data,
        mask=np.isnan(data),
        annot=True,
        fmt=".1f",
        xticklabels=list(pivot.columns),
        yticklabels=list(pivot.index),
        cmap="YlOrRd",
        cbar_kws={"label": "Throughput (MiB/s)"},
        ax=ax,
    )
    ax.set_xlabel("Client", fontweight="semibold")
    ax.set_ylabel("Server", fontweight="semibold")
    ax.set_title(title, fontweight="bold", pad=15)

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)


def _render_line_chart(df: pd.DataFrame, chart_path: Path, title: str) -> None:
    fig, ax = plt.subplots(figsize=(10, 6))

    pairs = df.groupby(["server", "client"], sort=True)
    for index, ((server, client), group) in enumerate(pairs):
        group = group.sort_values("payload_kib")
        ax.plot(
            group["payload_kib"],
            group["mib_per_s"],
            marker="o",
            linewidth=2.0,
            markersize=6,
            color=PAIR_COLORS[index % len(PAIR_COLORS)],
            label=f"{server} server / {client} client",
        )

    ax.set_xscale("log")
    ax.set_xlabel("Payload (KiB)", fontweight="semibold")
    ax.set_ylabel("Throughput (MiB/s)", fontweight="semibold")
    ax.set_title(title, fontweight="bold", pad=15)
    ax.grid(True, alpha=0.3, linestyle="--")
    ax.legend(loc="best", frameon=True)

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
