from __future__ import annotations

from pathlib import Path
from typing import Sequence

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np

from .envs.track import Track
from .genes import HIDDEN, INPUT, OUTPUT
from .genome import Genome
from .persistence import node_label


def plot_history(history: list[dict[str, float]], path: Path) -> None:
    """Per-generation curves stacked in panels sharing the generation axis."""
    if not history:
        return

    def column(key: str) -> np.ndarray:
        return np.array([h.get(key, np.nan) for h in history], dtype=float)

    g = column("generation")
    fig, (fit_ax, drive_ax, size_ax) = plt.subplots(3, 1, figsize=(10, 11), sharex=True)

    fit_ax.plot(g, column("best_fitness"), label="best fitness", linewidth=2)
    fit_ax.plot(g, column("mean_fitness"), label="mean fitness", linewidth=1.6)
    fit_ax.set_ylabel("fitness (completion^2 / ticks)")
    fit_ax.grid(True, alpha=0.3)
    fit_ax.legend()

    drive_ax.plot(g, column("best_completion"), label="best completion", color="tab:green", linewidth=2)
    drive_ax.set_ylim(0.0, 1.05)
    drive_ax.set_ylabel("track completion")
    crash_ax = drive_ax.twinx()
    crash_ax.bar(g, column("crashes"), width=0.6, alpha=0.25, color="tab:red", label="crashed drives")
    crash_ax.set_ylabel("crashes")
    drive_ax.grid(True, alpha=0.3)
    handles = drive_ax.get_legend_handles_labels()
    crash_handles = crash_ax.get_legend_handles_labels()
    drive_ax.legend(handles[0] + crash_handles[0], handles[1] + crash_handles[1], loc="upper left")

    size_ax.plot(g, column("mean_hidden_nodes"), label="mean hidden nodes", linewidth=2)
    size_ax.plot(g, column("mean_enabled_connections"), label="mean enabled connections", linewidth=2)
    size_ax.plot(g, column("champ_hidden_nodes"), label="champion hidden nodes", linestyle="--")
    size_ax.set_ylabel("controller size")
    size_ax.set_xlabel("generation")
    size_ax.grid(True, alpha=0.3)
    size_ax.legend()

    path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(path, dpi=180)
    plt.close(fig)


def node_depths(genome: Genome) -> dict[int, int]:
    """Longest enabled path from any input to each node; outputs share the last column."""
    depth = {nid: 0 for nid in genome.nodes}
    # Relax at most len(nodes) times so a stray cycle cannot spin forever.
    for _ in range(len(genome.nodes)):
        changed = False
        for conn in genome.genes():
            if not conn.enabled:
                continue
            if depth[conn.dst] < depth[conn.src] + 1:
                depth[conn.dst] = depth[conn.src] + 1
                changed = True
        if not changed:
            break

    last = max([depth[nid] for nid in genome.hidden_ids] + [0]) + 1
    for nid in genome.input_ids:
        depth[nid] = 0
    for nid in genome.output_ids:
        depth[nid] = last
    return depth


def plot_genome(genome: Genome, path: Path, title: str = "Genome Topology") -> None:
    depth = node_depths(genome)
    layers = sorted(set(depth.values()))
    layer_to_x = {layer: i for i, layer in enumerate(layers)}

    nodes_by_layer: dict[int, list[int]] = {}
    for nid, layer in depth.items():
        nodes_by_layer.setdefault(layer, []).append(nid)

    pos: dict[int, tuple[float, float]] = {}
    for layer in layers:
        ids = sorted(nodes_by_layer[layer])
        ys = np.linspace(0.1, 0.9, max(2, len(ids)))
        if len(ids) == 1:
            ys = np.array([0.5])
        for i, nid in enumerate(ids):
            pos[nid] = (layer_to_x[layer], ys[i])

    fig, ax = plt.subplots(figsize=(11, 6))

    for conn in genome.genes():
        x1, y1 = pos[conn.src]
        x2, y2 = pos[conn.dst]
        color = "#1f77b4" if conn.weight >= 0 else "#d62728"
        alpha = 0.65 if conn.enabled else 0.18
        lw = 0.7 + min(2.5, abs(conn.weight))
        ls = "-" if conn.enabled else "--"
        ax.plot([x1, x2], [y1, y2], color=color, alpha=alpha, linewidth=lw, linestyle=ls)

    kind_color = {INPUT: "#2ca02c", HIDDEN: "#9467bd", OUTPUT: "#ff7f0e"}
    for nid, node in sorted(genome.nodes.items()):
        x, y = pos[nid]
        ax.scatter([x], [y], s=160, color=kind_color.get(node.kind, "#7f7f7f"), edgecolors="black", zorder=3)
        ax.text(x, y + 0.03, node_label(node), ha="center", va="bottom", fontsize=8)

    ax.set_title(title)
    ax.set_xlabel("layer")
    ax.set_ylabel("node position")
    ax.set_xlim(-0.5, len(layers) - 0.5)
    ax.set_ylim(0.0, 1.0)
    ax.grid(True, alpha=0.2)

    path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(path, dpi=180)
    plt.close(fig)


def plot_trajectory(
    track: Track,
    points: Sequence[tuple[float, float]],
    path: Path,
    title: str = "Car Trajectory",
) -> None:
    fig, ax = plt.subplots(figsize=(8, 8))

    for x1, y1, x2, y2 in track.edges:
        ax.plot([x1, x2], [y1, y2], color="black", linewidth=1.5)
    for i, (x1, y1, x2, y2) in enumerate(track.checkpoints):
        ax.plot([x1, x2], [y1, y2], color="#2ca02c", linewidth=1.0, linestyle=":")
        ax.text((x1 + x2) / 2, (y1 + y2) / 2, str(i), fontsize=7, color="#2ca02c")

    if points:
        xy = np.asarray(points, dtype=float)
        ax.plot(xy[:, 0], xy[:, 1], color="#1f77b4", linewidth=1.4, label="car")
        ax.scatter([xy[0, 0]], [xy[0, 1]], color="#2ca02c", zorder=3, label="start")
        ax.scatter([xy[-1, 0]], [xy[-1, 1]], color="#d62728", zorder=3, label="end")
        ax.legend(loc="upper right", fontsize=8)

    ax.set_title(title)
    ax.set_aspect("equal", adjustable="datalim")
    ax.grid(True, alpha=0.2)

    path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(path, dpi=180)
    plt.close(fig)
