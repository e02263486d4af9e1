from __future__ import annotations

import math
from pathlib import Path

from .envs.world import SimulationResult
from .fitness import score
from .genome import Genome


def _trend(start: float, end: float, fmt: str = ".3g") -> str:
    if math.isnan(start) or math.isnan(end):
        return f"{start:{fmt}} -> {end:{fmt}}"
    return f"{start:{fmt}} -> {end:{fmt}} (delta {end - start:+{fmt}})"


def _first_full_lap(history: list[dict[str, float]]) -> int | None:
    for h in history:
        if h.get("best_completion", math.nan) >= 1.0:
            return int(h["generation"])
    return None


def build_driving_commentary(history: list[dict[str, float]]) -> str:
    """How far the population drove and how often it hit a wall."""
    if not history or all(math.isnan(h.get("best_completion", math.nan)) for h in history):
        return "No drives were recorded."

    start, end = history[0], history[-1]
    lines = ["### Driving Notes", ""]
    lines.append(
        f"- Best track completion: {_trend(start['best_completion'], end['best_completion'], '.1%')}."
    )

    lap = _first_full_lap(history)
    if lap is None:
        lines.append("- No controller finished the track.")
    else:
        lines.append(f"- First full lap in generation {lap}.")

    crashes = [int(h.get("crashes", 0)) for h in history]
    lines.append(
        f"- Crashed drives: {sum(crashes)} over the run, {crashes[-1]} in the final generation."
    )
    return "\n".join(lines)


def build_complexification_commentary(history: list[dict[str, float]], champion: Genome) -> str:
    if not history:
        return "No generation history was recorded."

    start = history[0]
    end = history[-1]

    lines = []
    lines.append("### Controller Growth")
    lines.append("")
    lines.append(
        f"- Mean hidden nodes: {_trend(start['mean_hidden_nodes'], end['mean_hidden_nodes'])}."
    )
    lines.append(
        f"- Mean enabled connections: {_trend(start['mean_enabled_connections'], end['mean_enabled_connections'])}."
    )
    lines.append(
        f"- Best fitness: {_trend(start['best_fitness'], end['best_fitness'])}."
    )

    hidden, enabled = champion.complexity()
    disabled = len(champion.connections) - enabled
    if hidden:
        lines.append(
            f"- Champion carries {hidden} hidden node(s), {enabled} enabled and {disabled} disabled gene(s)."
        )
    else:
        lines.append("- Champion still maps sensors straight to controls (no hidden nodes).")

    unscored = sum(int(h.get("unscored", 0)) for h in history)
    if unscored:
        lines.append(f"- {unscored} drive(s) ended before the first tick and were ranked last.")

    return "\n".join(lines)


def _replay_section(replay: SimulationResult) -> list[str]:
    if replay.crashed:
        outcome = "crashed into a track edge"
    elif replay.completion >= 1.0:
        outcome = "finished the track"
    else:
        outcome = "stopped before finishing the track"
    lines = [
        "## Champion Drive",
        "",
        f"- Outcome: {outcome}.",
        f"- Track completion: {replay.completion:.1%}.",
        f"- Ticks driven: {replay.operations}.",
    ]
    if replay.operations > 0:
        lines.append(f"- Replay fitness: {score(replay):.6g}.")
    lines.append("")
    return lines


def write_markdown_report(
    path: Path,
    history: list[dict[str, float]],
    champion: Genome,
    artifacts: dict[str, Path],
    replay: SimulationResult | None = None,
) -> None:
    lines = [
        "# NEAT Car Controller Report",
        "",
        f"## Champion: genome `{champion.genome_id}`, fitness `{champion.fitness}`",
        "",
    ]
    if replay is not None:
        lines.extend(_replay_section(replay))

    lines.extend(["## Artifacts", ""])
    for name, p in sorted(artifacts.items()):
        lines.append(f"- {name}: `{p}`")

    lines.extend(
        [
            "",
            "## Plots",
            "",
            f"- Fitness, completion and controller size: `{artifacts.get('plot_history', Path('N/A'))}`",
            f"- Champion trajectory: `{artifacts.get('plot_trajectory', Path('N/A'))}`",
            "- Champion topologies by generation in the `plots/` directory.",
            "",
            build_driving_commentary(history),
            "",
            build_complexification_commentary(history, champion),
        ]
    )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines), encoding="utf-8")
