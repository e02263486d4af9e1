from __future__ import annotations

import argparse
import datetime as dt
import sys
from pathlib import Path

from loguru import logger

from .config import EvolutionConfig, ReproductionConfig, SimulationConfig
from .envs.track import Track, default_track
from .envs.world import TrajectoryRecorder, World
from .evolution import NEATTrainer
from .fitness import score
from .genome import MATCHING_GENE_POLICIES
from .persistence import default_genome_path, load_genomes, read_genome, read_track, write_genome
from .reporting import write_markdown_report
from .visualization import plot_genome, plot_history, plot_trajectory


def _add_simulation_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--track", type=str, default=None, help="track edge file; built-in ring when omitted")
    p.add_argument("--checkpoints", type=str, default=None, help="ordered checkpoint gates, same format as tracks")
    p.add_argument("--tick-interval", type=float, default=0.01)
    p.add_argument("--controller-interval", type=float, default=0.01)
    p.add_argument("--max-ticks", type=int, default=3000, help="0 for no limit")
    p.add_argument("--target-distance", type=float, default=5000.0)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="neat-car", description="NEAT controllers for a simulated car")
    p.add_argument("-v", "--verbose", action="store_true", help="log debug messages")
    sub = p.add_subparsers(dest="command", required=True)

    evolve = sub.add_parser("evolve", help="evolve a population of controllers")
    evolve.add_argument("--pop-size", type=int, default=40)
    evolve.add_argument("--generations", type=int, default=50)
    evolve.add_argument("--seed", type=int, default=0)
    evolve.add_argument("--target-fitness", type=float, default=float("inf"))
    evolve.add_argument("--elitism", type=int, default=1)
    evolve.add_argument("--harshness", type=float, default=0.5)
    evolve.add_argument("--crossover-rate", type=float, default=0.75)
    evolve.add_argument("--matching-gene-policy", choices=MATCHING_GENE_POLICIES, default="uniform")
    evolve.add_argument("--population", type=str, default=None, help="genome file or directory to start from")
    evolve.add_argument("--out-root", type=str, default="artifacts")
    _add_simulation_args(evolve)

    simulate = sub.add_parser("simulate", help="drive the car with one saved genome")
    simulate.add_argument("genome", type=str)
    simulate.add_argument("--plot", type=str, default=None, help="write the trajectory plot here")
    _add_simulation_args(simulate)

    return p.parse_args(argv)


def _load_track(args: argparse.Namespace) -> Track:
    if args.track is None:
        track = default_track()
        if args.checkpoints is None:
            return track
        edges = track.edges
    else:
        edges = read_track(Path(args.track))
    checkpoints = read_track(Path(args.checkpoints)) if args.checkpoints else ()
    return Track(edges, checkpoints)


def _simulation_config(args: argparse.Namespace) -> SimulationConfig:
    return SimulationConfig(
        tick_interval=args.tick_interval,
        controller_interval=args.controller_interval,
        max_ticks=args.max_ticks or None,
        target_distance=args.target_distance,
    )


def _evolve(args: argparse.Namespace) -> None:
    cfg = EvolutionConfig(
        pop_size=args.pop_size,
        generations=args.generations,
        seed=args.seed,
        target_fitness=args.target_fitness,
        reproduction=ReproductionConfig(
            elitism=args.elitism,
            harshness=args.harshness,
            crossover_rate=args.crossover_rate,
            matching_gene_policy=args.matching_gene_policy,
        ),
        simulation=_simulation_config(args),
    )

    initial = None
    if args.population:
        initial = load_genomes(Path(args.population))
        logger.info("Loaded {} genome(s) from {}", len(initial), args.population)

    ts = dt.datetime.now().strftime("%Y%m%d_%H%M%S")
    out_dir = Path(args.out_root).resolve() / f"evolve_{ts}"
    track = _load_track(args)

    trainer = NEATTrainer(cfg=cfg, track=track, out_dir=out_dir, initial_population=initial)
    champion, artifacts = trainer.run()

    plots_dir = out_dir / "plots"
    plot_history(trainer.history, plots_dir / "fitness_complexity.png")
    plot_genome(champion, plots_dir / "champion_network.png", title="Champion Topology")
    artifacts["plot_history"] = plots_dir / "fitness_complexity.png"
    artifacts["plot_champion"] = plots_dir / "champion_network.png"

    if trainer.champion_snapshots:
        key_gens = sorted(
            {
                trainer.champion_snapshots[0][0],
                trainer.champion_snapshots[len(trainer.champion_snapshots) // 2][0],
                trainer.champion_snapshots[-1][0],
            }
        )
        snap_by_gen = {g: genome for g, genome in trainer.champion_snapshots}
        for g in key_gens:
            plot_genome(
                snap_by_gen[g],
                plots_dir / f"champion_network_gen_{g}.png",
                title=f"Champion Topology (Generation {g})",
            )

    # Replay the champion once more to draw where it drove.
    recorder = TrajectoryRecorder()
    replay = World(track, champion, cfg.simulation, render=recorder).run()
    logger.info(
        "Champion replay: completion={:.3f} ticks={} crashed={}", replay.completion, replay.operations, replay.crashed
    )
    plot_trajectory(track, recorder.points, plots_dir / "champion_trajectory.png")
    artifacts["plot_trajectory"] = plots_dir / "champion_trajectory.png"

    report_path = out_dir / "report.md"
    write_markdown_report(
        path=report_path,
        history=trainer.history,
        champion=champion,
        artifacts={**artifacts, "plots_dir": plots_dir},
        replay=replay,
    )
    write_genome(champion, default_genome_path(out_dir))

    print(f"Run complete: {out_dir}")
    for name, p in sorted({**artifacts, "report": report_path}.items()):
        print(f"{name}: {p}")


def _simulate(args: argparse.Namespace) -> None:
    genome = read_genome(Path(args.genome))
    track = _load_track(args)
    cfg = _simulation_config(args)

    recorder = TrajectoryRecorder() if args.plot else None
    result = World(track, genome, cfg, render=recorder).run()

    print(f"operations={result.operations} completion={result.completion:.4f} crashed={result.crashed}")
    if result.operations > 0:
        print(f"fitness={score(result):.6g}")
    if recorder is not None:
        plot_trajectory(track, recorder.points, Path(args.plot))
        print(f"trajectory: {args.plot}")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "INFO")

    if args.command == "evolve":
        _evolve(args)
    else:
        _simulate(args)


if __name__ == "__main__":
    main()
