from __future__ import annotations

import csv
import json
import math
from pathlib import Path

import numpy as np
from loguru import logger

from .config import EvolutionConfig
from .envs.track import Track
from .envs.world import SimulationResult
from .errors import DegenerateFitnessError
from .fitness import CarControlEvaluator, score
from .genome import Genome, create_initial_genome
from .innovation import InnovationTracker
from .persistence import write_genome


def _fitness_key(genome: Genome) -> float:
    return genome.fitness if genome.fitness is not None else -math.inf


class NEATTrainer:
    """Generation loop: evaluate, truncate, reproduce, mutate.

    Selection is truncation at ``reproduction.harshness``: that fraction of
    the worst genomes is dropped (at least two survive). Given the seed and
    the fitness values every choice is deterministic, and the population
    never grows from one generation to the next.
    """

    def __init__(
        self,
        cfg: EvolutionConfig,
        track: Track,
        out_dir: Path,
        initial_population: list[Genome] | None = None,
        evaluator: CarControlEvaluator | None = None,
    ):
        if not 0.0 <= cfg.reproduction.harshness < 1.0:
            raise ValueError(f"harshness must be in [0, 1), got {cfg.reproduction.harshness}")

        self.cfg = cfg
        self.out_dir = out_dir
        self.out_dir.mkdir(parents=True, exist_ok=True)

        self.rng = np.random.default_rng(cfg.seed)
        self.tracker = InnovationTracker()
        self.evaluator = evaluator or CarControlEvaluator(track, cfg.simulation)

        adopted = self._fitting(initial_population or [])
        if adopted:
            self.population = self._adopt(adopted)
        else:
            if initial_population:
                logger.warning("[NEATTrainer] no loaded genome fits the controller; starting from scratch")
            self.population = self._initial_population()
        self.next_genome_id = max(g.genome_id for g in self.population) + 1

        self.history: list[dict[str, float]] = []
        self.drives: dict[int, SimulationResult] = {}
        self.champion_snapshots: list[tuple[int, Genome]] = []
        self.live_history_path = self.out_dir / "history_live.csv"
        self.live_progress_path = self.out_dir / "progress.json"
        self.live_champion_path = self.out_dir / "champion_live.nw"

    def _initial_population(self) -> list[Genome]:
        seed = create_initial_genome(0, self.cfg, self.tracker, self.rng)
        population = [seed]
        for i in range(1, self.cfg.pop_size):
            genome = seed.clone(new_id=i)
            genome.randomize_weights(self.rng)
            population.append(genome)
        return population

    def _fitting(self, genomes: list[Genome]) -> list[Genome]:
        kept = []
        for genome in genomes:
            shape = (len(genome.input_ids), len(genome.output_ids))
            if shape != (self.cfg.input_size, self.cfg.output_size):
                logger.warning(
                    "[NEATTrainer] skipping loaded genome {}: {} inputs and {} outputs, expected {} and {}",
                    genome.genome_id,
                    *shape,
                    self.cfg.input_size,
                    self.cfg.output_size,
                )
                continue
            kept.append(genome)
        return kept

    def _adopt(self, genomes: list[Genome]) -> list[Genome]:
        for genome in genomes:
            self.tracker.observe(genome)
        population = [g.clone(new_id=i) for i, g in enumerate(genomes[: self.cfg.pop_size])]
        i = 0
        while len(population) < self.cfg.pop_size:
            child = population[i % len(genomes)].clone(new_id=len(population))
            child.mutate(self.rng, self.cfg, self.tracker)
            population.append(child)
            i += 1
        return population

    def run(self) -> tuple[Genome, dict[str, Path]]:
        self._write_live_progress(generation_completed=-1, status="starting")
        for gen in range(self.cfg.generations):
            self._write_live_progress(
                generation_completed=gen - 1,
                status=f"evaluating_generation_{gen}",
            )
            self._evaluate(gen)
            self._record_generation(gen)
            self._write_live_generation_files(gen)

            champion = self._best_genome()
            if champion.fitness is not None and champion.fitness >= self.cfg.target_fitness:
                logger.info("[NEATTrainer] target fitness reached in generation {}", gen)
                break
            if gen < self.cfg.generations - 1:
                self.population = self._reproduce()

        champion = self._best_genome()
        artifacts = self._save_artifacts(champion)
        self._write_live_progress(
            generation_completed=len(self.history) - 1,
            status="finished",
        )
        return champion, artifacts

    def _evaluate(self, gen: int) -> None:
        self.drives = {}
        for genome in self.population:
            try:
                genome.fitness = self._score(genome)
            except DegenerateFitnessError as exc:
                logger.warning(
                    "[NEATTrainer] generation {}: genome {} left unscored: {}",
                    gen,
                    genome.genome_id,
                    exc,
                )
                genome.fitness = None

    def _score(self, genome: Genome) -> float:
        play = getattr(self.evaluator, "play", None)
        if play is None:
            return self.evaluator.evaluate(genome)
        result = play(genome)
        self.drives[genome.genome_id] = result
        return score(result)

    def select_survivors(self) -> list[Genome]:
        ranked = sorted(self.population, key=_fitness_key, reverse=True)
        keep = int(np.ceil(len(ranked) * (1.0 - self.cfg.reproduction.harshness)))
        return ranked[: min(len(ranked), max(2, keep))]

    def _reproduce(self) -> list[Genome]:
        rcfg = self.cfg.reproduction
        target = min(self.cfg.pop_size, len(self.population))
        survivors = self.select_survivors()

        new_population: list[Genome] = []
        for elite in survivors[: min(rcfg.elitism, len(survivors), target)]:
            clone = elite.clone(new_id=self._new_genome_id())
            clone.fitness = None
            new_population.append(clone)

        while len(new_population) < target:
            if len(survivors) >= 2 and self.rng.random() < rcfg.crossover_rate:
                i, j = self.rng.choice(len(survivors), size=2, replace=False)
                child = survivors[i].reproduce_with(
                    survivors[j],
                    self.rng,
                    child_id=self._new_genome_id(),
                    policy=rcfg.matching_gene_policy,
                )
            else:
                parent = survivors[self.rng.integers(len(survivors))]
                child = parent.clone(new_id=self._new_genome_id())
            child.fitness = None
            child.mutate(self.rng, self.cfg, self.tracker)
            new_population.append(child)

        return new_population

    def _new_genome_id(self) -> int:
        gid = self.next_genome_id
        self.next_genome_id += 1
        return gid

    def _best_genome(self) -> Genome:
        return max(self.population, key=_fitness_key)

    def _record_generation(self, gen: int) -> None:
        scored = np.array([g.fitness for g in self.population if g.fitness is not None], dtype=float)
        best = self._best_genome()
        best_hidden, best_conn = best.complexity()
        drives = list(self.drives.values())

        record = {
            "generation": float(gen),
            "best_fitness": float(scored.max()) if scored.size else float("nan"),
            "mean_fitness": float(scored.mean()) if scored.size else float("nan"),
            "unscored": float(len(self.population) - scored.size),
            # Stand-in evaluators without play() leave no drives behind.
            "best_completion": max(r.completion for r in drives) if drives else float("nan"),
            "crashes": float(sum(r.crashed for r in drives)),
            "mean_hidden_nodes": float(np.mean([g.complexity()[0] for g in self.population])),
            "mean_enabled_connections": float(np.mean([g.complexity()[1] for g in self.population])),
            "champ_hidden_nodes": float(best_hidden),
            "champ_enabled_connections": float(best_conn),
        }
        self.history.append(record)
        self.champion_snapshots.append((gen, best.clone()))

        print(
            f"[gen {gen + 1:03d}/{self.cfg.generations:03d}] "
            f"best={record['best_fitness']:.6g} "
            f"mean={record['mean_fitness']:.6g} "
            f"completion={record['best_completion']:.3f} "
            f"crashes={int(record['crashes'])} "
            f"hidden={record['mean_hidden_nodes']:.2f} "
            f"conns={record['mean_enabled_connections']:.2f}"
        )

    def _write_live_generation_files(self, gen: int) -> None:
        # Rewritten every generation so progress is visible while training is running.
        self._write_history_csv(self.live_history_path)
        write_genome(self._best_genome(), self.live_champion_path)
        self._write_live_progress(
            generation_completed=gen,
            status=f"completed_generation_{gen}",
        )

    def _write_live_progress(self, generation_completed: int, status: str) -> None:
        progress = {
            "generation_completed": generation_completed,
            "generations_total": self.cfg.generations,
            "status": status,
            "out_dir": str(self.out_dir),
            "best_fitness": self.history[-1]["best_fitness"] if self.history else None,
            "mean_fitness": self.history[-1]["mean_fitness"] if self.history else None,
        }
        with self.live_progress_path.open("w", encoding="utf-8") as f:
            json.dump(progress, f, indent=2)
            f.flush()

    def _save_artifacts(self, champion: Genome) -> dict[str, Path]:
        artifacts: dict[str, Path] = {}

        self._write_history_csv(self.out_dir / "history.csv")
        artifacts["history_csv"] = self.out_dir / "history.csv"
        artifacts["champion_nw"] = write_genome(champion, self.out_dir / "champion.nw")
        artifacts["history_live_csv"] = self.live_history_path
        artifacts["progress_json"] = self.live_progress_path
        artifacts["champion_live_nw"] = self.live_champion_path
        return artifacts

    def _write_history_csv(self, path: Path) -> None:
        if not self.history:
            return
        fieldnames = list(self.history[0].keys())
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            for row in self.history:
                writer.writerow(row)
