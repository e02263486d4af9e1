from __future__ import annotations

from .config import SimulationConfig
from .envs.track import Track
from .envs.world import RenderFn, SimulationResult, run_simulation
from .errors import DegenerateFitnessError
from .genome import Genome


def score(result: SimulationResult) -> float:
    """``completion ** 2 / operations``.

    Squaring favours getting further over getting there quickly; dividing by
    the tick count still ranks the faster of two equally far runs higher.
    """
    if result.operations <= 0:
        raise DegenerateFitnessError(
            f"cannot score a run of {result.operations} ticks (completion {result.completion})"
        )
    return result.completion * result.completion / result.operations


class CarControlEvaluator:
    def __init__(self, track: Track, cfg: SimulationConfig | None = None):
        self.track = track
        self.cfg = cfg or SimulationConfig()

    def play(self, genome: Genome, render: RenderFn | None = None) -> SimulationResult:
        return run_simulation(self.track, genome, self.cfg, render)

    def evaluate(self, genome: Genome, render: RenderFn | None = None) -> float:
        return score(self.play(genome, render))
