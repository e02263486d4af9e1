"""
Tests for fitness scoring.
"""
import pytest

from neat_car.envs.track import Segment, Track
from neat_car.envs.world import SimulationResult
from neat_car.errors import DegenerateFitnessError
from neat_car.fitness import CarControlEvaluator, score


class TestScore:
    """Tests for completion ** 2 / operations."""

    def test_half_way(self):
        assert score(SimulationResult(completion=0.5, operations=100)) == pytest.approx(0.0025)

    def test_finished(self):
        assert score(SimulationResult(completion=1.0, operations=50)) == pytest.approx(0.02)

    def test_further_is_better(self):
        near = score(SimulationResult(completion=0.4, operations=100))
        far = score(SimulationResult(completion=0.6, operations=100))

        assert far > near

    def test_faster_is_better(self):
        slow = score(SimulationResult(completion=0.6, operations=200))
        fast = score(SimulationResult(completion=0.6, operations=100))

        assert fast > slow

    def test_no_progress(self):
        assert score(SimulationResult(completion=0.0, operations=10)) == 0.0

    @pytest.mark.parametrize("operations", [0, -1])
    def test_degenerate(self, operations):
        with pytest.raises(DegenerateFitnessError):
            score(SimulationResult(completion=0.5, operations=operations))

    def test_degenerate_is_arithmetic_error(self):
        with pytest.raises(ArithmeticError):
            score(SimulationResult())


class TestEvaluator:
    """Tests for CarControlEvaluator."""

    def test_crash_scores_zero(self, controller_genome, fast_sim_cfg):
        track = Track([Segment(fast_sim_cfg.start_x, -400, fast_sim_cfg.start_x, -200)])
        evaluator = CarControlEvaluator(track, fast_sim_cfg)

        result = evaluator.play(controller_genome)

        assert result.crashed
        assert result.operations == 1
        assert evaluator.evaluate(controller_genome) == 0.0
