"""
Tests for the concurrent simulation world.

Covers:
- Run termination (tick limit, crash, objective, external stop)
- Pause / unpause without skipped or duplicated ticks
- Controller contract checks
- Task failure propagation
"""
import threading
import time

import pytest

from neat_car.config import EvolutionConfig, SimulationConfig
from neat_car.envs.track import Segment, Track
from neat_car.envs.world import SimulationResult, TrajectoryRecorder, World, run_simulation
from neat_car.errors import ControllerContractError, SimulationError
from neat_car.genome import create_initial_genome

ACCELERATE = 2


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.001)


def _start(world):
    box = {}

    def target():
        box["result"] = world.run()

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread, box


def _count_updates(world):
    calls = []
    update = world.car.update

    def counting_update():
        calls.append(1)
        update()

    world.car.update = counting_update
    return calls


@pytest.fixture
def accelerating_genome(tracker, rng):
    """A controller whose only active output is accelerate."""
    genome = create_initial_genome(0, EvolutionConfig(), tracker, rng)
    for gene in genome.connections.values():
        gene.weight = 0.0
        gene.bias = 1.0 if gene.dst == genome.output_ids[ACCELERATE] else 0.0
    return genome


class TestTermination:
    """Tests for the ways a run can end."""

    def test_tick_limit(self, fast_sim_cfg):
        world = World(Track([]), cfg=fast_sim_cfg)
        calls = _count_updates(world)

        result = world.run()

        assert result.operations == fast_sim_cfg.max_ticks
        assert len(calls) == result.operations
        assert not result.crashed
        assert result.frozen

    def test_crash_ends_run(self, controller_genome, fast_sim_cfg):
        track = Track([Segment(fast_sim_cfg.start_x, -400, fast_sim_cfg.start_x, -200)])

        result = run_simulation(track, controller_genome, fast_sim_cfg)

        assert result.crashed
        assert result.operations == 1

    def test_reaches_target_distance(self, accelerating_genome):
        cfg = SimulationConfig(
            tick_interval=0.001,
            controller_interval=0.0005,
            max_ticks=10_000,
            target_distance=5.0,
        )

        result = run_simulation(Track([]), accelerating_genome, cfg)

        assert result.completion == 1.0
        assert not result.crashed
        assert result.operations < cfg.max_ticks

    def test_checkpoints_drive_completion(self, accelerating_genome):
        cfg = SimulationConfig(
            tick_interval=0.001,
            controller_interval=0.0005,
            max_ticks=10_000,
            start_x=0.0,
            start_y=0.0,
        )
        gates = [Segment(x, -10, x, 10) for x in (2.0, 4.0)]

        result = run_simulation(Track([], checkpoints=gates), accelerating_genome, cfg)

        assert result.completion == 1.0
        assert result.operations < cfg.max_ticks

    def test_external_stop(self):
        cfg = SimulationConfig(tick_interval=0.001, max_ticks=None)
        world = World(Track([]), cfg=cfg)
        thread, box = _start(world)

        _wait_for(lambda: world.result.operations > 3)
        world.stop()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert box["result"].operations > 3
        assert world.is_stopped()

    def test_run_only_once(self, fast_sim_cfg):
        world = World(Track([]), cfg=fast_sim_cfg)
        world.run()

        with pytest.raises(RuntimeError):
            world.run()

    def test_result_frozen_after_run(self, fast_sim_cfg):
        result = World(Track([]), cfg=fast_sim_cfg).run()

        with pytest.raises(RuntimeError):
            result.record_tick()

    def test_fields_read_only_after_run(self, fast_sim_cfg):
        result = World(Track([]), cfg=fast_sim_cfg).run()
        before = (result.completion, result.operations, result.crashed)

        for name, value in (("completion", 0.5), ("operations", 0), ("crashed", True)):
            with pytest.raises(RuntimeError):
                setattr(result, name, value)
        assert (result.completion, result.operations, result.crashed) == before


class TestPause:
    """Tests for cooperative pause and resume."""

    def test_pause_holds_ticks(self):
        cfg = SimulationConfig(tick_interval=0.001, max_ticks=None)
        world = World(Track([]), cfg=cfg)
        calls = _count_updates(world)
        thread, box = _start(world)

        _wait_for(lambda: world.result.operations > 3)
        world.pause()
        assert world.wait_until_parked(timeout=5)
        held = world.result.operations
        time.sleep(0.05)

        assert world.is_paused()
        assert world.result.operations == held

        world.unpause()
        _wait_for(lambda: world.result.operations > held + 3)
        world.stop()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert len(calls) == box["result"].operations

    def test_stop_while_paused(self):
        cfg = SimulationConfig(tick_interval=0.001, max_ticks=None)
        world = World(Track([]), cfg=cfg)
        thread, box = _start(world)

        _wait_for(lambda: world.result.operations > 0)
        world.pause()
        assert world.wait_until_parked(timeout=5)
        world.stop()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert box["result"].frozen


class TestRender:
    """Tests for the render callback."""

    def test_recorder_collects_points(self, fast_sim_cfg):
        recorder = TrajectoryRecorder()

        run_simulation(Track([]), None, fast_sim_cfg, render=recorder)

        assert len(recorder.points) >= 2
        assert recorder.points[0] == (fast_sim_cfg.start_x, fast_sim_cfg.start_y)


class TestFailures:
    """Tests for controller checks and task failures."""

    def test_wrong_controller_shape(self, seed_genome):
        with pytest.raises(ControllerContractError):
            World(Track([]), seed_genome)

    def test_single_failure_reraised(self, fast_sim_cfg):
        def render(world):
            raise KeyError("render broke")

        world = World(Track([]), cfg=fast_sim_cfg, render=render)

        with pytest.raises(KeyError):
            world.run()
        assert world.is_stopped()

    def test_several_failures_wrapped(self, fast_sim_cfg):
        barrier = threading.Barrier(2, timeout=5)

        def render(world):
            barrier.wait()
            raise KeyError("render broke")

        def update():
            barrier.wait()
            raise ZeroDivisionError("physics broke")

        world = World(Track([]), cfg=fast_sim_cfg, render=render)
        world.car.update = update

        with pytest.raises(SimulationError) as excinfo:
            world.run()
        kinds = {type(exc) for exc in excinfo.value.failures}
        assert kinds == {KeyError, ZeroDivisionError}

    def test_empty_result_defaults(self):
        result = SimulationResult()

        assert (result.completion, result.operations, result.crashed) == (0.0, 0, False)
