from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable

from loguru import logger

from ..config import SimulationConfig
from ..errors import ControllerContractError, SimulationError, WaitInterrupted
from ..genome import Genome
from .car import Car
from .track import Track

CONTROL_INPUTS = 8
CONTROL_OUTPUTS = 5

RenderFn = Callable[["World"], None]


@dataclass
class SimulationResult:
    """Progress of one run. Written only by the clock task, frozen once the run ends."""

    completion: float = 0.0
    operations: int = 0
    crashed: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    _frozen: bool = field(default=False, repr=False, compare=False)

    def __setattr__(self, name, value):
        # __init__ assigns _frozen last, so it is absent while fields are set.
        if self.__dict__.get("_frozen", False):
            raise RuntimeError(f"simulation result is frozen; cannot set {name}")
        super().__setattr__(name, value)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_open(self) -> None:
        if self._frozen:
            raise RuntimeError("simulation result is frozen")

    def record_tick(self) -> int:
        with self._lock:
            self._check_open()
            self.operations += 1
            return self.operations

    def set_completion(self, completion: float) -> None:
        with self._lock:
            self._check_open()
            self.completion = float(completion)

    def mark_crashed(self) -> None:
        with self._lock:
            self._check_open()
            self.crashed = True

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True


def check_controller(genome: Genome) -> None:
    if len(genome.input_ids) != CONTROL_INPUTS or len(genome.output_ids) != CONTROL_OUTPUTS:
        raise ControllerContractError(
            f"genome {genome.genome_id} has {len(genome.input_ids)} inputs and "
            f"{len(genome.output_ids)} outputs; a car controller needs "
            f"{CONTROL_INPUTS} and {CONTROL_OUTPUTS}"
        )


class World:
    """One car on one track, driven by up to three cooperating tasks.

    The clock task advances physics and checks for crashes, the controller
    task turns sensor readings into actuator flags, and an optional render
    task hands the world to a read-only callback. All of them sleep between
    ticks, honour ``pause()`` and leave their loop once ``stop()`` is called.
    """

    def __init__(
        self,
        track: Track,
        genome: Genome | None = None,
        cfg: SimulationConfig | None = None,
        render: RenderFn | None = None,
    ):
        self.cfg = cfg or SimulationConfig()
        self.track = track
        self.genome = genome
        self.car = Car(self.cfg.start_x, self.cfg.start_y, self.cfg.start_heading, self.cfg.car)
        self.result = SimulationResult()

        self._phenotype = None
        if genome is not None:
            check_controller(genome)
            self._phenotype = genome.to_phenotype()
        self._render = render

        self._stop = threading.Event()
        self._pause_cond = threading.Condition()
        self._paused = False
        self._parked = threading.Event()
        self._next_checkpoint = 0
        self._started = False

    def is_stopped(self) -> bool:
        return self._stop.is_set()

    def is_paused(self) -> bool:
        with self._pause_cond:
            return self._paused

    def stop(self) -> None:
        self._stop.set()
        with self._pause_cond:
            self._pause_cond.notify_all()

    def pause(self) -> None:
        with self._pause_cond:
            self._paused = True

    def unpause(self) -> None:
        with self._pause_cond:
            self._paused = False
            self._parked.clear()
            self._pause_cond.notify_all()

    def wait_until_parked(self, timeout: float | None = None) -> bool:
        """Block until the clock task is sitting in a pause."""
        return self._parked.wait(timeout)

    def _sleep(self, interval: float) -> None:
        if self._stop.wait(interval):
            raise WaitInterrupted()

    def _wait_for_unpause(self, parked: bool = False) -> None:
        with self._pause_cond:
            while self._paused and not self._stop.is_set():
                if parked:
                    self._parked.set()
                self._pause_cond.wait()
        if self._stop.is_set():
            raise WaitInterrupted()

    # Tasks

    def _clock_loop(self) -> None:
        try:
            while True:
                self._sleep(self.cfg.tick_interval)
                self._wait_for_unpause(parked=True)
                if self._tick():
                    break
        except WaitInterrupted:
            logger.debug("[World] clock interrupted after {} ticks", self.result.operations)
        finally:
            self.stop()

    def _controller_loop(self) -> None:
        try:
            while True:
                readings = self.car.readings(self.track, self.cfg.sensor_range)
                self.car.set_controls(*self._phenotype.actions(readings * self.cfg.sensor_scale))
                self._sleep(self.cfg.controller_interval)
                self._wait_for_unpause()
        except WaitInterrupted:
            pass
        finally:
            self.stop()

    def _render_loop(self) -> None:
        try:
            while True:
                self._render(self)
                self._sleep(self.cfg.render_interval)
                self._wait_for_unpause()
        except WaitInterrupted:
            self._render(self)
        finally:
            self.stop()

    def _tick(self) -> bool:
        """Run one physics step; returns True when the run is over."""
        car = self.car
        x0, y0 = car.x, car.y
        car.update()
        ticks = self.result.record_tick()
        self._advance_completion(x0, y0, car.x, car.y)

        if self.track.collides(car.outline()):
            self.result.mark_crashed()
            logger.debug("[World] crashed at ({:.1f}, {:.1f}) on tick {}", car.x, car.y, ticks)
            return True
        if self.result.completion >= 1.0:
            return True
        return self.cfg.max_ticks is not None and ticks >= self.cfg.max_ticks

    def _advance_completion(self, x0: float, y0: float, x1: float, y1: float) -> None:
        gates = len(self.track.checkpoints)
        if gates:
            if self._next_checkpoint < gates and self.track.crosses_checkpoint(self._next_checkpoint, x0, y0, x1, y1):
                self._next_checkpoint += 1
                self.result.set_completion(self._next_checkpoint / gates)
        elif self.cfg.target_distance > 0:
            self.result.set_completion(min(1.0, self.car.odometer / self.cfg.target_distance))

    def run(self) -> SimulationResult:
        """Run every task until the car crashes, finishes, runs out of ticks or is stopped.

        Blocks until all tasks have exited. A single task failure is re-raised
        as is; several are wrapped in ``SimulationError``.
        """
        if self._started:
            raise RuntimeError("a World can only be run once")
        self._started = True

        tasks = [("clock", self._clock_loop)]
        if self._phenotype is not None:
            tasks.append(("controller", self._controller_loop))
        if self._render is not None:
            tasks.append(("render", self._render_loop))

        with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="world") as pool:
            futures = [(name, pool.submit(fn)) for name, fn in tasks]
            try:
                wait([f for _, f in futures])
            except BaseException:
                self.stop()
                raise

        self.result.freeze()

        failures: list[BaseException] = []
        for name, future in futures:
            exc = future.exception()
            if exc is not None:
                logger.debug("[World] {} task failed: {!r}", name, exc)
                failures.append(exc)
        if len(failures) == 1:
            raise failures[0]
        if failures:
            raise SimulationError(f"{len(failures)} simulation tasks failed", failures) from failures[0]
        return self.result


def run_simulation(
    track: Track,
    genome: Genome | None,
    cfg: SimulationConfig | None = None,
    render: RenderFn | None = None,
) -> SimulationResult:
    return World(track, genome, cfg, render).run()


class TrajectoryRecorder:
    """Render callback that keeps the car positions it is shown."""

    def __init__(self) -> None:
        self.points: list[tuple[float, float]] = []
        self._lock = threading.Lock()

    def __call__(self, world: World) -> None:
        point = (world.car.x, world.car.y)
        with self._lock:
            self.points.append(point)
