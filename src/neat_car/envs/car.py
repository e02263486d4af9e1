from __future__ import annotations

import math
import threading
from typing import Any, Callable

import numpy as np

from ..config import CarConfig
from .track import SENSOR_OFFSETS, SENSOR_RANGE, Track

TAU = 2.0 * math.pi

ACTUATORS = ("turn_left", "turn_right", "accelerating", "decelerating", "braking")


class _Cell:
    __slots__ = ("_lock", "_value")

    def __init__(self, value: Any):
        self._lock = threading.Lock()
        self._value = value

    def get(self) -> Any:
        with self._lock:
            return self._value

    def set(self, value: Any) -> None:
        with self._lock:
            self._value = value

    def update(self, fn: Callable[[Any], Any]) -> Any:
        with self._lock:
            self._value = fn(self._value)
            return self._value


class AtomicField:
    """An attribute guarded by its own lock.

    Each access is atomic on its own; nothing makes two fields consistent with
    each other, and no caller needs that.
    """

    def __set_name__(self, owner: type, name: str) -> None:
        self._name = name

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return obj.__dict__[self._name].get()

    def __set__(self, obj: Any, value: Any) -> None:
        cell = obj.__dict__.get(self._name)
        if cell is None:
            obj.__dict__[self._name] = _Cell(value)
        else:
            cell.set(value)


class Car:
    """A car steered by five on/off actuators.

    Heading is in radians with 0 along +x. Speed is a signed scalar; turning
    is reversed while the car rolls backwards and impossible at a standstill.
    """

    x = AtomicField()
    y = AtomicField()
    heading = AtomicField()
    speed = AtomicField()
    odometer = AtomicField()

    turn_left = AtomicField()
    turn_right = AtomicField()
    accelerating = AtomicField()
    decelerating = AtomicField()
    braking = AtomicField()

    def __init__(self, x: float = 0.0, y: float = 0.0, heading: float = 0.0, cfg: CarConfig | None = None):
        self.cfg = cfg or CarConfig()
        self.x = float(x)
        self.y = float(y)
        self.heading = float(heading) % TAU
        self.speed = 0.0
        self.odometer = 0.0
        for name in ACTUATORS:
            setattr(self, name, False)

    def _cell(self, name: str) -> _Cell:
        return self.__dict__[name]

    def set_controls(
        self,
        turn_left: bool,
        turn_right: bool,
        accelerate: bool,
        decelerate: bool,
        brake: bool,
    ) -> None:
        self.turn_left = bool(turn_left)
        self.turn_right = bool(turn_right)
        self.accelerating = bool(accelerate)
        self.decelerating = bool(decelerate)
        self.braking = bool(brake)

    def controls(self) -> tuple[bool, ...]:
        return tuple(getattr(self, name) for name in ACTUATORS)

    def accelerate(self) -> float:
        step = self.cfg.acceleration
        return self._cell("speed").update(lambda s: s + step)

    def decelerate(self) -> float:
        step = self.cfg.acceleration
        return self._cell("speed").update(lambda s: s - step)

    def brake(self) -> float:
        step = self.cfg.brake_step

        def toward_zero(s: float) -> float:
            if s > step:
                return s - step
            if s < -step:
                return s + step
            return 0.0

        return self._cell("speed").update(toward_zero)

    def turn(self, direction: int) -> float:
        step = direction * self.cfg.turn_step
        return self._cell("heading").update(lambda h: (h + step) % TAU)

    def update(self) -> None:
        """Advance one tick: move, then apply one speed change and one turn."""
        speed = self.speed
        heading = self.heading
        self._cell("x").update(lambda v: v + speed * math.cos(heading))
        self._cell("y").update(lambda v: v + speed * math.sin(heading))
        self._cell("odometer").update(lambda v: v + abs(speed))

        if self.braking:
            self.brake()
        elif self.decelerating:
            self.decelerate()
        elif self.accelerating:
            self.accelerate()

        speed = self.speed
        if speed == 0:
            return
        left, right = self.turn_left, self.turn_right
        if left == right:
            return
        direction = 1 if left else -1
        if speed < 0:
            direction = -direction
        self.turn(direction)

    def outline(self) -> np.ndarray:
        """The four sides of the car body as ``(4, 4)`` segments."""
        cx, cy, heading = self.x, self.y, self.heading
        half_l = self.cfg.length / 2.0
        half_w = self.cfg.width / 2.0
        c, s = math.cos(heading), math.sin(heading)
        corners = np.array(
            [
                (cx + c * dx - s * dy, cy + s * dx + c * dy)
                for dx, dy in ((half_l, half_w), (-half_l, half_w), (-half_l, -half_w), (half_l, -half_w))
            ]
        )
        return np.hstack([corners, np.roll(corners, -1, axis=0)])

    def readings(self, track: Track, sensor_range: float = SENSOR_RANGE) -> np.ndarray:
        return track.sense(self.x, self.y, self.heading, SENSOR_OFFSETS, sensor_range)
