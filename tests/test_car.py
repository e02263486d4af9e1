"""
Tests for car physics.
"""
import math

import numpy as np
import pytest

from neat_car.config import CarConfig
from neat_car.envs.car import TAU, Car


@pytest.fixture
def car():
    return Car(0.0, 0.0, 1.0, CarConfig(acceleration=0.05, brake_step=0.1, turn_step=math.pi / 180))


class TestSpeed:
    """Tests for accelerate, decelerate and brake."""

    def test_accelerate(self, car):
        car.set_controls(False, False, True, False, False)

        car.update()
        car.update()

        assert car.speed == pytest.approx(0.1)

    def test_decelerate_goes_negative(self, car):
        car.set_controls(False, False, False, True, False)

        car.update()

        assert car.speed == pytest.approx(-0.05)

    @pytest.mark.parametrize("speed", [0.05, -0.05, 0.1, 0.0])
    def test_brake_clamps_to_zero(self, car, speed):
        car.speed = speed

        car.brake()

        assert car.speed == 0.0

    def test_brake_reduces_magnitude(self, car):
        car.speed = -0.3

        car.brake()

        assert car.speed == pytest.approx(-0.2)

    def test_brake_beats_accelerate(self, car):
        car.speed = 1.0
        car.set_controls(False, False, True, True, True)

        car.update()

        assert car.speed == pytest.approx(0.9)

    def test_decelerate_beats_accelerate(self, car):
        car.speed = 1.0
        car.set_controls(False, False, True, True, False)

        car.update()

        assert car.speed == pytest.approx(0.95)


class TestSteering:
    """Tests for turning rules."""

    def test_left_turn_forward(self, car):
        car.speed = 1.0
        car.set_controls(True, False, False, False, False)

        car.update()

        assert car.heading == pytest.approx(1.0 + math.pi / 180)

    def test_reverse_inverts_steering(self, car):
        car.speed = -1.0
        car.set_controls(True, False, False, False, False)

        car.update()

        assert car.heading == pytest.approx(1.0 - math.pi / 180)

    def test_no_turn_when_stopped(self, car):
        car.set_controls(True, False, False, False, False)

        car.update()

        assert car.heading == 1.0

    def test_both_flags_cancel(self, car):
        car.speed = 1.0
        car.set_controls(True, True, False, False, False)

        car.update()

        assert car.heading == 1.0

    def test_heading_wraps(self):
        car = Car(0.0, 0.0, 0.0)
        car.speed = 1.0
        car.set_controls(False, True, False, False, False)

        car.update()

        assert 0.0 <= car.heading < TAU
        assert car.heading == pytest.approx(TAU - car.cfg.turn_step)


class TestMotion:
    """Tests for position, odometer and body outline."""

    def test_moves_along_heading(self):
        car = Car(10.0, 20.0, math.pi / 2)
        car.speed = 2.0

        car.update()

        assert car.x == pytest.approx(10.0)
        assert car.y == pytest.approx(22.0)

    def test_odometer_counts_reverse(self):
        car = Car(0.0, 0.0, 0.0)
        car.speed = -2.0

        car.update()

        assert car.x == pytest.approx(-2.0)
        assert car.odometer == pytest.approx(2.0)

    def test_outline(self):
        car = Car(5.0, -5.0, 0.0, CarConfig(length=70, width=40))

        outline = car.outline()

        assert outline.shape == (4, 4)
        assert np.allclose(outline[:, 0].mean(), 5.0)
        assert np.allclose(outline[:, 1].mean(), -5.0)
        assert np.allclose(outline[:, 0:2], outline[[3, 0, 1, 2], 2:4])

    def test_controls_round_trip(self, car):
        car.set_controls(True, False, True, False, True)

        assert car.controls() == (True, False, True, False, True)
