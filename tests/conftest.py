"""
Shared fixtures for the neat_car tests.

Provides:
- A fresh innovation tracker and seeded random generator
- A tiny 2-input / 1-output genome for structural tests
- A full 8-input / 5-output controller genome
- A fast simulation configuration (no real-time sleeping)
"""
import numpy as np
import pytest

from neat_car.config import EvolutionConfig, SimulationConfig
from neat_car.genome import create_initial_genome
from neat_car.innovation import InnovationTracker


@pytest.fixture
def tracker():
    return InnovationTracker()


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture
def small_cfg():
    return EvolutionConfig(input_size=2, output_size=1)


@pytest.fixture
def seed_genome(small_cfg, tracker, rng):
    """Inputs 0 and 1 wired to output 2 through lineages 0 and 1."""
    return create_initial_genome(0, small_cfg, tracker, rng)


@pytest.fixture
def controller_genome(tracker, rng):
    return create_initial_genome(0, EvolutionConfig(), tracker, rng)


@pytest.fixture
def fast_sim_cfg():
    return SimulationConfig(
        tick_interval=0.0005,
        controller_interval=0.0005,
        render_interval=0.0005,
        max_ticks=50,
    )
