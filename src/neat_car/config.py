from __future__ import annotations

import math
from dataclasses import dataclass, field


@dataclass
class MutationConfig:
    weight_mutate_rate: float = 0.8
    weight_mutate_power: float = 0.5
    weight_replace_rate: float = 0.1
    bias_mutate_rate: float = 0.3
    bias_mutate_power: float = 0.2
    add_node_rate: float = 0.05
    add_conn_rate: float = 0.10
    toggle_conn_rate: float = 0.02
    weight_clip: float = 5.0


@dataclass
class ReproductionConfig:
    elitism: int = 1
    harshness: float = 0.5
    crossover_rate: float = 0.75
    # "uniform" coin flip or "fitter" parent for matching genes.
    matching_gene_policy: str = "uniform"


@dataclass
class CarConfig:
    acceleration: float = 0.05
    brake_step: float = 0.1
    turn_step: float = math.pi / 180
    length: float = 70.0
    width: float = 40.0


@dataclass
class SimulationConfig:
    tick_interval: float = 0.01
    controller_interval: float = 0.01
    render_interval: float = 1.0 / 30.0
    max_ticks: int | None = 3000
    sensor_range: float = 500.0
    sensor_scale: float = 1.0 / 500.0
    target_distance: float = 5000.0
    start_x: float = 400.0
    start_y: float = -300.0
    start_heading: float = 0.0
    car: CarConfig = field(default_factory=CarConfig)


@dataclass
class EvolutionConfig:
    pop_size: int = 40
    generations: int = 50
    input_size: int = 8
    output_size: int = 5
    seed: int = 0
    target_fitness: float = math.inf
    mutation: MutationConfig = field(default_factory=MutationConfig)
    reproduction: ReproductionConfig = field(default_factory=ReproductionConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
