from .car import Car
from .track import Segment, Track
from .world import SimulationResult, World, run_simulation

__all__ = ["Car", "Segment", "SimulationResult", "Track", "World", "run_simulation"]
