"""Schelling segregation simulation on a bounded integer grid."""

from .logic import ConfigurationError
from .logic import InvalidStateError
from .logic import SchellingError
from .runtime import SegregationSimulation
from .runtime import SimulationConfig
from .runtime import SimulationSnapshot
from .runtime import StepResult

__version__ = "0.1.0"

__all__ = [
    "logic",
    "ConfigurationError",
    "InvalidStateError",
    "SchellingError",
    "SegregationSimulation",
    "SimulationConfig",
    "SimulationSnapshot",
    "StepResult",
]
