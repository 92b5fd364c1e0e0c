"""Core foundation layer: scenario configuration, enums, errors, logging."""

from simrep.core.scenario import Scenario, load_scenario, save_scenario
from simrep.core.entities import ControllerPhase, NOT_REACHED
from simrep.core.errors import InsufficientDataError, ReplicationConfigError
from simrep.core.log import configure_logging

__all__ = [
    "Scenario",
    "load_scenario",
    "save_scenario",
    "ControllerPhase",
    "NOT_REACHED",
    "InsufficientDataError",
    "ReplicationConfigError",
    "configure_logging",
]
