"""
simrep - replication analysis for a nurse consultation queueing model.

A discrete-event simulation built with SimPy, plus tools for choosing how
many replications are needed for a metric to reach a desired precision.
"""

__version__ = "0.1.0"

from simrep.core.scenario import Scenario
from simrep.model.processes import run_simulation
from simrep.experiment.controller import AdaptiveReplicationController, ReplicationConfig

__all__ = [
    "Scenario",
    "run_simulation",
    "AdaptiveReplicationController",
    "ReplicationConfig",
    "__version__",
]
