"""Experimentation layer: runners, online statistics, replication selection."""

from simrep.experiment.statistics import MetricAccumulator, update_accumulator
from simrep.experiment.tabulation import ReplicationTabuliser, Snapshot
from simrep.experiment.controller import (
    AdaptiveReplicationController,
    ReplicationConfig,
    ReplicationResult,
    look_ahead_window,
)
from simrep.experiment.analysis import (
    BatchPrecisionResult,
    compute_ci,
    confidence_interval_method,
    confidence_interval_methods,
    estimate_required_reps,
)
from simrep.experiment.runner import (
    ScenarioRunner,
    multiple_replications,
    run_replication,
    run_replications_parallel,
)

__all__ = [
    "MetricAccumulator",
    "update_accumulator",
    "ReplicationTabuliser",
    "Snapshot",
    "AdaptiveReplicationController",
    "ReplicationConfig",
    "ReplicationResult",
    "look_ahead_window",
    "BatchPrecisionResult",
    "compute_ci",
    "confidence_interval_method",
    "confidence_interval_methods",
    "estimate_required_reps",
    "ScenarioRunner",
    "multiple_replications",
    "run_replication",
    "run_replications_parallel",
]
