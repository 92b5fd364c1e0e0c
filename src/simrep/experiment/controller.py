"""Adaptive selection of the number of replications.

Runs replications one at a time until the confidence interval of every
tracked metric is within a desired relative precision, and has stayed
there for a look-ahead window of further replications.

The stopping rule is expressed as pure transition functions over an
immutable ``ControllerState``:

    state = start(config)
    state = step(config, state, deviations, replications=k)

so each transition can be tested without running a simulation. The
``AdaptiveReplicationController`` wires those functions to a simulation
collaborator and a ``ReplicationTabuliser``.

Example usage:
    from simrep.core.scenario import Scenario
    from simrep.experiment.controller import (
        AdaptiveReplicationController, ReplicationConfig,
    )
    from simrep.experiment.runner import ScenarioRunner

    config = ReplicationConfig(
        tracked_metrics=["mean_waiting_time_nurse", "utilisation_nurse"],
        desired_precision=0.1,
        initial_replications=3,
    )
    controller = AdaptiveReplicationController(config, ScenarioRunner(), Scenario())
    result = controller.select()
    print(result.summary())
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

import pandas as pd

from simrep.core.entities import NOT_REACHED, ControllerPhase
from simrep.core.errors import ReplicationConfigError
from simrep.experiment.tabulation import (
    ReplicationTabuliser,
    Snapshot,
    snapshots_to_dataframe,
)

logger = logging.getLogger(__name__)

# Replication count above which the look-ahead window grows proportionally
LOOK_AHEAD_SCALE_THRESHOLD = 100


class SimulationCollaborator(Protocol):
    """What the controller needs from a simulation.

    ``run_replication`` must be deterministic given its arguments when
    seeded reproducibly. ``run_replications_parallel`` runs replications
    1..count and returns them ordered by replication index regardless of
    completion order. Results carrying a ``replication`` key are re-sorted
    on it before being folded in.
    """

    def run_replication(self, parameters, replication_index: int) -> Mapping[str, float]:
        ...

    def run_replications_parallel(self, parameters, count: int) -> Sequence[Mapping[str, float]]:
        ...


@dataclass(frozen=True)
class ReplicationConfig:
    """Settings for one adaptive replication run.

    Attributes:
        tracked_metrics: Metrics that must all reach precision.
        desired_precision: Target relative CI half-width (0.05 = within 5%).
        initial_replications: Replications run as one block before the
            adaptive loop starts. May run in parallel.
        look_ahead: Extra consecutive replications for which precision
            must hold (scaled up beyond 100 replications).
        replication_budget: Hard cap on replications run.
        confidence: Confidence level of the intervals.
    """

    tracked_metrics: Tuple[str, ...]
    desired_precision: float
    initial_replications: int = 0
    look_ahead: int = 5
    replication_budget: int = 1000
    confidence: float = 0.95

    def __post_init__(self) -> None:
        metrics = self.tracked_metrics
        if isinstance(metrics, str):
            metrics = (metrics,)
        object.__setattr__(self, "tracked_metrics", tuple(metrics))
        self._validate()

    def _validate(self) -> None:
        if not self.tracked_metrics:
            raise ReplicationConfigError("tracked_metrics must not be empty")
        if len(set(self.tracked_metrics)) != len(self.tracked_metrics):
            raise ReplicationConfigError(
                f"tracked_metrics contains duplicates: {self.tracked_metrics}"
            )
        if not self.desired_precision > 0:
            raise ReplicationConfigError(
                f"desired_precision must be positive, got {self.desired_precision}"
            )
        for name in ("initial_replications", "look_ahead", "replication_budget"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ReplicationConfigError(f"{name} must be an integer, got {value!r}")
        if self.initial_replications < 0:
            raise ReplicationConfigError(
                f"initial_replications must be non-negative, got {self.initial_replications}"
            )
        if self.look_ahead < 0:
            raise ReplicationConfigError(
                f"look_ahead must be non-negative, got {self.look_ahead}"
            )
        if self.replication_budget < self.initial_replications:
            raise ReplicationConfigError(
                f"replication_budget ({self.replication_budget}) must be at least "
                f"initial_replications ({self.initial_replications})"
            )
        if not 0 < self.confidence < 1:
            raise ReplicationConfigError(
                f"confidence must be between 0 and 1, got {self.confidence}"
            )


def look_ahead_window(look_ahead: int, replications: int) -> int:
    """Consecutive precision hits required at a given replication count.

    The window is ``look_ahead`` up to 100 replications, then grows in
    proportion (``look_ahead * replications / 100``, truncated).
    """
    if replications <= LOOK_AHEAD_SCALE_THRESHOLD:
        return look_ahead
    return int(look_ahead * replications / LOOK_AHEAD_SCALE_THRESHOLD)


@dataclass(frozen=True)
class MetricProgress:
    """Stopping-rule progress for one metric.

    Attributes:
        target_met: Current run of consecutive replications within precision.
        solved: Whether the metric has met precision for long enough.
        solved_at: Replication at which the solving streak began.
    """
    target_met: int = 0
    solved: bool = False
    solved_at: Optional[int] = None


@dataclass(frozen=True)
class ControllerState:
    """Immutable snapshot of a run: phase, replications so far, per-metric progress."""
    phase: ControllerPhase
    replication: int
    progress: Mapping[str, MetricProgress] = field(default_factory=dict)

    @property
    def all_solved(self) -> bool:
        return all(p.solved for p in self.progress.values())

    def unsolved(self) -> List[str]:
        return [name for name, p in self.progress.items() if not p.solved]


def initial_state(config: ReplicationConfig) -> ControllerState:
    """State before any replication has run."""
    return ControllerState(
        phase=ControllerPhase.INITIALIZING,
        replication=0,
        progress={name: MetricProgress() for name in config.tracked_metrics},
    )


def start(config: ReplicationConfig) -> ControllerState:
    """Leave INITIALIZING: run the initial block if one is configured.

    A zero budget ends the run immediately.
    """
    state = initial_state(config)
    if config.initial_replications > 0:
        return replace(state, phase=ControllerPhase.RUNNING_INITIAL)
    return _next_phase(config, replace(state, phase=ControllerPhase.RUNNING_ADAPTIVE))


def evaluate_metric(
    progress: MetricProgress,
    deviation: Optional[float],
    desired_precision: float,
    replication: int,
    required: int,
) -> MetricProgress:
    """Apply the stopping rule to one metric after a new observation.

    Args:
        progress: Progress before this observation.
        deviation: Current relative half-width, or None if the metric
            cannot be evaluated yet.
        desired_precision: Target relative half-width.
        replication: Replication count including this observation.
        required: Look-ahead window at this replication count.

    Returns:
        Updated progress. Solved metrics are returned unchanged.
    """
    if progress.solved:
        return progress

    met = deviation is not None and not math.isnan(deviation) and deviation <= desired_precision
    if not met:
        return MetricProgress()

    target_met = progress.target_met + 1
    if target_met >= required:
        return MetricProgress(
            target_met=target_met,
            solved=True,
            solved_at=replication - target_met + 1,
        )
    return MetricProgress(target_met=target_met)


def step(
    config: ReplicationConfig,
    state: ControllerState,
    deviations: Mapping[str, Optional[float]],
    replications: int = 1,
) -> ControllerState:
    """Advance the run after ``replications`` new observations.

    Precision is evaluated once, using ``deviations`` (the current
    deviation of each metric, None where it cannot be evaluated). Metrics
    missing from ``deviations`` count as not evaluable.

    Args:
        config: Run configuration.
        state: Current state; must be RUNNING_INITIAL or RUNNING_ADAPTIVE.
        deviations: Current deviation per tracked metric.
        replications: Observations folded in since the previous state.

    Returns:
        The next state.

    Raises:
        ValueError: If the state is terminal or not yet started.
    """
    if state.phase.is_terminal or state.phase is ControllerPhase.INITIALIZING:
        raise ValueError(f"Cannot step from phase {state.phase.name}")

    replication = state.replication + replications
    required = look_ahead_window(config.look_ahead, replication)

    progress = {
        name: evaluate_metric(
            metric_progress,
            deviations.get(name),
            config.desired_precision,
            replication,
            required,
        )
        for name, metric_progress in state.progress.items()
    }

    for name, metric_progress in progress.items():
        if metric_progress.solved and not state.progress[name].solved:
            logger.info(
                f"{name} solved at replication {replication} "
                f"(precision first held from replication {metric_progress.solved_at})"
            )

    new_state = ControllerState(
        phase=ControllerPhase.RUNNING_ADAPTIVE,
        replication=replication,
        progress=progress,
    )
    return _next_phase(config, new_state)


def _next_phase(config: ReplicationConfig, state: ControllerState) -> ControllerState:
    if state.all_solved:
        return replace(state, phase=ControllerPhase.SOLVED)
    if state.replication >= config.replication_budget:
        return replace(state, phase=ControllerPhase.BUDGET_EXHAUSTED)
    return state


@dataclass
class ReplicationResult:
    """Outcome of an adaptive replication run.

    Attributes:
        solved_replication_count: Per metric, the replications needed, or
            ``NOT_REACHED`` if precision was not achieved within budget.
        final_replication_count: Replications actually run.
        history: Snapshots of every metric after every replication.
        phase: Terminal phase (SOLVED or BUDGET_EXHAUSTED).
    """
    solved_replication_count: Dict[str, Union[int, str]]
    final_replication_count: int
    history: Tuple[Snapshot, ...]
    phase: ControllerPhase

    @property
    def budget_exhausted(self) -> bool:
        return self.phase is ControllerPhase.BUDGET_EXHAUSTED

    @property
    def unsolved_metrics(self) -> List[str]:
        return [
            name for name, count in self.solved_replication_count.items()
            if count == NOT_REACHED
        ]

    def to_dataframe(self) -> pd.DataFrame:
        """History as a DataFrame, one row per metric per replication."""
        return snapshots_to_dataframe(self.history)

    def summary(self) -> str:
        """Human-readable summary of the run."""
        lines = [
            f"Ran {self.final_replication_count} replications "
            f"({self.phase.value.replace('_', ' ')})"
        ]
        for name, count in self.solved_replication_count.items():
            reached = "not reached" if count == NOT_REACHED else f"{count} replications"
            lines.append(f"  {name}: {reached}")
        return "\n".join(lines)


class AdaptiveReplicationController:
    """Run a simulation until every tracked metric is precise enough.

    Replications in the initial block may be computed in parallel and are
    folded in by increasing index; after that replications run strictly
    one at a time, because each decision to continue depends on the
    previous result. Budget exhaustion is reported on the result, not
    raised. Errors from the collaborator propagate.

    Attributes:
        config: Run configuration (validated on construction).
        collaborator: Object providing run_replication and
            run_replications_parallel.
        parameters: Parameter set passed through to the collaborator.
    """

    def __init__(
        self,
        config: ReplicationConfig,
        collaborator: SimulationCollaborator,
        parameters=None,
    ):
        self.config = config
        self.collaborator = collaborator
        self.parameters = parameters
        self.tabuliser = ReplicationTabuliser(confidence=config.confidence)
        self.state = initial_state(config)

    def select(self) -> ReplicationResult:
        """Run replications until solved or out of budget.

        Returns:
            ReplicationResult with per-metric replication counts and the
            full statistics history.
        """
        config = self.config
        self.tabuliser = ReplicationTabuliser(confidence=config.confidence)
        self.state = start(config)
        logger.info(
            f"Selecting replications for {', '.join(config.tracked_metrics)} "
            f"(precision {config.desired_precision}, look-ahead {config.look_ahead}, "
            f"budget {config.replication_budget})"
        )

        if self.state.phase is ControllerPhase.RUNNING_INITIAL:
            observations = self.collaborator.run_replications_parallel(
                self.parameters, config.initial_replications
            )
            if len(observations) != config.initial_replications:
                raise RuntimeError(
                    f"Expected {config.initial_replications} replications, "
                    f"got {len(observations)}"
                )
            for observation in _by_replication(observations):
                self._record(observation)
            self.state = step(
                config, self.state, self._deviations(),
                replications=config.initial_replications,
            )
            logger.info(
                f"Initial block of {config.initial_replications} replications complete; "
                f"unsolved: {self.state.unsolved() or 'none'}"
            )

        while self.state.phase is ControllerPhase.RUNNING_ADAPTIVE:
            observation = self.collaborator.run_replication(
                self.parameters, self.state.replication + 1
            )
            self._record(observation)
            self.state = step(config, self.state, self._deviations())

        return self._result()

    def _record(self, observation: Mapping[str, float]) -> None:
        for name in self.config.tracked_metrics:
            if name not in observation:
                raise KeyError(f"Replication result is missing metric '{name}'")
            if not math.isfinite(observation[name]):
                # e.g. a mean over a run in which no patient finished
                raise ValueError(
                    f"Replication {observation.get('replication', '?')} returned "
                    f"{observation[name]} for '{name}'; only finite values can be tracked"
                )
            self.tabuliser.update(name, observation[name])

    def _deviations(self) -> Dict[str, Optional[float]]:
        return {
            name: self.tabuliser.deviation(name)
            for name in self.state.unsolved()
        }

    def _result(self) -> ReplicationResult:
        state = self.state
        counts: Dict[str, Union[int, str]] = {
            name: p.solved_at if p.solved else NOT_REACHED
            for name, p in state.progress.items()
        }

        if state.phase is ControllerPhase.BUDGET_EXHAUSTED:
            logger.warning(
                f"Replication budget of {self.config.replication_budget} exhausted; "
                f"precision not reached for: {', '.join(state.unsolved())}"
            )
        else:
            logger.info(f"All metrics solved after {state.replication} replications")

        return ReplicationResult(
            solved_replication_count=counts,
            final_replication_count=state.replication,
            history=self.tabuliser.summary_table(),
            phase=state.phase,
        )


def _by_replication(
    observations: Sequence[Mapping[str, float]],
) -> Sequence[Mapping[str, float]]:
    """Order a block by its ``replication`` key when every result carries one."""
    if all("replication" in observation for observation in observations):
        return sorted(observations, key=lambda observation: observation["replication"])
    return observations
