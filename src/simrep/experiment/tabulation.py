"""Per-replication history of running statistics."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pandas as pd

from simrep.core.errors import InsufficientDataError
from simrep.experiment.statistics import MetricAccumulator, update_accumulator


@dataclass(frozen=True)
class Snapshot:
    """Running statistics for one metric straight after one observation.

    Statistics that need at least two observations are None until then.
    """
    replication_index: int
    metric_name: str
    mean: float
    std_dev: Optional[float]
    ci_lower: Optional[float]
    ci_upper: Optional[float]
    deviation: Optional[float]


@dataclass
class MetricHistory:
    """Accumulator and snapshot list for one metric, kept together.

    ``len(snapshots) == accumulator.n`` always holds.
    """
    accumulator: MetricAccumulator
    snapshots: List[Snapshot] = field(default_factory=list)


def take_snapshot(acc: MetricAccumulator, confidence: float = 0.95) -> Snapshot:
    """Summarise an accumulator's current state as a Snapshot."""
    try:
        std_dev = acc.std_dev()
        half_width = acc.half_width(confidence)
        ci_lower, ci_upper = acc.mean - half_width, acc.mean + half_width
        deviation = acc.deviation(confidence)
    except InsufficientDataError:
        std_dev = ci_lower = ci_upper = deviation = None

    return Snapshot(
        replication_index=acc.n,
        metric_name=acc.metric,
        mean=acc.get_mean(),
        std_dev=std_dev,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
        deviation=deviation,
    )


class ReplicationTabuliser:
    """Record running statistics after every observation, per metric.

    Not thread-safe: a tabuliser has a single writer, the controller
    that owns it.

    Attributes:
        confidence: Confidence level used for every snapshot's CI.
    """

    def __init__(self, confidence: float = 0.95):
        self.confidence = confidence
        self._histories: Dict[str, MetricHistory] = {}
        self._order: List[Snapshot] = []

    def update(self, metric_name: str, value: float) -> Snapshot:
        """Fold ``value`` into the metric's accumulator and record a snapshot.

        The metric's history is created on first use.

        Args:
            metric_name: Metric the observation belongs to.
            value: New observation.

        Returns:
            The snapshot appended for this observation.
        """
        history = self._histories.get(metric_name)
        if history is None:
            history = MetricHistory(accumulator=MetricAccumulator(metric_name))
            self._histories[metric_name] = history

        history.accumulator = update_accumulator(history.accumulator, value)
        snapshot = take_snapshot(history.accumulator, self.confidence)
        history.snapshots.append(snapshot)
        self._order.append(snapshot)
        return snapshot

    @property
    def metrics(self) -> Tuple[str, ...]:
        """Metric names in order of first update."""
        return tuple(self._histories)

    def accumulator(self, metric_name: str) -> MetricAccumulator:
        """Current accumulator for a metric (empty if never updated)."""
        history = self._histories.get(metric_name)
        return history.accumulator if history else MetricAccumulator(metric_name)

    def history(self, metric_name: str) -> Tuple[Snapshot, ...]:
        """Snapshots for a single metric, oldest first."""
        history = self._histories.get(metric_name)
        return tuple(history.snapshots) if history else ()

    def deviation(self, metric_name: str) -> Optional[float]:
        """Latest deviation for a metric, or None if it cannot be evaluated yet."""
        snapshots = self.history(metric_name)
        return snapshots[-1].deviation if snapshots else None

    def summary_table(self) -> Tuple[Snapshot, ...]:
        """All snapshots across metrics, in the order they were recorded."""
        return tuple(self._order)

    def to_dataframe(self) -> pd.DataFrame:
        """Return the summary table as a DataFrame, one row per snapshot."""
        return snapshots_to_dataframe(self._order)


SNAPSHOT_COLUMNS = [
    "replication_index", "metric_name", "mean", "std_dev",
    "ci_lower", "ci_upper", "deviation",
]


def snapshots_to_dataframe(snapshots) -> pd.DataFrame:
    """Build a DataFrame from snapshots; None becomes NaN."""
    rows = [
        {name: getattr(snap, name) for name in SNAPSHOT_COLUMNS}
        for snap in snapshots
    ]
    frame = pd.DataFrame(rows, columns=SNAPSHOT_COLUMNS)
    stat_columns = ["mean", "std_dev", "ci_lower", "ci_upper", "deviation"]
    frame[stat_columns] = frame[stat_columns].astype(float)
    frame["replication_index"] = frame["replication_index"].astype(int)
    return frame
