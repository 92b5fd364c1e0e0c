"""Confidence interval tools for pre-computed replication results.

These recompute statistics from a fixed block of replications rather than
adapting the number of replications as they run (see ``controller``):

- compute_ci(): CI for a list of values
- estimate_required_reps(): project replications needed from a pilot run
- confidence_interval_method(): cumulative CI table for a block of
  replications and the first replication count meeting a precision
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

logger = logging.getLogger(__name__)


def compute_ci(values: Sequence[float], confidence: float = 0.95) -> Dict:
    """Compute confidence interval for a metric.

    Args:
        values: List of metric values from replications.
        confidence: Confidence level (default 0.95 for 95% CI).

    Returns:
        Dictionary containing:
        - mean: Sample mean
        - std: Sample standard deviation
        - se: Standard error
        - ci_lower: Lower bound of CI
        - ci_upper: Upper bound of CI
        - ci_half_width: Half-width of CI
        - n: Sample size
    """
    n = len(values)
    if n < 2:
        mean = float(values[0]) if n == 1 else 0.0
        return {
            "mean": mean,
            "std": 0.0,
            "se": 0.0,
            "ci_lower": mean,
            "ci_upper": mean,
            "ci_half_width": 0.0,
            "n": n,
        }

    arr = np.asarray(values, dtype=float)
    mean = float(np.mean(arr))
    std = float(np.std(arr, ddof=1))
    se = float(stats.sem(arr))

    t_crit = stats.t.ppf((1 + confidence) / 2, df=n - 1)
    half_width = float(t_crit * se)

    return {
        "mean": mean,
        "std": std,
        "se": se,
        "ci_lower": mean - half_width,
        "ci_upper": mean + half_width,
        "ci_half_width": half_width,
        "n": n,
    }


def estimate_required_reps(
    pilot_values: List[float],
    desired_precision: float,
    confidence: float = 0.95,
) -> int:
    """Estimate replications needed to reach a relative precision.

    Uses the pilot's sample mean and variance to solve
    ``t * std / sqrt(n) <= desired_precision * |mean|`` for n.

    Args:
        pilot_values: Metric values from pilot replications.
        desired_precision: Target relative CI half-width (e.g. 0.05).
        confidence: Confidence level.

    Returns:
        Estimated number of replications needed (at least the pilot size),
        or -1 when it cannot be estimated (fewer than two values, zero
        mean, or non-positive precision).
    """
    n = len(pilot_values)
    if n < 2 or desired_precision <= 0:
        return -1

    mean = float(np.mean(pilot_values))
    std = float(np.std(pilot_values, ddof=1))
    if mean == 0:
        return -1

    t_crit = stats.t.ppf((1 + confidence) / 2, df=n - 1)
    target_half_width = desired_precision * abs(mean)

    required_n = (t_crit * std / target_half_width) ** 2
    return max(int(np.ceil(required_n)), n)


@dataclass
class BatchPrecisionResult:
    """Result of the confidence interval method on a block of replications.

    Attributes:
        metric: Metric name as reported (``<metric>_x100`` when rescaled).
        desired_precision: Target relative half-width as a fraction.
        n_reps: First replication count whose percentage deviation is
            within the target, or None if none is.
        table: One row per prefix length with columns replications, data,
            cumulative_mean, stdev, lower_ci, upper_ci, perc_deviation, metric.
        rescaled: Whether values were multiplied by 100 before analysis.
    """
    metric: str
    desired_precision: float
    n_reps: Optional[int]
    table: pd.DataFrame
    rescaled: bool = False

    @property
    def reached(self) -> bool:
        return self.n_reps is not None


def cumulative_statistics(values: Sequence[float], confidence: float = 0.95) -> pd.DataFrame:
    """Recompute mean, std and CI for every prefix of ``values``.

    Each prefix is computed from scratch with ``compute_ci``. Statistics
    needing two or more values are NaN in the first row.

    Args:
        values: Replication results in replication order.
        confidence: Confidence level for the t-based CI.

    Returns:
        DataFrame with columns replications, data, cumulative_mean, stdev,
        lower_ci, upper_ci, perc_deviation.
    """
    arr = np.asarray(values, dtype=float)
    rows = []

    for i in range(1, len(arr) + 1):
        prefix = arr[:i]
        mean = float(np.mean(prefix))

        if i > 1:
            ci = compute_ci(prefix, confidence)
            std, lower, upper = ci["std"], ci["ci_lower"], ci["ci_upper"]
            perc_deviation = ((upper - mean) / abs(mean)) * 100 if mean != 0 else np.inf
        else:
            std = lower = upper = perc_deviation = np.nan

        rows.append({
            "replications": i,
            "data": float(prefix[-1]),
            "cumulative_mean": mean,
            "stdev": std,
            "lower_ci": lower,
            "upper_ci": upper,
            "perc_deviation": perc_deviation,
        })

    return pd.DataFrame(rows, columns=[
        "replications", "data", "cumulative_mean", "stdev",
        "lower_ci", "upper_ci", "perc_deviation",
    ])


def confidence_interval_method(
    replications: Sequence[float],
    desired_precision: float,
    metric: str,
    confidence: float = 0.95,
) -> BatchPrecisionResult:
    """Find the replications needed for a precision, from a fixed block.

    Computes the cumulative mean and CI after each replication in the
    block and reports the first replication count where the percentage
    deviation ``(upper_ci - mean) / |mean| * 100`` is at or below
    ``desired_precision * 100``. No look-ahead is applied.

    Metrics whose overall mean is below 1 in magnitude (proportions such
    as utilisation) are multiplied by 100 first, and reported as
    ``<metric>_x100``.

    Args:
        replications: One result per replication, in replication order.
        desired_precision: Target relative half-width (e.g. 0.05 for 5%).
        metric: Name of the metric.
        confidence: Confidence level.

    Returns:
        BatchPrecisionResult. ``n_reps`` is None, and a warning logged,
        if the block never reaches the precision.

    Raises:
        ValueError: If the block is empty or holds a non-finite value (such
            as the NaN mean of a run with no finished patients), or the
            precision is not positive.

    Example:
        >>> frame = multiple_replications(Scenario(), n_reps=20)
        >>> result = confidence_interval_method(
        ...     frame["mean_waiting_time_nurse"], desired_precision=0.1,
        ...     metric="mean_waiting_time_nurse",
        ... )
        >>> result.n_reps
    """
    values = np.asarray(replications, dtype=float)
    if len(values) == 0:
        raise ValueError("replications must contain at least one value")
    if not np.all(np.isfinite(values)):
        raise ValueError(f"{metric}: replications must all be finite, got {values.tolist()}")
    if not desired_precision > 0:
        raise ValueError(f"desired_precision must be positive, got {desired_precision}")

    rescaled = bool(abs(np.mean(values)) < 1)
    if rescaled:
        values = values * 100
        metric = f"{metric}_x100"

    table = cumulative_statistics(values, confidence)
    table["metric"] = metric

    within = table[table["perc_deviation"] <= desired_precision * 100]
    if within.empty:
        logger.warning(
            f"{metric}: the {len(values)} replications do not reach the "
            f"desired precision of {desired_precision:.1%}"
        )
        n_reps = None
    else:
        n_reps = int(within["replications"].iloc[0])

    return BatchPrecisionResult(
        metric=metric,
        desired_precision=desired_precision,
        n_reps=n_reps,
        table=table,
        rescaled=rescaled,
    )


def confidence_interval_methods(
    results: pd.DataFrame,
    desired_precision: float,
    metrics: Sequence[str],
    confidence: float = 0.95,
) -> Dict[str, BatchPrecisionResult]:
    """Run the confidence interval method for several metric columns.

    Args:
        results: Replication results, one row per replication (as returned
            by ``multiple_replications``), ordered by replication.
        desired_precision: Target relative half-width.
        metrics: Columns to analyse.
        confidence: Confidence level.

    Returns:
        Dictionary mapping each input metric name to its result.
    """
    if "replication" in results.columns:
        results = results.sort_values("replication")
    return {
        metric: confidence_interval_method(
            results[metric].to_numpy(), desired_precision, metric, confidence
        )
        for metric in metrics
    }
