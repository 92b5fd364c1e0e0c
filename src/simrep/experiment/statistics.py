"""Online (Welford) statistics for a single metric stream.

The accumulator is an immutable value: ``update_accumulator`` returns a new
accumulator rather than mutating the old one, so a caller always holds a
consistent snapshot and no history of observations is retained.

Example:
    >>> acc = MetricAccumulator("mean_waiting_time_nurse")
    >>> for x in [10, 8, 12, 9, 11]:
    ...     acc = acc.update(x)
    >>> acc.n, acc.mean, acc.variance()
    (5, 10.0, 2.5)
"""

import math
from dataclasses import dataclass, replace

from scipy import stats

from simrep.core.errors import InsufficientDataError

# Means closer to zero than this are treated as zero when computing deviation
ZERO_MEAN_TOLERANCE = 1e-12


@dataclass(frozen=True)
class MetricAccumulator:
    """Running mean and sum of squared deviations for one metric.

    Attributes:
        metric: Metric name.
        n: Number of observations folded in.
        mean: Running mean (meaningless while n == 0).
        m2: Running sum of squared deviations from the mean.
    """

    metric: str = ""
    n: int = 0
    mean: float = 0.0
    m2: float = 0.0

    def update(self, x: float) -> "MetricAccumulator":
        """Return the accumulator after folding in observation ``x``."""
        return update_accumulator(self, x)

    def get_mean(self) -> float:
        """Running mean. Needs at least one observation."""
        if self.n < 1:
            raise InsufficientDataError(f"{self.metric}: mean needs at least 1 observation")
        return self.mean

    def variance(self) -> float:
        """Sample variance (n - 1 denominator)."""
        self._require_two()
        return self.m2 / (self.n - 1)

    def std_dev(self) -> float:
        return math.sqrt(self.variance())

    def std_error(self) -> float:
        return self.std_dev() / math.sqrt(self.n)

    def half_width(self, confidence: float = 0.95) -> float:
        """Half-width of the two-sided t-distribution confidence interval.

        Args:
            confidence: Confidence level (default 0.95 for 95% CI).
        """
        self._require_two()
        t_crit = stats.t.ppf((1 + confidence) / 2, df=self.n - 1)
        return float(t_crit) * self.std_error()

    def ci_lower(self, confidence: float = 0.95) -> float:
        return self.mean - self.half_width(confidence)

    def ci_upper(self, confidence: float = 0.95) -> float:
        return self.mean + self.half_width(confidence)

    def deviation(self, confidence: float = 0.95) -> float:
        """Relative half-width of the CI: ``half_width / |mean|``.

        Returns ``inf`` when the mean is zero, so a zero-mean metric can
        never meet a precision target.
        """
        half_width = self.half_width(confidence)
        if abs(self.mean) <= ZERO_MEAN_TOLERANCE:
            return math.inf
        return half_width / abs(self.mean)

    def _require_two(self) -> None:
        if self.n < 2:
            raise InsufficientDataError(
                f"{self.metric}: needs at least 2 observations, have {self.n}"
            )


def update_accumulator(acc: MetricAccumulator, x: float) -> MetricAccumulator:
    """Fold one observation into an accumulator using Welford's recurrences.

    Args:
        acc: Current accumulator state.
        x: New observation.

    Returns:
        A new accumulator with ``n`` incremented by one.

    Raises:
        ValueError: If ``x`` is not a finite number.
    """
    x = float(x)
    if not math.isfinite(x):
        raise ValueError(f"{acc.metric}: observation must be finite, got {x}")

    n = acc.n + 1
    delta = x - acc.mean
    mean = acc.mean + delta / n
    delta2 = x - mean
    return replace(acc, n=n, mean=mean, m2=acc.m2 + delta * delta2)
