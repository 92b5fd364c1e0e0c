"""Results layer: per-replication event recording and KPI computation."""

from simrep.results.collector import ResultsCollector

__all__ = ["ResultsCollector"]
