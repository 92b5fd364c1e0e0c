"""Single and batch simulation runners."""

import logging
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional, Union

import pandas as pd

from simrep.core.scenario import Scenario
from simrep.model.processes import run_simulation

logger = logging.getLogger(__name__)


def run_replication(
    scenario: Scenario,
    replication_index: int,
    return_events: bool = False,
) -> Dict[str, Any]:
    """Run one replication of a scenario.

    The replication seed is ``scenario.random_seed + replication_index``,
    so results depend only on the base seed and the index, never on which
    worker ran it.

    Args:
        scenario: Base scenario configuration.
        replication_index: Replication number (1-based).
        return_events: Also return per-patient and resource records (see
            ``run_simulation``).

    Returns:
        Dictionary of per-run metrics, or of the three result tables.
    """
    rep_scenario = scenario.clone_with_seed(scenario.random_seed + replication_index)
    return run_simulation(
        rep_scenario, run_number=replication_index, return_events=return_events
    )


def resolve_cores(cores: int) -> int:
    """Translate a ``cores`` setting into a worker count.

    Args:
        cores: 1 for sequential, -1 for all available cores but one,
            otherwise the number of workers.

    Returns:
        Number of workers (at least 1).
    """
    if cores == -1:
        return max((os.cpu_count() or 1) - 1, 1)
    if cores < 1:
        raise ValueError(f"cores must be -1 or a positive integer, got {cores}")
    return cores


def run_replications_parallel(
    scenario: Scenario,
    count: int,
    cores: Optional[int] = None,
    start_index: int = 1,
    return_events: bool = False,
) -> List[Dict[str, Any]]:
    """Run a block of independent replications, in parallel where configured.

    Futures are keyed by replication index and the results re-sorted by
    index before returning, so the output order never depends on which
    worker finished first.

    Args:
        scenario: Base scenario configuration.
        count: Number of replications to run.
        cores: Worker count (see ``resolve_cores``). Defaults to
            ``scenario.cores``.
        start_index: Index of the first replication in the block.
        return_events: Passed to ``run_replication``.

    Returns:
        List of per-run metric dictionaries ordered by replication index.
    """
    if count <= 0:
        return []

    n_workers = resolve_cores(scenario.cores if cores is None else cores)
    indices = range(start_index, start_index + count)

    if n_workers == 1:
        return [run_replication(scenario, i, return_events) for i in indices]

    logger.info(f"Running {count} replications on {n_workers} workers")
    results: Dict[int, Dict[str, Any]] = {}
    with ProcessPoolExecutor(max_workers=n_workers) as executor:
        futures = {
            executor.submit(run_replication, scenario, i, return_events): i
            for i in indices
        }
        for future in as_completed(futures):
            results[futures[future]] = future.result()

    return [results[i] for i in sorted(results)]


class ScenarioRunner:
    """Simulation collaborator backed by the nurse consultation model.

    Exposes the two calls the adaptive controller consumes. The parameter
    set passed to each call is a ``Scenario``.

    Attributes:
        cores: Worker count for batch runs; None defers to ``scenario.cores``.
    """

    def __init__(self, cores: Optional[int] = None):
        self.cores = cores

    def run_replication(self, parameters: Scenario, replication_index: int) -> Dict[str, float]:
        return run_replication(parameters, replication_index)

    def run_replications_parallel(
        self, parameters: Scenario, count: int
    ) -> List[Dict[str, float]]:
        return run_replications_parallel(parameters, count, cores=self.cores)


def multiple_replications(
    scenario: Scenario,
    n_reps: Optional[int] = None,
    metric_names: Optional[List[str]] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    return_events: bool = False,
) -> Union[pd.DataFrame, Dict[str, pd.DataFrame]]:
    """Run multiple replications and collect specified metrics.

    Each replication uses a different random seed (base_seed + rep_number)
    to ensure independent samples. Runs sequentially when a progress
    callback is given, otherwise honours ``scenario.cores``.

    Args:
        scenario: Base scenario configuration.
        n_reps: Number of replications to run. Defaults to
            ``scenario.number_of_runs``.
        metric_names: Metrics to keep. If None, keeps all.
        progress_callback: Optional callback(current_rep, total_reps) for
            progress reporting.
        return_events: Also return the per-patient and resource records
            of every replication.

    Returns:
        DataFrame with a ``replication`` column and one column per metric,
        one row per replication. With ``return_events``, a dictionary of
        three DataFrames: ``arrivals`` and ``resources`` concatenated
        across replications, and ``run_results`` (the metrics frame).
    """
    if n_reps is None:
        n_reps = scenario.number_of_runs

    if progress_callback is None:
        outputs = run_replications_parallel(scenario, n_reps, return_events=return_events)
    else:
        outputs = []
        for rep in range(1, n_reps + 1):
            outputs.append(run_replication(scenario, rep, return_events))
            progress_callback(rep, n_reps)

    rows = [output["run_results"] for output in outputs] if return_events else outputs
    frame = pd.DataFrame(rows)
    if metric_names is not None:
        missing = [name for name in metric_names if name not in frame.columns]
        if missing:
            raise KeyError(f"Unknown metrics: {', '.join(missing)}")
        frame = frame[["replication"] + list(metric_names)]
    frame = frame.reset_index(drop=True)

    if not return_events:
        return frame

    return {
        "arrivals": _concat([output["arrivals"] for output in outputs]),
        "resources": _concat([output["resources"] for output in outputs]),
        "run_results": frame,
    }


def _concat(frames: List[pd.DataFrame]) -> pd.DataFrame:
    if not frames:
        return pd.DataFrame()
    return pd.concat(frames, ignore_index=True)
