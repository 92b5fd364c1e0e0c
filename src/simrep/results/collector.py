"""Event logging during simulation runs."""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

PATIENT_COLUMNS = [
    "patient_id", "arrival_time", "start_time", "end_time",
    "wait_time", "serve_length", "wait_time_unseen",
]
RESOURCE_COLUMNS = ["time", "server", "capacity"]


@dataclass
class ResultsCollector:
    """Collect and compute simulation metrics for one replication.

    The model calls the ``record_*`` methods as events happen; only
    patients arriving after the warm-up should be recorded, while resource
    state changes are recorded throughout so utilisation can be measured
    from the start of the collection window.

    Waits and consultation lengths only count towards the means once the
    patient has left, so a consultation still running at the end of the
    run is excluded.

    Attributes:
        warm_up_period: End of the warm-up in minutes (start of the window).
        arrivals: Count of patient arrivals after warm-up.
        wait_times: Queue times (minutes) of patients who finished.
        serve_times: Consultation lengths (minutes) of patients who finished.
        resource_log: List of (time, n_busy) tuples for utilisation.
        queueing: Patients still waiting, keyed by id, valued by arrival time.
        patients: Per-patient event record, keyed by id.
    """

    warm_up_period: float = 0.0
    arrivals: int = 0
    wait_times: List[float] = field(default_factory=list)
    serve_times: List[float] = field(default_factory=list)
    resource_log: List[Tuple[float, int]] = field(default_factory=list)
    queueing: Dict[int, float] = field(default_factory=dict)
    patients: Dict[int, Dict[str, float]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Initialize with starting state."""
        if not self.resource_log:
            self.resource_log = [(0.0, 0)]

    def record_arrival(self, patient_id: int, time: float) -> None:
        """Record a patient arrival and place them in the queue.

        Args:
            patient_id: Unique patient identifier.
            time: Arrival time (minutes).
        """
        self.arrivals += 1
        self.queueing[patient_id] = time
        self.patients[patient_id] = {
            "patient_id": patient_id,
            "arrival_time": time,
            "start_time": math.nan,
            "end_time": math.nan,
            "wait_time": math.nan,
            "serve_length": math.nan,
        }

    def record_wait(self, patient_id: int, time: float) -> float:
        """Record the end of a patient's wait (consultation starting).

        Args:
            patient_id: Patient leaving the queue.
            time: Time the consultation starts.

        Returns:
            The wait in minutes.
        """
        arrival_time = self.queueing.pop(patient_id)
        # Rounded to drop tiny negative values from floating-point error
        wait = round(time - arrival_time, 10)
        record = self.patients[patient_id]
        record["start_time"] = time
        record["wait_time"] = wait
        return wait

    def record_departure(self, patient_id: int, time: float, duration: float) -> None:
        """Record a completed consultation.

        Args:
            patient_id: Patient leaving.
            time: Time the consultation ended.
            duration: Consultation length (minutes).
        """
        record = self.patients[patient_id]
        record["end_time"] = time
        record["serve_length"] = duration
        self.wait_times.append(record["wait_time"])
        self.serve_times.append(duration)

    def record_resource_state(self, time: float, n_busy: int) -> None:
        """Record resource utilisation state change.

        Args:
            time: Simulation time of state change.
            n_busy: Number of resources currently in use.
        """
        self.resource_log.append((time, n_busy))

    def compute_metrics(self, end_time: float, capacity: int) -> Dict[str, float]:
        """Compute all KPIs from collected data.

        Means over an empty group (no patient finished, nobody left
        waiting) are NaN rather than zero.

        Args:
            end_time: Simulation time at which the run stopped (minutes).
            capacity: Number of nurses.

        Returns:
            Dictionary containing:
            - arrivals: Arrivals after warm-up
            - mean_waiting_time_nurse: Mean wait of patients who finished
            - mean_serve_time_nurse: Mean length of completed consultations
            - utilisation_nurse: Time-weighted utilisation over the window
            - count_unseen_nurse: Patients still waiting at the end
            - mean_waiting_time_unseen_nurse: Mean wait so far of those patients
        """
        unseen_waits = [end_time - t for t in self.queueing.values()]

        return {
            "arrivals": float(self.arrivals),
            "mean_waiting_time_nurse": _mean_or_nan(self.wait_times),
            "mean_serve_time_nurse": _mean_or_nan(self.serve_times),
            "utilisation_nurse": self._compute_utilisation(end_time, capacity),
            "count_unseen_nurse": float(len(unseen_waits)),
            "mean_waiting_time_unseen_nurse": _mean_or_nan(unseen_waits),
        }

    def patients_frame(self, end_time: float) -> pd.DataFrame:
        """Per-patient records, one row per recorded arrival.

        Times not reached by the end of the run are NaN.
        ``wait_time_unseen`` holds the wait so far of patients still queueing
        at ``end_time`` and is NaN for everyone else.
        """
        rows = []
        for patient_id, record in self.patients.items():
            row = dict(record)
            row["wait_time_unseen"] = (
                end_time - record["arrival_time"]
                if patient_id in self.queueing else math.nan
            )
            rows.append(row)
        frame = pd.DataFrame(rows, columns=PATIENT_COLUMNS)
        frame["patient_id"] = frame["patient_id"].astype(int)
        return frame

    def resources_frame(self, capacity: int) -> pd.DataFrame:
        """Resource state changes over the whole run, warm-up included."""
        return pd.DataFrame(
            [(time, n_busy, capacity) for time, n_busy in self.resource_log],
            columns=RESOURCE_COLUMNS,
        )

    def _compute_utilisation(self, end_time: float, capacity: int) -> float:
        """Compute time-weighted resource utilisation after warm-up.

        Args:
            end_time: End of the collection window.
            capacity: Resource capacity.

        Returns:
            Utilisation as a fraction (0-1).
        """
        window = end_time - self.warm_up_period
        if not self.resource_log or capacity == 0 or window <= 0:
            return 0.0

        # Stable on time: simultaneous changes keep the order they happened in
        log = sorted(self.resource_log, key=lambda entry: entry[0])

        total_busy_time = 0.0
        for i, (t_start, n_busy) in enumerate(log):
            t_end = log[i + 1][0] if i + 1 < len(log) else end_time
            # Clip each segment to the collection window
            start = max(t_start, self.warm_up_period)
            end = min(t_end, end_time)
            if end > start:
                total_busy_time += n_busy * (end - start)

        return total_busy_time / (capacity * window)


def _mean_or_nan(values: List[float]) -> float:
    return float(np.mean(values)) if values else math.nan
