"""Tests for ResultsCollector."""

import math

import pytest

from simrep.results.collector import ResultsCollector


class TestResultsCollector:
    """Test ResultsCollector dataclass."""

    def test_create_collector(self):
        """Can create empty collector."""
        collector = ResultsCollector()

        assert collector.arrivals == 0
        assert collector.wait_times == []
        assert collector.serve_times == []
        assert collector.resource_log == [(0.0, 0)]

    def test_record_arrival_queues_patient(self):
        """Arrival increments count and joins the queue."""
        collector = ResultsCollector()

        collector.record_arrival(1, 5.0)
        collector.record_arrival(2, 6.0)

        assert collector.arrivals == 2
        assert collector.queueing == {1: 5.0, 2: 6.0}

    def test_record_wait(self):
        """Wait is measured from arrival and the patient leaves the queue."""
        collector = ResultsCollector()
        collector.record_arrival(1, 10.0)

        wait = collector.record_wait(1, 15.5)

        assert wait == 5.5
        assert collector.patients[1]["wait_time"] == 5.5
        assert 1 not in collector.queueing

    def test_wait_counts_only_after_departure(self):
        """A wait joins the mean only once the consultation has finished."""
        collector = ResultsCollector()
        collector.record_arrival(1, 10.0)
        collector.record_wait(1, 15.5)

        assert collector.wait_times == []

        collector.record_departure(1, 20.0, 4.5)

        assert collector.wait_times == [5.5]
        assert collector.serve_times == [4.5]

    def test_wait_rounding(self):
        """Floating-point noise does not produce negative waits."""
        collector = ResultsCollector()
        collector.record_arrival(1, 0.1 + 0.2)

        assert collector.record_wait(1, 0.3) == 0.0


class TestMetricsComputation:
    """Test metrics computation."""

    def test_means(self):
        """Mean wait and serve time from recorded values."""
        collector = ResultsCollector()
        for pid, (arrive, start) in enumerate([(0.0, 0.0), (1.0, 5.0), (2.0, 10.0)]):
            collector.record_arrival(pid, arrive)
            collector.record_wait(pid, start)
        for pid, duration in enumerate([5.0, 10.0, 15.0]):
            collector.record_departure(pid, 50.0, duration)

        metrics = collector.compute_metrics(end_time=100.0, capacity=2)

        assert metrics["arrivals"] == 3.0
        assert metrics["mean_waiting_time_nurse"] == pytest.approx(4.0)
        assert metrics["mean_serve_time_nurse"] == 10.0

    def test_unseen_patients(self):
        """Patients still queueing at the end are counted with their wait so far."""
        collector = ResultsCollector()
        collector.record_arrival(1, 80.0)
        collector.record_arrival(2, 90.0)

        metrics = collector.compute_metrics(end_time=100.0, capacity=1)

        assert metrics["count_unseen_nurse"] == 2.0
        assert metrics["mean_waiting_time_unseen_nurse"] == 15.0

    def test_patient_still_in_consultation_excluded(self):
        """Waits of patients still being seen at the end do not count."""
        collector = ResultsCollector()
        collector.record_arrival(1, 0.0)
        collector.record_wait(1, 4.0)
        collector.record_arrival(2, 5.0)
        collector.record_wait(2, 5.0)
        collector.record_departure(2, 8.0, 3.0)

        metrics = collector.compute_metrics(end_time=10.0, capacity=1)

        assert metrics["mean_waiting_time_nurse"] == 0.0
        assert metrics["mean_serve_time_nurse"] == 3.0
        assert metrics["count_unseen_nurse"] == 0.0

    def test_empty_collector_metrics(self):
        """Means over no patients are NaN; counts are zero."""
        metrics = ResultsCollector().compute_metrics(end_time=100.0, capacity=2)

        assert metrics["arrivals"] == 0.0
        assert math.isnan(metrics["mean_waiting_time_nurse"])
        assert math.isnan(metrics["mean_serve_time_nurse"])
        assert metrics["count_unseen_nurse"] == 0.0
        assert math.isnan(metrics["mean_waiting_time_unseen_nurse"])
        assert metrics["utilisation_nurse"] == 0.0

    def test_no_finished_patients(self):
        """Patients seen but not finished leave the means as NaN."""
        collector = ResultsCollector()
        collector.record_arrival(1, 0.0)
        collector.record_wait(1, 1.0)

        metrics = collector.compute_metrics(end_time=10.0, capacity=1)

        assert metrics["arrivals"] == 1.0
        assert math.isnan(metrics["mean_waiting_time_nurse"])
        assert math.isnan(metrics["mean_serve_time_nurse"])


class TestUtilisationComputation:
    """Test utilisation calculation."""

    def test_utilisation_simple(self):
        """Resource busy for half the run."""
        collector = ResultsCollector(resource_log=[(0.0, 1), (50.0, 0)])

        metrics = collector.compute_metrics(end_time=100.0, capacity=1)

        assert metrics["utilisation_nurse"] == 0.5

    def test_utilisation_full(self):
        """Full utilisation (always busy)."""
        collector = ResultsCollector(resource_log=[(0.0, 2)])

        metrics = collector.compute_metrics(end_time=100.0, capacity=2)

        assert metrics["utilisation_nurse"] == 1.0

    def test_utilisation_partial_capacity(self):
        """1 of 2 nurses busy for entire run."""
        collector = ResultsCollector(resource_log=[(0.0, 1)])

        metrics = collector.compute_metrics(end_time=100.0, capacity=2)

        assert metrics["utilisation_nurse"] == 0.5

    def test_utilisation_after_warm_up(self):
        """Only time after the warm-up counts."""
        collector = ResultsCollector(
            warm_up_period=50.0, resource_log=[(0.0, 1), (100.0, 0)],
        )

        metrics = collector.compute_metrics(end_time=150.0, capacity=1)

        assert metrics["utilisation_nurse"] == 0.5

    def test_utilisation_unsorted_log(self):
        """Log order does not matter."""
        collector = ResultsCollector(resource_log=[(50.0, 0), (0.0, 1)])

        metrics = collector.compute_metrics(end_time=100.0, capacity=1)

        assert metrics["utilisation_nurse"] == 0.5

    def test_simultaneous_changes_keep_order(self):
        """The last change at a shared timestamp sets the following state."""
        collector = ResultsCollector(resource_log=[(0.0, 0), (5.0, 3), (5.0, 1)])

        metrics = collector.compute_metrics(end_time=10.0, capacity=3)

        assert metrics["utilisation_nurse"] == pytest.approx(5.0 / 30.0)


class TestEventRecords:
    """Test per-patient and resource records."""

    def test_patients_frame(self):
        """One row per patient with NaN for events not reached."""
        collector = ResultsCollector()
        collector.record_arrival(1, 0.0)
        collector.record_wait(1, 2.0)
        collector.record_departure(1, 7.0, 5.0)
        collector.record_arrival(2, 1.0)
        collector.record_wait(2, 7.0)
        collector.record_arrival(3, 8.0)

        frame = collector.patients_frame(end_time=10.0)

        assert list(frame["patient_id"]) == [1, 2, 3]
        assert list(frame.columns) == [
            "patient_id", "arrival_time", "start_time", "end_time",
            "wait_time", "serve_length", "wait_time_unseen",
        ]
        first, second, third = frame.to_dict("records")
        assert first["wait_time"] == 2.0
        assert first["serve_length"] == 5.0
        assert math.isnan(first["wait_time_unseen"])
        assert second["wait_time"] == 6.0
        assert math.isnan(second["end_time"])
        assert math.isnan(third["start_time"])
        assert third["wait_time_unseen"] == 2.0

    def test_resources_frame(self):
        """Resource log becomes time, server, capacity rows."""
        collector = ResultsCollector()
        collector.record_resource_state(1.0, 1)
        collector.record_resource_state(4.0, 0)

        frame = collector.resources_frame(capacity=2)

        assert list(frame.columns) == ["time", "server", "capacity"]
        assert list(frame["server"]) == [0, 1, 0]
        assert set(frame["capacity"]) == {2}
