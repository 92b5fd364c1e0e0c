"""Tests for simulation model processes."""

import math

import pytest

from simrep.core.scenario import Scenario
from simrep.model.processes import run_simulation

METRICS = [
    "arrivals",
    "mean_waiting_time_nurse",
    "mean_serve_time_nurse",
    "utilisation_nurse",
    "count_unseen_nurse",
    "mean_waiting_time_unseen_nurse",
]


class TestBasicFlow:
    """Test basic simulation flow."""

    def test_returns_all_metrics(self, short_scenario):
        """Every documented metric is a float."""
        results = run_simulation(short_scenario, run_number=2)

        for name in METRICS:
            assert isinstance(results[name], float)
        assert results["replication"] == 2

    def test_arrivals_occur(self, short_scenario):
        """Patients arrive during simulation."""
        assert run_simulation(short_scenario)["arrivals"] > 0

    def test_utilisation_bounded(self, short_scenario):
        """Utilisation is a fraction."""
        results = run_simulation(short_scenario)

        assert 0.0 <= results["utilisation_nurse"] <= 1.0

    def test_no_wait_with_many_nurses(self):
        """Ample nurses mean nobody waits."""
        scenario = Scenario(number_of_nurses=200, data_collection_period=240.0)
        results = run_simulation(scenario)

        assert results["mean_waiting_time_nurse"] == 0.0
        assert results["count_unseen_nurse"] == 0.0

    def test_overloaded_leaves_patients_unseen(self):
        """A single slow nurse leaves a queue at the end."""
        scenario = Scenario(
            number_of_nurses=1, mean_n_consult_time=30.0, data_collection_period=480.0,
        )
        results = run_simulation(scenario)

        assert results["count_unseen_nurse"] > 0
        assert results["mean_waiting_time_unseen_nurse"] > 0
        assert results["utilisation_nurse"] > 0.8

    def test_warm_up_excludes_early_arrivals(self):
        """Arrivals during warm-up are not counted."""
        no_warm = run_simulation(Scenario(data_collection_period=120.0))
        warm = run_simulation(Scenario(warm_up_period=1000.0, data_collection_period=120.0))

        # Same collection length, so similar counts rather than 9x as many
        assert warm["arrivals"] < no_warm["arrivals"] * 3


class TestReproducibility:
    """Test simulation reproducibility."""

    def test_same_seed_same_results(self):
        """Same seed produces identical results."""
        results1 = run_simulation(Scenario(random_seed=42, data_collection_period=120.0))
        results2 = run_simulation(Scenario(random_seed=42, data_collection_period=120.0))

        assert results1 == pytest.approx(results2, nan_ok=True)

    def test_different_seeds_different_results(self):
        """Different seeds produce different results."""
        results1 = run_simulation(Scenario(random_seed=42, data_collection_period=240.0))
        results2 = run_simulation(Scenario(random_seed=43, data_collection_period=240.0))

        assert results1 != results2

    @pytest.mark.parametrize("seed", [1, 2])
    def test_serve_time_near_mean(self, seed):
        """Mean consultation time is close to the configured mean over a long run."""
        scenario = Scenario(random_seed=seed, data_collection_period=20000.0)
        results = run_simulation(scenario)

        assert 8.5 < results["mean_serve_time_nurse"] < 11.5


class TestEventRecords:
    """Test the per-patient and resource records of a run."""

    def test_metrics_only_by_default(self, short_scenario):
        assert "arrivals" in run_simulation(short_scenario)
        assert "run_results" not in run_simulation(short_scenario)

    def test_return_events(self, short_scenario):
        """Records agree with the run's metrics."""
        output = run_simulation(short_scenario, run_number=4, return_events=True)

        arrivals = output["arrivals"]
        resources = output["resources"]
        metrics = output["run_results"]

        assert len(arrivals) == metrics["arrivals"]
        assert set(arrivals["replication"]) == {4}
        assert set(resources["replication"]) == {4}
        assert set(resources["capacity"]) == {short_scenario.number_of_nurses}
        assert resources["server"].max() <= short_scenario.number_of_nurses

        finished = arrivals.dropna(subset=["end_time"])
        assert metrics["mean_waiting_time_nurse"] == pytest.approx(finished["wait_time"].mean())
        assert metrics["mean_serve_time_nurse"] == pytest.approx(finished["serve_length"].mean())
        assert metrics["count_unseen_nurse"] == arrivals["wait_time_unseen"].notna().sum()

    def test_events_do_not_change_metrics(self):
        """Asking for records leaves the metrics unchanged."""
        plain = run_simulation(Scenario(data_collection_period=120.0), run_number=1)
        full = run_simulation(
            Scenario(data_collection_period=120.0), run_number=1, return_events=True,
        )

        assert full["run_results"] == pytest.approx(plain, nan_ok=True)

    def test_unfinished_consultations_excluded(self):
        """Patients still with a nurse at the end are not in the mean wait."""
        scenario = Scenario(
            number_of_nurses=1, mean_n_consult_time=30.0, data_collection_period=480.0,
        )
        output = run_simulation(scenario, return_events=True)
        arrivals = output["arrivals"]

        in_consultation = arrivals[arrivals["start_time"].notna() & arrivals["end_time"].isna()]
        finished = arrivals.dropna(subset=["end_time"])

        assert len(in_consultation) == 1
        assert output["run_results"]["mean_waiting_time_nurse"] == pytest.approx(
            finished["wait_time"].mean()
        )
        assert not math.isnan(output["run_results"]["mean_waiting_time_nurse"])
