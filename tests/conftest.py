"""Pytest fixtures for simrep tests."""

from typing import Dict, List, Mapping

import pytest

from simrep.core.scenario import Scenario


@pytest.fixture
def default_seed() -> int:
    """Default random seed for reproducible tests."""
    return 42


@pytest.fixture
def short_scenario(default_seed) -> Scenario:
    """Scenario with a short collection window for quick model runs."""
    return Scenario(data_collection_period=120.0, random_seed=default_seed)


@pytest.fixture
def scenario_values() -> List[float]:
    """Small deterministic stream used across statistics tests."""
    return [10.0, 8.0, 12.0, 9.0, 11.0]


class SequenceCollaborator:
    """Replays fixed per-replication observations instead of simulating.

    Records every call so tests can check what the controller asked for.
    """

    def __init__(self, observations: List[Mapping[str, float]]):
        self.observations = observations
        self.single_calls: List[int] = []
        self.batch_calls: List[int] = []

    def run_replication(self, parameters, replication_index: int) -> Dict[str, float]:
        self.single_calls.append(replication_index)
        return dict(self.observations[replication_index - 1])

    def run_replications_parallel(self, parameters, count: int) -> List[Dict[str, float]]:
        self.batch_calls.append(count)
        return [dict(obs) for obs in self.observations[:count]]


@pytest.fixture
def make_collaborator():
    """Factory building a SequenceCollaborator from per-metric value lists."""

    def _make(**streams: List[float]) -> SequenceCollaborator:
        length = min(len(values) for values in streams.values())
        observations = [
            {name: values[i] for name, values in streams.items()}
            for i in range(length)
        ]
        return SequenceCollaborator(observations)

    return _make
