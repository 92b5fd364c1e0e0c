"""Scenario configuration dataclass."""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np


@dataclass
class Scenario:
    """Parameters for the nurse consultation model.

    Contains everything needed to run one replication, including horizon
    settings, resource counts, service time parameters, how many
    replications to run and on how many cores, and the random seed.

    Attributes:
        patient_inter: Mean patient inter-arrival time in minutes.
        mean_n_consult_time: Mean nurse consultation time in minutes.
        number_of_nurses: Number of nurses available.
        warm_up_period: Warm-up period in minutes (results discarded).
        data_collection_period: Length of the results window in minutes,
            following the warm-up.
        number_of_runs: Default number of replications for batch runs.
        cores: Worker processes for batch runs. 1 runs sequentially,
            -1 uses all available cores but one.
        random_seed: Master seed for reproducibility.
        log_to_console: Stream model events to the console.
        log_to_file: Write model events to ``file_path``.
        file_path: Log file destination.
    """

    # Arrivals and service (minutes)
    patient_inter: float = 4.0
    mean_n_consult_time: float = 10.0

    # Resources
    number_of_nurses: int = 5

    # Horizon settings
    warm_up_period: float = 0.0
    data_collection_period: float = 1440.0  # one day

    # Replications
    number_of_runs: int = 10
    cores: int = 1

    # Reproducibility
    random_seed: int = 42

    # Logging
    log_to_console: bool = False
    log_to_file: bool = False
    file_path: Optional[str] = None

    # RNG streams (created in __post_init__)
    rng_arrivals: np.random.Generator = field(init=False, repr=False, compare=False)
    rng_consult: np.random.Generator = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Validate parameters and create separate RNG streams."""
        self._validate()
        self.rng_arrivals = np.random.default_rng(self.random_seed)
        self.rng_consult = np.random.default_rng(self.random_seed + 1)

    def _validate(self) -> None:
        if self.patient_inter <= 0:
            raise ValueError(f"patient_inter must be positive, got {self.patient_inter}")
        if self.mean_n_consult_time <= 0:
            raise ValueError(
                f"mean_n_consult_time must be positive, got {self.mean_n_consult_time}"
            )
        if self.number_of_nurses < 1:
            raise ValueError(
                f"number_of_nurses must be at least 1, got {self.number_of_nurses}"
            )
        if self.warm_up_period < 0:
            raise ValueError(
                f"warm_up_period must be non-negative, got {self.warm_up_period}"
            )
        if self.data_collection_period <= 0:
            raise ValueError(
                "data_collection_period must be positive, "
                f"got {self.data_collection_period}"
            )
        if self.number_of_runs < 1:
            raise ValueError(
                f"number_of_runs must be at least 1, got {self.number_of_runs}"
            )
        if self.cores == 0 or self.cores < -1:
            raise ValueError(f"cores must be -1 or a positive integer, got {self.cores}")
        if self.log_to_file and not self.file_path:
            raise ValueError("file_path is required when log_to_file is True")

    @property
    def run_length(self) -> float:
        """Total simulated time in minutes (warm-up plus collection)."""
        return self.warm_up_period + self.data_collection_period

    def clone_with_seed(self, new_seed: int) -> "Scenario":
        """Create a copy of this scenario with a different seed.

        Args:
            new_seed: The new random seed to use.

        Returns:
            A new Scenario instance with updated seed and fresh RNGs.
        """
        params = self.to_dict()
        params["random_seed"] = new_seed
        return Scenario(**params)

    def to_dict(self) -> Dict[str, Any]:
        """Constructor parameters as a plain dictionary (no RNG state)."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.init}


def load_scenario(config_path: Path) -> Scenario:
    """Load a scenario from a JSON file.

    Keys missing from the file take the dataclass defaults.

    Args:
        config_path: Path to a .json file.

    Returns:
        Scenario instance.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the suffix is not .json or the file has unknown keys.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Scenario file not found: {config_path}")
    if config_path.suffix != ".json":
        raise ValueError(
            f"Unsupported scenario format: {config_path.suffix}. Use .json"
        )

    with open(config_path) as f:
        data = json.load(f)

    known = {f.name for f in fields(Scenario) if f.init}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown scenario parameters: {', '.join(unknown)}")

    return Scenario(**data)


def save_scenario(scenario: Scenario, config_path: Path) -> None:
    """Save a scenario's parameters to a JSON file.

    Args:
        scenario: Scenario to save.
        config_path: Destination .json path. Parent directories are created.

    Raises:
        ValueError: If the suffix is not .json.
    """
    config_path = Path(config_path)
    if config_path.suffix != ".json":
        raise ValueError(
            f"Unsupported scenario format: {config_path.suffix}. Use .json"
        )

    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        json.dump(scenario.to_dict(), f, indent=2)
