"""SimPy process logic for the nurse consultation model."""

import logging
from typing import Any, Dict, Generator, Union

import simpy

from simrep.core.log import configure_logging
from simrep.core.scenario import Scenario
from simrep.results.collector import ResultsCollector

logger = logging.getLogger(__name__)


def patient_process(
    env: simpy.Environment,
    patient_id: int,
    nurses: simpy.Resource,
    scenario: Scenario,
    results: ResultsCollector,
) -> Generator[simpy.Event, None, None]:
    """Single patient journey: arrive -> queue -> consultation -> depart.

    Patients arriving during the warm-up use the nurses but are not
    recorded.

    Args:
        env: SimPy environment.
        patient_id: Unique identifier for this patient.
        nurses: SimPy Resource representing the nurses.
        scenario: Scenario configuration with parameters and RNGs.
        results: Collector for this replication.

    Yields:
        SimPy events for resource requests and timeouts.
    """
    arrival_time = env.now
    recorded = arrival_time >= scenario.warm_up_period

    if recorded:
        results.record_arrival(patient_id, arrival_time)
    logger.debug(f"Patient {patient_id} arrives at {arrival_time:.3f}")

    with nurses.request() as req:
        yield req

        results.record_resource_state(env.now, nurses.count)
        if recorded:
            wait = results.record_wait(patient_id, env.now)
            logger.debug(f"Patient {patient_id} waited {wait:.3f} for a nurse")

        consult_time = float(scenario.rng_consult.exponential(scenario.mean_n_consult_time))
        yield env.timeout(consult_time)

    results.record_resource_state(env.now, nurses.count)
    if recorded:
        results.record_departure(patient_id, env.now, consult_time)
    logger.debug(f"Patient {patient_id} leaves at {env.now:.3f}")


def arrival_generator(
    env: simpy.Environment,
    nurses: simpy.Resource,
    scenario: Scenario,
    results: ResultsCollector,
) -> Generator[simpy.Event, None, None]:
    """Generate patient arrivals with exponential inter-arrival times.

    Args:
        env: SimPy environment.
        nurses: SimPy Resource representing the nurses.
        scenario: Scenario configuration with parameters and RNGs.
        results: Collector for this replication.

    Yields:
        SimPy timeout events for inter-arrival times.
    """
    patient_id = 0

    while True:
        iat = scenario.rng_arrivals.exponential(scenario.patient_inter)
        yield env.timeout(iat)

        patient_id += 1
        env.process(patient_process(env, patient_id, nurses, scenario, results))


def run_simulation(
    scenario: Scenario,
    run_number: int = 0,
    return_events: bool = False,
) -> Union[Dict[str, float], Dict[str, Any]]:
    """Execute a single simulation run.

    Args:
        scenario: Scenario configuration with all parameters. Its RNG
            streams are consumed, so pass a fresh clone per replication.
        run_number: Replication index, copied into the results.
        return_events: Also return the per-patient and resource records.

    Returns:
        Dictionary of per-run scalar metrics (see
        ``ResultsCollector.compute_metrics``) plus ``replication``.
        With ``return_events``, a dictionary with keys ``arrivals``
        (per-patient DataFrame), ``resources`` (resource state DataFrame)
        and ``run_results`` (the metrics), both frames tagged with a
        ``replication`` column.
    """
    if scenario.log_to_console or scenario.log_to_file:
        # Log file is rewritten on every run
        configure_logging(
            log_to_console=scenario.log_to_console,
            log_to_file=scenario.log_to_file,
            file_path=scenario.file_path,
            level=logging.DEBUG,
        )

    env = simpy.Environment()
    nurses = simpy.Resource(env, capacity=scenario.number_of_nurses)
    results = ResultsCollector(warm_up_period=scenario.warm_up_period)

    env.process(arrival_generator(env, nurses, scenario, results))
    env.run(until=scenario.run_length)

    metrics = results.compute_metrics(scenario.run_length, scenario.number_of_nurses)
    metrics["replication"] = run_number

    logger.debug(
        f"Replication {run_number}: {int(metrics['arrivals'])} arrivals, "
        f"mean wait {metrics['mean_waiting_time_nurse']:.3f}"
    )
    if not return_events:
        return metrics

    arrivals = results.patients_frame(scenario.run_length)
    resources = results.resources_frame(scenario.number_of_nurses)
    arrivals.insert(0, "replication", run_number)
    resources.insert(0, "replication", run_number)
    return {"arrivals": arrivals, "resources": resources, "run_results": metrics}
