"""SimPy model layer: nurse consultation processes."""

from simrep.model.processes import run_simulation

__all__ = ["run_simulation"]
