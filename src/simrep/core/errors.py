"""Exception types shared across the package."""


class ReplicationConfigError(ValueError):
    """Raised when a replication controller configuration is invalid.

    Always raised before any replication is dispatched.
    """


class InsufficientDataError(ValueError):
    """Raised when a statistic needs more observations than are available.

    Callers treat this as "cannot evaluate yet" rather than a failure.
    """
