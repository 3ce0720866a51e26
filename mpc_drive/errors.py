"""
Error taxonomy of the controller.

InvalidTelemetry and UnderdeterminedFit skip the tick and hold the previous
command; SolverDidNotConverge falls back to the previous command and counts
towards ControllerFault.
"""


class ControllerError(Exception):
    """Base class for every error raised by the control pipeline."""


class InvalidTelemetry(ControllerError):
    """Malformed or out-of-range telemetry field."""


class UnderdeterminedFit(ControllerError):
    """Not enough distinct waypoints for the requested polynomial order."""

    def __init__(self, n_distinct, order, message=None):
        super().__init__(
            message
            or f"need more than {order} distinct x values for an order-{order} fit, "
            f"got {n_distinct}"
        )
        self.n_distinct = n_distinct
        self.order = order


class SolverDidNotConverge(ControllerError):
    """IPOPT stopped without an acceptable solution."""

    def __init__(self, status, message=None):
        super().__init__(message or f"solver did not converge: {status}")
        self.status = status


class ControllerFault(ControllerError):
    """Too many consecutive solver failures; the controller needs a reset."""

    def __init__(self, failures):
        super().__init__(
            f"solver failed on {failures} consecutive ticks, controller halted"
        )
        self.failures = failures
