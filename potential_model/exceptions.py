"""
Error taxonomy for the Potential Analysis engine.

Fatal input problems (no readings, inconsistent configuration) propagate to the
caller. Numeric convergence failures are fatal for a single evaluation but are
isolated per grid point inside the sensitivity sweep.

"Payback never reached" is NOT an exception: it is reported as the result
state ``potential_model.core.metrics.PAYBACK_NEVER_REACHED`` (``inf``).
"""


class PotentialModelError(Exception):
    """Base class for all errors raised by the engine."""


class InsufficientDataError(PotentialModelError, ValueError):
    """Raised when there are no readings, or a reading is malformed."""


class ConfigurationError(PotentialModelError, ValueError):
    """Raised when rate, incentive or grid parameters are inconsistent."""


class InfeasibleCandidateError(PotentialModelError, ValueError):
    """Raised when a zero-sized candidate is pushed into the cash-flow pipeline."""


class NumericConvergenceError(PotentialModelError, ArithmeticError):
    """
    Raised when the IRR solver fails or does not converge on a bracketed root.

    Distinct from an undefined IRR (no sign change in the cash flows, e.g.
    zero CAPEX, or no NPV sign change on the scanned rate range), which is
    reported as ``None``.
    """


class SweepCancelledError(PotentialModelError):
    """Raised when a sensitivity sweep is cancelled through its token."""
