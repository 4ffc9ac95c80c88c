"""
Exception hierarchy for pyextrap.

All exceptions inherit from PyExtrapError to allow catching any
library-specific error. Domain-specific exceptions should inherit from
the appropriate base class here.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information

Per-entry numerical failures inside vectorised root-finding or quadrature
are NOT exceptions: they become NaN with one aggregated RuntimeWarning.
"""


class PyExtrapError(Exception):
    """Base exception for all pyextrap errors."""
    pass


class ValidationError(PyExtrapError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks: invalid
    knots, non-positive prior parameters, mismatched covariate names,
    malformed external-count tables.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when array shapes don't match expected dimensions or
    when multiple arrays have inconsistent shapes.
    """
    pass


class NumericalError(PyExtrapError):
    """
    Numerical computation failed.

    Raised for numerically impossible results (e.g. an implied survival
    probability above 1), which signal invalid upstream parameters.

    Attributes:
        quantity: Name of the offending quantity, if known
        value: The offending value, if known
    """

    def __init__(
        self,
        message: str,
        quantity: str | None = None,
        value: float | None = None,
    ):
        super().__init__(message)
        self.quantity = quantity
        self.value = value


class NotPositiveDefiniteError(NumericalError):
    """
    Matrix is not positive definite.

    Raised when an operation requires a positive definite matrix
    (e.g. the Laplace covariance at the posterior mode) but the matrix
    fails this requirement.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        min_eigenvalue: Minimum eigenvalue, if computed
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        min_eigenvalue: float | None = None
    ):
        super().__init__(message, quantity=matrix_name, value=min_eigenvalue)
        self.matrix_name = matrix_name
        self.min_eigenvalue = min_eigenvalue


class ConvergenceError(PyExtrapError):
    """
    Iterative algorithm failed to converge.

    Raised when posterior-mode optimisation fails outright (non-finite
    objective at the returned point).

    Attributes:
        iterations: Number of iterations completed
        final_change: Final parameter or objective change
        reason: Why convergence failed (e.g., 'max_iterations', 'non_finite')
        threshold: The convergence threshold that was not met
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        final_change: float | None = None,
        reason: str | None = None,
        threshold: float | None = None
    ):
        super().__init__(message)
        self.iterations = iterations
        self.final_change = final_change
        self.reason = reason
        self.threshold = threshold
