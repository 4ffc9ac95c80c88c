"""
Tests for the pyextrap exception hierarchy.

Validates:
    - Inheritance chain (all exceptions catchable via PyExtrapError)
    - Diagnostic attributes on NumericalError, NotPositiveDefiniteError,
      ConvergenceError
    - Default attribute values (None for optional attributes)
"""

import pytest

from pyextrap.core.exceptions import (
    ConvergenceError,
    DimensionError,
    NotPositiveDefiniteError,
    NumericalError,
    PyExtrapError,
    ValidationError,
)


# ═══════════════════════════════════════════════════════════════════════
# Inheritance hierarchy
# ═══════════════════════════════════════════════════════════════════════


class TestInheritance:
    """Every exception is catchable via PyExtrapError."""

    def test_validation_error_is_pyextrap_error(self):
        with pytest.raises(PyExtrapError):
            raise ValidationError("bad knots")

    def test_dimension_error_is_validation_error(self):
        with pytest.raises(ValidationError):
            raise DimensionError("wrong shape")

    def test_numerical_error_is_pyextrap_error(self):
        with pytest.raises(PyExtrapError):
            raise NumericalError("survival above 1")

    def test_not_positive_definite_is_numerical_error(self):
        with pytest.raises(NumericalError):
            raise NotPositiveDefiniteError("not PD")

    def test_convergence_error_is_not_numerical_error(self):
        err = ConvergenceError("did not converge", iterations=100)
        assert isinstance(err, PyExtrapError)
        assert not isinstance(err, NumericalError)


# ═══════════════════════════════════════════════════════════════════════
# Diagnostic attributes
# ═══════════════════════════════════════════════════════════════════════


class TestAttributes:

    def test_numerical_error_defaults(self):
        err = NumericalError("failed")
        assert err.quantity is None
        assert err.value is None
        assert str(err) == "failed"

    def test_numerical_error_carries_value(self):
        err = NumericalError("survival above 1", quantity="survival", value=1.5)
        assert err.quantity == "survival"
        assert err.value == 1.5

    def test_not_positive_definite_attributes(self):
        err = NotPositiveDefiniteError("bad", matrix_name="hessian", min_eigenvalue=-0.2)
        assert err.matrix_name == "hessian"
        assert err.min_eigenvalue == -0.2
        # Mirrored into the NumericalError fields
        assert err.quantity == "hessian"
        assert err.value == -0.2

    def test_convergence_error_attributes(self):
        err = ConvergenceError(
            "stopped", iterations=50, final_change=1e-3,
            reason="max_iterations", threshold=1e-8,
        )
        assert err.iterations == 50
        assert err.final_change == 1e-3
        assert err.reason == "max_iterations"
        assert err.threshold == 1e-8

    def test_convergence_error_optional_defaults(self):
        err = ConvergenceError("stopped", iterations=3)
        assert err.final_change is None
        assert err.reason is None
        assert err.threshold is None
