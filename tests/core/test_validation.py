"""
Tests for input validation utilities.

Validates every function in core/validation.py:
    - check_array: conversion, dtype coercion, object rejection
    - check_finite: NaN/Inf detection
    - check_ndim / check_1d / check_2d: dimensionality checks
    - check_consistent_length: multi-array length matching
    - check_nonnegative / check_probability: range checks that ignore NaN
    - check_positive_scalar: strictly positive prior parameters
"""

import numpy as np
import pytest

from pyextrap.core.exceptions import DimensionError, ValidationError
from pyextrap.core.validation import (
    check_1d,
    check_2d,
    check_array,
    check_consistent_length,
    check_finite,
    check_ndim,
    check_nonnegative,
    check_positive_scalar,
    check_probability,
)


# ═══════════════════════════════════════════════════════════════════════
# check_array
# ═══════════════════════════════════════════════════════════════════════


class TestCheckArray:
    """check_array converts to ndarray and rejects non-numeric data."""

    def test_list_to_float_array(self):
        result = check_array([1, 2, 3], "times")
        assert np.issubdtype(result.dtype, np.floating)
        np.testing.assert_array_equal(result, [1.0, 2.0, 3.0])

    def test_bool_becomes_indicator(self):
        result = check_array([True, False, True], "event")
        np.testing.assert_array_equal(result, [1.0, 0.0, 1.0])

    def test_rejects_object_dtype(self):
        with pytest.raises(ValidationError, match="object dtype"):
            check_array([None, 1, 2.0], "times")

    def test_rejects_strings(self):
        with pytest.raises(ValidationError, match="non-numeric dtype"):
            check_array(["a", "b"], "times")

    def test_nan_is_kept(self):
        result = check_array([1.0, np.nan], "times")
        assert np.isnan(result[1])


# ═══════════════════════════════════════════════════════════════════════
# Shape checks
# ═══════════════════════════════════════════════════════════════════════


class TestShapeChecks:

    def test_check_finite_reports_counts(self):
        with pytest.raises(ValidationError, match=r"1 NaN, 1 Inf"):
            check_finite(np.array([1.0, np.nan, np.inf]), "X")

    def test_check_finite_passes(self):
        check_finite(np.array([1.0, 2.0]), "X")

    def test_check_ndim(self):
        with pytest.raises(DimensionError, match="expected 2D"):
            check_ndim(np.zeros(3), 2, "X")

    def test_check_1d_and_2d(self):
        check_1d(np.zeros(3), "x")
        check_2d(np.zeros((3, 2)), "X")
        with pytest.raises(DimensionError):
            check_1d(np.zeros((3, 2)), "x")

    def test_consistent_length(self):
        check_consistent_length(np.zeros(3), np.ones(3), names=("time", "event"))
        with pytest.raises(DimensionError, match="time=3, event=4"):
            check_consistent_length(np.zeros(3), np.ones(4), names=("time", "event"))

    def test_consistent_length_name_count(self):
        with pytest.raises(ValueError):
            check_consistent_length(np.zeros(3), names=("a", "b"))


# ═══════════════════════════════════════════════════════════════════════
# Range checks
# ═══════════════════════════════════════════════════════════════════════


class TestRangeChecks:

    def test_nonnegative_ignores_nan(self):
        check_nonnegative(np.array([0.0, np.nan, 2.0]), "time")

    def test_nonnegative_rejects_negative(self):
        with pytest.raises(ValidationError, match="time: must be non-negative"):
            check_nonnegative(np.array([1.0, -0.5]), "time")

    def test_probability_bounds(self):
        check_probability(np.array([0.0, 0.5, 1.0, np.nan]), "pcure")
        with pytest.raises(ValidationError, match=r"pcure: must lie in \[0, 1\]"):
            check_probability(np.array([0.5, 1.2]), "pcure")

    def test_positive_scalar_returns_float(self):
        assert check_positive_scalar(2, "scale") == 2.0

    @pytest.mark.parametrize("value", [0.0, -1.0, np.inf, np.nan])
    def test_positive_scalar_rejects(self, value):
        with pytest.raises(ValidationError, match="scale"):
            check_positive_scalar(value, "scale")

    def test_positive_scalar_rejects_non_number(self):
        with pytest.raises(ValidationError, match="expected a number"):
            check_positive_scalar("wide", "scale")
