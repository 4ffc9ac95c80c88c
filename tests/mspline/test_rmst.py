"""
Tests for restricted mean survival time.

Validates:
    - Closed form under a constant hazard, across the upper knot
    - RMST(inf) equals the mean, and is infinite under cure
    - Monotone in the horizon, bounded by the horizon
    - Conditional RMST given survival to start
    - Background hazard tables
    - Divergent integrals give NaN with one aggregated warning
"""

import warnings

import numpy as np
import pytest
from numpy.testing import assert_allclose

from pyextrap.core.compute.tolerances import INVERSION
from pyextrap.core.exceptions import ValidationError
from pyextrap.mspline import (
    BackgroundHazard,
    mean_survmspline,
    psurvmspline,
    rmst_survmspline,
    uniform_weights,
)


@pytest.fixture
def constant(knots_0125):
    """Coefficients and log scale for a constant hazard of 0.4."""
    return uniform_weights(knots_0125), np.log(0.4 * 5.0)


class TestRMST:

    def test_closed_form(self, knots_0125, constant):
        w, alpha = constant
        t = np.array([1.0, 3.0, 8.0, 20.0])
        assert_allclose(
            rmst_survmspline(t, alpha, w, knots_0125),
            (1.0 - np.exp(-0.4 * t)) / 0.4, rtol=1e-7,
        )

    def test_mean_closed_form(self, knots_0125, constant):
        w, alpha = constant
        assert_allclose(mean_survmspline(alpha, w, knots_0125), 2.5, rtol=1e-7)

    def test_infinite_horizon_is_mean(self, knots_0125, coefs_0125):
        assert_allclose(
            rmst_survmspline(np.inf, 0.0, coefs_0125, knots_0125),
            mean_survmspline(0.0, coefs_0125, knots_0125),
        )

    def test_monotone_and_bounded(self, knots_0125, coefs_0125):
        t = np.linspace(0.5, 12.0, 12)
        r = rmst_survmspline(t, 0.0, coefs_0125, knots_0125)
        assert np.all(np.diff(r) > 0)
        assert np.all(r < t)

    def test_matches_trapezoid(self, knots_0125, coefs_0125):
        grid = np.linspace(0.0, 7.0, 20001)
        s = psurvmspline(grid, 0.0, coefs_0125, knots_0125, lower_tail=False)
        approx = np.sum((s[1:] + s[:-1]) / 2 * np.diff(grid))
        assert_allclose(rmst_survmspline(7.0, 0.0, coefs_0125, knots_0125), approx,
                        rtol=INVERSION.rtol, atol=INVERSION.atol)

    def test_non_positive_horizon(self, knots_0125, coefs_0125):
        r = rmst_survmspline([0.0, -1.0], 0.0, coefs_0125, knots_0125)
        assert_allclose(r, 0.0)

    def test_conditional_memoryless(self, knots_0125, constant):
        w, alpha = constant
        r = rmst_survmspline(5.0, alpha, w, knots_0125, start=2.0)
        assert_allclose(r, rmst_survmspline(3.0, alpha, w, knots_0125), rtol=1e-7)

    def test_start_recycles_other_arguments(self, knots_0125, constant):
        w, alpha = constant
        r = rmst_survmspline(5.0, alpha, w, knots_0125, start=[0.0, 1.0, 2.0])
        assert r.shape == (3,)
        assert np.all(np.diff(r) < 0)
        # Constant hazard: conditional RMST over [s, 5] equals RMST(5 - s)
        assert_allclose(r, (1.0 - np.exp(-0.4 * np.array([5.0, 4.0, 3.0]))) / 0.4,
                        rtol=INVERSION.rtol, atol=INVERSION.atol)


class TestRMSTCureAndBackground:

    def test_cure_mean_is_infinite(self, knots_0125, coefs_0125):
        assert np.isinf(mean_survmspline(0.0, coefs_0125, knots_0125, pcure=0.2)[0])

    def test_cure_restricted_is_finite(self, knots_0125, coefs_0125):
        r = rmst_survmspline(10.0, 0.0, coefs_0125, knots_0125, pcure=0.2)
        base = rmst_survmspline(10.0, 0.0, coefs_0125, knots_0125)
        assert r[0] > base[0]

    def test_background_mean(self, knots_0125, constant):
        w, alpha = constant
        table = BackgroundHazard.create([0.0], [0.1])
        assert_allclose(mean_survmspline(alpha, w, knots_0125, backhaz=table), 2.0,
                        rtol=1e-7)

    def test_background_makes_cure_mean_finite(self, knots_0125, coefs_0125):
        table = BackgroundHazard.create([0.0], [0.1])
        m = mean_survmspline(0.0, coefs_0125, knots_0125, pcure=0.2, backhaz=table)
        assert np.isfinite(m[0])

    def test_zero_background_keeps_cure_mean_infinite(self, knots_0125, coefs_0125):
        table = BackgroundHazard.create([0.0, 3.0], [0.0, 0.0])
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            m = mean_survmspline(0.0, coefs_0125, knots_0125, pcure=0.2, backhaz=table)
        assert np.isinf(m[0])

    def test_per_point_background_rejected(self, knots_0125, coefs_0125):
        with pytest.raises(ValidationError, match="BackgroundHazard"):
            rmst_survmspline(1.0, 0.0, coefs_0125, knots_0125, backhaz=[0.1])


# ═══════════════════════════════════════════════════════════════════════
# Quadrature failures
# ═══════════════════════════════════════════════════════════════════════


class TestRMSTFailure:

    def test_divergent_mean_is_nan(self, knots_0125, coefs_0125):
        # No weight on the last basis term: zero hazard beyond the upper knot
        flat = np.array([0.25, 0.25, 0.25, 0.25, 0.0, 0.0])
        coefs = np.vstack([coefs_0125, flat, flat])
        with pytest.warns(RuntimeWarning) as record:
            m = mean_survmspline(0.0, coefs, knots_0125)
        assert np.isfinite(m[0])
        assert np.all(np.isnan(m[1:]))
        messages = [str(w.message) for w in record if issubclass(w.category, RuntimeWarning)]
        assert len(messages) == 1
        assert "RMST quadrature failed for 2 of 3 entries (indices 1, 2)" in messages[0]

    def test_no_warning_without_failures(self, knots_0125, coefs_0125):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            rmst_survmspline([1.0, 4.0, 9.0], 0.0, coefs_0125, knots_0125)
