"""
Tests for SurvextrapDesign, ExternalCounts and ModelSpec.

Validates:
    - Data validation (times, events, covariates, external counts)
    - Default knots, covariate names, non-proportional selection
    - Background hazard terms for events and external data
    - Model choices and prior checks
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from pyextrap.core.exceptions import DimensionError, ValidationError
from pyextrap.mspline import BackgroundHazard
from pyextrap.synthesis import ExternalCounts, SurvextrapDesign, p_beta, p_normal
from pyextrap.synthesis._common import ModelSpec


KNOTS = [0.0, 1.0, 2.0, 5.0]


def small_design(**kwargs):
    defaults = dict(
        time=[1.0, 3.0, 0.5, 4.0],
        event=[1, 0, 1, 1],
        X=[[0.0], [1.0], [1.0], [0.0]],
        knots=KNOTS,
    )
    defaults.update(kwargs)
    time = defaults.pop("time")
    event = defaults.pop("event")
    X = defaults.pop("X")
    return SurvextrapDesign.for_survextrap(time, event, X, **defaults)


# ═══════════════════════════════════════════════════════════════════════
# External counts
# ═══════════════════════════════════════════════════════════════════════


class TestExternalCounts:

    def test_basic(self):
        ext = ExternalCounts.for_counts(start=[2, 5], stop=[5, 10], n=[100, 80], r=[80, 50])
        assert ext.n_rows == 2
        assert ext.X is None
        assert_allclose(ext.r, [80, 50])

    @pytest.mark.parametrize("kwargs,match", [
        (dict(start=[5], stop=[5], n=[10], r=[5]), "strictly below stop"),
        (dict(start=[0], stop=[5], n=[10], r=[11]), "cannot exceed"),
        (dict(start=[0], stop=[5], n=[10.5], r=[5]), "whole numbers"),
        (dict(start=[-1], stop=[5], n=[10], r=[5]), "non-negative"),
        (dict(start=[0], stop=[5], n=[10], r=[-1]), "non-negative"),
        (dict(start=[], stop=[], n=[], r=[]), "at least one row"),
        (dict(start=[0], stop=[np.nan], n=[10], r=[5]), "non-finite"),
    ])
    def test_invalid(self, kwargs, match):
        with pytest.raises(ValidationError, match=match):
            ExternalCounts.for_counts(**kwargs)

    def test_lengths(self):
        with pytest.raises(DimensionError):
            ExternalCounts.for_counts(start=[0, 1], stop=[5], n=[10], r=[5])

    def test_covariate_rows(self):
        with pytest.raises(DimensionError, match="external.X"):
            ExternalCounts.for_counts(start=[0], stop=[5], n=[10], r=[5], X=[[1.0], [0.0]])

    def test_background_survival(self):
        ext = ExternalCounts.for_counts(start=[0, 1], stop=[5, 6], n=[10, 10], r=[5, 5],
                                        backsurv_start=1.0, backsurv_stop=[0.9, 0.8])
        assert_allclose(ext.backsurv_start, [1.0, 1.0])
        with pytest.raises(ValidationError, match="positive"):
            ExternalCounts.for_counts(start=[0], stop=[5], n=[10], r=[5], backsurv_stop=0.0)


# ═══════════════════════════════════════════════════════════════════════
# Individual data
# ═══════════════════════════════════════════════════════════════════════


class TestIndividualData:

    def test_blocks(self):
        design = small_design()
        assert design.n_events == 3
        assert design.n_censored == 1
        assert design.n_observations == 4
        assert design.n_basis == 6
        assert design.events.basis.shape == (3, 6)
        assert design.censored.basis is None
        assert design.censored.ibasis.shape == (1, 6)
        assert design.covariate_names == ("x1",)
        assert_allclose(design.X_mean, [0.5])
        assert not design.relative

    def test_metadata(self):
        meta = small_design().metadata
        assert meta["n"] == 4
        assert meta["n_events"] == 3
        assert meta["n_external"] == 0
        assert meta["p"] == 1

    def test_event_defaults_to_all(self):
        design = SurvextrapDesign.for_survextrap([1.0, 2.0], knots=KNOTS)
        assert design.n_events == 2

    def test_default_knots(self):
        design = SurvextrapDesign.for_survextrap(np.arange(1.0, 41.0), df=6)
        assert design.knots.upper == 40.0
        assert design.n_basis == 6

    def test_default_knots_cover_external(self):
        ext = ExternalCounts.for_counts(start=[10], stop=[25], n=[50], r=[20])
        design = SurvextrapDesign.for_survextrap(np.arange(1.0, 11.0), external=ext, df=5)
        assert design.knots.upper == 25.0

    @pytest.mark.parametrize("kwargs,match", [
        (dict(event=[1, 0, 2, 1]), "only 0 and 1"),
        (dict(time=[0.0, 3.0, 0.5, 4.0]), "strictly positive"),
        (dict(time=[1.0, -3.0, 0.5, 4.0]), "non-negative"),
        (dict(time=[1.0, np.inf, 0.5, 4.0]), "non-finite"),
    ])
    def test_invalid(self, kwargs, match):
        with pytest.raises(ValidationError, match=match):
            small_design(**kwargs)

    def test_censored_at_zero_allowed(self):
        design = small_design(time=[1.0, 0.0, 0.5, 4.0])
        assert_allclose(design.censored.ibasis, 0.0)

    def test_lengths(self):
        with pytest.raises(DimensionError):
            small_design(event=[1, 0, 1])
        with pytest.raises(DimensionError, match="X: must have 4 rows"):
            small_design(X=[[0.0], [1.0]])

    def test_knots_needed_without_events(self):
        with pytest.raises(ValidationError, match="knots: required"):
            SurvextrapDesign.for_survextrap([1.0, 2.0], [0, 0])


# ═══════════════════════════════════════════════════════════════════════
# Covariates
# ═══════════════════════════════════════════════════════════════════════


class TestCovariates:

    def test_names(self):
        design = small_design(covariate_names=["trt"])
        assert design.covariate_names == ("trt",)

    def test_names_mismatch(self):
        with pytest.raises(ValidationError, match="expected 1 names"):
            small_design(covariate_names=["a", "b"])

    def test_names_unique(self):
        with pytest.raises(ValidationError, match="unique"):
            small_design(X=np.ones((4, 2)), covariate_names=["a", "a"])

    def test_nonprop_selection(self):
        X = np.column_stack([np.ones(4), np.arange(4.0)])
        design = small_design(X=X, covariate_names=["a", "b"], nonprop=["b"])
        assert design.nonprop_index == (1,)
        assert design.nonprop_names == ("b",)
        assert design.events.X_np.shape == (3, 1)
        assert small_design(X=X, nonprop=True).nonprop_index == (0, 1)
        assert small_design(X=X, nonprop=[1, 0]).nonprop_index == (0, 1)
        assert small_design(X=X).p_nonprop == 0

    @pytest.mark.parametrize("nonprop,match", [
        (["c"], "unknown covariate"),
        ([2], "out of range"),
        (["a", 0], "more than once"),
    ])
    def test_nonprop_invalid(self, nonprop, match):
        X = np.ones((4, 2))
        with pytest.raises(ValidationError, match=match):
            small_design(X=X, covariate_names=["a", "b"], nonprop=nonprop)

    def test_cure_covariates(self):
        design = small_design(X_cure=[[1.0], [0.0], [0.0], [1.0]])
        assert design.p_cure == 1
        assert design.cure_covariate_names == ("z1",)
        assert design.events.X_cure.shape == (3, 1)


# ═══════════════════════════════════════════════════════════════════════
# External data in the design
# ═══════════════════════════════════════════════════════════════════════


class TestExternalDesign:

    def test_external_only(self):
        ext = ExternalCounts.for_counts(start=[2], stop=[5], n=[100], r=[80])
        design = SurvextrapDesign.for_survextrap(external=ext, knots=KNOTS)
        assert design.n_observations == 0
        assert design.external.n == 1
        assert design.p == 0
        assert design.external.ibasis_stop.shape == (1, 6)

    def test_external_only_needs_knots(self):
        ext = ExternalCounts.for_counts(start=[2], stop=[5], n=[100], r=[80])
        with pytest.raises(ValidationError, match="knots"):
            SurvextrapDesign.for_survextrap(external=ext)

    def test_time_required(self):
        with pytest.raises(ValidationError, match="time: required"):
            SurvextrapDesign.for_survextrap(knots=KNOTS)

    def test_event_without_time(self):
        ext = ExternalCounts.for_counts(start=[2], stop=[5], n=[100], r=[80])
        with pytest.raises(ValidationError, match="individual-level"):
            SurvextrapDesign.for_survextrap(event=[1], external=ext, knots=KNOTS)

    def test_external_covariates_required(self):
        ext = ExternalCounts.for_counts(start=[2], stop=[5], n=[100], r=[80])
        with pytest.raises(ValidationError, match="external.X: required"):
            small_design(external=ext)

    def test_external_covariate_columns(self):
        ext = ExternalCounts.for_counts(start=[2], stop=[5], n=[100], r=[80],
                                        X=[[1.0, 0.0]])
        with pytest.raises(DimensionError, match="expected 1 columns"):
            small_design(external=ext)

    def test_external_covariates_only(self):
        ext = ExternalCounts.for_counts(start=[2, 2], stop=[5, 5], n=[100, 100],
                                        r=[80, 60], X=[[0.0], [1.0]])
        design = SurvextrapDesign.for_survextrap(external=ext, knots=KNOTS)
        assert design.p == 1
        assert_allclose(design.X_mean, [0.5])

    def test_background_table(self):
        table = BackgroundHazard.create([0.0, 3.0], [0.01, 0.02])
        ext = ExternalCounts.for_counts(start=[2], stop=[5], n=[100], r=[80], X=[[0.0]])
        design = small_design(external=ext, backhaz=table)
        assert design.relative
        assert_allclose(design.events.backhaz, [0.01, 0.01, 0.02])
        # log S_b(5) - log S_b(2) = -(0.01 * 1 + 0.02 * 2)
        assert_allclose(design.external.log_backsurv_ratio, [-0.05])

    def test_background_per_individual(self):
        design = small_design(backhaz=[0.1, 0.2, 0.3, 0.4])
        assert_allclose(design.events.backhaz, [0.1, 0.3, 0.4])
        assert design.external is None

    def test_explicit_background_survival(self):
        ext = ExternalCounts.for_counts(start=[2], stop=[5], n=[100], r=[80], X=[[0.0]],
                                        backsurv_start=0.9, backsurv_stop=0.6)
        design = small_design(external=ext)
        assert_allclose(design.external.log_backsurv_ratio, [np.log(0.6 / 0.9)])


# ═══════════════════════════════════════════════════════════════════════
# Model choices
# ═══════════════════════════════════════════════════════════════════════


class TestModelSpec:

    def test_defaults(self):
        spec = ModelSpec.for_design(small_design())
        assert not spec.cure
        assert spec.estimate_smooth_sd
        assert len(spec.prior_loghr) == 1
        assert spec.lcoefs_mean.shape == (5,)

    def test_fixed_smooth_sd(self):
        spec = ModelSpec.for_design(small_design(), smooth_sd=0.5)
        assert spec.smooth_sd == 0.5
        assert not spec.estimate_smooth_sd

    @pytest.mark.parametrize("smooth_sd", ["fixed", -1.0, 0.0])
    def test_invalid_smooth_sd(self, smooth_sd):
        with pytest.raises(ValidationError, match="smooth_sd"):
            ModelSpec.for_design(small_design(), smooth_sd=smooth_sd)

    def test_cure_covariates_need_cure(self):
        design = small_design(X_cure=[[1.0], [0.0], [0.0], [1.0]])
        with pytest.raises(ValidationError, match="cure=True"):
            ModelSpec.for_design(design)

    def test_prior_family(self):
        with pytest.raises(ValidationError, match="prior_cure"):
            ModelSpec.for_design(small_design(), cure=True, prior_cure=p_normal())

    def test_prior_per_covariate(self):
        with pytest.raises(ValidationError, match="prior_loghr"):
            ModelSpec.for_design(small_design(), prior_loghr=[p_normal(), p_normal()])

    def test_describe_priors(self):
        design = small_design(covariate_names=["trt"])
        spec = ModelSpec.for_design(design, cure=True, prior_cure=p_beta(2, 8))
        described = spec.describe_priors(design)
        assert described["pcure"] == "beta(shape1=2, shape2=8)"
        assert "loghr[trt]" in described
        assert "smooth_sd" in described
