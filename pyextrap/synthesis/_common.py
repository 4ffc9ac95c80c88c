"""
Common data types for the evidence-synthesis survival model.

ModelSpec holds the model choices and priors that, together with a
SurvextrapDesign, fully determine the log posterior. SurvextrapParams is
the frozen payload that goes inside a Result[P] envelope.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from pyextrap.core.exceptions import ValidationError
from pyextrap.core.validation import check_positive_scalar
from pyextrap.mspline._basis import uniform_weights
from pyextrap.synthesis.design import SurvextrapDesign
from pyextrap.synthesis.priors import (
    BetaPrior,
    GammaPrior,
    Prior,
    check_prior_kind,
    default_priors,
    expand_priors,
)


@dataclass(frozen=True)
class ModelSpec:
    """
    Model structure and priors.

    Attributes:
        cure: Mixture cure model enabled.
        smooth_sd: Fixed smoothing SD of the spline shape deviations, or
            None when it is estimated under prior_hsd.
        prior_loghaz: Prior on the baseline log hazard scale alpha.
        prior_loghr: One prior per covariate log hazard ratio.
        prior_hsd: Gamma prior on the smoothing SD.
        prior_cure: Beta prior on the baseline cure probability.
        prior_logor_cure: One prior per cure covariate log odds ratio.
        prior_hrsd: One gamma prior per non-proportional covariate SD.
        lcoefs_mean: (n_basis - 1,) log(p_i / p_1) of the constant-hazard
            coefficients; prior mean of the shape deviations.
    """
    cure: bool
    smooth_sd: float | None
    prior_loghaz: Prior
    prior_loghr: tuple[Prior, ...]
    prior_hsd: GammaPrior
    prior_cure: BetaPrior
    prior_logor_cure: tuple[Prior, ...]
    prior_hrsd: tuple[GammaPrior, ...]
    lcoefs_mean: NDArray

    @classmethod
    def for_design(
        cls,
        design: SurvextrapDesign,
        *,
        cure: bool = False,
        smooth_sd: float | str = "bayes",
        prior_loghaz: Prior | None = None,
        prior_loghr: Prior | Sequence[Prior] | None = None,
        prior_hsd: GammaPrior | None = None,
        prior_cure: BetaPrior | None = None,
        prior_logor_cure: Prior | Sequence[Prior] | None = None,
        prior_hrsd: GammaPrior | Sequence[GammaPrior] | None = None,
    ) -> ModelSpec:
        """Validate model choices against the data and fill default priors.

        Raises:
            ValidationError: If a prior has the wrong family or list length,
                smooth_sd is neither "bayes" nor a positive number, or cure
                covariates are given without a cure model.
        """
        if design.p_cure > 0 and not cure:
            raise ValidationError(
                "X_cure: cure covariates require cure=True"
            )

        if isinstance(smooth_sd, str):
            if smooth_sd != "bayes":
                raise ValidationError(
                    f"smooth_sd: expected 'bayes' or a positive number, got {smooth_sd!r}"
                )
            fixed_sd = None
        else:
            fixed_sd = check_positive_scalar(smooth_sd, "smooth_sd")

        defaults = default_priors()
        loghaz = check_prior_kind(
            defaults["prior_loghaz"] if prior_loghaz is None else prior_loghaz,
            "prior_loghaz",
        )
        loghr = expand_priors(
            defaults["prior_loghr"] if prior_loghr is None else prior_loghr,
            design.p, "prior_loghr",
        )
        hsd = check_prior_kind(
            defaults["prior_hsd"] if prior_hsd is None else prior_hsd,
            "prior_hsd",
        )
        pcure = check_prior_kind(
            defaults["prior_cure"] if prior_cure is None else prior_cure,
            "prior_cure",
        )
        logor = expand_priors(
            defaults["prior_logor_cure"] if prior_logor_cure is None else prior_logor_cure,
            design.p_cure, "prior_logor_cure",
        )
        hrsd = expand_priors(
            defaults["prior_hrsd"] if prior_hrsd is None else prior_hrsd,
            design.p_nonprop, "prior_hrsd",
        )

        weights = uniform_weights(design.knots, design.degree)
        lcoefs_mean = np.log(weights[1:] / weights[0])

        return cls(
            cure=bool(cure),
            smooth_sd=fixed_sd,
            prior_loghaz=loghaz,
            prior_loghr=loghr,
            prior_hsd=hsd,
            prior_cure=pcure,
            prior_logor_cure=logor,
            prior_hrsd=hrsd,
            lcoefs_mean=lcoefs_mean,
        )

    @property
    def estimate_smooth_sd(self) -> bool:
        return self.smooth_sd is None

    def describe_priors(self, design: SurvextrapDesign) -> dict[str, str]:
        """Human-readable prior per model parameter."""
        out = {"alpha": self.prior_loghaz.describe()}
        for name, prior in zip(design.covariate_names, self.prior_loghr):
            out[f"loghr[{name}]"] = prior.describe()
        if self.estimate_smooth_sd:
            out["smooth_sd"] = self.prior_hsd.describe()
        if self.cure:
            out["pcure"] = self.prior_cure.describe()
            for name, prior in zip(design.cure_covariate_names, self.prior_logor_cure):
                out[f"logor_cure[{name}]"] = prior.describe()
        for name, prior in zip(design.nonprop_names, self.prior_hrsd):
            out[f"hrsd[{name}]"] = prior.describe()
        return out


@dataclass(frozen=True)
class SurvextrapParams:
    """
    Parameter payload for a fitted survextrap model.

    Draws are stored on the unconstrained scale; ParameterLayout.constrain()
    maps them to named model parameters.
    """
    parameter_names: tuple[str, ...]
    draws: NDArray                     # (n_draws, n_params) unconstrained
    mode: NDArray | None               # (n_params,) posterior mode, "mode" fits only
    covariance: NDArray | None         # (n_params, n_params) Laplace covariance
    log_posterior_mode: float | None
    fit_method: str
    converged: bool
    n_iter: int
