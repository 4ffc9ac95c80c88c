"""
Solver dispatch for the evidence-synthesis survival model.

Public API:
    survextrap() - fit an M-spline hazard model to individual-level
                   right-censored data and external count data
"""

from __future__ import annotations

import warnings
from numbers import Integral
from typing import Callable, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pyextrap.core.compute.timing import timed
from pyextrap.core.exceptions import DimensionError, ValidationError
from pyextrap.core.result import Result
from pyextrap.synthesis._common import ModelSpec, SurvextrapParams
from pyextrap.synthesis._laplace import find_mode, laplace_covariance, laplace_draws
from pyextrap.synthesis._layout import ParameterLayout
from pyextrap.synthesis.backends.cpu import CPULogPosterior
from pyextrap.synthesis.design import ExternalCounts, SurvextrapDesign
from pyextrap.synthesis.priors import BetaPrior, GammaPrior, Prior
from pyextrap.synthesis.solution import SurvextrapSolution

_FIT_METHODS = ("mode", "sample")


def _make_log_posterior(backend: str, design, spec, layout):
    if backend == "cpu":
        return CPULogPosterior(design, spec, layout)
    if backend == "gpu":
        from pyextrap.synthesis.backends.gpu import TorchLogPosterior
        return TorchLogPosterior(design, spec, layout)
    raise ValidationError(f"backend: expected 'cpu' or 'gpu', got {backend!r}")


def initial_values(design: SurvextrapDesign, layout: ParameterLayout) -> NDArray:
    """Start at a constant hazard equal to the crude event rate.

    With constant-hazard coefficients the hazard is
    exp(alpha) / (upper - lower), so alpha = log(rate * (upper - lower)).
    All other unconstrained parameters start at zero.
    """
    span = design.knots.upper - design.knots.lower
    exposure = float(np.sum(design.events.time) + np.sum(design.censored.time))
    if design.n_events > 0 and exposure > 0:
        rate = design.n_events / exposure
    elif design.external is not None:
        counts = design.external.counts
        surv = (np.sum(counts.r) + 0.5) / (np.sum(counts.n) + 1.0)
        rate = -np.log(surv) / float(np.mean(counts.stop - counts.start))
    else:
        rate = 1.0 / span

    theta = np.zeros(layout.n_params)
    theta[layout.blocks["alpha"]] = np.log(rate * span)
    return theta


def survextrap(
    time: ArrayLike | None = None,
    event: ArrayLike | None = None,
    X: ArrayLike | None = None,
    *,
    external: ExternalCounts | None = None,
    knots=None,
    df: int = 10,
    degree: int = 3,
    cure: bool = False,
    X_cure: ArrayLike | None = None,
    nonprop: bool | Sequence[str | int] | None = None,
    backhaz=None,
    covariate_names: Sequence[str] | None = None,
    cure_covariate_names: Sequence[str] | None = None,
    smooth_sd: float | str = "bayes",
    prior_loghaz: Prior | None = None,
    prior_loghr: Prior | Sequence[Prior] | None = None,
    prior_hsd: GammaPrior | None = None,
    prior_cure: BetaPrior | None = None,
    prior_logor_cure: Prior | Sequence[Prior] | None = None,
    prior_hrsd: GammaPrior | Sequence[GammaPrior] | None = None,
    fit_method: str = "mode",
    sampler: Callable | None = None,
    n_draws: int = 2000,
    init: ArrayLike | None = None,
    random_state: int | np.random.Generator | None = None,
    backend: str = "cpu",
    max_iter: int = 1000,
    tol: float = 1e-8,
) -> SurvextrapSolution:
    """Fit a flexible parametric survival model with evidence synthesis.

    The hazard is exp(alpha + x @ loghr) times an M-spline combination
    whose coefficients lie on the simplex. Individual-level events and
    right-censored times are combined with external counts (of n alive at
    start, r alive at stop) through a binomial likelihood, optionally under
    a mixture cure model, non-proportional hazards and a background
    (relative survival) hazard.

    Args:
        time: Event or censoring times. None for external data only.
        event: Event indicator, 1 = event, 0 = censored. Default all events.
        X: (n, p) covariates on the log hazard.
        external: ExternalCounts table.
        knots: Full knot vector or KnotSet. Default from event times.
        df: Number of basis terms for default knots. Default 10.
        degree: Spline degree. Default 3.
        cure: Fit a mixture cure model.
        X_cure: (n, p_cure) covariates on the logit cure probability.
        nonprop: Covariates (names or indices, or True for all) that also
            change the hazard shape.
        backhaz: Background hazard at each individual's time, or a
            BackgroundHazard table.
        covariate_names, cure_covariate_names: Column names.
        smooth_sd: "bayes" to estimate the smoothing SD, or a fixed value.
        prior_loghaz, prior_loghr, prior_hsd, prior_cure, prior_logor_cure,
            prior_hrsd: Priors; see pyextrap.synthesis.priors for defaults.
        fit_method: "mode" for posterior mode + Laplace approximation, or
            "sample" to draw with an external sampler.
        sampler: For "sample": callable(log_density, init, n_draws, rng)
            returning an (n_draws, n_params) array of unconstrained draws.
        n_draws: Number of posterior draws. Default 2000.
        init: Initial unconstrained parameter vector.
        random_state: Seed or Generator for the draws.
        backend: "cpu" (numpy) or "gpu" (torch autograd).
        max_iter: Maximum optimiser iterations for "mode".
        tol: Optimiser tolerance for "mode".

    Returns:
        SurvextrapSolution with posterior draws, parameter summaries and
        survival/hazard/RMST predictions.

    Examples:
        >>> fit = survextrap(time, event)
        >>> fit.survival([1, 5, 10]).median

        # Trial data extrapolated with registry counts
        >>> ext = ExternalCounts.for_counts(start=[5], stop=[10], n=[100], r=[40])
        >>> fit = survextrap(time, event, external=ext)
        >>> fit.rmst(20).median
    """
    if fit_method not in _FIT_METHODS:
        raise ValidationError(
            f"fit_method: expected one of {_FIT_METHODS}, got {fit_method!r}"
        )
    if isinstance(n_draws, bool) or not isinstance(n_draws, Integral) or n_draws < 1:
        raise ValidationError(f"n_draws: must be a positive integer, got {n_draws!r}")
    n_draws = int(n_draws)
    if fit_method == "sample" and not callable(sampler):
        raise ValidationError("sampler: fit_method='sample' requires a callable sampler")

    with timed(sync_cuda=(backend == "gpu")) as timer:
        rng = np.random.default_rng(random_state)
        warn_list: list[str] = []

        with timer.section("design"):
            design = SurvextrapDesign.for_survextrap(
                time, event, X,
                external=external, knots=knots, df=df, degree=degree,
                X_cure=X_cure, nonprop=nonprop, backhaz=backhaz,
                covariate_names=covariate_names,
                cure_covariate_names=cure_covariate_names,
            )
            spec = ModelSpec.for_design(
                design,
                cure=cure, smooth_sd=smooth_sd,
                prior_loghaz=prior_loghaz, prior_loghr=prior_loghr,
                prior_hsd=prior_hsd, prior_cure=prior_cure,
                prior_logor_cure=prior_logor_cure, prior_hrsd=prior_hrsd,
            )
            layout = ParameterLayout.for_model(design, spec)
            log_post = _make_log_posterior(backend, design, spec, layout)

            if init is None:
                theta0 = initial_values(design, layout)
            else:
                theta0 = np.asarray(init, dtype=np.float64).ravel()
                if len(theta0) != layout.n_params:
                    raise DimensionError(
                        f"init: expected {layout.n_params} values "
                        f"{list(layout.names)}, got {len(theta0)}"
                    )

        mode = None
        covariance = None
        log_post_mode = None
        converged = True
        n_iter = 0

        if fit_method == "mode":
            with timer.section("optimization"):
                opt = find_mode(log_post, theta0, max_iter=max_iter, tol=tol)
            mode = opt.x
            log_post_mode = opt.log_posterior
            converged = opt.converged
            n_iter = opt.n_iter
            if not converged:
                msg = f"Posterior mode search did not converge: {opt.message}"
                warnings.warn(msg, RuntimeWarning, stacklevel=2)
                warn_list.append(msg)

            with timer.section("hessian"):
                covariance, cov_warnings = laplace_covariance(log_post.compute_hessian(mode))
            for msg in cov_warnings:
                warnings.warn(msg, RuntimeWarning, stacklevel=2)
            warn_list.extend(cov_warnings)

            with timer.section("draws"):
                draws = laplace_draws(mode, covariance, n_draws, rng)
        else:
            with timer.section("sampling"):
                draws = np.asarray(sampler(log_post, theta0, n_draws, rng), dtype=np.float64)
            if draws.shape != (n_draws, layout.n_params):
                raise DimensionError(
                    f"sampler: expected draws of shape ({n_draws}, {layout.n_params}), "
                    f"got {draws.shape}"
                )
            if not np.all(np.isfinite(draws)):
                raise ValidationError("sampler: returned non-finite draws")

    params = SurvextrapParams(
        parameter_names=layout.names,
        draws=draws,
        mode=mode,
        covariance=covariance,
        log_posterior_mode=log_post_mode,
        fit_method=fit_method,
        converged=converged,
        n_iter=n_iter,
    )

    result = Result(
        params=params,
        info={
            "method": "laplace" if fit_method == "mode" else "sample",
            "optimizer": "L-BFGS-B" if fit_method == "mode" else None,
            "converged": converged,
            "n_iter": n_iter,
            "log_posterior": log_post_mode,
            "n_params": layout.n_params,
            "n_draws": n_draws,
            "cure": spec.cure,
            "priors": spec.describe_priors(design),
            **design.metadata,
        },
        timing=timer.result(),
        backend_name=log_post.name,
        warnings=tuple(warn_list),
    )

    return SurvextrapSolution(result, design, layout)
