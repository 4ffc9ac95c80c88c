"""
M-spline survival distribution: hazard, cumulative hazard, survival, density.

Base model, for log scale alpha and coefficients p on the simplex:

    h(t) = exp(alpha) Σ p_i M_i(t)        H(t) = exp(alpha) Σ p_i I_i(t)
    S(t) = exp(-H(t))

Mixture cure with cure probability π:

    S_c(t) = π + (1 - π) S(t)
    h_c(t) = (1 - π) f(t) / S_c(t),   f(t) = h(t) S(t)

Relative survival with background hazard h_b and cumulative H_b:

    h_tot(t) = h_b(t) + h_c(t)        S_tot(t) = S_c(t) exp(-H_b(t))

Everything is composed on the log scale (log-sum-exp for sums).
The array helpers at the top are shared with the likelihood.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from pyextrap.core.compute.tolerances import SURVIVAL_EXCESS_TOL
from pyextrap.core.exceptions import NumericalError
from pyextrap.mspline._basis import as_knotset, check_degree, mspline_basis
from pyextrap.mspline._common import VectorizedArgs, recycle_args


# ── Log-scale building blocks (operate on pre-built basis rows) ──────

def log_hazard_from_basis(basis: NDArray, alpha: NDArray, coefs: NDArray) -> NDArray:
    """alpha + log(basis · coefs), row-wise."""
    with np.errstate(divide="ignore"):
        return alpha + np.log(np.sum(basis * coefs, axis=-1))


def log_cumhaz_from_basis(ibasis: NDArray, alpha: NDArray, coefs: NDArray) -> NDArray:
    """alpha + log(ibasis · coefs), row-wise."""
    with np.errstate(divide="ignore", invalid="ignore"):
        return alpha + np.log(np.sum(ibasis * coefs, axis=-1))


def cure_log_survival(log_surv: NDArray, pcure: NDArray) -> NDArray:
    """log(π + (1 - π) S)."""
    with np.errstate(divide="ignore"):
        return np.logaddexp(np.log(pcure), np.log1p(-pcure) + log_surv)


def cure_log_hazard(
    log_haz: NDArray,
    log_surv: NDArray,
    log_surv_cure: NDArray,
    pcure: NDArray,
) -> NDArray:
    """log((1 - π) h S / S_c); the base hazard where π = 0."""
    with np.errstate(divide="ignore", invalid="ignore"):
        mixed = np.log1p(-pcure) + log_haz + log_surv - log_surv_cure
    return np.where(pcure > 0, mixed, log_haz)


def add_background_log_hazard(log_haz: NDArray, backhaz: NDArray) -> NDArray:
    """log(h_b + exp(log_haz)) by log-sum-exp."""
    with np.errstate(divide="ignore"):
        return np.logaddexp(np.log(backhaz), log_haz)


# ── Vectorised evaluation ────────────────────────────────────────────

def log_components(
    args: VectorizedArgs,
    knots,
    degree: int,
    need_hazard: bool = True,
) -> tuple[NDArray | None, NDArray]:
    """Total log hazard and log survival for recycled arguments.

    Returns
    -------
    (log_hazard, log_survival)
        (n,) arrays, NaN where args.valid is False. log_hazard is None
        when need_hazard is False.

    Raises
    ------
    NumericalError
        If the implied survival probability exceeds 1.
    """
    n = args.n
    log_haz = np.full(n, np.nan) if need_hazard else None
    log_surv = np.full(n, np.nan)
    ok = args.valid
    if not np.any(ok):
        return log_haz, log_surv

    x = args.x[ok]
    alpha = args.alpha[ok]
    coefs = args.coefs[ok]
    pcure = args.pcure[ok]

    ibasis = mspline_basis(x, knots, degree, integrate=True)
    log_cumhaz = log_cumhaz_from_basis(ibasis, alpha, coefs)
    base_log_surv = -np.exp(log_cumhaz)
    surv = cure_log_survival(base_log_surv, pcure)
    total_surv = surv - args.offset_H[ok]

    excess = total_surv > SURVIVAL_EXCESS_TOL
    if np.any(excess):
        first = int(np.argmax(excess))
        raise NumericalError(
            f"implied survival exceeds 1 (S={np.exp(total_surv[first]):.6g} "
            f"at t={x[first]:.6g}); the scale, coefficients or background "
            f"cumulative hazard are invalid",
            quantity="survival",
            value=float(np.exp(total_surv[first])),
        )
    log_surv[ok] = total_surv

    if need_hazard:
        basis = mspline_basis(x, knots, degree, integrate=False)
        base_log_haz = log_hazard_from_basis(basis, alpha, coefs)
        haz = cure_log_hazard(base_log_haz, base_log_surv, surv, pcure)
        log_haz[ok] = add_background_log_hazard(haz, args.backhaz[ok])

    return log_haz, log_surv


def _prepare(x, alpha, coefs, knots, degree, x_name="x", **kwargs):
    knots = as_knotset(knots)
    degree = check_degree(degree)
    args = recycle_args(x, alpha, coefs, knots.n_basis(degree), x_name=x_name, **kwargs)
    return args, knots, degree


def log_survival_curve(
    times,
    alpha: float,
    coefs: NDArray,
    knots,
    degree: int,
    pcure: float = 0.0,
    backhaz=None,
) -> NDArray:
    """log S_tot(t) for one parameter set over many times.

    Used by the quantile and RMST engines; `backhaz` must be None or a
    BackgroundHazard table since the background is needed at arbitrary t.
    """
    args, knots, degree = _prepare(
        times, alpha, coefs, knots, degree, pcure=pcure, backhaz=backhaz,
    )
    return log_components(args, knots, degree, need_hazard=False)[1]


# ── Public distribution functions ────────────────────────────────────

def hsurvmspline(
    x,
    alpha,
    coefs,
    knots,
    degree: int = 3,
    log: bool = False,
    pcure=0.0,
    backhaz=None,
) -> NDArray:
    """Hazard of the M-spline survival distribution.

    Parameters
    ----------
    x : array-like
        Times.
    alpha : array-like
        Log hazard scale.
    coefs : array-like
        (n_basis,) or (m, n_basis) coefficients on the simplex.
    knots : KnotSet or array-like
        Knots, boundary knots first and last.
    degree : int
        Spline degree.
    log : bool
        Return the log hazard.
    pcure : array-like
        Cure probability.
    backhaz : None, array-like or BackgroundHazard
        Background hazard added to the model hazard.

    Returns
    -------
    NDArray
        (n,) with n the longest argument length.
    """
    args, knots, degree = _prepare(
        x, alpha, coefs, knots, degree, pcure=pcure, backhaz=backhaz,
    )
    log_haz, _ = log_components(args, knots, degree)
    return log_haz if log else np.exp(log_haz)


def Hsurvmspline(
    x,
    alpha,
    coefs,
    knots,
    degree: int = 3,
    log: bool = False,
    pcure=0.0,
    offsetH=0.0,
    backhaz=None,
) -> NDArray:
    """Cumulative hazard -log S_tot(x), including cure and background."""
    args, knots, degree = _prepare(
        x, alpha, coefs, knots, degree, pcure=pcure, offsetH=offsetH, backhaz=backhaz,
    )
    _, log_surv = log_components(args, knots, degree, need_hazard=False)
    cumhaz = -log_surv
    if log:
        with np.errstate(divide="ignore"):
            return np.log(cumhaz)
    return cumhaz


def psurvmspline(
    q,
    alpha,
    coefs,
    knots,
    degree: int = 3,
    lower_tail: bool = True,
    log_p: bool = False,
    pcure=0.0,
    offsetH=0.0,
    backhaz=None,
) -> NDArray:
    """Distribution function P(T <= q), or survival with lower_tail=False."""
    args, knots, degree = _prepare(
        q, alpha, coefs, knots, degree, x_name="q",
        pcure=pcure, offsetH=offsetH, backhaz=backhaz,
    )
    _, log_surv = log_components(args, knots, degree, need_hazard=False)
    if not lower_tail:
        return log_surv if log_p else np.exp(log_surv)
    cdf = -np.expm1(log_surv)
    if log_p:
        with np.errstate(divide="ignore"):
            return np.log(cdf)
    return cdf


def dsurvmspline(
    x,
    alpha,
    coefs,
    knots,
    degree: int = 3,
    log: bool = False,
    pcure=0.0,
    offsetH=0.0,
    backhaz=None,
) -> NDArray:
    """Density h_tot(x) S_tot(x)."""
    args, knots, degree = _prepare(
        x, alpha, coefs, knots, degree, pcure=pcure, offsetH=offsetH, backhaz=backhaz,
    )
    log_haz, log_surv = log_components(args, knots, degree)
    log_dens = log_haz + log_surv
    return log_dens if log else np.exp(log_dens)
