"""
Quantiles and random variates of the M-spline survival distribution.

The survival function has no closed-form inverse, so each quantile solves
log S_tot(t) = log(1 - p) by Brent's method on a bracket [0, hi], with hi
doubled from max(upper knot, 1) until the target is crossed. Entries that
cannot be bracketed or do not converge are NaN; one RuntimeWarning
reports them for the whole call.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import brentq

from pyextrap.core.compute.tolerances import (
    BRACKET_MAX_DOUBLINGS,
    ROOT_MAX_ITER,
    ROOT_RTOL,
    ROOT_XTOL,
)
from pyextrap.core.exceptions import ValidationError
from pyextrap.core.validation import check_probability
from pyextrap.mspline._background import BackgroundHazard
from pyextrap.mspline._common import warn_failures
from pyextrap.mspline._distribution import _prepare, log_survival_curve


def _check_table(backhaz) -> BackgroundHazard | None:
    if backhaz is None or isinstance(backhaz, BackgroundHazard):
        return backhaz
    raise ValidationError(
        "backhaz: quantiles, random variates and RMST need the background "
        "hazard at arbitrary times; pass a BackgroundHazard table"
    )


def _solve_one(
    target: float,
    alpha: float,
    coefs: NDArray,
    pcure: float,
    knots,
    degree: int,
    background: BackgroundHazard | None,
) -> float:
    """Time t with log S_tot(t) = target; NaN when no root is found."""

    def objective(t: float) -> float:
        return float(log_survival_curve(
            t, alpha, coefs, knots, degree, pcure=pcure, backhaz=background,
        )[0]) - target

    hi = max(knots.upper, 1.0)
    for _ in range(BRACKET_MAX_DOUBLINGS):
        if objective(hi) < 0:
            break
        hi *= 2.0
    else:
        return np.nan

    root, info = brentq(
        objective, 0.0, hi,
        xtol=ROOT_XTOL, rtol=ROOT_RTOL, maxiter=ROOT_MAX_ITER,
        full_output=True, disp=False,
    )
    return root if info.converged else np.nan


def qsurvmspline(
    p,
    alpha,
    coefs,
    knots,
    degree: int = 3,
    lower_tail: bool = True,
    log_p: bool = False,
    pcure=0.0,
    backhaz: BackgroundHazard | None = None,
) -> NDArray:
    """Quantile function of the M-spline survival distribution.

    Parameters
    ----------
    p : array-like
        Probabilities (log probabilities if log_p).
    alpha, coefs, knots, degree, pcure
        As for psurvmspline().
    lower_tail : bool
        If False, p is a survival probability.
    backhaz : BackgroundHazard or None
        Step-function background hazard.

    Returns
    -------
    NDArray
        (n,) times. p = 0 gives 0, p = 1 gives inf, as does any p beyond
        the cure fraction's reach when there is no background hazard.
    """
    background = _check_table(backhaz)
    args, knots, degree = _prepare(p, alpha, coefs, knots, degree, x_name="p", pcure=pcure)

    prob = np.exp(args.x) if log_p else args.x.copy()
    check_probability(prob, "p")
    if not lower_tail:
        prob = 1.0 - prob

    out = np.full(args.n, np.nan)
    failed = np.zeros(args.n, dtype=bool)
    with np.errstate(divide="ignore"):
        targets = np.log1p(-prob)
        log_pcure = np.log(args.pcure)

    plateau = background is None or not np.any(background.hazard > 0)
    for i in np.flatnonzero(args.valid):
        if prob[i] == 0:
            out[i] = 0.0
        elif prob[i] == 1 or (plateau and targets[i] <= log_pcure[i]):
            out[i] = np.inf
        else:
            out[i] = _solve_one(
                targets[i], args.alpha[i], args.coefs[i], args.pcure[i],
                knots, degree, background,
            )
            failed[i] = np.isnan(out[i])

    warn_failures(failed, "quantile root-finding")
    return out


def rsurvmspline(
    n: int,
    alpha,
    coefs,
    knots,
    degree: int = 3,
    pcure=0.0,
    backhaz: BackgroundHazard | None = None,
    random_state=None,
) -> NDArray:
    """Random variates by inverse-CDF sampling.

    Parameters
    ----------
    n : int
        Number of draws. Other arguments are recycled to length n.
    random_state : int, numpy Generator or None
        Seed or generator for the uniforms.

    Returns
    -------
    NDArray
        (n,) event times; inf for cured individuals.
    """
    if isinstance(n, bool) or int(n) != n or n < 0:
        raise ValidationError(f"n: must be a non-negative integer, got {n!r}")
    rng = np.random.default_rng(random_state)
    u = rng.uniform(size=int(n))
    return qsurvmspline(u, alpha, coefs, knots, degree, pcure=pcure, backhaz=backhaz)
