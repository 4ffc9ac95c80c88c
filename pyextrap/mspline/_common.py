"""
Argument preparation shared by the M-spline distribution functions.

Every public function takes (x, alpha, coefs, knots, degree, ...) and
recycles shorter arguments to the longest one. The recycled arguments,
a validity mask (no missing value in any argument) and the common length
travel together in a VectorizedArgs record.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from pyextrap.core.compute.tolerances import COEF_SUM_TOL
from pyextrap.core.exceptions import DimensionError, ValidationError
from pyextrap.core.validation import check_array, check_nonnegative, check_probability
from pyextrap.mspline._background import BackgroundHazard


def normalize_coefs(coefs, tol: float = COEF_SUM_TOL) -> NDArray:
    """Rescale spline coefficients onto the simplex.

    Parameters
    ----------
    coefs : array-like
        (n_basis,) or (m, n_basis) non-negative coefficients. Rows
        containing NaN are passed through unchanged.
    tol : float
        Rows whose sum differs from 1 by more than tol trigger one
        UserWarning for the whole call.

    Returns
    -------
    NDArray
        Array of the same shape with each row summing to 1.

    Raises
    ------
    ValidationError
        If any coefficient is negative or a row sums to zero.
    """
    arr = check_array(coefs, "coefs").astype(np.float64)
    if arr.ndim not in (1, 2):
        raise DimensionError(f"coefs: expected 1D or 2D array, got {arr.ndim}D")
    rows = np.atleast_2d(arr)
    check_nonnegative(rows, "coefs")

    sums = rows.sum(axis=1)
    complete = ~np.isnan(sums)
    if np.any(sums[complete] <= 0):
        raise ValidationError("coefs: each row must have a positive sum")

    deviating = complete & (np.abs(sums - 1.0) > tol)
    if np.any(deviating):
        warnings.warn(
            f"coefs: {int(deviating.sum())} coefficient row(s) did not sum to 1 "
            f"and were renormalised",
            UserWarning,
            stacklevel=3,
        )

    out = rows / sums[:, None]
    return out.reshape(arr.shape)


@dataclass(frozen=True)
class VectorizedArgs:
    """Recycled arguments for one vectorised evaluation.

    All arrays share length n. `valid` is False wherever any argument is
    missing; results at those positions are NaN.
    """

    x: NDArray            # (n,) times or probabilities
    alpha: NDArray        # (n,) log hazard scale
    coefs: NDArray        # (n, n_basis) normalised coefficient rows
    pcure: NDArray        # (n,) cure probability, 0 when no cure
    backhaz: NDArray      # (n,) background hazard at x, 0 when none
    offset_H: NDArray     # (n,) background cumulative hazard at x
    valid: NDArray        # (n,) bool

    @property
    def n(self) -> int:
        return len(self.x)

    def recycled(self, n: int) -> VectorizedArgs:
        """The same arguments recycled to length n."""
        if n == self.n:
            return self
        return VectorizedArgs(
            x=_recycle(self.x, n), alpha=_recycle(self.alpha, n),
            coefs=_recycle(self.coefs, n), pcure=_recycle(self.pcure, n),
            backhaz=_recycle(self.backhaz, n), offset_H=_recycle(self.offset_H, n),
            valid=_recycle(self.valid, n),
        )


def _as_vector(value, name: str) -> NDArray:
    arr = check_array(value, name)
    if arr.ndim > 1:
        raise DimensionError(f"{name}: expected scalar or 1D array, got {arr.ndim}D")
    return np.atleast_1d(arr).astype(np.float64)


def _recycle(arr: NDArray, n: int) -> NDArray:
    if len(arr) == n:
        return arr
    return np.take(arr, np.arange(n) % len(arr), axis=0)


def recycle_args(
    x,
    alpha,
    coefs,
    n_basis: int,
    *,
    x_name: str = "x",
    pcure=0.0,
    backhaz=None,
    offsetH=0.0,
) -> VectorizedArgs:
    """Validate, normalise and recycle distribution-function arguments.

    Parameters
    ----------
    x : array-like
        Times (or probabilities for quantile functions).
    alpha : array-like
        Log hazard scale.
    coefs : array-like
        (n_basis,) or (m, n_basis) coefficients; renormalised here.
    n_basis : int
        Expected number of basis terms.
    pcure : array-like
        Cure probability in [0, 1].
    backhaz : None, array-like or BackgroundHazard
        Background hazard at x, or a step-function table evaluated at x.
    offsetH : array-like
        Background cumulative hazard at x. Ignored when backhaz is a
        BackgroundHazard table, which supplies its own.
    """
    xv = _as_vector(x, x_name)
    av = _as_vector(alpha, "alpha")
    pv = _as_vector(pcure, "pcure")
    check_probability(pv, "pcure")

    cm = np.atleast_2d(normalize_coefs(coefs))
    if cm.shape[1] != n_basis:
        raise DimensionError(
            f"coefs: expected {n_basis} columns (internal knots + degree + 1), "
            f"got {cm.shape[1]}"
        )

    table = backhaz if isinstance(backhaz, BackgroundHazard) else None
    if table is None:
        hv = _as_vector(0.0 if backhaz is None else backhaz, "backhaz")
        check_nonnegative(hv, "backhaz")
        ov = _as_vector(offsetH, "offsetH")
    else:
        hv = ov = np.zeros(1)

    lengths = [len(xv), len(av), len(cm), len(pv), len(hv), len(ov)]
    n = 0 if min(lengths) == 0 else max(lengths)

    xv = _recycle(xv, n)
    if table is not None:
        hv = table.hazard_at(xv)
        ov = table.cumhaz_at(xv)

    av, cm, pv = _recycle(av, n), _recycle(cm, n), _recycle(pv, n)
    hv, ov = _recycle(hv, n), _recycle(ov, n)

    valid = (
        ~np.isnan(xv) & ~np.isnan(av) & ~np.any(np.isnan(cm), axis=1)
        & ~np.isnan(pv) & ~np.isnan(hv) & ~np.isnan(ov)
    )
    return VectorizedArgs(
        x=xv, alpha=av, coefs=cm, pcure=pv, backhaz=hv, offset_H=ov, valid=valid,
    )


def warn_failures(failed: NDArray, what: str, stacklevel: int = 3) -> None:
    """Emit one warning summarising per-entry numerical failures."""
    n_failed = int(np.sum(failed))
    if n_failed == 0:
        return
    idx = np.flatnonzero(failed)
    shown = ", ".join(str(i) for i in idx[:10])
    more = ", ..." if n_failed > 10 else ""
    warnings.warn(
        f"{what} failed for {n_failed} of {len(failed)} entries "
        f"(indices {shown}{more}); returned NaN",
        RuntimeWarning,
        stacklevel=stacklevel,
    )
