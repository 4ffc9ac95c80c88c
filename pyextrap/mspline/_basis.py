"""
M-spline and I-spline hazard bases on a closed knot set.

An M-spline basis term of degree d on knots t is the B-spline rescaled to
integrate to one:

    M_i(x) = (d + 1) / (t_{i+d+1} - t_i) * B_i(x)

and the I-spline term is its integral from the lower boundary knot,
I_i(x) = ∫ M_i. A hazard is exp(alpha) * Σ p_i M_i(x) with p on the
simplex; the cumulative hazard uses the I-spline basis with the same p.

Extrapolation outside [lower, upper]:
    - hazard basis: constant at the boundary value (times are clamped)
    - cumulative basis above the upper knot: I(upper) + M(upper) (x - upper)
    - cumulative basis below the lower knot (x > 0): M(lower) x
    - any x <= 0 gives an all-zero row in both bases

References:
    Ramsay, J. O. (1988). Monotone regression splines in action.
        Statistical Science, 3(4), 425-441.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from numbers import Integral

import numpy as np
from numpy.typing import NDArray
from scipy.interpolate import BSpline

from pyextrap.core.exceptions import ValidationError
from pyextrap.core.validation import check_array, check_finite


@dataclass(frozen=True)
class KnotSet:
    """Immutable, validated spline knot locations.

    Parameters
    ----------
    internal : NDArray
        (m,) strictly increasing internal knots, strictly inside the
        boundary knots. May be empty.
    boundary : NDArray
        (2,) lower and upper boundary knots, 0 <= lower < upper.
    """

    internal: NDArray
    boundary: NDArray

    @classmethod
    def create(cls, internal=(), boundary=None) -> KnotSet:
        """Create and validate a knot set from internal and boundary knots.

        Raises
        ------
        ValidationError
            If knots are non-numeric, negative, non-finite, not strictly
            increasing, or internal knots are not strictly inside the
            boundary.
        """
        if boundary is None:
            raise ValidationError("boundary_knots: required, got None")

        bknots = check_array(boundary, "boundary_knots").ravel().astype(np.float64)
        if len(bknots) != 2:
            raise ValidationError(
                f"boundary_knots: expected exactly 2 values, got {len(bknots)}"
            )
        check_finite(bknots, "boundary_knots")
        if bknots[0] < 0:
            raise ValidationError(
                f"boundary_knots: must be non-negative, got {bknots.tolist()}"
            )
        if not bknots[0] < bknots[1]:
            raise ValidationError(
                f"boundary_knots: lower must be strictly below upper, "
                f"got {bknots.tolist()}"
            )

        iknots = check_array(internal, "internal_knots").ravel().astype(np.float64)
        check_finite(iknots, "internal_knots")
        if len(iknots) > 0:
            if np.any(iknots <= bknots[0]) or np.any(iknots >= bknots[1]):
                raise ValidationError(
                    f"internal_knots: must lie strictly inside boundary knots "
                    f"{bknots.tolist()}, got {iknots.tolist()}"
                )
            if np.any(np.diff(iknots) <= 0):
                raise ValidationError(
                    f"internal_knots: must be strictly increasing, "
                    f"got {iknots.tolist()}"
                )

        iknots.setflags(write=False)
        bknots.setflags(write=False)
        return cls(internal=iknots, boundary=bknots)

    @classmethod
    def from_knots(cls, knots) -> KnotSet:
        """Create from a full knot vector whose first and last entries are
        the boundary knots."""
        arr = check_array(knots, "knots").ravel()
        if len(arr) < 2:
            raise ValidationError(
                f"knots: need at least 2 values (the boundary knots), got {len(arr)}"
            )
        return cls.create(internal=arr[1:-1], boundary=[arr[0], arr[-1]])

    @property
    def lower(self) -> float:
        return float(self.boundary[0])

    @property
    def upper(self) -> float:
        return float(self.boundary[1])

    @property
    def n_internal(self) -> int:
        return len(self.internal)

    def n_basis(self, degree: int = 3) -> int:
        """Number of basis terms: internal knots + degree + 1."""
        return self.n_internal + int(degree) + 1

    def to_array(self) -> NDArray:
        """Full knot vector: lower, internal..., upper."""
        return np.concatenate([[self.lower], self.internal, [self.upper]])

    @property
    def _key(self) -> tuple[float, ...]:
        return tuple(float(k) for k in self.to_array())


def as_knotset(knots) -> KnotSet:
    """Accept a KnotSet or a full knot vector."""
    if isinstance(knots, KnotSet):
        return knots
    return KnotSet.from_knots(knots)


def check_degree(degree) -> int:
    """Validate a spline degree: a non-negative integer."""
    if isinstance(degree, bool) or not isinstance(degree, Integral):
        raise ValidationError(
            f"degree: must be a non-negative integer, got {degree!r}"
        )
    if degree < 0:
        raise ValidationError(f"degree: must be non-negative, got {degree}")
    return int(degree)


@dataclass(frozen=True)
class _SplineFunctions:
    """Evaluators for one (knots, degree) pair plus boundary rows."""

    mspline: BSpline
    ispline: BSpline
    m_lower: NDArray     # (n_basis,) M(lower)
    m_upper: NDArray     # (n_basis,) M(upper)
    i_upper: NDArray     # (n_basis,) I(upper)


@lru_cache(maxsize=128)
def _spline_functions(key: tuple[float, ...], degree: int) -> _SplineFunctions:
    knots = np.asarray(key)
    lower, upper = knots[0], knots[-1]
    order = degree + 1
    t = np.concatenate([
        np.repeat(lower, order), knots[1:-1], np.repeat(upper, order),
    ])
    n_basis = len(t) - order

    # Identity coefficients evaluate every basis term at once
    scale = order / (t[order:order + n_basis] - t[:n_basis])
    mspline = BSpline(t, np.diag(scale), degree, extrapolate=True)
    # Antiderivative of a clamped spline is zero at the lower knot
    ispline = mspline.antiderivative()

    bounds = np.array([lower, upper])
    m_bounds = mspline(bounds)
    return _SplineFunctions(
        mspline=mspline,
        ispline=ispline,
        m_lower=m_bounds[0],
        m_upper=m_bounds[1],
        i_upper=ispline(np.array([upper]))[0],
    )


def mspline_basis(
    times,
    knots,
    degree: int = 3,
    integrate: bool = False,
) -> NDArray:
    """Evaluate the M-spline (or integrated I-spline) basis.

    Parameters
    ----------
    times : array-like
        (n,) evaluation times. NaN gives a NaN row.
    knots : KnotSet or array-like
        Knot set, or full knot vector with the boundary knots first and last.
    degree : int
        Spline degree (default 3, cubic).
    integrate : bool
        False for the hazard basis M, True for the cumulative basis I.

    Returns
    -------
    NDArray
        (n, n_internal + degree + 1) basis matrix.
    """
    knots = as_knotset(knots)
    degree = check_degree(degree)
    x = check_array(times, "times").ravel().astype(np.float64)

    fns = _spline_functions(knots._key, degree)
    n_basis = knots.n_basis(degree)
    out = np.full((len(x), n_basis), np.nan)

    ok = ~np.isnan(x)
    xs = x[ok]
    lower, upper = knots.lower, knots.upper

    if not integrate:
        vals = fns.mspline(np.clip(xs, lower, upper)).reshape(len(xs), n_basis)
    else:
        vals = np.zeros((len(xs), n_basis))
        inside = (xs >= lower) & (xs <= upper)
        above = xs > upper
        below = (xs > 0) & (xs < lower)
        if np.any(inside):
            vals[inside] = fns.ispline(xs[inside]).reshape(-1, n_basis)
        if np.any(above):
            dt = (xs[above] - upper)[:, None]
            with np.errstate(invalid='ignore'):
                slope = np.where(fns.m_upper > 0, fns.m_upper * dt, 0.0)
            vals[above] = fns.i_upper + slope
        if np.any(below):
            vals[below] = fns.m_lower * xs[below][:, None]

    vals[xs <= 0] = 0.0
    out[ok] = vals
    return out


def uniform_weights(knots, degree: int = 3) -> NDArray:
    """Coefficients giving a constant hazard over the boundary span.

    Since the B-splines sum to one, p_i ∝ (t_{i+d+1} - t_i) / (d + 1)
    makes Σ p_i M_i constant, equal to 1 / (upper - lower).

    Returns
    -------
    NDArray
        (n_basis,) point on the simplex.
    """
    knots = as_knotset(knots)
    degree = check_degree(degree)
    order = degree + 1
    t = np.concatenate([
        np.repeat(knots.lower, order), knots.internal, np.repeat(knots.upper, order),
    ])
    n_basis = knots.n_basis(degree)
    width = (t[order:order + n_basis] - t[:n_basis]) / order
    return width / width.sum()


def default_knots(
    event_times,
    df: int = 10,
    degree: int = 3,
    external_stop=None,
) -> KnotSet:
    """Default knot placement for a hazard spline.

    Boundary knots are [0, max time], where max time covers the event
    times and any external-data stop times. The df - degree - 1 internal
    knots sit at evenly spaced quantiles of the event times.

    Parameters
    ----------
    event_times : array-like
        Observed event times (> 0).
    df : int
        Number of basis terms.
    degree : int
        Spline degree.
    external_stop : array-like or None
        Stop times of external count data, which extend the upper knot.

    Returns
    -------
    KnotSet
    """
    degree = check_degree(degree)
    n_internal = int(df) - degree - 1
    if n_internal < 0:
        raise ValidationError(
            f"df: must be at least degree + 1 = {degree + 1}, got {df}"
        )

    events = check_array(event_times, "event_times").ravel()
    events = events[np.isfinite(events) & (events > 0)]
    if len(events) == 0:
        raise ValidationError(
            "event_times: need at least one positive event time to place knots"
        )

    upper = float(np.max(events))
    if external_stop is not None:
        stop = check_array(external_stop, "external_stop").ravel()
        stop = stop[np.isfinite(stop)]
        if len(stop) > 0:
            upper = max(upper, float(np.max(stop)))

    probs = np.linspace(0.0, 1.0, n_internal + 2)[1:-1]
    iknots = np.unique(np.quantile(events, probs)) if n_internal > 0 else np.array([])
    iknots = iknots[(iknots > 0) & (iknots < upper)]

    return KnotSet.create(internal=iknots, boundary=[0.0, upper])
