"""
SurvextrapDesign: immutable container for individual and aggregate data.

Individual-level right-censored data and external count data
(n alive at start, r of them still alive at stop) are validated once and
turned into the fixed matrices the log posterior needs: M-spline basis at
event times, I-spline basis at event, censoring and external interval
times, covariate design matrices and background-hazard terms. All
downstream code trusts clean data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from pyextrap.core.exceptions import DimensionError, ValidationError
from pyextrap.core.validation import (
    check_2d,
    check_array,
    check_consistent_length,
    check_finite,
    check_nonnegative,
    check_probability,
)
from pyextrap.mspline._background import BackgroundHazard
from pyextrap.mspline._basis import KnotSet, as_knotset, check_degree, default_knots, mspline_basis


def _design_matrix(X, n: int, name: str) -> NDArray:
    """Covariate matrix with n rows; None gives n x 0."""
    if X is None:
        return np.zeros((n, 0))
    arr = check_array(X, name).astype(np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    check_2d(arr, name)
    if arr.shape[0] != n:
        raise DimensionError(f"{name}: must have {n} rows, got {arr.shape[0]}")
    check_finite(arr, name)
    return arr


def _names(names, p: int, prefix: str, label: str) -> tuple[str, ...]:
    if names is None:
        return tuple(f"{prefix}{j + 1}" for j in range(p))
    names = tuple(str(s) for s in names)
    if len(names) != p:
        raise ValidationError(
            f"{label}: expected {p} names to match the covariate columns, "
            f"got {len(names)}"
        )
    if len(set(names)) != p:
        raise ValidationError(f"{label}: names must be unique, got {list(names)}")
    return names


@dataclass(frozen=True)
class ExternalCounts:
    """Aggregate survival data: of n alive at `start`, r are alive at `stop`.

    Parameters
    ----------
    start, stop : NDArray
        (m,) interval times, 0 <= start < stop.
    n, r : NDArray
        (m,) counts, 0 <= r <= n.
    X, X_cure : NDArray or None
        (m, p) covariate rows for the hazard and cure models.
    backsurv_start, backsurv_stop : NDArray or None
        (m,) background survival probabilities at start and stop.
    """

    start: NDArray
    stop: NDArray
    n: NDArray
    r: NDArray
    X: NDArray | None
    X_cure: NDArray | None
    backsurv_start: NDArray | None
    backsurv_stop: NDArray | None

    @classmethod
    def for_counts(
        cls,
        start,
        stop,
        n,
        r,
        *,
        X=None,
        X_cure=None,
        backsurv_start=None,
        backsurv_stop=None,
    ) -> ExternalCounts:
        """Create and validate an external count table.

        Raises
        ------
        ValidationError
            If start >= stop, counts are negative or non-integer, or r > n.
        """
        start = check_array(start, "external.start").ravel().astype(np.float64)
        stop = check_array(stop, "external.stop").ravel().astype(np.float64)
        n_arr = check_array(n, "external.n").ravel().astype(np.float64)
        r_arr = check_array(r, "external.r").ravel().astype(np.float64)
        check_consistent_length(
            start, stop, n_arr, r_arr,
            names=("external.start", "external.stop", "external.n", "external.r"),
        )
        m = len(start)
        if m == 0:
            raise ValidationError("external: needs at least one row")

        for arr, name in ((start, "external.start"), (stop, "external.stop"),
                          (n_arr, "external.n"), (r_arr, "external.r")):
            check_finite(arr, name)
        check_nonnegative(start, "external.start")
        if np.any(start >= stop):
            raise ValidationError("external: start must be strictly below stop in every row")
        if np.any(n_arr != np.round(n_arr)) or np.any(r_arr != np.round(r_arr)):
            raise ValidationError("external: n and r must be whole numbers")
        check_nonnegative(r_arr, "external.r")
        if np.any(r_arr > n_arr):
            raise ValidationError("external: r (alive at stop) cannot exceed n (alive at start)")

        X_arr = None if X is None else _design_matrix(X, m, "external.X")
        Xc_arr = None if X_cure is None else _design_matrix(X_cure, m, "external.X_cure")

        bs = []
        for value, name in ((backsurv_start, "external.backsurv_start"),
                            (backsurv_stop, "external.backsurv_stop")):
            if value is None:
                bs.append(None)
                continue
            arr = np.broadcast_to(
                check_array(value, name).astype(np.float64), (m,)
            ).copy()
            check_probability(arr, name)
            if np.any(arr <= 0):
                raise ValidationError(f"{name}: background survival must be positive")
            bs.append(arr)

        return cls(
            start=start, stop=stop, n=n_arr, r=r_arr,
            X=X_arr, X_cure=Xc_arr,
            backsurv_start=bs[0], backsurv_stop=bs[1],
        )

    @property
    def n_rows(self) -> int:
        return len(self.start)


@dataclass(frozen=True)
class ObservationBlock:
    """Fixed matrices for one class of individual observations."""

    time: NDArray                # (m,)
    basis: NDArray | None        # (m, n_basis) M-spline at time; events only
    ibasis: NDArray              # (m, n_basis) I-spline at time
    X: NDArray                   # (m, p)
    X_cure: NDArray              # (m, p_cure)
    X_np: NDArray                # (m, p_np) non-proportional columns of X
    backhaz: NDArray | None      # (m,) background hazard at time; events only

    @property
    def n(self) -> int:
        return len(self.time)


@dataclass(frozen=True)
class ExternalBlock:
    """Fixed matrices for the external count data."""

    counts: ExternalCounts
    ibasis_start: NDArray        # (m, n_basis)
    ibasis_stop: NDArray         # (m, n_basis)
    X: NDArray                   # (m, p)
    X_cure: NDArray              # (m, p_cure)
    X_np: NDArray                # (m, p_np)
    log_backsurv_ratio: NDArray  # (m,) log(backsurv_stop / backsurv_start)

    @property
    def n(self) -> int:
        return self.counts.n_rows


@dataclass(frozen=True)
class SurvextrapDesign:
    """Immutable data container for the evidence-synthesis survival model.

    Build with SurvextrapDesign.for_survextrap().
    """

    knots: KnotSet
    degree: int
    covariate_names: tuple[str, ...]
    cure_covariate_names: tuple[str, ...]
    nonprop_index: tuple[int, ...]
    events: ObservationBlock
    censored: ObservationBlock
    external: ExternalBlock | None
    X_mean: NDArray              # (p,) covariate means of individual data
    X_cure_mean: NDArray         # (p_cure,)
    relative: bool

    @classmethod
    def for_survextrap(
        cls,
        time=None,
        event=None,
        X=None,
        *,
        external: ExternalCounts | None = None,
        knots=None,
        df: int = 10,
        degree: int = 3,
        X_cure=None,
        nonprop: bool | Sequence[str | int] | None = None,
        backhaz=None,
        covariate_names: Sequence[str] | None = None,
        cure_covariate_names: Sequence[str] | None = None,
    ) -> SurvextrapDesign:
        """Create and validate model data.

        Parameters
        ----------
        time : array-like or None
            Event or censoring times (>= 0; events must be > 0). None for
            a model informed by external data only.
        event : array-like or None
            Event indicator (1 = event, 0 = right-censored).
        X : array-like or None
            (n, p) covariates for the log hazard.
        external : ExternalCounts or None
            Aggregate counts.
        knots : KnotSet, array-like or None
            Full knot vector. None places default knots from the event
            times and external stop times.
        df, degree : int
            Basis size and degree for default knots.
        X_cure : array-like or None
            (n, p_cure) covariates for the cure probability.
        nonprop : True, sequence of names/indices, or None
            Covariates whose effect also changes the hazard shape.
        backhaz : None, array-like or BackgroundHazard
            Background hazard at each individual's time, or a table.
        covariate_names, cure_covariate_names : sequence of str or None

        Returns
        -------
        SurvextrapDesign

        Raises
        ------
        ValidationError
            If inputs are invalid.
        """
        degree = check_degree(degree)

        if time is None:
            if external is None:
                raise ValidationError("time: required unless external data are given")
            if event is not None or X is not None or X_cure is not None:
                raise ValidationError("event, X and X_cure need individual-level time")
            time_arr = np.zeros(0)
            event_arr = np.zeros(0)
        else:
            time_arr = check_array(time, "time").ravel().astype(np.float64)
            if event is None:
                event_arr = np.ones_like(time_arr)
            else:
                event_arr = check_array(event, "event").ravel().astype(np.float64)
            check_consistent_length(time_arr, event_arr, names=("time", "event"))
            if len(time_arr) == 0:
                raise ValidationError("time must have at least one observation")
            check_finite(time_arr, "time")
            check_nonnegative(time_arr, "time")
            unique_events = np.unique(event_arr)
            if not np.all(np.isin(unique_events, [0.0, 1.0])):
                raise ValidationError(
                    f"event must contain only 0 and 1, got unique values: {unique_events}"
                )
            if np.any(time_arr[event_arr == 1] <= 0):
                raise ValidationError("time: event times must be strictly positive")

        n = len(time_arr)
        X_ind = _design_matrix(X, n, "X")
        Xc_ind = _design_matrix(X_cure, n, "X_cure")

        p = X_ind.shape[1]
        pc = Xc_ind.shape[1]
        if external is not None:
            if external.X is not None:
                if n > 0 and external.X.shape[1] != p:
                    raise DimensionError(
                        f"external.X: expected {p} columns to match X, "
                        f"got {external.X.shape[1]}"
                    )
                p = external.X.shape[1] if n == 0 else p
            elif p > 0:
                raise ValidationError(
                    "external.X: required because the model has covariates"
                )
            if external.X_cure is not None:
                if n > 0 and external.X_cure.shape[1] != pc:
                    raise DimensionError(
                        f"external.X_cure: expected {pc} columns to match X_cure, "
                        f"got {external.X_cure.shape[1]}"
                    )
                pc = external.X_cure.shape[1] if n == 0 else pc
            elif pc > 0:
                raise ValidationError(
                    "external.X_cure: required because the cure model has covariates"
                )

        names = _names(covariate_names, p, "x", "covariate_names")
        cure_names = _names(cure_covariate_names, pc, "z", "cure_covariate_names")
        np_index = _nonprop_index(nonprop, names)

        if knots is None:
            if not np.any(event_arr == 1):
                raise ValidationError(
                    "knots: required when there are no individual-level events"
                )
            knots = default_knots(
                time_arr[event_arr == 1], df=df, degree=degree,
                external_stop=None if external is None else external.stop,
            )
        knots = as_knotset(knots)

        table = backhaz if isinstance(backhaz, BackgroundHazard) else None
        backhaz_ind = None
        if backhaz is not None:
            if table is not None:
                backhaz_ind = table.hazard_at(time_arr) if n > 0 else np.zeros(0)
            else:
                backhaz_ind = np.broadcast_to(
                    check_array(backhaz, "backhaz").astype(np.float64), (n,)
                ).copy()
                check_finite(backhaz_ind, "backhaz")
                check_nonnegative(backhaz_ind, "backhaz")

        is_event = event_arr == 1

        def block(mask: NDArray, with_hazard: bool) -> ObservationBlock:
            t = time_arr[mask]
            Xb = X_ind[mask]
            return ObservationBlock(
                time=t,
                basis=mspline_basis(t, knots, degree) if with_hazard else None,
                ibasis=mspline_basis(t, knots, degree, integrate=True),
                X=Xb,
                X_cure=Xc_ind[mask],
                X_np=Xb[:, list(np_index)],
                backhaz=(None if backhaz_ind is None or not with_hazard
                         else backhaz_ind[mask]),
            )

        ext_block = None
        if external is not None:
            m = external.n_rows
            Xe = external.X if external.X is not None else np.zeros((m, p))
            Xce = external.X_cure if external.X_cure is not None else np.zeros((m, pc))
            bs_start, bs_stop = external.backsurv_start, external.backsurv_stop
            if table is not None:
                if bs_start is None:
                    bs_start = table.survival_at(external.start)
                if bs_stop is None:
                    bs_stop = table.survival_at(external.stop)
            log_ratio = np.zeros(m)
            if bs_start is not None:
                log_ratio = log_ratio - np.log(bs_start)
            if bs_stop is not None:
                log_ratio = log_ratio + np.log(bs_stop)
            ext_block = ExternalBlock(
                counts=external,
                ibasis_start=mspline_basis(external.start, knots, degree, integrate=True),
                ibasis_stop=mspline_basis(external.stop, knots, degree, integrate=True),
                X=Xe,
                X_cure=Xce,
                X_np=Xe[:, list(np_index)],
                log_backsurv_ratio=log_ratio,
            )

        if n > 0:
            X_mean = X_ind.mean(axis=0)
            Xc_mean = Xc_ind.mean(axis=0)
        else:
            X_mean = ext_block.X.mean(axis=0)
            Xc_mean = ext_block.X_cure.mean(axis=0)

        return cls(
            knots=knots,
            degree=degree,
            covariate_names=names,
            cure_covariate_names=cure_names,
            nonprop_index=np_index,
            events=block(is_event, True),
            censored=block(~is_event, False),
            external=ext_block,
            X_mean=X_mean,
            X_cure_mean=Xc_mean,
            relative=backhaz is not None,
        )

    @property
    def n_basis(self) -> int:
        return self.knots.n_basis(self.degree)

    @property
    def p(self) -> int:
        return len(self.covariate_names)

    @property
    def p_cure(self) -> int:
        return len(self.cure_covariate_names)

    @property
    def p_nonprop(self) -> int:
        return len(self.nonprop_index)

    @property
    def nonprop_names(self) -> tuple[str, ...]:
        return tuple(self.covariate_names[j] for j in self.nonprop_index)

    @property
    def n_events(self) -> int:
        return self.events.n

    @property
    def n_censored(self) -> int:
        return self.censored.n

    @property
    def n_observations(self) -> int:
        return self.events.n + self.censored.n

    @property
    def metadata(self) -> dict:
        return {
            "n": self.n_observations,
            "n_events": self.n_events,
            "n_censored": self.n_censored,
            "n_external": 0 if self.external is None else self.external.n,
            "n_basis": self.n_basis,
            "p": self.p,
            "p_cure": self.p_cure,
            "p_nonprop": self.p_nonprop,
            "relative": self.relative,
        }


def _nonprop_index(nonprop, names: tuple[str, ...]) -> tuple[int, ...]:
    if nonprop is None or nonprop is False:
        return ()
    if nonprop is True:
        return tuple(range(len(names)))
    index = []
    for item in nonprop:
        if isinstance(item, str):
            if item not in names:
                raise ValidationError(
                    f"nonprop: unknown covariate {item!r}; covariates are {list(names)}"
                )
            index.append(names.index(item))
        else:
            j = int(item)
            if not 0 <= j < len(names):
                raise ValidationError(
                    f"nonprop: covariate index {j} out of range for {len(names)} covariates"
                )
            index.append(j)
    if len(set(index)) != len(index):
        raise ValidationError("nonprop: covariates listed more than once")
    return tuple(sorted(index))
