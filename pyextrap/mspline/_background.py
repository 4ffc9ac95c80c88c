"""
Piecewise-constant background hazard for relative-survival models.

The background (e.g. general-population mortality) hazard is a step
function: hazard[j] applies on [time[j], time[j+1]) and the last value
continues indefinitely. The model's excess hazard is added to it.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from pyextrap.core.exceptions import ValidationError
from pyextrap.core.validation import (
    check_1d,
    check_array,
    check_consistent_length,
    check_finite,
    check_nonnegative,
)


@dataclass(frozen=True)
class BackgroundHazard:
    """Immutable step-function background hazard.

    Parameters
    ----------
    time : NDArray
        (m,) interval start times, starting at 0, strictly increasing.
    hazard : NDArray
        (m,) non-negative hazard on each interval.
    cumhaz_start : NDArray
        (m,) cumulative hazard at each interval start.
    """

    time: NDArray
    hazard: NDArray
    cumhaz_start: NDArray

    @classmethod
    def create(cls, time, hazard) -> BackgroundHazard:
        """Create and validate a background hazard table."""
        t = check_array(time, "backhaz.time").ravel().astype(np.float64)
        h = check_array(hazard, "backhaz.hazard").ravel().astype(np.float64)
        check_1d(t, "backhaz.time")
        check_consistent_length(t, h, names=("backhaz.time", "backhaz.hazard"))
        if len(t) == 0:
            raise ValidationError("backhaz: needs at least one interval")
        check_finite(t, "backhaz.time")
        check_finite(h, "backhaz.hazard")
        if t[0] != 0:
            raise ValidationError(
                f"backhaz.time: first interval must start at 0, got {t[0]}"
            )
        if np.any(np.diff(t) <= 0):
            raise ValidationError("backhaz.time: must be strictly increasing")
        check_nonnegative(h, "backhaz.hazard")

        # Cumulative hazard at each interval start
        cum = np.concatenate([[0.0], np.cumsum(h[:-1] * np.diff(t))])
        return cls(time=t, hazard=h, cumhaz_start=cum)

    def _index(self, x: NDArray) -> NDArray:
        return np.clip(np.searchsorted(self.time, x, side="right") - 1, 0, None)

    def hazard_at(self, times) -> NDArray:
        """Background hazard at each time (0 for times <= 0)."""
        x = np.atleast_1d(np.asarray(times, dtype=np.float64))
        out = np.full(x.shape, np.nan)
        ok = ~np.isnan(x)
        out[ok] = np.where(x[ok] > 0, self.hazard[self._index(x[ok])], 0.0)
        return out

    def cumhaz_at(self, times) -> NDArray:
        """Background cumulative hazard from 0 to each time."""
        x = np.atleast_1d(np.asarray(times, dtype=np.float64))
        out = np.full(x.shape, np.nan)
        ok = ~np.isnan(x)
        xs = np.maximum(x[ok], 0.0)
        idx = self._index(xs)
        with np.errstate(invalid="ignore"):
            tail = np.where(
                self.hazard[idx] > 0, self.hazard[idx] * (xs - self.time[idx]), 0.0
            )
        out[ok] = self.cumhaz_start[idx] + tail
        return out

    def survival_at(self, times) -> NDArray:
        """Background survival probability exp(-H(t))."""
        return np.exp(-self.cumhaz_at(times))
