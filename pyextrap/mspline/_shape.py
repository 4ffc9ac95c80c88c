"""
Persisted hazard shape: the minimal description needed to predict
without refitting (knots, degree, coefficients, log scale).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pyextrap.core.exceptions import ValidationError
from pyextrap.mspline._basis import KnotSet, as_knotset, check_degree
from pyextrap.mspline._common import normalize_coefs
from pyextrap.mspline._distribution import hsurvmspline, psurvmspline
from pyextrap.mspline._rmst import rmst_survmspline


@dataclass(frozen=True)
class HazardShape:
    """A single fitted M-spline hazard.

    Parameters
    ----------
    knots : KnotSet
    degree : int
    coefs : NDArray
        (n_basis,) simplex coefficients.
    alpha : float
        Log hazard scale.
    pcure : float
        Cure probability (0 for no cure).
    """

    knots: KnotSet
    degree: int
    coefs: NDArray
    alpha: float
    pcure: float = 0.0

    @classmethod
    def create(cls, knots, degree, coefs, alpha, pcure=0.0) -> HazardShape:
        knots = as_knotset(knots)
        degree = check_degree(degree)
        coefs = normalize_coefs(np.asarray(coefs, dtype=np.float64).ravel())
        if len(coefs) != knots.n_basis(degree):
            raise ValidationError(
                f"coefs: expected {knots.n_basis(degree)} values, got {len(coefs)}"
            )
        if not 0.0 <= float(pcure) <= 1.0:
            raise ValidationError(f"pcure: must lie in [0, 1], got {pcure}")
        return cls(knots=knots, degree=degree, coefs=coefs,
                   alpha=float(alpha), pcure=float(pcure))

    def survival(self, t) -> NDArray:
        return psurvmspline(t, self.alpha, self.coefs, self.knots, self.degree,
                            lower_tail=False, pcure=self.pcure)

    def hazard(self, t) -> NDArray:
        return hsurvmspline(t, self.alpha, self.coefs, self.knots, self.degree,
                            pcure=self.pcure)

    def rmst(self, t) -> NDArray:
        return rmst_survmspline(t, self.alpha, self.coefs, self.knots, self.degree,
                                pcure=self.pcure)

    def to_dict(self) -> dict[str, Any]:
        """Plain-number representation, JSON serialisable."""
        return {
            "knots": self.knots.to_array().tolist(),
            "degree": self.degree,
            "coefs": self.coefs.tolist(),
            "alpha": self.alpha,
            "pcure": self.pcure,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HazardShape:
        missing = {"knots", "degree", "coefs", "alpha"} - set(data)
        if missing:
            raise ValidationError(f"hazard shape: missing fields {sorted(missing)}")
        return cls.create(
            KnotSet.from_knots(data["knots"]), int(data["degree"]),
            data["coefs"], data["alpha"], data.get("pcure", 0.0),
        )
