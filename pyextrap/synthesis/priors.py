"""
Prior distributions for survextrap model parameters.

A closed set of families, each carrying only the fields it needs and
validated at construction:

    p_none()                    flat (improper) on a real parameter
    p_normal(location, scale)   real parameters
    p_t(location, scale, df)    real parameters
    p_beta(shape1, shape2)      cure probability
    p_gamma(shape, rate)        standard deviations

Which family is allowed for which parameter is checked by
check_prior_kind().
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from numpy.typing import NDArray
from scipy import special, stats

from pyextrap.core.exceptions import ValidationError
from pyextrap.core.validation import check_positive_scalar


class Prior:
    """Base class for prior families."""

    distribution: str = ""

    def logpdf(self, x) -> NDArray:
        raise NotImplementedError

    def describe(self) -> str:
        return self.distribution


@dataclass(frozen=True)
class NoPrior(Prior):
    """Flat prior contributing nothing to the log posterior."""

    distribution = "none"

    def logpdf(self, x) -> NDArray:
        return np.zeros_like(np.asarray(x, dtype=np.float64))


@dataclass(frozen=True)
class NormalPrior(Prior):
    location: float
    scale: float

    distribution = "normal"

    def __post_init__(self):
        check_positive_scalar(self.scale, "normal prior scale")

    def logpdf(self, x) -> NDArray:
        return stats.norm.logpdf(x, loc=self.location, scale=self.scale)

    def describe(self) -> str:
        return f"normal(location={self.location:g}, scale={self.scale:g})"


@dataclass(frozen=True)
class StudentTPrior(Prior):
    location: float
    scale: float
    df: float

    distribution = "t"

    def __post_init__(self):
        check_positive_scalar(self.scale, "t prior scale")
        check_positive_scalar(self.df, "t prior df")

    def logpdf(self, x) -> NDArray:
        return stats.t.logpdf(x, df=self.df, loc=self.location, scale=self.scale)

    def describe(self) -> str:
        return (f"t(location={self.location:g}, scale={self.scale:g}, "
                f"df={self.df:g})")


@dataclass(frozen=True)
class BetaPrior(Prior):
    shape1: float
    shape2: float

    distribution = "beta"

    def __post_init__(self):
        check_positive_scalar(self.shape1, "beta prior shape1")
        check_positive_scalar(self.shape2, "beta prior shape2")

    def logpdf(self, x) -> NDArray:
        return stats.beta.logpdf(x, self.shape1, self.shape2)

    def logpdf_logit(self, eta) -> NDArray:
        """Log density of eta = logit(p), Jacobian included."""
        eta = np.asarray(eta, dtype=np.float64)
        log_p = -np.logaddexp(0.0, -eta)
        log_q = -np.logaddexp(0.0, eta)
        return (self.shape1 * log_p + self.shape2 * log_q
                - special.betaln(self.shape1, self.shape2))

    def describe(self) -> str:
        return f"beta(shape1={self.shape1:g}, shape2={self.shape2:g})"


@dataclass(frozen=True)
class GammaPrior(Prior):
    shape: float
    rate: float

    distribution = "gamma"

    def __post_init__(self):
        check_positive_scalar(self.shape, "gamma prior shape")
        check_positive_scalar(self.rate, "gamma prior rate")

    def logpdf(self, x) -> NDArray:
        return stats.gamma.logpdf(x, self.shape, scale=1.0 / self.rate)

    def logpdf_log(self, u) -> NDArray:
        """Log density of u = log(x), Jacobian included."""
        u = np.asarray(u, dtype=np.float64)
        return (self.shape * np.log(self.rate) - special.gammaln(self.shape)
                + self.shape * u - self.rate * np.exp(u))

    def describe(self) -> str:
        return f"gamma(shape={self.shape:g}, rate={self.rate:g})"


def p_none() -> NoPrior:
    return NoPrior()


def p_normal(location: float = 0.0, scale: float = 1.0) -> NormalPrior:
    return NormalPrior(float(location), float(scale))


def p_t(location: float = 0.0, scale: float = 1.0, df: float = 1.0) -> StudentTPrior:
    return StudentTPrior(float(location), float(scale), float(df))


def p_beta(shape1: float = 1.0, shape2: float = 1.0) -> BetaPrior:
    return BetaPrior(float(shape1), float(shape2))


def p_gamma(shape: float = 2.0, rate: float = 1.0) -> GammaPrior:
    return GammaPrior(float(shape), float(rate))


# Families permitted per parameter role
_REAL = (NoPrior, NormalPrior, StudentTPrior)
_ALLOWED = {
    "prior_loghaz": _REAL,
    "prior_loghr": _REAL,
    "prior_logor_cure": _REAL,
    "prior_cure": (BetaPrior,),
    "prior_hsd": (GammaPrior,),
    "prior_hrsd": (GammaPrior,),
}


def check_prior_kind(prior, name: str) -> Prior:
    """Verify prior is a Prior of a family allowed for parameter `name`."""
    allowed = _ALLOWED[name]
    if not isinstance(prior, allowed):
        families = ", ".join(cls.distribution for cls in allowed)
        raise ValidationError(
            f"{name}: expected a prior of family ({families}), got {prior!r}"
        )
    return prior


def expand_priors(
    prior: Prior | Sequence[Prior],
    n: int,
    name: str,
) -> tuple[Prior, ...]:
    """One prior per coefficient: a single prior is shared, a sequence
    must have exactly n entries."""
    if isinstance(prior, Prior):
        return (check_prior_kind(prior, name),) * n
    priors = tuple(prior)
    if len(priors) != n:
        raise ValidationError(
            f"{name}: expected a single prior or a list of {n} priors "
            f"(one per covariate), got {len(priors)}"
        )
    return tuple(check_prior_kind(p, name) for p in priors)


def default_priors() -> dict[str, Prior]:
    """Default prior for each parameter role."""
    return {
        "prior_loghaz": p_normal(0.0, 20.0),
        "prior_loghr": p_normal(0.0, 2.5),
        "prior_hsd": p_gamma(2.0, 1.0),
        "prior_cure": p_beta(1.0, 1.0),
        "prior_logor_cure": p_normal(0.0, 2.5),
        "prior_hrsd": p_gamma(2.0, 1.0),
    }
