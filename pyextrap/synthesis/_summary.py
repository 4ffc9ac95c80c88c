"""
Posterior summarizer: parameter draws x covariate queries -> draws of
derived quantities, reduced to point summaries.

For each draw s and query row j the linear predictors are

    alpha[s, j]  = alpha[s] + x_j @ loghr[s]
    pcure[s, j]  = expit(logit_pcure[s] + z_j @ logor_cure[s])
    coefs[s, j]  = softmax([0, lcoefs[s] + x_np_j @ b_np[s]])

and each quantity is evaluated by the M-spline distribution functions
with one call per query row, vectorised over draws x evaluation points.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Mapping

import numpy as np
from numpy.typing import NDArray
from scipy.special import expit

from pyextrap.core.exceptions import DimensionError, ValidationError
from pyextrap.core.validation import check_array, check_finite
from pyextrap.mspline._background import BackgroundHazard
from pyextrap.mspline._distribution import hsurvmspline, psurvmspline
from pyextrap.mspline._quantile import qsurvmspline
from pyextrap.mspline._rmst import rmst_survmspline
from pyextrap.synthesis._layout import ParameterLayout, softmax_rows
from pyextrap.synthesis.design import SurvextrapDesign


def summarize_draws(draws: NDArray, conf_level: float = 0.95) -> dict[str, NDArray]:
    """Mean, median, sd and equal-tailed interval over axis 0.

    NaN draws (failed root-finding or quadrature) are ignored.
    """
    if not 0.0 < conf_level < 1.0:
        raise ValidationError(f"conf_level: must lie in (0, 1), got {conf_level}")
    tail = (1.0 - conf_level) / 2.0
    draws = np.asarray(draws, dtype=np.float64)
    # All-NaN or infinite columns are expected here, e.g. failed quantiles
    # or the mean of a cure model; the failures were reported upstream.
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        with np.errstate(invalid="ignore"):
            return {
                "mean": np.nanmean(draws, axis=0),
                "median": np.nanmedian(draws, axis=0),
                "sd": np.nanstd(draws, axis=0, ddof=1) if len(draws) > 1
                else np.zeros(draws.shape[1:]),
                "lower": np.nanquantile(draws, tail, axis=0),
                "upper": np.nanquantile(draws, 1.0 - tail, axis=0),
            }


@dataclass(frozen=True)
class PosteriorSummary:
    """Draws of a derived quantity and their reductions.

    Attributes:
        quantity: 'survival', 'hazard', 'rmst', 'mean', 'quantile' or
            'hazard_ratio'.
        t: (T,) evaluation points (times, horizons or probabilities).
        draws: (S, q, T) draws per posterior draw, query row and point.
        mean, median, sd, lower, upper: (q, T) reductions.
        conf_level: Credible interval level.
    """
    quantity: str
    t: NDArray
    draws: NDArray
    mean: NDArray
    median: NDArray
    sd: NDArray
    lower: NDArray
    upper: NDArray
    conf_level: float

    @classmethod
    def from_draws(cls, quantity: str, t: NDArray, draws: NDArray,
                   conf_level: float) -> PosteriorSummary:
        stats = summarize_draws(draws, conf_level)
        return cls(quantity=quantity, t=t, draws=draws, conf_level=conf_level, **stats)

    @property
    def n_queries(self) -> int:
        return self.draws.shape[1]

    def to_rows(self) -> list[dict[str, float]]:
        """Long-format rows, one per (query, point)."""
        rows = []
        for j in range(self.n_queries):
            for i, t in enumerate(self.t):
                rows.append({
                    "query": j, "t": float(t),
                    "mean": float(self.mean[j, i]), "median": float(self.median[j, i]),
                    "sd": float(self.sd[j, i]),
                    "lower": float(self.lower[j, i]), "upper": float(self.upper[j, i]),
                })
        return rows


@dataclass(frozen=True)
class QueryRows:
    """Covariate rows at which to predict."""
    X: NDArray        # (q, p)
    X_cure: NDArray   # (q, p_cure)

    @property
    def n(self) -> int:
        return self.X.shape[0]


def resolve_newdata(design: SurvextrapDesign, newdata) -> QueryRows:
    """Covariate query rows from None, a dict of named values or a 2-D array.

    None gives one row at the covariate means of the fitted data. A dict
    must name exactly the fitted covariates (hazard and cure); an array
    has one column per name in that order, hazard covariates first.
    """
    names = design.covariate_names + tuple(
        c for c in design.cure_covariate_names if c not in design.covariate_names
    )

    if newdata is None:
        return QueryRows(X=design.X_mean[None, :].copy(),
                         X_cure=design.X_cure_mean[None, :].copy())

    if isinstance(newdata, Mapping):
        given = set(newdata)
        missing = [c for c in names if c not in given]
        unexpected = sorted(given - set(names))
        if missing or unexpected:
            raise ValidationError(
                f"newdata: covariate names must match the fitted model "
                f"{list(names)}; missing {missing}, unexpected {unexpected}"
            )
        columns = [np.atleast_1d(check_array(newdata[c], f"newdata[{c!r}]")
                                 .astype(np.float64)).ravel() for c in names]
        q = max((len(c) for c in columns), default=1)
        for c, col in zip(names, columns):
            if len(col) not in (1, q):
                raise DimensionError(
                    f"newdata[{c!r}]: length {len(col)} does not match {q} rows"
                )
        table = (np.column_stack([np.broadcast_to(col, (q,)) for col in columns])
                 if columns else np.zeros((1, 0)))
    else:
        table = check_array(newdata, "newdata").astype(np.float64)
        if table.ndim == 1:
            table = table.reshape(1, -1)
        if table.ndim != 2 or table.shape[1] != len(names):
            raise DimensionError(
                f"newdata: expected a 2-D array with {len(names)} columns "
                f"{list(names)}, got shape {table.shape}"
            )

    check_finite(table, "newdata")
    index = {c: i for i, c in enumerate(names)}
    X = table[:, [index[c] for c in design.covariate_names]]
    X_cure = table[:, [index[c] for c in design.cure_covariate_names]]
    return QueryRows(X=X.reshape(len(table), design.p),
                     X_cure=X_cure.reshape(len(table), design.p_cure))


class PosteriorSummarizer:
    """Derived quantities from unconstrained posterior draws.

    Args:
        design: Fitted data (knots, covariate names, means).
        layout: Parameter vector structure.
        draws: (S, n_params) unconstrained draws.
    """

    def __init__(self, design: SurvextrapDesign, layout: ParameterLayout, draws: NDArray):
        self.design = design
        self.layout = layout
        self.params = layout.constrain(draws)

    @property
    def n_draws(self) -> int:
        return len(self.params["alpha"])

    def predictors(self, newdata=None) -> tuple[NDArray, NDArray, NDArray]:
        """(alpha, pcure, coefs) per draw x query: (S, q), (S, q), (S, q, k)."""
        rows = resolve_newdata(self.design, newdata)
        prm = self.params
        alpha = prm["alpha"][:, None] + prm["loghr"] @ rows.X.T

        pcure = expit(prm["logit_pcure"][:, None] + prm["logor_cure"] @ rows.X_cure.T)

        X_np = rows.X[:, list(self.design.nonprop_index)]
        lc = prm["lcoefs"][:, None, :] + np.einsum("qj,sjk->sqk", X_np, prm["b_np"])
        return alpha, pcure, softmax_rows(lc)

    def _evaluate(self, func, t: NDArray, newdata, **kwargs) -> NDArray:
        alpha, pcure, coefs = self.predictors(newdata)
        S, q = alpha.shape
        T = len(t)
        out = np.empty((S, q, T))
        x = np.tile(t, S)
        for j in range(q):
            vals = func(
                x,
                np.repeat(alpha[:, j], T),
                np.repeat(coefs[:, j, :], T, axis=0),
                self.design.knots,
                self.design.degree,
                pcure=np.repeat(pcure[:, j], T),
                **kwargs,
            )
            out[:, j, :] = vals.reshape(S, T)
        return out

    @staticmethod
    def _points(t, name: str) -> NDArray:
        arr = np.atleast_1d(check_array(t, name).astype(np.float64)).ravel()
        if len(arr) == 0:
            raise ValidationError(f"{name}: needs at least one value")
        return arr

    # ── Quantities ───────────────────────────────────────────────────

    def survival(self, t, newdata=None, *, backhaz: BackgroundHazard | None = None,
                 conf_level: float = 0.95) -> PosteriorSummary:
        t = self._points(t, "t")
        draws = self._evaluate(psurvmspline, t, newdata, lower_tail=False, backhaz=backhaz)
        return PosteriorSummary.from_draws("survival", t, draws, conf_level)

    def hazard(self, t, newdata=None, *, backhaz: BackgroundHazard | None = None,
               conf_level: float = 0.95) -> PosteriorSummary:
        t = self._points(t, "t")
        draws = self._evaluate(hsurvmspline, t, newdata, backhaz=backhaz)
        return PosteriorSummary.from_draws("hazard", t, draws, conf_level)

    def rmst(self, t, newdata=None, *, backhaz: BackgroundHazard | None = None,
             conf_level: float = 0.95) -> PosteriorSummary:
        t = self._points(t, "t")
        draws = self._evaluate(rmst_survmspline, t, newdata, backhaz=backhaz)
        return PosteriorSummary.from_draws("rmst", t, draws, conf_level)

    def mean_survival(self, newdata=None, *, backhaz: BackgroundHazard | None = None,
                      conf_level: float = 0.95) -> PosteriorSummary:
        t = np.array([np.inf])
        draws = self._evaluate(rmst_survmspline, t, newdata, backhaz=backhaz)
        return PosteriorSummary.from_draws("mean", t, draws, conf_level)

    def quantile(self, p=0.5, newdata=None, *, backhaz: BackgroundHazard | None = None,
                 conf_level: float = 0.95) -> PosteriorSummary:
        p = self._points(p, "p")
        draws = self._evaluate(qsurvmspline, p, newdata, backhaz=backhaz)
        return PosteriorSummary.from_draws("quantile", p, draws, conf_level)

    def hazard_ratio(self, t, newdata, newdata0, *,
                     conf_level: float = 0.95) -> PosteriorSummary:
        """Ratio of model hazards h(t | newdata) / h(t | newdata0).

        newdata0 must be a single reference row.
        """
        t = self._points(t, "t")
        h1 = self._evaluate(hsurvmspline, t, newdata)
        h0 = self._evaluate(hsurvmspline, t, newdata0)
        if h0.shape[1] != 1:
            raise DimensionError(
                f"newdata0: expected a single reference row, got {h0.shape[1]}"
            )
        with np.errstate(divide="ignore", invalid="ignore"):
            draws = h1 / h0
        return PosteriorSummary.from_draws("hazard_ratio", t, draws, conf_level)

    def coef_summary(self, conf_level: float = 0.95) -> dict[str, dict[str, float]]:
        """Summary of model parameters on their natural scale."""
        prm = self.params
        design = self.design
        columns: list[tuple[str, NDArray]] = [("alpha", prm["alpha"])]
        for j, c in enumerate(design.covariate_names):
            columns.append((f"loghr[{c}]", prm["loghr"][:, j]))
        for i in range(self.layout.n_basis):
            columns.append((f"coefs[{i + 1}]", prm["coefs"][:, i]))
        columns.append(("smooth_sd", prm["smooth_sd"]))
        if self.layout.cure:
            columns.append(("pcure", prm["pcure"]))
            for j, c in enumerate(design.cure_covariate_names):
                columns.append((f"logor_cure[{c}]", prm["logor_cure"][:, j]))
        for j, c in enumerate(design.nonprop_names):
            columns.append((f"hrsd[{c}]", prm["hrsd"][:, j]))

        table = np.column_stack([v for _, v in columns])
        stats = summarize_draws(table, conf_level)
        return {
            name: {key: float(val[i]) for key, val in stats.items()}
            for i, (name, _) in enumerate(columns)
        }
