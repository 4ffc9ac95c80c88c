"""
Solution wrapper for a fitted survextrap model.

SurvextrapSolution wraps Result[SurvextrapParams] together with the
design and parameter layout it was fitted with, and exposes parameter
summaries and posterior predictions of survival, hazard, RMST, mean
survival, quantiles and hazard ratios.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from pyextrap.core.exceptions import DimensionError
from pyextrap.core.result import Result
from pyextrap.mspline._background import BackgroundHazard
from pyextrap.mspline._shape import HazardShape
from pyextrap.synthesis._common import SurvextrapParams
from pyextrap.synthesis._layout import ParameterLayout
from pyextrap.synthesis._summary import PosteriorSummarizer, PosteriorSummary
from pyextrap.synthesis.design import SurvextrapDesign


class SurvextrapSolution:
    """Solution wrapper for a fitted survextrap model.

    Predictions take `newdata`: None for the covariate means of the
    fitted data, a dict naming every fitted covariate, or a 2-D array
    with one column per covariate.
    """

    __slots__ = ('_result', '_design', '_layout', '_summarizer')

    def __init__(
        self,
        _result: Result[SurvextrapParams],
        design: SurvextrapDesign,
        layout: ParameterLayout,
    ):
        self._result = _result
        self._design = design
        self._layout = layout
        self._summarizer = PosteriorSummarizer(design, layout, _result.params.draws)

    @property
    def params(self) -> SurvextrapParams:
        return self._result.params

    @property
    def design(self) -> SurvextrapDesign:
        return self._design

    @property
    def layout(self) -> ParameterLayout:
        return self._layout

    @property
    def info(self) -> dict:
        return self._result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    # --- Parameters ---

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return self.params.parameter_names

    @property
    def draws(self) -> NDArray:
        """(n_draws, n_params) unconstrained posterior draws."""
        return self.params.draws

    @property
    def mode(self) -> NDArray | None:
        return self.params.mode

    @property
    def n_draws(self) -> int:
        return self.params.draws.shape[0]

    @property
    def converged(self) -> bool:
        return self.params.converged

    @property
    def knots(self):
        return self._design.knots

    @property
    def degree(self) -> int:
        return self._design.degree

    def constrained_draws(self) -> dict[str, NDArray]:
        """Posterior draws of the model parameters on their natural scale."""
        return self._layout.constrain(self.params.draws)

    def coef_summary(self, conf_level: float = 0.95) -> dict[str, dict[str, float]]:
        """Posterior mean, median, sd and credible interval per parameter."""
        return self._summarizer.coef_summary(conf_level)

    # --- Predictions ---

    def survival(self, t, newdata=None, *, backhaz: BackgroundHazard | None = None,
                 conf_level: float = 0.95) -> PosteriorSummary:
        return self._summarizer.survival(t, newdata, backhaz=backhaz, conf_level=conf_level)

    def hazard(self, t, newdata=None, *, backhaz: BackgroundHazard | None = None,
               conf_level: float = 0.95) -> PosteriorSummary:
        return self._summarizer.hazard(t, newdata, backhaz=backhaz, conf_level=conf_level)

    def rmst(self, t, newdata=None, *, backhaz: BackgroundHazard | None = None,
             conf_level: float = 0.95) -> PosteriorSummary:
        return self._summarizer.rmst(t, newdata, backhaz=backhaz, conf_level=conf_level)

    def mean_survival(self, newdata=None, *, backhaz: BackgroundHazard | None = None,
                      conf_level: float = 0.95) -> PosteriorSummary:
        return self._summarizer.mean_survival(newdata, backhaz=backhaz, conf_level=conf_level)

    def quantile(self, p=0.5, newdata=None, *, backhaz: BackgroundHazard | None = None,
                 conf_level: float = 0.95) -> PosteriorSummary:
        return self._summarizer.quantile(p, newdata, backhaz=backhaz, conf_level=conf_level)

    def median_survival(self, newdata=None, **kwargs) -> PosteriorSummary:
        return self.quantile(0.5, newdata, **kwargs)

    def hazard_ratio(self, t, newdata, newdata0, *,
                     conf_level: float = 0.95) -> PosteriorSummary:
        return self._summarizer.hazard_ratio(t, newdata, newdata0, conf_level=conf_level)

    def hazard_shape(self, newdata=None) -> HazardShape:
        """Posterior median hazard for one covariate row, for persistence.

        The coefficients are the renormalised posterior medians of each
        basis coefficient.
        """
        alpha, pcure, coefs = self._summarizer.predictors(newdata)
        if alpha.shape[1] != 1:
            raise DimensionError("newdata: hazard_shape needs a single covariate row")
        med = np.median(coefs[:, 0, :], axis=0)
        return HazardShape.create(
            self._design.knots, self._design.degree, med / med.sum(),
            float(np.median(alpha[:, 0])), float(np.median(pcure[:, 0])),
        )

    # --- Display ---

    def summary(self, conf_level: float = 0.95) -> str:
        """Parameter table and fit details."""
        info = self.info
        lines = []
        method = ("posterior mode + Laplace approximation"
                  if self.params.fit_method == "mode" else "external sampler")
        lines.append(f"M-spline survival model fitted by {method}")
        lines.append(
            f"Data: {info['n']} individuals ({info['n_events']} events), "
            f"{info['n_external']} external count rows"
        )
        knots = ", ".join(f"{k:g}" for k in self._design.knots.to_array())
        lines.append(f"Knots: {knots} (degree {self._design.degree})")
        if info["cure"]:
            lines.append("Mixture cure model")
        if info["relative"]:
            lines.append("Relative survival with background hazard")
        lines.append("")

        pct = f"{100 * conf_level:g}%"
        lines.append(f"{'':<20s} {'mean':>10s} {'median':>10s} {'sd':>10s} "
                     f"{pct + ' lower':>12s} {pct + ' upper':>12s}")
        for name, row in self.coef_summary(conf_level).items():
            lines.append(
                f"{name:<20s} {row['mean']:10.4f} {row['median']:10.4f} "
                f"{row['sd']:10.4f} {row['lower']:12.4f} {row['upper']:12.4f}"
            )
        lines.append("")
        lines.append(f"Posterior draws: {self.n_draws}")
        if self.params.log_posterior_mode is not None:
            lines.append(f"Log posterior at mode: {self.params.log_posterior_mode:.3f}")

        if not self.converged:
            lines.append("")
            lines.append("WARNING: Posterior mode search did not converge")
        for msg in self.warnings:
            if "converge" not in msg:
                lines.append(f"WARNING: {msg}")

        return '\n'.join(lines)

    def __repr__(self) -> str:
        return (
            f"SurvextrapSolution({self.params.fit_method}, "
            f"n={self.info['n']}, "
            f"external={self.info['n_external']}, "
            f"params={len(self.parameter_names)}, "
            f"draws={self.n_draws})"
        )
