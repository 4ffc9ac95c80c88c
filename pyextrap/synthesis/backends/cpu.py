"""
CPU log posterior for the survextrap model (numpy).

Pure function of the unconstrained parameter vector, closed over the
fixed design matrices and priors. Gradients and Hessians are central
finite differences.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats
from scipy.special import expit, gammaln

from pyextrap.mspline._distribution import (
    add_background_log_hazard,
    cure_log_hazard,
    cure_log_survival,
    log_cumhaz_from_basis,
    log_hazard_from_basis,
)
from pyextrap.synthesis._common import ModelSpec
from pyextrap.synthesis._layout import ParameterLayout, coefficient_rows
from pyextrap.synthesis._numdiff import central_gradient, central_hessian
from pyextrap.synthesis.design import SurvextrapDesign


def binomial_survivor_loglik(
    log_ratio: NDArray,
    n: NDArray,
    r: NDArray,
) -> NDArray:
    """log Binomial(r | n, exp(log_ratio)), elementwise.

    Terms with a zero count are dropped so that r = n (or r = 0) stays
    finite at a ratio of 1 (or 0).
    """
    log_ratio = np.minimum(log_ratio, 0.0)
    with np.errstate(divide="ignore", invalid="ignore"):
        log_choose = gammaln(n + 1.0) - gammaln(r + 1.0) - gammaln(n - r + 1.0)
        alive = np.where(r > 0, r * log_ratio, 0.0)
        died = np.where(n - r > 0, (n - r) * np.log(-np.expm1(log_ratio)), 0.0)
    return log_choose + alive + died


class CPULogPosterior:
    """
    Log posterior evaluated with numpy.

    Args:
        design: Validated data.
        spec: Model structure and priors.
        layout: Parameter vector structure (built from design and spec
            when omitted).
    """

    name = "cpu"

    def __init__(
        self,
        design: SurvextrapDesign,
        spec: ModelSpec,
        layout: ParameterLayout | None = None,
    ):
        self.design = design
        self.spec = spec
        self.layout = layout or ParameterLayout.for_model(design, spec)

    # ── Parameters ───────────────────────────────────────────────────

    def _shape(self, u: dict[str, NDArray]) -> tuple[NDArray, NDArray]:
        """(lcoefs, b_np) for one parameter vector."""
        if self.spec.estimate_smooth_sd:
            smooth_sd = np.exp(u["log_smooth_sd"][0])
        else:
            smooth_sd = self.spec.smooth_sd
        lcoefs = self.spec.lcoefs_mean + smooth_sd * u["coefs_raw"]
        k1 = self.layout.n_basis - 1
        if self.layout.p_nonprop > 0:
            hrsd = np.exp(u["log_hrsd"])
            b_np = hrsd[:, None] * u["np_raw"].reshape(self.layout.p_nonprop, k1)
        else:
            b_np = np.zeros((0, k1))
        return lcoefs, b_np

    def _rows(self, u, lcoefs, b_np, X, X_cure, X_np):
        alpha = u["alpha"][0] + X @ u["loghr"]
        coefs = coefficient_rows(lcoefs, b_np, X_np)
        if self.spec.cure:
            pcure = expit(u["logit_pcure"][0] + X_cure @ u["logor_cure"])
        else:
            pcure = None
        return alpha, coefs, pcure

    @staticmethod
    def _log_survival(ibasis, alpha, coefs, pcure):
        base = -np.exp(log_cumhaz_from_basis(ibasis, alpha, coefs))
        if pcure is None:
            return base, base
        return base, cure_log_survival(base, pcure)

    # ── Log density pieces ───────────────────────────────────────────

    def log_prior(self, theta: NDArray) -> float:
        """Sum of prior log densities, Jacobians of constrained blocks included."""
        u = self.layout.unpack(theta)
        spec = self.spec

        lp = float(spec.prior_loghaz.logpdf(u["alpha"][0]))
        for prior, value in zip(spec.prior_loghr, u["loghr"]):
            lp += float(prior.logpdf(value))
        lp += float(np.sum(stats.logistic.logpdf(u["coefs_raw"])))
        if spec.estimate_smooth_sd:
            lp += float(spec.prior_hsd.logpdf_log(u["log_smooth_sd"][0]))
        if spec.cure:
            lp += float(spec.prior_cure.logpdf_logit(u["logit_pcure"][0]))
            for prior, value in zip(spec.prior_logor_cure, u["logor_cure"]):
                lp += float(prior.logpdf(value))
        if self.layout.p_nonprop > 0:
            lp += float(np.sum(stats.norm.logpdf(u["np_raw"])))
            for prior, value in zip(spec.prior_hrsd, u["log_hrsd"]):
                lp += float(prior.logpdf_log(value))
        return lp

    def log_likelihood_terms(self, theta: NDArray) -> dict[str, float]:
        """Log likelihood split by observation class."""
        design = self.design
        u = self.layout.unpack(theta)
        lcoefs, b_np = self._shape(u)
        out = {"events": 0.0, "censored": 0.0, "external": 0.0}

        ev = design.events
        if ev.n > 0:
            alpha, coefs, pcure = self._rows(u, lcoefs, b_np, ev.X, ev.X_cure, ev.X_np)
            log_haz = log_hazard_from_basis(ev.basis, alpha, coefs)
            base_ls, log_surv = self._log_survival(ev.ibasis, alpha, coefs, pcure)
            if pcure is not None:
                log_haz = cure_log_hazard(log_haz, base_ls, log_surv, pcure)
            if ev.backhaz is not None:
                log_haz = add_background_log_hazard(log_haz, ev.backhaz)
            out["events"] = float(np.sum(log_haz + log_surv))

        cens = design.censored
        if cens.n > 0:
            alpha, coefs, pcure = self._rows(u, lcoefs, b_np, cens.X, cens.X_cure, cens.X_np)
            _, log_surv = self._log_survival(cens.ibasis, alpha, coefs, pcure)
            out["censored"] = float(np.sum(log_surv))

        ext = design.external
        if ext is not None:
            alpha, coefs, pcure = self._rows(u, lcoefs, b_np, ext.X, ext.X_cure, ext.X_np)
            _, ls_start = self._log_survival(ext.ibasis_start, alpha, coefs, pcure)
            _, ls_stop = self._log_survival(ext.ibasis_stop, alpha, coefs, pcure)
            log_ratio = ls_stop - ls_start + ext.log_backsurv_ratio
            out["external"] = float(np.sum(
                binomial_survivor_loglik(log_ratio, ext.counts.n, ext.counts.r)
            ))

        return out

    def log_likelihood(self, theta: NDArray) -> float:
        return sum(self.log_likelihood_terms(theta).values())

    def __call__(self, theta: NDArray) -> float:
        """Log posterior density (unnormalised); -inf outside the support."""
        theta = np.asarray(theta, dtype=np.float64)
        value = self.log_prior(theta) + self.log_likelihood(theta)
        if not np.isfinite(value):
            return -np.inf
        return value

    # ── Optimiser interface (negative log posterior) ─────────────────

    def compute_objective(self, theta: NDArray) -> float:
        return -self(theta)

    def compute_gradient(self, theta: NDArray) -> NDArray:
        return central_gradient(self.compute_objective, theta)

    def compute_hessian(self, theta: NDArray) -> NDArray:
        return central_hessian(self.compute_objective, theta)
