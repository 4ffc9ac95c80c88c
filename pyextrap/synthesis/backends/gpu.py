"""
Torch log posterior for the survextrap model.

Same density as the CPU backend, written in torch with FP64 so that
gradients and Hessians come from automatic differentiation. Runs on CUDA
when available, otherwise on the torch CPU device with a warning.
"""

from __future__ import annotations

import math
import warnings
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy.special import gammaln

from pyextrap.synthesis._common import ModelSpec
from pyextrap.synthesis._layout import ParameterLayout
from pyextrap.synthesis.design import SurvextrapDesign
from pyextrap.synthesis.priors import NoPrior, NormalPrior, StudentTPrior


class TorchLogPosterior:
    """
    Log posterior evaluated with torch autograd.

    Args:
        design: Validated data.
        spec: Model structure and priors.
        layout: Parameter vector structure.
        device: torch device string, or None to prefer CUDA.
    """

    def __init__(
        self,
        design: SurvextrapDesign,
        spec: ModelSpec,
        layout: ParameterLayout | None = None,
        device: str | None = None,
    ):
        try:
            import torch
            self.torch = torch
        except ImportError:
            raise ImportError(
                "PyTorch is required for backend='gpu'. "
                "Install with: pip install torch"
            )

        self.design = design
        self.spec = spec
        self.layout = layout or ParameterLayout.for_model(design, spec)
        self.device = self._select_device(device)
        self.dtype = torch.float64
        self._prepare_data()

    @property
    def name(self) -> str:
        return f"gpu_{self.device.type}_fp64"

    def _select_device(self, requested: str | None) -> Any:
        torch = self.torch
        if requested:
            return torch.device(requested)
        if torch.cuda.is_available():
            return torch.device("cuda")
        warnings.warn(
            "No CUDA device available; evaluating the torch log posterior "
            "on the CPU.",
            RuntimeWarning,
            stacklevel=3,
        )
        return torch.device("cpu")

    def _tensor(self, arr) -> Any:
        if arr is None:
            return None
        return self.torch.as_tensor(
            np.asarray(arr, dtype=np.float64), device=self.device, dtype=self.dtype,
        )

    def _prepare_data(self) -> None:
        """Transfer the fixed design matrices to the device."""
        d = self.design
        t = self._tensor
        log_backhaz = None
        if d.events.backhaz is not None:
            with np.errstate(divide="ignore"):
                log_backhaz = t(np.log(d.events.backhaz))
        self.events = {
            "basis": t(d.events.basis), "ibasis": t(d.events.ibasis),
            "X": t(d.events.X), "X_cure": t(d.events.X_cure),
            "X_np": t(d.events.X_np),
            "log_backhaz": log_backhaz,
            "n": d.events.n,
        }
        self.censored = {
            "ibasis": t(d.censored.ibasis), "X": t(d.censored.X),
            "X_cure": t(d.censored.X_cure), "X_np": t(d.censored.X_np),
            "n": d.censored.n,
        }
        if d.external is not None:
            ext = d.external
            n, r = ext.counts.n, ext.counts.r
            self.external = {
                "ibasis_start": t(ext.ibasis_start), "ibasis_stop": t(ext.ibasis_stop),
                "X": t(ext.X), "X_cure": t(ext.X_cure), "X_np": t(ext.X_np),
                "log_backsurv_ratio": t(ext.log_backsurv_ratio),
                "n": t(n), "r": t(r),
                "log_choose": t(gammaln(n + 1.0) - gammaln(r + 1.0) - gammaln(n - r + 1.0)),
                "has_died": self.torch.as_tensor((n - r) > 0, device=self.device),
                "has_alive": self.torch.as_tensor(r > 0, device=self.device),
            }
        else:
            self.external = None
        self.lcoefs_mean = t(self.spec.lcoefs_mean)

    # ── Density in torch ─────────────────────────────────────────────

    def _real_prior(self, prior, x) -> Any:
        torch = self.torch
        if isinstance(prior, NoPrior):
            return torch.zeros((), device=self.device, dtype=self.dtype)
        if isinstance(prior, NormalPrior):
            z = (x - prior.location) / prior.scale
            return -0.5 * z * z - math.log(prior.scale) - 0.5 * math.log(2.0 * math.pi)
        if isinstance(prior, StudentTPrior):
            nu = prior.df
            z = (x - prior.location) / prior.scale
            return (math.lgamma((nu + 1.0) / 2.0) - math.lgamma(nu / 2.0)
                    - 0.5 * math.log(nu * math.pi) - math.log(prior.scale)
                    - (nu + 1.0) / 2.0 * torch.log1p(z * z / nu))
        raise TypeError(f"unsupported prior for a real parameter: {prior!r}")

    @staticmethod
    def _gamma_log(prior, u) -> Any:
        """Gamma log density of exp(u) plus the log Jacobian u."""
        return (prior.shape * math.log(prior.rate) - math.lgamma(prior.shape)
                + prior.shape * u - prior.rate * u.exp())

    def _log_prior(self, theta) -> Any:
        torch = self.torch
        F = torch.nn.functional
        spec, blocks = self.spec, self.layout.blocks

        lp = self._real_prior(spec.prior_loghaz, theta[blocks["alpha"]][0])
        loghr = theta[blocks["loghr"]]
        for j, prior in enumerate(spec.prior_loghr):
            lp = lp + self._real_prior(prior, loghr[j])
        raw = theta[blocks["coefs_raw"]]
        lp = lp + torch.sum(-raw - 2.0 * F.softplus(-raw))
        if spec.estimate_smooth_sd:
            lp = lp + self._gamma_log(spec.prior_hsd, theta[blocks["log_smooth_sd"]][0])
        if spec.cure:
            eta = theta[blocks["logit_pcure"]][0]
            a, b = spec.prior_cure.shape1, spec.prior_cure.shape2
            lp = lp + (a * F.logsigmoid(eta) + b * F.logsigmoid(-eta)
                       - (math.lgamma(a) + math.lgamma(b) - math.lgamma(a + b)))
            logor = theta[blocks["logor_cure"]]
            for j, prior in enumerate(spec.prior_logor_cure):
                lp = lp + self._real_prior(prior, logor[j])
        if self.layout.p_nonprop > 0:
            np_raw = theta[blocks["np_raw"]]
            lp = lp + torch.sum(-0.5 * np_raw * np_raw) - 0.5 * len(np_raw) * math.log(2.0 * math.pi)
            log_hrsd = theta[blocks["log_hrsd"]]
            for j, prior in enumerate(spec.prior_hrsd):
                lp = lp + self._gamma_log(prior, log_hrsd[j])
        return lp

    def _shape(self, theta):
        blocks = self.layout.blocks
        if self.spec.estimate_smooth_sd:
            smooth_sd = theta[blocks["log_smooth_sd"]][0].exp()
        else:
            smooth_sd = self.spec.smooth_sd
        lcoefs = self.lcoefs_mean + smooth_sd * theta[blocks["coefs_raw"]]
        if self.layout.p_nonprop > 0:
            hrsd = theta[blocks["log_hrsd"]].exp()
            b_np = hrsd[:, None] * theta[blocks["np_raw"]].reshape(
                self.layout.p_nonprop, self.layout.n_basis - 1)
        else:
            b_np = None
        return lcoefs, b_np

    def _rows(self, theta, lcoefs, b_np, data):
        torch = self.torch
        F = torch.nn.functional
        blocks = self.layout.blocks
        alpha = theta[blocks["alpha"]][0] + data["X"] @ theta[blocks["loghr"]]
        if b_np is None:
            lc = lcoefs[None, :]
        else:
            lc = lcoefs[None, :] + data["X_np"] @ b_np
        zeros = torch.zeros((lc.shape[0], 1), device=self.device, dtype=self.dtype)
        coefs = torch.softmax(torch.cat([zeros, lc], dim=1), dim=1)
        if self.spec.cure:
            eta = theta[blocks["logit_pcure"]][0] + data["X_cure"] @ theta[blocks["logor_cure"]]
            log_p, log_q = F.logsigmoid(eta), F.logsigmoid(-eta)
        else:
            log_p = log_q = None
        return alpha, coefs, log_p, log_q

    def _log_survival(self, ibasis, alpha, coefs, log_p, log_q):
        # Cumulative hazard without a log so zero rows keep finite gradients
        base = -alpha.exp() * (ibasis * coefs).sum(dim=1)
        if log_p is None:
            return base, base
        return base, self.torch.logaddexp(log_p, log_q + base)

    def _log_likelihood(self, theta) -> Any:
        torch = self.torch
        lcoefs, b_np = self._shape(theta)
        ll = torch.zeros((), device=self.device, dtype=self.dtype)

        ev = self.events
        if ev["n"] > 0:
            alpha, coefs, log_p, log_q = self._rows(theta, lcoefs, b_np, ev)
            log_haz = alpha + torch.log((ev["basis"] * coefs).sum(dim=1))
            base_ls, log_surv = self._log_survival(ev["ibasis"], alpha, coefs, log_p, log_q)
            if log_p is not None:
                log_haz = log_q + log_haz + base_ls - log_surv
            if ev["log_backhaz"] is not None:
                log_haz = torch.logaddexp(ev["log_backhaz"], log_haz)
            ll = ll + torch.sum(log_haz + log_surv)

        cens = self.censored
        if cens["n"] > 0:
            alpha, coefs, log_p, log_q = self._rows(theta, lcoefs, b_np, cens)
            _, log_surv = self._log_survival(cens["ibasis"], alpha, coefs, log_p, log_q)
            ll = ll + torch.sum(log_surv)

        ext = self.external
        if ext is not None:
            alpha, coefs, log_p, log_q = self._rows(theta, lcoefs, b_np, ext)
            _, ls_start = self._log_survival(ext["ibasis_start"], alpha, coefs, log_p, log_q)
            _, ls_stop = self._log_survival(ext["ibasis_stop"], alpha, coefs, log_p, log_q)
            log_ratio = torch.clamp(
                ls_stop - ls_start + ext["log_backsurv_ratio"], max=0.0,
            )
            # Placeholder values on masked rows keep unused branches finite
            lr_alive = torch.where(ext["has_alive"], log_ratio, torch.zeros_like(log_ratio))
            lr_died = torch.where(ext["has_died"], log_ratio, -torch.ones_like(log_ratio))
            ll = ll + torch.sum(
                ext["log_choose"]
                + ext["r"] * lr_alive
                + (ext["n"] - ext["r"]) * torch.log(-torch.expm1(lr_died))
            )

        return ll

    def _torch_log_density(self, theta) -> Any:
        return self._log_prior(theta) + self._log_likelihood(theta)

    # ── numpy-facing interface ───────────────────────────────────────

    def __call__(self, theta: NDArray) -> float:
        theta_t = self._tensor(theta)
        value = float(self._torch_log_density(theta_t).item())
        if not np.isfinite(value):
            return -np.inf
        return value

    def log_likelihood(self, theta: NDArray) -> float:
        return float(self._log_likelihood(self._tensor(theta)).item())

    def compute_objective(self, theta: NDArray) -> float:
        return -self(theta)

    def compute_gradient(self, theta: NDArray) -> NDArray:
        """Gradient of the negative log posterior by autograd."""
        theta_t = self.torch.tensor(
            np.asarray(theta, dtype=np.float64),
            device=self.device, dtype=self.dtype, requires_grad=True,
        )
        obj = -self._torch_log_density(theta_t)
        obj.backward()
        return theta_t.grad.cpu().numpy()

    def compute_hessian(self, theta: NDArray) -> NDArray:
        """Hessian of the negative log posterior by autograd."""
        theta_t = self._tensor(theta)
        H = self.torch.autograd.functional.hessian(
            lambda th: -self._torch_log_density(th), theta_t,
        )
        return H.detach().cpu().numpy()
