"""
Flat unconstrained parameter vector for the survextrap log posterior.

Blocks, in order (optional ones present only when the model needs them):

    alpha           (1,)                  baseline log hazard scale
    loghr           (p,)                  covariate log hazard ratios
    coefs_raw       (n_basis - 1,)        standardised shape deviations
    log_smooth_sd   (1,)                  when the smoothing SD is estimated
    logit_pcure     (1,)                  cure model only
    logor_cure      (p_cure,)             cure model only
    np_raw          (p_np * (n_basis-1),) standardised non-proportional effects
    log_hrsd        (p_np,)               non-proportional effect SDs

Shape log-ratios are lcoefs = lcoefs_mean + smooth_sd * coefs_raw, and the
coefficient row for covariates x_np is softmax([0, lcoefs + x_np @ b_np])
with b_np[j, :] = hrsd[j] * np_raw[j, :].
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy.special import expit

from pyextrap.synthesis._common import ModelSpec
from pyextrap.synthesis.design import SurvextrapDesign


def softmax_rows(lcoefs: NDArray) -> NDArray:
    """Simplex rows from log-ratios against a first term fixed at zero.

    (..., k - 1) -> (..., k)
    """
    lcoefs = np.asarray(lcoefs, dtype=np.float64)
    zeros = np.zeros(lcoefs.shape[:-1] + (1,))
    full = np.concatenate([zeros, lcoefs], axis=-1)
    full = full - np.max(full, axis=-1, keepdims=True)
    e = np.exp(full)
    return e / np.sum(e, axis=-1, keepdims=True)


def coefficient_rows(lcoefs: NDArray, b_np: NDArray, X_np: NDArray) -> NDArray:
    """Per-row coefficients under non-proportional hazards.

    Args:
        lcoefs: (k - 1,) shape log-ratios.
        b_np: (p_np, k - 1) non-proportional effects.
        X_np: (m, p_np) non-proportional covariates.

    Returns:
        (m, k) rows, or (1, k) when there are no non-proportional terms.
    """
    if X_np.shape[1] == 0:
        return softmax_rows(lcoefs[None, :])
    return softmax_rows(lcoefs[None, :] + X_np @ b_np)


@dataclass(frozen=True)
class ParameterLayout:
    """Block structure of the unconstrained parameter vector."""

    blocks: dict[str, slice]
    names: tuple[str, ...]
    n_basis: int
    p: int
    p_cure: int
    p_nonprop: int
    cure: bool
    smooth_sd: float | None
    lcoefs_mean: NDArray

    @classmethod
    def for_model(cls, design: SurvextrapDesign, spec: ModelSpec) -> ParameterLayout:
        nb = design.n_basis
        cov = design.covariate_names
        sizes = [
            ("alpha", 1, ["alpha"]),
            ("loghr", design.p, [f"loghr[{c}]" for c in cov]),
            ("coefs_raw", nb - 1, [f"coefs_raw[{i + 2}]" for i in range(nb - 1)]),
        ]
        if spec.estimate_smooth_sd:
            sizes.append(("log_smooth_sd", 1, ["log_smooth_sd"]))
        if spec.cure:
            sizes.append(("logit_pcure", 1, ["logit_pcure"]))
            sizes.append(("logor_cure", design.p_cure,
                          [f"logor_cure[{c}]" for c in design.cure_covariate_names]))
        if design.p_nonprop > 0:
            np_names = design.nonprop_names
            sizes.append(("np_raw", design.p_nonprop * (nb - 1),
                          [f"np_raw[{c},{i + 2}]" for c in np_names for i in range(nb - 1)]))
            sizes.append(("log_hrsd", design.p_nonprop,
                          [f"log_hrsd[{c}]" for c in np_names]))

        blocks = {}
        names: list[str] = []
        start = 0
        for block, size, block_names in sizes:
            blocks[block] = slice(start, start + size)
            names.extend(block_names)
            start += size

        return cls(
            blocks=blocks,
            names=tuple(names),
            n_basis=nb,
            p=design.p,
            p_cure=design.p_cure,
            p_nonprop=design.p_nonprop,
            cure=spec.cure,
            smooth_sd=spec.smooth_sd,
            lcoefs_mean=spec.lcoefs_mean,
        )

    @property
    def n_params(self) -> int:
        return len(self.names)

    def has(self, block: str) -> bool:
        return block in self.blocks

    def unpack(self, theta: NDArray) -> dict[str, NDArray]:
        """Split (..., n_params) into named unconstrained blocks."""
        theta = np.asarray(theta, dtype=np.float64)
        return {name: theta[..., s] for name, s in self.blocks.items()}

    def constrain(self, draws: NDArray) -> dict[str, NDArray]:
        """Map unconstrained draws to model parameters.

        Args:
            draws: (S, n_params) or (n_params,) unconstrained vectors.

        Returns:
            dict with, per draw:
                alpha (S,), loghr (S, p), smooth_sd (S,), lcoefs (S, k-1),
                coefs (S, k) baseline shape, pcure (S,) baseline cure
                probability (0 without cure), logit_pcure (S,), logor_cure (S, p_cure),
                hrsd (S, p_np), b_np (S, p_np, k-1).
        """
        draws = np.atleast_2d(np.asarray(draws, dtype=np.float64))
        S = draws.shape[0]
        k1 = self.n_basis - 1
        u = self.unpack(draws)

        if self.smooth_sd is None:
            smooth_sd = np.exp(u["log_smooth_sd"][:, 0])
        else:
            smooth_sd = np.full(S, self.smooth_sd)
        lcoefs = self.lcoefs_mean[None, :] + smooth_sd[:, None] * u["coefs_raw"]

        if self.cure:
            logit_pcure = u["logit_pcure"][:, 0]
            logor = u["logor_cure"]
        else:
            logit_pcure = np.full(S, -np.inf)
            logor = np.zeros((S, 0))

        if self.p_nonprop > 0:
            hrsd = np.exp(u["log_hrsd"])
            b_np = hrsd[:, :, None] * u["np_raw"].reshape(S, self.p_nonprop, k1)
        else:
            hrsd = np.zeros((S, 0))
            b_np = np.zeros((S, 0, k1))

        return {
            "alpha": u["alpha"][:, 0],
            "loghr": u["loghr"],
            "smooth_sd": smooth_sd,
            "lcoefs": lcoefs,
            "coefs": softmax_rows(lcoefs),
            "logit_pcure": logit_pcure,
            "pcure": expit(logit_pcure),
            "logor_cure": logor,
            "hrsd": hrsd,
            "b_np": b_np,
        }
