"""
Posterior mode and Laplace (multivariate normal) approximation.

The log posterior is maximised with L-BFGS-B; the inverse Hessian of the
negative log posterior at the mode is the covariance of the normal
approximation from which draws are taken.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import minimize

from pyextrap.core.exceptions import ConvergenceError, NotPositiveDefiniteError


@dataclass(frozen=True)
class ModeResult:
    x: NDArray
    log_posterior: float
    converged: bool
    n_iter: int
    message: str


def find_mode(objective, x0: NDArray, *, max_iter: int = 1000, tol: float = 1e-8) -> ModeResult:
    """Minimise objective.compute_objective from x0.

    Raises:
        ConvergenceError: If the objective is not finite at the start or
            at the returned point.
    """
    x0 = np.asarray(x0, dtype=np.float64)
    f0 = objective.compute_objective(x0)
    if not np.isfinite(f0):
        raise ConvergenceError(
            "log posterior is not finite at the initial values",
            iterations=0,
            reason="non_finite",
        )

    opt = minimize(
        objective.compute_objective,
        x0,
        jac=objective.compute_gradient,
        method="L-BFGS-B",
        options={"maxiter": max_iter, "ftol": tol, "gtol": tol * 10},
    )
    if not np.isfinite(opt.fun):
        raise ConvergenceError(
            f"posterior mode search ended at a non-finite log posterior: {opt.message}",
            iterations=int(opt.nit),
            reason="non_finite",
        )
    return ModeResult(
        x=opt.x,
        log_posterior=-float(opt.fun),
        converged=bool(opt.success),
        n_iter=int(opt.nit),
        message=str(opt.message),
    )


def laplace_covariance(hessian: NDArray, min_eigenvalue: float = 1e-8) -> tuple[NDArray, list[str]]:
    """Covariance = inverse Hessian, projected to positive definite.

    Eigenvalues below min_eigenvalue are raised to it, which gives the
    nearest positive definite matrix in Frobenius norm up to that floor.

    Returns:
        (covariance, warnings)

    Raises:
        NotPositiveDefiniteError: If the Hessian has non-finite entries.
    """
    H = 0.5 * (hessian + hessian.T)
    if not np.all(np.isfinite(H)):
        raise NotPositiveDefiniteError(
            "Hessian of the negative log posterior has non-finite entries "
            "at the mode",
            matrix_name="hessian",
        )

    warn_list = []
    eigval, eigvec = np.linalg.eigh(H)
    if eigval[0] < min_eigenvalue:
        n_bad = int(np.sum(eigval < min_eigenvalue))
        warn_list.append(
            f"Hessian at the mode is not positive definite "
            f"(min eigenvalue {eigval[0]:.3g}, {n_bad} clipped to "
            f"{min_eigenvalue:g}); Laplace draws are approximate"
        )
        eigval = np.maximum(eigval, min_eigenvalue)

    cov = (eigvec / eigval) @ eigvec.T
    return 0.5 * (cov + cov.T), warn_list


def laplace_draws(
    mode: NDArray,
    covariance: NDArray,
    n_draws: int,
    rng: np.random.Generator,
) -> NDArray:
    """(n_draws, n_params) draws from N(mode, covariance)."""
    eigval, eigvec = np.linalg.eigh(covariance)
    root = eigvec * np.sqrt(np.maximum(eigval, 0.0))
    z = rng.standard_normal((n_draws, len(mode)))
    return mode[None, :] + z @ root.T
