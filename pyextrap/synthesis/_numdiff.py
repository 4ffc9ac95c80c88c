"""
Central finite differences for gradients and Hessians.

Step for coordinate j is h_j = eps * max(|x_j|, 1).
"""

from __future__ import annotations

from typing import Callable

import numpy as np
from numpy.typing import NDArray

from pyextrap.core.compute.tolerances import FD_EPS


def _steps(x: NDArray, eps: float) -> NDArray:
    return eps * np.maximum(np.abs(x), 1.0)


def central_gradient(
    f: Callable[[NDArray], float],
    x: NDArray,
    eps: float = FD_EPS,
) -> NDArray:
    """Gradient of f at x, (f(x + h e_j) - f(x - h e_j)) / 2h."""
    x = np.asarray(x, dtype=np.float64)
    h = _steps(x, eps)
    grad = np.zeros_like(x)
    for j in range(len(x)):
        xp = x.copy()
        xp[j] += h[j]
        xm = x.copy()
        xm[j] -= h[j]
        grad[j] = (f(xp) - f(xm)) / (2.0 * h[j])
    return grad


def central_hessian(
    f: Callable[[NDArray], float],
    x: NDArray,
    eps: float = 1e-4,
) -> NDArray:
    """Hessian of f at x.

    Diagonal from the three-point second difference, off-diagonal from
    the four corners (+h_j, +h_l), (+h_j, -h_l), (-h_j, +h_l), (-h_j, -h_l).

    Returns:
        (n, n) symmetric matrix.
    """
    x = np.asarray(x, dtype=np.float64)
    n = len(x)
    h = _steps(x, eps)

    f0 = f(x)
    f_plus = np.zeros(n)
    f_minus = np.zeros(n)
    for j in range(n):
        xp = x.copy()
        xp[j] += h[j]
        f_plus[j] = f(xp)
        xm = x.copy()
        xm[j] -= h[j]
        f_minus[j] = f(xm)

    H = np.zeros((n, n), dtype=np.float64)
    for j in range(n):
        H[j, j] = (f_plus[j] - 2.0 * f0 + f_minus[j]) / (h[j] ** 2)

    def corner(j, l, dj, dl):
        xc = x.copy()
        xc[j] += dj
        xc[l] += dl
        return f(xc)

    for j in range(n):
        for l in range(j + 1, n):
            f_pp = corner(j, l, h[j], h[l])
            f_pm = corner(j, l, h[j], -h[l])
            f_mp = corner(j, l, -h[j], h[l])
            f_mm = corner(j, l, -h[j], -h[l])
            H[j, l] = (f_pp - f_pm - f_mp + f_mm) / (4.0 * h[j] * h[l])
            H[l, j] = H[j, l]

    return H
