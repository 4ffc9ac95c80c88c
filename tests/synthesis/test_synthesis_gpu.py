"""
Tests for the torch log posterior.

Validates:
    - Log posterior matches the numpy backend within FP64 tolerance
      (proportional hazards, cure, non-proportional, background, external)
    - Autograd gradient and Hessian agree with finite differences
    - survextrap(backend='gpu') end to end
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

try:
    import torch
    HAS_TORCH = True
except ImportError:
    HAS_TORCH = False

from pyextrap import ExternalCounts, survextrap
from pyextrap.mspline import BackgroundHazard
from pyextrap.synthesis import SurvextrapDesign
from pyextrap.synthesis._common import ModelSpec
from pyextrap.synthesis._layout import ParameterLayout
from pyextrap.synthesis.backends import CPULogPosterior

pytestmark = pytest.mark.skipif(not HAS_TORCH, reason="PyTorch not installed")


KNOTS = [0.0, 1.0, 2.0, 5.0]
TIME = np.array([1.0, 3.0, 0.5, 4.0, 2.2, 6.0])
EVENT = np.array([1, 0, 1, 1, 0, 1])
X = np.array([[0.0], [1.0], [1.0], [0.0], [1.0], [0.0]])


def pair(design_kwargs, **spec_kwargs):
    from pyextrap.synthesis.backends.gpu import TorchLogPosterior

    design = SurvextrapDesign.for_survextrap(**design_kwargs)
    spec = ModelSpec.for_design(design, **spec_kwargs)
    layout = ParameterLayout.for_model(design, spec)
    cpu = CPULogPosterior(design, spec, layout)
    gpu = TorchLogPosterior(design, spec, layout, device="cpu")
    return cpu, gpu, layout


def theta_for(layout, seed=0):
    return 0.3 * np.random.default_rng(seed).standard_normal(layout.n_params)


def individual(**extra):
    return dict(time=TIME, event=EVENT, X=X, knots=KNOTS, **extra)


VARIANTS = {
    "proportional": (individual(), {}),
    "fixed_sd": (individual(), {"smooth_sd": 0.7}),
    "cure": (individual(X_cure=X), {"cure": True}),
    "nonprop": (individual(nonprop=True), {}),
    "background": (individual(backhaz=BackgroundHazard.create([0.0, 3.0], [0.02, 0.05])), {}),
    "external": (
        individual(external=ExternalCounts.for_counts(
            start=[2.0, 5.0], stop=[5.0, 9.0], n=[100, 60], r=[60, 60], X=[[0.0], [1.0]],
        )),
        {},
    ),
}


class TestAgreement:

    @pytest.mark.parametrize("variant", sorted(VARIANTS))
    def test_log_posterior(self, variant):
        design_kwargs, spec_kwargs = VARIANTS[variant]
        cpu, gpu, layout = pair(design_kwargs, **spec_kwargs)
        theta = theta_for(layout)
        assert_allclose(gpu(theta), cpu(theta), rtol=1e-9, atol=1e-8)
        assert_allclose(gpu.log_likelihood(theta), cpu.log_likelihood(theta),
                        rtol=1e-9, atol=1e-8)

    @pytest.mark.parametrize("variant", ["proportional", "cure", "external"])
    def test_gradient(self, variant):
        design_kwargs, spec_kwargs = VARIANTS[variant]
        cpu, gpu, layout = pair(design_kwargs, **spec_kwargs)
        theta = theta_for(layout, seed=1)
        assert_allclose(gpu.compute_gradient(theta), cpu.compute_gradient(theta),
                        rtol=1e-5, atol=1e-6)

    def test_hessian(self):
        cpu, gpu, layout = pair(individual())
        theta = theta_for(layout, seed=2)
        H = gpu.compute_hessian(theta)
        assert H.shape == (layout.n_params, layout.n_params)
        assert_allclose(H, H.T, atol=1e-10)
        assert_allclose(H, cpu.compute_hessian(theta), rtol=1e-3, atol=1e-4)

    def test_name(self):
        _, gpu, _ = pair(individual())
        assert gpu.name == "gpu_cpu_fp64"


class TestFit:

    @pytest.mark.filterwarnings("ignore::RuntimeWarning")
    def test_survextrap_gpu(self):
        rng = np.random.default_rng(3)
        time = 3.0 * rng.weibull(1.2, size=60)
        fit = survextrap(time, df=5, backend="gpu", n_draws=50, random_state=0)
        assert fit.backend_name.startswith("gpu_")
        cpu_fit = survextrap(time, df=5, n_draws=50, random_state=0)
        assert_allclose(fit.mode, cpu_fit.mode, rtol=1e-2, atol=1e-2)
