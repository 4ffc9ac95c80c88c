"""
survextrap log-posterior backends.

Available backends:
    CPULogPosterior: numpy reference implementation, finite-difference gradients
    TorchLogPosterior: torch FP64 implementation with autograd gradients
        (imported lazily from pyextrap.synthesis.backends.gpu)
"""

from pyextrap.synthesis.backends.cpu import CPULogPosterior, binomial_survivor_loglik

__all__ = [
    "CPULogPosterior",
    "binomial_survivor_loglik",
]
