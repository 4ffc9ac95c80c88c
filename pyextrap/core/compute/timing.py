"""
Execution timing for fits.

A fit is timed as a whole and in named stages (design construction,
optimisation, hessian, draws). When the torch backend runs on CUDA the
timer synchronises the device so stage times include queued kernels.
"""

import time
from contextlib import contextmanager
from typing import Iterator


def _cuda_synchronize() -> None:
    try:
        import torch
    except ImportError:
        return
    if torch.cuda.is_available():
        torch.cuda.synchronize()


class Timer:
    """
    Accumulating stage timer.

    Usage:
        timer = Timer()
        timer.start()

        with timer.section('optimize'):
            opt = minimize(objective, theta0)

        with timer.section('hessian'):
            H = numerical_hessian(log_post, opt.x)

        timer.stop()
        timer.result()
        # {'total_seconds': 0.41, 'optimize': 0.30, 'hessian': 0.11}

    A section entered several times accumulates its elapsed time.
    """

    def __init__(self, sync_cuda: bool = False):
        self._sync_cuda = sync_cuda
        self._sections: dict[str, float] = {}
        self._start_time: float | None = None
        self._total: float | None = None

    def _now(self) -> float:
        if self._sync_cuda:
            _cuda_synchronize()
        return time.perf_counter()

    def start(self) -> None:
        self._start_time = self._now()
        self._total = None

    def stop(self) -> None:
        if self._start_time is None:
            raise RuntimeError("Timer.stop() called before start()")
        self._total = self._now() - self._start_time

    @contextmanager
    def section(self, name: str) -> Iterator[None]:
        """Time the enclosed block under ``name``."""
        begin = self._now()
        try:
            yield
        finally:
            self._sections[name] = self._sections.get(name, 0.0) + (self._now() - begin)

    def result(self) -> dict[str, float]:
        """
        Timing breakdown with 'total_seconds' first.

        Raises:
            RuntimeError: If called before stop()
        """
        if self._total is None:
            raise RuntimeError("Timer.result() called before stop()")
        return {'total_seconds': self._total, **self._sections}


@contextmanager
def timed(sync_cuda: bool = False) -> Iterator[Timer]:
    """
    Time a whole block.

    Usage:
        with timed() as timer:
            solution = survextrap(time, event)
        timer.result()['total_seconds']
    """
    timer = Timer(sync_cuda=sync_cuda)
    timer.start()
    try:
        yield timer
    finally:
        timer.stop()
