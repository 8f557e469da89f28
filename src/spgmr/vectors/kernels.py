"""Compiled element loops backing the numpy vector implementations.

Each operation is compiled twice: once as a plain serial loop and once with
``parallel=True`` so that :class:`~spgmr.vectors.serial_vector.ThreadedVector`
can spread the loop over Numba's thread pool. Kernels never allocate; the
output array is always supplied by the caller.
"""

from numba import njit, prange
from numpy.typing import NDArray
import numpy as np

Array = NDArray[np.floating]


@njit(cache=True)
def _linear_sum_impl(a, x: Array, b, y: Array, z: Array) -> None:
    """Store ``a * x + b * y`` into ``z``."""
    for index in range(z.shape[0]):
        z[index] = a * x[index] + b * y[index]


@njit(cache=True)
def _const_impl(c, z: Array) -> None:
    """Fill ``z`` with ``c``."""
    for index in range(z.shape[0]):
        z[index] = c


@njit(cache=True)
def _prod_impl(x: Array, y: Array, z: Array) -> None:
    """Store the element-wise product of ``x`` and ``y`` into ``z``."""
    for index in range(z.shape[0]):
        z[index] = x[index] * y[index]


@njit(cache=True)
def _div_impl(x: Array, y: Array, z: Array) -> None:
    """Store the element-wise ratio ``x / y`` into ``z``."""
    for index in range(z.shape[0]):
        z[index] = x[index] / y[index]


@njit(cache=True)
def _scale_impl(c, x: Array, z: Array) -> None:
    """Store ``c * x`` into ``z``."""
    for index in range(z.shape[0]):
        z[index] = c * x[index]


@njit(cache=True)
def _dot_impl(x: Array, y: Array) -> float:
    """Return the dot product of ``x`` and ``y`` accumulated in float64."""
    total = 0.0
    for index in range(x.shape[0]):
        total += x[index] * y[index]
    return total


@njit(cache=True, parallel=True)
def _linear_sum_parallel(a, x: Array, b, y: Array, z: Array) -> None:
    for index in prange(z.shape[0]):
        z[index] = a * x[index] + b * y[index]


@njit(cache=True, parallel=True)
def _const_parallel(c, z: Array) -> None:
    for index in prange(z.shape[0]):
        z[index] = c


@njit(cache=True, parallel=True)
def _prod_parallel(x: Array, y: Array, z: Array) -> None:
    for index in prange(z.shape[0]):
        z[index] = x[index] * y[index]


@njit(cache=True, parallel=True)
def _div_parallel(x: Array, y: Array, z: Array) -> None:
    for index in prange(z.shape[0]):
        z[index] = x[index] / y[index]


@njit(cache=True, parallel=True)
def _scale_parallel(c, x: Array, z: Array) -> None:
    for index in prange(z.shape[0]):
        z[index] = c * x[index]


@njit(cache=True, parallel=True)
def _dot_parallel(x: Array, y: Array) -> float:
    total = 0.0
    for index in prange(x.shape[0]):
        total += x[index] * y[index]
    return total


SERIAL_KERNELS = {
    "linear_sum": _linear_sum_impl,
    "const": _const_impl,
    "prod": _prod_impl,
    "div": _div_impl,
    "scale": _scale_impl,
    "dot": _dot_impl,
}

PARALLEL_KERNELS = {
    "linear_sum": _linear_sum_parallel,
    "const": _const_parallel,
    "prod": _prod_parallel,
    "div": _div_parallel,
    "scale": _scale_parallel,
    "dot": _dot_parallel,
}
