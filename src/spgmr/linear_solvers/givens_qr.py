"""Incremental QR factorisation of the Arnoldi Hessenberg matrix.

The Hessenberg matrix ``H`` of the Arnoldi process grows by one column per
Krylov step. Its QR factorisation is maintained with Givens rotations:
each new column is multiplied by the rotations stored so far, then one new
rotation zeroes its sub-diagonal entry. The rotations are stored as
``(c, s)`` pairs in a flat array, ``givens[2*k]`` and ``givens[2*k + 1]``
for column ``k``, and ``H`` is overwritten in place with ``R``.

The rotation applied to rows ``(k, k+1)`` is::

    [ c  -s ]
    [ s   c ]

so that the sine of the newest rotation, times the running product of the
earlier sines, is the GMRES residual norm reduction factor.
"""

import numpy as np
from numba import njit
from numpy.typing import NDArray

Array = NDArray[np.floating]


@njit(cache=True)
def _givens_pair(diagonal, subdiagonal):
    """Return ``(c, s)`` zeroing ``subdiagonal`` against ``diagonal``.

    The ratio is taken of the smaller entry over the larger to avoid
    overflow in the square root.
    """
    if subdiagonal == 0.0:
        return 1.0, 0.0
    if abs(subdiagonal) >= abs(diagonal):
        ratio = diagonal / subdiagonal
        s = -1.0 / np.sqrt(1.0 + ratio * ratio)
        c = -s * ratio
    else:
        ratio = subdiagonal / diagonal
        c = 1.0 / np.sqrt(1.0 + ratio * ratio)
        s = -c * ratio
    return c, s


@njit(cache=True)
def _rotate_column(hessenberg: Array, givens: Array, column: int,
                   rotations: int) -> None:
    """Apply the first ``rotations`` stored rotations to ``column``."""
    for k in range(rotations):
        c = givens[2 * k]
        s = givens[2 * k + 1]
        upper = hessenberg[k, column]
        lower = hessenberg[k + 1, column]
        hessenberg[k, column] = c * upper - s * lower
        hessenberg[k + 1, column] = s * upper + c * lower


@njit(cache=True)
def qr_factorize(n: int, hessenberg: Array, givens: Array, job: int) -> int:
    """Factor or update the QR factorisation of ``hessenberg``.

    Parameters
    ----------
    n
        Number of columns currently in the factorisation problem. The
        matrix has ``n + 1`` active rows.
    hessenberg
        ``(maxl + 1, maxl)`` upper Hessenberg matrix, overwritten with R.
    givens
        Flat array of at least ``2 * n`` rotation coefficients.
    job
        ``0`` factors the leading ``n`` columns from scratch. Any other
        value assumes columns ``0..n-2`` are already factored and only
        processes the new column ``n - 1``.

    Returns
    -------
    int
        ``0`` on success, otherwise the 1-based index of the column whose
        diagonal entry of R is exactly zero.
    """
    code = 0
    if job == 0:
        for k in range(n):
            _rotate_column(hessenberg, givens, k, k)
            c, s = _givens_pair(hessenberg[k, k], hessenberg[k + 1, k])
            givens[2 * k] = c
            givens[2 * k + 1] = s
            upper = hessenberg[k, k]
            lower = hessenberg[k + 1, k]
            hessenberg[k, k] = c * upper - s * lower
            if hessenberg[k, k] == 0.0:
                code = k + 1
        return code

    last = n - 1
    _rotate_column(hessenberg, givens, last, last)
    upper = hessenberg[last, last]
    lower = hessenberg[n, last]
    c, s = _givens_pair(upper, lower)
    givens[2 * last] = c
    givens[2 * last + 1] = s
    # The rotated sub-diagonal entry is zero by construction and is left
    # untouched: callers still read H[n, n-1] as the new basis norm.
    hessenberg[last, last] = c * upper - s * lower
    if hessenberg[last, last] == 0.0:
        code = n
    return code


@njit(cache=True)
def qr_solve(n: int, hessenberg: Array, givens: Array, rhs: Array) -> int:
    """Solve the projected least-squares problem in place.

    Parameters
    ----------
    n
        Dimension of the factored system.
    hessenberg
        Matrix holding R in its leading ``n x n`` upper triangle.
    givens
        Rotations produced by :func:`qr_factorize`.
    rhs
        Length ``n + 1`` right-hand side ``g``. On return the first ``n``
        entries hold ``y`` minimising ``||g - H y||``.

    Returns
    -------
    int
        ``0`` on success, otherwise the 1-based index of the first zero
        diagonal entry met during back-substitution.
    """
    for k in range(n):
        c = givens[2 * k]
        s = givens[2 * k + 1]
        upper = rhs[k]
        lower = rhs[k + 1]
        rhs[k] = c * upper - s * lower
        rhs[k + 1] = s * upper + c * lower

    for k in range(n - 1, -1, -1):
        if hessenberg[k, k] == 0.0:
            return k + 1
        rhs[k] /= hessenberg[k, k]
        for i in range(k):
            rhs[i] -= rhs[k] * hessenberg[i, k]
    return 0
