"""Dense reference operators and preconditioners.

These wrap numpy matrices as callbacks with the signatures expected by
:class:`~spgmr.linear_solvers.SPGMRSolver`. They are meant for tests,
examples and small problems; large applications supply matrix-free
callbacks of their own.
"""

from typing import Optional

import attrs
import numpy as np
from numba import njit
from numpy.typing import NDArray

from spgmr._utils import (
    PrecisionDType,
    precision_converter,
    precision_validator,
)
from spgmr.linear_solvers.base_solver import CallbackStatus, PreconditionerSide
from spgmr.vectors import SerialVector

__all__ = [
    "DiagonalPreconditioner",
    "IdentityPreconditioner",
    "MatrixOperator",
    "tridiagonal_matrix",
]

Array = NDArray[np.floating]


@njit(cache=True)
def _matrix_vector_product(matrix: Array, vector: Array, out: Array) -> None:
    """Store ``matrix @ vector`` into ``out`` without allocating."""

    rows, cols = matrix.shape
    for row in range(rows):
        total = matrix.dtype.type(0.0)
        for col in range(cols):
            total = total + matrix[row, col] * vector[col]
        out[row] = total


@njit(cache=True)
def _apply_diagonal(diagonal: Array, vector: Array, out: Array) -> None:
    """Store the element-wise product ``diagonal * vector`` into ``out``."""

    for index in range(out.shape[0]):
        out[index] = diagonal[index] * vector[index]


def _square_matrix_validator(instance, attribute, value):
    if value.ndim != 2 or value.shape[0] != value.shape[1]:
        raise ValueError(
            f"{attribute.name} must be a square 2D array, "
            f"got shape {value.shape}"
        )


def tridiagonal_matrix(
    n: int,
    diagonal: float = 2.0,
    off_diagonal: float = -1.0,
    precision: PrecisionDType = np.float64,
) -> np.ndarray:
    """Return an ``n x n`` matrix with constant tridiagonal bands."""
    if n < 1:
        raise ValueError(f"n must be >= 1, got {n}")
    matrix = np.zeros((n, n), dtype=precision)
    indices = np.arange(n)
    matrix[indices, indices] = diagonal
    matrix[indices[:-1], indices[1:]] = off_diagonal
    matrix[indices[1:], indices[:-1]] = off_diagonal
    return matrix


@attrs.define
class MatrixOperator:
    """Operator callback computing ``z = A v`` for a dense matrix.

    Parameters
    ----------
    matrix
        Square matrix ``A``.

    Attributes
    ----------
    calls : int
        Number of products evaluated so far.
    """

    matrix: Array = attrs.field(
        converter=np.ascontiguousarray,
        validator=_square_matrix_validator,
    )
    calls: int = attrs.field(default=0, init=False)

    @property
    def n(self) -> int:
        return self.matrix.shape[0]

    def __call__(self, v: SerialVector, z: SerialVector) -> int:
        self.calls += 1
        _matrix_vector_product(self.matrix, v.data, z.data)
        return CallbackStatus.SUCCESS

    def apply(self, vector: np.ndarray) -> np.ndarray:
        """Return ``A @ vector`` as a new array."""
        out = np.zeros(self.n, dtype=np.result_type(self.matrix, vector))
        _matrix_vector_product(self.matrix, np.asarray(vector), out)
        return out


@attrs.define
class DiagonalPreconditioner:
    """Jacobi preconditioner ``P = diag(A)``.

    ``setup`` extracts and inverts the diagonal; ``solve`` applies the
    inverse. The same callbacks serve the left and the right side.

    Parameters
    ----------
    matrix
        Square matrix whose diagonal is used.
    precision
        Floating point type of the stored inverse diagonal.
    """

    matrix: Array = attrs.field(
        converter=np.asarray,
        validator=_square_matrix_validator,
    )
    precision: PrecisionDType = attrs.field(
        default=np.float64,
        converter=precision_converter,
        validator=precision_validator,
    )
    _inverse_diagonal: Optional[Array] = attrs.field(default=None,
                                                     init=False)

    def setup(self) -> int:
        """Invert the diagonal; a zero entry is a recoverable failure."""
        diagonal = np.diag(self.matrix)
        if np.any(diagonal == 0.0):
            self._inverse_diagonal = None
            return CallbackStatus.RECOVERABLE
        self._inverse_diagonal = (1.0 / diagonal).astype(self.precision)
        return CallbackStatus.SUCCESS

    def solve(
        self,
        r: SerialVector,
        z: SerialVector,
        tolerance: float,
        side: PreconditionerSide,
    ) -> int:
        """Set ``z = diag(A)^-1 r``; fails if :meth:`setup` has not run."""
        if self._inverse_diagonal is None:
            return CallbackStatus.UNRECOVERABLE
        _apply_diagonal(self._inverse_diagonal, r.data, z.data)
        return CallbackStatus.SUCCESS


class IdentityPreconditioner:
    """Preconditioner with ``P = I``; records the sides it was asked for."""

    def __init__(self) -> None:
        self.sides = []

    def setup(self) -> int:
        return CallbackStatus.SUCCESS

    def solve(self, r, z, tolerance, side) -> int:
        self.sides.append(PreconditionerSide(side))
        z.scale(1.0, r)
        return CallbackStatus.SUCCESS
