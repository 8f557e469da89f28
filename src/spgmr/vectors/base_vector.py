"""Abstract vector interface consumed by the Krylov solvers.

The solvers in :mod:`spgmr.linear_solvers` never touch vector storage
directly. They only call the operations declared on :class:`NVector`,
so any storage (serial, threaded, device or distributed) can be plugged in
by subclassing it. Operations write into ``self`` and are total from the
solver's point of view; a backend reports internal faults through its own
channels, not through these methods.
"""

from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np


class NVector(ABC):
    """Base class for vectors usable by the Krylov solvers."""

    @property
    @abstractmethod
    def length(self) -> int:
        """Return the global vector length."""

    @property
    @abstractmethod
    def dtype(self) -> np.dtype:
        """Return the floating point precision of the entries."""

    @abstractmethod
    def clone(self) -> "NVector":
        """Return a new zeroed vector with the same layout as ``self``."""

    @abstractmethod
    def linear_sum(self, a, x: "NVector", b, y: "NVector") -> None:
        """Set ``self = a * x + b * y``."""

    @abstractmethod
    def const(self, c) -> None:
        """Set every entry of ``self`` to ``c``."""

    @abstractmethod
    def prod(self, x: "NVector", y: "NVector") -> None:
        """Set ``self`` to the element-wise product of ``x`` and ``y``."""

    @abstractmethod
    def div(self, x: "NVector", y: "NVector") -> None:
        """Set ``self`` to the element-wise ratio ``x / y``."""

    @abstractmethod
    def scale(self, c, x: "NVector") -> None:
        """Set ``self = c * x``."""

    @abstractmethod
    def dot(self, y: "NVector") -> float:
        """Return the Euclidean inner product of ``self`` and ``y``."""

    def space(self) -> tuple[int, int]:
        """Return the ``(real, integer)`` words of storage per vector."""
        return 0, 0

    def clone_array(self, count: int) -> list["NVector"]:
        """Return ``count`` clones of ``self``."""
        return [self.clone() for _ in range(count)]

    def l2_norm(self) -> float:
        """Return the Euclidean norm of ``self``."""
        return float(np.sqrt(self.dot(self)))

    def linear_combination(
        self,
        coefficients: Sequence[float],
        vectors: Sequence["NVector"],
    ) -> None:
        """Set ``self = sum(c_i * X_i)``.

        ``self`` may be the same object as ``vectors[0]``; it may not alias
        any later entry.
        """
        count = len(vectors)
        if count == 0:
            raise ValueError("linear_combination needs at least one vector")
        if count == 1:
            self.scale(coefficients[0], vectors[0])
            return
        if vectors[0] is self:
            if coefficients[0] != 1.0:
                self.scale(coefficients[0], self)
            start = 1
        else:
            self.linear_sum(
                coefficients[0], vectors[0], coefficients[1], vectors[1]
            )
            start = 2
        for coefficient, vector in zip(coefficients[start:count],
                                       vectors[start:count]):
            self.linear_sum(1.0, self, coefficient, vector)

    def dot_multi(self, vectors: Sequence["NVector"]) -> np.ndarray:
        """Return the inner products of ``self`` with each of ``vectors``."""
        return np.array([self.dot(vector) for vector in vectors],
                        dtype=np.float64)

    def compatible_with(self, other: "NVector") -> bool:
        """Return True when ``other`` can be combined with ``self``."""
        return (isinstance(other, NVector)
                and other.length == self.length
                and other.dtype == self.dtype)
