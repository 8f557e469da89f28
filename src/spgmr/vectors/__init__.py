"""Vector collaborators for the Krylov solvers."""

from spgmr.vectors.base_vector import NVector
from spgmr.vectors.serial_vector import SerialVector, ThreadedVector

__all__ = ["NVector", "SerialVector", "ThreadedVector"]
