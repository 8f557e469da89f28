"""
spgmr: Scaled, Preconditioned, Restarted GMRES
"""

from importlib.metadata import version

# Numba warns about parallel kernels that it could not parallelise on
# small vectors. These are not actionable for users, so they are filtered
# at import time.
import warnings
from numba.core.errors import NumbaPerformanceWarning
warnings.filterwarnings("ignore", category=NumbaPerformanceWarning)

from spgmr.vectors import *              # noqa
from spgmr.linear_solvers import *       # noqa
from spgmr.operators import *            # noqa
from spgmr.iteration_logger import IterationLogger  # noqa

__all__ = [
    "NVector",
    "SerialVector",
    "ThreadedVector",
    "SPGMRSolver",
    "SPGMRConfig",
    "PreconditionerSide",
    "GramSchmidtType",
    "LinearSolverReturnCodes",
    "CallbackStatus",
    "MatrixOperator",
    "DiagonalPreconditioner",
    "IdentityPreconditioner",
    "tridiagonal_matrix",
    "IterationLogger",
]

try:
    __version__ = version("spgmr")
except ImportError:
    # Package is not installed
    __version__ = "unknown"
