"""Krylov linear solvers and their building blocks."""

from spgmr.linear_solvers.base_solver import (
    BaseLinearSolver,
    CallbackStatus,
    LinearSolverConfig,
    LinearSolverID,
    LinearSolverReturnCodes,
    LinearSolverType,
    OperatorApply,
    PreconditionerSetup,
    PreconditionerSide,
    PreconditionerSolve,
)
from spgmr.linear_solvers.givens_qr import qr_factorize, qr_solve
from spgmr.linear_solvers.orthogonalization import (
    GramSchmidtType,
    classical_gram_schmidt,
    modified_gram_schmidt,
    orthogonalize,
)
from spgmr.linear_solvers.spgmr import SPGMRConfig, SPGMRSolver

__all__ = [
    "BaseLinearSolver",
    "CallbackStatus",
    "GramSchmidtType",
    "LinearSolverConfig",
    "LinearSolverID",
    "LinearSolverReturnCodes",
    "LinearSolverType",
    "OperatorApply",
    "PreconditionerSetup",
    "PreconditionerSide",
    "PreconditionerSolve",
    "SPGMRConfig",
    "SPGMRSolver",
    "classical_gram_schmidt",
    "modified_gram_schmidt",
    "orthogonalize",
    "qr_factorize",
    "qr_solve",
]
