from types import SimpleNamespace

import numpy as np
import pytest

from spgmr import (
    IterationLogger,
    MatrixOperator,
    SerialVector,
    SPGMRSolver,
    tridiagonal_matrix,
)

np.set_printoptions(linewidth=120, precision=12)


# ========================================
# SETTINGS DICTS (override -> fixture)
# ========================================

@pytest.fixture(scope="function")
def solver_settings_override(request):
    """Override for solver settings, if provided.

    Usage:
    @pytest.mark.parametrize("solver_settings_override",
        [{"max_krylov": 10, "precision": np.float32}], indirect=True)
    """
    return request.param if hasattr(request, "param") else {}


@pytest.fixture(scope="function")
def precision(solver_settings_override):
    """Return precision from overrides, defaulting to float64."""
    return solver_settings_override.get("precision", np.float64)


@pytest.fixture(scope="function")
def solver_settings(solver_settings_override):
    """Constructor keywords for :class:`SPGMRSolver`."""
    settings = {
        "preconditioning_side": "none",
        "max_krylov": 100,
        "max_restarts": 0,
        "gram_schmidt_type": "modified",
    }
    settings.update({key: value
                     for key, value in solver_settings_override.items()
                     if key != "precision"})
    return settings


# ========================================
# PROBLEMS AND SOLVERS
# ========================================

@pytest.fixture(scope="function")
def rng():
    return np.random.default_rng(20240611)


@pytest.fixture(scope="function")
def tridiagonal_system(precision, rng):
    """100x100 system with 5 on the diagonal and -1 on the off-diagonals.

    Returns
    -------
    SimpleNamespace
        ``matrix``, ``operator``, the exact solution ``x_hat`` drawn from
        ``U[1, 2)`` and the matching right-hand side ``b``.
    """
    n = 100
    matrix = tridiagonal_matrix(n, 5.0, -1.0, precision)
    x_hat = rng.uniform(1.0, 2.0, n)
    b = matrix.astype(np.float64) @ x_hat
    return SimpleNamespace(
        n=n,
        matrix=matrix,
        operator=MatrixOperator(matrix),
        x_hat=x_hat.astype(precision),
        b=b.astype(precision),
    )


@pytest.fixture(scope="function")
def logger():
    return IterationLogger("default")


@pytest.fixture(scope="function")
def solver(tridiagonal_system, solver_settings, precision, logger):
    template = SerialVector.zeros(tridiagonal_system.n, precision)
    return SPGMRSolver(template, logger=logger, **solver_settings)


@pytest.fixture(scope="function")
def vectors(tridiagonal_system, precision):
    """Fresh ``x`` (zeros) and ``b`` vectors for the tridiagonal system."""
    x = SerialVector.zeros(tridiagonal_system.n, precision)
    b = SerialVector(tridiagonal_system.b, precision)
    return x, b

