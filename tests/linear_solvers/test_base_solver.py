import numpy as np
import pytest

from spgmr.linear_solvers import (
    CallbackStatus,
    GramSchmidtType,
    LinearSolverConfig,
    LinearSolverReturnCodes,
    PreconditionerSide,
    SPGMRConfig,
    SPGMRSolver,
)
from spgmr.vectors import SerialVector

Codes = LinearSolverReturnCodes


@pytest.fixture(scope="function")
def small_solver():
    return SPGMRSolver(SerialVector.zeros(4))


def test_config_defaults():
    config = SPGMRConfig()
    assert config.preconditioning_side == PreconditionerSide.NONE
    assert config.max_krylov == 5
    assert config.max_restarts == 0
    assert config.gram_schmidt_type == GramSchmidtType.MODIFIED
    assert not config.precondition_left
    assert not config.precondition_right


_REPLACEMENT_CASES = [
    ({"max_krylov": 0}, "max_krylov", 5, "zero krylov"),
    ({"max_krylov": -3}, "max_krylov", 5, "negative krylov"),
    ({"max_krylov": 2.5}, "max_krylov", 5, "float krylov"),
    ({"max_krylov": np.int32(12)}, "max_krylov", 12, "numpy int krylov"),
    ({"max_restarts": -1}, "max_restarts", 0, "negative restarts"),
    ({"max_restarts": 3}, "max_restarts", 3, "valid restarts"),
    ({"preconditioning_side": 7}, "preconditioning_side",
     PreconditionerSide.NONE, "out of range side"),
    ({"preconditioning_side": "Both"}, "preconditioning_side",
     PreconditionerSide.BOTH, "side by name"),
    ({"preconditioning_side": 2}, "preconditioning_side",
     PreconditionerSide.RIGHT, "side by value"),
    ({"gram_schmidt_type": 5}, "gram_schmidt_type",
     GramSchmidtType.MODIFIED, "out of range gram-schmidt"),
    ({"gram_schmidt_type": "classical"}, "gram_schmidt_type",
     GramSchmidtType.CLASSICAL, "gram-schmidt by name"),
    ({"gram_schmidt_type": "gibberish"}, "gram_schmidt_type",
     GramSchmidtType.MODIFIED, "unknown gram-schmidt name"),
]


@pytest.mark.parametrize("kwargs, attribute, expected, test_name",
                         _REPLACEMENT_CASES,
                         ids=[case[3] for case in _REPLACEMENT_CASES])
def test_out_of_range_values_replaced(kwargs, attribute, expected,
                                      test_name):
    config = SPGMRConfig(**kwargs)
    assert getattr(config, attribute) == expected


def test_side_properties():
    config = LinearSolverConfig(preconditioning_side="left")
    assert config.precondition_left and not config.precondition_right
    config.preconditioning_side = PreconditionerSide.BOTH
    assert config.precondition_left and config.precondition_right


def test_config_update_reports_changes():
    config = SPGMRConfig()
    recognized, changed = config.update({"max_krylov": 5,
                                         "max_restarts": 2,
                                         "bogus": 1})
    assert recognized == {"max_krylov", "max_restarts"}
    assert changed == {"max_restarts"}


def test_setters_apply_defaults(small_solver):
    small_solver.set_preconditioning_side(11)
    assert small_solver.preconditioning_side == PreconditionerSide.NONE
    small_solver.set_preconditioning_side("right")
    assert small_solver.preconditioning_side == PreconditionerSide.RIGHT
    small_solver.set_gram_schmidt_type(-4)
    assert small_solver.gram_schmidt_type == GramSchmidtType.MODIFIED
    small_solver.set_gram_schmidt_type(GramSchmidtType.CLASSICAL)
    assert small_solver.gram_schmidt_type == GramSchmidtType.CLASSICAL
    small_solver.set_max_restarts(-2)
    assert small_solver.max_restarts == 0


def test_constructor_defaults():
    solver = SPGMRSolver(SerialVector.zeros(3), max_krylov=-1,
                         preconditioning_side="sideways")
    assert solver.max_krylov == 5
    assert solver.preconditioning_side == PreconditionerSide.NONE


def test_constructor_rejects_non_vector():
    with pytest.raises(TypeError, match="NVector"):
        SPGMRSolver(np.zeros(3))


def test_update_returns_recognized_and_warns(small_solver):
    with pytest.warns(UserWarning, match="not_a_setting"):
        recognized = small_solver.update({"max_krylov": 7},
                                         not_a_setting=3)
    assert recognized == {"max_krylov"}
    assert small_solver.max_krylov == 7


def test_update_silent(small_solver, recwarn):
    recognized = small_solver.update(max_restarts=4, unknown=1, silent=True)
    assert recognized == {"max_restarts"}
    assert len(recwarn) == 0
    assert small_solver.update() == set()


def test_setup_calls_preconditioner(small_solver):
    calls = []

    def setup():
        calls.append(1)

    small_solver.set_preconditioner(setup=setup)
    assert small_solver.setup() == Codes.SUCCESS
    assert calls == [1]
    assert small_solver.last_flag == Codes.SUCCESS


@pytest.mark.parametrize("status, expected",
                         [(1, Codes.PSET_FAIL_REC),
                          (-3, Codes.PSET_FAIL_UNREC),
                          (CallbackStatus.RECOVERABLE, Codes.PSET_FAIL_REC)],
                         ids=["recoverable", "unrecoverable", "enum"])
def test_setup_failures(small_solver, status, expected):
    small_solver.set_preconditioner(setup=lambda: status)
    assert small_solver.setup() == expected
    assert small_solver.last_flag == expected


def test_setup_without_callback(small_solver):
    assert small_solver.setup() == Codes.SUCCESS


@pytest.mark.parametrize("value, expected",
                         [(None, CallbackStatus.SUCCESS),
                          (0, CallbackStatus.SUCCESS),
                          (5, CallbackStatus.RECOVERABLE),
                          (-1, CallbackStatus.UNRECOVERABLE)])
def test_callback_status_from_return(value, expected):
    assert CallbackStatus.from_return(value) is expected


def test_return_code_values():
    assert Codes.SUCCESS == 0
    assert Codes.RES_REDUCED == 801
    assert Codes.CONV_FAIL == 802
    assert Codes.ATIMES_FAIL_REC == 803
    assert Codes.PSET_FAIL_REC == 804
    assert Codes.PSOLVE_FAIL_REC == 805
    assert Codes.QRFACT_FAIL == 807
    assert Codes.ATIMES_FAIL_UNREC == -805
    assert Codes.PSET_FAIL_UNREC == -806
    assert Codes.PSOLVE_FAIL_UNREC == -808
    assert Codes.QRSOL_FAIL == -811


def test_return_code_properties():
    assert Codes.SUCCESS.converged and Codes.SUCCESS.x_updated
    assert Codes.CONVERGED_AFTER_RESTART.converged
    assert not Codes.RES_REDUCED.converged
    assert Codes.RES_REDUCED.x_updated
    assert Codes.RES_REDUCED.recoverable
    assert not Codes.CONV_FAIL.x_updated
    assert Codes.QRFACT_FAIL.recoverable
    assert not Codes.QRSOL_FAIL.recoverable
    assert not Codes.ATIMES_FAIL_UNREC.recoverable
    assert not Codes.SUCCESS.recoverable
