"""Shared configuration and lifecycle for iterative linear solvers.

This module provides the enumerations, return codes, callback conventions
and configuration container used by the Krylov solvers in
:mod:`spgmr.linear_solvers`, together with :class:`BaseLinearSolver`, which
owns the callbacks, scaling vectors and introspection counters that every
solver exposes.
"""

from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Any, Callable, Dict, Optional, Set, Union

from attrs import define, field, validators

from spgmr._utils import in_attr, merge_updates, warn_unrecognized
from spgmr.iteration_logger import IterationLogger
from spgmr.vectors import NVector


class PreconditionerSide(IntEnum):
    """Where the preconditioner is applied."""
    NONE = 0
    LEFT = 1
    RIGHT = 2
    BOTH = 3


class LinearSolverType(IntEnum):
    DIRECT = 0
    ITERATIVE = 1
    MATRIX_ITERATIVE = 2
    MATRIX_EMBEDDED = 3


class LinearSolverID(IntEnum):
    SPGMR = 0
    CUSTOM = 99


class CallbackStatus(IntEnum):
    """Tri-state outcome of an operator or preconditioner callback."""
    SUCCESS = 0
    RECOVERABLE = 1
    UNRECOVERABLE = -1

    @classmethod
    def from_return(cls, value: Union[None, int, "CallbackStatus"]):
        """Classify a callback return value.

        ``None`` and ``0`` mean success, positive values a recoverable
        failure and negative values an unrecoverable one.
        """
        if value is None:
            return cls.SUCCESS
        value = int(value)
        if value == 0:
            return cls.SUCCESS
        return cls.RECOVERABLE if value > 0 else cls.UNRECOVERABLE


class LinearSolverReturnCodes(IntEnum):
    """Status of a solve or setup call.

    Positive failure codes are recoverable: the caller may retry with a
    different state (e.g. a smaller step). Negative codes are not.
    """
    SUCCESS = 0
    CONVERGED_AFTER_RESTART = 1   # converged in a later restart cycle
    RES_REDUCED = 801             # not converged, residual reduced, x updated
    CONV_FAIL = 802               # not converged, x unchanged
    ATIMES_FAIL_REC = 803
    PSET_FAIL_REC = 804
    PSOLVE_FAIL_REC = 805
    QRFACT_FAIL = 807
    ATIMES_FAIL_UNREC = -805
    PSET_FAIL_UNREC = -806
    PSOLVE_FAIL_UNREC = -808
    QRSOL_FAIL = -811

    @property
    def converged(self) -> bool:
        """Return True if the tolerance was met."""
        return self in (LinearSolverReturnCodes.SUCCESS,
                        LinearSolverReturnCodes.CONVERGED_AFTER_RESTART)

    @property
    def recoverable(self) -> bool:
        """Return True for failures the caller may retry."""
        return self > LinearSolverReturnCodes.CONVERGED_AFTER_RESTART

    @property
    def x_updated(self) -> bool:
        """Return True if the solution vector was modified."""
        return self.converged or self == LinearSolverReturnCodes.RES_REDUCED


_ATIMES_FAILURES = {
    CallbackStatus.RECOVERABLE: LinearSolverReturnCodes.ATIMES_FAIL_REC,
    CallbackStatus.UNRECOVERABLE: LinearSolverReturnCodes.ATIMES_FAIL_UNREC,
}
_PSETUP_FAILURES = {
    CallbackStatus.RECOVERABLE: LinearSolverReturnCodes.PSET_FAIL_REC,
    CallbackStatus.UNRECOVERABLE: LinearSolverReturnCodes.PSET_FAIL_UNREC,
}
_PSOLVE_FAILURES = {
    CallbackStatus.RECOVERABLE: LinearSolverReturnCodes.PSOLVE_FAIL_REC,
    CallbackStatus.UNRECOVERABLE: LinearSolverReturnCodes.PSOLVE_FAIL_UNREC,
}


OperatorApply = Callable[[NVector, NVector], Optional[int]]
PreconditionerSetup = Callable[[], Optional[int]]
PreconditionerSolve = Callable[
    [NVector, NVector, float, PreconditionerSide], Optional[int]
]


def preconditioner_side_converter(value: Any) -> PreconditionerSide:
    """Return ``value`` as a side, falling back to ``NONE``.

    Accepts members, their integer values, or their names in any case.
    """
    if isinstance(value, str):
        try:
            return PreconditionerSide[value.upper()]
        except KeyError:
            return PreconditionerSide.NONE
    try:
        return PreconditionerSide(value)
    except (ValueError, TypeError):
        return PreconditionerSide.NONE


@define
class LinearSolverConfig:
    """Settings common to the iterative linear solvers.

    Attributes
    ----------
    preconditioning_side : PreconditionerSide
        Side(s) on which the preconditioner is applied. Unrecognised
        values are replaced by ``NONE``.
    """

    preconditioning_side: PreconditionerSide = field(
        default=PreconditionerSide.NONE,
        converter=preconditioner_side_converter,
        validator=validators.instance_of(PreconditionerSide),
    )

    @property
    def precondition_left(self) -> bool:
        return self.preconditioning_side in (PreconditionerSide.LEFT,
                                             PreconditionerSide.BOTH)

    @property
    def precondition_right(self) -> bool:
        return self.preconditioning_side in (PreconditionerSide.RIGHT,
                                             PreconditionerSide.BOTH)

    def update(
        self, updates_dict: Optional[dict] = None, **kwargs
    ) -> tuple[Set[str], Set[str]]:
        """Update configuration fields with new values.

        Parameters
        ----------
        updates_dict
            Mapping of setting names to new values.
        **kwargs
            Additional settings to update.

        Returns
        -------
        tuple[set[str], set[str]]
            recognized: Names of settings that matched known fields.
            changed: Names of settings whose stored value changed after
            conversion.
        """
        updates = merge_updates(updates_dict, **kwargs)
        recognized = set()
        changed = set()
        for key, value in updates.items():
            if not in_attr(key, self):
                continue
            recognized.add(key)
            old_value = getattr(self, key)
            setattr(self, key, value)
            if getattr(self, key) != old_value:
                changed.add(key)
        return recognized, changed


class BaseLinearSolver(ABC):
    """Callback, scaling and counter bookkeeping for iterative solvers.

    Subclasses implement the algorithm in :meth:`solve` and size their
    workspace in :meth:`initialize`.

    Parameters
    ----------
    config
        Solver configuration.
    logger
        Destination for iteration events. A silent logger (verbosity
        ``None``) is created when omitted.
    """

    def __init__(
        self,
        config: LinearSolverConfig,
        logger: Optional[IterationLogger] = None,
    ) -> None:
        self._config = config
        self.logger = logger if logger is not None else IterationLogger(None)

        self._operator_apply: Optional[OperatorApply] = None
        self._preconditioner_setup: Optional[PreconditionerSetup] = None
        self._preconditioner_solve: Optional[PreconditionerSolve] = None
        self._s1: Optional[NVector] = None
        self._s2: Optional[NVector] = None
        self._zero_guess = False
        self._solving = False

        self._num_iters = 0
        self._res_norm = 0.0
        self._last_flag = LinearSolverReturnCodes.SUCCESS

    # ------------------------------------------------------------------ #
    #                         configuration                              #
    # ------------------------------------------------------------------ #
    def _check_not_solving(self) -> None:
        if self._solving:
            raise RuntimeError(
                "Solver configuration may only change between solves."
            )

    @property
    def config(self) -> LinearSolverConfig:
        """Return the configuration container."""
        return self._config

    @property
    def preconditioning_side(self) -> PreconditionerSide:
        return self._config.preconditioning_side

    def set_preconditioning_side(self, side: Any) -> None:
        """Set the preconditioning side; unknown values mean ``NONE``."""
        self._check_not_solving()
        self._config.preconditioning_side = side

    def set_operator(self, operator_apply: OperatorApply) -> None:
        """Register the callback computing ``z = A v``."""
        self._check_not_solving()
        self._operator_apply = operator_apply

    def set_preconditioner(
        self,
        setup: Optional[PreconditionerSetup] = None,
        solve: Optional[PreconditionerSolve] = None,
    ) -> None:
        """Register the preconditioner setup and solve callbacks."""
        self._check_not_solving()
        self._preconditioner_setup = setup
        self._preconditioner_solve = solve

    def set_scaling_vectors(
        self,
        s1: Optional[NVector] = None,
        s2: Optional[NVector] = None,
    ) -> None:
        """Register the left (``s1``) and right (``s2``) scaling vectors.

        ``None`` means identity scaling on that side.
        """
        self._check_not_solving()
        self._s1 = s1
        self._s2 = s2

    def set_zero_guess(self, zero_guess: bool) -> None:
        """Flag the next solve's initial guess as zero.

        The flag applies to one solve only and is cleared on return.
        """
        self._zero_guess = bool(zero_guess)

    def update(
        self,
        updates_dict: Optional[Dict[str, Any]] = None,
        silent: bool = False,
        **kwargs,
    ) -> Set[str]:
        """Update configuration settings.

        Parameters
        ----------
        updates_dict : dict, optional
            Dictionary of settings to update.
        silent : bool, default False
            If True, suppress warnings about unrecognized keys.
        **kwargs
            Additional settings as keyword arguments.

        Returns
        -------
        set
            Set of recognized parameter names.
        """
        self._check_not_solving()
        all_updates = merge_updates(updates_dict, **kwargs)
        if not all_updates:
            return set()
        recognized, _ = self._config.update(all_updates)
        if not silent:
            warn_unrecognized(set(all_updates) - recognized,
                              type(self).__name__)
        return recognized

    # ------------------------------------------------------------------ #
    #                     setup and introspection                        #
    # ------------------------------------------------------------------ #
    def setup(self) -> LinearSolverReturnCodes:
        """Run the preconditioner setup callback, if one is registered."""
        self._check_not_solving()
        if self._preconditioner_setup is not None:
            status = CallbackStatus.from_return(self._preconditioner_setup())
            if status != CallbackStatus.SUCCESS:
                self._last_flag = _PSETUP_FAILURES[status]
                return self._last_flag
        self._last_flag = LinearSolverReturnCodes.SUCCESS
        return self._last_flag

    @property
    def num_iters(self) -> int:
        """Return the number of linear iterations of the last solve."""
        return self._num_iters

    @property
    def res_norm(self) -> float:
        """Return the final scaled, preconditioned residual norm."""
        return self._res_norm

    @property
    def last_flag(self) -> LinearSolverReturnCodes:
        """Return the status of the last setup or solve call."""
        return self._last_flag

    @property
    def zero_guess(self) -> bool:
        return self._zero_guess

    @abstractmethod
    def get_type(self) -> LinearSolverType:
        """Return the solver category."""

    @abstractmethod
    def get_id(self) -> LinearSolverID:
        """Return the solver identifier."""

    @abstractmethod
    def initialize(self) -> None:
        """Validate options and allocate the workspace."""

    @abstractmethod
    def solve(
        self,
        x: NVector,
        b: NVector,
        tolerance: float,
        operator_apply: Optional[OperatorApply] = None,
        preconditioner_solve: Optional[PreconditionerSolve] = None,
    ) -> LinearSolverReturnCodes:
        """Solve ``A x = b`` to the requested tolerance."""

    @abstractmethod
    def resid(self) -> NVector:
        """Return the residual vector of the last solve."""

    @abstractmethod
    def space(self) -> tuple[int, int]:
        """Return the ``(real, integer)`` workspace size in words."""

    @abstractmethod
    def free(self) -> None:
        """Release the workspace."""
