"""Scaled, preconditioned, restarted GMRES.

:class:`SPGMRSolver` solves ``A x = b`` for an operator available only
through a callback, optionally scaled by diagonal vectors ``s1`` (rows)
and ``s2`` (columns) and preconditioned on the left by ``P1``, on the right
by ``P2``, or both. GMRES is applied to the transformed system::

    A~ x~ = b~,  A~ = s1 P1^-1 A P2^-1 s2^-1,  x~ = s2 P2 x,  b~ = s1 P1^-1 b

and convergence is declared when the Euclidean norm of the transformed
residual ``s1 P1^-1 (b - A x)`` falls to the requested tolerance.

The solver owns its whole workspace (Krylov basis, Hessenberg matrix,
Givens rotations, correction vector), sized by ``max_krylov`` and reused
across solves, so separate instances may run on separate threads.
"""

from typing import Any, Optional, Tuple

import numpy as np
from attrs import define, field, validators

from spgmr._utils import getype_validator, get_readonly_view
from spgmr.iteration_logger import IterationLogger
from spgmr.linear_solvers.base_solver import (
    _ATIMES_FAILURES,
    _PSOLVE_FAILURES,
    BaseLinearSolver,
    CallbackStatus,
    LinearSolverConfig,
    LinearSolverID,
    LinearSolverReturnCodes,
    LinearSolverType,
    OperatorApply,
    PreconditionerSide,
    PreconditionerSolve,
)
from spgmr.linear_solvers.givens_qr import qr_factorize, qr_solve
from spgmr.linear_solvers.orthogonalization import (
    GramSchmidtType,
    orthogonalize,
)
from spgmr.vectors import NVector

DEFAULT_MAX_KRYLOV = 5
DEFAULT_MAX_RESTARTS = 0
DEFAULT_GRAM_SCHMIDT = GramSchmidtType.MODIFIED

ReturnCode = LinearSolverReturnCodes


def max_krylov_converter(value: Any) -> int:
    """Return ``value`` if it is a positive integer, else the default."""
    if isinstance(value, (int, np.integer)) and not isinstance(value, bool) \
            and value > 0:
        return int(value)
    return DEFAULT_MAX_KRYLOV


def max_restarts_converter(value: Any) -> int:
    """Return ``value`` if it is a non-negative integer, else the default."""
    if isinstance(value, (int, np.integer)) and not isinstance(value, bool) \
            and value >= 0:
        return int(value)
    return DEFAULT_MAX_RESTARTS


def gram_schmidt_converter(value: Any) -> GramSchmidtType:
    """Return ``value`` as a Gram-Schmidt type, else the default."""
    if isinstance(value, str):
        try:
            return GramSchmidtType[value.upper()]
        except KeyError:
            return DEFAULT_GRAM_SCHMIDT
    try:
        return GramSchmidtType(value)
    except (ValueError, TypeError):
        return DEFAULT_GRAM_SCHMIDT


@define
class SPGMRConfig(LinearSolverConfig):
    """Configuration for :class:`SPGMRSolver`.

    Out-of-range values are replaced by the defaults rather than rejected.

    Attributes
    ----------
    max_krylov : int
        Maximum Krylov subspace dimension per restart cycle (default 5).
    max_restarts : int
        Number of restarts allowed after the first cycle (default 0).
    gram_schmidt_type : GramSchmidtType
        Orthogonalisation strategy (default modified Gram-Schmidt).
    """

    max_krylov: int = field(
        default=DEFAULT_MAX_KRYLOV,
        converter=max_krylov_converter,
        validator=getype_validator(int, 1),
    )
    max_restarts: int = field(
        default=DEFAULT_MAX_RESTARTS,
        converter=max_restarts_converter,
        validator=getype_validator(int, 0),
    )
    gram_schmidt_type: GramSchmidtType = field(
        default=DEFAULT_GRAM_SCHMIDT,
        converter=gram_schmidt_converter,
        validator=validators.instance_of(GramSchmidtType),
    )


class SPGMRSolver(BaseLinearSolver):
    """Scaled, preconditioned, restarted GMRES solver.

    Parameters
    ----------
    template : NVector
        Vector with the layout of the solution; cloned for the workspace.
    preconditioning_side : PreconditionerSide or str, default NONE
        ``'none'``, ``'left'``, ``'right'`` or ``'both'``. Unknown values
        mean ``NONE``.
    max_krylov : int, default 5
        Maximum Krylov subspace dimension. Non-positive values mean 5.
    max_restarts : int, default 0
        Maximum number of restarts. Negative values mean 0.
    gram_schmidt_type : GramSchmidtType or str, default MODIFIED
        ``'modified'`` or ``'classical'``.
    logger : IterationLogger, optional
        Receives iteration events; silent when omitted.

    Examples
    --------
    >>> import numpy as np
    >>> from spgmr import SerialVector, SPGMRSolver
    >>> def double(v, z):
    ...     z.scale(2.0, v)
    ...     return 0
    >>> b = SerialVector([2.0, 4.0])
    >>> x = SerialVector.zeros(2)
    >>> solver = SPGMRSolver(b, max_krylov=2)
    >>> solver.solve(x, b, 1e-12, operator_apply=double)
    <LinearSolverReturnCodes.SUCCESS: 0>
    >>> x.data
    array([1., 2.])
    """

    def __init__(
        self,
        template: NVector,
        preconditioning_side: Any = PreconditionerSide.NONE,
        max_krylov: int = DEFAULT_MAX_KRYLOV,
        max_restarts: int = DEFAULT_MAX_RESTARTS,
        gram_schmidt_type: Any = DEFAULT_GRAM_SCHMIDT,
        logger: Optional[IterationLogger] = None,
    ) -> None:
        if not isinstance(template, NVector):
            raise TypeError(
                f"template must be an NVector, got {type(template).__name__}"
            )
        config = SPGMRConfig(
            preconditioning_side=preconditioning_side,
            max_krylov=max_krylov,
            max_restarts=max_restarts,
            gram_schmidt_type=gram_schmidt_type,
        )
        super().__init__(config, logger)
        self._template = template
        self._xcor = template.clone()
        self._vtemp = template.clone()

        self._basis = None
        self._hessenberg = None
        self._givens = None
        self._yg = None
        self._cv = None
        self._xv = None
        self._allocated_krylov = 0

        self._num_restarts = 0
        self._krylov_dimension = 0

    # ------------------------------------------------------------------ #
    #                          configuration                             #
    # ------------------------------------------------------------------ #
    @property
    def max_krylov(self) -> int:
        return self._config.max_krylov

    @property
    def max_restarts(self) -> int:
        return self._config.max_restarts

    @property
    def gram_schmidt_type(self) -> GramSchmidtType:
        return self._config.gram_schmidt_type

    def set_max_restarts(self, max_restarts: int) -> None:
        """Set the restart limit; negative values mean 0."""
        self._check_not_solving()
        self._config.max_restarts = max_restarts

    def set_gram_schmidt_type(self, gram_schmidt_type: Any) -> None:
        """Set the orthogonalisation strategy; unknown values mean modified."""
        self._check_not_solving()
        self._config.gram_schmidt_type = gram_schmidt_type

    # ------------------------------------------------------------------ #
    #                        workspace lifecycle                         #
    # ------------------------------------------------------------------ #
    def get_type(self) -> LinearSolverType:
        return LinearSolverType.ITERATIVE

    def get_id(self) -> LinearSolverID:
        return LinearSolverID.SPGMR

    def _needs_allocation(self) -> bool:
        return (self._basis is None
                or self._allocated_krylov != self._config.max_krylov)

    def initialize(self) -> None:
        """Allocate the Krylov workspace.

        Called automatically by :meth:`solve` when the workspace is missing
        or ``max_krylov`` changed since the last allocation. Arrays that
        are already the right size are kept.
        """
        self._check_not_solving()
        if self._xcor is None:
            self._xcor = self._template.clone()
            self._vtemp = self._template.clone()
        if not self._needs_allocation():
            return
        maxl = self._config.max_krylov
        self._basis = self._template.clone_array(maxl + 1)
        self._hessenberg = np.zeros((maxl + 1, maxl), dtype=np.float64)
        self._givens = np.zeros(2 * maxl, dtype=np.float64)
        self._yg = np.zeros(maxl + 1, dtype=np.float64)
        self._cv = np.zeros(maxl + 1, dtype=np.float64)
        self._xv = [None] * (maxl + 1)
        self._allocated_krylov = maxl

    def free(self) -> None:
        """Release the basis, Hessenberg matrix and scratch storage."""
        self._check_not_solving()
        self._basis = None
        self._hessenberg = None
        self._givens = None
        self._yg = None
        self._cv = None
        self._xv = None
        self._xcor = None
        self._vtemp = None
        self._allocated_krylov = 0

    def space(self) -> Tuple[int, int]:
        """Return the real and integer workspace sizes in words."""
        lrw1, liw1 = self._template.space()
        maxl = self._config.max_krylov
        lenrw = lrw1 * (maxl + 5) + maxl * (maxl + 5) + 2
        leniw = liw1 * (maxl + 5)
        return lenrw, leniw

    # ------------------------------------------------------------------ #
    #                           introspection                            #
    # ------------------------------------------------------------------ #
    @property
    def num_restarts(self) -> int:
        """Return the number of restarts performed by the last solve."""
        return self._num_restarts

    @property
    def krylov_dimension(self) -> int:
        """Return the Krylov dimension reached in the last restart cycle."""
        return self._krylov_dimension

    @property
    def krylov_basis(self) -> tuple:
        """Return the basis vectors ``V[0..max_krylov]``."""
        return tuple(self._basis) if self._basis is not None else ()

    @property
    def hessenberg(self) -> Optional[np.ndarray]:
        """Return a read-only view of the factored Hessenberg matrix."""
        if self._hessenberg is None:
            return None
        return get_readonly_view(self._hessenberg)

    def resid(self) -> NVector:
        """Return the scratch residual vector of the last solve."""
        return self._vtemp

    # ------------------------------------------------------------------ #
    #                                solve                               #
    # ------------------------------------------------------------------ #
    def _validate(self, atimes, psolve, x, b) -> None:
        if atimes is None:
            raise ValueError(
                "No operator callback: call set_operator() or pass "
                "operator_apply to solve()."
            )
        config = self._config
        if (config.precondition_left or config.precondition_right) \
                and psolve is None:
            raise ValueError(
                f"Preconditioning side is {config.preconditioning_side.name} "
                f"but no preconditioner solve callback was supplied."
            )
        for name, vector in (("x", x), ("b", b), ("s1", self._s1),
                             ("s2", self._s2)):
            if vector is None and name in ("s1", "s2"):
                continue
            if not self._template.compatible_with(vector):
                raise ValueError(
                    f"{name} is not compatible with the solver template "
                    f"(length {self._template.length}, "
                    f"dtype {self._template.dtype})."
                )

    def solve(
        self,
        x: NVector,
        b: NVector,
        tolerance: float,
        operator_apply: Optional[OperatorApply] = None,
        preconditioner_solve: Optional[PreconditionerSolve] = None,
    ) -> LinearSolverReturnCodes:
        """Solve ``A x = b``.

        Parameters
        ----------
        x
            Initial guess, overwritten with the solution when the returned
            status is ``SUCCESS``, ``CONVERGED_AFTER_RESTART`` or
            ``RES_REDUCED``. Untouched otherwise.
        b
            Right-hand side.
        tolerance
            Target for the Euclidean norm of ``s1 P1^-1 (b - A x)``. A
            negative value is treated as 0.
        operator_apply, preconditioner_solve
            Callbacks for this call only; the registered ones are used when
            omitted.

        Returns
        -------
        LinearSolverReturnCodes
            Outcome of the solve, also stored in :attr:`last_flag`.

        Raises
        ------
        ValueError
            If no operator is available, preconditioning is enabled
            without a solve callback, or a vector does not match the
            template.
        """
        self._check_not_solving()
        atimes = (operator_apply if operator_apply is not None
                  else self._operator_apply)
        psolve = (preconditioner_solve if preconditioner_solve is not None
                  else self._preconditioner_solve)
        delta = max(float(tolerance), 0.0)
        flag = None
        try:
            self._validate(atimes, psolve, x, b)
            if self._needs_allocation() or self._xcor is None:
                self.initialize()
            self._solving = True
            self.logger.start_event("linear-solver", solver="spgmr")
            flag = self._run(x, b, delta, atimes, psolve)
            self._last_flag = flag
        finally:
            self._zero_guess = False
            if self._solving:
                self._solving = False
                self.logger.stop_event(
                    "linear-solver",
                    status=flag.name if flag is not None else "exception",
                    total_iters=self._num_iters,
                    restarts=self._num_restarts,
                    res_norm=self._res_norm,
                )
        return flag

    def _callback_failure(self, failures, status, what):
        self.logger.progress("end-linear-iterate",
                             status=f"failed {what}", retval=int(status))
        return failures[status]

    def _run(self, x, b, delta, atimes, psolve) -> LinearSolverReturnCodes:
        config = self._config
        maxl = config.max_krylov
        max_restarts = config.max_restarts
        gs_kind = config.gram_schmidt_type
        pre_left = config.precondition_left
        pre_right = config.precondition_right
        V = self._basis
        hes = self._hessenberg
        givens = self._givens
        yg = self._yg
        cv = self._cv
        xv = self._xv
        xcor = self._xcor
        vtemp = self._vtemp
        s1 = self._s1
        s2 = self._s2
        zero_guess = self._zero_guess
        log = self.logger

        self._num_iters = 0
        self._num_restarts = 0
        self._krylov_dimension = 0
        self._res_norm = 0.0
        converged = False
        krydim = 0

        log.progress("begin-linear-iterate")

        # vtemp = r_0 = b - A x_0
        if zero_guess:
            vtemp.scale(1.0, b)
        else:
            status = CallbackStatus.from_return(atimes(x, vtemp))
            if status != CallbackStatus.SUCCESS:
                return self._callback_failure(_ATIMES_FAILURES, status,
                                              "matvec")
            vtemp.linear_sum(1.0, b, -1.0, vtemp)
        V[0].scale(1.0, vtemp)

        # V[0] = s1 P1^-1 r_0
        if pre_left:
            status = CallbackStatus.from_return(
                psolve(V[0], vtemp, delta, PreconditionerSide.LEFT)
            )
            if status != CallbackStatus.SUCCESS:
                return self._callback_failure(_PSOLVE_FAILURES, status,
                                              "preconditioner solve")
        else:
            vtemp.scale(1.0, V[0])
        if s1 is not None:
            V[0].prod(s1, vtemp)
        else:
            V[0].scale(1.0, vtemp)

        r_norm = beta = float(np.sqrt(V[0].dot(V[0])))
        self._res_norm = r_norm

        if r_norm <= delta:
            log.progress("end-linear-iterate", cur_iter=0, total_iters=0,
                         res_norm=r_norm, status="success")
            return ReturnCode.SUCCESS
        log.progress("end-linear-iterate", cur_iter=0, total_iters=0,
                     res_norm=r_norm, status="continue")

        rho = beta
        xcor.const(0.0)

        for ntries in range(max_restarts + 1):
            hes.fill(0.0)
            rotation_product = 1.0
            V[0].scale(1.0 / r_norm, V[0])

            for l in range(maxl):
                log.progress("begin-linear-iterate")
                self._num_iters += 1
                krydim = l + 1
                self._krylov_dimension = krydim
                v_next = V[krydim]

                # vtemp = P2^-1 s2^-1 V[l]
                if s2 is not None:
                    vtemp.div(V[l], s2)
                else:
                    vtemp.scale(1.0, V[l])
                if pre_right:
                    v_next.scale(1.0, vtemp)
                    status = CallbackStatus.from_return(
                        psolve(v_next, vtemp, delta, PreconditionerSide.RIGHT)
                    )
                    if status != CallbackStatus.SUCCESS:
                        return self._callback_failure(
                            _PSOLVE_FAILURES, status, "preconditioner solve"
                        )

                status = CallbackStatus.from_return(atimes(vtemp, v_next))
                if status != CallbackStatus.SUCCESS:
                    return self._callback_failure(_ATIMES_FAILURES, status,
                                                  "matvec")

                # V[l+1] = s1 P1^-1 A P2^-1 s2^-1 V[l]
                if pre_left:
                    status = CallbackStatus.from_return(
                        psolve(v_next, vtemp, delta, PreconditionerSide.LEFT)
                    )
                    if status != CallbackStatus.SUCCESS:
                        return self._callback_failure(
                            _PSOLVE_FAILURES, status, "preconditioner solve"
                        )
                else:
                    vtemp.scale(1.0, v_next)
                if s1 is not None:
                    v_next.prod(s1, vtemp)
                else:
                    v_next.scale(1.0, vtemp)

                orthogonalize(gs_kind, V, hes, krydim, maxl, cv, xv)

                if qr_factorize(krydim, hes, givens, l) != 0:
                    log.progress("end-linear-iterate",
                                 status="failed QR factorization")
                    return ReturnCode.QRFACT_FAIL

                rotation_product *= givens[2 * l + 1]
                rho = abs(rotation_product * r_norm)
                self._res_norm = rho
                log.progress("linear-iterate", cur_iter=l + 1,
                             total_iters=self._num_iters, res_norm=rho)

                if rho <= delta:
                    converged = True
                    break

                v_next.scale(1.0 / hes[krydim, l], v_next)
                if l < maxl - 1:
                    log.progress("end-linear-iterate", status="continue")

            # y minimising ||r_norm e_1 - H y||, then xcor += V y
            yg[0] = r_norm
            yg[1:krydim + 1] = 0.0
            if qr_solve(krydim, hes, givens, yg) != 0:
                log.progress("end-linear-iterate", status="failed QR solve")
                return ReturnCode.QRSOL_FAIL

            cv[0] = 1.0
            xv[0] = xcor
            for k in range(krydim):
                cv[k + 1] = yg[k]
                xv[k + 1] = V[k]
            xcor.linear_combination(cv[:krydim + 1], xv[:krydim + 1])

            if converged:
                failure = self._apply_correction(x, delta, psolve, pre_right,
                                                 zero_guess)
                if failure is not None:
                    return failure
                log.progress("end-linear-iterate", status="success")
                if ntries == 0:
                    return ReturnCode.SUCCESS
                return ReturnCode.CONVERGED_AFTER_RESTART

            if ntries == max_restarts:
                break

            # The last column of Q, scaled by r_norm, holds the coordinates
            # of the current residual in V[0..krydim]; no matvec needed.
            s_product = 1.0
            for i in range(krydim, 0, -1):
                yg[i] = s_product * givens[2 * i - 2]
                s_product *= givens[2 * i - 1]
            yg[0] = s_product

            r_norm *= s_product
            yg[:krydim + 1] *= r_norm
            r_norm = abs(r_norm)

            for k in range(krydim + 1):
                cv[k] = yg[k]
                xv[k] = V[k]
            V[0].linear_combination(cv[:krydim + 1], xv[:krydim + 1])

            self._num_restarts += 1
            log.progress("restart", cycle=ntries + 1, res_norm=r_norm)
            log.progress("end-linear-iterate", status="continue")

        if rho < beta:
            failure = self._apply_correction(x, delta, psolve, pre_right,
                                             zero_guess)
            if failure is not None:
                return failure
            log.progress("end-linear-iterate",
                         status="failed residual reduced")
            return ReturnCode.RES_REDUCED

        log.progress("end-linear-iterate", status="failed max iterations")
        return ReturnCode.CONV_FAIL

    def _apply_correction(self, x, delta, psolve, pre_right, zero_guess):
        """Add ``P2^-1 s2^-1 xcor`` to ``x``.

        Returns the failure code if the right preconditioner fails, else
        None.
        """
        xcor = self._xcor
        vtemp = self._vtemp
        if self._s2 is not None:
            xcor.div(xcor, self._s2)
        if pre_right:
            status = CallbackStatus.from_return(
                psolve(xcor, vtemp, delta, PreconditionerSide.RIGHT)
            )
            if status != CallbackStatus.SUCCESS:
                return self._callback_failure(_PSOLVE_FAILURES, status,
                                              "preconditioner solve")
        else:
            vtemp.scale(1.0, xcor)

        if zero_guess:
            x.scale(1.0, vtemp)
        else:
            x.linear_sum(1.0, x, 1.0, vtemp)
        return None
