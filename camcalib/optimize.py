"""Levenberg-Marquardt least squares shared by calibration and pose refinement.

The solver only sees an opaque callable returning the residual vector and
its Jacobian for a parameter vector; the callers own the parameterisation.
The minimisation itself is MINPACK's LM through
:func:`scipy.optimize.least_squares`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

import numpy as np
from scipy.optimize import least_squares

logger = logging.getLogger(__name__)

ResidualFunction = Callable[[np.ndarray], tuple[np.ndarray, np.ndarray]]

_STATUS_REASONS = {
    -1: "improper input",
    0: "max iterations",
    1: "gradient",
    2: "ftol",
    3: "xtol",
    4: "ftol and xtol",
}


@dataclass(frozen=True)
class SolverConfig:
    """Termination parameters for :func:`levenberg_marquardt`.

    ``max_iterations`` caps residual evaluations; each LM step costs one.
    """

    max_iterations: int = 100
    ftol: float = 1e-12
    xtol: float = 1e-12
    gtol: float = 1e-10


@dataclass
class SolverResult:
    x: np.ndarray
    cost: float
    iterations: int
    converged: bool
    reason: str


class _CachedProblem:
    """Split a ``(residuals, J)`` callable into the ``fun``/``jac`` pair scipy expects."""

    def __init__(self, fun: ResidualFunction):
        self._fun = fun
        self._x: np.ndarray | None = None
        self._value: tuple[np.ndarray, np.ndarray] | None = None

    def _evaluate(self, x: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        if self._x is None or not np.array_equal(x, self._x):
            residuals, jacobian = self._fun(np.array(x, dtype=np.float64))
            self._x = np.array(x, dtype=np.float64)
            self._value = (np.asarray(residuals, dtype=np.float64), np.asarray(jacobian, dtype=np.float64))
        return self._value

    def residuals(self, x: np.ndarray) -> np.ndarray:
        return self._evaluate(x)[0]

    def jacobian(self, x: np.ndarray) -> np.ndarray:
        return self._evaluate(x)[1]


def levenberg_marquardt(
    fun: ResidualFunction,
    x0: np.ndarray,
    config: SolverConfig = SolverConfig(),
) -> SolverResult:
    """Minimise ``sum(fun(x)[0] ** 2)`` starting from ``x0``.

    ``fun`` returns ``(residuals, jacobian)`` with shapes ``(M,)`` and
    ``(M, len(x))``, with ``M >= len(x)``. The returned ``cost`` is the plain
    sum of squared residuals.
    """

    x0 = np.array(x0, dtype=np.float64, copy=True).reshape(-1)
    problem = _CachedProblem(fun)
    result = least_squares(
        problem.residuals,
        x0,
        jac=problem.jacobian,
        method="lm",
        ftol=config.ftol,
        xtol=config.xtol,
        gtol=config.gtol,
        max_nfev=config.max_iterations,
    )

    residuals = np.asarray(result.fun, dtype=np.float64)
    cost = float(residuals @ residuals)
    reason = _STATUS_REASONS.get(result.status, result.message)
    logger.debug("LM finished after %d evaluations: cost=%.6e (%s)", result.nfev, cost, reason)
    return SolverResult(
        x=np.asarray(result.x, dtype=np.float64),
        cost=cost,
        iterations=int(result.nfev),
        converged=result.status > 0,
        reason=reason,
    )
