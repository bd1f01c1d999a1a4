"""Levenberg-Marquardt minimization of a residual vector.

The damping strategy follows Madsen, Nielsen & Tingleff, "Methods for
non-linear least squares problems" (2004), section 3.2.

"""

from enum import IntFlag
import logging

import numpy as np
from scipy import linalg

from multishapelet.config import OptimizerConf

logger = logging.getLogger(__name__)


class OptimizerState(IntFlag):
    """State of a :class:`HybridOptimizer`.

    ``SUCCESS`` and ``FAILURE`` are masks over the flags giving the
    reason the optimizer stopped.

    """

    RUNNING = 0
    SUCCESS_GTOL = 0x01
    SUCCESS_MINSTEP = 0x02
    SUCCESS = 0x03
    FAILURE_MAXITER = 0x10
    FAILURE_NONFINITE = 0x20
    FAILURE_MAXREJECT = 0x40
    FAILURE = 0x70


class HybridOptimizer:
    """Minimize ``0.5 |f(x)|^2`` for an
    :class:`~multishapelet.objective.Objective`.

    Each iteration solves the damped normal equations
    ``(J^T J + mu I) h = -J^T f`` for a trial step.  A step that lowers
    the cost is accepted and the damping is reduced, moving towards
    Gauss-Newton steps; otherwise the damping is increased, moving
    towards steepest descent, and a new step is tried without
    recomputing the Jacobian.

    A trial step with non-finite residuals is rejected like one that
    raises the cost, so it ends in ``FAILURE_MAXREJECT`` if no smaller
    step recovers.  ``FAILURE_NONFINITE`` is reported only for a
    non-finite residual or Jacobian at the starting point, or a
    non-finite Jacobian at an accepted point.

    Parameters
    ----------
    objective : multishapelet.objective.Objective
        Residual function and its Jacobian.
    initial_parameters : array_like
        Starting point.
    conf : OptimizerConf, optional
        Control parameters; defaults apply when omitted.

    """

    def __init__(self, objective, initial_parameters, conf=None):
        self._objective = objective
        self._conf = OptimizerConf() if conf is None else conf
        self._parameters = np.array(initial_parameters, dtype=float)
        if self._parameters.shape != (objective.parameter_size,):
            raise ValueError(
                f"expected {objective.parameter_size} parameters, "
                f"got {self._parameters.shape}"
            )
        self._state = OptimizerState.RUNNING
        self._iterations = 0
        self._value = np.nan

    @property
    def state(self):
        return self._state

    @property
    def parameters(self):
        return self._parameters.copy()

    @property
    def objective(self):
        return self._objective

    @property
    def iterations(self):
        """Number of accepted steps."""
        return self._iterations

    @property
    def value(self):
        """Cost ``0.5 |f|^2`` at the current parameters."""
        return self._value

    def get_state(self):
        return self._state

    def get_parameters(self):
        return self.parameters

    def get_objective(self):
        return self._objective

    def _solve(self, jtj, gradient, jacobian, function, mu):
        """Step ``h`` solving ``(J^T J + mu I) h = -g``."""
        n = jtj.shape[0]
        if self._conf.use_cholesky:
            try:
                factor = linalg.cho_factor(jtj + mu * np.identity(n))
                return linalg.cho_solve(factor, -gradient)
            except linalg.LinAlgError:
                logger.debug("Cholesky failed with mu=%g, using SVD", mu)
        augmented = np.vstack([jacobian, np.sqrt(mu) * np.identity(n)])
        rhs = np.concatenate([-function, np.zeros(n)])
        return linalg.lstsq(augmented, rhs)[0]

    def run(self):
        """Iterate until a terminal state is reached.

        Returns
        -------
        OptimizerState
            The final state; calling again returns it unchanged.

        """
        if self._state != OptimizerState.RUNNING:
            return self._state
        conf = self._conf
        x = self._parameters
        function = self._objective.compute_function(x)
        jacobian = self._objective.compute_derivative(x)
        if not (np.all(np.isfinite(function)) and np.all(np.isfinite(jacobian))):
            logger.debug("Non-finite objective at the initial parameters")
            self._finish(OptimizerState.FAILURE_NONFINITE)
            return self._state
        value = 0.5 * function @ function
        jtj = jacobian.T @ jacobian
        gradient = jacobian.T @ function
        mu = conf.tau * np.max(np.diag(jtj))
        nu = 2.0
        if np.max(np.abs(gradient)) <= conf.g_tol:
            self._finish(OptimizerState.SUCCESS_GTOL)
            return self._state

        while self._state == OptimizerState.RUNNING:
            if self._iterations >= conf.max_iter:
                self._state = OptimizerState.FAILURE_MAXITER
                break
            rejections = 0
            while True:
                step = self._solve(jtj, gradient, jacobian, function, mu)
                if np.linalg.norm(step) <= conf.min_step * (
                    np.linalg.norm(x) + conf.min_step
                ):
                    self._state = OptimizerState.SUCCESS_MINSTEP
                    break
                trial = x + step
                trial_function = self._objective.compute_function(trial)
                trial_value = 0.5 * trial_function @ trial_function
                predicted = 0.5 * step @ (mu * step - gradient)
                rho = (
                    (value - trial_value) / predicted
                    if np.isfinite(trial_value) and predicted > 0
                    else -np.inf
                )
                if rho > 0:
                    x = trial
                    function = trial_function
                    value = trial_value
                    self._iterations += 1
                    jacobian = self._objective.compute_derivative(x)
                    if not np.all(np.isfinite(jacobian)):
                        self._state = OptimizerState.FAILURE_NONFINITE
                        break
                    jtj = jacobian.T @ jacobian
                    gradient = jacobian.T @ function
                    mu *= max(1.0 / 3.0, 1.0 - (2.0 * rho - 1.0) ** 3)
                    nu = 2.0
                    logger.debug(
                        "Iteration %d: cost %g, mu %g", self._iterations, value, mu
                    )
                    if np.max(np.abs(gradient)) <= conf.g_tol:
                        self._state = OptimizerState.SUCCESS_GTOL
                    break
                mu *= nu
                nu *= 2.0
                rejections += 1
                if rejections > conf.max_rejections:
                    self._state = OptimizerState.FAILURE_MAXREJECT
                    break
        self._parameters = x
        self._finish(self._state)
        return self._state

    def _finish(self, state):
        self._state = state
        # leave the objective evaluated at the final parameters
        function = self._objective.compute_function(self._parameters)
        self._value = 0.5 * function @ function
        logger.debug(
            "Optimizer stopped with %s after %d iterations",
            state.name,
            self._iterations,
        )
