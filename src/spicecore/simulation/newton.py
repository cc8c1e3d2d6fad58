# src/spicecore/simulation/newton.py
"""
Newton-Raphson iteration and the DC convergence aids built on it.

Every nonlinear device is replaced by its tangent-line companion model at the
present estimate, the resulting linear MNA system is solved, and the process
repeats until two successive solutions agree within the SPICE tolerances.
When plain Newton fails from the given starting point, two homotopies are
tried in order:

- gmin stepping: a large shunt conductance from every node to ground makes
  the problem nearly linear; the shunt is then reduced step by step, each
  solve starting from the previous one.
- source stepping: all independent sources are ramped from zero to their
  nominal value, each solve starting from the previous one.

All three share one signature so they can be chained by
`solve_operating_point`, which never returns an unconverged solution.
"""
import logging
import math
from dataclasses import dataclass, replace
from typing import Optional

import numpy as np

from ..components.base import StampContext
from ..constants import (
    GMIN_FACTOR_MIN,
    GMIN_STEPPING_MAX,
    GMIN_STEPPING_MIN,
    INITIAL_SOURCE_STEP,
    MIN_SOURCE_STEP,
)
from ..data_structures import Circuit
from .config import SolverOptions
from .exceptions import ConvergenceFailure, FactorizationError
from .mna import MnaSystem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewtonResult:
    """
    Outcome of one Newton (or homotopy) solve.

    Attributes:
        converged: Whether the convergence test passed.
        solution: The final (or last attempted) solution vector.
        iterations: Linear solves performed, summed over every sub-solve.
        residual: Largest update of any unknown in the last iteration.
        worst_index: Unknown with the largest tolerance-normalized update, -1 if unknown.
        strategy: 'linear', 'newton', 'gmin' or 'source'.
    """
    converged: bool
    solution: np.ndarray
    iterations: int
    residual: float
    worst_index: int
    strategy: str = "newton"


def stamp_circuit(circuit: Circuit, mna: MnaSystem, x: np.ndarray, ctx: StampContext) -> None:
    """Clears the system and stamps every device, in circuit order, then the gmin shunts."""
    mna.clear()
    ctx.limited = False
    for device in circuit.devices:
        device.stamp(mna, x, ctx)
    mna.stamp_gmin(ctx.gmin)


def newton_solve(
    circuit: Circuit,
    mna: MnaSystem,
    options: SolverOptions,
    x0: Optional[np.ndarray],
    ctx: StampContext,
    max_iterations: int,
) -> NewtonResult:
    """
    Plain Newton-Raphson from `x0` (zeros if None).

    A circuit without nonlinear devices is solved exactly by its first linear
    solve. A `FactorizationError` counts as non-convergence so the caller can
    fall back to a homotopy; a `SingularMatrixError` propagates.
    """
    mna.reset(x0)
    x = mna.solution
    linear = not circuit.is_nonlinear
    residual, worst = math.inf, -1

    for iteration in range(1, max_iterations + 1):
        stamp_circuit(circuit, mna, x, ctx)
        try:
            x = mna.solve(options.pivtol)
        except FactorizationError as e:
            logger.debug(f"Iteration {iteration}: factorization breakdown ({e}); treating as non-convergence.")
            return NewtonResult(False, x, iteration, math.inf, -1)

        worst, residual = mna.worst_unknown(options.vntol, options.abstol, options.reltol)
        if linear:
            return NewtonResult(True, x, iteration, residual, worst, "linear")

        converged = mna.converged(options.vntol, options.abstol, options.reltol)
        logger.debug(
            f"Iteration {iteration}: max update {residual:.3e} at unknown {worst}, "
            f"limited={ctx.limited}, converged={converged and not ctx.limited}"
        )
        if converged and not ctx.limited:
            return NewtonResult(True, x, iteration, residual, worst)

    return NewtonResult(False, x, max_iterations, residual, worst)


def gmin_stepping(
    circuit: Circuit,
    mna: MnaSystem,
    options: SolverOptions,
    x0: Optional[np.ndarray],
    ctx: StampContext,
    max_iterations: int,
) -> NewtonResult:
    """
    Adaptive gmin stepping.

    Starts with an extra shunt of `gmin_start`. Until a first step converges the
    shunt is raised by `gmin_factor` (up to GMIN_STEPPING_MAX). After that each
    success divides the shunt by the current factor and each failure retries
    from the last good point with the factor replaced by its square root. Once
    the shunt would drop below GMIN_STEPPING_MIN a final solve with the
    configured gmin alone is made. At most `gmin_steps` solves are attempted.
    """
    budget = options.gmin_steps
    if budget <= 0:
        return NewtonResult(False, mna.solution, 0, math.inf, -1, "gmin")

    factor = options.gmin_factor
    gmin_step = options.gmin_start
    good_x: Optional[np.ndarray] = None
    good_gmin = 0.0
    x = x0
    iterations = 0
    last: Optional[NewtonResult] = None

    for _ in range(budget):
        result = newton_solve(circuit, mna, options, x, replace(ctx, gmin=ctx.gmin + gmin_step), max_iterations)
        iterations += result.iterations
        last = result

        if result.converged:
            if gmin_step == 0.0:
                logger.info(f"Gmin stepping converged after {iterations} iteration(s).")
                return replace(result, iterations=iterations, strategy="gmin")
            logger.debug(f"Gmin step {gmin_step:.3e} S converged in {result.iterations} iteration(s).")
            good_x, good_gmin = result.solution, gmin_step
            if result.iterations <= max_iterations // 4:
                factor = min(factor * math.sqrt(factor), options.gmin_factor)
            gmin_step = good_gmin / factor
            if gmin_step < GMIN_STEPPING_MIN:
                gmin_step = 0.0
            x = good_x
        elif good_x is None:
            gmin_step *= factor
            logger.debug(f"Gmin stepping: no first point yet, raising shunt to {gmin_step:.3e} S.")
            if gmin_step > GMIN_STEPPING_MAX * (1.0 + 1.0e-9):
                break
            x = x0
        else:
            factor = math.sqrt(factor)
            if factor < GMIN_FACTOR_MIN:
                logger.debug("Gmin stepping: step factor exhausted.")
                break
            gmin_step = good_gmin / factor
            x = good_x

    logger.warning(f"Gmin stepping failed after {iterations} iteration(s).")
    return NewtonResult(False, last.solution, iterations, last.residual, last.worst_index, "gmin")


def source_stepping(
    circuit: Circuit,
    mna: MnaSystem,
    options: SolverOptions,
    x0: Optional[np.ndarray],
    ctx: StampContext,
    max_iterations: int,
) -> NewtonResult:
    """
    Adaptive source stepping.

    Solves the circuit with every independent source at zero (falling back to
    gmin stepping if even that fails), then ramps the source scale towards 1.
    The increment doubles after an easy step and halves after a failed one;
    the ramp is abandoned once the increment drops below MIN_SOURCE_STEP or
    `source_steps` solves have been spent. `x0` is not used: the ramp always
    starts from the zero-source solution.
    """
    budget = options.source_steps
    if budget <= 0:
        return NewtonResult(False, mna.solution, 0, math.inf, -1, "source")

    zero_ctx = replace(ctx, source_scale=0.0)
    result = newton_solve(circuit, mna, options, None, zero_ctx, max_iterations)
    iterations = result.iterations
    if not result.converged:
        logger.debug("Source stepping: zero-source point failed, trying gmin stepping for it.")
        result = gmin_stepping(circuit, mna, options, None, zero_ctx, max_iterations)
        iterations += result.iterations
        if not result.converged:
            logger.warning("Source stepping failed: the zero-source point did not converge.")
            return replace(result, iterations=iterations, strategy="source")

    good_x, good_scale = result.solution, 0.0
    step = INITIAL_SOURCE_STEP
    for _ in range(budget - 1):
        scale = min(good_scale + step, 1.0)
        result = newton_solve(circuit, mna, options, good_x, replace(ctx, source_scale=ctx.source_scale * scale), max_iterations)
        iterations += result.iterations
        if result.converged:
            good_x, good_scale = result.solution, scale
            logger.debug(f"Source step to {scale:.4f} converged in {result.iterations} iteration(s).")
            if scale >= 1.0:
                logger.info(f"Source stepping converged after {iterations} iteration(s).")
                return replace(result, iterations=iterations, strategy="source")
            if result.iterations <= max_iterations // 4:
                step *= 2.0
        else:
            step *= 0.5
            logger.debug(f"Source step to {scale:.4f} failed, increment reduced to {step:.4e}.")
            if step < MIN_SOURCE_STEP:
                break

    logger.warning(f"Source stepping stalled at scale {good_scale:.4f} after {iterations} iteration(s).")
    return NewtonResult(False, result.solution, iterations, result.residual, result.worst_index, "source")


def solve_operating_point(
    circuit: Circuit,
    mna: MnaSystem,
    options: SolverOptions,
    x0: Optional[np.ndarray],
    ctx: StampContext,
    max_iterations: Optional[int] = None,
    point: Optional[float] = None,
    variable: str = "",
) -> NewtonResult:
    """
    Converges a DC point: plain Newton, then gmin stepping, then source
    stepping. A strategy with a zero step budget is skipped.

    Returns:
        The converged result, with iterations summed over every attempt.

    Raises:
        ConvergenceFailure: When every strategy failed.
        SingularMatrixError: When the matrix is singular.
    """
    limit = max_iterations or options.itl1
    result = newton_solve(circuit, mna, options, x0, ctx, limit)
    iterations = result.iterations
    if result.converged:
        return result

    failed = result
    for name, strategy, budget in (
        ("gmin stepping", gmin_stepping, options.gmin_steps),
        ("source stepping", source_stepping, options.source_steps),
    ):
        if budget <= 0:
            continue
        logger.warning(
            f"Newton failed after {iterations} iteration(s) at {variable or 'operating point'}"
            f"{'' if point is None else f' = {point:.6e}'}; trying {name}."
        )
        result = strategy(circuit, mna, options, x0, ctx, limit)
        iterations += result.iterations
        if result.converged:
            return replace(result, iterations=iterations)
        failed = result

    node = circuit.unknown_name(failed.worst_index) if failed.worst_index >= 0 else None
    logger.error(f"No convergence at {variable or 'operating point'}; worst unknown {node}, last update {failed.residual:.3e}.")
    raise ConvergenceFailure(point=point, offending_node=node, residual=failed.residual, variable=variable)
