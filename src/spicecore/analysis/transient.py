# src/spicecore/analysis/transient.py
"""
Adaptive-timestep transient analysis.

Reactive devices are replaced by companion models for each timestep: backward
Euler for the first step after t = 0 and after every source breakpoint (where
the trapezoidal rule would ring on the slope discontinuity), trapezoidal
otherwise. Each timestep is a Newton solve limited to `itl4` iterations.

Step control:
- A Newton failure halves the step and retries; below the minimum step the run
  fails with a ConvergenceFailure naming the time.
- The local truncation error is estimated from the difference between the
  corrector (the converged solution) and a first-order predictor extrapolated
  through the last two accepted points. Only integrated states enter the
  estimate: node voltages and the branch currents of reactive devices
  (inductors). Voltage-source currents are algebraic and are left out.
  A step whose error exceeds `trtol` times the SPICE tolerance is rejected
  and retried smaller; otherwise the next step is scaled by
  (tolerance / error)^(1/2), with growth capped by `tran_max_growth` and
  clamped to [min_step, max_step].
- Steps are shortened to land exactly on source breakpoints and on the stop time.

Device history advances only on accepted steps.
"""

import logging
from typing import List, Mapping, Optional

import numpy as np

from ..components.elements import IndependentSource
from ..constants import (
    BREAKPOINT_STEP_FRACTION,
    TIME_EPSILON_RATIO,
    TRAN_MAX_STEP_DIVISOR,
    TRAN_MIN_STEP_RATIO,
)
from ..simulation.config import Transient
from ..simulation.exceptions import ConfigParsingError, ConvergenceFailure
from ..simulation.newton import newton_solve
from ..simulation.results import PointDiagnostics
from .base import AnalysisDriver, diagnostics_from
from .topology import TopologyAnalyzer

logger = logging.getLogger(__name__)


class TransientAnalysis(AnalysisDriver):
    """Time-domain analysis from t = 0 to the stop time."""
    analysis_name = "tran"

    def __init__(self, circuit, request: Transient, *args, **kwargs):
        super().__init__(circuit, request, *args, **kwargs)
        self.variable = "time"
        span = request.stop - request.start
        self.h_max = request.max_step if request.max_step is not None else min(request.step, span / TRAN_MAX_STEP_DIVISOR)
        self.h_min = request.min_step if request.min_step is not None else request.stop * TRAN_MIN_STEP_RATIO
        if self.h_min > self.h_max:
            raise ConfigParsingError(
                details=f"Minimum step {self.h_min:.3e} s exceeds maximum step {self.h_max:.3e} s.",
                section="transient request"
            )
        self._eps = request.stop * TIME_EPSILON_RATIO
        self._lte_rows = self._state_rows()
        self.accepted_steps = 0
        self.rejected_steps = 0
        self._breakpoints = self._collect_breakpoints()

    def check_topology(self) -> None:
        TopologyAnalyzer(self.circuit).check(dc=self.request.initial_solution is None)

    def progress_fraction(self, value: float) -> float:
        return value / self.request.stop

    def _collect_breakpoints(self) -> List[float]:
        stop = self.request.stop
        points = {stop}
        for device in self.circuit.devices:
            if isinstance(device, IndependentSource):
                points.update(device.breakpoints(stop))
        merged: List[float] = []
        for t in sorted(points):
            if t > self._eps and (not merged or t - merged[-1] > self._eps):
                merged.append(t)
        if merged[-1] < stop:
            merged[-1] = stop
        return merged

    def _initial_vector(self, initial) -> np.ndarray:
        if isinstance(initial, Mapping):
            x = np.zeros(self.circuit.size)
            for name, value in initial.items():
                try:
                    node = self.circuit.node_index(str(name))
                except KeyError as e:
                    raise ConfigParsingError(details=str(e), section="transient initial solution") from e
                if node > 0:
                    x[node - 1] = float(value)
            return x
        x = np.asarray(initial, dtype=float)
        if x.shape != (self.circuit.size,):
            raise ConfigParsingError(
                details=f"Initial solution has shape {x.shape}, expected ({self.circuit.size},).",
                section="transient initial solution"
            )
        return x.copy()

    def _state_rows(self) -> np.ndarray:
        """Solution rows that are integrated in time: every node voltage and reactive branch currents."""
        n = self.circuit.n_nodes
        branches = sorted(
            n + device.branch for device in self.circuit.devices
            if device.is_reactive and device.branch is not None
        )
        return np.array(list(range(n)) + branches, dtype=int)

    def _tolerance(self, x_new: np.ndarray, x_old: np.ndarray) -> np.ndarray:
        """Per-row SPICE tolerance for the rows in `_lte_rows`."""
        rows = self._lte_rows
        tol = self.options.reltol * np.maximum(np.abs(x_new[rows]), np.abs(x_old[rows]))
        tol += np.where(rows < self.circuit.n_nodes, self.options.vntol, self.options.abstol)
        return tol

    def execute(self) -> None:
        request, options = self.request, self.options
        start, stop = request.start, request.stop
        eps = self._eps

        if request.initial_solution is None:
            op = self.operating_point()
            x = op.solution
            diag = diagnostics_from(op)
        else:
            x = self._initial_vector(request.initial_solution)
            diag = PointDiagnostics(iterations=0, residual=0.0, strategy="initial")
        dc_ctx = self.make_context(mode="dc")
        for device in self.circuit.devices:
            device.update_history(x, dc_ctx)
        self.accept(0.0, x, diag, record=start <= eps)

        t = 0.0
        bp_index = 0
        x_prev, x_prev2 = x, None
        h_prev: Optional[float] = None
        after_breakpoint = True
        h = min(self.h_max, BREAKPOINT_STEP_FRACTION * self._breakpoints[0])
        point_iterations = 0

        while t < stop - eps:
            next_bp = self._breakpoints[bp_index]
            h = min(h, self.h_max)
            hits_breakpoint = t + h >= next_bp - eps
            if hits_breakpoint:
                h = next_bp - t
            elif t + 2.0 * h > next_bp:
                # Split the remaining gap evenly instead of leaving a sliver.
                h = 0.5 * (next_bp - t)
            method = "be" if after_breakpoint else "trap"
            t_new = next_bp if hits_breakpoint else t + h

            ctx = self.make_context(mode="tran", time=t_new, h=h, method=method)
            result = newton_solve(self.circuit, self.mna, options, x_prev, ctx, options.itl4)
            point_iterations += result.iterations

            if not result.converged:
                self.rejected_steps += 1
                h *= 0.5
                logger.debug(f"t = {t_new:.6e}: Newton failed ({method}), step halved to {h:.3e} s.")
                if h < self.h_min:
                    node = self.circuit.unknown_name(result.worst_index) if result.worst_index >= 0 else None
                    logger.error(f"Timestep too small at t = {t_new:.6e} s.")
                    raise ConvergenceFailure(
                        point=t_new, offending_node=node, residual=result.residual, variable="time",
                        details=f"Timestep fell below the minimum of {self.h_min:.3e} s.",
                    )
                continue

            x_new = result.solution
            growth = options.tran_max_growth
            if method == "trap" and x_prev2 is not None and h_prev:
                x_pred = x_prev + (x_prev - x_prev2) * (h / h_prev)
                rows = self._lte_rows
                lte = np.abs(x_new[rows] - x_pred[rows]) * (h / (h + h_prev))
                ratio = float(np.max(lte / (options.trtol * self._tolerance(x_new, x_prev)))) if lte.size else 0.0
                if ratio > 1.0 and h > self.h_min * (1.0 + 1.0e-9):
                    self.rejected_steps += 1
                    h = max(h * max(ratio ** -0.5, 0.1), self.h_min)
                    logger.debug(f"t = {t_new:.6e}: LTE ratio {ratio:.3f} too large, retrying with h = {h:.3e} s.")
                    continue
                growth = min(ratio ** -0.5, growth) if ratio > 0.0 else growth

            for device in self.circuit.devices:
                device.update_history(x_new, ctx)
            self.accepted_steps += 1
            t = t_new
            self.accept(
                t, x_new,
                PointDiagnostics(iterations=point_iterations, residual=result.residual, strategy=result.strategy),
                record=t >= start - eps,
            )
            point_iterations = 0

            if hits_breakpoint:
                bp_index += 1
                after_breakpoint = True
                x_prev, x_prev2, h_prev = x_new, None, None
                if bp_index < len(self._breakpoints):
                    h = min(h * growth, BREAKPOINT_STEP_FRACTION * (self._breakpoints[bp_index] - t))
            else:
                after_breakpoint = False
                x_prev2, x_prev, h_prev = x_prev, x_new, h
                h *= growth
            h = min(max(h, self.h_min), self.h_max)

        logger.info(f"Transient finished: {self.accepted_steps} accepted and {self.rejected_steps} rejected step(s).")
