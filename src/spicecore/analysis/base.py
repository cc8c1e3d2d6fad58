# src/spicecore/analysis/base.py
"""
The analysis driver state machine shared by all four analyses.

A driver is single-use: it moves IDLE -> RUNNING -> COMPLETED, FAILED or
CANCELLED exactly once. Each run owns a private MnaSystem and starts by
resetting every device's history, so two runs of the same circuit produce
bit-for-bit identical results.

Progress is reported after every converged point. A progress hook that
returns True, or a CancellationToken that has been cancelled, stops the run
before the next point with `AnalysisCancelled`, which carries every point
that converged so far.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, ClassVar, List, Optional

import numpy as np

from ..components.base import StampContext
from ..data_structures import Circuit
from ..errors import DiagnosableError
from ..simulation.config import SolverOptions
from ..simulation.exceptions import AnalysisCancelled
from ..simulation.mna import MnaSystem
from ..simulation.newton import NewtonResult, solve_operating_point
from ..simulation.results import AnalysisResult, AnalysisState, PointDiagnostics
from .topology import TopologyAnalyzer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressInfo:
    """
    Passed to the progress hook after every converged point.

    Attributes:
        analysis: 'op', 'dc', 'ac' or 'tran'.
        variable: Name of the independent variable.
        value: Its value at the point just converged.
        index: Number of points converged so far, minus one.
        fraction: Completed fraction of the run in [0, 1].
        iterations: Newton iterations spent on the point.
    """
    analysis: str
    variable: str
    value: float
    index: int
    fraction: float
    iterations: int


ProgressHook = Callable[[ProgressInfo], Optional[bool]]


class CancellationToken:
    """A flag a caller can set from a progress hook or between callbacks to stop a run."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AnalysisDriver(ABC):
    """Base class of the analysis drivers."""
    analysis_name: ClassVar[str] = ""
    dtype: ClassVar[type] = float

    def __init__(
        self,
        circuit: Circuit,
        request,
        options: Optional[SolverOptions] = None,
        progress: Optional[ProgressHook] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        if not isinstance(circuit, Circuit):
            raise TypeError(f"{type(self).__name__} requires a Circuit, got {type(circuit).__name__}.")
        self.circuit = circuit
        self.request = request
        self.options = options if options is not None else SolverOptions()
        self.progress = progress
        self.cancel_token = cancel_token
        self.state = AnalysisState.IDLE
        self.variable = ""

        self.mna = MnaSystem(circuit.n_nodes, circuit.n_branches, dtype=self.dtype)
        self._points: List[float] = []
        self._solutions: List[np.ndarray] = []
        self._diagnostics: List[PointDiagnostics] = []

    # --- Lifecycle ---

    def run(self) -> AnalysisResult:
        """
        Runs the analysis once.

        Raises:
            RuntimeError: If the driver has already been run.
            SingularMatrixError, FactorizationError, ConvergenceFailure,
            AnalysisCancelled, ConfigParsingError: As tagged errors, with their
                `analysis` field filled in.
        """
        if self.state is not AnalysisState.IDLE:
            raise RuntimeError(f"{type(self).__name__} is single-use; it is already {self.state.value}.")
        self.state = AnalysisState.RUNNING
        logger.info(f"--- Starting '{self.analysis_name}' analysis of circuit '{self.circuit.name}' ---")

        try:
            for device in self.circuit.devices:
                device.reset_state()
            self.check_topology()
            self.execute()
        except AnalysisCancelled:
            self.state = AnalysisState.CANCELLED
            logger.info(f"'{self.analysis_name}' analysis cancelled after {len(self._points)} point(s).")
            raise
        except DiagnosableError as e:
            self.state = AnalysisState.FAILED
            if getattr(e, "analysis", "") is None:
                e.analysis = self.analysis_name
            raise
        except Exception:
            self.state = AnalysisState.FAILED
            raise

        self.state = AnalysisState.COMPLETED
        result = self.build_result()
        logger.info(
            f"'{self.analysis_name}' analysis completed: {len(result)} point(s), "
            f"{result.total_iterations} Newton iteration(s)."
        )
        return result

    def check_topology(self) -> None:
        TopologyAnalyzer(self.circuit).check(dc=True)

    @abstractmethod
    def execute(self) -> None:
        """Computes every point, calling `accept` for each converged one."""
        pass

    # --- Helpers for subclasses ---

    def make_context(self, **kwargs) -> StampContext:
        kwargs.setdefault("gmin", self.options.gmin)
        return StampContext(n_nodes=self.circuit.n_nodes, **kwargs)

    def operating_point(self, ctx: Optional[StampContext] = None) -> NewtonResult:
        """Converges the DC operating point at nominal source values."""
        # The operating point is always real, also for a complex small-signal driver.
        mna = self.mna if self.mna.dtype.kind == "f" else MnaSystem(self.circuit.n_nodes, self.circuit.n_branches)
        return solve_operating_point(
            self.circuit, mna, self.options, None, ctx if ctx is not None else self.make_context(mode="dc"),
        )

    def progress_fraction(self, value: float) -> float:
        return 1.0

    def accept(self, value: float, solution: np.ndarray, diagnostics: PointDiagnostics, record: bool = True) -> None:
        """
        Records one converged point (when `record` is set) and reports progress.

        Raises:
            AnalysisCancelled: If the progress hook or the cancellation token
                               requests it.
        """
        if record:
            self._points.append(value)
            self._solutions.append(np.array(solution, copy=True))
            self._diagnostics.append(diagnostics)

        cancel = False
        if self.progress is not None:
            info = ProgressInfo(
                analysis=self.analysis_name,
                variable=self.variable,
                value=value,
                index=len(self._points) - 1,
                fraction=min(max(self.progress_fraction(value), 0.0), 1.0),
                iterations=diagnostics.iterations,
            )
            cancel = bool(self.progress(info))
        if self.cancel_token is not None and self.cancel_token.cancelled:
            cancel = True
        if cancel:
            raise AnalysisCancelled(
                partial_result=self.build_result(),
                point=value,
                variable=self.variable,
                analysis=self.analysis_name,
            )

    def build_result(self) -> AnalysisResult:
        size = self.circuit.size
        solutions = np.array(self._solutions, dtype=self.dtype).reshape(len(self._solutions), size)
        return AnalysisResult(
            analysis=self.analysis_name,
            variable=self.variable,
            points=np.array(self._points, dtype=float),
            solutions=solutions,
            diagnostics=tuple(self._diagnostics),
            n_nodes=self.circuit.n_nodes,
            node_names=self.circuit.node_names,
        )


def diagnostics_from(result: NewtonResult) -> PointDiagnostics:
    return PointDiagnostics(iterations=result.iterations, residual=result.residual, strategy=result.strategy)
