# src/spicecore/simulation/exceptions.py
"""
Defines the diagnosable exceptions raised while an analysis is running.

All of them inherit from `DiagnosableError`, so a caller can catch every tagged
solver error with one clause and always obtain a formatted report. The two
linear-algebra failures additionally inherit from `numpy.linalg.LinAlgError`.

The solver treats them differently:
- `SingularMatrixError` is structural and is never retried.
- `FactorizationError` inside a Newton iteration counts as non-convergence and
  hands over to the recovery strategies.
- `ConvergenceFailure` is raised only once every recovery strategy (or, in
  transient analysis, every timestep reduction) is exhausted.

The `analysis` field of each error is filled in by the analysis driver as the
error passes through it.
"""
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from ..errors import DiagnosableError, format_diagnostic_report


def describe_point(variable: str, point: Optional[float]) -> str:
    """Human-readable location of a failure, e.g. 'time = 1.0000e-03'."""
    if point is None:
        return variable or "operating point"
    return f"{variable} = {point:.6e}" if variable else f"{point:.6e}"


@dataclass()
class SingularMatrixError(DiagnosableError, np.linalg.LinAlgError):
    """
    Raised when the MNA matrix is structurally or exactly singular, e.g. a
    floating node, a loop of voltage sources or inductors, or a zero pivot.
    """
    details: str
    analysis: Optional[str] = None

    def __str__(self):
        return f"Singular matrix: {self.details}"

    def get_diagnostic_report(self) -> str:
        """Generates the diagnostic report for a singular matrix error."""
        return format_diagnostic_report(
            error_type="Singular Matrix Encountered",
            details=self.details,
            suggestion="This is usually caused by a node with no DC path to ground, a loop of ideal voltage sources or inductors, or a device value of zero. Check the circuit topology.",
            context={'analysis': self.analysis}
        )


@dataclass()
class FactorizationError(DiagnosableError, np.linalg.LinAlgError):
    """
    Raised when the LU factorization completes but is numerically unusable: a
    pivot below the pivot tolerance or a non-finite solution.
    """
    details: str
    min_pivot: Optional[float] = None
    analysis: Optional[str] = None

    def __str__(self):
        pivot_str = f" (smallest pivot {self.min_pivot:.3e})" if self.min_pivot is not None else ""
        return f"Numerical breakdown in LU factorization{pivot_str}: {self.details}"

    def get_diagnostic_report(self) -> str:
        """Generates the diagnostic report for a factorization breakdown."""
        return format_diagnostic_report(
            error_type="Numerical Factorization Breakdown",
            details=str(self),
            suggestion="Conductances differing by many orders of magnitude can make the matrix ill-conditioned. Check for extreme device values or lower the pivot tolerance.",
            context={'analysis': self.analysis}
        )


@dataclass()
class ConvergenceFailure(DiagnosableError):
    """
    Raised when Newton-Raphson fails at a point after every recovery strategy
    has been exhausted.

    Attributes:
        point: Value of the independent variable at the failing point, or None
               for an operating point.
        offending_node: Name of the unknown with the largest normalized update
                        in the last iteration.
        residual: The last update of that unknown.
        variable: Name of the independent variable ('time', a source name, ...).
    """
    point: Optional[float]
    offending_node: Optional[str]
    residual: float
    variable: str = ""
    details: str = ""
    analysis: Optional[str] = None

    def __str__(self):
        node_str = f" at node '{self.offending_node}'" if self.offending_node else ""
        return (
            f"Newton-Raphson failed to converge ({describe_point(self.variable, self.point)}){node_str}, "
            f"last update {self.residual:.3e}. {self.details}".rstrip()
        )

    def get_diagnostic_report(self) -> str:
        """Generates the diagnostic report for a convergence failure."""
        return format_diagnostic_report(
            error_type="Convergence Failure",
            details=str(self),
            suggestion="Check for unrealistic device parameters, add series resistance to ideal junctions, or raise the iteration limits and recovery step budgets in the solver options.",
            context={
                'analysis': self.analysis,
                'point': describe_point(self.variable, self.point),
                'node': self.offending_node,
            }
        )


@dataclass()
class AnalysisCancelled(DiagnosableError):
    """
    Raised when a run is cancelled between points. `partial_result` holds every
    point that fully converged before the request.
    """
    partial_result: Any
    point: Optional[float] = None
    variable: str = ""
    analysis: Optional[str] = None

    def __str__(self):
        n_points = len(self.partial_result) if self.partial_result is not None else 0
        return f"Analysis cancelled after {n_points} converged point(s)."

    def get_diagnostic_report(self) -> str:
        """Generates the diagnostic report for a cancelled run."""
        return format_diagnostic_report(
            error_type="Analysis Cancelled",
            details=str(self),
            suggestion="",
            context={'analysis': self.analysis, 'point': describe_point(self.variable, self.point) if self.point is not None else None}
        )


@dataclass()
class ConfigParsingError(DiagnosableError):
    """Raised when a solver-options or analysis-request dictionary fails validation."""
    details: str
    section: str = "configuration"

    def __str__(self):
        return f"Invalid {self.section}: {self.details}"

    def get_diagnostic_report(self) -> str:
        """Generates the diagnostic report for an invalid configuration."""
        return format_diagnostic_report(
            error_type="Configuration Error",
            details=self.details,
            suggestion=f"Correct the {self.section} entries listed above. Quantities may be given as numbers in SI units or as strings with units, e.g. '10 us'.",
            context={}
        )
