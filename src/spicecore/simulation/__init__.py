# src/spicecore/simulation/__init__.py
from .exceptions import (
    SingularMatrixError,
    FactorizationError,
    ConvergenceFailure,
    AnalysisCancelled,
    ConfigParsingError,
)
from .config import (
    SolverOptions,
    DcOp,
    DcSweep,
    Ac,
    Transient,
    parse_solver_options,
    parse_analysis_request,
)
from .mna import MnaSystem
from .solver import factorize_and_solve
from .newton import NewtonResult, newton_solve, gmin_stepping, source_stepping, solve_operating_point
from .results import AnalysisResult, AnalysisState, PointDiagnostics
from .execution import run_analysis, create_driver

__all__ = [
    # Exceptions
    "SingularMatrixError",
    "FactorizationError",
    "ConvergenceFailure",
    "AnalysisCancelled",
    "ConfigParsingError",
    # Configuration
    "SolverOptions",
    "DcOp",
    "DcSweep",
    "Ac",
    "Transient",
    "parse_solver_options",
    "parse_analysis_request",
    # Core Classes
    "MnaSystem",
    "factorize_and_solve",
    "NewtonResult",
    "newton_solve",
    "gmin_stepping",
    "source_stepping",
    "solve_operating_point",
    # Results
    "AnalysisResult",
    "AnalysisState",
    "PointDiagnostics",
    # Facade
    "run_analysis",
    "create_driver",
]
