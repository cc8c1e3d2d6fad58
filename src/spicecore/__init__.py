# src/spicecore/__init__.py
import logging
from .log_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)
logger.info("spicecore package initialized.")

from .units import ureg, pint, Quantity, to_si
from .data_structures import Circuit
from .circuit_builder import CircuitBuilder
from .components import (
    COMPONENT_REGISTRY, InvalidParametersError,
    Resistor, Capacitor, Inductor, VoltageSource, CurrentSource, Diode, Bjt, Mosfet,
    Pulse, Sine, Pwl,
)
from .simulation import (
    run_analysis, SolverOptions, DcOp, DcSweep, Ac, Transient,
    parse_solver_options, parse_analysis_request,
    AnalysisResult, AnalysisState, PointDiagnostics,
    SingularMatrixError, FactorizationError, ConvergenceFailure, AnalysisCancelled, ConfigParsingError,
)
from .analysis import CancellationToken, ProgressInfo
from .errors import SpiceCoreError, CircuitBuildError, AnalysisRunError, DiagnosableError

__all__ = [
    # Units
    "ureg", "pint", "Quantity", "to_si",
    # Circuit graph
    "Circuit", "CircuitBuilder", "COMPONENT_REGISTRY",
    # Devices and waveforms
    "Resistor", "Capacitor", "Inductor", "VoltageSource", "CurrentSource",
    "Diode", "Bjt", "Mosfet", "Pulse", "Sine", "Pwl",
    # Analyses
    "run_analysis", "SolverOptions", "DcOp", "DcSweep", "Ac", "Transient",
    "parse_solver_options", "parse_analysis_request",
    "AnalysisResult", "AnalysisState", "PointDiagnostics",
    "CancellationToken", "ProgressInfo",
    # Errors (Actionable Diagnostics)
    "SpiceCoreError", "CircuitBuildError", "AnalysisRunError", "DiagnosableError",
    "InvalidParametersError", "SingularMatrixError", "FactorizationError",
    "ConvergenceFailure", "AnalysisCancelled", "ConfigParsingError",
]
