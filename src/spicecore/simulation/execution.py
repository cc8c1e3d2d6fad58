# src/spicecore/simulation/execution.py
"""
Provides the primary public API function for running an analysis.

`run_analysis` is a thin facade: it picks the driver for the request type,
runs it, and returns the immutable result. Tagged solver errors
(`SingularMatrixError`, `FactorizationError`, `ConvergenceFailure`,
`InvalidParametersError`, `AnalysisCancelled`, `ConfigParsingError`) pass
through unchanged so callers can react to each kind; anything else is an
internal error and is wrapped into an `AnalysisRunError` carrying a
formatted diagnostic report.
"""
import logging
from typing import Dict, Optional, Type

from ..data_structures import Circuit
from ..errors import AnalysisRunError, DiagnosableError, format_diagnostic_report
from ..analysis.base import AnalysisDriver, CancellationToken, ProgressHook
from ..analysis.ac import AcAnalysis
from ..analysis.dc import DcOperatingPointAnalysis, DcSweepAnalysis
from ..analysis.transient import TransientAnalysis
from .exceptions import AnalysisCancelled
from .config import Ac, AnalysisRequest, DcOp, DcSweep, SolverOptions, Transient
from .results import AnalysisResult

logger = logging.getLogger(__name__)

DRIVERS: Dict[type, Type[AnalysisDriver]] = {
    DcOp: DcOperatingPointAnalysis,
    DcSweep: DcSweepAnalysis,
    Ac: AcAnalysis,
    Transient: TransientAnalysis,
}


def create_driver(
    circuit: Circuit,
    request: AnalysisRequest,
    options: Optional[SolverOptions] = None,
    progress: Optional[ProgressHook] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> AnalysisDriver:
    """Instantiates the driver for `request` without running it."""
    driver_cls = DRIVERS.get(type(request))
    if driver_cls is None:
        raise TypeError(f"Unsupported analysis request type '{type(request).__name__}'.")
    return driver_cls(circuit, request, options, progress, cancel_token)


def run_analysis(
    circuit: Circuit,
    request: AnalysisRequest,
    options: Optional[SolverOptions] = None,
    progress: Optional[ProgressHook] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> AnalysisResult:
    """
    Runs one analysis of `circuit`.

    Args:
        circuit: The circuit graph, e.g. from `CircuitBuilder.build()`.
        request: A `DcOp`, `DcSweep`, `Ac` or `Transient` request.
        options: Solver options; SPICE defaults if None.
        progress: Called after every converged point with a `ProgressInfo`;
                  returning True cancels the run.
        cancel_token: Checked after every converged point.

    Returns:
        The immutable `AnalysisResult`.

    Raises:
        DiagnosableError subclasses: Unchanged, see the module docstring.
        AnalysisRunError: For unexpected internal errors.
    """
    try:
        driver = create_driver(circuit, request, options, progress, cancel_token)
        return driver.run()
    except AnalysisCancelled:
        raise
    except DiagnosableError as e:
        logger.error(f"Analysis failed: {e}")
        raise
    except Exception as e:
        logger.critical(f"An unexpected internal error occurred during analysis: {e}", exc_info=True)
        report = format_diagnostic_report(
            error_type=f"An Unexpected Analysis Error Occurred ({type(e).__name__})",
            details=f"The solver encountered an unexpected internal error: {e}",
            suggestion="This may be a bug. Review the traceback and consider filing a bug report.",
            context={'analysis': getattr(request, 'kind', None)}
        )
        raise AnalysisRunError(report) from e
