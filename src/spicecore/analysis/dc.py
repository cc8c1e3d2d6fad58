# src/spicecore/analysis/dc.py

import logging

from ..components.elements import IndependentSource
from ..simulation.config import DcSweep
from ..simulation.exceptions import ConfigParsingError
from ..simulation.newton import solve_operating_point
from .base import AnalysisDriver, diagnostics_from

logger = logging.getLogger(__name__)


class DcOperatingPointAnalysis(AnalysisDriver):
    """Solves the DC operating point: capacitors open, inductors shorted, sources at their DC value."""
    analysis_name = "op"

    def execute(self) -> None:
        result = self.operating_point()
        logger.info(f"Operating point converged ({result.strategy}, {result.iterations} iteration(s)).")
        self.accept(0.0, result.solution, diagnostics_from(result))


class DcSweepAnalysis(AnalysisDriver):
    """
    Sweeps the DC value of one independent source. Each point starts Newton from
    the previous point's solution, so a smooth sweep typically converges in a
    few iterations per point. The swept value reaches the device through the
    stamp context; the device's own parameters are never touched.
    """
    analysis_name = "dc"

    def __init__(self, circuit, request: DcSweep, *args, **kwargs):
        super().__init__(circuit, request, *args, **kwargs)
        try:
            source = circuit.device(request.source)
        except KeyError as e:
            raise ConfigParsingError(details=str(e), section="DC sweep request") from e
        if not isinstance(source, IndependentSource):
            raise ConfigParsingError(
                details=f"'{request.source}' is a {type(source).__name__}; only independent sources can be swept.",
                section="DC sweep request"
            )
        self.variable = request.source
        self._values = request.values()

    def progress_fraction(self, value: float) -> float:
        return len(self._points) / len(self._values)

    def execute(self) -> None:
        x = None
        for value in self._values:
            value = float(value)
            ctx = self.make_context(mode="dc", source_overrides={self.variable: value})
            result = solve_operating_point(
                self.circuit, self.mna, self.options, x, ctx, point=value, variable=self.variable,
            )
            logger.debug(f"{self.variable} = {value:.6e}: converged in {result.iterations} iteration(s) ({result.strategy}).")
            x = result.solution
            self.accept(value, x, diagnostics_from(result))
