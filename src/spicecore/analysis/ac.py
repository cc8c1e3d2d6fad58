# src/spicecore/analysis/ac.py

import logging
import math

from ..components.capabilities import IAcContributor
from ..simulation.config import Ac
from ..simulation.results import PointDiagnostics
from .base import AnalysisDriver

logger = logging.getLogger(__name__)


class AcAnalysis(AnalysisDriver):
    """
    Small-signal frequency sweep.

    The circuit is first solved for its DC operating point. Every device is
    then linearized there once per frequency through its `IAcContributor`
    capability, giving the complex system (G + jωC)·x = b whose only
    excitation is the AC magnitude and phase of the independent sources.
    """
    analysis_name = "ac"
    dtype = complex

    def __init__(self, circuit, request: Ac, *args, **kwargs):
        super().__init__(circuit, request, *args, **kwargs)
        self.variable = "frequency"
        self._frequencies = request.frequencies()
        self.op_solution = None

    def progress_fraction(self, value: float) -> float:
        return len(self._points) / len(self._frequencies)

    def execute(self) -> None:
        op = self.operating_point()
        self.op_solution = op.solution
        logger.info(f"AC analysis: operating point converged, sweeping {len(self._frequencies)} frequency point(s).")

        contributors = []
        for device in self.circuit.devices:
            capability = device.get_capability(IAcContributor)
            if capability is None:
                logger.warning(f"Device '{device.fqn}' has no small-signal model and is left out of the AC analysis.")
                continue
            contributors.append((device, capability))

        for freq in self._frequencies:
            omega = 2.0 * math.pi * float(freq)
            self.mna.clear()
            for device, capability in contributors:
                capability.stamp_ac(device, self.mna, op.solution, omega)
            self.mna.stamp_gmin(self.options.gmin)
            x = self.mna.solve(self.options.pivtol)
            self.accept(float(freq), x, PointDiagnostics(iterations=1, residual=0.0, strategy="ac"))

