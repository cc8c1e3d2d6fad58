# src/spicecore/components/exceptions.py
"""
Defines the diagnosable exceptions for the device subsystem.
"""
from dataclasses import dataclass

from ..errors import DiagnosableError, format_diagnostic_report


@dataclass()
class InvalidParametersError(DiagnosableError):
    """
    Raised when a device parameter is outside its physically valid domain
    (e.g. negative capacitance) or cannot be interpreted at all (wrong unit,
    unknown parameter name, wrong number of terminals).

    This error is structural: the solver never retries it.
    """
    component_fqn: str
    details: str

    def __str__(self):
        return f"Invalid parameters for '{self.component_fqn}': {self.details}"

    def get_diagnostic_report(self) -> str:
        """Generates the diagnostic report for an invalid device parameter."""
        return format_diagnostic_report(
            error_type="Invalid Device Parameters",
            details=self.details,
            suggestion="Check the device's parameter values and units (e.g. positive resistance, non-negative capacitance, valid polarity).",
            context={'fqn': self.component_fqn}
        )
