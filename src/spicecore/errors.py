# src/spicecore/errors.py
import logging
from typing import Any, Dict, Protocol, abstractmethod
from typing import runtime_checkable

logger = logging.getLogger(__name__)

# --- User-Facing Exception Hierarchy ---

class SpiceCoreError(Exception):
    """Base class for all custom, user-facing errors in spicecore."""
    pass

class CircuitBuildError(SpiceCoreError):
    """
    Raised when a circuit graph is structurally inconsistent: unknown device
    types, duplicate instance names, node references out of range, or branch
    indices that are not unique and dense.
    """
    pass

class AnalysisRunError(SpiceCoreError):
    """
    Raised by the `run_analysis` facade when an analysis fails for a reason that
    is not one of the tagged solver errors (an unexpected internal error).
    The message is a pre-formatted, user-friendly diagnostic report.
    """
    pass


# --- Diagnostic Protocol & Base Exception ---

@runtime_checkable
class Diagnosable(Protocol):
    """
    A protocol for exceptions that can generate their own rich diagnostic report.
    """
    def get_diagnostic_report(self) -> str:
        """Generates a complete, user-friendly, multi-line report string."""
        ...

class DiagnosableError(SpiceCoreError, Diagnosable):
    """
    A common, concrete base class for all tagged solver errors.

    It inherits from `SpiceCoreError`, so callers can catch every tagged error
    with a single `except` clause, and declares `get_diagnostic_report` as an
    abstract method that every subclass must implement.
    """
    @abstractmethod
    def get_diagnostic_report(self) -> str:
        """
        Abstract method to generate the diagnostic report.
        Subclasses MUST implement this.
        """
        raise NotImplementedError


# --- Stateless Formatting Utility ---

def format_diagnostic_report(
    error_type: str,
    details: str,
    suggestion: str,
    context: Dict[str, Any]
) -> str:
    """
    A stateless helper to format the final multi-line report string, ensuring a
    consistent look and feel for all user-facing diagnostics.

    Args:
        error_type: The high-level category of the error (e.g., "Singular Matrix").
        details: A detailed, potentially multi-line description of the problem.
        suggestion: Actionable advice for the user to resolve the issue.
        context: A dictionary of contextual information (component FQN, analysis,
                 failing point, offending node).

    Returns:
        A formatted, user-friendly diagnostic report string ready for display.
    """
    lines = [
        "\n",
        "================ spicecore: Actionable Diagnostic Report ================",
        f"Error Type:     {error_type}",
    ]
    if fqn := context.get('fqn'):
        lines.append(f"Component:      {fqn}")
    if analysis := context.get('analysis'):
        lines.append(f"Analysis:       {analysis}")
    if point := context.get('point'):
        lines.append(f"Point:          {point}")
    if node := context.get('node'):
        lines.append(f"Node:           {node}")

    lines.append("\nDetails:")
    for line in details.splitlines():
        lines.append(f"  {line}")

    if suggestion:
        lines.append("\nSuggestion:")
        for line in suggestion.splitlines():
            lines.append(f"  {line}")

    lines.append("=========================================================================")
    return "\n".join(lines)
