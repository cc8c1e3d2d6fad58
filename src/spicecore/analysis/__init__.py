# src/spicecore/analysis/__init__.py
"""
Defines the public interface for the analysis drivers.

Each driver runs one analysis mode over a circuit graph through the shared
`AnalysisDriver` state machine; the `TopologyAnalyzer` pre-check rejects
structurally singular circuits before any of them factorizes a matrix.
"""
from .topology import TopologyAnalyzer, TopologyReport
from .base import AnalysisDriver, CancellationToken, ProgressInfo, ProgressHook
from .dc import DcOperatingPointAnalysis, DcSweepAnalysis
from .ac import AcAnalysis
from .transient import TransientAnalysis

__all__ = [
    # Pre-checks
    "TopologyAnalyzer",
    "TopologyReport",
    # Driver machinery
    "AnalysisDriver",
    "CancellationToken",
    "ProgressInfo",
    "ProgressHook",
    # Drivers
    "DcOperatingPointAnalysis",
    "DcSweepAnalysis",
    "AcAnalysis",
    "TransientAnalysis",
]
