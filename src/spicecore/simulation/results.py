# src/spicecore/simulation/results.py
"""
Defines the result contracts returned by the analysis drivers.

Results are frozen dataclasses whose arrays are copied and marked read-only on
construction, so a result handed to the caller can never change underneath it,
not even when the same circuit is analysed again.
"""
import enum
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence, Tuple, Union

import numpy as np


class AnalysisState(enum.Enum):
    """Lifecycle of an analysis driver: IDLE -> RUNNING -> one of the final states."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_final(self) -> bool:
        return self in (AnalysisState.COMPLETED, AnalysisState.FAILED, AnalysisState.CANCELLED)


@dataclass(frozen=True)
class PointDiagnostics:
    """
    How one point was solved.

    Attributes:
        iterations: Newton iterations spent on the point, summed over every
                    strategy (and, in transient analysis, every rejected attempt).
        residual: Largest update of any unknown in the final iteration.
        strategy: 'linear', 'newton', 'gmin', 'source', or 'ac' for the linear
                  small-signal solves.
    """
    iterations: int
    residual: float
    strategy: str


def _frozen(array: np.ndarray) -> np.ndarray:
    out = np.array(array, copy=True)
    out.setflags(write=False)
    return out


@dataclass(frozen=True)
class AnalysisResult:
    """
    Ordered (independent variable, solution vector) pairs of one analysis run.

    Attributes:
        analysis: 'op', 'dc', 'ac' or 'tran'.
        variable: Name of the independent variable: '' for an operating point,
                  the swept source's name, 'frequency' or 'time'.
        points: Values of the independent variable, shape (n_points,).
        solutions: One solution vector per point, shape (n_points, n_nodes + n_branches).
                   Complex for AC analysis.
        diagnostics: One PointDiagnostics per point.
        n_nodes: Number of non-ground nodes; the branch currents follow them.
        node_names: Optional node names indexed by node number (index 0 is ground).
    """
    analysis: str
    variable: str
    points: np.ndarray
    solutions: np.ndarray
    diagnostics: Tuple[PointDiagnostics, ...]
    n_nodes: int
    node_names: Tuple[str, ...] = field(default=())

    def __post_init__(self):
        points = np.asarray(self.points, dtype=float).reshape(-1)
        solutions = np.asarray(self.solutions)
        if solutions.ndim != 2 or solutions.shape[0] != points.shape[0]:
            raise ValueError(f"Solutions of shape {solutions.shape} do not match {points.shape[0]} point(s).")
        if len(self.diagnostics) != points.shape[0]:
            raise ValueError("Exactly one PointDiagnostics is required per point.")
        object.__setattr__(self, "points", _frozen(points))
        object.__setattr__(self, "solutions", _frozen(solutions))
        object.__setattr__(self, "diagnostics", tuple(self.diagnostics))
        object.__setattr__(self, "node_names", tuple(self.node_names))

    def __len__(self) -> int:
        return self.points.shape[0]

    def __iter__(self) -> Iterator[Tuple[float, np.ndarray]]:
        return iter(zip(self.points, self.solutions))

    @property
    def n_branches(self) -> int:
        return self.solutions.shape[1] - self.n_nodes

    @property
    def solution(self) -> np.ndarray:
        """Solution vector of the last point (the operating point for 'op')."""
        if len(self) == 0:
            raise IndexError("Result holds no points.")
        return self.solutions[-1]

    def _node_number(self, node: Union[int, str]) -> int:
        if isinstance(node, str):
            if node not in self.node_names:
                raise KeyError(f"Unknown node name '{node}'.")
            return self.node_names.index(node)
        if not 0 <= node <= self.n_nodes:
            raise IndexError(f"Node {node} out of range 0..{self.n_nodes}.")
        return node

    def voltage(self, node: Union[int, str]) -> np.ndarray:
        """Voltage of a node (number or name) at every point; zeros for ground."""
        k = self._node_number(node)
        if k == 0:
            return np.zeros(len(self), dtype=self.solutions.dtype)
        return self.solutions[:, k - 1]

    def branch_current(self, branch: int) -> np.ndarray:
        """Current of a branch (voltage source or inductor) at every point."""
        if not 0 <= branch < self.n_branches:
            raise IndexError(f"Branch {branch} out of range for {self.n_branches} branch(es).")
        return self.solutions[:, self.n_nodes + branch]

    @property
    def total_iterations(self) -> int:
        return sum(d.iterations for d in self.diagnostics)

    @classmethod
    def empty(cls, analysis: str, variable: str, size: int, n_nodes: int,
              node_names: Sequence[str] = (), dtype=float) -> "AnalysisResult":
        return cls(analysis, variable, np.zeros(0), np.zeros((0, size), dtype=dtype), (), n_nodes, tuple(node_names))
