# src/spicecore/simulation/mna.py

import logging
from typing import List, Optional, Tuple

import numpy as np
import scipy.sparse as sp

from ..components.base import GROUND
from .solver import factorize_and_solve


logger = logging.getLogger(__name__)


class MnaSystem:
    """
    The Modified Nodal Analysis system A·x = b for one circuit.

    The unknown vector holds the voltages of nodes 1..n_nodes (node k at row
    k - 1; ground is not an unknown) followed by one current per branch
    (branch b at row n_nodes + b). The matrix is collected as coordinate
    triples, so every stamp is additive and duplicate entries are summed when
    the system is converted to CSC for factorization.

    The system is cleared and fully re-stamped before every solve. Only the
    current solution and the previous iterate survive a `clear()`, which is
    what the convergence test compares.
    """
    def __init__(self, n_nodes: int, n_branches: int, dtype=float):
        if n_nodes < 0 or n_branches < 0:
            raise ValueError(f"Invalid MNA dimensions: {n_nodes} nodes, {n_branches} branches.")
        self.n_nodes = n_nodes
        self.n_branches = n_branches
        self.size = n_nodes + n_branches
        self.dtype = np.dtype(dtype)

        self._rows: List[int] = []
        self._cols: List[int] = []
        self._vals: List = []
        self.rhs: np.ndarray = np.zeros(self.size, dtype=self.dtype)
        self.solution: np.ndarray = np.zeros(self.size, dtype=self.dtype)
        self.previous_solution: np.ndarray = np.zeros(self.size, dtype=self.dtype)
        logger.debug(f"MNA system allocated: {n_nodes} node(s), {n_branches} branch(es), dtype={self.dtype}.")

    def clear(self) -> None:
        """Empties the coordinate lists and zeroes the RHS, preserving the dimension."""
        self._rows.clear()
        self._cols.clear()
        self._vals.clear()
        self.rhs[:] = 0

    def reset(self, x0: Optional[np.ndarray] = None) -> None:
        """Clears the system and sets the solution (and previous iterate) to `x0` or zero."""
        self.clear()
        if x0 is None:
            self.solution = np.zeros(self.size, dtype=self.dtype)
        else:
            if x0.shape != (self.size,):
                raise ValueError(f"Initial solution has shape {x0.shape}, expected ({self.size},).")
            self.solution = np.array(x0, dtype=self.dtype)
        self.previous_solution = self.solution.copy()

    # --- Index helpers ---

    @staticmethod
    def row(node: int) -> Optional[int]:
        """Unknown index of a node, or None for ground."""
        return None if node == GROUND else node - 1

    def branch_row(self, branch: int) -> int:
        if not 0 <= branch < self.n_branches:
            raise IndexError(f"Branch {branch} out of range for {self.n_branches} branch(es).")
        return self.n_nodes + branch

    # --- Stamping primitives ---

    def add_element(self, row: Optional[int], col: Optional[int], value) -> None:
        """Adds `value` at (row, col). Entries involving ground (None) are dropped."""
        if row is None or col is None:
            return
        self._rows.append(row)
        self._cols.append(col)
        self._vals.append(value)

    def add_rhs(self, row: Optional[int], value) -> None:
        if row is not None:
            self.rhs[row] += value

    def stamp_conductance(self, n1: int, n2: int, g) -> None:
        """Conductance (or, in AC, admittance) `g` between nodes n1 and n2."""
        r1, r2 = self.row(n1), self.row(n2)
        self.add_element(r1, r1, g)
        self.add_element(r2, r2, g)
        self.add_element(r1, r2, -g)
        self.add_element(r2, r1, -g)

    def stamp_current_source(self, n1: int, n2: int, i) -> None:
        """Current `i` flowing from n1 through the source to n2 (out of n1, into n2)."""
        self.add_rhs(self.row(n1), -i)
        self.add_rhs(self.row(n2), i)

    def stamp_transconductance(self, out_p: int, out_n: int, ctrl_p: int, ctrl_n: int, gm) -> None:
        """Current gm·(V(ctrl_p) - V(ctrl_n)) flowing from out_p through the device to out_n."""
        op, on = self.row(out_p), self.row(out_n)
        cp, cn = self.row(ctrl_p), self.row(ctrl_n)
        self.add_element(op, cp, gm)
        self.add_element(op, cn, -gm)
        self.add_element(on, cp, -gm)
        self.add_element(on, cn, gm)

    def stamp_branch_incidence(self, n_pos: int, n_neg: int, branch: int) -> None:
        """
        Couples a branch current to its terminals: the current leaves n_pos
        through the branch and enters n_neg, and the branch row reads
        V(n_pos) - V(n_neg).
        """
        b = self.branch_row(branch)
        rp, rn = self.row(n_pos), self.row(n_neg)
        self.add_element(rp, b, 1.0)
        self.add_element(rn, b, -1.0)
        self.add_element(b, rp, 1.0)
        self.add_element(b, rn, -1.0)

    def stamp_voltage_source(self, n_pos: int, n_neg: int, branch: int, v) -> None:
        """Ideal voltage source V(n_pos) - V(n_neg) = v with its current as branch unknown."""
        self.stamp_branch_incidence(n_pos, n_neg, branch)
        self.stamp_branch_rhs(branch, v)

    def stamp_branch_impedance(self, branch: int, z) -> None:
        """Adds -z·I to the branch equation, i.e. V(n_pos) - V(n_neg) - z·I = rhs."""
        b = self.branch_row(branch)
        self.add_element(b, b, -z)

    def stamp_branch_rhs(self, branch: int, v) -> None:
        self.rhs[self.branch_row(branch)] += v

    def stamp_gmin(self, g: float) -> None:
        """Shunt conductance `g` from every non-ground node to ground."""
        if g <= 0.0 or self.n_nodes == 0:
            return
        idx = range(self.n_nodes)
        self._rows.extend(idx)
        self._cols.extend(idx)
        self._vals.extend([g] * self.n_nodes)

    # --- Assembly and solution ---

    def matrix(self) -> sp.csc_matrix:
        """Assembles the coordinate triples into a CSC matrix, summing duplicates."""
        coo = sp.coo_matrix(
            (np.asarray(self._vals, dtype=self.dtype), (np.asarray(self._rows, dtype=int), np.asarray(self._cols, dtype=int))),
            shape=(self.size, self.size),
        )
        return coo.tocsc()

    def solve(self, pivtol: float = 1.0e-13) -> np.ndarray:
        """
        Factorizes and solves the assembled system. On success the previous
        solution becomes `previous_solution` and the new one is returned.

        Raises:
            SingularMatrixError, FactorizationError: See `factorize_and_solve`.
        """
        new_solution = factorize_and_solve(self.matrix(), self.rhs, pivtol)
        self.previous_solution = self.solution
        self.solution = new_solution
        return new_solution

    def update_norms(self, vntol: float, abstol: float, reltol: float) -> np.ndarray:
        """Per-unknown |Δx| divided by its SPICE tolerance."""
        delta = np.abs(self.solution - self.previous_solution)
        scale = np.maximum(np.abs(self.solution), np.abs(self.previous_solution))
        tol = reltol * scale
        tol[:self.n_nodes] += vntol
        tol[self.n_nodes:] += abstol
        return delta / tol

    def converged(self, vntol: float, abstol: float, reltol: float) -> bool:
        """
        SPICE convergence test between the last two solutions:
        |Δx| <= reltol·max(|x|, |x_prev|) + vntol for node voltages and
        + abstol for branch currents.
        """
        if self.size == 0:
            return True
        return bool(np.all(self.update_norms(vntol, abstol, reltol) <= 1.0))

    def worst_unknown(self, vntol: float, abstol: float, reltol: float) -> Tuple[int, float]:
        """
        Index of the unknown with the largest tolerance-normalized update and the
        magnitude of that update.
        """
        if self.size == 0:
            return -1, 0.0
        idx = int(np.argmax(self.update_norms(vntol, abstol, reltol)))
        return idx, float(abs(self.solution[idx] - self.previous_solution[idx]))
