# src/spicecore/simulation/solver.py
import logging
import warnings

import numpy as np
import scipy.linalg
import scipy.sparse as sp
import scipy.sparse.linalg as splinalg

from ..constants import DENSE_FALLBACK_SIZE
from .exceptions import FactorizationError, SingularMatrixError

logger = logging.getLogger(__name__)


def factorize_and_solve(matrix: sp.spmatrix, rhs: np.ndarray, pivtol: float = 1.0e-13) -> np.ndarray:
    """
    Factorizes the MNA matrix with a sparse direct LU decomposition and solves it.

    Very small systems are factorized densely, since SuperLU's set-up cost
    dominates below a handful of unknowns. Both paths share one error contract.

    Args:
        matrix: Square MNA matrix in any SciPy sparse format (converted to CSC).
        rhs: Right-hand-side vector with the matrix's dtype (real or complex).
        pivtol: Smallest acceptable absolute pivot in U.

    Returns:
        The solution vector.

    Raises:
        SingularMatrixError: If the factorization finds an exactly zero pivot.
        FactorizationError: If a pivot falls below `pivtol` or the solution
                            contains NaN/Inf values.
    """
    if not sp.issparse(matrix):
        raise TypeError("MNA matrix must be a SciPy sparse matrix.")
    if matrix.shape[0] != matrix.shape[1] or matrix.shape[0] != rhs.shape[0]:
        raise ValueError(f"MNA matrix {matrix.shape} and RHS {rhs.shape} are inconsistent.")

    size = matrix.shape[0]
    if size == 0:
        return np.zeros(0, dtype=rhs.dtype)

    logger.debug(f"Factorizing MNA matrix ({size}x{size}, nnz={matrix.nnz}, dtype={matrix.dtype})...")
    if size <= DENSE_FALLBACK_SIZE:
        solution, min_pivot = _solve_dense(matrix.toarray(), rhs)
    else:
        solution, min_pivot = _solve_sparse(matrix.tocsc(), rhs)

    if min_pivot < pivtol:
        logger.error(f"LU pivot {min_pivot:.3e} below pivot tolerance {pivtol:.3e}.")
        raise FactorizationError(details=f"Pivot below tolerance {pivtol:.3e}.", min_pivot=min_pivot)
    if not np.all(np.isfinite(solution)):
        logger.error("NaN or Inf detected in MNA solution vector.")
        raise FactorizationError(details="MNA system solve resulted in NaN/Inf values.", min_pivot=min_pivot)
    return solution


def _solve_sparse(matrix: sp.csc_matrix, rhs: np.ndarray):
    try:
        lu = splinalg.splu(matrix)
    except RuntimeError as e:
        logger.error(f"Sparse LU factorization failed, matrix appears singular: {e}")
        raise SingularMatrixError(details=str(e)) from e
    diag = np.abs(lu.U.diagonal())
    min_pivot = float(diag.min()) if diag.size else 0.0
    if min_pivot == 0.0:
        raise SingularMatrixError(details="LU factorization produced an exactly zero pivot.")
    return lu.solve(rhs), min_pivot


def _solve_dense(matrix: np.ndarray, rhs: np.ndarray):
    with warnings.catch_warnings():
        # lu_factor warns on exactly singular input; the zero pivot is reported below instead.
        warnings.simplefilter("ignore", scipy.linalg.LinAlgWarning)
        lu, piv = scipy.linalg.lu_factor(matrix, check_finite=False)
    min_pivot = float(np.abs(np.diag(lu)).min())
    if min_pivot == 0.0:
        logger.error("Dense LU factorization found an exactly zero pivot.")
        raise SingularMatrixError(details="Matrix is exactly singular (zero pivot in dense LU).")
    return scipy.linalg.lu_solve((lu, piv), rhs), min_pivot
