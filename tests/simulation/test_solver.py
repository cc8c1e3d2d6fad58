# tests/simulation/test_solver.py
import numpy as np
import pytest
import scipy.sparse as sp

from spicecore.constants import DENSE_FALLBACK_SIZE
from spicecore.simulation.exceptions import FactorizationError, SingularMatrixError
from spicecore.simulation.solver import factorize_and_solve


@pytest.fixture(params=[DENSE_FALLBACK_SIZE, DENSE_FALLBACK_SIZE + 4], ids=["dense", "sparse"])
def size(request):
    return request.param


class TestFactorizeAndSolve:

    def test_matches_dense_solve(self, size):
        rng = np.random.default_rng(1)
        a = rng.normal(size=(size, size)) + size * np.eye(size)
        b = rng.normal(size=size)
        np.testing.assert_allclose(factorize_and_solve(sp.csc_matrix(a), b), np.linalg.solve(a, b))

    def test_complex_system(self, size):
        a = np.diag(np.full(size, 2.0 + 1.0j))
        x = factorize_and_solve(sp.csc_matrix(a), np.ones(size, dtype=complex))
        np.testing.assert_allclose(x, 1.0 / (2.0 + 1.0j))

    def test_exactly_singular(self, size):
        diag = np.ones(size)
        diag[-1] = 0.0
        with pytest.raises(SingularMatrixError) as exc_info:
            factorize_and_solve(sp.diags(diag, format="csc"), np.ones(size))
        assert isinstance(exc_info.value, np.linalg.LinAlgError)

    def test_pivot_below_tolerance(self, size):
        diag = np.ones(size)
        diag[0] = 1e-16
        with pytest.raises(FactorizationError) as exc_info:
            factorize_and_solve(sp.diags(diag, format="csc"), np.ones(size), pivtol=1e-13)
        assert exc_info.value.min_pivot == pytest.approx(1e-16)

    def test_lower_pivot_tolerance_accepts_small_pivot(self, size):
        diag = np.ones(size)
        diag[0] = 1e-16
        x = factorize_and_solve(sp.diags(diag, format="csc"), np.ones(size), pivtol=1e-20)
        assert x[0] == pytest.approx(1e16)

    def test_empty_system(self):
        assert factorize_and_solve(sp.csc_matrix((0, 0)), np.zeros(0)).shape == (0,)

    def test_rejects_dense_input(self):
        with pytest.raises(TypeError):
            factorize_and_solve(np.eye(2), np.ones(2))

    def test_error_report(self):
        report = SingularMatrixError(details="zero pivot", analysis="op").get_diagnostic_report()
        assert "Singular Matrix" in report
        assert "op" in report
