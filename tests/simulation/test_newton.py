# tests/simulation/test_newton.py
import numpy as np
import pytest

from spicecore import SolverOptions
from spicecore.components import StampContext
from spicecore.simulation.exceptions import ConvergenceFailure
from spicecore.simulation.mna import MnaSystem
from spicecore.simulation.newton import gmin_stepping, newton_solve, solve_operating_point, source_stepping


def setup(circuit, options):
    mna = MnaSystem(circuit.n_nodes, circuit.n_branches)
    ctx = StampContext(mode="dc", gmin=options.gmin, n_nodes=circuit.n_nodes)
    return mna, ctx


class TestNewton:

    def test_linear_circuit_takes_one_solve(self, divider_circuit, options):
        mna, ctx = setup(divider_circuit, options)
        result = newton_solve(divider_circuit, mna, options, None, ctx, options.itl1)
        assert result.converged
        assert result.iterations == 1
        assert result.strategy == "linear"
        assert result.solution[1] == pytest.approx(20.0 / 3.0)

    def test_diode_converges_to_kcl_solution(self, diode_circuit, options):
        mna, ctx = setup(diode_circuit, options)
        result = newton_solve(diode_circuit, mna, options, None, ctx, options.itl1)
        assert result.converged
        assert result.strategy == "newton"
        assert 2 < result.iterations < options.itl1
        va = result.solution[1]
        diode_current, _ = diode_circuit.device("D1").evaluate(va)
        assert diode_current == pytest.approx((5.0 - va) / 1e3, rel=1e-3)
        assert 0.5 < va < 0.8

    def test_plain_newton_fails_on_arctan_device(self, arctan_circuit, options):
        mna, ctx = setup(arctan_circuit, options)
        result = newton_solve(arctan_circuit, mna, options, None, ctx, options.itl1)
        assert not result.converged


class TestHomotopies:

    def test_gmin_stepping_recovers(self, arctan_circuit, options):
        mna, ctx = setup(arctan_circuit, options)
        result = gmin_stepping(arctan_circuit, mna, options, None, ctx, options.itl1)
        assert result.converged
        assert result.strategy == "gmin"
        assert result.solution[0] == pytest.approx(5.0, abs=1e-6)
        # The extra shunt never leaks into the caller's context.
        assert ctx.gmin == options.gmin

    def test_gmin_stepping_settles_a_cross_coupled_latch(self, builder, options):
        # Unequal loads break the symmetry; with the full shunt both transistors
        # are off and the solution is unique.
        builder.add("VoltageSource", "VDD", ["vdd", "gnd"], dc=3.3)
        builder.add("Resistor", "RA", ["vdd", "a"], resistance="10 kohm")
        builder.add("Resistor", "RB", ["vdd", "b"], resistance="20 kohm")
        builder.add("Mosfet", "M1", ["a", "b", "gnd"], vto=0.7, kp=2e-5, w="10 um", l="1 um")
        builder.add("Mosfet", "M2", ["b", "a", "gnd"], vto=0.7, kp=2e-5, w="10 um", l="1 um")
        latch = builder.build()

        mna, ctx = setup(latch, options)
        result = gmin_stepping(latch, mna, options, None, ctx, options.itl1)
        assert result.converged
        assert result.strategy == "gmin"
        va, vb = result.solution[latch.node_index("a") - 1], result.solution[latch.node_index("b") - 1]
        assert abs(va - vb) > 2.0
        assert min(va, vb) < 0.7
        assert max(va, vb) == pytest.approx(3.3, abs=1e-3)

        # Without the shunt the latched point is an exact solution.
        check = newton_solve(latch, mna, options, result.solution, ctx, options.itl1)
        assert check.converged
        assert check.iterations <= 3
        np.testing.assert_allclose(check.solution, result.solution, atol=1e-6)

    def test_disabled_strategies_report_failure_without_solving(self, arctan_circuit):
        options = SolverOptions(gmin_steps=0, source_steps=0)
        mna, ctx = setup(arctan_circuit, options)
        assert gmin_stepping(arctan_circuit, mna, options, None, ctx, 10).iterations == 0
        assert source_stepping(arctan_circuit, mna, options, None, ctx, 10).iterations == 0

    def test_source_stepping_matches_plain_newton(self, diode_circuit, options):
        mna, ctx = setup(diode_circuit, options)
        stepped = source_stepping(diode_circuit, mna, options, None, ctx, options.itl1)
        direct = newton_solve(diode_circuit, mna, options, None, ctx, options.itl1)
        assert stepped.converged
        assert stepped.strategy == "source"
        np.testing.assert_allclose(stepped.solution, direct.solution, rtol=1e-4, atol=1e-9)
        assert ctx.source_scale == 1.0


class TestSolveOperatingPoint:

    def test_falls_back_to_gmin_stepping(self, arctan_circuit):
        options = SolverOptions(source_steps=0)
        mna, ctx = setup(arctan_circuit, options)
        result = solve_operating_point(arctan_circuit, mna, options, None, ctx)
        assert result.strategy == "gmin"
        # Iterations include the failed plain Newton attempt.
        assert result.iterations > options.itl1
        assert result.solution[0] == pytest.approx(5.0, abs=1e-6)

    def test_raises_when_every_strategy_is_disabled(self, arctan_circuit):
        options = SolverOptions(gmin_steps=0, source_steps=0)
        mna, ctx = setup(arctan_circuit, options)
        with pytest.raises(ConvergenceFailure) as exc_info:
            solve_operating_point(arctan_circuit, mna, options, None, ctx, point=1.5, variable="I1")
        err = exc_info.value
        assert err.offending_node == "V(a)"
        assert err.point == 1.5
        assert "I1 = 1.500000e+00" in str(err)
        assert "Convergence Failure" in err.get_diagnostic_report()
