# tests/conftest.py
import math

import pytest

from spicecore import CircuitBuilder, SolverOptions
from spicecore.components.base import ComponentBase, node_voltage, register_component, stamp_linearized_current


@register_component("ArctanConductor")
class ArctanConductor(ComponentBase):
    """
    Test device with I(V) = atan(V - v0) + atan(v0).

    Its conductance vanishes far from v0, so plain Newton started a few volts
    away overshoots and oscillates with growing amplitude. Driven by a current
    source of atan(v0) the exact solution is V = v0.
    """
    is_nonlinear = True
    parameter_defaults = {"v0": 5.0}

    def stamp(self, mna, x, ctx):
        p, n = self.nodes
        v = node_voltage(x, p) - node_voltage(x, n)
        v0 = self.params["v0"]
        i = math.atan(v - v0) + math.atan(v0)
        g = 1.0 / (1.0 + (v - v0) ** 2)
        stamp_linearized_current(mna, p, n, i, [((p, n), g, v)])

    @classmethod
    def declare_parameters(cls): return {"v0": "volt"}

    @classmethod
    def declare_ports(cls): return ['p', 'n']


@pytest.fixture
def builder():
    return CircuitBuilder("test")


@pytest.fixture
def divider_circuit():
    """10 V across 1 kohm + 2 kohm; V(out) = 20/3 V."""
    b = CircuitBuilder("divider")
    b.add("VoltageSource", "V1", ["in", "gnd"], dc="10 V")
    b.add("Resistor", "R1", ["in", "out"], resistance="1 kohm")
    b.add("Resistor", "R2", ["out", "gnd"], resistance="2 kohm")
    return b.build()


@pytest.fixture
def diode_circuit():
    """Diode biased through 1 kohm from a sweepable source V1."""
    b = CircuitBuilder("diode")
    b.add("VoltageSource", "V1", ["in", "gnd"], dc="5 V", ac_mag=1.0)
    b.add("Resistor", "R1", ["in", "a"], resistance="1 kohm")
    b.add("Diode", "D1", ["a", "gnd"], isat="1e-14 A")
    return b.build()


@pytest.fixture
def arctan_circuit():
    """Needs gmin stepping: plain Newton from 0 V diverges, the solution is V(a) = 5 V."""
    b = CircuitBuilder("arctan")
    b.add("CurrentSource", "I1", ["gnd", "a"], dc=math.atan(5.0))
    b.add("ArctanConductor", "X1", ["a", "gnd"], v0=5.0)
    return b.build()


@pytest.fixture
def options():
    return SolverOptions()
