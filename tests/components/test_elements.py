# tests/components/test_elements.py
import math

import numpy as np
import pytest

from spicecore import ureg
from spicecore.components import (
    COMPONENT_REGISTRY, ComponentBase, IAcContributor, IConnectivityProvider, InvalidParametersError,
    Capacitor, CurrentSource, Inductor, Pulse, Resistor, StampContext, VoltageSource, register_component,
)
from spicecore.simulation.mna import MnaSystem


class TestParameterResolution:

    def test_units_are_converted_to_si(self):
        assert Resistor("R1", [1, 0], resistance="1 kohm").params["resistance"] == pytest.approx(1000.0)
        assert Capacitor("C1", [1, 0], capacitance="10 nF").params["capacitance"] == pytest.approx(1e-8)
        assert Inductor("L1", [1, 0], branch=0, inductance=ureg.Quantity(2, "mH")).params["inductance"] == pytest.approx(2e-3)

    def test_plain_numbers_are_si(self):
        assert Resistor("R1", [1, 0], resistance=47).params["resistance"] == 47.0

    def test_params_are_read_only(self):
        r = Resistor("R1", [1, 0], resistance=1.0)
        with pytest.raises(TypeError):
            r.params["resistance"] = 2.0

    def test_wrong_dimension_is_rejected(self):
        with pytest.raises(InvalidParametersError, match="resistance"):
            Resistor("R1", [1, 0], resistance="1 F")

    def test_unknown_parameter_is_rejected(self):
        with pytest.raises(InvalidParametersError, match="Unknown parameter"):
            Resistor("R1", [1, 0], resistance=1.0, tolerance=0.1)

    def test_missing_parameter_is_rejected(self):
        with pytest.raises(InvalidParametersError, match="missing"):
            Capacitor("C1", [1, 0])

    def test_nan_is_rejected(self):
        with pytest.raises(InvalidParametersError, match="NaN"):
            Resistor("R1", [1, 0], resistance=float("nan"))

    @pytest.mark.parametrize("cls, kwargs", [
        (Resistor, {"resistance": 0.0}),
        (Resistor, {"resistance": -5.0}),
        (Resistor, {"resistance": math.inf}),
        (Capacitor, {"capacitance": -1e-12}),
    ])
    def test_out_of_domain_values_are_rejected(self, cls, kwargs):
        with pytest.raises(InvalidParametersError):
            cls("X1", [1, 0], **kwargs)

    def test_zero_inductance_is_rejected(self):
        with pytest.raises(InvalidParametersError, match="Inductance"):
            Inductor("L1", [1, 0], branch=0, inductance=0.0)

    def test_zero_capacitance_is_allowed(self):
        assert Capacitor("C1", [1, 0], capacitance=0.0).params["capacitance"] == 0.0

    def test_terminal_count_is_checked(self):
        with pytest.raises(InvalidParametersError, match="ports"):
            Resistor("R1", [1, 2, 0], resistance=1.0)

    def test_branch_requirements(self):
        with pytest.raises(InvalidParametersError, match="requires a branch"):
            VoltageSource("V1", [1, 0], dc=1.0)
        with pytest.raises(InvalidParametersError, match="does not use a branch"):
            Resistor("R1", [1, 0], branch=0, resistance=1.0)

    def test_error_report_names_the_device(self):
        with pytest.raises(InvalidParametersError) as exc_info:
            Resistor("Rbad", [1, 0], resistance=-1.0)
        report = exc_info.value.get_diagnostic_report()
        assert "Rbad" in report
        assert "Invalid Device Parameters" in report


class TestCapabilities:

    def test_declared_capabilities(self):
        caps = Resistor.declare_capabilities()
        assert set(caps) == {IAcContributor, IConnectivityProvider}

    def test_capability_instances_are_cached(self):
        r = Resistor("R1", [1, 0], resistance=1.0)
        assert r.get_capability(IAcContributor) is r.get_capability(IAcContributor)

    def test_connectivity(self):
        c = Capacitor("C1", [1, 2], capacitance=1e-9)
        l = Inductor("L1", [1, 2], branch=0, inductance=1e-3)
        v = VoltageSource("V1", [1, 0], branch=1, dc=1.0)
        i = CurrentSource("I1", [1, 0], dc=1.0)
        r = Resistor("R1", [3, 4], resistance=1.0)
        assert c.get_capability(IConnectivityProvider).get_dc_connectivity(c) == []
        assert i.get_capability(IConnectivityProvider).get_dc_connectivity(i) == []
        assert l.get_capability(IConnectivityProvider).get_voltage_constraints(l) == [(1, 2)]
        assert v.get_capability(IConnectivityProvider).get_voltage_constraints(v) == [(1, 0)]
        assert r.get_capability(IConnectivityProvider).get_dc_connectivity(r) == [(3, 4)]
        assert r.get_capability(IConnectivityProvider).get_voltage_constraints(r) == []

    def test_registry_contains_all_devices(self):
        for name in ("Resistor", "Capacitor", "Inductor", "VoltageSource", "CurrentSource", "Diode", "Bjt", "Mosfet"):
            assert name in COMPONENT_REGISTRY

    def test_register_component_rejects_duplicate_ports(self):
        with pytest.raises(TypeError, match="must return a list of unique strings"):
            @register_component("BadPortsDuplicate")
            class BadComponent(ComponentBase):
                def stamp(self, mna, x, ctx): pass
                @classmethod
                def declare_ports(cls): return ['p', 'n', 'p']
                @classmethod
                def declare_parameters(cls): return {}

    def test_register_component_rejects_bad_parameter_declaration(self):
        with pytest.raises(TypeError, match="must return a Dict"):
            @register_component("BadParamsDecl")
            class BadComponent(ComponentBase):
                def stamp(self, mna, x, ctx): pass
                @classmethod
                def declare_ports(cls): return ['p']
                @classmethod
                def declare_parameters(cls): return {"resistance": 100}


class TestSources:

    def test_ac_phasor(self):
        v = VoltageSource("V1", [1, 0], branch=0, ac_mag=2.0, ac_phase=90.0)
        assert v.ac_phasor == pytest.approx(2j, abs=1e-12)

    def test_source_value_precedence(self):
        pulse = Pulse(v1=1.0, v2=3.0, delay=1e-3)
        v = VoltageSource("V1", [1, 0], branch=0, waveform=pulse)
        assert v.dc_value == 1.0
        assert v.source_value(StampContext(mode="tran", time=2e-3)) == 3.0
        assert v.source_value(StampContext(mode="dc", time=2e-3)) == 1.0
        assert v.source_value(StampContext(source_overrides={"V1": 7.0}, source_scale=0.5)) == 3.5

    def test_waveform_must_be_a_waveform(self):
        with pytest.raises(InvalidParametersError, match="Waveform"):
            VoltageSource("V1", [1, 0], branch=0, waveform=5.0)

    def test_current_source_direction(self):
        # Positive current flows p -> n through the source, i.e. into node n.
        mna = MnaSystem(1, 0)
        CurrentSource("I1", [0, 1], dc=2e-3).stamp(mna, np.zeros(1), StampContext())
        assert mna.rhs[0] == pytest.approx(2e-3)


class TestReactiveCompanions:

    def test_capacitor_is_open_at_dc(self):
        mna = MnaSystem(1, 0)
        Capacitor("C1", [1, 0], capacitance=1e-6).stamp(mna, np.zeros(1), StampContext(mode="dc"))
        assert mna.matrix().nnz == 0

    def test_capacitor_backward_euler_companion(self):
        cap = Capacitor("C1", [1, 0], capacitance=1e-6)
        cap.update_history(np.array([2.0]), StampContext(mode="dc"))
        mna = MnaSystem(1, 0)
        cap.stamp(mna, np.zeros(1), StampContext(mode="tran", h=1e-3, method="be"))
        assert mna.matrix().toarray()[0, 0] == pytest.approx(1e-3)
        assert mna.rhs[0] == pytest.approx(2e-3)

    def test_capacitor_trapezoidal_history_current(self):
        cap = Capacitor("C1", [1, 0], capacitance=1e-6)
        cap.update_history(np.array([0.0]), StampContext(mode="dc"))
        ctx = StampContext(mode="tran", h=1e-3, method="trap")
        cap.update_history(np.array([1.0]), ctx)
        # i = (2C/h)·(v - v_prev) - i_prev
        assert cap.current == pytest.approx(2e-3)

    def test_inductor_is_a_short_at_dc(self):
        ind = Inductor("L1", [1, 0], branch=0, inductance=1e-3)
        mna = MnaSystem(1, 1)
        ind.stamp(mna, np.zeros(2), StampContext(mode="dc", n_nodes=1))
        np.testing.assert_array_equal(mna.matrix().toarray(), [[0.0, 1.0], [1.0, 0.0]])

    def test_inductor_trapezoidal_companion(self):
        ind = Inductor("L1", [1, 0], branch=0, inductance=1e-3)
        ind.update_history(np.array([0.5, 0.1]), StampContext(mode="dc", n_nodes=1))
        assert ind.current == pytest.approx(0.1)
        mna = MnaSystem(1, 1)
        ind.stamp(mna, np.zeros(2), StampContext(mode="tran", h=1e-6, method="trap", n_nodes=1))
        a = mna.matrix().toarray()
        assert a[1, 1] == pytest.approx(-2e-3 / 1e-6)
        assert mna.rhs[1] == pytest.approx(-2e-3 / 1e-6 * 0.1 - 0.5)
