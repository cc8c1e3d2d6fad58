# tests/analysis/test_ac_analysis.py
import math

import numpy as np
import pytest

from spicecore import Ac, CircuitBuilder, DcOp, run_analysis

L_SERIES = 1e-3
C_SERIES = 10e-9
R_LOAD = 50.0


@pytest.fixture
def series_rlc():
    b = CircuitBuilder("series_rlc")
    b.add("VoltageSource", "V1", ["in", "gnd"], ac_mag=1.0)
    b.add("Inductor", "L1", ["in", "a"], inductance=L_SERIES)
    b.add("Capacitor", "C1", ["a", "out"], capacitance=C_SERIES)
    b.add("Resistor", "R1", ["out", "gnd"], resistance=R_LOAD)
    return b.build()


class TestAcAnalysis:

    def test_rc_low_pass(self, builder):
        builder.add("VoltageSource", "V1", ["in", "gnd"], ac_mag=1.0)
        builder.add("Resistor", "R1", ["in", "out"], resistance="1 kohm")
        builder.add("Capacitor", "C1", ["out", "gnd"], capacitance="1 uF")
        result = run_analysis(builder.build(), Ac(1.0, 1e5, 5, "dec"))
        f_c = 1.0 / (2.0 * math.pi * 1e-3)
        expected = 1.0 / (1.0 + 1j * result.points / f_c)
        np.testing.assert_allclose(result.voltage("out"), expected, rtol=1e-6)
        assert result.analysis == "ac"
        assert result.variable == "frequency"
        assert np.iscomplexobj(result.solutions)

    def test_series_rlc_resonance_and_bandwidth(self, series_rlc):
        result = run_analysis(series_rlc, Ac(40e3, 60e3, 4001, "lin"))
        mag = np.abs(result.voltage("out"))
        f0 = 1.0 / (2.0 * math.pi * math.sqrt(L_SERIES * C_SERIES))
        bandwidth = R_LOAD / (2.0 * math.pi * L_SERIES)

        peak = int(np.argmax(mag))
        assert result.points[peak] == pytest.approx(f0, rel=1e-3)
        assert mag[peak] == pytest.approx(1.0, rel=1e-3)

        passband = result.points[mag >= mag[peak] / math.sqrt(2.0)]
        assert passband[-1] - passband[0] == pytest.approx(bandwidth, rel=2e-2)

    def test_phase_of_source(self, builder):
        builder.add("VoltageSource", "V1", ["in", "gnd"], ac_mag="2 V", ac_phase=45.0)
        builder.add("Resistor", "R1", ["in", "gnd"], resistance=1.0)
        v = run_analysis(builder.build(), Ac(1e3, 1e3, 1, "lin")).voltage("in")[0]
        assert abs(v) == pytest.approx(2.0)
        assert math.degrees(np.angle(v)) == pytest.approx(45.0)

    def test_diode_small_signal_resistance(self, builder):
        builder.add("VoltageSource", "V1", ["in", "gnd"], dc=5.0, ac_mag=1.0)
        builder.add("Resistor", "R1", ["in", "a"], resistance="1 kohm")
        d = builder.add("Diode", "D1", ["a", "gnd"])
        circuit = builder.build()
        result = run_analysis(circuit, Ac(1e3, 1e3, 1, "lin"))
        op = run_analysis(circuit, DcOp())
        _, g = d.evaluate(op.voltage("a")[0])
        assert abs(result.voltage("a")[0]) == pytest.approx(1.0 / (1.0 + 1e3 * g), rel=1e-6)

    def test_mosfet_amplifier_gain(self, builder):
        builder.add("VoltageSource", "VDD", ["vdd", "gnd"], dc=5.0)
        builder.add("VoltageSource", "VG", ["g", "gnd"], dc=2.0, ac_mag=1.0)
        builder.add("Resistor", "RD", ["vdd", "d"], resistance="10 kohm")
        builder.add("Mosfet", "M1", ["d", "g", "gnd"], vto=1.0, kp=1e-4, w="1 um", l="1 um")
        result = run_analysis(builder.build(), Ac(1e3, 1e3, 1, "lin"))
        # gm = beta * Vov = 100 uS, gain = -gm * RD
        assert result.voltage("d")[0] == pytest.approx(-1.0, rel=1e-5)

    def test_bjt_amplifier_gain(self, builder):
        builder.add("VoltageSource", "VCC", ["vcc", "gnd"], dc=5.0)
        builder.add("VoltageSource", "VB", ["b", "gnd"], dc=0.65, ac_mag=1e-3)
        builder.add("Resistor", "RC", ["vcc", "c"], resistance="1 kohm")
        q = builder.add("Bjt", "Q1", ["c", "b", "gnd"])
        circuit = builder.build()
        op = run_analysis(circuit, DcOp())
        vc = op.voltage("c")[0]
        point = q.evaluate(0.65, 0.65 - vc)
        # KCL at c with the base held by VB: -vc / RC = gm_be * vb + gm_bc * (vb - vc)
        gain = -(point.dic_dvbe + point.dic_dvbc) * 1e3 / (1.0 - point.dic_dvbc * 1e3)
        result = run_analysis(circuit, Ac(1e3, 1e3, 1, "lin"))
        assert result.voltage("c")[0].real == pytest.approx(gain * 1e-3, rel=1e-3)
