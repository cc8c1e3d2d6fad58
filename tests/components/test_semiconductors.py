# tests/components/test_semiconductors.py
import math

import numpy as np
import pytest

from spicecore.components import Bjt, Diode, InvalidParametersError, Mosfet, StampContext
from spicecore.components.limiting import fetlim, junction_vcrit, limvds, pnjlim, safe_exp
from spicecore.constants import MAX_EXP_ARG, THERMAL_VOLTAGE
from spicecore.simulation.mna import MnaSystem

DV = 1e-7


def central_difference(f, x, dv=DV):
    return (f(x + dv) - f(x - dv)) / (2.0 * dv)


class TestDiode:

    def test_shockley_current(self):
        d = Diode("D1", [1, 0], isat=1e-14, n=1.5)
        i, _ = d.evaluate(0.6)
        assert i == pytest.approx(1e-14 * (math.exp(0.6 / (1.5 * THERMAL_VOLTAGE)) - 1.0))

    @pytest.mark.parametrize("v", [-1.0, 0.0, 0.3, 0.65, 0.8])
    def test_conductance_matches_finite_difference(self, v):
        d = Diode("D1", [1, 0])
        _, g = d.evaluate(v)
        assert g == pytest.approx(central_difference(lambda u: d.evaluate(u)[0], v), rel=1e-5, abs=1e-18)

    def test_current_stays_finite_at_huge_bias(self):
        i, g = Diode("D1", [1, 0]).evaluate(100.0)
        assert math.isfinite(i) and math.isfinite(g)

    def test_invalid_parameters(self):
        with pytest.raises(InvalidParametersError):
            Diode("D1", [1, 0], isat=0.0)
        with pytest.raises(InvalidParametersError):
            Diode("D1", [1, 0], n=-1.0)

    def test_large_step_is_limited_and_reported(self):
        d = Diode("D1", [1, 0])
        ctx = StampContext()
        d.stamp(MnaSystem(1, 0), np.array([5.0]), ctx)
        assert ctx.limited
        assert d._v_last < 1.0


class TestBjt:

    def make(self, **kwargs):
        params = dict(isat=1e-15, bf=80.0, br=2.0, vaf=50.0, var=20.0, ikf=1e-2, ikr=1e-3)
        params.update(kwargs)
        return Bjt("Q1", [1, 2, 0], **params)

    def test_forward_gain_without_second_order_effects(self):
        q = Bjt("Q1", [1, 2, 0], bf=100.0)
        op = q.evaluate(0.7, -1.0)
        assert op.ic / op.ib == pytest.approx(100.0, rel=1e-6)

    def test_early_effect_raises_collector_current(self):
        q = Bjt("Q1", [1, 2, 0], vaf=50.0)
        assert q.evaluate(0.7, -5.0).ic > q.evaluate(0.7, -1.0).ic

    def test_high_level_injection_reduces_gain(self):
        q = Bjt("Q1", [1, 2, 0], ikf=1e-3)
        low, high = q.evaluate(0.55, -1.0), q.evaluate(0.8, -1.0)
        assert high.ic / high.ib < low.ic / low.ib

    @pytest.mark.parametrize("polarity, vbe, vbc", [
        ("npn", 0.65, -2.0),
        ("npn", 0.7, 0.5),
        ("npn", 0.2, -0.3),
        ("pnp", -0.65, 2.0),
    ])
    def test_partials_match_finite_differences(self, polarity, vbe, vbc):
        q = self.make(polarity=polarity)
        op = q.evaluate(vbe, vbc)
        assert op.dic_dvbe == pytest.approx(central_difference(lambda v: q.evaluate(v, vbc).ic, vbe), rel=1e-4)
        assert op.dic_dvbc == pytest.approx(central_difference(lambda v: q.evaluate(vbe, v).ic, vbc), rel=1e-4, abs=1e-12)
        assert op.dib_dvbe == pytest.approx(central_difference(lambda v: q.evaluate(v, vbc).ib, vbe), rel=1e-4)
        assert op.dib_dvbc == pytest.approx(central_difference(lambda v: q.evaluate(vbe, v).ib, vbc), rel=1e-4, abs=1e-12)

    def test_pnp_mirrors_npn(self):
        npn, pnp = self.make(), self.make(polarity="pnp")
        a, b = npn.evaluate(0.7, -2.0), pnp.evaluate(-0.7, 2.0)
        assert b.ic == pytest.approx(-a.ic)
        assert b.ib == pytest.approx(-a.ib)
        assert b.dic_dvbe == pytest.approx(a.dic_dvbe)

    def test_unknown_polarity(self):
        with pytest.raises(InvalidParametersError, match="polarity"):
            Bjt("Q1", [1, 2, 0], polarity="xyz")

    def test_non_positive_parameters_are_rejected(self):
        with pytest.raises(InvalidParametersError, match="bf"):
            Bjt("Q1", [1, 2, 0], bf=0.0)


class TestMosfet:

    def make(self, **kwargs):
        params = dict(vto=1.0, kp=1e-4, w="10 um", l="10 um")
        params.update(kwargs)
        return Mosfet("M1", [1, 2, 0], **params)

    def test_square_law_regions(self):
        m = self.make(**{"lambda": 0.01})
        assert m.evaluate(3.0, 5.0).ids == pytest.approx(0.5 * 1e-4 * 4.0 * 1.05)
        assert m.evaluate(3.0, 1.0).ids == pytest.approx(1e-4 * (2.0 - 0.5) * 1.01)
        assert m.evaluate(0.5, 1.0) == (0.0, 0.0, 0.0)

    def test_lambda_keyword_alias(self):
        assert self.make(**{"lambda": 0.02}).params["lambda_"] == 0.02

    def test_current_is_continuous_at_saturation_edge(self):
        m = self.make(**{"lambda": 0.05}, theta=0.1)
        assert m.evaluate(3.0, 2.0 - 1e-9).ids == pytest.approx(m.evaluate(3.0, 2.0 + 1e-9).ids, rel=1e-6)

    @pytest.mark.parametrize("vgs, vds", [(3.0, 5.0), (3.0, 1.0), (2.5, -0.5), (1.5, -3.0), (4.0, 0.3)])
    def test_partials_match_finite_differences(self, vgs, vds):
        m = self.make(**{"lambda": 0.02}, theta=0.05)
        op = m.evaluate(vgs, vds)
        assert op.gm == pytest.approx(central_difference(lambda v: m.evaluate(v, vds).ids, vgs), rel=1e-4, abs=1e-12)
        assert op.gds == pytest.approx(central_difference(lambda v: m.evaluate(vgs, v).ids, vds), rel=1e-4, abs=1e-12)

    def test_reverse_mode_is_antisymmetric(self):
        m = self.make()
        # Swapping drain and source: Vgs' = Vgd, Vds' = -Vds.
        forward = m.evaluate(3.0 - (-1.0), 1.0).ids
        assert m.evaluate(3.0, -1.0).ids == pytest.approx(-forward)

    def test_pmos_mirrors_nmos(self):
        nmos = self.make()
        pmos = self.make(polarity="pmos", vto=-1.0)
        assert pmos.evaluate(-3.0, -5.0).ids == pytest.approx(-nmos.evaluate(3.0, 5.0).ids)

    def test_invalid_parameters(self):
        with pytest.raises(InvalidParametersError, match="Channel-length"):
            self.make(**{"lambda": -0.1})
        with pytest.raises(InvalidParametersError, match="Channel dimensions"):
            self.make(w=0.0)
        with pytest.raises(InvalidParametersError, match="polarity"):
            self.make(polarity="cmos")


class TestLimiting:

    def test_pnjlim_leaves_small_steps_alone(self):
        vt = THERMAL_VOLTAGE
        vcrit = junction_vcrit(vt, 1e-14)
        assert pnjlim(0.5, 0.0, vt, vcrit) == (0.5, False)
        assert pnjlim(vcrit + 0.01, vcrit, vt, vcrit) == (vcrit + 0.01, False)

    def test_pnjlim_compresses_large_forward_steps(self):
        vt = THERMAL_VOLTAGE
        vcrit = junction_vcrit(vt, 1e-14)
        v, limited = pnjlim(5.0, 0.6, vt, vcrit)
        assert limited
        assert v == pytest.approx(0.6 + vt * math.log(1.0 + 4.4 / vt))
        v, limited = pnjlim(5.0, 0.0, vt, vcrit)
        assert limited and v < 1.0

    def test_fetlim(self):
        assert fetlim(5.0, 0.0, 1.0) == (0.5, True)
        assert fetlim(5.0, 2.0, 1.0) == (5.0, False)
        assert fetlim(10.0, 2.0, 1.0) == (6.0, True)

    def test_limvds(self):
        assert limvds(10.0, 0.0) == (4.0, True)
        assert limvds(20.0, 4.0) == (14.0, True)
        assert limvds(1.0, 4.0) == (2.0, True)
        assert limvds(3.0, 1.0) == (3.0, False)

    def test_safe_exp_is_continuous(self):
        below, _ = safe_exp(MAX_EXP_ARG - 1e-12)
        above, slope = safe_exp(MAX_EXP_ARG + 1.0)
        assert below == pytest.approx(math.exp(MAX_EXP_ARG))
        assert above == pytest.approx(math.exp(MAX_EXP_ARG) * 2.0)
        assert slope == pytest.approx(math.exp(MAX_EXP_ARG))
