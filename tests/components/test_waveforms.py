# tests/components/test_waveforms.py
import math

import pytest

from spicecore.components import Pulse, Pwl, Sine


class TestPulse:

    def test_single_pulse_shape(self):
        p = Pulse(v1=0.0, v2=5.0, delay=1e-3, rise=1e-4, fall=2e-4, width=5e-4)
        assert p.value(0.0) == 0.0
        assert p.value(1e-3) == 0.0
        assert p.value(1.05e-3) == pytest.approx(2.5)
        assert p.value(1.3e-3) == 5.0
        assert p.value(1.7e-3) == pytest.approx(2.5)
        assert p.value(5e-3) == 0.0

    def test_periodic_pulse_repeats(self):
        p = Pulse(v1=0.0, v2=1.0, rise=1e-6, fall=1e-6, width=4e-6, period=1e-5)
        assert p.value(3e-6) == p.value(3e-6 + 1e-5) == 1.0
        assert p.value(8e-6) == 0.0

    def test_breakpoints(self):
        p = Pulse(v1=0.0, v2=1.0, delay=1e-4, rise=1e-5, fall=1e-5, width=2e-4, period=5e-4)
        assert p.breakpoints(1e-3) == pytest.approx([1e-4, 1.1e-4, 3.1e-4, 3.2e-4, 6e-4, 6.1e-4, 8.1e-4, 8.2e-4])

    def test_step_without_width_breaks_only_at_the_ramp(self):
        assert Pulse(v1=0.0, v2=1.0, rise=1e-6).breakpoints(1.0) == [1e-6]

    @pytest.mark.parametrize("kwargs", [{"rise": -1.0}, {"width": 1.0, "period": 0.5}])
    def test_invalid_pulse(self, kwargs):
        with pytest.raises(ValueError):
            Pulse(v1=0.0, v2=1.0, **kwargs)


class TestSine:

    def test_value_and_delay(self):
        s = Sine(offset=1.0, amplitude=2.0, frequency=1e3, delay=1e-3)
        assert s.value(0.5e-3) == 1.0
        assert s.value(1e-3 + 0.25e-3) == pytest.approx(3.0)
        assert s.breakpoints(1.0) == [1e-3]

    def test_damping_and_phase(self):
        s = Sine(offset=0.0, amplitude=1.0, frequency=1.0, damping=2.0, phase=90.0)
        assert s.value(1.0) == pytest.approx(math.exp(-2.0))


class TestPwl:

    def test_interpolation_and_hold(self):
        w = Pwl(((1e-3, 0.0), (2e-3, 4.0), (4e-3, 2.0)))
        assert w.value(0.0) == 0.0
        assert w.value(1.5e-3) == pytest.approx(2.0)
        assert w.value(3e-3) == pytest.approx(3.0)
        assert w.value(1.0) == 2.0
        assert w.breakpoints(3e-3) == [1e-3, 2e-3]

    def test_from_pairs_with_units(self):
        w = Pwl.from_pairs([("0 s", "0 V"), ("1 ms", "5 V")])
        assert w.points == ((0.0, 0.0), (pytest.approx(1e-3), pytest.approx(5.0)))

    def test_times_must_increase(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            Pwl(((0.0, 0.0), (0.0, 1.0)))

    def test_wrong_unit_is_rejected(self):
        with pytest.raises(ValueError, match="value"):
            Pwl.from_pairs([("1 ms", "5 A")])
