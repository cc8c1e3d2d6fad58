# src/spicecore/components/elements.py
"""
This module provides the linear devices: Resistor, Capacitor, Inductor and the
independent voltage and current sources.

Linear devices stamp constant values (or, for reactive devices in transient
analysis, constant companion models for the current timestep) and never need
Newton iteration of their own.
"""

import cmath
import logging
import math
from typing import ClassVar, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .base import ComponentBase, StampContext, node_voltage, register_component
from .capabilities import IAcContributor, IConnectivityProvider, provides
from .exceptions import InvalidParametersError
from .waveforms import Waveform


logger = logging.getLogger(__name__)


class TwoTerminal(ComponentBase):
    """Shared helpers for devices with a positive and a negative terminal."""

    @classmethod
    def declare_ports(cls) -> List[str]: return ['p', 'n']

    def branch_voltage(self, x: np.ndarray) -> float:
        p, n = self.nodes
        return node_voltage(x, p) - node_voltage(x, n)


@register_component("Resistor")
class Resistor(TwoTerminal):
    """Represents an ideal, linear Resistor."""

    def validate_parameters(self) -> None:
        r = self.params["resistance"]
        self._require(r > 0 and math.isfinite(r), f"Resistance must be positive and finite, got {r} ohm. Use a voltage source for an ideal short.")

    @property
    def conductance(self) -> float:
        return 1.0 / self.params["resistance"]

    def stamp(self, mna, x, ctx):
        mna.stamp_conductance(self.nodes[0], self.nodes[1], self.conductance)

    @provides(IAcContributor)
    class AcContributor:
        def stamp_ac(self, component: 'Resistor', mna, x_op, omega):
            mna.stamp_conductance(component.nodes[0], component.nodes[1], component.conductance)

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]: return {"resistance": "ohm"}


@register_component("Capacitor")
class Capacitor(TwoTerminal):
    """
    Represents an ideal Capacitor.

    Open circuit at DC. In transient analysis it is replaced by its companion
    model: a conductance G_eq (C/h for backward Euler, 2C/h for trapezoidal) in
    parallel with a current source carrying the previous timepoint's history.
    """
    is_reactive = True

    def validate_parameters(self) -> None:
        c = self.params["capacitance"]
        self._require(c >= 0 and math.isfinite(c), f"Capacitance must be non-negative and finite, got {c} F.")

    def reset_state(self) -> None:
        self._v_prev = 0.0
        self._i_prev = 0.0

    def _companion(self, ctx: StampContext) -> Tuple[float, float]:
        """Returns (G_eq, I_hist) for the present timestep."""
        c = self.params["capacitance"]
        if ctx.method == "be":
            g_eq = c / ctx.h
            return g_eq, g_eq * self._v_prev
        g_eq = 2.0 * c / ctx.h
        return g_eq, g_eq * self._v_prev + self._i_prev

    def stamp(self, mna, x, ctx):
        if not ctx.is_transient:
            return
        p, n = self.nodes
        g_eq, i_hist = self._companion(ctx)
        mna.stamp_conductance(p, n, g_eq)
        # The history current is injected into the positive terminal.
        mna.stamp_current_source(n, p, i_hist)

    def update_history(self, x, ctx):
        v = self.branch_voltage(x)
        if ctx.is_transient:
            g_eq, i_hist = self._companion(ctx)
            self._i_prev = g_eq * v - i_hist
        else:
            self._i_prev = 0.0
        self._v_prev = v

    @property
    def current(self) -> float:
        """Capacitor current at the last accepted timepoint."""
        return self._i_prev

    @provides(IAcContributor)
    class AcContributor:
        def stamp_ac(self, component: 'Capacitor', mna, x_op, omega):
            mna.stamp_conductance(component.nodes[0], component.nodes[1], 1j * omega * component.params["capacitance"])

    @provides(IConnectivityProvider)
    class ConnectivityProvider:
        def get_dc_connectivity(self, component: 'Capacitor') -> List[Tuple[int, int]]:
            return []

        def get_voltage_constraints(self, component: 'Capacitor') -> List[Tuple[int, int]]:
            return []

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]: return {"capacitance": "farad"}


@register_component("Inductor")
class Inductor(TwoTerminal):
    """
    Represents an ideal Inductor in the branch-current formulation.

    The inductor current is an explicit MNA unknown. Its branch equation is
    V(p) - V(n) - R_eq * I = V_hist, which reduces to an ideal short (R_eq = 0)
    at DC and to the trapezoidal companion model R_eq = 2L/h (the inverse of the
    companion conductance h/2L) during transient analysis.
    """
    num_branches = 1
    is_reactive = True

    def validate_parameters(self) -> None:
        ind = self.params["inductance"]
        self._require(ind > 0 and math.isfinite(ind), f"Inductance must be positive and finite, got {ind} H.")

    def reset_state(self) -> None:
        self._v_prev = 0.0
        self._i_prev = 0.0

    def _companion(self, ctx: StampContext) -> Tuple[float, float]:
        """Returns (R_eq, V_hist) for the branch equation of the present timestep."""
        ind = self.params["inductance"]
        if ctx.method == "be":
            r_eq = ind / ctx.h
            return r_eq, -r_eq * self._i_prev
        r_eq = 2.0 * ind / ctx.h
        return r_eq, -r_eq * self._i_prev - self._v_prev

    def stamp(self, mna, x, ctx):
        p, n = self.nodes
        mna.stamp_branch_incidence(p, n, self.branch)
        if ctx.is_transient:
            r_eq, v_hist = self._companion(ctx)
            mna.stamp_branch_impedance(self.branch, r_eq)
            mna.stamp_branch_rhs(self.branch, v_hist)

    def update_history(self, x, ctx):
        self._i_prev = ctx.branch_current(x, self.branch)
        self._v_prev = self.branch_voltage(x)

    @property
    def current(self) -> float:
        """Inductor current at the last accepted timepoint."""
        return self._i_prev

    @provides(IAcContributor)
    class AcContributor:
        def stamp_ac(self, component: 'Inductor', mna, x_op, omega):
            mna.stamp_branch_incidence(component.nodes[0], component.nodes[1], component.branch)
            mna.stamp_branch_impedance(component.branch, 1j * omega * component.params["inductance"])

    @provides(IConnectivityProvider)
    class ConnectivityProvider:
        def get_dc_connectivity(self, component: 'Inductor') -> List[Tuple[int, int]]:
            return [tuple(component.nodes)]

        def get_voltage_constraints(self, component: 'Inductor') -> List[Tuple[int, int]]:
            return [tuple(component.nodes)]

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]: return {"inductance": "henry"}


class IndependentSource(TwoTerminal):
    """
    Shared behaviour of the independent voltage and current sources.

    The large-signal value of a source is resolved per stamp, in order of
    precedence: a DC-sweep override for this instance, the waveform value at the
    present time (transient only), the DC value. The result is multiplied by the
    source-stepping scale factor. A source with a waveform uses the waveform's
    value at t = 0 as its DC value so the transient starts from a consistent
    operating point.

    The optional `waveform` keyword is not a numeric parameter and is kept
    outside the frozen parameter mapping.
    """
    #: Unit of the dc and ac_mag parameters.
    source_unit: ClassVar[str] = "volt"
    parameter_defaults = {"dc": 0.0, "ac_mag": 0.0, "ac_phase": 0.0}

    def __init__(self, instance_id: str, nodes: Sequence[int], branch: Optional[int] = None,
                 waveform: Optional[Waveform] = None, **params):
        if waveform is not None and not isinstance(waveform, Waveform):
            raise InvalidParametersError(component_fqn=instance_id, details=f"'waveform' must be a Waveform, got {type(waveform).__name__}.")
        self.waveform: Optional[Waveform] = waveform
        super().__init__(instance_id, nodes, branch, **params)

    def validate_parameters(self) -> None:
        for name in ("dc", "ac_mag", "ac_phase"):
            self._require(math.isfinite(self.params[name]), f"Parameter '{name}' must be finite, got {self.params[name]}.")

    @property
    def dc_value(self) -> float:
        if self.waveform is not None:
            return self.waveform.value(0.0)
        return self.params["dc"]

    @property
    def ac_phasor(self) -> complex:
        return cmath.rect(self.params["ac_mag"], math.radians(self.params["ac_phase"]))

    def source_value(self, ctx: StampContext) -> float:
        if self.instance_id in ctx.source_overrides:
            base = ctx.source_overrides[self.instance_id]
        elif ctx.is_transient and self.waveform is not None:
            base = self.waveform.value(ctx.time)
        else:
            base = self.dc_value
        return base * ctx.source_scale

    def breakpoints(self, stop: float) -> List[float]:
        """Slope discontinuities of this source's waveform in (0, stop]."""
        return self.waveform.breakpoints(stop) if self.waveform is not None else []

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]:
        return {"dc": cls.source_unit, "ac_mag": cls.source_unit, "ac_phase": "degree"}


@register_component("VoltageSource")
class VoltageSource(IndependentSource):
    """
    Represents an ideal independent voltage source. Its current, flowing from the
    positive terminal through the source to the negative terminal, is an explicit
    MNA unknown.
    """
    source_unit = "volt"
    num_branches = 1

    def stamp(self, mna, x, ctx):
        mna.stamp_voltage_source(self.nodes[0], self.nodes[1], self.branch, self.source_value(ctx))

    @provides(IAcContributor)
    class AcContributor:
        def stamp_ac(self, component: 'VoltageSource', mna, x_op, omega):
            mna.stamp_voltage_source(component.nodes[0], component.nodes[1], component.branch, component.ac_phasor)

    @provides(IConnectivityProvider)
    class ConnectivityProvider:
        def get_dc_connectivity(self, component: 'VoltageSource') -> List[Tuple[int, int]]:
            return [tuple(component.nodes)]

        def get_voltage_constraints(self, component: 'VoltageSource') -> List[Tuple[int, int]]:
            return [tuple(component.nodes)]


@register_component("CurrentSource")
class CurrentSource(IndependentSource):
    """
    Represents an ideal independent current source. Positive current flows from
    the positive terminal through the source to the negative terminal.
    """
    source_unit = "ampere"

    def stamp(self, mna, x, ctx):
        mna.stamp_current_source(self.nodes[0], self.nodes[1], self.source_value(ctx))

    @provides(IAcContributor)
    class AcContributor:
        def stamp_ac(self, component: 'CurrentSource', mna, x_op, omega):
            mna.stamp_current_source(component.nodes[0], component.nodes[1], component.ac_phasor)

    @provides(IConnectivityProvider)
    class ConnectivityProvider:
        def get_dc_connectivity(self, component: 'CurrentSource') -> List[Tuple[int, int]]:
            return []

        def get_voltage_constraints(self, component: 'CurrentSource') -> List[Tuple[int, int]]:
            return []
