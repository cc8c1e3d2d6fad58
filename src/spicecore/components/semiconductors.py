# src/spicecore/components/semiconductors.py
"""
Nonlinear semiconductor devices: Diode, Bjt (Gummel-Poon) and Mosfet.

Each device evaluates its terminal currents and their partial derivatives at
the (limited) present solution estimate and stamps the tangent-line companion
model through `stamp_linearized_current`. Junction voltages are limited
against the value the device was last evaluated at; a device that had to limit
sets `ctx.limited` so the Newton iteration is not declared converged on an
estimate the device never saw.

For the AC analysis the same evaluation is done once at the DC operating
point, without limiting, and only the small-signal conductances are stamped.
"""

import logging
import math
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from ..constants import THERMAL_VOLTAGE
from .base import ComponentBase, node_voltage, register_component, stamp_linearized_current
from .capabilities import IAcContributor, provides
from .exceptions import InvalidParametersError
from .limiting import fetlim, junction_vcrit, limvds, pnjlim, safe_exp


logger = logging.getLogger(__name__)


def _polarity_sign(instance_id: str, polarity: str, choices: Dict[str, int]) -> int:
    key = str(polarity).lower()
    if key not in choices:
        raise InvalidParametersError(
            component_fqn=instance_id,
            details=f"Unknown polarity '{polarity}'. Expected one of {sorted(choices)}."
        )
    return choices[key]


@register_component("Diode")
class Diode(ComponentBase):
    """
    Junction diode following the Shockley relation I = Is * (exp(V / (N * Vt)) - 1).
    Terminal 'p' is the anode, 'n' the cathode.
    """
    is_nonlinear = True
    parameter_defaults = {"isat": 1.0e-14, "n": 1.0}

    def validate_parameters(self) -> None:
        self._require(self.params["isat"] > 0, f"Saturation current must be positive, got {self.params['isat']} A.")
        self._require(self.params["n"] > 0, f"Emission coefficient must be positive, got {self.params['n']}.")
        self._nvt = self.params["n"] * THERMAL_VOLTAGE
        self._vcrit = junction_vcrit(self._nvt, self.params["isat"])

    def reset_state(self) -> None:
        self._v_last = 0.0

    def evaluate(self, v: float) -> Tuple[float, float]:
        """Returns the diode current and its conductance dI/dV at junction voltage `v`."""
        e, de = safe_exp(v / self._nvt)
        isat = self.params["isat"]
        return isat * (e - 1.0), isat * de / self._nvt

    def stamp(self, mna, x, ctx):
        p, n = self.nodes
        v, limited = pnjlim(node_voltage(x, p) - node_voltage(x, n), self._v_last, self._nvt, self._vcrit)
        if limited:
            ctx.limited = True
        self._v_last = v
        i, g = self.evaluate(v)
        stamp_linearized_current(mna, p, n, i, [((p, n), g, v)])

    @provides(IAcContributor)
    class AcContributor:
        def stamp_ac(self, component: 'Diode', mna, x_op, omega):
            p, n = component.nodes
            _, g = component.evaluate(node_voltage(x_op, p) - node_voltage(x_op, n))
            mna.stamp_conductance(p, n, g)

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]:
        return {"isat": "ampere", "n": "dimensionless"}

    @classmethod
    def declare_ports(cls) -> List[str]: return ['p', 'n']


class BjtOperatingPoint(NamedTuple):
    """Terminal currents of a BJT and their partials w.r.t. (Vbe, Vbc), in physical terms."""
    ic: float
    ib: float
    dic_dvbe: float
    dic_dvbc: float
    dib_dvbe: float
    dib_dvbc: float


@register_component("Bjt")
class Bjt(ComponentBase):
    """
    Bipolar junction transistor, Gummel-Poon transport model.

    Terminals are ordered (c, b, e). The collector transport current
    (Ibe - Ibc) / qb is reduced by the base charge qb, which combines the Early
    effect (q1, from Vaf and Var) and high-level injection (q2, from Ikf and Ikr).
    Base current is the Ebers-Moll sum Ibe / Bf + Ibc / Br. An infinite Vaf,
    Var, Ikf or Ikr switches the corresponding effect off.
    """
    is_nonlinear = True
    parameter_defaults = {
        "isat": 1.0e-16, "bf": 100.0, "br": 1.0, "nf": 1.0, "nr": 1.0,
        "vaf": math.inf, "var": math.inf, "ikf": math.inf, "ikr": math.inf,
    }

    def __init__(self, instance_id: str, nodes: Sequence[int], branch: Optional[int] = None,
                 polarity: str = "npn", **params):
        self._sign = _polarity_sign(instance_id, polarity, {"npn": 1, "pnp": -1})
        self.polarity = str(polarity).lower()
        super().__init__(instance_id, nodes, branch, **params)

    def validate_parameters(self) -> None:
        for name in ("isat", "bf", "br", "nf", "nr", "vaf", "var", "ikf", "ikr"):
            self._require(self.params[name] > 0, f"Parameter '{name}' must be positive, got {self.params[name]}.")
        self._vtf = self.params["nf"] * THERMAL_VOLTAGE
        self._vtr = self.params["nr"] * THERMAL_VOLTAGE
        self._vcrit_f = junction_vcrit(self._vtf, self.params["isat"])
        self._vcrit_r = junction_vcrit(self._vtr, self.params["isat"])

    def reset_state(self) -> None:
        self._vbe_last = 0.0
        self._vbc_last = 0.0

    def evaluate(self, vbe: float, vbc: float) -> BjtOperatingPoint:
        """Evaluates the model at physical junction voltages Vbe = Vb - Ve, Vbc = Vb - Vc."""
        p = self.params
        s = self._sign
        vbe_i, vbc_i = s * vbe, s * vbc

        ebe, debe = safe_exp(vbe_i / self._vtf)
        ebc, debc = safe_exp(vbc_i / self._vtr)
        cbe = p["isat"] * (ebe - 1.0)
        gbe = p["isat"] * debe / self._vtf
        cbc = p["isat"] * (ebc - 1.0)
        gbc = p["isat"] * debc / self._vtr

        ovaf, ovar = 1.0 / p["vaf"], 1.0 / p["var"]
        oikf, oikr = 1.0 / p["ikf"], 1.0 / p["ikr"]

        # Past the Early voltage the base-width model breaks down; hold q1 there.
        denom = 1.0 - ovaf * vbc_i - ovar * vbe_i
        if denom > 1.0e-4:
            q1 = 1.0 / denom
            dq1_dve, dq1_dvc = q1 * q1 * ovar, q1 * q1 * ovaf
        else:
            q1 = 1.0e4
            dq1_dve = dq1_dvc = 0.0

        q2 = oikf * cbe + oikr * cbc
        sqarg = math.sqrt(max(1.0 + 4.0 * q2, 1.0e-12))
        qb = 0.5 * q1 * (1.0 + sqarg)
        dqb_dve = 0.5 * dq1_dve * (1.0 + sqarg) + q1 * oikf * gbe / sqarg
        dqb_dvc = 0.5 * dq1_dvc * (1.0 + sqarg) + q1 * oikr * gbc / sqarg

        ict = (cbe - cbc) / qb
        dict_dve = (gbe - ict * dqb_dve) / qb
        dict_dvc = (-gbc - ict * dqb_dvc) / qb

        ic = ict - cbc / p["br"]
        ib = cbe / p["bf"] + cbc / p["br"]
        return BjtOperatingPoint(
            ic=s * ic,
            ib=s * ib,
            dic_dvbe=dict_dve,
            dic_dvbc=dict_dvc - gbc / p["br"],
            dib_dvbe=gbe / p["bf"],
            dib_dvbc=gbc / p["br"],
        )

    def stamp(self, mna, x, ctx):
        c, b, e = self.nodes
        s = self._sign
        vb = node_voltage(x, b)
        vbe_i, lim_be = pnjlim(s * (vb - node_voltage(x, e)), self._sign * self._vbe_last, self._vtf, self._vcrit_f)
        vbc_i, lim_bc = pnjlim(s * (vb - node_voltage(x, c)), self._sign * self._vbc_last, self._vtr, self._vcrit_r)
        if lim_be or lim_bc:
            ctx.limited = True
        vbe, vbc = s * vbe_i, s * vbc_i
        self._vbe_last, self._vbc_last = vbe, vbc

        op = self.evaluate(vbe, vbc)
        stamp_linearized_current(mna, c, e, op.ic, [((b, e), op.dic_dvbe, vbe), ((b, c), op.dic_dvbc, vbc)])
        stamp_linearized_current(mna, b, e, op.ib, [((b, e), op.dib_dvbe, vbe), ((b, c), op.dib_dvbc, vbc)])

    @provides(IAcContributor)
    class AcContributor:
        def stamp_ac(self, component: 'Bjt', mna, x_op, omega):
            c, b, e = component.nodes
            vb = node_voltage(x_op, b)
            op = component.evaluate(vb - node_voltage(x_op, e), vb - node_voltage(x_op, c))
            mna.stamp_transconductance(c, e, b, e, op.dic_dvbe)
            mna.stamp_transconductance(c, e, b, c, op.dic_dvbc)
            mna.stamp_transconductance(b, e, b, e, op.dib_dvbe)
            mna.stamp_transconductance(b, e, b, c, op.dib_dvbc)

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]:
        return {
            "isat": "ampere", "bf": "dimensionless", "br": "dimensionless",
            "nf": "dimensionless", "nr": "dimensionless", "vaf": "volt", "var": "volt",
            "ikf": "ampere", "ikr": "ampere",
        }

    @classmethod
    def declare_ports(cls) -> List[str]: return ['c', 'b', 'e']


class MosfetOperatingPoint(NamedTuple):
    """Drain current (into the drain, out of the source) and its partials w.r.t. (Vgs, Vds)."""
    ids: float
    gm: float
    gds: float


@register_component("Mosfet")
class Mosfet(ComponentBase):
    """
    Threshold-voltage MOSFET (square law) with mobility degradation and
    channel-length modulation.

    Terminals are ordered (d, g, s); the body is tied to the source. With
    beta = Kp * W / L and Vov = Vgs - Vto the drain current is

        linear:      beta' * (Vov * Vds - Vds^2 / 2) * (1 + lambda * Vds)
        saturation:  beta' / 2 * Vov^2 * (1 + lambda * Vds)

    where beta' = beta / (1 + theta * Vov). `vto` is signed as on a SPICE model
    card, i.e. negative for an enhancement pmos. The device is symmetric: for
    Vds < 0 drain and source swap roles.
    """
    is_nonlinear = True
    parameter_defaults = {"vto": 0.0, "kp": 2.0e-5, "w": 1.0e-4, "l": 1.0e-4, "lambda_": 0.0, "theta": 0.0}

    def __init__(self, instance_id: str, nodes: Sequence[int], branch: Optional[int] = None,
                 polarity: str = "nmos", **params):
        self._sign = _polarity_sign(instance_id, polarity, {"nmos": 1, "pmos": -1})
        self.polarity = str(polarity).lower()
        if "lambda" in params:
            params["lambda_"] = params.pop("lambda")
        super().__init__(instance_id, nodes, branch, **params)

    def validate_parameters(self) -> None:
        p = self.params
        self._require(p["kp"] > 0, f"Transconductance parameter kp must be positive, got {p['kp']}.")
        self._require(p["w"] > 0 and p["l"] > 0, f"Channel dimensions must be positive, got W={p['w']} m, L={p['l']} m.")
        self._require(p["lambda_"] >= 0, f"Channel-length modulation must be non-negative, got {p['lambda_']}.")
        self._require(p["theta"] >= 0, f"Mobility degradation must be non-negative, got {p['theta']}.")
        self._beta = p["kp"] * p["w"] / p["l"]
        self._vth = self._sign * p["vto"]

    def reset_state(self) -> None:
        self._vgs_last = 0.0
        self._vds_last = 0.0

    def _forward(self, vgs: float, vds: float) -> Tuple[float, float, float]:
        """Internal current and partials for vds >= 0 in n-channel terms."""
        vov = vgs - self._vth
        if vov <= 0.0:
            return 0.0, 0.0, 0.0
        lam, theta = self.params["lambda_"], self.params["theta"]
        clm = 1.0 + lam * vds
        if vds < vov:
            i0 = self._beta * (vov * vds - 0.5 * vds * vds) * clm
            di_dvov = self._beta * vds * clm
            di_dvds = self._beta * (vov - vds) * clm + self._beta * (vov * vds - 0.5 * vds * vds) * lam
        else:
            i0 = 0.5 * self._beta * vov * vov * clm
            di_dvov = self._beta * vov * clm
            di_dvds = 0.5 * self._beta * vov * vov * lam
        f = 1.0 / (1.0 + theta * vov)
        df_dvov = -theta * f * f
        return i0 * f, di_dvov * f + i0 * df_dvov, di_dvds * f

    def evaluate(self, vgs: float, vds: float) -> MosfetOperatingPoint:
        """Evaluates the model at physical terminal voltages Vgs = Vg - Vs, Vds = Vd - Vs."""
        s = self._sign
        vgs_i, vds_i = s * vgs, s * vds
        if vds_i >= 0.0:
            i, gm, gds = self._forward(vgs_i, vds_i)
            return MosfetOperatingPoint(ids=s * i, gm=gm, gds=gds)
        # Reverse mode: the internal current flows from source to drain and
        # depends on (Vgd, Vsd) = (Vgs - Vds, -Vds).
        i, gm, gds = self._forward(vgs_i - vds_i, -vds_i)
        return MosfetOperatingPoint(ids=-s * i, gm=-gm, gds=gm + gds)

    def _limit(self, vgs_i: float, vds_i: float) -> Tuple[float, float, bool]:
        vgs_old, vds_old = self._sign * self._vgs_last, self._sign * self._vds_last
        vgs_i, lim_gs = fetlim(vgs_i, vgs_old, self._vth)
        if vds_old >= 0.0:
            vds_i, lim_ds = limvds(vds_i, vds_old)
        else:
            mirrored, lim_ds = limvds(-vds_i, -vds_old)
            vds_i = -mirrored
        return vgs_i, vds_i, lim_gs or lim_ds

    def stamp(self, mna, x, ctx):
        d, g, s_node = self.nodes
        s = self._sign
        vs = node_voltage(x, s_node)
        vgs_i, vds_i, limited = self._limit(s * (node_voltage(x, g) - vs), s * (node_voltage(x, d) - vs))
        if limited:
            ctx.limited = True
        vgs, vds = s * vgs_i, s * vds_i
        self._vgs_last, self._vds_last = vgs, vds

        op = self.evaluate(vgs, vds)
        stamp_linearized_current(mna, d, s_node, op.ids, [((g, s_node), op.gm, vgs), ((d, s_node), op.gds, vds)])

    @provides(IAcContributor)
    class AcContributor:
        def stamp_ac(self, component: 'Mosfet', mna, x_op, omega):
            d, g, s = component.nodes
            vs = node_voltage(x_op, s)
            op = component.evaluate(node_voltage(x_op, g) - vs, node_voltage(x_op, d) - vs)
            mna.stamp_transconductance(d, s, g, s, op.gm)
            mna.stamp_transconductance(d, s, d, s, op.gds)

    @classmethod
    def declare_parameters(cls) -> Dict[str, str]:
        return {
            "vto": "volt", "kp": "ampere / volt ** 2", "w": "meter", "l": "meter",
            "lambda_": "1 / volt", "theta": "1 / volt",
        }

    @classmethod
    def declare_ports(cls) -> List[str]: return ['d', 'g', 's']
