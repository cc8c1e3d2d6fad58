"""SPICE-style voltage limiting for Newton-Raphson on exponential devices.

A PN junction current grows by roughly e^(1/Vt) per volt, so an unrestricted
Newton step of a volt or two evaluates the junction at an absurd operating
point and throws the next iterate far away. The limiting functions below
compress such steps before the device is evaluated; a device that had to limit
reports it through the stamp context so the iteration is not declared converged.
"""

import math
from typing import Tuple

from ..constants import MAX_EXP_ARG, SQRT2


def junction_vcrit(vt: float, isat: float) -> float:
    """Critical voltage above which pnjlim engages: Vt * ln(Vt / (sqrt(2) * Is))."""
    return vt * math.log(vt / (SQRT2 * isat))


def pnjlim(vnew: float, vold: float, vt: float, vcrit: float) -> Tuple[float, bool]:
    """
    PN junction voltage limiting (logarithmic damping).

    Engages only above `vcrit` and for steps larger than two thermal voltages;
    the step is replaced by its logarithm so a forward-biased junction creeps
    towards the solution instead of overshooting.

    Returns:
        The (possibly) limited voltage and whether limiting was applied.
    """
    if vnew > vcrit and abs(vnew - vold) > 2.0 * vt:
        if vold > 0.0:
            arg = 1.0 + (vnew - vold) / vt
            if arg > 0.0:
                return vold + vt * math.log(arg), True
            return vcrit, True
        return vt * math.log(vnew / vt), True
    return vnew, False


def fetlim(vnew: float, vold: float, vto: float) -> Tuple[float, bool]:
    """
    FET gate-source voltage limiting (region-based).

    Steps are held to 0.5 V while the device is off and to 2|Vgs - Vto| + 2 once
    it is on, which keeps the square-law current from swinging across regions.
    """
    max_step = 2.0 * abs(vold - vto) + 2.0 if vold >= vto else 0.5
    delta = vnew - vold
    if abs(delta) > max_step:
        return vold + math.copysign(max_step, delta), True
    return vnew, False


def limvds(vnew: float, vold: float) -> Tuple[float, bool]:
    """Drain-source limiting: at most a threefold increase per iteration above 3.5 V."""
    if vold >= 3.5:
        if vnew > vold:
            limited = min(vnew, 3.0 * vold + 2.0)
        else:
            limited = max(vnew, 2.0) if vnew < 3.5 else vnew
    else:
        limited = min(vnew, 4.0) if vnew > vold else max(vnew, -0.5)
    return limited, limited != vnew


def safe_exp(arg: float) -> Tuple[float, float]:
    """
    Exponential with linear continuation beyond MAX_EXP_ARG.

    Returns:
        (value, derivative) of the continued exponential at `arg`.
    """
    if arg > MAX_EXP_ARG:
        e_max = math.exp(MAX_EXP_ARG)
        return e_max * (1.0 + arg - MAX_EXP_ARG), e_max
    e = math.exp(arg)
    return e, e
