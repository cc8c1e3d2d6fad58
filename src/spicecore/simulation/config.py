# src/spicecore/simulation/config.py
"""
Solver options and analysis requests.

Both are immutable dataclasses that validate themselves on construction, so a
driver never sees an inconsistent request. For callers holding plain
dictionaries (e.g. loaded from a job file), `parse_solver_options` and
`parse_analysis_request` validate the structure with a Cerberus schema and
convert unit-bearing strings such as '10 us' or '1 kHz' through pint.
"""
import logging
import math
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional, Union

import cerberus
import numpy as np

from ..units import UnitConversionError, to_si
from .exceptions import ConfigParsingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolverOptions:
    """
    Numerical options shared by all analyses. Defaults follow SPICE.

    Attributes:
        abstol: Absolute current tolerance for branch unknowns (A).
        reltol: Relative tolerance for all unknowns.
        vntol: Absolute voltage tolerance for node unknowns (V).
        gmin: Shunt conductance from every node to ground in every solve (S).
        itl1: Newton iteration limit for DC operating points and sweep points.
        itl4: Newton iteration limit per transient timestep.
        pivtol: Smallest acceptable absolute LU pivot.
        gmin_steps: Step budget of gmin stepping; 0 disables it.
        source_steps: Step budget of source stepping; 0 disables it.
        gmin_start: First shunt conductance tried by gmin stepping (S).
        gmin_factor: Initial ratio between successive gmin-stepping shunts.
        trtol: Factor by which the transient LTE may exceed the tolerance
               before a step is rejected.
        tran_max_growth: Largest factor by which a timestep may grow.
    """
    abstol: float = 1.0e-12
    reltol: float = 1.0e-3
    vntol: float = 1.0e-6
    gmin: float = 1.0e-12
    itl1: int = 100
    itl4: int = 10
    pivtol: float = 1.0e-13
    gmin_steps: int = 100
    source_steps: int = 100
    gmin_start: float = 1.0e-3
    gmin_factor: float = 10.0
    trtol: float = 7.0
    tran_max_growth: float = 2.0

    def __post_init__(self):
        problems = []
        for name in ("abstol", "reltol", "vntol", "pivtol", "gmin_start", "trtol"):
            if not getattr(self, name) > 0:
                problems.append(f"'{name}' must be positive, got {getattr(self, name)}.")
        if self.gmin < 0:
            problems.append(f"'gmin' must be non-negative, got {self.gmin}.")
        for name in ("itl1", "itl4"):
            if getattr(self, name) < 1:
                problems.append(f"'{name}' must be at least 1, got {getattr(self, name)}.")
        for name in ("gmin_steps", "source_steps"):
            if getattr(self, name) < 0:
                problems.append(f"'{name}' must be non-negative, got {getattr(self, name)}.")
        if not self.gmin_factor > 1:
            problems.append(f"'gmin_factor' must be greater than 1, got {self.gmin_factor}.")
        if not self.tran_max_growth > 1:
            problems.append(f"'tran_max_growth' must be greater than 1, got {self.tran_max_growth}.")
        if problems:
            raise ConfigParsingError(details="\n".join(problems), section="solver options")


# --- Analysis requests ---

@dataclass(frozen=True)
class DcOp:
    """DC operating point at nominal source values."""
    kind = "op"


@dataclass(frozen=True)
class DcSweep:
    """
    Sweeps the DC value of one independent source (by instance name) from
    `start` to `stop` in increments of `step`. The step may be negative. The
    sweep always ends exactly on `stop`; the last increment is shortened or
    stretched by up to half a step to land there. A sweep shorter than half a
    step still visits both `start` and `stop`.
    """
    kind = "dc"
    source: str
    start: float
    stop: float
    step: float

    def __post_init__(self):
        if not self.source:
            raise ConfigParsingError(details="DC sweep needs a source name.", section="DC sweep request")
        if not all(math.isfinite(v) for v in (self.start, self.stop, self.step)):
            raise ConfigParsingError(details="DC sweep start, stop and step must be finite.", section="DC sweep request")
        if self.step == 0 or (self.stop - self.start) * self.step < 0:
            raise ConfigParsingError(
                details=f"Step {self.step} does not lead from {self.start} to {self.stop}.",
                section="DC sweep request"
            )

    def values(self) -> np.ndarray:
        n_full = int(math.floor((self.stop - self.start) / self.step + 0.5))
        if self.stop != self.start:
            n_full = max(n_full, 1)
        return np.append(self.start + self.step * np.arange(n_full), self.stop)


@dataclass(frozen=True)
class Ac:
    """
    Small-signal frequency sweep. `points` is per decade for 'dec', per octave
    for 'oct' and the total number of points for 'lin'.
    """
    kind = "ac"
    f_start: float
    f_stop: float
    points: int
    spacing: str = "dec"

    def __post_init__(self):
        if self.spacing not in ("dec", "oct", "lin"):
            raise ConfigParsingError(details=f"Unknown spacing '{self.spacing}'.", section="AC request")
        if self.points < 1:
            raise ConfigParsingError(details=f"'points' must be at least 1, got {self.points}.", section="AC request")
        if self.f_stop < self.f_start:
            raise ConfigParsingError(details="Stop frequency cannot be less than start frequency.", section="AC request")
        if self.spacing == "lin" and self.f_start < 0:
            raise ConfigParsingError(details="Linear sweep start frequency must be >= 0.", section="AC request")
        if self.spacing != "lin" and self.f_start <= 0:
            raise ConfigParsingError(details="Logarithmic sweep frequencies must be > 0.", section="AC request")

    def frequencies(self) -> np.ndarray:
        if self.spacing == "lin":
            return np.linspace(self.f_start, self.f_stop, self.points, dtype=float)
        base = 10.0 if self.spacing == "dec" else 2.0
        n_steps = int(math.floor(math.log(self.f_stop / self.f_start, base) * self.points + 1.0e-9))
        return self.f_start * base ** (np.arange(n_steps + 1) / self.points)


InitialSolution = Union[np.ndarray, Mapping[str, float]]


@dataclass(frozen=True)
class Transient:
    """
    Transient analysis from t = 0 to `stop`; only points with t >= `start` are
    recorded. `step` is the suggested output step and, unless `max_step` is
    given, caps the internal timestep together with (stop - start) / 50.

    `initial_solution` skips the DC operating point: either a full solution
    vector or a mapping from node name to voltage (unlisted nodes and all
    branch currents start at zero).
    """
    kind = "tran"
    step: float
    stop: float
    start: float = 0.0
    max_step: Optional[float] = None
    min_step: Optional[float] = None
    initial_solution: Optional[InitialSolution] = field(default=None, compare=False)

    def __post_init__(self):
        problems = []
        if not self.step > 0:
            problems.append(f"'step' must be positive, got {self.step}.")
        if not self.stop > 0:
            problems.append(f"'stop' must be positive, got {self.stop}.")
        if not 0 <= self.start < self.stop:
            problems.append(f"'start' must lie in [0, stop), got {self.start}.")
        if self.max_step is not None and not self.max_step > 0:
            problems.append(f"'max_step' must be positive, got {self.max_step}.")
        if self.min_step is not None and not self.min_step > 0:
            problems.append(f"'min_step' must be positive, got {self.min_step}.")
        if problems:
            raise ConfigParsingError(details="\n".join(problems), section="transient request")


AnalysisRequest = Union[DcOp, DcSweep, Ac, Transient]


# --- Dictionary parsing ---

class QuantityValidator(cerberus.Validator):
    """Cerberus validator that understands unit-bearing quantities."""

    def _validate_quantity(self, unit, field, value):
        """
        Checks that the value is a number or a string convertible to `unit`.
        The rule's arguments are validated against this schema:
        {'type': 'string'}
        """
        try:
            to_si(value, unit)
        except UnitConversionError as e:
            self._error(field, str(e))


_number_or_quantity = {"type": ["number", "string"]}

_SOLVER_OPTION_UNITS = {
    "abstol": "ampere", "reltol": "dimensionless", "vntol": "volt", "gmin": "siemens",
    "pivtol": "dimensionless", "gmin_start": "siemens", "gmin_factor": "dimensionless",
    "trtol": "dimensionless", "tran_max_growth": "dimensionless",
}
_SOLVER_OPTION_INTS = ("itl1", "itl4", "gmin_steps", "source_steps")

_solver_options_schema = {
    **{name: {**_number_or_quantity, "quantity": unit} for name, unit in _SOLVER_OPTION_UNITS.items()},
    **{name: {"type": "integer", "min": 0} for name in _SOLVER_OPTION_INTS},
}

_REQUEST_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "op": {},
    "dc": {
        "source": {"type": "string", "required": True, "empty": False},
        "start": {**_number_or_quantity, "required": True},
        "stop": {**_number_or_quantity, "required": True},
        "step": {**_number_or_quantity, "required": True},
    },
    "ac": {
        "f_start": {**_number_or_quantity, "required": True, "quantity": "hertz"},
        "f_stop": {**_number_or_quantity, "required": True, "quantity": "hertz"},
        "points": {"type": "integer", "required": True, "min": 1},
        "spacing": {"type": "string", "allowed": ["dec", "oct", "lin"], "default": "dec"},
    },
    "tran": {
        "step": {**_number_or_quantity, "required": True, "quantity": "second"},
        "stop": {**_number_or_quantity, "required": True, "quantity": "second"},
        "start": {**_number_or_quantity, "quantity": "second"},
        "max_step": {**_number_or_quantity, "quantity": "second"},
        "min_step": {**_number_or_quantity, "quantity": "second"},
        "initial_solution": {"type": "dict", "keysrules": {"type": "string"}, "valuesrules": _number_or_quantity},
    },
}

_REQUEST_TYPES = {"op": DcOp, "dc": DcSweep, "ac": Ac, "tran": Transient}


def _format_errors(errors: Dict[str, Any]) -> str:
    return "\n".join(f"  - Field '{k}': {v[0]}" for k, v in sorted(errors.items()))


def _validate(schema: Dict[str, Any], raw: Mapping[str, Any], section: str) -> Dict[str, Any]:
    validator = QuantityValidator(schema)
    validator.allow_unknown = False
    if not validator.validate(dict(raw)):
        raise ConfigParsingError(details=f"Validation failed:\n{_format_errors(validator.errors)}", section=section)
    return validator.document


def parse_solver_options(raw: Optional[Mapping[str, Any]]) -> SolverOptions:
    """
    Builds SolverOptions from a dictionary. Missing keys keep their defaults;
    quantities may carry units, e.g. {'vntol': '1 uV', 'gmin': '1e-12 S'}.

    Raises:
        ConfigParsingError: For unknown keys, wrong types, wrong units or
                            out-of-range values.
    """
    if not raw:
        return SolverOptions()
    document = _validate(_solver_options_schema, raw, "solver options")
    values = {
        name: (value if name in _SOLVER_OPTION_INTS else to_si(value, _SOLVER_OPTION_UNITS[name]))
        for name, value in document.items()
    }
    logger.debug(f"Parsed solver options: {values}")
    return SolverOptions(**values)


def parse_analysis_request(raw: Mapping[str, Any]) -> AnalysisRequest:
    """
    Builds an analysis request from a dictionary with a 'type' key of 'op',
    'dc', 'ac' or 'tran', e.g. {'type': 'tran', 'step': '1 us', 'stop': '1 ms'}.
    For 'dc', the start/stop/step unit follows the swept source and is not
    checked here.

    Raises:
        ConfigParsingError: If the dictionary does not describe a valid request.
    """
    if not isinstance(raw, Mapping) or "type" not in raw:
        raise ConfigParsingError(details="An analysis request needs a 'type' key.", section="analysis request")
    kind = raw["type"]
    if kind not in _REQUEST_SCHEMAS:
        raise ConfigParsingError(
            details=f"Unknown analysis type '{kind}'. Expected one of {sorted(_REQUEST_SCHEMAS)}.",
            section="analysis request"
        )
    body = {k: v for k, v in raw.items() if k != "type"}
    document = _validate(_REQUEST_SCHEMAS[kind], body, f"'{kind}' analysis request")

    request_cls = _REQUEST_TYPES[kind]
    kwargs: Dict[str, Any] = {}
    for f in fields(request_cls):
        if f.name not in document:
            continue
        value = document[f.name]
        rule = _REQUEST_SCHEMAS[kind][f.name]
        if "quantity" in rule:
            value = to_si(value, rule["quantity"])
        elif f.name in ("start", "stop", "step"):
            value = _to_plain_float(value, f.name)
        elif f.name == "initial_solution":
            value = {node: to_si(v, "volt") for node, v in value.items()}
        kwargs[f.name] = value
    request = request_cls(**kwargs)
    logger.debug(f"Parsed analysis request: {request}")
    return request


def _to_plain_float(value: Any, name: str) -> float:
    try:
        return to_si(value, "dimensionless") if isinstance(value, (int, float)) else _strip_units(value)
    except UnitConversionError as e:
        raise ConfigParsingError(details=f"Field '{name}': {e}", section="DC sweep request") from e


def _strip_units(value: str) -> float:
    # Sweep bounds may be volts or amperes depending on the swept source.
    for unit in ("volt", "ampere"):
        try:
            return to_si(value, unit)
        except UnitConversionError:
            continue
    raise UnitConversionError(f"'{value}' is neither a voltage nor a current.")
