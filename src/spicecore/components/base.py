# src/spicecore/components/base.py

import logging
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple, Type, TYPE_CHECKING

import numpy as np

from ..units import to_si, UnitConversionError
from .capabilities import (
    ComponentCapability, TCapability, IConnectivityProvider, provides
)
from .exceptions import InvalidParametersError

if TYPE_CHECKING:
    from ..simulation.mna import MnaSystem


logger = logging.getLogger(__name__)

#: Node number of the reference node. It is never an unknown of the MNA system.
GROUND = 0

# (controlling node pair, partial derivative, controlling voltage at the linearization point)
Partial = Tuple[Tuple[int, int], float, float]


def node_voltage(x: np.ndarray, node: int) -> float:
    """Voltage of a circuit node in a solution vector; ground is always 0 V."""
    return 0.0 if node == GROUND else x[node - 1]


@dataclass
class StampContext:
    """
    Describes the problem a device is being stamped into for one Newton iteration.

    Attributes:
        mode: 'dc' for operating points and sweeps, 'tran' for a transient timestep.
        time: Simulation time of the point being solved (transient only).
        h: Timestep from the last accepted point (transient only).
        method: Integration method, 'be' (backward Euler) or 'trap' (trapezoidal).
        gmin: Shunt conductance stamped from every node to ground.
        source_scale: Factor applied to every independent source (source stepping).
        source_overrides: DC values replacing the nominal value of named sources
                          (DC sweep). Device parameters themselves are never modified.
        limited: Set by nonlinear devices when junction limiting altered the
                 voltage they were evaluated at; such an iteration cannot be
                 declared converged.
        n_nodes: Number of non-ground nodes. Branch unknown b sits at x[n_nodes + b].
    """
    mode: str = "dc"
    time: float = 0.0
    h: float = 0.0
    method: str = "trap"
    gmin: float = 1.0e-12
    source_scale: float = 1.0
    source_overrides: Mapping[str, float] = field(default_factory=dict)
    limited: bool = False
    n_nodes: int = 0

    @property
    def is_transient(self) -> bool:
        return self.mode == "tran"

    def branch_current(self, x: np.ndarray, branch: int) -> float:
        return x[self.n_nodes + branch]


def stamp_linearized_current(
    mna: "MnaSystem",
    out_p: int,
    out_n: int,
    current: float,
    partials: Sequence[Partial],
) -> None:
    """
    Stamps the companion model of a nonlinear current flowing from `out_p` to
    `out_n` through a device.

    The current is replaced by its tangent at the linearization point,
    I(V) ~ I0 + sum_j g_j * (v_j - v_j0), which stamps as one transconductance per
    controlling voltage plus a constant current source I0 - sum_j g_j * v_j0.
    When the controlling pair equals the output pair this is an ordinary conductance.
    """
    equivalent = current
    for (ctrl_p, ctrl_n), g, v0 in partials:
        mna.stamp_transconductance(out_p, out_n, ctrl_p, ctrl_n, g)
        equivalent -= g * v0
    mna.stamp_current_source(out_p, out_n, equivalent)


class ComponentBase(ABC):
    """
    The abstract base class for all circuit devices in spicecore.

    A device is created with its terminal node numbers, its branch index (for
    devices that add a branch-current unknown) and its static parameters. The
    parameters are resolved to SI floats once, validated, and frozen into a
    read-only mapping; the solver only ever mutates a device's history state.

    The core capability set used by every analysis is:
    - `stamp(mna, x, ctx)`: add this device's (linearized) contribution to the
      MNA system, given the present solution estimate `x`.
    - `update_history(x, ctx)`: record time-history state after an accepted
      timestep, or initialize it from an operating point when `ctx.mode == 'dc'`.

    Analysis-specific behaviour (AC small-signal stamps, DC topology) is exposed
    through the queryable capability system.
    """
    component_type_str: ClassVar[str] = "BaseComponent"

    #: Number of branch-current unknowns this device adds to the MNA system.
    num_branches: ClassVar[int] = 0
    #: True when the device's stamp depends on the solution estimate.
    is_nonlinear: ClassVar[bool] = False
    #: True when the device carries time-history state between timesteps.
    is_reactive: ClassVar[bool] = False
    #: Default values for optional parameters; parameters without a default are required.
    parameter_defaults: ClassVar[Dict[str, Any]] = {}

    def __init__(
        self,
        instance_id: str,
        nodes: Sequence[int],
        branch: Optional[int] = None,
        **params: Any,
    ):
        """
        Initializes the base attributes of a device instance.

        Args:
            instance_id: The unique name of this instance (e.g., 'R1').
            nodes: Circuit node numbers, one per declared port, in port order.
            branch: Branch index for devices with `num_branches == 1`.
            **params: Static parameters as floats (SI), pint Quantities or strings.

        Raises:
            InvalidParametersError: For a wrong terminal count, a missing or
                                    unexpected branch, an unknown or missing
                                    parameter, or a physically invalid value.
        """
        self.instance_id: str = instance_id

        ports = type(self).declare_ports()
        try:
            node_tuple = tuple(int(n) for n in nodes)
        except (TypeError, ValueError) as e:
            raise InvalidParametersError(component_fqn=instance_id, details=f"Node list {nodes!r} is not a sequence of integers.") from e
        if len(node_tuple) != len(ports):
            raise InvalidParametersError(
                component_fqn=instance_id,
                details=f"{type(self).__name__} has ports {ports} but was connected to {len(node_tuple)} node(s)."
            )
        if any(n < 0 for n in node_tuple):
            raise InvalidParametersError(component_fqn=instance_id, details=f"Node numbers must be non-negative, got {node_tuple}.")
        self.nodes: Tuple[int, ...] = node_tuple

        if self.num_branches and branch is None:
            raise InvalidParametersError(component_fqn=instance_id, details=f"{type(self).__name__} requires a branch index.")
        if not self.num_branches and branch is not None:
            raise InvalidParametersError(component_fqn=instance_id, details=f"{type(self).__name__} does not use a branch current.")
        self.branch: Optional[int] = branch

        self.params: Mapping[str, float] = MappingProxyType(self._resolve_parameters(params))
        self.validate_parameters()

        self._capability_cache: Dict[Type[ComponentCapability], ComponentCapability] = {}
        self.reset_state()
        logger.debug(f"Initialized {type(self).__name__} '{self.fqn}' on nodes {self.nodes}")

    @property
    def fqn(self) -> str:
        """The name used for this instance in diagnostics."""
        return self.instance_id

    def _resolve_parameters(self, raw_params: Dict[str, Any]) -> Dict[str, float]:
        declared = type(self).declare_parameters()
        unknown = sorted(set(raw_params) - set(declared))
        if unknown:
            raise InvalidParametersError(
                component_fqn=self.fqn,
                details=f"Unknown parameter(s) {unknown}. {type(self).__name__} accepts {sorted(declared)}."
            )

        resolved: Dict[str, float] = {}
        for name, unit in declared.items():
            if name in raw_params:
                raw = raw_params[name]
            elif name in self.parameter_defaults:
                raw = self.parameter_defaults[name]
            else:
                raise InvalidParametersError(component_fqn=self.fqn, details=f"Required parameter '{name}' is missing.")
            try:
                value = to_si(raw, unit)
            except UnitConversionError as e:
                raise InvalidParametersError(component_fqn=self.fqn, details=f"Parameter '{name}': {e}") from e
            if np.isnan(value):
                raise InvalidParametersError(component_fqn=self.fqn, details=f"Parameter '{name}' is NaN.")
            resolved[name] = value
        return resolved

    def _require(self, condition: bool, details: str) -> None:
        if not condition:
            raise InvalidParametersError(component_fqn=self.fqn, details=details)

    def validate_parameters(self) -> None:
        """Checks the resolved parameters against their physically valid domain."""
        pass

    def reset_state(self) -> None:
        """Clears all history and iteration state; called at the start of every analysis run."""
        pass

    @abstractmethod
    def stamp(self, mna: "MnaSystem", x: np.ndarray, ctx: StampContext) -> None:
        """Adds this device's contribution, linearized at `x`, to the MNA system."""
        pass

    def update_history(self, x: np.ndarray, ctx: StampContext) -> None:
        """Records history state for an accepted solution `x`. Memoryless devices ignore it."""
        pass

    @provides(IConnectivityProvider)
    class ConnectivityProvider:
        """
        Default implementation of the IConnectivityProvider capability: every
        pair of terminals conducts at DC and no terminal voltage is imposed.
        Devices that are open at DC, or that impose a branch voltage, override it.
        """
        def get_dc_connectivity(self, component: "ComponentBase") -> List[Tuple[int, int]]:
            nodes = component.nodes
            return [(nodes[i], nodes[j]) for i in range(len(nodes)) for j in range(i + 1, len(nodes))]

        def get_voltage_constraints(self, component: "ComponentBase") -> List[Tuple[int, int]]:
            return []

    @classmethod
    def declare_capabilities(cls) -> Dict[Type[ComponentCapability], Type]:
        """
        Discovers the capabilities map by inspecting the class hierarchy (MRO)
        for nested classes decorated with `@provides`. A capability declared on a
        subclass shadows the same capability declared on a parent class.
        """
        discovered_capabilities = {}
        for base_class in cls.__mro__:
            for _, member_obj in inspect.getmembers(base_class):
                if hasattr(member_obj, '_implements_capability'):
                    protocol = member_obj._implements_capability
                    if protocol not in discovered_capabilities:
                        discovered_capabilities[protocol] = member_obj
        return discovered_capabilities

    def get_capability(self, capability_type: Type[TCapability]) -> Optional[TCapability]:
        """
        Queries the device instance for a specific capability, instantiating the
        implementation lazily and caching it per instance.

        Returns:
            An instance of the capability implementation if supported, otherwise `None`.
        """
        if capability_type in self._capability_cache:
            return self._capability_cache[capability_type]

        declared = type(self).declare_capabilities()
        impl_class = declared.get(capability_type)

        if impl_class:
            instance = impl_class()
            self._capability_cache[capability_type] = instance
            return instance

        return None

    @classmethod
    @abstractmethod
    def declare_parameters(cls) -> Dict[str, str]:
        """Declare numeric parameter names and the SI unit each is stored in."""
        pass

    @classmethod
    @abstractmethod
    def declare_ports(cls) -> List[str]:
        """Declare the names of the device's terminals, in the order nodes are given."""
        pass

    def __str__(self) -> str:
        return f"{type(self).__name__}('{self.fqn}')"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(fqn='{self.fqn}', nodes={self.nodes})"


# --- Global Component Registry and Decorator ---

COMPONENT_REGISTRY: Dict[str, type[ComponentBase]] = {}


def register_component(type_str: str):
    """
    A class decorator to register a device class in the closed device registry,
    making it available to the CircuitBuilder by its type string.
    """
    def decorator(cls: type[ComponentBase]):
        if not issubclass(cls, ComponentBase):
            raise TypeError(f"Class {cls.__name__} must inherit from ComponentBase.")

        ports = cls.declare_ports()
        if not isinstance(ports, list) or not all(isinstance(p, str) and p for p in ports):
            raise TypeError(
                f"Component class '{cls.__name__}' violates API contract. "
                f"declare_ports() must return a list of non-empty strings, but returned: {ports}."
            )
        if len(set(ports)) != len(ports):
            raise TypeError(
                f"Component class '{cls.__name__}' violates API contract. "
                f"declare_ports() must return a list of unique strings, but found duplicates in: {ports}."
            )

        params = cls.declare_parameters()
        if not isinstance(params, dict) or not all(isinstance(k, str) and isinstance(v, str) for k, v in params.items()):
            raise TypeError(
                f"Component class '{cls.__name__}' violates API contract. "
                f"declare_parameters() must return a Dict[str, str], but returned a value of type '{type(params).__name__}'."
            )
        undeclared_defaults = set(cls.parameter_defaults) - set(params)
        if undeclared_defaults:
            raise TypeError(
                f"Component class '{cls.__name__}' declares defaults for unknown parameters {sorted(undeclared_defaults)}."
            )

        if type_str in COMPONENT_REGISTRY:
            logger.warning(f"Component type '{type_str}' is being redefined/overwritten.")
        cls.component_type_str = type_str
        COMPONENT_REGISTRY[type_str] = cls
        logger.debug(f"Registered component type '{type_str}' -> {cls.__name__}")
        return cls
    return decorator
