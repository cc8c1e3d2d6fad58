# src/spicecore/components/capabilities.py
"""
Defines the optional capability architecture for spicecore devices.

Every device implements the core stamping contract (`stamp` and
`update_history`) directly on `ComponentBase`. Behaviour that only some
analyses need is exposed as a queryable capability instead, so that the
analysis drivers never special-case concrete device types:

- IAcContributor: stamps the small-signal, frequency-domain contribution of a
  device linearized at a DC operating point.
- IConnectivityProvider: reports which terminal pairs conduct at DC and which
  terminal pairs have their voltage imposed by a branch equation. The
  TopologyAnalyzer uses this to reject floating nodes and voltage loops before
  any matrix is factorized.
- @provides: class decorator registering a nested class as the implementation
  of a capability, discovered by `ComponentBase.declare_capabilities`.
"""

import logging
from typing import (
    List,
    Protocol,
    Tuple,
    Type,
    TypeVar,
    TYPE_CHECKING,
    runtime_checkable,
)

import numpy as np

if TYPE_CHECKING:
    from .base import ComponentBase
    from ..simulation.mna import MnaSystem

logger = logging.getLogger(__name__)


@runtime_checkable
class ComponentCapability(Protocol):
    """
    A marker protocol for all device capabilities.
    """

    pass


TCapability = TypeVar("TCapability", bound=ComponentCapability)


@runtime_checkable
class IAcContributor(ComponentCapability, Protocol):
    """
    Defines the capability of a device to contribute to a complex, small-signal
    MNA system at a single angular frequency.

    Nonlinear devices linearize around the DC operating point `x_op`; reactive
    devices stamp their `jωC` / `jωL` terms; independent sources stamp their AC
    magnitude and phase (and nothing else, their DC value is not part of the
    small-signal problem).
    """

    def stamp_ac(
        self,
        component: "ComponentBase",
        mna: "MnaSystem",
        x_op: np.ndarray,
        omega: float,
    ) -> None:
        ...


@runtime_checkable
class IConnectivityProvider(ComponentCapability, Protocol):
    """
    Defines the capability of a device to report its DC topology in terms of
    circuit node numbers.
    """

    def get_dc_connectivity(self, component: "ComponentBase") -> List[Tuple[int, int]]:
        """Node pairs joined by a conductive path at DC."""
        ...

    def get_voltage_constraints(self, component: "ComponentBase") -> List[Tuple[int, int]]:
        """Node pairs whose voltage difference is fixed by a branch equation at DC."""
        ...


def provides(capability_protocol: Type[ComponentCapability]):
    """
    A class decorator to register a class as an implementation for a capability.

    The decorator attaches a private attribute, `_implements_capability`, to the
    decorated class, which `ComponentBase.declare_capabilities` uses for discovery.

    Args:
        capability_protocol: The capability Protocol (e.g., IAcContributor)
                             that this class implements.
    """

    def decorator(cls: Type) -> Type:
        if not issubclass(capability_protocol, ComponentCapability):
            raise TypeError(
                f"Decorator argument for @provides must be a ComponentCapability "
                f"Protocol, but got {capability_protocol}."
            )
        cls._implements_capability = capability_protocol
        logger.debug(
            f"Class '{cls.__name__}' registered as providing capability '{capability_protocol.__name__}'."
        )
        return cls

    return decorator
