# --- src/spicecore/components/__init__.py ---
import logging
logger = logging.getLogger(__name__)

# Import base first to define registry and decorator
from .base import (
    ComponentBase, COMPONENT_REGISTRY, GROUND, StampContext, register_component, stamp_linearized_current
)
from .capabilities import IAcContributor, IConnectivityProvider, provides
from .exceptions import InvalidParametersError
# Import concrete devices to trigger registration
from .elements import Resistor, Capacitor, Inductor, IndependentSource, VoltageSource, CurrentSource
from .semiconductors import Diode, Bjt, Mosfet
from .waveforms import Waveform, Pulse, Sine, Pwl

logger.debug(f"Available component types: {list(COMPONENT_REGISTRY.keys())}")

__all__ = [
    "ComponentBase",
    "COMPONENT_REGISTRY",
    "GROUND",
    "StampContext",
    "register_component",
    "stamp_linearized_current",
    "IAcContributor",
    "IConnectivityProvider",
    "provides",
    "InvalidParametersError",
    "Resistor",
    "Capacitor",
    "Inductor",
    "IndependentSource",
    "VoltageSource",
    "CurrentSource",
    "Diode",
    "Bjt",
    "Mosfet",
    "Waveform",
    "Pulse",
    "Sine",
    "Pwl",
]
