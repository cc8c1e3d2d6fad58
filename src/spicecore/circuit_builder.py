# src/spicecore/circuit_builder.py
"""
Defines the CircuitBuilder, which assembles a `Circuit` graph in memory.

The builder maps node names to node numbers (every ground alias to node 0),
allocates a branch index to each device that needs a branch-current unknown,
and instantiates devices through the component registry by their type string.
There is no netlist text format: circuits are described programmatically.
"""

import logging
from typing import Any, Dict, List, Sequence

from .components.base import COMPONENT_REGISTRY, ComponentBase, GROUND
from .data_structures import Circuit
from .errors import CircuitBuildError

logger = logging.getLogger(__name__)

GROUND_NAMES = ("0", "gnd")


class CircuitBuilder:
    """
    Incrementally builds a Circuit.

    Example:
        builder = CircuitBuilder("divider")
        builder.add("VoltageSource", "V1", ["in", "gnd"], dc=10)
        builder.add("Resistor", "R1", ["in", "out"], resistance="1 kohm")
        builder.add("Resistor", "R2", ["out", "gnd"], resistance="2 kohm")
        circuit = builder.build()
    """

    def __init__(self, name: str = "circuit"):
        self.name = name
        self._node_map: Dict[str, int] = {name_: GROUND for name_ in GROUND_NAMES}
        self._node_names: List[str] = [GROUND_NAMES[0]]
        self._devices: List[ComponentBase] = []
        self._ids = set()
        self._n_branches = 0

    def node(self, name: Any) -> int:
        """Returns the node number for `name`, allocating a new node on first use."""
        key = str(name)
        if key.lower() in GROUND_NAMES:
            return GROUND
        if key not in self._node_map:
            self._node_map[key] = len(self._node_names)
            self._node_names.append(key)
        return self._node_map[key]

    def add(self, type_str: str, instance_id: str, node_names: Sequence[Any], **kwargs) -> ComponentBase:
        """
        Instantiates a registered device type and appends it to the circuit.

        Args:
            type_str: Registry name, e.g. 'Resistor', 'VoltageSource', 'Mosfet'.
            instance_id: Unique device name.
            node_names: Node names in the device's port order.
            **kwargs: Device parameters (and keywords such as `waveform` or `polarity`).

        Returns:
            The created device.

        Raises:
            CircuitBuildError: For an unknown type or a duplicate name.
            InvalidParametersError: For invalid device parameters.
        """
        cls = COMPONENT_REGISTRY.get(type_str)
        if cls is None:
            raise CircuitBuildError(
                f"Unknown device type '{type_str}'. Available types: {sorted(COMPONENT_REGISTRY)}."
            )
        if instance_id in self._ids:
            raise CircuitBuildError(f"Duplicate device name '{instance_id}'.")

        nodes = [self.node(n) for n in node_names]
        branch = None
        if cls.num_branches:
            branch = self._n_branches
        device = cls(instance_id, nodes, branch, **kwargs)
        if branch is not None:
            self._n_branches += cls.num_branches

        self._ids.add(instance_id)
        self._devices.append(device)
        logger.debug(f"Added {type_str} '{instance_id}' on nodes {list(node_names)} -> {nodes}")
        return device

    def build(self) -> Circuit:
        circuit = Circuit(
            name=self.name,
            n_nodes=len(self._node_names) - 1,
            n_branches=self._n_branches,
            devices=tuple(self._devices),
            node_names=tuple(self._node_names),
        )
        logger.info(
            f"Built circuit '{self.name}' with {len(self._devices)} device(s), "
            f"{circuit.n_nodes} node(s) and {circuit.n_branches} branch(es)."
        )
        return circuit
