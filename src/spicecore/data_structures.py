# src/spicecore/data_structures.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Tuple, TYPE_CHECKING

from .components.base import GROUND
from .errors import CircuitBuildError

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from .components.base import ComponentBase


@dataclass(frozen=True)
class Circuit:
    """
    The circuit graph: every device instance with its node and branch assignment.

    Nodes are numbered 0..n_nodes with node 0 the ground reference. Branches
    (one per voltage source or inductor) are numbered 0..n_branches-1. The
    device order is the stamping order, which keeps every analysis of the same
    circuit bit-for-bit reproducible.

    The circuit owns its devices. Analyses borrow them and mutate only their
    history state, never their parameters.
    """
    name: str
    n_nodes: int
    n_branches: int
    devices: Tuple[ComponentBase, ...]
    # Optional names indexed by node number; node_names[0] names ground.
    node_names: Tuple[str, ...] = field(default=())

    def __post_init__(self):
        object.__setattr__(self, "devices", tuple(self.devices))
        object.__setattr__(self, "node_names", tuple(self.node_names))
        self._validate()
        object.__setattr__(self, "_by_name", {d.instance_id: d for d in self.devices})
        logger.debug(
            f"Circuit '{self.name}' assembled: {self.n_nodes} node(s), {self.n_branches} branch(es), "
            f"{len(self.devices)} device(s)."
        )

    def _validate(self) -> None:
        if self.n_nodes < 0 or self.n_branches < 0:
            raise CircuitBuildError(f"Circuit '{self.name}': node and branch counts must be non-negative.")
        if self.node_names and len(self.node_names) != self.n_nodes + 1:
            raise CircuitBuildError(
                f"Circuit '{self.name}': {len(self.node_names)} node name(s) given for {self.n_nodes + 1} node(s) including ground."
            )

        seen_ids = set()
        branches = []
        for device in self.devices:
            if device.instance_id in seen_ids:
                raise CircuitBuildError(f"Circuit '{self.name}': duplicate device name '{device.instance_id}'.")
            seen_ids.add(device.instance_id)
            bad = [n for n in device.nodes if n > self.n_nodes]
            if bad:
                raise CircuitBuildError(
                    f"Circuit '{self.name}': device '{device.instance_id}' references node(s) {bad} "
                    f"but the circuit has nodes 0..{self.n_nodes}."
                )
            if device.branch is not None:
                branches.append(device.branch)

        if sorted(branches) != list(range(self.n_branches)):
            raise CircuitBuildError(
                f"Circuit '{self.name}': branch indices {sorted(branches)} must be unique and cover 0..{self.n_branches - 1}."
            )

    @property
    def size(self) -> int:
        """Dimension of the MNA system."""
        return self.n_nodes + self.n_branches

    @property
    def is_nonlinear(self) -> bool:
        return any(d.is_nonlinear for d in self.devices)

    def device(self, name: str) -> ComponentBase:
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"Circuit '{self.name}' has no device named '{name}'.") from None

    def node_index(self, name: str) -> int:
        """Node number of a named node."""
        if name in self.node_names:
            return self.node_names.index(name)
        raise KeyError(f"Circuit '{self.name}' has no node named '{name}'.")

    def node_name(self, node: int) -> str:
        if self.node_names:
            return self.node_names[node]
        return "0" if node == GROUND else str(node)

    def unknown_name(self, index: int) -> str:
        """Readable name of a solution-vector entry, e.g. 'V(out)' or 'I(V1)'."""
        if index < self.n_nodes:
            return f"V({self.node_name(index + 1)})"
        branch = index - self.n_nodes
        for device in self.devices:
            if device.branch == branch:
                return f"I({device.instance_id})"
        return f"I(branch {branch})"
