# src/spicecore/analysis/topology.py

"""
Structural checks run before any matrix is factorized.

Two topologies make the MNA matrix singular no matter what the device values
are, and are rejected up front with an error that names the culprit:

- a node without a conductive DC path to ground (only capacitors or current
  sources attached, or an isolated subcircuit);
- a loop made only of branches whose voltage is imposed (voltage sources and,
  at DC, inductors).
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

import networkx as nx

from ..components.base import GROUND
from ..components.capabilities import IConnectivityProvider
from ..data_structures import Circuit
from ..simulation.exceptions import SingularMatrixError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TopologyReport:
    """Result of a successful topology check."""
    n_components: int
    constraint_edges: Tuple[Tuple[int, int], ...]


class TopologyAnalyzer:
    """
    Checks a circuit graph for structurally singular configurations, querying
    every device only through its `IConnectivityProvider` capability.
    """
    def __init__(self, circuit: Circuit):
        if not isinstance(circuit, Circuit):
            raise TypeError("TopologyAnalyzer requires a Circuit object.")
        self.circuit = circuit

    def check(self, dc: bool = True) -> TopologyReport:
        """
        Runs both checks.

        Args:
            dc: True when a DC solution is required. When False (a transient run
                from a supplied initial state), reactive devices conduct through
                their companion models and inductors impose no voltage.

        Raises:
            SingularMatrixError: Naming the floating nodes or the device closing
                                 a voltage loop.
        """
        graph = self._build_dc_graph(dc)
        floating = sorted(n for n in graph.nodes if n != GROUND and not nx.has_path(graph, n, GROUND))
        if floating:
            names = [self.circuit.node_name(n) for n in floating]
            logger.error(f"Circuit '{self.circuit.name}': node(s) {names} have no DC path to ground.")
            raise SingularMatrixError(details=f"Node(s) {names} have no DC path to ground.")

        edges = self._check_voltage_loops(dc)
        report = TopologyReport(n_components=nx.number_connected_components(graph), constraint_edges=tuple(edges))
        logger.debug(f"Topology check passed for '{self.circuit.name}': {report}")
        return report

    def _build_dc_graph(self, dc: bool) -> nx.Graph:
        graph = nx.Graph()
        graph.add_nodes_from(range(self.circuit.n_nodes + 1))
        for device in self.circuit.devices:
            if not dc and device.is_reactive:
                pairs = [(device.nodes[0], device.nodes[1])]
            else:
                provider = device.get_capability(IConnectivityProvider)
                pairs = provider.get_dc_connectivity(device) if provider else []
            graph.add_edges_from(pairs)
        return graph

    def _check_voltage_loops(self, dc: bool) -> List[Tuple[int, int]]:
        constraints = nx.Graph()
        edges: List[Tuple[int, int]] = []
        for device in self.circuit.devices:
            if not dc and device.is_reactive:
                continue
            provider = device.get_capability(IConnectivityProvider)
            if provider is None:
                continue
            for n1, n2 in provider.get_voltage_constraints(device):
                if n1 == n2 or (n1 in constraints and n2 in constraints and nx.has_path(constraints, n1, n2)):
                    logger.error(f"Device '{device.fqn}' closes a loop of voltage-defined branches.")
                    raise SingularMatrixError(
                        details=(
                            f"Device '{device.fqn}' closes a loop of voltage sources and/or inductors between "
                            f"nodes '{self.circuit.node_name(n1)}' and '{self.circuit.node_name(n2)}'."
                        )
                    )
                constraints.add_edge(n1, n2)
                edges.append((n1, n2))
        return edges
