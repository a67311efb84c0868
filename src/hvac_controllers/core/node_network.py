"""
NodeNetwork - Air/water node network shared with the controllers

This module defines the node and plant-loop representation that the outer
simulation owns. The controller engine reads sensed values, setpoints and
available flow bounds from it and writes actuated flows back through
`NodeNetwork.set_actuated_flow`.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple


# Value of an unset node setpoint
SENSED_NODE_FLAG_VALUE = -999.0

# Flows below this threshold are treated as zero [kg/s]
MASS_FLOW_TOLERANCE = 1.0e-9


class SetPointKind(Enum):
    """Setpoint fields carried by a node."""
    TEMPERATURE = "temp_set_point"
    HUMIDITY_RATIO = "hum_rat_set_point"
    MAX_HUMIDITY_RATIO = "hum_rat_max"
    MASS_FLOW_RATE = "mass_flow_rate_set_point"


@dataclass
class Node:
    """
    State of one network node.

    Attributes:
        name: Node name
        temp: Temperature [°C]
        hum_rat: Humidity ratio [kg water/kg dry air]
        mass_flow_rate: Mass flow rate [kg/s]
        mass_flow_rate_min: Hard minimum flow [kg/s]
        mass_flow_rate_max: Hard maximum flow [kg/s]
        mass_flow_rate_min_avail: Minimum available flow this step [kg/s]
        mass_flow_rate_max_avail: Maximum available flow this step [kg/s]
        mass_flow_rate_request: Last flow requested by a controller [kg/s]
        temp_set_point, hum_rat_set_point, hum_rat_max,
        mass_flow_rate_set_point: Setpoints, SENSED_NODE_FLAG_VALUE if unset
    """
    name: str
    temp: float = 0.0
    hum_rat: float = 0.0
    mass_flow_rate: float = 0.0
    mass_flow_rate_min: float = 0.0
    mass_flow_rate_max: float = float("inf")
    mass_flow_rate_min_avail: float = 0.0
    mass_flow_rate_max_avail: float = float("inf")
    mass_flow_rate_request: float = 0.0
    temp_set_point: float = SENSED_NODE_FLAG_VALUE
    hum_rat_set_point: float = SENSED_NODE_FLAG_VALUE
    hum_rat_max: float = SENSED_NODE_FLAG_VALUE
    mass_flow_rate_set_point: float = SENSED_NODE_FLAG_VALUE


@dataclass(frozen=True)
class PlantLocation:
    """Position of a node on a plant loop (loop, side, branch)."""
    loop: int
    side: str
    branch: int


@dataclass
class PlantLoop:
    """
    A plant loop with its branches, flow-lock and resimulation state.

    Attributes:
        name: Loop name
        fluid: CoolProp fluid string of the loop fluid
        branches: Node ids of each branch, keyed by loop side
        flow_locked: Flow-lock state per loop side
        sim_needed: Loop sides whose flow request changed since the last
            plant solution
    """
    name: str
    fluid: str = "Water"
    branches: Dict[str, List[List[int]]] = field(default_factory=dict)
    flow_locked: Dict[str, bool] = field(default_factory=dict)
    sim_needed: Dict[str, bool] = field(default_factory=dict)


class PlantLoops:
    """Registry of plant loops answering location and flow-lock queries."""

    def __init__(self):
        self.loops: List[PlantLoop] = []

    def add_loop(self, loop: PlantLoop) -> int:
        """Register a loop and return its index."""
        self.loops.append(loop)
        return len(self.loops) - 1

    def scan_for_node(self, node_id: int) -> Optional[PlantLocation]:
        """
        Find the plant location of a node.

        Args:
            node_id: Node index in the network

        Returns:
            PlantLocation, or None if the node is not on any plant loop
        """
        for loop_num, loop in enumerate(self.loops):
            for side, branches in loop.branches.items():
                for branch_num, branch_nodes in enumerate(branches):
                    if node_id in branch_nodes:
                        return PlantLocation(loop_num, side, branch_num)
        return None

    def is_flow_locked(self, location: PlantLocation) -> bool:
        """Return True if flow on the given loop side cannot change."""
        return self.loops[location.loop].flow_locked.get(location.side, False)

    def set_flow_lock(self, loop: int, side: str, locked: bool) -> None:
        """Lock or unlock flow on one side of a loop."""
        self.loops[loop].flow_locked[side] = locked

    def is_sim_needed(self, loop: int, side: str) -> bool:
        """Return True if a controller changed its flow request on the side."""
        return self.loops[loop].sim_needed.get(side, False)

    def clear_sim_needed(self) -> None:
        """Acknowledge every pending resimulation request."""
        for plant_loop in self.loops:
            plant_loop.sim_needed.clear()

    def fluid_for(self, location: Optional[PlantLocation]) -> Optional[str]:
        """Return the loop fluid for a location, None if not on a loop."""
        if location is None:
            return None
        return self.loops[location.loop].fluid


SetPointProvider = Callable[[], float]


class NodeNetwork:
    """
    Named node network.

    Owns the nodes, the plant loops, and optional setpoint override
    providers (e.g. EMS actuators) that take precedence over node
    setpoint fields.
    """

    def __init__(self, plant_loops: Optional[PlantLoops] = None):
        self.nodes: List[Node] = []
        self._index: Dict[str, int] = {}
        self.plant_loops = plant_loops if plant_loops is not None else PlantLoops()
        self._set_point_providers: Dict[Tuple[int, SetPointKind], SetPointProvider] = {}

    def add_node(self, name: str, **values) -> int:
        """
        Add a node and return its id.

        Raises:
            ValueError: If a node with the same name exists
        """
        key = name.upper()
        if key in self._index:
            raise ValueError(f"Duplicate node name: {name}")
        self.nodes.append(Node(name=name, **values))
        self._index[key] = len(self.nodes) - 1
        return self._index[key]

    def node_id(self, name: str) -> int:
        """
        Resolve a node name (case-insensitive) to its id.

        Raises:
            KeyError: If the node does not exist
        """
        try:
            return self._index[name.upper()]
        except KeyError:
            raise KeyError(f"Unknown node: {name}") from None

    def __getitem__(self, node_id: int) -> Node:
        return self.nodes[node_id]

    def __len__(self) -> int:
        return len(self.nodes)

    # ========== Setpoints ==========

    def register_set_point_provider(self, node_id: int, kind: SetPointKind,
                                    provider: SetPointProvider) -> None:
        """Register an override provider for one setpoint of a node."""
        self._set_point_providers[(node_id, kind)] = provider

    def has_set_point_provider(self, node_id: int, kind: SetPointKind) -> bool:
        return (node_id, kind) in self._set_point_providers

    def get_set_point(self, node_id: int, kind: SetPointKind) -> float:
        """
        Current setpoint of a node.

        Override providers win over the node field.
        """
        provider = self._set_point_providers.get((node_id, kind))
        if provider is not None:
            return float(provider())
        return getattr(self.nodes[node_id], kind.value)

    def has_set_point(self, node_id: int, kind: SetPointKind) -> bool:
        """Return True if a setpoint is available for the node."""
        if self.has_set_point_provider(node_id, kind):
            return True
        return getattr(self.nodes[node_id], kind.value) != SENSED_NODE_FLAG_VALUE

    # ========== Actuated flow ==========

    def set_actuated_flow(self, node_id: int, flow: float,
                          location: Optional[PlantLocation] = None,
                          reset: bool = False) -> float:
        """
        Write an actuated mass flow rate to a node.

        Nodes on an unlocked plant loop are bounded by their available and
        hard limits, and tiny flows are zeroed. A locked loop keeps the flow
        imposed by the plant solver, reset or not. A real (non-reset) request
        that changes a positive flow on an unlocked loop marks the loop side
        for resimulation.

        Args:
            node_id: Actuated node id
            flow: Requested mass flow rate [kg/s]
            location: Plant location of the node, None if not on a loop
            reset: True for a no-flow reset rather than a real request

        Returns:
            Mass flow rate actually written [kg/s]
        """
        node = self.nodes[node_id]
        if location is None:
            node.mass_flow_rate = flow
            return node.mass_flow_rate

        loop = self.plant_loops.loops[location.loop]
        locked = self.plant_loops.is_flow_locked(location)
        previous_request = node.mass_flow_rate_request
        node.mass_flow_rate_request = flow
        if (not reset and not locked and previous_request > 0.0 and flow > 0.0
                and abs(previous_request - flow) > MASS_FLOW_TOLERANCE):
            loop.sim_needed[location.side] = True

        if locked:
            return node.mass_flow_rate

        value = max(node.mass_flow_rate_min_avail, flow)
        value = max(node.mass_flow_rate_min, value)
        value = min(node.mass_flow_rate_max_avail, value)
        value = min(node.mass_flow_rate_max, value)
        if value < MASS_FLOW_TOLERANCE:
            value = 0.0
        node.mass_flow_rate = value
        return value
