"""
Air Loop Model - Enclosing network evaluated between controller iterations

An air loop is an ordered list of components (e.g. water coils) simulated
in flow order on the shared node network. Each call to `simulate()` is one
evaluation of the enclosing network.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List

from hvac_controllers.core.node_network import NodeNetwork
from hvac_controllers.modules.controller.config import AirLoopConfig
from hvac_controllers.modules.controller.model import ControllerMode


Component = Callable[[NodeNetwork], object]


@dataclass
class ControllerStepResult:
    """
    Per-controller outcome of an air loop pass.

    Attributes:
        converged: True if the controller converged within the iteration cap
        mode: Final mode, NONE when the iteration cap was exhausted
        actuated_flow: Actuated mass flow rate after the pass [kg/s]
        iterations: Number of Iterate calls
    """
    converged: bool
    mode: ControllerMode
    actuated_flow: float
    iterations: int


@dataclass
class AirLoopResult:
    """
    Outcome of one time step of an air loop.

    Attributes:
        converged: True if every controller passed its End check
        passes: Number of outer-loop passes performed
        simulations: Number of network evaluations
        controllers: Results by controller name
    """
    converged: bool
    passes: int
    simulations: int
    controllers: Dict[str, ControllerStepResult] = field(default_factory=dict)


class AirLoopModel:
    """Ordered set of components simulated on the node network."""

    def __init__(self, network: NodeNetwork, config: AirLoopConfig,
                 components: List[Component]):
        self.network = network
        self.config = config
        self.components = list(components)
        self.num_simulations = 0

    def simulate(self) -> None:
        """Evaluate every component in flow order."""
        for component in self.components:
            component(self.network)
        self.num_simulations += 1
