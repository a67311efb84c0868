"""Core services shared by the controller engine: properties, node network, errors"""

from hvac_controllers.core.errors import (
    ConfigurationError,
    ControllerError,
    InvariantViolationError,
    ProtocolError,
)
from hvac_controllers.core.node_network import (
    MASS_FLOW_TOLERANCE,
    SENSED_NODE_FLAG_VALUE,
    Node,
    NodeNetwork,
    PlantLocation,
    PlantLoop,
    PlantLoops,
    SetPointKind,
)
from hvac_controllers.core.props_service import PropsService, get_props_service

__all__ = [
    "ConfigurationError",
    "ControllerError",
    "InvariantViolationError",
    "ProtocolError",
    "MASS_FLOW_TOLERANCE",
    "SENSED_NODE_FLAG_VALUE",
    "Node",
    "NodeNetwork",
    "PlantLocation",
    "PlantLoop",
    "PlantLoops",
    "SetPointKind",
    "PropsService",
    "get_props_service",
]
