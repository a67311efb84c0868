"""
hvac_controllers - Water coil controller convergence engine

Drives feedback-controlled coil valves toward their setpoints within the
passes of an outer air-loop solver, using a bracket-and-refine root finder,
mode classification and reuse of previous solutions.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

__version__ = "0.1.0"

from hvac_controllers.core.errors import (
    ConfigurationError,
    ControllerError,
    InvariantViolationError,
    ProtocolError,
)
from hvac_controllers.core.node_network import NodeNetwork, PlantLoop, PlantLoops
from hvac_controllers.core.props_service import PropsService, get_props_service
from hvac_controllers.modules.controller import (
    ControllerCallResult,
    ControllerConfig,
    ControllerManager,
    ControllerMode,
    ControllerOperation,
)
from hvac_controllers.modules.root_finder import RootFinder

__all__ = [
    "ConfigurationError",
    "ControllerError",
    "InvariantViolationError",
    "ProtocolError",
    "NodeNetwork",
    "PlantLoop",
    "PlantLoops",
    "PropsService",
    "get_props_service",
    "ControllerCallResult",
    "ControllerConfig",
    "ControllerManager",
    "ControllerMode",
    "ControllerOperation",
    "RootFinder",
]
