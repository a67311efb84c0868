"""
Controller Module - Water-coil controller convergence engine

Components:
- config.py: Immutable configuration, enumerations and constants
- model.py: Controller record and lifecycle (reset, init, calc, save)
- convergence.py: Convergence classifier and humidity override rule
- protocol.py: Calling-sequence state machine
- controller.py: Registry and `run_controller` entry point

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from hvac_controllers.modules.controller.config import (
    AUTOSIZE,
    CW_INIT_CONV_TEMP,
    SMALL_WATER_VOL_FLOW,
    AirLoopConfig,
    CoilType,
    ControlVariable,
    ControllerAction,
    ControllerConfig,
    ConvergenceParams,
    HumidityRatioControlType,
    load_controller_configs,
)
from hvac_controllers.modules.controller.model import (
    ControllerCallResult,
    ControllerMode,
    ControllerModel,
    ControllerOperation,
    ControllerRecord,
    PassPhase,
    RecurringWarning,
    SolutionTracker,
    SolutionTrackerTable,
)
from hvac_controllers.modules.controller.protocol import ControllerProtocol, ProtocolPhase
from hvac_controllers.modules.controller.controller import ControllerManager

__all__ = [
    "AUTOSIZE",
    "CW_INIT_CONV_TEMP",
    "SMALL_WATER_VOL_FLOW",
    "AirLoopConfig",
    "CoilType",
    "ControlVariable",
    "ControllerAction",
    "ControllerConfig",
    "ConvergenceParams",
    "HumidityRatioControlType",
    "load_controller_configs",
    "ControllerCallResult",
    "ControllerMode",
    "ControllerModel",
    "ControllerOperation",
    "ControllerRecord",
    "PassPhase",
    "RecurringWarning",
    "SolutionTracker",
    "SolutionTrackerTable",
    "ControllerProtocol",
    "ProtocolPhase",
    "ControllerManager",
]
