"""
Air Loop Module - Outer driver of the controller engine

Components:
- model.py: Air loop components evaluated on the node network, results
- controller.py: Cold start / iterate / end calling sequence

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from hvac_controllers.modules.air_loop.model import (
    AirLoopModel,
    AirLoopResult,
    ControllerStepResult,
)
from hvac_controllers.modules.air_loop.controller import AirLoopController

__all__ = [
    "AirLoopModel",
    "AirLoopResult",
    "ControllerStepResult",
    "AirLoopController",
]
