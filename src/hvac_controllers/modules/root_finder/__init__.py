"""
Root Finder Module - Generic bracketing scalar equation solver

Components:
- model.py: RootFinder state machine, points, statuses and methods

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from hvac_controllers.modules.root_finder.model import (
    MethodType,
    RootFinder,
    RootFinderControls,
    RootFinderStatus,
    RootPoint,
    SEARCHING_STATUSES,
    SlopeType,
)

__all__ = [
    "MethodType",
    "RootFinder",
    "RootFinderControls",
    "RootFinderStatus",
    "RootPoint",
    "SEARCHING_STATUSES",
    "SlopeType",
]
