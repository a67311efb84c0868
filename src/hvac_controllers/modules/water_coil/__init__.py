"""
Water Coil Module - Effectiveness-NTU water coil plant

Components:
- model.py: Coil model (heating/cooling, dehumidification, flow solve)

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from hvac_controllers.modules.water_coil.model import WaterCoilModel, WaterCoilResult

__all__ = [
    "WaterCoilModel",
    "WaterCoilResult",
]
