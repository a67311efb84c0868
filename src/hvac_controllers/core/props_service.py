"""
PropsService - Singleton wrapper for CoolProp

This service centralizes the thermophysical property calculations needed by
the controllers (water density for flow conversion) and by the coil plant
(liquid and moist-air properties).

Author: HVAC Controllers Project
Date: 2026-10-18
"""

import logging
from typing import Optional
from CoolProp.CoolProp import PropsSI, HAPropsSI


# Standard atmospheric pressure [Pa]
P_ATM = 101325.0


class PropsService:
    """
    Singleton service for thermodynamic property calculations via CoolProp.

    All property calculations must go through this service to ensure:
    - Consistent error handling
    - Centralized logging
    - Single point of thermodynamic computation

    Liquid properties are calculated for water by default. Moist-air
    properties are per kilogram of dry air.
    """

    _instance: Optional['PropsService'] = None
    _initialized: bool = False

    def __new__(cls) -> 'PropsService':
        """Ensure only one instance exists (Singleton pattern)."""
        if cls._instance is None:
            cls._instance = super(PropsService, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize logger only once."""
        if not PropsService._initialized:
            self.logger = logging.getLogger(__name__)
            self.fluid = "Water"
            PropsService._initialized = True

    def _safe_call(self, output: str, input1_name: str, input1_val: float,
                   input2_name: str, input2_val: float,
                   fluid: Optional[str] = None) -> float:
        """
        Safe wrapper for CoolProp PropsSI calls with error handling.

        Args:
            output: Output property name (e.g., 'D', 'C')
            input1_name: First input property name (e.g., 'T')
            input1_val: First input value
            input2_name: Second input property name
            input2_val: Second input value
            fluid: CoolProp fluid string, defaults to water

        Returns:
            Calculated property value

        Raises:
            ValueError: If CoolProp calculation fails or inputs are invalid
        """
        fluid = fluid or self.fluid
        try:
            return PropsSI(output, input1_name, input1_val,
                           input2_name, input2_val, fluid)
        except Exception as e:
            error_msg = (
                f"CoolProp error: {output} ({fluid}) | "
                f"{input1_name}={input1_val:.4g}, {input2_name}={input2_val:.4g} | "
                f"Error: {str(e)}"
            )
            self.logger.error(error_msg)
            raise ValueError(error_msg) from e

    def _safe_ha_call(self, output: str, input1_name: str, input1_val: float,
                      input2_name: str, input2_val: float,
                      input3_name: str, input3_val: float) -> float:
        """
        Safe wrapper for CoolProp HAPropsSI (humid air) calls.

        Raises:
            ValueError: If CoolProp calculation fails or inputs are invalid
        """
        try:
            return HAPropsSI(output, input1_name, input1_val,
                             input2_name, input2_val, input3_name, input3_val)
        except Exception as e:
            error_msg = (
                f"CoolProp error: {output} (HumidAir) | "
                f"{input1_name}={input1_val:.4g}, {input2_name}={input2_val:.4g}, "
                f"{input3_name}={input3_val:.4g} | Error: {str(e)}"
            )
            self.logger.error(error_msg)
            raise ValueError(error_msg) from e

    # ========== Liquid properties ==========

    def rho_T(self, T: float, P: float = P_ATM, fluid: Optional[str] = None) -> float:
        """
        Calculate liquid density at given temperature.

        Args:
            T: Temperature [K]
            P: Pressure [Pa]
            fluid: CoolProp fluid string (default: water)

        Returns:
            Density [kg/m³]
        """
        return self._safe_call('D', 'T', T, 'P', P, fluid)

    def cp_T(self, T: float, P: float = P_ATM, fluid: Optional[str] = None) -> float:
        """
        Calculate liquid specific heat at given temperature.

        Args:
            T: Temperature [K]
            P: Pressure [Pa]
            fluid: CoolProp fluid string (default: water)

        Returns:
            Specific heat [J/kg/K]
        """
        return self._safe_call('C', 'T', T, 'P', P, fluid)

    # ========== Moist air properties ==========

    def W_TR(self, T: float, RH: float, P: float = P_ATM) -> float:
        """
        Calculate humidity ratio from dry-bulb temperature and relative humidity.

        Args:
            T: Dry-bulb temperature [K]
            RH: Relative humidity [-] (0..1)
            P: Pressure [Pa]

        Returns:
            Humidity ratio [kg water/kg dry air]
        """
        if not (0.0 <= RH <= 1.0):
            raise ValueError(f"Relative humidity must be in [0, 1], got RH={RH:.4f}")
        return self._safe_ha_call('W', 'T', T, 'R', RH, 'P', P)

    def Wsat_T(self, T: float, P: float = P_ATM) -> float:
        """
        Calculate saturation humidity ratio at given temperature.

        Args:
            T: Dry-bulb temperature [K]
            P: Pressure [Pa]

        Returns:
            Saturation humidity ratio [kg water/kg dry air]
        """
        return self._safe_ha_call('W', 'T', T, 'R', 1.0, 'P', P)

    def cp_TW(self, T: float, W: float, P: float = P_ATM) -> float:
        """
        Calculate moist air specific heat per unit mass of dry air.

        Args:
            T: Dry-bulb temperature [K]
            W: Humidity ratio [kg water/kg dry air]
            P: Pressure [Pa]

        Returns:
            Specific heat [J/kg dry air/K]
        """
        return self._safe_ha_call('C', 'T', T, 'W', W, 'P', P)

    def Tdp_W(self, W: float, T: float, P: float = P_ATM) -> float:
        """
        Calculate dew-point temperature of moist air.

        Args:
            W: Humidity ratio [kg water/kg dry air]
            T: Dry-bulb temperature [K]
            P: Pressure [Pa]

        Returns:
            Dew-point temperature [K]
        """
        return self._safe_ha_call('D', 'T', T, 'W', W, 'P', P)


# Global singleton instance accessor
def get_props_service() -> PropsService:
    """
    Get the global PropsService singleton instance.

    Returns:
        PropsService singleton instance
    """
    return PropsService()
