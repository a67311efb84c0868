"""
Water Coil Model - Effectiveness-NTU water-to-air coil

Counterflow coil with constant UA. Heating coils only change the air
temperature. Cooling coils also dehumidify when the leaving air would be
supersaturated: the outlet humidity ratio is limited to saturation at the
outlet temperature.

This is the "plant" evaluated by the outer air-loop solver between two
controller iterations.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

import logging
from dataclasses import dataclass

import numpy as np
from scipy.optimize import brentq

from hvac_controllers.core.node_network import NodeNetwork
from hvac_controllers.core.props_service import P_ATM, get_props_service


logger = logging.getLogger(__name__)

T_KELVIN = 273.15


@dataclass
class WaterCoilResult:
    """
    Result of a coil calculation.

    Attributes:
        T_air_out: Leaving air temperature [°C]
        W_air_out: Leaving air humidity ratio [kg water/kg dry air]
        T_water_out: Leaving water temperature [°C]
        Q: Heat transferred to the air [W] (negative when cooling)
        effectiveness: Coil effectiveness [-]
        flags: Diagnostic flags dictionary
    """
    T_air_out: float
    W_air_out: float
    T_water_out: float
    Q: float
    effectiveness: float
    flags: dict[str, bool]


class WaterCoilModel:
    """
    Physical model of a water coil.

    Uses the counterflow effectiveness-NTU relation with moist-air and water
    heat capacities from CoolProp.
    """

    def __init__(self, UA: float, P: float = P_ATM, fluid: str = "Water"):
        """
        Initialize coil model.

        Args:
            UA: Overall heat transfer coefficient times area [W/K]
            P: Air pressure [Pa]
            fluid: CoolProp string of the coil water

        Raises:
            ValueError: If UA is not positive
        """
        if UA <= 0:
            raise ValueError(f"UA must be positive, got {UA}")
        self.UA = UA
        self.P = P
        self.fluid = fluid
        self.props = get_props_service()

    def solve(
        self,
        T_air_in: float,
        W_air_in: float,
        m_air: float,
        T_water_in: float,
        m_water: float,
    ) -> WaterCoilResult:
        """
        Solve the coil outlet states.

        Args:
            T_air_in: Entering air temperature [°C]
            W_air_in: Entering air humidity ratio [kg water/kg dry air]
            m_air: Dry air mass flow rate [kg/s]
            T_water_in: Entering water temperature [°C]
            m_water: Water mass flow rate [kg/s]

        Returns:
            WaterCoilResult with leaving states and diagnostic flags
        """
        flags = {
            "no_flow": False,
            "dehumidifying": False,
        }

        if m_air <= 0.0 or m_water <= 0.0:
            flags["no_flow"] = True
            return WaterCoilResult(
                T_air_out=T_air_in,
                W_air_out=W_air_in,
                T_water_out=T_water_in,
                Q=0.0,
                effectiveness=0.0,
                flags=flags,
            )

        cp_air = self.props.cp_TW(T_air_in + T_KELVIN, W_air_in, self.P)
        cp_water = self.props.cp_T(T_water_in + T_KELVIN, fluid=self.fluid)
        C_air = m_air * cp_air
        C_water = m_water * cp_water
        C_min = min(C_air, C_water)
        C_r = C_min / max(C_air, C_water)

        NTU = self.UA / C_min
        if C_r < 1.0:
            e = np.exp(-NTU * (1.0 - C_r))
            effectiveness = float((1.0 - e) / (1.0 - C_r * e))
        else:
            effectiveness = NTU / (1.0 + NTU)

        Q = effectiveness * C_min * (T_water_in - T_air_in)
        T_air_out = T_air_in + Q / C_air
        T_water_out = T_water_in - Q / C_water

        W_air_out = W_air_in
        if Q < 0.0:
            W_sat = self.props.Wsat_T(T_air_out + T_KELVIN, self.P)
            if W_sat < W_air_in:
                W_air_out = W_sat
                flags["dehumidifying"] = True

        return WaterCoilResult(
            T_air_out=T_air_out,
            W_air_out=W_air_out,
            T_water_out=T_water_out,
            Q=Q,
            effectiveness=effectiveness,
            flags=flags,
        )

    def solve_water_flow(
        self,
        T_air_in: float,
        W_air_in: float,
        m_air: float,
        T_water_in: float,
        T_air_target: float,
        m_water_max: float,
    ) -> float:
        """
        Solve the water flow giving a target leaving air temperature.

        Args:
            T_air_in: Entering air temperature [°C]
            W_air_in: Entering air humidity ratio [kg water/kg dry air]
            m_air: Dry air mass flow rate [kg/s]
            T_water_in: Entering water temperature [°C]
            T_air_target: Target leaving air temperature [°C]
            m_water_max: Maximum water flow [kg/s]

        Returns:
            Water flow [kg/s], clipped to [0, m_water_max] when the target
            cannot be reached
        """
        def residual(m_water: float) -> float:
            result = self.solve(T_air_in, W_air_in, m_air, T_water_in, m_water)
            return result.T_air_out - T_air_target

        r_min = residual(0.0)
        r_max = residual(m_water_max)
        if r_min * r_max > 0.0:
            # Unreachable target: pick the bound closest to it
            return 0.0 if abs(r_min) <= abs(r_max) else m_water_max
        return brentq(residual, 0.0, m_water_max, xtol=1e-10)

    def simulate(self, network: NodeNetwork, air_in: int, air_out: int,
                 water_in: int, water_out: int) -> WaterCoilResult:
        """
        Evaluate the coil on network nodes and write the outlet nodes.

        Args:
            network: Node network
            air_in, air_out: Air inlet and outlet node ids
            water_in, water_out: Water inlet and outlet node ids

        Returns:
            WaterCoilResult of this evaluation
        """
        air = network[air_in]
        water = network[water_in]
        result = self.solve(air.temp, air.hum_rat, air.mass_flow_rate,
                            water.temp, water.mass_flow_rate)

        outlet = network[air_out]
        outlet.temp = result.T_air_out
        outlet.hum_rat = result.W_air_out
        outlet.mass_flow_rate = air.mass_flow_rate

        water_outlet = network[water_out]
        water_outlet.temp = result.T_water_out
        water_outlet.mass_flow_rate = water.mass_flow_rate

        logger.debug("Coil: m_water=%.6f kg/s -> T_air_out=%.4f C, Q=%.1f W",
                     water.mass_flow_rate, result.T_air_out, result.Q)
        return result
