"""
Demo - Cooling and reheat coils controlled on one air loop

Builds a small air loop (mixed air -> chilled water coil -> hot water coil)
and drives both coil controllers through a few time steps with changing
entering air conditions.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

import logging
from functools import partial

from hvac_controllers.core.node_network import NodeNetwork, PlantLoop
from hvac_controllers.modules.air_loop import AirLoopController, AirLoopModel
from hvac_controllers.modules.air_loop.view import AirLoopView
from hvac_controllers.modules.controller import AirLoopConfig, ControllerManager
from hvac_controllers.modules.water_coil import WaterCoilModel


# Entering air (temperature [°C], humidity ratio [kg/kg]) per time step
ENTERING_AIR = [
    (26.0, 0.0085),
    (28.0, 0.0100),
    (30.0, 0.0120),
    (30.0, 0.0120),
]


def build_air_loop():
    """
    Build network, controllers and air loop of the demo.

    Returns:
        (network, manager, AirLoopController, heating coil, node ids)
    """
    network = NodeNetwork()
    mixed = network.add_node("Mixed Air", temp=26.0, hum_rat=0.0085, mass_flow_rate=2.0)
    cc_out = network.add_node("Cooling Coil Air Outlet", temp_set_point=13.0, hum_rat_max=0.009)
    hc_out = network.add_node("Heating Coil Air Outlet", temp_set_point=16.0)
    chw_in = network.add_node("Chilled Water Inlet", temp=7.0, mass_flow_rate_max_avail=5.0)
    chw_out = network.add_node("Chilled Water Outlet")
    hw_in = network.add_node("Hot Water Inlet", temp=60.0, mass_flow_rate_max_avail=2.0)
    hw_out = network.add_node("Hot Water Outlet")

    plant = network.plant_loops
    plant.add_loop(PlantLoop("Chilled Water Loop", branches={"demand": [[chw_in, chw_out]]}))
    plant.add_loop(PlantLoop("Hot Water Loop", branches={"demand": [[hw_in, hw_out]]}))

    loop_config = AirLoopConfig(
        name="Main Air Loop",
        controller_names=("Cooling Coil Controller", "Heating Coil Controller"),
        branches=((mixed, cc_out, hc_out),),
    )
    records = [
        {
            "name": "Cooling Coil Controller",
            "control_variable": "TemperatureAndHumidityRatio",
            "action": "",
            "coil_type": "Cooling",
            "actuator_variable": "Flow",
            "sensed_node": "Cooling Coil Air Outlet",
            "actuated_node": "Chilled Water Inlet",
            "offset": "autosize",
            "max_vol_flow_actuated": "autosize",
            "air_loop": "Main Air Loop",
        },
        {
            "name": "Heating Coil Controller",
            "control_variable": "Temperature",
            "action": "Normal",
            "coil_type": "Heating",
            "sensed_node": "Heating Coil Air Outlet",
            "actuated_node": "Hot Water Inlet",
            "offset": 0.001,
            "max_vol_flow_actuated": 0.002,
            "air_loop": "Main Air Loop",
        },
    ]
    manager = ControllerManager(
        network,
        configs=records,
        design_water_flows={chw_in: 0.004},
        air_loops=[loop_config],
    )

    cooling_coil = WaterCoilModel(UA=8000.0)
    heating_coil = WaterCoilModel(UA=3000.0)
    model = AirLoopModel(network, loop_config, [
        partial(cooling_coil.simulate, air_in=mixed, air_out=cc_out,
                water_in=chw_in, water_out=chw_out),
        partial(heating_coil.simulate, air_in=cc_out, air_out=hc_out,
                water_in=hw_in, water_out=hw_out),
    ])
    driver = AirLoopController(manager, model)
    nodes = {"mixed": mixed, "cc_out": cc_out, "hc_out": hc_out, "hw_in": hw_in}
    return network, manager, driver, heating_coil, nodes


def main():
    """Run the demo time steps and print the results."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    network, manager, driver, heating_coil, nodes = build_air_loop()
    manager.begin_environment()

    for step, (T_in, W_in) in enumerate(ENTERING_AIR, start=1):
        mixed = network[nodes["mixed"]]
        mixed.temp, mixed.hum_rat = T_in, W_in
        manager.step_label = f"Step {step}"

        result = driver.solve_step()
        AirLoopView.display_result(result, title=f"TIME STEP {step}: T_in={T_in} C, W_in={W_in}")

        cc_out = network[nodes["cc_out"]]
        hc_out = network[nodes["hc_out"]]
        print(f"Cooling coil outlet: T={cc_out.temp:.3f} C, W={cc_out.hum_rat:.5f}")
        print(f"Heating coil outlet: T={hc_out.temp:.3f} C")

        reference = heating_coil.solve_water_flow(
            cc_out.temp, cc_out.hum_rat, cc_out.mass_flow_rate,
            network[nodes["hw_in"]].temp, hc_out.temp_set_point,
            manager.get_record("Heating Coil Controller").max_avail_actuated,
        )
        print(f"Heating coil reference flow (brentq): {reference:.5f} kg/s\n")

    for line in manager.warning_summary():
        print(line)


if __name__ == "__main__":
    main()
