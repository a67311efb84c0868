"""
Shared fixtures for controller tests

`ControllerHarness` wires one controller to a two-node network: the sensed
node receives `set_point + residual(actuated flow)` each time the harness
simulates, which turns the controller into a root search on `residual`.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

import pytest

from hvac_controllers.core.node_network import NodeNetwork, PlantLoop
from hvac_controllers.modules.controller import (
    ControllerManager,
    ControllerOperation,
)


SET_POINT = 20.0


class ControllerHarness:
    """Single controller driven against a scalar residual function."""

    name = "Coil Controller"

    def __init__(self, residual, x_min=0.0, x_max=2.0, action="Normal",
                 control_variable="Temperature", offset=0.01, **node_values):
        self.residual = residual
        self.network = NodeNetwork()
        sensed_values = {"temp_set_point": SET_POINT, "mass_flow_rate": 1.0}
        sensed_values.update(node_values)
        self.sensed = self.network.add_node("Coil Outlet", **sensed_values)
        self.actuated = self.network.add_node(
            "Water Inlet",
            mass_flow_rate_min_avail=x_min,
            mass_flow_rate_max_avail=x_max,
        )
        self.outlet = self.network.add_node("Water Outlet")
        self.network.plant_loops.add_loop(
            PlantLoop("Hot Water Loop", branches={"demand": [[self.actuated, self.outlet]]})
        )
        self.manager = ControllerManager(self.network, configs=[{
            "name": self.name,
            "control_variable": control_variable,
            "action": action,
            "sensed_node": "Coil Outlet",
            "actuated_node": "Water Inlet",
            "offset": offset,
            "max_vol_flow_actuated": 1.0,
            "min_vol_flow_actuated": 0.0,
        }])

    @property
    def record(self):
        return self.manager.get_record(self.name)

    @property
    def flow(self):
        return self.network[self.actuated].mass_flow_rate

    def simulate(self):
        self.network[self.sensed].temp = SET_POINT + self.residual(self.flow)

    def run(self, operation, first_pass=True, is_up_to_date=False):
        return self.manager.run_controller(self.name, operation, first_pass, is_up_to_date)

    def iterate_to_convergence(self, first_pass=True, max_iterations=50):
        """Cold start then iterate; returns (last result, number of Iterate calls)."""
        self.run(ControllerOperation.COLD_START, first_pass)
        result = None
        for iteration in range(1, max_iterations + 1):
            self.simulate()
            result = self.run(ControllerOperation.ITERATE, first_pass)
            if result.converged:
                return result, iteration
        return result, max_iterations

    def end(self, first_pass=True):
        self.simulate()
        return self.run(ControllerOperation.END, first_pass, is_up_to_date=True)


@pytest.fixture
def harness_factory():
    """Fixture providing a ControllerHarness factory."""
    return ControllerHarness
