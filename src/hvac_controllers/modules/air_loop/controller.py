"""
Air Loop Controller - Outer driver of the water coil controllers

Implements the calling sequence expected by `ControllerManager`:
cold start (or warm restart), then Iterate until converged, then End, for
every controller of the loop in list order. Passes are repeated while some
controller fails its End check.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

import logging
from typing import Any, Dict, Optional

from hvac_controllers.modules.air_loop.model import (
    AirLoopModel,
    AirLoopResult,
    ControllerStepResult,
)
from hvac_controllers.modules.controller.controller import ControllerManager
from hvac_controllers.modules.controller.model import ControllerMode, ControllerOperation


logger = logging.getLogger(__name__)


class AirLoopController:
    """
    Controller for one air loop.

    Drives the controllers listed in the loop configuration through one
    simulated time step.
    """

    def __init__(self, manager: ControllerManager, model: AirLoopModel,
                 params: Optional[Dict[str, Any]] = None):
        """
        Initialize the driver.

        Args:
            manager: Controller registry
            model: Air loop evaluated between iterations
            params: Driver parameters (see get_default_params)

        Raises:
            ValueError: If max_iterations or max_passes is not positive
        """
        self.manager = manager
        self.model = model
        self.params = self.get_default_params()
        self.params.update(params or {})
        if self.params["max_iterations"] < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.params['max_iterations']}")
        if self.params["max_passes"] < 1:
            raise ValueError(f"max_passes must be >= 1, got {self.params['max_passes']}")
        self._has_solution = False

    @staticmethod
    def get_default_params() -> Dict[str, Any]:
        """
        Get default driver parameters.

        Returns:
            Dictionary with default values
        """
        return {
            "max_iterations": 50,     # Iterate calls per controller and pass
            "max_passes": 3,          # Outer-loop passes per time step
            "warm_restart": True,     # Restart from the previous solution when safe
        }

    @property
    def controller_names(self):
        return self.model.config.controller_names

    def solve_step(self) -> AirLoopResult:
        """
        Solve one time step.

        Returns:
            AirLoopResult of the last pass performed
        """
        start = self.model.num_simulations
        result = None
        for pass_num in range(self.params["max_passes"]):
            result = self.solve_pass(first_pass=(pass_num == 0))
            result.passes = pass_num + 1
            if result.converged:
                break
        result.simulations = self.model.num_simulations - start
        if not result.converged:
            logger.warning("Air loop %s did not converge after %d pass(es)",
                           self.model.config.name, result.passes)
        return result

    def solve_pass(self, first_pass: bool) -> AirLoopResult:
        """
        Perform one outer-loop pass over every controller.

        Args:
            first_pass: True on the first pass of the time step

        Returns:
            AirLoopResult of this pass
        """
        start = self.model.num_simulations
        for name in self.controller_names:
            operation = ControllerOperation.COLD_START
            if (self.params["warm_restart"] and self._has_solution
                    and self.manager.is_speculative_warm_restart_safe(name)):
                operation = ControllerOperation.WARM_RESTART
            self.manager.run_controller(name, operation, first_pass)
        self.model.simulate()

        results: Dict[str, ControllerStepResult] = {}
        for name in self.controller_names:
            results[name] = self._iterate_controller(name, first_pass)

        converged = True
        for name in self.controller_names:
            end = self.manager.run_controller(name, ControllerOperation.END, first_pass,
                                              is_up_to_date=True)
            results[name].converged = results[name].converged and end.converged
            converged = converged and end.converged
        self._has_solution = converged

        return AirLoopResult(
            converged=converged,
            passes=1,
            simulations=self.model.num_simulations - start,
            controllers=results,
        )

    def _iterate_controller(self, name: str, first_pass: bool) -> ControllerStepResult:
        record = self.manager.get_record(name)
        up_to_date = True
        for iteration in range(1, self.params["max_iterations"] + 1):
            call = self.manager.run_controller(name, ControllerOperation.ITERATE, first_pass,
                                               is_up_to_date=up_to_date)
            if not call.up_to_date:
                self.model.simulate()
            up_to_date = True
            if call.converged:
                return ControllerStepResult(
                    converged=True,
                    mode=record.mode,
                    actuated_flow=record.next_actuated_value,
                    iterations=iteration,
                )

        logger.warning("Controller=%s exceeded %d iterations", name, self.params["max_iterations"])
        return ControllerStepResult(
            converged=False,
            mode=ControllerMode.NONE,
            actuated_flow=record.next_actuated_value,
            iterations=self.params["max_iterations"],
        )
