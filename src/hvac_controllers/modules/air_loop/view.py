"""
Air Loop View - Console output of air loop results

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from hvac_controllers.modules.air_loop.model import AirLoopResult


class AirLoopView:
    """Console display of air loop time step results."""

    @staticmethod
    def display_result(result: AirLoopResult, title: str = "AIR LOOP RESULTS") -> None:
        """
        Display a detailed result table.

        Args:
            result: AirLoopResult to display
            title: Header line
        """
        print("=" * 60)
        print(title)
        print("=" * 60)
        print(f"Converged: {result.converged}  |  passes={result.passes}  "
              f"|  network evaluations={result.simulations}")
        print(f"\n{'Controller':<28}{'Mode':<12}{'Flow [kg/s]':>12}{'Iter':>6}")
        for name, step in result.controllers.items():
            print(f"{name:<28}{step.mode.name:<12}{step.actuated_flow:>12.5f}{step.iterations:>6}")
        print("=" * 60)
