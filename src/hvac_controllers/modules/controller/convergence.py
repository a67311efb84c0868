"""
Convergence Classifier - End-of-pass convergence rules

Decides whether a controller may be declared converged from its mode and
its current actuated/sensed state, without asking the root finder for
another candidate. This catches steady states the root finder alone would
not recognize, e.g. a controller pinned at a bound while another controller
sharing the sensed node already satisfies the setpoint.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from hvac_controllers.core.node_network import NodeNetwork, SetPointKind
from hvac_controllers.modules.controller.config import ControlVariable, ControllerAction
from hvac_controllers.modules.controller.model import ControllerMode, ControllerRecord


def is_min_constrained(record: ControllerRecord) -> bool:
    """
    Check whether a controller pinned at its minimum bound is satisfied.

    Normal action: setpoint <= sensed. Reverse action: setpoint >= sensed.
    """
    if record.actuated_value != record.min_avail_actuated:
        return False
    if record.action == ControllerAction.NORMAL:
        return record.set_point_value <= record.sensed_value
    return record.set_point_value >= record.sensed_value


def is_max_constrained(record: ControllerRecord) -> bool:
    """
    Check whether a controller pinned at its maximum bound is satisfied.

    Normal action: setpoint >= sensed. Reverse action: setpoint <= sensed.
    """
    if record.actuated_value != record.max_avail_actuated:
        return False
    if record.action == ControllerAction.NORMAL:
        return record.set_point_value >= record.sensed_value
    return record.set_point_value <= record.sensed_value


def within_tolerance(record: ControllerRecord) -> bool:
    """|sensed - setpoint| within the root finder Y tolerance."""
    return abs(record.delta_sensed) <= record.root_finder.controls.atol_y


def is_converged(record: ControllerRecord, network: NodeNetwork) -> bool:
    """
    Classify the current state of a controller.

    Args:
        record: Controller record with inputs read for this call
        network: Node network holding the sensed node

    Returns:
        True if the controller is converged without further iterations
    """
    mode = record.mode
    if mode == ControllerMode.OFF:
        return (network[record.sensed_node].mass_flow_rate == 0.0
                and record.actuated_value == 0.0)

    if mode == ControllerMode.INACTIVE:
        return record.actuated_value == record.min_avail_actuated

    if mode == ControllerMode.MIN_ACTIVE:
        return is_min_constrained(record) or within_tolerance(record)

    if mode == ControllerMode.MAX_ACTIVE:
        return is_max_constrained(record) or within_tolerance(record)

    if mode == ControllerMode.ACTIVE:
        if not (record.min_avail_actuated <= record.actuated_value <= record.max_avail_actuated):
            return False
        return (within_tolerance(record)
                or is_min_constrained(record)
                or is_max_constrained(record))

    return False


def humidity_override_required(record: ControllerRecord, network: NodeNetwork,
                               margin: float) -> bool:
    """
    Check whether a converged dual controller must switch to humidity control.

    Only TEMPERATURE_AND_HUMIDITY_RATIO controllers not yet overridden
    qualify, when the sensed humidity ratio exceeds the maximum humidity
    ratio setpoint by more than `margin`.
    """
    if record.control_variable != ControlVariable.TEMPERATURE_AND_HUMIDITY_RATIO:
        return False
    if record.hum_rat_ctrl_override:
        return False
    hum_rat_max = network.get_set_point(record.sensed_node, SetPointKind.MAX_HUMIDITY_RATIO)
    return network[record.sensed_node].hum_rat > hum_rat_max + margin
