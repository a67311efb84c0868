"""
Unit tests for the ControllerManager

Tests the run_controller entry point: reference scenarios, invariants of
the calling protocol, solution reuse, humidity override and the registry
queries.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

import logging
import math

import pytest

from hvac_controllers.core.errors import ConfigurationError, InvariantViolationError
from hvac_controllers.core.node_network import SENSED_NODE_FLAG_VALUE, NodeNetwork, SetPointKind
from hvac_controllers.modules.controller import (
    AirLoopConfig,
    ControllerManager,
    ControllerMode,
    ControllerOperation,
    PassPhase,
)
from hvac_controllers.modules.root_finder import MethodType, RootFinderStatus


class TestScenarios:
    """Reference scenarios of a single Normal-action controller."""

    def test_linear_residual_converges_active(self, harness_factory):
        """x - 1 on [0, 2]: 0.0, then 2.0, then converged near 1.0."""
        h = harness_factory(lambda x: x - 1.0)
        h.run(ControllerOperation.COLD_START)
        tried = []
        result = None
        for _ in range(10):
            h.simulate()
            result = h.run(ControllerOperation.ITERATE)
            tried.append(h.record.next_actuated_value)
            if result.converged:
                break
        assert tried[:2] == [0.0, 2.0]
        assert result.converged
        assert h.record.mode == ControllerMode.ACTIVE
        assert h.record.next_actuated_value == pytest.approx(1.0, abs=0.01)
        assert abs(h.record.delta_sensed) <= 0.01

    def test_flat_residual_is_inactive(self, harness_factory):
        h = harness_factory(lambda x: -1.0)
        result, _ = h.iterate_to_convergence()
        assert result.converged
        assert h.record.mode == ControllerMode.INACTIVE
        assert h.record.next_actuated_value == 0.0
        assert h.end().converged

    def test_out_of_range_is_max_active(self, harness_factory):
        """Root at 2.0 with bounds [0, 1]."""
        h = harness_factory(lambda x: x - 2.0, x_max=1.0)
        result, _ = h.iterate_to_convergence()
        assert result.converged
        assert h.record.mode == ControllerMode.MAX_ACTIVE
        assert h.record.next_actuated_value == 1.0
        assert h.end().converged

    def test_end_with_min_active_pinned(self, harness_factory):
        """Sensed above setpoint at minimum flow: End converges without iterating."""
        h = harness_factory(lambda x: x + 0.5)
        h.iterate_to_convergence()
        assert h.record.mode == ControllerMode.MIN_ACTIVE
        calls = h.record.num_calc_calls
        assert h.end().converged
        assert h.record.num_calc_calls == calls
        assert h.record.set_point_value <= h.record.sensed_value

    def test_wrong_slope_falls_back_to_max(self, harness_factory, caplog):
        h = harness_factory(lambda x: -x - 0.5)
        with caplog.at_level(logging.WARNING):
            result, _ = h.iterate_to_convergence()
            h.iterate_to_convergence()
        assert result.converged
        assert h.record.mode == ControllerMode.MAX_ACTIVE
        assert h.record.next_actuated_value == 2.0
        assert h.record.bad_action_warning.count == 2
        inconsistent = [r for r in caplog.records if "inconsistent" in r.getMessage()]
        assert len(inconsistent) == 1

    def test_reverse_action(self, harness_factory):
        """Cooling-like response: sensed falls as flow rises."""
        h = harness_factory(lambda x: 1.2 - 2.0 * x, action="Reverse", offset=1e-4)
        result, _ = h.iterate_to_convergence()
        assert result.converged
        assert h.record.mode == ControllerMode.ACTIVE
        assert h.record.next_actuated_value == pytest.approx(0.6, abs=1e-4)


class TestProperties:
    """Invariants across calls."""

    def test_bound_invariance(self, harness_factory):
        h = harness_factory(lambda x: math.tanh(3.0 * (x - 0.4)))
        h.run(ControllerOperation.COLD_START)
        for _ in range(30):
            h.simulate()
            result = h.run(ControllerOperation.ITERATE)
            finder = h.record.root_finder
            assert finder.min_point.x == 0.0
            assert finder.max_point.x == 2.0
            # Availability changes are ignored until the next pass
            h.network[h.actuated].mass_flow_rate_max_avail = 2.5
            if result.converged:
                break
        assert h.record.max_avail_actuated == 2.0

    def test_bound_drift_is_fatal(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        h.run(ControllerOperation.COLD_START)
        h.simulate()
        h.run(ControllerOperation.ITERATE)
        h.simulate()
        h.run(ControllerOperation.ITERATE)
        h.record.root_finder.max_point.x = 5.0
        h.simulate()
        with pytest.raises(InvariantViolationError, match="Maximum bound") as info:
            h.run(ControllerOperation.ITERATE)
        assert info.value.context["controller"] == "Coil Controller"

    def test_observation_outside_bounds_is_fatal(self, harness_factory):
        """Actuated flow forced above the frozen maximum."""
        h = harness_factory(lambda x: x - 1.0)
        h.run(ControllerOperation.COLD_START)
        h.simulate()
        h.run(ControllerOperation.ITERATE)
        actuated = h.network[h.actuated]
        actuated.mass_flow_rate_min_avail = 2.5
        actuated.mass_flow_rate_max_avail = 3.0
        h.simulate()
        with pytest.raises(InvariantViolationError, match="min/max bounds") as info:
            h.run(ControllerOperation.ITERATE)
        context = info.value.context
        assert context["candidate"] == 2.5
        assert context["min_bound"] == 0.0
        assert context["max_bound"] == 2.0

    def test_observation_outside_brackets_is_fatal(self, harness_factory):
        """Actuated flow forced above the upper bracket."""
        h = harness_factory(lambda x: math.tanh(3.0 * (x - 0.4)))
        h.run(ControllerOperation.COLD_START)
        for _ in range(4):
            h.simulate()
            assert not h.run(ControllerOperation.ITERATE).converged
        finder = h.record.root_finder
        assert finder.lower_point.defined and finder.upper_point.defined
        assert finder.upper_point.x < 1.5

        h.network[h.actuated].mass_flow_rate_min_avail = 1.5
        h.simulate()
        with pytest.raises(InvariantViolationError, match="lower/upper brackets") as info:
            h.run(ControllerOperation.ITERATE)
        context = info.value.context
        assert context["candidate"] == 1.5
        assert context["lower"] == finder.lower_point.x
        assert context["upper"] == finder.upper_point.x
        assert context["action"] == "NORMAL"
        assert context["controller"] == "Coil Controller"

    def test_undefined_set_point_is_fatal(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        h.run(ControllerOperation.COLD_START)
        h.network[h.sensed].temp_set_point = SENSED_NODE_FLAG_VALUE
        h.simulate()
        result = h.run(ControllerOperation.ITERATE, is_up_to_date=True)
        assert not result.converged
        assert not h.record.is_set_point_defined
        assert h.record.num_calc_calls == 1
        h.simulate()
        with pytest.raises(InvariantViolationError, match="Setpoint is not available"):
            h.run(ControllerOperation.ITERATE)

    def test_candidate_outside_bounds_is_fatal(self, harness_factory, monkeypatch):
        h = harness_factory(lambda x: x - 1.0)
        h.run(ControllerOperation.COLD_START)
        h.simulate()
        h.run(ControllerOperation.ITERATE)
        finder = h.record.root_finder

        def runaway(x, y):
            finder.x_candidate = 5.0
            return RootFinderStatus.NONE

        monkeypatch.setattr(finder, "iterate", runaway)
        h.simulate()
        with pytest.raises(InvariantViolationError, match="Candidate lies outside") as info:
            h.run(ControllerOperation.ITERATE)
        assert info.value.context["candidate"] == 5.0
        assert h.flow == 0.0

    def test_bracket_containment(self, harness_factory):
        h = harness_factory(lambda x: math.exp(2.0 * x) - 3.0, offset=1e-6)
        h.run(ControllerOperation.COLD_START)
        for _ in range(50):
            h.simulate()
            result = h.run(ControllerOperation.ITERATE)
            assert 0.0 <= h.record.next_actuated_value <= 2.0
            if result.converged:
                break
        assert result.converged
        assert h.record.next_actuated_value == pytest.approx(math.log(3.0) / 2.0, abs=1e-5)

    def test_idempotent_cold_start(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        h.iterate_to_convergence()

        def snapshot():
            record, finder = h.record, h.record.root_finder
            return (record.mode, record.num_calc_calls, record.next_actuated_value,
                    record.is_set_point_defined, finder.status, finder.current_point,
                    finder.min_point, finder.max_point, finder.lower_point,
                    finder.upper_point, h.flow)

        h.run(ControllerOperation.COLD_START)
        first = snapshot()
        h.run(ControllerOperation.COLD_START)
        assert snapshot() == first
        assert first[0] == ControllerMode.NONE
        assert first[1] == 0
        assert not any(point.defined for point in first[5:10])

    def test_mode_stays_off_within_pass(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        h.network[h.sensed].mass_flow_rate = 0.0
        result, _ = h.iterate_to_convergence()
        assert result.converged
        assert h.record.mode == ControllerMode.OFF
        assert h.flow == 0.0

        h.network[h.sensed].mass_flow_rate = 1.0
        h.simulate()
        h.run(ControllerOperation.ITERATE)
        assert h.record.mode == ControllerMode.OFF
        assert h.end().converged is False

        result, _ = h.iterate_to_convergence()
        assert h.record.mode == ControllerMode.ACTIVE

    def test_warm_restart_clears_off(self, harness_factory):
        """A restarted pass solves again once air flows."""
        h = harness_factory(lambda x: x - 1.0)
        h.network[h.sensed].mass_flow_rate = 0.0
        h.iterate_to_convergence()
        assert h.record.mode == ControllerMode.OFF
        assert h.end().converged

        h.network[h.sensed].mass_flow_rate = 1.0
        h.run(ControllerOperation.WARM_RESTART, first_pass=False)
        assert not h.record.off_this_pass
        modes = []
        result = None
        for _ in range(10):
            h.simulate()
            result = h.run(ControllerOperation.ITERATE, first_pass=False)
            modes.append(h.record.mode)
            if result.converged:
                break
        assert result.converged
        assert ControllerMode.OFF not in modes[1:]
        assert h.record.mode == ControllerMode.ACTIVE
        assert h.flow == pytest.approx(1.0, abs=0.01)

    def test_tolerance_when_active(self, harness_factory):
        h = harness_factory(lambda x: 4.0 * x ** 2 - 1.0, offset=0.005)
        result, _ = h.iterate_to_convergence()
        assert result.converged
        assert h.record.mode == ControllerMode.ACTIVE
        assert abs(h.record.delta_sensed) <= 0.005

    def test_up_to_date_when_final_value_was_tried(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        result, _ = h.iterate_to_convergence()
        assert result.up_to_date

        h2 = harness_factory(lambda x: -1.0)
        result, _ = h2.iterate_to_convergence()
        assert not result.up_to_date


class TestSolutionReuse:
    """Reuse of solutions across passes and within a pass."""

    def test_tracker_saved_on_end(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        h.iterate_to_convergence(first_pass=True)
        assert h.end(first_pass=True).converged
        tracker = h.record.solution_trackers[PassPhase.FIRST_PASS]
        assert tracker.defined
        assert tracker.mode == ControllerMode.ACTIVE
        assert tracker.actuated_value == pytest.approx(1.0, abs=0.01)
        assert not h.record.solution_trackers[PassPhase.LATER_PASS].defined

    def test_non_active_solution_not_reusable(self, harness_factory):
        h = harness_factory(lambda x: x - 2.0, x_max=1.0)
        h.iterate_to_convergence()
        h.end()
        tracker = h.record.solution_trackers[PassPhase.FIRST_PASS]
        assert not tracker.defined
        assert tracker.mode == ControllerMode.MAX_ACTIVE

    def test_later_pass_reuses_first_pass_solution(self, harness_factory):
        """The saved value replaces the upper bound as bracketing candidate."""
        h = harness_factory(lambda x: 0.5 * x - 0.35)
        _, first_iterations = h.iterate_to_convergence(first_pass=True)
        h.end(first_pass=True)
        saved = h.record.solution_trackers[PassPhase.FIRST_PASS].actuated_value

        h.run(ControllerOperation.COLD_START, first_pass=False)
        h.simulate()
        h.run(ControllerOperation.ITERATE, first_pass=False)
        h.simulate()
        h.run(ControllerOperation.ITERATE, first_pass=False)
        assert h.record.next_actuated_value == saved
        assert not h.record.reuse_previous_solution

        h.simulate()
        result = h.run(ControllerOperation.ITERATE, first_pass=False)
        assert result.converged
        assert h.record.num_calc_calls < first_iterations

    def test_begin_environment_clears_trackers(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        h.iterate_to_convergence()
        h.end()
        h.manager.begin_environment()
        h.run(ControllerOperation.COLD_START)
        h.simulate()
        h.run(ControllerOperation.ITERATE)
        assert not h.record.solution_trackers[PassPhase.FIRST_PASS].defined

    def test_intermediate_reuse_of_up_to_date_network(self, harness_factory):
        """An up-to-date network is fed directly as the first observation."""
        h = harness_factory(lambda x: x - 1.0)
        h.run(ControllerOperation.COLD_START)
        h.simulate()
        result = h.run(ControllerOperation.ITERATE, is_up_to_date=True)
        assert not result.converged
        assert h.record.reuse_intermediate_solution
        assert h.record.num_calc_calls == 1
        assert h.record.next_actuated_value == 2.0

    def test_warm_restart_keeps_solution(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        h.iterate_to_convergence()
        value = h.record.next_actuated_value
        h.run(ControllerOperation.WARM_RESTART)
        assert h.record.do_warm_restart
        assert h.record.mode == ControllerMode.ACTIVE
        assert h.flow == value
        h.simulate()
        result = h.run(ControllerOperation.ITERATE, is_up_to_date=True)
        assert result.converged
        assert h.record.num_calc_calls == 1

    def test_warm_restart_from_min_active(self, harness_factory):
        h = harness_factory(lambda x: x + 0.5)
        h.iterate_to_convergence()
        assert h.record.mode == ControllerMode.MIN_ACTIVE
        h.run(ControllerOperation.WARM_RESTART)
        assert h.record.mode == ControllerMode.MIN_ACTIVE
        h.simulate()
        result = h.run(ControllerOperation.ITERATE, is_up_to_date=True)
        assert result.converged and result.up_to_date
        assert h.record.mode == ControllerMode.MIN_ACTIVE
        assert h.record.num_calc_calls == 1

    def test_warm_restart_from_max_active(self, harness_factory):
        h = harness_factory(lambda x: x - 2.0, x_max=1.0)
        h.iterate_to_convergence()
        h.run(ControllerOperation.WARM_RESTART)
        assert h.flow == 1.0
        h.simulate()
        result = h.run(ControllerOperation.ITERATE, is_up_to_date=True)
        assert result.converged
        assert h.record.mode == ControllerMode.MAX_ACTIVE
        assert h.record.next_actuated_value == 1.0
        assert h.record.num_calc_calls == 1

    def test_warm_restart_network_not_up_to_date(self, harness_factory):
        """Without a fresh evaluation the search starts again from the minimum."""
        h = harness_factory(lambda x: x - 1.0)
        h.iterate_to_convergence()
        h.run(ControllerOperation.WARM_RESTART)
        h.simulate()
        result = h.run(ControllerOperation.ITERATE, is_up_to_date=False)
        assert not result.converged
        assert not h.record.reuse_intermediate_solution
        assert h.record.next_actuated_value == 0.0
        result = None
        for _ in range(10):
            h.simulate()
            result = h.run(ControllerOperation.ITERATE)
            if result.converged:
                break
        assert result.converged
        assert h.record.mode == ControllerMode.ACTIVE
        assert h.record.next_actuated_value == pytest.approx(1.0, abs=0.01)


class TestShortCircuits:
    """Bypass and plant flow lock."""

    def test_bypass(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        h.run(ControllerOperation.COLD_START)
        h.manager.set_bypass(h.name, True)
        result = h.manager.run_controller(h.name, ControllerOperation.ITERATE, True, bypass=True)
        assert result.converged and result.up_to_date
        assert h.record.num_calc_calls == 0

        h.simulate()
        result = h.manager.run_controller(h.name, ControllerOperation.ITERATE, True, bypass=False)
        assert not result.converged
        assert h.record.num_calc_calls == 1

    def test_plant_flow_lock(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        h.iterate_to_convergence()
        h.network[h.actuated].mass_flow_rate = 0.3
        h.network.plant_loops.set_flow_lock(0, "demand", True)
        calls = h.record.num_calc_calls
        result = h.run(ControllerOperation.ITERATE)
        assert result.converged
        assert h.record.num_calc_calls == calls
        assert h.flow == 0.3


class TestHumidityOverride:
    """Dual temperature and humidity ratio control."""

    @pytest.fixture
    def dual(self, harness_factory):
        h = harness_factory(lambda x: -5.0 * x + 7.0, action="Reverse", offset=0.001,
                            control_variable="TemperatureAndHumidityRatio",
                            hum_rat_max=0.009)
        base_simulate = h.simulate

        def simulate():
            base_simulate()
            h.network[h.sensed].hum_rat = 0.012 - 0.002 * h.flow

        h.simulate = simulate
        return h

    def test_switch_to_humidity_control(self, dual):
        dual.run(ControllerOperation.COLD_START)
        result = None
        for _ in range(10):
            dual.simulate()
            result = dual.run(ControllerOperation.ITERATE)
            if dual.record.hum_rat_ctrl_override:
                break
        assert not result.converged
        assert dual.record.mode == ControllerMode.NONE
        assert dual.record.num_calc_calls == 0
        assert dual.flow == 0.0
        controls = dual.record.root_finder.controls
        assert controls.method == MethodType.FALSE_POSITION
        assert controls.atol_y == 1e-5

        for _ in range(20):
            dual.simulate()
            result = dual.run(ControllerOperation.ITERATE)
            if result.converged:
                break
        assert result.converged
        assert dual.record.mode == ControllerMode.ACTIVE
        assert dual.record.next_actuated_value == pytest.approx(1.5, abs=1e-3)
        assert dual.record.set_point_value == 0.009

    def test_cold_start_restores_temperature_control(self, dual):
        dual.iterate_to_convergence()
        assert dual.record.hum_rat_ctrl_override
        dual.run(ControllerOperation.COLD_START)
        assert not dual.record.hum_rat_ctrl_override
        controls = dual.record.root_finder.controls
        assert controls.method == MethodType.BRENT
        assert controls.atol_y == 0.001

    def test_no_override_when_dry(self, harness_factory):
        h = harness_factory(lambda x: -5.0 * x + 7.0, action="Reverse", offset=0.001,
                            control_variable="TemperatureAndHumidityRatio",
                            hum_rat_max=0.02, hum_rat=0.008)
        result, _ = h.iterate_to_convergence()
        assert result.converged
        assert not h.record.hum_rat_ctrl_override
        assert h.record.next_actuated_value == pytest.approx(1.4, abs=1e-3)

    def test_warm_restart_not_speculative(self, dual, harness_factory):
        assert dual.manager.is_speculative_warm_restart_safe(dual.name) is False
        for variable in ("Temperature", "HumidityRatio", "Flow"):
            h = harness_factory(lambda x: x - 1.0, control_variable=variable,
                                hum_rat_set_point=0.008, mass_flow_rate_set_point=1.0)
            assert h.manager.is_speculative_warm_restart_safe(0) is True


class TestErrors:
    """Fatal configuration errors."""

    def test_unknown_name(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        with pytest.raises(ConfigurationError, match="Invalid controller=Nope"):
            h.manager.run_controller("Nope", ControllerOperation.COLD_START, True)

    def test_index_out_of_range(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        with pytest.raises(ConfigurationError, match="Invalid controller index"):
            h.manager.run_controller(3, ControllerOperation.COLD_START, True)

    def test_invalid_operation(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        with pytest.raises(ConfigurationError, match="Invalid operation"):
            h.manager.run_controller(0, 9, True)

    def test_integer_operation_codes(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        result = h.manager.run_controller(0, 1, True)
        assert not result.converged

    def test_name_cross_check(self, harness_factory):
        h = harness_factory(lambda x: x - 1.0)
        with pytest.raises(ConfigurationError, match="name mismatch"):
            h.manager.run_controller(0, ControllerOperation.COLD_START, True,
                                     controller_name="Other")
        h.manager.run_controller(0, ControllerOperation.COLD_START, True,
                                 controller_name="coil controller")

    def test_missing_set_point(self):
        network = NodeNetwork()
        network.add_node("Outlet", mass_flow_rate=1.0)
        network.add_node("Water", mass_flow_rate_max_avail=1.0)
        manager = ControllerManager(network, configs=[{
            "name": "C1", "control_variable": "Temperature", "action": "Normal",
            "sensed_node": "Outlet", "actuated_node": "Water",
            "offset": 0.01, "max_vol_flow_actuated": 0.001,
        }])
        with pytest.raises(ConfigurationError, match="Missing controller setpoints"):
            manager.run_controller("C1", ControllerOperation.COLD_START, True)

    def test_set_point_override_provider_satisfies_check(self):
        network = NodeNetwork()
        outlet = network.add_node("Outlet", mass_flow_rate=1.0)
        network.add_node("Water", mass_flow_rate_max_avail=1.0)
        network.register_set_point_provider(outlet, SetPointKind.TEMPERATURE, lambda: 15.0)
        manager = ControllerManager(network, configs=[{
            "name": "C1", "control_variable": "Temperature", "action": "Normal",
            "sensed_node": "Outlet", "actuated_node": "Water",
            "offset": 0.01, "max_vol_flow_actuated": 0.001,
        }])
        manager.run_controller("C1", ControllerOperation.COLD_START, True)
        network[outlet].temp = 14.0
        manager.run_controller("C1", ControllerOperation.ITERATE, True)
        assert manager.get_record("C1").set_point_value == 15.0

    def test_min_flow_not_below_max(self):
        network = NodeNetwork()
        network.add_node("Outlet", mass_flow_rate=1.0, temp_set_point=15.0)
        network.add_node("Water", mass_flow_rate_max_avail=1.0)
        manager = ControllerManager(network, configs=[{
            "name": "C1", "control_variable": "Temperature", "action": "Normal",
            "sensed_node": "Outlet", "actuated_node": "Water", "offset": 0.01,
            "max_vol_flow_actuated": 0.001, "min_vol_flow_actuated": 0.002,
        }])
        with pytest.raises(ConfigurationError, match="minimum control flow"):
            manager.run_controller("C1", ControllerOperation.COLD_START, True)


class TestSizing:
    """Autosizing of maximum flow and tolerance."""

    @pytest.fixture
    def network(self):
        network = NodeNetwork()
        network.add_node("Outlet", mass_flow_rate=1.0, temp_set_point=13.0)
        network.add_node("Water", mass_flow_rate_max_avail=10.0)
        return network

    def make_manager(self, network, design_flow=None, **fields):
        config = {
            "name": "Cooling Controller", "control_variable": "Temperature",
            "coil_type": "Cooling", "sensed_node": "Outlet", "actuated_node": "Water",
        }
        config.update(fields)
        flows = {} if design_flow is None else {network.node_id("Water"): design_flow}
        return ControllerManager(network, configs=[config], design_water_flows=flows)

    def test_autosize_flow_and_tolerance(self, network, caplog):
        manager = self.make_manager(network, design_flow=0.004)
        with caplog.at_level(logging.INFO):
            manager.run_controller(0, ControllerOperation.COLD_START, True)
        record = manager.get_record(0)
        assert record.max_vol_flow_actuated == 0.004
        assert record.offset == pytest.approx(0.001 / (2100.0 * 0.004))
        assert record.root_finder.controls.atol_y == record.offset
        assert record.max_actuated == pytest.approx(1000.0 * 0.004, rel=1e-3)
        assert any("Maximum Actuated Flow" in r.getMessage() for r in caplog.records)

    def test_tolerance_capped_by_temperature_tolerance(self, network):
        manager = self.make_manager(network, design_flow=1.0e-5)
        manager.run_controller(0, ControllerOperation.COLD_START, True)
        assert manager.get_record(0).offset == pytest.approx(0.001)

    def test_small_design_flow_is_zero(self, network, caplog):
        manager = self.make_manager(network, design_flow=1.0e-12)
        with caplog.at_level(logging.WARNING):
            manager.run_controller(0, ControllerOperation.COLD_START, True)
        record = manager.get_record(0)
        assert record.max_vol_flow_actuated == 0.0
        assert record.min_vol_flow_actuated == 0.0
        assert any("Maximum Actuated Flow is zero" in r.getMessage() for r in caplog.records)

    def test_missing_design_flow(self, network):
        manager = self.make_manager(network)
        with pytest.raises(ConfigurationError, match="no design water flow"):
            manager.run_controller(0, ControllerOperation.COLD_START, True)

    def test_action_derived_from_coil_type(self, network):
        manager = self.make_manager(network, design_flow=0.004)
        assert manager.get_record(0).action.name == "REVERSE"

    def test_contradictory_action_overridden(self, network, caplog):
        with caplog.at_level(logging.WARNING):
            manager = self.make_manager(network, design_flow=0.004, action="Normal")
            record = manager.get_record(0)
        assert record.action.name == "REVERSE"
        assert any("inconsistent" in r.getMessage() for r in caplog.records)

    def test_blank_action_without_coil_type(self, network):
        manager = self.make_manager(network, design_flow=0.004, coil_type=None)
        with pytest.raises(ConfigurationError, match="action is blank"):
            manager.load()


class TestRegistry:
    """Registry queries and reset."""

    @pytest.fixture
    def manager(self):
        network = NodeNetwork()
        for name in ("Mixed", "CC Out", "HC Out", "CHW In", "HW In"):
            network.add_node(name, mass_flow_rate=1.0, temp_set_point=15.0)
        configs = [
            {"name": "Heating", "control_variable": "Temperature", "action": "Normal",
             "sensed_node": "HC Out", "actuated_node": "HW In", "offset": 0.01,
             "max_vol_flow_actuated": 0.001},
            {"name": "Cooling", "control_variable": "Temperature", "action": "Reverse",
             "sensed_node": "CC Out", "actuated_node": "CHW In", "offset": 0.01,
             "max_vol_flow_actuated": 0.001},
        ]
        return ControllerManager(network, configs=configs)

    def test_lazy_load(self, manager):
        assert not manager.loaded
        assert manager.get_index("cooling") == 1
        assert manager.loaded

    def test_actuator_lookups(self, manager):
        network = manager.network
        assert manager.get_actuator_node("Heating") == network.node_id("HW In")
        assert manager.get_actuator_node("Missing") is None
        assert manager.get_controller_name_and_index(network.node_id("CHW In")) == ("Cooling", 1)
        assert manager.get_controller_name_and_index(network.node_id("Mixed")) is None
        assert manager.check_coil_water_inlet_node(network.node_id("HW In"))
        assert not manager.check_coil_water_inlet_node(network.node_id("HC Out"))

    def test_reset(self, manager):
        manager.run_controller("Heating", ControllerOperation.COLD_START, True)
        manager.reset()
        assert not manager.loaded
        assert manager.records == []
        assert manager.set_point_check_pending
        assert manager.get_record("Heating").init_first_pass

    def test_duplicate_names(self):
        network = NodeNetwork()
        network.add_node("A")
        config = {"name": "C", "control_variable": "Temperature", "action": "Normal",
                  "sensed_node": "A", "actuated_node": "A"}
        manager = ControllerManager(network, configs=[config, dict(config, name="c")])
        with pytest.raises(ConfigurationError, match="Duplicate controller name"):
            manager.load()

    def test_controller_list_order(self, manager, caplog):
        network = manager.network
        branch = tuple(network.node_id(n) for n in ("Mixed", "CC Out", "HC Out"))
        wrong = AirLoopConfig("Loop 1", ("Heating", "Cooling"), (branch,))
        right = AirLoopConfig("Loop 2", ("Cooling", "Heating"), (branch,))
        with caplog.at_level(logging.WARNING):
            assert manager.check_controller_list_order([wrong, right]) == ["Loop 1"]
        assert any("wrong order" in r.getMessage() for r in caplog.records)

    def test_list_order_checked_at_load(self):
        network = NodeNetwork()
        a = network.add_node("A")
        b = network.add_node("B")
        configs = [
            {"name": "Second", "control_variable": "Temperature", "action": "Normal",
             "sensed_node": "B", "actuated_node": "A"},
            {"name": "First", "control_variable": "Temperature", "action": "Normal",
             "sensed_node": "A", "actuated_node": "B"},
        ]
        loop = AirLoopConfig("Loop", ("Second", "First"), ((a, b),))
        manager = ControllerManager(network, configs=configs, air_loops=[loop])
        manager.load()
        assert manager.check_controller_list_order([loop]) == ["Loop"]
