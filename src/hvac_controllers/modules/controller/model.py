"""
Controller Model - Controller record and per-controller lifecycle

Holds the mutable state of one water-coil controller and implements the
operations applied to it during a time step:

- reset (cold start / warm restart)
- initialization (sizing, environment, per-call inputs and bounds)
- calculation (drive the root finder one observation at a time)
- update (push the actuated flow to the node network)
- save (remember converged solutions for later passes)

Author: HVAC Controllers Project
Date: 2026-10-18
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from hvac_controllers.core.errors import ConfigurationError, InvariantViolationError
from hvac_controllers.core.node_network import (
    SENSED_NODE_FLAG_VALUE,
    NodeNetwork,
    PlantLocation,
    SetPointKind,
)
from hvac_controllers.core.props_service import PropsService, get_props_service
from hvac_controllers.modules.controller.config import (
    AUTOSIZE,
    CW_INIT_CONV_TEMP,
    SMALL_WATER_VOL_FLOW,
    CoilType,
    ControlVariable,
    ControllerAction,
    ControllerConfig,
    ConvergenceParams,
    HumidityRatioControlType,
)
from hvac_controllers.modules.root_finder.model import (
    MethodType,
    RootFinder,
    RootFinderStatus,
    SEARCHING_STATUSES,
    SlopeType,
)


logger = logging.getLogger(__name__)


class ControllerMode(Enum):
    """Classified operating state of a controller."""
    NONE = 0
    OFF = 1
    INACTIVE = 2
    MIN_ACTIVE = 3
    MAX_ACTIVE = 4
    ACTIVE = 5


class ControllerOperation(Enum):
    """Operation requested from `ControllerManager.run_controller`."""
    COLD_START = 1
    WARM_RESTART = 2
    ITERATE = 3
    END = 4


class PassPhase(Enum):
    """First or later outer-loop pass within a time step."""
    FIRST_PASS = "first_pass"
    LATER_PASS = "later_pass"

    @classmethod
    def from_first_pass(cls, first_pass: bool) -> "PassPhase":
        return cls.FIRST_PASS if first_pass else cls.LATER_PASS

    @property
    def other(self) -> "PassPhase":
        if self is PassPhase.FIRST_PASS:
            return PassPhase.LATER_PASS
        return PassPhase.FIRST_PASS


@dataclass
class SolutionTracker:
    """Last converged solution recorded for one pass phase."""
    defined: bool = False
    mode: ControllerMode = ControllerMode.NONE
    actuated_value: float = 0.0


class SolutionTrackerTable:
    """Solution trackers keyed by pass phase."""

    def __init__(self):
        self._trackers: Dict[PassPhase, SolutionTracker] = {
            phase: SolutionTracker() for phase in PassPhase
        }

    def __getitem__(self, phase: PassPhase) -> SolutionTracker:
        return self._trackers[phase]

    def save(self, phase: PassPhase, mode: ControllerMode, actuated_value: float) -> None:
        """Record a converged solution. Only ACTIVE solutions are reusable."""
        self._trackers[phase] = SolutionTracker(
            defined=(mode == ControllerMode.ACTIVE),
            mode=mode,
            actuated_value=actuated_value,
        )

    def clear(self) -> None:
        for phase in PassPhase:
            self._trackers[phase] = SolutionTracker()


@dataclass
class RecurringWarning:
    """
    Rate-limited warning counter.

    The first occurrence is logged with its full context, later ones only
    every `report_every` occurrences.
    """
    message: str
    report_every: int = 100
    count: int = 0

    def occur(self, context: Optional[Dict[str, Any]] = None) -> None:
        self.count += 1
        if self.count == 1:
            details = ", ".join(f"{k}={v!r}" for k, v in (context or {}).items())
            logger.warning("%s | %s", self.message, details)
        elif self.count % self.report_every == 0:
            logger.warning("%s (continues, %d occurrences)", self.message, self.count)

    def summary(self) -> Optional[str]:
        if self.count == 0:
            return None
        return f"{self.message}: {self.count} occurrence(s)"


@dataclass
class ControllerCallResult:
    """Outcome of one `run_controller` call."""
    converged: bool
    up_to_date: bool


@dataclass
class ControllerRecord:
    """
    Mutable state of one controller.

    Sized quantities (offset, volumetric flows) start from the configuration
    and are replaced once by sizing.
    """
    config: ControllerConfig
    index: int
    action: ControllerAction
    offset: float
    max_vol_flow_actuated: float
    min_vol_flow_actuated: float
    root_finder: RootFinder = field(default_factory=RootFinder)

    # Per-pass state
    num_calc_calls: int = 0
    mode: ControllerMode = ControllerMode.NONE
    sensed_value: float = 0.0
    actuated_value: float = 0.0
    next_actuated_value: float = 0.0
    set_point_value: float = 0.0
    delta_sensed: float = 0.0
    is_set_point_defined: bool = False
    do_warm_restart: bool = False
    off_this_pass: bool = False
    hum_rat_ctrl_override: bool = False
    reuse_previous_solution: bool = False
    reuse_intermediate_solution: bool = False
    min_avail_actuated: float = 0.0
    max_avail_actuated: float = 0.0

    # Design bounds [kg/s]
    min_actuated: float = 0.0
    max_actuated: float = 0.0

    solution_trackers: SolutionTrackerTable = field(default_factory=SolutionTrackerTable)
    bypass_calc: bool = False
    bad_action_warning: Optional[RecurringWarning] = None

    # Lifecycle flags
    init_first_pass: bool = True
    size_pending: bool = True
    environment_pending: bool = True
    plant_scan_pending: bool = True
    plant_location: Optional[PlantLocation] = None

    def __post_init__(self):
        if self.bad_action_warning is None:
            self.bad_action_warning = RecurringWarning(
                f"Controller={self.name}: controller function is inconsistent with "
                f"action={self.action.name}, actuator set to maximum"
            )

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def control_variable(self) -> ControlVariable:
        return self.config.control_variable

    @property
    def sensed_node(self) -> int:
        return self.config.sensed_node

    @property
    def actuated_node(self) -> int:
        return self.config.actuated_node

    @classmethod
    def from_config(cls, config: ControllerConfig, index: int) -> "ControllerRecord":
        return cls(
            config=config,
            index=index,
            action=resolve_action(config),
            offset=config.offset,
            max_vol_flow_actuated=config.max_vol_flow_actuated,
            min_vol_flow_actuated=config.min_vol_flow_actuated,
        )


def resolve_action(config: ControllerConfig) -> ControllerAction:
    """
    Action of a controller, derived from the coil type where possible.

    Cooling coils act in reverse, heating coils normally. An explicit action
    contradicting the coil type is overridden.

    Raises:
        ConfigurationError: If the action is blank and the coil type unknown
    """
    if config.coil_type is None:
        if config.action is None:
            raise ConfigurationError(
                f"Controller={config.name}: action is blank and cannot be derived "
                f"from the coil type",
            )
        return config.action

    expected = ControllerAction.REVERSE
    if config.coil_type == CoilType.HEATING:
        expected = ControllerAction.NORMAL
    if config.action is not None and config.action != expected:
        logger.warning(
            "Controller=%s: action %s is inconsistent with %s coil, using %s",
            config.name, config.action.name, config.coil_type.value, expected.name,
        )
    return expected


class ControllerModel:
    """
    Lifecycle operations applied to a controller record.

    The model reads sensed values, setpoints and available flows from the node
    network and writes the actuated flow back to it.
    """

    def __init__(self, network: NodeNetwork,
                 params: Optional[ConvergenceParams] = None,
                 design_water_flows: Optional[Mapping[int, float]] = None,
                 props: Optional[PropsService] = None):
        self.network = network
        self.params = params or ConvergenceParams()
        self.design_water_flows = design_water_flows if design_water_flows is not None else {}
        self.props = props or get_props_service()
        self.step_label = ""

    def _context(self, record: ControllerRecord, **extra) -> Dict[str, Any]:
        context: Dict[str, Any] = {"controller": record.name}
        if self.step_label:
            context["step"] = self.step_label
        context.update(extra)
        return context

    # ========== Reset ==========

    def reset(self, record: ControllerRecord, warm_restart: bool) -> None:
        """
        Reset per-pass state and the root finder, and zero the actuated flow.

        A warm restart keeps the mode and the next actuated value.
        """
        self.network.set_actuated_flow(record.actuated_node, 0.0,
                                       record.plant_location, reset=True)

        record.num_calc_calls = 0
        record.delta_sensed = 0.0
        record.sensed_value = 0.0
        record.actuated_value = 0.0
        record.set_point_value = 0.0
        record.is_set_point_defined = False
        record.min_avail_actuated = 0.0
        record.max_avail_actuated = 0.0
        record.off_this_pass = False

        record.do_warm_restart = warm_restart
        if not warm_restart:
            record.mode = ControllerMode.NONE
            record.next_actuated_value = 0.0

        # Disabled again for the first step of an environment
        record.reuse_previous_solution = True
        record.reuse_intermediate_solution = False

        record.root_finder.reset()

    def setup_root_finder(self, record: ControllerRecord) -> None:
        """Configure the root finder for normal (non-override) control."""
        slope = SlopeType.INCREASING
        if record.action == ControllerAction.REVERSE:
            slope = SlopeType.DECREASING
        record.root_finder.setup(slope, MethodType.BRENT, 0.0,
                                 self.params.root_finder_atol_x, record.offset)

    def engage_humidity_override(self, record: ControllerRecord) -> None:
        """Switch a dual controller to humidity-ratio control for this pass."""
        record.hum_rat_ctrl_override = True
        if record.action == ControllerAction.REVERSE:
            record.root_finder.setup(SlopeType.DECREASING, MethodType.FALSE_POSITION, 0.0,
                                     self.params.root_finder_atol_x,
                                     self.params.hum_rat_tolerance)
        self.reset(record, warm_restart=False)

    def clear_humidity_override(self, record: ControllerRecord) -> None:
        """Return to temperature control with its own tolerance."""
        if record.hum_rat_ctrl_override:
            record.hum_rat_ctrl_override = False
            self.setup_root_finder(record)

    # ========== Initialization ==========

    def size(self, record: ControllerRecord) -> None:
        """
        Autosize maximum actuated flow and tolerance, then set up the root finder.

        Raises:
            ConfigurationError: If the design flow is missing or min >= max flow
        """
        if record.max_vol_flow_actuated == AUTOSIZE:
            design = self.design_water_flows.get(record.actuated_node)
            if design is None:
                raise ConfigurationError(
                    f"Controller={record.name}: no design water flow for autosized "
                    f"maximum actuated flow",
                    self._context(record, actuated_node=record.actuated_node),
                )
            record.max_vol_flow_actuated = design if design >= SMALL_WATER_VOL_FLOW else 0.0
            logger.info("Controller=%s: Maximum Actuated Flow [m3/s] = %.6g",
                        record.name, record.max_vol_flow_actuated)

        if record.offset == AUTOSIZE:
            offset = (0.001 / (2100.0 * max(record.max_vol_flow_actuated, SMALL_WATER_VOL_FLOW))
                      * (self.params.hvac_energy_toler / 10.0))
            record.offset = min(0.1 * self.params.hvac_temp_toler, offset)
            logger.info("Controller=%s: Controller Convergence Tolerance = %.6g",
                        record.name, record.offset)

        if record.max_vol_flow_actuated == 0.0:
            logger.warning("Controller=%s: Maximum Actuated Flow is zero", record.name)
            record.min_vol_flow_actuated = 0.0
        elif record.min_vol_flow_actuated >= record.max_vol_flow_actuated:
            message = (f"Controller={record.name}: minimum control flow is >= "
                       f"maximum control flow")
            context = self._context(record, min_vol_flow=record.min_vol_flow_actuated,
                                    max_vol_flow=record.max_vol_flow_actuated)
            logger.error(message)
            raise ConfigurationError(message, context)

        self.setup_root_finder(record)
        record.size_pending = False

    def init_environment(self, record: ControllerRecord) -> None:
        """Recompute design mass-flow bounds and clear solution trackers."""
        fluid = self.network.plant_loops.fluid_for(record.plant_location)
        rho = self.props.rho_T(CW_INIT_CONV_TEMP + 273.15, fluid=fluid)
        record.min_actuated = rho * record.min_vol_flow_actuated
        record.max_actuated = rho * record.max_vol_flow_actuated
        record.reuse_previous_solution = False
        record.solution_trackers.clear()
        record.environment_pending = False

    def initialize(self, record: ControllerRecord) -> None:
        """
        Prepare inputs for an Iterate or End call.

        Runs the one-time plant scan and sizing, the pending environment
        initialization, then pushes the last actuated value and reads the
        sensed value, setpoint, actuated value and available bounds.
        """
        if record.plant_scan_pending:
            record.plant_location = self.network.plant_loops.scan_for_node(record.actuated_node)
            record.plant_scan_pending = False
        if record.size_pending:
            self.size(record)
        if record.environment_pending:
            self.init_environment(record)

        self.update(record)

        node = self.network[record.sensed_node]
        kind = self._set_point_kind(record)
        if kind == SetPointKind.TEMPERATURE:
            record.sensed_value = node.temp
        elif kind == SetPointKind.MASS_FLOW_RATE:
            record.sensed_value = node.mass_flow_rate
        else:
            record.sensed_value = node.hum_rat
        if not record.is_set_point_defined:
            record.set_point_value = self.network.get_set_point(record.sensed_node, kind)
            record.is_set_point_defined = record.set_point_value != SENSED_NODE_FLAG_VALUE

        actuated = self.network[record.actuated_node]
        record.actuated_value = actuated.mass_flow_rate
        if record.num_calc_calls == 0:
            max_avail = min(actuated.mass_flow_rate_max_avail, record.max_actuated)
            min_avail = max(actuated.mass_flow_rate_min_avail, record.min_actuated)
            record.min_avail_actuated = min(min_avail, max_avail)
            record.max_avail_actuated = max_avail

        record.delta_sensed = record.sensed_value - record.set_point_value

    @staticmethod
    def _set_point_kind(record: ControllerRecord) -> SetPointKind:
        variable = record.control_variable
        if variable == ControlVariable.TEMPERATURE:
            return SetPointKind.TEMPERATURE
        if variable == ControlVariable.TEMPERATURE_AND_HUMIDITY_RATIO:
            if record.hum_rat_ctrl_override:
                return SetPointKind.MAX_HUMIDITY_RATIO
            return SetPointKind.TEMPERATURE
        if variable == ControlVariable.HUMIDITY_RATIO:
            if record.config.humidity_ratio_control_type == HumidityRatioControlType.MAX_HUMIDITY_RATIO:
                return SetPointKind.MAX_HUMIDITY_RATIO
            return SetPointKind.HUMIDITY_RATIO
        return SetPointKind.MASS_FLOW_RATE

    # ========== Calculation ==========

    def calc(self, record: ControllerRecord, first_pass: bool,
             is_up_to_date: bool) -> Tuple[bool, bool]:
        """
        Process the observation produced by the last candidate.

        Returns:
            (converged, up_to_date)

        Raises:
            InvariantViolationError: If the setpoint or the bounds drifted
        """
        record.num_calc_calls += 1

        sensed_flow = self.network[record.sensed_node].mass_flow_rate
        if sensed_flow == 0.0 or record.off_this_pass:
            record.off_this_pass = True
            return self.exit_calc(record, 0.0, ControllerMode.OFF)

        finder = record.root_finder
        if record.num_calc_calls == 1:
            finder.initialize(record.min_avail_actuated, record.max_avail_actuated)
            record.reuse_intermediate_solution = (
                is_up_to_date and record.is_set_point_defined
                and finder.check_candidate(record.actuated_value)
            )
            if record.reuse_intermediate_solution:
                return self.find_root(record, first_pass)
            record.next_actuated_value = finder.min_point.x
            return False, False

        if not record.is_set_point_defined:
            self._fail(record, "Setpoint is not available/defined")
        if finder.min_point.x != record.min_avail_actuated:
            self._fail(record, "Minimum bound must remain invariant during successive iterations",
                       root_finder_min=finder.min_point.x, min_avail=record.min_avail_actuated)
        if finder.max_point.x != record.max_avail_actuated:
            self._fail(record, "Maximum bound must remain invariant during successive iterations",
                       root_finder_max=finder.max_point.x, max_avail=record.max_avail_actuated)

        return self.find_root(record, first_pass)

    def find_root(self, record: ControllerRecord, first_pass: bool) -> Tuple[bool, bool]:
        """Feed the current observation to the root finder and act on its status."""
        finder = record.root_finder
        status = finder.iterate(record.actuated_value, record.delta_sensed)

        if status in SEARCHING_STATUSES:
            tracker = record.solution_trackers[PassPhase.from_first_pass(first_pass).other]
            reuse = (record.reuse_previous_solution
                     and finder.current_method == MethodType.BRACKET
                     and tracker.defined
                     and tracker.mode == ControllerMode.ACTIVE
                     and finder.check_candidate(tracker.actuated_value))
            if reuse:
                candidate = tracker.actuated_value
                record.reuse_previous_solution = False
            else:
                candidate = finder.x_candidate
            self._check_candidate(record, candidate)
            record.next_actuated_value = candidate
            return False, False

        if status in (RootFinderStatus.OK, RootFinderStatus.OK_ROUNDOFF):
            return self.exit_calc(record, finder.x_candidate, ControllerMode.ACTIVE)
        if status == RootFinderStatus.OK_MIN:
            return self.exit_calc(record, finder.min_point.x, ControllerMode.MIN_ACTIVE)
        if status == RootFinderStatus.OK_MAX:
            return self.exit_calc(record, finder.max_point.x, ControllerMode.MAX_ACTIVE)
        if status == RootFinderStatus.ERROR_SINGULAR:
            return self.exit_calc(record, finder.min_point.x, ControllerMode.INACTIVE)
        if status == RootFinderStatus.ERROR_RANGE:
            self._fail(record, "Root candidate does not lie within the min/max bounds",
                       candidate=record.actuated_value, min_bound=finder.min_point.x,
                       max_bound=finder.max_point.x)
        if status == RootFinderStatus.ERROR_BRACKET:
            self._fail(record, "Root candidate does not lie within the lower/upper brackets",
                       candidate=record.actuated_value, action=record.action.name,
                       lower=finder.lower_point.x if finder.lower_point.defined else None,
                       upper=finder.upper_point.x if finder.upper_point.defined else None)
        if status == RootFinderStatus.ERROR_SLOPE:
            record.bad_action_warning.occur(self._context(
                record,
                control_variable=record.control_variable.name,
                set_point=record.set_point_value,
                sensed=record.sensed_value,
                actuated_flow=record.max_avail_actuated,
            ))
            return self.exit_calc(record, finder.max_point.x, ControllerMode.MAX_ACTIVE)

        self._fail(record, "Unrecognized root finder status", status=status)

    def exit_calc(self, record: ControllerRecord, value: float,
                  mode: ControllerMode) -> Tuple[bool, bool]:
        """Commit a final value. Returns (converged, up_to_date)."""
        record.next_actuated_value = value
        record.mode = mode
        record.reuse_intermediate_solution = False
        return True, record.actuated_value == value

    def _check_candidate(self, record: ControllerRecord, candidate: float) -> None:
        finder = record.root_finder
        if not finder.check_range(candidate):
            self._fail(record, "Candidate lies outside the min/max bounds",
                       candidate=candidate, min_bound=finder.min_point.x,
                       max_bound=finder.max_point.x)

    def _fail(self, record: ControllerRecord, message: str, **extra) -> None:
        text = f"Root finder failed for controller={record.name}: {message}"
        logger.error(text)
        raise InvariantViolationError(text, self._context(record, **extra))

    # ========== Update / Save ==========

    def update(self, record: ControllerRecord) -> None:
        """Push the next actuated value to the node network."""
        self.network.set_actuated_flow(record.actuated_node, record.next_actuated_value,
                                       record.plant_location, reset=False)

    def save(self, record: ControllerRecord, first_pass: bool, converged: bool) -> None:
        """Record a converged solution for the current pass phase."""
        if converged:
            record.solution_trackers.save(PassPhase.from_first_pass(first_pass),
                                          record.mode, record.next_actuated_value)
