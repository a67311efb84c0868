"""
Controller Manager - Registry and single entry point of the engine

`ControllerManager` owns every controller record of a run and exposes
`run_controller`, called repeatedly by the outer air-loop solver with an
operation code (cold start, warm restart, iterate, end).

Author: HVAC Controllers Project
Date: 2026-10-18
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from hvac_controllers.core.errors import ConfigurationError
from hvac_controllers.core.node_network import NodeNetwork, SetPointKind
from hvac_controllers.core.props_service import PropsService
from hvac_controllers.modules.controller.config import (
    AirLoopConfig,
    ControlVariable,
    ControllerAction,
    ControllerConfig,
    ConvergenceParams,
    HumidityRatioControlType,
)
from hvac_controllers.modules.controller.convergence import (
    humidity_override_required,
    is_converged,
)
from hvac_controllers.modules.controller.model import (
    ControllerCallResult,
    ControllerModel,
    ControllerOperation,
    ControllerRecord,
)
from hvac_controllers.modules.controller.protocol import ControllerProtocol, ProtocolPhase


logger = logging.getLogger(__name__)

Handle = Union[str, int]


class ControllerManager:
    """
    Registry of water-coil controllers.

    Controllers are loaded lazily from their configurations on first use and
    live until `reset()`. All operations act on the node network passed at
    construction.
    """

    def __init__(
        self,
        network: NodeNetwork,
        configs: Optional[Iterable[Union[ControllerConfig, Dict[str, Any]]]] = None,
        params: Optional[ConvergenceParams] = None,
        design_water_flows: Optional[Mapping[int, float]] = None,
        air_loops: Optional[Iterable[AirLoopConfig]] = None,
        props: Optional[PropsService] = None,
    ):
        """
        Initialize the registry.

        Args:
            network: Node network shared with the outer simulation
            configs: Controller configurations or loader records
            params: Convergence parameters (defaults if None)
            design_water_flows: Design volumetric water flow per actuated node [m³/s]
            air_loops: Air loop layouts checked for controller order at load
            props: Property service (global singleton if None)
        """
        self.network = network
        self.configs = list(configs or [])
        self.air_loops = list(air_loops or [])
        self.model = ControllerModel(network, params, dict(design_water_flows or {}), props)
        self.reset()

    def reset(self) -> None:
        """Drop every controller and re-arm the one-time checks."""
        self.records: List[ControllerRecord] = []
        self.protocols: List[ControllerProtocol] = []
        self._index_by_name: Dict[str, int] = {}
        self._name_checked: Set[int] = set()
        self.loaded = False
        self.set_point_check_pending = True

    @property
    def params(self) -> ConvergenceParams:
        return self.model.params

    @property
    def step_label(self) -> str:
        return self.model.step_label

    @step_label.setter
    def step_label(self, label: str) -> None:
        self.model.step_label = label

    def register_design_water_flow(self, actuated_node: int, vol_flow: float) -> None:
        """Register the design water flow [m³/s] of the coil fed by a node."""
        self.model.design_water_flows[actuated_node] = vol_flow

    # ========== Loading ==========

    def load(self) -> None:
        """Build controller records from the configurations (once)."""
        if self.loaded:
            return
        for item in self.configs:
            config = item
            if not isinstance(item, ControllerConfig):
                config = ControllerConfig.from_dict(item, self.network)
            key = config.name.upper()
            if key in self._index_by_name:
                raise ConfigurationError(f"Duplicate controller name: {config.name}")
            index = len(self.records)
            self._index_by_name[key] = index
            self.records.append(ControllerRecord.from_config(config, index))
            self.protocols.append(ControllerProtocol(config.name))
        self.loaded = True
        logger.info("Loaded %d water coil controller(s)", len(self.records))

        if self.air_loops:
            self.check_controller_list_order(self.air_loops)

    def _resolve(self, handle: Handle) -> int:
        self.load()
        if isinstance(handle, str):
            return self.get_index(handle)
        if not 0 <= handle < len(self.records):
            raise ConfigurationError(
                f"Invalid controller index={handle}",
                {"num_controllers": len(self.records), "step": self.step_label},
            )
        return handle

    def get_record(self, handle: Handle) -> ControllerRecord:
        return self.records[self._resolve(handle)]

    # ========== Entry point ==========

    def run_controller(
        self,
        handle: Handle,
        operation: Union[ControllerOperation, int],
        first_pass: bool,
        is_up_to_date: bool = False,
        bypass: bool = False,
        controller_name: Optional[str] = None,
    ) -> ControllerCallResult:
        """
        Perform one operation on one controller.

        Args:
            handle: Controller name or 0-based index
            operation: COLD_START, WARM_RESTART, ITERATE or END
            first_pass: True on the first outer-loop pass of the time step
            is_up_to_date: True if the network was just evaluated with the
                current actuated value
            bypass: True if the caller requests bypass of flagged controllers
            controller_name: Expected name when `handle` is an index

        Returns:
            ControllerCallResult(converged, up_to_date)

        Raises:
            ConfigurationError: Unknown controller or invalid operation
            InvariantViolationError: Root finder bookkeeping defect
            ProtocolError: Operation out of order
        """
        index = self._resolve(handle)
        record = self.records[index]
        if controller_name is not None and index not in self._name_checked:
            if controller_name.upper() != record.name.upper():
                raise ConfigurationError(
                    f"Controller name mismatch for index={index}",
                    {"expected": controller_name, "stored": record.name},
                )
            self._name_checked.add(index)
        operation = self._parse_operation(operation, record)

        if record.bypass_calc and bypass:
            return ControllerCallResult(converged=True, up_to_date=True)

        location = record.plant_location
        if location is not None and self.network.plant_loops.is_flow_locked(location):
            self.model.update(record)
            return ControllerCallResult(converged=True, up_to_date=is_up_to_date)

        protocol = self.protocols[index]
        protocol.advance(operation)

        if record.init_first_pass:
            if self.set_point_check_pending:
                self.check_set_points()
            self.model.initialize(record)
            record.init_first_pass = False

        if operation == ControllerOperation.COLD_START:
            self.model.clear_humidity_override(record)
            self.model.reset(record, warm_restart=False)
            self.model.update(record)
            return ControllerCallResult(converged=False, up_to_date=False)

        if operation == ControllerOperation.WARM_RESTART:
            self.model.reset(record, warm_restart=True)
            self.model.update(record)
            return ControllerCallResult(converged=False, up_to_date=False)

        if operation == ControllerOperation.ITERATE:
            self.model.initialize(record)
            converged, up_to_date = self.model.calc(record, first_pass, is_up_to_date)
            self.model.update(record)
            if converged and humidity_override_required(
                    record, self.network, self.params.hum_rat_override_margin):
                logger.debug("Controller=%s: switching to humidity ratio control", record.name)
                self.model.engage_humidity_override(record)
                protocol.phase = ProtocolPhase.STARTED
                converged, up_to_date = False, False
            return ControllerCallResult(converged=converged, up_to_date=up_to_date)

        self.model.initialize(record)
        converged = is_converged(record, self.network)
        self.model.save(record, first_pass, converged)
        return ControllerCallResult(converged=converged, up_to_date=is_up_to_date)

    def _parse_operation(self, operation: Union[ControllerOperation, int],
                         record: ControllerRecord) -> ControllerOperation:
        if isinstance(operation, ControllerOperation):
            return operation
        try:
            return ControllerOperation(operation)
        except ValueError:
            message = f"Invalid operation={operation!r} for controller={record.name}"
            logger.error(message)
            raise ConfigurationError(message, {"step": self.step_label}) from None

    # ========== Queries ==========

    def is_speculative_warm_restart_safe(self, handle: Handle) -> bool:
        """Warm restart is never speculative for dual temperature/humidity control."""
        record = self.records[self._resolve(handle)]
        return record.control_variable != ControlVariable.TEMPERATURE_AND_HUMIDITY_RATIO

    def get_index(self, name: str) -> int:
        """
        Resolve a controller name (case-insensitive).

        Raises:
            ConfigurationError: If no controller has this name
        """
        self.load()
        try:
            return self._index_by_name[name.upper()]
        except KeyError:
            raise ConfigurationError(f"Invalid controller={name}",
                                     {"step": self.step_label}) from None

    def get_actuator_node(self, name: str) -> Optional[int]:
        """Actuated node of a controller, None if the name is unknown."""
        self.load()
        index = self._index_by_name.get(name.upper())
        if index is None:
            return None
        return self.records[index].actuated_node

    def get_controller_name_and_index(self, actuated_node: int) -> Optional[Tuple[str, int]]:
        """Controller actuating a water inlet node, None if there is none."""
        self.load()
        for record in self.records:
            if record.actuated_node == actuated_node:
                return record.name, record.index
        return None

    def check_coil_water_inlet_node(self, actuated_node: int) -> bool:
        """Return True if some controller actuates the node."""
        return self.get_controller_name_and_index(actuated_node) is not None

    def set_bypass(self, handle: Handle, flag: bool) -> None:
        self.records[self._resolve(handle)].bypass_calc = flag

    def begin_environment(self) -> None:
        """Arm environment initialization of every controller."""
        self.load()
        for record in self.records:
            record.environment_pending = True

    def warning_summary(self) -> List[str]:
        """End-of-run summary of recurring warnings."""
        lines = []
        for record in self.records:
            summary = record.bad_action_warning.summary()
            if summary:
                lines.append(summary)
        return lines

    # ========== Checks ==========

    def check_set_points(self) -> None:
        """
        Verify that every sensed node carries the setpoints its controller needs.

        Raises:
            ConfigurationError: If any setpoint is missing
        """
        missing = []
        for record in self.records:
            node_id = record.sensed_node
            for kind in self._required_set_points(record):
                if not self.network.has_set_point(node_id, kind):
                    logger.error("Controller=%s: missing %s setpoint at node %s",
                                 record.name, kind.name, self.network[node_id].name)
                    missing.append(f"{record.name}:{kind.name}")
            if (record.control_variable == ControlVariable.TEMPERATURE
                    and record.action == ControllerAction.REVERSE
                    and self.network.has_set_point(node_id, SetPointKind.MAX_HUMIDITY_RATIO)):
                logger.warning(
                    "Controller=%s has detected a maximum humidity ratio setpoint at the "
                    "control node; use TEMPERATURE_AND_HUMIDITY_RATIO if humidity control "
                    "is desired", record.name,
                )
        self.set_point_check_pending = False
        if missing:
            raise ConfigurationError("Missing controller setpoints", {"missing": missing})

    @staticmethod
    def _required_set_points(record: ControllerRecord) -> Tuple[SetPointKind, ...]:
        variable = record.control_variable
        if variable == ControlVariable.TEMPERATURE:
            return (SetPointKind.TEMPERATURE,)
        if variable == ControlVariable.TEMPERATURE_AND_HUMIDITY_RATIO:
            return (SetPointKind.TEMPERATURE, SetPointKind.MAX_HUMIDITY_RATIO)
        if variable == ControlVariable.HUMIDITY_RATIO:
            if record.config.humidity_ratio_control_type == HumidityRatioControlType.MAX_HUMIDITY_RATIO:
                return (SetPointKind.MAX_HUMIDITY_RATIO,)
            return (SetPointKind.HUMIDITY_RATIO,)
        return (SetPointKind.MASS_FLOW_RATE,)

    def check_controller_list_order(self, air_loops: Iterable[AirLoopConfig]) -> List[str]:
        """
        Warn about air loops whose controllers are not listed in flow order.

        Only controllers whose sensed nodes lie on the same branch are
        compared.

        Returns:
            Names of the offending air loops
        """
        self.load()
        offending = []
        for loop in air_loops:
            positions = []
            for name in loop.controller_names:
                index = self._index_by_name.get(name.upper())
                if index is not None:
                    positions.append(self._branch_position(loop, self.records[index].sensed_node))
            if len(positions) < 2:
                continue
            for previous, current in zip(positions, positions[1:]):
                if previous is None or current is None:
                    continue
                if current[0] == previous[0] and current[1] < previous[1]:
                    logger.warning(
                        "Controller list of air loop %s has the wrong order; list "
                        "controllers of upstream coils before downstream coils", loop.name,
                    )
                    offending.append(loop.name)
                    break
        return offending

    @staticmethod
    def _branch_position(loop: AirLoopConfig, node_id: int) -> Optional[Tuple[int, int]]:
        for branch_num, nodes in enumerate(loop.branches):
            if node_id in nodes:
                return branch_num, nodes.index(node_id)
        return None
