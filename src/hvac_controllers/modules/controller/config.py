"""
Controller Config - Immutable controller configuration and engine constants

Configuration records arrive from the input loader as plain dictionaries
with case-insensitive enumeration strings and the "autosize" keyword.
`ControllerConfig.from_dict` turns them into typed, validated records.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar, Union

from hvac_controllers.core.errors import ConfigurationError
from hvac_controllers.core.node_network import NodeNetwork


logger = logging.getLogger(__name__)

# Field value requesting automatic sizing
AUTOSIZE = -99999.0

# Design water flows below this are treated as zero [m³/s]
SMALL_WATER_VOL_FLOW = 1.0e-9

# Water temperature used to convert volumetric to mass flow [°C]
CW_INIT_CONV_TEMP = 5.05

# Default minimum actuated volumetric flow [m³/s]
DEFAULT_MIN_VOL_FLOW = 1.0e-7


class ControlVariable(Enum):
    TEMPERATURE = "temperature"
    HUMIDITY_RATIO = "humidity_ratio"
    TEMPERATURE_AND_HUMIDITY_RATIO = "temperature_and_humidity_ratio"
    FLOW = "flow"


class ControllerAction(Enum):
    """Sign of the sensed response to an increase of the actuated flow."""
    NORMAL = "normal"
    REVERSE = "reverse"


class ActuatorVariable(Enum):
    FLOW = "flow"


class CoilType(Enum):
    COOLING = "cooling"
    HEATING = "heating"


class HumidityRatioControlType(Enum):
    HUMIDITY_RATIO = "humidity_ratio"
    MAX_HUMIDITY_RATIO = "max_humidity_ratio"


_ALIASES = {
    "MAXIMUMHUMIDITYRATIO": "MAXHUMIDITYRATIO",
    "HUMRAT": "HUMIDITYRATIO",
    "TEMPANDHUMRAT": "TEMPERATUREANDHUMIDITYRATIO",
}

E = TypeVar("E", bound=Enum)


def _normalize(text: str) -> str:
    key = "".join(ch for ch in text.upper() if ch.isalnum())
    return _ALIASES.get(key, key)


def parse_enum(enum_cls: Type[E], value: Any, field_name: str,
               allow_blank: bool = False) -> Optional[E]:
    """
    Parse an enumeration from a member, a name or a value string.

    Matching ignores case, spaces and underscores.

    Raises:
        ConfigurationError: If the value matches no member
    """
    if isinstance(value, enum_cls):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_blank:
            return None
        raise ConfigurationError(f"Missing value for {field_name}")
    key = _normalize(str(value))
    for member in enum_cls:
        if key in (_normalize(member.name), _normalize(str(member.value))):
            return member
    choices = ", ".join(member.name for member in enum_cls)
    raise ConfigurationError(
        f"Invalid {field_name}={value!r}", {"choices": choices}
    )


def parse_autosizable(value: Any, field_name: str) -> float:
    """Parse a number or the 'autosize' keyword (returned as AUTOSIZE)."""
    if isinstance(value, str):
        if value.strip().lower() == "autosize":
            return AUTOSIZE
        try:
            return float(value)
        except ValueError:
            raise ConfigurationError(f"Invalid {field_name}={value!r}") from None
    return float(value)


@dataclass(frozen=True)
class ConvergenceParams:
    """
    Simulation-wide convergence settings.

    Attributes:
        hvac_energy_toler: HVAC energy convergence tolerance [W]
        hvac_temp_toler: HVAC temperature convergence tolerance [°C]
        root_finder_atol_x: Absolute actuated-flow tolerance [kg/s]
        hum_rat_override_margin: Excess humidity triggering humidity control
        hum_rat_tolerance: Residual tolerance under humidity control
    """
    hvac_energy_toler: float = 10.0
    hvac_temp_toler: float = 0.01
    root_finder_atol_x: float = 1.0e-6
    hum_rat_override_margin: float = 1.0e-5
    hum_rat_tolerance: float = 1.0e-5

    def __post_init__(self):
        for name in ("hvac_energy_toler", "hvac_temp_toler", "root_finder_atol_x",
                     "hum_rat_override_margin", "hum_rat_tolerance"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")


NodeRef = Union[int, str]


@dataclass(frozen=True)
class ControllerConfig:
    """
    Configuration of one water-coil controller.

    Attributes:
        name: Controller name (unique, case-insensitive)
        control_variable: Sensed quantity
        action: NORMAL or REVERSE, None to derive it from the coil type
        sensed_node: Node id where the sensed value is read
        actuated_node: Node id of the actuated water inlet
        offset: Convergence tolerance on the residual, or AUTOSIZE
        max_vol_flow_actuated: Maximum actuated flow [m³/s], or AUTOSIZE
        min_vol_flow_actuated: Minimum actuated flow [m³/s]
        actuator_variable: Actuated quantity (flow only)
        humidity_ratio_control_type: Setpoint used by humidity controllers
        coil_type: Type of the actuated coil, if known
        air_loop: Name of the owning air loop
    """
    name: str
    control_variable: ControlVariable
    sensed_node: int
    actuated_node: int
    action: Optional[ControllerAction] = None
    offset: float = AUTOSIZE
    max_vol_flow_actuated: float = AUTOSIZE
    min_vol_flow_actuated: float = DEFAULT_MIN_VOL_FLOW
    actuator_variable: ActuatorVariable = ActuatorVariable.FLOW
    humidity_ratio_control_type: Optional[HumidityRatioControlType] = None
    coil_type: Optional[CoilType] = None
    air_loop: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Controller name must not be blank")
        if self.offset != AUTOSIZE and self.offset < 0:
            raise ConfigurationError(
                f"Controller={self.name}: convergence tolerance must be non-negative",
                {"offset": self.offset},
            )
        if self.max_vol_flow_actuated != AUTOSIZE and self.max_vol_flow_actuated < 0:
            raise ConfigurationError(
                f"Controller={self.name}: maximum actuated flow must be non-negative",
                {"max_vol_flow_actuated": self.max_vol_flow_actuated},
            )
        if self.min_vol_flow_actuated < 0:
            raise ConfigurationError(
                f"Controller={self.name}: minimum actuated flow must be non-negative",
                {"min_vol_flow_actuated": self.min_vol_flow_actuated},
            )
        if self.control_variable == ControlVariable.HUMIDITY_RATIO \
                and self.humidity_ratio_control_type is None:
            object.__setattr__(self, "humidity_ratio_control_type",
                               HumidityRatioControlType.HUMIDITY_RATIO)

    @classmethod
    def from_dict(cls, data: Dict[str, Any],
                  network: Optional[NodeNetwork] = None) -> "ControllerConfig":
        """
        Build a configuration from a loader record.

        Node references may be ids or names; names need `network`.

        Raises:
            ConfigurationError: On missing fields, unknown nodes or bad enums
        """
        try:
            name = str(data["name"])
            control_variable = data["control_variable"]
            sensed = data["sensed_node"]
            actuated = data["actuated_node"]
        except KeyError as e:
            raise ConfigurationError(f"Missing controller field {e.args[0]!r}",
                                     {"record": data}) from None

        return cls(
            name=name,
            control_variable=parse_enum(ControlVariable, control_variable, "control_variable"),
            sensed_node=_resolve_node(sensed, network, name, "sensed_node"),
            actuated_node=_resolve_node(actuated, network, name, "actuated_node"),
            action=parse_enum(ControllerAction, data.get("action"), "action", allow_blank=True),
            offset=parse_autosizable(data.get("offset", AUTOSIZE), "offset"),
            max_vol_flow_actuated=parse_autosizable(
                data.get("max_vol_flow_actuated", AUTOSIZE), "max_vol_flow_actuated"),
            min_vol_flow_actuated=float(data.get("min_vol_flow_actuated", DEFAULT_MIN_VOL_FLOW)),
            actuator_variable=parse_enum(ActuatorVariable, data.get("actuator_variable", "Flow"),
                                         "actuator_variable"),
            humidity_ratio_control_type=parse_enum(
                HumidityRatioControlType, data.get("humidity_ratio_control_type"),
                "humidity_ratio_control_type", allow_blank=True),
            coil_type=parse_enum(CoilType, data.get("coil_type"), "coil_type", allow_blank=True),
            air_loop=data.get("air_loop"),
        )


def _resolve_node(ref: NodeRef, network: Optional[NodeNetwork],
                  controller: str, field_name: str) -> int:
    if isinstance(ref, int):
        return ref
    if network is None:
        raise ConfigurationError(
            f"Controller={controller}: node name given for {field_name} without a network",
            {field_name: ref},
        )
    try:
        return network.node_id(str(ref))
    except KeyError:
        raise ConfigurationError(
            f"Controller={controller}: unknown {field_name}", {field_name: ref}
        ) from None


def load_controller_configs(records: Iterable[Dict[str, Any]],
                            network: Optional[NodeNetwork] = None) -> List[ControllerConfig]:
    """
    Build controller configurations from loader records.

    Raises:
        ConfigurationError: On an invalid record or a duplicate name
    """
    configs: List[ControllerConfig] = []
    seen = set()
    for record in records:
        config = ControllerConfig.from_dict(record, network)
        key = config.name.upper()
        if key in seen:
            raise ConfigurationError(f"Duplicate controller name: {config.name}")
        seen.add(key)
        configs.append(config)
    logger.debug("Loaded %d controller configuration(s)", len(configs))
    return configs


@dataclass(frozen=True)
class AirLoopConfig:
    """
    Layout of one air loop as seen by its controllers.

    Attributes:
        name: Air loop name
        controller_names: Controllers in list (evaluation) order
        branches: Node ids of each branch in flow order
    """
    name: str
    controller_names: Tuple[str, ...] = ()
    branches: Tuple[Tuple[int, ...], ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any],
                  network: Optional[NodeNetwork] = None) -> "AirLoopConfig":
        """Build an air loop layout; branch nodes may be ids or names."""
        name = str(data["name"])
        branches = tuple(
            tuple(_resolve_node(ref, network, name, "branch node") for ref in branch)
            for branch in data.get("branches", ())
        )
        return cls(name=name,
                   controller_names=tuple(data.get("controller_names", ())),
                   branches=branches)
