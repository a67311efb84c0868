"""
Controller Protocol - Calling-sequence state machine

Each controller must be driven as ColdStart/WarmRestart, then Iterate any
number of times, then End. `ControllerProtocol` tracks the phase of one
controller and rejects out-of-order operations.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from enum import Enum

from hvac_controllers.core.errors import ProtocolError
from hvac_controllers.modules.controller.model import ControllerOperation


class ProtocolPhase(Enum):
    IDLE = "idle"
    STARTED = "started"
    ITERATING = "iterating"
    ENDED = "ended"


_LEGAL_FROM = {
    ControllerOperation.COLD_START: frozenset(ProtocolPhase),
    ControllerOperation.WARM_RESTART: frozenset(ProtocolPhase),
    ControllerOperation.ITERATE: frozenset({ProtocolPhase.STARTED, ProtocolPhase.ITERATING}),
    ControllerOperation.END: frozenset({
        ProtocolPhase.STARTED, ProtocolPhase.ITERATING, ProtocolPhase.ENDED,
    }),
}

_NEXT_PHASE = {
    ControllerOperation.COLD_START: ProtocolPhase.STARTED,
    ControllerOperation.WARM_RESTART: ProtocolPhase.STARTED,
    ControllerOperation.ITERATE: ProtocolPhase.ITERATING,
    ControllerOperation.END: ProtocolPhase.ENDED,
}


class ControllerProtocol:
    """Protocol phase of one controller."""

    def __init__(self, controller_name: str):
        self.controller_name = controller_name
        self.phase = ProtocolPhase.IDLE

    def is_allowed(self, operation: ControllerOperation) -> bool:
        return self.phase in _LEGAL_FROM[operation]

    def check(self, operation: ControllerOperation) -> None:
        """
        Raises:
            ProtocolError: If `operation` is illegal in the current phase
        """
        if not self.is_allowed(operation):
            raise ProtocolError(
                f"Operation {operation.name} is not allowed in phase {self.phase.name}",
                {"controller": self.controller_name,
                 "phase": self.phase.name,
                 "operation": operation.name},
            )

    def advance(self, operation: ControllerOperation) -> None:
        """Validate `operation` and move to the phase it leads to."""
        self.check(operation)
        self.phase = _NEXT_PHASE[operation]

    def reset(self) -> None:
        self.phase = ProtocolPhase.IDLE
