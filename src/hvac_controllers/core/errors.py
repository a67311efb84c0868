"""
Errors - Exception taxonomy for the controller engine

Fatal conditions are raised to the caller with the diagnostic context that
was available when they were detected. The top-level simulation driver
decides whether the run halts.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from typing import Any, Dict, Optional


class ControllerError(Exception):
    """
    Base class for every error raised by the controller engine.

    Attributes:
        message: Short description of the failure
        context: Diagnostic payload (controller name, step label, bounds,
            brackets, candidate, ...)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})
        super().__init__(self._format())

    def _format(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value!r}" for key, value in self.context.items())
        return f"{self.message} | {details}"


class ConfigurationError(ControllerError, ValueError):
    """The model is not well-formed and cannot be simulated."""


class InvariantViolationError(ControllerError, RuntimeError):
    """A defect in the calling protocol or in the root finder itself."""


class ProtocolError(ControllerError, RuntimeError):
    """An operation was requested out of order for a controller."""
