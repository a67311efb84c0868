"""
RootFinder Model - Bracket-and-refine scalar equation solver

Solves y(x) = 0 for a monotonic function on [x_min, x_max] when each
evaluation of y is performed by the caller. The caller hands one observation
(x, y) at a time to `iterate()` and reads back the status and the next
candidate `x_candidate`.

The search first evaluates the bounds until the root is bracketed, then
refines with the configured interpolation method. Every interpolated estimate
is safeguarded by bisection.

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional

import numpy as np


class SlopeType(Enum):
    """Expected sign of dy/dx."""
    INCREASING = 1
    DECREASING = -1


class MethodType(Enum):
    """Method used to produce the next candidate."""
    NONE = 0
    BRACKET = 1
    BISECTION = 2
    FALSE_POSITION = 3
    SECANT = 4
    BRENT = 5


class RootFinderStatus(Enum):
    """Outcome of the last call to `RootFinder.iterate`."""
    NONE = 0
    OK = 1
    OK_MIN = 2
    OK_MAX = 3
    OK_ROUNDOFF = 4
    WARNING_NON_MONOTONIC = 5
    WARNING_SINGULAR = 6
    ERROR_SINGULAR = 7
    ERROR_RANGE = 8
    ERROR_BRACKET = 9
    ERROR_SLOPE = 10


# Statuses after which the caller must evaluate x_candidate and call again
SEARCHING_STATUSES = frozenset({
    RootFinderStatus.NONE,
    RootFinderStatus.WARNING_NON_MONOTONIC,
    RootFinderStatus.WARNING_SINGULAR,
})


@dataclass
class RootPoint:
    """
    One observation of the function.

    Attributes:
        x: Input value
        y: Residual at x
        defined: True once the point holds an observation
    """
    x: float = 0.0
    y: float = 0.0
    defined: bool = False


@dataclass
class RootFinderControls:
    """
    Solver settings.

    Attributes:
        slope: Expected slope of y(x)
        method: Interpolation method once the root is bracketed
        tol_x: Relative tolerance on x [-]
        atol_x: Absolute tolerance on x
        atol_y: Absolute tolerance on y
    """
    slope: SlopeType = SlopeType.INCREASING
    method: MethodType = MethodType.BRENT
    tol_x: float = 0.0
    atol_x: float = 1.0e-6
    atol_y: float = 1.0e-6


class RootFinder:
    """
    Generic bracketing root finder driven one observation at a time.

    Typical use:
        finder.setup(SlopeType.INCREASING, MethodType.BRENT, 0.0, 1e-6, 0.01)
        finder.initialize(x_min, x_max)
        x = finder.x_candidate
        while True:
            status = finder.iterate(x, f(x))
            if status not in SEARCHING_STATUSES:
                break
            x = finder.x_candidate
    """

    def __init__(self):
        self.controls = RootFinderControls()
        self.reset()

    def setup(self, slope: SlopeType, method: MethodType, tol_x: float,
              atol_x: float, atol_y: float) -> None:
        """
        Configure slope, method and tolerances.

        Raises:
            ValueError: If a tolerance is negative or method is NONE
        """
        if tol_x < 0 or atol_x < 0 or atol_y < 0:
            raise ValueError(
                f"Tolerances must be non-negative, got tol_x={tol_x}, "
                f"atol_x={atol_x}, atol_y={atol_y}"
            )
        if method == MethodType.NONE:
            raise ValueError("Root finder method must not be NONE")
        self.controls = RootFinderControls(
            slope=slope, method=method, tol_x=tol_x, atol_x=atol_x, atol_y=atol_y,
        )

    def reset(self) -> None:
        """Forget all observations. Controls are kept."""
        self.status = RootFinderStatus.NONE
        self.current_method = MethodType.NONE
        self.x_candidate = 0.0
        self.num_iterations = 0
        self.current_point = RootPoint()
        self.previous_point = RootPoint()
        self.min_point = RootPoint()
        self.max_point = RootPoint()
        self.lower_point = RootPoint()
        self.upper_point = RootPoint()
        self._history: List[RootPoint] = []
        self._widths: List[float] = []

    def initialize(self, x_min: float, x_max: float) -> None:
        """
        Start a new search on [x_min, x_max].

        The first candidate is x_min.

        Raises:
            ValueError: If x_min > x_max
        """
        if x_min > x_max:
            raise ValueError(f"Invalid root finder bounds: x_min={x_min} > x_max={x_max}")
        self.reset()
        self.min_point = RootPoint(x=x_min)
        self.max_point = RootPoint(x=x_max)
        self.x_candidate = x_min
        self.current_method = MethodType.BRACKET

    # ========== Queries ==========

    def check_range(self, x: float) -> bool:
        """Return True if x lies within [Min.X, Max.X]."""
        return self.min_point.x <= x <= self.max_point.x

    def check_brackets(self, x: float) -> bool:
        """Return True if x lies within the current brackets."""
        if self.lower_point.defined and x < self.lower_point.x:
            return False
        if self.upper_point.defined and x > self.upper_point.x:
            return False
        return True

    def check_candidate(self, x: float) -> bool:
        """Return True if x is an admissible observation."""
        return self.check_range(x) and self.check_brackets(x)

    @property
    def is_searching(self) -> bool:
        return self.status in SEARCHING_STATUSES

    # ========== Iteration ==========

    def iterate(self, x: float, y: float) -> RootFinderStatus:
        """
        Process one observation and compute the next candidate.

        Args:
            x: Input that was evaluated
            y: Residual observed at x

        Returns:
            New status. For searching statuses `x_candidate` holds the next
            input to evaluate, otherwise the solution.
        """
        self.num_iterations += 1

        if not self.check_range(x):
            self.status = RootFinderStatus.ERROR_RANGE
            return self.status
        if not self.check_brackets(x):
            self.status = RootFinderStatus.ERROR_BRACKET
            return self.status

        point = RootPoint(x=x, y=y, defined=True)
        self.previous_point = self.current_point
        self.current_point = point
        self._remember(point)
        if x == self.min_point.x:
            self.min_point = replace(point)
        if x == self.max_point.x:
            self.max_point = replace(point)

        if abs(y) <= self.controls.atol_y:
            return self._finish(RootFinderStatus.OK, x)

        if self.min_point.defined and self.max_point.defined:
            if self.min_point.y == self.max_point.y:
                return self._finish(RootFinderStatus.ERROR_SINGULAR, self.min_point.x)
            if self._sign(self.max_point.y - self.min_point.y) < 0:
                return self._finish(RootFinderStatus.ERROR_SLOPE, self.max_point.x)

        if self.min_point.defined and self._sign(self.min_point.y) > 0:
            return self._finish(RootFinderStatus.OK_MIN, self.min_point.x)
        if self.max_point.defined and self._sign(self.max_point.y) < 0:
            return self._finish(RootFinderStatus.OK_MAX, self.max_point.x)

        self.status = self._update_brackets(point)

        if self.lower_point.defined and self.upper_point.defined:
            width = self.upper_point.x - self.lower_point.x
            if width <= self.controls.atol_x + self.controls.tol_x * abs(x):
                best = self.lower_point
                if abs(self.upper_point.y) < abs(self.lower_point.y):
                    best = self.upper_point
                return self._finish(RootFinderStatus.OK_ROUNDOFF, best.x)

        self._next_candidate()
        return self.status

    def _finish(self, status: RootFinderStatus, x: float) -> RootFinderStatus:
        self.status = status
        self.x_candidate = x
        return status

    def _sign(self, value: float) -> float:
        """Residual normalized so that it increases with x."""
        return value * self.controls.slope.value

    def _remember(self, point: RootPoint) -> None:
        self._history = [p for p in self._history if p.x != point.x][-2:]
        self._history.append(point)

    def _update_brackets(self, point: RootPoint) -> RootFinderStatus:
        status = RootFinderStatus.NONE
        s = self._sign(point.y)
        if s < 0:
            previous = self.lower_point
            if previous.defined:
                previous_s = self._sign(previous.y)
                if s == previous_s:
                    status = RootFinderStatus.WARNING_SINGULAR
                elif point.x > previous.x and s < previous_s:
                    status = RootFinderStatus.WARNING_NON_MONOTONIC
            self.lower_point = replace(point)
        else:
            previous = self.upper_point
            if previous.defined:
                previous_s = self._sign(previous.y)
                if s == previous_s:
                    status = RootFinderStatus.WARNING_SINGULAR
                elif point.x < previous.x and s > previous_s:
                    status = RootFinderStatus.WARNING_NON_MONOTONIC
            self.upper_point = replace(point)
        return status

    def _next_candidate(self) -> None:
        if not self.lower_point.defined:
            self.current_method = MethodType.BRACKET
            self.x_candidate = self.min_point.x
            return
        if not self.upper_point.defined:
            self.current_method = MethodType.BRACKET
            self.x_candidate = self.max_point.x
            return

        lower, upper = self.lower_point, self.upper_point
        self._widths.append(upper.x - lower.x)
        method = self.controls.method
        estimate = self._interpolate(method)
        if estimate is None:
            method, estimate = MethodType.FALSE_POSITION, self._false_position()

        stalled = len(self._widths) >= 3 and self._widths[-1] > 0.5 * self._widths[-3]
        if stalled or not (lower.x < estimate < upper.x):
            method, estimate = MethodType.BISECTION, 0.5 * (lower.x + upper.x)

        self.current_method = method
        self.x_candidate = float(np.clip(estimate, self.min_point.x, self.max_point.x))

    def _interpolate(self, method: MethodType) -> Optional[float]:
        if method == MethodType.BISECTION:
            return 0.5 * (self.lower_point.x + self.upper_point.x)
        if method == MethodType.FALSE_POSITION:
            return self._false_position()
        if method == MethodType.SECANT:
            return self._secant()
        if method == MethodType.BRENT:
            estimate = self._inverse_quadratic()
            if estimate is None:
                estimate = self._secant()
            return estimate
        return None

    def _false_position(self) -> float:
        lower, upper = self.lower_point, self.upper_point
        return lower.x - lower.y * (upper.x - lower.x) / (upper.y - lower.y)

    def _secant(self) -> Optional[float]:
        a, b = self.previous_point, self.current_point
        if not a.defined or a.y == b.y or a.x == b.x:
            return None
        return b.x - b.y * (b.x - a.x) / (b.y - a.y)

    def _inverse_quadratic(self) -> Optional[float]:
        if len(self._history) < 3:
            return None
        a, b, c = self._history[-3:]
        if a.y == b.y or a.y == c.y or b.y == c.y:
            return None
        return (a.x * b.y * c.y / ((a.y - b.y) * (a.y - c.y))
                + b.x * a.y * c.y / ((b.y - a.y) * (b.y - c.y))
                + c.x * a.y * b.y / ((c.y - a.y) * (c.y - b.y)))
