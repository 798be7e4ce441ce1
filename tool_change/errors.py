#!/usr/bin/env python3
"""
Exceptions raised inside the tool-change core.

Every workflow step reduces these to a single pass/fail result, so callers
of the action servers only ever see a boolean.
"""


class ToolChangeError(Exception):
    """Base exception for tool-change failures"""
    pass


class TransformUnavailable(ToolChangeError):
    """Raised when a frame lookup times out or the frame does not exist"""
    pass


class PlanningFailed(ToolChangeError):
    """Raised when the planner could not compute any path (negative fraction)"""
    pass


class PlanningIncomplete(ToolChangeError):
    """Raised when only part of a Cartesian path is achievable"""

    def __init__(self, fraction: float):
        super().__init__(f"Cartesian path computation finished {fraction * 100:.1f}% only")
        self.fraction = fraction


class ExecutionFailed(ToolChangeError):
    """Raised when a planned trajectory or pose goal was not executed"""
    pass


class NoFiducialsDetected(ToolChangeError):
    """Raised when a goal arrives before the arm and board fiducials were seen"""
    pass
