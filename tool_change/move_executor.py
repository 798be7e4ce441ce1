#!/usr/bin/env python3
"""
Bounded, verified arm moves on top of the motion planner.

The planner collaborator provides:
  get_current_pose()                                        -> Pose
  plan_cartesian_path(waypoints, max_step, jump_threshold)  -> (fraction, trajectory)
  execute_trajectory(trajectory)                            -> bool
  plan_and_execute_pose_goal(pose)                          -> bool

A straight move is only executed when the whole Cartesian path is
achievable; partial paths are never run. Nothing here retries.
"""
import logging
from typing import Optional, Sequence

from tool_change.errors import (
    ExecutionFailed,
    PlanningFailed,
    PlanningIncomplete,
    ToolChangeError,
)
from tool_change.frame_math import Pose, rotate_local, translate_local
from tool_change.params import MotionLimits


class MoveExecutor:
    def __init__(self, planner, limits: Optional[MotionLimits] = None, logger=None):
        self.planner = planner
        self.limits = limits or MotionLimits()
        self.log = logger or logging.getLogger(__name__)

    # ─── Straight moves ─────────────────────────────────────────────────────
    def plan_straight_move(self, displacement: Sequence[float], max_step: float):
        """
        Plan a straight end-effector move by `displacement`, expressed in the
        current end-effector frame, orientation unchanged.
        Returns the trajectory; raises PlanningFailed / PlanningIncomplete.
        """
        current = self.planner.get_current_pose()
        goal = translate_local(current, displacement)

        fraction, trajectory = self.planner.plan_cartesian_path(
            [current, goal], max_step, self.limits.jump_threshold
        )
        self.log.info(f"plan_straight_move(): fraction is {fraction:.3f}")

        if fraction < 0.0:
            raise PlanningFailed("Unable to compute Cartesian path")
        if fraction < 1.0:
            raise PlanningIncomplete(fraction)
        return trajectory

    def execute_straight_move(self, displacement: Sequence[float], max_step: Optional[float] = None) -> bool:
        max_step = self.limits.max_step if max_step is None else max_step
        self.log.info(
            "execute_straight_move(): "
            f"[{displacement[0]:.4f}, {displacement[1]:.4f}, {displacement[2]:.4f}] step {max_step}"
        )
        try:
            trajectory = self.plan_straight_move(displacement, max_step)
            if not self.planner.execute_trajectory(trajectory):
                raise ExecutionFailed("trajectory execution was not confirmed")
        except ToolChangeError as e:
            self.log.error(f"execute_straight_move(): {e}")
            return False
        return True

    # ─── Single-shot pose goals ─────────────────────────────────────────────
    def execute_turn(self, rotation_delta: Sequence[float], tool=None) -> bool:
        """Rotate the end effector in place by `rotation_delta` (xyzw, local axes)."""
        label = f" for {tool.value if hasattr(tool, 'value') else tool}" if tool else ""
        try:
            current = self.planner.get_current_pose()
        except ToolChangeError as e:
            self.log.error(f"execute_turn(){label}: {e}")
            return False
        self.log.info(f"execute_turn(){label}: delta {tuple(round(v, 4) for v in rotation_delta)}")
        return self.execute_pose_goal(rotate_local(current, rotation_delta))

    def execute_pose_goal(self, pose: Pose) -> bool:
        try:
            if not self.planner.plan_and_execute_pose_goal(pose):
                raise ExecutionFailed("No valid plan found for the arm movement")
        except ToolChangeError as e:
            self.log.warning(f"execute_pose_goal(): {e}")
            return False
        return True
