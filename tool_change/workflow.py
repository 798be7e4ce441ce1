#!/usr/bin/env python3
"""
Tool-change workflows behind the three action servers.

 ==============================================
     ARM        ||  VAC_CLEANER    ||   X    ||
 ==============================================
    start(goal=arm)        start(goal=vac)
 ==============================================
          |               |
          |               |
            (ARM_FIDUCIAL)

go_to_start
  - MOVE:  free move to the start pose in front of the wagon
  - TURN:  orientation correction from the board reference axes (twice)
  - REAL:  straight x, y, z moves onto the true end-effector position
go_to_slot_and_turn
  - straight move along x from the start pose into the slot
go_back_to_start
  - reserved, reports success without motion

Each workflow is fail-fast and reports exactly one boolean.
"""
import logging
import threading
from typing import Optional, Sequence

from tool_change.errors import NoFiducialsDetected, ToolChangeError
from tool_change.frame_math import (
    Pose,
    decompose_rpy,
    is_near_zero,
    normalize_quaternion,
    quaternion_from_rpy,
    quaternion_multiply,
)
from tool_change.move_executor import MoveExecutor
from tool_change.params import Tool, ToolChangeConfig


class WorkflowOrchestrator:
    def __init__(self, directory, executor: MoveExecutor, director,
                 config: Optional[ToolChangeConfig] = None, logger=None):
        """
        directory: transform directory, lookup(parent, child, timeout) -> Pose
        executor:  MoveExecutor issuing the arm moves
        director:  FrameDirector, only its readiness gate is read here
        """
        self.directory = directory
        self.executor = executor
        self.director = director
        self.config = config or ToolChangeConfig()
        self.log = logger or logging.getLogger(__name__)
        self._busy = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    # ─── Published operations ───────────────────────────────────────────────
    def go_to_start(self, tool) -> bool:
        return self._run("go_to_start", self._go_to_start, tool)

    def go_to_slot_and_turn(self, tool) -> bool:
        return self._run("go_to_slot_and_turn", self._go_to_slot_and_turn, tool)

    def go_back_to_start(self, tool) -> bool:
        return self._run("go_back_to_start", self._go_back_to_start, tool)

    def _run(self, name: str, procedure, tool) -> bool:
        self.log.info(f"{name}(): received new goal: {tool}")
        if not self._busy.acquire(blocking=False):
            self.log.error(f"{name}(): another tool-change goal is executing")
            return False
        try:
            if not self.director.ready.is_set():
                raise NoFiducialsDetected("arm and board fiducials have not been detected yet")
            success = procedure(Tool.parse(tool))
        except (ToolChangeError, ValueError) as e:
            self.log.error(f"{name}(): {e}")
            success = False
        finally:
            self._busy.release()

        if success:
            self.log.info(f"{name}(): succeeded")
        else:
            self.log.error(f"{name}(): failed")
        return success

    # ─── go_to_start ────────────────────────────────────────────────────────
    def _go_to_start(self, tool: Tool) -> bool:
        if not self.move_to_start_pose(tool):
            self.log.error("go_to_start(): error executing MOVE")
            return False

        for attempt in range(self.config.motion.turn_repeats):
            if not self.turn_to_reference(tool):
                self.log.error(f"go_to_start(): error executing TURN ({attempt + 1})")
                return False

        if not self.go_to_real_arm_pose():
            self.log.error("go_to_start(): error executing go_to_real_arm_pose")
            return False
        return True

    def move_to_start_pose(self, tool: Tool) -> bool:
        """MOVE: free move onto the start pose, skipped when already there."""
        frames = self.config.frames
        start_frame = frames.start_pose(tool)
        start = self._lookup(frames.base, start_frame)
        remaining = self._lookup(frames.end_effector, start_frame)

        if is_near_zero(remaining.position):
            self.log.info(f"move_to_start_pose(): already at {start_frame}, no move needed")
            return True
        self.log.info(f"move_to_start_pose(): moving {tool.value} to {start_frame}")
        return self.executor.execute_pose_goal(start)

    def turn_to_reference(self, tool: Tool) -> bool:
        """
        TURN: hold the start-pose origin and correct the orientation by the
        pitch/yaw the board reference frame shows in the arm tag frame.
        """
        frames = self.config.frames
        reference = self._lookup(frames.tag_arm, frames.reference)
        start = self._lookup(frames.base, frames.start_pose(tool))

        roll, pitch, yaw = decompose_rpy(reference.orientation)
        self.log.info(f"turn_to_reference(): rpy {roll:.4f}, {pitch:.4f}, {yaw:.4f}")
        correction = quaternion_from_rpy(pitch, yaw, 0.0)

        goal = Pose(start.position, normalize_quaternion(quaternion_multiply(start.orientation, correction)))
        return self.executor.execute_pose_goal(goal)

    def go_to_real_arm_pose(self) -> bool:
        """REAL: cancel the offset between nominal and real end effector, one axis at a time."""
        frames = self.config.frames
        offset = self._lookup(frames.end_effector, frames.end_effector_real)
        x, y, z = (-v for v in offset.position)
        return self.execute_moves([(x, 0.0, 0.0), (0.0, y, 0.0), (0.0, 0.0, z)])

    def execute_moves(self, movements: Sequence[Sequence[float]]) -> bool:
        """Straight moves in order, stopping at the first failure. Zero moves are skipped."""
        for movement in movements:
            if is_near_zero(movement):
                self.log.debug(f"execute_moves(): skipping zero movement {tuple(movement)}")
                continue
            if not self.executor.execute_straight_move(movement, self.config.motion.max_step):
                self.log.error(f"execute_moves(): straight movement {tuple(movement)} failed")
                return False
        return True

    # ─── go_to_slot_and_turn ────────────────────────────────────────────────
    def _go_to_slot_and_turn(self, tool: Tool) -> bool:
        frames = self.config.frames
        slot = self._lookup(frames.end_effector_real, frames.slot_pose(tool))
        roll, pitch, yaw = decompose_rpy(slot.orientation)
        self.log.info(f"go_to_slot_and_turn(): rpy by slot {roll:.4f}, {pitch:.4f}, {yaw:.4f}")

        # lateral alignment is done by go_to_start, only x is left
        if not self.execute_moves([(slot.position[0], 0.0, 0.0)]):
            self.log.error("go_to_slot_and_turn(): error executing straight movement")
            return False

        if self.config.motion.slot_turn_enabled:
            rotate_offset = quaternion_from_rpy(0.0, 0.0, self.config.motion.tool_changer_offset_angle)
            if not self.executor.execute_turn(rotate_offset, tool):
                self.log.error("go_to_slot_and_turn(): error executing turn")
                return False
        return True

    # ─── go_back_to_start ───────────────────────────────────────────────────
    def _go_back_to_start(self, tool: Tool) -> bool:
        self.log.info(f"go_back_to_start(): no motion defined for {tool.value}, reporting success")
        return True

    # ─── Helpers ────────────────────────────────────────────────────────────
    def _lookup(self, parent: str, child: str) -> Pose:
        pose = self.directory.lookup(parent, child, self.config.motion.lookup_timeout)
        self.log.debug(
            f"lookup {parent} -> {child}: translation {pose.position}, orientation {pose.orientation}"
        )
        return pose
