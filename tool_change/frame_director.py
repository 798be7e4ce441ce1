#!/usr/bin/env python3
"""
Frame director: turns marker observations into the named frames the
tool-change workflow moves against.

• board markers (vacuum-cleaner mount, arm station, extra tag) are averaged
• the arm marker is taken as-is, last observation of a batch wins
• every board update republishes board, start, reference and slot frames
• every arm update republishes the arm tag and the real end-effector frame
• the first batch with arm *and* board markers opens the readiness gate
"""
import logging
import threading
from typing import Dict, List, NamedTuple, Optional, Sequence

from tool_change.frame_math import Pose, average_poses, normalize_quaternion
from tool_change.params import ToolChangeConfig


class MarkerObservation(NamedTuple):
    label: str
    position: Sequence[float]
    orientation: Sequence[float]

    def pose(self) -> Pose:
        return Pose(tuple(float(v) for v in self.position), tuple(float(v) for v in self.orientation))


class DerivedFrame(NamedTuple):
    name: str
    parent: str
    pose: Pose


ARM_FIDUCIAL = "arm"
BOARD_FIDUCIAL = "board"


class FrameDirector:
    def __init__(self, directory, config: Optional[ToolChangeConfig] = None, logger=None):
        """
        directory: transform directory collaborator, must provide publish(frames)
        config:    frame names, marker labels and docking offsets
        logger:    rclpy node logger or a logging.Logger
        """
        self.directory = directory
        self.config = config or ToolChangeConfig()
        self.log = logger or logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._frames: Dict[str, DerivedFrame] = {}
        self._all_fiducials_detected = False
        self.ready = threading.Event()

    # ─── Readers ────────────────────────────────────────────────────────────
    @property
    def all_fiducials_detected(self) -> bool:
        with self._lock:
            return self._all_fiducials_detected

    def frame(self, name: str) -> Optional[DerivedFrame]:
        with self._lock:
            return self._frames.get(name)

    def frames(self) -> Dict[str, DerivedFrame]:
        with self._lock:
            return dict(self._frames)

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until arm and board fiducials were seen in one batch."""
        return self.ready.wait(timeout)

    # ─── Classification ─────────────────────────────────────────────────────
    def classify(self, label: str) -> Optional[str]:
        if label == self.config.markers.arm:
            return ARM_FIDUCIAL
        if label in self.config.markers.board:
            return BOARD_FIDUCIAL
        return None

    # ─── Frame derivation (pure) ────────────────────────────────────────────
    def derive_board_frames(self, board_pose: Pose) -> List[DerivedFrame]:
        names = self.config.frames
        offsets = self.config.offsets
        return [
            DerivedFrame(names.tag_board, names.camera, board_pose),
            DerivedFrame(names.start_pose_arm, names.tag_board, offsets.start_arm.pose()),
            DerivedFrame(names.start_pose_vac, names.tag_board, offsets.start_vac.pose()),
            DerivedFrame(names.reference, names.tag_board, offsets.reference.pose()),
            DerivedFrame(names.slot_pose_arm, names.tag_board, offsets.slot_arm.pose()),
            DerivedFrame(names.slot_pose_vac, names.tag_board, offsets.slot_vac.pose()),
        ]

    def derive_arm_frames(self, arm_pose: Pose) -> List[DerivedFrame]:
        names = self.config.frames
        return [
            DerivedFrame(names.tag_arm, names.camera, arm_pose),
            DerivedFrame(names.end_effector_real, names.tag_arm, self.config.offsets.real_effector.pose()),
        ]

    # ─── Observation input ──────────────────────────────────────────────────
    def on_observation_batch(self, batch: Sequence[MarkerObservation]) -> None:
        if not batch:
            return

        board_poses = []
        arm_pose = None
        for observation in batch:
            kind = self.classify(observation.label)
            if kind is None:
                continue
            try:
                pose = observation.pose()
                pose = Pose(pose.position, normalize_quaternion(pose.orientation))
            except ValueError as e:
                self.log.warning(f"on_observation_batch(): skipping {observation.label}: {e}")
                continue
            if kind == BOARD_FIDUCIAL:
                board_poses.append(pose)
            else:
                arm_pose = pose

        updated = []
        if arm_pose is not None:
            updated += self.derive_arm_frames(arm_pose)
        if board_poses:
            updated += self.derive_board_frames(average_poses(board_poses))

        detected = arm_pose is not None and bool(board_poses)
        with self._lock:
            if updated:
                frames = dict(self._frames)
                frames.update({f.name: f for f in updated})
                self._frames = frames
            self._all_fiducials_detected = detected

        if detected and not self.ready.is_set():
            self.log.info("on_observation_batch(): arm and board fiducials detected, ready")
            self.ready.set()

        if updated:
            self._publish(updated)

    def _publish(self, frames: List[DerivedFrame]) -> None:
        try:
            self.directory.publish(frames)
        except Exception as e:
            self.log.error(f"Broadcaster unavailable: {e}")
