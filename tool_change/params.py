# params.py
"""
Static configuration of the tool-change server.

Defaults are the calibrated values of the wagon setup; a YAML file with the
same sections (frames, markers, offsets, motion) overrides them field by
field, see share/tool_change_params.yaml.
"""
import math
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Tuple

import yaml

from tool_change.frame_math import Pose, quaternion_from_rpy

# ─── FRAME NAMES ──────────────────────────────────────────────────────────────
CAMERA_FRAME = "head_cam3d_rgb_optical_frame"
BASE_FRAME = "base_link"
EE_LINK = "arm_7_link"
EE_LINK_REAL = "arm_7_link_real"

TAG_ARM = "fiducial/tag_arm"
TAG_BOARD = "fiducial/tag_board"
START_POSE_ARM = "fiducial/start_pose_arm"
START_POSE_VAC = "fiducial/start_pose_vac"
SLOT_POSE_ARM = "fiducial/slot_pose_arm"
SLOT_POSE_VAC = "fiducial/slot_pose_vac"
REFERENCE = "fiducial/reference"

# ─── MARKER LABELS ────────────────────────────────────────────────────────────
# One marker on the arm, three on the wagon board (averaged together)
ARM_LABEL = "tag_arm"
BOARD_LABELS = ("tag_vac_cleaner", "tag_arm_station", "tag_extra")

# ─── DOCKING OFFSETS ──────────────────────────────────────────────────────────
# translation in metres (relative to the board tag), rotation as roll/pitch/yaw
APPROACH_RPY = (math.pi / 2, -math.pi / 2, 0.0)
START_POINT_OFFSET_ARM = (0.094, -0.112, 0.286)
START_POINT_OFFSET_VAC = (-0.186, -0.112, 0.286)

SLOT_POINT_OFFSET_ARM = (0.094, -0.112, 0.133)
SLOT_POINT_OFFSET_VAC = (-0.186, -0.112, 0.133)

# frame rotated -90° about the vertical axis, used to read alignment angles
REFERENCE_RPY = (0.0, 0.0, -math.pi / 2)

# arm tag → true end-effector reference point
FA_EE_OFFSET = (0.0, -0.058, 0.081)
FA_EE_RPY = (0.0, 0.0, 0.0)

# ─── MOTION LIMITS ────────────────────────────────────────────────────────────
PLANNING_GROUP_NAME = "arm"
JOINT_NAMES = tuple(f"arm_{i}_joint" for i in range(1, 8))
MAX_STEP_CM = 0.01               # Cartesian interpolation step (1 cm)
JUMP_THRESHOLD = 0.0             # 0 disables the joint-space jump check
LOOKUP_TIMEOUT = 3.0             # seconds per transform lookup
PLANNING_TIMEOUT = 10.0          # seconds per planner service call
EXECUTION_TIMEOUT = 60.0         # seconds per trajectory execution
TURN_REPEATS = 2                 # TURN step of go_to_start is executed twice
TOOL_CHANGER_OFFSET_ANGLE = math.radians(12.0)
SLOT_TURN_ENABLED = False        # rotational slot alignment, not calibrated yet


class Tool(str, Enum):
    """Docking branch a workflow operates on."""
    ARM = "arm"
    VAC = "vac"

    @classmethod
    def parse(cls, value) -> "Tool":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"unknown tool {value!r}, expected one of {[t.value for t in cls]}"
            ) from None


# ─── CONFIGURATION STRUCTURES ────────────────────────────────────────────────
@dataclass(frozen=True)
class FrameNames:
    camera: str = CAMERA_FRAME
    base: str = BASE_FRAME
    end_effector: str = EE_LINK
    end_effector_real: str = EE_LINK_REAL
    tag_arm: str = TAG_ARM
    tag_board: str = TAG_BOARD
    start_pose_arm: str = START_POSE_ARM
    start_pose_vac: str = START_POSE_VAC
    slot_pose_arm: str = SLOT_POSE_ARM
    slot_pose_vac: str = SLOT_POSE_VAC
    reference: str = REFERENCE

    def start_pose(self, tool: Tool) -> str:
        return self.start_pose_arm if Tool.parse(tool) is Tool.ARM else self.start_pose_vac

    def slot_pose(self, tool: Tool) -> str:
        return self.slot_pose_arm if Tool.parse(tool) is Tool.ARM else self.slot_pose_vac


@dataclass(frozen=True)
class MarkerLabels:
    arm: str = ARM_LABEL
    board: Tuple[str, ...] = BOARD_LABELS


@dataclass(frozen=True)
class Offset:
    translation: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    rpy: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    def pose(self) -> Pose:
        return Pose(tuple(float(v) for v in self.translation), quaternion_from_rpy(*self.rpy))


@dataclass(frozen=True)
class DockingOffsets:
    start_arm: Offset = Offset(START_POINT_OFFSET_ARM, APPROACH_RPY)
    start_vac: Offset = Offset(START_POINT_OFFSET_VAC, APPROACH_RPY)
    slot_arm: Offset = Offset(SLOT_POINT_OFFSET_ARM, APPROACH_RPY)
    slot_vac: Offset = Offset(SLOT_POINT_OFFSET_VAC, APPROACH_RPY)
    reference: Offset = Offset((0.0, 0.0, 0.0), REFERENCE_RPY)
    real_effector: Offset = Offset(FA_EE_OFFSET, FA_EE_RPY)


@dataclass(frozen=True)
class MotionLimits:
    planning_group: str = PLANNING_GROUP_NAME
    joint_names: Tuple[str, ...] = JOINT_NAMES
    max_step: float = MAX_STEP_CM
    jump_threshold: float = JUMP_THRESHOLD
    lookup_timeout: float = LOOKUP_TIMEOUT
    planning_timeout: float = PLANNING_TIMEOUT
    execution_timeout: float = EXECUTION_TIMEOUT
    turn_repeats: int = TURN_REPEATS
    tool_changer_offset_angle: float = TOOL_CHANGER_OFFSET_ANGLE
    slot_turn_enabled: bool = SLOT_TURN_ENABLED
    avoid_collisions: bool = True


@dataclass(frozen=True)
class ToolChangeConfig:
    """Everything the tool-change server needs besides live data"""
    frames: FrameNames = field(default_factory=FrameNames)
    markers: MarkerLabels = field(default_factory=MarkerLabels)
    offsets: DockingOffsets = field(default_factory=DockingOffsets)
    motion: MotionLimits = field(default_factory=MotionLimits)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolChangeConfig":
        data = data or {}
        _check_keys("config", data, ("frames", "markers", "offsets", "motion"))
        default = cls()

        offset_values = data.get("offsets") or {}
        if not isinstance(offset_values, dict):
            raise ValueError("'offsets' must be a mapping")
        offsets = default.offsets
        for name, values in offset_values.items():
            _check_keys("offsets", {name: None}, [f.name for f in fields(DockingOffsets)])
            offsets = replace(offsets, **{name: _override(getattr(offsets, name), values, f"offsets.{name}")})

        return cls(
            frames=_override(default.frames, data.get("frames"), "frames"),
            markers=_override(default.markers, data.get("markers"), "markers"),
            offsets=offsets,
            motion=_override(default.motion, data.get("motion"), "motion"),
        )

    @classmethod
    def from_yaml(cls, file_path: str) -> "ToolChangeConfig":
        """Load configuration overrides from a YAML file"""
        with open(file_path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{file_path}: top level must be a mapping")
        return cls.from_dict(data)


def _check_keys(section: str, values: Dict[str, Any], allowed) -> None:
    unknown = sorted(set(values) - set(allowed))
    if unknown:
        raise ValueError(f"unknown key(s) in '{section}': {', '.join(unknown)}")


def _override(instance, values, section: str):
    if not values:
        return instance
    if not isinstance(values, dict):
        raise ValueError(f"'{section}' must be a mapping")
    _check_keys(section, values, [f.name for f in fields(instance)])
    converted = {k: _convert(f"{section}.{k}", getattr(instance, k), v) for k, v in values.items()}
    return replace(instance, **converted)


def _convert(key: str, default, value):
    """Coerce a YAML value to the type of the field default it replaces."""
    if isinstance(default, tuple):
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"'{key}' must be a list, got {value!r}")
        return tuple(value)
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"'{key}' must be true or false, got {value!r}")
        return value
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"'{key}' must be a number, got {value!r}")
        return float(value)
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"'{key}' must be an integer, got {value!r}")
        return value
    if isinstance(default, str) and not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string, got {value!r}")
    return value


def load_marker_names(file_path: str) -> Dict[int, str]:
    """Read the marker id → label mapping (aruco_id: [{id, name}, ...])."""
    with open(file_path, "r") as f:
        items = (yaml.safe_load(f) or {}).get("aruco_id", [])
    return {int(it["id"]): str(it["name"]) for it in items}
