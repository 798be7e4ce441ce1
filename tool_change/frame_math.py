#!/usr/bin/env python3
"""
Pose helpers used by the frame director and the tool-change workflow.

Poses are immutable tuples so derived frames can be compared and shared
between threads without copying:
  • position     (x, y, z)        metres
  • orientation  (x, y, z, w)     unit quaternion, ROS order
"""
from typing import Iterable, NamedTuple, Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation as Rot

IDENTITY_QUATERNION = (0.0, 0.0, 0.0, 1.0)
ZERO_VECTOR = (0.0, 0.0, 0.0)


class Pose(NamedTuple):
    position: Tuple[float, float, float] = ZERO_VECTOR
    orientation: Tuple[float, float, float, float] = IDENTITY_QUATERNION


def _vec(values) -> tuple:
    return tuple(float(v) for v in values)


def normalize_quaternion(q: Sequence[float]) -> Tuple[float, float, float, float]:
    q = np.asarray(q, dtype=np.float64)
    norm = np.linalg.norm(q)
    if norm < 1e-12:
        raise ValueError("cannot normalize a zero quaternion")
    return _vec(q / norm)


def quaternion_multiply(a: Sequence[float], b: Sequence[float]) -> Tuple[float, float, float, float]:
    """Hamilton product a * b, both in xyzw order."""
    ax, ay, az, aw = (float(v) for v in a)
    bx, by, bz, bw = (float(v) for v in b)
    return (
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    )


def quaternion_from_rpy(roll: float, pitch: float, yaw: float) -> Tuple[float, float, float, float]:
    """Fixed-axis roll (X), pitch (Y), yaw (Z), same convention as tf setRPY."""
    return _vec(Rot.from_euler("xyz", [roll, pitch, yaw]).as_quat())


def decompose_rpy(orientation: Sequence[float]) -> Tuple[float, float, float]:
    roll, pitch, yaw = Rot.from_quat(np.asarray(orientation, dtype=np.float64)).as_euler("xyz")
    return float(roll), float(pitch), float(yaw)


def rotate_vector(orientation: Sequence[float], vector: Sequence[float]) -> np.ndarray:
    return Rot.from_quat(np.asarray(orientation, dtype=np.float64)).apply(
        np.asarray(vector, dtype=np.float64)
    )


def compose(parent: Pose, child: Pose) -> Pose:
    """Rigid transform composition parent ∘ child."""
    position = np.asarray(parent.position, dtype=np.float64) + rotate_vector(
        parent.orientation, child.position
    )
    orientation = normalize_quaternion(quaternion_multiply(parent.orientation, child.orientation))
    return Pose(_vec(position), orientation)


def inverse(pose: Pose) -> Pose:
    x, y, z, w = normalize_quaternion(pose.orientation)
    conjugate = (-x, -y, -z, w)
    position = -rotate_vector(conjugate, pose.position)
    return Pose(_vec(position), conjugate)


def translate_local(pose: Pose, displacement: Sequence[float]) -> Pose:
    """Move the origin by a displacement expressed in the pose's own frame."""
    moved = compose(pose, Pose(_vec(displacement), IDENTITY_QUATERNION))
    return Pose(moved.position, pose.orientation)


def rotate_local(pose: Pose, rotation: Sequence[float]) -> Pose:
    """Rotate in place about the pose's own axes, origin unchanged."""
    return Pose(pose.position, normalize_quaternion(quaternion_multiply(pose.orientation, rotation)))


def average_poses(poses: Iterable[Pose]) -> Pose:
    """
    Arithmetic mean of positions and orientations.

    Each quaternion is flipped into the hemisphere of the first sample before
    it is accumulated; q and -q describe the same rotation and would otherwise
    cancel out.
    """
    poses = list(poses)
    if not poses:
        raise ValueError("average_poses() needs at least one pose")

    reference = np.asarray(poses[0].orientation, dtype=np.float64)
    position_sum = np.zeros(3, dtype=np.float64)
    quaternion_sum = np.zeros(4, dtype=np.float64)
    for pose in poses:
        q = np.asarray(pose.orientation, dtype=np.float64)
        if np.dot(reference, q) < 0.0:
            q = -q
        position_sum += np.asarray(pose.position, dtype=np.float64)
        quaternion_sum += q

    count = float(len(poses))
    return Pose(_vec(position_sum / count), normalize_quaternion(quaternion_sum / count))


def is_near_zero(vector: Sequence[float], tolerance: float = 1e-9) -> bool:
    return bool(np.all(np.abs(np.asarray(vector, dtype=np.float64)) <= tolerance))
