"""In-memory stand-ins for the transform directory and the motion planner."""
from collections import deque

import pytest

from tool_change.errors import TransformUnavailable
from tool_change.frame_math import Pose, compose, inverse
from tool_change.params import ToolChangeConfig


class FakeTransformDirectory:
    """A frame tree: child → (parent, pose of child in parent)."""

    def __init__(self):
        self.tree = {}
        self.published = []
        self.lookups = []
        self.fail_publish = False

    def set(self, parent: str, child: str, pose: Pose) -> None:
        self.tree[child] = (parent, pose)

    def publish(self, frames) -> None:
        if self.fail_publish:
            raise RuntimeError("broadcaster gone")
        frames = list(frames)
        self.published.append(frames)
        for f in frames:
            self.set(f.parent, f.name, f.pose)

    def _from_root(self, name: str):
        pose = Pose()
        while name in self.tree:
            parent, local = self.tree[name]
            pose = compose(local, pose)
            name = parent
        return name, pose

    def lookup(self, parent: str, child: str, timeout: float) -> Pose:
        self.lookups.append((parent, child, timeout))
        return self.resolve(parent, child)

    def resolve(self, parent: str, child: str) -> Pose:
        """Pose of `child` in `parent`, without recording a lookup."""
        for name in (parent, child):
            if name not in self.tree and all(p != name for p, _ in self.tree.values()):
                raise TransformUnavailable(f"frame '{name}' does not exist")
        root_p, parent_pose = self._from_root(parent)
        root_c, child_pose = self._from_root(child)
        if root_p != root_c:
            raise TransformUnavailable(f"'{parent}' and '{child}' are not connected")
        return compose(inverse(parent_pose), child_pose)


class FakePlanner:
    """
    Moves the end-effector frame of a FakeTransformDirectory.
    Cartesian fractions are served from `fractions` (1.0 once empty).
    """

    def __init__(self, directory: FakeTransformDirectory, config: ToolChangeConfig):
        self.directory = directory
        self.base = config.frames.base
        self.end_effector = config.frames.end_effector
        self.fractions = deque()
        self.execute_results = deque()
        self.pose_goal_results = deque()
        self.cartesian_requests = []
        self.executed = []
        self.pose_goals = []

    def get_current_pose(self) -> Pose:
        return self.directory.resolve(self.base, self.end_effector)

    def plan_cartesian_path(self, waypoints, max_step, jump_threshold):
        self.cartesian_requests.append((list(waypoints), max_step, jump_threshold))
        fraction = self.fractions.popleft() if self.fractions else 1.0
        return fraction, waypoints[-1]

    def execute_trajectory(self, trajectory) -> bool:
        self.executed.append(trajectory)
        ok = self.execute_results.popleft() if self.execute_results else True
        if ok:
            self.directory.set(self.base, self.end_effector, trajectory)
        return ok

    def plan_and_execute_pose_goal(self, pose: Pose) -> bool:
        self.pose_goals.append(pose)
        ok = self.pose_goal_results.popleft() if self.pose_goal_results else True
        if ok:
            self.directory.set(self.base, self.end_effector, pose)
        return ok


class RecordingLogger:
    def __init__(self):
        self.records = []

    def _log(self, level, msg):
        self.records.append((level, msg))

    def debug(self, msg):
        self._log("debug", msg)

    def info(self, msg):
        self._log("info", msg)

    def warning(self, msg):
        self._log("warning", msg)

    def error(self, msg):
        self._log("error", msg)

    def messages(self, level):
        return [m for lvl, m in self.records if lvl == level]


def straight_displacement(request) -> tuple:
    """Displacement of a recorded [current, goal] request, in the current frame."""
    (current, goal), _, _ = request
    return compose(inverse(current), goal).position


@pytest.fixture
def config():
    return ToolChangeConfig()


@pytest.fixture
def directory(config):
    d = FakeTransformDirectory()
    d.set(config.frames.base, config.frames.camera, Pose())
    d.set(config.frames.base, config.frames.end_effector, Pose((0.4, 0.0, 0.6)))
    return d


@pytest.fixture
def planner(directory, config):
    return FakePlanner(directory, config)


@pytest.fixture
def logger():
    return RecordingLogger()
