import math
from dataclasses import replace

import numpy as np
import pytest

from conftest import FakePlanner, FakeTransformDirectory, straight_displacement
from tool_change.frame_director import FrameDirector, MarkerObservation
from tool_change.frame_math import IDENTITY_QUATERNION, Pose, compose, inverse, quaternion_from_rpy, translate_local
from tool_change.move_executor import MoveExecutor
from tool_change.params import Tool, ToolChangeConfig
from tool_change.workflow import WorkflowOrchestrator

FIDUCIALS = [
    MarkerObservation("tag_arm", (0.0, 0.0, 0.0), IDENTITY_QUATERNION),
    MarkerObservation("tag_vac_cleaner", (1.0, 0.0, 0.0), IDENTITY_QUATERNION),
    MarkerObservation("tag_arm_station", (1.0, 0.0, 0.0), IDENTITY_QUATERNION),
    MarkerObservation("tag_extra", (1.0, 0.0, 0.0), IDENTITY_QUATERNION),
]


def build(directory, planner, config, logger, observations=FIDUCIALS):
    director = FrameDirector(directory, config, logger)
    if observations:
        director.on_observation_batch(observations)
    executor = MoveExecutor(planner, config.motion, logger)
    return WorkflowOrchestrator(directory, executor, director, config, logger)


@pytest.fixture
def workflow(directory, planner, config, logger):
    return build(directory, planner, config, logger)


def test_go_to_start_end_to_end(workflow, directory, planner):
    start = directory.lookup("base_link", "fiducial/start_pose_arm", 3.0)
    real = directory.lookup("base_link", "arm_7_link_real", 3.0)

    assert workflow.go_to_start("arm")

    # MOVE, then TURN twice towards the same corrected orientation
    assert len(planner.pose_goals) == 3
    move, turn_1, turn_2 = planner.pose_goals
    assert move == start
    correction = quaternion_from_rpy(0.0, -math.pi / 2, 0.0)
    expected_turn = compose(start, Pose((0.0, 0.0, 0.0), correction))
    assert np.allclose(turn_1.position, start.position)
    assert abs(np.dot(turn_1.orientation, expected_turn.orientation)) == pytest.approx(1.0)
    assert turn_2 == turn_1

    # REAL: x, y and z moves cancelling the end effector → real end effector offset
    offset = compose(inverse(turn_1), real).position
    assert len(planner.cartesian_requests) == 3
    for axis, request in enumerate(planner.cartesian_requests):
        expected = [0.0, 0.0, 0.0]
        expected[axis] = -offset[axis]
        assert np.allclose(straight_displacement(request), expected)

    final = planner.get_current_pose()
    assert np.allclose(final.position, translate_local(turn_1, [-v for v in offset]).position)
    assert not workflow.busy


def test_go_to_start_vac_targets_vac_start_pose(workflow, directory, planner):
    start = directory.lookup("base_link", "fiducial/start_pose_vac", 3.0)
    assert workflow.go_to_start(Tool.VAC)
    assert planner.pose_goals[0] == start


def test_lookups_use_configured_timeout(directory, planner, logger):
    config = ToolChangeConfig(motion=replace(ToolChangeConfig().motion, lookup_timeout=1.5))
    workflow = build(directory, planner, config, logger)
    directory.lookups.clear()
    workflow.go_to_start("arm")
    assert directory.lookups
    assert all(timeout == 1.5 for _, _, timeout in directory.lookups)


def test_second_straight_move_failure_stops_the_sequence(workflow, planner):
    planner.fractions.extend([1.0, 0.5, 1.0])
    assert not workflow.go_to_start("arm")
    assert len(planner.cartesian_requests) == 2
    assert len(planner.executed) == 1


def test_failed_move_aborts_before_turn(workflow, planner):
    planner.pose_goal_results.append(False)
    assert not workflow.go_to_start("arm")
    assert len(planner.pose_goals) == 1
    assert planner.cartesian_requests == []


def test_turn_repeats_is_configurable(directory, planner, logger):
    config = ToolChangeConfig(motion=replace(ToolChangeConfig().motion, turn_repeats=1))
    workflow = build(directory, planner, config, logger)
    assert workflow.go_to_start("arm")
    assert len(planner.pose_goals) == 2


def test_move_is_skipped_when_already_at_start(workflow, directory, planner):
    start = directory.lookup("base_link", "fiducial/start_pose_arm", 3.0)
    directory.set("base_link", "arm_7_link", start)
    assert workflow.move_to_start_pose(Tool.ARM)
    assert planner.pose_goals == []


def test_real_arm_pose_skips_zero_axes(config, logger):
    directory = FakeTransformDirectory()
    directory.set("base_link", "arm_7_link", Pose((0.4, 0.0, 0.6)))
    directory.set("arm_7_link", "arm_7_link_real", Pose((0.02, 0.0, -0.01)))
    planner = FakePlanner(directory, config)
    workflow = build(directory, planner, config, logger, observations=None)

    assert workflow.go_to_real_arm_pose()
    moves = [straight_displacement(r) for r in planner.cartesian_requests]
    assert len(moves) == 2
    assert np.allclose(moves[0], (-0.02, 0.0, 0.0))
    assert np.allclose(moves[1], (0.0, 0.0, 0.01))


def test_not_ready_fails_without_lookups(directory, planner, config, logger):
    workflow = build(directory, planner, config, logger, observations=None)
    directory.lookups.clear()
    assert not workflow.go_to_start("arm")
    assert directory.lookups == []
    assert any("not been detected" in m for m in logger.messages("error"))


def test_missing_frame_fails(config, logger):
    directory = FakeTransformDirectory()
    planner = FakePlanner(directory, config)
    workflow = build(directory, planner, config, logger, observations=None)
    workflow.director.ready.set()
    assert not workflow.go_to_start("arm")
    assert planner.pose_goals == []


def test_unknown_tool_fails(workflow, planner, logger):
    assert not workflow.go_to_start("gripper")
    assert planner.pose_goals == []
    assert any("unknown tool" in m for m in logger.messages("error"))


def test_goal_while_busy_is_rejected(directory, config, logger):
    nested = []

    class ReentrantPlanner(FakePlanner):
        def plan_and_execute_pose_goal(self, pose):
            nested.append((workflow.busy, workflow.go_back_to_start("arm")))
            return super().plan_and_execute_pose_goal(pose)

    planner = ReentrantPlanner(directory, config)
    workflow = build(directory, planner, config, logger)

    assert workflow.go_to_start("arm")
    assert nested[0] == (True, False)
    assert not workflow.busy


def test_go_to_slot_moves_along_x_only(workflow, directory, planner):
    slot = directory.lookup("arm_7_link_real", "fiducial/slot_pose_arm", 3.0)
    assert workflow.go_to_slot_and_turn("arm")
    assert len(planner.cartesian_requests) == 1
    assert np.allclose(straight_displacement(planner.cartesian_requests[0]), (slot.position[0], 0.0, 0.0))
    assert planner.pose_goals == []


def test_go_to_slot_turns_when_enabled(directory, planner, logger):
    config = ToolChangeConfig(motion=replace(ToolChangeConfig().motion, slot_turn_enabled=True))
    workflow = build(directory, planner, config, logger)
    assert workflow.go_to_slot_and_turn("vac")

    before_turn = planner.executed[-1]
    turn = planner.pose_goals[0]
    expected = compose(before_turn, Pose((0.0, 0.0, 0.0), quaternion_from_rpy(0.0, 0.0, math.radians(12.0))))
    assert np.allclose(turn.position, before_turn.position)
    assert abs(np.dot(turn.orientation, expected.orientation)) == pytest.approx(1.0)


def test_go_to_slot_failure(workflow, planner):
    planner.fractions.append(0.3)
    assert not workflow.go_to_slot_and_turn("arm")
    assert planner.executed == []


def test_go_back_to_start_reports_success_without_motion(workflow, planner):
    assert workflow.go_back_to_start("vac")
    assert planner.pose_goals == []
    assert planner.cartesian_requests == []


def test_go_to_slot_skips_zero_move(workflow, directory, planner):
    # real end effector already sits on the slot pose
    directory.set("fiducial/slot_pose_arm", "arm_7_link_real", Pose())
    assert workflow.go_to_slot_and_turn("arm")
    assert planner.cartesian_requests == []
    assert planner.executed == []
