#!/usr/bin/env python3
"""
ROS 2 implementations of the two collaborators the tool-change core talks to.

• TfDirectory    – tf2 buffer/listener for lookups, broadcaster for derived frames
• MoveItPlanner  – compute_cartesian_path service, execute_trajectory action,
                   pymoveit2 for free pose goals
"""
import threading
from typing import Iterable, List, Sequence

from geometry_msgs.msg import Pose as PoseMsg
from geometry_msgs.msg import TransformStamped
from moveit_msgs.action import ExecuteTrajectory
from moveit_msgs.msg import MoveItErrorCodes
from moveit_msgs.srv import GetCartesianPath
from pymoveit2 import MoveIt2, MoveIt2State
from rclpy.action import ActionClient
from rclpy.duration import Duration
from rclpy.time import Time
from tf2_ros import Buffer, TransformBroadcaster, TransformException, TransformListener

from tool_change.errors import ExecutionFailed, PlanningFailed, TransformUnavailable
from tool_change.frame_math import Pose
from tool_change.params import ToolChangeConfig

CARTESIAN_PATH_SERVICE = "/compute_cartesian_path"
EXECUTE_TRAJECTORY_ACTION = "/execute_trajectory"


# ─── Message conversions ──────────────────────────────────────────────────────
def pose_from_transform(tf_stamped) -> Pose:
    t = tf_stamped.transform.translation
    r = tf_stamped.transform.rotation
    return Pose((t.x, t.y, t.z), (r.x, r.y, r.z, r.w))


def pose_to_msg(pose: Pose) -> PoseMsg:
    msg = PoseMsg()
    msg.position.x, msg.position.y, msg.position.z = (float(v) for v in pose.position)
    (msg.orientation.x, msg.orientation.y,
     msg.orientation.z, msg.orientation.w) = (float(v) for v in pose.orientation)
    return msg


def _wait_for(future, timeout: float):
    """Block the calling thread until an rclpy future completes; None on timeout."""
    done = threading.Event()
    future.add_done_callback(lambda _: done.set())
    if not done.wait(timeout):
        return None
    return future.result()


# ─── Transform directory ──────────────────────────────────────────────────────
class TfDirectory:
    def __init__(self, node):
        self.node = node
        self.tf_buffer = Buffer()
        self.tf_listener = TransformListener(self.tf_buffer, node, spin_thread=True)
        self.tf_broadcaster = TransformBroadcaster(node)

    def publish(self, frames: Iterable) -> None:
        """Broadcast DerivedFrame tuples (name, parent, pose), all with one stamp."""
        stamp = self.node.get_clock().now().to_msg()
        transforms: List[TransformStamped] = []
        for frame in frames:
            t = TransformStamped()
            t.header.stamp = stamp
            t.header.frame_id = frame.parent
            t.child_frame_id = frame.name
            (t.transform.translation.x, t.transform.translation.y,
             t.transform.translation.z) = (float(v) for v in frame.pose.position)
            (t.transform.rotation.x, t.transform.rotation.y,
             t.transform.rotation.z, t.transform.rotation.w) = (float(v) for v in frame.pose.orientation)
            transforms.append(t)
        self.tf_broadcaster.sendTransform(transforms)

    def lookup(self, parent: str, child: str, timeout: float) -> Pose:
        """Latest pose of `child` expressed in `parent`."""
        try:
            tf_stamped = self.tf_buffer.lookup_transform(
                parent, child, Time(), timeout=Duration(seconds=timeout)
            )
        except TransformException as e:
            raise TransformUnavailable(f"{parent} -> {child}: {e}") from e
        return pose_from_transform(tf_stamped)


# ─── Motion planner ───────────────────────────────────────────────────────────
class MoveItPlanner:
    def __init__(self, node, directory: TfDirectory, config: ToolChangeConfig, callback_group=None):
        self.node = node
        self.directory = directory
        self.config = config
        motion = config.motion

        self.cartesian_cli = node.create_client(
            GetCartesianPath, CARTESIAN_PATH_SERVICE, callback_group=callback_group
        )
        self.execute_cli = ActionClient(
            node, ExecuteTrajectory, EXECUTE_TRAJECTORY_ACTION, callback_group=callback_group
        )

        # ── pymoveit2 for free pose goals ────────────────────────────────────
        self.moveit2 = MoveIt2(
            node=node,
            joint_names=list(motion.joint_names),
            base_link_name=config.frames.base,
            end_effector_name=config.frames.end_effector,
            group_name=motion.planning_group,
            callback_group=callback_group,
        )

    def get_current_pose(self) -> Pose:
        frames = self.config.frames
        return self.directory.lookup(frames.base, frames.end_effector, self.config.motion.lookup_timeout)

    def plan_cartesian_path(self, waypoints: Sequence[Pose], max_step: float, jump_threshold: float):
        motion = self.config.motion
        if not self.cartesian_cli.wait_for_service(timeout_sec=motion.planning_timeout):
            raise PlanningFailed(f"{CARTESIAN_PATH_SERVICE} service not available")

        req = GetCartesianPath.Request()
        req.header.frame_id = self.config.frames.base
        req.header.stamp = self.node.get_clock().now().to_msg()
        req.group_name = motion.planning_group
        req.link_name = self.config.frames.end_effector
        req.waypoints = [pose_to_msg(p) for p in waypoints]
        req.max_step = float(max_step)
        req.jump_threshold = float(jump_threshold)
        req.avoid_collisions = motion.avoid_collisions
        req.start_state.is_diff = True

        res = _wait_for(self.cartesian_cli.call_async(req), motion.planning_timeout)
        if res is None:
            raise PlanningFailed(f"{CARTESIAN_PATH_SERVICE} call timed out")
        if res.error_code.val != MoveItErrorCodes.SUCCESS:
            self.node.get_logger().warning(
                f"plan_cartesian_path(): planner error code {res.error_code.val}"
            )
        return float(res.fraction), res.solution

    def execute_trajectory(self, trajectory) -> bool:
        motion = self.config.motion
        if not self.execute_cli.wait_for_server(timeout_sec=motion.planning_timeout):
            raise ExecutionFailed(f"{EXECUTE_TRAJECTORY_ACTION} action not available")

        goal = ExecuteTrajectory.Goal()
        goal.trajectory = trajectory
        goal_handle = _wait_for(self.execute_cli.send_goal_async(goal), motion.planning_timeout)
        if goal_handle is None or not goal_handle.accepted:
            raise ExecutionFailed("trajectory goal was rejected")

        wrapped = _wait_for(goal_handle.get_result_async(), motion.execution_timeout)
        if wrapped is None:
            goal_handle.cancel_goal_async()
            raise ExecutionFailed(f"trajectory execution exceeded {motion.execution_timeout}s")
        code = wrapped.result.error_code.val
        if code != MoveItErrorCodes.SUCCESS:
            self.node.get_logger().error(f"execute_trajectory(): error code {code}")
            return False
        return True

    def plan_and_execute_pose_goal(self, pose: Pose) -> bool:
        self.node.get_logger().info("plan_and_execute_pose_goal(): Calling MoveIt2.move_to_pose()...")
        self.moveit2.move_to_pose(
            position=list(pose.position),
            quat_xyzw=list(pose.orientation),
            frame_id=self.config.frames.base,
        )
        succeeded = self.moveit2.wait_until_executed()

        state = self.moveit2.query_state()
        if state != MoveIt2State.IDLE:
            self.node.get_logger().warning(f"plan_and_execute_pose_goal(): Motion ended with state: {state}")
            return False
        # releases that report nothing from wait_until_executed() leave the state check only
        return succeeded is not False
