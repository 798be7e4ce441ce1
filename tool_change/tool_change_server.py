#!/usr/bin/env python3
"""
Tool-change server node.

• subscribes to the aruco marker detections and feeds them to the FrameDirector
• broadcasts the derived board / arm frames on every detection batch
• once arm and board fiducials were seen together, starts three action servers:
    go_to_start_position   (GoToStartPosition)
    go_to_slot_and_turn    (GoToSlotAndTurn)
    go_back_to_start       (GoToStartPosition)
• one goal at a time, goals arriving while the arm is busy are rejected
"""
import os

import rclpy
from ament_index_python.packages import get_package_share_directory
from rclpy.action import ActionServer, CancelResponse, GoalResponse
from rclpy.callback_groups import MutuallyExclusiveCallbackGroup, ReentrantCallbackGroup
from rclpy.executors import MultiThreadedExecutor
from rclpy.node import Node
from ros2_aruco_interfaces.msg import ArucoMarkers
from tool_change_interfaces.action import GoToSlotAndTurn, GoToStartPosition

from tool_change.frame_director import FrameDirector, MarkerObservation
from tool_change.move_executor import MoveExecutor
from tool_change.params import ToolChangeConfig, load_marker_names
from tool_change.ros_interfaces import MoveItPlanner, TfDirectory
from tool_change.workflow import WorkflowOrchestrator

# ─── Constants ────────────────────────────────────────────────────────────────
PACKAGE_NAME          = 'tool_change'
CONFIG_FILE           = 'tool_change_params.yaml'
ID_NAME_CONFIG_FILE   = 'marker_id_config.yaml'
DEFAULT_MARKER_TOPIC  = '/aruco_markers'


class ToolChangeServer(Node):
    def __init__(self):
        super().__init__('tool_change_server')

        # Params
        self.declare_parameter('config_file', '')
        self.declare_parameter('marker_id_file', '')
        self.declare_parameter('marker_topic', DEFAULT_MARKER_TOPIC)
        config_file    = self._share_path(self.get_parameter('config_file').value, CONFIG_FILE)
        marker_id_file = self._share_path(self.get_parameter('marker_id_file').value, ID_NAME_CONFIG_FILE)
        marker_topic   = self.get_parameter('marker_topic').value

        self.config = ToolChangeConfig.from_yaml(config_file)
        self.marker_name_mapping = load_marker_names(marker_id_file)
        self.get_logger().info(f"Loaded {config_file} and {len(self.marker_name_mapping)} marker names")

        # Callback groups: detections keep flowing while a goal blocks
        self.perception_group = MutuallyExclusiveCallbackGroup()
        self.action_group     = MutuallyExclusiveCallbackGroup()
        self.planner_group    = ReentrantCallbackGroup()

        # Core
        logger = self.get_logger()
        self.tf_directory = TfDirectory(self)
        self.planner      = MoveItPlanner(self, self.tf_directory, self.config, self.planner_group)
        self.director     = FrameDirector(self.tf_directory, self.config, logger)
        self.mover        = MoveExecutor(self.planner, self.config.motion, logger)
        self.workflow     = WorkflowOrchestrator(self.tf_directory, self.mover, self.director, self.config, logger)

        self.action_servers = []
        self.create_subscription(
            ArucoMarkers, marker_topic, self.markers_callback, 10,
            callback_group=self.perception_group,
        )
        self.get_logger().info(f"Waiting for arm and board fiducials on {marker_topic}...")

    @staticmethod
    def _share_path(value: str, default_name: str) -> str:
        if value:
            return value
        return os.path.join(get_package_share_directory(PACKAGE_NAME), default_name)

    # ─── Perception ─────────────────────────────────────────────────────────
    def markers_callback(self, msg: ArucoMarkers):
        batch = []
        for marker_id, pose in zip(msg.marker_ids, msg.poses):
            label = self.marker_name_mapping.get(int(marker_id))
            if label is None:
                continue
            batch.append(MarkerObservation(
                label,
                (pose.position.x, pose.position.y, pose.position.z),
                (pose.orientation.x, pose.orientation.y, pose.orientation.z, pose.orientation.w),
            ))
        self.director.on_observation_batch(batch)

        if self.director.ready.is_set() and not self.action_servers:
            self.start_action_servers()

    # ─── Action servers ─────────────────────────────────────────────────────
    def start_action_servers(self):
        for name, action_type, operation in (
            ('go_to_start_position', GoToStartPosition, self.workflow.go_to_start),
            ('go_to_slot_and_turn',  GoToSlotAndTurn,   self.workflow.go_to_slot_and_turn),
            ('go_back_to_start',     GoToStartPosition, self.workflow.go_back_to_start),
        ):
            self.action_servers.append(ActionServer(
                self, action_type, name,
                execute_callback=self._make_execute_callback(name, action_type, operation),
                goal_callback=self.goal_callback,
                cancel_callback=self.cancel_callback,
                callback_group=self.action_group,
            ))
        self.get_logger().info("Action servers started: go_to_start_position, go_to_slot_and_turn, go_back_to_start")

    def goal_callback(self, goal_request):
        if self.workflow.busy:
            self.get_logger().warning(f"goal_callback(): busy, rejecting goal '{goal_request.goal}'")
            return GoalResponse.REJECT
        return GoalResponse.ACCEPT

    def cancel_callback(self, goal_handle):
        # submitted trajectories run to completion
        return CancelResponse.REJECT

    def _make_execute_callback(self, name, action_type, operation):
        def execute_callback(goal_handle):
            success = operation(goal_handle.request.goal)
            result = action_type.Result()
            result.result = success
            if success:
                goal_handle.succeed()
                self.get_logger().info(f"{name} was successful")
            else:
                goal_handle.abort()
                self.get_logger().error(f"{name} was not successful")
            return result
        return execute_callback


def main(args=None):
    rclpy.init(args=args)
    node = ToolChangeServer()
    executor = MultiThreadedExecutor()
    executor.add_node(node)
    try:
        executor.spin()
    except KeyboardInterrupt:
        pass
    finally:
        executor.shutdown()
        node.destroy_node()
        try:
            rclpy.shutdown()
        except Exception:
            pass


if __name__ == '__main__':
    main()
