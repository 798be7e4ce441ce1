#!/usr/bin/env python3
from launch import LaunchDescription
from launch.actions import DeclareLaunchArgument
from launch.substitutions import LaunchConfiguration
from launch_ros.actions import Node


def generate_launch_description():
    config_file_arg = DeclareLaunchArgument(
        'config_file',
        default_value='',
        description="Offsets / motion limits YAML, empty uses the installed tool_change_params.yaml"
    )
    marker_id_file_arg = DeclareLaunchArgument(
        'marker_id_file',
        default_value='',
        description="Marker id → label YAML, empty uses the installed marker_id_config.yaml"
    )
    marker_topic_arg = DeclareLaunchArgument(
        'marker_topic',
        default_value='/aruco_markers',
        description="ArucoMarkers detections topic"
    )

    server = Node(
        package='tool_change',
        executable='tool_change_server',
        name='tool_change_server',
        output='screen',
        parameters=[{
            'config_file': LaunchConfiguration('config_file'),
            'marker_id_file': LaunchConfiguration('marker_id_file'),
            'marker_topic': LaunchConfiguration('marker_topic'),
        }]
    )

    return LaunchDescription([
        config_file_arg,
        marker_id_file_arg,
        marker_topic_arg,
        server,
    ])
