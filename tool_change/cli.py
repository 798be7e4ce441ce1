#!/usr/bin/env python3
"""
Command-line client for the tool-change action servers.

Steps are given as <operation>:<tool> and run in order, stopping at the
first failed or rejected goal:

    tool_change_client go_to_start:arm go_to_slot_and_turn:arm
"""
import argparse
import sys
from typing import List, Tuple

# operation → (action name, action type name)
OPERATIONS = {
    'go_to_start':         ('go_to_start_position', 'GoToStartPosition'),
    'go_to_slot_and_turn': ('go_to_slot_and_turn',  'GoToSlotAndTurn'),
    'go_back_to_start':    ('go_back_to_start',     'GoToStartPosition'),
}
TOOLS = ('arm', 'vac')


def parse_step(text: str) -> Tuple[str, str]:
    """'go_to_start:arm' → ('go_to_start', 'arm'); raises ValueError on bad input."""
    operation, sep, tool = text.strip().partition(':')
    if not sep:
        raise ValueError(f"step '{text}' must look like <operation>:<tool>")
    operation, tool = operation.strip(), tool.strip().lower()
    if operation not in OPERATIONS:
        raise ValueError(f"unknown operation '{operation}', expected one of {sorted(OPERATIONS)}")
    if tool not in TOOLS:
        raise ValueError(f"unknown tool '{tool}', expected one of {list(TOOLS)}")
    return operation, tool


def run_steps(steps: List[Tuple[str, str]], timeout: float) -> bool:
    import rclpy
    from rclpy.action import ActionClient
    from tool_change_interfaces import action as tool_change_actions

    rclpy.init()
    node = rclpy.create_node('tool_change_client')
    try:
        for operation, tool in steps:
            action_name, type_name = OPERATIONS[operation]
            action_type = getattr(tool_change_actions, type_name)
            client = ActionClient(node, action_type, action_name)
            if not client.wait_for_server(timeout_sec=timeout):
                print(f"[ERROR] Action server '{action_name}' not available")
                return False

            goal = action_type.Goal()
            goal.goal = tool
            print(f"▶ Executing {operation}({tool})")
            send_future = client.send_goal_async(goal)
            rclpy.spin_until_future_complete(node, send_future)
            goal_handle = send_future.result()
            if goal_handle is None or not goal_handle.accepted:
                print(f"[ERROR] '{operation}' goal was rejected")
                return False

            result_future = goal_handle.get_result_async()
            rclpy.spin_until_future_complete(node, result_future)
            if not result_future.result().result.result:
                print(f"[ERROR] '{operation}' for {tool} failed")
                return False
        print("✅ Tool change steps completed.")
        return True
    finally:
        node.destroy_node()
        rclpy.shutdown()


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Send goals to the tool_change action servers.'
    )
    parser.add_argument('steps', nargs='+',
                        help='Steps as <operation>:<tool>, e.g. go_to_start:arm')
    parser.add_argument('--timeout', '-t', type=float, default=5.0,
                        help='Seconds to wait for each action server')
    args = parser.parse_args(argv)

    try:
        steps = [parse_step(s) for s in args.steps]
    except ValueError as e:
        print(f"[ERROR] {e}")
        sys.exit(2)

    sys.exit(0 if run_steps(steps, args.timeout) else 1)


if __name__ == '__main__':
    main()
