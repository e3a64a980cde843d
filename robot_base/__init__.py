"""
Host-side client for a robot base driven over its WebSocket API.

    from robot_base.control import ControlLoop
    result = await ControlLoop("ws://localhost:8439").run()
"""

__version__ = "0.1.0"
