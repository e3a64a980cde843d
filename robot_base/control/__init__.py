"""
Control loop for a robot base session.

Example usage:
    from robot_base.control import ControlLoop
    from robot_base.core.settings import ControlSettings

    loop = ControlLoop("ws://localhost:8439", ControlSettings(duration_s=5.0))
    result = await loop.run()
"""

from .control_loop import ControlLoop, LoopResult, LoopState, tick_count

__all__ = ["ControlLoop", "LoopResult", "LoopState", "tick_count"]
