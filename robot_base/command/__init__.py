# robot_base/command/__init__.py
# Downlink command encoding:
#   from robot_base.command.binary_commands import MotionCommand, SequenceCounter, encode_move
