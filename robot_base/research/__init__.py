# robot_base/research/__init__.py
"""
Offline tooling around a base session.

Modules:
- recording: Session and event-bus recording wrappers (JSONL)
- simulation: Simulated base served over WebSocket
"""
