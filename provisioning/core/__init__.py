"""Core — models, persistence, planner, engine."""
