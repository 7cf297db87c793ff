"""
Agent Package

The per-turn decision pipeline: perception, name resolution, fast path,
intent resolution, candidate generation and execution. Import the modules
directly, e.g. ``from agent.pipeline import DecisionPipeline``.
"""
