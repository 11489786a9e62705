"""
Engine module - graph traversal, step execution and control flow.

Import concrete components from their modules, e.g.
``from flow_replay.engine.orchestrator import ExecutionOrchestrator``.
"""
