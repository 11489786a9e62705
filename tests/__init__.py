"""
Flow Replay test suite.
"""
