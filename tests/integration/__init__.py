"""
End-to-end orchestrator tests against the fake browser.
"""
