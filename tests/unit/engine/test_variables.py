"""
Tests for VariableStore - run variables and branch scopes.
"""

from flow_replay.engine.variables import VariableStore


class TestVariableStore:
    """Test the mapping and path API."""

    def test_resolve(self):
        store = VariableStore({"name": "Ada"})
        assert store.resolve("Hello {{name}}") == "Hello Ada"

    def test_set_path_copies_containers(self):
        original = {"emails": ["a@x.io"]}
        store = VariableStore({"user": original})
        store.set_path("user.emails[1]", "b@x.io")
        assert store.get_path("user.emails") == ["a@x.io", "b@x.io"]
        assert original == {"emails": ["a@x.io"]}

    def test_set_path_single_segment(self):
        store = VariableStore()
        store.set_path("total", 3)
        assert store["total"] == 3

    def test_snapshot_excludes(self):
        store = VariableStore({"user": "ada", "password": "secret"})
        assert store.snapshot(exclude={"password"}) == {"user": "ada"}


class TestChildScopes:
    """Test foreach branch scopes."""

    def test_child_reads_parent(self):
        parent = VariableStore({"base": "https://x.io"})
        child = parent.child()
        assert child["base"] == "https://x.io"
        assert "base" in child

    def test_writes_stay_local_until_merge(self):
        parent = VariableStore({"count": 0})
        child = parent.child()
        child["count"] = 5
        assert parent["count"] == 0
        child.merge_into_parent()
        assert parent["count"] == 5

    def test_private_keys_never_merge(self):
        parent = VariableStore()
        child = parent.child(private=["item"])
        child["item"] = {"id": 1}
        child["seen"] = True
        merged = child.merge_into_parent()
        assert merged == {"seen": True}
        assert "item" not in parent

    def test_unwritten_keys_not_merged(self):
        parent = VariableStore({"a": 1})
        child = parent.child()
        assert child.merge_into_parent() == {}

    def test_iteration_merges_views(self):
        parent = VariableStore({"a": 1, "b": 2})
        child = parent.child()
        child["b"] = 3
        child["c"] = 4
        assert dict(child) == {"a": 1, "b": 3, "c": 4}
        assert len(child) == 3
