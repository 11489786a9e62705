"""
Variable Store - the single mutable name/value map of a run.

Seeded from flow defaults, then call-time arguments, then prompted values.
Extract, script and http actions write into it with ``saveAs``/``assign``.
Foreach branches get a child scope that reads through to the parent and
merges its writes back when the branch finishes.

Example:
    >>> store = VariableStore({"name": "Ada"})
    >>> store.resolve("Hello {{name}}")
    'Hello Ada'
    >>> store.set_path("user.emails[0]", "ada@example.com")
    >>> store.get_path("user.emails[0]")
    'ada@example.com'
"""

import logging
from typing import Any, Dict, Iterable, Iterator, MutableMapping, Optional, Set

from flow_replay.utils.templates import get_by_path, resolve_deep, resolve_template, set_by_path, parse_path

logger = logging.getLogger(__name__)


class VariableStore(MutableMapping):
    """
    Run-scoped variable map with optional parent scope.

    Reads fall through to the parent. Writes stay local until
    ``merge_into_parent`` copies them up.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None, parent: Optional["VariableStore"] = None):
        self._data: Dict[str, Any] = dict(initial or {})
        self._parent = parent
        self._written: Set[str] = set()
        self._private: Set[str] = set()

    # Mapping protocol

    def __getitem__(self, key: str) -> Any:
        if key in self._data:
            return self._data[key]
        if self._parent is not None:
            return self._parent[key]
        raise KeyError(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._written.add(key)

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._written.discard(key)

    def __iter__(self) -> Iterator[str]:
        seen = set(self._data)
        yield from self._data
        if self._parent is not None:
            for key in self._parent:
                if key not in seen:
                    yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __contains__(self, key: object) -> bool:
        if key in self._data:
            return True
        return self._parent is not None and key in self._parent

    # Paths and templates

    def get_path(self, path: str, default: Any = None) -> Any:
        return get_by_path(self, path, default)

    def set_path(self, path: str, value: Any) -> None:
        """Assign ``value`` at a dotted path, e.g. ``order.items[0].sku``."""
        root = parse_path(path)[0]
        if not isinstance(root, str):
            raise ValueError(f"Variable path must start with a name: {path}")
        if len(parse_path(path)) == 1:
            self[root] = value
            return
        container = self.get(root)
        container = _deep_copy_containers(container) if isinstance(container, (dict, list)) else {}
        holder = {root: container}
        set_by_path(holder, path, value)
        self[root] = holder[root]

    def resolve(self, value: Any) -> Any:
        """Substitute ``{name}``/``{{name}}`` placeholders in a string."""
        return resolve_template(value, self)

    def resolve_deep(self, value: Any) -> Any:
        return resolve_deep(value, self)

    # Scopes

    def child(self, private: Iterable[str] = ()) -> "VariableStore":
        """
        Create a branch scope.

        Keys listed in ``private`` stay local to the branch and are never
        merged back.
        """
        scope = VariableStore(parent=self)
        scope._private = set(private)
        return scope

    def merge_into_parent(self) -> Dict[str, Any]:
        """Copy the branch's writes into the parent. Returns what was merged."""
        if self._parent is None:
            return {}
        merged = {k: self._data[k] for k in self._written if k not in self._private and k in self._data}
        for key, value in merged.items():
            self._parent[key] = value
        if merged:
            logger.debug(f"Merged {len(merged)} variable(s) from branch scope: {sorted(merged)}")
        return merged

    def snapshot(self, exclude: Iterable[str] = ()) -> Dict[str, Any]:
        skip = set(exclude)
        return {k: self[k] for k in self if k not in skip}

    def __repr__(self) -> str:
        return f"VariableStore({self.snapshot()!r})"


def _deep_copy_containers(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _deep_copy_containers(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_deep_copy_containers(v) for v in value]
    return value
