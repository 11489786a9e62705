"""
Variable templates and dotted-path access.

Templates use ``{name}`` or ``{{name}}`` placeholders where ``name`` may be a
path such as ``user.emails[0]``. Unknown names are left untouched so literal
braces in selectors or scripts survive.
"""

import json
import re
from typing import Any, List, Mapping, MutableMapping, Union

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][\w.\[\]]*)\s*\}\}|\{([A-Za-z_][\w.\[\]]*)\}")
_PATH_TOKEN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")

_MISSING = object()


def parse_path(path: str) -> List[Union[str, int]]:
    """Split ``a.b[0].c`` into ``["a", "b", 0, "c"]``."""
    parts: List[Union[str, int]] = []
    for name, index in _PATH_TOKEN.findall(path):
        parts.append(int(index) if index else name)
    return parts


def get_by_path(data: Any, path: str, default: Any = None) -> Any:
    """Read a nested value, returning ``default`` when any segment is missing."""
    current = data
    for part in parse_path(path):
        if isinstance(part, int):
            if not isinstance(current, (list, tuple)) or part >= len(current):
                return default
            current = current[part]
        elif isinstance(current, Mapping):
            if part not in current:
                return default
            current = current[part]
        else:
            return default
    return current


def set_by_path(data: MutableMapping[str, Any], path: str, value: Any) -> None:
    """Write a nested value, creating intermediate dicts and lists as needed."""
    parts = parse_path(path)
    if not parts:
        raise ValueError("Empty variable path")

    current: Any = data
    for part, nxt in zip(parts, parts[1:]):
        container: Any = [] if isinstance(nxt, int) else {}
        if isinstance(part, int):
            while len(current) <= part:
                current.append(None)
            if not isinstance(current[part], (dict, list)):
                current[part] = container
            current = current[part]
        else:
            if not isinstance(current.get(part), (dict, list)):
                current[part] = container
            current = current[part]

    last = parts[-1]
    if isinstance(last, int):
        while len(current) <= last:
            current.append(None)
    current[last] = value


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def resolve_template(text: Any, variables: Mapping[str, Any]) -> Any:
    """
    Substitute placeholders in ``text``.

    A string consisting of exactly one placeholder resolves to the raw value,
    so ``"{{items}}"`` yields the list itself rather than its JSON form.
    """
    if not isinstance(text, str) or "{" not in text:
        return text

    whole = _PLACEHOLDER.fullmatch(text.strip())
    if whole:
        value = get_by_path(variables, whole.group(1) or whole.group(2), _MISSING)
        return text if value is _MISSING else value

    def replace(match: re.Match) -> str:
        value = get_by_path(variables, match.group(1) or match.group(2), _MISSING)
        if value is _MISSING:
            return match.group(0)
        return _stringify(value)

    return _PLACEHOLDER.sub(replace, text)


def resolve_deep(value: Any, variables: Mapping[str, Any]) -> Any:
    """Apply :func:`resolve_template` to every string inside dicts and lists."""
    if isinstance(value, str):
        return resolve_template(value, variables)
    if isinstance(value, dict):
        return {k: resolve_deep(v, variables) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_deep(v, variables) for v in value]
    return value
