"""
Condition evaluation for if/while/assert-style branching.

Supported shapes:

* ``{"kind": "expr", "expr": "count > 3"}``
* ``{"kind": "compare", "left": "{status}", "op": "eq", "right": "ok"}``
* ``{"kind": "truthy", "value": "{flag}"}`` / ``{"kind": "falsy", ...}``
* ``{"kind": "not", "condition": {...}}``
* ``{"kind": "and" | "or", "conditions": [...]}``
* legacy ``{"expression": "..."}`` and ``{"var": "name", "equals": value}``
* a bare string, treated as an expression
"""

import logging
import re
from typing import Any, Mapping

from flow_replay.engine.expression import evaluate_expression
from flow_replay.exceptions import FlowValidationError
from flow_replay.utils.templates import get_by_path, resolve_template

logger = logging.getLogger(__name__)

COMPARE_OPS = frozenset({
    "eq", "eqi", "neq", "gt", "gte", "lt", "lte",
    "contains", "containsI", "notContains", "notContainsI",
    "startsWith", "endsWith", "regex",
})


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return float("nan")


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def compare(left: Any, op: str, right: Any) -> bool:
    """Apply a comparison operator. Numeric operators coerce both sides to float."""
    if op == "eq":
        if isinstance(left, (int, float)) or isinstance(right, (int, float)):
            return _to_number(left) == _to_number(right)
        return left == right
    if op == "eqi":
        return _text(left).casefold() == _text(right).casefold()
    if op == "neq":
        return not compare(left, "eq", right)
    if op in ("gt", "gte", "lt", "lte"):
        a, b = _to_number(left), _to_number(right)
        if a != a or b != b:
            return False
        return {"gt": a > b, "gte": a >= b, "lt": a < b, "lte": a <= b}[op]
    if op == "contains":
        if isinstance(left, (list, tuple)):
            return right in left
        return _text(right) in _text(left)
    if op == "containsI":
        return _text(right).casefold() in _text(left).casefold()
    if op == "notContains":
        return not compare(left, "contains", right)
    if op == "notContainsI":
        return not compare(left, "containsI", right)
    if op == "startsWith":
        return _text(left).startswith(_text(right))
    if op == "endsWith":
        return _text(left).endswith(_text(right))
    if op == "regex":
        try:
            return re.search(_text(right), _text(left)) is not None
        except re.error as exc:
            raise FlowValidationError(f"Invalid regex in condition: {right}", {"error": str(exc)}) from exc
    raise FlowValidationError(f"Unknown compare operator: {op}")


def _operand(value: Any, variables: Mapping[str, Any]) -> Any:
    if isinstance(value, dict) and "var" in value and len(value) == 1:
        return get_by_path(variables, value["var"])
    return resolve_template(value, variables)


def evaluate_condition(condition: Any, variables: Mapping[str, Any]) -> bool:
    """
    Evaluate a condition against the variable store.

    Raises:
        FlowValidationError: For malformed conditions
    """
    if condition is None:
        return False
    if isinstance(condition, bool):
        return condition
    if isinstance(condition, str):
        return bool(evaluate_expression(resolve_template(condition, variables), variables))
    if not isinstance(condition, dict):
        raise FlowValidationError(f"Unsupported condition: {condition!r}")

    kind = condition.get("kind")
    if kind is None:
        if "expression" in condition:
            return bool(evaluate_expression(condition["expression"], variables))
        if "var" in condition:
            value = get_by_path(variables, condition["var"])
            if "equals" in condition:
                return value == condition["equals"]
            return bool(value)
        if "expr" in condition:
            kind = "expr"
        else:
            raise FlowValidationError(f"Condition has no kind: {condition!r}")

    if kind == "expr":
        return bool(evaluate_expression(condition.get("expr", ""), variables))
    if kind == "compare":
        op = condition.get("op", "eq")
        if op not in COMPARE_OPS:
            raise FlowValidationError(f"Unknown compare operator: {op}")
        return compare(_operand(condition.get("left"), variables), op, _operand(condition.get("right"), variables))
    if kind == "truthy":
        return bool(_operand(condition.get("value"), variables))
    if kind == "falsy":
        return not _operand(condition.get("value"), variables)
    if kind == "not":
        return not evaluate_condition(condition.get("condition"), variables)
    if kind == "and":
        return all(evaluate_condition(c, variables) for c in condition.get("conditions", []))
    if kind == "or":
        return any(evaluate_condition(c, variables) for c in condition.get("conditions", []))
    raise FlowValidationError(f"Unknown condition kind: {kind}")
