"""
Safe expression evaluation for flow conditions.

Expressions are parsed with ``ast`` and only a small node whitelist is
accepted. Recorded flows often carry JavaScript-style operators, so
``&&``, ``||``, ``!``, ``===``, ``!==``, ``true``, ``false`` and ``null``
are translated first. Variables are reachable both as bare names and
through ``vars.name`` / ``vars["name"]``.
"""

import ast
import re
from typing import Any, Callable, Dict, Mapping, Tuple, Type

from flow_replay.exceptions import FlowValidationError

_ALLOWED_EXPR_NODES: Tuple[Type[ast.AST], ...] = (
    ast.Expression,
    ast.BoolOp,
    ast.BinOp,
    ast.UnaryOp,
    ast.Compare,
    ast.Call,
    ast.Name,
    ast.Load,
    ast.Subscript,
    ast.Attribute,
    ast.Constant,
    ast.List,
    ast.Tuple,
    ast.Dict,
    ast.Slice,
    ast.IfExp,
    ast.And,
    ast.Or,
    ast.Not,
    ast.Eq,
    ast.NotEq,
    ast.Lt,
    ast.LtE,
    ast.Gt,
    ast.GtE,
    ast.In,
    ast.NotIn,
    ast.Is,
    ast.IsNot,
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.FloorDiv,
    ast.Mod,
    ast.USub,
    ast.UAdd,
)

_ALLOWED_CALLABLES: Dict[str, Callable[..., Any]] = {
    "len": len,
    "min": min,
    "max": max,
    "abs": abs,
    "round": round,
    "int": int,
    "float": float,
    "str": str,
    "bool": bool,
    "any": any,
    "all": all,
}

_ALLOWED_NAME_OVERRIDES: Dict[str, Any] = {
    "True": True,
    "False": False,
    "None": None,
}

_JS_TOKENS = re.compile(
    r"""("(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')"""
    r"""|(===|!==|&&|\|\||!(?!=)|\btrue\b|\bfalse\b|\bnull\b|\bundefined\b)"""
)
_JS_REPLACEMENTS = {
    "===": "==",
    "!==": "!=",
    "&&": " and ",
    "||": " or ",
    "!": " not ",
    "true": "True",
    "false": "False",
    "null": "None",
    "undefined": "None",
}


class _AttrView:
    """Read-only attribute access over a mapping, so ``vars.user.name`` works."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any]):
        self._data = data

    def __getattr__(self, name: str) -> Any:
        return _wrap(self._data.get(name))

    def __getitem__(self, key: Any) -> Any:
        return _wrap(self._data[key])

    def __contains__(self, key: Any) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self):
        return iter(self._data)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, _AttrView):
            other = other._data
        return dict(self._data) == other

    def __bool__(self) -> bool:
        return bool(self._data)


def _wrap(value: Any) -> Any:
    return _AttrView(value) if isinstance(value, Mapping) else value


def translate_js_operators(expression: str) -> str:
    """Rewrite JavaScript operators into Python, leaving string literals intact."""

    def replace(match: re.Match) -> str:
        if match.group(1):
            return match.group(1)
        return _JS_REPLACEMENTS[match.group(2)]

    return _JS_TOKENS.sub(replace, expression).strip()


def _validate_expression_ast(tree: ast.AST) -> None:
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_EXPR_NODES):
            raise FlowValidationError(f"Unsupported syntax in expression: {type(node).__name__}")
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in _ALLOWED_CALLABLES:
                allowed = ", ".join(sorted(_ALLOWED_CALLABLES))
                raise FlowValidationError(f"Expressions may only call: {allowed}")
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise FlowValidationError("Access to private attributes is not allowed")
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise FlowValidationError("Access to dunder names is not allowed")


def evaluate_expression(expression: str, variables: Mapping[str, Any]) -> Any:
    """
    Evaluate an expression against the variable store.

    Unknown bare names evaluate to None instead of raising, matching the
    permissive semantics of recorded flows.

    Raises:
        FlowValidationError: If the expression is empty, malformed or uses
            disallowed syntax
    """
    expr = translate_js_operators(expression or "")
    if not expr:
        raise FlowValidationError("Expression cannot be empty")
    try:
        tree = ast.parse(expr, mode="eval")
    except SyntaxError as exc:
        raise FlowValidationError(f"Invalid expression syntax: {expression}", {"error": str(exc)}) from exc
    _validate_expression_ast(tree)

    scope: Dict[str, Any] = {}
    for node in ast.walk(tree):
        if isinstance(node, ast.Name):
            scope.setdefault(node.id, _wrap(variables.get(node.id)))
    scope.update(_ALLOWED_CALLABLES)
    scope.update(_ALLOWED_NAME_OVERRIDES)
    scope["vars"] = _AttrView(variables)

    compiled = compile(tree, "<flow-expression>", "eval")
    try:
        return eval(compiled, {"__builtins__": {}}, scope)
    except (TypeError, ValueError, KeyError, IndexError, ZeroDivisionError) as exc:
        raise FlowValidationError(f"Expression failed: {expression}", {"error": str(exc)}) from exc
