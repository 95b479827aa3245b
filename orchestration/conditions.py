"""Condition evaluation - tagged expression AST and its interpreter.

Conditions gate task execution. They are small boolean expressions over the
shared execution context, for example::

    available == true
    order.total >= 100 and customer.tier in ["gold", "platinum"]
    not payment_declined

Parsing uses the stdlib ``ast`` module only as a tokenizer/parser; the Python
tree is converted into the node types below and anything outside the supported
grammar is rejected. The interpreter never executes Python code.

Evaluation is deliberately permissive. A comparison that references a missing
context key or hits a type mismatch evaluates to ``False``, as does a bare
variable that is missing; ``and``, ``or`` and ``not`` then combine those
outcomes normally, so ``missing == 1 or present == 2`` can still be true. An
unparsable expression evaluates to ``False`` as a whole. A false condition
skips the gated task; nothing here raises into the workflow.
"""

import ast
import operator
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Union

from core.infrastructure.logging import get_logger

from .exceptions import ConditionSyntaxError

logger = get_logger("orchestration.conditions")


@dataclass(frozen=True)
class Literal:
    """Constant operand."""

    value: Any


@dataclass(frozen=True)
class Variable:
    """Lookup of a (possibly nested) context key."""

    path: tuple[str, ...]

    @property
    def name(self) -> str:
        return ".".join(self.path)


@dataclass(frozen=True)
class Comparison:
    """Binary comparison between two operands."""

    op: str
    left: "ConditionNode"
    right: "ConditionNode"


@dataclass(frozen=True)
class BooleanOp:
    """Short-circuiting ``and`` / ``or`` over two or more operands."""

    op: str
    operands: tuple["ConditionNode", ...]


@dataclass(frozen=True)
class Not:
    """Logical negation."""

    operand: "ConditionNode"


ConditionNode = Union[Literal, Variable, Comparison, BooleanOp, Not]


_COMPARATORS: dict[type, str] = {
    ast.Eq: "==",
    ast.NotEq: "!=",
    ast.Lt: "<",
    ast.LtE: "<=",
    ast.Gt: ">",
    ast.GtE: ">=",
    ast.In: "in",
    ast.NotIn: "not in",
}

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda left, right: left in right,
    "not in": lambda left, right: left not in right,
}

# Lower-case keyword literals accepted in addition to Python's True/False/None
_KEYWORD_LITERALS: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "none": None,
}


def parse_condition(expression: str) -> ConditionNode:
    """Parse a condition string into a condition AST.

    Args:
        expression: Condition expression

    Returns:
        Root node of the parsed expression

    Raises:
        ConditionSyntaxError: If the expression is empty, not valid syntax or
            uses a construct outside the supported grammar
    """
    if not expression or not expression.strip():
        raise ConditionSyntaxError(expression, "empty expression")

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as exc:
        raise ConditionSyntaxError(expression, exc.msg or "syntax error") from exc

    return _convert(tree.body, expression)


def _convert(node: ast.AST, expression: str) -> ConditionNode:
    if isinstance(node, ast.BoolOp):
        op = "and" if isinstance(node.op, ast.And) else "or"
        return BooleanOp(op=op, operands=tuple(_convert(v, expression) for v in node.values))

    if isinstance(node, ast.UnaryOp):
        if isinstance(node.op, ast.Not):
            return Not(operand=_convert(node.operand, expression))
        if isinstance(node.op, (ast.USub, ast.UAdd)) and isinstance(node.operand, ast.Constant):
            value = node.operand.value
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return Literal(-value if isinstance(node.op, ast.USub) else value)
        raise ConditionSyntaxError(expression, "unsupported unary operator")

    if isinstance(node, ast.Compare):
        operands = [node.left, *node.comparators]
        comparisons = []
        for index, op_node in enumerate(node.ops):
            symbol = _COMPARATORS.get(type(op_node))
            if symbol is None:
                raise ConditionSyntaxError(
                    expression, f"unsupported comparison '{type(op_node).__name__}'"
                )
            comparisons.append(
                Comparison(
                    op=symbol,
                    left=_convert(operands[index], expression),
                    right=_convert(operands[index + 1], expression),
                )
            )
        # a < b < c  ->  (a < b) and (b < c)
        if len(comparisons) == 1:
            return comparisons[0]
        return BooleanOp(op="and", operands=tuple(comparisons))

    if isinstance(node, ast.Constant):
        if isinstance(node.value, (str, int, float, bool)) or node.value is None:
            return Literal(node.value)
        raise ConditionSyntaxError(expression, f"unsupported literal {node.value!r}")

    if isinstance(node, (ast.List, ast.Tuple, ast.Set)):
        values = []
        for element in node.elts:
            converted = _convert(element, expression)
            if not isinstance(converted, Literal):
                raise ConditionSyntaxError(expression, "collections may only hold literals")
            values.append(converted.value)
        return Literal(tuple(values))

    if isinstance(node, (ast.Name, ast.Attribute, ast.Subscript)):
        path = _variable_path(node, expression)
        if len(path) == 1 and path[0].lower() in _KEYWORD_LITERALS:
            return Literal(_KEYWORD_LITERALS[path[0].lower()])
        return Variable(path=path)

    raise ConditionSyntaxError(expression, f"unsupported expression '{type(node).__name__}'")


def _variable_path(node: ast.AST, expression: str) -> tuple[str, ...]:
    if isinstance(node, ast.Name):
        return (node.id,)
    if isinstance(node, ast.Attribute):
        if node.attr.startswith("__"):
            raise ConditionSyntaxError(expression, "dunder access is not allowed")
        return (*_variable_path(node.value, expression), node.attr)
    if isinstance(node, ast.Subscript):
        key = node.slice
        if isinstance(key, ast.Constant) and isinstance(key.value, (str, int)):
            return (*_variable_path(node.value, expression), str(key.value))
        raise ConditionSyntaxError(expression, "subscripts must be constant keys")
    raise ConditionSyntaxError(expression, f"unsupported lookup '{type(node).__name__}'")


class _Undetermined(Exception):
    """Internal signal: the expression cannot be decided against the context."""


class ConditionEvaluator:
    """Interprets condition ASTs against an execution context snapshot."""

    def __init__(self) -> None:
        self._cache: dict[str, ConditionNode] = {}

    def validate(self, expression: str) -> ConditionNode:
        """Parse (and cache) an expression, raising on invalid syntax.

        Raises:
            ConditionSyntaxError: If the expression cannot be parsed
        """
        node = self._cache.get(expression)
        if node is None:
            node = parse_condition(expression)
            self._cache[expression] = node
        return node

    def evaluate(self, expression: str | None, context: Mapping[str, Any]) -> bool:
        """Evaluate a condition against a context.

        Args:
            expression: Condition string; ``None`` or blank means "always run"
            context: Current shared context snapshot

        Returns:
            Boolean outcome; ``False`` for missing keys, type mismatches and
            invalid expressions
        """
        if expression is None or not expression.strip():
            return True

        try:
            node = self.validate(expression)
        except ConditionSyntaxError as exc:
            logger.warning("condition_invalid expression=%r reason=%s", expression, exc.reason)
            return False

        try:
            return bool(self.evaluate_node(node, context))
        except _Undetermined as exc:
            logger.debug("condition_undetermined expression=%r reason=%s", expression, exc)
            return False

    def evaluate_node(self, node: ConditionNode, context: Mapping[str, Any]) -> Any:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, Variable):
            return self._lookup(node, context)

        if isinstance(node, Not):
            return not self._truth(node.operand, context)

        if isinstance(node, BooleanOp):
            if node.op == "and":
                return all(self._truth(operand, context) for operand in node.operands)
            return any(self._truth(operand, context) for operand in node.operands)

        if isinstance(node, Comparison):
            try:
                left = self.evaluate_node(node.left, context)
                right = self.evaluate_node(node.right, context)
                return bool(_OPERATORS[node.op](left, right))
            except TypeError as exc:
                logger.debug("condition_type_mismatch op=%s error=%s", node.op, exc)
                return False
            except _Undetermined as exc:
                logger.debug("condition_undetermined op=%s reason=%s", node.op, exc)
                return False

        raise _Undetermined(f"unknown node {node!r}")

    def _truth(self, node: ConditionNode, context: Mapping[str, Any]) -> bool:
        """Truth value of a boolean operand; an unresolvable variable is False."""
        try:
            return bool(self.evaluate_node(node, context))
        except _Undetermined as exc:
            logger.debug("condition_undetermined reason=%s", exc)
            return False

    @staticmethod
    def _lookup(variable: Variable, context: Mapping[str, Any]) -> Any:
        current: Any = context
        for part in variable.path:
            if not isinstance(current, Mapping) or part not in current:
                raise _Undetermined(f"missing context key '{variable.name}'")
            current = current[part]
        return current
