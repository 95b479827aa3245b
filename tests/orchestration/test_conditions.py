"""Tests for condition parsing and evaluation."""

import pytest

from orchestration.conditions import (
    BooleanOp,
    Comparison,
    ConditionEvaluator,
    Literal,
    Not,
    Variable,
    parse_condition,
)
from orchestration.exceptions import ConditionSyntaxError


def test_parse_comparison_into_tagged_nodes():
    node = parse_condition("available == true")

    assert node == Comparison(op="==", left=Variable(path=("available",)), right=Literal(True))


def test_parse_nested_lookup_and_boolean_ops():
    node = parse_condition("order.total >= 100 and not customer['blocked']")

    assert isinstance(node, BooleanOp)
    assert node.op == "and"
    first, second = node.operands
    assert first == Comparison(op=">=", left=Variable(("order", "total")), right=Literal(100))
    assert second == Not(operand=Variable(("customer", "blocked")))


def test_chained_comparison_becomes_conjunction():
    node = parse_condition("0 < qty <= 10")

    assert isinstance(node, BooleanOp)
    assert [c.op for c in node.operands] == ["<", "<="]


@pytest.mark.parametrize(
    "expression",
    [
        "",
        "   ",
        "available ==",
        "run()",
        "a + b > 1",
        "x.__class__",
        "items[key]",
        "[a, b]",
        "lambda: True",
    ],
)
def test_parse_rejects_unsupported_expressions(expression):
    with pytest.raises(ConditionSyntaxError):
        parse_condition(expression)


@pytest.mark.parametrize(
    ("expression", "context", "expected"),
    [
        ("available == true", {"available": True}, True),
        ("available == true", {"available": False}, False),
        ("available == True", {"available": True}, True),
        ("count > 3", {"count": 5}, True),
        ("count > 3", {"count": 2}, False),
        ("count >= -1", {"count": -1}, True),
        ("status != 'failed'", {"status": "ok"}, True),
        ("tier in ['gold', 'platinum']", {"tier": "gold"}, True),
        ("tier not in ('gold',)", {"tier": "silver"}, True),
        ("payment_id != null", {"payment_id": "PAY-1"}, True),
        ("payment_id == null", {"payment_id": None}, True),
        ("order.total > 100", {"order": {"total": 150}}, True),
        ("a or b", {"a": False, "b": True}, True),
        ("not blocked", {"blocked": False}, True),
        ("missing == 1 or present == 2", {"present": 2}, True),
        ("present == 2 and missing == 1", {"present": 2}, False),
        ("not (missing == 1)", {}, True),
        ("not missing", {}, True),
        ("count > 3 or ok", {"count": "many", "ok": True}, True),
    ],
)
def test_evaluate(expression, context, expected):
    assert ConditionEvaluator().evaluate(expression, context) is expected


@pytest.mark.parametrize(
    ("expression", "context"),
    [
        ("available == true", {}),
        ("order.total > 100", {"order": {}}),
        ("order.total > 100", {"order": 5}),
        ("count > 3", {"count": "many"}),
        ("available ==", {"available": True}),
    ],
)
def test_evaluate_is_permissive(expression, context):
    """Missing keys, type mismatches and bad syntax all evaluate to False."""
    assert ConditionEvaluator().evaluate(expression, context) is False


def test_empty_condition_always_passes():
    evaluator = ConditionEvaluator()

    assert evaluator.evaluate(None, {}) is True
    assert evaluator.evaluate("  ", {}) is True


def test_validate_caches_parsed_nodes():
    evaluator = ConditionEvaluator()

    first = evaluator.validate("x == 1")
    assert evaluator.validate("x == 1") is first

    with pytest.raises(ConditionSyntaxError):
        evaluator.validate("x ==")
