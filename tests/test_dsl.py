from __future__ import annotations

from decimal import Decimal

import pytest

from transaction_rules.dsl import (
    MAX_NESTING,
    RuleCompileError,
    compile_condition,
    parse_condition,
    tokenize,
)
from transaction_rules.expressions import (
    CaseFold,
    Comparison,
    FieldAccess,
    HelperCall,
    IncludesCheck,
    LogicalAnd,
    LogicalOr,
    NumberLiteral,
    RegexMatch,
    RuleEvaluationError,
    StringLiteral,
)


def _mk_tx(**overrides):
    tx = {
        "id": "t1",
        "merchant": "Walmart",
        "amount": Decimal("75.50"),
        "date": "2025-10-04T10:00:00Z",
        "account": "Checking",
        "category": "Groceries",
    }
    tx.update(overrides)
    return tx


# ---- Parsing -----------------------------------------------------------------


def test_and_binds_tighter_than_or():
    tree = parse_condition('transaction.merchant === "A" || transaction.merchant === "B" && 1 < 2')
    assert isinstance(tree, LogicalOr)
    assert isinstance(tree.right, LogicalAnd)


def test_parentheses_override_precedence():
    tree = parse_condition(
        '(transaction.merchant === "A" || transaction.merchant === "B") && 1 < 2'
    )
    assert isinstance(tree, LogicalAnd)
    assert isinstance(tree.left, LogicalOr)


def test_expression_tree_shapes():
    tree = parse_condition("dayOfWeek(transaction.date) === 6")
    assert tree == Comparison("===", HelperCall("dayOfWeek", FieldAccess("date")), NumberLiteral(6))

    tree = parse_condition('transaction.merchant.toLowerCase().includes("wal")')
    assert tree == IncludesCheck(CaseFold(FieldAccess("merchant")), StringLiteral("wal"))

    tree = parse_condition("transaction.amount >= -12.5")
    assert tree == Comparison(">=", FieldAccess("amount"), NumberLiteral(Decimal("-12.5")))


def test_regex_literal_and_constructor_compile_to_the_same_node():
    literal = parse_condition("/wal.*t/i.test(transaction.merchant)")
    ctor = parse_condition('new RegExp("wal.*t", "i").test(transaction.merchant)')
    assert isinstance(literal, RegexMatch)
    assert literal.pattern.pattern == ctor.pattern.pattern == "wal.*t"
    assert literal.pattern.flags == ctor.pattern.flags


def test_string_escapes():
    tokens = tokenize(r'"say \"hi\"\n"')
    assert tokens[0].value == 'say "hi"\n'


# ---- Evaluation of compiled predicates ---------------------------------------


def test_predicate_resolves_fields_at_call_time():
    pred = compile_condition('transaction.merchant === "Walmart"')
    assert pred(_mk_tx()) is True
    assert pred(_mk_tx(merchant="Target")) is False


def test_numbers_compare_by_value_across_types():
    pred = compile_condition("transaction.amount === 75.5")
    assert pred(_mk_tx(amount=75.5)) is True
    assert pred(_mk_tx(amount=Decimal("75.50"))) is True
    assert pred(_mk_tx(amount=75)) is False


def test_mismatched_equality_is_false_not_an_error():
    pred = compile_condition('transaction.amount === "75.50"')
    assert pred(_mk_tx()) is False
    assert compile_condition('transaction.amount !== "75.50"')(_mk_tx()) is True


def test_ordering_on_non_numeric_runtime_value_is_a_fault():
    pred = compile_condition("transaction.amount > 10")
    with pytest.raises(RuleEvaluationError):
        pred(_mk_tx(amount="lots"))


def test_includes_is_case_sensitive():
    pred = compile_condition('transaction.merchant.includes("wal")')
    assert pred(_mk_tx()) is False
    assert compile_condition('transaction.merchant.includes("Wal")')(_mk_tx()) is True


def test_regex_search_and_flags():
    assert compile_condition("/^wal/i.test(transaction.merchant)")(_mk_tx()) is True
    assert compile_condition("/^wal/.test(transaction.merchant)")(_mk_tx()) is False
    assert compile_condition("/mar/.test(transaction.merchant)")(_mk_tx()) is True
    assert compile_condition(r"/a\/b/.test(transaction.account)")(_mk_tx(account="a/b")) is True


def test_helpers_inside_conditions():
    pred = compile_condition(
        "isWeekend(transaction.date) && month(transaction.date) === 10"
        " && year(transaction.date) === 2025 && getWeekNumber(transaction.date) === 40"
    )
    assert pred(_mk_tx()) is True
    assert pred(_mk_tx(date="2025-10-06T10:00:00Z")) is False


def test_missing_field_is_a_fault():
    pred = compile_condition('transaction.account === "Checking"')
    tx = _mk_tx()
    del tx["account"]
    with pytest.raises(RuleEvaluationError):
        pred(tx)


def test_or_short_circuits_before_a_faulting_operand():
    pred = compile_condition('transaction.merchant === "Walmart" || transaction.amount > 1')
    assert pred(_mk_tx(amount="not a number")) is True


# ---- Rejections --------------------------------------------------------------


@pytest.mark.parametrize(
    "condition",
    [
        "",
        "foo === 1",
        "transaction.payee === 1",
        "unknownHelper(transaction.date) === 1",
        'transaction.merchant.nonExistentMethod()',
        'transaction.merchant.startsWith("W")',
        "(transaction.amount > 1",
        "transaction.amount > 1)",
        'transaction.merchant == "Walmart"',
        'transaction.merchant != "Walmart"',
        'transaction.merchant = "Walmart"',
        '!(transaction.amount > 1)',
        'transaction.merchant > "A"',
        "dayOfWeek(transaction.merchant) === 1",
        "transaction.amount === 1 === 1",
        '/a/g.test(transaction.merchant)',
        '/a/ii.test(transaction.merchant)',
        '/(/.test(transaction.merchant)',
        '/a/.exec(transaction.merchant)',
        '/a/.test(transaction.amount)',
        'transaction.amount.includes("1")',
        'transaction.merchant.includes(1)',
        'new Function("return 1")',
        '"unterminated',
        "transaction.constructor",
        "transaction.merchant; 1",
    ],
)
def test_constructs_outside_the_language_are_rejected(condition):
    with pytest.raises(RuleCompileError):
        compile_condition(condition)


def test_compile_error_reports_position():
    with pytest.raises(RuleCompileError) as exc:
        compile_condition('transaction.merchant === "A" && bogus')
    assert exc.value.position == len('transaction.merchant === "A" && ')
    assert "bogus" in str(exc.value)


# ---- Nesting -----------------------------------------------------------------


@pytest.mark.parametrize(
    "condition",
    [
        "(" * (MAX_NESTING + 1) + "transaction.amount > 1" + ")" * (MAX_NESTING + 1),
        "(" * 2000 + "transaction.amount > 1" + ")" * 2000,
        "isWeekend(" * 500 + "transaction.date" + ")" * 500,
        "transaction.merchant" + ".includes(transaction.merchant" * 500 + ")" * 500,
    ],
    ids=["just-over", "parentheses", "helper-calls", "method-arguments"],
)
def test_excessive_nesting_is_a_compile_error(condition):
    with pytest.raises(RuleCompileError, match="nested too deeply"):
        compile_condition(condition)


def test_nesting_at_the_limit_compiles():
    depth = MAX_NESTING
    pred = compile_condition("(" * depth + "transaction.amount > 1" + ")" * depth)
    assert pred(_mk_tx()) is True


def test_long_or_chain_keeps_source_order_and_short_circuits():
    tree = parse_condition(" || ".join(['transaction.merchant === "X"'] * 2000))
    assert isinstance(tree, LogicalOr)
    terms = ['transaction.merchant === "X"'] * 2000 + ['transaction.merchant === "Walmart"']
    pred = compile_condition(" || ".join(terms))
    assert pred(_mk_tx()) is True
    assert pred(_mk_tx(merchant="Target")) is False
