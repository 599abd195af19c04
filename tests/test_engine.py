from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

from transaction_rules import InMemoryStore, Rule, Transaction, reapply_all, reapply_rules


def _mk_transactions() -> list[Transaction]:
    # Mirrors a small seed data set: two Walmart purchases on a Saturday,
    # a coffee, a hardware store visit and a fuel stop.
    rows = [
        ("Walmart", "75.50", "2025-10-04T10:00:00Z", "Checking", "Groceries"),
        ("Walmart", "45.00", "2025-10-04T11:00:00Z", "Savings", "Groceries"),
        ("Starbucks", "5.75", "2025-10-03T08:30:00Z", "Checking", "Food"),
        ("Home Depot", "120.00", "2025-10-02T14:00:00Z", "Checking", "Home Improvement"),
        ("Shell", "55.25", "2025-10-05T18:00:00Z", "Credit Card", "Gas"),
    ]
    return [
        Transaction(
            id=f"t{i}",
            merchant=m,
            amount=Decimal(a),
            date=datetime.fromisoformat(d),
            account=acct,
            category=cat,
        )
        for i, (m, a, d, acct, cat) in enumerate(rows, start=1)
    ]


def _mk_rules(*definitions: str) -> list[Rule]:
    return [Rule(id=f"r{i}", rule_definition=d) for i, d in enumerate(definitions, start=1)]


def test_reapply_updates_only_changed_transactions():
    txs = _mk_transactions()
    rules = _mk_rules(
        'transaction.merchant === "Walmart" && transaction.amount < 80'
        ' && dayOfWeek(transaction.date) === 6 && transaction.account === "Savings"'
        ' -> "Hardware"',
        'transaction.merchant === "Starbucks" -> "Coffee"',
        'transaction.merchant === "Shell" -> "Gas"',
    )

    result = reapply_all(txs, rules)

    assert result.updated_count == 2
    assert result.changed_ids == ("t2", "t3")
    assert result.message == "Re-categorized 2 transactions."
    assert [t.category for t in txs] == [
        "Groceries",
        "Hardware",
        "Coffee",
        "Home Improvement",
        "Gas",
    ]


def test_second_run_is_idempotent():
    txs = _mk_transactions()
    rules = _mk_rules('transaction.merchant.includes("Wal") -> "Shopping"')
    assert reapply_all(txs, rules).updated_count == 2
    assert reapply_all(txs, rules).updated_count == 0


def test_first_match_wins():
    txs = _mk_transactions()
    rules = _mk_rules(
        'transaction.merchant === "Walmart" -> "First"',
        'transaction.merchant.includes("Wal") -> "Second"',
    )
    reapply_all(txs, rules)
    assert {t.category for t in txs if t.merchant == "Walmart"} == {"First"}


def test_match_with_same_category_still_stops_the_scan():
    txs = _mk_transactions()
    rules = _mk_rules(
        'transaction.merchant === "Shell" -> "Gas"',
        'transaction.merchant === "Shell" -> "Fuel"',
    )
    result = reapply_all(txs, rules)
    assert result.updated_count == 0
    assert txs[4].category == "Gas"


def test_broken_rules_do_not_block_the_batch():
    txs = _mk_transactions()
    rules = _mk_rules(
        'transaction.merchant === "Walmart" "No Arrow"',
        'transaction.merchant.nonExistentMethod() -> "Broken"',
        'transaction.merchant === -> "Broken"',
        'transaction.amount > 100 -> "Big"',
    )
    result = reapply_all(txs, rules)
    assert result.changed_ids == ("t4",)
    assert txs[3].category == "Big"


def test_unmatched_transactions_are_left_alone():
    txs = _mk_transactions()
    result = reapply_all(txs, _mk_rules('transaction.merchant === "Nobody" -> "X"'))
    assert result.updated_count == 0
    assert [t.category for t in txs][0] == "Groceries"


def test_mapping_records_are_updated_in_place():
    records = [
        {"id": "a", "merchant": "Walmart", "amount": 10, "date": "2025-10-04", "account": "C"},
        {"id": "b", "merchant": "Target", "amount": 10, "date": "2025-10-04", "account": "C"},
    ]
    result = reapply_all(records, _mk_rules('transaction.merchant === "Walmart" -> "Shopping"'))
    assert result.changed_ids == ("a",)
    assert records[0]["category"] == "Shopping"
    assert "category" not in records[1]


def test_structured_rules_use_their_new_category():
    txs = _mk_transactions()
    rules = [
        Rule(
            rule_definition={
                "operator": "contains",
                "field": "transaction.merchant",
                "value": "Depot",
            },
            new_category="DIY",
        ),
        Rule(rule_definition={"operator": "==", "field": "transaction.merchant", "value": "Shell"}),
    ]
    result = reapply_all(txs, rules)
    assert result.changed_ids == ("t4",)


@pytest.mark.parametrize("workers", [2, 4, 32])
def test_parallel_run_matches_sequential_run(workers):
    rules = _mk_rules(
        'transaction.amount > 100 -> "Big"',
        'isWeekend(transaction.date) -> "Weekend"',
        '/^s/i.test(transaction.merchant) -> "S"',
    )
    sequential = _mk_transactions()
    parallel = _mk_transactions()

    seq_result = reapply_all(sequential, rules)
    par_result = reapply_all(parallel, rules, max_workers=workers)

    assert par_result == seq_result
    assert [t.category for t in parallel] == [t.category for t in sequential]


def test_reapply_rules_saves_changed_transactions():
    store = InMemoryStore()
    when = "2025-10-04T11:00:00Z"
    store.add_transaction(merchant="Walmart", amount="45.00", date=when, account="Savings")
    store.add_transaction(merchant="Target", amount="9.99", date=when, account="Savings")
    store.add_rule('transaction.merchant === "Walmart" -> "Shopping"')

    saved: list[str] = []
    real_save = store.save_transaction

    def _spy(tx):
        saved.append(tx.id)
        real_save(tx)

    store.save_transaction = _spy  # type: ignore[method-assign]

    result = reapply_rules(store)

    assert result.updated_count == 1
    assert saved == list(result.changed_ids)
    assert [t.category for t in store.list_transactions()] == ["Shopping", "Uncategorized"]
    assert reapply_rules(store).updated_count == 0


def test_deeply_nested_rule_does_not_abort_the_batch():
    txs = _mk_transactions()
    deep = "(" * 1000 + 'transaction.merchant === "Shell"' + ")" * 1000
    rules = _mk_rules(f'{deep} -> "Deep"', 'transaction.amount > 100 -> "Big"')
    result = reapply_all(txs, rules)
    assert result.changed_ids == ("t4",)
    assert txs[4].category == "Gas"


def test_rules_may_be_plain_mappings():
    txs = _mk_transactions()
    rules = [
        {"id": "m1", "ruleDefinition": 'transaction.merchant === "Starbucks" -> "Coffee"'},
        {"id": "m2"},
        None,
    ]
    result = reapply_all(txs, rules)  # type: ignore[arg-type]
    assert result.changed_ids == ("t3",)
    assert txs[2].category == "Coffee"
