"""Tests for bank_statement.recurring -- recurring payee detection."""

from __future__ import annotations

from datetime import date

from bank_statement.models import Money
from bank_statement.recurring import find_recurring_payees


class TestFindRecurringPayees:
    """Tests for grouping by counterparty fingerprint."""

    def test_autopay_is_recurring(self, sample_transactions):
        payees = find_recurring_payees(sample_transactions)
        assert len(payees) == 1
        payee = payees[0]
        assert payee.name == "AUTOPAY SA"
        assert payee.account == "02102010260000190207153234"
        assert payee.count == 3
        assert payee.total_abs == Money(30300, "PLN")
        assert payee.first_date == date(2025, 9, 15)
        assert payee.last_date == date(2025, 10, 2)

    def test_min_count(self, sample_transactions):
        payees = find_recurring_payees(sample_transactions, min_count=1)
        assert [p.name for p in payees][0] == "AUTOPAY SA"
        assert {p.name for p in payees} == {"AUTOPAY SA", "Urząd Skarbowy"}
        assert find_recurring_payees(sample_transactions, min_count=4) == []

    def test_income_excluded_by_default(self, make_txn):
        desc = "Nazwa nadawcy : Jan Kowalski Tytuł : Zwrot"
        txns = [
            make_txn("+10", "110", day="2025-10-01", description=desc),
            make_txn("+20", "130", day="2025-10-05", description=desc),
        ]
        assert find_recurring_payees(txns) == []
        payees = find_recurring_payees(txns, expenses_only=False)
        assert payees[0].name == "Jan Kowalski"
        assert payees[0].count == 2

    def test_ordering_by_count_then_total(self, make_txn):
        a = "Nazwa odbiorcy : ALFA Tytuł : x"
        b = "Nazwa odbiorcy : BETA Tytuł : x"
        txns = [
            make_txn("-1", "99", day="2025-10-01", description=a),
            make_txn("-1", "98", day="2025-10-02", description=a),
            make_txn("-1", "97", day="2025-10-03", description=a),
            make_txn("-50", "47", day="2025-10-01", description=b),
            make_txn("-50", "-3", day="2025-10-02", description=b),
        ]
        assert [p.name for p in find_recurring_payees(txns)] == ["ALFA", "BETA"]
