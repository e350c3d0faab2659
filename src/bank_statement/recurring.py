"""Recurring payee detection.

A payee is recurring when the same counterparty (by fingerprint) shows up
at least ``min_count`` times in a statement.  The fingerprint already folds
account, identifier and normalized name together, so spelling variations
of a name paid to the same account are grouped.

By default only expenses are considered: "payee" is meaningful for money
going out.
"""

from __future__ import annotations

from collections.abc import Iterable

from bank_statement.models import Money, RecurringPayee, Transaction

DEFAULT_MIN_COUNT = 2


def find_recurring_payees(
    transactions: Iterable[Transaction],
    min_count: int = DEFAULT_MIN_COUNT,
    expenses_only: bool = True,
) -> list[RecurringPayee]:
    """Group transactions by counterparty and keep the frequent ones.

    Args:
        transactions: Normalized transactions, in any order.
        min_count: Minimum number of transactions per payee.
        expenses_only: Consider only negative amounts.

    Returns:
        Recurring payees sorted by count descending, then by absolute total
        descending.  Name, account and id come from the earliest
        transaction of each group.
    """
    groups: dict[tuple[str, str], list[Transaction]] = {}
    for t in transactions:
        if expenses_only and not t.is_expense():
            continue
        if t.counterparty is None:
            continue
        groups.setdefault((t.counterparty.fingerprint, t.amount.currency), []).append(t)

    payees: list[RecurringPayee] = []
    for (fingerprint, currency), txns in groups.items():
        if len(txns) < min_count:
            continue
        txns = sorted(txns, key=lambda t: t.operation_date)
        total = Money.zero(currency)
        for t in txns:
            total = total.add(t.amount.abs())
        cp = txns[0].counterparty
        payees.append(
            RecurringPayee(
                fingerprint=fingerprint,
                name=cp.name,
                account=cp.account,
                id=cp.id,
                count=len(txns),
                total_abs=total,
                first_date=txns[0].operation_date,
                last_date=txns[-1].operation_date,
            )
        )

    payees.sort(key=lambda p: (-p.count, -p.total_abs.minor))
    return payees
