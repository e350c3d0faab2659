"""Batch operations over normalized transactions: dedup and ordering.

Banks often report many operations with the same date in an order that
makes the running balance jump around.  :func:`sort_by_balance_chain`
restores a consistent order inside each day by chaining operations on
``start balance == previous end balance``, where
``start = ending_balance - amount``.

Chains are built per day and per currency.  Where the data does not form a
single clean chain (missing rows, cycles, repeated balances) the result is
still deterministic: ties are broken by ``dedup_hash`` and unchained rows
are appended in balance order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from bank_statement.models import StageResult, Transaction

logger = logging.getLogger(__name__)

# Extra walk steps allowed beyond the group size before a walk is cut off.
CHAIN_GUARD_SLACK = 5


def deduplicate(transactions: list[Transaction]) -> StageResult:
    """Remove duplicates by ``dedup_hash``, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[Transaction] = []
    dup_count = 0

    for txn in transactions:
        if txn.dedup_hash not in seen:
            seen.add(txn.dedup_hash)
            unique.append(txn)
        else:
            dup_count += 1

    warnings: list[str] = []
    if dup_count > 0:
        warnings.append(f"Removed {dup_count} duplicate transaction(s)")

    return StageResult(transactions=unique, warnings=warnings)


def sort_by_dates(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Stable sort by ``(operation_date, value_date, dedup_hash)``."""
    return sorted(
        transactions,
        key=lambda t: (t.operation_date, t.value_date, t.dedup_hash),
    )


def sort_by_balance_chain(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Order transactions by day, then along the balance chain within a day.

    Days are ascending by ``operation_date``.  Within a day, each currency
    is chained separately (see :func:`_chain_currency_group`), currencies in
    first-appearance order.  The resulting blocks come out in ascending
    head-balance order with the leftover block last; they are then stably
    sorted by the ``value_date`` of their first member, so head order only
    gives way to an earlier value date.  Members of a block never move
    relative to each other.

    Raises:
        CurrencyMismatchError: If a balance and its amount differ in currency.
    """
    by_day: dict = {}
    for txn in transactions:
        by_day.setdefault(txn.operation_date, []).append(txn)

    out: list[Transaction] = []
    for day in sorted(by_day):
        out.extend(_chain_within_day(by_day[day]))
    return out


def _chain_within_day(txns: list[Transaction]) -> list[Transaction]:
    if len(txns) <= 1:
        return list(txns)

    by_currency: dict[str, list[Transaction]] = {}
    for txn in txns:
        by_currency.setdefault(txn.ending_balance.currency, []).append(txn)

    blocks: list[list[Transaction]] = []
    for group in by_currency.values():
        blocks.extend(_chain_currency_group(group))

    blocks.sort(key=lambda block: block[0].value_date)
    return [txn for block in blocks for txn in block]


def _chain_currency_group(txns: list[Transaction]) -> list[list[Transaction]]:
    """Split one day's single-currency transactions into ordered blocks.

    1. Index transactions by start balance and collect the set of end
       balances.
    2. Heads are start balances that are nobody's end balance, ascending.
    3. From each head, walk ``start -> end -> next start`` picking the
       unused candidate with the smallest ``dedup_hash`` (input position
       breaks exact ties).  A walk is one block.
    4. Unused transactions (cycles, broken links) form one last block,
       ordered by ``(start, end, dedup_hash)``.
    """
    starts = [txn.start_balance.minor for txn in txns]
    ends = [txn.ending_balance.minor for txn in txns]

    by_start: dict[int, list[int]] = {}
    for idx, start in enumerate(starts):
        by_start.setdefault(start, []).append(idx)
    end_set = set(ends)

    heads = sorted(start for start in by_start if start not in end_set)
    used: set[int] = set()
    blocks: list[list[Transaction]] = []
    guard_limit = len(txns) + CHAIN_GUARD_SLACK

    for head in heads:
        block: list[Transaction] = []
        cursor = head
        for _ in range(guard_limit):
            candidates = [i for i in by_start.get(cursor, ()) if i not in used]
            if not candidates:
                break
            nxt = min(candidates, key=lambda i: (txns[i].dedup_hash, i))
            used.add(nxt)
            block.append(txns[nxt])
            cursor = ends[nxt]
        if block:
            blocks.append(block)

    remaining = [i for i in range(len(txns)) if i not in used]
    if remaining:
        logger.debug(
            "Balance chain left %d of %d transaction(s) unchained",
            len(remaining),
            len(txns),
        )
        remaining.sort(key=lambda i: (starts[i], ends[i], txns[i].dedup_hash))
        blocks.append([txns[i] for i in remaining])
    return blocks
