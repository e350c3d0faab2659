"""Aggregate reports over normalized transactions.

- :func:`monthly_summary` -- income, expense and net per month.
- :func:`vat_summary` -- VAT totals per month, split by tax form.
- :func:`top_counterparties` -- counterparties ranked by absolute turnover.

Money is never summed across currencies: every report groups by currency
as well as by its own key, so a month with PLN and EUR operations yields
two rows.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from datetime import date
from itertools import groupby
from typing import Any

from bank_statement.models import (
    MonthlySummary,
    Money,
    TopCounterparty,
    Transaction,
    VatSummary,
)

UNKNOWN_TAX_FORM = "UNKNOWN"


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def monthly_summary(transactions: Iterable[Transaction]) -> list[MonthlySummary]:
    """Income, expense (as a positive amount) and net per ``YYYY-MM``, sorted."""
    totals: dict[tuple[str, str], tuple[Money, Money]] = {}
    for t in transactions:
        key = (month_key(t.operation_date), t.amount.currency)
        income, expense = totals.get(key, (Money.zero(key[1]), Money.zero(key[1])))
        if t.amount.minor > 0:
            income = income.add(t.amount)
        elif t.amount.minor < 0:
            expense = expense.add(t.amount.abs())
        totals[key] = (income, expense)

    return [
        MonthlySummary(month=month, income=income, expense=expense, net=income.subtract(expense))
        for (month, _currency), (income, expense) in sorted(totals.items())
    ]


def vat_summary(transactions: Iterable[Transaction]) -> list[VatSummary]:
    """Absolute VAT total per month, with per-tax-form subtotals.

    Only transactions with a VAT amount take part.  A missing tax form is
    reported as ``UNKNOWN``; form names are upper-cased.
    """
    totals: dict[tuple[str, str], Money] = {}
    by_form: dict[tuple[str, str], dict[str, Money]] = {}
    for t in transactions:
        vat = t.vat_info.vat_amount if t.vat_info is not None else None
        if vat is None:
            continue
        key = (month_key(t.operation_date), vat.currency)
        totals[key] = totals.get(key, Money.zero(vat.currency)).add(vat.abs())
        form = (t.vat_info.tax_form or UNKNOWN_TAX_FORM).upper()
        forms = by_form.setdefault(key, {})
        forms[form] = forms.get(form, Money.zero(vat.currency)).add(vat.abs())

    return [
        VatSummary(month=key[0], vat_total=total, by_tax_form=dict(by_form[key]))
        for key, total in sorted(totals.items())
    ]


def top_counterparties(
    transactions: Iterable[Transaction], limit: int = 10
) -> list[TopCounterparty]:
    """Counterparties ranked by absolute total, then by transaction count.

    Totals are only compared within one currency: rows are grouped by
    currency code (alphabetically) and *limit* applies to each currency.
    Transactions without a counterparty are ignored.  The name reported
    is the one seen on the first transaction of the group.
    """
    groups: dict[tuple[str, str], list[Transaction]] = {}
    for t in transactions:
        if t.counterparty is None:
            continue
        groups.setdefault((t.counterparty.fingerprint, t.amount.currency), []).append(t)

    rows: list[TopCounterparty] = []
    for (fingerprint, currency), txns in groups.items():
        total = Money.zero(currency)
        for t in txns:
            total = total.add(t.amount.abs())
        rows.append(
            TopCounterparty(
                fingerprint=fingerprint,
                name=txns[0].counterparty.name,
                count=len(txns),
                total_abs=total,
            )
        )

    rows.sort(key=lambda r: (r.total_abs.currency, -r.total_abs.minor, -r.count))
    ranked: list[TopCounterparty] = []
    for _, group in groupby(rows, key=lambda r: r.total_abs.currency):
        ranked.extend(list(group)[:limit])
    return ranked


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, Money):
        return value.to_display_string(True)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {k: _to_jsonable(v) for k, v in value.items()}
    return value


def report_to_json(rows: Iterable[Any]) -> list[dict[str, Any]]:
    """Render report rows as JSON-friendly dicts.

    Money becomes its display string (``"123.45 PLN"``) and dates become
    ISO strings.
    """
    return [
        {f.name: _to_jsonable(getattr(row, f.name)) for f in dataclasses.fields(row)}
        for row in rows
    ]
