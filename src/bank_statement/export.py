"""JSON/CSV export writers and processing summary printer.

- :func:`export_json` writes the full transaction model in a JSON-friendly
  shape (see :func:`transaction_to_dict`).
- :func:`export_csv` writes a narrow, ``;``-delimited sheet with Polish
  column titles, meant for spreadsheet import.  Descriptions routinely
  contain commas (``"16.948,96 , 200 ZŁ"``), hence the semicolon.
- :func:`print_summary` prints a human-readable processing summary to
  stdout.
"""

from __future__ import annotations

import csv
import json
import logging
from collections import Counter
from pathlib import Path
from typing import Any

from bank_statement.models import Money, PipelineResult, Transaction

logger = logging.getLogger(__name__)

CSV_DELIMITER = ";"

# Fixed output column order.
CSV_COLUMNS = [
    "Data operacji",
    "Data waluty",
    "Rodzaj",
    "Typ",
    "Kategoria",
    "Kwota",
    "Saldo po",
    "Kontrahent",
    "Rachunek odbiorcy",
    "Split payment",
    "Kwota VAT",
    "Formularz",
    "Okres płatności",
    "Numer faktury",
    "Miesiąc wystawienia faktury",
    "isVat",
    "isFaktura",
    "isPracownik",
    "isZarząd",
    "Przeznaczenie",
    "Inwestycja",
    "Link",
    "Uwagi",
    "Opis",
]


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def money_to_dict(money: Money | None) -> dict[str, Any] | None:
    if money is None:
        return None
    return {
        "currency": money.currency,
        "minor": str(money.minor),
        "minor_units": money.minor_units,
        "amount": money.to_display_string(False),
    }


def transaction_to_dict(t: Transaction) -> dict[str, Any]:
    """Convert a transaction into plain JSON-serializable data.

    Dates become ISO strings, money becomes a dict with the minor amount as
    a decimal string (so no precision is lost in JSON numbers), and absent
    sub-objects become ``None``.
    """
    cp = t.counterparty
    vat = t.vat_info
    loc = t.location_info
    card = t.card_info
    ref = t.reference_info
    return {
        "operation_date": t.operation_date.isoformat(),
        "value_date": t.value_date.isoformat(),
        "type": t.type,
        "description": {
            "raw": t.description.raw,
            "fields": {k: list(v) for k, v in t.description.fields.items()},
            "items": [
                {"kind": item.kind, "key": item.key, "value": item.value, "title": item.title}
                for item in t.description.items
            ],
        },
        "amount": money_to_dict(t.amount),
        "ending_balance": money_to_dict(t.ending_balance),
        "counterparty": (
            {
                "name": cp.name,
                "account": cp.account,
                "id": cp.id,
                "address": cp.address,
                "fingerprint": cp.fingerprint,
            }
            if cp is not None
            else None
        ),
        "vat_info": (
            {
                "vat_amount": money_to_dict(vat.vat_amount),
                "invoice_number": vat.invoice_number,
                "tax_form": vat.tax_form,
                "payment_period": vat.payment_period,
            }
            if vat is not None
            else None
        ),
        "split_payment": t.split_payment,
        "location_info": (
            {"address": loc.address, "city": loc.city, "country": loc.country}
            if loc is not None
            else None
        ),
        "card_info": (
            {
                "card_number_masked": card.card_number_masked,
                "operation_date": (
                    card.operation_date.isoformat() if card.operation_date else None
                ),
                "original_amount": money_to_dict(card.original_amount),
            }
            if card is not None
            else None
        ),
        "reference_info": (
            {
                "reference_number": ref.reference_number,
                "own_reference": ref.own_reference,
                "phone_number": ref.phone_number,
                "operation_id": ref.operation_id,
            }
            if ref is not None
            else None
        ),
        "category": t.category.value,
        "dedup_hash": t.dedup_hash,
    }


def export_json(path: str | Path, transactions: list[Transaction]) -> Path:
    """Write *transactions* as a pretty-printed JSON array; returns the path."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = [transaction_to_dict(t) for t in transactions]
    output_path.write_text(
        json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8"
    )
    logger.info("Wrote %d transaction(s) to %s", len(transactions), output_path)
    return output_path


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def rodzaj(t: Transaction) -> str:
    """Value of the ``Rodzaj`` column.

    ``"vat -"``/``"vat +"`` for a VAT-only movement (the amount equals the
    VAT amount, as on the VAT leg of a split payment), otherwise
    ``"koszt"``/``"przychód"`` by the sign of the amount.
    """
    vat_amount = t.vat_info.vat_amount if t.vat_info is not None else None
    if has_vat(t) and abs(t.amount.minor) == abs(vat_amount.minor):
        return "vat -" if t.amount.is_negative() else "vat +"
    return "koszt" if t.amount.is_negative() else "przychód"


def has_vat(t: Transaction) -> bool:
    vat_amount = t.vat_info.vat_amount if t.vat_info is not None else None
    return vat_amount is not None and not vat_amount.is_zero()


def recipient_account(t: Transaction) -> str:
    """``Rachunek odbiorcy`` as written in the description, or ``"-"``."""
    return t.description.get_first("rachunek odbiorcy") or "-"


def transaction_to_csv_row(t: Transaction) -> list[str]:
    vat = t.vat_info
    vat_amount = vat.vat_amount if vat is not None else None
    return [
        t.operation_date.isoformat(),
        t.value_date.isoformat(),
        rodzaj(t),
        t.type,
        t.category.value,
        t.amount.to_display_string(False),
        t.ending_balance.to_display_string(False),
        (t.counterparty.name if t.counterparty is not None else None) or "",
        recipient_account(t),
        str(t.split_payment).lower(),
        vat_amount.to_display_string(False) if vat_amount is not None else "",
        (vat.tax_form if vat is not None else None) or "",
        (vat.payment_period if vat is not None else None) or "",
        (vat.invoice_number if vat is not None else None) or "",
        "-",
        str(has_vat(t)).lower(),
        "false",
        "false",
        "false",
        "",
        "",
        "",
        "",
        t.description.raw,
    ]


def export_csv(path: str | Path, transactions: list[Transaction]) -> Path:
    """Write the ``;``-delimited CSV sheet; returns the path.

    Fields containing the delimiter, a quote or a line break are quoted,
    with embedded quotes doubled.
    """
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, delimiter=CSV_DELIMITER, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)
        for txn in transactions:
            writer.writerow(transaction_to_csv_row(txn))
    logger.info("Wrote %d transaction(s) to %s", len(transactions), output_path)
    return output_path


def guess_format(path: str | Path, explicit: str | None = None) -> str:
    """Return *explicit* if given, else ``"csv"`` for ``.csv`` paths, else ``"json"``."""
    if explicit:
        return explicit.lower()
    return "csv" if Path(path).suffix.lower() == ".csv" else "json"


def export(path: str | Path, transactions: list[Transaction], fmt: str | None = None) -> Path:
    """Export in the format given by *fmt* or guessed from the file extension.

    Raises:
        ValueError: If the format is not ``json`` or ``csv``.
    """
    resolved = guess_format(path, fmt)
    if resolved == "csv":
        return export_csv(path, transactions)
    if resolved == "json":
        return export_json(path, transactions)
    raise ValueError(f"Unsupported export format: {fmt!r}")


# ---------------------------------------------------------------------------
# Summary printer
# ---------------------------------------------------------------------------


def print_summary(pipeline_result: PipelineResult) -> None:
    """Print a human-readable processing summary to stdout.

    The summary includes the statement account and period (when known),
    the transaction count, income and expense counts, a category
    breakdown, and any warnings and errors.
    """
    txns = pipeline_result.transactions
    meta = pipeline_result.meta

    category_counts: Counter[str] = Counter(t.category.value for t in txns)
    income_count = sum(1 for t in txns if t.is_income())
    expense_count = sum(1 for t in txns if t.is_expense())
    split_count = sum(1 for t in txns if t.split_payment)

    print()
    print("== Processing Summary ==")
    if meta is not None:
        print(f"Format:   {meta.source_format}")
        if meta.account:
            print(f"Account:  {meta.account}")
        if meta.date_since or meta.date_to:
            print(f"Period:   {meta.date_since or '?'} .. {meta.date_to or '?'}")
    print(f"Total:    {len(txns)} transactions ({income_count} income, {expense_count} expense)")
    print(f"Split payment: {split_count}")

    if category_counts:
        print()
        print("By category:")
        for category, count in category_counts.most_common():
            print(f"  {category + ':':<15} {count}")

    if pipeline_result.warnings:
        print()
        print(f"Warnings: {len(pipeline_result.warnings)}")
        for w in pipeline_result.warnings:
            print(f"  - {w}")

    if pipeline_result.errors:
        print()
        print(f"Errors: {len(pipeline_result.errors)}")
        for e in pipeline_result.errors:
            print(f"  - {e}")

    print()
