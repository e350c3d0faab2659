"""Assembly of :class:`Transaction` objects from raw statement fields.

Both statement readers funnel every row through :func:`build_transaction`,
so description parsing, extraction and classification are identical no
matter which document format the row came from.
"""

from __future__ import annotations

import re
from datetime import date

from bank_statement.classification import categorize, detect_split_payment, detect_vat_info
from bank_statement.counterparty import extract_counterparty
from bank_statement.description import (
    extract_card_info,
    extract_location_info,
    extract_reference_info,
    parse_description,
)
from bank_statement.models import Money, StatementParseError, Transaction

_YMD_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DMY_RE = re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})$")


def parse_statement_date(raw: str | None) -> date:
    """Parse a statement date in ``YYYY-MM-DD`` or ``DD.MM.YYYY`` form.

    Raises:
        StatementParseError: If the text is not a valid date in either form.
    """
    text = (raw or "").strip()
    m = _YMD_RE.match(text)
    if m:
        year, month, day = m.group(1), m.group(2), m.group(3)
    else:
        m = _DMY_RE.match(text)
        if not m:
            raise StatementParseError(f"Invalid date: {text!r}", snippet=text)
        day, month, year = m.group(1), m.group(2), m.group(3)
    try:
        return date(int(year), int(month), int(day))
    except ValueError as exc:
        raise StatementParseError(f"Invalid date: {text!r}", snippet=text) from exc


def build_transaction(
    operation_date: date,
    value_date: date,
    type_: str,
    description_raw: str,
    amount: Money,
    ending_balance: Money,
) -> Transaction:
    """Normalize one statement row into a :class:`Transaction`.

    Args:
        operation_date: Order date of the row.
        value_date: Execution/value date of the row.
        type_: Operation type text as written by the bank.
        description_raw: Narration text, entities not yet decoded.
        amount: Signed amount of the row.
        ending_balance: Balance after the row, in the same currency.

    Returns:
        The fully classified transaction.
    """
    currency = amount.currency
    desc = parse_description(description_raw)
    vat_info = detect_vat_info(type_, desc, currency)
    return Transaction(
        operation_date=operation_date,
        value_date=value_date,
        type=type_,
        description=desc,
        amount=amount,
        ending_balance=ending_balance,
        counterparty=extract_counterparty(desc, amount),
        vat_info=vat_info,
        split_payment=detect_split_payment(type_, amount, vat_info),
        location_info=extract_location_info(desc),
        card_info=extract_card_info(desc, currency),
        reference_info=extract_reference_info(desc),
        category=categorize(type_, amount, desc),
    )
