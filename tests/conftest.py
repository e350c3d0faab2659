"""Shared pytest fixtures for bank-statement tests.

Provides reusable fixtures for:
- Fixture file paths (the sample XML and HTML statements).
- make_txn: a factory that builds a fully classified Transaction from raw
  field strings, the same way the statement readers do.
- sample_transactions: a small realistic batch spanning two months, two
  counterparties, split payment and tax transfers.
- tmp_project_dir: a temporary project directory with config.toml.
"""

from __future__ import annotations

import shutil
from datetime import date
from pathlib import Path

import pytest

from bank_statement.config import initialize
from bank_statement.models import Money, Transaction
from bank_statement.normalize import build_transaction

# ---------------------------------------------------------------------------
# Path constants
# ---------------------------------------------------------------------------

FIXTURES_DIR = Path(__file__).parent / "fixtures"

AUTOPAY_DESCRIPTION = (
    "Rachunek odbiorcy : 02102010260000190207153234 "
    "Nazwa odbiorcy : AUTOPAY SA "
    "Tytuł : /OPT/X///// BPID:API73ZZKSK"
)


# ---------------------------------------------------------------------------
# Fixture file path helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def fixtures_dir() -> Path:
    """Path to the tests/fixtures/ directory."""
    return FIXTURES_DIR


@pytest.fixture
def statement_xml() -> Path:
    """Path to the sample account-history XML statement."""
    return FIXTURES_DIR / "statement.xml"


@pytest.fixture
def statement_html() -> Path:
    """Path to the sample HTML table statement."""
    return FIXTURES_DIR / "statement.html"


# ---------------------------------------------------------------------------
# Transaction factory
# ---------------------------------------------------------------------------


def _make_txn(
    amount: str,
    balance: str,
    day: str = "2025-10-02",
    value_day: str | None = None,
    type_: str = "Przelew z rachunku",
    description: str = "",
    currency: str = "PLN",
) -> Transaction:
    return build_transaction(
        operation_date=date.fromisoformat(day),
        value_date=date.fromisoformat(value_day or day),
        type_=type_,
        description_raw=description,
        amount=Money.parse(amount, currency),
        ending_balance=Money.parse(balance, currency),
    )


@pytest.fixture
def make_txn():
    """Factory building a Transaction from amount/balance strings.

    Usage: ``make_txn("-50.00", "950.00", day="2025-10-02", description=...)``.
    """
    return _make_txn


# ---------------------------------------------------------------------------
# sample_transactions -- realistic batch
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_transactions() -> list[Transaction]:
    """Six transactions across September and October 2025.

    - Two outgoing transfers to AUTOPAY SA (same account) in different months
    - A split-payment transfer with ``Kwota VAT`` to the same AUTOPAY account
    - A VAT-7 tax transfer
    - One incoming transfer from Jan Kowalski
    - One card payment without counterparty fields
    """
    return [
        _make_txn("-100.00", "900.00", day="2025-09-15", description=AUTOPAY_DESCRIPTION),
        _make_txn(
            "+250.00",
            "1150.00",
            day="2025-09-20",
            type_="Przelew na rachunek",
            description=(
                "Rachunek nadawcy : 61109010140000071219812874 "
                "Nazwa nadawcy : Jan Kowalski Tytuł : Zwrot"
            ),
        ),
        _make_txn("-80.00", "1070.00", day="2025-10-01", description=AUTOPAY_DESCRIPTION),
        _make_txn(
            "-123.00",
            "947.00",
            day="2025-10-02",
            description=(
                "Rachunek odbiorcy : 02102010260000190207153234 "
                "Nazwa odbiorcy : AUTOPAY SA Tytuł : Usługi "
                "Kwota VAT : 23,00 PLN "
                "Numer faktury VAT lub okres płatności zbiorczej : FV/16/2025"
            ),
        ),
        _make_txn(
            "-400.00",
            "547.00",
            day="2025-10-03",
            type_="Przelew podatkowy",
            description=(
                "Rachunek odbiorcy : 20101010100166262223000000 "
                "Nazwa odbiorcy : Urząd Skarbowy Symbol formularza : VAT-7 "
                "Okres płatności : 25M09 Kwota VAT : 400,00"
            ),
        ),
        _make_txn(
            "-95.80",
            "451.20",
            day="2025-10-04",
            type_="Płatność kartą",
            description="Numer karty : 425125******1234",
        ),
    ]


# ---------------------------------------------------------------------------
# tmp_project_dir -- temp directory with config.toml
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Initialized project directory holding a copy of the XML statement.

    The directory contains config.toml, input/statement.xml and output/.
    """
    initialize(tmp_path)
    shutil.copy2(FIXTURES_DIR / "statement.xml", tmp_path / "input" / "statement.xml")
    return tmp_path
