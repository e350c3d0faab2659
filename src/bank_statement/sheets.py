"""Google Sheets integration for pushing exported statement data.

This module pushes the CSV export and the recipient-accounts table to a
Google Sheets spreadsheet using the gspread library and service account
authentication.

The spreadsheet must be shared with the ``client_email`` of the service
account (edit rights).
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from bank_statement.export import CSV_DELIMITER
from bank_statement.models import SheetsConfig, Transaction

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

ACCOUNTS_HEADER = ["Rachunek odbiorcy", "Kontrahent", "isPracownik", "isZarzad", "Mapowanie"]

ACCOUNT_COLUMN = "Rachunek odbiorcy"
EMPLOYEE_COLUMNS = ("isPracownik",)
BOARD_COLUMNS = ("isZarząd", "isZarzad")
TRUTHY_VALUES = frozenset({"true", "1", "tak", "t", "x", "yes"})

UPLOAD_MODES = ("replace", "append")


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


def _import_gspread():
    try:
        import gspread
        from google.oauth2.service_account import Credentials
    except ImportError as exc:
        raise ImportError(
            "Google Sheets integration requires gspread and google-auth. "
            "Install them with: pip install 'bank-statement[sheets]'"
        ) from exc
    return gspread, Credentials


def resolve_credentials_path(config: SheetsConfig, root: Path) -> Path:
    """Credentials path; relative paths are resolved against *root*."""
    creds_path = Path(config.credentials_file).expanduser()
    if not creds_path.is_absolute():
        creds_path = root / creds_path
    return creds_path


def open_spreadsheet(config: SheetsConfig, root: Path) -> Any:
    """Authenticate with the service account and open the spreadsheet.

    Raises:
        ImportError: If gspread or google-auth are not installed.
        FileNotFoundError: If the credentials file does not exist.
        ValueError: If no spreadsheet id is configured.
    """
    gspread, Credentials = _import_gspread()

    creds_path = resolve_credentials_path(config, root)
    if not creds_path.exists():
        raise FileNotFoundError(
            f"Google service account credentials not found: {creds_path}"
        )
    if not config.spreadsheet_id:
        raise ValueError("No spreadsheet id configured (sheets.spreadsheet_id)")

    credentials = Credentials.from_service_account_file(str(creds_path), scopes=SCOPES)
    client = gspread.authorize(credentials)
    return client.open_by_key(config.spreadsheet_id)


def open_worksheet(spreadsheet: Any, title: str, cols: int = 26) -> Any:
    """Find the worksheet named *title*, creating it if it does not exist."""
    gspread, _ = _import_gspread()
    try:
        return spreadsheet.worksheet(title)
    except gspread.exceptions.WorksheetNotFound:
        logger.info("Creating worksheet %r", title)
        return spreadsheet.add_worksheet(title=title, rows=1000, cols=cols)


def replace_values(worksheet: Any, values: list[list[str]]) -> int:
    """Clear the worksheet and write *values* from A1; returns rows written."""
    worksheet.clear()
    worksheet.update(values, value_input_option="RAW")
    return len(values)


def append_values(worksheet: Any, values: list[list[str]]) -> int:
    """Append *values* after the last non-empty row; returns rows written."""
    worksheet.append_rows(
        values, value_input_option="RAW", insert_data_option="INSERT_ROWS"
    )
    return len(values)


def read_values(spreadsheet: Any, a1_range: str) -> list[list[str]]:
    """Read a range such as ``"Rachunki_Mapa!A1:G"`` as rows of strings."""
    response = spreadsheet.values_get(a1_range)
    return [[str(cell) if cell is not None else "" for cell in row] for row in response.get("values", [])]


# ---------------------------------------------------------------------------
# Table builders
# ---------------------------------------------------------------------------


def read_csv_rows(path: Path) -> list[list[str]]:
    """Read a ``;``-delimited CSV export as rows of strings.

    Raises:
        ValueError: If the file has no rows.
    """
    with open(path, newline="", encoding="utf-8") as f:
        rows = [list(row) for row in csv.reader(f, delimiter=CSV_DELIMITER)]
    if not rows:
        raise ValueError(f"CSV file is empty: {path}")
    return rows


def build_accounts_table(transactions: Iterable[Transaction]) -> list[list[str]]:
    """Build the recipient-accounts table (header row first).

    One row per distinct ``(Rachunek odbiorcy, Kontrahent)`` pair, sorted by
    account then name.  A missing counterparty name is written as ``"-"``;
    the flag and mapping columns are left empty for manual editing.
    """
    pairs: set[tuple[str, str]] = set()
    for t in transactions:
        account = (t.description.get_first("rachunek odbiorcy") or "").strip()
        if not account:
            continue
        name = ((t.counterparty.name if t.counterparty is not None else None) or "").strip()
        pairs.add((account, name or "-"))

    rows = [list(ACCOUNTS_HEADER)]
    for account, name in sorted(pairs):
        rows.append([account, name, "", "", ""])
    return rows


def is_truthy(value: Any) -> bool:
    """Sheet flag parser: ``TRUE``, ``1``, ``tak``, ``t``, ``x``, ``yes``."""
    return str(value if value is not None else "").strip().lower() in TRUTHY_VALUES


def _find_column(header: list[str], names: Iterable[str]) -> int | None:
    stripped = [h.strip() for h in header]
    for name in names:
        if name in stripped:
            return stripped.index(name)
    return None


def apply_account_flags(
    rows: list[list[str]], mapping_rows: list[list[str]]
) -> list[list[str]]:
    """Set ``isPracownik``/``isZarząd`` from the account-map sheet.

    The mapping sheet has a header row; column A is the account, column C
    the employee flag and column E the board-member flag.  Matching CSV
    rows get ``"true"`` in the corresponding column; nothing is ever reset
    to false.  Returns a new list; *rows* is not modified.  If the CSV
    lacks any of the three columns the rows are returned unchanged.
    """
    values = [list(row) for row in rows]
    if not values or len(mapping_rows) <= 1:
        return values

    header = values[0]
    idx_account = _find_column(header, (ACCOUNT_COLUMN,))
    idx_employee = _find_column(header, EMPLOYEE_COLUMNS)
    idx_board = _find_column(header, BOARD_COLUMNS)
    if idx_account is None or idx_employee is None or idx_board is None:
        return values

    flags: dict[str, tuple[bool, bool]] = {}
    for row in mapping_rows[1:]:
        account = (row[0] if row else "").strip()
        if not account:
            continue
        employee = is_truthy(row[2]) if len(row) > 2 else False
        board = is_truthy(row[4]) if len(row) > 4 else False
        flags[account] = (employee, board)

    updated = 0
    for row in values[1:]:
        if idx_account >= len(row):
            continue
        found = flags.get(row[idx_account].strip())
        if found is None:
            continue
        employee, board = found
        width = max(idx_employee, idx_board) + 1
        if len(row) < width:
            row.extend([""] * (width - len(row)))
        if employee:
            row[idx_employee] = "true"
        if board:
            row[idx_board] = "true"
        updated += 1

    logger.info("Applied account flags to %d row(s)", updated)
    return values


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def upload_csv(
    csv_path: Path,
    config: SheetsConfig,
    root: Path,
    mode: str = "replace",
    include_header: bool = False,
    apply_account_map: bool = True,
) -> int:
    """Push a CSV export to the configured worksheet.

    This function:
    1. Reads the ``;``-delimited CSV
    2. Opens the spreadsheet and, if requested, reads the account map and
       applies the flag columns (a missing or unreadable map is logged
       and skipped)
    3. In ``append`` mode drops the header row unless *include_header*
    4. Replaces or appends the worksheet values

    Returns:
        The number of rows written.

    Raises:
        ValueError: On an unknown mode or when there is nothing to send.
    """
    if mode not in UPLOAD_MODES:
        raise ValueError(f"Unknown upload mode {mode!r} (expected replace or append)")

    values = read_csv_rows(csv_path)
    spreadsheet = open_spreadsheet(config, root)

    if apply_account_map:
        gspread, _ = _import_gspread()
        try:
            mapping = read_values(spreadsheet, config.account_map_range)
        except gspread.exceptions.GSpreadException as exc:
            logger.warning(
                "Could not read account map %r: %s", config.account_map_range, exc
            )
        else:
            values = apply_account_flags(values, mapping)

    if mode == "append" and not include_header:
        values = values[1:]
    if not values:
        raise ValueError(f"No rows to upload from {csv_path}")

    worksheet = open_worksheet(spreadsheet, config.worksheet_name)
    if mode == "append":
        return append_values(worksheet, values)
    return replace_values(worksheet, values)


def upload_accounts(
    transactions: Iterable[Transaction], config: SheetsConfig, root: Path
) -> int:
    """Replace the accounts worksheet with :func:`build_accounts_table`.

    Returns:
        The number of data rows written (excludes the header row).
    """
    values = build_accounts_table(transactions)
    spreadsheet = open_spreadsheet(config, root)
    worksheet = open_worksheet(spreadsheet, config.accounts_worksheet)
    replace_values(worksheet, values)
    return len(values) - 1
