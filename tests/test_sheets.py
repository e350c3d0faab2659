"""Tests for bank_statement.sheets -- table builders and upload commands.

The gspread client is never contacted: ``open_spreadsheet`` is patched to
return a MagicMock spreadsheet.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import gspread
import pytest

from bank_statement.models import SheetsConfig
from bank_statement.sheets import (
    ACCOUNTS_HEADER,
    apply_account_flags,
    build_accounts_table,
    is_truthy,
    open_spreadsheet,
    open_worksheet,
    read_csv_rows,
    resolve_credentials_path,
    upload_accounts,
    upload_csv,
)

CSV_TEXT = (
    "Data operacji;Rachunek odbiorcy;isPracownik;isZarząd\n"
    "2025-10-01;111;false;false\n"
    "2025-10-02;222;false;false\n"
)

MAPPING_ROWS = [
    ["Rachunek", "Nazwa", "Pracownik", "Uwagi", "Zarząd"],
    ["111", "Jan", "TRUE", "", ""],
    ["222", "Anna", "", "", "x"],
]


@pytest.fixture
def csv_file(tmp_path: Path) -> Path:
    path = tmp_path / "out.csv"
    path.write_text(CSV_TEXT, encoding="utf-8")
    return path


@pytest.fixture
def spreadsheet() -> MagicMock:
    """Spreadsheet mock with an existing worksheet and an account map."""
    sheet = MagicMock()
    sheet.values_get.return_value = {"values": MAPPING_ROWS}
    return sheet


# ---------------------------------------------------------------------------
# Table builders
# ---------------------------------------------------------------------------


class TestBuildAccountsTable:
    """Tests for the recipient-accounts table."""

    def test_distinct_pairs_sorted(self, sample_transactions):
        rows = build_accounts_table(sample_transactions)
        assert rows[0] == ACCOUNTS_HEADER
        accounts = [row[0] for row in rows[1:]]
        assert accounts == sorted(accounts)
        # Three AUTOPAY payments collapse into one row
        assert accounts.count("02102010260000190207153234") == 1
        assert all(row[2:] == ["", "", ""] for row in rows[1:])

    def test_income_has_no_recipient_account(self, make_txn):
        txn = make_txn("+10", "110", description="Rachunek nadawcy : 111 Nazwa nadawcy : Jan")
        assert build_accounts_table([txn]) == [ACCOUNTS_HEADER]

    def test_missing_name_is_dash(self, make_txn):
        txn = make_txn("-10", "90", description="Rachunek odbiorcy : 111 Tytuł : x")
        assert build_accounts_table([txn])[1] == ["111", "-", "", "", ""]


class TestAccountFlags:
    """Tests for applying the account-map sheet to CSV rows."""

    @pytest.mark.parametrize("value", ["TRUE", "1", "tak", " x ", "Yes", "t"])
    def test_truthy(self, value):
        assert is_truthy(value)

    @pytest.mark.parametrize("value", ["", None, "false", "0", "nie"])
    def test_falsy(self, value):
        assert not is_truthy(value)

    def test_flags_applied(self):
        rows = [line.split(";") for line in CSV_TEXT.splitlines()]
        updated = apply_account_flags(rows, MAPPING_ROWS)
        assert updated[1][2:] == ["true", "false"]
        assert updated[2][2:] == ["false", "true"]
        # Input rows are not modified
        assert rows[1][2] == "false"

    def test_missing_columns_leave_rows_unchanged(self):
        rows = [["Data operacji", "Kwota"], ["2025-10-01", "-1.00"]]
        assert apply_account_flags(rows, MAPPING_ROWS) == rows

    def test_header_only_mapping(self):
        rows = [line.split(";") for line in CSV_TEXT.splitlines()]
        assert apply_account_flags(rows, MAPPING_ROWS[:1]) == rows


class TestReadCsvRows:
    """Tests for reading the semicolon-delimited export."""

    def test_rows(self, csv_file):
        rows = read_csv_rows(csv_file)
        assert len(rows) == 3
        assert rows[1] == ["2025-10-01", "111", "false", "false"]

    def test_empty_file(self, tmp_path):
        empty = tmp_path / "empty.csv"
        empty.write_text("", encoding="utf-8")
        with pytest.raises(ValueError, match="CSV file is empty"):
            read_csv_rows(empty)


# ---------------------------------------------------------------------------
# Client helpers
# ---------------------------------------------------------------------------


class TestClient:
    """Tests for credential resolution and worksheet lookup."""

    def test_relative_credentials_resolved_against_root(self, tmp_path):
        config = SheetsConfig(credentials_file="keys/sa.json")
        assert resolve_credentials_path(config, tmp_path) == tmp_path / "keys" / "sa.json"

    def test_missing_credentials(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="credentials not found"):
            open_spreadsheet(SheetsConfig(spreadsheet_id="1AbC"), tmp_path)

    def test_missing_spreadsheet_id(self, tmp_path):
        (tmp_path / "service-account.json").write_text("{}", encoding="utf-8")
        with pytest.raises(ValueError, match="No spreadsheet id"):
            open_spreadsheet(SheetsConfig(), tmp_path)

    def test_worksheet_is_created_when_missing(self, spreadsheet):
        spreadsheet.worksheet.side_effect = gspread.exceptions.WorksheetNotFound("Historia")
        open_worksheet(spreadsheet, "Historia")
        spreadsheet.add_worksheet.assert_called_once_with(title="Historia", rows=1000, cols=26)

    def test_existing_worksheet(self, spreadsheet):
        assert open_worksheet(spreadsheet, "Historia") is spreadsheet.worksheet.return_value
        spreadsheet.add_worksheet.assert_not_called()


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


class TestUploadCsv:
    """Tests for pushing the CSV export."""

    @patch("bank_statement.sheets.open_spreadsheet")
    def test_replace(self, mock_open: MagicMock, spreadsheet, csv_file, tmp_path):
        mock_open.return_value = spreadsheet
        count = upload_csv(csv_file, SheetsConfig(spreadsheet_id="1AbC"), tmp_path)

        assert count == 3
        spreadsheet.values_get.assert_called_once_with("Rachunki_Mapa!A1:G")
        spreadsheet.worksheet.assert_called_once_with("Historia")
        worksheet = spreadsheet.worksheet.return_value
        worksheet.clear.assert_called_once()
        values = worksheet.update.call_args.args[0]
        assert values[0][0] == "Data operacji"
        assert values[1][2] == "true"
        assert values[2][3] == "true"

    @patch("bank_statement.sheets.open_spreadsheet")
    def test_append_drops_header(self, mock_open: MagicMock, spreadsheet, csv_file, tmp_path):
        mock_open.return_value = spreadsheet
        count = upload_csv(
            csv_file, SheetsConfig(), tmp_path, mode="append", apply_account_map=False
        )

        assert count == 2
        spreadsheet.values_get.assert_not_called()
        worksheet = spreadsheet.worksheet.return_value
        worksheet.clear.assert_not_called()
        values = worksheet.append_rows.call_args.args[0]
        assert values[0][0] == "2025-10-01"

    @patch("bank_statement.sheets.open_spreadsheet")
    def test_append_with_header(self, mock_open: MagicMock, spreadsheet, csv_file, tmp_path):
        mock_open.return_value = spreadsheet
        count = upload_csv(
            csv_file, SheetsConfig(), tmp_path,
            mode="append", include_header=True, apply_account_map=False,
        )
        assert count == 3

    @patch("bank_statement.sheets.open_spreadsheet")
    def test_unreadable_account_map_is_skipped(
        self, mock_open: MagicMock, spreadsheet, csv_file, tmp_path, caplog
    ):
        mock_open.return_value = spreadsheet
        spreadsheet.values_get.side_effect = gspread.exceptions.GSpreadException("no range")

        count = upload_csv(csv_file, SheetsConfig(), tmp_path)

        assert count == 3
        assert "Could not read account map" in caplog.text
        values = spreadsheet.worksheet.return_value.update.call_args.args[0]
        assert values[1][2] == "false"

    @patch("bank_statement.sheets.open_spreadsheet")
    def test_header_only_append_has_nothing_to_send(
        self, mock_open: MagicMock, spreadsheet, tmp_path
    ):
        mock_open.return_value = spreadsheet
        header_only = tmp_path / "header.csv"
        header_only.write_text("Data operacji;Kwota\n", encoding="utf-8")
        with pytest.raises(ValueError, match="No rows to upload"):
            upload_csv(header_only, SheetsConfig(), tmp_path, mode="append")

    def test_unknown_mode(self, csv_file, tmp_path):
        with pytest.raises(ValueError, match="Unknown upload mode"):
            upload_csv(csv_file, SheetsConfig(), tmp_path, mode="merge")


class TestUploadAccounts:
    """Tests for pushing the recipient-accounts table."""

    @patch("bank_statement.sheets.open_spreadsheet")
    def test_replaces_accounts_sheet(
        self, mock_open: MagicMock, spreadsheet, sample_transactions, tmp_path
    ):
        mock_open.return_value = spreadsheet
        count = upload_accounts(sample_transactions, SheetsConfig(), tmp_path)

        spreadsheet.worksheet.assert_called_once_with("Rachunki")
        values = spreadsheet.worksheet.return_value.update.call_args.args[0]
        assert values[0] == ACCOUNTS_HEADER
        assert count == len(values) - 1
