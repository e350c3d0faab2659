"""Tests for the statement readers and the parser registry.

Verifies that each reader correctly:
- Extracts dates, type, description, amount and balance per row
- Resolves currency and statement metadata
- Raises on broken documents and, in strict mode, on the first bad row
- Collects row errors with their location in best-effort mode
"""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from bank_statement.models import Money, StatementParseError, TransactionCategory
from bank_statement.parsers import PARSERS, detect_format, get_parser, parse_statement
from bank_statement.parsers import html_statement, xml_statement

# ---------------------------------------------------------------------------
# Inline documents
# ---------------------------------------------------------------------------

XML_WITH_BAD_ROW = """<?xml version="1.0" encoding="UTF-8"?>
<account-history>
  <operations>
    <operation>
      <order-date>2025-13-45</order-date>
      <exec-date>2025-10-02</exec-date>
      <type>Przelew z rachunku</type>
      <description>Tytuł : zła data</description>
      <amount curr="PLN">-1.00</amount>
      <ending-balance curr="PLN">+99.00</ending-balance>
    </operation>
    <operation>
      <order-date>2025-10-02</order-date>
      <exec-date>2025-10-02</exec-date>
      <type>Przelew z rachunku</type>
      <description>Tytuł : ok</description>
      <amount curr="EUR">-2.00</amount>
      <ending-balance>+97.00</ending-balance>
    </operation>
    <operation>
      <order-date>2025-10-02</order-date>
      <exec-date>2025-10-02</exec-date>
      <type>Przelew z rachunku</type>
      <description>Tytuł : brak kwoty</description>
      <amount curr="PLN"></amount>
      <ending-balance curr="PLN">+97.00</ending-balance>
    </operation>
  </operations>
</account-history>
"""

HTML_WITH_BAD_ROW = """<table>
<tr><th>Data</th><th>Typ</th><th>Opis</th><th>Kwota</th><th>Saldo</th></tr>
<tr><td>2025/10/01</td><td>Przelew</td><td>Tytuł : x</td><td>-1,00</td><td>9,00</td></tr>
<tr><td>2025-10-02</td><td>Przelew</td><td>Tytuł : y</td><td>-2,00 EUR</td><td></td></tr>
</table>
"""


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------


class TestXmlParser:
    """Tests for the account-history XML reader."""

    @pytest.fixture
    def result(self, statement_xml: Path):
        return xml_statement.parse(statement_xml.read_text(encoding="utf-8"))

    def test_row_count_and_document_order(self, result):
        assert len(result.transactions) == 7
        assert result.transactions[0].amount == Money(-12300, "PLN")
        assert result.transactions[-1].amount == Money(-1000, "PLN")
        assert result.errors == []

    def test_meta(self, result):
        assert result.meta.source_format == "xml"
        assert result.meta.account == "PL61109010140000071219812874"
        assert result.meta.date_since == "2025-10-01"
        assert result.meta.date_to == "2025-10-31"

    def test_split_payment_row(self, result):
        txn = result.transactions[0]
        assert txn.operation_date == date(2025, 10, 2)
        assert txn.type == "Przelew z rachunku"
        assert txn.ending_balance == Money(337700, "PLN")
        assert txn.counterparty.name == "AUTOPAY SA"
        assert txn.counterparty.account == "02102010260000190207153234"
        assert txn.counterparty.id == "5252344078"
        assert txn.counterparty.address == "ul. Powstańców 1 Sopot"
        assert txn.vat_info.vat_amount == Money(2300, "PLN")
        assert txn.vat_info.invoice_number == "FV/16/2025"
        assert txn.split_payment is True
        assert txn.category == TransactionCategory.TRANSFER_OUT

    def test_card_row(self, result):
        txn = result.transactions[1]
        assert txn.category == TransactionCategory.CARD_PAYMENT
        assert txn.counterparty is None
        assert txn.location_info.city == "WARSZAWA"
        assert txn.location_info.address == "ŻABKA Z1234"
        assert txn.card_info.original_amount == Money(9580, "PLN")
        assert txn.card_info.operation_date == date(2025, 10, 1)

    def test_incoming_row(self, result):
        txn = result.transactions[2]
        assert txn.category == TransactionCategory.TRANSFER_IN
        assert txn.counterparty.name == "Jan Kowalski"
        assert txn.counterparty.account == "61109010140000071219812874"
        assert txn.vat_info is None

    def test_tax_row(self, result):
        txn = result.transactions[3]
        assert txn.category == TransactionCategory.TAX
        assert txn.vat_info.tax_form == "VAT-7"
        assert txn.vat_info.payment_period == "25M09"
        assert txn.counterparty.id == "5260250274"
        assert txn.split_payment is False

    def test_zus_fee_and_cash_rows(self, result):
        categories = [t.category for t in result.transactions[4:]]
        assert categories == [
            TransactionCategory.ZUS,
            TransactionCategory.CASH,
            TransactionCategory.FEES,
        ]
        assert result.transactions[5].reference_info.operation_id == "00000012345678"

    def test_strict_mode_raises_first_bad_row(self):
        with pytest.raises(StatementParseError) as exc_info:
            xml_statement.parse(XML_WITH_BAD_ROW)
        assert exc_info.value.path == "operations.operation[0]"
        assert "Invalid date" in str(exc_info.value)

    def test_best_effort_collects_errors(self):
        result = xml_statement.parse(XML_WITH_BAD_ROW, best_effort=True)
        assert len(result.transactions) == 1
        assert [f.path for f in result.failures] == [
            "operations.operation[0]",
            "operations.operation[2]",
        ]
        assert len(result.errors) == 2
        assert "Missing value in <amount>" in result.errors[1]

    def test_balance_currency_falls_back_to_amount(self):
        result = xml_statement.parse(XML_WITH_BAD_ROW, best_effort=True)
        assert result.transactions[0].ending_balance == Money(9700, "EUR")

    def test_malformed_xml(self):
        with pytest.raises(StatementParseError, match="Could not parse XML"):
            xml_statement.parse("<account-history><operations>")

    def test_wrong_root(self):
        with pytest.raises(StatementParseError, match="not an account-history"):
            xml_statement.parse("<bank><operations/></bank>")

    def test_empty_operations(self):
        result = xml_statement.parse("<account-history><operations/></account-history>")
        assert result.transactions == []
        assert result.meta.account is None


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------


class TestHtmlParser:
    """Tests for the heuristic HTML table reader."""

    @pytest.fixture
    def result(self, statement_html: Path):
        return html_statement.parse(statement_html.read_text(encoding="utf-8"))

    def test_finds_transaction_table(self, result):
        assert len(result.transactions) == 2
        assert result.meta.source_format == "html"

    def test_incoming_row(self, result):
        txn = result.transactions[0]
        assert txn.operation_date == date(2025, 10, 1)
        assert txn.amount == Money(100000, "PLN")
        assert txn.ending_balance == Money(500000, "PLN")
        assert txn.counterparty.name == "Firma & Syn Sp. z o.o."
        assert txn.description.get_first("tytul") == "Zapłata za FV/1/2025"
        assert txn.category == TransactionCategory.TRANSFER_IN

    def test_card_row_with_currency_in_amount(self, result):
        txn = result.transactions[1]
        assert txn.value_date == date(2025, 10, 2)
        assert txn.amount == Money(-5000, "PLN")
        assert txn.ending_balance == Money(495000, "PLN")
        assert txn.location_info.city == "GDANSK"
        assert txn.description.items[1].kind == "section"

    def test_no_table(self):
        with pytest.raises(StatementParseError, match="No transaction table"):
            html_statement.parse("<html><body><p>pusto</p></body></html>")

    def test_table_without_required_headers(self):
        text = "<table><tr><th>Data</th><th>Kwota</th></tr><tr><td>x</td><td>1</td></tr></table>"
        with pytest.raises(StatementParseError, match="No transaction table"):
            html_statement.parse(text)

    def test_strict_mode_raises(self):
        with pytest.raises(StatementParseError) as exc_info:
            html_statement.parse(HTML_WITH_BAD_ROW)
        assert exc_info.value.path == "table.row[0]"

    def test_best_effort(self):
        result = html_statement.parse(HTML_WITH_BAD_ROW, best_effort=True)
        assert len(result.transactions) == 1
        assert result.failures[0].path == "table.row[0]"
        txn = result.transactions[0]
        assert txn.amount == Money(-200, "EUR")
        assert txn.ending_balance == Money(0, "EUR")

    @pytest.mark.parametrize(
        "header, expected",
        [("Data  operacji", "dataoperacji"), ("Kwóta", "kwota"), ("Saldo po", "saldopo")],
    )
    def test_normalize_header(self, header, expected):
        assert html_statement.normalize_header(header) == expected


# ---------------------------------------------------------------------------
# Registry and format detection
# ---------------------------------------------------------------------------


class TestRegistry:
    """Tests for parser lookup and format sniffing."""

    def test_registered_parsers(self):
        assert set(PARSERS) == {"xml", "html"}
        assert get_parser("xml") is xml_statement.parse

    def test_unknown_parser(self):
        with pytest.raises(KeyError):
            get_parser("mt940")

    @pytest.mark.parametrize(
        "text, expected",
        [
            ('<?xml version="1.0"?><account-history/>', "xml"),
            ("  <account-history></account-history>", "xml"),
            ("<!DOCTYPE html><html><body></body></html>", "html"),
            ("<TABLE><tr><td>1</td></tr></TABLE>", "html"),
        ],
    )
    def test_detect_format(self, text, expected):
        assert detect_format(text) == expected

    def test_detect_format_unknown(self):
        with pytest.raises(StatementParseError, match="Unrecognized input format"):
            detect_format("Data;Kwota\n2025-10-01;-1,00")

    def test_parse_statement_dispatches(self, statement_html: Path):
        result = parse_statement(statement_html.read_text(encoding="utf-8"))
        assert result.meta.source_format == "html"
