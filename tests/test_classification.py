"""Tests for bank_statement.classification -- VAT, split payment and categories."""

from __future__ import annotations

import pytest

from bank_statement.classification import (
    DEFAULT_RULES,
    CategoryRule,
    categorize,
    classify_invoice_field,
    detect_split_payment,
    detect_vat_info,
)
from bank_statement.description import parse_description
from bank_statement.models import Money, ParsedDescription, TransactionCategory, VatInfo

EMPTY = ParsedDescription(raw="")


# ---------------------------------------------------------------------------
# Invoice field and VAT info
# ---------------------------------------------------------------------------


class TestClassifyInvoiceField:
    """Tests for splitting the invoice-number-or-period field."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("FV/16/2025", ("FV/16/2025", None)),
            ("Faktura 12", ("Faktura 12", None)),
            ("12/2025", (None, "12/2025")),
            ("25M10", (None, "25M10")),
            ("123/45/6", ("123/45/6", None)),
            ("A-17", ("A-17", None)),
            ("2025", (None, None)),
            ("", (None, None)),
            (None, (None, None)),
        ],
    )
    def test_classification(self, value, expected):
        assert classify_invoice_field(value) == expected


class TestDetectVatInfo:
    """Tests for collecting VAT details from a description."""

    def test_split_payment_fields(self):
        desc = parse_description(
            "Tytuł : Usługi Kwota VAT : 23,00 PLN "
            "Numer faktury VAT lub okres płatności zbiorczej : FV/16/2025"
        )
        vat = detect_vat_info("Przelew z rachunku", desc, "PLN")
        assert vat.vat_amount == Money(2300, "PLN")
        assert vat.invoice_number == "FV/16/2025"
        assert vat.payment_period is None

    def test_tax_transfer_fields(self):
        desc = parse_description("Symbol formularza : PIT-4 Okres płatności : 25M09")
        vat = detect_vat_info("Przelew podatkowy", desc, "PLN")
        assert vat.tax_form == "PIT-4"
        assert vat.payment_period == "25M09"
        assert vat.vat_amount is None

    def test_tax_form_from_title(self):
        desc = parse_description("Tytuł : deklaracja vat-7 za wrzesień")
        assert detect_vat_info("Przelew", desc, "PLN").tax_form == "VAT-7"

    def test_period_from_invoice_field(self):
        desc = parse_description(
            "Numer faktury VAT lub okres płatności zbiorczej : 09/2025"
        )
        vat = detect_vat_info("Przelew", desc, "PLN")
        assert vat.payment_period == "09/2025"
        assert vat.invoice_number is None

    def test_vat_amount_defaults_to_statement_currency(self):
        desc = parse_description("Kwota VAT : 4,60")
        assert detect_vat_info("Przelew", desc, "EUR").vat_amount == Money(460, "EUR")

    def test_nothing_found_is_none(self):
        desc = parse_description("Tytuł : zakupy")
        assert detect_vat_info("Przelew", desc, "PLN") is None


class TestDetectSplitPayment:
    """Tests for the split payment (MPP) flag."""

    VAT = VatInfo(vat_amount=Money(2300, "PLN"))

    def test_outgoing_transfer_with_vat(self):
        assert detect_split_payment("Przelew z rachunku", Money(-12300, "PLN"), self.VAT)

    def test_incoming_transfer_is_not_split(self):
        assert not detect_split_payment("Przelew na rachunek", Money(12300, "PLN"), self.VAT)

    def test_card_payment_is_not_split(self):
        assert not detect_split_payment("Płatność kartą", Money(-12300, "PLN"), self.VAT)

    def test_no_vat_amount(self):
        vat = VatInfo(tax_form="VAT-7")
        assert not detect_split_payment("Przelew podatkowy", Money(-100, "PLN"), vat)
        assert not detect_split_payment("Przelew", Money(-100, "PLN"), None)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class TestCategorize:
    """Tests for the ordered first-match-wins category rules."""

    @pytest.mark.parametrize(
        "type_, amount, expected",
        [
            ("Przelew podatkowy", -100, TransactionCategory.TAX),
            ("Przelew do ZUS", -100, TransactionCategory.ZUS),
            ("Płatność kartą", -100, TransactionCategory.CARD_PAYMENT),
            ("Zakup w terminalu - kod mobilny", -100, TransactionCategory.CARD_PAYMENT),
            ("Opłata za prowadzenie rachunku", -100, TransactionCategory.FEES),
            ("Wypłata z bankomatu", -100, TransactionCategory.CASH),
            ("Przelew z rachunku", -100, TransactionCategory.TRANSFER_OUT),
            ("Przelew na rachunek", 100, TransactionCategory.TRANSFER_IN),
            ("Przelew na telefon BLIK", 0, TransactionCategory.TRANSFER_IN),
            ("Naliczenie odsetek", 5, TransactionCategory.OTHER),
        ],
    )
    def test_by_type(self, type_, amount, expected):
        assert categorize(type_, Money(amount, "PLN"), EMPTY) == expected

    def test_tax_form_field_wins_over_transfer(self):
        desc = parse_description("Symbol formularza : VAT-7")
        assert categorize("Przelew z rachunku", Money(-100, "PLN"), desc) == (
            TransactionCategory.TAX
        )

    def test_zus_recipient_name(self):
        desc = parse_description("Nazwa odbiorcy : ZUS Oddział Warszawa")
        assert categorize("Przelew z rachunku", Money(-100, "PLN"), desc) == (
            TransactionCategory.ZUS
        )

    def test_case_insensitive_type(self):
        assert categorize("PRZELEW PODATKOWY", Money(-100, "PLN"), EMPTY) == (
            TransactionCategory.TAX
        )

    def test_rule_order(self):
        names = [rule.name for rule in DEFAULT_RULES]
        assert names.index("tax") < names.index("transfer")
        assert names.index("zus") < names.index("transfer")

    def test_custom_rules(self):
        rules = (
            CategoryRule(
                "interest",
                lambda type_lower, amount, desc: "odsetek" in type_lower,
                TransactionCategory.FEES,
            ),
            *DEFAULT_RULES,
        )
        assert categorize("Naliczenie odsetek", Money(5, "PLN"), EMPTY, rules) == (
            TransactionCategory.FEES
        )
