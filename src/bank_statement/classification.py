"""Classification of normalized operations: VAT, split payment and category.

The category engine is an ordered tuple of :class:`CategoryRule` objects
evaluated first-match-wins.  Rule order matters: a tax transfer is also a
``przelew``, so ``TAX`` must come before the generic transfer rules.  New
rules are added by inserting into :data:`DEFAULT_RULES` (or by passing an
extended sequence to :func:`categorize`).

Depends on ``models.py`` and ``description.py`` only.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from bank_statement.description import parse_money_with_currency
from bank_statement.models import (
    Money,
    ParsedDescription,
    TransactionCategory,
    VatInfo,
)

_FV_TOKEN_RE = re.compile(r"(^|[\s/])fv\b", re.IGNORECASE)
_PERIOD_SLASH_RE = re.compile(r"^\d{1,2}/\d{4}$")
_PERIOD_MONTH_RE = re.compile(r"^\d{2}M\d{2}$")
_HAS_LETTER_RE = re.compile(r"[^\W\d_]")
_DIGITS_SLASH_RE = re.compile(r"\d+/\d+")
_TAX_FORM_IN_TITLE_RE = re.compile(r"\b(VAT-7|PIT-4)\b", re.IGNORECASE)
_PRZELEW_RE = re.compile(r"przelew", re.IGNORECASE)
_ZUS_RE = re.compile(r"zus", re.IGNORECASE)

INVOICE_FIELD = "numer faktury vat lub okres platnosci zbiorczej"


# ---------------------------------------------------------------------------
# VAT and split payment
# ---------------------------------------------------------------------------


def classify_invoice_field(value: str | None) -> tuple[str | None, str | None]:
    """Split the combined invoice-number-or-period field.

    Returns:
        ``(invoice_number, period)``; at most one of them is set.

    Examples:
        >>> classify_invoice_field("FV/16/2025")
        ('FV/16/2025', None)
        >>> classify_invoice_field("12/2025")
        (None, '12/2025')
        >>> classify_invoice_field("25M10")
        (None, '25M10')
    """
    text = (value or "").strip()
    if not text:
        return None, None
    if _FV_TOKEN_RE.search(text) or "faktura" in text.lower():
        return text, None
    if _PERIOD_SLASH_RE.match(text) or _PERIOD_MONTH_RE.match(text):
        return None, text
    if _HAS_LETTER_RE.search(text) or _DIGITS_SLASH_RE.search(text):
        return text, None
    return None, None


def detect_vat_info(
    type_: str, desc: ParsedDescription, statement_currency: str
) -> VatInfo | None:
    """Collect VAT and tax-transfer details from *desc*.

    ``type_`` is accepted for symmetry with the other classifiers; the
    detection itself only looks at description fields.

    Returns:
        The :class:`VatInfo`, or None when nothing was found.
    """
    vat_raw = desc.get_first("kwota vat")
    vat_amount = parse_money_with_currency(vat_raw, statement_currency) if vat_raw else None

    invoice_number, period_from_invoice = classify_invoice_field(desc.get_first(INVOICE_FIELD))

    tax_form = desc.get_first("symbol formularza")
    if not tax_form:
        m = _TAX_FORM_IN_TITLE_RE.search(desc.get_first("tytul") or "")
        tax_form = m.group(1).upper() if m else None

    payment_period = desc.get_first("okres platnosci") or period_from_invoice

    info = VatInfo(
        vat_amount=vat_amount,
        invoice_number=invoice_number,
        tax_form=tax_form,
        payment_period=payment_period,
    )
    return None if info.is_empty() else info


def detect_split_payment(type_: str, amount: Money, vat_info: VatInfo | None) -> bool:
    """True for an outgoing transfer that carries a VAT amount (MPP)."""
    if vat_info is None or vat_info.vat_amount is None:
        return False
    return bool(_PRZELEW_RE.search(type_ or "")) and amount.is_negative()


# ---------------------------------------------------------------------------
# Category rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CategoryRule:
    """One category rule.

    Attributes:
        name: Short identifier used in logs and tests.
        matches: Predicate over ``(type_lower, amount, desc)``.
        category: Category assigned when the predicate holds.  For the
            transfer rule the direction is decided by :func:`categorize`.
    """

    name: str
    matches: Callable[[str, Money, ParsedDescription], bool]
    category: TransactionCategory


def _is_tax(type_lower: str, amount: Money, desc: ParsedDescription) -> bool:
    return "przelew podatkowy" in type_lower or desc.has("symbol formularza")


def _is_zus(type_lower: str, amount: Money, desc: ParsedDescription) -> bool:
    if "przelew do zus" in type_lower:
        return True
    return bool(_ZUS_RE.search(desc.get_first("nazwa odbiorcy") or ""))


def _is_card(type_lower: str, amount: Money, desc: ParsedDescription) -> bool:
    return "płatność kartą" in type_lower or "zakup w terminalu" in type_lower


def _is_fee(type_lower: str, amount: Money, desc: ParsedDescription) -> bool:
    return "opłata" in type_lower


def _is_cash(type_lower: str, amount: Money, desc: ParsedDescription) -> bool:
    return (
        "wypłata z bankomatu" in type_lower
        or "wypłata w bankomacie" in type_lower
        or "wpłata w bankomacie" in type_lower
    )


def _is_transfer(type_lower: str, amount: Money, desc: ParsedDescription) -> bool:
    return "przelew" in type_lower


DEFAULT_RULES: tuple[CategoryRule, ...] = (
    CategoryRule("tax", _is_tax, TransactionCategory.TAX),
    CategoryRule("zus", _is_zus, TransactionCategory.ZUS),
    CategoryRule("card", _is_card, TransactionCategory.CARD_PAYMENT),
    CategoryRule("fee", _is_fee, TransactionCategory.FEES),
    CategoryRule("cash", _is_cash, TransactionCategory.CASH),
    CategoryRule("transfer", _is_transfer, TransactionCategory.TRANSFER_OUT),
)


def categorize(
    type_: str,
    amount: Money,
    desc: ParsedDescription,
    rules: Sequence[CategoryRule] = DEFAULT_RULES,
) -> TransactionCategory:
    """Return the category of the first matching rule, or ``OTHER``.

    A matching transfer rule yields ``TRANSFER_OUT`` for negative amounts
    and ``TRANSFER_IN`` otherwise.
    """
    type_lower = (type_ or "").lower()
    for rule in rules:
        if not rule.matches(type_lower, amount, desc):
            continue
        if rule.category in (TransactionCategory.TRANSFER_OUT, TransactionCategory.TRANSFER_IN):
            if amount.is_negative():
                return TransactionCategory.TRANSFER_OUT
            return TransactionCategory.TRANSFER_IN
        return rule.category
    return TransactionCategory.OTHER
