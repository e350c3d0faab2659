"""Core data models for bank-statement.

This module defines all dataclasses and utility functions used throughout the
pipeline. It has zero internal imports -- everything depends on it, but it
depends on nothing within the package.

Every domain value object here is a frozen dataclass.  Derived fields
(``Counterparty.fingerprint``, ``Transaction.dedup_hash``) are computed in
``__post_init__`` and can never be passed in, so they always agree with the
fields they are derived from.
"""

from __future__ import annotations

import enum
import hashlib
import re
import unicodedata
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Literal

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class CurrencyMismatchError(ValueError):
    """Raised when two :class:`Money` values with different currencies meet.

    Arithmetic across currencies is always a programming or data error; it
    is never coerced and never swallowed by the core.
    """

    def __init__(self, left: str, right: str) -> None:
        super().__init__(f"Currency mismatch: {left} vs {right}")
        self.left = left
        self.right = right


class StatementParseError(Exception):
    """A statement document or one of its rows could not be interpreted.

    Attributes:
        path: Location of the offending element, e.g.
            ``"operations.operation[3]"`` or ``"table.row[7]"``.
        snippet: Short excerpt of the offending input for diagnostics.
    """

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        snippet: str | None = None,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.snippet = snippet


def format_error(exc: BaseException) -> str:
    """Render an exception (and its cause) as a single diagnostic line."""
    parts = [f"{type(exc).__name__}: {exc}"]
    path = getattr(exc, "path", None)
    snippet = getattr(exc, "snippet", None)
    if path:
        parts.append(f"path={path}")
    if snippet:
        parts.append(f"snippet={snippet}")
    if exc.__cause__ is not None:
        parts.append(f"cause={exc.__cause__}")
    return " | ".join(parts)


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w\s]|_")
_DIGITS_RE = re.compile(r"\D")


def collapse_whitespace(text: str | None) -> str:
    """Collapse every run of whitespace (including newlines) to one space."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def strip_diacritics(text: str) -> str:
    """Decompose *text* (NFKD) and drop all combining marks."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_key(key: str | None) -> str:
    """Normalize a description label for lookups.

    ``"Tytuł"``, ``"TYTUL"`` and ``" tytul "`` all normalize to ``"tytul"``.
    The Polish ``ł`` has no canonical decomposition, so it is substituted
    explicitly before the diacritics are stripped.
    """
    collapsed = collapse_whitespace(key)
    collapsed = collapsed.replace("ł", "l").replace("Ł", "L")
    return strip_diacritics(collapsed).casefold()


def _digits_only(text: str) -> str:
    return _DIGITS_RE.sub("", text)


def _clean(text: str | None) -> str | None:
    """Strip *text*, mapping blank values to ``None``."""
    if text is None:
        return None
    stripped = str(text).strip()
    return stripped or None


# ---------------------------------------------------------------------------
# Money
# ---------------------------------------------------------------------------

DEFAULT_MINOR_UNITS = 2

# ISO 4217 exponents that differ from the default of 2.
_MINOR_UNITS: Mapping[str, int] = MappingProxyType(
    {
        "BIF": 0,
        "CLP": 0,
        "ISK": 0,
        "JPY": 0,
        "KRW": 0,
        "PYG": 0,
        "UGX": 0,
        "VND": 0,
        "BHD": 3,
        "IQD": 3,
        "JOD": 3,
        "KWD": 3,
        "LYD": 3,
        "OMR": 3,
        "TND": 3,
    }
)

_NUMBER_JUNK_RE = re.compile(r"[^0-9.,+\-]")
_NON_ASCII_DIGIT_RE = re.compile(r"[^0-9]")


def currency_minor_units(currency: str) -> int:
    """Return the number of decimal places for *currency* (default 2)."""
    return _MINOR_UNITS.get((currency or "").strip().upper(), DEFAULT_MINOR_UNITS)


@dataclass(frozen=True)
class Money:
    """Immutable exact monetary value stored as an integer of minor units.

    ``Money(-9580, "PLN")`` is -95.80 PLN.  Python integers are arbitrary
    precision, so there is no upper bound on ``minor``.

    Attributes:
        minor: Signed amount in the currency's smallest unit (e.g. grosze).
        currency: ISO 4217 currency code, e.g. ``"PLN"``.
    """

    minor: int
    currency: str

    @property
    def minor_units(self) -> int:
        """Decimal places of :attr:`currency`."""
        return currency_minor_units(self.currency)

    # -- construction --------------------------------------------------------

    @classmethod
    def parse(cls, raw: str | None, currency: str) -> Money:
        """Parse a bank amount string.  Never raises.

        The last ``.`` or ``,`` is the decimal separator and every earlier
        one is a thousands separator, so ``"16.948,96"``, ``"16948,96"``
        and ``"16 948.96"`` all yield 1694896 minor units.  A lone dot is
        always decimal: ``"1.234"`` is 1.234 (123 minor units for a
        2-decimal currency), never 1234.  Text with no digits yields zero.

        Args:
            raw: Amount text such as ``"-95.80"`` or ``"+2641.40"``.
            currency: Currency code; determines the number of decimals.

        Returns:
            The parsed :class:`Money`.
        """
        units = currency_minor_units(currency)
        cleaned = _NUMBER_JUNK_RE.sub("", raw or "")
        negative = cleaned.startswith("-")
        unsigned = cleaned[1:] if cleaned[:1] in ("+", "-") else cleaned

        separator = max(unsigned.rfind("."), unsigned.rfind(","))
        if separator == -1:
            int_part, frac_part = unsigned, ""
        else:
            int_part, frac_part = unsigned[:separator], unsigned[separator + 1 :]

        int_digits = _NON_ASCII_DIGIT_RE.sub("", int_part)
        frac_digits = _NON_ASCII_DIGIT_RE.sub("", frac_part).ljust(units, "0")[:units]

        minor = int(int_digits or "0") * 10**units + int(frac_digits or "0")
        return cls(-minor if negative else minor, currency)

    @classmethod
    def from_decimal(cls, value: Decimal | int | str, currency: str) -> Money:
        """Build Money from an exact decimal, rounding half-up to minor units."""
        units = currency_minor_units(currency)
        scaled = (Decimal(value) * (Decimal(10) ** units)).to_integral_value(
            rounding=ROUND_HALF_UP
        )
        return cls(int(scaled), currency)

    @classmethod
    def zero(cls, currency: str) -> Money:
        return cls(0, currency)

    # -- arithmetic ----------------------------------------------------------

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def add(self, other: Money) -> Money:
        """Return ``self + other``; raises :class:`CurrencyMismatchError`."""
        self._check_currency(other)
        return Money(self.minor + other.minor, self.currency)

    def subtract(self, other: Money) -> Money:
        """Return ``self - other``; raises :class:`CurrencyMismatchError`."""
        self._check_currency(other)
        return Money(self.minor - other.minor, self.currency)

    def __add__(self, other: Money) -> Money:
        return self.add(other)

    def __sub__(self, other: Money) -> Money:
        return self.subtract(other)

    def abs(self) -> Money:
        return Money(abs(self.minor), self.currency)

    def negate(self) -> Money:
        return Money(-self.minor, self.currency)

    def is_negative(self) -> bool:
        return self.minor < 0

    def is_zero(self) -> bool:
        return self.minor == 0

    # -- rendering -----------------------------------------------------------

    def to_display_string(self, with_currency: bool = True) -> str:
        """Format as ``"-95.80 PLN"`` (or ``"-95.80"`` without the code)."""
        units = self.minor_units
        sign = "-" if self.minor < 0 else ""
        whole, frac = divmod(abs(self.minor), 10**units)
        amount = f"{sign}{whole}.{frac:0{units}d}" if units else f"{sign}{whole}"
        return f"{amount} {self.currency}" if with_currency else amount

    def to_decimal(self) -> Decimal:
        """Exact decimal value, e.g. ``Decimal("-95.80")``."""
        return Decimal(self.minor).scaleb(-self.minor_units)

    def to_float(self) -> float:
        """Approximate float value.  Lossy; use only for display or charts."""
        return self.minor / 10**self.minor_units

    def __str__(self) -> str:
        return self.to_display_string(True)


# ---------------------------------------------------------------------------
# Parsed description
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DescriptionItem:
    """One element of a parsed description, in text order.

    Attributes:
        kind: ``"text"`` (free text), ``"kv"`` (label/value pair) or
            ``"section"`` (a header label with no value, e.g.
            ``"Lokalizacja"``).
        key: Label as written in the source (``kv`` only).
        value: Whitespace-collapsed value (``kv``) or the free text
            (``text``).
        title: Header label as written (``section`` only).
    """

    kind: Literal["text", "kv", "section"]
    key: str = ""
    value: str = ""
    title: str = ""


@dataclass(frozen=True)
class ParsedDescription:
    """Structured form of a transaction's narration text.

    Attributes:
        raw: Trimmed source text with CRLF normalized to LF, before entity
            decoding and whitespace collapsing.
        items: Description items in the order they appear in the text.
        fields: Read-only multi-map from normalized label to its values,
            in order of appearance.  Keys are normalized on construction.
    """

    raw: str
    items: tuple[DescriptionItem, ...] = ()
    fields: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))
        merged: dict[str, tuple[str, ...]] = {}
        for key, values in self.fields.items():
            nk = normalize_key(key)
            merged[nk] = merged.get(nk, ()) + tuple(values)
        object.__setattr__(self, "fields", MappingProxyType(merged))

    def __hash__(self) -> int:
        return hash((self.raw, self.items))

    def get_first(self, key: str) -> str | None:
        """First value recorded for *key* (any casing/diacritics), or None."""
        values = self.fields.get(normalize_key(key), ())
        return values[0] if values else None

    def get_all(self, key: str) -> tuple[str, ...]:
        """All values recorded for *key*, possibly empty."""
        return self.fields.get(normalize_key(key), ())

    def has(self, key: str) -> bool:
        return bool(self.get_all(key))


# ---------------------------------------------------------------------------
# Counterparty
# ---------------------------------------------------------------------------


def normalize_account(account: str | None) -> str | None:
    """Normalize a bank account number.

    Whitespace is removed.  If at least 20 digits remain (NRB, or IBAN with
    a country prefix) the digits-only form is returned; otherwise the
    cleaned string is kept as is.
    """
    if not account:
        return None
    cleaned = _WHITESPACE_RE.sub("", str(account))
    digits = _digits_only(cleaned)
    if len(digits) >= 20:
        return digits
    return cleaned or None


def normalize_id(identifier: str | None) -> str | None:
    """Normalize a party identifier such as a NIP (10 digits).

    At least 8 digits => digits-only form; otherwise the stripped text.
    """
    if not identifier:
        return None
    cleaned = str(identifier).strip()
    digits = _digits_only(cleaned)
    if len(digits) >= 8:
        return digits
    return cleaned or None


def normalize_name(name: str | None) -> str:
    """Canonical comparison form of a party name.

    Diacritics are stripped, punctuation becomes whitespace, whitespace is
    collapsed and the result is upper-cased: ``"Sklep \"Żabka\" Sp. z o.o."``
    becomes ``"SKLEP ZABKA SP Z O O"``.
    """
    if not name:
        return ""
    text = strip_diacritics(name)
    text = _NON_WORD_RE.sub(" ", text)
    return collapse_whitespace(text).upper()


def compute_fingerprint(
    name: str | None = None,
    account: str | None = None,
    identifier: str | None = None,
) -> str:
    """Stable 24-char hex identity of a counterparty.

    The hash key is ``acc=<account>|id=<id>|name=<name>`` over the normalized
    forms, so account and identifier dominate whenever they are present and
    the name alone only discriminates when both are missing.
    """
    account_n = normalize_account(account) or ""
    id_n = normalize_id(identifier) or ""
    name_n = normalize_name(name)
    key = f"acc={account_n}|id={id_n}|name={name_n}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:24]


@dataclass(frozen=True)
class Counterparty:
    """Sender or recipient of a transaction, normalized.

    Attributes:
        name: Party name as written (stripped).
        account: Normalized account number (see :func:`normalize_account`).
        id: Normalized identifier, e.g. NIP (see :func:`normalize_id`).
        address: Party address as written (stripped).
        fingerprint: Derived identity hash; the only field used for grouping.
    """

    name: str | None = None
    account: str | None = None
    id: str | None = None
    address: str | None = None
    fingerprint: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _clean(self.name))
        object.__setattr__(self, "account", normalize_account(self.account))
        object.__setattr__(self, "id", normalize_id(self.id))
        object.__setattr__(self, "address", _clean(self.address))
        object.__setattr__(
            self,
            "fingerprint",
            compute_fingerprint(name=self.name, account=self.account, identifier=self.id),
        )

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)


# ---------------------------------------------------------------------------
# Secondary facts extracted from the description
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VatInfo:
    """VAT / tax-transfer details.

    Attributes:
        vat_amount: Amount from the ``Kwota VAT`` field.
        invoice_number: Invoice number, e.g. ``"FV/16/2025"``.
        tax_form: Tax form symbol, e.g. ``"VAT-7"`` or ``"PIT-4"``.
        payment_period: Settlement period, e.g. ``"25M10"`` or ``"12/2025"``.
    """

    vat_amount: Money | None = None
    invoice_number: str | None = None
    tax_form: str | None = None
    payment_period: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "invoice_number", _clean(self.invoice_number))
        object.__setattr__(self, "tax_form", _clean(self.tax_form))
        object.__setattr__(self, "payment_period", _clean(self.payment_period))

    def is_empty(self) -> bool:
        return (
            self.vat_amount is None
            and self.invoice_number is None
            and self.tax_form is None
            and self.payment_period is None
        )


@dataclass(frozen=True)
class CardInfo:
    """Card payment details (masked number, execution date, original amount)."""

    card_number_masked: str | None = None
    operation_date: date | None = None
    original_amount: Money | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "card_number_masked", _clean(self.card_number_masked))

    def is_empty(self) -> bool:
        return (
            self.card_number_masked is None
            and self.operation_date is None
            and self.original_amount is None
        )


@dataclass(frozen=True)
class LocationInfo:
    """Merchant location for card/terminal operations."""

    address: str | None = None
    city: str | None = None
    country: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", _clean(self.address))
        object.__setattr__(self, "city", _clean(self.city))
        object.__setattr__(self, "country", _clean(self.country))

    def is_empty(self) -> bool:
        return self.address is None and self.city is None and self.country is None


@dataclass(frozen=True)
class ReferenceInfo:
    """Reference identifiers carried in the description."""

    reference_number: str | None = None
    own_reference: str | None = None
    phone_number: str | None = None
    operation_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "reference_number", _clean(self.reference_number))
        object.__setattr__(self, "own_reference", _clean(self.own_reference))
        object.__setattr__(self, "phone_number", _clean(self.phone_number))
        object.__setattr__(self, "operation_id", _clean(self.operation_id))

    def is_empty(self) -> bool:
        return (
            self.reference_number is None
            and self.own_reference is None
            and self.phone_number is None
            and self.operation_id is None
        )

    def identifiers(self) -> list[str]:
        """Non-empty identifiers that take part in the dedup hash."""
        return [
            v
            for v in (self.reference_number, self.own_reference, self.operation_id)
            if v
        ]


class TransactionCategory(str, enum.Enum):
    """Heuristic transaction category assigned by the rule engine."""

    TAX = "TAX"
    ZUS = "ZUS"
    CARD_PAYMENT = "CARD_PAYMENT"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"
    FEES = "FEES"
    CASH = "CASH"
    OTHER = "OTHER"


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


def compute_dedup_hash(
    operation_date: date,
    amount: Money,
    counterparty: Counterparty | None = None,
    reference_info: ReferenceInfo | None = None,
) -> str:
    """Generate the deterministic deduplication hash of a transaction.

    The hash is a 24-character hex string derived from a SHA-256 hash of:
    the operation date (``YYYY-MM-DD``), the amount in minor units with its
    currency, the counterparty fingerprint (or empty) and the non-empty
    reference identifiers joined by ``|``.

    The description text itself is not part of the key, so two exports of
    the same operation that differ only in line breaks or spacing collide.

    Args:
        operation_date: Operation (order) date.
        amount: Signed transaction amount.
        counterparty: Resolved counterparty, if any.
        reference_info: Reference identifiers, if any.

    Returns:
        A 24-character lowercase hex string.
    """
    fingerprint = counterparty.fingerprint if counterparty is not None else ""
    refs = "|".join(reference_info.identifiers()) if reference_info is not None else ""
    base = (
        f"d={operation_date.isoformat()}|a={amount.minor}|{amount.currency}"
        f"|cp={fingerprint}|ref={refs}"
    )
    return hashlib.sha256(base.encode("utf-8")).hexdigest()[:24]


@dataclass(frozen=True)
class Transaction:
    """A single normalized statement operation.

    Base fields come straight from the statement row; the rest are derived
    from the parsed description.  ``dedup_hash`` is computed on
    construction and cannot be supplied.

    Attributes:
        operation_date: Order date of the operation.
        value_date: Execution/value date.
        type: Bank's operation type text, e.g. ``"Przelew z rachunku"``.
        description: Parsed narration.
        amount: Signed amount; negative is outgoing.
        ending_balance: Account balance after this operation.
        counterparty: Sender (incoming) or recipient (outgoing).
        vat_info: VAT details, if any were found.
        split_payment: True for outgoing transfers carrying a VAT amount.
        location_info: Merchant location, for card operations.
        card_info: Card details, for card operations.
        reference_info: Reference identifiers.
        category: Rule-engine category.
        dedup_hash: Derived business-identity hash.
    """

    operation_date: date
    value_date: date
    type: str
    description: ParsedDescription
    amount: Money
    ending_balance: Money
    counterparty: Counterparty | None = None
    vat_info: VatInfo | None = None
    split_payment: bool = False
    location_info: LocationInfo | None = None
    card_info: CardInfo | None = None
    reference_info: ReferenceInfo | None = None
    category: TransactionCategory = TransactionCategory.OTHER
    dedup_hash: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "dedup_hash",
            compute_dedup_hash(
                self.operation_date,
                self.amount,
                self.counterparty,
                self.reference_info,
            ),
        )

    @property
    def start_balance(self) -> Money:
        """Balance before this operation (``ending_balance - amount``)."""
        return self.ending_balance.subtract(self.amount)

    def is_income(self) -> bool:
        return self.amount.minor > 0

    def is_expense(self) -> bool:
        return self.amount.minor < 0


# ---------------------------------------------------------------------------
# Stage and pipeline results
# ---------------------------------------------------------------------------


@dataclass
class StageResult:
    """Return type for every pipeline stage function.

    Each stage processes what it can and reports what it could not. The
    pipeline accumulates warnings and errors across all stages for the
    final summary.

    Attributes:
        transactions: The list of transactions after this stage's
            processing (possibly filtered or reordered).
        warnings: Non-fatal issues encountered during processing, such
            as removed duplicates.
        errors: Per-row failures collected in best-effort mode.  The
            stage still returns whatever it could process successfully.
    """

    transactions: list[Transaction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class StatementMeta:
    """Document-level metadata of a parsed statement.

    Attributes:
        source_format: ``"xml"`` or ``"html"``.
        account: Account number from the statement header, if present.
        date_since: Start of the statement period as written.
        date_to: End of the statement period as written.
    """

    source_format: str
    account: str | None = None
    date_since: str | None = None
    date_to: str | None = None


@dataclass
class ParseResult(StageResult):
    """Result of reading one statement document.

    Attributes:
        meta: Document metadata.
        failures: The :class:`StatementParseError` objects behind
            :attr:`errors`, in the same order.
    """

    meta: StatementMeta | None = None
    failures: list[StatementParseError] = field(default_factory=list)


@dataclass
class PipelineResult:
    """Final output of a full pipeline run.

    Attributes:
        transactions: Final transaction list after all stages.
        warnings: Accumulated warnings from all stages.
        errors: Accumulated per-row errors from all stages.
        meta: Metadata of the statement that was processed.
    """

    transactions: list[Transaction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    meta: StatementMeta | None = None


# ---------------------------------------------------------------------------
# Report rows
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MonthlySummary:
    """Income, expense and net for one ``YYYY-MM`` month."""

    month: str
    income: Money
    expense: Money
    net: Money


@dataclass(frozen=True)
class VatSummary:
    """VAT total and per-tax-form totals for one month."""

    month: str
    vat_total: Money
    by_tax_form: Mapping[str, Money]

    def __hash__(self) -> int:
        return hash((self.month, self.vat_total, tuple(sorted(self.by_tax_form.items()))))


@dataclass(frozen=True)
class TopCounterparty:
    """Counterparty ranked by absolute turnover."""

    fingerprint: str
    name: str | None
    count: int
    total_abs: Money


@dataclass(frozen=True)
class RecurringPayee:
    """Counterparty seen repeatedly in a statement."""

    fingerprint: str
    name: str | None
    account: str | None
    id: str | None
    count: int
    total_abs: Money
    first_date: date
    last_date: date


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class SheetsConfig:
    """Google Sheets upload settings.

    Attributes:
        credentials_file: Path to the service-account JSON key, relative to
            the project root unless absolute (``~`` is expanded).
        spreadsheet_id: Target spreadsheet key.
        worksheet_name: Worksheet receiving transaction rows.
        accounts_worksheet: Worksheet receiving the recipient-accounts table.
        account_map_range: A1 range of the account-flags mapping sheet.
    """

    credentials_file: str = "service-account.json"
    spreadsheet_id: str = ""
    worksheet_name: str = "Historia"
    accounts_worksheet: str = "Rachunki"
    account_map_range: str = "Rachunki_Mapa!A1:G"


@dataclass
class AppConfig:
    """Top-level application configuration loaded from config.toml.

    Attributes:
        output_dir: Directory for exported files. Default: "output".
        default_currency: Currency assumed when a statement row carries
            none. Default: "PLN".
        best_effort: Collect per-row errors instead of aborting.
        dedup: Remove transactions with a repeated dedup hash.
        sort_balance_chain: Reorder same-day transactions along the
            balance chain.
        recurring_min_count: Minimum occurrences for a recurring payee.
        sheets: Google Sheets settings.
    """

    output_dir: str = "output"
    default_currency: str = "PLN"
    best_effort: bool = False
    dedup: bool = False
    sort_balance_chain: bool = True
    recurring_min_count: int = 2
    sheets: SheetsConfig = field(default_factory=SheetsConfig)

