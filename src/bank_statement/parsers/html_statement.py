"""HTML table statement reader.

There is no single guaranteed HTML layout, so the reader is heuristic:

- the first ``<table>`` with a ``<th>`` header row naming date, type,
  description and amount columns is the transaction table;
- headers are matched by normalized name (diacritics and whitespace
  removed, lower-cased), so ``"Data operacji"`` and ``"DataOperacji"``
  are the same column;
- every later ``<tr>`` with ``<td>`` cells is one transaction.

Dates are ``YYYY-MM-DD`` or ``DD.MM.YYYY``.  The currency comes from a
currency column, else from a three-letter code in the amount text, else
defaults to PLN.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from html.parser import HTMLParser

from bank_statement.models import (
    Money,
    ParseResult,
    StatementMeta,
    StatementParseError,
    Transaction,
    format_error,
    strip_diacritics,
)
from bank_statement.normalize import build_transaction, parse_statement_date

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "PLN"
SNIPPET_LENGTH = 400

# Normalized header aliases, in lookup priority order.
DATE_HEADERS = ("dataoperacji", "orderdate", "data")
VALUE_DATE_HEADERS = ("datawaluty", "datarealizacji", "execdate", "valuedate")
TYPE_HEADERS = ("typ", "type")
DESCRIPTION_HEADERS = ("opis", "description")
AMOUNT_HEADERS = ("kwota", "amount")
BALANCE_HEADERS = ("saldopo", "endingbalance", "saldo")
CURRENCY_HEADERS = ("waluta", "currency")

_CURRENCY_CODE_RE = re.compile(r"\b([A-Z]{3})\b")
_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Table extraction
# ---------------------------------------------------------------------------


@dataclass
class _Cell:
    header: bool
    text: str = ""


@dataclass
class _Table:
    rows: list[list[_Cell]] = field(default_factory=list)


class _TableCollector(HTMLParser):
    """Collect every table as rows of header/data cells with their text.

    Nested tables are collected separately; a cell's text includes the
    text of any nested table, the way a browser's ``textContent`` does.
    """

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.tables: list[_Table] = []
        self._stack: list[_Table] = []
        self._row: dict[int, list[_Cell]] = {}
        self._open_cells: list[_Cell] = []

    def handle_starttag(self, tag: str, attrs: list) -> None:
        if tag == "table":
            table = _Table()
            self.tables.append(table)
            self._stack.append(table)
        elif tag == "tr" and self._stack:
            self._row[id(self._stack[-1])] = []
            self._stack[-1].rows.append(self._row[id(self._stack[-1])])
        elif tag in ("td", "th") and self._stack:
            key = id(self._stack[-1])
            if key not in self._row:
                # Cell outside an explicit <tr>
                self._row[key] = []
                self._stack[-1].rows.append(self._row[key])
            cell = _Cell(header=tag == "th")
            self._row[key].append(cell)
            self._open_cells.append(cell)
        elif tag == "br":
            self.handle_data("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag == "table" and self._stack:
            table = self._stack.pop()
            self._row.pop(id(table), None)
        elif tag == "tr" and self._stack:
            self._row.pop(id(self._stack[-1]), None)
        elif tag in ("td", "th") and self._open_cells:
            self._open_cells.pop()

    def handle_data(self, data: str) -> None:
        for cell in self._open_cells:
            cell.text += data


def _collect_tables(text: str) -> list[_Table]:
    collector = _TableCollector()
    collector.feed(text)
    collector.close()
    return collector.tables


def normalize_header(text: str) -> str:
    """``"Data  operacji"`` -> ``"dataoperacji"``; ``"Kwóta"`` -> ``"kwota"``."""
    return _WHITESPACE_RE.sub("", strip_diacritics(text or "")).lower()


def _build_header_map(table: _Table) -> tuple[dict[str, int], int] | None:
    """Header-name -> column index map and the header row index, if any."""
    for row_index, row in enumerate(table.rows):
        headers = [cell for cell in row if cell.header]
        if not headers:
            continue
        header_map: dict[str, int] = {}
        for col, cell in enumerate(headers):
            name = normalize_header(cell.text)
            if name:
                header_map[name] = col
        required = (DATE_HEADERS, TYPE_HEADERS, DESCRIPTION_HEADERS, AMOUNT_HEADERS)
        if all(any(alias in header_map for alias in aliases) for aliases in required):
            return header_map, row_index
    return None


def _find_transaction_table(tables: list[_Table]) -> tuple[_Table, dict[str, int], int] | None:
    for table in tables:
        found = _build_header_map(table)
        if found is not None:
            return table, found[0], found[1]
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse(text: str, best_effort: bool = False) -> ParseResult:
    """Parse an HTML table statement.

    Args:
        text: Full document text.
        best_effort: Collect per-row errors instead of raising the first one.

    Returns:
        A :class:`ParseResult` with transactions in table order.

    Raises:
        StatementParseError: If no table with recognizable headers exists,
            or (strict mode) if any row cannot be parsed.
    """
    found = _find_transaction_table(_collect_tables(text))
    if found is None:
        raise StatementParseError(
            "No transaction table with recognizable headers found in HTML",
            snippet=text[:SNIPPET_LENGTH],
        )
    table, header_map, header_row = found

    result = ParseResult(meta=StatementMeta(source_format="html"))
    for index, row in enumerate(table.rows[header_row + 1 :]):
        cells = [cell.text for cell in row if not cell.header]
        if not cells:
            continue
        path = f"table.row[{index}]"
        try:
            result.transactions.append(_parse_row(cells, header_map))
        except Exception as exc:
            snippet = " | ".join(c.strip() for c in cells)[:SNIPPET_LENGTH]
            if isinstance(exc, StatementParseError):
                error = StatementParseError(str(exc), path=path, snippet=exc.snippet or snippet)
            else:
                error = StatementParseError("Could not parse HTML row", path=path, snippet=snippet)
            if not best_effort:
                raise error from exc
            error.__cause__ = exc
            logger.warning("Skipping %s: %s", path, error)
            result.failures.append(error)
            result.errors.append(format_error(error))

    logger.debug("Parsed %d row(s) from HTML", len(result.transactions))
    return result


def _parse_row(cells: list[str], header_map: dict[str, int]) -> Transaction:
    date_raw = _get_cell(cells, header_map, DATE_HEADERS)
    value_date_raw = _get_cell(cells, header_map, VALUE_DATE_HEADERS) or date_raw
    amount_raw = _get_cell(cells, header_map, AMOUNT_HEADERS) or ""
    balance_raw = _get_cell(cells, header_map, BALANCE_HEADERS) or ""
    currency_raw = _get_cell(cells, header_map, CURRENCY_HEADERS) or ""

    currency = (
        currency_raw.strip().upper() or detect_currency(amount_raw) or DEFAULT_CURRENCY
    )
    amount = Money.parse(strip_currency(amount_raw), currency)
    if balance_raw:
        ending_balance = Money.parse(strip_currency(balance_raw), currency)
    else:
        ending_balance = Money.zero(currency)

    return build_transaction(
        operation_date=parse_statement_date(date_raw),
        value_date=parse_statement_date(value_date_raw),
        type_=_get_cell(cells, header_map, TYPE_HEADERS) or "",
        description_raw=_get_cell(cells, header_map, DESCRIPTION_HEADERS) or "",
        amount=amount,
        ending_balance=ending_balance,
    )


def _get_cell(cells: list[str], header_map: dict[str, int], aliases: tuple[str, ...]) -> str | None:
    """First non-blank cell among the columns named by *aliases*."""
    for alias in aliases:
        col = header_map.get(alias)
        if col is None or col >= len(cells):
            continue
        value = cells[col].strip()
        if value:
            return value
    return None


def detect_currency(raw: str) -> str | None:
    """Three-letter currency code inside amount text, e.g. ``"100,00 PLN"``."""
    m = _CURRENCY_CODE_RE.search((raw or "").upper())
    return m.group(1) if m else None


def strip_currency(raw: str) -> str:
    return _CURRENCY_CODE_RE.sub("", raw or "").strip()
