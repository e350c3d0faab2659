"""PKO-style XML statement reader.

Document shape::

    <account-history>
      <search>
        <account>PL61109010140000071219812874</account>
        <date since="2025-10-01" to="2025-10-31"/>
      </search>
      <operations>
        <operation>
          <order-date>2025-10-02</order-date>
          <exec-date>2025-10-02</exec-date>
          <type>Przelew z rachunku</type>
          <description>Rachunek odbiorcy : ...</description>
          <amount curr="PLN">-95.80</amount>
          <ending-balance curr="PLN">+2641.40</ending-balance>
        </operation>
      </operations>
    </account-history>

Sign convention:
    Negative amounts are outgoing, positive amounts are incoming.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET

from bank_statement.models import (
    Money,
    ParseResult,
    StatementMeta,
    StatementParseError,
    Transaction,
    format_error,
)
from bank_statement.normalize import build_transaction, parse_statement_date

logger = logging.getLogger(__name__)

ROOT_TAG = "account-history"
DEFAULT_CURRENCY = "PLN"
SNIPPET_LENGTH = 400


def parse(text: str, best_effort: bool = False) -> ParseResult:
    """Parse an ``account-history`` XML document.

    Args:
        text: Full document text.
        best_effort: Collect per-operation errors instead of raising the
            first one.

    Returns:
        A :class:`ParseResult` with the transactions in document order,
        statement metadata and (in best-effort mode) per-row errors.

    Raises:
        StatementParseError: If the document is not well-formed XML or has
            no ``account-history`` root, or (strict mode) if any operation
            cannot be parsed.
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise StatementParseError(
            "Could not parse XML", snippet=text[:SNIPPET_LENGTH]
        ) from exc

    if root.tag != ROOT_TAG:
        raise StatementParseError(
            f"XML is not an account-history document (root is <{root.tag}>)",
            snippet=text[:SNIPPET_LENGTH],
        )

    date_node = root.find("search/date")
    meta = StatementMeta(
        source_format="xml",
        account=_text(root.find("search/account")) or None,
        date_since=date_node.get("since") if date_node is not None else None,
        date_to=date_node.get("to") if date_node is not None else None,
    )

    result = ParseResult(meta=meta)
    for index, op in enumerate(root.findall("operations/operation")):
        path = f"operations.operation[{index}]"
        try:
            result.transactions.append(_parse_operation(op))
        except Exception as exc:
            error = _as_parse_error(exc, path, op)
            if not best_effort:
                raise error from exc
            logger.warning("Skipping %s: %s", path, error)
            result.failures.append(error)
            result.errors.append(format_error(error))

    logger.debug("Parsed %d operation(s) from XML", len(result.transactions))
    return result


def _parse_operation(op: ET.Element) -> Transaction:
    order_raw = _text(op.find("order-date"))
    exec_raw = _text(op.find("exec-date"))
    operation_date = parse_statement_date(order_raw)
    value_date = parse_statement_date(exec_raw)

    amount = _parse_money_node(op.find("amount"), "amount", None)
    ending_balance = _parse_money_node(
        op.find("ending-balance"), "ending-balance", amount.currency
    )

    return build_transaction(
        operation_date=operation_date,
        value_date=value_date,
        type_=_text(op.find("type")),
        description_raw=_text(op.find("description")),
        amount=amount,
        ending_balance=ending_balance,
    )


def _parse_money_node(
    node: ET.Element | None, name: str, fallback_currency: str | None
) -> Money:
    """Parse ``<amount curr="PLN">-95.80</amount>``; empty text is an error."""
    raw = _text(node)
    if not raw:
        raise StatementParseError(f"Missing value in <{name}>", path=name)
    currency = (node.get("curr") if node is not None else None) or fallback_currency
    return Money.parse(raw, (currency or DEFAULT_CURRENCY).strip().upper())


def _text(node: ET.Element | None) -> str:
    if node is None:
        return ""
    return "".join(node.itertext()).strip()


def _as_parse_error(exc: Exception, path: str, op: ET.Element) -> StatementParseError:
    snippet = ET.tostring(op, encoding="unicode")[:SNIPPET_LENGTH]
    if isinstance(exc, StatementParseError):
        return StatementParseError(
            str(exc), path=path, snippet=exc.snippet or snippet
        )
    wrapped = StatementParseError("Could not parse operation", path=path, snippet=snippet)
    wrapped.__cause__ = exc
    return wrapped
