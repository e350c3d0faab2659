"""Parser registry for bank statement documents.

Each parser is a module exposing a ``parse(text, best_effort=False)``
function that returns a :class:`~bank_statement.models.ParseResult`.  The
``PARSERS`` dict maps format names to parse functions, ``get_parser()``
provides a lookup with a clear error on unknown names, and
``detect_format()`` sniffs the format from the document head.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from bank_statement.models import ParseResult, StatementParseError
from bank_statement.parsers import html_statement, xml_statement

logger = logging.getLogger(__name__)

PARSERS: dict[str, Callable[..., ParseResult]] = {
    "xml": xml_statement.parse,
    "html": html_statement.parse,
}

SNIFF_LENGTH = 2000


def get_parser(name: str) -> Callable[..., ParseResult]:
    """Look up a parser by name.

    Args:
        name: Format name, ``"xml"`` or ``"html"``.

    Returns:
        The parse function for the named format.

    Raises:
        KeyError: If no parser is registered under the given name.
    """
    return PARSERS[name]


def detect_format(text: str) -> str:
    """Guess the document format from its first characters.

    Raises:
        StatementParseError: If the text looks like neither XML nor HTML.
    """
    head = (text or "").strip()[:SNIFF_LENGTH].lower()
    if "<account-history" in head or "<?xml" in head:
        return "xml"
    if "<table" in head or "<html" in head:
        return "html"
    raise StatementParseError(
        "Unrecognized input format (expected XML or HTML)",
        snippet=(text or "")[:400],
    )


def parse_statement(text: str, best_effort: bool = False) -> ParseResult:
    """Detect the format of *text* and parse it with the matching reader."""
    fmt = detect_format(text)
    logger.info("Detected %s statement", fmt)
    return get_parser(fmt)(text, best_effort=best_effort)
