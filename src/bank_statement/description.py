"""Parser for the free-form ``description``/``Opis`` narration of a statement row.

Bank narration mixes labelled fields and loose text, e.g.::

    Rachunek odbiorcy : 02102010260000190207153234 Nazwa odbiorcy : AUTOPAY SA
    Tytuł : /OPT/X///// BPID:API73ZZKSK

Labels are recognized by a small cursor-based scanner instead of a
backtracking regular expression:

- a label starts with a letter and continues with up to 80 letters, digits,
  spaces or ``/().,-`` characters;
- it ends at a colon that touches whitespace on at least one side
  (``"Key : v"``, ``"Key: v"``, ``"Key :v"``, ``"Key :\\nv"``), so compact
  tokens such as ``BPID:API73`` stay inside the value;
- a candidate is accepted when it is a known label, or a short (at most two
  words) phrase that does not embed a known label.  On rejection the scan
  restarts one character after the candidate start, which lets the real
  label hiding at the end of ``"AUTOPAY SA Tytuł"`` be found.

Depends on ``models.py`` only.
"""

from __future__ import annotations

import html
import logging
import re
import unicodedata
from dataclasses import dataclass
from datetime import date

from bank_statement.models import (
    CardInfo,
    DescriptionItem,
    LocationInfo,
    Money,
    ParsedDescription,
    ReferenceInfo,
    collapse_whitespace,
    normalize_key,
)

logger = logging.getLogger(__name__)

# Normalized labels that occur in PKO-style narration.
KNOWN_KEYS: frozenset[str] = frozenset(
    {
        "rachunek odbiorcy",
        "rachunek nadawcy",
        "nazwa odbiorcy",
        "nazwa nadawcy",
        "adres odbiorcy",
        "adres nadawcy",
        "tytul",
        "numer faktury vat lub okres platnosci zbiorczej",
        "kwota vat",
        "identyfikator odbiorcy",
        "nazwa i nr identyfikatora",
        "symbol formularza",
        "okres platnosci",
        "dodatkowy opis",
        "referencje wlasne zleceniodawcy",
        "numer karty",
        "numer referencyjny",
        "numer telefonu",
        "operacja",
        "lokalizacja",
        "adres",
        "miasto",
        "kraj",
        "data wykonania operacji",
        "oryginalna kwota operacji",
    }
)

# Labels that act as group headers when they carry no value of their own.
SECTION_KEYS: frozenset[str] = frozenset({"lokalizacja"})

MAX_KEY_BODY = 80
MAX_FALLBACK_WORDS = 2

_KEY_PUNCTUATION = frozenset(" /().,-")
_KNOWN_KEY_PATTERNS = tuple(
    re.compile(rf"(?:^|\s){re.escape(known)}(?:$|\s)") for known in sorted(KNOWN_KEYS)
)
_YMD_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_AMOUNT_WITH_CURRENCY_RE = re.compile(r"^([+-]?[0-9\s.,]+?)\s*([A-Z]{3})?$")


# ---------------------------------------------------------------------------
# Key scanner
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeyMarker:
    """An accepted label: ``text[key_start:]`` starts the label and
    ``text[value_start:]`` starts its value."""

    key_start: int
    value_start: int
    key: str


def _is_letter(ch: str) -> bool:
    return unicodedata.category(ch).startswith("L")


def _is_key_char(ch: str) -> bool:
    return (
        ch in _KEY_PUNCTUATION
        or unicodedata.category(ch)[0] in ("L", "N")
    )


class _KeyScanner:
    """Explicit state machine that finds label markers in *text*.

    State is a single cursor.  :meth:`scan` repeatedly looks for the next
    candidate at or after the cursor, then either accepts it (cursor moves to
    the value start) or rejects it (cursor moves one past the candidate
    start).  Every step advances the cursor, so a scan is bounded by
    ``len(text) * MAX_KEY_BODY`` character inspections.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.cursor = 0

    def scan(self) -> list[KeyMarker]:
        markers: list[KeyMarker] = []
        while True:
            candidate = self._next_candidate()
            if candidate is None:
                return markers
            start, body_end, value_start = candidate
            key = self.text[start:body_end].strip()
            if is_probable_key(key):
                markers.append(KeyMarker(start, value_start, key))
                self.cursor = value_start
            else:
                logger.debug("Rejected label candidate %r", key)
                self.cursor = start + 1

    def _next_candidate(self) -> tuple[int, int, int] | None:
        """Leftmost ``(key_start, body_end, value_start)`` at or after the cursor."""
        for start in range(self.cursor, len(self.text)):
            if not _is_letter(self.text[start]):
                continue
            found = self._match_at(start)
            if found is not None:
                return start, found[0], found[1]
        return None

    def _match_at(self, start: int) -> tuple[int, int] | None:
        """Try the shortest label body from *start* that reaches a separator."""
        text = self.text
        limit = min(len(text), start + 1 + MAX_KEY_BODY)
        body_end = start + 1
        while True:
            value_start = self._separator_at(body_end)
            if value_start is not None:
                return body_end, value_start
            if body_end >= limit or not _is_key_char(text[body_end]):
                return None
            body_end += 1

    def _separator_at(self, pos: int) -> int | None:
        """Value start if a label separator begins at *pos*, else None.

        Two forms are recognized: whitespace then ``:`` then optional
        whitespace, or ``:`` then mandatory whitespace.
        """
        text = self.text
        n = len(text)
        ws_end = pos
        while ws_end < n and text[ws_end].isspace():
            ws_end += 1
        if ws_end > pos:
            if ws_end < n and text[ws_end] == ":":
                return self._value_start_after(ws_end + 1, min_ws=0)
            return None
        if pos < n and text[pos] == ":":
            return self._value_start_after(pos + 1, min_ws=1)
        return None

    def _value_start_after(self, pos: int, min_ws: int) -> int | None:
        """Skip whitespace after a colon; the value must start on visible text.

        When only whitespace remains, the value may start at the last line
        feed of that run (as long as *min_ws* characters were skipped).
        """
        text = self.text
        n = len(text)
        end = pos
        while end < n and text[end].isspace():
            end += 1
        if end < n and end - pos >= min_ws:
            return end
        for candidate in range(end - 1, pos + min_ws - 1, -1):
            if text[candidate] == "\n":
                return candidate
        return None


def is_probable_key(key: str) -> bool:
    """Decide whether a scanned candidate is a real label.

    Known labels are always accepted.  Anything else must be at most two
    words long and must not embed a known label as a token sequence:
    ``"AUTOPAY SA Tytuł"`` is a value tail glued to the real ``Tytuł``.
    """
    collapsed = collapse_whitespace(key)
    if len(collapsed) < 2:
        return False
    normalized = normalize_key(collapsed)
    if normalized in KNOWN_KEYS:
        return True
    if len(collapsed.split()) > MAX_FALLBACK_WORDS:
        return False
    return not any(pattern.search(normalized) for pattern in _KNOWN_KEY_PATTERNS)


def find_key_markers(text: str) -> list[KeyMarker]:
    """Return accepted label markers of *text* in order of appearance."""
    return _KeyScanner(text).scan()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_description(raw: str | None) -> ParsedDescription:
    """Split narration text into ordered items and a label lookup map.

    Never raises.  Text without any recognizable label becomes a single
    ``text`` item.  A section label (``Lokalizacja``) with an empty value
    becomes a ``section`` item and is not recorded in ``fields``; repeated
    labels append to their value list.

    Args:
        raw: Narration text from the statement reader.

    Returns:
        The :class:`ParsedDescription`; ``raw`` keeps the trimmed,
        LF-normalized input.
    """
    raw_trimmed = (raw or "").replace("\r\n", "\n").strip()
    decoded = html.unescape(raw_trimmed)

    items: list[DescriptionItem] = []
    fields: dict[str, list[str]] = {}

    markers = find_key_markers(decoded)
    if not markers:
        _append_text(items, decoded)
        return ParsedDescription(raw=raw_trimmed, items=tuple(items), fields={})

    cursor = 0
    for index, marker in enumerate(markers):
        _append_text(items, decoded[cursor : marker.key_start])

        if index + 1 < len(markers):
            value_end = markers[index + 1].key_start
        else:
            value_end = len(decoded)
        value = collapse_whitespace(decoded[marker.value_start : value_end])
        normalized = normalize_key(marker.key)

        if normalized in SECTION_KEYS and not value:
            items.append(DescriptionItem("section", title=marker.key))
        else:
            items.append(DescriptionItem("kv", key=marker.key, value=value))
            fields.setdefault(normalized, []).append(value)

        cursor = value_end

    _append_text(items, decoded[cursor:])
    return ParsedDescription(
        raw=raw_trimmed,
        items=tuple(items),
        fields={k: tuple(v) for k, v in fields.items()},
    )


def _append_text(items: list[DescriptionItem], text: str) -> None:
    value = collapse_whitespace(text)
    if value:
        items.append(DescriptionItem("text", value=value))


# ---------------------------------------------------------------------------
# Extraction helpers
# ---------------------------------------------------------------------------


def extract_location_info(desc: ParsedDescription) -> LocationInfo | None:
    """Location from ``Adres``/``Miasto``/``Kraj``, or None if none present."""
    info = LocationInfo(
        address=desc.get_first("adres"),
        city=desc.get_first("miasto"),
        country=desc.get_first("kraj"),
    )
    return None if info.is_empty() else info


def extract_card_info(desc: ParsedDescription, statement_currency: str) -> CardInfo | None:
    """Card details, or None if none of the card fields resolved.

    ``Data wykonania operacji`` must be ``YYYY-MM-DD``; ``Oryginalna kwota
    operacji`` is an amount with an optional trailing currency code that
    defaults to *statement_currency*.
    """
    op_date_raw = desc.get_first("data wykonania operacji")
    original_raw = desc.get_first("oryginalna kwota operacji")
    info = CardInfo(
        card_number_masked=desc.get_first("numer karty"),
        operation_date=parse_ymd(op_date_raw) if op_date_raw else None,
        original_amount=(
            parse_money_with_currency(original_raw, statement_currency)
            if original_raw
            else None
        ),
    )
    return None if info.is_empty() else info


def extract_reference_info(desc: ParsedDescription) -> ReferenceInfo | None:
    """Reference numbers, phone number and card operation id, if any."""
    info = ReferenceInfo(
        reference_number=desc.get_first("numer referencyjny"),
        own_reference=desc.get_first("referencje wlasne zleceniodawcy"),
        phone_number=desc.get_first("numer telefonu"),
        operation_id=desc.get_first("operacja"),
    )
    return None if info.is_empty() else info


def parse_ymd(raw: str | None) -> date | None:
    """Parse ``YYYY-MM-DD``; returns None for any other shape or a bad date."""
    m = _YMD_RE.match((raw or "").strip())
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def parse_money_with_currency(raw: str | None, fallback_currency: str) -> Money | None:
    """Parse ``"126,95 PLN"`` / ``"126.95"`` style text.

    Returns None when the text is not an amount optionally followed by a
    three-letter currency code.
    """
    text = collapse_whitespace(raw)
    if not text:
        return None
    m = _AMOUNT_WITH_CURRENCY_RE.match(text)
    if not m:
        return None
    return Money.parse(m.group(1), m.group(2) or fallback_currency)
