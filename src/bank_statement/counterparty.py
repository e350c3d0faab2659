"""Counterparty resolution from a parsed description.

The narration carries either recipient (``... odbiorcy``) or sender
(``... nadawcy``) fields.  Which set applies is decided by the sign of the
amount alone: money going out names a recipient, money coming in names a
sender.  The heuristic is applied to every operation type, including card
payments and fees, where it usually finds nothing and returns None.

Depends on ``models.py`` only.
"""

from __future__ import annotations

from bank_statement.models import Counterparty, Money, ParsedDescription

RECIPIENT_KEYS = ("rachunek odbiorcy", "nazwa odbiorcy", "adres odbiorcy")
SENDER_KEYS = ("rachunek nadawcy", "nazwa nadawcy", "adres nadawcy")


def extract_counterparty(desc: ParsedDescription, amount: Money) -> Counterparty | None:
    """Build the :class:`Counterparty` of a transaction.

    Args:
        desc: Parsed description of the transaction.
        amount: Signed transaction amount; negative selects recipient fields.

    Returns:
        The counterparty, or None when name, account and identifier are
        all missing.
    """
    account_key, name_key, address_key = (
        RECIPIENT_KEYS if amount.is_negative() else SENDER_KEYS
    )
    account = desc.get_first(account_key)
    name = desc.get_first(name_key)
    address = desc.get_first(address_key)
    identifier = _extract_identifier(desc)

    if not (account or name or identifier):
        return None
    return Counterparty(name=name, account=account, id=identifier, address=address)


def _extract_identifier(desc: ParsedDescription) -> str | None:
    """Identifier from ``Identyfikator odbiorcy``, else ``Nazwa i nr identyfikatora``.

    The second field mixes a label with the number (``"NIP 1234567890"``).
    Both are returned as written; :class:`Counterparty` keeps the digits
    when there are at least eight of them and the stripped text otherwise.
    """
    direct = desc.get_first("identyfikator odbiorcy")
    if direct:
        return direct
    combined = desc.get_first("nazwa i nr identyfikatora")
    return (combined or "").strip() or None
