"""Pipeline orchestration for bank-statement.

Composes the processing stages: read, parse, deduplicate, sort by dates and
sort by balance chain.  Each stage receives a list of
:class:`~bank_statement.models.Transaction` objects and returns a
:class:`~bank_statement.models.StageResult`.  The pipeline accumulates
warnings and errors from every stage into a final
:class:`~bank_statement.models.PipelineResult`.
"""

from __future__ import annotations

import logging
from pathlib import Path

from bank_statement.models import (
    PipelineResult,
    StageResult,
    StatementParseError,
    Transaction,
)
from bank_statement.parsers import get_parser, parse_statement
from bank_statement.sorting import deduplicate, sort_by_balance_chain, sort_by_dates

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def run(
    input_path: Path,
    *,
    best_effort: bool = False,
    dedup: bool = False,
    sort_balance_chain: bool = True,
    source_format: str | None = None,
) -> PipelineResult:
    """Run the full processing pipeline for one statement file.

    Stages executed in order:

    1. **Read** -- load the file as UTF-8 text.
    2. **Parse** -- detect the format (unless *source_format* is given) and
       normalize every row.
    3. **Deduplicate** -- optional; drop repeated ``dedup_hash`` values.
    4. **Sort by dates** -- always; ``(operation_date, value_date, hash)``.
    5. **Sort by balance chain** -- optional (default on).

    Args:
        input_path: Statement file (XML or HTML).
        best_effort: Collect per-row errors instead of aborting.
        dedup: Enable the dedup stage.
        sort_balance_chain: Enable the balance-chain stage.
        source_format: ``"xml"`` or ``"html"`` to skip format detection.

    Returns:
        A :class:`PipelineResult` with the final transaction list, all
        accumulated warnings and errors, and the statement metadata.

    Raises:
        StatementParseError: If the file cannot be read or the document
            cannot be parsed (or, in strict mode, any row fails).
    """
    all_warnings: list[str] = []
    all_errors: list[str] = []

    # -- Stage 1: Read --------------------------------------------------------
    text = _read_stage(input_path)

    # -- Stage 2: Parse -------------------------------------------------------
    if source_format:
        parse_result = get_parser(source_format)(text, best_effort=best_effort)
    else:
        parse_result = parse_statement(text, best_effort=best_effort)
    all_warnings.extend(parse_result.warnings)
    all_errors.extend(parse_result.errors)
    transactions = parse_result.transactions
    logger.info(
        "Parsed %d transaction(s) from %s (%d row error(s))",
        len(transactions),
        input_path,
        len(parse_result.errors),
    )

    # -- Stage 3: Deduplicate -------------------------------------------------
    if dedup:
        dedup_result = deduplicate(transactions)
        all_warnings.extend(dedup_result.warnings)
        all_errors.extend(dedup_result.errors)
        transactions = dedup_result.transactions
        logger.info("After dedup: %d transaction(s)", len(transactions))

    # -- Stage 4: Sort by dates -----------------------------------------------
    transactions = _sort_stage(transactions, sort_balance_chain).transactions

    return PipelineResult(
        transactions=transactions,
        warnings=all_warnings,
        errors=all_errors,
        meta=parse_result.meta,
    )


# ---------------------------------------------------------------------------
# Stage implementations
# ---------------------------------------------------------------------------


def _read_stage(input_path: Path) -> str:
    try:
        return Path(input_path).read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise StatementParseError(
            f"{input_path}: file not found", path=str(input_path)
        ) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise StatementParseError(f"{input_path}: {exc}", path=str(input_path)) from exc


def _sort_stage(transactions: list[Transaction], balance_chain: bool) -> StageResult:
    """Stages 4 and 5: date sort, then the optional balance-chain sort."""
    ordered = sort_by_dates(transactions)
    if balance_chain:
        ordered = sort_by_balance_chain(ordered)
        logger.debug("Applied balance-chain ordering to %d transaction(s)", len(ordered))
    return StageResult(transactions=ordered)
