"""Click CLI entry point for the bank-statement command.

Handles argument parsing, config loading, and error display. All business
logic is delegated to ``pipeline``, ``reports``, ``recurring``, ``sheets``,
``config``, and ``export`` modules.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from bank_statement import __version__
from bank_statement.models import AppConfig, PipelineResult, StatementParseError, format_error


def _configure_logging(verbose: bool, debug: bool) -> None:
    """Set up logging based on verbosity flags."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        force=True,
    )


def _load_config(root: Path) -> AppConfig:
    """Load ``config.toml`` if present, defaults otherwise; exits on a bad file."""
    from bank_statement.config import load_config_or_default

    try:
        return load_config_or_default(root)
    except Exception as exc:
        click.echo(f"Error loading configuration: {exc}", err=True)
        sys.exit(1)


def _run_pipeline(
    input_path: str,
    config: AppConfig,
    best_effort: bool = False,
    dedup: bool = False,
    sort_balance_chain: bool = True,
) -> PipelineResult:
    """Run the pipeline; a stage is on when enabled by the flag or by config."""
    from bank_statement.pipeline import run

    try:
        result = run(
            Path(input_path),
            best_effort=best_effort or config.best_effort,
            dedup=dedup or config.dedup,
            sort_balance_chain=sort_balance_chain and config.sort_balance_chain,
        )
    except StatementParseError as exc:
        click.echo(f"Error: {format_error(exc)}", err=True)
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error running pipeline: {exc}", err=True)
        sys.exit(1)

    if result.errors:
        click.echo(
            f"Parsed with {len(result.errors)} error(s). First error: {result.errors[0]}",
            err=True,
        )
    return result


def _write_json(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


@click.group()
@click.version_option(version=__version__, prog_name="bank-statement")
def cli() -> None:
    """Normalize bank statements (XML/HTML) into typed transactions, reports and sheets."""


@cli.command()
@click.option(
    "--dir", "target_dir", default=".", type=click.Path(), help="Directory to initialize."
)
def init(target_dir: str) -> None:
    """Initialize a new data directory with the standard structure."""
    from bank_statement.config import initialize

    target = Path(target_dir).resolve()

    try:
        initialize(target)
    except Exception as exc:
        click.echo(f"Error initializing project: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Initialized bank-statement project in {target}")


@cli.command()
@click.option("--in", "input_path", required=True, type=click.Path(), help="Statement file (XML/HTML).")
@click.option("--out", "output_path", required=True, type=click.Path(), help="Output file (.json or .csv).")
@click.option(
    "--format", "fmt", type=click.Choice(["json", "csv"]), default=None,
    help="Output format (default: guessed from the --out extension).",
)
@click.option("--best-effort", is_flag=True, default=False, help="Collect row errors instead of aborting.")
@click.option("--dedup", is_flag=True, default=False, help="Remove duplicate transactions by hash.")
@click.option(
    "--sort-balance-chain/--no-sort-balance-chain", default=True,
    help="Order same-day transactions along the balance chain (also needs config parsing.sort_balance_chain).",
)
@click.option("--verbose", is_flag=True, default=False, help="Detailed progress output.")
@click.option("--debug", is_flag=True, default=False, help="Developer-level diagnostics.")
def parse(
    input_path: str,
    output_path: str,
    fmt: str | None,
    best_effort: bool,
    dedup: bool,
    sort_balance_chain: bool,
    verbose: bool,
    debug: bool,
) -> None:
    """Parse a statement and export the transactions to JSON or CSV."""
    _configure_logging(verbose, debug)
    config = _load_config(Path.cwd())
    result = _run_pipeline(input_path, config, best_effort, dedup, sort_balance_chain)

    from bank_statement.export import export, print_summary

    try:
        written = export(Path(output_path), result.transactions, fmt)
    except Exception as exc:
        click.echo(f"Error writing output: {exc}", err=True)
        sys.exit(1)

    if verbose:
        print_summary(result)
    click.echo(f"OK. Transactions: {len(result.transactions)}. Out: {written}")


@cli.command()
@click.option("--in", "input_path", required=True, type=click.Path(), help="Statement file (XML/HTML).")
@click.option("--out", "output_path", required=True, type=click.Path(), help="Output JSON file.")
@click.option(
    "--type", "report_type", type=click.Choice(["monthly", "vat", "top"]), default="monthly",
    show_default=True, help="Report to build.",
)
@click.option("--top", "top_n", type=int, default=10, show_default=True, help="Rows in the top report.")
@click.option("--best-effort", is_flag=True, default=False, help="Collect row errors instead of aborting.")
@click.option("--verbose", is_flag=True, default=False, help="Detailed progress output.")
def report(
    input_path: str,
    output_path: str,
    report_type: str,
    top_n: int,
    best_effort: bool,
    verbose: bool,
) -> None:
    """Build a monthly, VAT or top-counterparty report as JSON."""
    _configure_logging(verbose, debug=False)
    config = _load_config(Path.cwd())
    result = _run_pipeline(input_path, config, best_effort)

    from bank_statement.reports import (
        monthly_summary,
        report_to_json,
        top_counterparties,
        vat_summary,
    )

    if report_type == "vat":
        rows = vat_summary(result.transactions)
    elif report_type == "top":
        rows = top_counterparties(result.transactions, limit=top_n)
    else:
        rows = monthly_summary(result.transactions)

    payload = report_to_json(rows)
    _write_json(Path(output_path), payload)
    click.echo(f"OK. Report {report_type}: {len(payload)} row(s). Out: {output_path}")


@cli.command()
@click.option("--in", "input_path", required=True, type=click.Path(), help="Statement file (XML/HTML).")
@click.option("--out", "output_path", required=True, type=click.Path(), help="Output JSON file.")
@click.option("--min-count", type=int, default=None, help="Minimum occurrences (default from config).")
@click.option(
    "--include-income", is_flag=True, default=False,
    help="Consider incoming transactions too (default: expenses only).",
)
@click.option("--best-effort", is_flag=True, default=False, help="Collect row errors instead of aborting.")
@click.option("--verbose", is_flag=True, default=False, help="Detailed progress output.")
def recurring(
    input_path: str,
    output_path: str,
    min_count: int | None,
    include_income: bool,
    best_effort: bool,
    verbose: bool,
) -> None:
    """Detect recurring payees and write them as JSON."""
    _configure_logging(verbose, debug=False)
    config = _load_config(Path.cwd())
    result = _run_pipeline(input_path, config, best_effort)

    from bank_statement.recurring import find_recurring_payees
    from bank_statement.reports import report_to_json

    payees = find_recurring_payees(
        result.transactions,
        min_count=config.recurring_min_count if min_count is None else min_count,
        expenses_only=not include_income,
    )
    payload = report_to_json(payees)
    _write_json(Path(output_path), payload)
    click.echo(f"OK. Recurring: {len(payload)}. Out: {output_path}")


@cli.command("sheets-upload")
@click.option("--in", "input_path", required=True, type=click.Path(exists=True), help="CSV export to upload.")
@click.option("--spreadsheet", default=None, help="Spreadsheet id (default from config).")
@click.option("--sheet", default=None, help="Worksheet name (default from config).")
@click.option(
    "--mode", type=click.Choice(["replace", "append"]), default="replace",
    show_default=True, help="Replace the worksheet or append to it.",
)
@click.option("--include-header", is_flag=True, default=False, help="In append mode, send the header row too.")
@click.option(
    "--apply-account-map/--no-apply-account-map", default=True,
    help="Set isPracownik/isZarząd from the account-map sheet.",
)
@click.option("--verbose", is_flag=True, default=False, help="Detailed progress output.")
def sheets_upload(
    input_path: str,
    spreadsheet: str | None,
    sheet: str | None,
    mode: str,
    include_header: bool,
    apply_account_map: bool,
    verbose: bool,
) -> None:
    """Upload a CSV export to Google Sheets."""
    _configure_logging(verbose, debug=False)
    root = Path.cwd()
    config = _load_config(root)
    if spreadsheet:
        config.sheets.spreadsheet_id = spreadsheet
    if sheet:
        config.sheets.worksheet_name = sheet

    from bank_statement.sheets import upload_csv

    try:
        count = upload_csv(
            Path(input_path),
            config.sheets,
            root,
            mode=mode,
            include_header=include_header,
            apply_account_map=apply_account_map,
        )
    except (ImportError, FileNotFoundError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error pushing to Google Sheets: {exc}", err=True)
        sys.exit(1)

    verb = "Appended" if mode == "append" else "Replaced with"
    click.echo(f"OK. {verb} {count} row(s) in {config.sheets.spreadsheet_id} / {config.sheets.worksheet_name}")


@cli.command("sheets-accounts")
@click.option("--in", "input_path", required=True, type=click.Path(), help="Statement file (XML/HTML).")
@click.option("--spreadsheet", default=None, help="Spreadsheet id (default from config).")
@click.option("--sheet", default=None, help="Worksheet name (default from config).")
@click.option("--best-effort", is_flag=True, default=False, help="Collect row errors instead of aborting.")
@click.option("--verbose", is_flag=True, default=False, help="Detailed progress output.")
def sheets_accounts(
    input_path: str,
    spreadsheet: str | None,
    sheet: str | None,
    best_effort: bool,
    verbose: bool,
) -> None:
    """Upload the recipient-accounts table built from a statement."""
    _configure_logging(verbose, debug=False)
    root = Path.cwd()
    config = _load_config(root)
    if spreadsheet:
        config.sheets.spreadsheet_id = spreadsheet
    if sheet:
        config.sheets.accounts_worksheet = sheet

    result = _run_pipeline(input_path, config, best_effort)

    from bank_statement.sheets import upload_accounts

    try:
        count = upload_accounts(result.transactions, config.sheets, root)
    except (ImportError, FileNotFoundError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    except Exception as exc:
        click.echo(f"Error pushing to Google Sheets: {exc}", err=True)
        sys.exit(1)

    click.echo(
        f"OK. Accounts rows: {count}. Out: {config.sheets.spreadsheet_id} / {config.sheets.accounts_worksheet}"
    )
