"""Configuration loading, writing, and project initialization.

Reads TOML config files using stdlib ``tomllib`` and writes them using
``tomli_w``.  Depends only on ``models.py``.
"""

from __future__ import annotations

import sys
from dataclasses import asdict
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

from bank_statement.models import AppConfig, SheetsConfig

CONFIG_FILENAME = "config.toml"

# ---------------------------------------------------------------------------
# Default file content
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_TOML = """\
# bank-statement configuration

[general]
output_dir = "output"
default_currency = "PLN"

[parsing]
best_effort = false          # collect per-row errors instead of aborting
dedup = false                # drop rows with a repeated dedup hash
sort_balance_chain = true    # order same-day rows along the balance chain

[recurring]
min_count = 2

[sheets]
credentials_file = "service-account.json"
spreadsheet_id = ""
worksheet_name = "Historia"
accounts_worksheet = "Rachunki"
account_map_range = "Rachunki_Mapa!A1:G"
"""

# Directories that ``initialize`` creates.
_INIT_DIRS = [
    "input",
    "output",
]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(root: Path) -> AppConfig:
    """Load ``config.toml`` from *root* and return an :class:`AppConfig`.

    Missing sections and keys fall back to the :class:`AppConfig` defaults.

    Args:
        root: Project root directory containing ``config.toml``.

    Returns:
        A fully-populated :class:`AppConfig` instance.

    Raises:
        FileNotFoundError: If ``config.toml`` does not exist.
    """
    data = _read_toml(Path(root) / CONFIG_FILENAME)
    defaults = AppConfig()
    sheet_defaults = SheetsConfig()

    general = data.get("general", {})
    parsing = data.get("parsing", {})
    recurring = data.get("recurring", {})
    sheets = data.get("sheets", {})

    return AppConfig(
        output_dir=general.get("output_dir", defaults.output_dir),
        default_currency=general.get("default_currency", defaults.default_currency),
        best_effort=parsing.get("best_effort", defaults.best_effort),
        dedup=parsing.get("dedup", defaults.dedup),
        sort_balance_chain=parsing.get("sort_balance_chain", defaults.sort_balance_chain),
        recurring_min_count=recurring.get("min_count", defaults.recurring_min_count),
        sheets=SheetsConfig(
            credentials_file=sheets.get("credentials_file", sheet_defaults.credentials_file),
            spreadsheet_id=sheets.get("spreadsheet_id", sheet_defaults.spreadsheet_id),
            worksheet_name=sheets.get("worksheet_name", sheet_defaults.worksheet_name),
            accounts_worksheet=sheets.get(
                "accounts_worksheet", sheet_defaults.accounts_worksheet
            ),
            account_map_range=sheets.get("account_map_range", sheet_defaults.account_map_range),
        ),
    )


def load_config_or_default(root: Path) -> AppConfig:
    """Like :func:`load_config`, but returns defaults when the file is missing."""
    path = Path(root) / CONFIG_FILENAME
    if not path.exists():
        return AppConfig()
    return load_config(root)


def save_config(root: Path, config: AppConfig) -> Path:
    """Write *config* to ``config.toml`` under *root* (overwriting it).

    Comments in an existing file are not preserved.

    Returns:
        The path of the written file.
    """
    document = {
        "general": {
            "output_dir": config.output_dir,
            "default_currency": config.default_currency,
        },
        "parsing": {
            "best_effort": config.best_effort,
            "dedup": config.dedup,
            "sort_balance_chain": config.sort_balance_chain,
        },
        "recurring": {"min_count": config.recurring_min_count},
        "sheets": asdict(config.sheets),
    }
    path = Path(root) / CONFIG_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(tomli_w.dumps(document), encoding="utf-8")
    return path


def initialize(target_dir: Path) -> None:
    """Create the standard directory structure and default config file.

    Idempotent: existing directories are left alone and an existing
    ``config.toml`` is **not** overwritten.

    Args:
        target_dir: The directory in which to create the project structure.
    """
    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    for d in _INIT_DIRS:
        (target_dir / d).mkdir(parents=True, exist_ok=True)

    _write_if_missing(target_dir / CONFIG_FILENAME, _DEFAULT_CONFIG_TOML)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _read_toml(path: Path) -> dict:
    """Read and parse a TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _write_if_missing(path: Path, content: str) -> None:
    """Write *content* to *path* only if the file does not already exist."""
    if not path.exists():
        path.write_text(content, encoding="utf-8")
