"""
Settings loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into a frozen
``ledger_config.schema.LedgerSettings``.

Architecture position
---------------------
**Config layer**.  Sits above ``ledger_kernel``; the kernel never imports
from this package.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown role name or wrong section type  -> ``ValueError``.
* Invalid date  -> ``ValueError`` from ``date.fromisoformat``.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import LedgerSettings
from ledger_kernel.domain.values import AccountRole, JournalRole


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _parse_roles(section: str, data: Any, role_type: type[Enum]) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{section}' must be a mapping of role to value")
    parsed = {}
    for key, value in data.items():
        try:
            role = role_type(str(key))
        except ValueError:
            valid = ", ".join(r.value for r in role_type)
            raise ValueError(f"Unknown role '{key}' in '{section}' (expected one of: {valid})") from None
        if value is not None and str(value).strip():
            parsed[role] = str(value).strip()
    return parsed


def parse_date(value: Any) -> date | None:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """Build LedgerSettings from an already-loaded mapping."""
    return LedgerSettings(
        default_accounts=_parse_roles("default_accounts", data.get("default_accounts"), AccountRole),
        default_journals=_parse_roles("default_journals", data.get("default_journals"), JournalRole),
        default_warehouse_code=data.get("default_warehouse_code"),
        payment_number_prefix=str(data.get("payment_number_prefix", "PAY-")),
        closed_through=parse_date(data.get("closed_through")),
        database_url=data.get("database_url"),
    )


def load_settings(path: Path | str) -> LedgerSettings:
    return parse_settings(load_yaml_file(Path(path)))
