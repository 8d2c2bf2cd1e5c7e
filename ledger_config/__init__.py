"""
ledger_config -- single public entrypoint for ledger settings.

Responsibility:
    Provides the one way to obtain settings at runtime through
    ``get_settings()``.  Returns a frozen ``LedgerSettings``; bridges in
    this package translate it into kernel inputs (PostingDefaults, the
    posting gate).

Architecture position:
    Configuration -- sits above ``ledger_kernel``.  The kernel MUST NEVER
    import from ``ledger_config``.

Invariants enforced:
    - ``DATABASE_URL`` in the environment overrides the file's
      database_url; nothing else is read from the environment.
    - Unknown role names in the YAML are an error, not ignored.

Failure modes:
    - ``FileNotFoundError`` -- settings file missing.
    - ``ValueError`` -- unknown role or malformed value.
    - ``MissingConfigurationError`` -- ``required=True`` and a role is
      not configured.

Audit relevance:
    Every ``get_settings()`` call emits a ``LEDGER_CONFIG_TRACE`` record
    naming the file and the configured roles.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from ledger_config.loader import load_settings
from ledger_config.schema import LedgerSettings

_logger = logging.getLogger("ledger_kernel.config")

_DEFAULT_SETTINGS_FILE = Path(__file__).parent / "sets" / "default.yaml"


def get_settings(path: Path | str | None = None, required: bool = False) -> LedgerSettings:
    """
    Load ledger settings.

    Args:
        path: Settings YAML.  Defaults to ledger_config/sets/default.yaml.
        required: Validate that every account and journal role is set.
    """
    settings_file = Path(path) if path is not None else _DEFAULT_SETTINGS_FILE
    settings = load_settings(settings_file)

    env_url = os.environ.get("DATABASE_URL")
    if env_url:
        settings = replace(settings, database_url=env_url)

    if required:
        settings.require_all()

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "settings_file": str(settings_file),
            "account_roles": sorted(r.value for r in settings.default_accounts),
            "journal_roles": sorted(r.value for r in settings.default_journals),
            "default_warehouse_code": settings.default_warehouse_code,
            "closed_through": settings.closed_through.isoformat() if settings.closed_through else None,
        },
    )
    return settings


__all__ = ["LedgerSettings", "get_settings", "load_settings"]
