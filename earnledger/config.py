"""
earnledger.config — YAML Configuration Loader
==============================================

**Why this file exists:**
This module reads ``config.yaml`` for **infrastructure-only** settings
(service identity, API port, transaction retry budget, client flush
interval).  Business values such as the minimum withdrawal amount live in
the ``settings`` database table and are read through
:mod:`earnledger.services.settings_service`.

Usage::

    from earnledger.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.app_name)          # "EarnLedger"
    print(cfg.tx_max_attempts)   # 5
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_TX_MAX_ATTEMPTS = 5
DEFAULT_TX_RETRY_DELAY = 0.01
DEFAULT_CLIENT_FLUSH_SECONDS = 5.0


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure only.
# Business tuning lives in the DB ``settings`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LedgerConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str

    # API
    api_port: int

    # Optimistic concurrency
    tx_max_attempts: int = DEFAULT_TX_MAX_ATTEMPTS
    tx_retry_delay: float = DEFAULT_TX_RETRY_DELAY  # seconds, doubled per retry

    # Client batching
    client_flush_seconds: float = DEFAULT_CLIENT_FLUSH_SECONDS


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> LedgerConfig:
    """Read *path* and return a :class:`LedgerConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``tx_max_attempts`` is less than 1.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    attempts = int(raw.get("tx_max_attempts", DEFAULT_TX_MAX_ATTEMPTS))
    if attempts < 1:
        raise ValueError(f"tx_max_attempts must be >= 1 (got {attempts})")

    return LedgerConfig(
        app_name=raw["app_name"],
        api_port=int(raw["api_port"]),
        tx_max_attempts=attempts,
        tx_retry_delay=float(raw.get("tx_retry_delay", DEFAULT_TX_RETRY_DELAY)),
        client_flush_seconds=float(
            raw.get("client_flush_seconds", DEFAULT_CLIENT_FLUSH_SECONDS)
        ),
    )
