"""Run settings for the import engine.

Settings are plain values resolved once per run. ``ImportSettings.from_env``
reads optional overrides from the environment (the CLI loads ``.env`` first):

- ``LEDGER_IMPORT_AUTO_MATCH``: confidence at which a payee/client match is
  applied as identity (default 75).
- ``LEDGER_IMPORT_REVIEW_MATCH``: lower bound of the manual-review band
  (default 40).
- ``LEDGER_IMPORT_FETCH_CONCURRENCY``: worker threads for the reference
  prefetch (default 4, capped at 16).
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from db.models.ledger import UNASSIGNED_CLIENT_ID, UNASSIGNED_PROJECT_ID

from .logging_setup import get_logger

_logger = get_logger("ledger_import.settings")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        _logger.warning("Ignoring non-numeric %s=%r; using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        _logger.warning("Ignoring non-integer %s=%r; using %s", name, raw, default)
        return default


@dataclass(frozen=True, slots=True)
class ImportSettings:
    """Thresholds, placeholders and special codes used by a single import run."""

    auto_match_threshold: float = 75.0
    review_threshold: float = 40.0
    # Resolver-level cutoffs (see ``resolver.resolve``)
    resolver_best_threshold: float = 60.0
    resolver_min_confidence: float = 30.0
    unassigned_project_id: str = UNASSIGNED_PROJECT_ID
    unassigned_client_id: str = UNASSIGNED_CLIENT_ID
    # Work-order remaps: any code starting with "fuel" and the bare "ga" token
    fuel_project_code: str = "001-GAS"
    overhead_project_code: str = "002-GA"
    history_padding_days: int = 1
    fetch_concurrency: int = 4

    def __post_init__(self) -> None:
        if not 0 <= self.review_threshold <= self.auto_match_threshold <= 100:
            raise ValueError(
                "thresholds must satisfy 0 <= review_threshold <= auto_match_threshold <= 100"
            )
        if self.fetch_concurrency < 1:
            raise ValueError("fetch_concurrency must be a positive integer")
        if self.history_padding_days < 0:
            raise ValueError("history_padding_days must be >= 0")

    @classmethod
    def from_env(cls) -> ImportSettings:
        concurrency = _env_int("LEDGER_IMPORT_FETCH_CONCURRENCY", 4)
        return cls(
            auto_match_threshold=_env_float("LEDGER_IMPORT_AUTO_MATCH", 75.0),
            review_threshold=_env_float("LEDGER_IMPORT_REVIEW_MATCH", 40.0),
            fetch_concurrency=max(1, min(concurrency, 16)),
        )


__all__ = ["ImportSettings"]
