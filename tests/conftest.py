"""Pytest configuration for test isolation.

Puts the workspace packages (``packages/`` and ``libs/db/src``) and the repo
root on ``sys.path`` so ``ledger_import``, ``db`` and ``tests.helpers`` import
without an editable install. Engines cached by ``db.client`` are disposed
after each test so per-test SQLite files never leak between tests, and the
``LEDGER_IMPORT_*`` settings are cleared so a developer's ``.env`` cannot
change thresholds under the tests.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
for _p in (_ROOT / "libs" / "db" / "src", _ROOT / "packages", _ROOT):
    if str(_p) not in sys.path:
        sys.path.insert(0, str(_p))


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in (
        "LEDGER_IMPORT_AUTO_MATCH",
        "LEDGER_IMPORT_REVIEW_MATCH",
        "LEDGER_IMPORT_FETCH_CONCURRENCY",
        "LEDGER_IMPORT_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    from db.client import dispose_engines

    dispose_engines()
