"""Concurrent, fail-fast fetch of everything a run needs before row processing.

Registries, reference tables and ledger history are independent reads, so they
run on a bounded thread pool. The first failure cancels work that has not
started yet and surfaces as :class:`~ledger_import.errors.ReferenceDataError`;
no row is processed after a failed prefetch.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .errors import ReferenceDataError
from .logging_setup import get_logger
from .models import (
    AccountMappingRule,
    ClientRecord,
    ExistingRecord,
    Ledger,
    PayeeRecord,
    ProjectAlias,
    ProjectRecord,
)
from .sources import ImportSources

_logger = get_logger("ledger_import.prefetch")


@dataclass(frozen=True, slots=True)
class ReferenceData:
    payees: list[PayeeRecord] = field(default_factory=list)
    clients: list[ClientRecord] = field(default_factory=list)
    projects: list[ProjectRecord] = field(default_factory=list)
    project_aliases: list[ProjectAlias] = field(default_factory=list)
    account_mappings: list[AccountMappingRule] = field(default_factory=list)
    external_ids: dict[Ledger, dict[str, ExistingRecord]] = field(default_factory=dict)
    history: list[ExistingRecord] = field(default_factory=list)


def _run_all(tasks: dict[str, Callable[[], Any]], concurrency: int) -> dict[str, Any]:
    if concurrency < 1:
        raise ValueError("concurrency must be a positive integer")
    results: dict[str, Any] = {}
    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="ledger-prefetch") as pool:
        futures: dict[Future, str] = {pool.submit(fn): name for name, fn in tasks.items()}
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        for fut in done:
            exc = fut.exception()
            if exc is not None:
                for p in pending:
                    p.cancel()
                pool.shutdown(wait=False, cancel_futures=True)
                name = futures[fut]
                _logger.error("Prefetch of %s failed: %s", name, exc)
                raise ReferenceDataError(name, exc) from exc
            results[futures[fut]] = fut.result()
    return results


def prefetch_reference_data(
    sources: ImportSources,
    *,
    window: tuple[date, date] | None,
    external_ids: dict[Ledger, Sequence[str]],
    concurrency: int = 4,
) -> ReferenceData:
    """Load registries, reference tables and the history needed for dedup.

    ``window`` bounds the composite-key history query; when ``None`` (empty
    batch) no history is read. External-id lookups are skipped for a ledger
    with no ids in the batch.
    """

    tasks: dict[str, Callable[[], Any]] = {
        "payees": sources.payees.list_all,
        "clients": sources.clients.list_all,
        "projects": sources.projects.list_all,
        "project_aliases": sources.project_aliases.list_all,
        "account_mappings": sources.account_mappings.list_all,
    }
    stores = {Ledger.COST: sources.expenses, Ledger.REVENUE: sources.revenues}
    for ledger, store in stores.items():
        ids = list(dict.fromkeys(external_ids.get(ledger, ())))
        if ids:
            tasks[f"{ledger.value}_external_ids"] = lambda store=store, ids=ids: (
                store.query_by_external_id(ids)
            )
        if window is not None:
            start, end = window
            tasks[f"{ledger.value}_history"] = lambda store=store, start=start, end=end: (
                store.query_by_date_range(start, end)
            )

    results = _run_all(tasks, concurrency)

    history: list[ExistingRecord] = []
    for ledger in stores:
        history.extend(results.get(f"{ledger.value}_history", []))
    data = ReferenceData(
        payees=list(results["payees"]),
        clients=list(results["clients"]),
        projects=list(results["projects"]),
        project_aliases=list(results["project_aliases"]),
        account_mappings=list(results["account_mappings"]),
        external_ids={
            ledger: dict(results.get(f"{ledger.value}_external_ids", {})) for ledger in stores
        },
        history=history,
    )
    _logger.debug(
        "Prefetched %d payees, %d clients, %d projects, %d history records",
        len(data.payees),
        len(data.clients),
        len(data.projects),
        len(data.history),
    )
    return data


__all__ = ["ReferenceData", "prefetch_reference_data"]
