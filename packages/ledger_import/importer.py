"""Import orchestrator.

``TransactionImporter.run`` drives one import of an export batch:

1. normalize every row (parse problems become defaults plus warnings);
2. prefetch registries, reference tables and ledger history once
   (:mod:`ledger_import.prefetch`), aborting the run on failure;
3. process rows sequentially in input order:

   - route by transaction type (``invoice`` to revenue, everything else to cost);
   - in-batch duplicate check, then cross-run check (external id first,
     composite key second);
   - resolve the counterparty (payees for cost rows, clients for revenue);
   - resolve the project, falling back to the unassigned placeholder;
   - classify cost rows through the category cascade;
   - append the ledger record.

4. freeze the run state into an :class:`~ledger_import.models.ImportResult`.

All mutable state lives in a per-run ``_RunState``; the importer itself can be
reused for several runs.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Literal

from pydantic import ValidationError

from .categorize import CategoryTracker, classify, user_mapping_index
from .duplicates import CrossRunDetector, InBatchDetector, history_window, key_for, reconcile
from .logging_setup import get_logger
from .models import (
    AutoCreatedPayee,
    ClassificationSource,
    ClientRecord,
    DatabaseDuplicate,
    EntityMatchInfo,
    ExistingRecord,
    ExpenseRecord,
    ImportResult,
    InBatchDuplicate,
    Ledger,
    MatchCandidate,
    MatchKind,
    MatchLogEntry,
    NormalizedTransaction,
    PayeeRecord,
    PendingReview,
    RawTransactionRow,
    Reconciliation,
    ReimportedDuplicate,
    ResolveResult,
    RevenueRecord,
    ReviewSuggestion,
    UnmatchedProject,
)
from .normalizers import normalize_row
from .prefetch import prefetch_reference_data
from .resolver import (
    EntityMatchPolicy,
    ProjectMatcher,
    build_payee_draft,
    infer_payee_type,
    resolve,
)
from .settings import ImportSettings
from .similarity import normalize_text
from .sources import ImportSources

_logger = get_logger("ledger_import.importer")

_UNASSIGNED_SUFFIX = " (Unassigned)"
_BLENDED = "jaro_winkler+levenshtein+token"

type _EntityDecision = Literal[
    "auto_matched", "created", "create_failed", "pending_review", "unmatched"
]


@dataclass(slots=True)
class _RunState:
    """Mutable accumulator for a single run; frozen by :meth:`finish`."""

    total_rows: int
    import_batch_id: str | None
    expenses: list[ExpenseRecord] = field(default_factory=list)
    revenues: list[RevenueRecord] = field(default_factory=list)
    unassociated_expenses: int = 0
    unassociated_revenues: int = 0
    unassigned_client_revenues: int = 0
    in_batch: dict[Ledger, list[InBatchDuplicate]] = field(
        default_factory=lambda: {Ledger.COST: [], Ledger.REVENUE: []}
    )
    database: dict[Ledger, list[DatabaseDuplicate]] = field(
        default_factory=lambda: {Ledger.COST: [], Ledger.REVENUE: []}
    )
    matched_existing: dict[Ledger, list[ExistingRecord]] = field(
        default_factory=lambda: {Ledger.COST: [], Ledger.REVENUE: []}
    )
    reimported: list[ReimportedDuplicate] = field(default_factory=list)
    auto_created: list[AutoCreatedPayee] = field(default_factory=list)
    payee_matches: list[EntityMatchInfo] = field(default_factory=list)
    client_matches: list[EntityMatchInfo] = field(default_factory=list)
    pending: dict[tuple[str, str], PendingReview] = field(default_factory=dict)
    unmatched_projects: dict[str, list[Decimal]] = field(default_factory=dict)
    match_log: list[MatchLogEntry] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    categories: CategoryTracker = field(default_factory=CategoryTracker)

    def add_pending(self, review: PendingReview) -> None:
        self.pending.setdefault((review.entity_type, normalize_text(review.name)), review)

    def _reconciliation(self, ledger: Ledger) -> Reconciliation | None:
        dups = [d.transaction.amount for d in self.in_batch[ledger]]
        dups += [d.transaction.amount for d in self.database[ledger]]
        if not dups:
            return None
        return reconcile(dups, self.matched_existing[ledger])

    def finish(self, matcher: ProjectMatcher | None) -> ImportResult:
        unmatched = tuple(
            UnmatchedProject(
                project_code=code,
                transaction_count=len(amounts),
                total_amount=sum(amounts, Decimal("0.00")),
                suggestions=matcher.suggest(code) if matcher is not None else (),
            )
            for code, amounts in self.unmatched_projects.items()
        )
        return ImportResult(
            total_rows=self.total_rows,
            expenses=tuple(self.expenses),
            revenues=tuple(self.revenues),
            unassociated_expenses=self.unassociated_expenses,
            unassociated_revenues=self.unassociated_revenues,
            unassigned_client_revenues=self.unassigned_client_revenues,
            in_batch_duplicates=tuple(self.in_batch[Ledger.COST]),
            revenue_in_batch_duplicates=tuple(self.in_batch[Ledger.REVENUE]),
            database_duplicates=tuple(self.database[Ledger.COST]),
            revenue_database_duplicates=tuple(self.database[Ledger.REVENUE]),
            reimported_duplicates=tuple(self.reimported),
            auto_created_payees=tuple(self.auto_created),
            payee_matches=tuple(self.payee_matches),
            client_matches=tuple(self.client_matches),
            pending_payee_reviews=tuple(
                r for r in self.pending.values() if r.entity_type == "payee"
            ),
            pending_client_reviews=tuple(
                r for r in self.pending.values() if r.entity_type == "client"
            ),
            mapping_stats=self.categories.stats,
            unmapped_accounts=self.categories.unmapped_accounts(),
            unmapped_account_details=self.categories.unmapped_details(),
            unmatched_projects=unmatched,
            category_mappings_used=self.categories.category_mappings_used,
            match_log=tuple(self.match_log),
            reconciliation=self._reconciliation(Ledger.COST),
            revenue_reconciliation=self._reconciliation(Ledger.REVENUE),
            warnings=tuple(self.warnings),
            errors=tuple(self.errors),
            import_batch_id=self.import_batch_id,
        )


@dataclass(slots=True)
class _RunContext:
    """Lookup structures built from prefetched reference data."""

    payees: list[PayeeRecord]
    clients: list[ClientRecord]
    projects: ProjectMatcher
    mappings: dict[str, str]
    in_batch: InBatchDetector
    cross_run: CrossRunDetector
    override_dedup: frozenset[str]


def _suggestions(candidates: Iterable[MatchCandidate[Any]]) -> tuple[ReviewSuggestion, ...]:
    return tuple(
        ReviewSuggestion(c.entity.id, c.entity.display_name, c.confidence) for c in candidates
    )


class TransactionImporter:
    """Run ledger-export imports against a set of collaborators."""

    def __init__(self, sources: ImportSources, settings: ImportSettings | None = None) -> None:
        self.sources = sources
        self.settings = settings or ImportSettings()
        self.policy = EntityMatchPolicy.from_settings(self.settings)

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def run(
        self,
        rows: Iterable[RawTransactionRow | Mapping[str, Any]],
        *,
        import_batch_id: str | None = None,
        override_dedup: Iterable[str] = frozenset(),
        today: date | None = None,
    ) -> ImportResult:
        """Import ``rows`` and return the immutable result.

        Parameters
        ----------
        rows:
            Export rows, either validated :class:`RawTransactionRow` objects or
            plain mappings keyed by the export column names.
        import_batch_id:
            Stamped on every produced record.
        override_dedup:
            Duplicate keys (composite key or external id) the caller has
            confirmed should be imported again. Matching rows are imported and
            listed in ``reimported_duplicates``.
        today:
            Fallback for unparseable dates (defaults to ``date.today()``).

        Raises
        ------
        ReferenceDataError
            When any registry, reference table or history lookup fails. No
            row is processed in that case.
        """

        rows = list(rows)
        today = today or date.today()
        state = _RunState(total_rows=len(rows), import_batch_id=import_batch_id)

        txs: list[NormalizedTransaction] = []
        for row_number, row in enumerate(rows, start=1):
            try:
                tx = normalize_row(row, row_number=row_number, today=today)
            except (TypeError, ValidationError) as exc:
                _logger.error("Row %d could not be read: %s", row_number, exc)
                state.errors.append(f"row {row_number}: {exc}")
                continue
            except Exception as exc:  # noqa: BLE001
                _logger.exception("Row %d could not be normalized", row_number)
                state.errors.append(f"row {row_number}: {exc}")
                continue
            state.warnings.extend(tx.warnings)
            txs.append(tx)

        window = history_window(
            (tx.date for tx in txs if not tx.date_defaulted), self.settings.history_padding_days
        )
        external_ids = {
            ledger: [tx.external_id for tx in txs if tx.ledger is ledger and tx.external_id]
            for ledger in Ledger
        }
        ref = prefetch_reference_data(
            self.sources,
            window=window,
            external_ids=external_ids,
            concurrency=self.settings.fetch_concurrency,
        )

        ctx = _RunContext(
            payees=list(ref.payees),
            clients=[c for c in ref.clients if c.id != self.settings.unassigned_client_id],
            projects=ProjectMatcher(
                ref.projects,
                ref.project_aliases,
                fuel_project_code=self.settings.fuel_project_code,
                overhead_project_code=self.settings.overhead_project_code,
                exclude_ids=(self.settings.unassigned_project_id,),
            ),
            mappings=user_mapping_index(ref.account_mappings),
            in_batch=InBatchDetector(),
            cross_run=CrossRunDetector(external_ids=ref.external_ids, history=ref.history),
            override_dedup=frozenset(override_dedup),
        )

        for tx in txs:
            try:
                self._process(tx, ctx, state)
            except Exception as exc:  # noqa: BLE001
                _logger.exception("Row %d failed", tx.row_number)
                state.errors.append(f"row {tx.row_number}: {exc}")

        result = state.finish(ctx.projects)
        _logger.info(
            "Imported %d expenses and %d revenues from %d rows "
            "(%d in-batch and %d database duplicates skipped, %d errors)",
            len(result.expenses),
            len(result.revenues),
            result.total_rows,
            result.in_batch_duplicates_skipped + result.revenue_in_batch_duplicates_skipped,
            result.database_duplicates_skipped + result.revenue_database_duplicates_skipped,
            len(result.errors),
        )
        return result

    # ------------------------------------------------------------------
    # Row pipeline
    # ------------------------------------------------------------------

    def _process(self, tx: NormalizedTransaction, ctx: _RunContext, state: _RunState) -> None:
        if self._is_duplicate(tx, ctx, state):
            return
        if tx.ledger is Ledger.REVENUE:
            self._import_revenue(tx, ctx, state)
        else:
            self._import_expense(tx, ctx, state)

    def _is_duplicate(self, tx: NormalizedTransaction, ctx: _RunContext, state: _RunState) -> bool:
        dup = ctx.in_batch.check(tx)
        if dup is not None:
            _logger.debug("Row %d: %s", tx.row_number, dup.reason)
            state.in_batch[tx.ledger].append(dup)
            return True

        match = ctx.cross_run.check(tx)
        if match is None:
            return False
        if {match.match_key, key_for(tx), tx.external_id} & ctx.override_dedup:
            state.reimported.append(
                ReimportedDuplicate(tx, match.existing.id, match.match_key, tx.ledger)
            )
            return False
        _logger.debug(
            "Row %d already imported as %s (%s)", tx.row_number, match.existing.id, match.matched_by
        )
        state.database[tx.ledger].append(
            DatabaseDuplicate(tx, match.existing.id, match.match_key, match.matched_by)
        )
        state.matched_existing[tx.ledger].append(match.existing)
        return True

    def _resolve_project(
        self, tx: NormalizedTransaction, ctx: _RunContext, state: _RunState
    ) -> tuple[str, bool]:
        """Return ``(project_id, unassigned)``."""

        match = ctx.projects.match(tx.project_code)
        if match is not None:
            state.match_log.append(
                MatchLogEntry(
                    name=tx.project_code or "",
                    matched_entity=match.project_id,
                    entity_type="project",
                    confidence=match.confidence,
                    decision=(
                        "alias_matched" if match.match_kind.startswith("alias") else "auto_matched"
                    ),
                    algorithm=match.match_kind,
                )
            )
            return match.project_id, False

        if tx.project_code:
            state.unmatched_projects.setdefault(tx.project_code, []).append(tx.amount)
            state.match_log.append(
                MatchLogEntry(
                    name=tx.project_code,
                    matched_entity=None,
                    entity_type="project",
                    confidence=0.0,
                    decision="unmatched",
                    algorithm="none",
                )
            )
        return self.settings.unassigned_project_id, True

    def _match_info(self, name: str, best: MatchCandidate[Any]) -> EntityMatchInfo:
        return EntityMatchInfo(
            name=name,
            entity_id=best.entity.id,
            entity_name=best.entity.display_name,
            confidence=best.confidence,
            match_type="exact" if best.kind is MatchKind.EXACT else "fuzzy",
        )

    def _resolve(self, name: str, registry: list[Any]) -> ResolveResult[Any]:
        return resolve(
            name,
            registry,
            auto_match_threshold=self.settings.resolver_best_threshold,
            min_confidence=self.settings.resolver_min_confidence,
        )

    def _log_match(
        self,
        state: _RunState,
        name: str,
        entity_type: Literal["payee", "client"],
        best: MatchCandidate[Any] | None,
        decision: _EntityDecision,
        *,
        entity_id: str | None = None,
    ) -> None:
        if best is not None:
            entity_id = best.entity.id
            confidence = best.confidence
            algorithm = "exact" if best.kind is MatchKind.EXACT else _BLENDED
        else:
            confidence = 100.0 if entity_id else 0.0
            algorithm = "auto_create" if decision == "created" else _BLENDED
        state.match_log.append(
            MatchLogEntry(
                name=name,
                matched_entity=entity_id,
                entity_type=entity_type,
                confidence=confidence,
                decision=decision,
                algorithm=algorithm,
            )
        )

    def _resolve_payee(
        self, tx: NormalizedTransaction, ctx: _RunContext, state: _RunState
    ) -> str | None:
        name = tx.counterparty_name
        if not name:
            return None

        result = self._resolve(name, ctx.payees)
        best = self.policy.authoritative(result)
        if best is not None:
            state.payee_matches.append(self._match_info(name, best))
            self._log_match(state, name, "payee", best, "auto_matched")
            return best.entity.id

        review = self.policy.review_candidates(result)
        if review:
            state.add_pending(
                PendingReview(
                    name=name,
                    entity_type="payee",
                    suggestions=_suggestions(review),
                    account_full_name=tx.account_path,
                    suggested_payee_type=infer_payee_type(tx.account_path),
                )
            )
            self._log_match(state, name, "payee", review[0], "pending_review")

        draft = build_payee_draft(name, tx.account_path)
        try:
            payee_id = self.sources.payees.create(draft)
        except Exception as exc:  # noqa: BLE001
            _logger.warning("Could not create payee %r for row %d: %s", name, tx.row_number, exc)
            state.warnings.append(
                f"row {tx.row_number}: payee {name!r} could not be created: {exc}"
            )
            self._log_match(state, name, "payee", None, "create_failed")
            return None

        created = PayeeRecord(id=payee_id, payee_name=draft.payee_name, payee_type=draft.payee_type)
        # Later rows of this run must match the new payee exactly
        ctx.payees.append(created)
        state.auto_created.append(AutoCreatedPayee(name, payee_id, draft.payee_type))
        state.payee_matches.append(
            EntityMatchInfo(name, payee_id, draft.payee_name, 100.0, "auto")
        )
        self._log_match(state, name, "payee", None, "created", entity_id=payee_id)
        _logger.info("Created payee %r (%s) as %s", name, draft.payee_type, payee_id)
        return payee_id

    def _resolve_client(
        self, tx: NormalizedTransaction, ctx: _RunContext, state: _RunState
    ) -> str | None:
        name = tx.counterparty_name
        if not name:
            return None

        result = self._resolve(name, ctx.clients)
        best = self.policy.authoritative(result)
        if best is not None:
            state.client_matches.append(self._match_info(name, best))
            self._log_match(state, name, "client", best, "auto_matched")
            return best.entity.id

        review = self.policy.review_candidates(result)
        if review:
            state.add_pending(
                PendingReview(name=name, entity_type="client", suggestions=_suggestions(review))
            )
            self._log_match(state, name, "client", review[0], "pending_review")
        else:
            self._log_match(state, name, "client", None, "unmatched")
        return None

    def _import_expense(
        self, tx: NormalizedTransaction, ctx: _RunContext, state: _RunState
    ) -> None:
        payee_id = self._resolve_payee(tx, ctx, state)
        project_id, unassigned = self._resolve_project(tx, ctx, state)
        if unassigned:
            state.unassociated_expenses += 1

        description = f"{tx.transaction_type.value} - {tx.counterparty_name}"
        if unassigned:
            description += _UNASSIGNED_SUFFIX

        classification = classify(description, tx.account_path, ctx.mappings)
        state.categories.record(tx.account_path, tx.amount, classification)
        if tx.account_path and classification.source in (
            ClassificationSource.DATABASE,
            ClassificationSource.STATIC,
        ):
            state.match_log.append(
                MatchLogEntry(
                    name=tx.account_path,
                    matched_entity=str(classification.category),
                    entity_type="account",
                    confidence=100.0,
                    decision="mapped",
                    algorithm=classification.source.value,
                )
            )

        state.expenses.append(
            ExpenseRecord(
                project_id=project_id,
                description=description,
                category=classification.category,
                transaction_type=tx.transaction_type,
                amount=tx.amount,
                expense_date=tx.date,
                payee_id=payee_id,
                account_name=tx.account_name,
                account_full_name=tx.account_path,
                external_id=tx.external_id,
                import_batch_id=state.import_batch_id,
            )
        )

    def _import_revenue(
        self, tx: NormalizedTransaction, ctx: _RunContext, state: _RunState
    ) -> None:
        client_id = self._resolve_client(tx, ctx, state)
        if client_id is None:
            client_id = self.settings.unassigned_client_id
            state.unassigned_client_revenues += 1

        project_id, unassigned = self._resolve_project(tx, ctx, state)
        if unassigned:
            state.unassociated_revenues += 1

        description = f"Invoice from {tx.counterparty_name}"
        if unassigned:
            description += _UNASSIGNED_SUFFIX

        state.revenues.append(
            RevenueRecord(
                project_id=project_id,
                amount=tx.amount,
                invoice_date=tx.date,
                description=description,
                client_id=client_id,
                invoice_number=tx.invoice_number,
                account_name=tx.account_name,
                account_full_name=tx.account_path,
                external_id=tx.external_id,
                import_batch_id=state.import_batch_id,
            )
        )


__all__ = ["TransactionImporter"]
