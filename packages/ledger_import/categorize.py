"""Cost category classification.

Priority cascade for a cost row:

1. Administrator mappings (``account_mappings`` table): case-insensitive exact
   match on the full account path, active rules only.
2. Static chart-of-accounts table below.
3. Keywords in the row description.
4. ``other``.

Revenue rows are never classified.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from decimal import Decimal

from .models import (
    AccountMappingRule,
    Classification,
    ClassificationSource,
    ExpenseCategory,
    MappingStats,
    UnmappedAccount,
)
from .similarity import normalize_text

# Keys are normalized with ``normalize_text``
STATIC_ACCOUNT_CATEGORIES: dict[str, ExpenseCategory] = {
    "cost of goods sold:contract labor": ExpenseCategory.SUBCONTRACTORS,
    "cost of goods sold:supplies & materials": ExpenseCategory.MATERIALS,
    "cost of goods sold:equipment rental - cogs": ExpenseCategory.EQUIPMENT,
    "cost of goods sold:equipment rental": ExpenseCategory.EQUIPMENT,
    "cost of goods sold:job site dumpsters": ExpenseCategory.MATERIALS,
    "office expenses:office equipment & supplies": ExpenseCategory.MANAGEMENT,
    "vehicle expenses:vehicle gas & fuel": ExpenseCategory.MANAGEMENT,
    "general business expenses:uniforms": ExpenseCategory.MANAGEMENT,
    "rent:building & land rent": ExpenseCategory.MANAGEMENT,
    "employee benefits:workers' compensation insurance": ExpenseCategory.MANAGEMENT,
    "insurance:business insurance": ExpenseCategory.MANAGEMENT,
    "legal & accounting services:legal fees": ExpenseCategory.MANAGEMENT,
}

# Evaluated in order; first hit wins
DESCRIPTION_KEYWORDS: tuple[tuple[ExpenseCategory, tuple[str, ...]], ...] = (
    (ExpenseCategory.LABOR_INTERNAL, ("labor", "wage", "payroll")),
    (ExpenseCategory.SUBCONTRACTORS, ("contractor", "subcontractor")),
    (ExpenseCategory.MATERIALS, ("material", "supply", "lumber", "concrete")),
    (ExpenseCategory.EQUIPMENT, ("equipment", "rental", "tool", "machinery")),
    (ExpenseCategory.PERMITS, ("permit", "fee", "license")),
    (ExpenseCategory.MANAGEMENT, ("management", "admin", "office")),
)

# Suggestions offered to the administrator for unmapped account names
_ACCOUNT_SUGGESTIONS: tuple[tuple[ExpenseCategory, tuple[str, ...]], ...] = (
    (
        ExpenseCategory.MATERIALS,
        (
            "dumpster",
            "disposal",
            "material",
            "supply",
            "supplies",
            "lumber",
            "concrete",
            "aggregate",
        ),
    ),
    (ExpenseCategory.EQUIPMENT, ("tool", "safety", "equipment", "rental", "machinery")),
    (
        ExpenseCategory.MANAGEMENT,
        (
            "insurance",
            "bond",
            "office",
            "admin",
            "management",
            "vehicle",
            "fuel",
            "gas",
            "uniform",
            "rent",
            "legal",
            "accounting",
        ),
    ),
    (ExpenseCategory.LABOR_INTERNAL, ("labor", "wage", "payroll")),
    (ExpenseCategory.SUBCONTRACTORS, ("contract", "subcontract")),
    (ExpenseCategory.PERMITS, ("permit", "license", "fee")),
)


def user_mapping_index(rules: Iterable[AccountMappingRule]) -> dict[str, str]:
    """Active rules keyed by normalized account path; the first rule for a path wins."""

    index: dict[str, str] = {}
    for rule in rules:
        if not rule.is_active:
            continue
        key = normalize_text(rule.account_full_path)
        if key:
            index.setdefault(key, rule.app_category)
    return index


def _keyword_category(text: str) -> ExpenseCategory | None:
    for category, words in DESCRIPTION_KEYWORDS:
        if any(w in text for w in words):
            return category
    return None


def classify(
    description: str | None,
    account_path: str | None,
    user_mappings: Mapping[str, str] | Iterable[AccountMappingRule] = (),
) -> Classification:
    """Resolve the cost category of one row through the cascade."""

    if not isinstance(user_mappings, Mapping):
        user_mappings = user_mapping_index(user_mappings)

    path = normalize_text(account_path)
    if path:
        mapped = user_mappings.get(path)
        if mapped:
            return Classification(mapped, ClassificationSource.DATABASE)
        static = STATIC_ACCOUNT_CATEGORIES.get(path)
        if static is not None:
            return Classification(static, ClassificationSource.STATIC)

    keyword = _keyword_category(normalize_text(description))
    if keyword is not None:
        return Classification(keyword, ClassificationSource.DESCRIPTION)
    return Classification(ExpenseCategory.OTHER, ClassificationSource.DEFAULT)


def suggest_category_for_account(account_path: str | None) -> ExpenseCategory | None:
    """Keyword-based category hint for an account path nobody has mapped yet."""

    text = normalize_text(account_path)
    if not text:
        return None
    for category, words in _ACCOUNT_SUGGESTIONS:
        if any(w in text for w in words):
            return category
    return None


class CategoryTracker:
    """Run-scoped tally of cascade tiers and unmapped account paths."""

    def __init__(self) -> None:
        self._tiers: Counter[ClassificationSource] = Counter()
        self._unmapped: dict[str, list[Decimal]] = {}
        self._used: dict[str, str] = {}

    def record(
        self, account_path: str | None, amount: Decimal, classification: Classification
    ) -> None:
        self._tiers[classification.source] += 1
        if not account_path:
            return
        if classification.source in (ClassificationSource.DATABASE, ClassificationSource.STATIC):
            self._used.setdefault(account_path, str(classification.category))
        else:
            self._unmapped.setdefault(account_path, []).append(amount)

    @property
    def stats(self) -> MappingStats:
        return MappingStats.from_counts(self._tiers)

    @property
    def category_mappings_used(self) -> dict[str, str]:
        return dict(self._used)

    def unmapped_accounts(self) -> tuple[str, ...]:
        return tuple(self._unmapped)

    def unmapped_details(self) -> tuple[UnmappedAccount, ...]:
        return tuple(
            UnmappedAccount(
                account_full_name=path,
                transaction_count=len(amounts),
                total_amount=sum(amounts, Decimal("0.00")),
                suggested_category=suggest_category_for_account(path),
            )
            for path, amounts in self._unmapped.items()
        )


__all__ = [
    "STATIC_ACCOUNT_CATEGORIES",
    "DESCRIPTION_KEYWORDS",
    "user_mapping_index",
    "classify",
    "suggest_category_for_account",
    "CategoryTracker",
]
