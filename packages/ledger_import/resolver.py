"""Entity resolution: free-text counterparty names and project codes.

``resolve`` scores a name against every entity of a registry and returns the
ranked candidates; the orchestrator applies :class:`EntityMatchPolicy` on top
of that to decide between auto-match, manual review and auto-create.

``ProjectMatcher`` maps the export's project/work-order code to a project id
using exact keys, administrator aliases and a leading ``NN-NNN`` pattern.
Fuzzy project scores are only offered as suggestions.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from .models import (
    MatchCandidate,
    MatchKind,
    NamedEntity,
    PayeeDraft,
    PayeeType,
    ProjectAlias,
    ProjectMatch,
    ProjectRecord,
    ProjectSuggestion,
    ResolveResult,
)
from .settings import ImportSettings
from .similarity import (
    jaro_winkler,
    name_confidence,
    normalize_business_name,
    normalize_code,
    normalize_text,
)

_PROJECT_PREFIX_RE = re.compile(r"^(\d{2,4}-\d{2,4})")

# ---------------------------------------------------------------------------
# Name resolution
# ---------------------------------------------------------------------------


def _is_exact(query: str, variant: str) -> bool:
    if normalize_text(query) == normalize_text(variant):
        return True
    bq = normalize_business_name(query)
    return bool(bq) and bq == normalize_business_name(variant)


def resolve[E: NamedEntity](
    query: str,
    registry: Iterable[E],
    *,
    auto_match_threshold: float = 60.0,
    min_confidence: float = 30.0,
) -> ResolveResult[E]:
    """Rank ``registry`` entities against ``query``.

    An entity is an exact match (confidence 100) when any of its name
    variants equals the query after text or business-name normalization.
    Otherwise its confidence is the best blended score over its variants.
    Candidates below ``min_confidence`` are dropped; the rest are sorted by
    descending confidence (ties keep registry order). ``best`` is the top
    candidate when it reaches ``auto_match_threshold``.
    """

    if not normalize_text(query):
        return ResolveResult(query=query)

    candidates: list[MatchCandidate[E]] = []
    for entity in registry:
        variants = [v for v in entity.name_variants() if v and v.strip()]
        if not variants:
            continue
        if any(_is_exact(query, v) for v in variants):
            candidates.append(MatchCandidate(entity, 100.0, MatchKind.EXACT))
            continue
        confidence = max(name_confidence(query, v) for v in variants)
        if confidence >= min_confidence:
            candidates.append(MatchCandidate(entity, confidence, MatchKind.FUZZY))

    candidates.sort(key=lambda c: c.confidence, reverse=True)
    best = None
    if candidates and candidates[0].confidence >= auto_match_threshold:
        best = candidates[0]
    return ResolveResult(query=query, candidates=tuple(candidates), best=best)


@dataclass(frozen=True, slots=True)
class EntityMatchPolicy:
    """Orchestrator thresholds applied to a :class:`ResolveResult`."""

    auto_match: float = 75.0
    review: float = 40.0

    @classmethod
    def from_settings(cls, settings: ImportSettings) -> EntityMatchPolicy:
        return cls(auto_match=settings.auto_match_threshold, review=settings.review_threshold)

    def authoritative[E: NamedEntity](self, result: ResolveResult[E]) -> MatchCandidate[E] | None:
        if result.candidates and result.candidates[0].confidence >= self.auto_match:
            return result.candidates[0]
        return None

    def review_candidates[E: NamedEntity](
        self, result: ResolveResult[E], *, limit: int = 5
    ) -> tuple[MatchCandidate[E], ...]:
        band = [c for c in result.candidates if self.review <= c.confidence < self.auto_match]
        return tuple(band[:limit])


# ---------------------------------------------------------------------------
# Payee drafts
# ---------------------------------------------------------------------------


def infer_payee_type(account_path: str | None) -> PayeeType:
    """Guess a payee type from keyword cues in the account path."""

    path = normalize_text(account_path)
    if not path:
        return PayeeType.OTHER
    if "contract labor" in path or "subcontractor" in path:
        return PayeeType.SUBCONTRACTOR
    if "materials" in path or "supplies" in path:
        return PayeeType.MATERIAL_SUPPLIER
    if "equipment" in path or "rental" in path:
        return PayeeType.EQUIPMENT_RENTAL
    if "permit" in path or "license" in path:
        return PayeeType.PERMIT_AUTHORITY
    return PayeeType.OTHER


def build_payee_draft(name: str, account_path: str | None) -> PayeeDraft:
    payee_type = infer_payee_type(account_path)
    return PayeeDraft(
        payee_name=name.strip(),
        payee_type=payee_type,
        provides_labor=payee_type is PayeeType.SUBCONTRACTOR,
        provides_materials=payee_type is PayeeType.MATERIAL_SUPPLIER,
        requires_1099=payee_type is PayeeType.SUBCONTRACTOR,
    )


# ---------------------------------------------------------------------------
# Project matching
# ---------------------------------------------------------------------------


class ProjectMatcher:
    """Resolve export project/work-order codes to project ids.

    Priority: special remaps (``fuel*`` and bare ``ga``), exact project
    number, exact project name, active aliases (``exact`` then
    ``starts_with`` then ``contains``), leading ``NN-NNN`` extraction.
    """

    def __init__(
        self,
        projects: Iterable[ProjectRecord],
        aliases: Iterable[ProjectAlias] = (),
        *,
        fuel_project_code: str = "001-GAS",
        overhead_project_code: str = "002-GA",
        exclude_ids: Iterable[str] = (),
    ) -> None:
        excluded = set(exclude_ids)
        self._projects = [p for p in projects if p.id not in excluded]
        self._aliases = [a for a in aliases if a.is_active and a.project_id not in excluded]
        self._fuel_code = fuel_project_code
        self._overhead_code = overhead_project_code

        self._by_number: dict[str, str] = {}
        self._by_name: dict[str, str] = {}
        for p in self._projects:
            # First registration wins when two projects normalize to one key
            self._by_number.setdefault(normalize_code(p.project_number), p.id)
            if p.project_name and normalize_text(p.project_name):
                self._by_name.setdefault(normalize_text(p.project_name), p.id)

    def _remap(self, code: str) -> str:
        norm = normalize_code(code)
        if norm.startswith("fuel"):
            return self._fuel_code
        if norm == "ga":
            return self._overhead_code
        return code

    def match(self, code: str | None) -> ProjectMatch | None:
        if not code or not code.strip():
            return None
        code = self._remap(code.strip())
        key = normalize_code(code)
        text_key = normalize_text(code)

        if key and key in self._by_number:
            return ProjectMatch(self._by_number[key], 100.0, "exact_number")
        if text_key in self._by_name:
            return ProjectMatch(self._by_name[text_key], 100.0, "exact_name")

        for alias in self._aliases:
            if alias.match_type == "exact" and (
                text_key == normalize_text(alias.alias) or key == normalize_code(alias.alias)
            ):
                return ProjectMatch(alias.project_id, 95.0, "alias_exact")
        for alias in self._aliases:
            alias_key = normalize_code(alias.alias)
            if alias.match_type == "starts_with" and alias_key and key.startswith(alias_key):
                return ProjectMatch(alias.project_id, 90.0, "alias_starts_with")
        for alias in self._aliases:
            alias_key = normalize_code(alias.alias)
            if alias.match_type == "contains" and alias_key and alias_key in key:
                return ProjectMatch(alias.project_id, 85.0, "alias_contains")

        m = _PROJECT_PREFIX_RE.match(code)
        if m:
            extracted = normalize_code(m.group(1))
            if extracted in self._by_number:
                return ProjectMatch(self._by_number[extracted], 80.0, "prefix")
        return None

    def suggest(
        self, code: str | None, *, limit: int = 3, min_score: float = 50.0
    ) -> tuple[ProjectSuggestion, ...]:
        """Closest project numbers by Jaro-Winkler; never applied automatically."""

        key = normalize_code(code)
        if not key:
            return ()
        scored: list[ProjectSuggestion] = []
        for p in self._projects:
            score = round(jaro_winkler(key, normalize_code(p.project_number)) * 100, 2)
            if score >= min_score:
                scored.append(ProjectSuggestion(p.id, p.project_number, score))
        scored.sort(key=lambda s: s.confidence, reverse=True)
        return tuple(scored[:limit])


__all__ = [
    "resolve",
    "EntityMatchPolicy",
    "infer_payee_type",
    "build_payee_draft",
    "ProjectMatcher",
]
