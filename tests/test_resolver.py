import pytest

from ledger_import.models import (
    MatchCandidate,
    MatchKind,
    PayeeRecord,
    PayeeType,
    ProjectAlias,
    ProjectRecord,
    ResolveResult,
)
from ledger_import.resolver import (
    EntityMatchPolicy,
    ProjectMatcher,
    build_payee_draft,
    infer_payee_type,
    resolve,
)

PAYEES = [
    PayeeRecord("p-abc", "ABC Electric LLC"),
    PayeeRecord("p-jon", "Jons Plumbing Co", full_name="Jonathan Plumbing Services"),
    PayeeRecord("p-acme", "Acme Supplies"),
    PayeeRecord("p-zeta", "Zeta"),
]


@pytest.mark.parametrize(
    ("query", "expected_id"),
    [("ABC Electric", "p-abc"), ("Jon's Plumbing", "p-jon"), ("  abc electric llc ", "p-abc")],
)
def test_resolve_exact_after_business_normalization(query, expected_id):
    result = resolve(query, PAYEES)

    assert result.best is not None
    assert result.best.entity.id == expected_id
    assert result.best.confidence == 100.0
    assert result.best.kind is MatchKind.EXACT


def test_resolve_matches_any_name_variant():
    result = resolve("jonathan plumbing services", PAYEES)

    assert result.best is not None
    assert result.best.entity.id == "p-jon"


def test_resolve_fuzzy_candidate_and_auto_match_threshold():
    result = resolve("Acme Supply", PAYEES)
    assert result.best is not None
    assert result.best.entity.id == "p-acme"
    assert result.best.kind is MatchKind.FUZZY

    strict = resolve("Acme Supply", PAYEES, auto_match_threshold=99)
    assert strict.best is None
    assert strict.candidates[0].entity.id == "p-acme"


def test_resolve_drops_low_confidence_candidates():
    result = resolve("Ace", [PayeeRecord("p-zeta", "Zeta")])

    assert result.candidates == ()
    assert result.best is None


def test_resolve_blank_query_and_empty_registry():
    assert resolve("   ", PAYEES).candidates == ()
    assert resolve("Acme", []).best is None


def test_resolve_orders_candidates_by_confidence():
    result = resolve("Acme Supply", PAYEES)
    confidences = [c.confidence for c in result.candidates]

    assert confidences == sorted(confidences, reverse=True)


def _result(*confidences: float) -> ResolveResult[PayeeRecord]:
    candidates = tuple(
        MatchCandidate(PayeeRecord(f"p{i}", f"Payee {i}"), c, MatchKind.FUZZY)
        for i, c in enumerate(confidences)
    )
    return ResolveResult(query="q", candidates=candidates)


def test_policy_auto_match_boundary():
    policy = EntityMatchPolicy(auto_match=75, review=40)

    assert policy.authoritative(_result(75.0)) is not None
    assert policy.authoritative(_result(74.99)) is None


def test_policy_review_band_is_half_open_and_capped():
    policy = EntityMatchPolicy(auto_match=75, review=40)

    band = policy.review_candidates(_result(74.99, 60, 50, 45, 42, 41, 40, 39.99))
    assert [c.confidence for c in band] == [74.99, 60, 50, 45, 42]

    assert policy.review_candidates(_result(75.0)) == ()
    assert [c.confidence for c in policy.review_candidates(_result(40.0))] == [40.0]
    assert policy.review_candidates(_result(39.99)) == ()


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("Cost of Goods Sold:Contract Labor", PayeeType.SUBCONTRACTOR),
        ("Cost of Goods Sold:Supplies & Materials", PayeeType.MATERIAL_SUPPLIER),
        ("Cost of Goods Sold:Equipment Rental", PayeeType.EQUIPMENT_RENTAL),
        ("Taxes & Licenses:Permits", PayeeType.PERMIT_AUTHORITY),
        ("Office Expenses", PayeeType.OTHER),
        (None, PayeeType.OTHER),
    ],
)
def test_infer_payee_type(path, expected):
    assert infer_payee_type(path) is expected


def test_build_payee_draft_flags_subcontractors():
    draft = build_payee_draft("  Jon's Framing ", "Cost of Goods Sold:Contract Labor")

    assert draft.payee_name == "Jon's Framing"
    assert draft.provides_labor is True
    assert draft.requires_1099 is True
    assert draft.provides_materials is False
    assert draft.terms == "Net 30"


# ---- Projects ------------------------------------------------------------------

PROJECTS = [
    ProjectRecord("unassigned", "000-UNASSIGNED", "Unassigned"),
    ProjectRecord("gas", "001-GAS", "Fuel"),
    ProjectRecord("ga", "002-GA", "Overhead"),
    ProjectRecord("smith", "24-101", "Smith Kitchen"),
    ProjectRecord("jones", "24-102", "Jones Deck"),
]
ALIASES = [
    ProjectAlias("a1", "jones", "Backyard Deck", "exact"),
    ProjectAlias("a2", "smith", "SMK", "starts_with"),
    ProjectAlias("a3", "jones", "deckjob", "contains"),
    ProjectAlias("a4", "smith", "Old Name", "exact", is_active=False),
]


@pytest.fixture
def matcher() -> ProjectMatcher:
    return ProjectMatcher(PROJECTS, ALIASES, exclude_ids=("unassigned",))


@pytest.mark.parametrize(
    ("code", "project_id", "kind", "confidence"),
    [
        ("24-101", "smith", "exact_number", 100.0),
        ("24 101", "smith", "exact_number", 100.0),
        ("smith kitchen", "smith", "exact_name", 100.0),
        ("Fuel - Truck 3", "gas", "exact_number", 100.0),
        ("GA", "ga", "exact_number", 100.0),
        ("backyard deck", "jones", "alias_exact", 95.0),
        ("SMK-7", "smith", "alias_starts_with", 90.0),
        ("WO deckjob 12", "jones", "alias_contains", 85.0),
        ("24-102 Jones change order", "jones", "prefix", 80.0),
    ],
)
def test_project_matcher_priority(matcher, code, project_id, kind, confidence):
    match = matcher.match(code)

    assert match is not None
    assert (match.project_id, match.match_kind, match.confidence) == (
        project_id,
        kind,
        confidence,
    )


@pytest.mark.parametrize("code", [None, "", "  ", "Old Name", "24-10", "000-UNASSIGNED"])
def test_project_matcher_misses(matcher, code):
    assert matcher.match(code) is None


def test_project_suggestions_are_ranked(matcher):
    suggestions = matcher.suggest("24-10")

    assert 0 < len(suggestions) <= 3
    assert suggestions[0].project_number in {"24-101", "24-102"}
    assert all(s.confidence >= 50 for s in suggestions)
    assert "unassigned" not in {s.project_id for s in suggestions}
