"""
Tests for constraint resolution and evaluation.

Validates:
- Every historical constraint shape resolves to canonical form
- Hardness defaults and overrides
- Deduplication (hard wins)
- NAME_* matching and COUNT_MIN over the filtered set
- LOCATION verification handling
"""

import pytest

from tower.contracts import (
    Constraint,
    ConstraintType,
    Hardness,
    Lead,
    LeadsListRequest,
    VerificationSummary,
)
from tower.engine.constraints import (
    evaluate_constraints,
    filter_matching_leads,
    lead_matches,
    parse_legacy_string,
    resolve_constraints,
)


def _c(ctype, value, hardness="hard", field=None):
    defaults = {"NAME_CONTAINS": "name", "NAME_STARTS_WITH": "name", "LOCATION": "location", "COUNT_MIN": "count"}
    return Constraint(
        type=ConstraintType(ctype),
        field=field or defaults[ctype],
        value=value,
        hardness=Hardness(hardness),
    )


def _leads(*names):
    return [Lead(name=n) for n in names]


# ─── Legacy strings ───────────────────────────────────────────────────


class TestParseLegacyString:

    def test_basic(self):
        c = parse_legacy_string("NAME_STARTS_WITH:P")
        assert c.type == ConstraintType.NAME_STARTS_WITH
        assert c.value == "P"
        assert c.field == "name"
        assert c.is_hard

    def test_location_defaults_soft(self):
        c = parse_legacy_string("LOCATION:Arundel")
        assert c.hardness == Hardness.SOFT

    def test_explicit_hardness_wins(self):
        c = parse_legacy_string("LOCATION:Arundel", Hardness.HARD)
        assert c.is_hard

    def test_value_may_contain_colon(self):
        c = parse_legacy_string("NAME_CONTAINS:Bar: Grill")
        assert c.value == "Bar: Grill"

    def test_count_min_is_int(self):
        assert parse_legacy_string("COUNT_MIN:4").value == 4

    @pytest.mark.parametrize("raw", [
        "", "NAME_CONTAINS", "BOGUS:x", "NAME_CONTAINS:  ",
        "COUNT_MIN:many", "COUNT_MIN:-2", "COUNT_MIN:inf", "COUNT_MIN:nan",
    ])
    def test_unrecognised_returns_none(self, raw):
        assert parse_legacy_string(raw) is None


# ─── Resolution ───────────────────────────────────────────────────────


class TestResolveConstraints:

    def test_typed_objects(self):
        request = LeadsListRequest(constraints=[
            {"type": "NAME_CONTAINS", "field": "name", "value": "dental", "hardness": "hard"},
            {"type": "location", "value": "Arundel", "hardness": "soft"},
        ])
        resolved = resolve_constraints(request)
        assert [c.type for c in resolved] == [ConstraintType.NAME_CONTAINS, ConstraintType.LOCATION]
        assert resolved[0].is_hard
        assert not resolved[1].is_hard
        assert resolved[1].field == "location"

    def test_typed_object_without_hardness_uses_default(self):
        request = LeadsListRequest(constraints=[{"type": "NAME_STARTS_WITH", "value": "P"}])
        assert resolve_constraints(request)[0].is_hard

    def test_legacy_strings_in_constraints_list(self):
        request = LeadsListRequest(constraints=["NAME_STARTS_WITH:P", "LOCATION:Leeds"])
        resolved = resolve_constraints(request)
        assert [c.label for c in resolved] == ["NAME_STARTS_WITH(P)", "LOCATION(Leeds)"]

    def test_planner_objects(self):
        request = LeadsListRequest(structured_constraints=[
            {"type": "NAME_CONTAINS", "field": "name", "operator": "contains", "value": "pub", "hard": False},
            {"operator": "within", "value": "York", "hard": True},
        ])
        resolved = resolve_constraints(request)
        assert resolved[0].type == ConstraintType.NAME_CONTAINS
        assert not resolved[0].is_hard
        assert resolved[1].type == ConstraintType.LOCATION
        assert resolved[1].is_hard

    def test_field_mapping(self):
        request = LeadsListRequest(constraints={
            "business_type": "dentist",
            "location": {"value": "Arundel", "hardness": "soft"},
            "prefix": "P",
        })
        resolved = {c.type: c for c in resolve_constraints(request)}
        assert resolved[ConstraintType.NAME_CONTAINS].value == "dentist"
        assert not resolved[ConstraintType.LOCATION].is_hard
        assert resolved[ConstraintType.NAME_STARTS_WITH].field == "prefix_filter"
        assert resolved[ConstraintType.NAME_STARTS_WITH].is_hard

    def test_bare_names_override_mapping_hardness(self):
        request = LeadsListRequest(
            constraints={"location": "Arundel", "prefix": "P"},
            hard_constraints=["location"],
            soft_constraints=["prefix_filter"],
        )
        resolved = {c.type: c for c in resolve_constraints(request)}
        assert resolved[ConstraintType.LOCATION].is_hard
        assert not resolved[ConstraintType.NAME_STARTS_WITH].is_hard

    def test_hard_and_soft_lists(self):
        request = LeadsListRequest(
            hard_constraints=["NAME_CONTAINS:dental"],
            soft_constraints=["NAME_STARTS_WITH:A"],
        )
        resolved = resolve_constraints(request)
        assert resolved[0].is_hard
        assert not resolved[1].is_hard

    def test_duplicate_hard_wins(self):
        request = LeadsListRequest(
            soft_constraints=["LOCATION:Arundel"],
            hard_constraints=["LOCATION:arundel"],
        )
        resolved = resolve_constraints(request)
        assert len(resolved) == 1
        assert resolved[0].is_hard

    def test_malformed_entries_dropped(self):
        request = LeadsListRequest(constraints=[
            {"type": "NOT_A_TYPE", "value": "x"},
            {"type": "NAME_CONTAINS"},
            {"type": "COUNT_MIN", "value": "lots"},
            42,
            "garbage",
        ])
        assert resolve_constraints(request) == []

    def test_non_finite_count_min_dropped(self):
        request = LeadsListRequest(constraints=[
            "COUNT_MIN:inf",
            {"type": "COUNT_MIN", "value": float("inf")},
            {"type": "COUNT_MIN", "value": 1e400},
            "NAME_CONTAINS:dental",
        ])
        assert [c.type for c in resolve_constraints(request)] == [ConstraintType.NAME_CONTAINS]

    def test_no_constraints(self):
        assert resolve_constraints(LeadsListRequest()) == []

    def test_request_not_mutated(self):
        raw = [{"type": "LOCATION", "value": "Arundel"}]
        request = LeadsListRequest(constraints=raw)
        resolve_constraints(request)
        assert request.constraints == [{"type": "LOCATION", "value": "Arundel"}]


# ─── Matching ─────────────────────────────────────────────────────────


class TestLeadMatches:

    def test_contains_is_word_bounded(self):
        c = _c("NAME_CONTAINS", "dental")
        assert lead_matches(c, Lead(name="Arundel Dental Practice"))
        assert not lead_matches(c, Lead(name="Transdentalism Ltd"))

    def test_contains_case_insensitive(self):
        assert lead_matches(_c("NAME_CONTAINS", "PUB"), Lead(name="The Old pub"))

    def test_starts_with(self):
        c = _c("NAME_STARTS_WITH", "p")
        assert lead_matches(c, Lead(name="Plough Inn"))
        assert not lead_matches(c, Lead(name="The Plough"))

    def test_location_always_matches_per_lead(self):
        assert lead_matches(_c("LOCATION", "Arundel", "soft"), Lead(name="Anything"))

    def test_filter_requires_all_name_constraints(self):
        constraints = [_c("NAME_CONTAINS", "dental"), _c("NAME_STARTS_WITH", "A")]
        leads = _leads("Arundel Dental", "Bognor Dental", "Arundel Pub")
        assert [l.name for l in filter_matching_leads(constraints, leads)] == ["Arundel Dental"]

    def test_filter_ignores_soft_name_constraints(self):
        constraints = [_c("NAME_CONTAINS", "dental"), _c("NAME_STARTS_WITH", "A", "soft")]
        leads = _leads("Arundel Dental", "Bognor Dental", "Arundel Pub")
        assert [l.name for l in filter_matching_leads(constraints, leads)] == ["Arundel Dental", "Bognor Dental"]


# ─── Evaluation ───────────────────────────────────────────────────────


class TestEvaluateConstraints:

    def test_name_constraint_counts(self):
        [result] = evaluate_constraints([_c("NAME_STARTS_WITH", "P")], _leads("Plough", "Crown", "Pheasant"))
        assert result.matched_count == 2
        assert result.total_leads == 3
        assert result.passed

    def test_name_constraint_zero_matches_fails(self):
        [result] = evaluate_constraints([_c("NAME_STARTS_WITH", "Z")], _leads("Plough"))
        assert result.matched_count == 0
        assert not result.passed

    def test_count_min_uses_filtered_set(self):
        leads = _leads(
            "Arundel Dental", "Smile Dental", "Arundel Pub",
            "Crown Inn", "Bakery", "Florist",
        )
        constraints = [_c("NAME_CONTAINS", "dental"), _c("COUNT_MIN", 4, "soft")]
        name_result, count_result = evaluate_constraints(constraints, leads)
        assert name_result.matched_count == 2
        assert count_result.matched_count == 2
        assert count_result.total_leads == 6
        assert not count_result.passed

    def test_count_min_passes_when_filtered_set_large_enough(self):
        constraints = [_c("NAME_CONTAINS", "dental"), _c("COUNT_MIN", 2, "soft")]
        _, count_result = evaluate_constraints(constraints, _leads("A Dental", "B Dental", "Pub"))
        assert count_result.passed

    def test_location_auto_passes_without_verification(self):
        [result] = evaluate_constraints([_c("LOCATION", "Arundel")], _leads("A", "B"))
        assert result.passed
        assert result.matched_count == 2

    def test_location_fails_when_verification_says_so(self):
        [result] = evaluate_constraints(
            [_c("LOCATION", "Arundel")],
            _leads("A", "B", "C"),
            verification=VerificationSummary(location_verified=False, location_matched_count=1),
        )
        assert not result.passed
        assert result.matched_count == 1

    def test_counts_only_mode_trusts_upstream(self):
        constraints = [_c("NAME_CONTAINS", "dental"), _c("COUNT_MIN", 3, "soft")]
        name_result, count_result = evaluate_constraints(constraints, None, delivered_fallback=5)
        assert name_result.passed
        assert name_result.matched_count == 5
        assert count_result.passed

    def test_results_are_frozen(self):
        [result] = evaluate_constraints([_c("NAME_CONTAINS", "x")], _leads("x"))
        with pytest.raises(Exception):
            result.passed = False
