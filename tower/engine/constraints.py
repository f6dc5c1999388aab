"""
Constraint resolution and evaluation.

Upstream planners have produced constraints in several shapes over time:

    typed objects      {"type": "NAME_CONTAINS", "field": "name", "value": "dental", "hardness": "hard"}
    legacy strings     "NAME_STARTS_WITH:P"
    planner objects    {"type": "LOCATION", "operator": "within", "value": "Arundel", "hard": false}
    field mappings     {"location": {"value": "Arundel", "hardness": "soft"}, "prefix": "P"}

resolve_constraints() folds all of them into one list of canonical
Constraint objects with explicit hardness. Anything it cannot recognise
is dropped, so a malformed upstream constraint is excluded from
evaluation instead of crashing the verdict.

evaluate_constraints() then scores a lead list against that canonical
list, one frozen ConstraintResult per constraint.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional

from tower.contracts import (
    NAME_CONSTRAINT_TYPES,
    Constraint,
    ConstraintResult,
    ConstraintType,
    Hardness,
    Lead,
    LeadsListRequest,
    VerificationSummary,
)

# Hardness applied when the source shape does not say.
DEFAULT_HARDNESS: dict[ConstraintType, Hardness] = {
    ConstraintType.NAME_CONTAINS: Hardness.HARD,
    ConstraintType.NAME_STARTS_WITH: Hardness.HARD,
    ConstraintType.LOCATION: Hardness.SOFT,
    ConstraintType.COUNT_MIN: Hardness.SOFT,
}

DEFAULT_FIELDS: dict[ConstraintType, str] = {
    ConstraintType.NAME_CONTAINS: "name",
    ConstraintType.NAME_STARTS_WITH: "name",
    ConstraintType.LOCATION: "location",
    ConstraintType.COUNT_MIN: "count",
}

# Planner objects sometimes carry only an operator.
_OPERATOR_TYPES: dict[str, ConstraintType] = {
    "contains": ConstraintType.NAME_CONTAINS,
    "includes": ConstraintType.NAME_CONTAINS,
    "starts_with": ConstraintType.NAME_STARTS_WITH,
    "startswith": ConstraintType.NAME_STARTS_WITH,
    "prefix": ConstraintType.NAME_STARTS_WITH,
    "within": ConstraintType.LOCATION,
    "in": ConstraintType.LOCATION,
    "near": ConstraintType.LOCATION,
    ">=": ConstraintType.COUNT_MIN,
    "gte": ConstraintType.COUNT_MIN,
    "min": ConstraintType.COUNT_MIN,
}

# Field-keyed mappings from the oldest planner versions.
_MAPPING_FIELD_TYPES: dict[str, ConstraintType] = {
    "business_type": ConstraintType.NAME_CONTAINS,
    "name_contains": ConstraintType.NAME_CONTAINS,
    "prefix": ConstraintType.NAME_STARTS_WITH,
    "prefix_filter": ConstraintType.NAME_STARTS_WITH,
    "location": ConstraintType.LOCATION,
    "count": ConstraintType.COUNT_MIN,
}


# ─── Resolution ───────────────────────────────────────────────────────


def _parse_type(raw: Any) -> Optional[ConstraintType]:
    if isinstance(raw, ConstraintType):
        return raw
    if not isinstance(raw, str):
        return None
    try:
        return ConstraintType(raw.strip().upper())
    except ValueError:
        return None


def _parse_hardness(raw: Any) -> Optional[Hardness]:
    if isinstance(raw, Hardness):
        return raw
    if isinstance(raw, str):
        try:
            return Hardness(raw.strip().lower())
        except ValueError:
            return None
    return None


def _clean_value(ctype: ConstraintType, raw: Any) -> Optional[str | int]:
    """Coerce a raw value to the type the evaluator expects, or None to drop."""
    if ctype == ConstraintType.COUNT_MIN:
        if isinstance(raw, bool):
            return None
        try:
            value = int(float(raw))
        except (TypeError, ValueError, OverflowError):
            # OverflowError: "inf", or 1e400 which json parses to inf
            return None
        return value if value >= 0 else None
    if raw is None or isinstance(raw, (bool, dict, list)):
        return None
    text = str(raw).strip()
    return text or None


def _build(
    ctype: Optional[ConstraintType],
    value: Any,
    hardness: Optional[Hardness],
    field: Any = None,
) -> Optional[Constraint]:
    if ctype is None:
        return None
    cleaned = _clean_value(ctype, value)
    if cleaned is None:
        return None
    if not isinstance(field, str) or not field.strip():
        field = DEFAULT_FIELDS[ctype]
    return Constraint(
        type=ctype,
        field=field.strip(),
        value=cleaned,
        hardness=hardness or DEFAULT_HARDNESS[ctype],
    )


def parse_legacy_string(
    raw: str, hardness: Optional[Hardness] = None
) -> Optional[Constraint]:
    """Parse a `"TYPE:value"` string. Returns None when unrecognised."""
    if not isinstance(raw, str) or ":" not in raw:
        return None
    type_part, _, value_part = raw.partition(":")
    return _build(_parse_type(type_part), value_part, hardness)


def _from_object(item: dict[str, Any]) -> Optional[Constraint]:
    # Planner shape: boolean `hard` flag, optional operator instead of type
    if "hard" in item and "hardness" not in item:
        ctype = _parse_type(item.get("type"))
        if ctype is None:
            operator = str(item.get("operator", "")).strip().lower()
            ctype = _OPERATOR_TYPES.get(operator)
        hard = item.get("hard")
        hardness = None
        if isinstance(hard, bool):
            hardness = Hardness.HARD if hard else Hardness.SOFT
        return _build(ctype, item.get("value"), hardness, item.get("field"))

    return _build(
        _parse_type(item.get("type")),
        item.get("value"),
        _parse_hardness(item.get("hardness")),
        item.get("field"),
    )


def _from_mapping(
    mapping: dict[str, Any], named_hardness: dict[str, Hardness]
) -> list[Constraint]:
    resolved = []
    for key, entry in mapping.items():
        field = str(key).strip().lower()
        ctype = _MAPPING_FIELD_TYPES.get(field)
        if ctype is None:
            continue
        hardness = named_hardness.get(field)
        if isinstance(entry, dict):
            value = entry.get("value")
            hardness = _parse_hardness(entry.get("hardness")) or hardness
        else:
            value = entry
        if field in ("prefix", "prefix_filter"):
            field = "prefix_filter"
        constraint = _build(ctype, value, hardness, field)
        if constraint is not None:
            resolved.append(constraint)
    return resolved


def _named_hardness(request: LeadsListRequest) -> dict[str, Hardness]:
    """Bare field names in hard/soft lists act as hardness overrides."""
    named: dict[str, Hardness] = {}
    for names, hardness in (
        (request.soft_constraints or [], Hardness.SOFT),
        (request.hard_constraints or [], Hardness.HARD),
    ):
        for name in names:
            if isinstance(name, str) and ":" not in name:
                key = name.strip().lower()
                named[key] = hardness
                if key in ("prefix", "prefix_filter"):
                    named["prefix"] = named["prefix_filter"] = hardness
    return named


def _merge(constraints: Iterable[Constraint]) -> list[Constraint]:
    """Collapse duplicates, keeping first position; hard wins over soft."""
    merged: dict[tuple, Constraint] = {}
    for c in constraints:
        key = (c.type, c.field, str(c.value).lower())
        existing = merged.get(key)
        if existing is None:
            merged[key] = c
        elif c.is_hard and not existing.is_hard:
            merged[key] = existing.model_copy(update={"hardness": Hardness.HARD})
    return list(merged.values())


def resolve_constraints(request: LeadsListRequest) -> list[Constraint]:
    """
    Normalize every constraint the request carries into canonical form.

    Sources, in order: `constraints`, `structured_constraints`, then the
    `hard_constraints` / `soft_constraints` string lists.
    """
    resolved: list[Constraint] = []
    named = _named_hardness(request)

    raw = request.constraints
    if isinstance(raw, dict):
        resolved.extend(_from_mapping(raw, named))
    elif isinstance(raw, list):
        for item in raw:
            if isinstance(item, Constraint):
                resolved.append(item)
            elif isinstance(item, dict):
                constraint = _from_object(item)
                if constraint is not None:
                    resolved.append(constraint)
            elif isinstance(item, str):
                constraint = parse_legacy_string(item)
                if constraint is not None:
                    resolved.append(constraint)

    for item in request.structured_constraints or []:
        if isinstance(item, dict):
            constraint = _from_object(item)
            if constraint is not None:
                resolved.append(constraint)

    for names, hardness in (
        (request.hard_constraints or [], Hardness.HARD),
        (request.soft_constraints or [], Hardness.SOFT),
    ):
        for name in names:
            constraint = parse_legacy_string(name, hardness)
            if constraint is not None:
                resolved.append(constraint)

    return _merge(resolved)


# ─── Evaluation ───────────────────────────────────────────────────────


def _name_pattern(value: str) -> re.Pattern[str]:
    # Lookarounds rather than \b so values ending in punctuation still anchor
    return re.compile(rf"(?<!\w){re.escape(value)}(?!\w)", re.IGNORECASE)


def lead_matches(constraint: Constraint, lead: Lead) -> bool:
    """Whether one lead satisfies one NAME_* constraint."""
    name = (lead.name or "").strip()
    value = str(constraint.value)
    if constraint.type == ConstraintType.NAME_CONTAINS:
        return bool(_name_pattern(value).search(name))
    if constraint.type == ConstraintType.NAME_STARTS_WITH:
        return name.lower().startswith(value.lower())
    return True


def filter_matching_leads(
    constraints: Iterable[Constraint], leads: Iterable[Lead]
) -> list[Lead]:
    """
    Leads satisfying every hard NAME_* constraint.

    Soft name mismatches do not shrink the delivered set; they surface as
    failing soft results for the suggestion builder instead.
    """
    name_constraints = [
        c for c in constraints if c.type in NAME_CONSTRAINT_TYPES and c.is_hard
    ]
    return [
        lead for lead in leads
        if all(lead_matches(c, lead) for c in name_constraints)
    ]


def evaluate_constraints(
    constraints: list[Constraint],
    leads: Optional[list[Lead]],
    *,
    delivered_fallback: int = 0,
    verification: Optional[VerificationSummary] = None,
) -> list[ConstraintResult]:
    """
    Score each constraint against the candidate leads.

    When no lead list was supplied the upstream counts are all there is:
    NAME_* constraints are taken as satisfied by `delivered_fallback`
    results and COUNT_MIN is compared against that same figure.
    """
    if leads is None:
        total = delivered_fallback
        filtered_count = delivered_fallback
    else:
        total = len(leads)
        filtered_count = len(filter_matching_leads(constraints, leads))

    results = []
    for c in constraints:
        if c.type in NAME_CONSTRAINT_TYPES:
            if leads is None:
                matched = total
                passed = True
            else:
                matched = sum(1 for lead in leads if lead_matches(c, lead))
                passed = matched >= 1
        elif c.type == ConstraintType.LOCATION:
            # Location filtering happens upstream in the search itself
            matched = total
            passed = True
            if verification is not None and verification.location_verified is False:
                matched = min(verification.location_matched_count or 0, total)
                passed = False
        else:
            matched = filtered_count
            passed = filtered_count >= int(c.value)

        results.append(ConstraintResult(
            constraint=c,
            matched_count=matched,
            total_leads=total,
            passed=passed,
        ))
    return results
