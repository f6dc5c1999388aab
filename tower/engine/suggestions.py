"""
Suggestion builder: typed, ranked corrective actions for CHANGE_PLAN.

Ranking when under-delivering:
    1. EXPAND_AREA             soft LOCATION, double the radius (capped)
    2. EXPAND_AREA             no LOCATION constraint, radius is still a safe lever
    3. CHANGE_QUERY            failing hard NAME_* constraint
       ADD_VERIFICATION_STEP   failing hard LOCATION constraint
    4. RELAX_CONSTRAINT        soft NAME_* dropped entirely, soft COUNT_MIN lowered
    5. INCREASE_SEARCH_BUDGET  caller reports a per-search result cap

RELAX_CONSTRAINT candidates are drawn only from soft constraints whose
field no hard constraint shares, so a hard constraint cannot be reached.
"""

from __future__ import annotations

from typing import Optional, Sequence

from tower.config.schema import DEFAULT_CONFIG, TowerConfig
from tower.contracts import (
    NAME_CONSTRAINT_TYPES,
    Constraint,
    ConstraintResult,
    ConstraintType,
    SuggestedChange,
    SuggestedChangeType,
)
from tower.engine.normalizer import Snapshot


def _fmt_km(value: float) -> str:
    return f"{value:g}km"


def _expand_area(
    snapshot: Snapshot,
    location: Optional[Constraint],
    config: TowerConfig,
) -> Optional[SuggestedChange]:
    radius = snapshot.radius_km
    cap = config.leads.max_radius_km
    if radius >= cap:
        return None
    new_radius = min(radius * 2, cap)
    shortfall = f"{snapshot.delivered} of {snapshot.requested} delivered"
    if location is not None:
        reason = (
            f"Only {shortfall} within {_fmt_km(radius)} of {location.value}. "
            f"Location is soft; widening the search to {_fmt_km(new_radius)}."
        )
    else:
        reason = (
            f"Only {shortfall} within {_fmt_km(radius)}. No location constraint "
            f"applies, so widening the search to {_fmt_km(new_radius)} is safe."
        )
    return SuggestedChange(
        type=SuggestedChangeType.EXPAND_AREA,
        field="radius_km",
        from_=radius,
        to=new_radius,
        reason=reason,
    )


def _hard_failure_levers(failures: Sequence[ConstraintResult]) -> list[SuggestedChange]:
    changes = []
    for result in failures:
        c = result.constraint
        if c.type in NAME_CONSTRAINT_TYPES:
            changes.append(SuggestedChange(
                type=SuggestedChangeType.CHANGE_QUERY,
                field=c.field,
                from_=None,
                to=str(c.value),
                reason=(
                    f"Hard constraint {c.label} matched {result.matched_count} of "
                    f"{result.total_leads} leads. Search for it directly rather "
                    f"than filtering a broader result set."
                ),
            ))
        elif c.type == ConstraintType.LOCATION:
            changes.append(SuggestedChange(
                type=SuggestedChangeType.ADD_VERIFICATION_STEP,
                field=c.field,
                from_=None,
                to=str(c.value),
                reason=(
                    f"Only {result.matched_count} of {result.total_leads} leads "
                    f"verified inside {c.value}. Verify addresses before delivery."
                ),
            ))
    return changes


def _relaxations(
    snapshot: Snapshot,
    results: Sequence[ConstraintResult],
) -> list[SuggestedChange]:
    hard_fields = {c.field for c in snapshot.hard_constraints}
    by_constraint = {r.constraint: r for r in results}
    changes = []

    for c in snapshot.soft_constraints:
        if c.field in hard_fields or c.field in snapshot.relaxed_fields:
            continue
        if c.type in NAME_CONSTRAINT_TYPES:
            changes.append(SuggestedChange(
                type=SuggestedChangeType.RELAX_CONSTRAINT,
                field=c.field,
                from_=c.value,
                to=None,
                reason=(
                    f"Soft constraint {c.label} left {snapshot.delivered} of "
                    f"{snapshot.requested} requested. Dropping it widens the pool."
                ),
            ))
        elif c.type == ConstraintType.COUNT_MIN:
            result = by_constraint.get(c)
            if result is None or result.passed or result.matched_count <= 0:
                continue
            changes.append(SuggestedChange(
                type=SuggestedChangeType.RELAX_CONSTRAINT,
                field=c.field,
                from_=c.value,
                to=result.matched_count,
                reason=(
                    f"Soft minimum of {c.value} met only {result.matched_count} "
                    f"matching leads. Lowering it accepts what exists."
                ),
            ))
    return changes


def _dedupe(changes: list[SuggestedChange]) -> list[SuggestedChange]:
    seen: set[tuple] = set()
    unique = []
    for change in changes:
        key = (change.type, change.field)
        if key in seen:
            continue
        seen.add(key)
        unique.append(change)
    return unique


def build_suggestions(
    snapshot: Snapshot,
    results: Sequence[ConstraintResult],
    *,
    hard_failures: Sequence[ConstraintResult] = (),
    allow_relax_soft: bool = True,
    max_results: Optional[int] = None,
    config: Optional[TowerConfig] = None,
) -> list[SuggestedChange]:
    """
    Build the ranked, de-duplicated suggestion list for one snapshot.

    Args:
        snapshot: Normalized artefact.
        results: Constraint evaluation for the snapshot.
        hard_failures: Failing hard results (hard-constraint branch only).
        allow_relax_soft: False suppresses every suggestion that loosens a
            soft constraint, including widening a soft location.
        max_results: Per-search result cap the agent last used, if known.
    """
    config = config or DEFAULT_CONFIG
    changes: list[SuggestedChange] = []

    locations = [c for c in snapshot.constraints if c.type == ConstraintType.LOCATION]
    soft_location = next((c for c in locations if not c.is_hard), None)
    hard_location = any(c.is_hard for c in locations)

    if not hard_location:
        if soft_location is not None and allow_relax_soft:
            expand = _expand_area(snapshot, soft_location, config)
        elif not locations:
            expand = _expand_area(snapshot, None, config)
        else:
            expand = None
        if expand is not None:
            changes.append(expand)

    changes.extend(_hard_failure_levers(hard_failures))

    if allow_relax_soft:
        changes.extend(_relaxations(snapshot, results))

    cap = config.leads.max_results_cap
    if max_results is not None and 0 < max_results < cap:
        changes.append(SuggestedChange(
            type=SuggestedChangeType.INCREASE_SEARCH_BUDGET,
            field="max_results",
            from_=max_results,
            to=min(max_results * 2, cap),
            reason="Raise the per-search result cap; this is a tool hint, not the requested count.",
        ))

    return _dedupe(changes)[: config.leads.max_suggestions]
