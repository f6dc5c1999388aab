"""
Leads-list verdict engine.

judge_leads_list() turns one `leads_list` artefact into ACCEPT,
CHANGE_PLAN or STOP. Rules are checked strictly in order, first match
wins:

    1. requested count missing (or not positive)  -> STOP
    2. replan loop with no measurable change      -> STOP NO_PROGRESS
    3. every hard constraint fails with 0 matches -> STOP hard_constraint_impossible
    4. some hard constraint fails                 -> CHANGE_PLAN or STOP
    5. delivered >= requested                     -> ACCEPT
    6. delivered <  requested                     -> CHANGE_PLAN or STOP

CHANGE_PLAN is only returned with at least one suggestion and while the
replan budget lasts; otherwise it is demoted to STOP. After the rules,
the label-honesty check may add LABEL_MISLEADING and the evidence
overlay may turn an ACCEPT into a STOP. Any final STOP, rule 1 and 2
included, is tagged DELIVERY_SUMMARY_MISMATCH when the agent reported
PASS.

Pure function: no I/O, no logging, no retries. The input is not mutated.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Union

from tower.config.schema import DEFAULT_CONFIG, TowerConfig
from tower.contracts import (
    ConstraintResult,
    ConstraintType,
    LeadsListRequest,
    StopReason,
    SuggestedChange,
    Verdict,
    VerdictKind,
)
from tower.engine.constraints import evaluate_constraints
from tower.engine.evidence import apply_evidence_overlay, flag_delivery_summary_mismatch
from tower.engine.labels import is_label_misleading
from tower.engine.normalizer import Snapshot, normalize_request
from tower.engine.progress import check_no_progress
from tower.engine.suggestions import build_suggestions

# ── Gap / stop codes ──────────────────────────────────────────

MISSING_REQUESTED_COUNT = "MISSING_REQUESTED_COUNT"
INVALID_REQUESTED_COUNT = "INVALID_REQUESTED_COUNT"
NO_PROGRESS = "NO_PROGRESS"
HARD_CONSTRAINT_IMPOSSIBLE = "hard_constraint_impossible"
HARD_CONSTRAINT_FAILED = "HARD_CONSTRAINT_FAILED"
INSUFFICIENT_COUNT = "INSUFFICIENT_COUNT"
CONSTRAINT_TOO_STRICT = "CONSTRAINT_TOO_STRICT"
MAX_REPLANS_EXHAUSTED = "MAX_REPLANS_EXHAUSTED"
NO_VIABLE_CHANGES = "NO_VIABLE_CHANGES"
NO_FURTHER_PROGRESS = "NO_FURTHER_PROGRESS"
LABEL_MISLEADING = "LABEL_MISLEADING"
LOCATION_UNVERIFIED = "LOCATION_UNVERIFIED"


def _stop(
    snapshot: Snapshot,
    *,
    code: str,
    message: str,
    gaps: list[str],
    confidence: int,
    rationale: Optional[str] = None,
    requested: Optional[int] = None,
    evidence: Optional[dict[str, Any]] = None,
    results: Optional[list[ConstraintResult]] = None,
) -> Verdict:
    if code not in gaps:
        gaps = gaps + [code]
    return Verdict(
        verdict=VerdictKind.STOP,
        delivered=snapshot.delivered,
        requested=requested if requested is not None else (snapshot.requested or 0),
        gaps=gaps,
        confidence=confidence,
        rationale=rationale or message,
        suggested_changes=[],
        constraint_results=results,
        stop_reason=StopReason(code=code, message=message, evidence=evidence or {}),
    )


def replan_budget_allows(request: LeadsListRequest) -> bool:
    """Absent counters mean "always permitted"."""
    if request.replans_used is None or request.max_replans is None:
        return True
    return request.replans_used < request.max_replans


def _change_plan_confidence(delivered: int, requested: int) -> int:
    if delivered <= 0:
        return 95
    return round(50 + min(delivered / requested, 1.0) * 30)


def _change_or_stop(
    request: LeadsListRequest,
    snapshot: Snapshot,
    results: list[ConstraintResult],
    *,
    gaps: list[str],
    rationale: str,
    exhausted_code: str,
    hard_failures: Sequence[ConstraintResult] = (),
    config: TowerConfig,
) -> Verdict:
    requested = snapshot.requested or 0

    if not replan_budget_allows(request):
        return _stop(
            snapshot,
            code=MAX_REPLANS_EXHAUSTED,
            message=(
                f"Replan budget exhausted ({request.replans_used} of "
                f"{request.max_replans} used)."
            ),
            gaps=gaps,
            confidence=95,
            rationale=f"{rationale} Replan budget exhausted; human input required.",
            evidence={
                "replans_used": request.replans_used,
                "max_replans": request.max_replans,
            },
            results=results,
        )

    suggestions: list[SuggestedChange] = build_suggestions(
        snapshot,
        results,
        hard_failures=hard_failures,
        allow_relax_soft=request.allow_relax_soft_constraints,
        max_results=request.max_results,
        config=config,
    )
    if not suggestions:
        return _stop(
            snapshot,
            code=exhausted_code,
            message=(
                "No safe change remains: hard constraints cannot be relaxed and "
                f"the search radius is at {snapshot.radius_km:g}km."
            ),
            gaps=gaps,
            confidence=90,
            rationale=f"{rationale} No safe change remains without violating a hard constraint.",
            evidence={
                "radius_km": snapshot.radius_km,
                "max_radius_km": config.leads.max_radius_km,
                "allow_relax_soft_constraints": request.allow_relax_soft_constraints,
            },
            results=results,
        )

    return Verdict(
        verdict=VerdictKind.CHANGE_PLAN,
        delivered=snapshot.delivered,
        requested=requested,
        gaps=gaps,
        confidence=_change_plan_confidence(snapshot.delivered, requested),
        rationale=rationale,
        suggested_changes=suggestions,
        constraint_results=results,
    )


def _accept_notes(request: LeadsListRequest, snapshot: Snapshot, config: TowerConfig) -> list[str]:
    notes = [f"{field} relaxed" for field in snapshot.relaxed_fields]
    has_location = any(c.type == ConstraintType.LOCATION for c in snapshot.constraints)
    if (
        has_location
        and request.radius_km is not None
        and request.radius_km > config.leads.default_radius_km
    ):
        notes.append(f"location expanded to {request.radius_km:g}km")
    return notes


def _accept(
    request: LeadsListRequest,
    snapshot: Snapshot,
    results: list[ConstraintResult],
    config: TowerConfig,
) -> Verdict:
    requested = snapshot.requested or 0
    band = config.leads
    ratio = snapshot.delivered / requested
    confidence = round(band.accept_confidence_floor + (ratio - 1) * 15)
    confidence = max(band.accept_confidence_floor, min(band.accept_confidence_ceiling, confidence))

    rationale = (
        f"Delivered {snapshot.delivered} leads, meeting or exceeding the "
        f"requested {requested}."
    )
    notes = _accept_notes(request, snapshot, config)
    if notes:
        rationale += f" Accepted with relaxed constraints: {'; '.join(notes)}."

    return Verdict(
        verdict=VerdictKind.ACCEPT,
        delivered=snapshot.delivered,
        requested=requested,
        gaps=[],
        confidence=confidence,
        rationale=rationale,
        constraint_results=results,
    )


def _goal_suffix(request: LeadsListRequest) -> str:
    goal = request.original_user_goal or request.normalized_goal
    return f' Goal: "{goal}"' if goal else ""


def _judge_constraints(
    request: LeadsListRequest, snapshot: Snapshot, config: TowerConfig
) -> Verdict:
    """Rules 3-6, once the snapshot is known to be judgeable."""
    requested = snapshot.requested or 0
    results = evaluate_constraints(
        list(snapshot.constraints),
        list(snapshot.leads) if snapshot.leads is not None else None,
        delivered_fallback=snapshot.delivered,
        verification=request.verification_summary,
    )
    hard_results = [r for r in results if r.constraint.is_hard]
    hard_failures = [r for r in hard_results if not r.passed]

    if hard_failures:
        labels = [r.constraint.label for r in hard_failures]

        # Rule 3: nothing satisfies any hard constraint
        if len(hard_failures) == len(hard_results) and all(
            r.matched_count == 0 for r in hard_failures
        ):
            return _stop(
                snapshot,
                code=HARD_CONSTRAINT_IMPOSSIBLE,
                message=(
                    f"Every hard constraint failed with zero matches: {', '.join(labels)}. "
                    f"The goal is unsatisfiable as stated."
                ),
                gaps=[],
                confidence=100,
                evidence={"failed_constraints": labels},
                results=results,
            )

        # Rule 4: partial hard failure
        rationale = (
            f"Hard constraint(s) not met: {', '.join(labels)}. Delivered "
            f"{snapshot.delivered} of {requested} requested.{_goal_suffix(request)}"
        )
        return _change_or_stop(
            request,
            snapshot,
            results,
            gaps=[HARD_CONSTRAINT_FAILED] + [f"{HARD_CONSTRAINT_FAILED}({label})" for label in labels],
            rationale=rationale,
            exhausted_code=NO_VIABLE_CHANGES,
            hard_failures=hard_failures,
            config=config,
        )

    # Rule 5
    if snapshot.delivered >= requested:
        return _accept(request, snapshot, results, config)

    # Rule 6
    gaps = [INSUFFICIENT_COUNT]
    gaps.extend(
        f"{CONSTRAINT_TOO_STRICT}({r.constraint.label})"
        for r in results
        if not r.constraint.is_hard and not r.passed
    )
    rationale = f"Delivered {snapshot.delivered} of {requested} requested.{_goal_suffix(request)}"
    return _change_or_stop(
        request,
        snapshot,
        results,
        gaps=gaps,
        rationale=rationale,
        exhausted_code=NO_FURTHER_PROGRESS,
        config=config,
    )


def _with_gap(verdict: Verdict, gap: str, note: str) -> Verdict:
    if gap in verdict.gaps:
        return verdict
    return verdict.model_copy(update={
        "gaps": verdict.gaps + [gap],
        "rationale": f"{verdict.rationale} {note}",
    })


def judge_leads_list(
    request: Union[LeadsListRequest, dict[str, Any]],
    config: Optional[TowerConfig] = None,
) -> Verdict:
    """
    Render a verdict for one leads-list artefact.

    Args:
        request: The artefact, as a model or a raw JSON-style dict.
        config: Thresholds; defaults apply when omitted.

    Returns:
        A Verdict. Business problems are encoded as STOP with a gap code.

    Raises:
        pydantic.ValidationError: If a raw dict has the wrong shape.
    """
    if isinstance(request, dict):
        request = LeadsListRequest(**request)
    config = config or DEFAULT_CONFIG
    snapshot = normalize_request(request, config)

    verdict = _render(request, snapshot, config)
    return flag_delivery_summary_mismatch(verdict, request)


def _render(request: LeadsListRequest, snapshot: Snapshot, config: TowerConfig) -> Verdict:
    # Rule 1
    if snapshot.requested is None:
        return _stop(
            snapshot,
            code=MISSING_REQUESTED_COUNT,
            message="Cannot judge: no requested count supplied (requested_count_user, success_criteria.target_count or requested_count).",
            gaps=[],
            confidence=100,
            requested=0,
        )
    if snapshot.requested <= 0:
        return _stop(
            snapshot,
            code=INVALID_REQUESTED_COUNT,
            message=f"Requested count is {snapshot.requested}; it must be positive.",
            gaps=[],
            confidence=100,
        )

    # Rule 2
    if check_no_progress(request.attempt_history):
        history = sorted(request.attempt_history or [], key=lambda e: e.plan_version)
        return _stop(
            snapshot,
            code=NO_PROGRESS,
            message=(
                "plan_version increased but radius_km and delivered_count are "
                "unchanged across the last two attempts. Stopping to avoid burning replans."
            ),
            gaps=[],
            confidence=95,
            evidence={"last_attempts": [e.model_dump() for e in history[-2:]]},
        )

    verdict = _judge_constraints(request, snapshot, config)

    if (
        config.leads.require_location_verification
        and request.verification_summary is None
        and verdict.verdict != VerdictKind.STOP
        and any(c.type == ConstraintType.LOCATION and c.is_hard for c in snapshot.constraints)
    ):
        verdict = _with_gap(
            verdict,
            LOCATION_UNVERIFIED,
            "Hard location constraint could not be independently verified.",
        )

    if is_label_misleading(request, snapshot.constraints):
        verdict = _with_gap(
            verdict,
            LABEL_MISLEADING,
            "Artefact title/summary still implies a constraint that was relaxed.",
        )

    return apply_evidence_overlay(verdict, request, config)
