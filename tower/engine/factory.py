"""
Factory scrap-rate rubric (plastics injection moulding).

Same shape as the leads-list engine, different domain. Checked in order:

    Immediate STOP
        constraint_impossible  scrap ceiling below the achievable floor
        extreme_scrap          scrap at or above the extreme threshold
        deadline_infeasible    deadline reached with scrap still over the limit

    Over the limit
        scrap_rising_trend     rising for two consecutive steps  -> CHANGE_PLAN
        defect_shift           defect changed after a mitigation -> CHANGE_PLAN
        decision_ineffective   "continue" or a repeated action   -> CHANGE_PLAN
        mitigation_in_progress                                   -> ACCEPT (60)

    Within the limit
        scrap_rising_trend / defect_shift                        -> CHANGE_PLAN
        within_limit                                             -> ACCEPT (90)
        within_limit_slight_rise                                 -> ACCEPT (75)

Every STOP names its remediation in suggested_changes. Instability is
answered with "switch machine profile" even when the current step is
within tolerance.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Union

from tower.config.schema import DEFAULT_CONFIG, TowerConfig
from tower.contracts import (
    FactoryDecision,
    FactoryJudgement,
    FactoryRubricRequest,
    FactoryStepSnapshot,
    StopReason,
    VerdictKind,
)

SWITCH_PROFILE = "switch to alternate machine profile"
MACHINE_UNSTABLE = "MACHINE_UNSTABLE"
_CONTINUE_ACTIONS = frozenset({"continue", "no_change"})


# ─── History signatures ───────────────────────────────────────────────

def is_scrap_worsening(history: Sequence[FactoryStepSnapshot]) -> bool:
    if len(history) < 2:
        return False
    return history[-1].scrap_rate > history[-2].scrap_rate


def is_scrap_rising(history: Sequence[FactoryStepSnapshot]) -> bool:
    """Strictly rising over the last three steps."""
    if len(history) < 3:
        return False
    a, b, c = history[-3:]
    return c.scrap_rate > b.scrap_rate > a.scrap_rate


def _defect_key(defect: Union[str, list[str], None]) -> str:
    if not defect:
        return ""
    if isinstance(defect, list):
        return ",".join(sorted(defect))
    return defect


def defect_label(defect: Union[str, list[str], None]) -> str:
    if not defect:
        return "none"
    if isinstance(defect, list):
        return ", ".join(defect)
    return defect


def did_defect_shift(history: Sequence[FactoryStepSnapshot]) -> bool:
    """Defect type changed between the last two steps, after a decision was taken."""
    if len(history) < 2:
        return False
    prev, last = history[-2], history[-1]
    prev_key, last_key = _defect_key(prev.defect_type), _defect_key(last.defect_type)
    if not prev_key or not last_key:
        return False
    return bool(prev.decision_action) and prev_key != last_key


def is_repeating_failed_action(
    history: Sequence[FactoryStepSnapshot], decision: Optional[FactoryDecision]
) -> bool:
    if decision is None or not history:
        return False
    last = history[-1]
    return last.decision_action == decision.action and last.scrap_rate > 0


# ─── Rubric ───────────────────────────────────────────────────────────

def _stop(
    request: FactoryRubricRequest,
    *,
    reason_code: str,
    reason: str,
    confidence: int,
    remediation: str,
    evidence: dict[str, Any],
) -> FactoryJudgement:
    state = request.factory_state
    gap = reason_code.upper()
    return FactoryJudgement(
        verdict=VerdictKind.STOP,
        reason_code=reason_code,
        scrap_rate_now=state.scrap_rate_now,
        max_scrap_percent=request.constraints.max_scrap_percent,
        confidence=confidence,
        reason=f"{reason}. Next: {remediation}.",
        gaps=[gap],
        suggested_changes=[remediation],
        step=state.step,
        machine=state.machine,
        stop_reason=StopReason(
            code=gap,
            message=reason,
            evidence={**evidence, "remediation": remediation},
        ),
    )


def _result(
    request: FactoryRubricRequest,
    verdict: VerdictKind,
    *,
    reason_code: str,
    reason: str,
    confidence: int,
    gaps: list[str],
) -> FactoryJudgement:
    state = request.factory_state
    return FactoryJudgement(
        verdict=verdict,
        reason_code=reason_code,
        scrap_rate_now=state.scrap_rate_now,
        max_scrap_percent=request.constraints.max_scrap_percent,
        confidence=confidence,
        reason=reason,
        gaps=gaps,
        suggested_changes=[SWITCH_PROFILE] if verdict == VerdictKind.CHANGE_PLAN else [],
        step=state.step,
        machine=state.machine,
    )


def _immediate_stop(
    request: FactoryRubricRequest, config: TowerConfig
) -> Optional[FactoryJudgement]:
    limits, state = request.constraints, request.factory_state
    scrap, ceiling = state.scrap_rate_now, limits.max_scrap_percent

    floor = state.achievable_scrap_floor
    if floor is not None and ceiling < floor:
        return _stop(
            request,
            reason_code="constraint_impossible",
            reason=(
                f"Constraint impossible under current moisture/tool state: "
                f"max_scrap_percent ({ceiling:g}%) is below achievable_scrap_floor ({floor:g}%)"
            ),
            confidence=100,
            remediation="reduce moisture or repair tooling before retrying",
            evidence={
                "max_scrap_percent": ceiling,
                "achievable_scrap_floor": floor,
                "scrap_rate_now": scrap,
            },
        )

    extreme = config.factory.extreme_scrap_percent
    if scrap >= extreme:
        return _stop(
            request,
            reason_code="extreme_scrap",
            reason=f"Extreme scrap rate ({scrap:g}%, threshold {extreme:g}%); immediate stop required",
            confidence=100,
            remediation="halt production and investigate root cause",
            evidence={"scrap_rate_now": scrap, "extreme_scrap_percent": extreme},
        )

    if limits.deadline_step is not None and state.step is not None:
        steps_left = limits.deadline_step - state.step
        if steps_left <= 0 and scrap > ceiling:
            return _stop(
                request,
                reason_code="deadline_infeasible",
                reason=(
                    f"Deadline reached at step {state.step} with scrap_rate "
                    f"({scrap:g}%) still above max ({ceiling:g}%)"
                ),
                confidence=95,
                remediation="extend deadline or relax scrap constraint",
                evidence={
                    "step": state.step,
                    "deadline_step": limits.deadline_step,
                    "scrap_rate_now": scrap,
                    "max_scrap_percent": ceiling,
                },
            )
    return None


def _instability(
    request: FactoryRubricRequest,
    *,
    rising_confidence: int,
    shift_confidence: int,
) -> Optional[FactoryJudgement]:
    history = request.history
    state = request.factory_state
    machine = state.machine or "unknown"
    scrap, ceiling = state.scrap_rate_now, request.constraints.max_scrap_percent

    if is_scrap_rising(history):
        return _result(
            request,
            VerdictKind.CHANGE_PLAN,
            reason_code="scrap_rising_trend",
            reason=(
                f"Current machine ({machine}) is unstable under these conditions; "
                f"scrap rising for 2 consecutive steps (now {scrap:g}%, limit {ceiling:g}%). "
                f"Switch to alternate machine profile."
            ),
            confidence=rising_confidence,
            gaps=["SCRAP_RISING_TREND", MACHINE_UNSTABLE],
        )

    if did_defect_shift(history):
        prev, last = history[-2], history[-1]
        return _result(
            request,
            VerdictKind.CHANGE_PLAN,
            reason_code="defect_shift",
            reason=(
                f"Current machine ({machine}) is unstable under these conditions; "
                f'defect shifted from "{defect_label(prev.defect_type)}" to '
                f'"{defect_label(last.defect_type)}" after mitigation, scrap {scrap:g}%. '
                f"Switch to alternate machine profile."
            ),
            confidence=shift_confidence,
            gaps=["DEFECT_TYPE_SHIFTED", MACHINE_UNSTABLE],
        )
    return None


def _energy_gaps(request: FactoryRubricRequest) -> list[str]:
    ceiling = request.constraints.max_energy_kwh_per_good_part
    energy = request.factory_state.energy_kwh_per_good_part
    if ceiling is not None and energy is not None and energy > ceiling:
        return ["ENERGY_ABOVE_TARGET"]
    return []


def judge_factory(
    request: Union[FactoryRubricRequest, dict[str, Any]],
    config: Optional[TowerConfig] = None,
) -> FactoryJudgement:
    """Judge one factory step. Raises pydantic.ValidationError on a malformed dict."""
    if isinstance(request, dict):
        request = FactoryRubricRequest(**request)
    config = config or DEFAULT_CONFIG

    stop = _immediate_stop(request, config)
    if stop is not None:
        return stop

    state, decision, history = request.factory_state, request.factory_decision, request.history
    scrap, ceiling = state.scrap_rate_now, request.constraints.max_scrap_percent
    machine = state.machine or "unknown"

    if scrap > ceiling:
        unstable = _instability(request, rising_confidence=90, shift_confidence=85)
        if unstable is not None:
            return unstable

        is_continue = decision is not None and decision.action in _CONTINUE_ACTIONS
        repeating = is_repeating_failed_action(history, decision)
        if is_continue or repeating:
            what = "repeating failing action" if repeating else "decision is"
            return _result(
                request,
                VerdictKind.CHANGE_PLAN,
                reason_code="decision_ineffective",
                reason=(
                    f"Current machine ({machine}) is unstable under these conditions; "
                    f'{what} "{decision.action}" while scrap_rate ({scrap:g}%) exceeds '
                    f"max ({ceiling:g}%). Switch to alternate machine profile."
                ),
                confidence=90,
                gaps=["DECISION_INEFFECTIVE", MACHINE_UNSTABLE],
            )

        return _result(
            request,
            VerdictKind.ACCEPT,
            reason_code="mitigation_in_progress",
            reason=f"scrap_rate ({scrap:g}%) exceeds max ({ceiling:g}%) but active mitigation in progress",
            confidence=60,
            gaps=["SCRAP_ABOVE_TARGET"] + _energy_gaps(request),
        )

    unstable = _instability(request, rising_confidence=75, shift_confidence=70)
    if unstable is not None:
        return unstable

    if not is_scrap_worsening(history):
        return _result(
            request,
            VerdictKind.ACCEPT,
            reason_code="within_limit",
            reason=f"scrap_rate ({scrap:g}%) within limit ({ceiling:g}%) and not worsening; on track",
            confidence=90,
            gaps=_energy_gaps(request),
        )

    return _result(
        request,
        VerdictKind.ACCEPT,
        reason_code="within_limit_slight_rise",
        reason=f"scrap_rate ({scrap:g}%) within limit ({ceiling:g}%) but slightly worsening; monitor closely",
        confidence=75,
        gaps=["SLIGHT_WORSENING"] + _energy_gaps(request),
    )
