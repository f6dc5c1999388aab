"""
Mission snapshot judge.

Judges whole-run telemetry against the run's success criteria. A flat
rule chain, first match wins:

    SUCCESS_ACHIEVED  -> STOP
    COST_EXCEEDED     -> STOP
    CPL_EXCEEDED      -> STOP
    FAILURES_EXCEEDED -> STOP
    STALL_DETECTED    -> STOP
    RUNNING           -> CONTINUE

The explanation embeds the numbers behind the decision; operators read it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from tower.contracts import (
    JudgementReasonCode,
    JudgementResponse,
    JudgementVerdict,
    MissionSnapshot,
    MissionSuccessCriteria,
)


def _gbp(amount: float) -> str:
    return f"£{amount:.2f}"


def cost_per_lead(snapshot: MissionSnapshot) -> Optional[float]:
    if snapshot.leads_found <= 0:
        return None
    return snapshot.total_cost_gbp / snapshot.leads_found


def _decide(
    success: MissionSuccessCriteria, snapshot: MissionSnapshot
) -> tuple[JudgementVerdict, JudgementReasonCode, str]:
    cpl = cost_per_lead(snapshot)

    if (
        snapshot.leads_found >= success.target_leads
        and snapshot.avg_quality_score >= success.min_quality_score
        and snapshot.total_cost_gbp <= success.max_cost_gbp
    ):
        return (
            JudgementVerdict.STOP,
            JudgementReasonCode.SUCCESS_ACHIEVED,
            f"Target met: {snapshot.leads_found}/{success.target_leads} leads found "
            f"with quality {snapshot.avg_quality_score:.2f} (min {success.min_quality_score:g}) "
            f"and cost {_gbp(snapshot.total_cost_gbp)} within {_gbp(success.max_cost_gbp)} budget.",
        )

    if snapshot.total_cost_gbp > success.max_cost_gbp:
        return (
            JudgementVerdict.STOP,
            JudgementReasonCode.COST_EXCEEDED,
            f"Total cost {_gbp(snapshot.total_cost_gbp)} exceeds budget of "
            f"{_gbp(success.max_cost_gbp)}. {snapshot.leads_found} leads found so far.",
        )

    if (
        cpl is not None
        and success.max_cost_per_lead_gbp is not None
        and cpl > success.max_cost_per_lead_gbp
    ):
        return (
            JudgementVerdict.STOP,
            JudgementReasonCode.CPL_EXCEEDED,
            f"Cost per lead {_gbp(cpl)} exceeds limit of {_gbp(success.max_cost_per_lead_gbp)}. "
            f"{snapshot.leads_found} leads at {_gbp(snapshot.total_cost_gbp)} total.",
        )

    if snapshot.failures_count > success.max_failures:
        explanation = (
            f"Failure count {snapshot.failures_count} exceeds threshold of "
            f"{success.max_failures}."
        )
        if snapshot.last_error_code:
            explanation += f" Last error: {snapshot.last_error_code}."
        return JudgementVerdict.STOP, JudgementReasonCode.FAILURES_EXCEEDED, explanation

    if snapshot.leads_new_last_window < success.stall_min_delta_leads:
        return (
            JudgementVerdict.STOP,
            JudgementReasonCode.STALL_DETECTED,
            f"Only {snapshot.leads_new_last_window} new leads in the last "
            f"{success.stall_window_steps}-step window, below minimum of "
            f"{success.stall_min_delta_leads}. Run appears stalled.",
        )

    step = f"step {snapshot.steps_completed}"
    if success.max_steps is not None:
        step += f"/{success.max_steps}"
    return (
        JudgementVerdict.CONTINUE,
        JudgementReasonCode.RUNNING,
        f"Run progressing: {snapshot.leads_found}/{success.target_leads} leads, "
        f"{_gbp(snapshot.total_cost_gbp)}/{_gbp(success.max_cost_gbp)} budget, {step}.",
    )


def judge_mission_snapshot(
    success: MissionSuccessCriteria,
    snapshot: MissionSnapshot,
    *,
    now: Optional[datetime] = None,
) -> JudgementResponse:
    """
    Judge one mission snapshot.

    Args:
        success: The run's success criteria.
        snapshot: Point-in-time telemetry.
        now: Timestamp to stamp on the response; defaults to the current
            UTC time. Pass a fixed value for reproducible output.
    """
    verdict, reason_code, explanation = _decide(success, snapshot)
    evaluated_at = (now or datetime.now(timezone.utc)).isoformat()
    return JudgementResponse(
        verdict=verdict,
        reason_code=reason_code,
        explanation=explanation,
        evaluated_at=evaluated_at,
    )
