"""
Evidence quality overlay.

A base ACCEPT says "enough leads matched". This check asks whether the
leads that claim to be verified can back it up, and whether the agent's
own delivery summary agrees with Tower. Any failure turns the ACCEPT
into a STOP: these signal an upstream integrity bug, not a search
problem, so no suggestion is offered.

Gap priority (the first present becomes stop_reason.code):
    VERIFIED_WITHOUT_EVIDENCE > DELIVERY_SUMMARY_MISMATCH > VERIFIED_EXACT_BELOW_REQUESTED

Leads that never set `verified` are counted as unknown and never penalised.

VERIFIED_EXACT_BELOW_REQUESTED is only checked when the caller supplies
`verified_exact_count`. The count of verified-with-evidence leads is not
used as a stand-in: legacy artefacts mix verified and unknown leads, and
an unknown lead must not count against the run.

A STOP reached by the leads-list rules, not by this overlay, is still
compared against `delivery_summary`: see flag_delivery_summary_mismatch().
"""

from __future__ import annotations

from typing import Any, Optional, Union

from tower.config.schema import DEFAULT_CONFIG, TowerConfig
from tower.contracts import (
    EvidenceQualityRequest,
    EvidenceQualityVerdict,
    Lead,
    LeadsListRequest,
    StopReason,
    Verdict,
    VerdictKind,
)

VERIFIED_WITHOUT_EVIDENCE = "VERIFIED_WITHOUT_EVIDENCE"
DELIVERY_SUMMARY_MISMATCH = "DELIVERY_SUMMARY_MISMATCH"
VERIFIED_EXACT_BELOW_REQUESTED = "VERIFIED_EXACT_BELOW_REQUESTED"


def lead_has_evidence(lead: Lead) -> bool:
    evidence = lead.evidence
    if isinstance(evidence, str) and evidence.strip():
        return True
    if isinstance(evidence, (list, tuple, dict)) and len(evidence) > 0:
        return True
    return bool(lead.source_url and lead.source_url.strip())


def _same(value: Optional[str], expected: str) -> bool:
    return value is not None and value.strip().upper() == expected


def judge_evidence_quality(
    request: Union[EvidenceQualityRequest, dict[str, Any]],
    config: Optional[TowerConfig] = None,
) -> EvidenceQualityVerdict:
    """Standalone evidence check over a set of leads."""
    if isinstance(request, dict):
        request = EvidenceQualityRequest(**request)
    config = config or DEFAULT_CONFIG

    with_evidence = 0
    without_evidence = 0
    unknown = 0
    missing: list[str] = []

    for lead in request.leads:
        if lead.verified is None:
            unknown += 1
        elif lead.verified:
            if lead_has_evidence(lead):
                with_evidence += 1
            else:
                without_evidence += 1
                missing.append(lead.name)

    gaps = []
    if without_evidence > 0:
        gaps.append(VERIFIED_WITHOUT_EVIDENCE)
    if _same(request.delivery_summary, "PASS") and _same(request.tower_verdict, "STOP"):
        gaps.append(DELIVERY_SUMMARY_MISMATCH)
    if (
        request.verified_exact_count is not None
        and request.requested_count > 0
        and request.verified_exact_count < request.requested_count
    ):
        gaps.append(VERIFIED_EXACT_BELOW_REQUESTED)

    counts = {
        "verified_with_evidence": with_evidence,
        "verified_without_evidence": without_evidence,
        "unknown_count": unknown,
    }

    if not gaps:
        return EvidenceQualityVerdict(
            passed=True,
            verdict=VerdictKind.ACCEPT,
            detail=(
                f"Evidence quality passed: {with_evidence} verified with evidence, "
                f"{unknown} unknown (not penalised)."
            ),
            **counts,
        )

    code = gaps[0]
    if code == VERIFIED_WITHOUT_EVIDENCE:
        message = f"{without_evidence} lead(s) marked verified but have no supporting evidence."
    elif code == DELIVERY_SUMMARY_MISMATCH:
        message = "delivery_summary is PASS but the Tower verdict is STOP; the two signals disagree."
    else:
        message = (
            f"Only {request.verified_exact_count} verified exact matches out of "
            f"{request.requested_count} requested."
        )

    evidence: dict[str, Any] = {
        **counts,
        "requested_count": request.requested_count,
        "missing_evidence_leads": missing[: config.evidence.max_listed_missing_leads],
    }
    if request.verified_exact_count is not None:
        evidence["verified_exact_count"] = request.verified_exact_count
    if request.delivery_summary:
        evidence["delivery_summary"] = request.delivery_summary
    if request.tower_verdict:
        evidence["tower_verdict"] = request.tower_verdict

    return EvidenceQualityVerdict(
        passed=False,
        verdict=VerdictKind.STOP,
        gaps=gaps,
        stop_reason=StopReason(code=code, message=message, evidence=evidence),
        detail=message,
        **counts,
    )


def apply_evidence_overlay(
    verdict: Verdict,
    request: LeadsListRequest,
    config: Optional[TowerConfig] = None,
) -> Verdict:
    """
    Downgrade a base ACCEPT to STOP when the evidence check fails.

    No-op for non-ACCEPT verdicts and for legacy artefacts whose leads
    carry neither `verified` nor `evidence`.
    """
    if verdict.verdict != VerdictKind.ACCEPT:
        return verdict
    leads = request.leads or []
    if not any(lead.declares_evidence for lead in leads):
        return verdict

    check = judge_evidence_quality(
        EvidenceQualityRequest(
            leads=leads,
            verified_exact_count=request.verified_exact_count,
            requested_count=verdict.requested,
            delivery_summary=request.delivery_summary,
            tower_verdict=request.tower_verdict,
        ),
        config,
    )
    if check.passed:
        return verdict

    return Verdict(
        verdict=VerdictKind.STOP,
        delivered=verdict.delivered,
        requested=verdict.requested,
        gaps=check.gaps + [g for g in verdict.gaps if g not in check.gaps],
        confidence=95,
        rationale=f"{verdict.rationale} Evidence check failed: {check.detail}",
        suggested_changes=[],
        constraint_results=verdict.constraint_results,
        stop_reason=check.stop_reason,
    )


def flag_delivery_summary_mismatch(verdict: Verdict, request: LeadsListRequest) -> Verdict:
    """
    Tag a final STOP with DELIVERY_SUMMARY_MISMATCH when the agent's own
    delivery summary still reports PASS. The verdict itself is unchanged.
    """
    if verdict.verdict != VerdictKind.STOP or not _same(request.delivery_summary, "PASS"):
        return verdict
    if DELIVERY_SUMMARY_MISMATCH in verdict.gaps:
        return verdict
    return verdict.model_copy(update={
        "gaps": verdict.gaps + [DELIVERY_SUMMARY_MISMATCH],
        "rationale": f"{verdict.rationale} delivery_summary reports PASS but the verdict is STOP.",
    })
