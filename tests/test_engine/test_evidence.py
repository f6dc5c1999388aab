"""
Tests for the evidence quality judge and the ACCEPT overlay.
"""

import pytest

from tower.config.schema import EvidenceConfig, TowerConfig
from tower.contracts import Lead, LeadsListRequest, Verdict, VerdictKind
from tower.engine.evidence import (
    DELIVERY_SUMMARY_MISMATCH,
    VERIFIED_EXACT_BELOW_REQUESTED,
    VERIFIED_WITHOUT_EVIDENCE,
    apply_evidence_overlay,
    judge_evidence_quality,
    lead_has_evidence,
)


class TestLeadHasEvidence:

    @pytest.mark.parametrize("fields", [
        {"evidence": "council register entry"},
        {"evidence": ["https://example.com/a"]},
        {"evidence": {"source": "companies house"}},
        {"source_url": "https://example.com"},
    ])
    def test_present(self, fields):
        assert lead_has_evidence(Lead(name="Crown", **fields))

    @pytest.mark.parametrize("fields", [
        {},
        {"evidence": "   "},
        {"evidence": []},
        {"evidence": {}},
        {"source_url": ""},
        {"evidence": 42},
    ])
    def test_absent(self, fields):
        assert not lead_has_evidence(Lead(name="Crown", **fields))


class TestJudgeEvidenceQuality:

    def test_passes_and_counts(self):
        result = judge_evidence_quality({
            "requested_count": 2,
            "leads": [
                {"name": "A", "verified": True, "evidence": "x"},
                {"name": "B", "verified": True, "source_url": "https://b.example"},
                {"name": "C"},
                {"name": "D", "verified": False},
            ],
        })
        assert result.passed
        assert result.verdict == VerdictKind.ACCEPT
        assert result.verified_with_evidence == 2
        assert result.verified_without_evidence == 0
        assert result.unknown_count == 1
        assert result.detail.startswith("Evidence quality passed")

    def test_verified_without_evidence(self):
        result = judge_evidence_quality({
            "requested_count": 2,
            "leads": [{"name": "A", "verified": True}, {"name": "B", "verified": True, "evidence": "x"}],
        })
        assert not result.passed
        assert result.verdict == VerdictKind.STOP
        assert result.stop_reason.code == VERIFIED_WITHOUT_EVIDENCE
        assert result.stop_reason.evidence["missing_evidence_leads"] == ["A"]
        assert result.stop_reason.evidence["verified_without_evidence"] == 1

    def test_unknown_leads_never_penalised(self):
        result = judge_evidence_quality({
            "requested_count": 3,
            "leads": [{"name": "A"}, {"name": "B"}, {"name": "C"}],
        })
        assert result.passed
        assert result.unknown_count == 3

    def test_delivery_summary_mismatch(self):
        result = judge_evidence_quality({
            "requested_count": 1,
            "leads": [],
            "delivery_summary": "pass",
            "tower_verdict": "stop",
        })
        assert result.stop_reason.code == DELIVERY_SUMMARY_MISMATCH

    def test_verified_exact_below_requested(self):
        result = judge_evidence_quality({
            "requested_count": 5,
            "verified_exact_count": 3,
        })
        assert result.stop_reason.code == VERIFIED_EXACT_BELOW_REQUESTED
        assert result.stop_reason.evidence["verified_exact_count"] == 3

    def test_exact_count_check_skipped_without_exact_count(self):
        result = judge_evidence_quality({
            "requested_count": 5,
            "leads": [{"name": "A", "verified": True, "evidence": "registry"}, {"name": "B"}],
        })
        assert result.passed
        assert result.verified_with_evidence == 1
        assert VERIFIED_EXACT_BELOW_REQUESTED not in result.gaps

    def test_gap_priority(self):
        result = judge_evidence_quality({
            "requested_count": 5,
            "verified_exact_count": 1,
            "delivery_summary": "PASS",
            "tower_verdict": "STOP",
            "leads": [{"name": "A", "verified": True}],
        })
        assert result.gaps == [
            VERIFIED_WITHOUT_EVIDENCE,
            DELIVERY_SUMMARY_MISMATCH,
            VERIFIED_EXACT_BELOW_REQUESTED,
        ]
        assert result.stop_reason.code == VERIFIED_WITHOUT_EVIDENCE

    def test_missing_lead_names_capped(self):
        config = TowerConfig(evidence=EvidenceConfig(max_listed_missing_leads=3))
        leads = [{"name": f"Lead {i}", "verified": True} for i in range(8)]
        result = judge_evidence_quality({"requested_count": 8, "leads": leads}, config)
        assert result.verified_without_evidence == 8
        assert len(result.stop_reason.evidence["missing_evidence_leads"]) == 3

    def test_payload_omits_none(self):
        payload = judge_evidence_quality({"requested_count": 1}).to_payload()
        assert payload["passed"] is True
        assert "stop_reason" not in payload


def _accept(requested=2, delivered=2):
    return Verdict(
        verdict=VerdictKind.ACCEPT,
        delivered=delivered,
        requested=requested,
        confidence=80,
        rationale="Delivered 2 leads.",
    )


class TestApplyEvidenceOverlay:

    def test_noop_for_legacy_leads(self):
        base = _accept()
        request = LeadsListRequest(leads=[{"name": "A"}, {"name": "B"}])
        assert apply_evidence_overlay(base, request) is base

    def test_noop_for_non_accept(self):
        base = Verdict(
            verdict=VerdictKind.STOP,
            delivered=0,
            requested=2,
            confidence=100,
            rationale="x",
            stop_reason={"code": "X", "message": "x"},
        )
        request = LeadsListRequest(leads=[{"name": "A", "verified": True}])
        assert apply_evidence_overlay(base, request) is base

    def test_downgrades_to_stop(self):
        request = LeadsListRequest(leads=[{"name": "A", "verified": True}, {"name": "B", "verified": True}])
        result = apply_evidence_overlay(_accept(), request)
        assert result.verdict == VerdictKind.STOP
        assert result.confidence == 95
        assert result.suggested_changes == []
        assert result.stop_reason.code == VERIFIED_WITHOUT_EVIDENCE
        assert result.rationale.startswith("Delivered 2 leads.")

    def test_passing_check_keeps_accept(self):
        request = LeadsListRequest(leads=[{"name": "A", "verified": True, "evidence": "site visit"}])
        base = _accept(requested=1, delivered=1)
        assert apply_evidence_overlay(base, request) is base
