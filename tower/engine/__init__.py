"""
Verdict evaluation engine.

Pure decision functions: each takes an artefact (model or raw dict) plus
optional config and returns a verdict model. No I/O, no logging.
"""

from tower.engine.evidence import apply_evidence_overlay, judge_evidence_quality
from tower.engine.factory import judge_factory
from tower.engine.lead_quality import compute_lead_quality_score, explain_lead_quality_score
from tower.engine.mission import judge_mission_snapshot
from tower.engine.verdict import judge_leads_list

__all__ = [
    "apply_evidence_overlay",
    "compute_lead_quality_score",
    "explain_lead_quality_score",
    "judge_evidence_quality",
    "judge_factory",
    "judge_leads_list",
    "judge_mission_snapshot",
]
