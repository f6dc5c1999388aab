"""
Heuristic lead quality score for a lead-finder run.

A 0-100 score from the size of the result set plus small bonuses for
search specificity. Deterministic and cheap; no model involved.

    results_count   base
    0               20   (nothing found)
    1-10            70   (focused)
    11-50           80   (comprehensive)
    >50             60   (broad, may be unfocused)

    +5 location, +5 vertical, +5 query of three or more words

Labels: score < 40 "low", 40-70 "medium", above 70 "high".
"""

from __future__ import annotations

from typing import Any, Optional, Union

from tower.contracts import LeadQualityRequest, LeadQualityScore

# ── Scoring Table ─────────────────────────────────────────────

SPECIFICITY_BONUS = 5
DETAILED_QUERY_WORDS = 3


def _base(results_count: int) -> tuple[int, str]:
    if results_count <= 0:
        return 20, "No results found (base: 20)"
    if results_count <= 10:
        return 70, f"{results_count} results - focused search (base: 70)"
    if results_count <= 50:
        return 80, f"{results_count} results - comprehensive search (base: 80)"
    return 60, f"{results_count} results - broad search (base: 60)"


def _present(text: Optional[str]) -> bool:
    return bool(text and text.strip())


def _bonuses(request: LeadQualityRequest) -> list[str]:
    bonuses = []
    if _present(request.location):
        bonuses.append(f"Location specified: +{SPECIFICITY_BONUS}")
    if _present(request.vertical):
        bonuses.append(f"Vertical specified: +{SPECIFICITY_BONUS}")
    if request.query and len(request.query.split()) >= DETAILED_QUERY_WORDS:
        bonuses.append(f"Detailed query ({DETAILED_QUERY_WORDS}+ words): +{SPECIFICITY_BONUS}")
    return bonuses


def score_label(score: int) -> str:
    if score < 40:
        return "low"
    if score <= 70:
        return "medium"
    return "high"


def _coerce(request: Union[LeadQualityRequest, dict[str, Any]]) -> LeadQualityRequest:
    if isinstance(request, dict):
        return LeadQualityRequest(**request)
    return request


def compute_lead_quality_score(
    request: Union[LeadQualityRequest, dict[str, Any]],
) -> LeadQualityScore:
    request = _coerce(request)
    base, _ = _base(request.results_count)
    score = base + SPECIFICITY_BONUS * len(_bonuses(request))
    score = max(0, min(100, score))
    return LeadQualityScore(score=score, label=score_label(score))


def explain_lead_quality_score(
    request: Union[LeadQualityRequest, dict[str, Any]],
) -> str:
    """Human-readable breakdown of the factors behind the score."""
    request = _coerce(request)
    _, base_note = _base(request.results_count)
    return "; ".join([base_note] + _bonuses(request))
