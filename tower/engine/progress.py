"""
Progress guard: circuit breaker against replan loops that change nothing.
"""

from __future__ import annotations

from typing import Optional, Sequence

from tower.contracts import AttemptHistoryEntry


def check_no_progress(history: Optional[Sequence[AttemptHistoryEntry]]) -> bool:
    """
    True when the two most recent attempts have the same radius and the
    same delivered count even though the plan version went up.
    """
    if not history or len(history) < 2:
        return False

    ordered = sorted(history, key=lambda entry: entry.plan_version)
    prev, last = ordered[-2], ordered[-1]
    return (
        last.plan_version > prev.plan_version
        and last.radius_km == prev.radius_km
        and last.delivered_count == prev.delivered_count
    )
