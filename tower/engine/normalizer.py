"""
Input normalization for leads-list artefacts.

Callers have named "how many were asked for" and "how many were
delivered" in several ways over time. normalize_request() resolves both
by a fixed priority order and freezes the result, together with the
canonical constraints, into a Snapshot the rest of the engine reads.

Requested count priority:
    requested_count_user -> success_criteria.target_count -> requested_count
    (absent everywhere = None; the verdict engine STOPs, never guesses)

Delivered count priority:
    verified_exact_count -> delivered_matching -> leads (post-filter)
    -> accumulated_count / delivered_count / delivered -> 0

An explicit, already-verified figure always beats a raw list length,
because the list handed to us may not have been constraint-filtered.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from tower.config.schema import DEFAULT_CONFIG, TowerConfig
from tower.contracts import Constraint, Lead, LeadsListRequest
from tower.engine.constraints import (
    filter_matching_leads,
    parse_legacy_string,
    resolve_constraints,
)

# Delivered-count provenance labels
SOURCE_VERIFIED_EXACT = "verified_exact_count"
SOURCE_DELIVERED_MATCHING = "delivered_matching"
SOURCE_LEADS = "leads"
SOURCE_COUNTER = "counter"
SOURCE_NONE = "none"


@dataclass(frozen=True)
class Snapshot:
    """Canonical, read-only view of one leads-list artefact."""

    requested: Optional[int]
    delivered: int
    delivered_source: str
    constraints: tuple[Constraint, ...]
    leads: Optional[tuple[Lead, ...]]
    radius_km: float
    relaxed_fields: tuple[str, ...] = field(default_factory=tuple)

    @property
    def hard_constraints(self) -> tuple[Constraint, ...]:
        return tuple(c for c in self.constraints if c.is_hard)

    @property
    def soft_constraints(self) -> tuple[Constraint, ...]:
        return tuple(c for c in self.constraints if not c.is_hard)


def resolve_requested(request: LeadsListRequest) -> Optional[int]:
    if request.requested_count_user is not None:
        return request.requested_count_user
    if request.success_criteria is not None and request.success_criteria.target_count is not None:
        return request.success_criteria.target_count
    if request.requested_count is not None:
        return request.requested_count
    return None


def _counter(request: LeadsListRequest) -> Optional[int]:
    for value in (request.accumulated_count, request.delivered_count, request.delivered):
        if value is not None:
            return value
    return None


def resolve_delivered(
    request: LeadsListRequest, constraints: list[Constraint]
) -> tuple[int, str]:
    """Return (delivered, source) following the trust order above."""
    if request.verified_exact_count is not None:
        return request.verified_exact_count, SOURCE_VERIFIED_EXACT
    if request.delivered_matching is not None:
        return request.delivered_matching, SOURCE_DELIVERED_MATCHING
    if request.leads is not None:
        return len(filter_matching_leads(constraints, request.leads)), SOURCE_LEADS
    counter = _counter(request)
    if counter is not None:
        return counter, SOURCE_COUNTER
    return 0, SOURCE_NONE


def _relaxed_fields(request: LeadsListRequest) -> tuple[str, ...]:
    fields = []
    for item in request.relaxed_constraints or []:
        if isinstance(item, str):
            parsed = parse_legacy_string(item)
            fields.append(parsed.field if parsed is not None else item.strip())
        elif isinstance(item, dict) and item.get("field"):
            fields.append(str(item["field"]).strip())
    return tuple(dict.fromkeys(f for f in fields if f))


def normalize_request(
    request: LeadsListRequest, config: Optional[TowerConfig] = None
) -> Snapshot:
    config = config or DEFAULT_CONFIG
    constraints = resolve_constraints(request)
    delivered, source = resolve_delivered(request, constraints)

    radius = request.radius_km
    if radius is None or radius <= 0:
        radius = config.leads.default_radius_km

    return Snapshot(
        requested=resolve_requested(request),
        delivered=max(delivered, 0),
        delivered_source=source,
        constraints=tuple(constraints),
        leads=tuple(request.leads) if request.leads is not None else None,
        radius_km=float(radius),
        relaxed_fields=_relaxed_fields(request),
    )
