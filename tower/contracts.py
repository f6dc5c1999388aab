"""
Standardized data contracts for the Tower evaluation harness.

Every artefact the agent hands to Tower, and every verdict Tower hands
back, passes through these Pydantic models. Objects are created fresh
per evaluation call; nothing here carries identity or persistence.

Usage:
    from tower.contracts import LeadsListRequest, Verdict

    request = LeadsListRequest(**payload)
    verdict = judge_leads_list(request)
    return verdict.to_payload()
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    model_validator,
)


# ─── Enums ────────────────────────────────────────────────────────────

class ConstraintType(str, Enum):
    NAME_CONTAINS = "NAME_CONTAINS"
    NAME_STARTS_WITH = "NAME_STARTS_WITH"
    LOCATION = "LOCATION"
    COUNT_MIN = "COUNT_MIN"


NAME_CONSTRAINT_TYPES = frozenset({
    ConstraintType.NAME_CONTAINS,
    ConstraintType.NAME_STARTS_WITH,
})


class Hardness(str, Enum):
    HARD = "hard"
    SOFT = "soft"


class VerdictKind(str, Enum):
    ACCEPT = "ACCEPT"
    CHANGE_PLAN = "CHANGE_PLAN"
    STOP = "STOP"


class VerdictAction(str, Enum):
    CONTINUE = "continue"
    CHANGE_PLAN = "change_plan"
    STOP = "stop"


# Fixed pairing: an action is never chosen independently of its verdict.
VERDICT_ACTIONS: dict[VerdictKind, VerdictAction] = {
    VerdictKind.ACCEPT: VerdictAction.CONTINUE,
    VerdictKind.CHANGE_PLAN: VerdictAction.CHANGE_PLAN,
    VerdictKind.STOP: VerdictAction.STOP,
}


class SuggestedChangeType(str, Enum):
    RELAX_CONSTRAINT = "RELAX_CONSTRAINT"
    EXPAND_AREA = "EXPAND_AREA"
    INCREASE_SEARCH_BUDGET = "INCREASE_SEARCH_BUDGET"
    CHANGE_QUERY = "CHANGE_QUERY"
    ADD_VERIFICATION_STEP = "ADD_VERIFICATION_STEP"
    STOP_CONDITION = "STOP_CONDITION"


class JudgementVerdict(str, Enum):
    CONTINUE = "CONTINUE"
    STOP = "STOP"


class JudgementReasonCode(str, Enum):
    SUCCESS_ACHIEVED = "SUCCESS_ACHIEVED"
    COST_EXCEEDED = "COST_EXCEEDED"
    CPL_EXCEEDED = "CPL_EXCEEDED"
    FAILURES_EXCEEDED = "FAILURES_EXCEEDED"
    STALL_DETECTED = "STALL_DETECTED"
    RUNNING = "RUNNING"


# ─── Constraints ──────────────────────────────────────────────────────

class Constraint(BaseModel):
    """Canonical constraint. Hardness is always explicit after resolution."""

    model_config = ConfigDict(frozen=True)

    type: ConstraintType
    field: str
    value: Union[str, int, float]
    hardness: Hardness

    @property
    def is_hard(self) -> bool:
        return self.hardness == Hardness.HARD

    @property
    def label(self) -> str:
        return f"{self.type.value}({self.value})"


class ConstraintResult(BaseModel):
    """Outcome of one constraint against one candidate result list."""

    model_config = ConfigDict(frozen=True)

    constraint: Constraint
    matched_count: int
    total_leads: int
    passed: bool


# ─── Leads ────────────────────────────────────────────────────────────

class Lead(BaseModel):
    """
    A single delivered result. Opaque beyond name/address; any other
    fields the agent attaches are carried through untouched.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    address: Optional[str] = None
    verified: Optional[bool] = None
    evidence: Any = None
    source_url: Optional[str] = None

    @property
    def declares_evidence(self) -> bool:
        """True when the agent populated verified/evidence at all."""
        return bool({"verified", "evidence"} & self.model_fields_set)


class AttemptHistoryEntry(BaseModel):
    plan_version: int
    radius_km: float
    delivered_count: int


class SuccessCriteria(BaseModel):
    model_config = ConfigDict(extra="allow")

    target_count: Optional[int] = None


class VerificationSummary(BaseModel):
    """External verification of constraints the lead list cannot prove."""

    model_config = ConfigDict(extra="allow")

    location_verified: Optional[bool] = None
    location_matched_count: Optional[int] = None


class LeadsListRequest(BaseModel):
    """The `leads_list` artefact submitted for a verdict."""

    model_config = ConfigDict(extra="allow")

    run_id: Optional[str] = None
    artefact_id: Optional[str] = None
    original_user_goal: Optional[str] = None
    normalized_goal: Optional[str] = None

    leads: Optional[list[Lead]] = None

    # Any of the historical constraint shapes; normalized by the resolver.
    constraints: Optional[Union[list[Any], dict[str, Any]]] = None
    hard_constraints: Optional[list[str]] = None
    soft_constraints: Optional[list[str]] = None
    structured_constraints: Optional[list[dict[str, Any]]] = None

    requested_count_user: Optional[int] = None
    success_criteria: Optional[SuccessCriteria] = None
    requested_count: Optional[int] = None

    verified_exact_count: Optional[int] = None
    delivered_matching: Optional[int] = None
    accumulated_count: Optional[int] = None
    delivered_count: Optional[int] = None
    delivered: Optional[int] = None

    plan_version: Optional[int] = None
    radius_km: Optional[float] = None
    attempt_history: Optional[list[AttemptHistoryEntry]] = None
    replans_used: Optional[int] = None
    max_replans: Optional[int] = None
    allow_relax_soft_constraints: bool = True
    max_results: Optional[int] = None

    relaxed_constraints: Optional[list[Union[str, dict[str, Any]]]] = None
    artefact_title: Optional[str] = None
    artefact_summary: Optional[str] = None

    verification_summary: Optional[VerificationSummary] = None
    delivery_summary: Optional[str] = None
    tower_verdict: Optional[str] = None


# ─── Verdicts ─────────────────────────────────────────────────────────

class StopReason(BaseModel):
    """Machine-checkable code plus the human message surfaced to operators."""

    code: str
    message: str
    evidence: dict[str, Any] = Field(default_factory=dict)


class SuggestedChange(BaseModel):
    """A typed corrective action. `from` is a keyword, hence the alias."""

    model_config = ConfigDict(populate_by_name=True)

    type: SuggestedChangeType
    field: str
    from_: Optional[Union[str, int, float]] = Field(None, alias="from")
    to: Optional[Union[str, int, float]] = None
    reason: str = ""


class Verdict(BaseModel):
    """Leads-list verdict returned to the calling service."""

    verdict: VerdictKind
    delivered: int
    requested: int
    gaps: list[str] = Field(default_factory=list)
    confidence: int = Field(..., ge=0, le=100)
    rationale: str
    suggested_changes: list[SuggestedChange] = Field(default_factory=list)
    constraint_results: Optional[list[ConstraintResult]] = None
    stop_reason: Optional[StopReason] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def action(self) -> VerdictAction:
        return VERDICT_ACTIONS[self.verdict]

    @model_validator(mode="after")
    def _check_shape(self) -> "Verdict":
        if self.suggested_changes and self.verdict != VerdictKind.CHANGE_PLAN:
            raise ValueError("suggested_changes are only valid on CHANGE_PLAN")
        if self.verdict == VerdictKind.CHANGE_PLAN and not self.suggested_changes:
            raise ValueError("CHANGE_PLAN requires at least one suggested change")
        if self.verdict == VerdictKind.STOP and self.stop_reason is None:
            raise ValueError("STOP requires a stop_reason")
        return self

    def to_payload(self) -> dict[str, Any]:
        # exclude_none would also strip RELAX_CONSTRAINT's `to: null`
        payload = self.model_dump(mode="json", by_alias=True)
        for key in ("constraint_results", "stop_reason"):
            if payload.get(key) is None:
                payload.pop(key, None)
        return payload


# ─── Evidence Quality ─────────────────────────────────────────────────

class EvidenceQualityRequest(BaseModel):
    leads: list[Lead] = Field(default_factory=list)
    verified_exact_count: Optional[int] = None
    requested_count: int
    delivery_summary: Optional[str] = None
    tower_verdict: Optional[str] = None


class EvidenceQualityVerdict(BaseModel):
    passed: bool
    verdict: VerdictKind
    gaps: list[str] = Field(default_factory=list)
    stop_reason: Optional[StopReason] = None
    verified_with_evidence: int = 0
    verified_without_evidence: int = 0
    unknown_count: int = 0
    detail: str = ""

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# ─── Mission Snapshot Judge ───────────────────────────────────────────

class MissionSuccessCriteria(BaseModel):
    """Thresholds a whole run is judged against."""

    model_config = ConfigDict(frozen=True)

    target_leads: int = Field(..., ge=0)
    max_cost_gbp: float = Field(..., ge=0)
    max_cost_per_lead_gbp: Optional[float] = Field(None, ge=0)
    min_quality_score: float = Field(0.0, ge=0.0, le=1.0)
    max_steps: Optional[int] = Field(None, ge=1)
    max_failures: int = Field(10, ge=0)
    stall_window_steps: int = Field(3, ge=1)
    stall_min_delta_leads: int = Field(0, ge=0)


class MissionSnapshot(BaseModel):
    """Point-in-time telemetry for a run."""

    model_config = ConfigDict(frozen=True)

    steps_completed: int = Field(0, ge=0)
    leads_found: int = Field(0, ge=0)
    leads_new_last_window: int = Field(0, ge=0)
    failures_count: int = Field(0, ge=0)
    total_cost_gbp: float = Field(0.0, ge=0)
    avg_quality_score: float = Field(0.0, ge=0.0, le=1.0)
    last_error_code: Optional[str] = None


class JudgementResponse(BaseModel):
    verdict: JudgementVerdict
    reason_code: JudgementReasonCode
    explanation: str
    evaluated_at: str

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# ─── Factory Rubric ───────────────────────────────────────────────────

class FactoryConstraints(BaseModel):
    max_scrap_percent: float
    max_energy_kwh_per_good_part: Optional[float] = None
    deadline_step: Optional[int] = None


class FactoryState(BaseModel):
    model_config = ConfigDict(extra="allow")

    scrap_rate_now: float
    achievable_scrap_floor: Optional[float] = None
    defect_type: Optional[Union[str, list[str]]] = None
    energy_kwh_per_good_part: Optional[float] = None
    moisture_level: Optional[float] = None
    tool_condition: Optional[str] = None
    machine: Optional[str] = None
    step: Optional[int] = None


class FactoryDecision(BaseModel):
    action: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class FactoryStepSnapshot(BaseModel):
    step: int
    scrap_rate: float
    defect_type: Optional[Union[str, list[str]]] = None
    energy_kwh_per_good_part: Optional[float] = None
    decision_action: Optional[str] = None
    machine: Optional[str] = None


class FactoryRubricRequest(BaseModel):
    constraints: FactoryConstraints
    factory_state: FactoryState
    factory_decision: Optional[FactoryDecision] = None
    history: list[FactoryStepSnapshot] = Field(default_factory=list)


class FactoryJudgement(BaseModel):
    verdict: VerdictKind
    reason_code: str
    scrap_rate_now: float
    max_scrap_percent: float
    confidence: int = Field(..., ge=0, le=100)
    reason: str
    gaps: list[str] = Field(default_factory=list)
    suggested_changes: list[str] = Field(default_factory=list)
    step: Optional[int] = None
    machine: Optional[str] = None
    stop_reason: Optional[StopReason] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def action(self) -> VerdictAction:
        return VERDICT_ACTIONS[self.verdict]

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# ─── Lead Quality ─────────────────────────────────────────────────────

class LeadQualityRequest(BaseModel):
    """Lead-finder run summary used for heuristic quality scoring."""

    model_config = ConfigDict(extra="allow")

    results_count: int = Field(0, ge=0)
    location: Optional[str] = None
    vertical: Optional[str] = None
    query: Optional[str] = None


class LeadQualityScore(BaseModel):
    score: int = Field(..., ge=0, le=100)
    label: str
