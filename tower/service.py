"""
Tower service: the boundary between raw JSON artefacts and the engine.

Validates the payload, runs the matching rubric, notifies the observer
and returns a JSON-ready dict. Wrong-shape payloads raise
InvalidArtefactError; business problems come back as STOP verdicts.

Usage:
    service = TowerService()
    result = service.tower_verdict(payload)
    result = service.evaluate({"artefact_type": "factory_state", ...})
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError

from tower.config import load_tower_config
from tower.config.schema import TowerConfig
from tower.contracts import (
    EvidenceQualityRequest,
    FactoryRubricRequest,
    LeadQualityRequest,
    LeadsListRequest,
    MissionSnapshot,
    MissionSuccessCriteria,
)
from tower.engine import (
    compute_lead_quality_score,
    explain_lead_quality_score,
    judge_evidence_quality,
    judge_factory,
    judge_leads_list,
    judge_mission_snapshot,
)
from tower.exceptions import InvalidArtefactError, UnsupportedArtefactError
from tower.observability.logging_config import run_context
from tower.observability.observer import LoggingObserver, VerdictObserver

logger = logging.getLogger(__name__)

# ── Artefact Types ────────────────────────────────────────────

LEADS_LIST = "leads_list"
MISSION_SNAPSHOT = "mission_snapshot"
FACTORY_STATE = "factory_state"
EVIDENCE_QUALITY = "evidence_quality"
LEAD_QUALITY = "lead_quality"

ARTEFACT_TYPES = (LEADS_LIST, MISSION_SNAPSHOT, FACTORY_STATE, EVIDENCE_QUALITY, LEAD_QUALITY)


def _parse(model: type[BaseModel], payload: Any, artefact_type: str) -> Any:
    if not isinstance(payload, dict):
        raise InvalidArtefactError(
            f"{artefact_type} payload must be a JSON object, got {type(payload).__name__}",
            artefact_type=artefact_type,
        )
    try:
        return model(**payload)
    except ValidationError as e:
        raise InvalidArtefactError(
            f"Invalid {artefact_type} artefact: {e.error_count()} validation error(s)",
            artefact_type=artefact_type,
            issues=e.errors(include_url=False, include_context=False),
        ) from e


def _run_id(payload: Any) -> Optional[str]:
    if isinstance(payload, dict) and payload.get("run_id") is not None:
        return str(payload["run_id"])
    return None


class TowerService:
    """
    Judges agent artefacts.

    Args:
        config: Thresholds. Loaded from tower.yaml (or defaults) if omitted.
        observer: Notified after each verdict. Defaults to LoggingObserver.
    """

    def __init__(
        self,
        config: Optional[TowerConfig] = None,
        observer: Optional[VerdictObserver] = None,
    ):
        self.config = config or load_tower_config()
        self.observer = observer or LoggingObserver()

    # ─── Notification ─────────────────────────────────────────────

    def _notify(self, kind: str, result: dict[str, Any], run_id: Optional[str]) -> None:
        try:
            self.observer.on_verdict(kind, result, run_id)
        except Exception as e:
            logger.warning(
                "observer_failed",
                extra={"artefact_type": kind, "run_id": run_id, "error": str(e)},
            )

    def _notify_error(self, kind: str, error: Exception, run_id: Optional[str]) -> None:
        try:
            self.observer.on_error(kind, error, run_id)
        except Exception as e:
            logger.warning(
                "observer_failed",
                extra={"artefact_type": kind, "run_id": run_id, "error": str(e)},
            )

    def _judge(
        self,
        kind: str,
        payload: Any,
        judge: Callable[[Any], dict[str, Any]],
    ) -> dict[str, Any]:
        run_id = _run_id(payload)
        started = time.monotonic()
        with run_context(run_id):
            try:
                result = judge(payload)
            except InvalidArtefactError as e:
                self._notify_error(kind, e, run_id)
                raise
            logger.debug(
                "artefact_judged",
                extra={
                    "artefact_type": kind,
                    "duration_ms": round((time.monotonic() - started) * 1000, 2),
                },
            )
            self._notify(kind, result, run_id)
            return result

    # ─── Rubrics ──────────────────────────────────────────────────

    def tower_verdict(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Judge a leads_list artefact."""
        def judge(raw: Any) -> dict[str, Any]:
            request = _parse(LeadsListRequest, raw, LEADS_LIST)
            return judge_leads_list(request, self.config).to_payload()

        return self._judge(LEADS_LIST, payload, judge)

    def judge_mission(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Judge a mission snapshot: `{run_id?, mission_type?, success, snapshot}`."""
        def judge(raw: Any) -> dict[str, Any]:
            if not isinstance(raw, dict):
                raw = None
            success = _parse(MissionSuccessCriteria, (raw or {}).get("success"), MISSION_SNAPSHOT)
            snapshot = _parse(MissionSnapshot, (raw or {}).get("snapshot"), MISSION_SNAPSHOT)
            return judge_mission_snapshot(success, snapshot).to_payload()

        return self._judge(MISSION_SNAPSHOT, payload, judge)

    def judge_factory(self, payload: dict[str, Any]) -> dict[str, Any]:
        def judge(raw: Any) -> dict[str, Any]:
            request = _parse(FactoryRubricRequest, raw, FACTORY_STATE)
            return judge_factory(request, self.config).to_payload()

        return self._judge(FACTORY_STATE, payload, judge)

    def judge_evidence(self, payload: dict[str, Any]) -> dict[str, Any]:
        def judge(raw: Any) -> dict[str, Any]:
            request = _parse(EvidenceQualityRequest, raw, EVIDENCE_QUALITY)
            return judge_evidence_quality(request, self.config).to_payload()

        return self._judge(EVIDENCE_QUALITY, payload, judge)

    def score_lead_quality(self, payload: dict[str, Any]) -> dict[str, Any]:
        def judge(raw: Any) -> dict[str, Any]:
            request = _parse(LeadQualityRequest, raw, LEAD_QUALITY)
            result = compute_lead_quality_score(request).model_dump(mode="json")
            result["explanation"] = explain_lead_quality_score(request)
            return result

        return self._judge(LEAD_QUALITY, payload, judge)

    # ─── Dispatch ─────────────────────────────────────────────────

    def evaluate(self, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Judge any artefact, dispatching on `artefact_type` (or `artefactType`).

        Raises:
            UnsupportedArtefactError: If the type is missing or unknown.
            InvalidArtefactError: If the payload does not match its schema.
        """
        if not isinstance(payload, dict):
            raise InvalidArtefactError(
                f"Artefact must be a JSON object, got {type(payload).__name__}"
            )
        artefact_type = payload.get("artefact_type", payload.get("artefactType"))
        handlers: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
            LEADS_LIST: self.tower_verdict,
            MISSION_SNAPSHOT: self.judge_mission,
            FACTORY_STATE: self.judge_factory,
            EVIDENCE_QUALITY: self.judge_evidence,
            LEAD_QUALITY: self.score_lead_quality,
        }
        handler = handlers.get(str(artefact_type).strip().lower()) if artefact_type else None
        if handler is None:
            raise UnsupportedArtefactError(
                f"Unsupported artefact_type {artefact_type!r}; expected one of {', '.join(ARTEFACT_TYPES)}",
                artefact_type=artefact_type,
            )
        body = {k: v for k, v in payload.items() if k not in ("artefact_type", "artefactType")}
        return handler(body)
