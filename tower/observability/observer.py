"""
Verdict observer port.

The service layer notifies an observer after every verdict and every
rejected artefact. The caller owns the implementation: log it, persist
it, forward it to a dashboard. Observer failures are logged by the
service and never change the verdict returned.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


class VerdictObserver(ABC):
    """Receives one call per evaluation."""

    @abstractmethod
    def on_verdict(self, kind: str, result: dict[str, Any], run_id: Optional[str]) -> None:
        """
        Called after a verdict is rendered.

        Args:
            kind: Artefact type judged (e.g. "leads_list").
            result: JSON-ready verdict payload.
            run_id: Agent run the artefact belongs to, if known.
        """

    @abstractmethod
    def on_error(self, kind: str, error: Exception, run_id: Optional[str]) -> None:
        """Called when an artefact is rejected before a verdict is rendered."""


class NullObserver(VerdictObserver):
    def on_verdict(self, kind: str, result: dict[str, Any], run_id: Optional[str]) -> None:
        pass

    def on_error(self, kind: str, error: Exception, run_id: Optional[str]) -> None:
        pass


class LoggingObserver(VerdictObserver):
    """Default observer: one structured log line per evaluation."""

    def on_verdict(self, kind: str, result: dict[str, Any], run_id: Optional[str]) -> None:
        logger.info(
            "verdict_rendered",
            extra={
                "artefact_type": kind,
                "run_id": run_id,
                "verdict": result.get("verdict"),
                "reason_code": result.get("reason_code")
                or (result.get("stop_reason") or {}).get("code"),
                "confidence": result.get("confidence"),
                "gaps": result.get("gaps"),
            },
        )

    def on_error(self, kind: str, error: Exception, run_id: Optional[str]) -> None:
        logger.warning(
            "artefact_rejected",
            extra={
                "artefact_type": kind,
                "run_id": run_id,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )


@dataclass
class RecordingObserver(VerdictObserver):
    """Keeps every notification in memory."""

    verdicts: list[tuple[str, dict[str, Any], Optional[str]]] = field(default_factory=list)
    errors: list[tuple[str, Exception, Optional[str]]] = field(default_factory=list)

    def on_verdict(self, kind: str, result: dict[str, Any], run_id: Optional[str]) -> None:
        self.verdicts.append((kind, result, run_id))

    def on_error(self, kind: str, error: Exception, run_id: Optional[str]) -> None:
        self.errors.append((kind, error, run_id))
