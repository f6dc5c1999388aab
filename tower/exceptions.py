"""
Custom exception hierarchy for the Tower evaluation harness.

Business problems (missing counts, empty lead lists, impossible
constraints) are NEVER raised; they are encoded as STOP verdicts with a
gap code. Exceptions here cover structural problems only:
- Configuration errors (caught at startup)
- Artefacts with the wrong shape (caller translates to HTTP 400)
- Artefact types the harness does not know how to judge

Usage:
    from tower.exceptions import InvalidArtefactError

    try:
        result = service.tower_verdict(payload)
    except InvalidArtefactError as e:
        return {"error": "Validation failed", "details": e.issues}, 400
"""

from __future__ import annotations

from typing import Optional


class TowerError(Exception):
    """
    Base exception for all Tower errors.

    All custom exceptions inherit from this, so you can catch
    `TowerError` to handle any harness-specific error.
    """

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Configuration Errors ──────────────────────────────────────────


class TowerConfigError(TowerError):
    """
    Raised when the tower.yaml config is unreadable or invalid.
    """

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.config_path = config_path


# ── Artefact Errors ───────────────────────────────────────────────


class InvalidArtefactError(TowerError):
    """
    Raised when an artefact payload does not match its schema.

    Examples:
    - `leads` is a string instead of a list
    - `attempt_history` entries missing `radius_km`
    - mission payload without `success` criteria
    """

    def __init__(
        self,
        message: str,
        *,
        artefact_type: Optional[str] = None,
        issues: Optional[list[dict]] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.artefact_type = artefact_type
        self.issues = issues or []


class UnsupportedArtefactError(TowerError):
    """
    Raised when `artefact_type` names something no rubric handles.
    """

    def __init__(
        self,
        message: str,
        *,
        artefact_type: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.artefact_type = artefact_type
