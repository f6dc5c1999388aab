"""
Label honesty: an artefact must not keep advertising a constraint the
agent has since relaxed ("Pubs starting with P" after dropping the P).
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional

from tower.contracts import Constraint, ConstraintType, LeadsListRequest
from tower.engine.constraints import parse_legacy_string

_PREFIX_PHRASE = r"(?:start|starts|starting|begin|begins|beginning)\s+with\s+['\"]?"


def _originals(entry: Any, constraints: Iterable[Constraint]) -> list[tuple[Optional[ConstraintType], str]]:
    """Resolve one relaxed_constraints entry to the (type, value) pairs it replaced."""
    if isinstance(entry, str):
        parsed = parse_legacy_string(entry)
        if parsed is not None:
            return [(parsed.type, str(parsed.value))]
        field = entry.strip()
        return [(c.type, str(c.value)) for c in constraints if c.field == field]

    if isinstance(entry, dict):
        value = entry.get("original", entry.get("from", entry.get("value")))
        ctype = None
        if entry.get("type"):
            try:
                ctype = ConstraintType(str(entry["type"]).strip().upper())
            except ValueError:
                ctype = None
        if value not in (None, ""):
            return [(ctype, str(value))]
        field = entry.get("field")
        return [
            (c.type, str(c.value)) for c in constraints
            if c.field == field and (ctype is None or c.type == ctype)
        ]
    return []


def text_implies(text: str, ctype: Optional[ConstraintType], value: str) -> bool:
    value = value.strip()
    if not value or not text:
        return False
    escaped = re.escape(value)
    if ctype == ConstraintType.NAME_STARTS_WITH:
        pattern = rf"{_PREFIX_PHRASE}{escaped}(?!\w)"
    else:
        pattern = rf"(?<!\w){escaped}(?!\w)"
    return re.search(pattern, text, re.IGNORECASE) is not None


def is_label_misleading(
    request: LeadsListRequest, constraints: Iterable[Constraint]
) -> bool:
    """True when the title/summary still implies a constraint declared relaxed."""
    if not request.relaxed_constraints:
        return False
    text = " ".join(t for t in (request.artefact_title, request.artefact_summary) if t)
    if not text.strip():
        return False

    constraints = list(constraints)
    for entry in request.relaxed_constraints:
        for ctype, value in _originals(entry, constraints):
            if text_implies(text, ctype, value):
                return True
    return False
