"""
Pydantic configuration schema for the Tower evaluation harness.

The thresholds the rubrics apply (radius cap, confidence band, scrap
ceiling, ...) live here rather than as literals in the engine, so an
operator can tune them from config/tower.yaml without a code change.
Every field has a default: an empty or missing config file is valid.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class LeadsVerdictConfig(BaseModel):
    """Knobs for the leads-list verdict engine and suggestion builder."""
    default_radius_km: float = Field(
        5.0, gt=0, description="Radius assumed when the artefact reports none"
    )
    max_radius_km: float = Field(
        50.0, gt=0, description="EXPAND_AREA never proposes a radius above this"
    )
    accept_confidence_floor: int = Field(80, ge=0, le=100)
    accept_confidence_ceiling: int = Field(95, ge=0, le=100)
    max_suggestions: int = Field(4, ge=1, le=10)
    max_results_cap: int = Field(
        60, ge=1, description="Upper bound for INCREASE_SEARCH_BUDGET"
    )
    require_location_verification: bool = Field(
        True,
        description="Flag hard LOCATION constraints that lack an external verification summary",
    )

    @model_validator(mode="after")
    def _check_confidence_band(self) -> "LeadsVerdictConfig":
        if self.accept_confidence_floor > self.accept_confidence_ceiling:
            raise ValueError(
                f"accept_confidence_floor ({self.accept_confidence_floor}) must not exceed "
                f"accept_confidence_ceiling ({self.accept_confidence_ceiling})"
            )
        if self.default_radius_km > self.max_radius_km:
            raise ValueError(
                f"default_radius_km ({self.default_radius_km}) must not exceed "
                f"max_radius_km ({self.max_radius_km})"
            )
        return self


class EvidenceConfig(BaseModel):
    """Evidence quality overlay settings."""
    max_listed_missing_leads: int = Field(
        10, ge=0, description="Lead names quoted in a VERIFIED_WITHOUT_EVIDENCE stop"
    )


class FactoryConfig(BaseModel):
    """Factory scrap-rate rubric settings."""
    extreme_scrap_percent: float = Field(
        50.0, gt=0, le=100, description="Scrap at or above this stops immediately"
    )


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

class TowerConfig(BaseModel):
    """
    Complete configuration for the harness.

    This is the top-level model loaded from tower.yaml.
    """
    leads: LeadsVerdictConfig = Field(default_factory=LeadsVerdictConfig)
    evidence: EvidenceConfig = Field(default_factory=EvidenceConfig)
    factory: FactoryConfig = Field(default_factory=FactoryConfig)


DEFAULT_CONFIG = TowerConfig()
