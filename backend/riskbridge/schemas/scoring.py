from pydantic import BaseModel, Field

from riskbridge.schemas.risk import RiskControlIn, ThreatSource


class ScoreRequest(BaseModel):
    """Unsaved risk form inputs — recomputed on every checkbox/dropdown change."""
    likelihood: int = Field(..., ge=1, le=5)
    impact: int = Field(..., ge=1, le=5)
    threat_source: ThreatSource | None = None
    asset_ids: list[int] = []
    service_ids: list[int] = []
    controls: list[RiskControlIn] = []


class SuggestRequest(BaseModel):
    service_ids: list[int] = []


class SuggestionOut(BaseModel):
    suggested_probability: int
    suggested_impact: int
    reasoning: list[str] = []

    model_config = {"from_attributes": True}


class ThreatSourceOut(BaseModel):
    key: str
    label: str
    description: str
    multiplier: float
