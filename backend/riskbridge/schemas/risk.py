from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ThreatSource = Literal["adversarial", "accidental", "structural", "environmental"]


class RiskControlIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=400)
    maturity_level: int = Field(1, ge=1, le=5)
    implementation_status: float = Field(0.5, ge=0.0, le=1.0)


class RiskControlOut(RiskControlIn):
    id: int

    model_config = {"from_attributes": True}


class RiskScoreOut(BaseModel):
    score: float
    base_risk: float
    asset_multiplier: float
    service_multiplier: float
    threat_multiplier: float
    control_effectiveness: float
    control_reduction: float
    reasoning: list[str] = []

    model_config = {"from_attributes": True}


class RiskOut(BaseModel):
    id: int
    title: str
    description: str | None = None
    category: str | None = None
    threat_source: str | None = None
    likelihood: int
    impact: int
    status: str
    owner: str | None = None

    asset_ids: list[int] = []
    service_ids: list[int] = []
    controls: list[RiskControlOut] = []

    # derived on every read
    risk_score: RiskScoreOut
    mapping_count: int = 0

    created_at: datetime
    updated_at: datetime


class RiskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=400)
    description: str | None = None
    category: str | None = Field(None, max_length=100)
    threat_source: ThreatSource | None = None
    likelihood: int = Field(..., ge=1, le=5)
    impact: int = Field(..., ge=1, le=5)
    owner: str | None = Field(None, max_length=200)

    asset_ids: list[int] = []
    service_ids: list[int] = []
    controls: list[RiskControlIn] = []


class RiskUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=400)
    description: str | None = None
    category: str | None = Field(None, max_length=100)
    threat_source: ThreatSource | None = None
    likelihood: int | None = Field(None, ge=1, le=5)
    impact: int | None = Field(None, ge=1, le=5)
    status: Literal["active", "closed"] | None = None
    owner: str | None = Field(None, max_length=200)

    asset_ids: list[int] | None = None
    service_ids: list[int] | None = None
    controls: list[RiskControlIn] | None = None


class RecommendationOut(BaseModel):
    type: str
    priority: str
    title: str
    description: str
    actions: list[str] = []

    model_config = {"from_attributes": True}


class AffectedEntityOut(BaseModel):
    name: str | None = None
    criticality_score: float
    risk_score: float


class RiskAssessmentOut(BaseModel):
    risk_id: int
    title: str
    category: str | None = None
    threat_source: str | None = None
    base_risk_score: float
    enhanced_risk_score: float
    control_effectiveness: float
    score: RiskScoreOut
    affected_assets: list[AffectedEntityOut] = []
    affected_services: list[AffectedEntityOut] = []
    recommendations: list[RecommendationOut] = []
    compliance_mapping: dict[str, str | None] = {}
