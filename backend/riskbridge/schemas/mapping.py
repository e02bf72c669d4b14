from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ControlType = Literal["preventive", "detective", "corrective"]


class ProposedMappingOut(BaseModel):
    risk_id: int
    control_id: str
    framework_id: int
    control_type: str
    effectiveness_rating: int
    mapping_confidence: float
    ai_rationale: str
    control_title: str | None = None

    model_config = {"from_attributes": True}


class MappingOut(BaseModel):
    id: int
    risk_id: int
    control_id: str
    framework_id: int
    control_type: str
    effectiveness_rating: int
    mapping_confidence: float
    ai_rationale: str | None = None
    manual_override: bool
    created_at: datetime
    control_title: str | None = None
    control_description: str | None = None
    framework_name: str | None = None
    framework_type: str | None = None


class ManualMappingCreate(BaseModel):
    control_id: str = Field(..., min_length=1, max_length=50)
    framework_id: int
    control_type: ControlType = "preventive"
    effectiveness_rating: int = Field(3, ge=1, le=5)


class RiskMappingResult(BaseModel):
    risk_id: int
    mapped: int
    mappings: list[ProposedMappingOut] = []


class BulkFailureOut(BaseModel):
    risk_id: int
    error: str


class BulkMappingOut(BaseModel):
    message: str
    mapped_count: int
    processed: int
    succeeded: list[int] = []
    failed: list[BulkFailureOut] = []


class MappingStatsOut(BaseModel):
    total_risks: int
    mapped_controls: int
    unmapped_risks: int
    avg_effectiveness: float | None = None
    avg_confidence: float | None = None


class RiskMappingSummary(BaseModel):
    risk_id: int
    risk_title: str
    risk_category: str | None = None
    base_score: int
    control_count: int
    avg_effectiveness: float | None = None
    avg_confidence: float | None = None
    frameworks: list[str] = []
