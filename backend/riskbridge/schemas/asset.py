from datetime import datetime

from pydantic import BaseModel, Field


class AssetCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=400)
    asset_type: str | None = Field(None, max_length=100)
    owner: str | None = Field(None, max_length=200)
    description: str | None = None
    criticality_score: float = Field(0, ge=0, le=100, description="0-100")


class AssetOut(BaseModel):
    id: int
    name: str
    asset_type: str | None = None
    owner: str | None = None
    description: str | None = None
    criticality_score: float
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ServiceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=400)
    business_department: str | None = Field(None, max_length=200)
    description: str | None = None
    criticality_score: float = Field(0, ge=0, le=100, description="0-100")
    asset_ids: list[int] = []


class ServiceOut(BaseModel):
    id: int
    name: str
    business_department: str | None = None
    description: str | None = None
    criticality_score: float
    dependency_count: int = 0
    risk_count: int = 0
    is_active: bool
    created_at: datetime
