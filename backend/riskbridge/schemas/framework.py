from datetime import datetime

from pydantic import BaseModel, Field


class FrameworkCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    type: str = Field(..., min_length=1, max_length=50)
    version: str | None = Field(None, max_length=50)
    description: str | None = None
    is_active: bool = True


class FrameworkOut(BaseModel):
    id: int
    name: str
    type: str
    version: str | None = None
    description: str | None = None
    is_active: bool
    controls_count: int = 0
    created_at: datetime


class ControlCreate(BaseModel):
    control_id: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    category: str | None = Field(None, max_length=200)


class ControlOut(ControlCreate):
    id: int
    framework_id: int

    model_config = {"from_attributes": True}


class PatternCreate(BaseModel):
    framework_type: str = Field(..., min_length=1, max_length=50)
    risk_category: str | None = Field(None, max_length=100)
    control_family: str = Field(..., min_length=1, max_length=200)
    risk_keywords: list[str] = Field(..., min_length=1)
    control_keywords: list[str] = Field(..., min_length=1)
    mapping_strength: float = Field(..., ge=0.0, le=1.0)


class PatternOut(PatternCreate):
    id: int

    model_config = {"from_attributes": True}


class PatternImportOut(BaseModel):
    created: int
    skipped: int
    errors: list[str] = []
