"""
Risk-control mapping models.

- risk_control_mappings: scored links produced by the mapping engine or entered manually.
  One row per (risk_id, control_id, framework_id); re-mapping updates in place.
- ai_mapping_patterns: keyword patterns that drive the heuristic, keyed by framework type.
"""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class RiskControlMapping(Base):
    __tablename__ = "risk_control_mappings"
    __table_args__ = (
        UniqueConstraint("risk_id", "control_id", "framework_id", name="uq_risk_control_framework"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    risk_id: Mapped[int] = mapped_column(ForeignKey("risks.id", ondelete="CASCADE"), nullable=False, index=True)
    # catalog reference (compliance_controls.control_id), scoped by framework_id
    control_id: Mapped[str] = mapped_column(String(50), nullable=False)
    framework_id: Mapped[int] = mapped_column(
        ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False,
    )

    control_type: Mapped[str] = mapped_column(String(20), default="preventive", nullable=False)
    effectiveness_rating: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    mapping_confidence: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    ai_rationale: Mapped[str | None] = mapped_column(Text)
    manual_override: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class MappingPattern(Base):
    __tablename__ = "ai_mapping_patterns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    framework_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    risk_category: Mapped[str | None] = mapped_column(String(100))
    risk_keywords: Mapped[list] = mapped_column(JSON, nullable=False)
    control_family: Mapped[str] = mapped_column(String(200), nullable=False)
    control_keywords: Mapped[list] = mapped_column(JSON, nullable=False)
    mapping_strength: Mapped[float] = mapped_column(Float, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
