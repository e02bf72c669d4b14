"""
Risk-control mapping — /api/v1/risk-controls

- AI mapping of one risk or of every unmapped risk (bulk sweep)
- Manual mapping (confidence 1.0, manual_override) and removal
- Read-back joined with control / framework metadata
- Coverage statistics
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from riskbridge.database import get_session
from riskbridge.models.framework import ComplianceControl, ComplianceFramework
from riskbridge.models.mapping import RiskControlMapping
from riskbridge.models.risk import Risk
from riskbridge.schemas.mapping import (
    BulkFailureOut,
    BulkMappingOut,
    ManualMappingCreate,
    MappingOut,
    MappingStatsOut,
    ProposedMappingOut,
    RiskMappingResult,
    RiskMappingSummary,
)
from riskbridge.services.control_mapper import MANUAL_RATIONALE, ControlMappingEngine, upsert_mapping

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/risk-controls", tags=["Risk-control mapping"])


async def _get_risk_or_404(s: AsyncSession, risk_id: int) -> Risk:
    risk = await s.get(Risk, risk_id)
    if not risk:
        raise HTTPException(404, "Risk not found")
    return risk


# ═══ Statistics ═════════════════════════════════════════════════


@router.get("/stats", response_model=MappingStatsOut, summary="Mapping coverage statistics")
async def mapping_stats(s: AsyncSession = Depends(get_session)):
    active = Risk.status == "active"
    total = (await s.execute(select(func.count(Risk.id)).where(active))).scalar() or 0

    mapped_q = (
        select(
            func.count(RiskControlMapping.id),
            func.count(func.distinct(RiskControlMapping.risk_id)),
            func.avg(RiskControlMapping.effectiveness_rating),
            func.avg(RiskControlMapping.mapping_confidence),
        )
        .select_from(RiskControlMapping)
        .join(Risk, Risk.id == RiskControlMapping.risk_id)
        .where(active)
    )
    n_mappings, n_mapped_risks, avg_eff, avg_conf = (await s.execute(mapped_q)).one()

    return MappingStatsOut(
        total_risks=total,
        mapped_controls=n_mappings or 0,
        unmapped_risks=total - (n_mapped_risks or 0),
        avg_effectiveness=round(float(avg_eff), 2) if avg_eff is not None else None,
        avg_confidence=round(float(avg_conf), 4) if avg_conf is not None else None,
    )


@router.get("/summary", response_model=list[RiskMappingSummary], summary="Per-risk mapping summary")
async def mapping_summary(s: AsyncSession = Depends(get_session)):
    q = (
        select(
            Risk.id,
            Risk.title,
            Risk.category,
            Risk.likelihood,
            Risk.impact,
            func.count(RiskControlMapping.id).label("control_count"),
            func.avg(RiskControlMapping.effectiveness_rating).label("avg_eff"),
            func.avg(RiskControlMapping.mapping_confidence).label("avg_conf"),
        )
        .outerjoin(RiskControlMapping, RiskControlMapping.risk_id == Risk.id)
        .where(Risk.status == "active")
        .group_by(Risk.id, Risk.title, Risk.category, Risk.likelihood, Risk.impact)
    )
    rows = (await s.execute(q)).all()

    fw_q = (
        select(RiskControlMapping.risk_id, ComplianceFramework.name)
        .join(ComplianceFramework, ComplianceFramework.id == RiskControlMapping.framework_id)
        .distinct()
    )
    frameworks: dict[int, list[str]] = {}
    for risk_id, name in (await s.execute(fw_q)).all():
        frameworks.setdefault(risk_id, []).append(name)

    out = [
        RiskMappingSummary(
            risk_id=r.id,
            risk_title=r.title,
            risk_category=r.category,
            base_score=r.likelihood * r.impact,
            control_count=r.control_count,
            avg_effectiveness=round(float(r.avg_eff), 2) if r.avg_eff is not None else None,
            avg_confidence=round(float(r.avg_conf), 4) if r.avg_conf is not None else None,
            frameworks=sorted(frameworks.get(r.id, [])),
        )
        for r in rows
    ]
    out.sort(key=lambda x: x.base_score, reverse=True)
    return out


# ═══ AI mapping ═════════════════════════════════════════════════


@router.post("/ai-map", response_model=BulkMappingOut, summary="Map all unmapped risks")
async def ai_map_all(
    max_risks: int | None = Query(None, ge=1, description="Upper bound on risks processed in this run"),
    s: AsyncSession = Depends(get_session),
):
    engine = await ControlMappingEngine.create(s)
    result = await engine.map_all_unmapped_risks(max_risks)
    return BulkMappingOut(
        message=f"Successfully auto-mapped {result.mapped_count} risks to controls",
        mapped_count=result.mapped_count,
        processed=result.processed,
        succeeded=[risk.id for risk, _ in result.batch.succeeded],
        failed=[BulkFailureOut(risk_id=f.item.id, error=f.error) for f in result.batch.failed],
    )


@router.post("/risks/{risk_id}/ai-map", response_model=RiskMappingResult, summary="Map one risk")
async def ai_map_risk(risk_id: int, s: AsyncSession = Depends(get_session)):
    risk = await _get_risk_or_404(s, risk_id)
    title, description, category = risk.title, risk.description, risk.category
    engine = await ControlMappingEngine.create(s)
    mappings = await engine.map_risk_to_controls(risk_id, title, description, category)
    return RiskMappingResult(
        risk_id=risk_id,
        mapped=len(mappings),
        mappings=[ProposedMappingOut.model_validate(m) for m in mappings],
    )


# ═══ Manual mapping ═════════════════════════════════════════════


@router.post("/risks/{risk_id}/mappings", response_model=MappingOut, status_code=201, summary="Manual mapping")
async def add_manual_mapping(risk_id: int, body: ManualMappingCreate, s: AsyncSession = Depends(get_session)):
    await _get_risk_or_404(s, risk_id)
    control_q = select(ComplianceControl).where(
        ComplianceControl.framework_id == body.framework_id,
        ComplianceControl.control_id == body.control_id,
    )
    control = (await s.execute(control_q)).scalar_one_or_none()
    if not control:
        raise HTTPException(404, "Control not found in framework")

    row = await upsert_mapping(
        s,
        risk_id=risk_id,
        control_id=body.control_id,
        framework_id=body.framework_id,
        control_type=body.control_type,
        effectiveness_rating=body.effectiveness_rating,
        mapping_confidence=1.0,
        ai_rationale=MANUAL_RATIONALE,
        manual_override=True,
    )
    await s.commit()
    logger.info("Manual mapping risk=%s control=%s framework=%s", risk_id, body.control_id, body.framework_id)

    out = await _mappings_for(s, risk_id, mapping_id=row.id)
    return out[0]


async def _mappings_for(s: AsyncSession, risk_id: int, mapping_id: int | None = None) -> list[MappingOut]:
    q = (
        select(
            RiskControlMapping,
            ComplianceControl.title,
            ComplianceControl.description,
            ComplianceFramework.name,
            ComplianceFramework.type,
        )
        .outerjoin(
            ComplianceControl,
            (ComplianceControl.control_id == RiskControlMapping.control_id)
            & (ComplianceControl.framework_id == RiskControlMapping.framework_id),
        )
        .outerjoin(ComplianceFramework, ComplianceFramework.id == RiskControlMapping.framework_id)
        .where(RiskControlMapping.risk_id == risk_id)
        .order_by(RiskControlMapping.mapping_confidence.desc(), RiskControlMapping.id)
    )
    if mapping_id is not None:
        q = q.where(RiskControlMapping.id == mapping_id)
    rows = (await s.execute(q)).all()
    return [
        MappingOut(
            id=m.id,
            risk_id=m.risk_id,
            control_id=m.control_id,
            framework_id=m.framework_id,
            control_type=m.control_type,
            effectiveness_rating=m.effectiveness_rating,
            mapping_confidence=m.mapping_confidence,
            ai_rationale=m.ai_rationale,
            manual_override=m.manual_override,
            created_at=m.created_at,
            control_title=c_title,
            control_description=c_desc,
            framework_name=fw_name,
            framework_type=fw_type,
        )
        for m, c_title, c_desc, fw_name, fw_type in rows
    ]


@router.get("/risks/{risk_id}/mappings", response_model=list[MappingOut], summary="Mappings of a risk")
async def list_risk_mappings(risk_id: int, s: AsyncSession = Depends(get_session)):
    await _get_risk_or_404(s, risk_id)
    return await _mappings_for(s, risk_id)


@router.delete("/mappings/{mapping_id}", status_code=204, summary="Remove mapping")
async def delete_mapping(mapping_id: int, s: AsyncSession = Depends(get_session)):
    m = await s.get(RiskControlMapping, mapping_id)
    if not m:
        raise HTTPException(404, "Mapping not found")
    await s.delete(m)
    await s.commit()
