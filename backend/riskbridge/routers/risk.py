"""
Risk register — /api/v1/risks

Score = L x I x asset_mult x service_mult x threat_mult - control_reduction
(see services/risk_scoring.py). The score is derived from the current links on
every read; nothing is cached on the risk row.
New risks are mapped to compliance controls right after creation (auto_map).
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from riskbridge.database import get_session
from riskbridge.models.asset import Asset, BusinessService
from riskbridge.models.mapping import RiskControlMapping
from riskbridge.models.risk import Risk, RiskAsset, RiskControl, RiskService
from riskbridge.schemas.risk import (
    AffectedEntityOut,
    RecommendationOut,
    RiskAssessmentOut,
    RiskControlIn,
    RiskControlOut,
    RiskCreate,
    RiskOut,
    RiskScoreOut,
    RiskUpdate,
)
from riskbridge.services.control_mapper import ControlMappingEngine
from riskbridge.services.risk_assessment import build_assessment
from riskbridge.services.risk_scoring import RiskScoringEngine, ScoredEntity

router = APIRouter(prefix="/api/v1/risks", tags=["Risk register"])


# -- helpers --

async def _risk_out(s: AsyncSession, risk: Risk) -> RiskOut:
    engine = RiskScoringEngine(s)
    score = await engine.score_risk(risk)

    asset_ids = (await s.execute(
        select(RiskAsset.asset_id).where(RiskAsset.risk_id == risk.id).order_by(RiskAsset.asset_id)
    )).scalars().all()
    service_ids = (await s.execute(
        select(RiskService.service_id).where(RiskService.risk_id == risk.id).order_by(RiskService.service_id)
    )).scalars().all()
    controls = (await s.execute(
        select(RiskControl).where(RiskControl.risk_id == risk.id).order_by(RiskControl.id)
    )).scalars().all()
    mapping_count = (await s.execute(
        select(func.count()).select_from(RiskControlMapping).where(RiskControlMapping.risk_id == risk.id)
    )).scalar() or 0

    return RiskOut(
        id=risk.id,
        title=risk.title,
        description=risk.description,
        category=risk.category,
        threat_source=risk.threat_source,
        likelihood=risk.likelihood,
        impact=risk.impact,
        status=risk.status,
        owner=risk.owner,
        asset_ids=list(asset_ids),
        service_ids=list(service_ids),
        controls=[
            RiskControlOut(
                id=c.id, name=c.name, maturity_level=c.maturity_level,
                implementation_status=float(c.implementation_status),
            )
            for c in controls
        ],
        risk_score=RiskScoreOut.model_validate(score),
        mapping_count=mapping_count,
        created_at=risk.created_at,
        updated_at=risk.updated_at,
    )


async def _ensure_exist(s: AsyncSession, model, ids: list[int], label: str):
    if not ids:
        return
    found = set((await s.execute(select(model.id).where(model.id.in_(ids)))).scalars().all())
    missing = sorted(set(ids) - found)
    if missing:
        raise HTTPException(400, f"Unknown {label} ids: {missing}")


async def _sync_assets(s: AsyncSession, risk_id: int, asset_ids: list[int]):
    await s.execute(delete(RiskAsset).where(RiskAsset.risk_id == risk_id))
    for aid in dict.fromkeys(asset_ids):
        s.add(RiskAsset(risk_id=risk_id, asset_id=aid))


async def _sync_services(s: AsyncSession, risk_id: int, service_ids: list[int]):
    await s.execute(delete(RiskService).where(RiskService.risk_id == risk_id))
    for sid in dict.fromkeys(service_ids):
        s.add(RiskService(risk_id=risk_id, service_id=sid))


async def _sync_controls(s: AsyncSession, risk_id: int, controls: list[RiskControlIn]):
    await s.execute(delete(RiskControl).where(RiskControl.risk_id == risk_id))
    for c in controls:
        s.add(RiskControl(
            risk_id=risk_id,
            name=c.name,
            maturity_level=c.maturity_level,
            implementation_status=c.implementation_status,
        ))


async def _get_or_404(s: AsyncSession, risk_id: int) -> Risk:
    risk = await s.get(Risk, risk_id)
    if not risk:
        raise HTTPException(404, "Risk not found")
    return risk


# =================== LIST ===================

@router.get("", response_model=list[RiskOut], summary="List risks")
async def list_risks(
    status: str | None = Query(None, description="active / closed"),
    category: str | None = Query(None),
    s: AsyncSession = Depends(get_session),
):
    q = select(Risk).order_by(Risk.id)
    if status:
        q = q.where(Risk.status == status)
    if category:
        q = q.where(Risk.category == category)
    risks = (await s.execute(q)).scalars().all()
    return [await _risk_out(s, r) for r in risks]


# =================== GET ===================

@router.get("/{risk_id}", response_model=RiskOut, summary="Get risk")
async def get_risk(risk_id: int, s: AsyncSession = Depends(get_session)):
    risk = await _get_or_404(s, risk_id)
    return await _risk_out(s, risk)


# =================== CREATE ===================

@router.post("", response_model=RiskOut, status_code=201, summary="Create risk")
async def create_risk(
    body: RiskCreate,
    auto_map: bool = Query(True, description="Map the new risk to compliance controls"),
    s: AsyncSession = Depends(get_session),
):
    await _ensure_exist(s, Asset, body.asset_ids, "asset")
    await _ensure_exist(s, BusinessService, body.service_ids, "service")

    data = body.model_dump(exclude={"asset_ids", "service_ids", "controls"})
    risk = Risk(**data)
    s.add(risk)
    await s.flush()

    await _sync_assets(s, risk.id, body.asset_ids)
    await _sync_services(s, risk.id, body.service_ids)
    await _sync_controls(s, risk.id, body.controls)
    await s.commit()
    await s.refresh(risk)

    if auto_map:
        # the mapper may roll back and expire the session; reload before building the response
        risk_id, title, description, category = risk.id, risk.title, risk.description, risk.category
        mapper = await ControlMappingEngine.create(s)
        await mapper.map_risk_to_controls(risk_id, title, description, category)
        risk = await s.get(Risk, risk_id)

    return await _risk_out(s, risk)


# =================== UPDATE ===================

@router.put("/{risk_id}", response_model=RiskOut, summary="Update risk")
async def update_risk(risk_id: int, body: RiskUpdate, s: AsyncSession = Depends(get_session)):
    risk = await _get_or_404(s, risk_id)

    if body.asset_ids is not None:
        await _ensure_exist(s, Asset, body.asset_ids, "asset")
    if body.service_ids is not None:
        await _ensure_exist(s, BusinessService, body.service_ids, "service")

    for k, v in body.model_dump(
        exclude_unset=True, exclude={"asset_ids", "service_ids", "controls"},
    ).items():
        setattr(risk, k, v)

    if body.asset_ids is not None:
        await _sync_assets(s, risk.id, body.asset_ids)
    if body.service_ids is not None:
        await _sync_services(s, risk.id, body.service_ids)
    if body.controls is not None:
        await _sync_controls(s, risk.id, body.controls)

    await s.commit()
    await s.refresh(risk)
    return await _risk_out(s, risk)


# =================== DELETE ===================

@router.delete("/{risk_id}", status_code=204, summary="Delete risk")
async def delete_risk(risk_id: int, s: AsyncSession = Depends(get_session)):
    risk = await _get_or_404(s, risk_id)
    await s.execute(delete(RiskControlMapping).where(RiskControlMapping.risk_id == risk_id))
    await s.execute(delete(RiskAsset).where(RiskAsset.risk_id == risk_id))
    await s.execute(delete(RiskService).where(RiskService.risk_id == risk_id))
    await s.execute(delete(RiskControl).where(RiskControl.risk_id == risk_id))
    await s.delete(risk)
    await s.commit()


# =================== ASSESSMENT ===================

def _entity_out(e: ScoredEntity) -> AffectedEntityOut:
    return AffectedEntityOut(
        name=e.name,
        criticality_score=e.criticality.score,
        risk_score=e.criticality.on_ten_scale,
    )


@router.get("/{risk_id}/assessment", response_model=RiskAssessmentOut, summary="Risk assessment report")
async def risk_assessment(risk_id: int, s: AsyncSession = Depends(get_session)):
    risk = await _get_or_404(s, risk_id)
    engine = RiskScoringEngine(s)
    assets, services = await engine.affected_entities(risk.id)
    controls = await engine.controls_for(risk.id)

    a = build_assessment(
        risk.id, risk.title, risk.category, risk.threat_source,
        risk.likelihood, risk.impact, assets, services, controls,
    )
    return RiskAssessmentOut(
        risk_id=a.risk_id,
        title=a.title,
        category=a.category,
        threat_source=a.threat_source,
        base_risk_score=a.score.base_risk,
        enhanced_risk_score=a.score.score,
        control_effectiveness=a.score.control_effectiveness,
        score=RiskScoreOut.model_validate(a.score),
        affected_assets=[_entity_out(e) for e in a.affected_assets],
        affected_services=[_entity_out(e) for e in a.affected_services],
        recommendations=[RecommendationOut.model_validate(r) for r in a.recommendations],
        compliance_mapping=a.compliance_mapping,
    )
