"""
Inventory — /api/v1/assets, /api/v1/services

Minimal asset and business service registry referenced by risks.
Criticality is entered on the 0-100 scale.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from riskbridge.database import get_session
from riskbridge.models.asset import Asset, BusinessService, ServiceAsset
from riskbridge.models.risk import Risk, RiskService
from riskbridge.schemas.asset import AssetCreate, AssetOut, ServiceCreate, ServiceOut

router = APIRouter(prefix="/api/v1", tags=["Inventory"])


async def _service_out(s: AsyncSession, svc: BusinessService) -> ServiceOut:
    deps = (await s.execute(
        select(func.count()).select_from(ServiceAsset).where(ServiceAsset.service_id == svc.id)
    )).scalar() or 0
    risks = (await s.execute(
        select(func.count())
        .select_from(RiskService)
        .join(Risk, Risk.id == RiskService.risk_id)
        .where(RiskService.service_id == svc.id, Risk.status == "active")
    )).scalar() or 0
    return ServiceOut(
        id=svc.id,
        name=svc.name,
        business_department=svc.business_department,
        description=svc.description,
        criticality_score=float(svc.criticality_score),
        dependency_count=deps,
        risk_count=risks,
        is_active=svc.is_active,
        created_at=svc.created_at,
    )


# ═══ Assets ═════════════════════════════════════════════════════


@router.get("/assets", response_model=list[AssetOut], summary="List assets")
async def list_assets(s: AsyncSession = Depends(get_session)):
    q = select(Asset).where(Asset.is_active.is_(True)).order_by(Asset.name)
    return (await s.execute(q)).scalars().all()


@router.post("/assets", response_model=AssetOut, status_code=201, summary="Create asset")
async def create_asset(body: AssetCreate, s: AsyncSession = Depends(get_session)):
    asset = Asset(**body.model_dump())
    s.add(asset)
    await s.commit()
    await s.refresh(asset)
    return asset


# ═══ Services ═══════════════════════════════════════════════════


@router.get("/services", response_model=list[ServiceOut], summary="List business services")
async def list_services(s: AsyncSession = Depends(get_session)):
    q = select(BusinessService).where(BusinessService.is_active.is_(True)).order_by(
        BusinessService.criticality_score.desc(), BusinessService.id,
    )
    rows = (await s.execute(q)).scalars().all()
    return [await _service_out(s, svc) for svc in rows]


@router.post("/services", response_model=ServiceOut, status_code=201, summary="Create business service")
async def create_service(body: ServiceCreate, s: AsyncSession = Depends(get_session)):
    if body.asset_ids:
        found = set((await s.execute(select(Asset.id).where(Asset.id.in_(body.asset_ids)))).scalars().all())
        missing = sorted(set(body.asset_ids) - found)
        if missing:
            raise HTTPException(400, f"Unknown asset ids: {missing}")

    svc = BusinessService(**body.model_dump(exclude={"asset_ids"}))
    s.add(svc)
    await s.flush()
    for aid in dict.fromkeys(body.asset_ids):
        s.add(ServiceAsset(service_id=svc.id, asset_id=aid))
    await s.commit()
    await s.refresh(svc)
    return await _service_out(s, svc)
