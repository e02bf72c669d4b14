"""
Compliance frameworks — /api/v1/frameworks

Reference data for the control mapper: frameworks, their control catalogs and
the keyword patterns (per framework type) that steer mapping confidence.
"""
import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from riskbridge.database import get_session
from riskbridge.models.framework import ComplianceControl, ComplianceFramework
from riskbridge.models.mapping import MappingPattern
from riskbridge.schemas.framework import (
    ControlCreate,
    ControlOut,
    FrameworkCreate,
    FrameworkOut,
    PatternCreate,
    PatternImportOut,
    PatternOut,
)
from riskbridge.services.pattern_import import import_patterns

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/frameworks", tags=["Compliance frameworks"])


# ═══ Mapping patterns ═══════════════════════════════════════════


@router.get("/patterns", response_model=list[PatternOut], summary="List mapping patterns")
async def list_patterns(framework_type: str | None = None, s: AsyncSession = Depends(get_session)):
    q = select(MappingPattern).order_by(MappingPattern.framework_type, MappingPattern.mapping_strength.desc())
    if framework_type:
        q = q.where(MappingPattern.framework_type == framework_type.lower())
    return (await s.execute(q)).scalars().all()


@router.post("/patterns", response_model=PatternOut, status_code=201, summary="Create mapping pattern")
async def create_pattern(body: PatternCreate, s: AsyncSession = Depends(get_session)):
    data = body.model_dump()
    data["framework_type"] = data["framework_type"].lower()
    p = MappingPattern(**data)
    s.add(p)
    await s.commit()
    await s.refresh(p)
    return p


@router.post("/patterns/import", response_model=PatternImportOut, summary="Import patterns from YAML")
async def import_patterns_endpoint(
    file: UploadFile = File(...),
    s: AsyncSession = Depends(get_session),
):
    if not file.filename or not file.filename.endswith((".yaml", ".yml")):
        raise HTTPException(400, "File must have a .yaml or .yml extension")

    try:
        result = await import_patterns(s, await file.read())
        await s.commit()
    except ValueError as e:
        await s.rollback()
        raise HTTPException(400, str(e))
    except Exception as e:
        await s.rollback()
        logger.exception("Pattern import failed")
        raise HTTPException(500, f"Import failed: {e}")

    return PatternImportOut(created=result.created, skipped=result.skipped, errors=result.errors)


# ═══ Frameworks ═════════════════════════════════════════════════


async def _framework_out(s: AsyncSession, fw: ComplianceFramework) -> FrameworkOut:
    count = (await s.execute(
        select(func.count(ComplianceControl.id)).where(ComplianceControl.framework_id == fw.id)
    )).scalar() or 0
    return FrameworkOut(
        id=fw.id,
        name=fw.name,
        type=fw.type,
        version=fw.version,
        description=fw.description,
        is_active=fw.is_active,
        controls_count=count,
        created_at=fw.created_at,
    )


@router.get("", response_model=list[FrameworkOut], summary="List frameworks")
async def list_frameworks(active_only: bool = False, s: AsyncSession = Depends(get_session)):
    q = select(ComplianceFramework).order_by(ComplianceFramework.name)
    if active_only:
        q = q.where(ComplianceFramework.is_active.is_(True))
    rows = (await s.execute(q)).scalars().all()
    return [await _framework_out(s, fw) for fw in rows]


@router.post("", response_model=FrameworkOut, status_code=201, summary="Create framework")
async def create_framework(body: FrameworkCreate, s: AsyncSession = Depends(get_session)):
    data = body.model_dump()
    data["type"] = data["type"].lower()
    fw = ComplianceFramework(**data)
    s.add(fw)
    await s.commit()
    await s.refresh(fw)
    return await _framework_out(s, fw)


@router.get("/{framework_id}/controls", response_model=list[ControlOut], summary="Framework controls")
async def list_controls(framework_id: int, s: AsyncSession = Depends(get_session)):
    if not await s.get(ComplianceFramework, framework_id):
        raise HTTPException(404, "Framework not found")
    q = select(ComplianceControl).where(ComplianceControl.framework_id == framework_id).order_by(
        ComplianceControl.control_id,
    )
    return (await s.execute(q)).scalars().all()


@router.post("/{framework_id}/controls", response_model=ControlOut, status_code=201, summary="Add control")
async def create_control(framework_id: int, body: ControlCreate, s: AsyncSession = Depends(get_session)):
    if not await s.get(ComplianceFramework, framework_id):
        raise HTTPException(404, "Framework not found")
    dup = (await s.execute(
        select(ComplianceControl.id).where(
            ComplianceControl.framework_id == framework_id,
            ComplianceControl.control_id == body.control_id,
        )
    )).scalar()
    if dup:
        raise HTTPException(409, f"Control {body.control_id} already exists in this framework")

    c = ComplianceControl(framework_id=framework_id, **body.model_dump())
    s.add(c)
    await s.commit()
    await s.refresh(c)
    return c
