"""
Risk scoring — /api/v1/risk-scoring

Interactive scoring of unsaved risk form inputs. The UI calls these on every
change of the affected services/assets selection; the same formulas are used
server-side when a saved risk is read.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from riskbridge.database import get_session
from riskbridge.schemas.risk import RiskScoreOut
from riskbridge.schemas.scoring import ScoreRequest, SuggestionOut, SuggestRequest, ThreatSourceOut
from riskbridge.services.risk_scoring import (
    THREAT_MULTIPLIERS,
    ControlPosture,
    InvalidScoringInput,
    RiskScoringEngine,
)

router = APIRouter(prefix="/api/v1/risk-scoring", tags=["Risk scoring"])

THREAT_SOURCE_INFO = {
    "adversarial": (
        "Adversarial Threats",
        "Individuals, groups, organizations seeking to exploit vulnerabilities",
    ),
    "accidental": ("Accidental Threats", "Human actions taken without malicious intent"),
    "structural": (
        "Structural Threats",
        "Failure of equipment, environmental controls, or software",
    ),
    "environmental": (
        "Environmental Threats",
        "Natural and man-made disasters, hazards, failures",
    ),
}


@router.get("/threat-sources", response_model=list[ThreatSourceOut], summary="NIST 800-30 threat sources")
async def threat_sources():
    return [
        ThreatSourceOut(key=k, label=label, description=desc, multiplier=THREAT_MULTIPLIERS[k])
        for k, (label, desc) in THREAT_SOURCE_INFO.items()
    ]


@router.post("/calculate", response_model=RiskScoreOut, summary="Enhanced score for form inputs")
async def calculate(body: ScoreRequest, s: AsyncSession = Depends(get_session)):
    engine = RiskScoringEngine(s)
    try:
        score = await engine.score_adhoc(
            likelihood=body.likelihood,
            impact=body.impact,
            asset_ids=body.asset_ids,
            service_ids=body.service_ids,
            threat_source=body.threat_source,
            controls=[ControlPosture(c.maturity_level, c.implementation_status) for c in body.controls],
        )
    except InvalidScoringInput as e:
        raise HTTPException(422, str(e))
    return RiskScoreOut.model_validate(score)


@router.post("/suggest", response_model=SuggestionOut, summary="Suggested likelihood/impact from services")
async def suggest(body: SuggestRequest, s: AsyncSession = Depends(get_session)):
    engine = RiskScoringEngine(s)
    try:
        suggestion = await engine.suggest(body.service_ids)
    except InvalidScoringInput as e:
        raise HTTPException(422, str(e))
    return SuggestionOut.model_validate(suggestion)
