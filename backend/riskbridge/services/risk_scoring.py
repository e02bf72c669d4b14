"""
Enhanced dynamic risk scoring.

Score = L x I x asset_mult x service_mult x threat_mult - control_reduction
  asset_mult   = 1 + avg(asset criticality on 0-10) / 10   (1 if no assets)
  service_mult = 1 + avg(service criticality on 0-10) / 10 (1 if no services)
  threat_mult  = NIST 800-30 threat source factor (unknown -> 1.0)
  control_reduction = min(10, avg(maturity x implementation) x 2) / 10
Result is rounded to 2 decimals and never below 0.1.

Criticality is stored on the 0-100 scale everywhere; `Criticality` converts
to the 0-10 scale for the multipliers. The likelihood/impact suggestion
heuristic reads the 0-100 value directly.

The pure functions persist nothing. `RiskScoringEngine` only loads a saved
risk's linked entities and delegates to them.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from riskbridge.models.asset import Asset, BusinessService, ServiceAsset
from riskbridge.models.risk import Risk, RiskAsset, RiskControl, RiskService

THREAT_MULTIPLIERS = {
    "adversarial": 1.3,
    "accidental": 1.0,
    "structural": 1.1,
    "environmental": 1.2,
}

MIN_SCORE = 0.1
RATING_MIN, RATING_MAX = 1, 5


class InvalidScoringInput(ValueError):
    """Raised when a scoring input is outside its allowed domain."""


# ─── Value types ──────────────────────────────────────────────


@dataclass(frozen=True)
class Rating:
    """Likelihood or impact ordinal, 1..5."""
    value: int
    name: str = "rating"

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise InvalidScoringInput(f"{self.name} must be an integer, got {self.value!r}")
        if not RATING_MIN <= self.value <= RATING_MAX:
            raise InvalidScoringInput(
                f"{self.name} must be between {RATING_MIN} and {RATING_MAX}, got {self.value}"
            )

    def __int__(self) -> int:
        return self.value


@dataclass(frozen=True)
class Criticality:
    """Criticality on the canonical 0-100 scale."""
    score: float

    def __post_init__(self):
        if isinstance(self.score, bool) or not isinstance(self.score, (int, float)) or math.isnan(self.score):
            raise InvalidScoringInput(f"criticality must be numeric, got {self.score!r}")
        if not 0 <= self.score <= 100:
            raise InvalidScoringInput(f"criticality must be between 0 and 100, got {self.score}")

    @property
    def on_ten_scale(self) -> float:
        return self.score / 10


@dataclass(frozen=True)
class ScoredEntity:
    """An affected asset or service as seen by the scoring engine."""
    criticality: Criticality
    name: str | None = None
    dependency_count: int = 0
    risk_count: int = 0
    department: str | None = None


@dataclass(frozen=True)
class ControlPosture:
    maturity_level: int
    implementation_status: float

    def __post_init__(self):
        if isinstance(self.maturity_level, bool) or not isinstance(self.maturity_level, int) \
                or not 1 <= self.maturity_level <= 5:
            raise InvalidScoringInput(f"maturity_level must be 1..5, got {self.maturity_level!r}")
        if not 0.0 <= float(self.implementation_status) <= 1.0:
            raise InvalidScoringInput(
                f"implementation_status must be 0.0..1.0, got {self.implementation_status!r}"
            )


@dataclass
class RiskScore:
    score: float
    base_risk: float
    asset_multiplier: float
    service_multiplier: float
    threat_multiplier: float
    control_effectiveness: float
    control_reduction: float
    reasoning: list[str] = field(default_factory=list)


@dataclass
class RatingSuggestion:
    suggested_probability: int
    suggested_impact: int
    reasoning: list[str] = field(default_factory=list)


# ─── Formula pieces ───────────────────────────────────────────


def _round2(value: float) -> float:
    """Round half up to 2 decimals."""
    return math.floor(value * 100 + 0.5) / 100


def threat_multiplier(threat_source: str | None) -> float:
    if not threat_source:
        return 1.0
    return THREAT_MULTIPLIERS.get(str(threat_source).strip().lower(), 1.0)


def criticality_multiplier(entities: list[ScoredEntity]) -> float:
    if not entities:
        return 1.0
    avg = sum(e.criticality.on_ten_scale for e in entities) / len(entities)
    return 1 + avg / 10


def control_effectiveness(controls: list[ControlPosture]) -> float:
    """Effectiveness of the attached controls on a 0-10 scale."""
    if not controls:
        return 0.0
    total = sum(c.maturity_level * float(c.implementation_status) for c in controls)
    return min(10.0, (total / len(controls)) * 2)


def calculate_enhanced_risk_score(
    likelihood: float,
    impact: float,
    assets: list[ScoredEntity] | None = None,
    services: list[ScoredEntity] | None = None,
    threat_source: str | None = None,
    controls: list[ControlPosture] | None = None,
) -> RiskScore:
    """Integrated risk score for a risk and its affected entities.

    Absent likelihood/impact default to 1 here; validated callers pass `Rating`
    values instead (see `score_inputs`).
    """
    assets = assets or []
    services = services or []
    controls = controls or []

    base = (likelihood or 1) * (impact or 1)
    asset_mult = criticality_multiplier(assets)
    service_mult = criticality_multiplier(services)
    threat_mult = threat_multiplier(threat_source)
    effectiveness = control_effectiveness(controls)
    reduction = effectiveness / 10

    raw = base * asset_mult * service_mult * threat_mult - reduction
    score = max(MIN_SCORE, _round2(raw))

    reasoning = [f"Base risk {likelihood or 1} x {impact or 1} = {base}"]
    if assets:
        reasoning.append(
            f"{len(assets)} affected asset(s) amplify risk by x{asset_mult:.2f}"
        )
    if services:
        reasoning.append(
            f"{len(services)} affected service(s) amplify risk by x{service_mult:.2f}"
        )
    if threat_mult != 1.0:
        reasoning.append(f"{threat_source} threat source amplifies risk by x{threat_mult:.1f}")
    if controls:
        reasoning.append(
            f"{len(controls)} control(s) with effectiveness {effectiveness:.1f}/10 "
            f"reduce risk by {reduction:.2f}"
        )

    return RiskScore(
        score=score,
        base_risk=base,
        asset_multiplier=_round2(asset_mult),
        service_multiplier=_round2(service_mult),
        threat_multiplier=threat_mult,
        control_effectiveness=_round2(effectiveness),
        control_reduction=_round2(reduction),
        reasoning=reasoning,
    )


def score_inputs(
    likelihood: int,
    impact: int,
    assets: list[ScoredEntity] | None = None,
    services: list[ScoredEntity] | None = None,
    threat_source: str | None = None,
    controls: list[ControlPosture] | None = None,
) -> RiskScore:
    """Validated entry point: rejects ordinals outside 1..5."""
    l_rating = Rating(likelihood, "likelihood")
    i_rating = Rating(impact, "impact")
    return calculate_enhanced_risk_score(
        l_rating.value, i_rating.value, assets, services, threat_source, controls,
    )


def suggest_ratings(services: list[ScoredEntity]) -> RatingSuggestion:
    """Suggest likelihood (probability) and impact from the affected services."""
    if not services:
        return RatingSuggestion(
            suggested_probability=3,
            suggested_impact=3,
            reasoning=["No services selected. Using baseline medium ratings."],
        )

    reasoning: list[str] = []
    scores = [s.criticality.score for s in services]
    avg_crit = sum(scores) / len(scores)
    max_crit = max(scores)
    critical_count = sum(1 for c in scores if c >= 80)

    if max_crit >= 80:
        impact = 5
        reasoning.append("Critical services affected (criticality >= 80) suggests SEVERE impact")
    elif max_crit >= 60:
        impact = 4
        reasoning.append("High criticality services (60-79) suggests MAJOR impact")
    elif avg_crit >= 50:
        impact = 3
        reasoning.append("Medium criticality services suggests MODERATE impact")
    else:
        impact = 2
        reasoning.append("Lower criticality services suggests MINOR impact")

    probability = 3
    total_deps = sum(s.dependency_count or 0 for s in services)
    total_risks = sum(s.risk_count or 0 for s in services)
    if total_risks > 5 or total_deps > 10:
        probability = 4
        reasoning.append(
            f"High risk count ({total_risks}) or dependencies ({total_deps}) "
            f"increases probability to HIGH"
        )
    elif len(services) > 3:
        probability = 4
        reasoning.append(f"Multiple services ({len(services)}) affected increases probability to HIGH")
    elif critical_count > 0:
        reasoning.append(f"{critical_count} critical service(s) affected suggests MEDIUM probability")

    departments = {s.department or "Unknown" for s in services}
    if len(departments) > 2:
        reasoning.append(
            f"Risk spans {len(departments)} departments, indicating broader organizational impact"
        )

    return RatingSuggestion(
        suggested_probability=probability,
        suggested_impact=impact,
        reasoning=reasoning,
    )


# ─── Database-backed engine ───────────────────────────────────


class RiskScoringEngine:
    """Loads affected entities from the database and scores them."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _service_entities(self, service_ids: list[int]) -> list[ScoredEntity]:
        if not service_ids:
            return []
        deps = (
            select(ServiceAsset.service_id, func.count().label("n"))
            .where(ServiceAsset.service_id.in_(service_ids))
            .group_by(ServiceAsset.service_id)
        )
        risks = (
            select(RiskService.service_id, func.count().label("n"))
            .join(Risk, Risk.id == RiskService.risk_id)
            .where(RiskService.service_id.in_(service_ids), Risk.status == "active")
            .group_by(RiskService.service_id)
        )
        dep_counts = {r.service_id: r.n for r in (await self.session.execute(deps)).all()}
        risk_counts = {r.service_id: r.n for r in (await self.session.execute(risks)).all()}

        q = select(BusinessService).where(BusinessService.id.in_(service_ids))
        rows = (await self.session.execute(q)).scalars().all()
        return [
            ScoredEntity(
                criticality=Criticality(float(svc.criticality_score or 0)),
                name=svc.name,
                dependency_count=dep_counts.get(svc.id, 0),
                risk_count=risk_counts.get(svc.id, 0),
                department=svc.business_department,
            )
            for svc in rows
        ]

    async def _asset_entities(self, asset_ids: list[int]) -> list[ScoredEntity]:
        if not asset_ids:
            return []
        q = select(Asset).where(Asset.id.in_(asset_ids))
        rows = (await self.session.execute(q)).scalars().all()
        return [
            ScoredEntity(criticality=Criticality(float(a.criticality_score or 0)), name=a.name)
            for a in rows
        ]

    async def score_adhoc(
        self,
        likelihood: int,
        impact: int,
        asset_ids: list[int],
        service_ids: list[int],
        threat_source: str | None,
        controls: list[ControlPosture],
    ) -> RiskScore:
        """Score unsaved form inputs (interactive recomputation)."""
        assets = await self._asset_entities(asset_ids)
        services = await self._service_entities(service_ids)
        return score_inputs(likelihood, impact, assets, services, threat_source, controls)

    async def suggest(self, service_ids: list[int]) -> RatingSuggestion:
        return suggest_ratings(await self._service_entities(service_ids))

    async def affected_entities(self, risk_id: int) -> tuple[list[ScoredEntity], list[ScoredEntity]]:
        asset_ids = list((await self.session.execute(
            select(RiskAsset.asset_id).where(RiskAsset.risk_id == risk_id)
        )).scalars().all())
        service_ids = list((await self.session.execute(
            select(RiskService.service_id).where(RiskService.risk_id == risk_id)
        )).scalars().all())
        return await self._asset_entities(asset_ids), await self._service_entities(service_ids)

    async def controls_for(self, risk_id: int) -> list[ControlPosture]:
        rows = (await self.session.execute(
            select(RiskControl).where(RiskControl.risk_id == risk_id).order_by(RiskControl.id)
        )).scalars().all()
        return [
            ControlPosture(c.maturity_level, float(c.implementation_status))
            for c in rows
        ]

    async def score_risk(self, risk: Risk) -> RiskScore:
        """Score a saved risk from its current links. Never cached, so never stale."""
        assets, services = await self.affected_entities(risk.id)
        controls = await self.controls_for(risk.id)
        return calculate_enhanced_risk_score(
            risk.likelihood, risk.impact, assets, services, risk.threat_source, controls,
        )
