"""
Risk-to-control mapping engine.

For a risk's free text, every control of every active compliance framework is
scored for relevance:

  confidence = 0.4 * keyword + 0.4 * pattern + 0.2 * category

  keyword:  Jaccard similarity of the distinct tokens among the first 20 non-stopword tokens
  pattern:  strongest framework-type pattern whose risk keyword occurs in the
            risk text (or category) and whose control keyword occurs in the
            control text
  category: 0.8 when both texts fall into the same security cluster, else 0.3

Controls scoring at least the threshold (0.6) are kept, the top 5 per
framework are upserted into risk_control_mappings. Rows entered manually are
never overwritten by generated ones.

Patterns are loaded once by the async factory `ControlMappingEngine.create`
and are read-only afterwards.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import exists, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from riskbridge.config import settings
from riskbridge.models.framework import ComplianceControl, ComplianceFramework
from riskbridge.models.mapping import RiskControlMapping
from riskbridge.models.risk import Risk
from riskbridge.services.batch import BatchResult, run_best_effort
from riskbridge.services.pattern_import import (
    MappingPatternSource,
    PatternSpec,
    default_pattern_source,
)

logger = logging.getLogger(__name__)

KEYWORD_WEIGHT = 0.4
PATTERN_WEIGHT = 0.4
CATEGORY_WEIGHT = 0.2

MAX_KEYWORDS = 20
CATEGORY_MATCH = 0.8
CATEGORY_MISS = 0.3

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "is", "are", "was", "were", "be", "been", "have", "has", "had",
    "do", "does", "did", "will", "would", "could", "should", "may", "might",
    "must", "can", "shall", "this", "that", "these", "those",
})

SECURITY_CATEGORIES = (
    ("access", "authentication", "authorization", "login", "password"),
    ("data", "information", "encryption", "classification", "protection"),
    ("network", "firewall", "intrusion", "monitoring", "detection"),
    ("vendor", "third-party", "supplier", "outsourcing", "contractor"),
    ("incident", "response", "recovery", "forensics", "management"),
    ("backup", "continuity", "disaster", "recovery", "resilience"),
)

DETECTIVE_HINTS = ("monitor", "detect", "alert", "log")
CORRECTIVE_HINTS = ("response", "recover", "remediate", "correct")

_NON_WORD = re.compile(r"[^\w\s]", re.ASCII)

MANUAL_RATIONALE = "Manually mapped by user"


# ─── Text heuristics ──────────────────────────────────────────


def extract_keywords(text: str) -> list[str]:
    """Distinct tokens among the first MAX_KEYWORDS tokens longer than 2 chars that are not stop words."""
    words = _NON_WORD.sub(" ", (text or "").lower()).split()
    window = [w for w in words if len(w) > 2 and w not in STOP_WORDS][:MAX_KEYWORDS]
    return list(dict.fromkeys(window))


def keyword_similarity(text_a: str, text_b: str) -> float:
    a = set(extract_keywords(text_a))
    b = set(extract_keywords(text_b))
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def pattern_score(risk_text: str, control_text: str, risk_category: str, patterns: list[PatternSpec]) -> float:
    category = (risk_category or "").lower()
    best = 0.0
    for p in patterns:
        risk_hit = any(k in risk_text or k in category for k in p.risk_keywords)
        if risk_hit and any(k in control_text for k in p.control_keywords):
            best = max(best, p.mapping_strength)
    return best


def category_alignment(risk_text: str, control_text: str) -> float:
    for cluster in SECURITY_CATEGORIES:
        if any(w in risk_text for w in cluster) and any(w in control_text for w in cluster):
            return CATEGORY_MATCH
    return CATEGORY_MISS


def mapping_confidence(keyword: float, pattern: float, category: float) -> float:
    return min(KEYWORD_WEIGHT * keyword + PATTERN_WEIGHT * pattern + CATEGORY_WEIGHT * category, 1.0)


def determine_control_type(control_text: str) -> str:
    if any(h in control_text for h in DETECTIVE_HINTS):
        return "detective"
    if any(h in control_text for h in CORRECTIVE_HINTS):
        return "corrective"
    return "preventive"


def estimate_effectiveness(keyword_score: float) -> int:
    if keyword_score > 0.7:
        return 5
    if keyword_score > 0.5:
        return 4
    if keyword_score > 0.3:
        return 3
    if keyword_score > 0.1:
        return 2
    return 1


def mapping_rationale(risk_title: str, control_title: str, confidence: float) -> str:
    if confidence > 0.8:
        return (
            f'Strong correlation identified between "{risk_title}" and "{control_title}" control. '
            "High keyword overlap and pattern matching suggest this control is highly relevant "
            "for mitigating this risk."
        )
    if confidence > 0.6:
        return (
            f'Moderate correlation found between "{risk_title}" and "{control_title}" control. '
            "Several matching keywords and security categories suggest this control provides "
            "relevant protection."
        )
    return (
        f'Basic correlation detected between "{risk_title}" and "{control_title}" control. '
        "Some keyword matches suggest potential relevance for risk mitigation."
    )


def _join_text(*parts: str | None) -> str:
    return " ".join(p or "" for p in parts).lower()


# ─── Results ──────────────────────────────────────────────────


@dataclass
class ProposedMapping:
    risk_id: int
    control_id: str
    framework_id: int
    control_type: str
    effectiveness_rating: int
    mapping_confidence: float
    ai_rationale: str
    control_title: str | None = None


@dataclass(frozen=True)
class UnmappedRisk:
    id: int
    title: str
    description: str
    category: str


@dataclass
class BulkMappingResult:
    batch: BatchResult[UnmappedRisk, list[ProposedMapping]] = field(default_factory=BatchResult)

    @property
    def mapped_count(self) -> int:
        """Risks that received at least one mapping."""
        return sum(1 for _, mappings in self.batch.succeeded if mappings)

    @property
    def processed(self) -> int:
        return self.batch.total


# ─── Persistence ──────────────────────────────────────────────


async def upsert_mapping(
    session: AsyncSession,
    *,
    risk_id: int,
    control_id: str,
    framework_id: int,
    control_type: str,
    effectiveness_rating: int,
    mapping_confidence: float,
    ai_rationale: str | None,
    manual_override: bool = False,
) -> RiskControlMapping | None:
    """Insert or replace the row keyed by (risk_id, control_id, framework_id).

    A generated mapping never replaces a manual one; returns None in that case.
    """
    q = select(RiskControlMapping).where(
        RiskControlMapping.risk_id == risk_id,
        RiskControlMapping.control_id == control_id,
        RiskControlMapping.framework_id == framework_id,
    )
    row = (await session.execute(q)).scalar_one_or_none()
    if row is None:
        row = RiskControlMapping(risk_id=risk_id, control_id=control_id, framework_id=framework_id)
        session.add(row)
    elif row.manual_override and not manual_override:
        return None

    row.control_type = control_type
    row.effectiveness_rating = effectiveness_rating
    row.mapping_confidence = mapping_confidence
    row.ai_rationale = ai_rationale
    row.manual_override = manual_override
    row.created_at = datetime.utcnow()
    await session.flush()
    return row


# ─── Engine ───────────────────────────────────────────────────


class ControlMappingEngine:
    """Scores compliance controls against risks and persists the best matches.

    Build with `await ControlMappingEngine.create(session)`; the constructor
    expects patterns that are already loaded.
    """

    def __init__(
        self,
        session: AsyncSession,
        patterns: dict[str, list[PatternSpec]],
        threshold: float | None = None,
        top_n: int | None = None,
    ):
        self.session = session
        self.patterns = patterns
        self.threshold = settings.MAPPING_CONFIDENCE_THRESHOLD if threshold is None else threshold
        self.top_n = settings.MAPPING_TOP_N if top_n is None else top_n

    @classmethod
    async def create(
        cls,
        session: AsyncSession,
        source: MappingPatternSource | None = None,
        threshold: float | None = None,
        top_n: int | None = None,
    ) -> ControlMappingEngine:
        source = source or default_pattern_source(session)
        grouped: dict[str, list[PatternSpec]] = {}
        try:
            for p in await source.load():
                grouped.setdefault(p.framework_type.lower(), []).append(p)
        except Exception:
            logger.exception("Failed to load mapping patterns; continuing with keyword similarity only")
            grouped = {}
        logger.info(
            "Control mapper initialized with %d patterns across %d framework types",
            sum(len(v) for v in grouped.values()), len(grouped),
        )
        return cls(session, grouped, threshold, top_n)

    @property
    def pattern_count(self) -> int:
        return sum(len(v) for v in self.patterns.values())

    def score_control(
        self, risk_text: str, risk_category: str, control: ComplianceControl, framework_type: str,
    ) -> tuple[float, float]:
        """Return (confidence, keyword_score) for one control."""
        control_text = _join_text(control.title, control.description, control.category)
        kw = keyword_similarity(risk_text, control_text)
        pat = pattern_score(risk_text, control_text, risk_category, self.patterns.get(framework_type, []))
        cat = category_alignment(risk_text, control_text)
        return mapping_confidence(kw, pat, cat), kw

    def _propose_for_framework(
        self,
        risk_id: int,
        title: str,
        risk_text: str,
        category: str,
        framework: ComplianceFramework,
        controls: list[ComplianceControl],
    ) -> list[ProposedMapping]:
        fw_type = (framework.type or "").lower()
        proposals = []
        for control in controls:
            confidence, kw = self.score_control(risk_text, category, control, fw_type)
            if confidence < self.threshold:
                continue
            control_text = _join_text(control.title, control.description, control.category)
            proposals.append(ProposedMapping(
                risk_id=risk_id,
                control_id=control.control_id,
                framework_id=framework.id,
                control_type=determine_control_type(control_text),
                effectiveness_rating=estimate_effectiveness(kw),
                mapping_confidence=round(confidence, 4),
                ai_rationale=mapping_rationale(title, control.title, confidence),
                control_title=control.title,
            ))
        proposals.sort(key=lambda m: m.mapping_confidence, reverse=True)
        return proposals[: self.top_n]

    async def _store(self, m: ProposedMapping) -> bool:
        try:
            async with self.session.begin_nested():
                row = await upsert_mapping(
                    self.session,
                    risk_id=m.risk_id,
                    control_id=m.control_id,
                    framework_id=m.framework_id,
                    control_type=m.control_type,
                    effectiveness_rating=m.effectiveness_rating,
                    mapping_confidence=m.mapping_confidence,
                    ai_rationale=m.ai_rationale,
                )
        except SQLAlchemyError:
            logger.exception(
                "Error storing mapping risk=%s control=%s framework=%s",
                m.risk_id, m.control_id, m.framework_id,
            )
            return False
        return row is not None

    async def _map_risk(self, risk_id: int, title: str, description: str, category: str) -> list[ProposedMapping]:
        title = title or ""
        category = category or ""
        risk_text = _join_text(title, description, category)

        fw_q = select(ComplianceFramework).where(ComplianceFramework.is_active.is_(True)).order_by(ComplianceFramework.id)
        frameworks = (await self.session.execute(fw_q)).scalars().all()

        stored: list[ProposedMapping] = []
        for fw in frameworks:
            try:
                ctl_q = select(ComplianceControl).where(ComplianceControl.framework_id == fw.id)
                controls = list((await self.session.execute(ctl_q)).scalars().all())
            except SQLAlchemyError:
                logger.exception("Skipping framework %s: failed to load controls", fw.id)
                continue

            for m in self._propose_for_framework(risk_id, title, risk_text, category, fw, controls):
                if await self._store(m):
                    stored.append(m)

        await self.session.commit()
        logger.info("Generated %d control mappings for risk %s (%s)", len(stored), risk_id, title)
        return stored

    async def map_risk_to_controls(
        self, risk_id: int, title: str, description: str | None, category: str | None,
    ) -> list[ProposedMapping]:
        """Map one risk against all active frameworks. Database errors yield []."""
        try:
            return await self._map_risk(risk_id, title, description or "", category or "")
        except SQLAlchemyError:
            logger.exception("Error mapping risk %s to controls", risk_id)
            await self.session.rollback()
            return []

    async def unmapped_risks(self, limit: int | None = None) -> list[UnmappedRisk]:
        """Active risks without mappings, never-attempted first, then least recently attempted."""
        has_mapping = exists().where(RiskControlMapping.risk_id == Risk.id)
        q = (
            select(Risk.id, Risk.title, Risk.description, Risk.category)
            .where(Risk.status == "active", ~has_mapping)
            .order_by(Risk.last_auto_mapped_at.is_(None).desc(), Risk.last_auto_mapped_at, Risk.id)
        )
        if limit is not None:
            q = q.limit(limit)
        rows = (await self.session.execute(q)).all()
        return [UnmappedRisk(r.id, r.title, r.description or "", r.category or "") for r in rows]

    async def _mark_attempted(self, risk_ids: list[int]) -> None:
        if not risk_ids:
            return
        await self.session.execute(
            update(Risk)
            .where(Risk.id.in_(risk_ids))
            .values(last_auto_mapped_at=datetime.utcnow(), updated_at=Risk.updated_at)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

    async def map_all_unmapped_risks(self, max_risks: int | None = None) -> BulkMappingResult:
        """Map active risks that have no mapping yet, up to `max_risks` per run.

        The selected risks are marked as attempted before mapping, so risks that
        never reach the threshold rotate to the back instead of starving newer ones.
        """
        limit = settings.BULK_MAP_MAX_RISKS if max_risks is None else max_risks
        try:
            risks = await self.unmapped_risks(limit)
            await self._mark_attempted([r.id for r in risks])
        except SQLAlchemyError:
            logger.exception("Bulk mapping: failed to list unmapped risks")
            await self.session.rollback()
            return BulkMappingResult()

        async def _one(risk: UnmappedRisk) -> list[ProposedMapping]:
            try:
                return await self._map_risk(risk.id, risk.title, risk.description, risk.category)
            except SQLAlchemyError:
                await self.session.rollback()
                raise

        batch = await run_best_effort(risks, _one, label="risk")
        result = BulkMappingResult(batch=batch)
        logger.info(
            "Bulk mapping: %d/%d risks mapped, %d failed",
            result.mapped_count, len(risks), len(batch.failed),
        )
        return result
