"""Risk-to-control mapping — text heuristics and the engine against the database."""
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from riskbridge.models import ComplianceControl, ComplianceFramework, Risk, RiskControlMapping
from riskbridge.services.control_mapper import (
    MANUAL_RATIONALE,
    MAX_KEYWORDS,
    ControlMappingEngine,
    category_alignment,
    determine_control_type,
    estimate_effectiveness,
    extract_keywords,
    keyword_similarity,
    mapping_confidence,
    mapping_rationale,
    pattern_score,
)
from riskbridge.services.pattern_import import EmptyPatternSource, MappingPatternSource, PatternSpec
from conftest import ACCESS_POLICY_DESC

ACCESS_RISK = {
    "title": "Unauthorized access to customer database",
    "description": "Weak access control and authentication allow unauthorized access",
    "category": "access_control",
}

ACCESS_PATTERN = PatternSpec(
    framework_type="iso27001",
    control_family="Access Control",
    risk_keywords=("access", "unauthorized"),
    control_keywords=("access", "identity"),
    mapping_strength=0.9,
)


async def _add_risk(db: AsyncSession, status: str = "active", **overrides) -> int:
    data = {**ACCESS_RISK, "likelihood": 3, "impact": 4, "status": status, **overrides}
    risk = Risk(**data)
    db.add(risk)
    await db.commit()
    return risk.id


async def _count_mappings(db: AsyncSession, risk_id: int) -> int:
    q = select(func.count()).select_from(RiskControlMapping).where(RiskControlMapping.risk_id == risk_id)
    return (await db.execute(q)).scalar()


# ═══ Text heuristics ═══════════════════════════════════════════


def test_extract_keywords_filters_and_dedups():
    words = extract_keywords("The firewall, the FIREWALL and an IDS/IPS sensor!")
    assert words == ["firewall", "ids", "ips", "sensor"]


def test_extract_keywords_caps_at_first_twenty():
    text = " ".join(f"word{i:02d}" for i in range(25))
    words = extract_keywords(text)
    assert len(words) == MAX_KEYWORDS
    assert words[0] == "word00"
    assert words[-1] == "word19"


def test_extract_keywords_window_counts_repeats():
    text = " ".join(["firewall"] * 19 + ["router", "switch"])
    assert extract_keywords(text) == ["firewall", "router"]


def test_extract_keywords_empty():
    assert extract_keywords("") == []
    assert extract_keywords(None) == []


def test_keyword_similarity_is_symmetric_jaccard():
    a = "access control policy"
    b = "access review policy logging"
    assert keyword_similarity(a, b) == pytest.approx(2 / 5)
    assert keyword_similarity(a, b) == keyword_similarity(b, a)
    assert keyword_similarity("", b) == 0.0


def test_pattern_score_requires_both_sides():
    patterns = [ACCESS_PATTERN]
    assert pattern_score("unauthorized login", "identity management", "", patterns) == 0.9
    assert pattern_score("power outage", "identity management", "", patterns) == 0.0
    assert pattern_score("unauthorized login", "backup schedule", "", patterns) == 0.0
    # a category hit counts as a risk-side match
    assert pattern_score("power outage", "identity management", "access_control", patterns) == 0.9


def test_pattern_score_takes_strongest():
    weak = PatternSpec("iso27001", "Ops", ("access",), ("access",), 0.4)
    assert pattern_score("access", "access", "", [weak, ACCESS_PATTERN]) == 0.9
    assert pattern_score("access", "access", "", []) == 0.0


def test_category_alignment():
    assert category_alignment("phishing password theft", "strong authentication") == 0.8
    assert category_alignment("earthquake", "visitor badges") == 0.3


def test_mapping_confidence_weights_and_cap():
    assert mapping_confidence(0.0, 0.0, 0.3) == pytest.approx(0.06)
    assert mapping_confidence(0.5, 0.5, 0.8) == pytest.approx(0.56)
    assert mapping_confidence(1.0, 1.0, 1.0) == 1.0


@pytest.mark.parametrize("text,expected", [
    ("security event monitoring", "detective"),
    ("audit log review", "detective"),
    ("incident response plan", "corrective"),
    ("password policy", "preventive"),
])
def test_determine_control_type(text, expected):
    assert determine_control_type(text) == expected


@pytest.mark.parametrize("kw,rating", [(0.8, 5), (0.6, 4), (0.4, 3), (0.2, 2), (0.05, 1), (0.3, 2)])
def test_estimate_effectiveness_bands(kw, rating):
    assert estimate_effectiveness(kw) == rating


def test_mapping_rationale_templates():
    assert mapping_rationale("R", "C", 0.9).startswith('Strong correlation identified between "R" and "C"')
    assert mapping_rationale("R", "C", 0.7).startswith("Moderate correlation")
    assert mapping_rationale("R", "C", 0.6).startswith("Basic correlation")


# ═══ Engine ════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_maps_access_risk_to_access_policy(db: AsyncSession, seed_iso):
    risk_id = await _add_risk(db)
    engine = await ControlMappingEngine.create(db)
    assert engine.pattern_count == 1

    mappings = await engine.map_risk_to_controls(risk_id, **ACCESS_RISK)
    assert len(mappings) == 1
    m = mappings[0]
    assert m.control_id == "A.9.1.1"
    assert m.framework_id == seed_iso
    assert m.mapping_confidence == pytest.approx(0.6431, abs=1e-4)
    assert m.control_type == "preventive"
    assert m.effectiveness_rating == 3
    assert m.ai_rationale.startswith("Moderate correlation")

    row = (await db.execute(
        select(RiskControlMapping).where(RiskControlMapping.risk_id == risk_id)
    )).scalar_one()
    assert row.control_id == "A.9.1.1"
    assert row.manual_override is False


@pytest.mark.asyncio
async def test_remapping_updates_in_place(db: AsyncSession, seed_iso):
    risk_id = await _add_risk(db)
    engine = await ControlMappingEngine.create(db)
    await engine.map_risk_to_controls(risk_id, **ACCESS_RISK)
    again = await engine.map_risk_to_controls(risk_id, **ACCESS_RISK)
    assert len(again) == 1
    assert await _count_mappings(db, risk_id) == 1


@pytest.mark.asyncio
async def test_manual_mapping_is_never_overwritten(db: AsyncSession, seed_iso):
    risk_id = await _add_risk(db)
    db.add(RiskControlMapping(
        risk_id=risk_id,
        control_id="A.9.1.1",
        framework_id=seed_iso,
        control_type="detective",
        effectiveness_rating=5,
        mapping_confidence=1.0,
        ai_rationale=MANUAL_RATIONALE,
        manual_override=True,
    ))
    await db.commit()

    engine = await ControlMappingEngine.create(db)
    assert await engine.map_risk_to_controls(risk_id, **ACCESS_RISK) == []

    row = (await db.execute(
        select(RiskControlMapping).where(RiskControlMapping.risk_id == risk_id)
    )).scalar_one()
    assert row.manual_override is True
    assert row.control_type == "detective"
    assert row.mapping_confidence == 1.0


@pytest.mark.asyncio
async def test_at_most_top_n_per_framework(db: AsyncSession, seed_iso):
    fw = ComplianceFramework(name="ISO/IEC 27002", type="iso27001")
    db.add(fw)
    await db.flush()
    for i in range(7):
        db.add(ComplianceControl(
            framework_id=fw.id,
            control_id=f"5.15.{i}",
            title="Access Control Policy",
            description=ACCESS_POLICY_DESC,
            category="access_control",
        ))
    await db.commit()
    risk_id = await _add_risk(db)

    engine = await ControlMappingEngine.create(db)
    mappings = await engine.map_risk_to_controls(risk_id, **ACCESS_RISK)
    per_fw = [m for m in mappings if m.framework_id == fw.id]
    assert len(per_fw) == 5
    assert await _count_mappings(db, risk_id) == 6


@pytest.mark.asyncio
async def test_inactive_frameworks_are_skipped(db: AsyncSession, seed_iso):
    fw = await db.get(ComplianceFramework, seed_iso)
    fw.is_active = False
    await db.commit()
    risk_id = await _add_risk(db)

    engine = await ControlMappingEngine.create(db)
    assert await engine.map_risk_to_controls(risk_id, **ACCESS_RISK) == []


@pytest.mark.asyncio
async def test_without_patterns_keyword_evidence_is_not_enough(db: AsyncSession, seed_iso):
    risk_id = await _add_risk(db)
    engine = await ControlMappingEngine.create(db, EmptyPatternSource())
    assert engine.pattern_count == 0
    assert await engine.map_risk_to_controls(risk_id, **ACCESS_RISK) == []


class _BrokenSource(MappingPatternSource):
    async def load(self):
        raise OSError("pattern library unavailable")


@pytest.mark.asyncio
async def test_pattern_load_failure_degrades_to_empty(db: AsyncSession, seed_iso):
    engine = await ControlMappingEngine.create(db, _BrokenSource())
    assert engine.patterns == {}


@pytest.mark.asyncio
async def test_missing_text_fields_are_tolerated(db: AsyncSession, seed_iso):
    risk_id = await _add_risk(db, description=None, category=None)
    engine = await ControlMappingEngine.create(db)
    result = await engine.map_risk_to_controls(risk_id, "Something odd", None, None)
    assert result == []


@pytest.mark.asyncio
async def test_unmapped_risks_lists_active_without_mappings(db: AsyncSession, seed_iso):
    mapped = await _add_risk(db)
    closed = await _add_risk(db, status="closed")
    fresh = await _add_risk(db, title="Weak password policy")
    engine = await ControlMappingEngine.create(db)
    await engine.map_risk_to_controls(mapped, **ACCESS_RISK)

    ids = [r.id for r in await engine.unmapped_risks()]
    assert fresh in ids
    assert mapped not in ids
    assert closed not in ids


@pytest.mark.asyncio
async def test_bulk_mapping_respects_max_risks(db: AsyncSession, seed_iso):
    for _ in range(3):
        await _add_risk(db)
    engine = await ControlMappingEngine.create(db)
    result = await engine.map_all_unmapped_risks(max_risks=2)
    assert result.processed == 2
    assert result.mapped_count == 2
    assert len(await engine.unmapped_risks()) == 1


class _FlakyEngine(ControlMappingEngine):
    failing: set[int] = set()

    async def _map_risk(self, risk_id, title, description, category):
        if risk_id in self.failing:
            raise SQLAlchemyError("disk I/O error")
        return await super()._map_risk(risk_id, title, description, category)


@pytest.mark.asyncio
async def test_bulk_mapping_records_failures_and_continues(db: AsyncSession, seed_iso):
    bad = await _add_risk(db)
    good = await _add_risk(db)
    _FlakyEngine.failing = {bad}
    engine = await _FlakyEngine.create(db)

    result = await engine.map_all_unmapped_risks()
    assert [risk.id for risk, _ in result.batch.succeeded] == [good]
    assert [f.item.id for f in result.batch.failed] == [bad]
    assert "disk I/O error" in result.batch.failed[0].error
    assert result.mapped_count == 1
    assert await _count_mappings(db, good) == 1
    assert await _count_mappings(db, bad) == 0


@pytest.mark.asyncio
async def test_bulk_mapping_rotates_past_unmappable_risks(db: AsyncSession, seed_iso):
    for i in range(3):
        await _add_risk(db, title=f"Earthquake {i}", description="Building collapse", category="physical")
    access = await _add_risk(db)
    engine = await ControlMappingEngine.create(db)

    first = await engine.map_all_unmapped_risks(max_risks=2)
    assert first.mapped_count == 0
    assert access not in [risk.id for risk, _ in first.batch.succeeded]

    second = await engine.map_all_unmapped_risks(max_risks=2)
    assert access in [risk.id for risk, _ in second.batch.succeeded]
    assert second.mapped_count == 1
    assert await _count_mappings(db, access) == 1
