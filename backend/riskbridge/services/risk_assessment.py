"""
Risk assessment report — enhanced score plus recommendations and the
reference framework clauses for the risk's category.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from riskbridge.services.risk_scoring import (
    ControlPosture,
    RiskScore,
    ScoredEntity,
    calculate_enhanced_risk_score,
    control_effectiveness,
)

# ISO 27001 Annex A control categories
RISK_CATEGORIES = {
    "information_security_policies": ("Information Security Policies", "A.5"),
    "organization_information_security": ("Organization of Information Security", "A.6"),
    "human_resource_security": ("Human Resource Security", "A.7"),
    "asset_management": ("Asset Management", "A.8"),
    "access_control": ("Access Control", "A.9"),
    "cryptography": ("Cryptography", "A.10"),
    "physical_environmental_security": ("Physical and Environmental Security", "A.11"),
    "operations_security": ("Operations Security", "A.12"),
    "communications_security": ("Communications Security", "A.13"),
    "system_acquisition": ("System Acquisition, Development and Maintenance", "A.14"),
    "supplier_relationships": ("Supplier Relationships", "A.15"),
    "incident_management": ("Information Security Incident Management", "A.16"),
    "business_continuity": ("Information Security Aspects of Business Continuity", "A.17"),
    "compliance": ("Compliance", "A.18"),
}

NIST_CSF_FUNCTIONS = {
    "information_security_policies": "ID.GV - Governance",
    "asset_management": "ID.AM - Asset Management",
    "access_control": "PR.AC - Identity Management and Access Control",
    "cryptography": "PR.DS - Data Security",
    "operations_security": "PR.IP - Information Protection Processes",
    "incident_management": "RS.RP - Response Planning",
    "business_continuity": "RC.RP - Recovery Planning",
}

SOC2_CRITERIA = {
    "access_control": "Common Criteria (CC) - Logical and Physical Access Controls",
    "information_security_policies": "Common Criteria (CC) - Control Environment",
    "operations_security": "Security - System Protection",
    "communications_security": "Security - Network Security",
    "business_continuity": "Availability - System Availability",
}

# 0-10 scale, same as the score multipliers
HIGH_ENTITY_RISK = 6
LOW_CONTROL_EFFECTIVENESS = 5


@dataclass
class Recommendation:
    type: str
    priority: str
    title: str
    description: str
    actions: list[str] = field(default_factory=list)


@dataclass
class RiskAssessment:
    risk_id: int
    title: str
    category: str | None
    threat_source: str | None
    score: RiskScore
    affected_assets: list[ScoredEntity]
    affected_services: list[ScoredEntity]
    recommendations: list[Recommendation]
    compliance_mapping: dict[str, str | None]


def reference_mapping(category: str | None) -> dict[str, str | None]:
    iso = RISK_CATEGORIES.get(category or "")
    return {
        "iso27001": f"{iso[1]} - {iso[0]}" if iso else None,
        "nist_csf": NIST_CSF_FUNCTIONS.get(category or "", "Multiple Functions"),
        "soc2": SOC2_CRITERIA.get(category or "", "Multiple Criteria"),
    }


def recommendations_for(
    assets: list[ScoredEntity],
    services: list[ScoredEntity],
    controls: list[ControlPosture],
) -> list[Recommendation]:
    recs = []
    for a in assets:
        level = a.criticality.on_ten_scale
        if level > HIGH_ENTITY_RISK:
            recs.append(Recommendation(
                type="asset",
                priority="high",
                title=f"Strengthen {a.name} Security Controls",
                description=f"Asset has high risk score ({level:g}). Implement additional security controls.",
                actions=["Review access controls", "Enhance monitoring", "Update security configurations"],
            ))
    for s in services:
        level = s.criticality.on_ten_scale
        if level > HIGH_ENTITY_RISK:
            recs.append(Recommendation(
                type="service",
                priority="high",
                title=f"Improve {s.name} Resilience",
                description=f"Service has high risk score ({level:g}). Enhance service security and resilience.",
                actions=["Implement redundancy", "Enhance monitoring", "Review dependencies"],
            ))

    effectiveness = control_effectiveness(controls)
    if effectiveness < LOW_CONTROL_EFFECTIVENESS:
        recs.append(Recommendation(
            type="control",
            priority="medium",
            title="Improve Control Effectiveness",
            description=f"Current controls have low effectiveness ({effectiveness:g}/10). Enhance implementation.",
            actions=["Review control design", "Improve implementation", "Enhance monitoring and testing"],
        ))
    return recs


def build_assessment(
    risk_id: int,
    title: str,
    category: str | None,
    threat_source: str | None,
    likelihood: int,
    impact: int,
    assets: list[ScoredEntity],
    services: list[ScoredEntity],
    controls: list[ControlPosture],
) -> RiskAssessment:
    return RiskAssessment(
        risk_id=risk_id,
        title=title,
        category=category,
        threat_source=threat_source,
        score=calculate_enhanced_risk_score(likelihood, impact, assets, services, threat_source, controls),
        affected_assets=assets,
        affected_services=services,
        recommendations=recommendations_for(assets, services, controls),
        compliance_mapping=reference_mapping(category),
    )
