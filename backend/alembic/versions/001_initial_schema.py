"""Initial schema: inventory, risk register, compliance catalog, control mappings

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# Default pattern library: (framework_type, risk_category, control_family, risk_keywords, control_keywords, strength)
DEFAULT_PATTERNS = [
    ("iso27001", "access_control", "Access Control",
     ["access", "unauthorized", "authentication", "privilege", "password"],
     ["access", "authentication", "identity", "privilege", "password"], 0.9),
    ("iso27001", "cryptography", "Cryptography",
     ["data", "encryption", "breach", "leak", "confidential"],
     ["cryptographic", "encryption", "key", "protection"], 0.85),
    ("iso27001", "incident_management", "Information Security Incident Management",
     ["incident", "breach", "attack", "compromise"],
     ["incident", "response", "reporting", "evidence"], 0.85),
    ("iso27001", "business_continuity", "Business Continuity",
     ["outage", "disaster", "availability", "continuity", "failure"],
     ["continuity", "redundancy", "backup", "recovery"], 0.8),
    ("iso27001", "supplier_relationships", "Supplier Relationships",
     ["vendor", "supplier", "third-party", "outsourcing"],
     ["supplier", "agreement", "third-party", "service delivery"], 0.8),
    ("iso27001", "communications_security", "Communications Security",
     ["network", "intrusion", "firewall", "traffic"],
     ["network", "segregation", "transfer", "firewall"], 0.75),
    ("iso27001", "operations_security", "Operations Security",
     ["malware", "logging", "monitoring", "vulnerability"],
     ["logging", "monitoring", "malware", "vulnerability"], 0.75),
    ("nist", "access_control", "PR.AC Identity Management and Access Control",
     ["access", "unauthorized", "authentication", "identity"],
     ["access", "identities", "credentials", "authentication"], 0.9),
    ("nist", "cryptography", "PR.DS Data Security",
     ["data", "encryption", "breach", "leak"],
     ["data", "protected", "encryption", "integrity"], 0.85),
    ("nist", "incident_management", "RS.RP Response Planning",
     ["incident", "breach", "attack"],
     ["response", "incident", "plan"], 0.85),
    ("nist", "business_continuity", "RC.RP Recovery Planning",
     ["outage", "disaster", "continuity", "availability"],
     ["recovery", "restoration", "continuity"], 0.8),
    ("nist", "operations_security", "DE.CM Security Continuous Monitoring",
     ["malware", "intrusion", "monitoring", "anomaly"],
     ["monitored", "monitoring", "detect", "malicious"], 0.8),
    ("soc2", "access_control", "CC6 Logical and Physical Access Controls",
     ["access", "unauthorized", "authentication", "credential"],
     ["access", "logical", "authentication", "credentials"], 0.9),
    ("soc2", "operations_security", "CC7 System Operations",
     ["incident", "monitoring", "anomaly", "malware"],
     ["monitoring", "anomalies", "incident", "detection"], 0.8),
    ("soc2", "business_continuity", "A1 Availability",
     ["outage", "availability", "disaster", "capacity"],
     ["availability", "backup", "recovery", "capacity"], 0.8),
    ("soc2", "supplier_relationships", "CC9 Risk Mitigation",
     ["vendor", "supplier", "third-party", "business partner"],
     ["vendor", "business partners", "risk"], 0.75),
]


def upgrade() -> None:
    # ── 1. inventory ──
    op.create_table(
        "assets",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(400), nullable=False),
        sa.Column("asset_type", sa.String(100), nullable=True),
        sa.Column("owner", sa.String(200), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        # Criticality (0–100)
        sa.Column("criticality_score", sa.Numeric(5, 2), server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean, server_default=sa.text("1"), nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "business_services",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(400), nullable=False),
        sa.Column("business_department", sa.String(200), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("criticality_score", sa.Numeric(5, 2), server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean, server_default=sa.text("1"), nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "service_assets",
        sa.Column("service_id", sa.Integer, sa.ForeignKey("business_services.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("asset_id", sa.Integer, sa.ForeignKey("assets.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )

    # ── 2. risk register ──
    op.create_table(
        "risks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(400), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("threat_source", sa.String(30), nullable=True),
        sa.Column("likelihood", sa.Integer, nullable=False),
        sa.Column("impact", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), server_default="active", nullable=False),
        sa.Column("owner", sa.String(200), nullable=True),
        sa.Column("last_auto_mapped_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_risks_status", "risks", ["status"])

    op.create_table(
        "risk_assets",
        sa.Column("risk_id", sa.Integer, sa.ForeignKey("risks.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("asset_id", sa.Integer, sa.ForeignKey("assets.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "risk_services",
        sa.Column("risk_id", sa.Integer, sa.ForeignKey("risks.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("service_id", sa.Integer, sa.ForeignKey("business_services.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "risk_controls",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("risk_id", sa.Integer, sa.ForeignKey("risks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(400), nullable=False),
        sa.Column("maturity_level", sa.Integer, server_default="1", nullable=False),
        sa.Column("implementation_status", sa.Numeric(3, 2), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_risk_controls_risk_id", "risk_controls", ["risk_id"])

    # ── 3. compliance catalog ──
    op.create_table(
        "compliance_frameworks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("version", sa.String(50), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, server_default=sa.text("1"), nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "compliance_controls",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("framework_id", sa.Integer, sa.ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("control_id", sa.String(50), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("framework_id", "control_id", name="uq_control_framework_ref"),
    )

    # ── 4. mappings + patterns ──
    op.create_table(
        "risk_control_mappings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("risk_id", sa.Integer, sa.ForeignKey("risks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("control_id", sa.String(50), nullable=False),
        sa.Column("framework_id", sa.Integer, sa.ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("control_type", sa.String(20), server_default="preventive", nullable=False),
        sa.Column("effectiveness_rating", sa.Integer, server_default="1", nullable=False),
        sa.Column("mapping_confidence", sa.Float, server_default="0", nullable=False),
        sa.Column("ai_rationale", sa.Text, nullable=True),
        sa.Column("manual_override", sa.Boolean, server_default=sa.text("0"), nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("risk_id", "control_id", "framework_id", name="uq_risk_control_framework"),
    )
    op.create_index("ix_risk_control_mappings_risk_id", "risk_control_mappings", ["risk_id"])

    op.create_table(
        "ai_mapping_patterns",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("framework_type", sa.String(50), nullable=False),
        sa.Column("risk_category", sa.String(100), nullable=True),
        sa.Column("risk_keywords", sa.JSON, nullable=False),
        sa.Column("control_family", sa.String(200), nullable=False),
        sa.Column("control_keywords", sa.JSON, nullable=False),
        sa.Column("mapping_strength", sa.Float, nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_ai_mapping_patterns_framework_type", "ai_mapping_patterns", ["framework_type"])

    # Seed default pattern library
    patterns_table = sa.table(
        "ai_mapping_patterns",
        sa.column("framework_type", sa.String),
        sa.column("risk_category", sa.String),
        sa.column("control_family", sa.String),
        sa.column("risk_keywords", sa.JSON),
        sa.column("control_keywords", sa.JSON),
        sa.column("mapping_strength", sa.Float),
    )
    op.bulk_insert(patterns_table, [
        {
            "framework_type": fw_type,
            "risk_category": category,
            "control_family": family,
            "risk_keywords": risk_kw,
            "control_keywords": control_kw,
            "mapping_strength": strength,
        }
        for fw_type, category, family, risk_kw, control_kw, strength in DEFAULT_PATTERNS
    ])


def downgrade() -> None:
    op.drop_table("ai_mapping_patterns")
    op.drop_table("risk_control_mappings")
    op.drop_table("compliance_controls")
    op.drop_table("compliance_frameworks")
    op.drop_table("risk_controls")
    op.drop_table("risk_services")
    op.drop_table("risk_assets")
    op.drop_table("risks")
    op.drop_table("service_assets")
    op.drop_table("business_services")
    op.drop_table("assets")
