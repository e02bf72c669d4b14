"""
Shared test fixtures — per-test SQLite database + FastAPI AsyncClient.

Strategy:
1. Set DATABASE_URL to SQLite before riskbridge.config is imported
2. Each test gets its own database file (NullPool, one connection per session)
3. All routers use the test session via a get_session dependency override
"""
import os
from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# ── 1. Environment ──
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["DEBUG"] = "false"

from riskbridge.database import configure_sqlite, get_session  # noqa: E402
from riskbridge.main import app as fastapi_app  # noqa: E402
from riskbridge.models import (  # noqa: E402
    Asset,
    Base,
    BusinessService,
    ComplianceControl,
    ComplianceFramework,
    MappingPattern,
    ServiceAsset,
)


# ── Fixtures ──

@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh schema per test; the app's sessions are redirected to it."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=pool.NullPool)
    configure_sqlite(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _test_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_session] = _test_get_session
    yield factory
    fastapi_app.dependency_overrides.clear()
    await engine.dispose()


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Seed data helpers ──

ACCESS_POLICY_DESC = (
    "Access to information and systems shall be restricted by an access control policy with authentication"
)


@pytest_asyncio.fixture
async def seed_iso(db: AsyncSession):
    """ISO 27001 framework with one access control, one unrelated control and one access pattern."""
    fw = ComplianceFramework(name="ISO/IEC 27001", type="iso27001", version="2013")
    db.add(fw)
    await db.flush()
    db.add_all([
        ComplianceControl(
            framework_id=fw.id,
            control_id="A.9.1.1",
            title="Access Control Policy",
            description=ACCESS_POLICY_DESC,
            category="access_control",
        ),
        ComplianceControl(
            framework_id=fw.id,
            control_id="A.11.1.4",
            title="Protecting against external and environmental threats",
            description="Physical protection against natural disasters shall be designed and applied",
            category="physical_environmental_security",
        ),
        MappingPattern(
            framework_type="iso27001",
            risk_category="access_control",
            risk_keywords=["access", "unauthorized", "authentication"],
            control_family="Access Control",
            control_keywords=["access", "authentication", "identity"],
            mapping_strength=0.9,
        ),
    ])
    await db.commit()
    return fw.id


@pytest_asyncio.fixture
async def seed_inventory(db: AsyncSession):
    """Two assets and two services; the critical service depends on both assets."""
    db_server = Asset(name="Customer DB", asset_type="database", criticality_score=90)
    laptop = Asset(name="Sales laptop", asset_type="endpoint", criticality_score=30)
    billing = BusinessService(name="Billing", business_department="Finance", criticality_score=85)
    intranet = BusinessService(name="Intranet", business_department="IT", criticality_score=40)
    db.add_all([db_server, laptop, billing, intranet])
    await db.flush()
    db.add_all([
        ServiceAsset(service_id=billing.id, asset_id=db_server.id),
        ServiceAsset(service_id=billing.id, asset_id=laptop.id),
    ])
    await db.commit()
    return {
        "assets": {"db": db_server.id, "laptop": laptop.id},
        "services": {"billing": billing.id, "intranet": intranet.id},
    }
