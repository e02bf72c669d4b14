"""Functional tests — risk register with scores derived from the current links."""
import pytest
from httpx import AsyncClient

ACCESS_RISK = {
    "title": "Unauthorized access to customer database",
    "description": "Weak access control and authentication allow unauthorized access",
    "category": "access_control",
}


def _risk_body(**overrides) -> dict:
    """Minimal valid risk creation body."""
    base = {"title": "Ransomware on file server", "likelihood": 3, "impact": 4}
    base.update(overrides)
    return base


@pytest.mark.asyncio
async def test_create_risk_minimal(client: AsyncClient):
    r = await client.post("/api/v1/risks", json=_risk_body())
    assert r.status_code == 201
    data = r.json()
    assert data["id"] > 0
    assert data["status"] == "active"
    assert data["risk_score"]["score"] == 12.0
    assert data["risk_score"]["base_risk"] == 12
    assert data["mapping_count"] == 0


@pytest.mark.asyncio
async def test_create_risk_with_links(client: AsyncClient, seed_inventory):
    r = await client.post("/api/v1/risks", json=_risk_body(
        threat_source="adversarial",
        asset_ids=[seed_inventory["assets"]["db"]],
        service_ids=[seed_inventory["services"]["billing"]],
        controls=[{"name": "EDR", "maturity_level": 3, "implementation_status": 0.5}],
    ))
    assert r.status_code == 201
    data = r.json()
    assert data["asset_ids"] == [seed_inventory["assets"]["db"]]
    assert data["controls"][0]["implementation_status"] == 0.5
    assert data["risk_score"]["score"] == pytest.approx(54.53)


@pytest.mark.asyncio
async def test_score_follows_link_changes(client: AsyncClient, seed_inventory):
    r = await client.post("/api/v1/risks", json=_risk_body(asset_ids=[seed_inventory["assets"]["db"]]))
    risk_id = r.json()["id"]
    assert r.json()["risk_score"]["score"] == pytest.approx(22.8)

    r = await client.put(f"/api/v1/risks/{risk_id}", json={"asset_ids": []})
    assert r.status_code == 200
    assert r.json()["risk_score"]["score"] == 12.0

    r = await client.put(f"/api/v1/risks/{risk_id}", json={
        "controls": [{"name": "MFA", "maturity_level": 5, "implementation_status": 1.0}],
    })
    assert r.json()["risk_score"]["score"] == 11.0

    r = await client.get(f"/api/v1/risks/{risk_id}")
    assert r.json()["risk_score"]["score"] == 11.0


@pytest.mark.asyncio
async def test_create_risk_unknown_links(client: AsyncClient):
    r = await client.post("/api/v1/risks", json=_risk_body(asset_ids=[999]))
    assert r.status_code == 400
    assert "999" in r.json()["detail"]


@pytest.mark.asyncio
@pytest.mark.parametrize("field,value", [("likelihood", 0), ("impact", 6), ("threat_source", "aliens")])
async def test_create_risk_validation(client: AsyncClient, field, value):
    r = await client.post("/api/v1/risks", json=_risk_body(**{field: value}))
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_create_risk_auto_maps(client: AsyncClient, seed_iso):
    r = await client.post("/api/v1/risks", json=_risk_body(**ACCESS_RISK))
    assert r.status_code == 201
    assert r.json()["mapping_count"] == 1

    r = await client.post("/api/v1/risks", params={"auto_map": "false"}, json=_risk_body(**ACCESS_RISK))
    assert r.json()["mapping_count"] == 0


@pytest.mark.asyncio
async def test_list_risks_filters(client: AsyncClient):
    await client.post("/api/v1/risks", json=_risk_body(category="operations_security"))
    r = await client.post("/api/v1/risks", json=_risk_body(category="access_control"))
    await client.put(f"/api/v1/risks/{r.json()['id']}", json={"status": "closed"})

    r = await client.get("/api/v1/risks")
    assert len(r.json()) == 2
    r = await client.get("/api/v1/risks", params={"status": "active"})
    assert [x["category"] for x in r.json()] == ["operations_security"]
    r = await client.get("/api/v1/risks", params={"category": "access_control"})
    assert [x["status"] for x in r.json()] == ["closed"]


@pytest.mark.asyncio
async def test_get_missing_risk(client: AsyncClient):
    r = await client.get("/api/v1/risks/99999")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_delete_risk_removes_mappings(client: AsyncClient, seed_iso):
    r = await client.post("/api/v1/risks", json=_risk_body(**ACCESS_RISK))
    risk_id = r.json()["id"]

    r = await client.delete(f"/api/v1/risks/{risk_id}")
    assert r.status_code == 204
    assert (await client.get(f"/api/v1/risks/{risk_id}")).status_code == 404

    stats = (await client.get("/api/v1/risk-controls/stats")).json()
    assert stats["mapped_controls"] == 0


@pytest.mark.asyncio
async def test_assessment_report(client: AsyncClient, seed_inventory):
    r = await client.post("/api/v1/risks", json=_risk_body(
        **ACCESS_RISK,
        asset_ids=[seed_inventory["assets"]["db"]],
        service_ids=[seed_inventory["services"]["intranet"]],
    ))
    risk_id = r.json()["id"]

    r = await client.get(f"/api/v1/risks/{risk_id}/assessment")
    assert r.status_code == 200
    data = r.json()
    assert data["base_risk_score"] == 12
    assert data["enhanced_risk_score"] == pytest.approx(31.92)
    assert data["control_effectiveness"] == 0.0
    assert data["affected_assets"] == [{"name": "Customer DB", "criticality_score": 90.0, "risk_score": 9.0}]

    kinds = [rec["type"] for rec in data["recommendations"]]
    assert kinds == ["asset", "control"]
    assert data["recommendations"][0]["title"] == "Strengthen Customer DB Security Controls"

    assert data["compliance_mapping"] == {
        "iso27001": "A.9 - Access Control",
        "nist_csf": "PR.AC - Identity Management and Access Control",
        "soc2": "Common Criteria (CC) - Logical and Physical Access Controls",
    }


@pytest.mark.asyncio
async def test_assessment_unknown_category(client: AsyncClient):
    r = await client.post("/api/v1/risks", json=_risk_body(category="quantum"))
    data = (await client.get(f"/api/v1/risks/{r.json()['id']}/assessment")).json()
    assert data["compliance_mapping"] == {
        "iso27001": None,
        "nist_csf": "Multiple Functions",
        "soc2": "Multiple Criteria",
    }


@pytest.mark.asyncio
async def test_create_risk_survives_mapping_db_error(client: AsyncClient, seed_iso, monkeypatch):
    from sqlalchemy.exc import OperationalError

    from riskbridge.services.control_mapper import ControlMappingEngine

    async def _fail(self, *args, **kwargs):
        raise OperationalError("INSERT INTO risk_control_mappings", {}, Exception("database is locked"))

    monkeypatch.setattr(ControlMappingEngine, "_map_risk", _fail)

    r = await client.post("/api/v1/risks", json=_risk_body(**ACCESS_RISK))
    assert r.status_code == 201
    data = r.json()
    assert data["title"] == ACCESS_RISK["title"]
    assert data["mapping_count"] == 0
    assert data["risk_score"]["score"] == 12.0

    r = await client.get("/api/v1/risks")
    assert len(r.json()) == 1
