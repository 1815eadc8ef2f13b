"""
HTTP surface: auth, role gates, tenant isolation and the error body shape.

The app is built around an in-memory service graph; no MongoDB connection is
opened by the lifespan when services are supplied.
"""
import asyncio
import dataclasses
import random

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from auth import create_access_token
from database import ensure_indexes
from drivecrm.config import Settings
from drivecrm.models import AdminCreate, AgentCreate
from drivecrm.services import build_services
from server import create_app


def _build(settings):
    db = AsyncMongoMockClient()["drivecrm_api_test"]
    asyncio.run(ensure_indexes(db))
    return build_services(db, settings, rng=random.Random(42))


def _seed_tenant(services, slug):
    async def seed():
        admin = await services.users.create_admin(AdminCreate(first_name="Ada", email=f"admin@{slug}.example.com"))
        agent = await services.users.create_agent(
            admin.id, admin.id, AgentCreate(first_name="Sam", last_name="Agent", email=f"sam@{slug}.example.com")
        )
        return admin, agent
    return asyncio.run(seed())


def _headers(settings, user, role, tenant_id=None):
    claims = {"sub": user.id, "role": role, "email": user.email}
    if tenant_id:
        claims["adminId"] = tenant_id
    return {"Authorization": f"Bearer {create_access_token(claims, settings)}"}


@pytest.fixture
def api_settings():
    return Settings(jwt_secret="api-test-secret", default_max_leads=100, default_max_users=5)


@pytest.fixture
def api(api_settings):
    services = _build(api_settings)
    admin, agent = _seed_tenant(services, "t1")
    other_admin, _ = _seed_tenant(services, "t2")
    client = TestClient(create_app(api_settings, services))
    return {
        "client": client,
        "services": services,
        "admin": _headers(api_settings, admin, "ADMIN"),
        "agent": _headers(api_settings, agent, "AGENT", tenant_id=admin.id),
        "other_admin": _headers(api_settings, other_admin, "ADMIN"),
        "agent_id": agent.id,
    }


def _create_lead(api, email="ann@x.com"):
    response = api["client"].post(
        "/api/leads",
        json={"firstName": "Ann", "lastName": "Lee", "email": email},
        headers=api["admin"],
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestAuth:

    def test_health_is_public(self, api):
        response = api["client"].get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_missing_token(self, api):
        assert api["client"].get("/api/leads").status_code == 401

    def test_token_signed_with_other_secret(self, api):
        token = create_access_token({"sub": "x", "role": "ADMIN"}, Settings(jwt_secret="wrong"))
        response = api["client"].get("/api/leads", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_agent_cannot_assign(self, api):
        lead = _create_lead(api)
        response = api["client"].post(
            f"/api/leads/{lead['id']}/assign", json={"userId": api["agent_id"]}, headers=api["agent"]
        )
        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"


class TestLeadsApi:

    def test_create_returns_camel_case(self, api):
        lead = _create_lead(api)
        assert lead["status"] == "NEW"
        assert 10000 <= lead["leadId"] <= 999999
        assert lead["assignedTo"] is None
        assert "adminId" in lead

    def test_duplicate_email_is_conflict(self, api):
        _create_lead(api)
        response = api["client"].post(
            "/api/leads", json={"firstName": "Ann", "email": "ANN@x.com"}, headers=api["admin"]
        )
        assert response.status_code == 400
        assert response.json()["error"] == "CONFLICT"

    def test_invalid_body(self, api):
        response = api["client"].post("/api/leads", json={"email": "nope"}, headers=api["admin"])
        assert response.status_code == 422
        assert response.json()["error"] == "INVALID_REQUEST"

    def test_other_tenant_gets_not_found(self, api):
        lead = _create_lead(api)
        response = api["client"].get(f"/api/leads/{lead['leadId']}", headers=api["other_admin"])
        assert response.status_code == 404
        assert response.json() == {"error": "NOT_FOUND", "message": "Lead not found", "details": {"leadId": str(lead["leadId"])}}

    def test_assign_flow_and_activity_feed(self, api):
        client = api["client"]
        lead = _create_lead(api)

        assigned = client.post(
            f"/api/leads/{lead['leadId']}/assign", json={"userId": api["agent_id"]}, headers=api["admin"]
        )
        assert assigned.status_code == 200
        assert assigned.json()["assignedTo"] == api["agent_id"]

        activities = client.get(f"/api/leads/{lead['id']}/activities", headers=api["agent"]).json()
        assert activities[0]["type"] == "ASSIGNMENT"
        assert activities[0]["metadata"]["assignedTo"]["id"] == api["agent_id"]

        unassigned = client.delete(f"/api/leads/{lead['id']}/assign", headers=api["admin"])
        assert unassigned.status_code == 200
        again = client.delete(f"/api/leads/{lead['id']}/assign", headers=api["admin"])
        assert again.status_code == 400
        assert again.json()["error"] == "INVALID_STATE"

    def test_agent_lists_only_own_leads(self, api):
        client = api["client"]
        mine = _create_lead(api, "mine@x.com")
        _create_lead(api, "theirs@x.com")
        client.post(f"/api/leads/{mine['id']}/assign", json={"userId": api["agent_id"]}, headers=api["admin"])

        agent_view = client.get("/api/leads", headers=api["agent"]).json()
        assert [lead["id"] for lead in agent_view["leads"]] == [mine["id"]]
        assert client.get("/api/leads", headers=api["admin"]).json()["total"] == 2

    def test_bulk_assign_reports_failures(self, api):
        leads = [_create_lead(api, f"l{i}@x.com") for i in range(2)]
        response = api["client"].post(
            "/api/leads/bulk-assign",
            json={"leadIds": [lead["id"] for lead in leads] + ["missing"], "userId": api["agent_id"]},
            headers=api["admin"],
        )
        assert response.status_code == 200
        body = response.json()
        assert body["modifiedCount"] == 2
        assert body["failures"] == [{"leadId": "missing", "error": "NOT_FOUND", "message": "Lead not found"}]

    def test_comments(self, api):
        client = api["client"]
        lead = _create_lead(api)
        created = client.post(f"/api/leads/{lead['id']}/comments", json={"content": "hello"}, headers=api["agent"])
        assert created.status_code == 201
        assert created.json()["createdBy"]["firstName"] == "Sam"

        empty = client.post(f"/api/leads/{lead['id']}/comments", json={"content": "  "}, headers=api["agent"])
        assert empty.status_code == 400
        assert empty.json()["error"] == "VALIDATION_ERROR"

    def test_non_ascii_digit_ref_is_not_found(self, api):
        response = api["client"].get("/api/leads/²", headers=api["admin"])
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_status_counts_for_agent(self, api):
        client = api["client"]
        _create_lead(api, "one@x.com")
        _create_lead(api, "two@x.com")
        client.post("/api/leads", json={"firstName": "Other", "email": "one@x.com"}, headers=api["other_admin"])

        response = client.get("/api/leads/status-counts", headers=api["agent"])
        assert response.status_code == 200
        body = response.json()
        assert body["totalLeads"] == 2
        assert body["statusCounts"][0] == {
            "id": "ALL", "name": "All Leads", "color": "#6366F1", "count": 2, "isDeleted": False,
        }

    def test_delete_single_lead(self, api):
        client = api["client"]
        lead = _create_lead(api)
        assert client.delete(f"/api/leads/{lead['id']}", headers=api["agent"]).status_code == 403
        assert client.delete(f"/api/leads/{lead['id']}", headers=api["other_admin"]).status_code == 404

        response = client.delete(f"/api/leads/{lead['leadId']}", headers=api["admin"])
        assert response.status_code == 200
        assert response.json()["id"] == lead["id"]
        assert client.get(f"/api/leads/{lead['id']}", headers=api["admin"]).status_code == 404

    def test_import_history(self, api):
        client = api["client"]
        imported = client.post(
            "/api/leads/import",
            json={"rows": [{"firstName": "Ann", "email": "a@x.com"}], "fileName": "leads.csv"},
            headers=api["admin"],
        ).json()

        history = client.get("/api/imports", headers=api["admin"]).json()["imports"]
        assert [(i["id"], i["fileName"], i["successCount"]) for i in history] == [
            (imported["importId"], "leads.csv", 1)
        ]
        assert client.get("/api/imports", headers=api["other_admin"]).json()["imports"] == []
        assert client.get("/api/imports", headers=api["agent"]).status_code == 403

        assert client.delete(f"/api/imports/{imported['importId']}", headers=api["other_admin"]).status_code == 404
        response = client.delete(f"/api/imports/{imported['importId']}", headers=api["admin"])
        assert response.json() == {"deletedCount": 1}
        assert client.get("/api/leads", headers=api["admin"]).json()["total"] == 0


def test_mutations_are_rate_limited(api_settings):
    settings = dataclasses.replace(api_settings, rate_limit_capacity=2, rate_limit_refill_per_second=0.001)
    services = _build(settings)
    admin, _ = _seed_tenant(services, "t1")
    client = TestClient(create_app(settings, services))
    headers = _headers(settings, admin, "ADMIN")

    statuses = [
        client.post("/api/leads", json={"firstName": "L", "email": f"l{i}@x.com"}, headers=headers).status_code
        for i in range(3)
    ]
    assert statuses == [201, 201, 429]
    # Reads are not limited
    assert client.get("/api/leads", headers=headers).status_code == 200
