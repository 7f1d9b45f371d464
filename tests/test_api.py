"""HTTP tests for the request API."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import kmt.main

from kmt.database import get_db
from kmt.main import app

PREFIX = "/api/v1"

STAFF = {"X-Actor-Id": "staff_1", "X-Actor-Role": "staff", "X-Actor-Area": "Rustaq"}
SUPERVISOR = {"X-Actor-Id": "sup_rustaq", "X-Actor-Role": "supervisor", "X-Actor-Area": "Rustaq"}
OTHER_SUPERVISOR = {"X-Actor-Id": "sup_hazam", "X-Actor-Role": "supervisor", "X-Actor-Area": "Hazam"}
ADMIN = {"X-Actor-Id": "admin_1", "X-Actor-Role": "admin"}


@pytest.fixture
def client(db_engine):
    TestingSessionLocal = sessionmaker(bind=db_engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def request_id(client):
    response = client.post(
        f"{PREFIX}/requests",
        json={"area": "Rustaq", "items": [{"material_name": "Ring spanner 10", "qty": 1}]},
        headers=STAFF
    )
    assert response.status_code == 201
    return response.json()["id"]


class TestSubmission:

    def test_create_returns_id_and_status(self, client, request_id):
        response = client.get(f"{PREFIX}/requests/{request_id}", headers=STAFF)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "pending"
        assert body["items"][0]["material_name"] == "Ring spanner 10"
        assert body["items"][0]["size"] == ""

    def test_empty_items_rejected(self, client):
        response = client.post(f"{PREFIX}/requests", json={"area": "Rustaq", "items": []}, headers=STAFF)
        assert response.status_code == 422

    def test_zero_quantity_rejected(self, client):
        response = client.post(
            f"{PREFIX}/requests",
            json={"area": "Rustaq", "items": [{"material_name": "Gloves", "qty": 0}]},
            headers=STAFF
        )
        assert response.status_code == 422

    def test_unknown_role_rejected(self, client):
        headers = dict(STAFF, **{"X-Actor-Role": "superuser"})
        response = client.get(f"{PREFIX}/requests", headers=headers)
        assert response.status_code == 422

    def test_missing_identity_rejected(self, client):
        assert client.get(f"{PREFIX}/requests").status_code == 422

    def test_list_filters(self, client, request_id):
        assert [r["id"] for r in client.get(f"{PREFIX}/requests?area=Rustaq&status=pending", headers=ADMIN).json()] == [request_id]
        assert client.get(f"{PREFIX}/requests?status=completed", headers=ADMIN).json() == []
        assert client.get(f"{PREFIX}/requests", headers=OTHER_SUPERVISOR).json() == []


class TestWorkflowEndpoints:

    def test_accept_and_complete(self, client, request_id):
        response = client.post(f"{PREFIX}/requests/{request_id}/accept", headers=SUPERVISOR)
        assert response.status_code == 200
        assert response.json()["assigned_supervisor_id"] == "sup_rustaq"

        response = client.post(
            f"{PREFIX}/requests/{request_id}/complete",
            json={"received_by": "Ali", "completed_at": "2099-01-01T10:00:00"},
            headers=SUPERVISOR
        )
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

        audit = client.get(f"{PREFIX}/requests/{request_id}/audit", headers=SUPERVISOR).json()
        assert [e["action"] for e in audit] == ["accepted", "completed"]

    def test_invalid_transition_is_409(self, client, request_id):
        response = client.post(
            f"{PREFIX}/requests/{request_id}/complete",
            json={"received_by": "Ali", "completed_at": "2099-01-01T10:00:00"},
            headers=ADMIN
        )
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransitionError"
        assert response.json()["retryable"] is False

    def test_wrong_area_is_403(self, client, request_id):
        response = client.post(f"{PREFIX}/requests/{request_id}/accept", headers=OTHER_SUPERVISOR)
        assert response.status_code == 403

    def test_decline_requires_reason(self, client, request_id):
        response = client.post(f"{PREFIX}/requests/{request_id}/decline", json={"reason": ""}, headers=SUPERVISOR)
        assert response.status_code == 422

        response = client.post(f"{PREFIX}/requests/{request_id}/decline", json={"reason": "No stock"}, headers=SUPERVISOR)
        assert response.json()["decline_reason"] == "No stock"

    def test_staff_cannot_read_audit(self, client, request_id):
        assert client.get(f"{PREFIX}/requests/{request_id}/audit", headers=STAFF).status_code == 403

    def test_audit_of_unknown_id_is_404(self, client, request_id):
        assert client.get(f"{PREFIX}/requests/{request_id}/audit", headers=ADMIN).json() == []
        response = client.get(f"{PREFIX}/requests/never-existed/audit", headers=ADMIN)
        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"


class TestRecoveryEndpoints:

    def test_delete_recover_purge(self, client, request_id):
        assert client.delete(f"{PREFIX}/requests/{request_id}", headers=ADMIN).status_code == 200
        assert client.get(f"{PREFIX}/requests/{request_id}", headers=ADMIN).status_code == 404
        assert client.post(f"{PREFIX}/requests/{request_id}/accept", headers=SUPERVISOR).status_code == 404
        assert [r["id"] for r in client.get(f"{PREFIX}/recovery", headers=ADMIN).json()] == [request_id]

        assert client.post(f"{PREFIX}/requests/{request_id}/recover", headers=ADMIN).status_code == 200
        assert client.get(f"{PREFIX}/requests/{request_id}", headers=ADMIN).status_code == 200

        assert client.delete(f"{PREFIX}/requests/{request_id}", headers=ADMIN).status_code == 200
        assert client.delete(f"{PREFIX}/requests/{request_id}/purge", headers=ADMIN).status_code == 204

        response = client.post(f"{PREFIX}/requests/{request_id}/recover", headers=ADMIN)
        assert response.status_code == 409
        assert response.json()["error"] == "NotDeletedError"

        audit = client.get(f"{PREFIX}/requests/{request_id}/audit", headers=ADMIN).json()
        assert audit[-1]["action"] == "purged"
        assert audit[-1]["meta"]["snapshot"]["id"] == request_id

    def test_supervisor_cannot_delete(self, client, request_id):
        assert client.delete(f"{PREFIX}/requests/{request_id}", headers=SUPERVISOR).status_code == 403
        assert client.get(f"{PREFIX}/recovery", headers=SUPERVISOR).status_code == 403


class TestExportEndpoint:

    def test_export_rows_and_filename(self, client, request_id):
        response = client.get(f"{PREFIX}/exports/requests?format=pdf&area=Rustaq", headers=ADMIN)

        assert response.status_code == 200
        body = response.json()
        assert body["filename"].startswith("KMT_requests_Rustaq_")
        assert body["filename"].endswith(".pdf")
        assert [r["request_id"] for r in body["rows"]] == [request_id]
        assert body["rows"][0]["items"] == "Ring spanner 10 x1"

    def test_csv_rejected(self, client):
        assert client.get(f"{PREFIX}/exports/requests?format=csv", headers=ADMIN).status_code == 422


class TestPpeEndpoints:

    def test_issue_and_return(self, client):
        created = client.post(
            f"{PREFIX}/requests",
            json={
                "area": "Rustaq",
                "category": "ppe",
                "items": [{"material_name": "Safety boots", "size": "42", "qty": 1}]
            },
            headers=STAFF
        ).json()
        client.post(f"{PREFIX}/requests/{created['id']}/accept", headers=SUPERVISOR)
        client.post(
            f"{PREFIX}/requests/{created['id']}/complete",
            json={"received_by": "Ali", "completed_at": "2099-01-01T10:00:00"},
            headers=SUPERVISOR
        )

        entries = client.get(f"{PREFIX}/ppe-register", headers=STAFF).json()
        assert [(e["item_name"], e["size"], e["returned"]) for e in entries] == [("Safety boots", "42", False)]

        response = client.post(
            f"{PREFIX}/ppe-register/{entries[0]['id']}/return",
            json={"photo_refs": ["s3://kmt/ret/boots.jpg"], "remark": "worn out"},
            headers=SUPERVISOR
        )
        assert response.status_code == 200
        assert response.json()["returned"] is True
        assert response.json()["return_photo_refs"] == ["s3://kmt/ret/boots.jpg"]


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "service": "KMT"}


class TestCatalogEndpoints:

    def test_add_and_list(self, client):
        response = client.post(
            f"{PREFIX}/materials",
            json={"name": "Safety gloves", "category": "ppe", "unit": "pair"},
            headers=SUPERVISOR
        )
        assert response.status_code == 201
        material = response.json()
        assert material["name"] == "Safety gloves"

        listed = client.get(f"{PREFIX}/materials?category=ppe", headers=STAFF).json()
        assert [m["id"] for m in listed] == [material["id"]]
        assert client.get(f"{PREFIX}/materials?category=tools", headers=STAFF).json() == []

    def test_staff_cannot_add(self, client):
        response = client.post(f"{PREFIX}/materials", json={"name": "Rope"}, headers=STAFF)
        assert response.status_code == 403

    def test_request_item_from_catalog(self, client):
        material = client.post(f"{PREFIX}/materials", json={"name": "Rope", "unit": "m"}, headers=ADMIN).json()
        created = client.post(
            f"{PREFIX}/requests",
            json={"area": "Rustaq", "items": [{"material_id": material["id"], "qty": 20}]},
            headers=STAFF
        )
        assert created.status_code == 201

        item = client.get(f"{PREFIX}/requests/{created.json()['id']}", headers=STAFF).json()["items"][0]
        assert (item["material_id"], item["material_name"], item["qty"]) == (material["id"], "Rope", 20)

    def test_unknown_catalog_reference_rejected(self, client):
        response = client.post(
            f"{PREFIX}/requests",
            json={"area": "Rustaq", "items": [{"material_id": "missing", "qty": 1}]},
            headers=STAFF
        )
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"


def test_nationality_header_recorded(client):
    headers = dict(STAFF, **{"X-Actor-Nationality": "Omani"})
    request_id = client.post(
        f"{PREFIX}/requests",
        json={"area": "Rustaq", "items": [{"material_name": "Gloves", "qty": 1}]},
        headers=headers
    ).json()["id"]

    assert client.get(f"{PREFIX}/requests/{request_id}", headers=STAFF).json()["requester_nationality"] == "Omani"


def test_startup_creates_tables(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    monkeypatch.setattr(kmt.main, "engine", engine)

    with TestClient(kmt.main.app) as started:
        assert started.get("/health").status_code == 200

    tables = set(inspect(engine).get_table_names())
    assert {"material_requests", "audit_log", "ppe_register", "materials"} <= tables
    engine.dispose()
