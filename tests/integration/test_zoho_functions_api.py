from __future__ import annotations

from fastapi.testclient import TestClient

from jobboard.api.app import create_app
from jobboard.api.deps import get_zoho_client
from jobboard.crm.zoho import ZohoAPIError
from jobboard.db.repositories import Repository
from jobboard.db.session import SessionLocal
from jobboard.types import ZohoLead, ZohoTokenSet

EMPLOYER = {"X-User-Id": "emp-1", "X-User-Email": "hr@acme.test"}


class FakeZohoClient:
    def __init__(self) -> None:
        self.leads: list[ZohoLead] = []
        self.revoked: list[str] = []

    def authorization_url(self, redirect_url: str) -> str:
        return f"https://accounts.zoho.com/oauth/v2/auth?redirect_uri={redirect_url}"

    def exchange_code(self, *, code: str, redirect_url: str) -> ZohoTokenSet:
        if code != "good-code":
            raise ZohoAPIError("invalid_code", status_code=400)
        return ZohoTokenSet(access_token="at-1", refresh_token="rt-1", expires_in=3600)

    def refresh_access_token(self, refresh_token: str) -> ZohoTokenSet:
        return ZohoTokenSet(access_token="at-2", expires_in=3600)

    def revoke_token(self, token: str) -> None:
        self.revoked.append(token)

    def create_leads(self, access_token: str, leads: list[ZohoLead]) -> dict:
        self.leads.extend(leads)
        return {"data": [{"code": "SUCCESS"} for _ in leads]}


def _client(zoho: FakeZohoClient) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_zoho_client] = lambda: zoho
    return TestClient(app)


def _connect(client: TestClient) -> None:
    client.get("/api/profile", headers=EMPLOYER)
    response = client.post(
        "/functions/zoho-callback",
        headers=EMPLOYER,
        json={"code": "good-code", "redirectUrl": "https://app.example.com/zoho", "userId": "emp-1"},
    )
    assert response.json() == {"success": True}


def test_auth_url_requires_redirect() -> None:
    client = _client(FakeZohoClient())

    missing = client.post("/functions/zoho-auth", headers=EMPLOYER, json={})
    assert missing.status_code == 400
    assert missing.json()["success"] is False

    response = client.post("/functions/zoho-auth", headers=EMPLOYER, json={"redirectUrl": "https://app/zoho"})
    assert response.json()["authUrl"].startswith("https://accounts.zoho.com/oauth/v2/auth")


def test_callback_and_disconnect_toggle_connection() -> None:
    zoho = FakeZohoClient()
    client = _client(zoho)
    _connect(client)
    assert client.get("/api/profile", headers=EMPLOYER).json()["zoho_connected"] is True

    response = client.post("/functions/zoho-disconnect", headers=EMPLOYER, json={"userId": "emp-1"})
    assert response.json()["success"] is True
    assert zoho.revoked == ["at-1"]
    assert client.get("/api/profile", headers=EMPLOYER).json()["zoho_connected"] is False


def test_callback_with_bad_code_fails() -> None:
    client = _client(FakeZohoClient())
    client.get("/api/profile", headers=EMPLOYER)
    response = client.post(
        "/functions/zoho-callback",
        headers=EMPLOYER,
        json={"code": "stale", "redirectUrl": "https://app.example.com/zoho", "userId": "emp-1"},
    )
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "invalid_code"}


def test_callback_for_another_user_is_forbidden() -> None:
    client = _client(FakeZohoClient())
    response = client.post(
        "/functions/zoho-callback",
        headers=EMPLOYER,
        json={"code": "good-code", "redirectUrl": "https://app/zoho", "userId": "emp-2"},
    )
    assert response.status_code == 403


def test_sync_all_users_pushes_every_applicant() -> None:
    zoho = FakeZohoClient()
    client = _client(zoho)
    _connect(client)
    with SessionLocal() as db:
        repo = Repository(db)
        repo.set_subscription_state("emp-1", role="employer", subscription_status="active", subscription_id="sub_1")
        repo.ensure_profile("app-1", "ada@example.com")
        repo.ensure_profile("app-2", "grace@example.com")

    response = client.post("/functions/sync-all-users-to-zoho", headers=EMPLOYER, json={"employerId": "emp-1"})

    assert response.status_code == 200
    assert response.json()["count"] == 2
    assert sorted(lead.Email for lead in zoho.leads) == ["ada@example.com", "grace@example.com"]


def test_sync_job_application_is_limited_to_the_job_owner() -> None:
    zoho = FakeZohoClient()
    client = _client(zoho)
    _connect(client)
    with SessionLocal() as db:
        repo = Repository(db)
        repo.set_subscription_state("emp-1", role="employer", subscription_status="active", subscription_id="sub_1")
        repo.ensure_profile("app-1", "ada@example.com")
        job = repo.create_job(
            "emp-1",
            {"title": "Engineer", "company": "Acme", "location": "Remote", "job_type": "Full-time", "description": "x"},
        )
        application_id = repo.create_application(job_id=job.id, applicant_id="app-1", cover_letter="Hello").id

    outsider = client.post(
        "/functions/sync-job-application", headers={"X-User-Id": "app-1"}, json={"applicationId": application_id}
    )
    assert outsider.status_code == 403

    response = client.post("/functions/sync-job-application", headers=EMPLOYER, json={"applicationId": application_id})
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert zoho.leads[0].Lead_Source == "Job Application"

    missing = client.post("/functions/sync-job-application", headers=EMPLOYER, json={})
    assert missing.status_code == 400
