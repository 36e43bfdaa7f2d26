from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jobboard.config import Settings
from jobboard.crm.service import ZohoService
from jobboard.crm.zoho import ZohoAPIError
from jobboard.db.base import as_utc
from jobboard.db.repositories import Repository
from jobboard.db.session import SessionLocal
from jobboard.types import ZohoLead, ZohoTokenSet

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class FakeZohoClient:
    def __init__(self, *, fail_revoke: bool = False, fail_batch: int | None = None):
        self.fail_revoke = fail_revoke
        self.fail_batch = fail_batch
        self.refreshes: list[str] = []
        self.revoked: list[str] = []
        self.lead_calls: list[tuple[str, list[ZohoLead]]] = []

    def authorization_url(self, redirect_url: str) -> str:
        return f"https://accounts.zoho.com/oauth/v2/auth?redirect_uri={redirect_url}"

    def exchange_code(self, *, code: str, redirect_url: str) -> ZohoTokenSet:
        if code == "bad":
            raise ZohoAPIError("invalid_code", status_code=400)
        return ZohoTokenSet(access_token="at-1", refresh_token="rt-1", expires_in=3600)

    def refresh_access_token(self, refresh_token: str) -> ZohoTokenSet:
        self.refreshes.append(refresh_token)
        return ZohoTokenSet(access_token=f"at-refreshed-{len(self.refreshes)}", expires_in=3600)

    def revoke_token(self, token: str) -> None:
        if self.fail_revoke:
            raise ZohoAPIError("Failed to revoke Zoho token", status_code=500)
        self.revoked.append(token)

    def create_leads(self, access_token: str, leads: list[ZohoLead]) -> dict:
        self.lead_calls.append((access_token, leads))
        if self.fail_batch is not None and len(self.lead_calls) == self.fail_batch:
            raise ZohoAPIError("Failed to create leads in Zoho CRM", status_code=500)
        return {"data": [{"code": "SUCCESS"} for _ in leads]}


def _service(db, client: FakeZohoClient, *, now: datetime = NOW, sleeps: list[float] | None = None, **settings):
    values = {"zoho_client_id": "cid", "zoho_client_secret": "secret", **settings}
    return ZohoService(
        db,
        settings=Settings(**values),
        client=client,  # type: ignore[arg-type]
        clock=lambda: now,
        sleep=(sleeps.append if sleeps is not None else (lambda _: None)),
    )


def _seed_application(db) -> str:
    repo = Repository(db)
    repo.ensure_profile("emp-1", "hr@acme.test")
    repo.ensure_profile("app-1", "ada@example.com")
    job = repo.create_job(
        "emp-1",
        {"title": "Engineer", "company": "Acme", "location": "Remote", "job_type": "Full-time", "description": "Build"},
    )
    application = repo.create_application(job_id=job.id, applicant_id="app-1", cover_letter="Hello")
    return application.id


def test_connect_stores_credentials_and_flags_profile() -> None:
    with SessionLocal() as db:
        Repository(db).ensure_profile("emp-1")
        result = _service(db, FakeZohoClient()).connect(code="abc", redirect_url="https://app/cb", user_id="emp-1")

        assert result.ok
        repo = Repository(db)
        credentials = repo.get_zoho_credentials("emp-1")
        assert credentials.access_token == "at-1"
        assert as_utc(credentials.expires_at) == NOW + timedelta(seconds=3600)
        assert repo.get_profile("emp-1").zoho_connected


def test_connect_failure_stores_nothing() -> None:
    with SessionLocal() as db:
        Repository(db).ensure_profile("emp-1")
        result = _service(db, FakeZohoClient()).connect(code="bad", redirect_url="https://app/cb", user_id="emp-1")
        assert result.status_code == 400
        assert Repository(db).get_zoho_credentials("emp-1") is None


def test_connect_requires_all_parameters() -> None:
    with SessionLocal() as db:
        result = _service(db, FakeZohoClient()).connect(code="", redirect_url="https://app/cb", user_id="emp-1")
        assert result.status_code == 400


def test_valid_token_is_used_without_refresh() -> None:
    with SessionLocal() as db:
        client = FakeZohoClient()
        service = _service(db, client)
        Repository(db).ensure_profile("emp-1")
        service.connect(code="abc", redirect_url="https://app/cb", user_id="emp-1")

        assert service.ensure_access_token("emp-1").unwrap() == "at-1"
        assert client.refreshes == []


def test_expired_token_is_refreshed_once_and_persisted() -> None:
    with SessionLocal() as db:
        client = FakeZohoClient()
        Repository(db).ensure_profile("emp-1")
        _service(db, client).connect(code="abc", redirect_url="https://app/cb", user_id="emp-1")

        later = NOW + timedelta(hours=2)
        service = _service(db, client, now=later)
        assert service.ensure_access_token("emp-1").unwrap() == "at-refreshed-1"
        assert service.ensure_access_token("emp-1").unwrap() == "at-refreshed-1"
        assert client.refreshes == ["rt-1"]

    with SessionLocal() as fresh:
        credentials = Repository(fresh).get_zoho_credentials("emp-1")
        assert credentials.access_token == "at-refreshed-1"
        assert as_utc(credentials.expires_at) == later + timedelta(seconds=3600)


def test_missing_credentials_report_not_connected() -> None:
    with SessionLocal() as db:
        result = _service(db, FakeZohoClient()).ensure_access_token("emp-1")
        assert not result.ok
        assert "not connected" in (result.error or "")


def test_disconnect_deletes_credentials_even_if_revoke_fails() -> None:
    with SessionLocal() as db:
        Repository(db).ensure_profile("emp-1")
        client = FakeZohoClient(fail_revoke=True)
        service = _service(db, client)
        service.connect(code="abc", redirect_url="https://app/cb", user_id="emp-1")

        assert service.disconnect("emp-1").ok
        repo = Repository(db)
        assert repo.get_zoho_credentials("emp-1") is None
        assert not repo.get_profile("emp-1").zoho_connected


def test_sync_application_creates_lead_and_marks_synced() -> None:
    with SessionLocal() as db:
        application_id = _seed_application(db)
        client = FakeZohoClient()
        service = _service(db, client)
        service.connect(code="abc", redirect_url="https://app/cb", user_id="emp-1")

        result = service.sync_application(application_id)

        assert result.ok
        token, leads = client.lead_calls[0]
        assert token == "at-1"
        assert leads[0].Lead_Source == "Job Application"
        assert "Applied for: Engineer at Acme" in leads[0].Description
        assert Repository(db).get_application(application_id).zoho_synced


def test_sync_application_without_connection_is_rejected() -> None:
    with SessionLocal() as db:
        application_id = _seed_application(db)
        result = _service(db, FakeZohoClient()).sync_application(application_id)
        assert result.status_code == 400
        assert not Repository(db).get_application(application_id).zoho_synced


def test_sync_all_applicants_batches_with_delay() -> None:
    sleeps: list[float] = []
    with SessionLocal() as db:
        repo = Repository(db)
        repo.ensure_profile("emp-1")
        for index in range(5):
            repo.ensure_profile(f"app-{index}", f"a{index}@example.com")
        client = FakeZohoClient()
        service = _service(db, client, sleeps=sleeps, zoho_batch_size=2, zoho_batch_delay_sec=1.0)
        service.connect(code="abc", redirect_url="https://app/cb", user_id="emp-1")
        # the connected employer is still an applicant until subscribed
        repo.set_subscription_state("emp-1", role="employer", subscription_status="active", subscription_id="sub")

        result = service.sync_all_applicants("emp-1")

        assert result.ok
        assert result.unwrap()["count"] == 5
        assert [len(leads) for _, leads in client.lead_calls] == [2, 2, 1]
        assert sleeps == [1.0, 1.0]


def test_failed_batch_stops_sync_and_keeps_earlier_batches() -> None:
    with SessionLocal() as db:
        repo = Repository(db)
        repo.ensure_profile("emp-1")
        repo.set_subscription_state("emp-1", role="employer", subscription_status="active", subscription_id="sub")
        for index in range(5):
            repo.ensure_profile(f"app-{index}", f"a{index}@example.com")
        client = FakeZohoClient(fail_batch=2)
        service = _service(db, client, zoho_batch_size=2)
        service.connect(code="abc", redirect_url="https://app/cb", user_id="emp-1")

        result = service.sync_all_applicants("emp-1")

        assert result.status_code == 502
        assert len(client.lead_calls) == 2


def test_sync_all_with_no_applicants() -> None:
    with SessionLocal() as db:
        repo = Repository(db)
        repo.ensure_profile("emp-1")
        repo.set_subscription_state("emp-1", role="employer", subscription_status="active", subscription_id="sub")
        service = _service(db, FakeZohoClient())
        service.connect(code="abc", redirect_url="https://app/cb", user_id="emp-1")

        assert service.sync_all_applicants("emp-1").unwrap()["count"] == 0
