from __future__ import annotations

import hashlib
import hmac
import json
import time

from fastapi.testclient import TestClient

from jobboard.api.app import create_app

EMPLOYER = {"X-User-Id": "emp-1", "X-User-Email": "hr@acme.test"}
APPLICANT = {"X-User-Id": "app-1", "X-User-Email": "ada@example.com"}


def _deliver(client: TestClient, status: str, *, created: int) -> dict:
    event = {
        "id": f"evt_{created}",
        "type": "customer.subscription.updated",
        "created": created,
        "data": {"object": {"id": "sub_1", "status": status, "metadata": {"user_id": "emp-1"}}},
    }
    body = json.dumps(event).encode("utf-8")
    timestamp = int(time.time())
    signature = hmac.new(b"whsec_test_secret", f"{timestamp}.".encode("utf-8") + body, hashlib.sha256).hexdigest()
    response = client.post(
        "/functions/stripe-webhook",
        content=body,
        headers={"Stripe-Signature": f"t={timestamp},v1={signature}"},
    )
    assert response.status_code == 200
    return response.json()


def test_subscribe_post_hire_and_lapse() -> None:
    client = TestClient(create_app())
    client.get("/api/profile", headers=EMPLOYER)
    job = {
        "title": "Platform Engineer",
        "company": "Acme",
        "location": "Remote",
        "job_type": "Full-time",
        "description": "Run the platform",
    }

    # no subscription yet
    assert client.put("/api/settings", headers=EMPLOYER, json={"role": "employer"}).status_code == 403
    assert client.post("/api/jobs", headers=EMPLOYER, json=job).status_code == 403

    _deliver(client, "active", created=100)
    assert client.get("/api/profile/subscription", headers=EMPLOYER).json()["role"] == "employer"

    job_id = client.post("/api/jobs", headers=EMPLOYER, json=job).json()["id"]
    application = client.post(
        f"/api/jobs/{job_id}/apply", headers=APPLICANT, json={"cover_letter": "I run platforms"}
    ).json()

    url = f"/api/applications/{application['id']}/status"
    for status in ("reviewing", "shortlisted", "interview", "offer", "hired"):
        response = client.patch(url, headers=EMPLOYER, json={"status": status})
        assert response.status_code == 200
        assert response.json()["status"] == status
    assert client.get("/api/applications", headers=APPLICANT).json()[0]["status"] == "hired"

    # redelivery is harmless
    assert _deliver(client, "active", created=100)["applied"] is True

    _deliver(client, "past_due", created=200)
    state = client.get("/api/profile/subscription", headers=EMPLOYER).json()
    assert state == {"role": "applicant", "subscription_status": "past_due", "subscription_id": "sub_1"}
    assert client.post("/api/jobs", headers=EMPLOYER, json=job).status_code == 403
    assert client.get(f"/api/jobs/{job_id}").status_code == 200
