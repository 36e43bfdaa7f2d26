from fastapi.testclient import TestClient

from jobboard.api.app import create_app
from jobboard.db.repositories import Repository
from jobboard.db.session import SessionLocal

APPLICANT = {"X-User-Id": "user-1", "X-User-Email": "ada@example.com"}


def _activate(user_id: str) -> None:
    with SessionLocal() as db:
        Repository(db).set_subscription_state(
            user_id, role="applicant", subscription_status="active", subscription_id="sub_1"
        )


def test_requests_without_identity_are_rejected() -> None:
    client = TestClient(create_app())
    assert client.get("/api/profile").status_code == 401


def test_profile_is_created_on_first_read_and_patched_by_section() -> None:
    client = TestClient(create_app())

    profile = client.get("/api/profile", headers=APPLICANT)
    assert profile.status_code == 200
    assert profile.json()["role"] == "applicant"
    assert profile.json()["email"] == "ada@example.com"

    patched = client.patch(
        "/api/profile/basic",
        headers=APPLICANT,
        json={"full_name": "Ada Lovelace", "title": "Engineer"},
    )
    assert patched.status_code == 200
    assert patched.json()["full_name"] == "Ada Lovelace"

    contact = client.patch("/api/profile/contact", headers=APPLICANT, json={"location": "London"})
    assert contact.json()["location"] == "London"
    assert contact.json()["full_name"] == "Ada Lovelace"


def test_patch_cannot_touch_role_or_subscription_fields() -> None:
    client = TestClient(create_app())

    response = client.patch(
        "/api/profile/basic",
        headers=APPLICANT,
        json={"full_name": "Ada", "role": "employer", "subscription_status": "active"},
    )

    assert response.status_code == 422
    assert client.get("/api/profile", headers=APPLICANT).json()["role"] == "applicant"


def test_unknown_section_is_rejected() -> None:
    client = TestClient(create_app())
    assert client.patch("/api/profile/billing", headers=APPLICANT, json={}).status_code == 422


def test_employer_role_requires_active_subscription() -> None:
    client = TestClient(create_app())
    client.get("/api/profile", headers=APPLICANT)

    denied = client.put("/api/settings", headers=APPLICANT, json={"role": "employer"})
    assert denied.status_code == 403
    assert client.get("/api/profile", headers=APPLICANT).json()["role"] == "applicant"

    _activate("user-1")
    allowed = client.put("/api/settings", headers=APPLICANT, json={"role": "employer"})
    assert allowed.status_code == 200
    assert allowed.json()["role"] == "employer"

    back = client.put("/api/settings", headers=APPLICANT, json={"role": "applicant"})
    assert back.json()["role"] == "applicant"


def test_subscription_state_endpoint() -> None:
    client = TestClient(create_app())
    client.get("/api/profile", headers=APPLICANT)
    _activate("user-1")

    state = client.get("/api/profile/subscription", headers=APPLICANT).json()
    assert state == {"role": "applicant", "subscription_status": "active", "subscription_id": "sub_1"}


def test_profile_children_can_be_added_listed_and_deleted() -> None:
    client = TestClient(create_app())

    education = client.post(
        "/api/profile/education",
        headers=APPLICANT,
        json={"institution": "UCL", "degree": "BSc", "field_of_study": "Maths", "start_date": "2019-09-01"},
    )
    assert education.status_code == 200
    skill = client.post("/api/profile/skills", headers=APPLICANT, json={"name": "  Python "})
    assert skill.json()["name"] == "Python"
    client.post(
        "/api/profile/experiences",
        headers=APPLICANT,
        json={"company": "Acme", "title": "Intern", "start_date": "2022-06-01", "end_date": "2022-09-01"},
    )

    assert len(client.get("/api/profile/education", headers=APPLICANT).json()) == 1
    assert len(client.get("/api/profile/experiences", headers=APPLICANT).json()) == 1

    skill_id = skill.json()["id"]
    assert client.delete(f"/api/profile/skills/{skill_id}", headers=APPLICANT).status_code == 200
    assert client.get("/api/profile/skills", headers=APPLICANT).json() == []

    other_user = {"X-User-Id": "user-2"}
    education_id = education.json()["id"]
    assert client.delete(f"/api/profile/education/{education_id}", headers=other_user).status_code == 404


def test_applicant_details_are_visible_to_employers_only() -> None:
    client = TestClient(create_app())
    client.get("/api/profile", headers=APPLICANT)
    client.post("/api/profile/skills", headers=APPLICANT, json={"name": "SQL"})

    employer = {"X-User-Id": "emp-1"}
    assert client.get("/api/applicants/user-1", headers=employer).status_code == 403

    _activate("emp-1")
    client.put("/api/settings", headers=employer, json={"role": "employer"})
    details = client.get("/api/applicants/user-1", headers=employer)
    assert details.status_code == 200
    assert details.json()["profile"]["email"] == "ada@example.com"
    assert [skill["name"] for skill in details.json()["skills"]] == ["SQL"]


def test_database_health_reports_connection() -> None:
    client = TestClient(create_app())
    body = client.get("/api/health/db").json()
    assert body["connected"] is True
    assert body["error"] == ""
    assert client.get("/health").json() == {"status": "ok"}
