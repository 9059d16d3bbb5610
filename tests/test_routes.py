from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from jobhub.core.config import Settings
from jobhub.main import app
from jobhub.schemas.subscriptions import SubscriptionSnapshot
from jobhub.services.runtime import Runtime, get_runtime
from jobhub.worker import Worker

RECRUITER_HEADERS = {"X-User-Id": "rec-1", "X-User-Role": "recruiter", "X-Company-Id": "c1"}
ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
APPLICANT_HEADERS = {"X-User-Id": "app-1", "X-User-Role": "applicant"}


@pytest.fixture
def runtime() -> Runtime:
    runtime = Runtime(Settings(otel_enabled=False))
    asyncio.run(runtime.start())
    asyncio.run(
        runtime.subscriptions.put(
            "c1",
            SubscriptionSnapshot(
                plan="basic",
                job_post_limit=5,
                featured_jobs_limit=1,
                end_date=datetime.now(timezone.utc) + timedelta(days=30),
            ),
        )
    )
    app.dependency_overrides[get_runtime] = lambda: runtime
    yield runtime
    app.dependency_overrides.clear()
    asyncio.run(runtime.close())


@pytest.fixture
def client(runtime: Runtime) -> TestClient:
    return TestClient(app)


def _drain(runtime: Runtime) -> None:
    async def run() -> None:
        worker = Worker(runtime)
        await worker.setup()
        await worker.run_once()

    asyncio.run(run())


def _job_body(**overrides) -> dict:
    body = {
        "title": "Site Reliability Engineer",
        "description": "Keep production boring and fast.",
        "company": "c1",
        "companyName": "Acme",
        "location": "Remote",
        "salary": 7000,
        "jobType": "Full-time",
        "skills": ["python", "postgres"],
        "applicationDeadline": (datetime.now(timezone.utc) + timedelta(days=10)).isoformat(),
    }
    body.update(overrides)
    return body


def _published_job(client: TestClient) -> dict:
    created = client.post("/jobs", json=_job_body(), headers=RECRUITER_HEADERS)
    assert created.status_code == 201
    approved = client.patch(f"/jobs/{created.json()['id']}/approve", headers=ADMIN_HEADERS)
    assert approved.status_code == 200
    return approved.json()


def test_identity_headers_are_required(client: TestClient) -> None:
    response = client.post("/jobs", json=_job_body())
    assert response.status_code == 401

    response = client.post("/jobs", json=_job_body(), headers={"X-User-Id": "u1", "X-User-Role": "wizard"})
    assert response.status_code == 403


def test_create_job_error_mapping(client: TestClient) -> None:
    response = client.post("/jobs", json=_job_body(), headers=APPLICANT_HEADERS)
    assert response.status_code == 403
    assert response.json() == {"detail": "only recruiters can post jobs"}

    response = client.post("/jobs", json=_job_body(title="SRE"), headers=RECRUITER_HEADERS)
    assert response.status_code == 400
    assert response.json()["detail"].startswith("title")

    headers = {**RECRUITER_HEADERS, "X-Company-Id": "c2"}
    response = client.post("/jobs", json=_job_body(company="c2"), headers=headers)
    assert response.status_code == 409


def test_create_and_moderate_job(client: TestClient) -> None:
    created = client.post("/jobs", json=_job_body(isFeatured=True), headers=RECRUITER_HEADERS)
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "Pending"
    assert body["slug"] == "site-reliability-engineer"
    assert body["companyName"] == "Acme"
    assert body["featuredRequested"] is True

    approved = client.patch(f"/jobs/{body['id']}/approve", headers=ADMIN_HEADERS)
    assert approved.status_code == 200
    assert approved.json()["status"] == "Published"
    assert approved.json()["isFeatured"] is True

    again = client.patch(f"/jobs/{body['id']}/approve", headers=ADMIN_HEADERS)
    assert again.status_code == 409
    missing = client.patch("/jobs/not-a-job/reject", headers=ADMIN_HEADERS)
    assert missing.status_code == 404

    listing = client.get("/jobs")
    assert listing.status_code == 200
    assert listing.json()["total"] == 1
    assert client.get(f"/jobs/{body['slug']}").json()["id"] == body["id"]
    assert client.get("/jobs/unknown-slug").json() == {"detail": "job not found"}
    assert [job["id"] for job in client.get("/jobs/mine", headers=RECRUITER_HEADERS).json()] == [body["id"]]


def test_feature_close_and_delete(client: TestClient) -> None:
    job = _published_job(client)

    featured = client.patch(f"/jobs/{job['id']}/feature", headers=RECRUITER_HEADERS)
    assert featured.status_code == 200
    assert featured.json()["isFeatured"] is True
    assert client.patch(f"/jobs/{job['id']}/feature", headers=RECRUITER_HEADERS).status_code == 409

    closed = client.patch(f"/jobs/{job['id']}/close", headers=RECRUITER_HEADERS)
    assert closed.json()["status"] == "Closed"
    assert client.patch(f"/jobs/{job['id']}/archive", headers=RECRUITER_HEADERS).status_code == 403

    deleted = client.delete(f"/jobs/{job['slug']}", headers=ADMIN_HEADERS)
    assert deleted.status_code == 200
    assert client.get(f"/jobs/{job['slug']}").status_code == 404


def test_search_reads_the_projection(client: TestClient, runtime: Runtime) -> None:
    empty = client.get("/search", params={"query": "reliability"})
    assert empty.status_code == 200
    assert empty.json()["data"] == []
    assert empty.json()["pagination"]["total"] == 0

    job = _published_job(client)
    _drain(runtime)

    response = client.get("/search", params={"query": "reliability", "skills": "go, postgres", "sortBy": "salary"})
    assert response.status_code == 200
    body = response.json()
    assert [item["slug"] for item in body["data"]] == [job["slug"]]
    assert body["data"][0]["jobCategory"] == "normal"
    assert body["pagination"] == {"total": 1, "page": 1, "limit": 10, "totalPages": 1}
    assert body["stats"] == {"featured": 0, "hot": 0, "normal": 1, "interleavingEnabled": True}

    no_interleave = client.get("/search", params={"interleave": "false"})
    assert no_interleave.json()["stats"]["interleavingEnabled"] is False
    assert client.get("/search", params={"jobType": "Contract"}).json()["data"] == []


def test_applications_flow(client: TestClient) -> None:
    job = _published_job(client)
    application_body = {
        "userName": "Minh Nguyen",
        "userEmail": "minh@example.com",
        "resumeUrl": "https://files.example.com/minh.pdf",
        "coverLetter": "I like pagers.",
    }

    applied = client.post(f"/jobs/{job['slug']}/apply", json=application_body, headers=APPLICANT_HEADERS)
    assert applied.status_code == 201
    application = applied.json()
    assert application["status"] == "Pending"
    assert application["statusHistory"] == []

    duplicate = client.post(f"/jobs/{job['slug']}/apply", json=application_body, headers=APPLICANT_HEADERS)
    assert duplicate.status_code == 409

    check = client.get(f"/jobs/{job['slug']}/applied", headers=APPLICANT_HEADERS).json()
    assert check["applied"] is True
    assert check["application"]["id"] == application["id"]

    mine = client.get("/applications/mine", headers=APPLICANT_HEADERS).json()
    assert [row["id"] for row in mine] == [application["id"]]
    applicants = client.get(f"/applications/jobs/{job['slug']}", headers=RECRUITER_HEADERS)
    assert applicants.status_code == 200
    assert len(applicants.json()) == 1

    updated = client.patch(
        f"/applications/{application['id']}/status",
        json={"status": "Interview Scheduled", "notes": "Tuesday"},
        headers=RECRUITER_HEADERS,
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "Interview Scheduled"
    assert updated.json()["statusHistory"][0]["changedBy"] == "rec-1"

    invalid = client.patch(
        f"/applications/{application['id']}/status",
        json={"status": "Hired"},
        headers=RECRUITER_HEADERS,
    )
    assert invalid.status_code == 422

    saved = client.post(f"/jobs/{job['id']}/save", headers=APPLICANT_HEADERS)
    assert saved.json() == {"jobId": job["id"], "saved": True}


def test_notifications_endpoints(client: TestClient, runtime: Runtime) -> None:
    _published_job(client)
    _drain(runtime)

    token = client.post("/notifications/tokens", json={"token": "tok-1", "platform": "web"}, headers=RECRUITER_HEADERS)
    assert token.status_code == 201
    assert token.json()["isActive"] is True

    listing = client.get("/notifications", headers=RECRUITER_HEADERS).json()
    assert listing["total"] == 1
    assert listing["unreadCount"] == 1
    notification = listing["items"][0]
    assert notification["type"] == "job_published"
    assert notification["actions"][0]["type"] == "link"

    assert client.post(f"/notifications/{notification['id']}/read", headers=APPLICANT_HEADERS).status_code == 404
    read = client.post(f"/notifications/{notification['id']}/read", headers=RECRUITER_HEADERS)
    assert read.json()["isRead"] is True
    assert client.get("/notifications/unread-count", headers=RECRUITER_HEADERS).json() == {"unreadCount": 0}
    assert client.post("/notifications/read-all", headers=RECRUITER_HEADERS).json() == {"updated": 0}

    assert client.delete(f"/notifications/{notification['id']}", headers=RECRUITER_HEADERS).status_code == 204
    assert client.delete(f"/notifications/{notification['id']}", headers=RECRUITER_HEADERS).status_code == 404
