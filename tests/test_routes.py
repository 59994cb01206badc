"""HTTP-level tests for the jobs, scheduling and lifecycle routers."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from fieldjobs.domain.scheduling.repository import JobRepository
from fieldjobs.shared.errors import TransientStoreError

PROVIDER = {"X-Actor-Role": "provider", "X-Actor-Id": "prov-1"}
CUSTOMER = {"X-Actor-Role": "customer", "X-Actor-Id": "cust-1"}
OTHER_CUSTOMER = {"X-Actor-Role": "customer", "X-Actor-Id": "eve"}


def _future_date(days=10):
    return (datetime.now(timezone.utc) + timedelta(days=days)).date().isoformat()


def _scheduled_at(days=10):
    return datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=days)


def _create_job(client, **extra):
    response = client.post("/jobs", json={"title": "Deep clean", "customerName": "Dana", **extra}, headers=PROVIDER)
    assert response.status_code == 201
    return response.json()


def test_requests_need_an_actor(client):
    """Test the actor headers are required."""
    response = client.post("/jobs", json={"title": "Deep clean"})
    assert response.status_code == 401

    response = client.get("/jobs/anything", headers={"X-Actor-Role": "admin"})
    assert response.status_code == 401


def test_create_and_get_job(client):
    job = _create_job(client)

    assert job["status"] == "pending"
    assert job["contractor_id"] == "prov-1"
    assert job["version"] == 1

    response = client.get(f"/jobs/{job['id']}", headers=CUSTOMER)
    assert response.status_code == 200
    assert response.json()["title"] == "Deep clean"


def test_unknown_job_is_404(client):
    response = client.get("/jobs/missing", headers=PROVIDER)

    assert response.status_code == 404
    assert response.json() == {"detail": "Job not found", "error": "JobNotFoundError", "retryable": False}


def test_propose_and_accept_over_http(client):
    """Test the free-form negotiation through the API."""
    job = _create_job(client)
    day = _future_date()

    response = client.post(
        f"/scheduling/jobs/{job['id']}/proposals",
        json={"date": day, "time": "10:00", "timezone": "America/New_York"},
        headers=PROVIDER,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "scheduling"
    assert len(body["proposed_times"]) == 1

    response = client.post(f"/scheduling/jobs/{job['id']}/proposals/0/accept", headers=PROVIDER)
    assert response.status_code == 403
    assert response.json()["detail"] == "You cannot accept your own proposal"

    response = client.post(f"/scheduling/jobs/{job['id']}/proposals/0/accept", headers=CUSTOMER)
    assert response.status_code == 200
    assert response.json()["status"] == "scheduled"
    assert response.json()["scheduled_timezone"] == "America/New_York"

    response = client.get(f"/scheduling/jobs/{job['id']}/display", headers=CUSTOMER)
    assert response.status_code == 200
    assert response.json()["display"].endswith("10:00 AM")


def test_past_proposal_is_400(client):
    job = _create_job(client)

    response = client.post(
        f"/scheduling/jobs/{job['id']}/proposals",
        json={"date": "2020-01-01", "time": "10:00", "timezone": "America/New_York"},
        headers=PROVIDER,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot schedule appointments in the past"


def test_invalid_timezone_is_422(client):
    job = _create_job(client)

    response = client.post(
        f"/scheduling/jobs/{job['id']}/proposals",
        json={"date": _future_date(), "time": "10:00", "timezone": "Mars/Olympus"},
        headers=PROVIDER,
    )
    assert response.status_code == 422

    response = client.put("/providers/prov-1", json={"timezone": "Mars/Olympus"}, headers=PROVIDER)
    assert response.status_code == 422


def test_provider_profile(client):
    response = client.put(
        "/providers/prov-1",
        json={
            "businessName": "Sparkle Co",
            "timezone": "America/Chicago",
            "workingHours": {"saturday": {"enabled": False}},
        },
        headers=PROVIDER,
    )

    assert response.status_code == 200
    assert response.json()["timezone"] == "America/Chicago"
    assert response.json()["working_hours"] == {"saturday": {"enabled": False}}


def test_stale_version_is_409(client):
    job = _create_job(client)

    response = client.post(
        f"/scheduling/jobs/{job['id']}/estimate",
        json={"amount": 180, "expectedVersion": 7},
        headers=PROVIDER,
    )

    assert response.status_code == 409
    assert response.json()["error"] == "ConcurrencyConflictError"


def test_cancel_scheduled_job_needs_confirmation(client, make_job):
    """Test cancelling a booked job first returns the impact to confirm."""
    start = _scheduled_at()
    job = make_job(
        contractor_id="prov-1",
        status="scheduled",
        scheduled_time=start,
        scheduled_date=start,
        scheduled_timezone="UTC",
    )
    make_job(
        contractor_id="prov-1",
        status="scheduled",
        scheduled_time=start + timedelta(hours=3),
        scheduled_date=start + timedelta(hours=3),
    )

    response = client.post(
        f"/scheduling/jobs/{job.id}/cancel", json={"reason": "Schedule conflict"}, headers=CUSTOMER
    )
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "ImpactConfirmationRequired"
    assert body["impact"]["sameDayJobCount"] in (0, 1)

    response = client.post(
        f"/scheduling/jobs/{job.id}/cancel",
        json={"reason": "Schedule conflict", "impactAcknowledged": True},
        headers=CUSTOMER,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["scheduled_time"] is None


def test_impact_preview(client, make_job):
    start = _scheduled_at()
    job = make_job(contractor_id="prov-1", status="scheduled", scheduled_time=start, scheduled_date=start)

    response = client.get(f"/lifecycle/jobs/{job.id}/impact?timezone=UTC", headers=PROVIDER)

    assert response.status_code == 200
    body = response.json()
    assert body["impact"]["severity"] == "low"
    assert body["display"]["title"]
    assert body["reoptimization"]["shouldReoptimize"] is False


def test_store_outage_is_503(client, make_job, monkeypatch):
    """Test a store failure is reported as retryable."""
    job = make_job()

    def unavailable(db, job_id):
        raise TransientStoreError("Job store is temporarily unavailable. Please retry.")

    monkeypatch.setattr(JobRepository, "get_job", staticmethod(unavailable))

    response = client.get(f"/jobs/{job.id}", headers=PROVIDER)

    assert response.status_code == 503
    assert response.json()["retryable"] is True


def test_lifecycle_endpoints(client, make_job):
    """Test start, complete and approve through the API."""
    start = _scheduled_at()
    job = make_job(contractor_id="prov-1", status="scheduled", scheduled_time=start, scheduled_date=start)

    response = client.post(f"/lifecycle/jobs/{job.id}/start", headers=PROVIDER)
    assert response.json()["status"] == "in_progress"

    response = client.post(
        f"/lifecycle/jobs/{job.id}/complete", json={"notes": "Done", "expectedVersion": 2}, headers=PROVIDER
    )
    assert response.json()["status"] == "pending_completion"

    response = client.post(f"/lifecycle/jobs/{job.id}/approve-completion", headers=CUSTOMER)
    assert response.status_code == 200
    assert response.json()["status"] == "completed"


def test_limbo_endpoints(client, make_job):
    past = datetime(2025, 6, 8, 15, 0, tzinfo=timezone.utc)
    make_job(contractor_id="prov-1", status="scheduled", scheduled_time=past, scheduled_date=past)

    response = client.get("/lifecycle/limbo/prov-1", headers=PROVIDER)
    assert response.status_code == 200
    assert response.json()["summary"]["total"] == 1
    assert response.json()["limboJobs"][0]["limboIssues"][0]["type"] == "PAST_DUE"

    response = client.get("/lifecycle/limbo/prov-1/alerts", headers=PROVIDER)
    assert response.status_code == 200
    assert response.json()["alerts"][0]["type"] == "PAST_DUE"


def test_foreign_customer_gets_404(client):
    """Test a customer cannot see or act on someone else's job."""
    job = _create_job(client, customerId="cust-1")
    client.post(
        f"/scheduling/jobs/{job['id']}/proposals",
        json={"date": _future_date(), "time": "10:00", "timezone": "America/New_York"},
        headers=PROVIDER,
    )

    response = client.post(f"/scheduling/jobs/{job['id']}/proposals/0/accept", headers=OTHER_CUSTOMER)
    assert response.status_code == 404

    response = client.post(
        f"/scheduling/jobs/{job['id']}/cancel", json={"reason": "Not mine"}, headers=OTHER_CUSTOMER
    )
    assert response.status_code == 404

    response = client.get(f"/jobs/{job['id']}", headers=CUSTOMER)
    assert response.json()["status"] == "scheduling"
    assert response.json()["version"] == 2


def test_provider_routes_are_scoped_to_caller(client):
    response = client.get("/lifecycle/limbo/prov-2", headers=PROVIDER)
    assert response.status_code == 403

    response = client.get("/lifecycle/limbo/prov-1/alerts", headers=CUSTOMER)
    assert response.status_code == 403

    response = client.put("/providers/prov-2", json={"timezone": "America/Chicago"}, headers=PROVIDER)
    assert response.status_code == 403


def test_detected_timezone_over_http(client):
    """Test the browser zone is used when the provider has no profile."""
    job = _create_job(client)
    day = _future_date()

    response = client.post(
        f"/scheduling/jobs/{job['id']}/proposals",
        json={"date": day, "time": "10:00", "detectedTimezone": "America/Los_Angeles"},
        headers=CUSTOMER,
    )

    assert response.status_code == 200
    proposal = response.json()["proposed_times"][0]
    expected = datetime.fromisoformat(f"{day}T10:00").replace(tzinfo=ZoneInfo("America/Los_Angeles"))
    assert proposal["timezone"] == "America/Los_Angeles"
    assert datetime.fromisoformat(proposal["date"]) == expected

    response = client.post(
        f"/scheduling/jobs/{job['id']}/proposals",
        json={"date": day, "time": "11:00", "detectedTimezone": "Mars/Olympus"},
        headers=CUSTOMER,
    )
    assert response.status_code == 422


def test_cancellation_approval_over_http_needs_acknowledgement(client, make_job):
    start = _scheduled_at()
    job = make_job(contractor_id="prov-1", status="scheduled", scheduled_time=start, scheduled_date=start)

    response = client.post(
        f"/lifecycle/jobs/{job.id}/cancellation-request", json={"reason": "Moving house"}, headers=CUSTOMER
    )
    assert response.status_code == 200

    response = client.post(
        f"/lifecycle/jobs/{job.id}/cancellation-resolution", json={"approve": True}, headers=PROVIDER
    )
    assert response.status_code == 409
    assert response.json()["error"] == "ImpactConfirmationRequired"

    response = client.post(
        f"/lifecycle/jobs/{job.id}/cancellation-resolution",
        json={"approve": True, "impactAcknowledged": True},
        headers=PROVIDER,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
