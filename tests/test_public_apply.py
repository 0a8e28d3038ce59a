"""
Tests for public job applications: applications land on the job owner's
account, spend the owner's credits and are rate-limited per client IP.
"""
import threading

import fitz
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from screener.main import app
from screener.core import config
from screener.core.rate_limit import rate_limit_store
from screener.db.base import Base
from screener.db.models.account import Account
from screener.db.models.candidate import Candidate, AnalysisStatus
from screener.db.models.job_opening import JobOpening
from screener.db.session import get_db, get_session_factory
from screener.services.analysis_gateway import AnalysisGateway, get_analysis_gateway
from screener.services.realtime import CandidateChangeNotifier, get_notifier
from screener.services.storage import LocalStorageGateway, get_storage


class RecordingGateway(AnalysisGateway):
    def __init__(self):
        self.requests = []
        self._lock = threading.Lock()

    def start(self, request):
        with self._lock:
            self.requests.append(request)


def make_pdf(text: str) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'public.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture(autouse=True)
def clear_rate_limits():
    rate_limit_store.clear()
    yield
    rate_limit_store.clear()


@pytest.fixture
def client(session_factory, gateway, tmp_path):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    storage = LocalStorageGateway(root=str(tmp_path / "cvs"))
    notifier = CandidateChangeNotifier()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_analysis_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_account_with_job(db, plan_tier="free", monthly_used=0):
    account = Account(email="owner@acme.io", plan_tier=plan_tier, monthly_used=monthly_used)
    db.add(account)
    db.commit()
    job = JobOpening(account_id=account.id, title="Backend Engineer", description="Python and FastAPI")
    db.add(job)
    db.commit()
    db.refresh(account)
    db.refresh(job)
    return account, job


def apply(client, job_id, email="jane@example.com", name="Jane Doe", file_name="resume.pdf", data=None, headers=None):
    form = {"email": email}
    if name is not None:
        form["name"] = name
    return client.post(
        f"/public/jobs/{job_id}/apply",
        data=form,
        files={"cv": (file_name, data if data is not None else make_pdf("Jane Doe resume"), "application/pdf")},
        headers=headers,
    )


def test_public_job_shows_safe_fields(client, db):
    account, job = make_account_with_job(db)

    response = client.get(f"/public/jobs/{job.id}")

    assert response.status_code == 200
    assert response.json() == {"id": job.id, "title": "Backend Engineer", "description": "Python and FastAPI"}


def test_public_job_unknown(client, db):
    response = client.get("/public/jobs/999")
    assert response.status_code == 404
    assert response.json()["detail"] == "Job not found."


def test_application_becomes_candidate_of_job_owner(client, db, gateway):
    account, job = make_account_with_job(db)

    response = apply(client, job.id)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Application submitted successfully"
    assert body["analysis_queued"] is True
    assert response.headers["X-RateLimit-Remaining"] == "4"

    candidate = db.query(Candidate).filter(Candidate.id == body["candidate_id"]).one()
    assert candidate.account_id == account.id
    assert candidate.job_id == job.id
    assert candidate.name == "Jane Doe"
    assert candidate.email == "jane@example.com"
    assert candidate.application_source == "link_applied"
    assert candidate.analysis_status == AnalysisStatus.DISPATCHED.value
    assert [r.candidate_id for r in gateway.requests] == [candidate.id]

    db.refresh(account)
    assert account.monthly_used == 1


def test_application_name_falls_back_to_file_name(client, db):
    account, job = make_account_with_job(db)

    response = apply(client, job.id, name=None, file_name="John_Smith_CV.pdf")

    assert response.status_code == 200
    candidate = db.query(Candidate).filter(Candidate.id == response.json()["candidate_id"]).one()
    assert "John" in candidate.name


def test_application_saved_without_analysis_when_owner_out_of_credits(client, db, gateway):
    account, job = make_account_with_job(db, plan_tier="free", monthly_used=25)

    response = apply(client, job.id)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["analysis_queued"] is False

    candidate = db.query(Candidate).filter(Candidate.id == body["candidate_id"]).one()
    assert candidate.analysis_status == AnalysisStatus.PENDING.value
    assert gateway.requests == []

    db.refresh(account)
    assert account.monthly_used == 25


def test_applications_stop_spending_at_credit_limit(client, db, gateway):
    account, job = make_account_with_job(db, plan_tier="free", monthly_used=24)

    first = apply(client, job.id, email="a@example.com", headers={"X-Forwarded-For": "10.0.0.1"})
    second = apply(client, job.id, email="b@example.com", headers={"X-Forwarded-For": "10.0.0.2"})

    assert first.json()["analysis_queued"] is True
    assert second.json()["analysis_queued"] is False
    assert len(gateway.requests) == 1

    db.refresh(account)
    assert account.monthly_used == 25


def test_sixth_application_in_window_is_rate_limited(client, db):
    account, job = make_account_with_job(db, plan_tier="pro")

    for i in range(5):
        response = apply(client, job.id, email=f"applicant{i}@example.com")
        assert response.status_code == 200

    response = apply(client, job.id, email="applicant5@example.com")

    assert response.status_code == 429
    assert response.json()["detail"] == "Too many requests. Please try again later."
    assert int(response.headers["Retry-After"]) >= 1
    assert db.query(Candidate).filter(Candidate.job_id == job.id).count() == 5


def test_rate_limit_is_per_client_ip(client, db, monkeypatch):
    monkeypatch.setattr(config, "PUBLIC_APPLY_RATE_LIMIT", 1)
    account, job = make_account_with_job(db, plan_tier="pro")

    assert apply(client, job.id, headers={"X-Forwarded-For": "203.0.113.7"}).status_code == 200
    assert apply(client, job.id, headers={"X-Forwarded-For": "203.0.113.7"}).status_code == 429
    assert apply(client, job.id, headers={"X-Forwarded-For": "198.51.100.2"}).status_code == 200


def test_rejected_requests_count_towards_rate_limit(client, db, monkeypatch):
    monkeypatch.setattr(config, "PUBLIC_APPLY_RATE_LIMIT", 2)
    account, job = make_account_with_job(db)

    assert apply(client, job.id, email="not-an-email").status_code == 400
    assert apply(client, job.id, email="not-an-email").status_code == 400
    assert apply(client, job.id).status_code == 429


def test_non_pdf_rejected(client, db, gateway):
    account, job = make_account_with_job(db)

    response = apply(client, job.id, file_name="resume.docx", data=b"PK\x03\x04 not a pdf")

    assert response.status_code == 400
    assert response.json()["detail"] == "Only PDF files are supported."
    assert db.query(Candidate).count() == 0
    assert gateway.requests == []


def test_invalid_email_rejected(client, db):
    account, job = make_account_with_job(db)

    response = apply(client, job.id, email="jane at example")

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid email address"
    assert db.query(Candidate).count() == 0


def test_apply_to_unknown_job(client, db):
    response = apply(client, 12345)

    assert response.status_code == 404
    assert response.json()["detail"] == "Job not found."
