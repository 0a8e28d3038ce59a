"""
Unit tests for analysis dispatch.
Tests the idempotency guard, credit policy on failures and resume screening.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from screener.core.exceptions import CandidateNotFound, DispatchFailure
from screener.db.base import Base
from screener.db.models.account import Account
from screener.db.models.candidate import Candidate, AnalysisStatus
from screener.db.models.credit_debit import CreditDebit
from screener.db.models.job_opening import JobOpening
from screener.services.analysis_gateway import AnalysisGateway
from screener.services.candidate_store import CandidateStore
from screener.services.dispatcher import (
    dispatch,
    resume_screening,
    DISPATCH_ERROR_MESSAGE,
    REASON_ALREADY_COMPLETED,
    REASON_ALREADY_IN_FLIGHT,
    REASON_CREDITS_EXHAUSTED,
    REASON_DISPATCHED,
)
from screener.services.realtime import CandidateChangeNotifier
from screener.services.storage import LocalStorageGateway


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class RecordingGateway(AnalysisGateway):
    """Gateway double that records requests or fails on demand."""

    def __init__(self, fail=False):
        self.fail = fail
        self.requests = []

    def start(self, request):
        if self.fail:
            raise DispatchFailure("connection refused")
        self.requests.append(request)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def account(db):
    account = Account(email="owner@acme.io", full_name="Owner", plan_tier="free", monthly_used=0)
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture
def job(db, account):
    job = JobOpening(account_id=account.id, title="Backend Engineer", description="Python, PostgreSQL, FastAPI")
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


@pytest.fixture
def store(db, account):
    return CandidateStore(db, account.id)


def add_candidate(store, job, name="Jane Doe", cv_text="Python developer, 6 years", **fields):
    return store.insert(job.id, name=name, email="jane.doe@example.com", cv_text=cv_text, **fields)


def set_usage(db, account, used):
    account.monthly_used = used
    db.commit()


def test_dispatch_spends_credit_and_starts_analysis(db, account, job, store):
    """Test the happy path: claim, debit, start."""
    candidate_id = add_candidate(store, job)
    gateway = RecordingGateway()
    notifier = CandidateChangeNotifier()
    events = []
    notifier.subscribe(job.id, events.append)

    result = dispatch(db, account.id, candidate_id, gateway, notifier=notifier)

    assert result.dispatched is True
    assert result.reason == REASON_DISPATCHED
    assert result.used == 1
    assert result.remaining == 24

    request = gateway.requests[0]
    assert request.candidate_id == candidate_id
    assert request.job_description == "Python, PostgreSQL, FastAPI"
    assert request.cv_text == "Python developer, 6 years"

    candidate = store.get(candidate_id)
    assert candidate.analysis_status == AnalysisStatus.DISPATCHED.value
    assert candidate.dispatch_attempts == 1
    assert candidate.dispatched_at is not None
    assert events[-1]["candidate"]["analyzing"] is True


def test_second_dispatch_is_not_charged(db, account, job, store):
    """Test that a candidate already in flight is never debited twice."""
    candidate_id = add_candidate(store, job)
    gateway = RecordingGateway()

    dispatch(db, account.id, candidate_id, gateway)
    result = dispatch(db, account.id, candidate_id, gateway)

    assert result.dispatched is False
    assert result.reason == REASON_ALREADY_IN_FLIGHT
    assert len(gateway.requests) == 1
    db.refresh(account)
    assert account.monthly_used == 1


def test_completed_candidate_not_redispatched(db, account, job, store):
    candidate_id = add_candidate(store, job)
    candidate = store.get(candidate_id)
    candidate.analysis_status = AnalysisStatus.COMPLETED.value
    db.commit()

    result = dispatch(db, account.id, candidate_id, RecordingGateway())

    assert result.reason == REASON_ALREADY_COMPLETED
    db.refresh(account)
    assert account.monthly_used == 0


def test_no_credits_leaves_candidate_pending(db, account, job, store):
    """Test that exhausted credits are a normal outcome, not an error."""
    set_usage(db, account, 25)
    candidate_id = add_candidate(store, job)
    gateway = RecordingGateway()

    result = dispatch(db, account.id, candidate_id, gateway)

    assert result.dispatched is False
    assert result.reason == REASON_CREDITS_EXHAUSTED
    assert result.remaining == 0
    assert gateway.requests == []
    candidate = store.get(candidate_id)
    assert candidate.analysis_status == AnalysisStatus.PENDING.value
    assert candidate.dispatched_at is None


def test_gateway_failure_keeps_credit_by_default(db, account, job, store, monkeypatch):
    """Test charge_on_attempt: the credit stays spent and the candidate fails."""
    monkeypatch.setattr("screener.core.config.CREDIT_CHARGE_POLICY", "charge_on_attempt")
    candidate_id = add_candidate(store, job)

    with pytest.raises(DispatchFailure):
        dispatch(db, account.id, candidate_id, RecordingGateway(fail=True))

    candidate = store.get(candidate_id)
    assert candidate.analysis_status == AnalysisStatus.FAILED.value
    assert candidate.analysis_error == DISPATCH_ERROR_MESSAGE
    assert candidate.dispatch_attempts == 0
    db.refresh(account)
    assert account.monthly_used == 1


def test_gateway_failure_refunds_under_charge_on_success(db, account, job, store):
    """Test charge_on_success: a failed start gives the credit back."""
    candidate_id = add_candidate(store, job)

    with pytest.raises(DispatchFailure):
        dispatch(db, account.id, candidate_id, RecordingGateway(fail=True), policy="charge_on_success")

    db.refresh(account)
    assert account.monthly_used == 0
    debit = db.query(CreditDebit).filter(CreditDebit.candidate_id == candidate_id).one()
    assert debit.refunded_at is not None


def test_failed_candidate_can_be_retried(db, account, job, store):
    candidate_id = add_candidate(store, job)
    with pytest.raises(DispatchFailure):
        dispatch(db, account.id, candidate_id, RecordingGateway(fail=True))

    result = dispatch(db, account.id, candidate_id, RecordingGateway())

    assert result.dispatched is True
    candidate = store.get(candidate_id)
    assert candidate.analysis_status == AnalysisStatus.DISPATCHED.value
    assert candidate.analysis_error is None


def test_unknown_policy_rejected(db, account, job, store):
    candidate_id = add_candidate(store, job)
    with pytest.raises(ValueError):
        dispatch(db, account.id, candidate_id, RecordingGateway(), policy="charge_never")


def test_dispatch_other_accounts_candidate(db, account, job, store):
    """Test that another account's candidate looks like a missing one."""
    candidate_id = add_candidate(store, job)
    other = Account(email="other@corp.io", plan_tier="pro")
    db.add(other)
    db.commit()

    with pytest.raises(CandidateNotFound):
        dispatch(db, other.id, candidate_id, RecordingGateway())


def test_dispatch_sends_signed_cv_url(db, account, job, store, tmp_path):
    storage = LocalStorageGateway(root=str(tmp_path))
    storage.put(f"{job.id}/1_jane.pdf", b"%PDF-1.4")
    candidate_id = add_candidate(store, job, cv_file_path=f"{job.id}/1_jane.pdf")
    gateway = RecordingGateway()

    dispatch(db, account.id, candidate_id, gateway, storage=storage)

    request = gateway.requests[0]
    assert request.cv_file_path == f"{job.id}/1_jane.pdf"
    assert "/storage/cvs?token=" in request.cv_url


def test_limit_warning_flagged_near_limit(db, account, job, store):
    set_usage(db, account, 22)
    candidate_id = add_candidate(store, job)

    dispatch(db, account.id, candidate_id, RecordingGateway())

    db.refresh(account)
    assert account.monthly_used == 23
    assert account.limit_warning_sent is True


def test_resume_screening_stops_when_credits_run_out(db, account, job, store):
    """Test that only as many candidates as there are credits are dispatched."""
    set_usage(db, account, 23)
    ids = [add_candidate(store, job, name=f"Candidate {i}") for i in range(4)]
    gateway = RecordingGateway()

    summary = resume_screening(db, account.id, ids, gateway)

    assert summary.processed == 2
    assert summary.skipped == 2
    assert summary.failed == 0
    assert summary.remaining_credits == 0
    assert summary.processed_ids == ids[:2]
    assert len(gateway.requests) == 2
    db.refresh(account)
    assert account.monthly_used == 25
    assert store.get(ids[3]).analysis_status == AnalysisStatus.PENDING.value


def test_resume_screening_skips_ineligible(db, account, job, store):
    """Test that analysed, CV-less and foreign candidates are skipped."""
    pending_id = add_candidate(store, job, name="Pending")
    done_id = add_candidate(store, job, name="Done")
    store.get(done_id).analysis_status = AnalysisStatus.COMPLETED.value
    db.commit()
    no_cv_id = add_candidate(store, job, name="No CV", cv_text=None)

    summary = resume_screening(
        db, account.id, [pending_id, done_id, no_cv_id, "00000000-0000-0000-0000-000000000000"], RecordingGateway()
    )

    assert summary.processed == 1
    assert summary.processed_ids == [pending_id]
    assert summary.skipped == 3
    assert summary.remaining_credits == 24
    assert "1 CV(s) sent for analysis" in summary.message


def test_resume_screening_counts_dispatch_failures(db, account, job, store):
    ids = [add_candidate(store, job, name=f"Candidate {i}") for i in range(2)]

    summary = resume_screening(db, account.id, ids, RecordingGateway(fail=True))

    assert summary.processed == 0
    assert summary.failed == 2
    for candidate_id in ids:
        assert store.get(candidate_id).analysis_status == AnalysisStatus.FAILED.value
