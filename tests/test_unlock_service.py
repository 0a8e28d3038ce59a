"""
Unit tests for candidate unlocks.
Unlocks spend the same monthly credits as analyses.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from screener.core.exceptions import CandidateNotFound
from screener.db.base import Base
from screener.db.models.account import Account
from screener.db.models.candidate import Candidate
from screener.db.models.credit_debit import CreditDebit
from screener.db.models.job_opening import JobOpening
from screener.services.realtime import CandidateChangeNotifier
from screener.services.unlock_service import unlock_candidate


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


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


def make_candidate(db, plan_tier="free", monthly_used=0, email="owner@acme.io"):
    account = Account(email=email, plan_tier=plan_tier, monthly_used=monthly_used)
    db.add(account)
    db.commit()
    job = JobOpening(account_id=account.id, title="Backend Engineer", description="Python")
    db.add(job)
    db.commit()
    candidate = Candidate(job_id=job.id, account_id=account.id, name="Jane Doe", cv_text="CV")
    db.add(candidate)
    db.commit()
    db.refresh(account)
    db.refresh(candidate)
    return account, candidate


def test_unlock_spends_one_credit(db):
    """Test that an unlock marks the candidate and debits the monthly counter."""
    account, candidate = make_candidate(db, monthly_used=3)
    notifier = CandidateChangeNotifier()
    events = []
    notifier.subscribe(candidate.job_id, events.append)

    result = unlock_candidate(db, account.id, candidate.id, notifier=notifier)

    assert result.unlocked is True
    assert result.already_unlocked is False
    assert result.used == 4
    assert result.remaining == 21
    assert result.candidate.is_unlocked is True
    assert result.candidate.unlocked_at is not None
    db.refresh(account)
    assert account.monthly_used == 4
    assert db.query(CreditDebit).filter(CreditDebit.candidate_id == candidate.id).count() == 1
    assert events[0]["candidate"]["is_unlocked"] is True


def test_second_unlock_is_free(db):
    account, candidate = make_candidate(db)
    unlock_candidate(db, account.id, candidate.id)

    result = unlock_candidate(db, account.id, candidate.id)

    assert result.unlocked is True
    assert result.already_unlocked is True
    db.refresh(account)
    assert account.monthly_used == 1


def test_unlock_denied_at_limit(db):
    """Test that an account at its limit cannot unlock and nothing changes."""
    account, candidate = make_candidate(db, monthly_used=25)

    result = unlock_candidate(db, account.id, candidate.id)

    assert result.unlocked is False
    assert result.used == 25
    assert result.limit == 25
    db.refresh(candidate)
    assert candidate.is_unlocked is False
    assert candidate.unlocked_at is None
    db.refresh(account)
    assert account.monthly_used == 25


def test_unlock_unlimited_plan(db):
    account, candidate = make_candidate(db, plan_tier="enterprise", monthly_used=5000)

    result = unlock_candidate(db, account.id, candidate.id)

    assert result.unlocked is True
    assert result.limit is None
    assert result.remaining is None


def test_unlock_other_accounts_candidate(db):
    _, candidate = make_candidate(db)
    intruder = Account(email="intruder@corp.io", plan_tier="free")
    db.add(intruder)
    db.commit()

    with pytest.raises(CandidateNotFound):
        unlock_candidate(db, intruder.id, candidate.id)

    db.refresh(candidate)
    assert candidate.is_unlocked is False
