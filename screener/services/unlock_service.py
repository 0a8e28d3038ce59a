"""
Candidate unlocks.

Unlocking a candidate spends one credit from the same monthly counter as
analyses. The candidate is flipped to unlocked before the debit, so two
concurrent unlocks of one candidate never charge twice; a denied debit
flips it back.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from screener.core.exceptions import ScreeningError
from screener.db.models.candidate import Candidate
from screener.services import credit_ledger
from screener.services.candidate_store import CandidateStore, serialize_candidate
from screener.services.realtime import CandidateChangeNotifier

logger = logging.getLogger(__name__)

UNLOCK_LIMIT_MESSAGE = "Monthly credit limit reached. Upgrade your plan to unlock more candidates."


@dataclass
class UnlockResult:
    candidate: Candidate
    unlocked: bool
    already_unlocked: bool = False
    used: Optional[int] = None
    remaining: Optional[int] = None
    limit: Optional[int] = None


def _set_unlocked(db: Session, account_id: int, candidate_id: str, unlocked: bool) -> bool:
    """Conditionally flip is_unlocked. Returns True if this call changed the row."""
    result = db.execute(
        update(Candidate)
        .where(
            Candidate.id == candidate_id,
            Candidate.account_id == account_id,
            Candidate.is_unlocked.is_(not unlocked),
        )
        .values(is_unlocked=unlocked, unlocked_at=datetime.utcnow() if unlocked else None)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return bool(result.rowcount)


def unlock_candidate(
    db: Session,
    account_id: int,
    candidate_id: str,
    notifier: Optional[CandidateChangeNotifier] = None,
) -> UnlockResult:
    """
    Unlock a candidate, spending one credit.

    Already unlocked candidates are returned as they are, free of charge.

    Returns:
        UnlockResult; unlocked is False when the account is out of credits

    Raises:
        CandidateNotFound: Unknown candidate or owned by another account
        CreditLedgerError: The debit could not be recorded
    """
    candidate = CandidateStore(db, account_id).get(candidate_id)
    if candidate.is_unlocked:
        return UnlockResult(candidate=candidate, unlocked=True, already_unlocked=True)

    if not _set_unlocked(db, account_id, candidate_id, True):
        db.refresh(candidate)
        return UnlockResult(candidate=candidate, unlocked=True, already_unlocked=True)

    try:
        decision = credit_ledger.check_and_debit(db, account_id, candidate_id)
    except ScreeningError:
        _set_unlocked(db, account_id, candidate_id, False)
        raise

    if not decision.allowed:
        _set_unlocked(db, account_id, candidate_id, False)
        db.refresh(candidate)
        logger.info(f"Unlock denied, no credits left: account_id={account_id}, candidate_id={candidate_id}")
        return UnlockResult(
            candidate=candidate,
            unlocked=False,
            used=decision.used,
            remaining=0,
            limit=decision.limit,
        )

    db.refresh(candidate)
    logger.info(
        f"Candidate unlocked: account_id={account_id}, candidate_id={candidate_id}, "
        f"used={decision.used}/{decision.limit if decision.limit is not None else 'unlimited'}"
    )

    if notifier is not None:
        notifier.publish(candidate.job_id, serialize_candidate(candidate))
    if decision.limit is not None:
        credit_ledger.flag_limit_warning(db, account_id)

    return UnlockResult(
        candidate=candidate,
        unlocked=True,
        used=decision.used,
        remaining=decision.remaining,
        limit=decision.limit,
    )
